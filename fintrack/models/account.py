from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum

from fintrack.money import to_money


# ===== ACCOUNT PYDANTIC MODELS =====

class AccountTypeEnum(str, Enum):
    CHECKING = "CHECKING"
    SAVINGS = "SAVINGS"
    CREDIT = "CREDIT"
    LOAN = "LOAN"
    INVESTMENT = "INVESTMENT"
    OTHER = "OTHER"


class AccountCreate(BaseModel):
    account_name: str = Field(..., min_length=1, max_length=255, description="Account name")
    account_type: AccountTypeEnum = Field(..., description="Type of account")
    balance: Decimal = Field(default=Decimal('0.00'), description="Opening balance")
    currency: str = Field(default="USD", min_length=3, max_length=3, description="ISO 4217 currency code")
    interest_rate: Optional[Decimal] = Field(None, ge=0, le=1, description="Interest rate (0.0525 for 5.25%)")
    is_default: bool = Field(default=False, description="Use as the user's default account")

    @field_validator('account_name')
    @classmethod
    def validate_account_name(cls, v: str) -> str:
        return v.strip()

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return v.upper()

    @field_validator('balance')
    @classmethod
    def validate_balance(cls, v: Decimal) -> Decimal:
        return to_money(v)


class AccountUpdate(BaseModel):
    """Update account - all fields optional. Balance only moves through the ledger."""
    account_name: Optional[str] = Field(None, min_length=1, max_length=255)
    account_type: Optional[AccountTypeEnum] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    interest_rate: Optional[Decimal] = Field(None, ge=0, le=1)
    is_default: Optional[bool] = None

    @field_validator('account_name')
    @classmethod
    def validate_account_name(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v else v

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v


class AccountResponse(BaseModel):
    """Account data returned to client"""
    id: int
    user_id: int
    account_name: str
    account_type: AccountTypeEnum
    balance: Decimal
    currency: str
    interest_rate: Optional[Decimal]
    is_default: bool
    is_deleted: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
