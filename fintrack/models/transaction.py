from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum


# ===== TRANSACTION PYDANTIC MODELS =====

class TransactionTypeEnum(str, Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    TRANSFER = "TRANSFER"


class TransactionStatusEnum(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class RecurringIntervalEnum(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class TransactionMetadata(BaseModel):
    """Optional details attached to a deposit, withdrawal or transfer"""
    category_id: Optional[int] = Field(None, description="Category used for budget tracking")
    description: Optional[str] = Field(None, max_length=500)
    payment_method: Optional[str] = Field(None, max_length=50, description="CARD, CASH, ACH, ...")
    transaction_date: Optional[datetime] = Field(None, description="Defaults to now")

    @field_validator('description', 'payment_method')
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v else v


class AmountRequest(BaseModel):
    amount: Decimal
    metadata: Optional[TransactionMetadata] = None


class TransferRequest(AmountRequest):
    from_account_id: int
    to_account_id: int


class RecurringTransactionCreate(BaseModel):
    """
    Template for a recurring deposit or withdrawal.

    Interval and type are plain strings so the ledger can reject
    unknown values with its own error.
    """
    account_id: int
    amount: Decimal
    transaction_type: str = Field(..., description="DEPOSIT or WITHDRAWAL")
    recurring_interval: str = Field(..., description="DAILY, WEEKLY, MONTHLY or YEARLY")
    category_id: Optional[int] = None
    description: Optional[str] = Field(None, max_length=500)
    payment_method: Optional[str] = Field(None, max_length=50)
    transaction_date: Optional[datetime] = Field(None, description="First posting date, defaults to now")


class TransactionFilter(BaseModel):
    """Filter parameters for transaction queries"""
    account_id: Optional[int] = None
    transaction_type: Optional[TransactionTypeEnum] = None
    category_id: Optional[int] = None
    is_recurring: Optional[bool] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None


class TransactionResponse(BaseModel):
    """Transaction data returned to client"""
    id: int
    user_id: int
    account_id: int
    to_account_id: Optional[int]
    category_id: Optional[int]
    amount: Decimal
    transaction_type: TransactionTypeEnum
    status: TransactionStatusEnum
    transaction_date: datetime
    payment_method: Optional[str]
    description: Optional[str]
    is_recurring: bool
    recurring_interval: Optional[RecurringIntervalEnum]
    next_due_date: Optional[datetime]
    parent_transaction_id: Optional[int]
    is_deleted: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
