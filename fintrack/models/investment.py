from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime, date
from decimal import Decimal

from fintrack.money import to_money


# ===== INVESTMENT PYDANTIC MODELS =====

class InvestmentBase(BaseModel):
    investment_type: str = Field(..., min_length=1, max_length=50, description="STOCK, BOND, CRYPTO, ...")
    asset_name: str = Field(..., min_length=1, max_length=255)
    amount_invested: Decimal = Field(..., ge=0, description="Principal put into the asset")

    @field_validator('investment_type')
    @classmethod
    def normalize_type(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator('asset_name')
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()

    @field_validator('amount_invested')
    @classmethod
    def round_amount(cls, v: Decimal) -> Decimal:
        return to_money(v)


class InvestmentCreate(InvestmentBase):
    purchase_date: Optional[date] = None


class InvestmentUpdate(InvestmentBase):
    pass


class InvestmentResponse(InvestmentBase):
    id: int
    user_id: int
    current_value: Decimal
    performance: Decimal
    purchase_date: Optional[date]
    last_updated: Optional[datetime]
    is_deleted: bool
    created_at: datetime

    class Config:
        from_attributes = True


class PriceUpdate(BaseModel):
    current_value: Decimal = Field(..., ge=0)


class InvestmentHistoryResponse(BaseModel):
    id: int
    investment_id: int
    current_value: Decimal
    performance: Decimal
    returns_generated: Decimal
    recorded_at: datetime

    class Config:
        from_attributes = True
