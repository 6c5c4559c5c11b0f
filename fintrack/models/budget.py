from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime, date
from decimal import Decimal
from enum import Enum

from fintrack.money import to_money


# ===== BUDGET PYDANTIC MODELS =====

class BudgetTypeEnum(str, Enum):
    STRICT = "STRICT"
    FLEXIBLE = "FLEXIBLE"


class BudgetCreate(BaseModel):
    category_id: int = Field(..., description="The ID of the category")
    amount_limit: Decimal = Field(..., ge=0, description="Spending limit for the period")
    start_date: date = Field(..., description="Budget start date")
    end_date: date = Field(..., description="Budget end date")
    budget_type: BudgetTypeEnum = Field(default=BudgetTypeEnum.FLEXIBLE)
    rollover_amount: Optional[Decimal] = Field(None, ge=0)
    description: Optional[str] = Field(None, max_length=500)

    @field_validator('amount_limit', 'rollover_amount')
    @classmethod
    def round_amounts(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return to_money(v) if v is not None else v


class BudgetUpdate(BaseModel):
    amount_limit: Optional[Decimal] = Field(None, ge=0)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    budget_type: Optional[BudgetTypeEnum] = None
    rollover_amount: Optional[Decimal] = Field(None, ge=0)
    description: Optional[str] = Field(None, max_length=500)

    @field_validator('amount_limit', 'rollover_amount')
    @classmethod
    def round_amounts(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return to_money(v) if v is not None else v


class BudgetResponse(BaseModel):
    id: int
    user_id: int
    category_id: int
    amount_limit: Decimal
    start_date: date
    end_date: date
    budget_type: BudgetTypeEnum
    rollover_amount: Optional[Decimal]
    description: Optional[str]
    is_deleted: bool
    created_at: datetime

    class Config:
        from_attributes = True


class BudgetDetails(BaseModel):
    """Budget with spending computed for its period"""
    budget_id: int
    category: str
    description: Optional[str] = None
    amount_limit: Decimal
    start_date: date
    end_date: date
    spent: Decimal
    percentage_used: int
    budget_type: BudgetTypeEnum
    rollover_amount: Optional[Decimal] = None
    created_at: Optional[datetime] = None


class BudgetReport(BaseModel):
    user_id: int
    budgets: List[BudgetDetails]
    total_budget_limit: Decimal
    total_rollover_amount: Decimal
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class BudgetCheck(BaseModel):
    """Result of a prospective spending check"""
    within_budget: bool
    usage_alert: bool
