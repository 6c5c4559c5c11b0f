from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date, datetime, time
from decimal import Decimal

from fintrack.crud import crud_budget
from fintrack.models import budget as budget_models
from fintrack.db.core import get_db, NotFoundError
from fintrack.routers.dependencies import get_current_user_id

router = APIRouter(
    prefix="/budgets",
    tags=["budgets"],
)


@router.post("/", response_model=budget_models.BudgetResponse, status_code=status.HTTP_201_CREATED)
def create_budget(
    budget: budget_models.BudgetCreate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return crud_budget.create_db_budget(db=db, user_id=user_id, budget_data=budget)


@router.get("/", response_model=List[budget_models.BudgetResponse])
def read_budgets(
    category_id: Optional[int] = None,
    active_on: Optional[date] = None,
    include_deleted: bool = False,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return crud_budget.read_db_budgets(
        db=db, user_id=user_id, category_id=category_id, active_on=active_on, include_deleted=include_deleted
    )


@router.get("/report", response_model=budget_models.BudgetReport)
def read_budget_report(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Spending against every live budget, with totals and overall period.
    """
    return crud_budget.get_budget_report(db=db, user_id=user_id)


@router.get("/check", response_model=budget_models.BudgetCheck)
def check_budget(
    category_id: int,
    amount: Decimal = Query(..., gt=0),
    on_date: Optional[date] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Would a withdrawal of `amount` in the category be admitted, and would it trigger a usage alert?
    """
    when = None
    if on_date:
        when = datetime.combine(on_date, time.min)
    return budget_models.BudgetCheck(
        within_budget=crud_budget.is_within_budget(db, user_id, category_id, amount, when),
        usage_alert=crud_budget.check_budget_usage(db, user_id, category_id, amount)
    )


@router.get("/{budget_id}", response_model=budget_models.BudgetDetails)
def read_budget(
    budget_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    db_budget = crud_budget.read_db_budget(db=db, budget_id=budget_id, user_id=user_id)
    if db_budget is None:
        raise NotFoundError(f"Budget with id {budget_id} not found")
    return crud_budget.get_budget_details(db, db_budget)


@router.put("/{budget_id}", response_model=budget_models.BudgetResponse)
def update_budget(
    budget_id: int,
    budget: budget_models.BudgetUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return crud_budget.update_db_budget(db=db, budget_id=budget_id, user_id=user_id, budget_updates=budget)


@router.delete("/{budget_id}", response_model=budget_models.BudgetResponse)
def delete_budget(
    budget_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return crud_budget.delete_db_budget(db=db, budget_id=budget_id, user_id=user_id)


@router.post("/{budget_id}/restore", response_model=budget_models.BudgetResponse)
def restore_budget(
    budget_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return crud_budget.restore_db_budget(db=db, budget_id=budget_id, user_id=user_id)
