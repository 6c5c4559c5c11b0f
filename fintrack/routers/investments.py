from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime

from fintrack.crud import crud_investment
from fintrack.services import valuation
from fintrack.models import investment as investment_models
from fintrack.db.core import get_db, NotFoundError
from fintrack.routers.dependencies import get_current_user_id

router = APIRouter(
    prefix="/investments",
    tags=["investments"],
)


# ===== INVESTMENTS =====

@router.post("/", response_model=investment_models.InvestmentResponse, status_code=status.HTTP_201_CREATED)
def create_investment(
    investment: investment_models.InvestmentCreate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return crud_investment.create_db_investment(db=db, user_id=user_id, investment_data=investment)


@router.get("/", response_model=List[investment_models.InvestmentResponse])
def read_investments(
    include_deleted: bool = False,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return crud_investment.read_db_investments(db=db, user_id=user_id, include_deleted=include_deleted)


@router.post("/simulate", response_model=List[investment_models.InvestmentHistoryResponse])
def simulate_growth(db: Session = Depends(get_db)):
    """
    Run one growth step for every live investment. Normally run by the monthly job.
    """
    return valuation.simulate_growth(db=db)


@router.get("/{investment_id}", response_model=investment_models.InvestmentResponse)
def read_investment(
    investment_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    db_investment = crud_investment.read_db_investment(db=db, investment_id=investment_id, user_id=user_id)
    if db_investment is None:
        raise NotFoundError(f"Investment with id {investment_id} not found.")
    return db_investment


@router.put("/{investment_id}", response_model=investment_models.InvestmentResponse)
def update_investment(
    investment_id: int,
    investment: investment_models.InvestmentUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return crud_investment.update_db_investment(
        db=db, investment_id=investment_id, user_id=user_id, investment_updates=investment
    )


@router.delete("/{investment_id}", response_model=investment_models.InvestmentResponse)
def delete_investment(
    investment_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return crud_investment.delete_db_investment(db=db, investment_id=investment_id, user_id=user_id)


@router.post("/{investment_id}/restore", response_model=investment_models.InvestmentResponse)
def restore_investment(
    investment_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return crud_investment.restore_db_investment(db=db, investment_id=investment_id, user_id=user_id)


# ===== HISTORY =====

@router.post("/{investment_id}/history", response_model=investment_models.InvestmentHistoryResponse,
             status_code=status.HTTP_201_CREATED)
def record_history(
    investment_id: int,
    price: investment_models.PriceUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Record an externally supplied valuation.
    """
    return valuation.record_history(
        db=db, investment_id=investment_id, new_current_value=price.current_value, user_id=user_id
    )


@router.get("/{investment_id}/history", response_model=List[investment_models.InvestmentHistoryResponse])
def read_history(
    investment_id: int,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return valuation.get_investment_history(
        db=db, investment_id=investment_id, start=start, end=end, user_id=user_id
    )
