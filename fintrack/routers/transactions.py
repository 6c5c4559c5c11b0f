from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime

from fintrack.crud import crud_transaction
from fintrack.services import recurring
from fintrack.models import transaction as transaction_models
from fintrack.db.core import get_db, NotFoundError
from fintrack.routers.dependencies import get_current_user_id

router = APIRouter(
    prefix="/transactions",
    tags=["transactions"],
)


# ===== POSTINGS =====

@router.post("/deposit/{account_id}", response_model=transaction_models.TransactionResponse,
             status_code=status.HTTP_201_CREATED)
def deposit(
    account_id: int,
    request: transaction_models.AmountRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return crud_transaction.deposit_funds(
        db=db, user_id=user_id, account_id=account_id, amount=request.amount, metadata=request.metadata
    )


@router.post("/withdraw/{account_id}", response_model=transaction_models.TransactionResponse,
             status_code=status.HTTP_201_CREATED)
def withdraw(
    account_id: int,
    request: transaction_models.AmountRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Withdraw from an account. Categorized withdrawals are checked against the active budget.
    """
    return crud_transaction.withdraw_funds(
        db=db, user_id=user_id, account_id=account_id, amount=request.amount, metadata=request.metadata
    )


@router.post("/transfer", response_model=transaction_models.TransactionResponse,
             status_code=status.HTTP_201_CREATED)
def transfer(
    request: transaction_models.TransferRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return crud_transaction.transfer_funds(
        db=db,
        user_id=user_id,
        from_account_id=request.from_account_id,
        to_account_id=request.to_account_id,
        amount=request.amount,
        metadata=request.metadata
    )


@router.post("/recurring", response_model=transaction_models.TransactionResponse,
             status_code=status.HTTP_201_CREATED)
def create_recurring(
    request: transaction_models.RecurringTransactionCreate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return crud_transaction.create_recurring_transaction(db=db, user_id=user_id, recurring_data=request)


@router.post("/recurring/process", response_model=List[transaction_models.TransactionResponse])
def process_recurring(
    now: Optional[datetime] = None,
    db: Session = Depends(get_db)
):
    """
    Materialize every recurring occurrence due at or before `now` (defaults to the current time).
    Normally run by the scheduled job; exposed for operators.
    """
    return recurring.process_recurring_transactions(db=db, now=now)


# ===== READS =====

@router.get("/", response_model=List[transaction_models.TransactionResponse])
def read_transactions(
    account_id: Optional[int] = None,
    transaction_type: Optional[transaction_models.TransactionTypeEnum] = None,
    category_id: Optional[int] = None,
    is_recurring: Optional[bool] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    include_deleted: bool = False,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    filters = transaction_models.TransactionFilter(
        account_id=account_id,
        transaction_type=transaction_type,
        category_id=category_id,
        is_recurring=is_recurring,
        date_from=date_from,
        date_to=date_to
    )
    return crud_transaction.read_db_transactions(
        db=db, user_id=user_id, filters=filters, include_deleted=include_deleted, skip=skip, limit=limit
    )


@router.get("/{transaction_id}", response_model=transaction_models.TransactionResponse)
def read_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    db_transaction = crud_transaction.read_db_transaction(db=db, transaction_id=transaction_id, user_id=user_id)
    if db_transaction is None:
        raise NotFoundError(f"Transaction with id {transaction_id} not found")
    return db_transaction


# ===== LIFECYCLE =====

@router.delete("/{transaction_id}", response_model=transaction_models.TransactionResponse)
def delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Soft delete a transaction. Account balances are not reversed.
    """
    return crud_transaction.delete_db_transaction(db=db, transaction_id=transaction_id, user_id=user_id)


@router.post("/{transaction_id}/restore", response_model=transaction_models.TransactionResponse)
def restore_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return crud_transaction.restore_db_transaction(db=db, transaction_id=transaction_id, user_id=user_id)


@router.post("/{transaction_id}/stop", response_model=transaction_models.TransactionResponse)
def stop_recurring(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return crud_transaction.stop_recurring_transaction(db=db, transaction_id=transaction_id, user_id=user_id)
