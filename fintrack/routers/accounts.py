from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from fintrack.crud import crud_account, crud_transaction
from fintrack.models import account as account_models
from fintrack.models import transaction as transaction_models
from fintrack.db.core import get_db, NotFoundError
from fintrack.routers.dependencies import get_current_user_id

router = APIRouter(
    prefix="/accounts",
    tags=["accounts"],
)


@router.post("/", response_model=account_models.AccountResponse, status_code=status.HTTP_201_CREATED)
def create_account(
    account: account_models.AccountCreate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Create a new account for the current user.
    """
    return crud_account.create_db_account(db=db, user_id=user_id, account_data=account)


@router.get("/", response_model=List[account_models.AccountResponse])
def read_accounts(
    include_deleted: bool = False,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Retrieve all accounts for the current user.
    """
    return crud_account.read_db_accounts(db=db, user_id=user_id, include_deleted=include_deleted)


@router.get("/{account_id}", response_model=account_models.AccountResponse)
def read_account(
    account_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    db_account = crud_account.read_db_account(db=db, account_id=account_id, user_id=user_id)
    if db_account is None:
        raise NotFoundError(f"Account with id {account_id} not found")
    return db_account


@router.get("/{account_id}/transactions", response_model=List[transaction_models.TransactionResponse])
def read_account_transactions(
    account_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Retrieve every transaction touching the account, including incoming transfers.
    """
    if crud_account.read_db_account(db=db, account_id=account_id, user_id=user_id, include_deleted=True) is None:
        raise NotFoundError(f"Account with id {account_id} not found")
    return crud_transaction.read_db_transactions_by_account(db=db, user_id=user_id, account_id=account_id)


@router.put("/{account_id}", response_model=account_models.AccountResponse)
def update_account(
    account_id: int,
    account: account_models.AccountUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return crud_account.update_db_account(db=db, account_id=account_id, user_id=user_id, account_updates=account)


@router.delete("/{account_id}", response_model=account_models.AccountResponse)
def delete_account(
    account_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Soft delete an account. Its history is kept and it can be restored.
    """
    return crud_account.delete_db_account(db=db, account_id=account_id, user_id=user_id)


@router.post("/{account_id}/restore", response_model=account_models.AccountResponse)
def restore_account(
    account_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return crud_account.restore_db_account(db=db, account_id=account_id, user_id=user_id)
