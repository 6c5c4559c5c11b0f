from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from fintrack.db.core import AccountDB, NotFoundError, AccountType
from fintrack.models.account import AccountCreate, AccountUpdate
from fintrack.crud.crud_user import get_user_or_raise
from fintrack.money import to_money
from fintrack.logging_config import get_logger

logger = get_logger(__name__)


# ===== DATABASE OPERATIONS =====

def create_db_account(db: Session, user_id: int, account_data: AccountCreate) -> AccountDB:
    """Create a new account for a user"""

    get_user_or_raise(db, user_id)

    existing_account = db.query(AccountDB).filter(
        AccountDB.user_id == user_id,
        AccountDB.account_name == account_data.account_name
    ).first()
    if existing_account:
        raise ValueError(f"Account name '{account_data.account_name}' already exists")

    if account_data.is_default:
        _clear_default_flag(db, user_id)

    db_account = AccountDB(
        user_id=user_id,
        account_name=account_data.account_name,
        account_type=AccountType(account_data.account_type.value),
        balance=account_data.balance,
        currency=account_data.currency,
        interest_rate=account_data.interest_rate,
        is_default=account_data.is_default,
        is_deleted=False,
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow()
    )

    try:
        db.add(db_account)
        db.commit()
        db.refresh(db_account)
        return db_account
    except IntegrityError:
        db.rollback()
        raise ValueError("Account creation failed due to database constraint")


def read_db_account(db: Session, account_id: int, user_id: Optional[int] = None,
                    include_deleted: bool = False) -> Optional[AccountDB]:
    """Read an account by ID, optionally filtering by user"""

    query = db.query(AccountDB).filter(AccountDB.id == account_id)

    if user_id:
        query = query.filter(AccountDB.user_id == user_id)
    if not include_deleted:
        query = query.filter(AccountDB.is_deleted.is_(False))

    return query.first()


def read_db_accounts(db: Session, user_id: int, include_deleted: bool = False) -> List[AccountDB]:
    """Read accounts for a user; soft-deleted accounts only when asked for"""

    get_user_or_raise(db, user_id)

    query = db.query(AccountDB).filter(AccountDB.user_id == user_id)
    if not include_deleted:
        query = query.filter(AccountDB.is_deleted.is_(False))

    return query.order_by(AccountDB.id).all()


def update_db_account(db: Session, account_id: int, user_id: int, account_updates: AccountUpdate) -> AccountDB:
    """Update account metadata. Balances are changed by the ledger only."""

    db_account = read_db_account(db, account_id, user_id)
    if not db_account:
        raise NotFoundError(f"Account with id {account_id} not found")

    update_data = account_updates.model_dump(exclude_unset=True)

    if update_data.get('account_name') and update_data['account_name'] != db_account.account_name:
        existing_name = db.query(AccountDB).filter(
            AccountDB.user_id == user_id,
            AccountDB.account_name == update_data['account_name'],
            AccountDB.id != account_id
        ).first()
        if existing_name:
            raise ValueError(f"Account name '{update_data['account_name']}' already exists")

    if update_data.get('is_default'):
        _clear_default_flag(db, user_id, exclude_account_id=account_id)

    for field, value in update_data.items():
        if field == 'account_type' and value:
            setattr(db_account, field, AccountType(value.value))
        else:
            setattr(db_account, field, value)

    db_account.updated_at = datetime.utcnow()

    try:
        db.commit()
        db.refresh(db_account)
        return db_account
    except IntegrityError:
        db.rollback()
        raise ValueError("Account update failed due to database constraint")


def delete_db_account(db: Session, account_id: int, user_id: int) -> AccountDB:
    """Soft delete an account. The row and its transactions stay for audit."""

    db_account = read_db_account(db, account_id, user_id)
    if not db_account:
        raise NotFoundError(f"Account with id {account_id} not found")

    db_account.is_deleted = True
    db_account.is_default = False
    db_account.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(db_account)
    logger.info(f"Soft deleted account {account_id} for user {user_id}")
    return db_account


def restore_db_account(db: Session, account_id: int, user_id: int) -> AccountDB:
    db_account = read_db_account(db, account_id, user_id, include_deleted=True)
    if not db_account:
        raise NotFoundError(f"Account with id {account_id} not found")
    if not db_account.is_deleted:
        raise ValueError(f"Account with id {account_id} is already active")

    db_account.is_deleted = False
    db_account.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(db_account)
    return db_account


# ===== BALANCE OPERATIONS (used by the ledger) =====

def get_active_account_for_update(db: Session, account_id: int, user_id: int) -> AccountDB:
    """
    Load a live account owned by the user and lock its row until the
    surrounding unit of work commits or rolls back.
    """
    account = db.query(AccountDB).filter(
        AccountDB.id == account_id,
        AccountDB.user_id == user_id,
        AccountDB.is_deleted.is_(False)
    ).with_for_update().first()

    if not account:
        raise NotFoundError(f"Account with id {account_id} not found")
    return account


def apply_balance_change(account: AccountDB, delta: Decimal) -> AccountDB:
    """Apply a signed change to the in-memory balance; the caller commits."""
    account.balance = to_money(to_money(account.balance) + delta)
    account.updated_at = datetime.utcnow()
    return account


def _clear_default_flag(db: Session, user_id: int, exclude_account_id: Optional[int] = None):
    query = db.query(AccountDB).filter(AccountDB.user_id == user_id, AccountDB.is_default.is_(True))
    if exclude_account_id is not None:
        query = query.filter(AccountDB.id != exclude_account_id)
    for account in query.all():
        account.is_default = False
