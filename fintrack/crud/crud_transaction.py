from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy import or_, desc
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from fintrack.db.core import (
    TransactionDB, CategoryDB, NotFoundError, InvalidArgumentError, BudgetExceededError,
    TransientError, TransactionType, TransactionStatus, RecurringInterval
)
from fintrack.models.transaction import TransactionMetadata, RecurringTransactionCreate, TransactionFilter
from fintrack.crud.crud_account import get_active_account_for_update, apply_balance_change
from fintrack.crud.crud_budget import is_within_budget, check_budget_usage
from fintrack.services.recurring import advance_due_date
from fintrack.money import to_money
from fintrack.logging_config import get_logger

logger = get_logger(__name__)


# ===== HELPERS =====

def validate_amount(amount) -> Decimal:
    """Amounts must be strictly positive once rounded to cents"""
    if amount is None:
        raise InvalidArgumentError("Amount is required")
    amount = to_money(amount)
    if amount <= 0:
        raise InvalidArgumentError("Amount must be greater than zero")
    return amount


def _verify_category(db: Session, category_id: Optional[int]):
    if category_id is None:
        return
    if not db.query(CategoryDB).filter(CategoryDB.id == category_id).first():
        raise NotFoundError(f"Category with id {category_id} not found")


def _commit(db: Session, *instances):
    """Commit the unit of work, mapping storage failures to ledger errors"""
    try:
        db.commit()
    except OperationalError as e:
        db.rollback()
        raise TransientError(f"Storage unavailable: {e.orig}") from e
    except IntegrityError:
        db.rollback()
        raise ValueError("Transaction failed due to database constraint")
    for instance in instances:
        db.refresh(instance)


def _build_transaction(user_id: int, account_id: int, amount: Decimal, transaction_type: TransactionType,
                       metadata: TransactionMetadata, to_account_id: Optional[int] = None) -> TransactionDB:
    return TransactionDB(
        user_id=user_id,
        account_id=account_id,
        to_account_id=to_account_id,
        category_id=metadata.category_id,
        amount=amount,
        transaction_type=transaction_type,
        status=TransactionStatus.COMPLETED,
        transaction_date=metadata.transaction_date or datetime.utcnow(),
        payment_method=metadata.payment_method,
        description=metadata.description,
        is_recurring=False,
        is_deleted=False,
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow()
    )


def _admit_withdrawal(db: Session, user_id: int, amount: Decimal, metadata: TransactionMetadata) -> bool:
    """
    Run the budget admission check for a categorized withdrawal.
    Returns whether the posting will reach the usage alert threshold.
    """
    if metadata.category_id is None:
        return False

    when = metadata.transaction_date or datetime.utcnow()
    if not is_within_budget(db, user_id, metadata.category_id, amount, when, lock=True):
        raise BudgetExceededError(
            f"Withdrawal of {amount} exceeds the budget for category {metadata.category_id}"
        )
    return check_budget_usage(db, user_id, metadata.category_id, amount)


# ===== LEDGER POSTINGS =====

def deposit_funds(db: Session, user_id: int, account_id: int, amount: Decimal,
                  metadata: Optional[TransactionMetadata] = None) -> TransactionDB:
    """Credit an account and record a completed DEPOSIT"""

    amount = validate_amount(amount)
    metadata = metadata or TransactionMetadata()

    try:
        account = get_active_account_for_update(db, account_id, user_id)
        _verify_category(db, metadata.category_id)
    except NotFoundError:
        db.rollback()
        raise

    apply_balance_change(account, amount)
    db_transaction = _build_transaction(user_id, account.id, amount, TransactionType.DEPOSIT, metadata)
    db.add(db_transaction)
    _commit(db, db_transaction, account)

    logger.info(f"Deposited {amount} into account {account.id} for user {user_id}")
    return db_transaction


def withdraw_funds(db: Session, user_id: int, account_id: int, amount: Decimal,
                   metadata: Optional[TransactionMetadata] = None) -> TransactionDB:
    """
    Debit an account and record a completed WITHDRAWAL.

    Categorized withdrawals must pass the active budget's admission check.
    Balances are allowed to go negative.
    """
    amount = validate_amount(amount)
    metadata = metadata or TransactionMetadata()

    try:
        account = get_active_account_for_update(db, account_id, user_id)
        _verify_category(db, metadata.category_id)
        usage_alert = _admit_withdrawal(db, user_id, amount, metadata)
    except (NotFoundError, BudgetExceededError):
        db.rollback()
        raise

    apply_balance_change(account, -amount)
    db_transaction = _build_transaction(user_id, account.id, amount, TransactionType.WITHDRAWAL, metadata)
    db.add(db_transaction)
    _commit(db, db_transaction, account)

    logger.info(f"Withdrew {amount} from account {account.id} for user {user_id}")
    if usage_alert:
        logger.warning(
            f"Budget usage alert: user {user_id} is near the limit for category {metadata.category_id}"
        )
    return db_transaction


def transfer_funds(db: Session, user_id: int, from_account_id: int, to_account_id: int, amount: Decimal,
                   metadata: Optional[TransactionMetadata] = None) -> TransactionDB:
    """Move funds between two accounts of the same user in a single commit"""

    amount = validate_amount(amount)
    if from_account_id == to_account_id:
        raise InvalidArgumentError("Cannot transfer to the same account")
    metadata = metadata or TransactionMetadata()

    # Lock in id order so concurrent opposite transfers cannot deadlock
    locked = {}
    try:
        for account_id in sorted((from_account_id, to_account_id)):
            locked[account_id] = get_active_account_for_update(db, account_id, user_id)
        _verify_category(db, metadata.category_id)
    except NotFoundError:
        db.rollback()
        raise

    source, destination = locked[from_account_id], locked[to_account_id]
    apply_balance_change(source, -amount)
    apply_balance_change(destination, amount)

    db_transaction = _build_transaction(
        user_id, source.id, amount, TransactionType.TRANSFER, metadata, to_account_id=destination.id
    )
    db.add(db_transaction)
    _commit(db, db_transaction, source, destination)

    logger.info(f"Transferred {amount} from account {source.id} to account {destination.id} for user {user_id}")
    return db_transaction


def create_recurring_transaction(db: Session, user_id: int,
                                 recurring_data: RecurringTransactionCreate) -> TransactionDB:
    """
    Post the first occurrence of a recurring deposit or withdrawal.

    The posted row doubles as the template the scheduler materializes
    further occurrences from.
    """
    try:
        interval = RecurringInterval(recurring_data.recurring_interval.strip().upper())
    except ValueError:
        raise InvalidArgumentError(f"Invalid recurring interval '{recurring_data.recurring_interval}'")

    try:
        transaction_type = TransactionType(recurring_data.transaction_type.strip().upper())
    except ValueError:
        raise InvalidArgumentError(f"Invalid transaction type '{recurring_data.transaction_type}'")
    if transaction_type == TransactionType.TRANSFER:
        raise InvalidArgumentError("Recurring transfers are not supported")

    amount = validate_amount(recurring_data.amount)
    metadata = TransactionMetadata(
        category_id=recurring_data.category_id,
        description=recurring_data.description,
        payment_method=recurring_data.payment_method,
        transaction_date=recurring_data.transaction_date or datetime.utcnow()
    )

    try:
        account = get_active_account_for_update(db, recurring_data.account_id, user_id)
        _verify_category(db, metadata.category_id)
        if transaction_type == TransactionType.WITHDRAWAL:
            _admit_withdrawal(db, user_id, amount, metadata)
    except (NotFoundError, BudgetExceededError):
        db.rollback()
        raise

    if transaction_type == TransactionType.WITHDRAWAL:
        apply_balance_change(account, -amount)
    else:
        apply_balance_change(account, amount)

    db_transaction = _build_transaction(user_id, account.id, amount, transaction_type, metadata)
    db_transaction.is_recurring = True
    db_transaction.recurring_interval = interval
    db_transaction.next_due_date = advance_due_date(metadata.transaction_date, interval)
    db.add(db_transaction)
    _commit(db, db_transaction, account)

    logger.info(
        f"Created recurring {transaction_type.value} {db_transaction.id} ({interval.value}) "
        f"for user {user_id}, next due {db_transaction.next_due_date}"
    )
    return db_transaction


# ===== READS =====

def read_db_transaction(db: Session, transaction_id: int, user_id: Optional[int] = None,
                        include_deleted: bool = False) -> Optional[TransactionDB]:
    query = db.query(TransactionDB).filter(TransactionDB.id == transaction_id)

    if user_id:
        query = query.filter(TransactionDB.user_id == user_id)
    if not include_deleted:
        query = query.filter(TransactionDB.is_deleted.is_(False))

    return query.first()


def read_db_transactions(db: Session, user_id: int, filters: Optional[TransactionFilter] = None,
                         include_deleted: bool = False, skip: int = 0, limit: int = 100) -> List[TransactionDB]:
    """Read transactions with filtering and pagination, newest first"""

    query = db.query(TransactionDB).filter(TransactionDB.user_id == user_id)

    if filters:
        if filters.account_id:
            query = query.filter(or_(
                TransactionDB.account_id == filters.account_id,
                TransactionDB.to_account_id == filters.account_id
            ))

        if filters.transaction_type:
            query = query.filter(TransactionDB.transaction_type == TransactionType(filters.transaction_type.value))

        if filters.category_id:
            query = query.filter(TransactionDB.category_id == filters.category_id)

        if filters.is_recurring is not None:
            query = query.filter(TransactionDB.is_recurring.is_(filters.is_recurring))

        if filters.date_from:
            query = query.filter(TransactionDB.transaction_date >= filters.date_from)

        if filters.date_to:
            query = query.filter(TransactionDB.transaction_date <= filters.date_to)

    if not include_deleted:
        query = query.filter(TransactionDB.is_deleted.is_(False))

    query = query.order_by(desc(TransactionDB.transaction_date), desc(TransactionDB.id))
    return query.offset(skip).limit(limit).all()


def read_db_transactions_by_account(db: Session, user_id: int, account_id: int,
                                    include_deleted: bool = False) -> List[TransactionDB]:
    """All transactions touching an account, including either side of a transfer"""
    return read_db_transactions(
        db, user_id, TransactionFilter(account_id=account_id), include_deleted=include_deleted, limit=None
    )


# ===== LIFECYCLE =====

def delete_db_transaction(db: Session, transaction_id: int, user_id: int) -> TransactionDB:
    """
    Soft delete a transaction. Balances are left untouched; a deleted
    recurring template produces no further occurrences.
    """
    db_transaction = read_db_transaction(db, transaction_id, user_id)
    if not db_transaction:
        raise NotFoundError(f"Transaction with id {transaction_id} not found")

    db_transaction.is_deleted = True
    db_transaction.updated_at = datetime.utcnow()
    _commit(db, db_transaction)
    logger.info(f"Soft deleted transaction {transaction_id} for user {user_id}")
    return db_transaction


def restore_db_transaction(db: Session, transaction_id: int, user_id: int) -> TransactionDB:
    db_transaction = read_db_transaction(db, transaction_id, user_id, include_deleted=True)
    if not db_transaction:
        raise NotFoundError(f"Transaction with id {transaction_id} not found")
    if not db_transaction.is_deleted:
        raise ValueError(f"Transaction with id {transaction_id} is already active")

    db_transaction.is_deleted = False
    db_transaction.updated_at = datetime.utcnow()
    _commit(db, db_transaction)
    return db_transaction


def stop_recurring_transaction(db: Session, transaction_id: int, user_id: int) -> TransactionDB:
    db_transaction = read_db_transaction(db, transaction_id, user_id)
    if not db_transaction:
        raise NotFoundError(f"Transaction with id {transaction_id} not found")
    if not db_transaction.is_recurring:
        raise InvalidArgumentError(f"Transaction with id {transaction_id} is not recurring")

    db_transaction.is_recurring = False
    db_transaction.next_due_date = None
    db_transaction.updated_at = datetime.utcnow()
    _commit(db, db_transaction)
    logger.info(f"Stopped recurrence of transaction {transaction_id}")
    return db_transaction
