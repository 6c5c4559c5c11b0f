"""
Recurring Transaction Scheduler

Materializes due occurrences of recurring deposit and withdrawal templates
and sends reminders for upcoming recurring payments. Each occurrence is
claimed with a compare-and-swap on the template's next_due_date and posted
in its own commit, so running the job twice for the same instant, or from
two workers at once, never posts an occurrence twice.
"""
import os
import calendar
from sqlalchemy.orm import Session
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError
from datetime import datetime, timedelta
from typing import List, Optional

from fintrack.db.core import (
    TransactionDB, UserDB, ConflictError, TransientError, BudgetExceededError,
    TransactionType, TransactionStatus, RecurringInterval
)
from fintrack.crud.crud_account import get_active_account_for_update, apply_balance_change
from fintrack.crud.crud_budget import is_within_budget
from fintrack.services.notifications import Notifier
from fintrack.logging_config import get_logger

logger = get_logger(__name__)


def _add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def advance_due_date(due: datetime, interval: RecurringInterval) -> datetime:
    """
    Next due date one interval after due. Calendar months and years keep
    the day of month, clamped to the last day of shorter months.
    """
    if interval == RecurringInterval.DAILY:
        return due + timedelta(days=1)
    if interval == RecurringInterval.WEEKLY:
        return due + timedelta(weeks=1)
    if interval == RecurringInterval.MONTHLY:
        return _add_months(due, 1)
    if interval == RecurringInterval.YEARLY:
        return _add_months(due, 12)
    raise ValueError(f"Unsupported recurring interval: {interval}")


def claim_occurrence(db: Session, template: TransactionDB, due: datetime) -> datetime:
    """
    Advance the template past due only if nobody else has. Raises
    ConflictError when the template no longer points at due.
    """
    next_due = advance_due_date(due, template.recurring_interval)

    result = db.execute(
        update(TransactionDB)
        .where(
            TransactionDB.id == template.id,
            TransactionDB.next_due_date == due,
            TransactionDB.is_recurring.is_(True),
            TransactionDB.is_deleted.is_(False)
        )
        .values(next_due_date=next_due, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise ConflictError(f"Occurrence {due} of transaction {template.id} was already claimed")
    return next_due


def _materialize_occurrence(db: Session, template: TransactionDB, due: datetime) -> TransactionDB:
    """
    Claim and post one occurrence. A withdrawal refused by a STRICT budget
    is stored as FAILED without touching the balance, the claim is kept so
    the occurrence is skipped, and BudgetExceededError is raised after
    the commit.
    """
    claim_occurrence(db, template, due)
    account = get_active_account_for_update(db, template.account_id, template.user_id)

    admitted = True
    if template.transaction_type == TransactionType.WITHDRAWAL and template.category_id is not None:
        admitted = is_within_budget(
            db, template.user_id, template.category_id, template.amount, due, lock=True
        )

    if not admitted:
        status = TransactionStatus.FAILED
    elif template.transaction_type == TransactionType.WITHDRAWAL:
        status = TransactionStatus.COMPLETED
        apply_balance_change(account, -template.amount)
    else:
        status = TransactionStatus.COMPLETED
        apply_balance_change(account, template.amount)

    instance = TransactionDB(
        user_id=template.user_id,
        account_id=template.account_id,
        category_id=template.category_id,
        amount=template.amount,
        transaction_type=template.transaction_type,
        status=status,
        transaction_date=due,
        payment_method=template.payment_method,
        description=template.description,
        is_recurring=False,
        parent_transaction_id=template.id,
        occurrence_due_at=due,
        is_deleted=False,
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow()
    )
    db.add(instance)

    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError(f"Occurrence {due} of transaction {template.id} already exists") from e
    except OperationalError as e:
        db.rollback()
        raise TransientError(f"Storage unavailable: {e.orig}") from e

    db.refresh(instance)
    if not admitted:
        raise BudgetExceededError(
            f"Occurrence {due} of transaction {template.id} exceeds the budget for category {template.category_id}"
        )
    return instance


def process_recurring_transactions(db: Session, now: Optional[datetime] = None) -> List[TransactionDB]:
    """
    Post one occurrence for every live recurring template due at or before now.

    A template further behind than one interval catches up one occurrence
    per run. Occurrences refused by a STRICT budget are recorded as FAILED
    and skipped. Other failures are rolled back, logged and left due for
    the next run.
    """
    now = now or datetime.utcnow()

    due_templates = db.query(TransactionDB).filter(
        TransactionDB.is_recurring.is_(True),
        TransactionDB.is_deleted.is_(False),
        TransactionDB.next_due_date.isnot(None),
        TransactionDB.next_due_date <= now
    ).order_by(TransactionDB.next_due_date, TransactionDB.id).all()

    # Plain values so a rollback mid-batch does not matter for the loop
    work = [(template.id, template.next_due_date) for template in due_templates]
    logger.info(f"Found {len(work)} recurring transactions due at {now}")

    created = []
    for template_id, due in work:
        template = db.get(TransactionDB, template_id)
        try:
            instance = _materialize_occurrence(db, template, due)
            created.append(instance)
            logger.info(f"Posted occurrence {due} of recurring transaction {template_id} as {instance.id}")
        except ConflictError as e:
            db.rollback()
            logger.info(f"Skipping recurring transaction {template_id}: {e}")
        except BudgetExceededError as e:
            logger.warning(f"Skipped recurring transaction {template_id}: {e}")
        except Exception as e:
            db.rollback()
            logger.warning(f"Failed to post occurrence {due} of recurring transaction {template_id}: {e}")

    return created


def send_payment_reminders(db: Session, notifier: Notifier, now: Optional[datetime] = None,
                           days_ahead: Optional[int] = None) -> int:
    """
    Email the owner of every recurring withdrawal falling due within the
    next days_ahead days. Delivery failures are logged and never raised.
    Returns the number of reminders handed to the notifier.
    """
    now = now or datetime.utcnow()
    if days_ahead is None:
        days_ahead = int(os.getenv("PAYMENT_REMINDER_DAYS", "3"))
    window_end = now + timedelta(days=days_ahead)

    upcoming = db.query(TransactionDB, UserDB).join(
        UserDB, UserDB.db_id == TransactionDB.user_id
    ).filter(
        TransactionDB.is_recurring.is_(True),
        TransactionDB.is_deleted.is_(False),
        TransactionDB.transaction_type == TransactionType.WITHDRAWAL,
        TransactionDB.next_due_date >= now,
        TransactionDB.next_due_date <= window_end
    ).order_by(TransactionDB.next_due_date, TransactionDB.id).all()

    sent = 0
    for template, user in upcoming:
        label = template.description or "recurring payment"
        subject = "Upcoming payment reminder"
        body = (
            f"Hi {user.username}, your {label} of {template.amount} "
            f"is due on {template.next_due_date:%Y-%m-%d}."
        )
        try:
            notifier.send_email(user.email, subject, body)
            sent += 1
        except Exception as e:
            logger.error(f"Failed to send payment reminder to {user.email}: {e}")

    logger.info(f"Sent {sent} of {len(upcoming)} payment reminders")
    return sent
