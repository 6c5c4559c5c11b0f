import os
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import func
from typing import Optional, List
from datetime import datetime, date, time
from decimal import Decimal, ROUND_HALF_UP

from fintrack.db.core import (
    BudgetDB, CategoryDB, TransactionDB, NotFoundError, InvalidArgumentError,
    BudgetType, TransactionType, TransactionStatus
)
from fintrack.models.budget import BudgetCreate, BudgetUpdate, BudgetDetails, BudgetReport, BudgetTypeEnum
from fintrack.crud.crud_user import get_user_or_raise
from fintrack.money import to_money, ZERO
from fintrack.logging_config import get_logger

logger = get_logger(__name__)


def _alert_threshold() -> Decimal:
    return Decimal(os.getenv("BUDGET_ALERT_THRESHOLD", "0.80"))


# ===== DATABASE OPERATIONS =====

def create_db_budget(db: Session, user_id: int, budget_data: BudgetCreate) -> BudgetDB:
    """Create a spending limit for one category over a date range"""

    get_user_or_raise(db, user_id)

    category = db.query(CategoryDB).filter(CategoryDB.id == budget_data.category_id).first()
    if not category:
        raise NotFoundError(f"Category with id {budget_data.category_id} not found")

    if budget_data.start_date > budget_data.end_date:
        raise InvalidArgumentError("Budget start date must not be after its end date")

    db_budget = BudgetDB(
        user_id=user_id,
        category_id=budget_data.category_id,
        amount_limit=budget_data.amount_limit,
        start_date=budget_data.start_date,
        end_date=budget_data.end_date,
        budget_type=BudgetType(budget_data.budget_type.value),
        rollover_amount=budget_data.rollover_amount,
        description=budget_data.description,
        is_deleted=False,
        created_at=datetime.utcnow()
    )

    try:
        db.add(db_budget)
        db.commit()
        db.refresh(db_budget)
    except IntegrityError:
        db.rollback()
        raise ValueError("Budget creation failed due to database constraint")

    logger.info(
        f"Created {db_budget.budget_type.value} budget {db_budget.id} for user {user_id}, "
        f"category {db_budget.category_id}: {db_budget.amount_limit}"
    )
    return db_budget


def read_db_budget(db: Session, budget_id: int, user_id: Optional[int] = None,
                   include_deleted: bool = False) -> Optional[BudgetDB]:
    query = db.query(BudgetDB).filter(BudgetDB.id == budget_id)

    if user_id:
        query = query.filter(BudgetDB.user_id == user_id)
    if not include_deleted:
        query = query.filter(BudgetDB.is_deleted.is_(False))

    return query.first()


def read_db_budgets(db: Session, user_id: int, category_id: Optional[int] = None,
                    active_on: Optional[date] = None, include_deleted: bool = False) -> List[BudgetDB]:
    """Read budgets for a user, optionally narrowed to a category or a date"""

    query = db.query(BudgetDB).filter(BudgetDB.user_id == user_id)

    if category_id is not None:
        query = query.filter(BudgetDB.category_id == category_id)
    if active_on is not None:
        query = query.filter(BudgetDB.start_date <= active_on, BudgetDB.end_date >= active_on)
    if not include_deleted:
        query = query.filter(BudgetDB.is_deleted.is_(False))

    return query.order_by(BudgetDB.id).all()


def update_db_budget(db: Session, budget_id: int, user_id: int, budget_updates: BudgetUpdate) -> BudgetDB:
    db_budget = read_db_budget(db, budget_id, user_id)
    if not db_budget:
        raise NotFoundError(f"Budget with id {budget_id} not found")

    update_data = budget_updates.model_dump(exclude_unset=True)

    start_date = update_data.get('start_date') or db_budget.start_date
    end_date = update_data.get('end_date') or db_budget.end_date
    if start_date > end_date:
        raise InvalidArgumentError("Budget start date must not be after its end date")

    for field, value in update_data.items():
        if value is None and field in ('amount_limit', 'start_date', 'end_date', 'budget_type'):
            continue  # required columns
        if field == 'budget_type':
            setattr(db_budget, field, BudgetType(value.value))
        else:
            setattr(db_budget, field, value)

    try:
        db.commit()
        db.refresh(db_budget)
        return db_budget
    except IntegrityError:
        db.rollback()
        raise ValueError("Budget update failed due to database constraint")


def delete_db_budget(db: Session, budget_id: int, user_id: int) -> BudgetDB:
    """Soft delete a budget; it stops taking part in admission and alerts"""

    db_budget = read_db_budget(db, budget_id, user_id)
    if not db_budget:
        raise NotFoundError(f"Budget with id {budget_id} not found")

    db_budget.is_deleted = True
    db.commit()
    db.refresh(db_budget)
    return db_budget


def restore_db_budget(db: Session, budget_id: int, user_id: int) -> BudgetDB:
    db_budget = read_db_budget(db, budget_id, user_id, include_deleted=True)
    if not db_budget:
        raise NotFoundError(f"Budget with id {budget_id} not found")
    if not db_budget.is_deleted:
        raise ValueError(f"Budget with id {budget_id} is already active")

    db_budget.is_deleted = False
    db.commit()
    db.refresh(db_budget)
    return db_budget


# ===== BUDGET EVALUATION =====

def find_active_budget(db: Session, user_id: int, category_id: int, on_date: date,
                       lock: bool = False) -> Optional[BudgetDB]:
    """
    First live budget for the user and category whose period contains
    on_date. Overlapping budgets are not merged; the lowest id wins.
    With lock, the budget row stays locked until the unit of work ends.
    """
    if isinstance(on_date, datetime):
        on_date = on_date.date()

    query = db.query(BudgetDB).filter(
        BudgetDB.user_id == user_id,
        BudgetDB.category_id == category_id,
        BudgetDB.is_deleted.is_(False),
        BudgetDB.start_date <= on_date,
        BudgetDB.end_date >= on_date
    ).order_by(BudgetDB.id)

    if lock:
        query = query.with_for_update()
    return query.first()


def calculate_category_spending(db: Session, user_id: int, category_id: int,
                                start_date: date, end_date: date) -> Decimal:
    """Total completed withdrawals in the category, both end dates inclusive"""

    period_start = datetime.combine(start_date, time.min)
    period_end = datetime.combine(end_date, time.max)

    result = db.query(func.coalesce(func.sum(TransactionDB.amount), 0)).filter(
        TransactionDB.user_id == user_id,
        TransactionDB.category_id == category_id,
        TransactionDB.transaction_type == TransactionType.WITHDRAWAL,
        TransactionDB.status == TransactionStatus.COMPLETED,
        TransactionDB.is_deleted.is_(False),
        TransactionDB.transaction_date >= period_start,
        TransactionDB.transaction_date <= period_end
    ).scalar()

    return to_money(result) if result else ZERO


def is_within_budget(db: Session, user_id: int, category_id: int, amount: Decimal,
                     when: Optional[datetime] = None, lock: bool = False) -> bool:
    """
    Admission check for a prospective withdrawal.

    No budget means no restriction. A STRICT budget admits the amount only
    if the period's spending plus the amount stays at or under the limit.
    A FLEXIBLE budget always admits. Postings pass lock so concurrent
    withdrawals against the same budget are checked one at a time.
    """
    when = when or datetime.utcnow()
    budget = find_active_budget(db, user_id, category_id, when.date(), lock=lock)
    if not budget:
        return True

    if budget.budget_type == BudgetType.FLEXIBLE:
        return True

    spent = calculate_category_spending(db, user_id, category_id, budget.start_date, budget.end_date)
    return spent + to_money(amount) <= budget.amount_limit


def check_budget_usage(db: Session, user_id: int, category_id: int, amount: Decimal) -> bool:
    """True when adding amount would reach the alert threshold of any live budget for the category"""

    threshold = _alert_threshold()
    budgets = db.query(BudgetDB).filter(
        BudgetDB.user_id == user_id,
        BudgetDB.category_id == category_id,
        BudgetDB.is_deleted.is_(False)
    ).order_by(BudgetDB.id).all()

    for budget in budgets:
        spent = calculate_category_spending(db, user_id, category_id, budget.start_date, budget.end_date)
        if spent + to_money(amount) >= threshold * budget.amount_limit:
            return True
    return False


def percentage_used(spent: Decimal, amount_limit: Optional[Decimal]) -> int:
    if not amount_limit:
        return 0
    return int((Decimal(spent) / Decimal(amount_limit) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def get_budget_details(db: Session, budget: BudgetDB) -> BudgetDetails:
    category = db.query(CategoryDB).filter(CategoryDB.id == budget.category_id).first()
    spent = calculate_category_spending(db, budget.user_id, budget.category_id, budget.start_date, budget.end_date)

    return BudgetDetails(
        budget_id=budget.id,
        category=category.name if category else "",
        description=budget.description,
        amount_limit=budget.amount_limit,
        start_date=budget.start_date,
        end_date=budget.end_date,
        spent=spent,
        percentage_used=percentage_used(spent, budget.amount_limit),
        budget_type=BudgetTypeEnum(budget.budget_type.value),
        rollover_amount=budget.rollover_amount,
        created_at=budget.created_at
    )


def get_budget_report(db: Session, user_id: int) -> BudgetReport:
    """Summary of all live budgets with spending and overall period bounds"""

    get_user_or_raise(db, user_id)
    budgets = read_db_budgets(db, user_id)

    details = [get_budget_details(db, budget) for budget in budgets]
    total_limit = sum((b.amount_limit for b in budgets), ZERO)
    total_rollover = sum((to_money(b.rollover_amount) for b in budgets), ZERO)

    return BudgetReport(
        user_id=user_id,
        budgets=details,
        total_budget_limit=to_money(total_limit),
        total_rollover_amount=to_money(total_rollover),
        start_date=min((b.start_date for b in budgets), default=None),
        end_date=max((b.end_date for b in budgets), default=None)
    )
