from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import Optional, List
from datetime import datetime

from fintrack.logging_config import get_logger

logger = get_logger(__name__)

from fintrack.db.core import InvestmentDB, NotFoundError
from fintrack.models.investment import InvestmentCreate, InvestmentUpdate
from fintrack.crud.crud_user import get_user_or_raise
from fintrack.money import to_money, percentage_change, ZERO


# ===== DATABASE OPERATIONS - INVESTMENTS =====

def create_db_investment(db: Session, user_id: int, investment_data: InvestmentCreate) -> InvestmentDB:
    get_user_or_raise(db, user_id)

    db_investment = InvestmentDB(
        user_id=user_id,
        investment_type=investment_data.investment_type,
        asset_name=investment_data.asset_name,
        amount_invested=investment_data.amount_invested,
        current_value=investment_data.amount_invested,
        performance=ZERO,
        purchase_date=investment_data.purchase_date,
        last_updated=datetime.utcnow(),
        is_deleted=False,
        created_at=datetime.utcnow()
    )

    try:
        db.add(db_investment)
        db.commit()
        db.refresh(db_investment)
        return db_investment
    except IntegrityError:
        db.rollback()
        raise ValueError("Investment creation failed due to database constraint.")

def read_db_investment(db: Session, investment_id: int, user_id: Optional[int] = None,
                       include_deleted: bool = False) -> Optional[InvestmentDB]:
    query = db.query(InvestmentDB).filter(InvestmentDB.id == investment_id)
    if user_id:
        query = query.filter(InvestmentDB.user_id == user_id)
    if not include_deleted:
        query = query.filter(InvestmentDB.is_deleted.is_(False))
    return query.first()

def read_db_investments(db: Session, user_id: int, include_deleted: bool = False) -> List[InvestmentDB]:
    query = db.query(InvestmentDB).filter(InvestmentDB.user_id == user_id)
    if not include_deleted:
        query = query.filter(InvestmentDB.is_deleted.is_(False))
    return query.order_by(InvestmentDB.id).all()

def update_db_investment(db: Session, investment_id: int, user_id: int, investment_updates: InvestmentUpdate) -> InvestmentDB:
    """
    Update an investment's details. Adding to the principal grows the
    current value by the same ratio so performance is preserved.
    """
    db_investment = read_db_investment(db, investment_id, user_id)
    if not db_investment:
        raise NotFoundError(f"Investment with id {investment_id} not found.")

    old_invested = db_investment.amount_invested
    new_invested = investment_updates.amount_invested

    if new_invested > old_invested:
        if old_invested > 0:
            db_investment.current_value = to_money(db_investment.current_value * new_invested / old_invested)
        else:
            db_investment.current_value = new_invested

    db_investment.investment_type = investment_updates.investment_type
    db_investment.asset_name = investment_updates.asset_name
    db_investment.amount_invested = new_invested
    db_investment.performance = percentage_change(db_investment.current_value, new_invested)
    db_investment.last_updated = datetime.utcnow()

    try:
        db.commit()
        db.refresh(db_investment)
        return db_investment
    except IntegrityError:
        db.rollback()
        raise ValueError("Investment update failed due to database constraint.")

def delete_db_investment(db: Session, investment_id: int, user_id: int) -> InvestmentDB:
    db_investment = read_db_investment(db, investment_id, user_id)
    if not db_investment:
        raise NotFoundError(f"Investment with id {investment_id} not found.")

    db_investment.is_deleted = True
    db.commit()
    db.refresh(db_investment)
    logger.info(f"Soft deleted investment {investment_id} for user {user_id}")
    return db_investment

def restore_db_investment(db: Session, investment_id: int, user_id: int) -> InvestmentDB:
    db_investment = read_db_investment(db, investment_id, user_id, include_deleted=True)
    if not db_investment or not db_investment.is_deleted:
        raise NotFoundError(f"No deleted investment with id {investment_id} to restore.")

    db_investment.is_deleted = False
    db_investment.last_updated = datetime.utcnow()
    db.commit()
    db.refresh(db_investment)
    return db_investment
