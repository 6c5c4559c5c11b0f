"""
Investment Valuation Service

Re-prices investments with a bounded random walk and keeps an append-only
history of valuation snapshots. The simulated value never drops below the
amount invested; this is a simplification, not a market rule.
"""
import os
import random
from sqlalchemy.orm import Session
from sqlalchemy.exc import OperationalError
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Protocol

from fintrack.db.core import InvestmentDB, InvestmentHistoryDB, NotFoundError, TransientError
from fintrack.money import to_money, percentage_change
from fintrack.logging_config import get_logger

logger = get_logger(__name__)


# ===== RANDOM SOURCES =====

class MarketMovement(Protocol):
    def next_change(self) -> Decimal:
        """Percentage change to apply to the next investment."""
        ...


class UniformMarketMovement:
    """Draws percentages uniformly from [low, high)."""

    def __init__(self, low: Decimal = Decimal("-5"), high: Decimal = Decimal("5"),
                 rng: Optional[random.Random] = None):
        if low >= high:
            raise ValueError("low must be less than high")
        self.low = Decimal(low)
        self.high = Decimal(high)
        self.rng = rng or random.Random()

    @classmethod
    def from_env(cls, rng: Optional[random.Random] = None) -> "UniformMarketMovement":
        return cls(
            Decimal(os.getenv("GROWTH_MIN_PERCENT", "-5")),
            Decimal(os.getenv("GROWTH_MAX_PERCENT", "5")),
            rng=rng
        )

    def next_change(self) -> Decimal:
        # random() is in [0, 1), so the result never reaches high
        return self.low + (self.high - self.low) * Decimal(str(self.rng.random()))


class SequenceMarketMovement:
    """Replays a fixed list of percentages; used for deterministic runs."""

    def __init__(self, changes: Iterable):
        self._changes = iter([Decimal(str(change)) for change in changes])

    def next_change(self) -> Decimal:
        try:
            return next(self._changes)
        except StopIteration:
            raise ValueError("No more market movements available")


# ===== VALUATION =====

def _write_snapshot(db: Session, investment: InvestmentDB, new_value: Decimal,
                    now: datetime) -> InvestmentHistoryDB:
    """Update the investment and append a history row in one commit"""

    new_value = to_money(new_value)
    performance = percentage_change(new_value, investment.amount_invested)
    returns_generated = to_money(new_value - investment.amount_invested)

    investment.current_value = new_value
    investment.performance = performance
    investment.last_updated = now

    history = InvestmentHistoryDB(
        investment_id=investment.id,
        current_value=new_value,
        performance=performance,
        returns_generated=returns_generated,
        recorded_at=now
    )
    db.add(history)

    try:
        db.commit()
    except OperationalError as e:
        db.rollback()
        raise TransientError(f"Storage unavailable: {e.orig}") from e

    db.refresh(history)
    return history


def simulate_growth(db: Session, movement: Optional[MarketMovement] = None,
                    now: Optional[datetime] = None) -> List[InvestmentHistoryDB]:
    """
    Apply one random-walk step to every live investment.

    Each investment is committed on its own; a failure is logged and the
    run moves on. Returns the history rows written.
    """
    movement = movement or UniformMarketMovement.from_env()
    now = now or datetime.utcnow()

    investment_ids = [
        row.id for row in db.query(InvestmentDB.id).filter(
            InvestmentDB.is_deleted.is_(False)
        ).order_by(InvestmentDB.id).all()
    ]
    logger.info(f"Simulating growth for {len(investment_ids)} investments")

    snapshots = []
    for investment_id in investment_ids:
        investment = db.get(InvestmentDB, investment_id)
        try:
            change = movement.next_change()
            grown = investment.current_value * (1 + change / Decimal(100))
            new_value = max(to_money(grown), investment.amount_invested)
            snapshots.append(_write_snapshot(db, investment, new_value, now))
            logger.debug(f"Investment {investment_id}: {change:.4f}% -> {new_value}")
        except Exception as e:
            db.rollback()
            logger.warning(f"Failed to simulate growth for investment {investment_id}: {e}")

    logger.info(f"Recorded {len(snapshots)} investment snapshots")
    return snapshots


def record_history(db: Session, investment_id: int, new_current_value: Decimal,
                   now: Optional[datetime] = None, user_id: Optional[int] = None) -> InvestmentHistoryDB:
    """Record an externally supplied valuation for one investment"""

    query = db.query(InvestmentDB).filter(
        InvestmentDB.id == investment_id,
        InvestmentDB.is_deleted.is_(False)
    )
    if user_id:
        query = query.filter(InvestmentDB.user_id == user_id)
    investment = query.first()
    if not investment:
        raise NotFoundError(f"Investment with id {investment_id} not found.")

    history = _write_snapshot(db, investment, new_current_value, now or datetime.utcnow())
    logger.info(f"Recorded valuation {history.current_value} for investment {investment_id}")
    return history


def get_investment_history(db: Session, investment_id: int, start: Optional[datetime] = None,
                           end: Optional[datetime] = None, user_id: Optional[int] = None) -> List[InvestmentHistoryDB]:
    """
    Snapshots for an investment in recording order, optionally limited to
    [start, end]. Raises NotFoundError only when the investment has never
    been valued; an empty range gives an empty list.
    """
    base = db.query(InvestmentHistoryDB).filter(InvestmentHistoryDB.investment_id == investment_id)
    if user_id:
        base = base.join(InvestmentDB, InvestmentDB.id == InvestmentHistoryDB.investment_id).filter(
            InvestmentDB.user_id == user_id
        )

    if base.first() is None:
        raise NotFoundError(f"No history found for investment {investment_id}.")

    query = base
    if start:
        query = query.filter(InvestmentHistoryDB.recorded_at >= start)
    if end:
        query = query.filter(InvestmentHistoryDB.recorded_at <= end)

    return query.order_by(InvestmentHistoryDB.recorded_at, InvestmentHistoryDB.id).all()
