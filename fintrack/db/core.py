import os
from typing import Optional
from sqlalchemy import create_engine, ForeignKey, Index, UniqueConstraint, Boolean, String, DECIMAL, DateTime, Date
from sqlalchemy.types import Enum
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Mapped, relationship, mapped_column
from datetime import datetime, date
from uuid import UUID
from decimal import Decimal
import enum


DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///fintrack.db")


# ===== ERRORS =====

class NotFoundError(Exception):
    pass


class InvalidArgumentError(ValueError):
    pass


class BudgetExceededError(Exception):
    pass


class ConflictError(Exception):
    pass


class TransientError(Exception):
    """Storage failure or timeout; safe for the caller to retry."""
    pass


class Base(DeclarativeBase):
    pass


# ===== ENUMS =====

class AccountType(str, enum.Enum):
    CHECKING = "CHECKING"
    SAVINGS = "SAVINGS"
    CREDIT = "CREDIT"
    LOAN = "LOAN"
    INVESTMENT = "INVESTMENT"
    OTHER = "OTHER"


class TransactionType(str, enum.Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    TRANSFER = "TRANSFER"


class TransactionStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class RecurringInterval(str, enum.Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class BudgetType(str, enum.Enum):
    STRICT = "STRICT"
    FLEXIBLE = "FLEXIBLE"


# ===== TABLES =====

class UserDB(Base):
    __tablename__ = "users"

    __table_args__ = (
        UniqueConstraint("email", name="uq_user_email"),
        UniqueConstraint("username", name="uq_user_username"),
    )

    # Core User Identification
    db_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    id: Mapped[UUID] = mapped_column(unique=True, nullable=False)

    username: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)

    # Audit Trail
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships (resolved through explicit queries in the crud layer)
    accounts = relationship("AccountDB", back_populates="user", lazy="raise")
    transactions = relationship("TransactionDB", back_populates="user", lazy="raise")
    budgets = relationship("BudgetDB", back_populates="user", lazy="raise")
    investments = relationship("InvestmentDB", back_populates="user", lazy="raise")


class CategoryDB(Base):
    __tablename__ = "categories"

    __table_args__ = (
        UniqueConstraint("name", name="uq_category_name"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    budgets = relationship("BudgetDB", back_populates="category", lazy="raise")


class AccountDB(Base):
    __tablename__ = "accounts"

    __table_args__ = (
        # Prevent duplicate account names per user
        UniqueConstraint("user_id", "account_name", name="uq_user_account_name"),
        Index("idx_accounts_user_deleted", "user_id", "is_deleted"),
    )

    # Core Account Identification
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.db_id"), nullable=False)

    # Account Details
    account_name: Mapped[str] = mapped_column(String(255), nullable=False)  # "Main Checking", "Rewards Card"
    account_type: Mapped[AccountType] = mapped_column(Enum(AccountType))
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    interest_rate: Mapped[Optional[Decimal]] = mapped_column(DECIMAL(5, 4))  # e.g., 0.0525 for 5.25%
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)

    # Balance Tracking
    balance: Mapped[Decimal] = mapped_column(DECIMAL(15, 2), default=Decimal("0.00"), nullable=False)

    # Soft delete
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Audit Trail
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("UserDB", back_populates="accounts")


class TransactionDB(Base):
    __tablename__ = "transactions"

    __table_args__ = (
        Index("idx_transactions_user_date", "user_id", "transaction_date"),
        Index("idx_transactions_category_date", "user_id", "category_id", "transaction_date"),
        Index("idx_transactions_next_due", "is_recurring", "next_due_date"),

        # One generated instance per (template, due timestamp)
        UniqueConstraint("parent_transaction_id", "occurrence_due_at", name="uq_recurring_occurrence"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.db_id"), nullable=False)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    to_account_id: Mapped[Optional[int]] = mapped_column(ForeignKey("accounts.id"))  # TRANSFER only
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))

    # Basic Transaction Data
    amount: Mapped[Decimal] = mapped_column(DECIMAL(15, 2), nullable=False)
    transaction_type: Mapped[TransactionType] = mapped_column(Enum(TransactionType), nullable=False)
    status: Mapped[TransactionStatus] = mapped_column(Enum(TransactionStatus), default=TransactionStatus.PENDING)
    transaction_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    payment_method: Mapped[Optional[str]] = mapped_column(String(50))
    description: Mapped[Optional[str]] = mapped_column(String(500))

    # Recurrence
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recurring_interval: Mapped[Optional[RecurringInterval]] = mapped_column(Enum(RecurringInterval))
    next_due_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    parent_transaction_id: Mapped[Optional[int]] = mapped_column(ForeignKey("transactions.id"))
    occurrence_due_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Soft delete
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Audit Trail
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("UserDB", back_populates="transactions")
    account = relationship("AccountDB", foreign_keys=[account_id])
    to_account = relationship("AccountDB", foreign_keys=[to_account_id])
    category = relationship("CategoryDB")
    parent = relationship("TransactionDB", remote_side=[id])


class BudgetDB(Base):
    __tablename__ = "budgets"

    __table_args__ = (
        Index("idx_budgets_user_category_dates", "user_id", "category_id", "start_date", "end_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.db_id"), nullable=False)
    category_id: Mapped[int] = mapped_column(ForeignKey("categories.id"), nullable=False)

    # Budget Data
    amount_limit: Mapped[Decimal] = mapped_column(DECIMAL(15, 2), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    budget_type: Mapped[BudgetType] = mapped_column(Enum(BudgetType), nullable=False)
    rollover_amount: Mapped[Optional[Decimal]] = mapped_column(DECIMAL(15, 2))
    description: Mapped[Optional[str]] = mapped_column(String(500))

    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    user = relationship("UserDB", back_populates="budgets")
    category = relationship("CategoryDB", back_populates="budgets")


class InvestmentDB(Base):
    __tablename__ = "investments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.db_id"), nullable=False)

    investment_type: Mapped[str] = mapped_column(String(50), nullable=False)  # "STOCK", "BOND", "CRYPTO", ...
    asset_name: Mapped[str] = mapped_column(String(255), nullable=False)
    amount_invested: Mapped[Decimal] = mapped_column(DECIMAL(15, 2), nullable=False)
    current_value: Mapped[Decimal] = mapped_column(DECIMAL(15, 2), nullable=False)
    performance: Mapped[Decimal] = mapped_column(DECIMAL(12, 2), default=Decimal("0.00"))  # percent
    purchase_date: Mapped[Optional[date]] = mapped_column(Date)
    last_updated: Mapped[Optional[datetime]] = mapped_column(DateTime)

    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    user = relationship("UserDB", back_populates="investments")
    history = relationship("InvestmentHistoryDB", back_populates="investment", cascade="all, delete-orphan", lazy="raise")


class InvestmentHistoryDB(Base):
    """
    Append-only valuation snapshots for an investment.
    """
    __tablename__ = "investment_history"

    __table_args__ = (
        Index("idx_investment_history_investment_recorded", "investment_id", "recorded_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    investment_id: Mapped[int] = mapped_column(ForeignKey("investments.id"), nullable=False)

    current_value: Mapped[Decimal] = mapped_column(DECIMAL(15, 2), nullable=False)
    performance: Mapped[Decimal] = mapped_column(DECIMAL(12, 2), nullable=False)
    returns_generated: Mapped[Decimal] = mapped_column(DECIMAL(15, 2), nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    investment = relationship("InvestmentDB", back_populates="history")


engine = create_engine(DATABASE_URL, echo=os.getenv("SQL_ECHO", "false").lower() == "true")
session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# Dependency to get the database session
def get_db():
    database = session_local()
    try:
        yield database
    finally:
        database.close()


def init_db():
    """Create any missing tables. Schema migrations are managed outside this package."""
    Base.metadata.create_all(bind=engine)
