"""Shared fixtures: one in-memory database per test."""
from __future__ import annotations

import logging
import os
from datetime import date
from decimal import Decimal

# The application engine is built at import time; keep it off disk.
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from fintrack.crud import crud_account, crud_budget, crud_category, crud_user
from fintrack.db.core import Base
from fintrack.models.account import AccountCreate, AccountTypeEnum
from fintrack.models.budget import BudgetCreate, BudgetTypeEnum
from fintrack.models.user import CategoryCreate, UserCreate


@pytest.fixture(autouse=True)
def app_logs_reach_caplog():
    """setup_logging() stops propagation to root, where caplog listens."""

    app_logger = logging.getLogger("fintrack")
    previous = app_logger.propagate
    app_logger.propagate = True
    yield
    app_logger.propagate = previous


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session(engine) -> Session:
    """Provide an in-memory database session for each test."""

    SessionLocal = sessionmaker(bind=engine, autoflush=False, future=True)
    with SessionLocal() as session:
        yield session


@pytest.fixture()
def user(session):
    return crud_user.create_db_user(session, UserCreate(username="alice", email="alice@example.com"))


@pytest.fixture()
def other_user(session):
    return crud_user.create_db_user(session, UserCreate(username="bob", email="bob@example.com"))


@pytest.fixture()
def make_account(session, user):
    def _make(name: str = "Checking", balance: str = "0.00", owner=None, **kwargs):
        owner_id = owner.db_id if owner is not None else user.db_id
        kwargs.setdefault("account_type", AccountTypeEnum.CHECKING)
        data = AccountCreate(account_name=name, balance=Decimal(balance), **kwargs)
        return crud_account.create_db_account(session, owner_id, data)

    return _make


@pytest.fixture()
def category(session):
    return crud_category.create_db_category(session, CategoryCreate(name="Groceries"))


@pytest.fixture()
def make_budget(session, user, category):
    def _make(
        limit: str,
        budget_type: BudgetTypeEnum = BudgetTypeEnum.STRICT,
        start: date = date(2024, 3, 1),
        end: date = date(2024, 3, 31),
        category_id: int | None = None,
        **kwargs,
    ):
        data = BudgetCreate(
            category_id=category_id or category.id,
            amount_limit=Decimal(limit),
            start_date=start,
            end_date=end,
            budget_type=budget_type,
            **kwargs,
        )
        return crud_budget.create_db_budget(session, user.db_id, data)

    return _make

