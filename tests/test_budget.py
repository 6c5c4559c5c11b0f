"""Tests for budget storage and evaluation."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

from fintrack.crud import crud_budget, crud_category, crud_transaction
from fintrack.db.core import BudgetType, InvalidArgumentError, NotFoundError
from fintrack.models.budget import BudgetCreate, BudgetTypeEnum, BudgetUpdate
from fintrack.models.transaction import TransactionMetadata
from fintrack.models.user import CategoryCreate


def _spend(session, user, account, category, amount: str, when: datetime):
    return crud_transaction.withdraw_funds(
        session,
        user.db_id,
        account.id,
        Decimal(amount),
        TransactionMetadata(category_id=category.id, transaction_date=when),
    )


def test_create_budget_rejects_inverted_dates(make_budget) -> None:
    with pytest.raises(InvalidArgumentError):
        make_budget("100.00", start=date(2024, 3, 31), end=date(2024, 3, 1))


def test_create_budget_requires_known_category(session, user) -> None:
    data = BudgetCreate(
        category_id=99,
        amount_limit=Decimal("10"),
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 31),
    )
    with pytest.raises(NotFoundError):
        crud_budget.create_db_budget(session, user.db_id, data)


def test_find_active_budget_picks_lowest_id_and_skips_deleted(session, user, category, make_budget) -> None:
    first = make_budget("100.00", start=date(2024, 3, 1), end=date(2024, 3, 31))
    second = make_budget("50.00", start=date(2024, 3, 10), end=date(2024, 4, 10))

    assert crud_budget.find_active_budget(session, user.db_id, category.id, date(2024, 3, 15)).id == first.id
    assert crud_budget.find_active_budget(session, user.db_id, category.id, date(2024, 4, 5)).id == second.id
    assert crud_budget.find_active_budget(session, user.db_id, category.id, date(2024, 5, 1)) is None

    crud_budget.delete_db_budget(session, first.id, user.db_id)
    assert crud_budget.find_active_budget(session, user.db_id, category.id, date(2024, 3, 15)).id == second.id


def test_find_active_budget_includes_both_boundaries(session, user, category, make_budget) -> None:
    budget = make_budget("100.00", start=date(2024, 3, 1), end=date(2024, 3, 31))

    assert crud_budget.find_active_budget(session, user.db_id, category.id, date(2024, 3, 1)).id == budget.id
    assert crud_budget.find_active_budget(session, user.db_id, category.id, date(2024, 3, 31)).id == budget.id


def test_category_spending_counts_only_completed_withdrawals_in_window(
    session, user, category, make_account
) -> None:
    account = make_account(balance="1000.00")
    other_category = crud_category.create_db_category(session, CategoryCreate(name="Travel"))

    _spend(session, user, account, category, "10.00", datetime(2024, 3, 1, 0, 0))
    _spend(session, user, account, category, "20.00", datetime(2024, 3, 31, 23, 59, 59))
    _spend(session, user, account, category, "40.00", datetime(2024, 4, 1, 0, 0))
    _spend(session, user, account, other_category, "80.00", datetime(2024, 3, 15))
    deleted = _spend(session, user, account, category, "160.00", datetime(2024, 3, 15))
    crud_transaction.delete_db_transaction(session, deleted.id, user.db_id)
    crud_transaction.deposit_funds(
        session, user.db_id, account.id, Decimal("320.00"),
        TransactionMetadata(category_id=category.id, transaction_date=datetime(2024, 3, 15)),
    )

    spent = crud_budget.calculate_category_spending(
        session, user.db_id, category.id, date(2024, 3, 1), date(2024, 3, 31)
    )

    assert spent == Decimal("30.00")


def test_is_within_budget_without_budget_is_unrestricted(session, user, category) -> None:
    assert crud_budget.is_within_budget(session, user.db_id, category.id, Decimal("1000000"), datetime(2024, 3, 15))


def test_is_within_budget_strict_and_flexible(session, user, category, make_account, make_budget) -> None:
    account = make_account(balance="1000.00")
    make_budget("200.00", BudgetTypeEnum.STRICT)
    _spend(session, user, account, category, "180.00", datetime(2024, 3, 5))
    when = datetime(2024, 3, 15)

    assert crud_budget.is_within_budget(session, user.db_id, category.id, Decimal("20.00"), when)
    assert not crud_budget.is_within_budget(session, user.db_id, category.id, Decimal("20.01"), when)

    budget = crud_budget.find_active_budget(session, user.db_id, category.id, when.date())
    crud_budget.update_db_budget(
        session, budget.id, user.db_id, BudgetUpdate(budget_type=BudgetTypeEnum.FLEXIBLE)
    )
    assert crud_budget.is_within_budget(session, user.db_id, category.id, Decimal("500.00"), when)


def test_check_budget_usage_at_threshold(session, user, category, make_account, make_budget) -> None:
    account = make_account(balance="1000.00")
    make_budget("100.00", BudgetTypeEnum.FLEXIBLE)
    _spend(session, user, account, category, "70.00", datetime(2024, 3, 5))

    assert crud_budget.check_budget_usage(session, user.db_id, category.id, Decimal("10.00"))
    assert not crud_budget.check_budget_usage(session, user.db_id, category.id, Decimal("9.99"))


def test_check_budget_usage_threshold_is_configurable(
    session, user, category, make_account, make_budget, monkeypatch
) -> None:
    account = make_account(balance="1000.00")
    make_budget("100.00", BudgetTypeEnum.FLEXIBLE)
    _spend(session, user, account, category, "50.00", datetime(2024, 3, 5))
    monkeypatch.setenv("BUDGET_ALERT_THRESHOLD", "0.50")

    assert crud_budget.check_budget_usage(session, user.db_id, category.id, Decimal("0.01"))


@pytest.mark.parametrize(
    ("spent", "limit", "expected"),
    [
        (Decimal("50"), Decimal("200"), 25),
        (Decimal("1"), Decimal("8"), 13),
        (Decimal("1"), Decimal("3"), 33),
        (Decimal("250"), Decimal("200"), 125),
        (Decimal("10"), Decimal("0"), 0),
        (Decimal("10"), None, 0),
    ],
)
def test_percentage_used_rounds_half_up(spent, limit, expected) -> None:
    assert crud_budget.percentage_used(spent, limit) == expected


def test_budget_report_totals(session, user, category, make_account, make_budget) -> None:
    account = make_account(balance="1000.00")
    make_budget("200.00", start=date(2024, 3, 1), end=date(2024, 3, 31), rollover_amount=Decimal("15.00"))
    make_budget("100.00", start=date(2024, 2, 1), end=date(2024, 2, 29))
    deleted = make_budget("999.00", start=date(2024, 1, 1), end=date(2024, 12, 31))
    crud_budget.delete_db_budget(session, deleted.id, user.db_id)
    _spend(session, user, account, category, "50.00", datetime(2024, 3, 5))

    report = crud_budget.get_budget_report(session, user.db_id)

    assert report.total_budget_limit == Decimal("300.00")
    assert report.total_rollover_amount == Decimal("15.00")
    assert report.start_date == date(2024, 2, 1)
    assert report.end_date == date(2024, 3, 31)
    march = next(detail for detail in report.budgets if detail.start_date == date(2024, 3, 1))
    assert march.spent == Decimal("50.00")
    assert march.percentage_used == 25
    assert march.category == "Groceries"


def test_budget_soft_delete_and_restore(session, user, make_budget) -> None:
    budget = make_budget("100.00")

    crud_budget.delete_db_budget(session, budget.id, user.db_id)
    assert crud_budget.read_db_budget(session, budget.id, user.db_id) is None
    assert crud_budget.read_db_budgets(session, user.db_id) == []

    restored = crud_budget.restore_db_budget(session, budget.id, user.db_id)
    assert restored.is_deleted is False
    assert restored.budget_type == BudgetType.STRICT
    with pytest.raises(ValueError):
        crud_budget.restore_db_budget(session, budget.id, user.db_id)


def test_update_budget_rejects_inverted_dates(session, user, make_budget) -> None:
    budget = make_budget("100.00", start=date(2024, 3, 1), end=date(2024, 3, 31))

    with pytest.raises(InvalidArgumentError):
        crud_budget.update_db_budget(session, budget.id, user.db_id, BudgetUpdate(end_date=date(2024, 2, 1)))
