"""Tests for the recurring transaction scheduler."""
from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal

import pytest

from fintrack.crud import crud_account, crud_budget, crud_transaction
from fintrack.db.core import ConflictError, RecurringInterval, TransactionDB, TransactionStatus, TransactionType
from fintrack.models.budget import BudgetTypeEnum
from fintrack.models.transaction import RecurringTransactionCreate
from fintrack.services import recurring


class _RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []

    def send_email(self, to: str, subject: str, body: str) -> None:
        self.sent.append((to, subject, body))


class _BrokenNotifier:
    def send_email(self, to: str, subject: str, body: str) -> None:
        raise ConnectionError("smtp down")


def _recurring(session, user, account, *, amount="100.00", kind="WITHDRAWAL", interval="MONTHLY",
               start=datetime(2024, 1, 31, 9, 0), description="Rent", category_id=None):
    return crud_transaction.create_recurring_transaction(
        session,
        user.db_id,
        RecurringTransactionCreate(
            account_id=account.id,
            amount=Decimal(amount),
            transaction_type=kind,
            recurring_interval=interval,
            description=description,
            category_id=category_id,
            transaction_date=start,
        ),
    )


def _occurrences(session, template_id: int) -> list[TransactionDB]:
    return (
        session.query(TransactionDB)
        .filter(TransactionDB.parent_transaction_id == template_id)
        .order_by(TransactionDB.id)
        .all()
    )


@pytest.mark.parametrize(
    ("due", "interval", "expected"),
    [
        (datetime(2024, 3, 1, 8, 30), RecurringInterval.DAILY, datetime(2024, 3, 2, 8, 30)),
        (datetime(2024, 2, 27), RecurringInterval.WEEKLY, datetime(2024, 3, 5)),
        (datetime(2024, 1, 31), RecurringInterval.MONTHLY, datetime(2024, 2, 29)),
        (datetime(2023, 1, 31), RecurringInterval.MONTHLY, datetime(2023, 2, 28)),
        (datetime(2024, 12, 31), RecurringInterval.MONTHLY, datetime(2025, 1, 31)),
        (datetime(2024, 2, 29), RecurringInterval.YEARLY, datetime(2025, 2, 28)),
        (datetime(2023, 6, 15), RecurringInterval.YEARLY, datetime(2024, 6, 15)),
    ],
)
def test_advance_due_date(due, interval, expected) -> None:
    assert recurring.advance_due_date(due, interval) == expected


def test_process_posts_one_occurrence_and_advances_template(session, user, make_account) -> None:
    account = make_account(balance="1000.00")
    template = _recurring(session, user, account)

    created = recurring.process_recurring_transactions(session, now=datetime(2024, 3, 1))

    assert len(created) == 1
    instance = created[0]
    assert instance.parent_transaction_id == template.id
    assert instance.occurrence_due_at == datetime(2024, 2, 29, 9, 0)
    assert instance.transaction_date == datetime(2024, 2, 29, 9, 0)
    assert instance.transaction_type == TransactionType.WITHDRAWAL
    assert instance.amount == Decimal("100.00")
    assert instance.description == "Rent"
    assert instance.is_recurring is False
    assert instance.next_due_date is None

    session.refresh(template)
    session.refresh(account)
    assert template.next_due_date == datetime(2024, 3, 29, 9, 0)
    assert account.balance == Decimal("800.00")


def test_process_is_idempotent_for_the_same_instant(session, user, make_account) -> None:
    account = make_account(balance="1000.00")
    template = _recurring(session, user, account)
    now = datetime(2024, 3, 1)

    recurring.process_recurring_transactions(session, now=now)
    second = recurring.process_recurring_transactions(session, now=now)

    assert second == []
    assert len(_occurrences(session, template.id)) == 1
    session.refresh(account)
    assert account.balance == Decimal("800.00")


def test_nothing_is_posted_before_due(session, user, make_account) -> None:
    account = make_account(balance="0.00")
    _recurring(session, user, account, kind="DEPOSIT")

    assert recurring.process_recurring_transactions(session, now=datetime(2024, 2, 29, 8, 59)) == []


def test_backlog_catches_up_one_occurrence_per_run(session, user, make_account) -> None:
    account = make_account(balance="0.00")
    template = _recurring(session, user, account, kind="DEPOSIT", amount="10.00")
    now = datetime(2024, 6, 1)

    runs = [len(recurring.process_recurring_transactions(session, now=now)) for _ in range(5)]

    assert runs == [1, 1, 1, 1, 0]
    due_dates = [o.occurrence_due_at for o in _occurrences(session, template.id)]
    assert due_dates == [
        datetime(2024, 2, 29, 9, 0),
        datetime(2024, 3, 29, 9, 0),
        datetime(2024, 4, 29, 9, 0),
        datetime(2024, 5, 29, 9, 0),
    ]
    session.refresh(account)
    assert account.balance == Decimal("50.00")


def test_claim_occurrence_conflicts_when_already_claimed(session, user, make_account) -> None:
    account = make_account(balance="0.00")
    template = _recurring(session, user, account)
    due = template.next_due_date

    assert recurring.claim_occurrence(session, template, due) == datetime(2024, 3, 29, 9, 0)
    with pytest.raises(ConflictError):
        recurring.claim_occurrence(session, template, due)


def test_duplicate_occurrence_is_skipped(session, user, make_account) -> None:
    account = make_account(balance="1000.00")
    template = _recurring(session, user, account)
    now = datetime(2024, 3, 1)
    recurring.process_recurring_transactions(session, now=now)

    # Rewind the template as a lagging worker would see it
    template.next_due_date = datetime(2024, 2, 29, 9, 0)
    session.commit()

    assert recurring.process_recurring_transactions(session, now=now) == []
    assert len(_occurrences(session, template.id)) == 1
    session.refresh(account)
    assert account.balance == Decimal("800.00")


def test_failed_item_is_skipped_and_stays_due(session, user, make_account) -> None:
    healthy = make_account("Healthy", balance="0.00")
    closing = make_account("Closing", balance="0.00")
    healthy_template = _recurring(session, user, healthy, kind="DEPOSIT")
    closing_template = _recurring(session, user, closing, kind="DEPOSIT")
    crud_account.delete_db_account(session, closing.id, user.db_id)

    created = recurring.process_recurring_transactions(session, now=datetime(2024, 3, 1))

    assert [c.parent_transaction_id for c in created] == [healthy_template.id]
    session.refresh(closing_template)
    assert closing_template.next_due_date == datetime(2024, 2, 29, 9, 0)
    assert _occurrences(session, closing_template.id) == []


def test_strict_budget_refuses_occurrence_and_skips_it(
    session, user, make_account, make_budget, category, caplog
) -> None:
    account = make_account(balance="500.00")
    make_budget("100.00", BudgetTypeEnum.STRICT, start=date(2024, 1, 1), end=date(2024, 1, 31))
    template = _recurring(
        session, user, account, amount="60.00", interval="WEEKLY",
        start=datetime(2024, 1, 2, 9, 0), description="Meal kit", category_id=category.id,
    )

    with caplog.at_level(logging.WARNING, logger="fintrack"):
        created = recurring.process_recurring_transactions(session, now=datetime(2024, 1, 10))

    assert created == []
    assert "exceeds the budget" in caplog.text

    session.refresh(account)
    assert account.balance == Decimal("440.00")
    spent = crud_budget.calculate_category_spending(
        session, user.db_id, category.id, date(2024, 1, 1), date(2024, 1, 31)
    )
    assert spent == Decimal("60.00")

    [refused] = _occurrences(session, template.id)
    assert refused.status == TransactionStatus.FAILED
    assert refused.occurrence_due_at == datetime(2024, 1, 9, 9, 0)

    # The refused occurrence is not retried
    session.refresh(template)
    assert template.next_due_date == datetime(2024, 1, 16, 9, 0)
    assert recurring.process_recurring_transactions(session, now=datetime(2024, 1, 10)) == []
    assert len(_occurrences(session, template.id)) == 1


def test_flexible_budget_lets_occurrence_through(session, user, make_account, make_budget, category) -> None:
    account = make_account(balance="500.00")
    make_budget("100.00", BudgetTypeEnum.FLEXIBLE, start=date(2024, 1, 1), end=date(2024, 1, 31))
    _recurring(
        session, user, account, amount="60.00", interval="WEEKLY",
        start=datetime(2024, 1, 2, 9, 0), description="Meal kit", category_id=category.id,
    )

    created = recurring.process_recurring_transactions(session, now=datetime(2024, 1, 10))

    assert len(created) == 1
    assert created[0].status == TransactionStatus.COMPLETED
    session.refresh(account)
    assert account.balance == Decimal("380.00")


def test_scheduler_locks_the_budget_it_checks(
    session, user, make_account, make_budget, category, monkeypatch
) -> None:
    account = make_account(balance="500.00")
    make_budget("1000.00", BudgetTypeEnum.STRICT, start=date(2024, 1, 1), end=date(2024, 1, 31))
    _recurring(
        session, user, account, amount="60.00", interval="WEEKLY",
        start=datetime(2024, 1, 2, 9, 0), category_id=category.id,
    )

    locks = []
    find_active_budget = crud_budget.find_active_budget

    def recording_find(*args, **kwargs):
        locks.append(kwargs.get("lock", False))
        return find_active_budget(*args, **kwargs)

    monkeypatch.setattr(crud_budget, "find_active_budget", recording_find)
    recurring.process_recurring_transactions(session, now=datetime(2024, 1, 10))

    assert locks == [True]


def test_deleted_and_stopped_templates_are_not_processed(session, user, make_account) -> None:
    account = make_account(balance="0.00")
    deleted = _recurring(session, user, account, kind="DEPOSIT", description="Deleted")
    stopped = _recurring(session, user, account, kind="DEPOSIT", description="Stopped")
    crud_transaction.delete_db_transaction(session, deleted.id, user.db_id)
    crud_transaction.stop_recurring_transaction(session, stopped.id, user.db_id)

    assert recurring.process_recurring_transactions(session, now=datetime(2024, 3, 1)) == []


def test_payment_reminders_cover_upcoming_withdrawals_only(session, user, make_account) -> None:
    account = make_account(balance="1000.00")
    _recurring(session, user, account, description="Rent")
    _recurring(session, user, account, kind="DEPOSIT", description="Salary")
    _recurring(session, user, account, start=datetime(2024, 2, 15), description="Gym")
    notifier = _RecordingNotifier()

    sent = recurring.send_payment_reminders(session, notifier, now=datetime(2024, 2, 27), days_ahead=3)

    assert sent == 1
    to, subject, body = notifier.sent[0]
    assert to == "alice@example.com"
    assert "Rent" in body
    assert "2024-02-29" in body


def test_payment_reminder_failures_are_not_raised(session, user, make_account) -> None:
    account = make_account(balance="1000.00")
    _recurring(session, user, account)

    sent = recurring.send_payment_reminders(session, _BrokenNotifier(), now=datetime(2024, 2, 27), days_ahead=3)

    assert sent == 0
