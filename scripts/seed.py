import sys
import os
import random
from sqlalchemy.orm import Session
from datetime import date, datetime, timedelta
from decimal import Decimal
from faker import Faker

# Add the project root to the Python path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from fintrack.db.core import session_local, init_db, UserDB, BudgetExceededError
from fintrack.crud import crud_user, crud_category, crud_account, crud_budget, crud_transaction, crud_investment
from fintrack.models.user import UserCreate, CategoryCreate
from fintrack.models.account import AccountCreate, AccountTypeEnum
from fintrack.models.budget import BudgetCreate, BudgetTypeEnum
from fintrack.models.transaction import TransactionMetadata, RecurringTransactionCreate
from fintrack.models.investment import InvestmentCreate
from fintrack.services.valuation import record_history
from fintrack.logging_config import setup_logging, get_logger

fake = Faker()
logger = get_logger("scripts.seed")

CATEGORIES = ["Groceries", "Dining", "Rent", "Utilities", "Transportation", "Entertainment", "Shopping", "Salary"]
INVESTMENT_TYPES = ["STOCK", "BOND", "CRYPTO", "ETF"]


def _money(low: int, high: int) -> Decimal:
    return Decimal(random.randint(low * 100, high * 100)) / 100


def seed_database(num_users: int = 3):
    """
    Fills the database with sample users, accounts, budgets, postings and investments.
    All balance changes go through the ledger so balances match the transaction log.
    """
    init_db()
    db: Session = session_local()

    try:
        # Check if data exists to prevent duplicate seeding
        if db.query(UserDB).count() > 0:
            logger.info("Database appears to be already seeded. Exiting.")
            return

        logger.info("Seeding database with sample data...")

        categories = {name: crud_category.create_db_category(db, CategoryCreate(name=name)) for name in CATEGORIES}
        spending_categories = [c for name, c in categories.items() if name != "Salary"]

        month_start = date.today().replace(day=1)
        month_end = (month_start + timedelta(days=32)).replace(day=1) - timedelta(days=1)

        for _ in range(num_users):
            user = crud_user.create_db_user(db, UserCreate(username=fake.unique.user_name(), email=fake.unique.email()))
            logger.info(f"Created user {user.username} (ID: {user.db_id})")

            checking = crud_account.create_db_account(db, user.db_id, AccountCreate(
                account_name=f"{fake.company()} Checking",
                account_type=AccountTypeEnum.CHECKING,
                balance=_money(500, 3000),
                is_default=True
            ))
            savings = crud_account.create_db_account(db, user.db_id, AccountCreate(
                account_name=f"{fake.company()} Savings",
                account_type=AccountTypeEnum.SAVINGS,
                balance=_money(1000, 10000),
                interest_rate=Decimal("0.0425")
            ))

            # Budgets for the current month
            for category in random.sample(spending_categories, 3):
                crud_budget.create_db_budget(db, user.db_id, BudgetCreate(
                    category_id=category.id,
                    amount_limit=_money(200, 800),
                    start_date=month_start,
                    end_date=month_end,
                    budget_type=random.choice([BudgetTypeEnum.STRICT, BudgetTypeEnum.FLEXIBLE]),
                    description=fake.sentence(nb_words=4)
                ))

            # Recurring salary and rent
            salary_day = datetime.combine(month_start, datetime.min.time()).replace(hour=9)
            crud_transaction.create_recurring_transaction(db, user.db_id, RecurringTransactionCreate(
                account_id=checking.id,
                amount=_money(2500, 6000),
                transaction_type="DEPOSIT",
                recurring_interval="MONTHLY",
                category_id=categories["Salary"].id,
                description=f"Payroll - {fake.company()}",
                transaction_date=salary_day
            ))
            crud_transaction.create_recurring_transaction(db, user.db_id, RecurringTransactionCreate(
                account_id=checking.id,
                amount=_money(900, 2000),
                transaction_type="WITHDRAWAL",
                recurring_interval="MONTHLY",
                category_id=categories["Rent"].id,
                description="Rent",
                transaction_date=salary_day + timedelta(hours=1)
            ))

            # Day-to-day spending this month; strict budgets may refuse some of it
            for _ in range(random.randint(15, 30)):
                category = random.choice(spending_categories)
                metadata = TransactionMetadata(
                    category_id=category.id,
                    description=fake.catch_phrase(),
                    payment_method=random.choice(["CARD", "CASH", "ACH"]),
                    transaction_date=fake.date_time_between(start_date=month_start, end_date="now")
                )
                try:
                    crud_transaction.withdraw_funds(db, user.db_id, checking.id, _money(5, 120), metadata)
                except BudgetExceededError:
                    continue

            crud_transaction.transfer_funds(
                db, user.db_id, checking.id, savings.id, _money(50, 400),
                TransactionMetadata(description="Monthly savings")
            )

            for _ in range(random.randint(1, 3)):
                investment = crud_investment.create_db_investment(db, user.db_id, InvestmentCreate(
                    investment_type=random.choice(INVESTMENT_TYPES),
                    asset_name=fake.company(),
                    amount_invested=_money(500, 5000),
                    purchase_date=fake.date_between(start_date="-2y", end_date="-6m")
                ))
                value = investment.amount_invested
                for months_ago in range(6, 0, -1):
                    value = value * (1 + Decimal(random.uniform(-5, 5)) / 100)
                    record_history(db, investment.id, value, now=datetime.utcnow() - timedelta(days=30 * months_ago))

        logger.info("Seeding complete.")

    except Exception as e:
        logger.error(f"An error occurred during seeding: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    setup_logging(job_name="seed")
    seed_database()
