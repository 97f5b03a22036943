from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.pool import StaticPool

from bookkeeping.database import create_db_engine, create_session_factory
from bookkeeping.models import (
    Account,
    AccountType,
    Base,
    Budget,
    BudgetPeriod,
    Category,
    Transaction,
    TransactionType,
)


@pytest.fixture
def session():
    engine = create_db_engine("sqlite+pysqlite:///:memory:", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    factory = create_session_factory(engine)
    db = factory()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def make_account(session):
    def _make(name="現金", initial_balance="0", account_type=AccountType.CASH):
        account = Account(
            name=name,
            type=account_type,
            icon="💵",
            initial_balance=Decimal(initial_balance),
        )
        session.add(account)
        session.flush()
        return account

    return _make


@pytest.fixture
def make_category(session):
    def _make(name="餐飲", category_type=TransactionType.EXPENSE, sort_order=1,
              color="#FF6B6B", is_default=False):
        category = Category(
            name=name,
            icon="🍜",
            type=category_type,
            color=color,
            sort_order=sort_order,
            is_default=is_default,
        )
        session.add(category)
        session.flush()
        return category

    return _make


@pytest.fixture
def make_transaction(session):
    def _make(category, account, amount, on=date(2026, 2, 15), note=None,
              transaction_type=None):
        transaction = Transaction(
            date=on,
            amount=Decimal(amount),
            type=transaction_type or category.type,
            category_id=category.id,
            account_id=account.id,
            note=note,
        )
        session.add(transaction)
        session.flush()
        return transaction

    return _make


@pytest.fixture
def make_budget(session):
    def _make(category, amount, period=BudgetPeriod.MONTHLY, start=date(2026, 1, 1)):
        budget = Budget(
            category_id=category.id,
            amount=Decimal(amount),
            period=period,
            start_date=start,
        )
        session.add(budget)
        session.flush()
        return budget

    return _make
