from decimal import Decimal

import pytest

from bookkeeping.exceptions import BookKeepingError
from bookkeeping.models import TransactionType
from bookkeeping.schemas import AccountCreate
from bookkeeping.services import accounts


def test_balance_keeps_four_decimal_places(session, make_account, make_category,
                                           make_transaction):
    account = make_account(initial_balance="1000.1234")
    salary = make_category("薪資", TransactionType.INCOME)
    food = make_category("餐飲", TransactionType.EXPENSE)
    make_transaction(salary, account, "250.8766")
    make_transaction(salary, account, "49.5")
    make_transaction(food, account, "100.1111")

    assert accounts.get_balance(session, account.id) == Decimal("1200.3889")


def test_balance_ignores_deleted_transactions(session, make_account, make_category,
                                              make_transaction):
    account = make_account(initial_balance="100")
    food = make_category()
    kept = make_transaction(food, account, "30")
    removed = make_transaction(food, account, "50")
    removed.mark_deleted()
    session.flush()

    assert kept.id != removed.id
    assert accounts.get_balance(session, account.id) == Decimal("70")


def test_balance_of_unknown_account_is_zero(session):
    assert accounts.get_balance(session, 999) == Decimal("0")


def test_create_account_rejects_duplicate_name(session, make_account):
    make_account("現金")

    with pytest.raises(BookKeepingError, match="account name already exists"):
        accounts.create_account(session, AccountCreate(name="  現金  "))


def test_update_account_keeps_currency(session):
    account = accounts.create_account(
        session, AccountCreate(name="Wallet", currency="USD")
    )

    updated = accounts.update_account(
        session, account.id, AccountCreate(name="Pocket", initial_balance="5")
    )

    assert updated.name == "Pocket"
    assert updated.currency == "USD"
    assert updated.initial_balance == Decimal("5")
    assert accounts.update_account(session, 999, AccountCreate(name="x")) is None


def test_delete_account_refuses_when_referenced(session, make_account, make_category,
                                                make_transaction):
    used = make_account("銀行帳戶")
    unused = make_account("信用卡")
    make_transaction(make_category(), used, "10")

    assert accounts.delete_account(session, used.id) is False
    assert accounts.delete_account(session, unused.id) is True
    assert [account.name for account in accounts.list_accounts(session)] == ["銀行帳戶"]
