"""帐户管理与余额计算."""
from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from .. import crud
from ..exceptions import BookKeepingError
from ..models import Account, TransactionType
from ..schemas import AccountBalance, AccountCreate

logger = logging.getLogger(__name__)


def list_accounts(session: Session) -> list[Account]:
    return crud.list_accounts(session)


def get_balance(session: Session, account_id: int) -> Decimal:
    """计算帐户余额: 期初余额加收入减支出.

    帐户不存在或已删除时余额为 0.
    """

    account = crud.get_account_by_id(session, account_id)
    if account is None:
        return Decimal("0")

    income = crud.sum_transaction_amounts(
        session, account_id=account_id, transaction_type=TransactionType.INCOME
    )
    expense = crud.sum_transaction_amounts(
        session, account_id=account_id, transaction_type=TransactionType.EXPENSE
    )
    return account.initial_balance + income - expense


def list_account_balances(session: Session) -> list[AccountBalance]:
    return [
        AccountBalance(
            id=account.id,
            name=account.name,
            icon=account.icon,
            current_balance=get_balance(session, account.id),
        )
        for account in crud.list_accounts(session)
    ]


def create_account(session: Session, data: AccountCreate) -> Account:
    name = data.name.strip()
    if crud.account_name_exists(session, name):
        logger.warning("Duplicate account name rejected: %s", name)
        raise BookKeepingError("account name already exists")

    account = Account(
        name=name,
        type=data.type,
        icon=data.icon.strip(),
        initial_balance=data.initial_balance,
        currency=data.currency,
    )
    session.add(account)
    session.flush()
    session.refresh(account)
    logger.info("Created account %s (%s)", account.id, account.name)
    return account


def update_account(
    session: Session, account_id: int, data: AccountCreate
) -> Account | None:
    account = crud.get_account_by_id(session, account_id)
    if account is None:
        return None

    name = data.name.strip()
    if crud.account_name_exists(session, name, exclude_id=account_id):
        logger.warning("Duplicate account name rejected: %s", name)
        raise BookKeepingError("account name already exists")

    account.name = name
    account.type = data.type
    account.icon = data.icon.strip()
    account.initial_balance = data.initial_balance
    session.flush()
    return account


def has_transactions(session: Session, account_id: int) -> bool:
    return crud.any_transactions(session, account_id=account_id)


def delete_account(session: Session, account_id: int) -> bool:
    """软删除没有交易引用的帐户."""

    account = crud.get_account_by_id(session, account_id)
    if account is None or has_transactions(session, account_id):
        return False

    crud.soft_delete(session, account)
    logger.info("Deleted account %s", account_id)
    return True
