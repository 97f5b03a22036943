"""交易记录、编辑与分页查询."""
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from .. import crud
from ..exceptions import BookKeepingError
from ..models import Transaction
from ..schemas import TransactionCreate

logger = logging.getLogger(__name__)

NOTE_MAX_LENGTH = 500


def normalize_note(note: Optional[str]) -> Optional[str]:
    if note is None or not note.strip():
        return None
    return note.strip()


def _validate(session: Session, data: TransactionCreate, today: date) -> None:
    if data.amount <= 0:
        raise BookKeepingError("amount must be greater than 0")
    if data.date > today:
        raise BookKeepingError("transaction date cannot be in the future")
    if data.note is not None and len(data.note) > NOTE_MAX_LENGTH:
        raise BookKeepingError("note cannot exceed 500 characters")

    category = crud.get_category_by_id(session, data.category_id)
    if category is None:
        raise BookKeepingError(f"category not found: {data.category_id}")
    if category.type != data.type:
        raise BookKeepingError("category type does not match transaction type")

    if crud.get_account_by_id(session, data.account_id) is None:
        raise BookKeepingError(f"account not found: {data.account_id}")


def create_transaction(
    session: Session, data: TransactionCreate, today: date | None = None
) -> Transaction:
    _validate(session, data, today or date.today())

    transaction = Transaction(
        date=data.date,
        amount=data.amount,
        type=data.type,
        category_id=data.category_id,
        account_id=data.account_id,
        note=normalize_note(data.note),
    )
    session.add(transaction)
    session.flush()
    session.refresh(transaction)
    logger.info(
        "Recorded %s transaction %s of %s",
        transaction.type.value,
        transaction.id,
        transaction.amount,
    )
    return transaction


def update_transaction(
    session: Session,
    transaction_id: int,
    data: TransactionCreate,
    today: date | None = None,
) -> Transaction | None:
    transaction = crud.get_transaction_by_id(session, transaction_id)
    if transaction is None:
        return None

    _validate(session, data, today or date.today())
    transaction.date = data.date
    transaction.amount = data.amount
    transaction.type = data.type
    transaction.category_id = data.category_id
    transaction.account_id = data.account_id
    transaction.note = normalize_note(data.note)
    session.flush()
    session.refresh(transaction)
    return transaction


def get_transaction(session: Session, transaction_id: int) -> Transaction | None:
    return crud.get_transaction_by_id(session, transaction_id)


def soft_delete_transaction(session: Session, transaction_id: int) -> bool:
    transaction = crud.get_transaction_by_id(session, transaction_id)
    if transaction is None:
        return False

    crud.soft_delete(session, transaction)
    logger.info("Deleted transaction %s", transaction_id)
    return True


def list_transactions(
    session: Session,
    page: int = 1,
    page_size: int = 20,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
    category_id: int | None = None,
    account_id: int | None = None,
    min_amount: Decimal | None = None,
    max_amount: Decimal | None = None,
    keyword: str | None = None,
) -> tuple[list[Transaction], int]:
    """返回一页交易（最新在前）以及未分页的总笔数.

    ``keyword`` 对备注做不区分大小写的匹配.
    """

    page = max(page, 1)
    page_size = max(page_size, 1)

    criteria = crud.transaction_filters(
        account_id=account_id,
        category_id=category_id,
        start_date=start_date,
        end_date=end_date,
    )
    if min_amount is not None:
        criteria.append(Transaction.amount >= min_amount)
    if max_amount is not None:
        criteria.append(Transaction.amount <= max_amount)
    if keyword and keyword.strip():
        pattern = f"%{keyword.strip().lower()}%"
        criteria.append(func.lower(Transaction.note).like(pattern))

    total = int(
        session.execute(
            select(func.count(Transaction.id)).where(*criteria)
        ).scalar_one()
    )
    stmt = (
        select(Transaction)
        .where(*criteria)
        .order_by(desc(Transaction.date), desc(Transaction.id))
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(session.scalars(stmt).all()), total


def list_recent_transactions(session: Session, limit: int = 10) -> list[Transaction]:
    rows, _ = list_transactions(session, page=1, page_size=limit)
    return rows
