"""Default seeding helpers for the bookkeeping database."""
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from .config import DEFAULT_ACCOUNTS, DEFAULT_CATEGORIES, DEFAULT_CURRENCY
from .database import INCLUDE_DELETED
from .models import Account, AccountType, Category, TransactionType


def seed_default_categories(session: Session) -> None:
    """Insert default categories when the table is empty."""
    existing = session.execute(
        select(Category.id).execution_options(**{INCLUDE_DELETED: True})
    ).first()
    if existing is not None:
        return

    for category in DEFAULT_CATEGORIES:
        session.add(
            Category(
                name=category["name"],
                icon=category["icon"],
                type=TransactionType(category["type"]),
                color=category["color"],
                sort_order=category["sort_order"],
                is_default=True,
            )
        )


def seed_default_accounts(session: Session) -> None:
    """Insert default accounts when the table is empty."""
    existing = session.execute(
        select(Account.id).execution_options(**{INCLUDE_DELETED: True})
    ).first()
    if existing is not None:
        return

    for account in DEFAULT_ACCOUNTS:
        session.add(
            Account(
                name=account["name"],
                type=AccountType(account["type"]),
                icon=account["icon"],
                currency=DEFAULT_CURRENCY,
            )
        )


def seed_defaults(session: Session) -> None:
    seed_default_categories(session)
    seed_default_accounts(session)
    session.flush()
