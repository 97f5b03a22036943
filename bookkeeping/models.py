"""SQLAlchemy 模型定义."""
import datetime as dt
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    false,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

AMOUNT_TYPE = Numeric(18, 4)


def utcnow() -> datetime:
    """返回带时区的当前 UTC 时间."""
    return datetime.now(timezone.utc)


def _enum_column(enum_cls: type[Enum], name: str) -> SAEnum:
    return SAEnum(
        enum_cls,
        name=name,
        native_enum=False,
        values_callable=lambda members: [member.value for member in members],
    )


class Base(DeclarativeBase):
    """SQLAlchemy Declarative Base."""


class SoftDeleteMixin:
    """软删除能力：删除时只打标记, 默认查询会自动过滤."""

    is_deleted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def mark_deleted(self, when: datetime | None = None) -> None:
        self.is_deleted = True
        self.deleted_at = when or utcnow()


class AuditMixin:
    """审计能力：写入时由会话自动填写创建/更新时间."""

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class TransactionType(str, Enum):
    """交易类型枚举."""

    INCOME = "income"
    EXPENSE = "expense"


class AccountType(str, Enum):
    """帐户类型枚举."""

    CASH = "cash"
    BANK = "bank"
    CREDIT_CARD = "credit_card"
    E_PAYMENT = "e_payment"


class BudgetPeriod(str, Enum):
    """预算周期枚举."""

    MONTHLY = "monthly"
    WEEKLY = "weekly"


class Account(SoftDeleteMixin, AuditMixin, Base):
    """资金帐户."""

    __tablename__ = "accounts"
    __table_args__ = (
        CheckConstraint("initial_balance >= 0", name="ck_account_initial_balance"),
        Index("ix_accounts_name", "name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    type: Mapped[AccountType] = mapped_column(
        _enum_column(AccountType, "account_type"), nullable=False, default=AccountType.CASH
    )
    icon: Mapped[str] = mapped_column(String(10), nullable=False, default="")
    initial_balance: Mapped[Decimal] = mapped_column(
        AMOUNT_TYPE, nullable=False, default=Decimal("0")
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="TWD")


class Category(SoftDeleteMixin, AuditMixin, Base):
    """交易分类."""

    __tablename__ = "categories"
    __table_args__ = (Index("ix_categories_name_type", "name", "type"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    icon: Mapped[str] = mapped_column(String(10), nullable=False, default="")
    type: Mapped[TransactionType] = mapped_column(
        _enum_column(TransactionType, "category_type"), nullable=False
    )
    color: Mapped[Optional[str]] = mapped_column(String(7), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class Transaction(SoftDeleteMixin, AuditMixin, Base):
    """收支记录."""

    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transaction_amount_positive"),
        Index("ix_transactions_date", "date"),
        Index("ix_transactions_category_id", "category_id"),
        Index("ix_transactions_account_id_type", "account_id", "type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(AMOUNT_TYPE, nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        _enum_column(TransactionType, "transaction_type"), nullable=False
    )
    note: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False
    )
    category: Mapped[Optional[Category]] = relationship()
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="RESTRICT"), nullable=False
    )
    account: Mapped[Optional[Account]] = relationship()


class Budget(SoftDeleteMixin, AuditMixin, Base):
    """分类预算."""

    __tablename__ = "budgets"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_budget_amount_positive"),
        Index("ix_budgets_category_id_period", "category_id", "period"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False
    )
    category: Mapped[Optional[Category]] = relationship()
    amount: Mapped[Decimal] = mapped_column(AMOUNT_TYPE, nullable=False)
    period: Mapped[BudgetPeriod] = mapped_column(
        _enum_column(BudgetPeriod, "budget_period"),
        nullable=False,
        default=BudgetPeriod.MONTHLY,
    )
    start_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
