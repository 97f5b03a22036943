"""数据库 CRUD 操作."""
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import Select, asc, func, select
from sqlalchemy.orm import Session

from .models import (
    Account,
    Budget,
    BudgetPeriod,
    Category,
    SoftDeleteMixin,
    Transaction,
    TransactionType,
)

ZERO = Decimal("0")


def sum_decimal(values: Iterable[Optional[Decimal]]) -> Decimal:
    """以 Decimal 精确求和, 忽略空值."""

    total = ZERO
    for value in values:
        if value is not None:
            total += value
    return total


def _first_id(session: Session, stmt: Select) -> bool:
    return session.scalars(stmt.limit(1)).first() is not None


def soft_delete(session: Session, instance: SoftDeleteMixin) -> None:
    """软删除记录, 只打标记不做物理删除."""

    instance.mark_deleted()
    session.add(instance)
    session.flush()


def transaction_filters(
    *,
    account_id: int | None = None,
    category_id: int | None = None,
    transaction_type: TransactionType | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list:
    """构造交易查询条件, 日期区间两端均包含."""

    criteria = []
    if account_id is not None:
        criteria.append(Transaction.account_id == account_id)
    if category_id is not None:
        criteria.append(Transaction.category_id == category_id)
    if transaction_type is not None:
        criteria.append(Transaction.type == transaction_type)
    if start_date is not None:
        criteria.append(Transaction.date >= start_date)
    if end_date is not None:
        criteria.append(Transaction.date <= end_date)
    return criteria


def sum_transaction_amounts(session: Session, **filters) -> Decimal:
    """统计符合条件的交易金额总和."""

    stmt: Select = select(Transaction.amount).where(*transaction_filters(**filters))
    return sum_decimal(session.scalars(stmt))


def any_transactions(session: Session, **filters) -> bool:
    """判断是否存在符合条件的交易."""

    return _first_id(session, select(Transaction.id).where(*transaction_filters(**filters)))


def count_transactions(session: Session, **filters) -> int:
    """统计符合条件的交易笔数."""

    stmt = (
        select(func.count(Transaction.id))
        .select_from(Transaction)
        .where(*transaction_filters(**filters))
    )
    return int(session.execute(stmt).scalar_one())


def list_transactions_between(
    session: Session,
    start_date: date | None = None,
    end_date: date | None = None,
    transaction_type: TransactionType | None = None,
) -> List[Transaction]:
    """按日期、ID 升序获取区间内的交易."""

    stmt = (
        select(Transaction)
        .where(
            *transaction_filters(
                start_date=start_date,
                end_date=end_date,
                transaction_type=transaction_type,
            )
        )
        .order_by(asc(Transaction.date), asc(Transaction.id))
    )
    return list(session.scalars(stmt).all())


def get_transaction_by_id(session: Session, transaction_id: int) -> Optional[Transaction]:
    """根据 ID 获取交易."""
    stmt = select(Transaction).where(Transaction.id == transaction_id)
    return session.scalars(stmt).first()


def get_account_by_id(session: Session, account_id: int) -> Optional[Account]:
    """根据 ID 获取帐户."""
    stmt = select(Account).where(Account.id == account_id)
    return session.scalars(stmt).first()


def list_accounts(session: Session) -> List[Account]:
    """获取所有帐户."""
    stmt = select(Account).order_by(asc(Account.id))
    return list(session.scalars(stmt).all())


def account_name_exists(
    session: Session, name: str, exclude_id: int | None = None
) -> bool:
    """判断帐户名称是否已被占用."""

    criteria = [Account.name == name]
    if exclude_id is not None:
        criteria.append(Account.id != exclude_id)
    return _first_id(session, select(Account.id).where(*criteria))


def get_category_by_id(session: Session, category_id: int) -> Optional[Category]:
    """根据 ID 获取分类."""
    stmt = select(Category).where(Category.id == category_id)
    return session.scalars(stmt).first()


def list_categories(
    session: Session, category_type: TransactionType | None = None
) -> List[Category]:
    """获取分类, 按类型与排序值排列."""
    stmt = select(Category).order_by(
        asc(Category.type), asc(Category.sort_order), asc(Category.id)
    )
    if category_type is not None:
        stmt = stmt.where(Category.type == category_type)
    return list(session.scalars(stmt).all())


def category_name_exists(
    session: Session,
    name: str,
    category_type: TransactionType,
    exclude_id: int | None = None,
) -> bool:
    """判断同类型下分类名称是否已被占用."""

    criteria = [Category.name == name, Category.type == category_type]
    if exclude_id is not None:
        criteria.append(Category.id != exclude_id)
    return _first_id(session, select(Category.id).where(*criteria))


def max_category_sort_order(
    session: Session, category_type: TransactionType, exclude_id: int | None = None
) -> int:
    """获取同类型分类的最大排序值."""

    stmt = select(func.max(Category.sort_order)).where(Category.type == category_type)
    if exclude_id is not None:
        stmt = stmt.where(Category.id != exclude_id)
    return session.scalar(stmt) or 0


def get_budget_by_id(session: Session, budget_id: int) -> Optional[Budget]:
    """根据 ID 获取预算."""
    stmt = select(Budget).where(Budget.id == budget_id)
    return session.scalars(stmt).first()


def budget_exists(
    session: Session,
    category_id: int,
    period: BudgetPeriod,
    exclude_id: int | None = None,
) -> bool:
    """判断分类与周期组合的预算是否已存在."""

    criteria = [Budget.category_id == category_id, Budget.period == period]
    if exclude_id is not None:
        criteria.append(Budget.id != exclude_id)
    return _first_id(session, select(Budget.id).where(*criteria))


def list_budgets_with_expense_category(
    session: Session, category_id: int | None = None
) -> list[tuple[Budget, Category]]:
    """获取预算及其支出分类, 按分类排序值与分类 ID 排列."""

    stmt = (
        select(Budget, Category)
        .join(Category, Budget.category_id == Category.id)
        .where(Category.type == TransactionType.EXPENSE)
        .order_by(asc(Category.sort_order), asc(Category.id), asc(Budget.id))
    )
    if category_id is not None:
        stmt = stmt.where(Budget.category_id == category_id)
    return [(row.Budget, row.Category) for row in session.execute(stmt)]
