"""预算管理与进度评估."""
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from .. import crud
from ..exceptions import BookKeepingError
from ..models import Budget, BudgetPeriod, Category, TransactionType
from ..schemas import BudgetCreate, BudgetProgress, BudgetStatus
from .periods import first_day_of_month, resolve_period_range

logger = logging.getLogger(__name__)

WARNING_THRESHOLD = Decimal("80")
EXCEEDED_THRESHOLD = Decimal("100")


def usage_status(usage_rate: Decimal) -> BudgetStatus:
    if usage_rate < WARNING_THRESHOLD:
        return "normal"
    if usage_rate <= EXCEEDED_THRESHOLD:
        return "warning"
    return "exceeded"


def calculate_usage_rate(spent: Decimal, amount: Decimal) -> Decimal:
    if amount <= 0:
        return Decimal("0")
    return spent / amount * 100


def build_progress(
    session: Session, budget: Budget, category: Category, reference_date: date
) -> BudgetProgress | None:
    """评估预算在 ``reference_date`` 所属周期内的使用情况.

    预算生效日期晚于该周期时返回 None.
    """

    start, end = resolve_period_range(budget.period, reference_date, budget.start_date)
    if budget.start_date > end:
        return None

    spent = crud.sum_transaction_amounts(
        session,
        category_id=budget.category_id,
        transaction_type=TransactionType.EXPENSE,
        start_date=start,
        end_date=end,
    )
    usage_rate = calculate_usage_rate(spent, budget.amount)
    return BudgetProgress(
        budget_id=budget.id,
        category_id=category.id,
        category_name=category.name,
        category_icon=category.icon,
        budget_amount=budget.amount,
        spent_amount=spent,
        usage_rate=usage_rate,
        status=usage_status(usage_rate),
        period=budget.period,
        start_date=budget.start_date,
        period_start=start,
        period_end=end,
    )


def get_all_with_progress(
    session: Session, reference_date: date | None = None
) -> list[BudgetProgress]:
    reference = reference_date or date.today()
    results: list[BudgetProgress] = []
    for budget, category in crud.list_budgets_with_expense_category(session):
        progress = build_progress(session, budget, category, reference)
        if progress is not None:
            results.append(progress)
    return results


def check_budget_status(
    session: Session, category_id: int, reference_date: date | None = None
) -> BudgetProgress | None:
    """查询分类预算进度, 月预算优先."""

    pairs = crud.list_budgets_with_expense_category(session, category_id=category_id)
    if not pairs:
        return None

    budget, category = min(
        pairs,
        key=lambda pair: (pair[0].period != BudgetPeriod.MONTHLY, pair[0].id),
    )
    return build_progress(session, budget, category, reference_date or date.today())


def _require_expense_category(session: Session, category_id: int) -> None:
    category = crud.get_category_by_id(session, category_id)
    if category is None or category.type != TransactionType.EXPENSE:
        raise BookKeepingError("budget only supports expense categories")


def create_budget(
    session: Session, data: BudgetCreate, today: date | None = None
) -> Budget:
    _require_expense_category(session, data.category_id)
    if crud.budget_exists(session, data.category_id, data.period):
        logger.warning(
            "Duplicate budget rejected: category %s (%s)",
            data.category_id,
            data.period.value,
        )
        raise BookKeepingError("budget for this category and period already exists")

    budget = Budget(
        category_id=data.category_id,
        amount=data.amount,
        period=data.period,
        start_date=data.start_date or first_day_of_month(today or date.today()),
    )
    session.add(budget)
    session.flush()
    session.refresh(budget)
    logger.info("Created budget %s for category %s", budget.id, budget.category_id)
    return budget


def update_budget(
    session: Session, budget_id: int, data: BudgetCreate
) -> Budget | None:
    budget = crud.get_budget_by_id(session, budget_id)
    if budget is None:
        return None

    _require_expense_category(session, data.category_id)
    if crud.budget_exists(session, data.category_id, data.period, exclude_id=budget_id):
        logger.warning(
            "Duplicate budget rejected: category %s (%s)",
            data.category_id,
            data.period.value,
        )
        raise BookKeepingError("budget for this category and period already exists")

    budget.category_id = data.category_id
    budget.amount = data.amount
    budget.period = data.period
    if data.start_date is not None:
        budget.start_date = data.start_date
    session.flush()
    return budget


def delete_budget(session: Session, budget_id: int) -> bool:
    budget = crud.get_budget_by_id(session, budget_id)
    if budget is None:
        return False

    crud.soft_delete(session, budget)
    logger.info("Deleted budget %s", budget_id)
    return True
