"""月度报表汇总."""
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.orm import Session

from .. import crud
from ..models import Category, TransactionType
from ..schemas import (
    CategoryExpense,
    DailyTrend,
    DashboardSnapshot,
    MonthlyReport,
    MonthlySummary,
    TransactionRead,
)
from . import accounts, budgets, transactions
from .categories import category_display
from .periods import month_range

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
CENT = Decimal("0.01")
RECENT_TRANSACTION_LIMIT = 10


def get_monthly_summary(session: Session, year: int, month: int) -> MonthlySummary:
    start, end = month_range(year, month)
    income = crud.sum_transaction_amounts(
        session, transaction_type=TransactionType.INCOME, start_date=start, end_date=end
    )
    expense = crud.sum_transaction_amounts(
        session, transaction_type=TransactionType.EXPENSE, start_date=start, end_date=end
    )
    return MonthlySummary(
        year=year,
        month=month,
        total_income=income,
        total_expense=expense,
        balance=income - expense,
        has_data=crud.any_transactions(session, start_date=start, end_date=end),
    )


def _active_categories(session: Session) -> dict[int, Category]:
    return {category.id: category for category in crud.list_categories(session)}


def distribute_percentages(amounts: list[Decimal]) -> list[Decimal]:
    """将金额换算为两位小数的百分比, 合计恰为 100.

    除最后一项外均四舍五入; 最后一项取余数, 且不小于 0.
    """

    total = crud.sum_decimal(amounts)
    if not amounts or total <= 0:
        return [Decimal("0") for _ in amounts]

    shares: list[Decimal] = []
    for amount in amounts[:-1]:
        shares.append((amount / total * HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP))
    shares.append(max(Decimal("0"), HUNDRED - crud.sum_decimal(shares)))
    return shares


def get_category_breakdown(
    session: Session, year: int, month: int
) -> list[CategoryExpense]:
    start, end = month_range(year, month)
    categories = _active_categories(session)

    grouped: dict[tuple[str, str], Decimal] = defaultdict(Decimal)
    for transaction in crud.list_transactions_between(
        session, start, end, TransactionType.EXPENSE
    ):
        key = category_display(categories.get(transaction.category_id))
        grouped[key] += transaction.amount

    if not grouped:
        return []

    ranked = sorted(grouped.items(), key=lambda item: item[1], reverse=True)
    percentages = distribute_percentages([amount for _, amount in ranked])
    return [
        CategoryExpense(name=name, color=color, amount=amount, percentage=percentage)
        for ((name, color), amount), percentage in zip(ranked, percentages)
    ]


def get_daily_trends(session: Session, year: int, month: int) -> list[DailyTrend]:
    start, end = month_range(year, month)

    income: dict[date, Decimal] = defaultdict(Decimal)
    expense: dict[date, Decimal] = defaultdict(Decimal)
    for transaction in crud.list_transactions_between(session, start, end):
        bucket = income if transaction.type == TransactionType.INCOME else expense
        bucket[transaction.date] += transaction.amount

    days = sorted(set(income) | set(expense))
    return [
        DailyTrend(
            date=day,
            income=income.get(day, Decimal("0")),
            expense=expense.get(day, Decimal("0")),
        )
        for day in days
    ]


def get_monthly_report(session: Session, year: int, month: int) -> MonthlyReport:
    return MonthlyReport(
        summary=get_monthly_summary(session, year, month),
        category_expenses=get_category_breakdown(session, year, month),
        daily_trends=get_daily_trends(session, year, month),
    )


def get_dashboard(session: Session, today: date | None = None) -> DashboardSnapshot:
    """汇总首页显示的本月概览."""

    today = today or date.today()
    recent = transactions.list_recent_transactions(session, RECENT_TRANSACTION_LIMIT)
    return DashboardSnapshot(
        summary=get_monthly_summary(session, today.year, today.month),
        account_balances=accounts.list_account_balances(session),
        budget_progress=budgets.get_all_with_progress(session, today),
        recent_transactions=[TransactionRead.model_validate(row) for row in recent],
    )
