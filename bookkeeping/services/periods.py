"""预算与报表使用的日期区间工具."""
from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta

from ..exceptions import ReportRangeError
from ..models import BudgetPeriod

# 周预算为周一至周日 (``date.weekday()`` 编号)
WEEK_START = 0


def first_day_of_month(value: date) -> date:
    return value.replace(day=1)


def last_day_of_month(value: date) -> date:
    return value.replace(day=calendar.monthrange(value.year, value.month)[1])


def month_range(year: int, month: int) -> tuple[date, date]:
    """返回自然月的首日与末日（均包含）."""

    if not 1 <= year <= 9999:
        raise ReportRangeError("year must be between 1 and 9999")
    if not 1 <= month <= 12:
        raise ReportRangeError("month must be between 1 and 12")

    start = date(year, month, 1)
    return start, last_day_of_month(start)


def week_range(reference: date) -> tuple[date, date]:
    """返回 ``reference`` 所在的周一至周日区间."""

    days_since_start = (reference.weekday() - WEEK_START) % 7
    start = reference - timedelta(days=days_since_start)
    # 公元 9999 年最后一周以 date.max 为迄日
    if (date.max - start).days < 6:
        return start, date.max
    return start, start + timedelta(days=6)


def resolve_period_range(
    period: BudgetPeriod, reference: date, budget_start: date
) -> tuple[date, date]:
    """解析 ``reference`` 所属的预算周期.

    预算生效日期晚于周期起日时, 以生效日期为起日;
    周期迄日不变.
    """

    if period == BudgetPeriod.WEEKLY:
        natural_start, end = week_range(reference)
    else:
        natural_start = first_day_of_month(reference)
        end = last_day_of_month(reference)
    return max(natural_start, budget_start), end


def parse_month(reference: str) -> tuple[int, int]:
    """将 ``YYYY-MM`` 格式的字符串转换为年份与月份."""

    ref = reference.strip()
    if not ref:
        raise ReportRangeError("please provide a month in YYYY-MM format")
    try:
        target = datetime.strptime(ref, "%Y-%m").date()
    except ValueError as exc:  # noqa: TRY003
        raise ReportRangeError("invalid month format, use YYYY-MM") from exc
    return target.year, target.month
