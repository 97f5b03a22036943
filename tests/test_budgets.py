from datetime import date
from decimal import Decimal

import pytest

from bookkeeping.exceptions import BookKeepingError
from bookkeeping.models import BudgetPeriod, TransactionType
from bookkeeping.schemas import BudgetCreate
from bookkeeping.services import budgets
from bookkeeping.services.periods import resolve_period_range, week_range

WEDNESDAY = date(2026, 2, 18)


@pytest.mark.parametrize(
    "spent, rate, status",
    [
        ("7999", Decimal("79.99"), "normal"),
        ("8000", Decimal("80"), "warning"),
        ("10000", Decimal("100"), "warning"),
        ("10001", Decimal("100.01"), "exceeded"),
    ],
)
def test_status_tiers(session, make_account, make_category, make_transaction,
                      make_budget, spent, rate, status):
    category = make_category()
    make_budget(category, "10000")
    make_transaction(category, make_account(), spent, on=date(2026, 2, 3))

    progress = budgets.check_budget_status(session, category.id, WEDNESDAY)

    assert progress.usage_rate == rate
    assert progress.status == status


def test_week_range_starts_on_monday():
    assert week_range(WEDNESDAY) == (date(2026, 2, 16), date(2026, 2, 22))
    assert week_range(date(2026, 2, 22)) == (date(2026, 2, 16), date(2026, 2, 22))


def test_weekly_window_clipped_by_start_date(session, make_account, make_category,
                                             make_transaction, make_budget):
    category = make_category()
    account = make_account()
    make_budget(category, "1000", period=BudgetPeriod.WEEKLY, start=WEDNESDAY)
    make_transaction(category, account, "300", on=date(2026, 2, 17))
    make_transaction(category, account, "200", on=date(2026, 2, 19))

    progress = budgets.check_budget_status(session, category.id, date(2026, 2, 20))

    assert (progress.period_start, progress.period_end) == (WEDNESDAY, date(2026, 2, 22))
    assert progress.spent_amount == Decimal("200")
    assert resolve_period_range(BudgetPeriod.MONTHLY, WEDNESDAY, date(2025, 1, 1)) == (
        date(2026, 2, 1),
        date(2026, 2, 28),
    )


def test_budget_starting_later_is_skipped(session, make_category, make_budget):
    active = make_category("餐飲", sort_order=2)
    later = make_category("交通", sort_order=1)
    make_budget(active, "500")
    make_budget(later, "500", start=date(2026, 3, 5))

    rows = budgets.get_all_with_progress(session, WEDNESDAY)

    assert [row.category_name for row in rows] == ["餐飲"]
    assert budgets.check_budget_status(session, later.id, WEDNESDAY) is None


def test_monthly_budget_resets_each_month(session, make_account, make_category,
                                          make_transaction, make_budget):
    category = make_category()
    account = make_account()
    make_budget(category, "1000")
    make_transaction(category, account, "900", on=date(2026, 1, 20))
    make_transaction(category, account, "100", on=date(2026, 2, 2))

    january = budgets.check_budget_status(session, category.id, date(2026, 1, 31))
    february = budgets.check_budget_status(session, category.id, WEDNESDAY)

    assert january.status == "warning"
    assert february.spent_amount == Decimal("100")
    assert february.status == "normal"


def test_monthly_budget_preferred_over_weekly(session, make_category, make_budget):
    category = make_category()
    make_budget(category, "100", period=BudgetPeriod.WEEKLY)
    monthly = make_budget(category, "2000", period=BudgetPeriod.MONTHLY)

    progress = budgets.check_budget_status(session, category.id, WEDNESDAY)

    assert progress.budget_id == monthly.id
    assert budgets.check_budget_status(session, 999, WEDNESDAY) is None


def test_create_budget_validation(session, make_category):
    expense = make_category()
    income = make_category("薪資", TransactionType.INCOME)

    created = budgets.create_budget(
        session, BudgetCreate(category_id=expense.id, amount="3000"), today=WEDNESDAY
    )
    assert created.start_date == date(2026, 2, 1)

    with pytest.raises(BookKeepingError, match="already exists"):
        budgets.create_budget(
            session, BudgetCreate(category_id=expense.id, amount="10"), today=WEDNESDAY
        )
    with pytest.raises(BookKeepingError, match="only supports expense categories"):
        budgets.create_budget(
            session, BudgetCreate(category_id=income.id, amount="10"), today=WEDNESDAY
        )


def test_update_budget_keeps_start_date(session, make_category, make_budget):
    category = make_category()
    budget = make_budget(category, "500", start=date(2026, 1, 10))

    updated = budgets.update_budget(
        session,
        budget.id,
        BudgetCreate(category_id=category.id, amount="750", period=BudgetPeriod.WEEKLY),
    )

    assert updated.amount == Decimal("750")
    assert updated.period == BudgetPeriod.WEEKLY
    assert updated.start_date == date(2026, 1, 10)
    assert budgets.delete_budget(session, budget.id) is True
    assert budgets.get_all_with_progress(session, WEDNESDAY) == []


@pytest.mark.parametrize(
    "reference, expected",
    [
        (date(9999, 12, 27), (date(9999, 12, 27), date(9999, 12, 31))),
        (date(9999, 12, 31), (date(9999, 12, 27), date(9999, 12, 31))),
        (date(1, 1, 3), (date(1, 1, 1), date(1, 1, 7))),
    ],
)
def test_week_range_at_calendar_edges(reference, expected):
    assert week_range(reference) == expected


@pytest.mark.parametrize(
    "period, expected",
    [
        (BudgetPeriod.MONTHLY, (date(9999, 12, 1), date(9999, 12, 31))),
        (BudgetPeriod.WEEKLY, (date(9999, 12, 27), date(9999, 12, 31))),
    ],
)
def test_budget_window_in_last_month_of_calendar(session, make_account, make_category,
                                                 make_transaction, make_budget,
                                                 period, expected):
    category = make_category()
    make_budget(category, "100", period=period, start=date(9999, 1, 1))
    make_transaction(category, make_account(), "40", on=date(9999, 12, 29))

    progress = budgets.check_budget_status(session, category.id, date(9999, 12, 29))

    assert (progress.period_start, progress.period_end) == expected
    assert progress.spent_amount == Decimal("40")
