"""MCP 服务端使用的业务服务."""

from .accounts import get_balance, list_account_balances
from .budgets import check_budget_status, get_all_with_progress
from .csv_io import build_import_template, export_transactions, import_transactions
from .periods import month_range, parse_month, resolve_period_range
from .reports import get_dashboard, get_monthly_report
from .sanitizer import sanitize_text
from .transactions import create_transaction

__all__ = [
    "build_import_template",
    "check_budget_status",
    "create_transaction",
    "export_transactions",
    "get_all_with_progress",
    "get_balance",
    "get_dashboard",
    "get_monthly_report",
    "import_transactions",
    "list_account_balances",
    "month_range",
    "parse_month",
    "resolve_period_range",
    "sanitize_text",
]
