"""应用配置模块"""
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

DEFAULT_SQLITE_PATH = Path(os.getenv("BOOKKEEPING_SQLITE_PATH", "data/bookkeeping.db"))

DB_HOST = os.getenv("DB_HOST")
DB_PORT = os.getenv("DB_PORT", "3306")
DB_USER = os.getenv("DB_USER", "bookkeeping_user")
DB_PASSWORD = os.getenv("DB_PASSWORD", "bookkeeping_password")
DB_NAME = os.getenv("DB_NAME", "bookkeeping")


def _build_database_url() -> str:
    """Return the database URL, defaulting to a local SQLite database."""

    url = os.getenv("DATABASE_URL")
    if url:
        return url
    if DB_HOST:
        return (
            f"mysql+pymysql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
            "?charset=utf8mb4"
        )
    return f"sqlite:///{DEFAULT_SQLITE_PATH}"


DATABASE_URL = _build_database_url()

SERVER_HOST = os.getenv("BOOKKEEPING_HOST", "0.0.0.0")
SERVER_PORT = int(os.getenv("BOOKKEEPING_PORT", "8000"))

CSV_MAX_FILE_SIZE_BYTES = 5 * 1024 * 1024
CSV_MAX_IMPORT_ROWS = 10_000

DEFAULT_CURRENCY = "TWD"
DEFAULT_CATEGORY_COLOR = "#6C757D"
UNCATEGORIZED_NAME = "未分類"

IMPORTED_INCOME_CATEGORY_STYLE = {"icon": "💰", "color": "#4CAF50"}
IMPORTED_EXPENSE_CATEGORY_STYLE = {"icon": "📎", "color": "#7C8798"}

DEFAULT_CATEGORIES = [
    {"name": "餐飲", "icon": "🍽️", "type": "expense", "color": "#FF6384", "sort_order": 1},
    {"name": "交通", "icon": "🚗", "type": "expense", "color": "#36A2EB", "sort_order": 2},
    {"name": "娛樂", "icon": "🎮", "type": "expense", "color": "#FFCE56", "sort_order": 3},
    {"name": "購物", "icon": "🛒", "type": "expense", "color": "#4BC0C0", "sort_order": 4},
    {"name": "居住", "icon": "🏠", "type": "expense", "color": "#9966FF", "sort_order": 5},
    {"name": "醫療", "icon": "🏥", "type": "expense", "color": "#FF9F40", "sort_order": 6},
    {"name": "教育", "icon": "📚", "type": "expense", "color": "#C9CBCF", "sort_order": 7},
    {"name": "其他", "icon": "📎", "type": "expense", "color": "#7C8798", "sort_order": 8},
    {"name": "薪資", "icon": "💰", "type": "income", "color": "#4CAF50", "sort_order": 1},
    {"name": "獎金", "icon": "🎁", "type": "income", "color": "#8BC34A", "sort_order": 2},
    {"name": "投資收益", "icon": "📈", "type": "income", "color": "#00BCD4", "sort_order": 3},
    {"name": "其他收入", "icon": "💵", "type": "income", "color": "#009688", "sort_order": 4},
]

DEFAULT_ACCOUNTS = [
    {"name": "現金", "type": "cash", "icon": "💵"},
    {"name": "銀行帳戶", "type": "bank", "icon": "🏦"},
    {"name": "信用卡", "type": "credit_card", "icon": "💳"},
]
