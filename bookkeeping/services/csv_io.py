"""交易 CSV 导出与导入.

文件使用带 BOM 的 UTF-8, CRLF 换行, 按 RFC 4180 转义. 栏位固定为::

    日期,類型,金額,分類,帳戶,備註
"""
from __future__ import annotations

import csv
import io
import logging
import re
import threading
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import BinaryIO, Iterator, Optional

from sqlalchemy.orm import Session

from .. import crud
from ..config import (
    CSV_MAX_FILE_SIZE_BYTES,
    CSV_MAX_IMPORT_ROWS,
    IMPORTED_EXPENSE_CATEGORY_STYLE,
    IMPORTED_INCOME_CATEGORY_STYLE,
)
from ..exceptions import ImportCancelledError
from ..models import Category, Transaction, TransactionType
from ..schemas import ImportResult
from .sanitizer import sanitize_field

logger = logging.getLogger(__name__)

CSV_HEADER = ("日期", "類型", "金額", "分類", "帳戶", "備註")
CSV_NEWLINE = "\r\n"
UTF8_BOM = b"\xef\xbb\xbf"
TEMPLATE_SAMPLE_ROW = ("2026-02-15", "支出", "120", "餐飲", "現金", "午餐")

TYPE_LABELS = {
    TransactionType.INCOME: "收入",
    TransactionType.EXPENSE: "支出",
}
TYPE_ALIASES = {
    "收入": TransactionType.INCOME,
    "income": TransactionType.INCOME,
    "支出": TransactionType.EXPENSE,
    "expense": TransactionType.EXPENSE,
}

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
# 只接受普通十进制写法, 千分位可选; 拒绝科学计数法与下划线分隔
_AMOUNT_PATTERN = re.compile(r"^[+-]?(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?$")


def format_amount(amount: Decimal) -> str:
    """将金额格式化为不带尾随零的十进制文本."""

    text = format(amount, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def _render_rows(rows: list[tuple[str, ...]]) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator=CSV_NEWLINE, quoting=csv.QUOTE_MINIMAL)
    writer.writerow(CSV_HEADER)
    writer.writerows(rows)
    return UTF8_BOM + buffer.getvalue().encode("utf-8")


def export_transactions(
    session: Session,
    start_date: date | None = None,
    end_date: date | None = None,
) -> bytes:
    """导出未删除的交易, 可按日期区间（含两端）过滤."""

    categories = {category.id: category.name for category in crud.list_categories(session)}
    accounts = {account.id: account.name for account in crud.list_accounts(session)}

    rows = [
        (
            transaction.date.strftime("%Y-%m-%d"),
            TYPE_LABELS[transaction.type],
            format_amount(transaction.amount),
            categories.get(transaction.category_id, ""),
            accounts.get(transaction.account_id, ""),
            transaction.note or "",
        )
        for transaction in crud.list_transactions_between(session, start_date, end_date)
    ]
    logger.info("Exported %s transactions to CSV", len(rows))
    return _render_rows(rows)


def build_import_template() -> bytes:
    return _render_rows([TEMPLATE_SAMPLE_ROW])


def _strip_terminator(record: str) -> str:
    if record.endswith("\r\n"):
        return record[:-2]
    if record.endswith(("\n", "\r")):
        return record[:-1]
    return record


def iter_records(lines: Iterator[str]) -> Iterator[tuple[int, str]]:
    """把物理行组合为 CSV 记录.

    引号数量为奇数时继续拼接下一行, 因此带引号的栏位可以跨行.
    逐一产出记录结束所在的物理行号与记录文本.
    """

    buffer: list[str] = []
    quotes = 0
    line_number = 0
    for line in lines:
        line_number += 1
        buffer.append(line)
        quotes += line.count('"')
        if quotes % 2 == 0:
            yield line_number, _strip_terminator("".join(buffer))
            buffer = []
            quotes = 0
    if buffer:
        yield line_number, _strip_terminator("".join(buffer))


def parse_record(record: str) -> Optional[list[str]]:
    try:
        return next(csv.reader([record]), [])
    except csv.Error:
        return None


def parse_date(value: str) -> Optional[date]:
    value = value.strip()
    if not _DATE_PATTERN.match(value):
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        return None


def parse_transaction_type(value: str) -> Optional[TransactionType]:
    return TYPE_ALIASES.get(value.strip().lower())


def parse_amount(value: str) -> Optional[Decimal]:
    text = value.strip()
    if not _AMOUNT_PATTERN.match(text):
        return None
    try:
        amount = Decimal(text.replace(",", ""))
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    return amount


def _new_category(name: str, transaction_type: TransactionType) -> Category:
    style = (
        IMPORTED_INCOME_CATEGORY_STYLE
        if transaction_type == TransactionType.INCOME
        else IMPORTED_EXPENSE_CATEGORY_STYLE
    )
    return Category(
        name=name,
        icon=style["icon"],
        type=transaction_type,
        color=style["color"],
        sort_order=0,
        is_default=False,
    )


class _ImportBatch:
    """已通过校验的行, 调用 ``persist`` 前不写入会话."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self.accounts: dict[str, int] = {}
        for account in crud.list_accounts(session):
            self.accounts.setdefault(account.name.strip().casefold(), account.id)
        self.categories: dict[tuple[TransactionType, str], Category] = {}
        for category in crud.list_categories(session):
            self.categories.setdefault((category.type, category.name.casefold()), category)
        self.pending_categories: list[Category] = []
        self.transactions: list[Transaction] = []

    def resolve_category(self, name: str, transaction_type: TransactionType) -> Category:
        key = (transaction_type, name.casefold())
        category = self.categories.get(key)
        if category is None:
            category = _new_category(name, transaction_type)
            self.categories[key] = category
            self.pending_categories.append(category)
        return category

    def validate(self, fields: Optional[list[str]]) -> Optional[str]:
        """校验通过时暂存该行并返回 None, 否则返回第一个错误信息."""

        if fields is None or len(fields) != len(CSV_HEADER):
            return "incorrect field count, expected 6"

        record_date = parse_date(fields[0])
        if record_date is None:
            return "invalid date format, use YYYY-MM-DD"

        transaction_type = parse_transaction_type(fields[1])
        if transaction_type is None:
            return "invalid transaction type"

        amount = parse_amount(fields[2])
        if amount is None:
            return "amount must be greater than 0"

        category_name = sanitize_field(fields[3])
        if category_name is None:
            return "category cannot be empty"

        account_name = sanitize_field(fields[4])
        if account_name is None:
            return "account cannot be empty"
        account_id = self.accounts.get(account_name.casefold())
        if account_id is None:
            return f"account not found: {account_name}"

        self.transactions.append(
            Transaction(
                date=record_date,
                amount=amount,
                type=transaction_type,
                category=self.resolve_category(category_name, transaction_type),
                account_id=account_id,
                note=sanitize_field(fields[5]),
            )
        )
        return None

    def persist(self) -> None:
        for category in self.pending_categories:
            category.sort_order = crud.max_category_sort_order(self.session, category.type) + 1
            self.session.add(category)
            self.session.flush()
        self.session.add_all(self.transactions)
        self.session.flush()


def import_transactions(
    session: Session,
    stream: BinaryIO,
    file_size: int,
    cancel_event: threading.Event | None = None,
) -> ImportResult:
    """从 CSV 字节流导入交易.

    单行错误记录在返回的 :class:`ImportResult` 中; 至少一行成功时才一次性写入.
    设置 ``cancel_event`` 会抛出 :class:`ImportCancelledError`, 不写入任何数据.
    """

    result = ImportResult()
    if file_size > CSV_MAX_FILE_SIZE_BYTES:
        result.add_error(0, "CSV file size cannot exceed 5MB")
        return result

    batch = _ImportBatch(session)
    text = io.TextIOWrapper(stream, encoding="utf-8-sig", newline="")
    try:
        records = iter_records(iter(text))
        if next(records, None) is None:
            result.add_error(0, "no valid data")
            return result

        for line_number, record in records:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("CSV import cancelled at line %s", line_number)
                raise ImportCancelledError("CSV import was cancelled")
            if not record.strip():
                continue

            result.total_rows += 1
            if result.total_rows > CSV_MAX_IMPORT_ROWS:
                result.success_count = 0
                result.failed_count = result.total_rows
                result.add_error(line_number, "CSV import cannot exceed 10,000 rows")
                logger.warning("CSV import rejected: more than %s rows", CSV_MAX_IMPORT_ROWS)
                return result

            error = batch.validate(parse_record(record))
            if error is None:
                result.success_count += 1
            else:
                result.failed_count += 1
                result.add_error(line_number, error)
    except UnicodeDecodeError:
        logger.warning("CSV import rejected: file is not valid UTF-8")
        rejected = ImportResult()
        rejected.add_error(0, "CSV file must be UTF-8 encoded")
        return rejected
    finally:
        text.detach()

    if result.total_rows == 0:
        result.add_error(0, "no valid data")
        return result

    if result.success_count > 0:
        batch.persist()

    logger.info(
        "CSV import finished: %s rows, %s imported, %s failed",
        result.total_rows,
        result.success_count,
        result.failed_count,
    )
    return result
