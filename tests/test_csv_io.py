import io
import threading
from datetime import date
from decimal import Decimal

import pytest

from bookkeeping import crud
from bookkeeping.exceptions import ImportCancelledError
from bookkeeping.models import TransactionType
from bookkeeping.services import csv_io
from bookkeeping.services.sanitizer import sanitize_text

HEADER = "日期,類型,金額,分類,帳戶,備註\r\n"


def _import(session, text, bom=True):
    raw = (csv_io.UTF8_BOM if bom else b"") + text.encode("utf-8")
    return csv_io.import_transactions(session, io.BytesIO(raw), len(raw))


@pytest.fixture
def ledger(make_account, make_category):
    return make_account("現金"), make_category("餐飲")


def test_export_writes_bom_header_and_escapes_fields(session, ledger, make_transaction):
    account, food = ledger
    make_transaction(food, account, "120.5", note='說 "好", 再見')

    content = csv_io.export_transactions(session)

    assert content.startswith(b"\xef\xbb\xbf")
    text = content[3:].decode("utf-8")
    assert text == HEADER + '2026-02-15,支出,120.5,餐飲,現金,"說 ""好"", 再見"\r\n'


def test_export_filters_by_inclusive_dates(session, ledger, make_transaction):
    account, food = ledger
    make_transaction(food, account, "1", on=date(2026, 1, 31))
    make_transaction(food, account, "2", on=date(2026, 2, 1))
    make_transaction(food, account, "3", on=date(2026, 2, 28))
    make_transaction(food, account, "4", on=date(2026, 3, 1))

    text = csv_io.export_transactions(
        session, date(2026, 2, 1), date(2026, 2, 28)
    ).decode("utf-8-sig")

    rows = text.split("\r\n")[1:-1]
    assert [row.split(",")[2] for row in rows] == ["2", "3"]


def test_template_has_header_and_sample_row():
    text = csv_io.build_import_template().decode("utf-8-sig")

    assert text == HEADER + "2026-02-15,支出,120,餐飲,現金,午餐\r\n"


def test_round_trip_preserves_multiline_note(session, ledger, make_transaction):
    account, food = ledger
    note = 'line one, "quoted"\r\nline two'
    make_transaction(food, account, "88.25", note=note)

    exported = csv_io.export_transactions(session)
    result = csv_io.import_transactions(session, io.BytesIO(exported), len(exported))

    assert (result.total_rows, result.success_count, result.failed_count) == (1, 1, 0)
    rows = crud.list_transactions_between(session)
    assert len(rows) == 2
    imported = rows[-1]
    assert imported.note == note
    assert imported.amount == Decimal("88.25")
    assert imported.category_id == food.id
    assert imported.account_id == account.id


def test_invalid_date_reported_on_its_line(session, ledger):
    result = _import(
        session,
        HEADER
        + "2026/02/15,支出,120,餐飲,現金,午餐\r\n"
        + "2026-02-16,Expense,80,餐飲,現金,晚餐\r\n",
    )

    assert (result.total_rows, result.success_count, result.failed_count) == (2, 1, 1)
    assert [(error.line_number, error.message) for error in result.errors] == [
        (2, "invalid date format, use YYYY-MM-DD")
    ]
    assert crud.count_transactions(session) == 1


def test_row_validation_messages(session, ledger):
    result = _import(
        session,
        HEADER
        + "2026-02-15,支出,120,餐飲,現金\r\n"
        + "2026-02-15,轉帳,120,餐飲,現金,\r\n"
        + "2026-02-15,支出,0,餐飲,現金,\r\n"
        + "2026-02-15,支出,12,  ,現金,\r\n"
        + "2026-02-15,支出,12,餐飲,,\r\n"
        + "2026-02-15,支出,12,餐飲,不存在,\r\n",
        bom=False,
    )

    assert result.success_count == 0
    assert result.failed_count == 6
    assert [(error.line_number, error.message) for error in result.errors] == [
        (2, "incorrect field count, expected 6"),
        (3, "invalid transaction type"),
        (4, "amount must be greater than 0"),
        (5, "category cannot be empty"),
        (6, "account cannot be empty"),
        (7, "account not found: 不存在"),
    ]
    assert crud.count_transactions(session) == 0


def test_line_numbers_follow_physical_lines(session, ledger):
    result = _import(
        session,
        HEADER
        + '2026-02-15,支出,10,餐飲,現金,"first\nsecond"\r\n'
        + "\r\n"
        + "bad-date,支出,10,餐飲,現金,\r\n",
    )

    assert result.total_rows == 2
    assert [(error.line_number, error.message) for error in result.errors] == [
        (5, "invalid date format, use YYYY-MM-DD")
    ]


def test_unknown_category_created_once_with_import_style(session, ledger):
    account, _ = ledger
    result = _import(
        session,
        HEADER
        + "2026-02-15,支出,10,寵物,現金,\r\n"
        + "2026-02-16,支出,20,寵物,現金,\r\n"
        + "2026-02-16,收入,30,寵物,現金,\r\n",
    )

    assert result.success_count == 3
    expense = [c for c in crud.list_categories(session, TransactionType.EXPENSE) if c.name == "寵物"]
    income = [c for c in crud.list_categories(session, TransactionType.INCOME) if c.name == "寵物"]
    assert len(expense) == 1 and len(income) == 1
    assert (expense[0].icon, expense[0].color, expense[0].is_default) == ("📎", "#7C8798", False)
    assert (income[0].icon, income[0].color) == ("💰", "#4CAF50")
    assert crud.count_transactions(session, category_id=expense[0].id) == 2


def test_lookups_are_case_insensitive_and_sanitized(session, make_account, make_category):
    make_account("Cash")
    make_category("Food")

    result = _import(
        session,
        HEADER + "2026-02-15,expense,45,<b>food</b>,  CASH ,<script>alert(1)</script>午餐\r\n",
    )

    assert result.success_count == 1
    imported = crud.list_transactions_between(session)[0]
    assert imported.note == "午餐"
    assert len(crud.list_categories(session)) == 1


def test_header_only_and_empty_files(session):
    for text in (HEADER, ""):
        result = _import(session, text)
        assert result.total_rows == 0
        assert [(error.line_number, error.message) for error in result.errors] == [
            (0, "no valid data")
        ]


def test_file_size_limit(session):
    result = csv_io.import_transactions(
        session, io.BytesIO(b""), 5 * 1024 * 1024 + 1
    )

    assert [(error.line_number, error.message) for error in result.errors] == [
        (0, "CSV file size cannot exceed 5MB")
    ]


def test_row_limit_rejects_whole_file(session, ledger):
    rows = "2026-02-15,支出,1,餐飲,現金,\r\n" * 10_001

    result = _import(session, HEADER + rows)

    assert result.total_rows == 10_001
    assert result.success_count == 0
    assert result.failed_count == 10_001
    assert result.errors[-1].message == "CSV import cannot exceed 10,000 rows"
    assert crud.count_transactions(session) == 0


def test_cancelled_import_persists_nothing(session, ledger):
    cancel = threading.Event()
    cancel.set()
    raw = (HEADER + "2026-02-15,支出,1,餐飲,現金,\r\n").encode("utf-8")

    with pytest.raises(ImportCancelledError):
        csv_io.import_transactions(session, io.BytesIO(raw), len(raw), cancel_event=cancel)
    assert crud.count_transactions(session) == 0


def test_sanitize_text_leaves_plain_text_untouched():
    assert sanitize_text('a "b"\r\nc & d') == 'a "b"\r\nc & d'
    assert sanitize_text("<style>p {}</style><i>x &amp; y</i>") == "x &amp; y"
    assert sanitize_text(None) == ""


def test_sanitize_text_keeps_escaped_markup_escaped():
    cleaned = sanitize_text("<b>x</b>&lt;script&gt;alert(1)&lt;/script&gt;")

    assert "<" not in cleaned
    assert cleaned.startswith("x&lt;script&gt;")


def test_import_never_stores_live_script_tags(session, ledger):
    result = _import(
        session,
        HEADER + "2026-02-15,支出,10,餐飲,現金,<i>a</i>&lt;script&gt;alert(1)&lt;/script&gt;\r\n",
    )

    assert result.success_count == 1
    note = crud.list_transactions_between(session)[0].note
    assert "<script>" not in note
    assert note.startswith("a&lt;script&gt;")


@pytest.mark.parametrize("amount", ["1e3", "1_000", "1,00", "Infinity", "0x10", "-5", "0"])
def test_amount_rejects_non_decimal_notation(session, ledger, amount):
    result = _import(session, HEADER + f'2026-02-15,支出,"{amount}",餐飲,現金,\r\n')

    assert [(error.line_number, error.message) for error in result.errors] == [
        (2, "amount must be greater than 0")
    ]


@pytest.mark.parametrize("amount, expected", [("1,000", "1000"), ("12.50", "12.5"), (" 7 ", "7")])
def test_amount_accepts_plain_and_grouped_decimals(amount, expected):
    assert csv_io.parse_amount(amount) == Decimal(expected)
