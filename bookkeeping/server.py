"""记账 MCP 服务端."""
from __future__ import annotations

import asyncio
import base64
import binascii
import io
import logging
from datetime import date
from decimal import Decimal
from typing import Annotated, Callable, Literal, TypeVar

from mcp.server.fastmcp import FastMCP
from pydantic import Field as PydanticField, ValidationError
from sqlalchemy.orm import Session

from . import crud
from .config import SERVER_HOST, SERVER_PORT
from .database import init_database, session_scope
from .exceptions import BookKeepingError
from .models import AccountType, BudgetPeriod, Transaction, TransactionType
from .schemas import (
    AccountBalanceResult,
    AccountCreate,
    AccountListResult,
    AccountRead,
    BudgetCreate,
    BudgetProgressListResult,
    BudgetRead,
    BudgetStatusResult,
    CategoryCreate,
    CategoryListResult,
    CategoryRead,
    CsvExportResult,
    DashboardSnapshot,
    DeleteResult,
    ImportResult,
    MonthlyReport,
    TransactionCreate,
    TransactionPage,
    TransactionRead,
    TransactionRecordResult,
)
from .services import accounts as account_service
from .services import budgets as budget_service
from .services import categories as category_service
from .services import transactions as transaction_service
from .services import (
    check_budget_status as evaluate_budget_status,
    create_transaction,
    export_transactions,
    get_all_with_progress,
    get_balance,
    get_dashboard as build_dashboard,
    get_monthly_report as build_monthly_report,
    import_transactions,
    list_account_balances,
    parse_month,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

mcp = FastMCP("记账服务", host=SERVER_HOST, port=SERVER_PORT)

T = TypeVar("T")


def _with_session(action: Callable[[Session], T]) -> T:
    with session_scope() as session:
        return action(session)


async def _run(label: str, action: Callable[[Session], T]) -> T:
    """在工作线程中执行数据库操作, 并把异常转换为工具错误."""

    try:
        return await asyncio.to_thread(_with_session, action)
    except BookKeepingError as exc:
        raise ValueError(str(exc)) from exc
    except ValidationError as exc:
        logger.exception("%s数据解析失败: %s", label, exc)
        raise ValueError(f"{label}数据格式不正确，请稍后重试。") from exc
    except Exception as exc:  # noqa: BLE001
        logger.exception("%s失败: %s", label, exc)
        raise ValueError(f"{label}失败：{exc}") from exc


def _parse_optional_date(value: str | None, field_name: str) -> date | None:
    if value is None or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise ValueError(f"{field_name} 格式不正确，请使用 YYYY-MM-DD。") from exc


@mcp.tool(
    name="list_accounts",
    description="获取所有帐户及其当前余额。",
    structured_output=True,
)
async def list_accounts() -> AccountListResult:
    """获取所有帐户及其当前余额."""

    def action(session: Session) -> AccountListResult:
        balances = list_account_balances(session)
        return AccountListResult(total=len(balances), accounts=balances)

    return await _run("获取帐户", action)


@mcp.tool(
    name="get_account_balance",
    description="查询单一帐户的当前余额（期初余额 + 收入 − 支出）。",
    structured_output=True,
)
async def get_account_balance(
    account_id: Annotated[int, PydanticField(description="帐户 ID。")],
) -> AccountBalanceResult:
    """查询帐户余额."""

    def action(session: Session) -> AccountBalanceResult:
        return AccountBalanceResult(
            account_id=account_id, balance=get_balance(session, account_id)
        )

    return await _run("查询帐户余额", action)


@mcp.tool(
    name="list_categories",
    description="获取分类列表，可按 income 或 expense 过滤。",
    structured_output=True,
)
async def list_categories(
    type: Annotated[
        Literal["income", "expense"] | None,
        PydanticField(description="分类类型，可选值为 income 或 expense。"),
    ] = None,
) -> CategoryListResult:
    """获取分类列表."""

    category_type = TransactionType(type) if type else None

    def action(session: Session) -> CategoryListResult:
        categories = [
            CategoryRead.model_validate(category)
            for category in category_service.list_categories(session, category_type)
        ]
        return CategoryListResult(total=len(categories), categories=categories)

    return await _run("获取分类", action)


@mcp.tool(
    name="record_transaction",
    description="记录一笔收入或支出，并回传该分类的预算状态。",
    structured_output=True,
)
async def record_transaction(
    amount: Annotated[float, PydanticField(description="交易金额，必须为正数。")],
    type: Annotated[
        Literal["income", "expense"],
        PydanticField(description="交易类型，可选值为 income 或 expense。"),
    ],
    category_id: Annotated[int, PydanticField(description="分类 ID，类型需与交易一致。")],
    account_id: Annotated[int, PydanticField(description="帐户 ID。")],
    date: Annotated[
        str | None,
        PydanticField(description="交易日期，格式 YYYY-MM-DD，默认为今天，不可晚于今天。"),
    ] = None,
    note: Annotated[
        str | None,
        PydanticField(description="备注，最多 500 字，可选。"),
    ] = None,
) -> TransactionRecordResult:
    """记录一笔交易."""

    payload = _transaction_payload(amount, type, category_id, account_id, date, note)

    def action(session: Session) -> TransactionRecordResult:
        transaction = create_transaction(session, payload)
        return _transaction_result(session, transaction, "💾 交易记录成功！")

    return await _run("记录交易", action)


def _transaction_payload(
    amount: float,
    type: str,
    category_id: int,
    account_id: int,
    date: str | None,
    note: str | None,
) -> TransactionCreate:
    transaction_date = _parse_optional_date(date, "date")
    try:
        return TransactionCreate(
            date=transaction_date or _today(),
            amount=Decimal(str(amount)),
            type=type,
            category_id=category_id,
            account_id=account_id,
            note=note,
        )
    except ValidationError as exc:
        logger.warning("交易数据校验失败: %s", exc)
        raise ValueError("交易数据不合法，请检查金额、日期与备注。") from exc


def _transaction_result(
    session: Session, transaction: Transaction, message: str
) -> TransactionRecordResult:
    record = TransactionRead.model_validate(transaction)
    status = None
    if transaction.type == TransactionType.EXPENSE:
        status = evaluate_budget_status(session, transaction.category_id, transaction.date)
    return TransactionRecordResult(message=message, transaction=record, budget_status=status)


@mcp.tool(
    name="update_transaction",
    description="修改一笔交易的全部栏位，并回传修改后分类的预算状态。",
    structured_output=True,
)
async def update_transaction(
    transaction_id: Annotated[int, PydanticField(description="交易 ID。")],
    amount: Annotated[float, PydanticField(description="交易金额，必须为正数。")],
    type: Annotated[
        Literal["income", "expense"],
        PydanticField(description="交易类型，可选值为 income 或 expense。"),
    ],
    category_id: Annotated[int, PydanticField(description="分类 ID，类型需与交易一致。")],
    account_id: Annotated[int, PydanticField(description="帐户 ID。")],
    date: Annotated[
        str | None,
        PydanticField(description="交易日期，格式 YYYY-MM-DD，默认为今天，不可晚于今天。"),
    ] = None,
    note: Annotated[
        str | None,
        PydanticField(description="备注，最多 500 字，留空则清除。"),
    ] = None,
) -> TransactionRecordResult:
    """修改交易."""

    payload = _transaction_payload(amount, type, category_id, account_id, date, note)

    def action(session: Session) -> TransactionRecordResult:
        transaction = transaction_service.update_transaction(
            session, transaction_id, payload, _today()
        )
        if transaction is None:
            raise BookKeepingError(f"transaction not found: {transaction_id}")
        return _transaction_result(session, transaction, "✏️ 交易已更新。")

    return await _run("修改交易", action)


@mcp.tool(
    name="delete_transaction",
    description="删除一笔交易，删除后不再计入余额、报表与预算。",
    structured_output=True,
)
async def delete_transaction(
    transaction_id: Annotated[int, PydanticField(description="交易 ID。")],
) -> DeleteResult:
    """删除交易."""

    def action(session: Session) -> DeleteResult:
        deleted = transaction_service.soft_delete_transaction(session, transaction_id)
        return DeleteResult(
            id=transaction_id,
            deleted=deleted,
            message="🗑️ 交易已删除。" if deleted else "交易不存在。",
        )

    return await _run("删除交易", action)


@mcp.tool(
    name="list_transactions",
    description="分页查询交易（最新在前），可按日期、分类、帐户、金额区间与备注关键字过滤。",
    structured_output=True,
)
async def list_transactions(
    page: Annotated[int, PydanticField(description="页码，从 1 开始。", ge=1)] = 1,
    page_size: Annotated[
        int, PydanticField(description="每页笔数，默认 20，最多 100。", ge=1, le=100)
    ] = 20,
    start_date: Annotated[
        str | None,
        PydanticField(description="起始日期（含），格式 YYYY-MM-DD，可选。"),
    ] = None,
    end_date: Annotated[
        str | None,
        PydanticField(description="结束日期（含），格式 YYYY-MM-DD，可选。"),
    ] = None,
    category_id: Annotated[int | None, PydanticField(description="分类 ID，可选。")] = None,
    account_id: Annotated[int | None, PydanticField(description="帐户 ID，可选。")] = None,
    min_amount: Annotated[float | None, PydanticField(description="最小金额（含），可选。")] = None,
    max_amount: Annotated[float | None, PydanticField(description="最大金额（含），可选。")] = None,
    keyword: Annotated[
        str | None,
        PydanticField(description="备注关键字，不区分大小写，可选。"),
    ] = None,
) -> TransactionPage:
    """分页查询交易."""

    start = _parse_optional_date(start_date, "start_date")
    end = _parse_optional_date(end_date, "end_date")

    def action(session: Session) -> TransactionPage:
        rows, total = transaction_service.list_transactions(
            session,
            page,
            page_size,
            start_date=start,
            end_date=end,
            category_id=category_id,
            account_id=account_id,
            min_amount=_optional_decimal(min_amount),
            max_amount=_optional_decimal(max_amount),
            keyword=keyword,
        )
        return TransactionPage(
            page=page,
            page_size=page_size,
            total_count=total,
            transactions=[TransactionRead.model_validate(row) for row in rows],
        )

    return await _run("查询交易", action)


def _optional_decimal(value: float | None) -> Decimal | None:
    return None if value is None else Decimal(str(value))


@mcp.tool(
    name="create_account",
    description="新增帐户，名称不可与现有帐户重复。",
    structured_output=True,
)
async def create_account(
    name: Annotated[str, PydanticField(description="帐户名称，最多 50 字。")],
    type: Annotated[
        Literal["cash", "bank", "credit_card", "e_payment"],
        PydanticField(description="帐户类型。"),
    ] = "cash",
    icon: Annotated[str, PydanticField(description="显示图标，可选。")] = "",
    initial_balance: Annotated[float, PydanticField(description="期初余额，默认 0。")] = 0,
    currency: Annotated[str, PydanticField(description="三位币别代码，默认 TWD。")] = "TWD",
) -> AccountRead:
    """新增帐户."""

    def action(session: Session) -> AccountRead:
        payload = AccountCreate(
            name=name,
            type=AccountType(type),
            icon=icon,
            initial_balance=Decimal(str(initial_balance)),
            currency=currency,
        )
        return AccountRead.model_validate(account_service.create_account(session, payload))

    return await _run("新增帐户", action)


@mcp.tool(
    name="update_account",
    description="修改帐户名称、类型、图标与期初余额。",
    structured_output=True,
)
async def update_account(
    account_id: Annotated[int, PydanticField(description="帐户 ID。")],
    name: Annotated[str, PydanticField(description="帐户名称，最多 50 字。")],
    type: Annotated[
        Literal["cash", "bank", "credit_card", "e_payment"],
        PydanticField(description="帐户类型。"),
    ] = "cash",
    icon: Annotated[str, PydanticField(description="显示图标，可选。")] = "",
    initial_balance: Annotated[float, PydanticField(description="期初余额，默认 0。")] = 0,
) -> AccountRead:
    """修改帐户."""

    def action(session: Session) -> AccountRead:
        payload = AccountCreate(
            name=name,
            type=AccountType(type),
            icon=icon,
            initial_balance=Decimal(str(initial_balance)),
        )
        account = account_service.update_account(session, account_id, payload)
        if account is None:
            raise BookKeepingError(f"account not found: {account_id}")
        return AccountRead.model_validate(account)

    return await _run("修改帐户", action)


@mcp.tool(
    name="delete_account",
    description="删除帐户，仍有交易引用的帐户不会被删除。",
    structured_output=True,
)
async def delete_account(
    account_id: Annotated[int, PydanticField(description="帐户 ID。")],
) -> DeleteResult:
    """删除帐户."""

    def action(session: Session) -> DeleteResult:
        deleted = account_service.delete_account(session, account_id)
        return DeleteResult(
            id=account_id,
            deleted=deleted,
            message="🗑️ 帐户已删除。" if deleted else "帐户不存在或仍有交易引用。",
        )

    return await _run("删除帐户", action)


@mcp.tool(
    name="create_category",
    description="新增收入或支出分类，同类型内名称不可重复。",
    structured_output=True,
)
async def create_category(
    name: Annotated[str, PydanticField(description="分类名称，最多 50 字。")],
    type: Annotated[
        Literal["income", "expense"],
        PydanticField(description="分类类型，可选值为 income 或 expense。"),
    ],
    icon: Annotated[str, PydanticField(description="显示图标，可选。")] = "",
    color: Annotated[str | None, PydanticField(description="十六进制颜色，如 #FF6B6B，可选。")] = None,
    sort_order: Annotated[
        int | None,
        PydanticField(description="排序值，未提供时排在同类型最后。"),
    ] = None,
) -> CategoryRead:
    """新增分类."""

    def action(session: Session) -> CategoryRead:
        payload = CategoryCreate(
            name=name,
            type=TransactionType(type),
            icon=icon,
            color=color,
            sort_order=sort_order,
        )
        return CategoryRead.model_validate(category_service.create_category(session, payload))

    return await _run("新增分类", action)


@mcp.tool(
    name="update_category",
    description="修改分类名称、图标、颜色与排序，分类类型不可变更。",
    structured_output=True,
)
async def update_category(
    category_id: Annotated[int, PydanticField(description="分类 ID。")],
    name: Annotated[str, PydanticField(description="分类名称，最多 50 字。")],
    icon: Annotated[str, PydanticField(description="显示图标，可选。")] = "",
    color: Annotated[str | None, PydanticField(description="十六进制颜色，可选。")] = None,
    sort_order: Annotated[
        int | None,
        PydanticField(description="排序值，未提供时排在同类型最后。"),
    ] = None,
) -> CategoryRead:
    """修改分类."""

    def action(session: Session) -> CategoryRead:
        current = crud.get_category_by_id(session, category_id)
        if current is None:
            raise BookKeepingError(f"category not found: {category_id}")
        payload = CategoryCreate(
            name=name,
            type=current.type,
            icon=icon,
            color=color,
            sort_order=sort_order,
        )
        category = category_service.update_category(session, category_id, payload)
        return CategoryRead.model_validate(category)

    return await _run("修改分类", action)


@mcp.tool(
    name="delete_category",
    description="删除分类，默认分类或仍有交易引用的分类不会被删除。",
    structured_output=True,
)
async def delete_category(
    category_id: Annotated[int, PydanticField(description="分类 ID。")],
) -> DeleteResult:
    """删除分类."""

    def action(session: Session) -> DeleteResult:
        deleted = category_service.delete_category(session, category_id)
        return DeleteResult(
            id=category_id,
            deleted=deleted,
            message="🗑️ 分类已删除。" if deleted else "分类不存在、为默认分类或仍有交易引用。",
        )

    return await _run("删除分类", action)


@mcp.tool(
    name="delete_and_migrate_category",
    description="把分类下的交易迁移到同类型的目标分类后删除该分类。",
    structured_output=True,
)
async def delete_and_migrate_category(
    category_id: Annotated[int, PydanticField(description="要删除的分类 ID。")],
    target_category_id: Annotated[
        int, PydanticField(description="接收交易的目标分类 ID，类型需相同。")
    ],
) -> DeleteResult:
    """迁移交易并删除分类."""

    def action(session: Session) -> DeleteResult:
        deleted = category_service.delete_and_migrate_category(
            session, category_id, target_category_id
        )
        return DeleteResult(
            id=category_id,
            deleted=deleted,
            message=(
                "🔀 交易已迁移，分类已删除。"
                if deleted
                else "无法迁移：分类不存在、为默认分类或目标分类类型不同。"
            ),
        )

    return await _run("迁移分类", action)


@mcp.tool(
    name="create_budget",
    description="为支出分类新增月预算或周预算，每个分类每种周期只能有一笔。",
    structured_output=True,
)
async def create_budget(
    category_id: Annotated[int, PydanticField(description="支出分类 ID。")],
    amount: Annotated[float, PydanticField(description="预算金额，必须大于零。")],
    period: Annotated[
        Literal["monthly", "weekly"],
        PydanticField(description="预算周期，可选值为 monthly 或 weekly。"),
    ] = "monthly",
    start_date: Annotated[
        str | None,
        PydanticField(description="生效日期，格式 YYYY-MM-DD，默认为当月第一天。"),
    ] = None,
) -> BudgetRead:
    """新增预算."""

    start = _parse_optional_date(start_date, "start_date")

    def action(session: Session) -> BudgetRead:
        payload = BudgetCreate(
            category_id=category_id,
            amount=Decimal(str(amount)),
            period=BudgetPeriod(period),
            start_date=start,
        )
        budget = budget_service.create_budget(session, payload, _today())
        return BudgetRead.model_validate(budget)

    return await _run("新增预算", action)


@mcp.tool(
    name="update_budget",
    description="修改预算的分类、金额与周期，未提供生效日期时保留原值。",
    structured_output=True,
)
async def update_budget(
    budget_id: Annotated[int, PydanticField(description="预算 ID。")],
    category_id: Annotated[int, PydanticField(description="支出分类 ID。")],
    amount: Annotated[float, PydanticField(description="预算金额，必须大于零。")],
    period: Annotated[
        Literal["monthly", "weekly"],
        PydanticField(description="预算周期，可选值为 monthly 或 weekly。"),
    ] = "monthly",
    start_date: Annotated[
        str | None,
        PydanticField(description="生效日期，格式 YYYY-MM-DD，可选。"),
    ] = None,
) -> BudgetRead:
    """修改预算."""

    start = _parse_optional_date(start_date, "start_date")

    def action(session: Session) -> BudgetRead:
        payload = BudgetCreate(
            category_id=category_id,
            amount=Decimal(str(amount)),
            period=BudgetPeriod(period),
            start_date=start,
        )
        budget = budget_service.update_budget(session, budget_id, payload)
        if budget is None:
            raise BookKeepingError(f"budget not found: {budget_id}")
        return BudgetRead.model_validate(budget)

    return await _run("修改预算", action)


@mcp.tool(
    name="delete_budget",
    description="删除预算。",
    structured_output=True,
)
async def delete_budget(
    budget_id: Annotated[int, PydanticField(description="预算 ID。")],
) -> DeleteResult:
    """删除预算."""

    def action(session: Session) -> DeleteResult:
        deleted = budget_service.delete_budget(session, budget_id)
        return DeleteResult(
            id=budget_id,
            deleted=deleted,
            message="🗑️ 预算已删除。" if deleted else "预算不存在。",
        )

    return await _run("删除预算", action)


@mcp.tool(
    name="list_budget_progress",
    description="列出所有生效中预算在指定日期所属周期的使用情况。",
    structured_output=True,
)
async def list_budget_progress(
    reference_date: Annotated[
        str | None,
        PydanticField(description="参考日期，格式 YYYY-MM-DD，默认为今天。"),
    ] = None,
) -> BudgetProgressListResult:
    """列出预算进度."""

    reference = _parse_optional_date(reference_date, "reference_date") or _today()

    def action(session: Session) -> BudgetProgressListResult:
        return BudgetProgressListResult(
            reference_date=reference,
            budgets=get_all_with_progress(session, reference),
        )

    return await _run("获取预算进度", action)


@mcp.tool(
    name="check_budget_status",
    description="查询单一支出分类的预算状态，月预算优先。",
    structured_output=True,
)
async def check_budget_status(
    category_id: Annotated[int, PydanticField(description="支出分类 ID。")],
    reference_date: Annotated[
        str | None,
        PydanticField(description="参考日期，格式 YYYY-MM-DD，默认为今天。"),
    ] = None,
) -> BudgetStatusResult:
    """查询分类预算状态."""

    reference = _parse_optional_date(reference_date, "reference_date") or _today()

    def action(session: Session) -> BudgetStatusResult:
        return BudgetStatusResult(
            category_id=category_id,
            progress=evaluate_budget_status(session, category_id, reference),
        )

    return await _run("查询预算状态", action)


@mcp.tool(
    name="get_monthly_report",
    description="获取指定月份的收支汇总、支出分类占比与每日趋势。",
    structured_output=True,
)
async def get_monthly_report(
    month: Annotated[str, PydanticField(description="月份，格式 YYYY-MM。")],
) -> MonthlyReport:
    """获取月度报表."""

    def action(session: Session) -> MonthlyReport:
        year, month_number = parse_month(month)
        return build_monthly_report(session, year, month_number)

    return await _run("获取月度报表", action)


@mcp.tool(
    name="get_dashboard",
    description="获取本月概览：收支汇总、帐户余额、预算进度与最近 10 笔交易。",
    structured_output=True,
)
async def get_dashboard() -> DashboardSnapshot:
    """获取首页概览."""

    return await _run("获取概览", lambda session: build_dashboard(session, _today()))


@mcp.tool(
    name="export_transactions_csv",
    description="将交易导出为 CSV（UTF-8 BOM），内容以 base64 编码回传。",
    structured_output=True,
)
async def export_transactions_csv(
    start_date: Annotated[
        str | None,
        PydanticField(description="起始日期（含），格式 YYYY-MM-DD，可选。"),
    ] = None,
    end_date: Annotated[
        str | None,
        PydanticField(description="结束日期（含），格式 YYYY-MM-DD，可选。"),
    ] = None,
) -> CsvExportResult:
    """导出交易 CSV."""

    start = _parse_optional_date(start_date, "start_date")
    end = _parse_optional_date(end_date, "end_date")

    def action(session: Session) -> CsvExportResult:
        content = export_transactions(session, start, end)
        return CsvExportResult(
            filename=f"transactions_{_today():%Y%m%d}.csv",
            size_bytes=len(content),
            content_base64=base64.b64encode(content).decode("ascii"),
        )

    return await _run("导出交易", action)


@mcp.tool(
    name="import_transactions_csv",
    description="从 base64 编码的 CSV 内容导入交易，回传逐行错误。",
    structured_output=True,
)
async def import_transactions_csv(
    content_base64: Annotated[
        str,
        PydanticField(description="CSV 文件内容的 base64 编码，表头为 日期,類型,金額,分類,帳戶,備註。"),
    ],
) -> ImportResult:
    """导入交易 CSV."""

    try:
        raw = base64.b64decode(content_base64, validate=True)
    except (binascii.Error, ValueError) as exc:
        logger.warning("CSV 内容解码失败: %s", exc)
        raise ValueError("CSV 内容不是有效的 base64 编码。") from exc

    def action(session: Session) -> ImportResult:
        return import_transactions(session, io.BytesIO(raw), len(raw))

    return await _run("导入交易", action)


def _today() -> date:
    return date.today()


def main() -> None:
    """主函数."""

    try:
        init_database()

        logger.info("记账 MCP 服务启动成功")
        mcp.run(transport="streamable-http")
    except KeyboardInterrupt:
        logger.info("收到中断信号，正在关闭服务…")
    except Exception as exc:  # noqa: BLE001
        logger.exception("服务运行出错: %s", exc)
        raise
    finally:
        logger.info("记账 MCP 服务已关闭")


if __name__ == "__main__":
    main()
