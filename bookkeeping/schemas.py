"""Pydantic 模型."""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from .models import AccountType, BudgetPeriod, TransactionType

BudgetStatus = Literal["normal", "warning", "exceeded"]


def _strip_name(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("名称不能为空")
    return value


class AccountCreate(BaseModel):
    """帐户创建输入模型."""

    name: str = Field(..., max_length=50, description="帐户名称，去除首尾空白后唯一")
    type: AccountType = Field(default=AccountType.CASH, description="帐户类型")
    icon: str = Field(default="", max_length=10, description="显示图标")
    initial_balance: Decimal = Field(
        default=Decimal("0"), ge=0, description="期初余额，不可为负"
    )
    currency: str = Field(default="TWD", min_length=3, max_length=3, description="币别标签")

    @field_validator("name")
    @classmethod
    def name_must_not_be_blank(cls, value: str) -> str:
        return _strip_name(value)


class AccountRead(BaseModel):
    """帐户输出模型."""

    id: int
    name: str
    type: AccountType
    icon: str
    initial_balance: Decimal
    currency: str

    class Config:
        from_attributes = True


class CategoryCreate(BaseModel):
    """分类创建/更新输入模型."""

    name: str = Field(..., max_length=50, description="分类名称，同类型内唯一")
    icon: str = Field(default="", max_length=10, description="显示图标")
    type: TransactionType = Field(..., description="分类类型：income 或 expense")
    color: Optional[str] = Field(default=None, max_length=7, description="十六进制颜色")
    sort_order: Optional[int] = Field(
        default=None, description="排序值，未提供或不为正数时自动取同类型最大值加一"
    )

    @field_validator("name")
    @classmethod
    def name_must_not_be_blank(cls, value: str) -> str:
        return _strip_name(value)


class CategoryRead(BaseModel):
    """分类输出模型."""

    id: int
    name: str
    icon: str
    type: TransactionType
    color: Optional[str] = None
    sort_order: int
    is_default: bool

    class Config:
        from_attributes = True


class TransactionCreate(BaseModel):
    """交易创建/更新输入模型."""

    date: date
    amount: Decimal = Field(..., gt=0, description="金额，必须为正数")
    type: TransactionType = Field(..., description="交易类型，可选值为 income 或 expense")
    category_id: int = Field(..., ge=1, description="分类 ID")
    account_id: int = Field(..., ge=1, description="帐户 ID")
    note: Optional[str] = Field(default=None, max_length=500, description="备注")


class TransactionRead(BaseModel):
    """交易输出模型."""

    id: int
    date: date
    amount: Decimal
    type: TransactionType
    category_id: int
    account_id: int
    note: Optional[str] = None
    category: Optional[CategoryRead] = Field(
        default=None, description="交易所属分类"
    )
    account: Optional[AccountRead] = Field(
        default=None, description="交易所属帐户"
    )
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="最后更新时间")

    class Config:
        from_attributes = True


class TransactionPage(BaseModel):
    """交易分页结果, 附带未分页总笔数."""

    page: int
    page_size: int
    total_count: int
    transactions: List[TransactionRead] = Field(default_factory=list)


class BudgetCreate(BaseModel):
    """预算创建/更新输入模型."""

    category_id: int = Field(..., ge=1, description="支出分类 ID")
    amount: Decimal = Field(..., gt=0, description="预算金额，必须大于零")
    period: BudgetPeriod = Field(default=BudgetPeriod.MONTHLY, description="预算周期")
    start_date: Optional[date] = Field(
        default=None, description="预算生效日期，未提供时为当月第一天"
    )


class BudgetRead(BaseModel):
    """预算输出模型."""

    id: int
    category_id: int
    amount: Decimal
    period: BudgetPeriod
    start_date: date

    class Config:
        from_attributes = True


class BudgetProgress(BaseModel):
    """预算在参考日期所属周期内的使用情况."""

    budget_id: int
    category_id: int
    category_name: str
    category_icon: str
    budget_amount: Decimal
    spent_amount: Decimal = Field(description="周期内支出合计")
    usage_rate: Decimal = Field(
        description="已用金额除以预算金额乘以 100，不做四舍五入"
    )
    status: BudgetStatus
    period: BudgetPeriod
    start_date: date
    period_start: date = Field(description="评估周期起日（含）")
    period_end: date = Field(description="评估周期迄日（含）")


class MonthlySummary(BaseModel):
    """月度收支汇总."""

    year: int
    month: int
    total_income: Decimal
    total_expense: Decimal
    balance: Decimal
    has_data: bool


class CategoryExpense(BaseModel):
    """单一分类的支出合计与占比."""

    name: str
    color: str
    amount: Decimal
    percentage: Decimal = Field(
        description="占当月支出的百分比（0-100），所有分类合计恰为 100",
    )


class DailyTrend(BaseModel):
    """单日收支合计."""

    date: date
    income: Decimal
    expense: Decimal


class MonthlyReport(BaseModel):
    """月度报表."""

    summary: MonthlySummary
    category_expenses: List[CategoryExpense] = Field(default_factory=list)
    daily_trends: List[DailyTrend] = Field(default_factory=list)


class AccountBalance(BaseModel):
    """帐户当前余额."""

    id: int
    name: str
    icon: str
    current_balance: Decimal


class DashboardSnapshot(BaseModel):
    """本月概览."""

    summary: MonthlySummary
    account_balances: List[AccountBalance] = Field(default_factory=list)
    budget_progress: List[BudgetProgress] = Field(default_factory=list)
    recent_transactions: List[TransactionRead] = Field(default_factory=list)


class ImportErrorItem(BaseModel):
    """CSV 导入的单行错误."""

    line_number: int = Field(description="CSV 行号（从 1 开始），文件级错误为 0")
    message: str


class ImportResult(BaseModel):
    """CSV 导入结果."""

    total_rows: int = 0
    success_count: int = 0
    failed_count: int = 0
    errors: List[ImportErrorItem] = Field(default_factory=list)

    def add_error(self, line_number: int, message: str) -> None:
        self.errors.append(ImportErrorItem(line_number=line_number, message=message))


class AccountListResult(BaseModel):
    """帐户列表结果."""

    total: int
    accounts: List[AccountBalance] = Field(default_factory=list)


class AccountBalanceResult(BaseModel):
    """单一帐户余额查询结果."""

    account_id: int
    balance: Decimal = Field(description="期初余额加收入减支出，帐户不存在时为 0")


class CategoryListResult(BaseModel):
    """分类列表结果."""

    total: int
    categories: List[CategoryRead] = Field(default_factory=list)


class TransactionRecordResult(BaseModel):
    """记录交易结果."""

    message: str
    transaction: TransactionRead
    budget_status: Optional[BudgetProgress] = Field(
        default=None, description="该分类记录后的预算状态，未设置预算时为空"
    )


class BudgetProgressListResult(BaseModel):
    """预算进度列表结果."""

    reference_date: date
    budgets: List[BudgetProgress] = Field(default_factory=list)


class BudgetStatusResult(BaseModel):
    """单一分类预算状态结果."""

    category_id: int
    progress: Optional[BudgetProgress] = None


class CsvExportResult(BaseModel):
    """CSV 导出结果, 内容以 base64 编码."""

    filename: str
    size_bytes: int
    content_base64: str


class DeleteResult(BaseModel):
    """删除操作结果, 仍被引用或不存在时 ``deleted`` 为 False."""

    id: int
    deleted: bool
    message: str
