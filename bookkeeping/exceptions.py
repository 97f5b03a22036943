"""记账服务抛出的异常类型."""
from __future__ import annotations


class BookKeepingError(ValueError):
    """请求与现有数据冲突或校验失败."""


class ReportRangeError(BookKeepingError):
    """报表的年份或月份超出范围."""


class ImportCancelledError(BookKeepingError):
    """CSV 导入在写入前被取消."""
