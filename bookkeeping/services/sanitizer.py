"""清理用户输入中的 HTML 标记."""
from __future__ import annotations

from typing import Optional

import nh3


def sanitize_text(value: Optional[str]) -> str:
    """移除 HTML 标签, ``<script>``/``<style>`` 的内容整段丢弃.

    不含标记的文本原样返回, 保证引号与换行在 CSV 往返中不变;
    含标记的文本返回 nh3 的 HTML 编码结果, 不再反转义.
    """

    if not value:
        return ""
    if "<" not in value:
        return value
    return nh3.clean(value, tags=set())


def sanitize_field(value: Optional[str]) -> Optional[str]:
    """清理并去除首尾空白, 结果为空时返回 None."""

    cleaned = sanitize_text(value).strip()
    return cleaned or None
