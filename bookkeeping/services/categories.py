"""分类管理与查询相关的辅助函数."""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from .. import crud
from ..config import DEFAULT_CATEGORY_COLOR, UNCATEGORIZED_NAME
from ..exceptions import BookKeepingError
from ..models import Category, Transaction, TransactionType
from ..schemas import CategoryCreate

logger = logging.getLogger(__name__)


def normalize_color(color: Optional[str]) -> Optional[str]:
    if color is None or not color.strip():
        return None
    return color.strip()


def category_display(category: Category | None) -> tuple[str, str]:
    """返回分类的显示名称与颜色, 分类缺失时使用默认值."""

    if category is None:
        return UNCATEGORIZED_NAME, DEFAULT_CATEGORY_COLOR
    color = category.color if category.color and category.color.strip() else None
    return category.name, color or DEFAULT_CATEGORY_COLOR


def list_categories(
    session: Session, category_type: TransactionType | None = None
) -> list[Category]:
    return crud.list_categories(session, category_type)


def _resolve_sort_order(
    session: Session,
    requested: int | None,
    category_type: TransactionType,
    exclude_id: int | None = None,
) -> int:
    if requested is not None and requested > 0:
        return requested
    return crud.max_category_sort_order(session, category_type, exclude_id) + 1


def create_category(session: Session, data: CategoryCreate) -> Category:
    name = data.name.strip()
    if crud.category_name_exists(session, name, data.type):
        logger.warning("Duplicate category rejected: %s (%s)", name, data.type.value)
        raise BookKeepingError("category name already exists")

    category = Category(
        name=name,
        icon=data.icon.strip(),
        type=data.type,
        color=normalize_color(data.color),
        sort_order=_resolve_sort_order(session, data.sort_order, data.type),
        is_default=False,
    )
    session.add(category)
    session.flush()
    session.refresh(category)
    logger.info("Created category %s (%s)", category.id, category.name)
    return category


def update_category(
    session: Session, category_id: int, data: CategoryCreate
) -> Category | None:
    category = crud.get_category_by_id(session, category_id)
    if category is None:
        return None

    # 分类类型创建后不可变更
    name = data.name.strip()
    if crud.category_name_exists(session, name, category.type, exclude_id=category_id):
        logger.warning("Duplicate category rejected: %s (%s)", name, category.type.value)
        raise BookKeepingError("category name already exists")

    category.sort_order = _resolve_sort_order(
        session, data.sort_order, category.type, exclude_id=category_id
    )
    category.name = name
    category.icon = data.icon.strip()
    category.color = normalize_color(data.color)
    session.flush()
    return category


def has_transactions(session: Session, category_id: int) -> bool:
    return crud.any_transactions(session, category_id=category_id)


def delete_category(session: Session, category_id: int) -> bool:
    """软删除没有交易引用的非默认分类."""

    category = crud.get_category_by_id(session, category_id)
    if category is None or category.is_default or has_transactions(session, category_id):
        return False

    crud.soft_delete(session, category)
    logger.info("Deleted category %s", category_id)
    return True


def delete_and_migrate_category(
    session: Session, category_id: int, target_category_id: int
) -> bool:
    """把交易迁移到同类型的目标分类, 再软删除来源分类."""

    if category_id == target_category_id:
        return False

    source = crud.get_category_by_id(session, category_id)
    if source is None or source.is_default:
        return False

    target = crud.get_category_by_id(session, target_category_id)
    if target is None or target.type != source.type:
        return False

    result = session.execute(
        update(Transaction)
        .where(
            Transaction.category_id == category_id,
            Transaction.is_deleted.is_(False),
        )
        .values(category_id=target_category_id)
        .execution_options(synchronize_session="fetch")
    )
    crud.soft_delete(session, source)
    logger.info(
        "Migrated %s transactions from category %s to %s",
        result.rowcount,
        category_id,
        target_category_id,
    )
    return True
