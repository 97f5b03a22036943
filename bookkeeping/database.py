"""数据库会话管理模块"""
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator
import logging

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import ORMExecuteState, Session, sessionmaker, with_loader_criteria

from .config import DATABASE_URL
from .models import AuditMixin, SoftDeleteMixin, utcnow

logger = logging.getLogger(__name__)

INCLUDE_DELETED = "include_deleted"


def create_db_engine(url: str, **engine_kwargs) -> Engine:
    """根据数据库 URL 创建引擎."""

    if url.startswith("sqlite"):
        # SQLite 需要关闭同线程检查
        engine_kwargs.setdefault("connect_args", {"check_same_thread": False})
    else:
        engine_kwargs.setdefault("pool_pre_ping", True)
    return create_engine(url, future=True, **engine_kwargs)


def create_session_factory(bind: Engine) -> sessionmaker[Session]:
    """创建会话工厂."""

    return sessionmaker(
        bind=bind,
        autoflush=False,
        autocommit=False,
        future=True,
        expire_on_commit=False,
    )


engine = create_db_engine(DATABASE_URL)
SessionLocal = create_session_factory(engine)


@event.listens_for(Session, "do_orm_execute")
def _exclude_soft_deleted(execute_state: ORMExecuteState) -> None:
    """默认查询自动排除已软删除的记录."""

    if (
        execute_state.is_select
        and not execute_state.is_column_load
        and not execute_state.is_relationship_load
        and not execute_state.execution_options.get(INCLUDE_DELETED, False)
    ):
        execute_state.statement = execute_state.statement.options(
            with_loader_criteria(
                SoftDeleteMixin,
                lambda cls: cls.is_deleted.is_(False),
                include_aliases=True,
            )
        )


@event.listens_for(Session, "before_flush")
def _stamp_audit_columns(session: Session, flush_context, instances) -> None:
    """写入前填写审计时间戳."""

    now = utcnow()
    for instance in session.new:
        if isinstance(instance, AuditMixin):
            instance.created_at = now
            instance.updated_at = now
    for instance in session.dirty:
        if isinstance(instance, AuditMixin) and session.is_modified(instance):
            instance.updated_at = now


@contextmanager
def session_scope(factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    """提供数据库会话的上下文管理器."""
    session: Session = (factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception as exc:  # noqa: BLE001
        session.rollback()
        logger.exception("数据库会话执行失败: %s", exc)
        raise
    finally:
        session.close()


def init_database(seed_defaults: bool = True) -> None:
    """初始化数据库结构并写入默认数据."""
    from .models import Base  # noqa: WPS433 - 延迟导入以避免循环依赖
    from .seeding import seed_defaults as _seed_defaults  # noqa: WPS433

    if engine.url.get_backend_name() == "sqlite" and engine.url.database:
        Path(engine.url.database).parent.mkdir(parents=True, exist_ok=True)

    Base.metadata.create_all(bind=engine)
    if seed_defaults:
        with session_scope() as session:
            _seed_defaults(session)
    logger.info("数据库初始化完成: %s", engine.url.render_as_string(hide_password=True))
