# -*- coding: utf-8 -*-
# fundee_backend/app/core/database_core.py
# =============================================================================
# Назначение кода:
#   • Единая точка работы с БД Fundee (PostgreSQL + asyncpg + SQLAlchemy 2.0).
#   • Declarative Base и тип UTCDateTime для всех моделей.
#   • Создание и конфигурация AsyncEngine и async_sessionmaker.
#   • lifespan_session() для зависимостей FastAPI, планировщика и воркера.
#   • db_ping для /health и диалектный INSERT ... ON CONFLICT DO NOTHING.
#
# Канон / инварианты:
#   • Только async-движок (create_async_engine).
#   • DSN берём из Settings.database_url_async() - единый источник истины.
#   • Сессии expire_on_commit=False, autoflush=False.
#   • Все даты в БД - UTC с tzinfo; UTCDateTime гарантирует aware-значения
#     даже на SQLite (тестовый стенд).
#
# ИИ-защита:
#   • lifespan_session() откатывает транзакцию при любой ошибке.
#
# Запреты:
#   • Никакой бизнес-логики (розыгрыш, начисления) в этом модуле.
#   • Никаких миграций здесь - DDL принадлежит Alembic (create_all только для
#     тестов/локального бутстрапа).
# =============================================================================

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Optional

from sqlalchemy import text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Dialect
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import DateTime, TypeDecorator

from fundee_backend.app.core.config_core import get_settings
from fundee_backend.app.core.logging_core import get_logger

logger = get_logger(__name__)


# -----------------------------------------------------------------------------
# Declarative Base и общие типы
# -----------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Единый declarative Base проекта (метаданные для Alembic и тестов)."""


class UTCDateTime(TypeDecorator):
    """
    DateTime(timezone=True), который всегда возвращает aware-UTC.
    На PostgreSQL это TIMESTAMPTZ; на SQLite tzinfo восстанавливается при чтении.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect: Dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime is not allowed, use UTC-aware values")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: Optional[datetime], dialect: Dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


# -----------------------------------------------------------------------------
# Глобальные объекты: движок и фабрика сессий
# -----------------------------------------------------------------------------
_engine: Optional[AsyncEngine] = None
_SessionFactory: Optional[async_sessionmaker[AsyncSession]] = None


def _create_engine() -> AsyncEngine:
    """
    Создаёт новый AsyncEngine на базе актуальных настроек.

    • pool_pre_ping для раннего обнаружения «умерших» соединений.
    • Размер пула задаётся только для пуловых диалектов (не для SQLite).
    • echo включается только в DEBUG-режиме.
    """
    settings = get_settings()
    dsn = settings.database_url_async()
    kwargs: Dict[str, Any] = {"pool_pre_ping": True, "echo": settings.DEBUG}
    if not dsn.startswith("sqlite"):
        kwargs["pool_size"] = settings.DB_POOL_SIZE
        kwargs["max_overflow"] = settings.DB_MAX_OVERFLOW
    logger.info("Creating async DB engine", extra={"dialect": dsn.split(":", 1)[0]})
    return create_async_engine(dsn, **kwargs)


def _create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """async_sessionmaker: expire_on_commit=False, autoflush=False."""
    return async_sessionmaker(
        bind=engine,
        expire_on_commit=False,
        autoflush=False,
        class_=AsyncSession,
    )


def get_engine() -> AsyncEngine:
    """Возвращает текущий AsyncEngine, создавая его лениво при первом вызове."""
    global _engine, _SessionFactory

    if _engine is None:
        _engine = _create_engine()
        _SessionFactory = _create_session_factory(_engine)
        logger.info("DB engine lazily initialized")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Возвращает фабрику сессий (гарантирует, что движок создан)."""
    global _SessionFactory

    if _SessionFactory is None:
        _SessionFactory = _create_session_factory(get_engine())
        logger.info("Session factory initialized")
    return _SessionFactory


# -----------------------------------------------------------------------------
# Сессии
# -----------------------------------------------------------------------------
@asynccontextmanager
async def lifespan_session() -> AsyncIterator[AsyncSession]:
    """
    Сессия на время одного запроса/задачи.
    • commit выполняет вызывающий код (unit of work);
    • при исключении - rollback и проброс ошибки наверх.
    """
    session = get_session_factory()()
    try:
        yield session
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


# -----------------------------------------------------------------------------
# Health-check / bootstrap
# -----------------------------------------------------------------------------
async def db_ping() -> bool:
    """True - если SELECT 1 прошёл; False - если БД не отвечает."""
    engine = get_engine()
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except (OperationalError, DBAPIError) as exc:
        logger.error("DB ping failed: DB is not reachable", extra={"error": str(exc)})
        return False


def insert_ignoring_conflicts(session: AsyncSession, table: Any) -> Any:
    """
    INSERT ... ON CONFLICT DO NOTHING под текущий диалект (PostgreSQL/SQLite).
    Вызывающий добавляет .values(...) и .on_conflict_do_nothing(index_elements=[...]).
    """
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert(table)
    return pg_insert(table)


__all__ = [
    "AsyncSession",
    "AsyncEngine",
    "Base",
    "UTCDateTime",
    "get_engine",
    "get_session_factory",
    "lifespan_session",
    "db_ping",
    "insert_ignoring_conflicts",
]
