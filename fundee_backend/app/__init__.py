# ==============================================================================
# Fundee Cash - FastAPI application factory
# ------------------------------------------------------------------------------
# Назначение: создаёт и конфигурирует FastAPI-приложение движка розыгрышей,
# подключает обязательные middleware, обработчики ошибок и роутеры.
#
# Канон/инварианты:
#   • Экономика розыгрыша проверяется до создания приложения
#     (init_system_locks → assert_draw_canon); битая конфигурация = отказ старта.
#   • Денежный POST (заявка на вывод) требует Idempotency-Key
#     (MonetaryIdempotencyMiddleware + зависимость на маршруте).
#   • Этот модуль не совершает финансовых операций.
#
# ИИ-защиты/самовосстановление:
#   • create_app() можно вызывать несколько раз (тесты) без изменения
#     глобального состояния, кроме планировщика в lifespan.
#   • Встроенный планировщик стартует только при SCHEDULER_ENABLED=true.
# ==============================================================================
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core import core_health
from .core.config_core import get_settings
from .core.database_core import db_ping
from .core.errors_core import setup_exception_handlers
from .core.logging_core import CorrelationIdMiddleware, get_logger
from .core.system_locks import init_system_locks
from .routes import list_registered_routes, register
from .services import scheduler_service

logger = get_logger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    if settings.SCHEDULER_ENABLED:
        await scheduler_service.startup_scheduler()
    try:
        yield
    finally:
        if settings.SCHEDULER_ENABLED:
            await scheduler_service.shutdown_scheduler()


def create_app() -> FastAPI:
    """Создать FastAPI-приложение с каноническими middleware и роутерами."""

    settings = get_settings()
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        lifespan=_lifespan,
    )

    init_system_locks(app, settings)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)
    setup_exception_handlers(app)

    register(app, prefix=settings.API_PREFIX.rstrip("/"))

    @app.get("/health", tags=["health"])
    async def health() -> Dict[str, Any]:
        """Живость сервиса: пинг БД, подключённые роуты, задачи планировщика."""

        db_ok = await db_ping()
        jobs = scheduler_service.get_scheduler().list_jobs() if settings.SCHEDULER_ENABLED else []
        return {
            "status": "ok" if db_ok else "degraded",
            "db": db_ok,
            "routes": list_registered_routes(),
            "scheduler": jobs,
            "settings": settings.debug_dump(),
            "core": core_health(),
        }

    logger.info("FastAPI app initialised", extra={"api_prefix": settings.API_PREFIX})
    return app


__all__ = ["create_app"]

# ==============================================================================
# Пояснения «для чайника»:
#   • Розыгрыш в 22:00 исполняет планировщик (SCHEDULER_ENABLED=true), отдельный
#     воркер (python -m fundee_backend.app.scheduler.draws_runner) или внешний
#     cron через POST /api/draws/execute-due. Все пути идемпотентны.
#   • /health не трогает деньги и не создаёт розыгрыши.
# ==============================================================================
