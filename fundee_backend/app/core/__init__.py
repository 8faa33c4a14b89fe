# -*- coding: utf-8 -*-
# fundee_backend/app/core/__init__.py
# =============================================================================
# Назначение кода:
# Единая точка входа ядра Fundee: настройки, логирование, проверки «канона»
# экономики розыгрыша (system_locks) и экспорт утилит ядра во внешние модули
# (сервисы, роуты, планировщик).
#
# Канон/инварианты:
# • Источник истины - config_core.get_settings(); локальных дублей констант нет.
# • Проверки канона (тиры призов, порог билетов, минимум вывода) выполняются
#   при старте через system_locks.assert_draw_canon.
#
# ИИ-защита/самовосстановление:
# • boot_core() всегда возвращает диагностический словарь, не роняя процесс;
#   жёсткий отказ старта делает init_system_locks в create_app().
#
# Запреты:
# • Не импортируем тяжёлые слои (CRUD/Services) и не трогаем БД.
# =============================================================================

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List

from .config_core import get_settings
from .logging_core import get_logger
from . import system_locks
from . import utils_core

CORE_VERSION = "1.0.0"

logger = get_logger(__name__)

__all__ = [
    "CORE_VERSION",
    "get_settings",
    "logger",
    "boot_core",
    "core_health",
    "utils_core",
]


def _run_system_locks(settings) -> Dict[str, Any]:
    try:
        system_locks.assert_draw_canon(settings)
        return {"ok": True, "error": None}
    except system_locks.LockViolation as e:
        logger.error("System locks failed: %s", e)
        return {"ok": False, "error": str(e)}


def boot_core() -> Dict[str, Any]:
    """
    Безопасная инициализация ядра: настройки + проверки канона.

    Возвращает dict: timestamp_utc, core_version, health, locks.
    """
    settings = get_settings()
    logger.info(
        "Fundee core boot: version=%s env=%s draw=%02d:00 %s",
        CORE_VERSION,
        settings.env_normalized,
        settings.DRAW_HOUR,
        settings.DRAW_TIMEZONE,
    )

    health = core_health()
    locks = _run_system_locks(settings)
    if not health.get("ok"):
        logger.warning("Core health warnings: %s", health.get("errors"))

    return {
        "timestamp_utc": datetime.now(timezone.utc).isoformat(),
        "core_version": CORE_VERSION,
        "health": health,
        "locks": locks,
    }


def core_health() -> Dict[str, Any]:
    """
    Быстрые sanity-checks ключевых настроек. Только отчёт, без исключений.

    Возвращает dict: { ok, errors, snapshot }.
    """
    settings = get_settings()
    errors: List[str] = []

    if not settings.DATABASE_URL:
        errors.append("DATABASE_URL must be set.")
    if settings.SCHEDULER_TICK_SECONDS <= 0:
        errors.append("SCHEDULER_TICK_SECONDS must be positive.")
    if settings.NOTIFY_WEBHOOK_URL and not settings.NOTIFY_WEBHOOK_TOKEN:
        errors.append("NOTIFY_WEBHOOK_TOKEN is not set for NOTIFY_WEBHOOK_URL.")

    snapshot = {
        # без DSN/токенов
        "PROJECT_NAME": settings.PROJECT_NAME,
        "ENV": settings.env_normalized,
        "DRAW_HOUR": settings.DRAW_HOUR,
        "DRAW_TIMEZONE": settings.DRAW_TIMEZONE,
        "DRAW_MIN_TICKETS": settings.DRAW_MIN_TICKETS,
        "AD_BATCH_SIZE": settings.AD_BATCH_SIZE,
        "AD_COOLDOWN_SECONDS": settings.AD_COOLDOWN_SECONDS,
        "SCHEDULER_ENABLED": settings.SCHEDULER_ENABLED,
    }
    return {"ok": not errors, "errors": errors, "snapshot": snapshot}
