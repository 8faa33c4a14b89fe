# ============================================================================
# Fundee - scheduler.draws_runner
# -----------------------------------------------------------------------------
# Назначение: серверный тик розыгрышей.
#   • run_once()            - исполнить все созревшие розыгрыши и убедиться,
#                             что активный розыгрыш существует;
#   • ensure_active_once()  - только find-or-create активного розыгрыша;
#   • run_forever()         - отдельный воркер-процесс (тик SCHEDULER_TICK_SECONDS
#                             с небольшим джиттером).
#
# Канон/инварианты:
#   • Все пути ведут в идемпотентный execute_draw: параллельные воркеры,
#     встроенный планировщик и cron-эндпоинт не приведут к двойному исполнению.
#   • Обращения к хранилищу - через with_retry (ограниченные ретраи + таймаут).
#
# ИИ-защита/самовосстановление:
#   • В вечном цикле ошибки тика не валят процесс - только логируются.
# ============================================================================
from __future__ import annotations

import asyncio
from datetime import datetime
from random import randint
from typing import Awaitable, Callable, Optional

from ..core import boot_core
from ..core.config_core import get_settings
from ..core.database_core import lifespan_session
from ..core.logging_core import get_logger
from ..core.retry_core import with_retry
from ..core.utils_core import utcnow
from ..services.draws_service import DueRunReport, execute_due_draws
from ..services.schedule_service import DrawDescriptor, ensure_active_draw

logger = get_logger(__name__)


async def ensure_active_once(now: Optional[datetime] = None) -> DrawDescriptor:
    """Гарантирует наличие активного розыгрыша (своя сессия)."""

    moment = now or utcnow()

    async def _op() -> DrawDescriptor:
        async with lifespan_session() as db:
            return await ensure_active_draw(db, moment)

    return await with_retry(_op, label="ensure_active_draw")


async def run_once(now: Optional[datetime] = None) -> DueRunReport:
    """Исполнить созревшие розыгрыши, затем обеспечить активный. Ошибки - наружу."""

    moment = now or utcnow()

    async def _op() -> DueRunReport:
        async with lifespan_session() as db:
            return await execute_due_draws(db, moment)

    report = await with_retry(_op, label="execute_due_draws")
    await ensure_active_once(moment)
    logger.info(
        "draws tick done",
        extra={
            "executed": [o.draw_id for o in report.executed],
            "skipped": report.skipped,
            "failed": report.failed,
        },
    )
    return report


async def _run_once_guarded() -> None:
    try:
        await run_once()
    except Exception as exc:  # noqa: BLE001 - фиксируем и продолжаем
        logger.exception("draws tick failed", extra={"error": str(exc)})


async def _run_forever(
    sleeper: Callable[[float], Awaitable[None]] = asyncio.sleep,
    max_ticks: Optional[int] = None,
) -> None:
    """Цикл тиков с джиттером ±2 с. max_ticks ограничивает число тиков."""

    base_sleep = get_settings().SCHEDULER_TICK_SECONDS
    ticks = 0
    while max_ticks is None or ticks < max_ticks:
        await _run_once_guarded()
        ticks += 1
        jitter = randint(-2, 2)
        await sleeper(max(1, base_sleep + jitter))


def run_forever() -> None:
    """Запустить вечный цикл (CLI/entrypoint). Битый канон экономики - отказ старта."""

    report = boot_core()
    if not report["locks"]["ok"]:
        raise SystemExit(f"draws worker refused to start: {report['locks']['error']}")
    asyncio.run(_run_forever())


if __name__ == "__main__":
    run_forever()

# ============================================================================
# Пояснения «для чайника»:
#   • Можно держать и встроенный планировщик (SCHEDULER_ENABLED=true), и
#     отдельный воркер, и внешний cron на POST /api/draws/execute-due - розыгрыш
#     всё равно исполнится ровно один раз: строку draws блокирует FOR UPDATE,
#     а статус меняется только из pending.
# ============================================================================
