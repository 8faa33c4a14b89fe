# -*- coding: utf-8 -*-
# fundee_backend/app/services/scheduler_service.py
# =============================================================================
# Назначение кода:
#   Встроенный планировщик фоновых задач Fundee. Будит задачи каждые
#   SCHEDULER_TICK_SECONDS (по умолчанию 30 с):
#     • execute_due_draws  - исполнить розыгрыши, чей fire_at наступил;
#     • ensure_active_draw - гарантировать существование активного розыгрыша.
#
# Канон/инварианты:
#   • Время - триггер пробуждения, НЕ фильтр данных: что исполнять, решает
#     draws_service по статусу pending и fire_at <= now.
#   • Каждая задача - с таймаутом; ошибка → экспоненциальный backoff (≤ 5 мин).
#   • Денежная логика вне планировщика. Здесь только вызовы сервисов.
#
# ИИ-защита/самовосстановление:
#   • Падение одной задачи не останавливает цикл и не мешает другим.
#   • Одна и та же задача не запускается повторно, пока предыдущий запуск идёт.
#
# Запреты:
#   • Нет длительных «снов» на час/сутки и прямого доступа к БД - всё через
#     scheduler/draws_runner.py.
# =============================================================================

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from fundee_backend.app.core.config_core import Settings, get_settings
from fundee_backend.app.core.logging_core import get_logger
from fundee_backend.app.core.utils_core import utcnow
from fundee_backend.app.scheduler import draws_runner

JobCallable = Callable[[], Awaitable[Any]]

logger = get_logger("fundee.scheduler")


# -----------------------------------------------------------------------------
# Настройки планировщика
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class SchedulerSettings:
    INTERVAL_SEC: int = 30
    TASK_TIMEOUT_SEC: int = 300
    BACKOFF_START_SEC: int = 5
    BACKOFF_MAX_SEC: int = 300
    MAX_PARALLEL_TASKS: int = 2

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "SchedulerSettings":
        s = settings or get_settings()
        return cls(
            INTERVAL_SEC=s.SCHEDULER_TICK_SECONDS,
            TASK_TIMEOUT_SEC=s.TASK_TIMEOUT_SECONDS,
            MAX_PARALLEL_TASKS=s.MAX_PARALLEL_SCHEDULER_TASKS,
        )


# -----------------------------------------------------------------------------
# Структуры задач
# -----------------------------------------------------------------------------
@dataclass
class _Job:
    name: str
    func: JobCallable
    backoff_sec: int
    consecutive_failures: int = 0
    last_error: Optional[str] = None
    last_success_at: Optional[datetime] = None
    running: bool = False
    next_allowed_at: Optional[datetime] = None


# -----------------------------------------------------------------------------
# Планировщик
# -----------------------------------------------------------------------------
class SchedulerService:
    """
    Единый будильник. Ничего не знает о бизнес-логике - только вызывает
    зарегистрированные корутины.
    """

    def __init__(self, settings: Optional[SchedulerSettings] = None):
        self.s = settings or SchedulerSettings.from_settings()
        self._jobs: Dict[str, _Job] = {}
        self._stop = asyncio.Event()
        self._sem = asyncio.Semaphore(self.s.MAX_PARALLEL_TASKS)
        self._task: Optional[asyncio.Task] = None

    # ----------------------------- Регистрация ------------------------------

    def register_defaults(self) -> None:
        """Стандартные задачи розыгрышей (идемпотентно по имени)."""
        if "execute_due_draws" not in self._jobs:
            self.add_job("execute_due_draws", draws_runner.run_once)
        if "ensure_active_draw" not in self._jobs:
            self.add_job("ensure_active_draw", draws_runner.ensure_active_once)
        logger.info("Scheduler: registered jobs: %s", list(self._jobs.keys()))

    def add_job(self, name: str, func: JobCallable) -> None:
        if name in self._jobs:
            raise ValueError(f"job '{name}' already registered")
        self._jobs[name] = _Job(name=name, func=func, backoff_sec=self.s.BACKOFF_START_SEC)

    # ------------------------------- Жизненный цикл -------------------------

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Запускает фоновый цикл отдельной задачей."""
        if self.running:
            return
        self._stop.clear()
        logger.info(
            "Scheduler: start (%d jobs, interval=%ss, timeout=%ss, max_parallel=%s)",
            len(self._jobs),
            self.s.INTERVAL_SEC,
            self.s.TASK_TIMEOUT_SEC,
            self.s.MAX_PARALLEL_TASKS,
        )
        self._task = asyncio.create_task(self._loop(), name="scheduler:main")

    async def stop(self) -> None:
        """Останавливает цикл; текущий тик дорабатывает до конца."""
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None

    async def run_single_tick(self) -> None:
        """Один тик без вечного цикла (ручной запуск/тесты)."""
        await self._run_tick()

    async def _loop(self) -> None:
        try:
            while not self._stop.is_set():
                started = utcnow()
                await self._run_tick()
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=max(1, self.s.INTERVAL_SEC))
                except asyncio.TimeoutError:
                    pass
                logger.debug("Scheduler tick finished in %.3fs", (utcnow() - started).total_seconds())
        except asyncio.CancelledError:
            logger.info("Scheduler: cancelled")
            raise
        finally:
            logger.info("Scheduler: stopped")

    # ------------------------------- Один тик --------------------------------

    async def _run_tick(self) -> None:
        now = utcnow()
        jobs_to_run: List[_Job] = []
        for job in self._jobs.values():
            if job.next_allowed_at is not None and now < job.next_allowed_at:
                logger.debug("Job %s: backoff until %s", job.name, job.next_allowed_at.isoformat())
                continue
            jobs_to_run.append(job)

        if not jobs_to_run:
            return

        async def _guarded(job: _Job) -> None:
            async with self._sem:
                await self._run_job(job)

        tasks = [asyncio.create_task(_guarded(job), name=f"scheduler:job:{job.name}") for job in jobs_to_run]
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _run_job(self, job: _Job) -> None:
        if job.running:
            logger.warning("Job %s: already running, skip", job.name)
            return

        job.running = True
        try:
            await asyncio.wait_for(job.func(), timeout=self.s.TASK_TIMEOUT_SEC)
            job.consecutive_failures = 0
            job.last_error = None
            job.backoff_sec = self.s.BACKOFF_START_SEC
            job.next_allowed_at = None
            job.last_success_at = utcnow()
            logger.debug("Job %s: done", job.name)
        except asyncio.TimeoutError:
            self._fail(job, "timeout")
            logger.warning(
                "Job %s: timeout (fail=%s, backoff=%ss)",
                job.name,
                job.consecutive_failures,
                job.backoff_sec,
            )
        except Exception as e:
            self._fail(job, str(e))
            logger.exception(
                "Job %s: error (fail=%s, backoff=%ss): %s",
                job.name,
                job.consecutive_failures,
                job.backoff_sec,
                e,
            )
        finally:
            job.running = False

    def _fail(self, job: _Job, error: str) -> None:
        job.consecutive_failures += 1
        job.last_error = error
        job.next_allowed_at = utcnow() + timedelta(seconds=job.backoff_sec)
        job.backoff_sec = min(job.backoff_sec * 2, self.s.BACKOFF_MAX_SEC)

    # ------------------------------- Наблюдаемость ---------------------------

    def list_jobs(self) -> List[Dict[str, Any]]:
        """Краткая сводка по задачам для /health."""
        return [
            {
                "name": j.name,
                "running": j.running,
                "failures": j.consecutive_failures,
                "last_error": j.last_error,
                "backoff_sec": j.backoff_sec,
                "next_allowed_at": j.next_allowed_at.isoformat() if j.next_allowed_at else None,
                "last_success_at": j.last_success_at.isoformat() if j.last_success_at else None,
            }
            for j in self._jobs.values()
        ]


_default_scheduler: Optional[SchedulerService] = None


def get_scheduler() -> SchedulerService:
    """Экземпляр планировщика процесса (создаётся лениво)."""
    global _default_scheduler
    if _default_scheduler is None:
        _default_scheduler = SchedulerService()
    return _default_scheduler


async def startup_scheduler() -> None:
    """Регистрирует задачи и запускает цикл."""
    scheduler = get_scheduler()
    scheduler.register_defaults()
    await scheduler.start()
    logger.info("Scheduler started")


async def shutdown_scheduler() -> None:
    """Останавливает цикл и дожидается завершения текущего тика."""
    if _default_scheduler is not None:
        await _default_scheduler.stop()
    logger.info("Scheduler stopped")


__all__ = [
    "SchedulerSettings",
    "SchedulerService",
    "get_scheduler",
    "startup_scheduler",
    "shutdown_scheduler",
]

# =============================================================================
# Пояснения «для чайника»:
#   • Планировщик ничего сам не «считает» и не трогает балансы - он зовёт
#     draws_runner, а тот - идемпотентный execute_draw.
#   • Backoff по времени: после ошибки задача «отдыхает» до next_allowed_at,
#     каждая следующая ошибка удваивает паузу (до 5 минут). Успех сбрасывает.
# =============================================================================
