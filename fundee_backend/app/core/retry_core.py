# -*- coding: utf-8 -*-
# fundee_backend/app/core/retry_core.py
# =============================================================================
# Назначение кода:
#   Ограниченные ретраи и таймауты для обращений к хранилищу Fundee.
#   • with_timeout - ни одно обращение не висит дольше STORAGE_TIMEOUT_SEC.
#   • with_retry   - повтор транзиентных сбоев с линейным backoff.
#   • is_transient - классификация: транзиентная ошибка или фатальная.
#
# Канон / инварианты:
#   • Транзиентные: таймаут, обрыв соединения, deadlock, serialization failure,
#     "database is locked". Повторяются не более STORAGE_RETRY_ATTEMPTS раз.
#   • Фатальные: IntegrityError, ошибки схемы/SQL, доменные FundeeError -
#     пробрасываются сразу, без повторов.
#   • Исчерпание попыток → TransientStorageError (503), а НЕ «пустой результат».
#
# Запреты:
#   • Операция, которую повторяем, обязана быть целым шагом (unit of work) и
#     сама откатывать свою транзакцию при ошибке.
# =============================================================================

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError

from fundee_backend.app.core.config_core import get_settings
from fundee_backend.app.core.errors_core import FundeeError, TransientStorageError
from fundee_backend.app.core.logging_core import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_TRANSIENT_MARKERS = (
    "deadlock",
    "could not serialize",
    "serialization",
    "database is locked",
    "connection was closed",
    "connection reset",
)


def is_transient(exc: BaseException) -> bool:
    """Транзиентная ли ошибка (можно повторить тот же шаг)."""
    if isinstance(exc, TransientStorageError):
        return True
    if isinstance(exc, FundeeError):
        return False
    if isinstance(exc, IntegrityError):
        return False
    if isinstance(exc, (asyncio.TimeoutError, ConnectionError)):
        return True
    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            return True
        if isinstance(exc, (OperationalError, InterfaceError)):
            return True
        msg = str(exc).lower()
        return any(marker in msg for marker in _TRANSIENT_MARKERS)
    return False


async def with_timeout(
    op: Callable[[], Awaitable[T]],
    timeout: Optional[float] = None,
    *,
    label: str = "storage",
) -> T:
    """Выполняет op() с таймаутом; по истечении - TransientStorageError."""
    limit = timeout if timeout is not None else get_settings().STORAGE_TIMEOUT_SEC
    try:
        return await asyncio.wait_for(op(), timeout=limit)
    except asyncio.TimeoutError:
        logger.warning("%s call timed out after %.1fs", label, limit)
        raise TransientStorageError(
            "Storage did not respond in time, please retry.",
            details={"operation": label, "timeout_sec": limit},
        ) from None


async def with_retry(
    op: Callable[[], Awaitable[T]],
    *,
    attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
    timeout: Optional[float] = None,
    label: str = "storage",
    sleeper: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Повторяет op() при транзиентных сбоях: пауза base_delay * attempt.
    Каждая попытка ограничена with_timeout(). Фатальные ошибки - наружу сразу.
    """
    settings = get_settings()
    max_tries = attempts or settings.STORAGE_RETRY_ATTEMPTS
    backoff = settings.STORAGE_RETRY_BASE_DELAY_SEC if base_delay is None else base_delay
    last_exc: Optional[BaseException] = None

    for attempt in range(1, max_tries + 1):
        try:
            return await with_timeout(op, timeout, label=label)
        except Exception as exc:
            if not is_transient(exc):
                raise
            last_exc = exc
            logger.warning(
                "%s transient failure (attempt %s/%s): %s",
                label,
                attempt,
                max_tries,
                exc,
            )
            if attempt < max_tries:
                await sleeper(backoff * attempt)

    logger.error("%s failed after %s attempts: %s", label, max_tries, last_exc)
    raise TransientStorageError(
        "Storage is temporarily unavailable, please retry.",
        details={"operation": label, "attempts": max_tries},
    ) from last_exc


__all__ = ["is_transient", "with_timeout", "with_retry"]
