# -*- coding: utf-8 -*-
# fundee_backend/app/core/system_locks.py
# =============================================================================
# Назначение кода:
#   «Канон-замок» Fundee. Не даёт сервису стартовать с некорректной
#   экономикой розыгрыша и страхует денежные ручки заголовком Idempotency-Key.
#
# Канон / инварианты (фиксируем жёстко):
#   • Таблица тиров не пуста, размеры тиров > 0, призы > 0 и строго убывают
#     (tier1 > tier2 > tier3) - иначе «жадное» заполнение теряет смысл.
#   • Порог участия DRAW_MIN_TICKETS > 0.
#   • Заявки на вывод (POST /withdrawals) - строго с Idempotency-Key.
#
# ИИ-защита / самовосстановление:
#   • Проверки выполняются на старте (init_system_locks) и формируют чёткий
#     LockViolation вместо «тихой» работы с битой конфигурацией.
#   • Middleware прикрывает денежные префиксы, даже если разработчик забыл
#     зависимость в роуте.
#
# Запреты:
#   • Здесь нет бизнес-логики денег/билетов. Только проверки и middleware.
# =============================================================================

from __future__ import annotations

from decimal import Decimal
from typing import Any, Callable, Iterable, Optional, Sequence, Tuple

from fastapi import FastAPI, Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
from starlette.types import ASGIApp

from fundee_backend.app.core.config_core import Settings, get_settings
from fundee_backend.app.core.logging_core import get_logger

logger = get_logger(__name__)


# -----------------------------------------------------------------------------
# Исключение нарушения канона
# -----------------------------------------------------------------------------
class LockViolation(RuntimeError):
    """
    Нарушение канона / архитектурных запретов.

    Это ОШИБКА КОНФИГУРАЦИИ ПРОЕКТА, а не «ошибка пользователя».
    """


# -----------------------------------------------------------------------------
# Публичные проверки
# -----------------------------------------------------------------------------
def assert_prize_tiers(tiers: Sequence[Tuple[str, int, Decimal]]) -> None:
    """Таблица тиров: непустая, размеры > 0, призы > 0 и строго убывают."""
    if not tiers:
        raise LockViolation("Prize tier table is empty.")
    previous: Optional[Decimal] = None
    for name, size, prize in tiers:
        if size <= 0:
            raise LockViolation(f"Tier {name} size must be > 0, got {size}.")
        if prize <= 0:
            raise LockViolation(f"Tier {name} prize must be > 0, got {prize}.")
        if previous is not None and prize >= previous:
            raise LockViolation(
                f"Tier prizes must be strictly descending; {name}={prize} >= {previous}.",
            )
        previous = prize


def assert_draw_canon(settings: Optional[Settings] = None) -> None:
    """
    Проверяет экономику розыгрыша перед стартом API/воркера.
    При несоответствии поднимает LockViolation.
    """
    s = settings or get_settings()
    assert_prize_tiers(s.prize_tiers())
    if s.DRAW_MIN_TICKETS <= 0:
        raise LockViolation("DRAW_MIN_TICKETS must be > 0.")
    if Decimal(s.WITHDRAW_MIN_AMOUNT) <= 0:
        raise LockViolation("WITHDRAW_MIN_AMOUNT must be > 0.")


# -----------------------------------------------------------------------------
# Страховка Idempotency-Key для денежных ручек
# -----------------------------------------------------------------------------
class MonetaryIdempotencyMiddleware(BaseHTTPMiddleware):
    """
    Если путь «денежный» по префиксу - требуем заголовок Idempotency-Key
    и отвечаем 400 при его отсутствии.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        path_prefixes: Optional[Iterable[str]] = None,
        methods: Tuple[str, ...] = ("POST", "PUT", "PATCH", "DELETE"),
    ) -> None:
        super().__init__(app)
        self.methods = methods
        if path_prefixes is not None:
            self.prefixes = tuple(path_prefixes)
        else:
            api_prefix = get_settings().API_PREFIX.rstrip("/")
            self.prefixes = (f"{api_prefix}/withdrawals",)

    async def dispatch(  # type: ignore[override]
        self,
        request: Request,
        call_next: Callable[[Request], Any],
    ) -> Any:
        if request.method not in self.methods:
            return await call_next(request)

        path = request.url.path or "/"
        if any(path.startswith(p) for p in self.prefixes):
            idk = (request.headers.get("Idempotency-Key") or "").strip()
            if not idk:
                return JSONResponse(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    content={
                        "error": "idempotency_key_required",
                        "message": "Idempotency-Key header is required for monetary operations.",
                    },
                )

        return await call_next(request)


# -----------------------------------------------------------------------------
# Инициализация «замков» на старте приложения
# -----------------------------------------------------------------------------
def init_system_locks(app: FastAPI, settings: Optional[Settings] = None) -> None:
    """
    Вызывать один раз при сборке FastAPI:
        app = FastAPI(...)
        init_system_locks(app)
    """
    assert_draw_canon(settings)
    logger.info("SystemLocks: draw economy validated.")

    app.add_middleware(MonetaryIdempotencyMiddleware)
    logger.info("SystemLocks: MonetaryIdempotencyMiddleware installed.")


__all__ = [
    "LockViolation",
    "assert_prize_tiers",
    "assert_draw_canon",
    "MonetaryIdempotencyMiddleware",
    "init_system_locks",
]

# =============================================================================
# Пояснения «для чайника»:
#   • Если кто-то в .env поставит TIER2_PRIZE=200 (больше tier1), сервис не
#     поднимется: LockViolation скажет, что призы должны убывать.
#   • Денежная ручка здесь одна - заявка на вывод. Ключ идемпотентности
#     дополнительно проверяет зависимость require_idempotency_key в роуте.
# =============================================================================
