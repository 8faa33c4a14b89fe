# -*- coding: utf-8 -*-
# fundee_backend/app/core/errors_core.py
# =============================================================================
# Назначение кода:
#   • Единый слой доменных ошибок Fundee.
#   • Канонические коды ошибок для фронтенда/логов.
#   • Унифицированные JSON-ответы для FastAPI.
#
# Канон / инварианты:
#   • Сервисы розыгрыша, билетов и вывода бросают ТОЛЬКО исключения из этого
#     модуля (или LockViolation из system_locks). Это и есть «типизированный
#     отказ»: у вызывающего есть стабильный code + причина, а транзакция шага
#     откатывается целиком.
#   • Транзиентные сбои хранилища (TransientStorageError) отличаются от
#     «пустого результата» и отдаются как 503.
#   • Клиенту никогда не утекают технические детали (stack trace, DSN).
#
# Запреты:
#   • Не включать сюда бизнес-логику.
#   • Не логировать здесь секреты/реквизиты выплат.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, cast

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from fundee_backend.app.core.logging_core import get_logger
from fundee_backend.app.core.system_locks import LockViolation

logger = get_logger(__name__)


# -----------------------------------------------------------------------------
# Базовая доменная ошибка
# -----------------------------------------------------------------------------
@dataclass(eq=False)
class FundeeError(Exception):
    """
    Базовое доменное исключение Fundee.

    Поля:
      • code         - стабильный машинный код ошибки (snake_case).
      • message      - короткое безопасное сообщение для клиента.
      • http_status  - HTTP код по умолчанию.
      • details      - безопасные детали (без секретов), опционально.
    """

    code: str
    message: str
    http_status: int = status.HTTP_400_BAD_REQUEST
    details: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        """Готовит JSON-ответ для клиента."""
        payload: Dict[str, Any] = {
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


# -----------------------------------------------------------------------------
# Общие ошибки
# -----------------------------------------------------------------------------
class NotFoundError(FundeeError):
    """Ресурс не найден (розыгрыш, пользователь, реф-код)."""

    def __init__(
        self,
        message: str = "Resource not found.",
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            code="not_found",
            message=message,
            http_status=status.HTTP_404_NOT_FOUND,
            details=details or {},
        )


class ValidationError(FundeeError):
    """Некорректные входные данные/состояние."""

    def __init__(
        self,
        message: str = "Invalid data.",
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            code="validation_error",
            message=message,
            http_status=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details or {},
        )


# -----------------------------------------------------------------------------
# Бизнес-правила билетов и розыгрыша
# -----------------------------------------------------------------------------
class IneligibleDrawError(FundeeError):
    """Розыгрыш не принимает билеты: уже не pending или время срабатывания прошло."""

    def __init__(
        self,
        message: str = "Draw is not accepting tickets.",
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            code="ineligible_draw",
            message=message,
            http_status=status.HTTP_409_CONFLICT,
            details=details or {},
        )


class RateLimitedError(FundeeError):
    """Кулдаун рекламы активен. details.retry_after - секунды до разблокировки."""

    def __init__(
        self,
        message: str = "Ad watching is cooling down.",
        *,
        retry_after: int = 0,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        payload = dict(details or {})
        payload.setdefault("retry_after", int(retry_after))
        super().__init__(
            code="rate_limited",
            message=message,
            http_status=status.HTTP_429_TOO_MANY_REQUESTS,
            details=payload,
        )

    @property
    def retry_after(self) -> int:
        return int(self.details.get("retry_after", 0))


class DrawAlreadyResolvedError(FundeeError):
    """Попытка повторно перевести розыгрыш из pending (проиграна гонка исполнения)."""

    def __init__(
        self,
        message: str = "Draw has already been resolved.",
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            code="draw_already_resolved",
            message=message,
            http_status=status.HTTP_409_CONFLICT,
            details=details or {},
        )


class DrawNotDueError(FundeeError):
    """Розыгрыш ещё не достиг времени срабатывания."""

    def __init__(
        self,
        message: str = "Draw is not due yet.",
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            code="draw_not_due",
            message=message,
            http_status=status.HTTP_409_CONFLICT,
            details=details or {},
        )


# -----------------------------------------------------------------------------
# Кошелёк, рефералка
# -----------------------------------------------------------------------------
class InsufficientBalanceError(FundeeError):
    """
    Вывод отклонён. details.reason:
      • below_minimum   - сумма меньше WITHDRAW_MIN_AMOUNT;
      • exceeds_balance - сумма больше баланса кошелька.
    """

    def __init__(
        self,
        message: str = "Insufficient balance for withdrawal.",
        *,
        reason: str = "exceeds_balance",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        payload = dict(details or {})
        payload.setdefault("reason", reason)
        super().__init__(
            code="insufficient_balance",
            message=message,
            http_status=status.HTTP_400_BAD_REQUEST,
            details=payload,
        )

    @property
    def reason(self) -> str:
        return str(self.details.get("reason", ""))


class ReferralError(FundeeError):
    """Ошибки реферальной системы (самоприглашение, повторное применение)."""

    def __init__(
        self,
        message: str = "Referral operation error.",
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            code="referral_error",
            message=message,
            http_status=status.HTTP_400_BAD_REQUEST,
            details=details or {},
        )


# -----------------------------------------------------------------------------
# Инфраструктура
# -----------------------------------------------------------------------------
class TransientStorageError(FundeeError):
    """Хранилище недоступно/не ответило вовремя. Повторяемая ошибка."""

    def __init__(
        self,
        message: str = "Storage is temporarily unavailable, please retry.",
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            code="storage_unavailable",
            message=message,
            http_status=status.HTTP_503_SERVICE_UNAVAILABLE,
            details=details or {},
        )


# -----------------------------------------------------------------------------
# Нормализация исключений → (status_code, payload)
# -----------------------------------------------------------------------------
def normalize_exception(exc: BaseException) -> Tuple[int, Dict[str, Any]]:
    """
    Приводит произвольное исключение к каноническому HTTP-ответу.

    Правила:
      • FundeeError      → свой http_status + to_payload().
      • LockViolation    → 400 + {"error": "lock_violation", ...}.
      • HTTPException    → status_code + {"error": "http_error", ...}.
      • Любая другая     → 500 + {"error": "internal_error"} (без деталей).
    """
    if isinstance(exc, FundeeError):
        return exc.http_status, exc.to_payload()

    if isinstance(exc, LockViolation):
        logger.warning("LockViolation occurred: %s", str(exc))
        return (
            status.HTTP_400_BAD_REQUEST,
            {"error": "lock_violation", "message": str(exc)},
        )

    if isinstance(exc, HTTPException):
        details: Dict[str, Any] = {}
        if isinstance(exc.detail, str):
            msg = exc.detail
        elif isinstance(exc.detail, dict):
            details = cast(Dict[str, Any], exc.detail)
            msg = details.get("message") or details.get("detail") or "HTTP error."
        else:
            msg = "HTTP error."
        payload: Dict[str, Any] = {"error": "http_error", "message": msg}
        if details:
            payload["details"] = details
        return exc.status_code, payload

    logger.error("Unhandled exception", exc_info=exc, extra={"error_type": type(exc).__name__})
    return (
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        {"error": "internal_error", "message": "Internal server error."},
    )


# -----------------------------------------------------------------------------
# FastAPI-хендлеры исключений
# -----------------------------------------------------------------------------
async def fundee_error_handler(request: Request, exc: FundeeError) -> JSONResponse:
    """Обработчик FundeeError: структурированный JSON с кодом ошибки."""
    status_code, payload = normalize_exception(exc)
    logger.warning(
        "FundeeError handled",
        extra={"path": request.url.path, "error": exc.code, "status": status_code},
    )
    headers = None
    if isinstance(exc, RateLimitedError) and exc.retry_after > 0:
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(status_code=status_code, content=payload, headers=headers)


async def lock_violation_handler(request: Request, exc: LockViolation) -> JSONResponse:
    status_code, payload = normalize_exception(exc)
    logger.warning(
        "LockViolation handled",
        extra={"path": request.url.path, "status": status_code},
    )
    return JSONResponse(status_code=status_code, content=payload)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Обработчик «на всё остальное»: stack trace - в лог, клиенту - только
    безопасный internal_error.
    """
    status_code, payload = normalize_exception(exc)
    logger.error(
        "Unhandled exception handled by generic handler",
        extra={"path": request.url.path, "status": status_code, "exc_type": type(exc).__name__},
    )
    return JSONResponse(status_code=status_code, content=payload)


def setup_exception_handlers(app: FastAPI) -> None:
    """Подключает обработчики исключений. Вызывать один раз в create_app()."""
    app.add_exception_handler(FundeeError, fundee_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(LockViolation, lock_violation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, generic_exception_handler)
    logger.info("Exception handlers registered for FundeeError/LockViolation/Exception")


# =============================================================================
# Пояснения «для чайника»:
#   • Нарушение бизнес-правила (кулдаун, закрытый розыгрыш, мало денег) -
#     бросайте наследника FundeeError, а не голый HTTPException: фронт увидит
#     стабильный code и сможет показать понятный текст.
#   • Таймауты и обрывы соединения с БД превращаются в TransientStorageError
#     (см. retry_core) - клиент получает 503 и может повторить запрос.
# =============================================================================

__all__ = [
    "FundeeError",
    "NotFoundError",
    "ValidationError",
    "IneligibleDrawError",
    "RateLimitedError",
    "DrawAlreadyResolvedError",
    "DrawNotDueError",
    "InsufficientBalanceError",
    "ReferralError",
    "TransientStorageError",
    "normalize_exception",
    "setup_exception_handlers",
]
