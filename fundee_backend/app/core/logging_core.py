# -*- coding: utf-8 -*-
# fundee_backend/app/core/logging_core.py
# =============================================================================
# Назначение кода:
#   Логирование Fundee: один root-логгер, JSON в prod, строки в dev/test,
#   корреляция запросов и розыгрышей через contextvars, маскирование секретов.
#
# Канон / инварианты:
#   • Каждая запись несёт поля env, svc, rid, idk, uid, did ("-" если пусто).
#   • did - id исполняемого розыгрыша: все записи движка внутри draw_context()
#     связываются с конкретным розыгрышем без ручного extra.
#   • Сбой фильтра не роняет запись лога.
#
# Запреты:
#   • Реквизиты вывода в логи не пишутся (см. withdrawals_service).
# =============================================================================

from __future__ import annotations

import contextlib
import contextvars
import logging
import sys
import uuid
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Mapping, Optional, Tuple

from pythonjsonlogger.json import JsonFormatter

from fundee_backend.app.core.config_core import get_settings

ASGIApp = Callable[
    [Mapping[str, Any], Callable[..., Awaitable[Any]], Callable[..., Awaitable[Any]]],
    Awaitable[Any],
]

# поле записи -> contextvar
_CTX: Dict[str, contextvars.ContextVar[Optional[str]]] = {
    "rid": contextvars.ContextVar("fundee_request_id", default=None),
    "idk": contextvars.ContextVar("fundee_idempotency_key", default=None),
    "uid": contextvars.ContextVar("fundee_user_id", default=None),
    "did": contextvars.ContextVar("fundee_draw_id", default=None),
}


def set_request_context(
    *,
    request_id: Optional[str] = None,
    idempotency_key: Optional[str] = None,
    user_id: Optional[int | str] = None,
) -> None:
    """Привязывает поля корреляции к текущей задаче asyncio. None не перезаписывает."""
    for field, value in (("rid", request_id), ("idk", idempotency_key), ("uid", user_id)):
        if value is not None:
            _CTX[field].set(str(value))


def clear_request_context() -> None:
    for var in _CTX.values():
        var.set(None)


@contextlib.contextmanager
def draw_context(draw_id: int) -> Iterator[None]:
    """Все записи внутри блока получают did=<draw_id>."""
    token = _CTX["did"].set(str(draw_id))
    try:
        yield
    finally:
        _CTX["did"].reset(token)


# -----------------------------------------------------------------------------
# Фильтры
# -----------------------------------------------------------------------------
class ContextFilter(logging.Filter):
    def __init__(self, env: str, service: str) -> None:
        super().__init__()
        self._static = {"env": env, "svc": service}

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in self._static.items():
            if not hasattr(record, key):
                setattr(record, key, value)
        for key, var in _CTX.items():
            if not hasattr(record, key):
                setattr(record, key, var.get() or "-")
        return True


class RedactingFilter(logging.Filter):
    """Заменяет значения секретов из настроек на MASK в сообщении и аргументах."""

    MASK = "****"
    SECRET_KEYS: Tuple[str, ...] = ("DATABASE_URL", "NOTIFY_WEBHOOK_TOKEN")

    def __init__(self, settings_obj: object) -> None:
        super().__init__()
        self._secrets: List[str] = [
            val
            for val in (getattr(settings_obj, key, None) for key in self.SECRET_KEYS)
            if isinstance(val, str) and val
        ]

    def _redact(self, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        for secret in self._secrets:
            value = value.replace(secret, self.MASK)
        return value

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if not self._secrets:
            return True
        try:
            record.msg = self._redact(record.msg)
            if isinstance(record.args, tuple):
                record.args = tuple(self._redact(arg) for arg in record.args)
        except Exception:  # noqa: BLE001
            pass
        return True


# -----------------------------------------------------------------------------
# Форматеры
# -----------------------------------------------------------------------------
_TEXT_FORMAT = (
    "%(asctime)s %(levelname)-7s [%(name)s] rid=%(rid)s uid=%(uid)s did=%(did)s idk=%(idk)s :: %(message)s"
)


def _make_formatter(env: str) -> logging.Formatter:
    if env != "prod":
        return logging.Formatter(_TEXT_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S")
    # {"time", "level", "service", "logger", "env", "rid", "idk", "uid", "did", "msg", ...extra}
    return JsonFormatter(
        "%(asctime)s %(levelname)s %(svc)s %(name)s %(env)s %(rid)s %(idk)s %(uid)s %(did)s %(message)s",
        rename_fields={
            "asctime": "time",
            "levelname": "level",
            "svc": "service",
            "name": "logger",
            "message": "msg",
        },
    )


def setup_logging() -> None:
    """
    Пересобирает root-логгер по текущим настройкам (LOG_LEVEL, DEBUG, ENV)
    и заворачивает uvicorn/fastapi в тот же хэндлер.
    """
    settings = get_settings()
    env = settings.env_normalized

    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    if settings.DEBUG:
        level = logging.DEBUG
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_make_formatter(env))
    handler.addFilter(ContextFilter(env=env, service=settings.PROJECT_NAME))
    handler.addFilter(RedactingFilter(settings_obj=settings))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi"):
        lg = logging.getLogger(name)
        lg.handlers.clear()
        lg.setLevel(level)
        lg.propagate = True

    if settings.DEBUG:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)

    logging.getLogger(__name__).debug(
        "logging configured",
        extra={"details": {"env": env, "level": logging.getLevelName(level)}},
    )


def get_logger(name: Optional[str] = None, **extra: Any) -> logging.Logger:
    """get_logger(__name__) или get_logger(__name__, component="scheduler") (LoggerAdapter)."""
    base = logging.getLogger(name)
    if not extra:
        return base
    return logging.LoggerAdapter(base, extra)  # type: ignore[return-value]


# -----------------------------------------------------------------------------
# ASGI-middleware корреляции
# -----------------------------------------------------------------------------
class CorrelationIdMiddleware:
    """
    Берёт X-Request-ID (или генерирует uuid4 hex) и Idempotency-Key из запроса,
    кладёт их в контекст и возвращает X-Request-ID в ответе.
    uid проставляет deps.get_auth_context.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(
        self,
        scope: Mapping[str, Any],
        receive: Callable[..., Awaitable[Any]],
        send: Callable[..., Awaitable[Any]],
    ) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        headers = {k.decode("latin-1").lower(): v.decode("latin-1") for k, v in scope.get("headers") or []}
        rid = headers.get("x-request-id") or uuid.uuid4().hex
        set_request_context(request_id=rid, idempotency_key=headers.get("idempotency-key"))

        async def _send(message: Mapping[str, Any]) -> None:
            if message.get("type") == "http.response.start":
                message = dict(message)
                message["headers"] = [*message.get("headers", []), (b"x-request-id", rid.encode("latin-1"))]
            await send(message)

        try:
            await self.app(scope, receive, _send)
        finally:
            clear_request_context()


setup_logging()

__all__ = [
    "setup_logging",
    "get_logger",
    "set_request_context",
    "clear_request_context",
    "draw_context",
    "CorrelationIdMiddleware",
]
