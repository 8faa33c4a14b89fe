# -*- coding: utf-8 -*-
# fundee_backend/app/deps.py
# =============================================================================
# Fundee - Общие зависимости FastAPI: БД-сессия, «текущее время»,
#           идемпотентность, аутентификация, админ-гейт, курсоры и ETag.
# -----------------------------------------------------------------------------
# Канон/требования:
#   • Денежный POST (заявка на вывод) - строго с Idempotency-Key.
#   • Списки - только cursor-based (keyset) пагинация.
#   • «Сейчас» для сервисов берётся из get_now (в тестах подменяется).
#
# Этот модуль НЕ делает бизнес-логику, только инфраструктуру/валидацию.
# =============================================================================
from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from fundee_backend.app.core.database_core import lifespan_session
from fundee_backend.app.core.logging_core import get_logger, set_request_context
from fundee_backend.app.core.utils_core import sha256_hex, utcnow

logger = get_logger(__name__)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Выдаёт AsyncSession для роутов.
    • Сервис сам решает - коммитить или нет (паттерн unit of work).
    • При исключении в стеке зависимостей - rollback().
    """
    async with lifespan_session() as session:
        yield session


def get_now() -> datetime:
    """Текущее UTC-время (aware)."""
    return utcnow()


# -----------------------------------------------------------------------------
# ETag и курсоры
# -----------------------------------------------------------------------------
def make_etag(payload: Dict[str, Any]) -> str:
    """
    Детерминированный ETag из JSON-представления payload.
    Используется фронтом для «304 Not Modified».
    """
    return sha256_hex(json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"), default=str))


def encode_cursor(row_id: int) -> str:
    """Keyset-cursor b64("id:<row_id>")."""
    return base64.urlsafe_b64encode(f"id:{int(row_id)}".encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> int:
    """
    Инверсия encode_cursor: возвращает row_id.
    Бросает HTTP 400 при некорректной строке.
    """
    try:
        raw = base64.urlsafe_b64decode(cursor.encode("ascii")).decode("utf-8")
        prefix, id_str = raw.split(":", 1)
        if prefix != "id":
            raise ValueError(prefix)
        return int(id_str)
    except (ValueError, UnicodeError, binascii.Error):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid cursor") from None


# -----------------------------------------------------------------------------
# Идемпотентность денежных операций
# -----------------------------------------------------------------------------
async def require_idempotency_key(
    idempotency_key: Optional[str] = Header(default=None, convert_underscores=False, alias="Idempotency-Key"),
) -> str:
    """Depend для денежных POST: требует Idempotency-Key (до 128 символов)."""
    key = (idempotency_key or "").strip()
    if not key:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Idempotency-Key header is strictly required for monetary operations.",
        )
    if len(key) > 128:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Idempotency-Key is too long.")
    return key


# -----------------------------------------------------------------------------
# Аутентификация/админ-гейт (доверенный слой API)
# -----------------------------------------------------------------------------
@dataclass
class AuthContext:
    user_id: Optional[int]
    is_admin: bool = False


def get_auth_context(request: Request) -> AuthContext:
    """
    Auth-контекст из заголовков X-User-Id / X-Admin.
    В реальном проде это будет JWT/сессия фронтового шлюза.
    """
    user_id_raw = request.headers.get("X-User-Id")
    is_admin_raw = request.headers.get("X-Admin")
    try:
        user_id = int(user_id_raw) if user_id_raw else None
    except ValueError:
        user_id = None
    is_admin = str(is_admin_raw).lower() == "true" if is_admin_raw is not None else False
    if user_id is not None:
        set_request_context(user_id=user_id)
    return AuthContext(user_id=user_id, is_admin=is_admin)


async def require_admin(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
    if not ctx.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return ctx


async def require_user(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
    if ctx.user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User authentication required")
    return ctx


__all__ = [
    "AuthContext",
    "get_db",
    "get_now",
    "make_etag",
    "encode_cursor",
    "decode_cursor",
    "require_idempotency_key",
    "get_auth_context",
    "require_admin",
    "require_user",
]
