# -*- coding: utf-8 -*-
# fundee_backend/app/services/cooldown_service.py
# =============================================================================
# Назначение кода:
#   Кулдаун кнопки «посмотреть рекламу → получить билет»:
#   5 просмотров подряд → блокировка на 10 минут → снова активна со счётчиком 0.
#
# Канон / инварианты:
#   • Состояние НЕ хранится отдельно: оно вычисляется из последней записи
#     ad_watches функцией compute_cooldown_state() - единый источник истины.
#   • Счётчик - в пределах календарного дня в зоне DRAW_TIMEZONE; дедлайн
#     кулдауна действует и через полночь.
#   • Одновременные просмотры одного пользователя сериализуются блокировкой
#     строки users (SELECT ... FOR UPDATE) до вычисления состояния.
#
# Запреты:
#   • Модуль не выдаёт билеты - это tickets_service; здесь только проверка
#     и запись факта просмотра в той же транзакции.
# =============================================================================

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fundee_backend.app.core.config_core import get_settings
from fundee_backend.app.core.errors_core import NotFoundError, RateLimitedError
from fundee_backend.app.core.logging_core import get_logger
from fundee_backend.app.crud.users_crud import UsersCRUD
from fundee_backend.app.models import AdWatch

logger = get_logger(__name__)


@dataclass(frozen=True)
class CooldownState:
    is_active: bool
    count: int
    cooldown_until: Optional[datetime]
    seconds_remaining: int


def compute_cooldown_state(
    last_watch,
    now: datetime,
    tz: ZoneInfo,
    batch: int,
    cooldown_seconds: int,
) -> CooldownState:
    """
    Состояние кнопки по последнему просмотру (объект с session_count и watched_at).

      • просмотров не было                      → active, count=0;
      • session_count >= batch и now < дедлайна → cooldown;
      • session_count >= batch, дедлайн прошёл  → active, count=0;
      • иначе active, count=session_count, если просмотр был сегодня (tz), иначе 0.
    """
    if last_watch is None:
        return CooldownState(is_active=True, count=0, cooldown_until=None, seconds_remaining=0)

    count = int(last_watch.session_count)
    watched_at: datetime = last_watch.watched_at

    if count >= batch:
        deadline = watched_at + timedelta(seconds=cooldown_seconds)
        if now < deadline:
            remaining = math.ceil((deadline - now).total_seconds())
            return CooldownState(
                is_active=False,
                count=count,
                cooldown_until=deadline,
                seconds_remaining=remaining,
            )
        return CooldownState(is_active=True, count=0, cooldown_until=None, seconds_remaining=0)

    same_day = watched_at.astimezone(tz).date() == now.astimezone(tz).date()
    return CooldownState(
        is_active=True,
        count=count if same_day else 0,
        cooldown_until=None,
        seconds_remaining=0,
    )


async def _last_watch(db: AsyncSession, user_id: int) -> Optional[AdWatch]:
    stmt = (
        select(AdWatch)
        .where(AdWatch.user_id == int(user_id))
        .order_by(AdWatch.watched_at.desc(), AdWatch.id.desc())
        .limit(1)
    )
    return await db.scalar(stmt)


def _state_for(last: Optional[AdWatch], now: datetime) -> CooldownState:
    settings = get_settings()
    return compute_cooldown_state(
        last,
        now,
        settings.draw_zone,
        settings.AD_BATCH_SIZE,
        settings.AD_COOLDOWN_SECONDS,
    )


async def get_cooldown_state(db: AsyncSession, user_id: int, now: datetime) -> CooldownState:
    """Состояние кнопки «реклама» для API (без блокировок)."""
    user = await UsersCRUD(db).get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found.", details={"user_id": user_id})
    return _state_for(await _last_watch(db, user_id), now)


async def acquire_watch_slot(db: AsyncSession, user_id: int, now: datetime) -> CooldownState:
    """
    Блокирует строку пользователя и проверяет кулдаун.
    Активен кулдаун → RateLimitedError(retry_after). Иначе - текущее состояние.
    """
    user = await UsersCRUD(db).lock_for_update(user_id)
    if user is None:
        raise NotFoundError("User not found.", details={"user_id": user_id})

    state = _state_for(await _last_watch(db, user_id), now)
    if not state.is_active:
        logger.warning(
            "ad watch rejected: cooldown active",
            extra={"user_id": user_id, "retry_after": state.seconds_remaining},
        )
        raise RateLimitedError(
            retry_after=state.seconds_remaining,
            details={"cooldown_until": state.cooldown_until.isoformat() if state.cooldown_until else None},
        )
    return state


async def record_watch(
    db: AsyncSession,
    user_id: int,
    ticket_id: int,
    before: CooldownState,
    now: datetime,
) -> CooldownState:
    """Записывает просмотр (session_count = before.count + 1) и возвращает новое состояние."""
    watch = AdWatch(
        user_id=int(user_id),
        ticket_id=int(ticket_id),
        session_count=before.count + 1,
        watched_at=now,
    )
    db.add(watch)
    await db.flush()
    return _state_for(watch, now)


__all__ = [
    "CooldownState",
    "compute_cooldown_state",
    "get_cooldown_state",
    "acquire_watch_slot",
    "record_watch",
]
