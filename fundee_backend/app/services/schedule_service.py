# -*- coding: utf-8 -*-
# fundee_backend/app/services/schedule_service.py
# =============================================================================
# Назначение кода:
#   Определение активного розыгрыша Fundee:
#   • resolve_draw_window() - чистая функция: дата розыгрыша и момент
#     срабатывания (DRAW_HOUR в зоне DRAW_TIMEZONE) для заданного now;
#   • resolve_active_draw() - find-or-create записи draws для этого окна;
#   • seconds_until_draw()  - обратный отсчёт для UI.
#
# Канон / инварианты:
#   • Одна зона для всех расчётов (zoneinfo, DRAW_TIMEZONE).
#   • now >= сегодняшнего момента срабатывания → активная дата = завтра.
#   • Неисполненный pending-розыгрыш за прошлую дату остаётся активным,
#     пока движок его не разрешит; новый в это время НЕ создаётся.
#   • Создание - INSERT ... ON CONFLICT (draw_date) DO NOTHING + перечитывание:
#     повторные и конкурентные вызовы не плодят дублей.
#
# Запреты:
#   • Никаких выплат и выбора победителей (это draws_service).
#   • Никаких «наивных» datetime: now обязан быть aware.
# =============================================================================

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from fundee_backend.app.core.config_core import get_settings
from fundee_backend.app.core.errors_core import ValidationError
from fundee_backend.app.core.logging_core import get_logger
from fundee_backend.app.crud.draws_crud import DrawsCRUD
from fundee_backend.app.models import Draw

logger = get_logger(__name__)


# -----------------------------------------------------------------------------
# DTO
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class DrawWindow:
    draw_date: date
    fire_at: datetime  # aware UTC


@dataclass(frozen=True)
class DrawDescriptor:
    draw_date: date
    fire_at: datetime
    draw: Draw
    created: bool


# -----------------------------------------------------------------------------
# Чистые функции
# -----------------------------------------------------------------------------
def _require_aware(now: datetime) -> None:
    if now.tzinfo is None or now.utcoffset() is None:
        raise ValidationError("now must be timezone-aware", details={"now": now.isoformat()})


def fire_instant(draw_date: date, hour: int, tz: ZoneInfo) -> datetime:
    """Момент срабатывания (hour:00 в зоне tz) на draw_date, в UTC."""
    local = datetime.combine(draw_date, time(hour=hour), tzinfo=tz)
    return local.astimezone(timezone.utc)


def resolve_draw_window(now: datetime, hour: int, tz: ZoneInfo) -> DrawWindow:
    """
    Окно активного розыгрыша для момента now.

    Пример (tz=America/New_York, hour=22):
      • 21:59 местного → сегодняшняя дата, fire_at сегодня в 22:00;
      • 22:00 местного → завтрашняя дата.
    """
    _require_aware(now)
    local_today = now.astimezone(tz).date()
    today_fire = fire_instant(local_today, hour, tz)
    if now >= today_fire:
        target = local_today + timedelta(days=1)
        return DrawWindow(draw_date=target, fire_at=fire_instant(target, hour, tz))
    return DrawWindow(draw_date=local_today, fire_at=today_fire)


def seconds_until_draw(now: datetime, window) -> int:
    """Целые секунды до fire_at (не меньше 0). window - DrawWindow/Draw/DrawDescriptor."""
    _require_aware(now)
    delta = (window.fire_at - now).total_seconds()
    return max(0, math.floor(delta))


# -----------------------------------------------------------------------------
# БД: find-or-create
# -----------------------------------------------------------------------------
async def resolve_active_draw(db: AsyncSession, now: datetime) -> DrawDescriptor:
    """
    Возвращает активный розыгрыш, при необходимости создавая его.

    Порядок:
      1) есть pending за более раннюю дату → он и активен (ждёт исполнения);
      2) есть строка на дату окна → вернуть;
      3) иначе INSERT ... ON CONFLICT DO NOTHING, commit, перечитать.
    """
    settings = get_settings()
    window = resolve_draw_window(now, settings.DRAW_HOUR, settings.draw_zone)
    crud = DrawsCRUD(db)

    overdue = await crud.find_overdue_pending(window.draw_date)
    if overdue is not None:
        return DrawDescriptor(
            draw_date=overdue.draw_date,
            fire_at=overdue.fire_at,
            draw=overdue,
            created=False,
        )

    existing = await crud.find_draw_by_date(window.draw_date)
    if existing is not None:
        return DrawDescriptor(
            draw_date=existing.draw_date,
            fire_at=existing.fire_at,
            draw=existing,
            created=False,
        )

    try:
        created = await crud.create_draw(window.draw_date, window.fire_at, settings.DRAW_MIN_TICKETS)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    draw: Optional[Draw] = await crud.find_draw_by_date(window.draw_date)
    if draw is None:
        # строку только что вставили/нашли по UNIQUE - исчезнуть она не может
        raise RuntimeError(f"draw for {window.draw_date} vanished after insert")

    if created:
        logger.info(
            "draw created",
            extra={"draw_id": draw.id, "draw_date": str(draw.draw_date), "fire_at": draw.fire_at.isoformat()},
        )
    return DrawDescriptor(draw_date=draw.draw_date, fire_at=draw.fire_at, draw=draw, created=created)


async def ensure_active_draw(db: AsyncSession, now: datetime) -> DrawDescriptor:
    """Задача планировщика: гарантировать наличие активного розыгрыша."""
    return await resolve_active_draw(db, now)


__all__ = [
    "DrawWindow",
    "DrawDescriptor",
    "fire_instant",
    "resolve_draw_window",
    "seconds_until_draw",
    "resolve_active_draw",
    "ensure_active_draw",
]
