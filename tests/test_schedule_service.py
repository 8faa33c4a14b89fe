from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from conftest import AFTER_FIRE, DRAW_DAY, FIRE_AT, NOON, NY
from fundee_backend.app.core.errors_core import IneligibleDrawError, ValidationError
from fundee_backend.app.models import Draw
from fundee_backend.app.services.schedule_service import (
    fire_instant,
    resolve_active_draw,
    resolve_draw_window,
    seconds_until_draw,
)
from fundee_backend.app.services.tickets_service import buy_ticket


def test_fire_instant_winter_and_summer():
    assert fire_instant(date(2026, 1, 15), 22, NY) == datetime(2026, 1, 16, 3, 0, tzinfo=timezone.utc)
    assert fire_instant(date(2026, 7, 1), 22, NY) == datetime(2026, 7, 2, 2, 0, tzinfo=timezone.utc)


def test_window_before_and_at_fire_hour():
    before = datetime(2026, 1, 15, 21, 59, 59, tzinfo=NY)
    window = resolve_draw_window(before, 22, NY)
    assert window.draw_date == DRAW_DAY
    assert window.fire_at == FIRE_AT

    at_fire = datetime(2026, 1, 15, 22, 0, tzinfo=NY)
    window = resolve_draw_window(at_fire, 22, NY)
    assert window.draw_date == date(2026, 1, 16)


def test_window_uses_draw_zone_not_utc_date():
    # 01:00 UTC 16-го - ещё 20:00 15-го в Нью-Йорке
    now = datetime(2026, 1, 16, 1, 0, tzinfo=timezone.utc)
    assert resolve_draw_window(now, 22, NY).draw_date == DRAW_DAY


def test_naive_now_is_rejected():
    with pytest.raises(ValidationError):
        resolve_draw_window(datetime(2026, 1, 15, 12, 0), 22, NY)


def test_seconds_until_draw_floors_and_clamps():
    window = resolve_draw_window(NOON, 22, NY)
    assert seconds_until_draw(NOON, window) == 10 * 3600
    assert seconds_until_draw(FIRE_AT - timedelta(milliseconds=1500), window) == 1
    assert seconds_until_draw(AFTER_FIRE, window) == 0


async def test_resolve_active_draw_is_idempotent(db):
    first = await resolve_active_draw(db, NOON)
    second = await resolve_active_draw(db, NOON)
    third = await resolve_active_draw(db, NOON + timedelta(hours=3))

    assert first.created is True
    assert second.created is False and third.created is False
    assert first.draw.id == second.draw.id == third.draw.id
    assert first.draw.minimum_tickets == 300_000
    assert await db.scalar(select(func.count(Draw.id))) == 1


async def test_unresolved_draw_blocks_next_day(db, make_user):
    user_id = await make_user()
    today = await resolve_active_draw(db, NOON)

    # 22:01 - окно уже завтрашнее, но вчерашний розыгрыш не исполнен
    late = await resolve_active_draw(db, AFTER_FIRE)
    assert late.draw.id == today.draw.id
    assert late.created is False
    assert seconds_until_draw(AFTER_FIRE, late) == 0
    assert await db.scalar(select(func.count(Draw.id))) == 1

    with pytest.raises(IneligibleDrawError):
        await buy_ticket(db, user_id, AFTER_FIRE)
