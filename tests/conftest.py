# -*- coding: utf-8 -*-
# tests/conftest.py
# =============================================================================
# Общие фикстуры тестов Fundee:
#   • окружение (in-memory SQLite через aiosqlite) выставляется ДО импорта
#     приложения - get_settings() кэшируется;
#   • свежая БД на каждый тест (create_all из метаданных);
#   • фабрики пользователей/розыгрышей/билетов;
#   • httpx.AsyncClient поверх create_app() с подменой get_db и get_now.
# =============================================================================
from __future__ import annotations

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["ENV"] = "test"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ.pop("NOTIFY_WEBHOOK_URL", None)
os.environ.pop("NOTIFY_WEBHOOK_TOKEN", None)

import random  # noqa: E402
from dataclasses import dataclass  # noqa: E402
from datetime import date, datetime, timedelta, timezone  # noqa: E402
from decimal import Decimal  # noqa: E402
from typing import AsyncIterator, Optional  # noqa: E402
from zoneinfo import ZoneInfo  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy import update  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from fundee_backend.app.core.config_core import get_settings  # noqa: E402
from fundee_backend.app.core.database_core import Base  # noqa: E402
from fundee_backend.app.crud.draws_crud import DrawsCRUD  # noqa: E402
from fundee_backend.app.models import MODEL_REGISTRY, Draw, User  # noqa: E402
from fundee_backend.app.services.schedule_service import fire_instant  # noqa: E402
from fundee_backend.app.services.tickets_service import issue_ticket  # noqa: E402
from fundee_backend.app.services.users_service import register_user  # noqa: E402

NY = ZoneInfo("America/New_York")

# 15 января 2026, полдень по Нью-Йорку (EST, UTC-5); розыгрыш в 03:00 UTC 16-го
DRAW_DAY = date(2026, 1, 15)
NOON = datetime(2026, 1, 15, 12, 0, tzinfo=NY)
FIRE_AT = fire_instant(DRAW_DAY, 22, NY)
AFTER_FIRE = FIRE_AT + timedelta(minutes=1)

assert MODEL_REGISTRY


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(20260115)


@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield eng
    finally:
        await eng.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False, class_=AsyncSession)


@pytest.fixture
async def db(session_factory) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


# -----------------------------------------------------------------------------
# Фабрики
# -----------------------------------------------------------------------------
@pytest.fixture
def make_user(db: AsyncSession):
    async def _make(name: str = "player", balance: Decimal = Decimal("0")) -> int:
        profile = await register_user(db, name)
        if balance:
            await db.execute(update(User).where(User.id == profile.id).values(wallet_balance=balance))
            await db.commit()
        return profile.id

    return _make


@pytest.fixture
def make_draw(db: AsyncSession):
    async def _make(draw_date: date = DRAW_DAY, minimum_tickets: int = 1) -> Draw:
        crud = DrawsCRUD(db)
        await crud.create_draw(draw_date, fire_instant(draw_date, 22, NY), minimum_tickets)
        await db.commit()
        draw = await crud.find_draw_by_date(draw_date)
        assert draw is not None
        return draw

    return _make


@pytest.fixture
def fill_draw(db: AsyncSession, rng: random.Random):
    """Выдать count билетов (source=purchase) по кругу пользователям user_ids."""

    async def _fill(draw_id: int, user_ids: list[int], count: int, now: datetime = NOON) -> list[int]:
        ids = []
        for i in range(count):
            issued = await issue_ticket(db, user_ids[i % len(user_ids)], draw_id, "purchase", now, rng=rng)
            ids.append(issued.id)
        return ids

    return _fill


async def wallet(db: AsyncSession, user_id: int) -> Decimal:
    user = await db.get(User, user_id, populate_existing=True)
    assert user is not None
    return user.wallet_balance


# -----------------------------------------------------------------------------
# HTTP-клиент
# -----------------------------------------------------------------------------
@dataclass
class Clock:
    now: datetime

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> Clock:
    return Clock(now=NOON.astimezone(timezone.utc))


@pytest.fixture
async def client(session_factory, clock: Clock) -> AsyncIterator[httpx.AsyncClient]:
    from fundee_backend.app import create_app
    from fundee_backend.app.deps import get_db, get_now

    app = create_app()

    async def _override_db() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_now] = lambda: clock.now

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
        yield http


def user_headers(user_id: int, *, admin: bool = False, idempotency_key: Optional[str] = None) -> dict:
    headers = {"X-User-Id": str(user_id)}
    if admin:
        headers["X-Admin"] = "true"
    if idempotency_key:
        headers["Idempotency-Key"] = idempotency_key
    return headers
