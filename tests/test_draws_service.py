from __future__ import annotations

import asyncio
import random
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from conftest import AFTER_FIRE, DRAW_DAY, FIRE_AT, NOON, wallet
from fundee_backend.app.core.database_core import Base
from fundee_backend.app.core.errors_core import DrawAlreadyResolvedError, DrawNotDueError, NotFoundError
from fundee_backend.app.crud.draws_crud import DrawsCRUD
from fundee_backend.app.models import Draw, Winner
from fundee_backend.app.services.draws_service import (
    STATUS_COMPLETED,
    STATUS_REFUNDED,
    execute_draw,
    execute_due_draws,
    get_draw_outcome,
    partition_tiers,
)
from fundee_backend.app.services.tickets_service import get_user_tickets, issue_ticket
from fundee_backend.app.services.users_service import register_user

TIERS = [("tier1", 10, Decimal("100")), ("tier2", 6, Decimal("50")), ("tier3", 20, Decimal("10"))]


def test_partition_full_table():
    chunks = partition_tiers(list(range(40)), TIERS)
    assert [(t, len(c)) for t, _, c in chunks] == [("tier1", 10), ("tier2", 6), ("tier3", 20)]
    flat = [tid for _, _, c in chunks for tid in c]
    assert len(flat) == len(set(flat)) == 36


def test_partition_shortage_fills_greedily():
    chunks = partition_tiers(list(range(12)), TIERS)
    assert [len(c) for _, _, c in chunks] == [10, 2, 0]


async def test_threshold_minus_one_is_refunded(db, make_user, make_draw, fill_draw, rng):
    draw = await make_draw(minimum_tickets=5)
    user_id = await make_user()
    await fill_draw(draw.id, [user_id], 4)

    outcome = await execute_draw(db, draw.id, AFTER_FIRE, rng=rng)

    assert outcome.status == STATUS_REFUNDED
    assert outcome.winners == []
    assert outcome.prize_pool == Decimal("0")
    assert await wallet(db, user_id) == Decimal("0")


async def test_threshold_exact_is_completed(db, make_user, make_draw, fill_draw, rng):
    draw = await make_draw(minimum_tickets=5)
    user_id = await make_user()
    await fill_draw(draw.id, [user_id], 5)

    outcome = await execute_draw(db, draw.id, AFTER_FIRE, rng=rng)

    assert outcome.status == STATUS_COMPLETED
    assert outcome.tier_counts() == {"tier1": 5}
    assert outcome.prize_pool == Decimal("500")


async def test_forty_tickets_fill_all_tiers(db, make_user, make_draw, fill_draw, rng):
    draw = await make_draw(minimum_tickets=40)
    users = [await make_user(f"u{i}") for i in range(4)]
    ticket_ids = await fill_draw(draw.id, users, 40)

    outcome = await execute_draw(db, draw.id, AFTER_FIRE, rng=rng)

    assert outcome.tier_counts() == {"tier1": 10, "tier2": 6, "tier3": 20}
    won = [w.ticket_id for w in outcome.winners]
    assert len(won) == len(set(won)) == 36
    assert set(won) <= set(ticket_ids)
    assert outcome.prize_pool == Decimal("1500")

    total = sum([await wallet(db, u) for u in users], Decimal("0"))
    assert total == Decimal("1500")


async def test_eight_tickets_are_all_tier1(db, make_user, make_draw, fill_draw, rng):
    draw = await make_draw(minimum_tickets=1)
    user_id = await make_user()
    await fill_draw(draw.id, [user_id], 8)

    outcome = await execute_draw(db, draw.id, AFTER_FIRE, rng=rng)

    assert outcome.tier_counts() == {"tier1": 8}
    assert await wallet(db, user_id) == Decimal("800")


async def test_second_execution_is_a_no_op(db, make_user, make_draw, fill_draw, rng):
    draw = await make_draw(minimum_tickets=1)
    users = [await make_user("a"), await make_user("b")]
    await fill_draw(draw.id, users, 20)

    first = await execute_draw(db, draw.id, AFTER_FIRE, rng=rng)
    balances = [await wallet(db, u) for u in users]
    second = await execute_draw(db, draw.id, AFTER_FIRE, rng=random.Random(1))

    assert first.already_resolved is False
    assert second.already_resolved is True
    assert second.prize_pool == first.prize_pool
    assert {w.ticket_id for w in second.winners} == {w.ticket_id for w in first.winners}
    assert await db.scalar(select(func.count(Winner.id)).where(Winner.draw_id == draw.id)) == 20
    assert [await wallet(db, u) for u in users] == balances


async def test_one_user_two_winning_tickets_gets_both_prizes(db, make_user, make_draw, fill_draw, rng):
    draw = await make_draw(minimum_tickets=1)
    user_id = await make_user()
    await fill_draw(draw.id, [user_id], 2)

    outcome = await execute_draw(db, draw.id, AFTER_FIRE, rng=rng)

    assert len(outcome.winners) == 2
    assert await wallet(db, user_id) == Decimal("200")


async def test_winning_tickets_are_flagged_on_user_page(db, make_user, make_draw, fill_draw, rng):
    draw = await make_draw(minimum_tickets=1)
    user_id = await make_user()
    await fill_draw(draw.id, [user_id], 12)
    await execute_draw(db, draw.id, AFTER_FIRE, rng=rng)

    page = await get_user_tickets(db, user_id, draw.id, limit=50)
    tiers = sorted(t.prize_tier for t in page.items if t.is_winner)
    assert tiers == ["tier1"] * 10 + ["tier2"] * 2


async def test_not_due_unless_forced(db, make_draw, rng):
    draw = await make_draw()
    with pytest.raises(DrawNotDueError):
        await execute_draw(db, draw.id, NOON, rng=rng)
    forced = await execute_draw(db, draw.id, NOON, rng=rng, force=True)
    assert forced.status == STATUS_REFUNDED


async def test_unknown_draw(db):
    with pytest.raises(NotFoundError):
        await execute_draw(db, 777, AFTER_FIRE)
    with pytest.raises(NotFoundError):
        await get_draw_outcome(db, 777)


async def test_execute_due_runs_only_ripe_draws(db, make_user, make_draw, fill_draw, rng):
    ripe = await make_draw(minimum_tickets=1)
    later = await make_draw(draw_date=ripe.draw_date.replace(day=20))
    user_id = await make_user()
    await fill_draw(ripe.id, [user_id], 3)

    report = await execute_due_draws(db, AFTER_FIRE, rng=rng)
    assert [o.draw_id for o in report.executed] == [ripe.id]
    assert report.failed == []

    again = await execute_due_draws(db, AFTER_FIRE, rng=rng)
    assert again.executed == [] and again.skipped == []

    pending = await get_draw_outcome(db, later.id)
    assert pending.status == "pending" and pending.already_resolved is False


@pytest.fixture()
def competing_resolution(monkeypatch):
    """Другой исполнитель переводит розыгрыш из pending прямо перед нашим UPDATE."""
    original = DrawsCRUD.update_draw_status

    async def _update(self, draw_id, **values):
        await self.session.execute(
            update(Draw).where(Draw.id == draw_id).values(status=STATUS_COMPLETED)
        )
        return await original(self, draw_id, **values)

    monkeypatch.setattr(DrawsCRUD, "update_draw_status", _update)


async def test_lost_status_race_credits_nothing(db, make_user, make_draw, fill_draw, rng, competing_resolution):
    draw = await make_draw(minimum_tickets=1)
    users = [await make_user("a"), await make_user("b")]
    await fill_draw(draw.id, users, 6)

    with pytest.raises(DrawAlreadyResolvedError):
        await execute_draw(db, draw.id, AFTER_FIRE, rng=rng)

    assert await db.scalar(select(func.count(Winner.id)).where(Winner.draw_id == draw.id)) == 0
    assert [await wallet(db, u) for u in users] == [Decimal("0"), Decimal("0")]
    assert (await get_draw_outcome(db, draw.id)).status == "pending"


async def test_due_run_skips_draw_lost_to_another_worker(
    db, make_user, make_draw, fill_draw, rng, competing_resolution
):
    draw = await make_draw(minimum_tickets=1)
    user_id = await make_user()
    await fill_draw(draw.id, [user_id], 2)

    report = await execute_due_draws(db, AFTER_FIRE, rng=rng)

    assert report.skipped == [draw.id]
    assert report.executed == [] and report.failed == []
    assert await wallet(db, user_id) == Decimal("0")


@pytest.fixture
async def file_sessions(tmp_path):
    """Отдельные соединения к одной файловой SQLite (у in-memory StaticPool соединение общее)."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'draws.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield async_sessionmaker(bind=eng, expire_on_commit=False, autoflush=False, class_=AsyncSession)
    finally:
        await eng.dispose()


async def test_concurrent_executions_credit_once(file_sessions):
    rng = random.Random(3)
    async with file_sessions() as seed:
        users = [(await register_user(seed, name)).id for name in ("a", "b", "c")]
        await DrawsCRUD(seed).create_draw(DRAW_DAY, FIRE_AT, 1)
        await seed.commit()
        draw_id = (await DrawsCRUD(seed).find_draw_by_date(DRAW_DAY)).id
        for i in range(12):
            await issue_ticket(seed, users[i % 3], draw_id, "purchase", NOON, rng=rng)

    async with file_sessions() as first, file_sessions() as second:
        results = await asyncio.gather(
            execute_draw(first, draw_id, AFTER_FIRE, rng=random.Random(1)),
            execute_draw(second, draw_id, AFTER_FIRE, rng=random.Random(2)),
            return_exceptions=True,
        )

    resolved = [r for r in results if not isinstance(r, BaseException) and not r.already_resolved]
    assert len(resolved) == 1
    winner_set = {w.ticket_id for w in resolved[0].winners}

    async with file_sessions() as check:
        stored = await check.scalars(select(Winner.ticket_id).where(Winner.draw_id == draw_id))
        assert set(stored) == winner_set and len(winner_set) == 12
        credited = sum([await wallet(check, u) for u in users], Decimal("0"))
        assert credited == resolved[0].prize_pool
        assert (await get_draw_outcome(check, draw_id)).status == STATUS_COMPLETED
