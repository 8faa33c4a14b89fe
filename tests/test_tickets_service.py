from __future__ import annotations

import random

import pytest

from conftest import AFTER_FIRE, NOON
from fundee_backend.app.core.errors_core import IneligibleDrawError, NotFoundError, ValidationError
from fundee_backend.app.crud.draws_crud import DrawsCRUD
from fundee_backend.app.crud.users_crud import UsersCRUD
from fundee_backend.app.services.draws_service import execute_draw
from fundee_backend.app.services.tickets_service import (
    TICKET_NUMBER_MAX,
    TICKET_NUMBER_MIN,
    buy_ticket,
    generate_ticket_number,
    get_user_tickets,
    issue_ad_ticket_in_tx,
    issue_ticket,
    watch_ad_for_ticket,
)


def test_ticket_numbers_are_nine_digits():
    rng = random.Random(7)
    numbers = [generate_ticket_number(rng) for _ in range(500)]
    assert all(TICKET_NUMBER_MIN <= n <= TICKET_NUMBER_MAX for n in numbers)
    assert all(len(str(n)) == 9 for n in numbers)


async def test_buy_ticket_increments_draw_counter(db, make_user, make_draw, rng):
    draw = await make_draw()
    user_id = await make_user()

    first = await buy_ticket(db, user_id, NOON, rng=rng)
    second = await buy_ticket(db, user_id, NOON, rng=rng)

    assert first.draw_id == second.draw_id == draw.id
    assert first.source == "purchase"
    refreshed = await DrawsCRUD(db).get(draw.id)
    assert refreshed.total_tickets == 2


async def test_issue_rejects_unknown_source_and_user(db, make_user, make_draw):
    draw = await make_draw()
    user_id = await make_user()

    with pytest.raises(ValidationError):
        await issue_ticket(db, user_id, draw.id, "gift", NOON)
    with pytest.raises(NotFoundError):
        await issue_ticket(db, 9999, draw.id, "purchase", NOON)
    with pytest.raises(NotFoundError):
        await issue_ticket(db, user_id, 9999, "purchase", NOON)
    assert (await DrawsCRUD(db).get(draw.id)).total_tickets == 0


async def test_no_tickets_after_fire_instant(db, make_user, make_draw):
    draw = await make_draw()
    user_id = await make_user()

    with pytest.raises(IneligibleDrawError):
        await issue_ticket(db, user_id, draw.id, "purchase", AFTER_FIRE)


async def test_no_tickets_into_resolved_draw(db, make_user, make_draw, fill_draw, rng):
    draw = await make_draw(minimum_tickets=1)
    user_id = await make_user()
    await fill_draw(draw.id, [user_id], 1)
    await execute_draw(db, draw.id, NOON, rng=rng, force=True)

    with pytest.raises(IneligibleDrawError):
        await issue_ticket(db, user_id, draw.id, "purchase", NOON)


async def test_user_tickets_are_paged_by_cursor(db, make_user, make_draw, fill_draw):
    draw = await make_draw()
    alice = await make_user("alice")
    bob = await make_user("bob")
    await fill_draw(draw.id, [alice, bob], 10)

    page1 = await get_user_tickets(db, alice, draw.id, limit=3)
    assert len(page1.items) == 3
    assert page1.next_after_id == page1.items[-1].id

    page2 = await get_user_tickets(db, alice, draw.id, limit=3, after_id=page1.next_after_id)
    assert len(page2.items) == 2
    assert page2.next_after_id is None

    ids = [t.id for t in page1.items + page2.items]
    assert ids == sorted(ids)
    assert all(not t.is_winner and t.prize_amount is None for t in page1.items + page2.items)


async def test_user_tickets_validate_limit_and_draw(db, make_user, make_draw):
    draw = await make_draw()
    user_id = await make_user()
    with pytest.raises(ValidationError):
        await get_user_tickets(db, user_id, draw.id, limit=0)
    with pytest.raises(NotFoundError):
        await get_user_tickets(db, user_id, 4242)


@pytest.fixture()
def lock_order(monkeypatch):
    """Порядок, в котором берутся строковые блокировки draws/users."""
    order = []
    draw_lock, user_lock = DrawsCRUD.lock, UsersCRUD.lock_for_update

    async def _draw(self, draw_id):
        order.append("draw")
        return await draw_lock(self, draw_id)

    async def _user(self, user_id):
        order.append("user")
        return await user_lock(self, user_id)

    monkeypatch.setattr(DrawsCRUD, "lock", _draw)
    monkeypatch.setattr(UsersCRUD, "lock_for_update", _user)
    return order


async def test_ad_watch_locks_draw_before_user(db, make_user, make_draw, rng, lock_order):
    draw = await make_draw()
    user_id = await make_user()

    result = await watch_ad_for_ticket(db, user_id, NOON, rng=rng)

    assert result.ticket.draw_id == draw.id and result.ticket.source == "ad_watch"
    assert result.cooldown.count == 1
    assert lock_order == ["draw", "user"]


async def test_ad_ticket_into_closed_draw_never_locks_user(db, make_user, make_draw, lock_order):
    draw = await make_draw()
    user_id = await make_user()

    with pytest.raises(IneligibleDrawError):
        await issue_ad_ticket_in_tx(db, user_id, draw.id, AFTER_FIRE)
    await db.rollback()

    assert lock_order == ["draw"]
    assert (await DrawsCRUD(db).get(draw.id)).total_tickets == 0
