from __future__ import annotations

import pytest
from sqlalchemy import select

from conftest import NOON
from fundee_backend.app.core.errors_core import NotFoundError, ReferralError
from fundee_backend.app.crud.draws_crud import DrawsCRUD
from fundee_backend.app.crud.users_crud import UsersCRUD
from fundee_backend.app.models import Ticket
from fundee_backend.app.services.referrals_service import apply_referral
from fundee_backend.app.services.users_service import get_user_profile


async def _referral_tickets(db, user_id):
    rows = await db.scalars(select(Ticket).where(Ticket.user_id == user_id, Ticket.source == "referral"))
    return list(rows)


async def test_referral_gives_each_side_one_ticket(db, make_user, make_draw, rng):
    draw = await make_draw()
    referrer = await make_user("referrer")
    newcomer = await make_user("newcomer")
    code = (await get_user_profile(db, referrer)).referral_code

    result = await apply_referral(db, newcomer, f"  {code.lower()} ", NOON, rng=rng)

    assert result.referrer_id == referrer
    assert result.draw_id == draw.id
    assert len(await _referral_tickets(db, referrer)) == 1
    assert len(await _referral_tickets(db, newcomer)) == 1
    assert (await get_user_profile(db, newcomer)).referred_by_id == referrer


async def test_second_application_is_rejected(db, make_user, make_draw, rng):
    await make_draw()
    referrer = await make_user("referrer")
    other = await make_user("other")
    newcomer = await make_user("newcomer")
    code = (await get_user_profile(db, referrer)).referral_code
    other_code = (await get_user_profile(db, other)).referral_code

    await apply_referral(db, newcomer, code, NOON, rng=rng)
    with pytest.raises(ReferralError) as exc_info:
        await apply_referral(db, newcomer, other_code, NOON, rng=rng)

    assert exc_info.value.details["reason"] == "already_referred"
    assert len(await _referral_tickets(db, newcomer)) == 1
    assert await _referral_tickets(db, other) == []


async def test_self_referral_and_unknown_code(db, make_user, make_draw, rng):
    await make_draw()
    user_id = await make_user()
    code = (await get_user_profile(db, user_id)).referral_code

    with pytest.raises(ReferralError) as exc_info:
        await apply_referral(db, user_id, code, NOON, rng=rng)
    assert exc_info.value.details["reason"] == "self_referral"

    with pytest.raises(NotFoundError):
        await apply_referral(db, user_id, "NOSUCHCD", NOON, rng=rng)
    assert await _referral_tickets(db, user_id) == []


async def test_referral_locks_draw_before_users(db, make_user, make_draw, rng, monkeypatch):
    await make_draw()
    referrer = await make_user("referrer")
    newcomer = await make_user("newcomer")
    code = (await get_user_profile(db, referrer)).referral_code

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

    await apply_referral(db, newcomer, code, NOON, rng=rng)

    assert order[0] == "draw"
    assert order.index("draw") < order.index("user")
