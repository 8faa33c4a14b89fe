from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import select

from conftest import AFTER_FIRE, wallet
from fundee_backend.app.core.errors_core import NotFoundError
from fundee_backend.app.models import OutcomeNotice
from fundee_backend.app.services import notifications_service
from fundee_backend.app.services.draws_service import execute_draw
from fundee_backend.app.services.outcome_service import check_outcome


@pytest.fixture
def sent(monkeypatch):
    calls = []

    async def _fake_notify(user_id, draw_id, amount, **kwargs):
        calls.append((user_id, draw_id, amount))
        return True

    monkeypatch.setattr(notifications_service, "notify_outcome", _fake_notify)
    return calls


async def test_repeated_checks_notify_once_and_never_credit(db, make_user, make_draw, fill_draw, rng, sent):
    draw = await make_draw(minimum_tickets=1)
    user_id = await make_user()
    await fill_draw(draw.id, [user_id], 3)
    await execute_draw(db, draw.id, AFTER_FIRE, rng=rng)
    balance = await wallet(db, user_id)
    assert balance == Decimal("300")

    first = await check_outcome(db, user_id, draw.id)
    second = await check_outcome(db, user_id, draw.id)
    third = await check_outcome(db, user_id, draw.id)

    assert first.won and first.first_view
    assert not second.first_view and not third.first_view
    assert first.total_amount == second.total_amount == Decimal("300")
    assert len(first.entries) == 3
    assert sent == [(user_id, draw.id, Decimal("300"))]
    assert await wallet(db, user_id) == balance


async def test_losers_and_unresolved_draws_are_not_notified(db, make_user, make_draw, fill_draw, rng, sent):
    draw = await make_draw(minimum_tickets=1)
    player = await make_user("player")
    bystander = await make_user("bystander")
    await fill_draw(draw.id, [player], 1)

    pending = await check_outcome(db, player, draw.id)
    assert pending.status == "pending" and pending.won is False

    await execute_draw(db, draw.id, AFTER_FIRE, rng=rng)
    outcome = await check_outcome(db, bystander, draw.id)
    assert outcome.status == "completed"
    assert outcome.won is False and outcome.total_amount == Decimal("0")
    assert sent == []


async def test_refunded_draw_reports_no_win(db, make_user, make_draw, fill_draw, rng, sent):
    draw = await make_draw(minimum_tickets=10)
    user_id = await make_user()
    await fill_draw(draw.id, [user_id], 2)
    await execute_draw(db, draw.id, AFTER_FIRE, rng=rng)

    outcome = await check_outcome(db, user_id, draw.id)
    assert outcome.status == "refunded" and outcome.won is False
    assert sent == []


async def test_unknown_draw(db, make_user):
    user_id = await make_user()
    with pytest.raises(NotFoundError):
        await check_outcome(db, user_id, 31337)


async def test_failed_delivery_is_retried_on_next_check(db, make_user, make_draw, fill_draw, rng, monkeypatch):
    draw = await make_draw(minimum_tickets=1)
    user_id = await make_user()
    await fill_draw(draw.id, [user_id], 1)
    await execute_draw(db, draw.id, AFTER_FIRE, rng=rng)

    attempts = []
    delivered = iter([False, True])

    async def _flaky_notify(user_id, draw_id, amount, **kwargs):
        attempts.append((user_id, draw_id, amount))
        return next(delivered)

    monkeypatch.setattr(notifications_service, "notify_outcome", _flaky_notify)

    first = await check_outcome(db, user_id, draw.id)
    second = await check_outcome(db, user_id, draw.id)
    third = await check_outcome(db, user_id, draw.id)

    assert first.first_view and not second.first_view and not third.first_view
    assert attempts == [(user_id, draw.id, Decimal("100"))] * 2
    notice = await db.scalar(
        select(OutcomeNotice).where(OutcomeNotice.user_id == user_id).execution_options(populate_existing=True)
    )
    assert notice.delivered_at is not None
