# -*- coding: utf-8 -*-
# fundee_backend/app/services/tickets_service.py
# =============================================================================
# Назначение кода:
#   Выдача билетов Fundee из трёх источников (purchase / ad_watch / referral)
#   и курсорный просмотр «мои билеты» с вычисленной выигрышностью.
#
# Канон / инварианты:
#   • Билет выдаётся только в pending-розыгрыш и только пока now < fire_at.
#   • INSERT билета и total_tickets + 1 (WHERE status='pending') - одна
#     транзакция; rowcount 0 → розыгрыш разрешён конкурентно → IneligibleDrawError
#     и откат вставки.
#   • Номер билета - 9 цифр из SystemRandom, коллизии допустимы: ключ - id.
#   • Порядок блокировок: draws, затем users (как у движка розыгрыша).
#   • ad_watch: кулдаун проверяется под блокировкой строки пользователя, факт
#     просмотра (ad_watches) пишется в той же транзакции.
#
# ИИ-защита:
#   • Любая ошибка до commit → rollback: частичных билетов не бывает.
#
# Запреты:
#   • Никаких денег: покупка билета не списывает средства.
# =============================================================================

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from fundee_backend.app.core.errors_core import IneligibleDrawError, NotFoundError, ValidationError
from fundee_backend.app.core.logging_core import get_logger
from fundee_backend.app.crud.draws_crud import PENDING, DrawsCRUD
from fundee_backend.app.crud.tickets_crud import TicketsCRUD
from fundee_backend.app.crud.users_crud import UsersCRUD
from fundee_backend.app.models.draws_models import TICKET_SOURCE_ENUM, Ticket
from fundee_backend.app.services import cooldown_service
from fundee_backend.app.services.cooldown_service import CooldownState
from fundee_backend.app.services.schedule_service import resolve_active_draw

logger = get_logger(__name__)

TICKET_NUMBER_MIN = 100_000_000
TICKET_NUMBER_MAX = 999_999_999

_sysrand = random.SystemRandom()


# -----------------------------------------------------------------------------
# DTO
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class IssuedTicket:
    id: int
    user_id: int
    draw_id: int
    ticket_number: int
    source: str
    created_at: datetime


@dataclass(frozen=True)
class AdWatchResult:
    ticket: IssuedTicket
    cooldown: CooldownState


@dataclass(frozen=True)
class UserTicket:
    id: int
    ticket_number: int
    source: str
    created_at: datetime
    is_winner: bool
    prize_amount: Optional[Decimal]
    prize_tier: Optional[str]


@dataclass(frozen=True)
class TicketPage:
    draw_id: int
    items: List[UserTicket]
    next_after_id: Optional[int]


def generate_ticket_number(rng: Optional[random.Random] = None) -> int:
    """9-значный номер билета, равномерно из [100000000, 999999999]."""
    return (rng or _sysrand).randint(TICKET_NUMBER_MIN, TICKET_NUMBER_MAX)


# -----------------------------------------------------------------------------
# Выдача (внутри открытой транзакции, без commit)
# -----------------------------------------------------------------------------
async def _lock_open_draw(draws: DrawsCRUD, user_id: int, draw_id: int, now: datetime) -> None:
    # Строка draws берётся первой: тот же порядок блокировок, что у движка
    # розыгрыша (draws → users).
    draw = await draws.lock(draw_id)
    if draw is None:
        raise NotFoundError("Draw not found.", details={"draw_id": draw_id})
    if draw.status != PENDING or now >= draw.fire_at:
        logger.warning(
            "ticket rejected: draw not accepting tickets",
            extra={"draw_id": draw_id, "user_id": user_id, "status": draw.status},
        )
        raise IneligibleDrawError(details={"draw_id": draw_id, "status": draw.status})


async def _insert_and_count(
    db: AsyncSession,
    draws: DrawsCRUD,
    user_id: int,
    draw_id: int,
    source: str,
    rng: Optional[random.Random],
) -> Ticket:
    ticket = await TicketsCRUD(db).insert_ticket(user_id, draw_id, generate_ticket_number(rng), source)
    if await draws.increment_draw_ticket_count(draw_id) != 1:
        logger.warning("ticket rejected: draw resolved concurrently", extra={"draw_id": draw_id})
        raise IneligibleDrawError(details={"draw_id": draw_id})
    return ticket


def _issued(ticket: Ticket) -> IssuedTicket:
    return IssuedTicket(
        id=ticket.id,
        user_id=ticket.user_id,
        draw_id=ticket.draw_id,
        ticket_number=ticket.ticket_number,
        source=ticket.source,
        created_at=ticket.created_at,
    )


async def issue_ad_ticket_in_tx(
    db: AsyncSession,
    user_id: int,
    draw_id: int,
    now: datetime,
    *,
    rng: Optional[random.Random] = None,
) -> AdWatchResult:
    """
    Шаг выдачи ad_watch без commit: блокировка розыгрыша, затем пользователя
    (кулдаун), INSERT билета, инкремент счётчика, запись просмотра.
    """
    draws = DrawsCRUD(db)
    await _lock_open_draw(draws, user_id, draw_id, now)
    before = await cooldown_service.acquire_watch_slot(db, user_id, now)
    ticket = await _insert_and_count(db, draws, user_id, draw_id, "ad_watch", rng)
    after = await cooldown_service.record_watch(db, user_id, ticket.id, before, now)
    return AdWatchResult(ticket=_issued(ticket), cooldown=after)


async def issue_ticket_in_tx(
    db: AsyncSession,
    user_id: int,
    draw_id: int,
    source: str,
    now: datetime,
    *,
    rng: Optional[random.Random] = None,
) -> IssuedTicket:
    """Шаг выдачи без commit: проверки, INSERT билета, инкремент счётчика."""
    if source not in TICKET_SOURCE_ENUM:
        raise ValidationError("Unknown ticket source.", details={"source": source})
    if source == "ad_watch":
        return (await issue_ad_ticket_in_tx(db, user_id, draw_id, now, rng=rng)).ticket

    draws = DrawsCRUD(db)
    await _lock_open_draw(draws, user_id, draw_id, now)
    if await UsersCRUD(db).get_by_id(user_id) is None:
        raise NotFoundError("User not found.", details={"user_id": user_id})
    return _issued(await _insert_and_count(db, draws, user_id, draw_id, source, rng))


# -----------------------------------------------------------------------------
# Публичные операции (unit of work с commit)
# -----------------------------------------------------------------------------
async def issue_ticket(
    db: AsyncSession,
    user_id: int,
    draw_id: int,
    source: str,
    now: datetime,
    *,
    rng: Optional[random.Random] = None,
) -> IssuedTicket:
    """Выдаёт один билет и фиксирует транзакцию."""
    try:
        issued = await issue_ticket_in_tx(db, user_id, draw_id, source, now, rng=rng)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info(
        "ticket issued",
        extra={"ticket_id": issued.id, "draw_id": draw_id, "user_id": user_id, "source": source},
    )
    return issued


async def buy_ticket(
    db: AsyncSession,
    user_id: int,
    now: datetime,
    *,
    rng: Optional[random.Random] = None,
) -> IssuedTicket:
    """Билет в активный розыгрыш (source=purchase)."""
    descriptor = await resolve_active_draw(db, now)
    return await issue_ticket(db, user_id, descriptor.draw.id, "purchase", now, rng=rng)


async def watch_ad_for_ticket(
    db: AsyncSession,
    user_id: int,
    now: datetime,
    *,
    rng: Optional[random.Random] = None,
) -> AdWatchResult:
    """Билет за просмотр рекламы (source=ad_watch) + новое состояние кулдауна."""
    descriptor = await resolve_active_draw(db, now)
    try:
        result = await issue_ad_ticket_in_tx(db, user_id, descriptor.draw.id, now, rng=rng)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info(
        "ticket issued",
        extra={
            "ticket_id": result.ticket.id,
            "draw_id": result.ticket.draw_id,
            "user_id": user_id,
            "source": "ad_watch",
            "ad_count": result.cooldown.count,
        },
    )
    return result


async def get_user_tickets(
    db: AsyncSession,
    user_id: int,
    draw_id: int,
    limit: int = 50,
    after_id: Optional[int] = None,
) -> TicketPage:
    """Курсорная страница билетов пользователя (id ASC) с is_winner и призом."""
    if limit < 1 or limit > 200:
        raise ValidationError("limit must be between 1 and 200", details={"limit": limit})
    if await DrawsCRUD(db).get(draw_id) is None:
        raise NotFoundError("Draw not found.", details={"draw_id": draw_id})

    rows = await TicketsCRUD(db).list_user_tickets_page(user_id, draw_id, limit=limit, after_id=after_id)
    items = [
        UserTicket(
            id=t.id,
            ticket_number=t.ticket_number,
            source=t.source,
            created_at=t.created_at,
            is_winner=amount is not None,
            prize_amount=amount,
            prize_tier=tier,
        )
        for t, amount, tier in rows
    ]
    next_after = items[-1].id if len(items) == limit else None
    return TicketPage(draw_id=draw_id, items=items, next_after_id=next_after)


__all__ = [
    "TICKET_NUMBER_MIN",
    "TICKET_NUMBER_MAX",
    "IssuedTicket",
    "AdWatchResult",
    "UserTicket",
    "TicketPage",
    "generate_ticket_number",
    "issue_ad_ticket_in_tx",
    "issue_ticket_in_tx",
    "issue_ticket",
    "buy_ticket",
    "watch_ad_for_ticket",
    "get_user_tickets",
]
