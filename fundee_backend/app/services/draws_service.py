# -*- coding: utf-8 -*-
# fundee_backend/app/services/draws_service.py
# =============================================================================
# Назначение кода:
#   Движок исполнения ежедневного розыгрыша Fundee:
#   pending → refunded (порог участия не набран) | completed (выбраны победители,
#   начислены призы).
#
# Канон / инварианты:
#   • Один шаг = одна транзакция: блокировка строки draws, сверка счётчика,
#     выбор победителей, вставка winners, условный перевод статуса, начисления.
#     Ошибка на любом этапе → rollback, розыгрыш остаётся pending.
#   • Не больше одного успешного исполнения: FOR UPDATE + UPDATE ... WHERE
#     status='pending' (rowcount строго 1), плюс UNIQUE(draw_id, ticket_id).
#   • Повторный вызов по разрешённому розыгрышу - no-op, возвращает
#     записанный результат с already_resolved=True.
#   • Победители: случайная перестановка билетов (SystemRandom по умолчанию),
#     затем непересекающиеся префиксы размеров тиров (10/6/20); при нехватке
#     билетов тиры заполняются жадно по порядку.
#   • Каждый Winner → отдельный атомарный wallet_balance + :amount, так что
#     два выигрышных билета одного пользователя дают сумму обоих призов.
#   • refunded - только статус: денег не двигаем, победителей не создаём.
#
# Запреты:
#   • Следующий розыгрыш здесь не создаётся (это schedule_service при
#     следующем обращении).
#   • Сервис не пересчитывает выигрыши при просмотре результата - начисление
#     происходит ровно один раз, здесь.
# =============================================================================

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from fundee_backend.app.core.config_core import get_settings
from fundee_backend.app.core.errors_core import (
    DrawAlreadyResolvedError,
    DrawNotDueError,
    NotFoundError,
)
from fundee_backend.app.core.logging_core import draw_context, get_logger
from fundee_backend.app.core.retry_core import with_retry
from fundee_backend.app.crud.draws_crud import PENDING, DrawsCRUD
from fundee_backend.app.crud.tickets_crud import TicketsCRUD
from fundee_backend.app.crud.users_crud import UsersCRUD
from fundee_backend.app.crud.winners_crud import WinnersCRUD
from fundee_backend.app.models import Draw

logger = get_logger(__name__)

STATUS_COMPLETED = "completed"
STATUS_REFUNDED = "refunded"

TierSpec = Tuple[str, int, Decimal]

_sysrand = random.SystemRandom()


# -----------------------------------------------------------------------------
# DTO
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class WinnerEntry:
    ticket_id: int
    user_id: int
    tier: str
    amount: Decimal


@dataclass(frozen=True)
class DrawOutcome:
    draw_id: int
    draw_date: date
    status: str
    ticket_count: int
    minimum_tickets: int
    prize_pool: Decimal
    winners: List[WinnerEntry] = field(default_factory=list)
    resolved_at: Optional[datetime] = None
    already_resolved: bool = False

    def tier_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for w in self.winners:
            counts[w.tier] = counts.get(w.tier, 0) + 1
        return counts


@dataclass
class DueRunReport:
    executed: List[DrawOutcome] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)


# -----------------------------------------------------------------------------
# Чистая функция разбиения
# -----------------------------------------------------------------------------
def partition_tiers(
    ticket_ids: Sequence[int],
    tiers: Sequence[TierSpec],
) -> List[Tuple[str, Decimal, List[int]]]:
    """
    Делит (уже перемешанную) последовательность на непересекающиеся префиксы
    размеров тиров. Нехватка билетов → жадное заполнение по порядку тиров.

    >>> partition_tiers([1, 2, 3], [("tier1", 2, Decimal(100)), ("tier2", 2, Decimal(50))])
    [('tier1', Decimal('100'), [1, 2]), ('tier2', Decimal('50'), [3])]
    """
    result: List[Tuple[str, Decimal, List[int]]] = []
    offset = 0
    for tier, size, prize in tiers:
        chunk = list(ticket_ids[offset:offset + size])
        offset += len(chunk)
        result.append((tier, prize, chunk))
    return result


# -----------------------------------------------------------------------------
# Внутренние helpers
# -----------------------------------------------------------------------------
async def _recorded_outcome(db: AsyncSession, draw: Draw, *, already_resolved: bool) -> DrawOutcome:
    winners = await WinnersCRUD(db).list_for_draw(draw.id)
    return DrawOutcome(
        draw_id=draw.id,
        draw_date=draw.draw_date,
        status=draw.status,
        ticket_count=draw.total_tickets,
        minimum_tickets=draw.minimum_tickets,
        prize_pool=draw.prize_pool,
        winners=[
            WinnerEntry(ticket_id=w.ticket_id, user_id=w.user_id, tier=w.prize_tier, amount=w.prize_amount)
            for w in winners
        ],
        resolved_at=draw.resolved_at,
        already_resolved=already_resolved,
    )


def _select_winners(
    tickets: Sequence[Tuple[int, int]],
    tiers: Sequence[TierSpec],
    rng: random.Random,
) -> List[WinnerEntry]:
    owners = dict(tickets)
    shuffled = [tid for tid, _ in tickets]
    rng.shuffle(shuffled)
    entries: List[WinnerEntry] = []
    for tier, prize, chunk in partition_tiers(shuffled, tiers):
        entries.extend(
            WinnerEntry(ticket_id=tid, user_id=owners[tid], tier=tier, amount=prize) for tid in chunk
        )
    return entries


async def _execute_in_tx(
    db: AsyncSession,
    draw_id: int,
    now: datetime,
    rng: random.Random,
    force: bool,
) -> DrawOutcome:
    draws = DrawsCRUD(db)

    draw = await draws.lock(draw_id)
    if draw is None:
        raise NotFoundError("Draw not found.", details={"draw_id": draw_id})
    if draw.status != PENDING:
        return await _recorded_outcome(db, draw, already_resolved=True)
    if not force and now < draw.fire_at:
        raise DrawNotDueError(details={"draw_id": draw_id, "fire_at": draw.fire_at.isoformat()})

    tickets = await TicketsCRUD(db).list_tickets_for_draw(draw_id)
    ticket_count = len(tickets)
    if ticket_count != draw.total_tickets:
        logger.warning(
            "draw ticket counter reconciled",
            extra={"draw_id": draw_id, "stored": draw.total_tickets, "counted": ticket_count},
        )

    if ticket_count < draw.minimum_tickets:
        status = STATUS_REFUNDED
        entries: List[WinnerEntry] = []
    else:
        status = STATUS_COMPLETED
        entries = _select_winners(tickets, get_settings().prize_tiers(), rng)
        await WinnersCRUD(db).insert_winners(
            {
                "draw_id": draw_id,
                "user_id": e.user_id,
                "ticket_id": e.ticket_id,
                "prize_amount": e.amount,
                "prize_tier": e.tier,
            }
            for e in entries
        )

    prize_pool = sum((e.amount for e in entries), Decimal("0"))
    updated = await draws.update_draw_status(
        draw_id,
        status=status,
        prize_pool=prize_pool,
        total_tickets=ticket_count,
        resolved_at=now,
    )
    if updated != 1:
        raise DrawAlreadyResolvedError(details={"draw_id": draw_id})

    users = UsersCRUD(db)
    for e in entries:
        await users.increment_wallet_balance(e.user_id, e.amount)

    return DrawOutcome(
        draw_id=draw_id,
        draw_date=draw.draw_date,
        status=status,
        ticket_count=ticket_count,
        minimum_tickets=draw.minimum_tickets,
        prize_pool=prize_pool,
        winners=entries,
        resolved_at=now,
        already_resolved=False,
    )


# -----------------------------------------------------------------------------
# Публичные операции
# -----------------------------------------------------------------------------
async def execute_draw(
    db: AsyncSession,
    draw_id: int,
    now: datetime,
    rng: Optional[random.Random] = None,
    force: bool = False,
) -> DrawOutcome:
    """
    Исполняет розыгрыш одной транзакцией.

    Исключения:
      • NotFoundError            - розыгрыша нет;
      • DrawNotDueError          - now < fire_at и force=False;
      • DrawAlreadyResolvedError - проиграна гонка за перевод статуса.
    """
    with draw_context(draw_id):
        try:
            outcome = await _execute_in_tx(db, draw_id, now, rng or _sysrand, force)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        if not outcome.already_resolved:
            logger.info(
                "draw resolved",
                extra={
                    "draw_id": draw_id,
                    "status": outcome.status,
                    "tickets": outcome.ticket_count,
                    "minimum": outcome.minimum_tickets,
                    "winners": len(outcome.winners),
                    "prize_pool": str(outcome.prize_pool),
                },
            )
            if outcome.winners:
                logger.info("wallets credited", extra={"credits": len(outcome.winners)})
    return outcome


async def execute_due_draws(
    db: AsyncSession,
    now: datetime,
    rng: Optional[random.Random] = None,
) -> DueRunReport:
    """
    Исполняет все pending-розыгрыши с fire_at <= now. Сбой одного розыгрыша
    логируется и не останавливает остальные.
    """
    report = DueRunReport()
    due_ids = await DrawsCRUD(db).list_due_ids(now)
    for draw_id in due_ids:
        try:
            outcome = await with_retry(
                lambda did=draw_id: execute_draw(db, did, now, rng=rng),
                label=f"execute_draw:{draw_id}",
            )
        except DrawAlreadyResolvedError:
            logger.info("draw already resolved by another worker", extra={"draw_id": draw_id})
            report.skipped.append(draw_id)
            continue
        except Exception as exc:
            logger.error("draw execution failed", extra={"draw_id": draw_id, "error": str(exc)})
            report.failed.append(draw_id)
            continue
        if outcome.already_resolved:
            report.skipped.append(draw_id)
        else:
            report.executed.append(outcome)
    return report


async def get_draw_outcome(db: AsyncSession, draw_id: int) -> DrawOutcome:
    """Записанный результат розыгрыша (для pending - без победителей)."""
    draw = await DrawsCRUD(db).get(draw_id)
    if draw is None:
        raise NotFoundError("Draw not found.", details={"draw_id": draw_id})
    return await _recorded_outcome(db, draw, already_resolved=draw.status != PENDING)


__all__ = [
    "STATUS_COMPLETED",
    "STATUS_REFUNDED",
    "WinnerEntry",
    "DrawOutcome",
    "DueRunReport",
    "partition_tiers",
    "execute_draw",
    "execute_due_draws",
    "get_draw_outcome",
]
