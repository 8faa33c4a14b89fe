# -*- coding: utf-8 -*-
# fundee_backend/app/services/outcome_service.py
# =============================================================================
# Назначение кода:
#   Сверка результата розыгрыша для пользователя: выиграл ли он, сколько,
#   какими билетами. Первый просмотр положительного результата порождает
#   одно доставленное уведомление.
#
# Канон / инварианты:
#   • Только чтение кошелька: начисление уже сделал draws_service.
#   • pending → status=pending, won=False; refunded → status=refunded, won=False.
#   • Отметка outcome_notices одна на (user_id, draw_id); first_view=True
#     только у вызова, чья вставка прошла.
#   • Уведомление отправляется под блокировкой отметки, пока delivered_at
#     пуст; неудачная доставка повторяется при следующей сверке, удачная
#     больше не повторяется.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession

from fundee_backend.app.core.errors_core import NotFoundError
from fundee_backend.app.core.logging_core import get_logger
from fundee_backend.app.core.utils_core import utcnow
from fundee_backend.app.crud.draws_crud import DrawsCRUD
from fundee_backend.app.crud.winners_crud import WinnersCRUD
from fundee_backend.app.services import notifications_service

logger = get_logger(__name__)


@dataclass(frozen=True)
class WinningEntry:
    ticket_id: int
    ticket_number: int
    tier: str
    amount: Decimal


@dataclass(frozen=True)
class WinningsSummary:
    draw_id: int
    user_id: int
    status: str
    won: bool
    total_amount: Decimal
    entries: List[WinningEntry] = field(default_factory=list)
    first_view: bool = False


async def check_outcome(db: AsyncSession, user_id: int, draw_id: int) -> WinningsSummary:
    """Итог розыгрыша для пользователя; доставляет уведомление один раз на (user, draw)."""
    draw = await DrawsCRUD(db).get(draw_id)
    if draw is None:
        raise NotFoundError("Draw not found.", details={"draw_id": draw_id})

    if draw.status != "completed":
        return WinningsSummary(
            draw_id=draw_id,
            user_id=user_id,
            status=draw.status,
            won=False,
            total_amount=Decimal("0"),
        )

    winners = WinnersCRUD(db)
    rows = await winners.list_winning_tickets_for_user(user_id, draw_id)
    entries = [
        WinningEntry(ticket_id=w.ticket_id, ticket_number=number, tier=w.prize_tier, amount=w.prize_amount)
        for w, number in rows
    ]
    total = sum((e.amount for e in entries), Decimal("0"))
    if not entries:
        return WinningsSummary(
            draw_id=draw_id,
            user_id=user_id,
            status=draw.status,
            won=False,
            total_amount=total,
        )

    try:
        first_view = await winners.insert_outcome_notice_if_absent(user_id, draw_id, total)
        notice = await winners.lock_undelivered_notice(user_id, draw_id)
        if notice is not None:
            if await notifications_service.notify_outcome(user_id, draw_id, notice.total_amount):
                await winners.mark_notice_delivered(notice.id, utcnow())
            else:
                logger.warning(
                    "outcome notice not delivered, will retry on next check",
                    extra={"user_id": user_id, "draw_id": draw_id},
                )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    return WinningsSummary(
        draw_id=draw_id,
        user_id=user_id,
        status=draw.status,
        won=True,
        total_amount=total,
        entries=entries,
        first_view=first_view,
    )


__all__ = ["WinningEntry", "WinningsSummary", "check_outcome"]
