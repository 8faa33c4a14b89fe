"""Лента последних победителей (только чтение)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession

from fundee_backend.app.core.errors_core import ValidationError
from fundee_backend.app.crud.winners_crud import WinnersCRUD

RECENT_LIMIT_DEFAULT = 20
RECENT_LIMIT_MAX = 100


@dataclass(frozen=True)
class RecentWinner:
    winner_id: int
    draw_id: int
    draw_date: date
    user_id: int
    display_name: str
    ticket_number: int
    tier: str
    amount: Decimal
    created_at: datetime


async def get_recent_winners(db: AsyncSession, limit: int = RECENT_LIMIT_DEFAULT) -> List[RecentWinner]:
    """Новые победители первыми; limit в 1..100."""
    if limit < 1 or limit > RECENT_LIMIT_MAX:
        raise ValidationError(
            f"limit must be between 1 and {RECENT_LIMIT_MAX}",
            details={"limit": limit},
        )
    rows = await WinnersCRUD(db).list_recent_winners(limit)
    return [
        RecentWinner(
            winner_id=w.id,
            draw_id=w.draw_id,
            draw_date=draw_date,
            user_id=w.user_id,
            display_name=name,
            ticket_number=number,
            tier=w.prize_tier,
            amount=w.prize_amount,
            created_at=w.created_at,
        )
        for w, name, draw_date, number in rows
    ]


__all__ = ["RECENT_LIMIT_DEFAULT", "RECENT_LIMIT_MAX", "RecentWinner", "get_recent_winners"]
