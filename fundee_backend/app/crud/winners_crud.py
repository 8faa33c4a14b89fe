# -*- coding: utf-8 -*-
# fundee_backend/app/crud/winners_crud.py
# =============================================================================
# Назначение:
#   • CRUD победителей и отметок об уведомлении: пакетная вставка победителей,
#     выигрышные билеты пользователя, лента последних победителей,
#     идемпотентная вставка OutcomeNotice.
#
# Канон/инварианты:
#   • Победители создаются только движком розыгрыша; UNIQUE(draw_id, ticket_id)
#     отбрасывает дубль даже при ошибке в сервисе.
#   • insert_outcome_notice_if_absent() - ON CONFLICT DO NOTHING: True ровно
#     у одного вызова на пару (user_id, draw_id).
#   • delivered_at ставится только после успешной доставки уведомления.
# =============================================================================
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Mapping

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fundee_backend.app.core.database_core import insert_ignoring_conflicts
from fundee_backend.app.core.utils_core import utcnow
from fundee_backend.app.models import Draw, OutcomeNotice, Ticket, User, Winner


class WinnersCRUD:
    """CRUD-обёртка для winners/outcome_notices."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def insert_winners(self, rows: Iterable[Mapping[str, Any]]) -> list[Winner]:
        """Вставить победителей одним flush (draw_id, user_id, ticket_id, prize_amount, prize_tier)."""

        winners = [
            Winner(
                draw_id=int(r["draw_id"]),
                user_id=int(r["user_id"]),
                ticket_id=int(r["ticket_id"]),
                prize_amount=r["prize_amount"],
                prize_tier=str(r["prize_tier"]),
            )
            for r in rows
        ]
        if winners:
            self.session.add_all(winners)
            await self.session.flush()
        return winners

    async def list_for_draw(self, draw_id: int) -> list[Winner]:
        """Победители розыгрыша в порядке вставки (tier1 → tier3)."""

        stmt = select(Winner).where(Winner.draw_id == int(draw_id)).order_by(Winner.id.asc())
        rows: Iterable[Winner] = await self.session.scalars(stmt)
        return list(rows)

    async def list_winning_tickets_for_user(
        self, user_id: int, draw_id: int
    ) -> list[tuple[Winner, int]]:
        """Выигрышные билеты пользователя в розыгрыше: (Winner, ticket_number)."""

        stmt = (
            select(Winner, Ticket.ticket_number)
            .join(Ticket, Ticket.id == Winner.ticket_id)
            .where(Winner.user_id == int(user_id), Winner.draw_id == int(draw_id))
            .order_by(Winner.id.asc())
        )
        rows = (await self.session.execute(stmt)).all()
        return [(winner, int(number)) for winner, number in rows]

    async def list_recent_winners(
        self, limit: int
    ) -> list[tuple[Winner, str, date, int]]:
        """Последние победители: (Winner, display_name, draw_date, ticket_number), новые первыми."""

        stmt = (
            select(Winner, User.display_name, Draw.draw_date, Ticket.ticket_number)
            .join(User, User.id == Winner.user_id)
            .join(Draw, Draw.id == Winner.draw_id)
            .join(Ticket, Ticket.id == Winner.ticket_id)
            .order_by(Winner.created_at.desc(), Winner.id.desc())
            .limit(int(limit))
        )
        rows = (await self.session.execute(stmt)).all()
        return [(w, str(name), d, int(num)) for w, name, d, num in rows]

    async def insert_outcome_notice_if_absent(
        self, user_id: int, draw_id: int, total_amount: Decimal
    ) -> bool:
        """True - отметку вставил этот вызов; False - она уже была."""

        stmt = (
            insert_ignoring_conflicts(self.session, OutcomeNotice.__table__)
            .values(
                user_id=int(user_id),
                draw_id=int(draw_id),
                total_amount=total_amount,
                created_at=utcnow(),
            )
            .on_conflict_do_nothing(index_elements=["user_id", "draw_id"])
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def lock_undelivered_notice(self, user_id: int, draw_id: int) -> OutcomeNotice | None:
        """Отметка без delivered_at под FOR UPDATE (None - уже доставлено)."""

        stmt = (
            select(OutcomeNotice)
            .where(
                OutcomeNotice.user_id == int(user_id),
                OutcomeNotice.draw_id == int(draw_id),
                OutcomeNotice.delivered_at.is_(None),
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return await self.session.scalar(stmt)

    async def mark_notice_delivered(self, notice_id: int, delivered_at: datetime) -> int:
        stmt = (
            update(OutcomeNotice)
            .where(OutcomeNotice.id == int(notice_id), OutcomeNotice.delivered_at.is_(None))
            .values(delivered_at=delivered_at)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)


__all__ = ["WinnersCRUD"]
