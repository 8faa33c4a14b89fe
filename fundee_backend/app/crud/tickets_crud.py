# -*- coding: utf-8 -*-
# fundee_backend/app/crud/tickets_crud.py
# =============================================================================
# Назначение:
#   • CRUD билетов: вставка, полный набор билетов розыгрыша для движка,
#     курсорная страница билетов пользователя с вычисленной «выигрышностью».
#
# Канон/инварианты:
#   • Билеты неизменяемы: только INSERT и SELECT.
#   • Пагинация только курсорная (id ASC, after_id). OFFSET запрещён.
#   • Признак выигрыша не хранится - LEFT JOIN winners по ticket_id.
# =============================================================================
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fundee_backend.app.models import Ticket, Winner


class TicketsCRUD:
    """CRUD-обёртка для tickets."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def insert_ticket(self, user_id: int, draw_id: int, number: int, source: str) -> Ticket:
        """Добавить билет (flush без commit)."""

        ticket = Ticket(
            user_id=int(user_id),
            draw_id=int(draw_id),
            ticket_number=int(number),
            source=source,
        )
        self.session.add(ticket)
        await self.session.flush()
        return ticket

    async def list_tickets_for_draw(self, draw_id: int) -> list[tuple[int, int]]:
        """Все билеты розыгрыша как пары (ticket_id, user_id), по возрастанию id."""

        stmt = select(Ticket.id, Ticket.user_id).where(Ticket.draw_id == int(draw_id)).order_by(Ticket.id.asc())
        rows = (await self.session.execute(stmt)).all()
        return [(int(tid), int(uid)) for tid, uid in rows]

    async def count_for_user(self, user_id: int, draw_id: int) -> int:
        stmt = select(func.count(Ticket.id)).where(
            Ticket.draw_id == int(draw_id),
            Ticket.user_id == int(user_id),
        )
        return int(await self.session.scalar(stmt) or 0)

    async def list_user_tickets_page(
        self,
        user_id: int,
        draw_id: int,
        *,
        limit: int,
        after_id: Optional[int] = None,
    ) -> list[tuple[Ticket, Optional[Decimal], Optional[str]]]:
        """
        Страница билетов пользователя в розыгрыше: (Ticket, prize_amount, prize_tier).
        prize_* = None, если билет не выиграл.
        """

        stmt = (
            select(Ticket, Winner.prize_amount, Winner.prize_tier)
            .outerjoin(
                Winner,
                (Winner.ticket_id == Ticket.id) & (Winner.draw_id == Ticket.draw_id),
            )
            .where(Ticket.user_id == int(user_id), Ticket.draw_id == int(draw_id))
            .order_by(Ticket.id.asc())
            .limit(int(limit))
        )
        if after_id is not None:
            stmt = stmt.where(Ticket.id > int(after_id))
        rows = (await self.session.execute(stmt)).all()
        return [(ticket, amount, tier) for ticket, amount, tier in rows]


__all__ = ["TicketsCRUD"]
