# -*- coding: utf-8 -*-
# fundee_backend/app/crud/draws_crud.py
# =============================================================================
# Назначение:
#   • CRUD-операции таблицы draws: find-or-create по дате, блокировка строки,
#     атомарный инкремент счётчика билетов, условный перевод статуса.
#
# Канон/инварианты:
#   • create_draw() - INSERT ... ON CONFLICT (draw_date) DO NOTHING: повторные
#     и конкурентные вызовы не создают дублей, вызывающий перечитывает строку.
#   • increment_draw_ticket_count() и update_draw_status() - условные UPDATE
#     с WHERE status='pending'; результат - rowcount, решение принимает сервис.
#
# Запреты:
#   • CRUD не выбирает победителей и не двигает деньги.
#   • commit выполняет вызывающий сервис (unit of work).
# =============================================================================
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Iterable

from sqlalchemy import Select, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fundee_backend.app.core.database_core import insert_ignoring_conflicts
from fundee_backend.app.core.utils_core import utcnow
from fundee_backend.app.models import Draw

PENDING = "pending"


class DrawsCRUD:
    """CRUD-обёртка для draws без денежной логики."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, draw_id: int) -> Draw | None:
        """Получить розыгрыш по id (свежая копия из БД)."""

        stmt: Select[Draw] = (
            select(Draw).where(Draw.id == int(draw_id)).execution_options(populate_existing=True)
        )
        return await self.session.scalar(stmt)

    async def lock(self, draw_id: int) -> Draw | None:
        """Получить розыгрыш под SELECT ... FOR UPDATE."""

        stmt: Select[Draw] = (
            select(Draw)
            .where(Draw.id == int(draw_id))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return await self.session.scalar(stmt)

    async def find_draw_by_date(self, draw_date: date) -> Draw | None:
        """Розыгрыш на календарную дату (UNIQUE draw_date)."""

        stmt: Select[Draw] = (
            select(Draw).where(Draw.draw_date == draw_date).execution_options(populate_existing=True)
        )
        return await self.session.scalar(stmt)

    async def create_draw(self, draw_date: date, fire_at: datetime, min_tickets: int) -> bool:
        """
        Вставить розыгрыш, если на дату его ещё нет.
        True - строку создал этот вызов; False - она уже существовала.
        """

        now = utcnow()
        stmt = (
            insert_ignoring_conflicts(self.session, Draw.__table__)
            .values(
                draw_date=draw_date,
                fire_at=fire_at,
                status=PENDING,
                total_tickets=0,
                minimum_tickets=int(min_tickets),
                prize_pool=Decimal("0"),
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["draw_date"])
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def find_overdue_pending(self, before: date) -> Draw | None:
        """Самый ранний pending-розыгрыш с датой раньше before (ещё не исполнен)."""

        stmt: Select[Draw] = (
            select(Draw)
            .where(Draw.status == PENDING, Draw.draw_date < before)
            .order_by(Draw.draw_date.asc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return await self.session.scalar(stmt)

    async def list_due_ids(self, now: datetime) -> list[int]:
        """id pending-розыгрышей, чей fire_at <= now (по возрастанию fire_at)."""

        stmt = (
            select(Draw.id)
            .where(Draw.status == PENDING, Draw.fire_at <= now)
            .order_by(Draw.fire_at.asc(), Draw.id.asc())
        )
        rows: Iterable[int] = await self.session.scalars(stmt)
        return [int(r) for r in rows]

    async def increment_draw_ticket_count(self, draw_id: int) -> int:
        """total_tickets + 1 только для pending; возвращает rowcount (0 или 1)."""

        stmt = (
            update(Draw)
            .where(Draw.id == int(draw_id), Draw.status == PENDING)
            .values(total_tickets=Draw.total_tickets + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)

    async def update_draw_status(
        self,
        draw_id: int,
        *,
        status: str,
        prize_pool: Decimal,
        total_tickets: int,
        resolved_at: datetime,
    ) -> int:
        """
        Перевод pending → status. Условие WHERE status='pending' гарантирует,
        что выиграть переход может только один исполнитель. Возвращает rowcount.
        """

        stmt = (
            update(Draw)
            .where(Draw.id == int(draw_id), Draw.status == PENDING)
            .values(
                status=status,
                prize_pool=prize_pool,
                total_tickets=int(total_tickets),
                resolved_at=resolved_at,
                updated_at=resolved_at,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)


__all__ = ["DrawsCRUD", "PENDING"]
