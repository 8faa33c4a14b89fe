# -*- coding: utf-8 -*-
# fundee_backend/app/routes/draws_routes.py
# =============================================================================
# Назначение кода:
#   HTTP-ручки розыгрыша Fundee: активный розыгрыш с обратным отсчётом,
#   покупка билета, «мои билеты» (курсорно), итог для пользователя и
#   админские/cron-ручки исполнения.
#
# Канон/инварианты:
#   • Роуты не считают деньги и не выбирают победителей - только вызывают
#     сервисы и формируют ответ.
#   • Исполнение розыгрыша идемпотентно: повторный вызов отдаёт записанный
#     результат с already_resolved=true.
#   • Пользователь - из X-User-Id (require_user), админ - X-Admin: true.
#
# ИИ-защита/самовосстановление:
#   • Все списки - курсор по id (без OFFSET) + ETag.
#   • Транзиентные сбои хранилища в админ-ручках - через with_retry.
# =============================================================================

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from fundee_backend.app.core.config_core import get_settings
from fundee_backend.app.core.logging_core import get_logger
from fundee_backend.app.core.retry_core import with_retry
from fundee_backend.app.crud.tickets_crud import TicketsCRUD
from fundee_backend.app.deps import (
    AuthContext,
    decode_cursor,
    encode_cursor,
    get_auth_context,
    get_db,
    get_now,
    make_etag,
    require_admin,
    require_user,
)
from fundee_backend.app.schemas.draws_schemas import (
    ActiveDrawOut,
    DrawOutcomeOut,
    DueRunOut,
    TicketOut,
    TicketPageOut,
    UserTicketOut,
    WinnerEntryOut,
    WinningEntryOut,
    WinningsOut,
)
from fundee_backend.app.services import draws_service, outcome_service, tickets_service
from fundee_backend.app.services.schedule_service import resolve_active_draw, seconds_until_draw

logger = get_logger(__name__)
router = APIRouter(prefix="/draws", tags=["draws"])


def outcome_out(outcome: draws_service.DrawOutcome) -> DrawOutcomeOut:
    return DrawOutcomeOut(
        draw_id=outcome.draw_id,
        draw_date=outcome.draw_date,
        status=outcome.status,
        ticket_count=outcome.ticket_count,
        minimum_tickets=outcome.minimum_tickets,
        prize_pool=outcome.prize_pool,
        tier_counts=outcome.tier_counts(),
        winners=[WinnerEntryOut.model_validate(w) for w in outcome.winners],
        resolved_at=outcome.resolved_at,
        already_resolved=outcome.already_resolved,
    )


# -----------------------------------------------------------------------------
# Активный розыгрыш
# -----------------------------------------------------------------------------
@router.get("/active", response_model=ActiveDrawOut, summary="Активный розыгрыш и отсчёт до 22:00")
async def get_active_draw(
    ctx: AuthContext = Depends(get_auth_context),
    now: datetime = Depends(get_now),
    db: AsyncSession = Depends(get_db),
) -> ActiveDrawOut:
    """
    Find-or-create розыгрыша «на сейчас». Если вчерашний розыгрыш ещё не
    исполнен, активным остаётся он (seconds_until_draw = 0).
    """
    descriptor = await resolve_active_draw(db, now)
    draw = descriptor.draw
    my_tickets: Optional[int] = None
    if ctx.user_id is not None:
        my_tickets = await TicketsCRUD(db).count_for_user(ctx.user_id, draw.id)
    return ActiveDrawOut(
        draw_id=draw.id,
        draw_date=draw.draw_date,
        fire_at=draw.fire_at,
        status=draw.status,
        total_tickets=draw.total_tickets,
        minimum_tickets=draw.minimum_tickets,
        seconds_until_draw=seconds_until_draw(now, descriptor),
        my_tickets=my_tickets,
    )


@router.post(
    "/active/tickets",
    response_model=TicketOut,
    status_code=status.HTTP_201_CREATED,
    summary="Купить билет в активный розыгрыш",
)
async def buy_ticket(
    ctx: AuthContext = Depends(require_user),
    now: datetime = Depends(get_now),
    db: AsyncSession = Depends(get_db),
) -> TicketOut:
    issued = await tickets_service.buy_ticket(db, ctx.user_id, now)
    return TicketOut.model_validate(issued)


# -----------------------------------------------------------------------------
# Билеты и итог пользователя
# -----------------------------------------------------------------------------
@router.get("/{draw_id}/tickets", response_model=TicketPageOut, summary="Мои билеты в розыгрыше (курсорно)")
async def list_my_tickets(
    draw_id: int,
    limit: int = Query(50, ge=1, le=200),
    cursor: Optional[str] = Query(None, description="Строка курсора из предыдущего ответа"),
    ctx: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_db),
) -> TicketPageOut:
    after_id = decode_cursor(cursor) if cursor else None
    page = await tickets_service.get_user_tickets(db, ctx.user_id, draw_id, limit=limit, after_id=after_id)
    items = [UserTicketOut.model_validate(t) for t in page.items]
    etag = make_etag(
        {
            "kind": "draw_tickets",
            "draw_id": draw_id,
            "user_id": ctx.user_id,
            "ids": [t.id for t in page.items],
            "won": [t.id for t in page.items if t.is_winner],
        }
    )
    return TicketPageOut(
        draw_id=page.draw_id,
        items=items,
        next_cursor=encode_cursor(page.next_after_id) if page.next_after_id is not None else None,
        etag=etag,
    )


@router.get("/{draw_id}/outcome", response_model=WinningsOut, summary="Итог розыгрыша для пользователя")
async def get_outcome(
    draw_id: int,
    ctx: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_db),
) -> WinningsOut:
    """Только чтение и уведомление; кошелёк уже пополнен при исполнении."""
    summary = await outcome_service.check_outcome(db, ctx.user_id, draw_id)
    return WinningsOut(
        draw_id=summary.draw_id,
        user_id=summary.user_id,
        status=summary.status,
        won=summary.won,
        total_amount=summary.total_amount,
        entries=[WinningEntryOut.model_validate(e) for e in summary.entries],
        first_view=summary.first_view,
    )


# -----------------------------------------------------------------------------
# Админ / cron
# -----------------------------------------------------------------------------
@router.post("/execute-due", response_model=DueRunOut, summary="Исполнить все созревшие розыгрыши")
async def execute_due(
    _: AuthContext = Depends(require_admin),
    now: datetime = Depends(get_now),
    db: AsyncSession = Depends(get_db),
) -> DueRunOut:
    report = await draws_service.execute_due_draws(db, now)
    return DueRunOut(
        executed=[outcome_out(o) for o in report.executed],
        skipped=report.skipped,
        failed=report.failed,
    )


@router.post("/{draw_id}/execute", response_model=DrawOutcomeOut, summary="Исполнить розыгрыш")
async def execute_draw(
    draw_id: int,
    force: bool = Query(False, description="Исполнить до fire_at (ручной запуск)"),
    ctx: AuthContext = Depends(require_admin),
    now: datetime = Depends(get_now),
    db: AsyncSession = Depends(get_db),
) -> DrawOutcomeOut:
    if force:
        logger.warning("forced draw execution requested", extra={"draw_id": draw_id, "by": ctx.user_id})
    outcome = await with_retry(
        lambda: draws_service.execute_draw(db, draw_id, now, force=force),
        label=f"execute_draw:{draw_id}",
    )
    return outcome_out(outcome)


@router.get("/{draw_id}", response_model=DrawOutcomeOut, summary="Записанный результат розыгрыша")
async def get_draw(
    draw_id: int,
    db: AsyncSession = Depends(get_db),
) -> DrawOutcomeOut:
    return outcome_out(await draws_service.get_draw_outcome(db, draw_id))


__all__ = ["router", "outcome_out"]
