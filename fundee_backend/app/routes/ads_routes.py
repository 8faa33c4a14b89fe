# -*- coding: utf-8 -*-
# fundee_backend/app/routes/ads_routes.py
# =============================================================================
# Назначение кода:
#   Ручки рекламного потока: просмотр рекламы → билет в активный розыгрыш,
#   состояние кнопки (счётчик пачки, кулдаун).
#
# Канон/инварианты:
#   • Пачка AD_BATCH_SIZE просмотров, затем кулдаун AD_COOLDOWN_SECONDS
#     от последнего просмотра пачки. Во время кулдауна - 429 + Retry-After.
#   • Состояние не хранится на клиенте: считается из последней записи ad_watches.
# =============================================================================

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from fundee_backend.app.deps import AuthContext, get_db, get_now, require_user
from fundee_backend.app.schemas.ads_schemas import AdWatchOut, CooldownOut
from fundee_backend.app.schemas.draws_schemas import TicketOut
from fundee_backend.app.services import cooldown_service, tickets_service

router = APIRouter(prefix="/ads", tags=["ads"])


@router.post(
    "/watch",
    response_model=AdWatchOut,
    status_code=status.HTTP_201_CREATED,
    summary="Билет за просмотр рекламы",
)
async def watch_ad(
    ctx: AuthContext = Depends(require_user),
    now: datetime = Depends(get_now),
    db: AsyncSession = Depends(get_db),
) -> AdWatchOut:
    result = await tickets_service.watch_ad_for_ticket(db, ctx.user_id, now)
    return AdWatchOut(
        ticket=TicketOut.model_validate(result.ticket),
        cooldown=CooldownOut.model_validate(result.cooldown),
    )


@router.get("/state", response_model=CooldownOut, summary="Состояние кнопки рекламы")
async def ad_state(
    ctx: AuthContext = Depends(require_user),
    now: datetime = Depends(get_now),
    db: AsyncSession = Depends(get_db),
) -> CooldownOut:
    state = await cooldown_service.get_cooldown_state(db, ctx.user_id, now)
    return CooldownOut.model_validate(state)


__all__ = ["router"]
