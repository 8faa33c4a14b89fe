# -*- coding: utf-8 -*-
# fundee_backend/app/routes/referrals_routes.py
# =============================================================================
# Назначение кода:
#   Применение реферального кода: оба участника получают по одному билету
#   (source=referral) в активный розыгрыш.
#
# Канон/инварианты:
#   • Код применяется один раз на приглашённого; самоприглашение запрещено.
#   • Билеты выдаются в той же транзакции, что и запись связи.
# =============================================================================

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from fundee_backend.app.deps import AuthContext, get_db, get_now, require_user
from fundee_backend.app.schemas.draws_schemas import TicketOut
from fundee_backend.app.schemas.user_schemas import ReferralApplyIn, ReferralOut
from fundee_backend.app.services.referrals_service import apply_referral

router = APIRouter(prefix="/referrals", tags=["referrals"])


@router.post(
    "/apply",
    response_model=ReferralOut,
    status_code=status.HTTP_201_CREATED,
    summary="Применить реферальный код",
)
async def apply_code(
    payload: ReferralApplyIn,
    ctx: AuthContext = Depends(require_user),
    now: datetime = Depends(get_now),
    db: AsyncSession = Depends(get_db),
) -> ReferralOut:
    result = await apply_referral(db, ctx.user_id, payload.code, now)
    return ReferralOut(
        referrer_id=result.referrer_id,
        referred_user_id=result.referred_user_id,
        draw_id=result.draw_id,
        referrer_ticket=TicketOut.model_validate(result.referrer_ticket),
        referred_ticket=TicketOut.model_validate(result.referred_ticket),
    )


__all__ = ["router"]
