# -*- coding: utf-8 -*-
# fundee_backend/app/services/referrals_service.py
# =============================================================================
# Назначение кода:
#   Применение реферального кода: приглашённый и пригласивший получают по
#   одному билету source='referral' в активный розыгрыш.
#
# Канон / инварианты:
#   • У пользователя ровно один пригласивший: UNIQUE(referred_user_id) +
#     однократная установка users.referred_by_id.
#   • Самоприглашение запрещено.
#   • Запись referrals, referred_by_id и оба билета - одна транзакция.
#     Правила выдачи билетов общие (tickets_service): сработавший розыгрыш
#     билетов не принимает, и тогда код не считается применённым.
#
# Запреты:
#   • Никаких денежных бонусов: вознаграждение - только билеты.
# =============================================================================

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fundee_backend.app.core.errors_core import NotFoundError, ReferralError
from fundee_backend.app.core.logging_core import get_logger
from fundee_backend.app.crud.draws_crud import DrawsCRUD
from fundee_backend.app.crud.users_crud import UsersCRUD
from fundee_backend.app.models import Referral
from fundee_backend.app.services.schedule_service import resolve_active_draw
from fundee_backend.app.services.tickets_service import IssuedTicket, issue_ticket_in_tx

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReferralResult:
    referrer_id: int
    referred_user_id: int
    draw_id: int
    referrer_ticket: IssuedTicket
    referred_ticket: IssuedTicket


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


async def apply_referral(
    db: AsyncSession,
    referred_user_id: int,
    code: str,
    now: datetime,
    *,
    rng: Optional[random.Random] = None,
) -> ReferralResult:
    """
    Применяет реф-код для referred_user_id.

    Исключения:
      • NotFoundError  - кода нет (или нет самого пользователя);
      • ReferralError  - самоприглашение или код уже применялся;
      • IneligibleDrawError - активный розыгрыш уже не принимает билеты.
    """
    descriptor = await resolve_active_draw(db, now)
    draw_id = descriptor.draw.id
    users = UsersCRUD(db)

    try:
        referrer = await users.get_by_referral_code(normalize_code(code))
        if referrer is None:
            raise NotFoundError("Referral code not found.", details={"code": code})

        # draws раньше users: порядок блокировок движка розыгрыша.
        await DrawsCRUD(db).lock(draw_id)
        referred = await users.lock_for_update(referred_user_id)
        if referred is None:
            raise NotFoundError("User not found.", details={"user_id": referred_user_id})
        if referrer.id == referred.id:
            raise ReferralError("You cannot apply your own referral code.", details={"reason": "self_referral"})

        existing = await db.scalar(select(Referral.id).where(Referral.referred_user_id == referred.id))
        if referred.referred_by_id is not None or existing is not None:
            raise ReferralError("Referral code has already been applied.", details={"reason": "already_referred"})

        db.add(Referral(referrer_id=referrer.id, referred_user_id=referred.id, draw_id=draw_id, created_at=now))
        try:
            await db.flush()
        except IntegrityError:
            raise ReferralError(
                "Referral code has already been applied.", details={"reason": "already_referred"}
            ) from None
        if await users.set_referred_by(referred.id, referrer.id) != 1:
            raise ReferralError("Referral code has already been applied.", details={"reason": "already_referred"})

        referred_ticket = await issue_ticket_in_tx(db, referred.id, draw_id, "referral", now, rng=rng)
        referrer_ticket = await issue_ticket_in_tx(db, referrer.id, draw_id, "referral", now, rng=rng)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "referral applied",
        extra={"referrer_id": referrer.id, "referred_user_id": referred_user_id, "draw_id": draw_id},
    )
    return ReferralResult(
        referrer_id=referrer.id,
        referred_user_id=referred_user_id,
        draw_id=draw_id,
        referrer_ticket=referrer_ticket,
        referred_ticket=referred_ticket,
    )


__all__ = ["ReferralResult", "normalize_code", "apply_referral"]
