# -*- coding: utf-8 -*-
# fundee_backend/app/routes/withdraw_routes.py
# =============================================================================
# Назначение кода:
#   • Заявка на вывод выигрышей (bank_transfer / crypto_* / paypal).
#   • Денежный POST требует Idempotency-Key. Создание заявки мгновенно
#     холдирует сумму с кошелька, чтобы исключить двойное расходование.
#
# Канон/инварианты (строго):
#   • Пользователь не может уйти в минус (условный UPDATE в сервисе).
#   • Минимум вывода - WITHDRAW_MIN_AMOUNT.
#
# ИИ-защиты:
#   • Read-through идемпотентность: при повторном Idempotency-Key возвращается
#     ранее созданная заявка (200 вместо 201) без второго холда.
#
# Запреты:
#   • Реквизиты не логируются. Внешняя выплата - не здесь.
# =============================================================================

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from fundee_backend.app.core.logging_core import get_logger
from fundee_backend.app.deps import AuthContext, get_db, require_idempotency_key, require_user
from fundee_backend.app.schemas.withdraw_schemas import WithdrawalIn, WithdrawalOut
from fundee_backend.app.services.withdrawals_service import request_withdrawal

logger = get_logger(__name__)

router = APIRouter(prefix="/withdrawals", tags=["withdrawals"])


@router.post(
    "",
    response_model=WithdrawalOut,
    status_code=status.HTTP_201_CREATED,
    summary="Заявка на вывод (холд суммы)",
)
async def create_withdrawal(
    payload: WithdrawalIn,
    response: Response,
    ctx: AuthContext = Depends(require_user),
    idempotency_key: str = Depends(require_idempotency_key),
    db: AsyncSession = Depends(get_db),
) -> WithdrawalOut:
    receipt = await request_withdrawal(
        db,
        ctx.user_id,
        payload.amount,
        payload.details,
        client_key=idempotency_key,
    )
    if receipt.replayed:
        response.status_code = status.HTTP_200_OK
        logger.info("withdrawal replayed", extra={"withdrawal_id": receipt.id, "user_id": ctx.user_id})
    return WithdrawalOut.model_validate(receipt)


__all__ = ["router"]
