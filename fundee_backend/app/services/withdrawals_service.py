# -*- coding: utf-8 -*-
# fundee_backend/app/services/withdrawals_service.py
# =============================================================================
# Fundee - сервис заявок на вывод выигрышей
# -----------------------------------------------------------------------------
# Назначение:
#   • Приём заявки на вывод с типизированными реквизитами (discriminated union).
#   • Мгновенный холд суммы: условное атомарное списание с кошелька
#     wallet_balance = wallet_balance - :amount WHERE wallet_balance >= :amount.
#   • Идемпотентность по client_key (Idempotency-Key клиента).
#
# Канон/инварианты:
#   • Сумма < WITHDRAW_MIN_AMOUNT → InsufficientBalanceError(reason=below_minimum).
#   • Сумма > баланса (rowcount 0 у холда) → InsufficientBalanceError(reason=exceeds_balance).
#   • Баланс никогда не уходит в минус; при отказе баланс не меняется.
#   • Заявка создаётся в статусе pending; дальнейшие переходы - внешняя система.
#
# ИИ-защиты:
#   • read-through: повторный client_key возвращает существующую заявку,
#     второго холда нет (UNIQUE client_key страхует от гонки двух запросов).
#   • Холд и запись заявки - одна транзакция.
#
# Запреты:
#   • Реквизиты не пишутся в логи.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fundee_backend.app.core.config_core import get_settings
from fundee_backend.app.core.errors_core import InsufficientBalanceError, NotFoundError, ValidationError
from fundee_backend.app.core.logging_core import get_logger
from fundee_backend.app.core.utils_core import money_str, quantize_money
from fundee_backend.app.crud.users_crud import UsersCRUD
from fundee_backend.app.models import Withdrawal
from fundee_backend.app.schemas.withdraw_schemas import parse_payout_details

logger = get_logger(__name__)

WITHDRAW_STATUS_PENDING = "pending"


# -----------------------------------------------------------------------------
# DTO
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class WithdrawalReceipt:
    id: int
    user_id: int
    amount: Decimal
    method: str
    details: Dict[str, Any]
    status: str
    client_key: Optional[str]
    created_at: datetime
    replayed: bool = False


def _receipt(row: Withdrawal, *, replayed: bool) -> WithdrawalReceipt:
    return WithdrawalReceipt(
        id=row.id,
        user_id=row.user_id,
        amount=row.amount,
        method=row.method,
        details=dict(row.details or {}),
        status=row.status,
        client_key=row.client_key,
        created_at=row.created_at,
        replayed=replayed,
    )


async def _find_by_client_key(db: AsyncSession, client_key: str) -> Optional[Withdrawal]:
    return await db.scalar(select(Withdrawal).where(Withdrawal.client_key == client_key))


# =============================================================================
# Создание заявки с холдом (idempotent по client_key)
# =============================================================================
async def request_withdrawal(
    db: AsyncSession,
    user_id: int,
    amount: Any,
    details: Any,
    client_key: Optional[str] = None,
) -> WithdrawalReceipt:
    """
    Создаёт заявку pending и удерживает сумму с кошелька.

    Исключения:
      • ValidationError           - некорректная сумма/реквизиты;
      • InsufficientBalanceError  - below_minimum | exceeds_balance;
      • NotFoundError             - нет пользователя.
    """
    settings = get_settings()

    if client_key:
        existing = await _find_by_client_key(db, client_key)
        if existing is not None:
            if existing.user_id != int(user_id):
                raise ValidationError("Idempotency-Key belongs to another request.")
            return _receipt(existing, replayed=True)

    try:
        amt = quantize_money(amount)
    except ValueError:
        raise ValidationError("Invalid withdrawal amount.", details={"amount": str(amount)}) from None
    if amt <= 0:
        raise ValidationError("Withdrawal amount must be positive.", details={"amount": money_str(amt)})

    try:
        parsed = parse_payout_details(details)
    except PydanticValidationError as exc:
        raise ValidationError(
            "Invalid payout details.",
            details={"errors": exc.errors(include_url=False, include_context=False, include_input=False)},
        ) from None

    minimum = Decimal(settings.WITHDRAW_MIN_AMOUNT)
    if amt < minimum:
        logger.warning("withdrawal rejected: below minimum", extra={"user_id": user_id, "amount": money_str(amt)})
        raise InsufficientBalanceError(
            f"Minimum withdrawal amount is {money_str(minimum)}.",
            reason="below_minimum",
            details={"minimum": money_str(minimum)},
        )

    users = UsersCRUD(db)
    try:
        if await users.get_by_id(user_id) is None:
            raise NotFoundError("User not found.", details={"user_id": user_id})

        if await users.hold_wallet_balance(user_id, amt) != 1:
            logger.warning(
                "withdrawal rejected: exceeds balance",
                extra={"user_id": user_id, "amount": money_str(amt)},
            )
            raise InsufficientBalanceError("Amount exceeds wallet balance.", reason="exceeds_balance")

        row = Withdrawal(
            user_id=int(user_id),
            amount=amt,
            method=parsed.method,
            details=parsed.model_dump(mode="json"),
            status=WITHDRAW_STATUS_PENDING,
            client_key=client_key,
        )
        db.add(row)
        await db.flush()
        await db.commit()
    except IntegrityError:
        await db.rollback()
        # параллельный запрос с тем же client_key успел первым
        if client_key:
            existing = await _find_by_client_key(db, client_key)
            if existing is not None:
                return _receipt(existing, replayed=True)
        raise
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "withdrawal held",
        extra={"withdrawal_id": row.id, "user_id": user_id, "amount": money_str(amt), "method": row.method},
    )
    return _receipt(row, replayed=False)


__all__ = ["WITHDRAW_STATUS_PENDING", "WithdrawalReceipt", "request_withdrawal"]
