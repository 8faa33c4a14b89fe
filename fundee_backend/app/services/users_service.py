# -*- coding: utf-8 -*-
# fundee_backend/app/services/users_service.py
# =============================================================================
# Назначение кода:
#   Регистрация пользователя Fundee и профиль для API.
#
# Канон / инварианты:
#   • Новый пользователь получает баланс 0 и уникальный реф-код (8 символов
#     0-9A-Z, secrets). Коллизия кода → новая попытка (UNIQUE в БД).
#   • Профиль отдаёт баланс как Decimal; наружу - строкой с 2 знаками.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fundee_backend.app.core.errors_core import NotFoundError, ValidationError
from fundee_backend.app.core.logging_core import get_logger
from fundee_backend.app.core.utils_core import gen_ref_code
from fundee_backend.app.crud.users_crud import UsersCRUD
from fundee_backend.app.models import User

logger = get_logger(__name__)

REF_CODE_ATTEMPTS = 5
DISPLAY_NAME_MAX = 120


@dataclass(frozen=True)
class UserProfile:
    id: int
    display_name: str
    wallet_balance: Decimal
    referral_code: str
    referred_by_id: Optional[int]
    created_at: datetime


def _profile(user: User) -> UserProfile:
    return UserProfile(
        id=user.id,
        display_name=user.display_name,
        wallet_balance=user.wallet_balance,
        referral_code=user.referral_code,
        referred_by_id=user.referred_by_id,
        created_at=user.created_at,
    )


async def register_user(db: AsyncSession, display_name: str) -> UserProfile:
    """Создаёт пользователя с новым реф-кодом."""
    name = (display_name or "").strip()
    if not name or len(name) > DISPLAY_NAME_MAX:
        raise ValidationError(
            f"display_name must be 1..{DISPLAY_NAME_MAX} characters",
            details={"display_name": display_name},
        )

    crud = UsersCRUD(db)
    for attempt in range(1, REF_CODE_ATTEMPTS + 1):
        code = gen_ref_code()
        try:
            user = await crud.create(name, code)
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.warning("referral code collision, retrying", extra={"attempt": attempt})
            continue
        logger.info("user registered", extra={"user_id": user.id})
        return _profile(user)

    raise RuntimeError(f"could not allocate a unique referral code in {REF_CODE_ATTEMPTS} attempts")


async def get_user_profile(db: AsyncSession, user_id: int) -> UserProfile:
    user = await UsersCRUD(db).get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found.", details={"user_id": user_id})
    return _profile(user)


__all__ = ["UserProfile", "register_user", "get_user_profile"]
