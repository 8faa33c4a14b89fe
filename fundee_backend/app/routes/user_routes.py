# -*- coding: utf-8 -*-
# fundee_backend/app/routes/user_routes.py
# =============================================================================
# Fundee - Пользовательские ручки (регистрация, профиль с кошельком)
# -----------------------------------------------------------------------------
# Что делает модуль:
#   • POST /users - регистрирует пользователя и выдаёт реферальный код.
#   • GET /users/me - профиль и wallet_balance (строкой с 2 знаками).
#
# Надёжность:
#   • Никаких денежных операций - кошелёк меняют только исполнение розыгрыша
#     (начисление) и заявка на вывод (холд).
# =============================================================================

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from fundee_backend.app.deps import AuthContext, get_db, require_user
from fundee_backend.app.schemas.user_schemas import UserCreateIn, UserOut
from fundee_backend.app.services.users_service import get_user_profile, register_user

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED, summary="Регистрация пользователя")
async def create_user(payload: UserCreateIn, db: AsyncSession = Depends(get_db)) -> UserOut:
    profile = await register_user(db, payload.display_name)
    return UserOut.model_validate(profile)


@router.get("/me", response_model=UserOut, summary="Мой профиль")
async def me(
    ctx: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_db),
) -> UserOut:
    return UserOut.model_validate(await get_user_profile(db, ctx.user_id))


__all__ = ["router"]
