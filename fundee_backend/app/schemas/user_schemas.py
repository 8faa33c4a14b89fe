# -*- coding: utf-8 -*-
# fundee_backend/app/schemas/user_schemas.py
# =============================================================================
# Назначение кода:
# Схемы пользователя и реферальной программы: регистрация, профиль с
# кошельком, применение реферального кода.
#
# Канон / инварианты:
# • wallet_balance наружу - строкой с 2 знаками; пользователь не уходит в минус.
# • Реферальный код сравнивается без учёта регистра и пробелов по краям.
# =============================================================================

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from fundee_backend.app.schemas.common_schemas import FundeeModel, MoneyStr
from fundee_backend.app.schemas.draws_schemas import TicketOut


class UserCreateIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    display_name: str = Field(..., min_length=1, max_length=120)


class UserOut(FundeeModel):
    id: int
    display_name: str
    wallet_balance: MoneyStr
    referral_code: str
    referred_by_id: Optional[int] = None
    created_at: datetime


class ReferralApplyIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    code: str = Field(..., min_length=4, max_length=16, description="Реферальный код пригласившего")


class ReferralOut(FundeeModel):
    referrer_id: int
    referred_user_id: int
    draw_id: int
    referrer_ticket: TicketOut
    referred_ticket: TicketOut


__all__ = ["UserCreateIn", "UserOut", "ReferralApplyIn", "ReferralOut"]
