"""Схемы рекламного потока: состояние кулдауна и результат просмотра."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from fundee_backend.app.schemas.common_schemas import FundeeModel
from fundee_backend.app.schemas.draws_schemas import TicketOut


class CooldownOut(FundeeModel):
    is_active: bool = Field(..., description="Можно ли смотреть рекламу прямо сейчас")
    count: int = Field(..., ge=0, description="Просмотров в текущей пачке")
    cooldown_until: Optional[datetime] = None
    seconds_remaining: int = Field(0, ge=0)


class AdWatchOut(FundeeModel):
    ticket: TicketOut
    cooldown: CooldownOut


__all__ = ["CooldownOut", "AdWatchOut"]
