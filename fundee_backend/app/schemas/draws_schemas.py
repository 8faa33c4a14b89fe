# -*- coding: utf-8 -*-
# fundee_backend/app/schemas/draws_schemas.py
# =============================================================================
# Назначение кода:
# Pydantic-схемы раздела «Розыгрыш»: активный розыгрыш с обратным отсчётом,
# выданный билет, страница «мои билеты», итог розыгрыша (админ/cron),
# итог для пользователя и лента последних победителей.
#
# Канон / инварианты:
# • Суммы наружу - строкой с 2 знаками (MoneyStr).
# • Номер билета - 9-значное число; это не ключ, совпадения допустимы.
# • Время - ISO-8601 UTC; обратный отсчёт - целые секунды, не меньше 0.
#
# Запреты:
# • В схемах нет бизнес-логики/пересчётов, только форма данных.
# =============================================================================

from __future__ import annotations

from datetime import date, datetime
from typing import Dict, List, Literal, Optional

from pydantic import Field

from fundee_backend.app.schemas.common_schemas import FundeeModel, MoneyStr, OkMeta

DrawStatus = Literal["pending", "completed", "refunded"]
TicketSource = Literal["purchase", "ad_watch", "referral"]
PrizeTier = Literal["tier1", "tier2", "tier3"]


# =============================================================================
# Активный розыгрыш
# -----------------------------------------------------------------------------
class ActiveDrawOut(FundeeModel):
    """Карточка главного экрана: розыгрыш «на сейчас» и отсчёт до 22:00."""

    meta: OkMeta = Field(default_factory=OkMeta)
    draw_id: int
    draw_date: date
    fire_at: datetime
    status: DrawStatus
    total_tickets: int = Field(..., ge=0)
    minimum_tickets: int = Field(..., ge=1)
    seconds_until_draw: int = Field(..., ge=0, description="Секунд до срабатывания (0, если уже пора)")
    my_tickets: Optional[int] = Field(None, ge=0, description="Сколько билетов у текущего пользователя")


# =============================================================================
# Билеты
# -----------------------------------------------------------------------------
class TicketOut(FundeeModel):
    id: int
    user_id: int
    draw_id: int
    ticket_number: int
    source: TicketSource
    created_at: datetime


class UserTicketOut(FundeeModel):
    id: int
    ticket_number: int
    source: TicketSource
    created_at: datetime
    is_winner: bool = False
    prize_amount: Optional[MoneyStr] = None
    prize_tier: Optional[PrizeTier] = None


class TicketPageOut(FundeeModel):
    """Страница билетов пользователя (курсор - id последнего билета)."""

    draw_id: int
    items: List[UserTicketOut]
    next_cursor: Optional[str] = None
    etag: str


# =============================================================================
# Итоги розыгрыша
# -----------------------------------------------------------------------------
class WinnerEntryOut(FundeeModel):
    ticket_id: int
    user_id: int
    tier: PrizeTier
    amount: MoneyStr


class DrawOutcomeOut(FundeeModel):
    """Результат исполнения (или повторного чтения) розыгрыша."""

    draw_id: int
    draw_date: date
    status: DrawStatus
    ticket_count: int
    minimum_tickets: int
    prize_pool: MoneyStr
    tier_counts: Dict[str, int] = Field(default_factory=dict)
    winners: List[WinnerEntryOut] = Field(default_factory=list)
    resolved_at: Optional[datetime] = None
    already_resolved: bool = False


class DueRunOut(FundeeModel):
    meta: OkMeta = Field(default_factory=OkMeta)
    executed: List[DrawOutcomeOut] = Field(default_factory=list)
    skipped: List[int] = Field(default_factory=list)
    failed: List[int] = Field(default_factory=list)


class WinningEntryOut(FundeeModel):
    ticket_id: int
    ticket_number: int
    tier: PrizeTier
    amount: MoneyStr


class WinningsOut(FundeeModel):
    """Итог розыгрыша глазами пользователя. Кошелёк здесь не меняется."""

    draw_id: int
    user_id: int
    status: DrawStatus
    won: bool
    total_amount: MoneyStr
    entries: List[WinningEntryOut] = Field(default_factory=list)
    first_view: bool = False


class RecentWinnerOut(FundeeModel):
    winner_id: int
    draw_id: int
    draw_date: date
    user_id: int
    display_name: str
    ticket_number: int
    tier: PrizeTier
    amount: MoneyStr
    created_at: datetime


class RecentWinnersOut(FundeeModel):
    items: List[RecentWinnerOut]
    etag: str


__all__ = [
    "DrawStatus",
    "TicketSource",
    "PrizeTier",
    "ActiveDrawOut",
    "TicketOut",
    "UserTicketOut",
    "TicketPageOut",
    "WinnerEntryOut",
    "DrawOutcomeOut",
    "DueRunOut",
    "WinningEntryOut",
    "WinningsOut",
    "RecentWinnerOut",
    "RecentWinnersOut",
]
