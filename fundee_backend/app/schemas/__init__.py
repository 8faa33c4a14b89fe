# -*- coding: utf-8 -*-
# fundee_backend/app/schemas/__init__.py
# =============================================================================
# Назначение кода:
# Фасад Pydantic-схем Fundee. Даёт единый импорт:
#     from fundee_backend.app.schemas import ActiveDrawOut, WithdrawalIn, ...
#
# Канон / инварианты:
# • Здесь НЕТ бизнес-логики - только агрегация схем из подмодулей.
# =============================================================================

from fundee_backend.app.schemas.ads_schemas import AdWatchOut, CooldownOut
from fundee_backend.app.schemas.common_schemas import ErrorResponse, FundeeModel, MoneyStr
from fundee_backend.app.schemas.draws_schemas import (
    ActiveDrawOut,
    DrawOutcomeOut,
    DueRunOut,
    RecentWinnerOut,
    RecentWinnersOut,
    TicketOut,
    TicketPageOut,
    UserTicketOut,
    WinnerEntryOut,
    WinningEntryOut,
    WinningsOut,
)
from fundee_backend.app.schemas.user_schemas import ReferralApplyIn, ReferralOut, UserCreateIn, UserOut
from fundee_backend.app.schemas.withdraw_schemas import (
    PayoutDetails,
    WithdrawalIn,
    WithdrawalOut,
    parse_payout_details,
)

SCHEMAS_VERSION: str = "v1.0"

__all__ = [
    "SCHEMAS_VERSION",
    "AdWatchOut",
    "CooldownOut",
    "ErrorResponse",
    "FundeeModel",
    "MoneyStr",
    "ActiveDrawOut",
    "DrawOutcomeOut",
    "DueRunOut",
    "RecentWinnerOut",
    "RecentWinnersOut",
    "TicketOut",
    "TicketPageOut",
    "UserTicketOut",
    "WinnerEntryOut",
    "WinningEntryOut",
    "WinningsOut",
    "ReferralApplyIn",
    "ReferralOut",
    "UserCreateIn",
    "UserOut",
    "PayoutDetails",
    "WithdrawalIn",
    "WithdrawalOut",
    "parse_payout_details",
]
