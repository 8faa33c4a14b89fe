# -*- coding: utf-8 -*-
# fundee_backend/app/schemas/withdraw_schemas.py
# =============================================================================
# Назначение кода:
# Реквизиты выплат как discriminated union по полю method и DTO заявки на вывод.
#
# Канон / инварианты:
# • Каждый вариант несёт ТОЛЬКО свои поля (extra="forbid").
# • Сеть криптовыплаты зафиксирована методом: USDT → TRC-20,
#   BTC → Bitcoin, ETH → ERC-20. Клиент её не выбирает.
# • Сумма - Decimal > 0 с не более чем 2 знаками.
# =============================================================================

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, TypeAdapter, computed_field
from typing_extensions import Annotated

from fundee_backend.app.schemas.common_schemas import FundeeModel, MoneyStr


class _Details(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class BankTransferDetails(_Details):
    method: Literal["bank_transfer"] = "bank_transfer"
    account_holder_name: str = Field(..., min_length=1, max_length=120)
    bank_name: str = Field(..., min_length=1, max_length=120)
    account_number: str = Field(..., min_length=4, max_length=34, pattern=r"^[0-9A-Za-z]+$")
    routing_number: str = Field(..., min_length=9, max_length=9, pattern=r"^\d{9}$")


class _CryptoDetails(_Details):
    wallet_address: str = Field(..., min_length=20, max_length=128, pattern=r"^[0-9A-Za-z]+$")


class CryptoUsdtDetails(_CryptoDetails):
    method: Literal["crypto_usdt"] = "crypto_usdt"

    @computed_field  # type: ignore[misc]
    @property
    def network(self) -> str:
        return "TRC-20"


class CryptoBtcDetails(_CryptoDetails):
    method: Literal["crypto_btc"] = "crypto_btc"

    @computed_field  # type: ignore[misc]
    @property
    def network(self) -> str:
        return "Bitcoin"


class CryptoEthDetails(_CryptoDetails):
    method: Literal["crypto_eth"] = "crypto_eth"

    @computed_field  # type: ignore[misc]
    @property
    def network(self) -> str:
        return "ERC-20"


class PaypalDetails(_Details):
    method: Literal["paypal"] = "paypal"
    email: EmailStr


PayoutDetails = Annotated[
    Union[BankTransferDetails, CryptoUsdtDetails, CryptoBtcDetails, CryptoEthDetails, PaypalDetails],
    Field(discriminator="method"),
]

payout_details_adapter: TypeAdapter[Any] = TypeAdapter(PayoutDetails)

_VARIANTS = (BankTransferDetails, CryptoUsdtDetails, CryptoBtcDetails, CryptoEthDetails, PaypalDetails)


def parse_payout_details(data: Any):
    """
    dict/модель → конкретный вариант реквизитов (pydantic ValidationError при ошибке).
    Уже разобранный вариант (WithdrawalIn.details) возвращается как есть; network
    вычисляемое и во входе не допускается.
    """
    if isinstance(data, _VARIANTS):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude={"network"})
    return payout_details_adapter.validate_python(data)


class WithdrawalIn(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=18, decimal_places=2)
    details: PayoutDetails


class WithdrawalOut(FundeeModel):
    id: int
    user_id: int
    amount: MoneyStr
    method: str
    details: Dict[str, Any]
    status: str
    client_key: Optional[str] = None
    created_at: datetime
    replayed: bool = False


__all__ = [
    "BankTransferDetails",
    "CryptoUsdtDetails",
    "CryptoBtcDetails",
    "CryptoEthDetails",
    "PaypalDetails",
    "PayoutDetails",
    "payout_details_adapter",
    "parse_payout_details",
    "WithdrawalIn",
    "WithdrawalOut",
]
