from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from conftest import wallet
from fundee_backend.app.core.errors_core import InsufficientBalanceError, ValidationError
from fundee_backend.app.models import Withdrawal
from fundee_backend.app.schemas.withdraw_schemas import WithdrawalIn, parse_payout_details
from fundee_backend.app.services.withdrawals_service import request_withdrawal

USDT = {"method": "crypto_usdt", "wallet_address": "TQ1aaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"}
BANK = {
    "method": "bank_transfer",
    "account_holder_name": "Jane Roe",
    "bank_name": "First Bank",
    "account_number": "000123456789",
    "routing_number": "021000021",
}


def test_network_is_fixed_by_method():
    assert parse_payout_details(USDT).network == "TRC-20"
    assert parse_payout_details({**USDT, "method": "crypto_btc"}).network == "Bitcoin"
    assert parse_payout_details({**USDT, "method": "crypto_eth"}).network == "ERC-20"


async def test_below_minimum_is_rejected(db, make_user):
    user_id = await make_user(balance=Decimal("50"))
    with pytest.raises(InsufficientBalanceError) as exc_info:
        await request_withdrawal(db, user_id, Decimal("9.99"), USDT)
    assert exc_info.value.reason == "below_minimum"
    assert await wallet(db, user_id) == Decimal("50")


async def test_above_balance_is_rejected(db, make_user):
    user_id = await make_user(balance=Decimal("50"))
    with pytest.raises(InsufficientBalanceError) as exc_info:
        await request_withdrawal(db, user_id, Decimal("50.01"), BANK)
    assert exc_info.value.reason == "exceeds_balance"
    assert await wallet(db, user_id) == Decimal("50")
    assert await db.scalar(select(func.count(Withdrawal.id))) == 0


async def test_valid_request_holds_once_per_client_key(db, make_user):
    user_id = await make_user(balance=Decimal("120"))

    first = await request_withdrawal(db, user_id, "100", BANK, client_key="k-1")
    replay = await request_withdrawal(db, user_id, "100", BANK, client_key="k-1")

    assert first.status == "pending" and first.replayed is False
    assert replay.id == first.id and replay.replayed is True
    assert first.details["routing_number"] == "021000021"
    assert await wallet(db, user_id) == Decimal("20")
    assert await db.scalar(select(func.count(Withdrawal.id))) == 1


async def test_exact_balance_can_be_withdrawn(db, make_user):
    user_id = await make_user(balance=Decimal("10"))
    receipt = await request_withdrawal(db, user_id, Decimal("10.00"), {"method": "paypal", "email": "a@b.io"})
    assert receipt.method == "paypal"
    assert await wallet(db, user_id) == Decimal("0")


async def test_invalid_details_and_foreign_key(db, make_user):
    owner = await make_user("owner", balance=Decimal("100"))
    stranger = await make_user("stranger", balance=Decimal("100"))

    with pytest.raises(ValidationError):
        await request_withdrawal(db, owner, "20", {"method": "paypal", "email": "not-an-email"})
    with pytest.raises(ValidationError):
        await request_withdrawal(db, owner, "20", {**USDT, "network": "TRC-20"})

    await request_withdrawal(db, owner, "20", USDT, client_key="shared")
    with pytest.raises(ValidationError):
        await request_withdrawal(db, stranger, "20", USDT, client_key="shared")
    assert await wallet(db, stranger) == Decimal("100")


async def test_validated_request_body_is_accepted_for_every_method(db, make_user):
    user_id = await make_user(balance=Decimal("100"))
    for method, network in (("crypto_usdt", "TRC-20"), ("crypto_btc", "Bitcoin"), ("crypto_eth", "ERC-20")):
        body = WithdrawalIn.model_validate({"amount": "10.00", "details": {**USDT, "method": method}})
        receipt = await request_withdrawal(db, user_id, body.amount, body.details, client_key=method)
        assert receipt.method == method
        assert receipt.details["network"] == network

    body = WithdrawalIn.model_validate({"amount": "10.00", "details": BANK})
    receipt = await request_withdrawal(db, user_id, body.amount, body.details)
    assert receipt.details["bank_name"] == "First Bank"
    assert await wallet(db, user_id) == Decimal("60")
