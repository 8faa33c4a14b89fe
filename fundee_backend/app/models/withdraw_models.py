# -*- coding: utf-8 -*-
# fundee_backend/app/models/withdraw_models.py
# =============================================================================
# Назначение кода:
#   ORM-модель заявки на вывод выигрышей (Withdrawal).
#
# Канон/инварианты:
#   • Сумма заявки уже «в холде»: при создании она атомарно списана с
#     users.wallet_balance (WHERE wallet_balance >= :amount).
#   • details - JSON, прошедший валидацию через discriminated union по method
#     (schemas/withdraw_schemas.py). Модель сама форму реквизитов не проверяет.
#   • client_key - ключ идемпотентности клиента (UNIQUE, допускает NULL):
#     повтор возвращает существующую заявку без второго холда.
#
# Запреты:
#   • Переходы processing/completed/failed делает внешняя выплатная система.
#   • Реквизиты выплат не логируются.
# =============================================================================

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database_core import Base, UTCDateTime
from ..core.utils_core import utcnow

WITHDRAW_METHOD_ENUM = ("bank_transfer", "crypto_usdt", "crypto_btc", "crypto_eth", "paypal")
WITHDRAW_STATUS_ENUM = ("pending", "processing", "completed", "failed")

# На PostgreSQL - JSONB, на остальных диалектах - обычный JSON
DETAILS_JSON = JSON().with_variant(JSONB(), "postgresql")


class Withdrawal(Base):
    """
    Заявка на вывод.

    Поля:
      • amount      - сумма ($, Decimal(18,2), > 0), уже удержана с кошелька.
      • method      - канал выплаты.
      • details     - реквизиты канала (только поля своего варианта).
      • status      - pending при создании.
      • client_key  - Idempotency-Key клиента.
    """

    __tablename__ = "withdrawals"
    __table_args__ = (
        UniqueConstraint("client_key", name="uq_withdrawals_client_key"),
        CheckConstraint("amount > 0", name="ck_withdrawals_amount_pos"),
        CheckConstraint(f"method IN {WITHDRAW_METHOD_ENUM}", name="ck_withdrawals_method"),
        CheckConstraint(f"status IN {WITHDRAW_STATUS_ENUM}", name="ck_withdrawals_status"),
        Index("ix_withdrawals_user_created", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2, asdecimal=True), nullable=False)
    method: Mapped[str] = mapped_column(String(32), nullable=False)
    details: Mapped[Dict[str, Any]] = mapped_column(DETAILS_JSON, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    client_key: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=text("CURRENT_TIMESTAMP")
    )

    def __repr__(self) -> str:
        return f"<Withdrawal id={self.id} user={self.user_id} amount={self.amount} status={self.status}>"


__all__ = ["WITHDRAW_METHOD_ENUM", "WITHDRAW_STATUS_ENUM", "Withdrawal"]
