# -*- coding: utf-8 -*-
# fundee_backend/app/models/user_models.py
# =============================================================================
# Назначение кода:
#   ORM-модель «Пользователь» Fundee - локальная проекция внешнего сервиса
#   идентификации: id, отображаемое имя, баланс кошелька, реферальный код.
#
# Канон/инварианты:
#   • wallet_balance - Numeric(18,2), всегда ≥ 0 (CHECK в БД).
#   • Баланс меняется ТОЛЬКО атомарными SQL-выражениями в crud/users_crud.py:
#     wallet_balance = wallet_balance + :amount (начисление приза) и
#     условным списанием WHERE wallet_balance >= :amount (холд вывода).
#   • referral_code уникален; referred_by_id ставится один раз.
#
# Запреты:
#   • Модель НЕ выполняет денежных операций и не хранит секретов/паролей.
# =============================================================================

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import CheckConstraint, ForeignKey, Integer, Numeric, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database_core import Base, UTCDateTime
from ..core.utils_core import utcnow


class User(Base):
    """
    Пользователь Fundee.

    Поля:
      • display_name     - имя для ленты победителей.
      • wallet_balance   - выигрыши к выводу ($, Decimal(18,2), ≥ 0).
      • referral_code    - 8 символов 0-9A-Z, уникален.
      • referred_by_id   - кто пригласил (NULL, если никто).
    """

    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("referral_code", name="uq_users_referral_code"),
        CheckConstraint("wallet_balance >= 0", name="ck_users_wallet_balance_nonneg"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    display_name: Mapped[str] = mapped_column(String(120), nullable=False)
    wallet_balance: Mapped[Decimal] = mapped_column(
        Numeric(18, 2, asdecimal=True),
        nullable=False,
        default=Decimal("0"),
    )
    referral_code: Mapped[str] = mapped_column(String(16), nullable=False)
    referred_by_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=text("CURRENT_TIMESTAMP")
    )


__all__ = ["User"]
