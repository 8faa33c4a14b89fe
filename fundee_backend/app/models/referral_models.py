# -*- coding: utf-8 -*-
# fundee_backend/app/models/referral_models.py
# =============================================================================
# Назначение кода:
#   ORM-модель домена «Рефералы» Fundee:
#   • Referral - связь «пригласивший → приглашённый» и розыгрыш, в который
#     обоим участникам выданы реферальные билеты.
#
# Канон/инварианты:
#   • У приглашённого ровно один пригласивший: UNIQUE(referred_user_id).
#   • Нельзя пригласить самого себя (CHECK referrer_id <> referred_user_id).
#   • Вознаграждение за приглашение - билеты (source='referral'), а не деньги.
#
# Запреты:
#   • Никаких денежных полей: реферальная программа не двигает кошелёк.
# =============================================================================

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database_core import Base, UTCDateTime
from ..core.utils_core import utcnow


class Referral(Base):
    """
    Поля:
      • referrer_id       - владелец реф-кода.
      • referred_user_id  - кто применил код.
      • draw_id           - розыгрыш, в который выданы реферальные билеты.
    """

    __tablename__ = "referrals"
    __table_args__ = (
        UniqueConstraint("referred_user_id", name="uq_referrals_referred_user"),
        CheckConstraint("referrer_id <> referred_user_id", name="ck_referrals_not_self"),
        Index("ix_referrals_referrer_created", "referrer_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    referrer_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    referred_user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    draw_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("draws.id", ondelete="RESTRICT"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=text("CURRENT_TIMESTAMP")
    )

    def __repr__(self) -> str:
        return f"<Referral id={self.id} {self.referrer_id}->{self.referred_user_id} draw={self.draw_id}>"


__all__ = ["Referral"]
