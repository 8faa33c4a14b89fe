# -*- coding: utf-8 -*-
# fundee_backend/app/models/draws_models.py
# =============================================================================
# Назначение кода:
#   SQLAlchemy-модели подсистемы розыгрышей Fundee: ежедневный розыгрыш (Draw),
#   билеты (Ticket), победители (Winner) и отметки об уведомлении о выигрыше
#   (OutcomeNotice).
#
# Канон/инварианты:
#   • Один розыгрыш на календарную дату: UNIQUE(draw_date) - основа
#     find-or-create без дублей при конкурентных вызовах.
#   • Статусы: pending → {completed | refunded}; терминальные, без откатов.
#   • Номер билета - 9-значное число, НЕ уникальное (коллизии допустимы):
#     выбор победителей и начисления работают по Ticket.id, не по номеру.
#   • Билет попадает в победители не более одного раза: UNIQUE(draw_id, ticket_id).
#   • «Выигрышность» билета не хранится в Ticket - она вычисляется через Winner.
#
# ИИ-защита/самовосстановление:
#   • CHECK-ограничения по статусам, тирам и неотрицательным счётчикам не дают
#     записать «мусорные» состояния даже в обход сервисов.
#   • OutcomeNotice UNIQUE(user_id, draw_id) - маркер идемпотентности
#     уведомлений: повторные проверки результата не шлют второе уведомление.
#
# Запреты:
#   • Модели не двигают деньги и не выбирают победителей - это draws_service.
#   • Розыгрыши никогда не удаляются - это исторический журнал.
# =============================================================================

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database_core import Base, UTCDateTime
from ..core.utils_core import utcnow

# -----------------------------------------------------------------------------
# Константы статусов/типов (строковые ENUM)
# -----------------------------------------------------------------------------
DRAW_STATUS_ENUM = ("pending", "completed", "refunded")
TICKET_SOURCE_ENUM = ("purchase", "ad_watch", "referral")
PRIZE_TIER_ENUM = ("tier1", "tier2", "tier3")

MONEY = Numeric(18, 2, asdecimal=True)

# =============================================================================
# МОДЕЛИ
# =============================================================================


class Draw(Base):
    """
    Ежедневный розыгрыш: дата, момент срабатывания, статус и агрегаты.
    """

    __tablename__ = "draws"
    __table_args__ = (
        UniqueConstraint("draw_date", name="uq_draws_draw_date"),
        CheckConstraint(f"status IN {DRAW_STATUS_ENUM}", name="ck_draws_status"),
        CheckConstraint("total_tickets >= 0", name="ck_draws_total_tickets_nonneg"),
        CheckConstraint("minimum_tickets > 0", name="ck_draws_minimum_tickets_pos"),
        CheckConstraint("prize_pool >= 0", name="ck_draws_prize_pool_nonneg"),
        Index("ix_draws_status_fire_at", "status", "fire_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Календарная дата в зоне DRAW_TIMEZONE и точный момент срабатывания (UTC)
    draw_date: Mapped[date] = mapped_column(Date, nullable=False)
    fire_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    total_tickets: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    minimum_tickets: Mapped[int] = mapped_column(Integer, nullable=False)
    prize_pool: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))

    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=text("CURRENT_TIMESTAMP")
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    winners: Mapped[List["Winner"]] = relationship(back_populates="draw", lazy="raise_on_sql")


class Ticket(Base):
    """
    Билет пользователя в конкретном розыгрыше. Неизменяем после создания.
    """

    __tablename__ = "tickets"
    __table_args__ = (
        CheckConstraint(f"source IN {TICKET_SOURCE_ENUM}", name="ck_tickets_source"),
        CheckConstraint(
            "ticket_number BETWEEN 100000000 AND 999999999",
            name="ck_tickets_number_9_digits",
        ),
        Index("ix_tickets_draw_user", "draw_id", "user_id", "id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    draw_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("draws.id", ondelete="RESTRICT"),
        nullable=False,
    )

    ticket_number: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(16), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=text("CURRENT_TIMESTAMP")
    )


class Winner(Base):
    """
    Выигравший билет: тир и сумма приза. Создаётся только движком розыгрыша.
    """

    __tablename__ = "winners"
    __table_args__ = (
        UniqueConstraint("draw_id", "ticket_id", name="uq_winners_draw_ticket"),
        CheckConstraint(f"prize_tier IN {PRIZE_TIER_ENUM}", name="ck_winners_tier"),
        CheckConstraint("prize_amount > 0", name="ck_winners_amount_pos"),
        Index("ix_winners_user_draw", "user_id", "draw_id"),
        Index("ix_winners_created_cursor", "created_at", "id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    draw_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("draws.id", ondelete="RESTRICT"),
        nullable=False,
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    ticket_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("tickets.id", ondelete="RESTRICT"),
        nullable=False,
    )

    prize_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    prize_tier: Mapped[str] = mapped_column(String(8), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=text("CURRENT_TIMESTAMP")
    )

    draw: Mapped["Draw"] = relationship(back_populates="winners", lazy="raise_on_sql")


class OutcomeNotice(Base):
    """
    Отметка «пользователь уведомлён о выигрыше в розыгрыше». Одна на пару
    (user_id, draw_id); вставка выигрывается ровно одним вызовом.
    delivered_at NULL - уведомление ещё не доставлено, следующий просмотр
    повторит отправку.
    """

    __tablename__ = "outcome_notices"
    __table_args__ = (
        UniqueConstraint("user_id", "draw_id", name="uq_outcome_notices_user_draw"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    draw_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("draws.id", ondelete="RESTRICT"),
        nullable=False,
    )
    total_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=text("CURRENT_TIMESTAMP")
    )
    delivered_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)


__all__ = [
    "DRAW_STATUS_ENUM",
    "TICKET_SOURCE_ENUM",
    "PRIZE_TIER_ENUM",
    "MONEY",
    "Draw",
    "Ticket",
    "Winner",
    "OutcomeNotice",
]
