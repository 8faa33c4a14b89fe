"""Модель просмотров рекламы (источник состояния кулдауна)."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, text
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database_core import Base, UTCDateTime
from ..core.utils_core import utcnow


class AdWatch(Base):
    """Один просмотр рекламы; session_count - номер просмотра за день (1..batch)."""

    __tablename__ = "ad_watches"
    __table_args__ = (
        CheckConstraint("session_count > 0", name="ck_ad_watches_session_count_pos"),
        Index("ix_ad_watches_user_watched", "user_id", "watched_at", "id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    ticket_id: Mapped[int] = mapped_column(ForeignKey("tickets.id", ondelete="RESTRICT"), nullable=False)
    session_count: Mapped[int] = mapped_column(Integer, nullable=False)
    watched_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=text("CURRENT_TIMESTAMP")
    )
