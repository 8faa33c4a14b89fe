# -*- coding: utf-8 -*-
"""Initial migration for Fundee.

Назначение:
    • Создать таблицы users, draws, tickets, winners, ad_watches, referrals,
      outcome_notices, withdrawals согласно текущим моделям.
    • Ограничения и индексы берутся из ORM-моделей (UNIQUE draw_date,
      UNIQUE (draw_id, ticket_id), CHECK wallet_balance >= 0 и др.).

Канон/инварианты:
    • Только DDL; балансы не изменяются.
    • Таблицы создаются через Declarative Base - миграция не расходится с моделями.

ИИ-защита:
    • checkfirst=True: повторный запуск не ломает БД.
"""

from __future__ import annotations

from alembic import op

from fundee_backend.app.core.database_core import Base
from fundee_backend.app.models import MODEL_REGISTRY

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels = None
depends_on = None

_ = MODEL_REGISTRY


def upgrade() -> None:
    """Создать все таблицы/индексы из моделей."""

    Base.metadata.create_all(bind=op.get_bind(), checkfirst=True)


def downgrade() -> None:
    """Удалить таблицы Fundee (в обратном порядке зависимостей)."""

    Base.metadata.drop_all(bind=op.get_bind(), checkfirst=True)
