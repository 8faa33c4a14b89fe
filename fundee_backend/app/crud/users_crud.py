"""User CRUD: read-through lookups and the only two wallet mutations.

======================================================================
Назначение:
    • Доступ к таблице users: поиск по id и реф-коду, создание,
      блокировка строки, однократная привязка пригласившего.
    • Кошелёк меняется ровно двумя атомарными выражениями:
        increment_wallet_balance - wallet_balance + :amount (приз);
        hold_wallet_balance      - wallet_balance - :amount
                                   WHERE wallet_balance >= :amount (холд вывода).

Канон/инварианты:
    • Никаких read-modify-write по балансу: значение не читается в Python
      для последующей записи.
    • Баланс не уходит в минус - условие холда + CHECK в БД.

Запреты:
    • commit выполняет вызывающий сервис.
======================================================================
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Select, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fundee_backend.app.core.logging_core import get_logger
from fundee_backend.app.models import User

logger = get_logger(__name__)


class UsersCRUD:
    """CRUD-обёртка для users."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: int) -> User | None:
        """Свежая копия пользователя (после атомарных UPDATE в этой сессии)."""

        stmt: Select[User] = (
            select(User).where(User.id == int(user_id)).execution_options(populate_existing=True)
        )
        return await self.session.scalar(stmt)

    async def get_by_referral_code(self, code: str) -> User | None:
        stmt: Select[User] = select(User).where(User.referral_code == code)
        return await self.session.scalar(stmt)

    async def create(self, display_name: str, referral_code: str) -> User:
        """Создать пользователя (flush без commit); баланс 0."""

        user = User(display_name=display_name, referral_code=referral_code, wallet_balance=Decimal("0"))
        self.session.add(user)
        await self.session.flush()
        return user

    async def lock_for_update(self, user_id: int) -> User | None:
        """Получить пользователя под FOR UPDATE (сериализация действий одного юзера)."""

        stmt: Select[User] = (
            select(User)
            .where(User.id == int(user_id))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return await self.session.scalar(stmt)

    async def set_referred_by(self, user_id: int, referrer_id: int) -> int:
        """Однократно проставить referred_by_id; rowcount 0 - уже был задан."""

        stmt = (
            update(User)
            .where(User.id == int(user_id), User.referred_by_id.is_(None))
            .values(referred_by_id=int(referrer_id))
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)

    async def increment_wallet_balance(self, user_id: int, amount: Decimal) -> int:
        """wallet_balance = wallet_balance + :amount. Возвращает rowcount."""

        stmt = (
            update(User)
            .where(User.id == int(user_id))
            .values(wallet_balance=User.wallet_balance + amount)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)

    async def hold_wallet_balance(self, user_id: int, amount: Decimal) -> int:
        """Условное списание; rowcount 0 - средств недостаточно."""

        stmt = (
            update(User)
            .where(User.id == int(user_id), User.wallet_balance >= amount)
            .values(wallet_balance=User.wallet_balance - amount)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)


__all__ = ["UsersCRUD"]
