"""Fundee CRUD facade.

======================================================================
Назначение модуля:
    • Экспортировать CRUD-классы таблиц розыгрыша (draws, tickets,
      winners/outcome_notices, users).
    • Не содержит бизнес-логики - только доступ к БД.

Канон/инварианты:
    • Кошелёк меняется только атомарными UPDATE в UsersCRUD.
    • Курсоры вместо OFFSET; commit выполняют сервисы.
======================================================================
"""

from fundee_backend.app.crud.draws_crud import DrawsCRUD
from fundee_backend.app.crud.tickets_crud import TicketsCRUD
from fundee_backend.app.crud.users_crud import UsersCRUD
from fundee_backend.app.crud.winners_crud import WinnersCRUD

__all__ = ["DrawsCRUD", "TicketsCRUD", "UsersCRUD", "WinnersCRUD"]
