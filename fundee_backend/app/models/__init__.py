# -*- coding: utf-8 -*-
# fundee_backend/app/models/__init__.py
# =============================================================================
# Назначение кода:
#   Единая точка входа слоя моделей Fundee:
#    • импорт всех модулей моделей (регистрация таблиц в Base.metadata),
#    • реестр MODEL_REGISTRY для доступа к классам по имени,
#    • models_health() - проверка полноты набора таблиц.
#
# Канон/инварианты:
#   • Модели описывают структуру данных, НЕ содержат бизнес-логики и денег.
#   • Денежные изменения - только атомарными UPDATE в crud/users_crud.py.
#
# Запреты:
#   • Не размещать здесь DDL/DML и create_all() - это core/database_core.py
#     и миграции Alembic.
# =============================================================================

from __future__ import annotations

import inspect
from typing import Dict, List, Optional, Tuple, Type

from ..core.database_core import Base
from ..core.logging_core import get_logger
from . import ads_models, draws_models, referral_models, user_models, withdraw_models
from .ads_models import AdWatch
from .draws_models import Draw, OutcomeNotice, Ticket, Winner
from .referral_models import Referral
from .user_models import User
from .withdraw_models import Withdrawal

logger = get_logger(__name__)

_MODEL_MODULES = (user_models, draws_models, ads_models, referral_models, withdraw_models)


def _collect_model_classes(module) -> Dict[str, Type[Base]]:
    """{ClassName: Class} для всех подклассов Base с __tablename__."""
    registry: Dict[str, Type[Base]] = {}
    for name, obj in vars(module).items():
        if inspect.isclass(obj) and issubclass(obj, Base) and obj is not Base and hasattr(obj, "__tablename__"):
            registry[name] = obj
    return registry


MODEL_REGISTRY: Dict[str, Type[Base]] = {}
for _module in _MODEL_MODULES:
    MODEL_REGISTRY.update(_collect_model_classes(_module))


def get_model(name: str) -> Optional[Type[Base]]:
    """Класс модели по имени (get_model("Draw") → Draw)."""
    return MODEL_REGISTRY.get(name)


def list_models() -> List[Tuple[str, str]]:
    """Пары (ClassName, __tablename__) всех моделей, по алфавиту."""
    return [
        (cls_name, cls.__tablename__)
        for cls_name, cls in sorted(MODEL_REGISTRY.items(), key=lambda kv: kv[0].lower())
    ]


_REQUIRED_TABLES = (
    "users",
    "draws",
    "tickets",
    "winners",
    "outcome_notices",
    "ad_watches",
    "referrals",
    "withdrawals",
)


def models_health() -> Dict[str, object]:
    """
    Отчёт о полноте набора таблиц:
      {"ok": bool, "missing_tables": [...], "present": [(ClassName, table), ...]}
    """
    present = list_models()
    tables = {tbl for _, tbl in present}
    missing = [t for t in _REQUIRED_TABLES if t not in tables]
    if missing:
        logger.error("models_health: missing tables %s", missing)
    return {"ok": not missing, "missing_tables": missing, "present": present}


__all__ = [
    "Base",
    "User",
    "Draw",
    "Ticket",
    "Winner",
    "OutcomeNotice",
    "AdWatch",
    "Referral",
    "Withdrawal",
    "MODEL_REGISTRY",
    "get_model",
    "list_models",
    "models_health",
]
