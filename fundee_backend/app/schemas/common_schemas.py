# -*- coding: utf-8 -*-
# fundee_backend/app/schemas/common_schemas.py
# =============================================================================
# Назначение кода:
# Базовые Pydantic-схемы Fundee для всех API: денежная строка с 2 знаками,
# стандартная форма ошибки (для OpenAPI-описания ответов).
#
# Канон / инварианты:
# • Все суммы - Decimal(18, 2). Снаружи всегда строкой ("100.00").
#
# Запреты:
# • Нет бизнес-логики - только декларативные DTO/сериализаторы.
# =============================================================================

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from typing_extensions import Annotated

from fundee_backend.app.core.utils_core import money_str

# =============================================================================
# Деньги
# -----------------------------------------------------------------------------
# Decimal внутри, строка с 2 знаками наружу
MoneyStr = Annotated[Decimal, PlainSerializer(money_str, return_type=str, when_used="always")]


# =============================================================================
# Базовые ответы/ошибки
# -----------------------------------------------------------------------------
class FundeeModel(BaseModel):
    """Общий базис схем: читаем атрибуты dataclass/ORM-объектов."""

    model_config = ConfigDict(from_attributes=True)


class OkMeta(BaseModel):
    """Мини-мета об успешной обработке."""

    ok: bool = Field(True, description="Флаг успешной операции")
    server_time: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
        description="UTC-время формирования ответа (ISO-8601)",
    )


class ErrorResponse(BaseModel):
    """Стандартная форма ошибки (см. core/errors_core.FundeeError.to_payload)."""

    error: str = Field(..., description="Короткий код ошибки (snake_case)")
    message: str = Field(..., description="Человеко-читаемое описание")
    details: Dict[str, Any] = Field(default_factory=dict)


__all__ = ["MoneyStr", "FundeeModel", "OkMeta", "ErrorResponse"]
