# -*- coding: utf-8 -*-
# fundee_backend/app/routes/__init__.py
# =============================================================================
# Назначение кода:
#   Единая точка подключения всех HTTP-роутов Fundee. Модуль агрегирует
#   подмодули роутов и предоставляет:
#     • общий APIRouter (api_router), в который «вмонтированы» все роуты;
#     • функцию register(app, prefix) для подключения в FastAPI;
#     • список подключённых модулей для /health.
#
# Канон/инварианты:
#   • Модуль НЕ выполняет бизнес-логику - только проводка маршрутов.
#   • Каждый подмодуль экспортирует `router: APIRouter` со своим prefix.
#   • Отсутствующий или битый модуль роутов - ошибка старта, а не «тихий» 404.
# =============================================================================

from __future__ import annotations

from importlib import import_module
from typing import List, Tuple

from fastapi import APIRouter, FastAPI

from fundee_backend.app.core.logging_core import get_logger
from fundee_backend.app.schemas.common_schemas import ErrorResponse

logger = get_logger(__name__)

ROUTERS_EXPECTED: Tuple[str, ...] = (
    "user_routes",
    "draws_routes",
    "ads_routes",
    "winners_routes",
    "referrals_routes",
    "withdraw_routes",
)

# Ошибки всех ручек приходят единым конвертом FundeeError.to_payload().
api_router = APIRouter(
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    }
)

_ATTACHED: List[str] = []


def _include(module_basename: str) -> None:
    fqmn = f"{__name__}.{module_basename}"
    mod = import_module(fqmn)
    router = getattr(mod, "router", None)
    if not isinstance(router, APIRouter):
        raise RuntimeError(f"routes: module {fqmn} has no router: APIRouter")
    api_router.include_router(router)
    _ATTACHED.append(module_basename)
    logger.debug("routes: attached %s", fqmn)


for _name in ROUTERS_EXPECTED:
    _include(_name)


def register(app: FastAPI, prefix: str = "") -> None:
    """Регистрирует агрегированный роутер в приложении (prefix обычно "/api")."""
    app.include_router(api_router, prefix=prefix)
    logger.info("routes: registered (prefix=%r): %s", prefix, ",".join(_ATTACHED))


def list_registered_routes() -> List[str]:
    """Короткие имена подключённых модулей роутов (для health-диагностики)."""
    return list(_ATTACHED)


__all__ = [
    "api_router",
    "register",
    "list_registered_routes",
    "ROUTERS_EXPECTED",
]
