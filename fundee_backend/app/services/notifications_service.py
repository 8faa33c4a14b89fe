# -*- coding: utf-8 -*-
# fundee_backend/app/services/notifications_service.py
# =============================================================================
# Назначение кода:
#   Приёмник уведомлений о выигрыше: запись в лог и (опционально) POST на
#   webhook NOTIFY_WEBHOOK_URL через httpx.
#
# Канон / инварианты:
#   • Сбой доставки НИКОГДА не ломает вызывающий код: ошибка логируется
#     WARNING, функция возвращает False.
#   • Тело webhook - JSON {"event", "user_id", "draw_id", "amount"}; сумма строкой
#     с 2 знаками.
#
# Запреты:
#   • Не логировать токен webhook (его маскирует RedactingFilter).
# =============================================================================

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Optional

import httpx

from fundee_backend.app.core.config_core import get_settings
from fundee_backend.app.core.logging_core import get_logger
from fundee_backend.app.core.utils_core import money_str

logger = get_logger(__name__)

EVENT_DRAW_OUTCOME = "draw_outcome"


def _headers(token: Optional[str]) -> Dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


async def notify_outcome(
    user_id: int,
    draw_id: int,
    amount: Decimal,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> bool:
    """
    Сообщает о выигрыше. True - webhook принял уведомление (или webhook не
    настроен и запись в лог - единственный канал); False - доставка не удалась.
    """
    settings = get_settings()
    logger.info(
        "outcome notice emitted",
        extra={"user_id": user_id, "draw_id": draw_id, "amount": money_str(amount)},
    )

    url = settings.NOTIFY_WEBHOOK_URL
    if not url:
        return True

    payload = {
        "event": EVENT_DRAW_OUTCOME,
        "user_id": int(user_id),
        "draw_id": int(draw_id),
        "amount": money_str(amount),
    }
    headers = _headers(settings.NOTIFY_WEBHOOK_TOKEN)
    try:
        if client is not None:
            resp = await client.post(url, json=payload, headers=headers, timeout=settings.NOTIFY_TIMEOUT_SEC)
        else:
            async with httpx.AsyncClient(timeout=settings.NOTIFY_TIMEOUT_SEC) as own_client:
                resp = await own_client.post(url, json=payload, headers=headers)
        resp.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning(
            "outcome webhook delivery failed",
            extra={"user_id": user_id, "draw_id": draw_id, "error": str(exc)},
        )
        return False
    return True


__all__ = ["EVENT_DRAW_OUTCOME", "notify_outcome"]
