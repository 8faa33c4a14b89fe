# -*- coding: utf-8 -*-
# fundee_backend/app/core/utils_core.py
# =============================================================================
# Назначение:
#   • Базовые утилиты уровня "core" без зависимостей от FastAPI/SQLAlchemy.
#   • Деньги: Decimal с 2 знаками (центы), округление вниз.
#   • Время: UTC-aware таймстемпы.
#   • Генерация реф-кодов и хэши.
#
# Канон:
#   • Все денежные суммы наружу - строка с 2 знаками ("100.00").
#   • Все функции чистые: без сетевых вызовов и без побочных эффектов.
# =============================================================================

from __future__ import annotations

import hashlib
import secrets
import string
from datetime import datetime, timezone
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Union

NumberLike = Union[str, int, float, Decimal]

MONEY_DECIMALS = 2
_Q_MONEY = Decimal(1).scaleb(-MONEY_DECIMALS)  # Decimal("0.01")

# Алфавит реф-кодов: цифры и латиница в верхнем регистре.
REF_CODE_ALPHABET = string.digits + string.ascii_uppercase
REF_CODE_LENGTH = 8


# -----------------------------------------------------------------------------
# Decimal helpers
# -----------------------------------------------------------------------------
def decimal_from(value: NumberLike) -> Decimal:
    """
    Безопасно приводит значение к Decimal (float - через str(), чтобы не
    тащить бинарные артефакты).
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize_money(value: NumberLike) -> Decimal:
    """Округляет сумму до центов вниз. Бросает ValueError на мусорном вводе."""
    try:
        d = decimal_from(value)
        return d.quantize(_Q_MONEY, rounding=ROUND_DOWN)
    except (InvalidOperation, ValueError, TypeError):
        raise ValueError(f"Invalid money amount: {value!r}") from None


def money_str(value: NumberLike) -> str:
    """Строковое представление суммы с 2 знаками ("10.00")."""
    return f"{quantize_money(value):.{MONEY_DECIMALS}f}"


# -----------------------------------------------------------------------------
# Время
# -----------------------------------------------------------------------------
def utcnow() -> datetime:
    """Текущее время в UTC с tzinfo=UTC."""
    return datetime.now(tz=timezone.utc)


# -----------------------------------------------------------------------------
# Хэши / коды
# -----------------------------------------------------------------------------
def sha256_hex(data: Union[str, bytes]) -> str:
    """SHA-256 в hex (строки кодируются как UTF-8)."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def gen_ref_code(length: int = REF_CODE_LENGTH, alphabet: str = REF_CODE_ALPHABET) -> str:
    """Генерация реф-кода вида 'K7Q2M9XA' (криптостойкий выбор символов)."""
    return "".join(secrets.choice(alphabet) for _ in range(length))


__all__ = [
    "NumberLike",
    "MONEY_DECIMALS",
    "REF_CODE_ALPHABET",
    "REF_CODE_LENGTH",
    "decimal_from",
    "quantize_money",
    "money_str",
    "utcnow",
    "sha256_hex",
    "gen_ref_code",
]
