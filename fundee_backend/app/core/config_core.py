# -*- coding: utf-8 -*-
# fundee_backend/app/core/config_core.py
# =============================================================================
# Назначение:
#   • Единый конфигурационный модуль Fundee (pydantic-settings, ENV/.env).
#   • Канонический источник настроек: розыгрыш, тиры призов, кулдаун
#     рекламы, вывод средств, планировщик, уведомления, логирование.
#
# Канон / инварианты Fundee:
#   1) Розыгрыш срабатывает ежедневно в DRAW_HOUR:00 в ОДНОЙ явной зоне
#      DRAW_TIMEZONE (по умолчанию America/New_York). Никакого «локального
#      времени устройства».
#   2) Порог участия DRAW_MIN_TICKETS = 300 000 билетов.
#   3) Тиры: 10/6/20 победителей, призы $100/$50/$10 (строго по убыванию).
#   4) Реклама: 5 просмотров подряд → кулдаун 600 секунд.
#   5) Минимальный вывод: $10.
#
# ИИ-защита / самодиагностика:
#   • Валидаторы не дают запустить сервис с битым расписанием
#     (час вне 0..23, неизвестная IANA-зона, неположительные размеры тиров).
#   • initialize_runtime() проверяет DSN и печатает предупреждения, не роняя процесс.
#
# Запреты:
#   • Никаких секретов в коде - только ENV/.env.
# =============================================================================

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# (tier, число победителей, приз) в порядке заполнения
PrizeTierRow = Tuple[str, int, Decimal]


class Settings(BaseSettings):
    """
    Переменные окружения Fundee. Экономика розыгрыша (порог, тиры, призы)
    закреплена здесь и сверяется system_locks.assert_draw_canon() на старте.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ------------------------------ ПРИЛОЖЕНИЕ -------------------------------
    PROJECT_NAME: str = Field("Fundee Cash", description="Имя сервиса в Swagger, /health и логах.")
    ENV: str = Field("production", description="production/dev/local/test.")
    DEBUG: bool = Field(False, description="DEBUG-логи и echo SQL.")
    APP_VERSION: str = "1.0.0"
    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 8000
    API_PREFIX: str = Field("/api", description="Префикс всех REST-ручек.")
    CORS_ORIGINS: List[str] = Field(
        default_factory=lambda: ["http://localhost:8081"],
        description="Origin мобильного/веб-клиента, CSV.",
    )

    # --------------------------------- БАЗА ----------------------------------
    DATABASE_URL: Optional[str] = Field(
        None,
        description="DSN PostgreSQL (приводится к postgresql+asyncpg://); в тестах sqlite+aiosqlite://.",
    )
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 10
    STORAGE_TIMEOUT_SEC: float = Field(30.0, description="Таймаут одной попытки обращения к БД.")
    STORAGE_RETRY_ATTEMPTS: int = Field(3, description="Попыток на транзиентный сбой БД.")
    STORAGE_RETRY_BASE_DELAY_SEC: float = Field(1.0, description="Пауза перед n-й попыткой = n × base.")

    # ------------------------------- РОЗЫГРЫШ --------------------------------
    DRAW_HOUR: int = Field(22, description="Час розыгрыша в DRAW_TIMEZONE.")
    DRAW_TIMEZONE: str = Field("America/New_York", description="IANA-зона расписания.")
    DRAW_MIN_TICKETS: int = Field(300_000, description="Меньше билетов - розыгрыш refunded.")

    TIER1_WINNERS: int = 10
    TIER2_WINNERS: int = 6
    TIER3_WINNERS: int = 20
    TIER1_PRIZE: Decimal = Decimal("100")
    TIER2_PRIZE: Decimal = Decimal("50")
    TIER3_PRIZE: Decimal = Decimal("10")

    # -------------------------------- РЕКЛАМА --------------------------------
    AD_BATCH_SIZE: int = Field(5, description="Просмотров подряд до кулдауна.")
    AD_COOLDOWN_SECONDS: int = 600

    # ---------------------------------- ВЫВОД --------------------------------
    WITHDRAW_MIN_AMOUNT: Decimal = Decimal("10")

    # ------------------------------- ПЛАНИРОВЩИК -----------------------------
    SCHEDULER_ENABLED: bool = Field(False, description="Поднимать планировщик внутри API-процесса.")
    SCHEDULER_TICK_SECONDS: int = 30
    TASK_TIMEOUT_SECONDS: int = 300
    MAX_PARALLEL_SCHEDULER_TASKS: int = 2

    # ------------------------------- УВЕДОМЛЕНИЯ -----------------------------
    NOTIFY_WEBHOOK_URL: Optional[str] = Field(None, description="Без URL уведомления только пишутся в лог.")
    NOTIFY_WEBHOOK_TOKEN: Optional[str] = None
    NOTIFY_TIMEOUT_SEC: float = 10.0

    LOG_LEVEL: str = "INFO"

    # ------------------------------- ВАЛИДАТОРЫ ------------------------------

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _v_cors_origins(cls, value: object) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        return [str(x).strip() for x in value if str(x).strip()]  # type: ignore[union-attr]

    @field_validator("DRAW_HOUR")
    @classmethod
    def _v_draw_hour(cls, value: int) -> int:
        if not 0 <= value <= 23:
            raise ValueError("DRAW_HOUR должен быть в диапазоне 0..23")
        return value

    @field_validator("DRAW_TIMEZONE")
    @classmethod
    def _v_draw_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Неизвестная IANA-зона DRAW_TIMEZONE: {value}") from None
        return value

    @field_validator(
        "DRAW_MIN_TICKETS",
        "TIER1_WINNERS",
        "TIER2_WINNERS",
        "TIER3_WINNERS",
        "AD_BATCH_SIZE",
        "AD_COOLDOWN_SECONDS",
        "STORAGE_RETRY_ATTEMPTS",
        "SCHEDULER_TICK_SECONDS",
        "TASK_TIMEOUT_SECONDS",
        "MAX_PARALLEL_SCHEDULER_TASKS",
    )
    @classmethod
    def _v_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("значение должно быть > 0")
        return value

    # ------------------------------- ПРОИЗВОДНЫЕ -----------------------------

    @property
    def env_normalized(self) -> str:
        """prod | dev | local | test; неизвестное значение считается prod."""
        value = (self.ENV or "").strip().lower()
        for prefix, name in (("prod", "prod"), ("dev", "dev"), ("loc", "local"), ("test", "test")):
            if value.startswith(prefix):
                return name
        return "prod"

    @property
    def is_prod(self) -> bool:
        return self.env_normalized == "prod"

    @property
    def draw_zone(self) -> ZoneInfo:
        return ZoneInfo(self.DRAW_TIMEZONE)

    def prize_tiers(self) -> Tuple[PrizeTierRow, ...]:
        return (
            ("tier1", self.TIER1_WINNERS, Decimal(self.TIER1_PRIZE)),
            ("tier2", self.TIER2_WINNERS, Decimal(self.TIER2_PRIZE)),
            ("tier3", self.TIER3_WINNERS, Decimal(self.TIER3_PRIZE)),
        )

    def database_url_async(self) -> str:
        """
        DSN для SQLAlchemy async:
          postgres://   → postgresql+asyncpg://
          postgresql:// → postgresql+asyncpg://
        Уже асинхронные DSN (sqlite+aiosqlite://, postgresql+asyncpg://) - как есть.
        """
        if not self.DATABASE_URL:
            raise RuntimeError("DATABASE_URL не задан (нужен DSN Postgres).")
        url = self.DATABASE_URL
        for sync_prefix in ("postgres://", "postgresql://"):
            if url.startswith(sync_prefix):
                return "postgresql+asyncpg://" + url[len(sync_prefix):]
        return url

    def debug_dump(self) -> Dict[str, str]:
        """Дамп без секретов для /health."""
        return {
            "env": self.env_normalized,
            "projectName": self.PROJECT_NAME,
            "version": self.APP_VERSION,
            "apiPrefix": self.API_PREFIX,
            "dbUrlSet": "yes" if self.DATABASE_URL else "no",
            "drawAt": f"{self.DRAW_HOUR:02d}:00 {self.DRAW_TIMEZONE}",
            "drawMinTickets": str(self.DRAW_MIN_TICKETS),
            "schedulerEnabled": str(self.SCHEDULER_ENABLED),
            "notifyWebhookSet": "yes" if self.NOTIFY_WEBHOOK_URL else "no",
        }

    def initialize_runtime(self) -> None:
        """Ранняя проверка DSN и мягкие предупреждения (print, без падения)."""
        if self.DATABASE_URL:
            self.database_url_async()
        else:
            print("[WARN] DATABASE_URL не задан - БД будет недоступна.")
        if self.is_prod and self.NOTIFY_WEBHOOK_URL and not self.NOTIFY_WEBHOOK_TOKEN:
            print("[WARN] NOTIFY_WEBHOOK_URL задан без NOTIFY_WEBHOOK_TOKEN.")


@lru_cache()
def get_settings() -> Settings:
    """Кэшированный Settings; initialize_runtime() выполняется один раз."""
    settings_obj = Settings()
    settings_obj.initialize_runtime()
    return settings_obj


__all__ = ["PrizeTierRow", "Settings", "get_settings"]

# =============================================================================
# Пояснения «для чайника»:
#   • Любую константу экономики можно переопределить через ENV, например
#     DRAW_MIN_TICKETS=1000 для стенда. Значения по умолчанию - боевые.
#   • Зона розыгрыша одна на весь сервис: расписание, «сегодня» для счётчика
#     рекламы и дата розыгрыша считаются в DRAW_TIMEZONE.
#   • get_settings() кэшируется: в тестах меняйте ENV до первого импорта.
# =============================================================================
