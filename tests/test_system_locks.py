from __future__ import annotations

from decimal import Decimal

import pytest

from fundee_backend.app.core.config_core import Settings
from fundee_backend.app.core.system_locks import LockViolation, assert_draw_canon, assert_prize_tiers


def test_default_economy_passes(settings):
    assert settings.prize_tiers() == (
        ("tier1", 10, Decimal("100")),
        ("tier2", 6, Decimal("50")),
        ("tier3", 20, Decimal("10")),
    )
    assert settings.DRAW_MIN_TICKETS == 300_000
    assert settings.AD_BATCH_SIZE == 5 and settings.AD_COOLDOWN_SECONDS == 600
    assert_draw_canon(settings)


def test_prizes_must_descend():
    with pytest.raises(LockViolation):
        assert_prize_tiers([("tier1", 10, Decimal("100")), ("tier2", 6, Decimal("100"))])
    with pytest.raises(LockViolation):
        assert_prize_tiers([])


def test_overrides_are_validated():
    custom = Settings(DATABASE_URL="sqlite+aiosqlite://", TIER2_PRIZE=Decimal("200"))
    with pytest.raises(LockViolation):
        assert_draw_canon(custom)

    with pytest.raises(ValueError):
        Settings(DATABASE_URL="sqlite+aiosqlite://", DRAW_HOUR=24)
    with pytest.raises(ValueError):
        Settings(DATABASE_URL="sqlite+aiosqlite://", DRAW_TIMEZONE="Mars/Olympus_Mons")


def test_dsn_is_made_async():
    s = Settings(DATABASE_URL="postgres://u:p@db:5432/fundee")
    assert s.database_url_async() == "postgresql+asyncpg://u:p@db:5432/fundee"


def test_boot_core_reports_locks_and_snapshot():
    from fundee_backend.app.core import boot_core

    report = boot_core()
    assert report["locks"] == {"ok": True, "error": None}
    assert report["health"]["ok"] is True
    assert report["health"]["snapshot"]["DRAW_MIN_TICKETS"] == 300_000
