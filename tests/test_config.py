"""Configuration clamping tests."""
import pytest

from product_sync.constants.sync import INVOCATION_SOFT_TIME_LIMIT
from product_sync.core.config import Settings, SyncConfig


@pytest.mark.parametrize("field,value,expected", [
    ("fetch_timeout_seconds", 1, 5),
    ("fetch_timeout_seconds", 600, 60),
    ("fetch_timeout_seconds", "45", 45),
    ("batch_size", 0, 1),
    ("batch_size", 100, 25),
    ("max_errors", 0, 1),
    ("max_errors", 1000, 99),
    ("skip_recent_hours", 0, 1),
    ("skip_recent_hours", 500, 168),
    ("throttle_seconds", -3, 0.0),
])
def test_out_of_range_values_are_clamped(field, value, expected):
    assert getattr(SyncConfig(**{field: value}), field) == expected


def test_defaults():
    config = SyncConfig()
    assert config.fetch_timeout_seconds == 30
    assert config.batch_size == 5
    assert config.max_errors == 1
    assert config.skip_recent_sync is False
    assert config.skip_recent_hours == 24
    assert config.manual_lock_staleness_seconds == 600
    assert config.cron_lock_staleness_seconds == 300


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("BATCH_SIZE", "40")
    monkeypatch.setenv("MAX_ERRORS", "3")
    monkeypatch.setenv("ADMIN_EMAIL", "ops@example.com")

    config = Settings(_env_file=None).sync_config()

    assert config.batch_size == 25
    assert config.max_errors == 3
    assert config.admin_email == "ops@example.com"


def test_time_budget_leaves_room_for_the_last_item():
    """Test: an item started just under the budget still ends before the worker soft limit"""
    config = SyncConfig(time_budget_seconds=600, fetch_timeout_seconds=60, throttle_seconds=5)

    assert config.time_budget_seconds == INVOCATION_SOFT_TIME_LIMIT - 60 - 5
    assert config.time_budget_seconds + config.fetch_timeout_seconds + config.throttle_seconds \
        <= INVOCATION_SOFT_TIME_LIMIT


def test_small_time_budget_is_kept():
    assert SyncConfig(time_budget_seconds=30).time_budget_seconds == 30
