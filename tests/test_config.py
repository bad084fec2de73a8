from __future__ import annotations

import pytest

from learnsync.config import Settings, get_settings


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults(monkeypatch) -> None:
    for name in ("LEARNSYNC_REMOTE_BASE_URL", "LEARNSYNC_REMOTE_API_KEY"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.sync_interval_seconds == 120
    assert settings.fast_sync_interval_seconds == 30
    assert settings.debounce_seconds == 2
    assert settings.max_consecutive_errors == 3
    assert settings.error_pause_seconds == 300
    assert settings.broadcast_channel == "learnsync-sync"
    assert settings.remote_configured is False


def test_environment_aliases(monkeypatch) -> None:
    monkeypatch.setenv("LEARNSYNC_REMOTE_BASE_URL", "https://remote.test")
    monkeypatch.setenv("LEARNSYNC_REMOTE_API_KEY", "key")
    monkeypatch.setenv("LEARNSYNC_RETRY_MAX_ATTEMPTS", "5")

    settings = get_settings()

    assert settings.remote_configured is True
    assert settings.retry_max_attempts == 5
    assert get_settings() is settings


def test_invalid_values_raise_runtime_error(monkeypatch) -> None:
    monkeypatch.setenv("LEARNSYNC_RETRY_MAX_ATTEMPTS", "0")

    with pytest.raises(RuntimeError, match="Invalid learnsync configuration"):
        get_settings()
