import pytest

from toolrelay import config
from toolrelay.config import _load_settings, reload_settings, settings


def test_environment_overrides_defaults(monkeypatch):
    monkeypatch.setenv("PORT", "4100")
    monkeypatch.setenv("SEND_TIMEOUT_SECONDS", "1.5")

    loaded = _load_settings()

    assert loaded.PORT == 4100
    assert loaded.SEND_TIMEOUT_SECONDS == 1.5
    assert loaded.KEEPALIVE_SECONDS == 15.0


def test_invalid_values_name_the_variable(monkeypatch):
    monkeypatch.setenv("SEND_TIMEOUT_SECONDS", "-1")

    with pytest.raises(RuntimeError, match="SEND_TIMEOUT_SECONDS"):
        _load_settings()


def test_reload_updates_settings_in_place(monkeypatch):
    previous = settings.KEEPALIVE_SECONDS
    monkeypatch.setenv("KEEPALIVE_SECONDS", "0")
    try:
        fresh = reload_settings()
        assert fresh is settings
        assert config.settings.KEEPALIVE_SECONDS == 0
    finally:
        settings.KEEPALIVE_SECONDS = previous
