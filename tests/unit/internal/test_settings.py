from __future__ import annotations

import pytest

from closeable_map import CloseableMapSettings, get_settings, reset_settings


def test_defaults() -> None:
    settings = CloseableMapSettings()

    assert settings.suppress_close_errors_during_unwind is True
    assert settings.wrap_construction_errors is False
    assert settings.log_swallowed_errors is True


def test_values_are_read_from_prefixed_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CLOSEABLE_MAP_WRAP_CONSTRUCTION_ERRORS", "1")
    monkeypatch.setenv("CLOSEABLE_MAP_LOG_SWALLOWED_ERRORS", "no")

    settings = CloseableMapSettings()

    assert settings.wrap_construction_errors is True
    assert settings.log_swallowed_errors is False


def test_unrelated_environment_is_ignored(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WRAP_CONSTRUCTION_ERRORS", "true")

    assert CloseableMapSettings().wrap_construction_errors is False


def test_get_settings_is_cached_until_reset(monkeypatch: pytest.MonkeyPatch) -> None:
    first = get_settings()
    monkeypatch.setenv("CLOSEABLE_MAP_WRAP_CONSTRUCTION_ERRORS", "true")

    assert get_settings() is first
    assert first.wrap_construction_errors is False

    reset_settings()

    assert get_settings() is not first
    assert get_settings().wrap_construction_errors is True
