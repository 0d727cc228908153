from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class CloseableMapSettings(BaseSettings):
    """Process-wide knobs read from ``CLOSEABLE_MAP_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CLOSEABLE_MAP_",
        extra="ignore",
    )

    suppress_close_errors_during_unwind: bool = True
    """Keep the in-flight error when ``close()`` fails on ``with`` block exit."""

    wrap_construction_errors: bool = False
    """Raise ``CloseableMapConstructionError`` instead of the original acquisition error."""

    log_swallowed_errors: bool = True
    """Emit a DEBUG record for every error caught under ``swallow``."""


_settings: CloseableMapSettings | None = None


def get_settings() -> CloseableMapSettings:
    """Get or create the process-wide settings instance."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = CloseableMapSettings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings  # noqa: PLW0603
    _settings = None


__all__ = ["CloseableMapSettings", "get_settings", "reset_settings"]
