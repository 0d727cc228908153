"""Shared pytest fixtures for closeable-map tests."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from closeable_map import reset_settings


class Resource:
    """Closable test double that records its name in a shared journal."""

    def __init__(self, name: str, journal: list[str], *, error: Exception | None = None) -> None:
        self.name = name
        self.journal = journal
        self.error = error
        self.close_calls = 0

    def close(self) -> None:
        self.close_calls += 1
        self.journal.append(self.name)
        if self.error is not None:
            raise self.error

    def __repr__(self) -> str:
        return f"Resource({self.name!r})"


@pytest.fixture()
def journal() -> list[str]:
    """Order in which resources were closed."""
    return []


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Re-read settings from a clean environment for every test."""
    for name in (
        "CLOSEABLE_MAP_SUPPRESS_CLOSE_ERRORS_DURING_UNWIND",
        "CLOSEABLE_MAP_WRAP_CONSTRUCTION_ERRORS",
        "CLOSEABLE_MAP_LOG_SWALLOWED_ERRORS",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()
