from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from typing import Any, TypeVar

import pytest

from closeable_map._internal.dispatch import close_one
from closeable_map._internal.visitor import close_tree

T = TypeVar("T")

logger = logging.getLogger(__name__)


def _close(value: Any) -> None:
    if not close_one(value):
        close_tree(value)


@pytest.fixture()
def closeable_map_finalizer() -> Iterator[Callable[[T], T]]:
    """Register closables that must be released when the test ends.

    The fixture yields a callable that records a value and returns it
    unchanged. At teardown the recorded values are closed in reverse
    registration order; the first close error fails the teardown after every
    value was attempted.

    Yields:
        The registering callable.

    Examples:
        .. code-block:: python

            def test_consumer_reads(closeable_map_finalizer) -> None:
                app = closeable_map_finalizer(start_application(config))
                assert app["consumer"].poll() is not None

    """
    registered: list[Any] = []

    def register(value: T) -> T:
        registered.append(value)
        return value

    yield register

    first_error: Exception | None = None
    while registered:
        value = registered.pop()
        try:
            _close(value)
        except Exception as error:  # noqa: BLE001
            logger.debug("Error while closing %r at test teardown", value, exc_info=error)
            if first_error is None:
                first_error = error
    if first_error is not None:
        raise first_error
