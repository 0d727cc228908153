"""Tests for the exception hierarchy."""

from __future__ import annotations

import pytest

from closeable_map import (
    CloseableMapCloseError,
    CloseableMapConstructionError,
    CloseableMapError,
    CloseableMapInvalidArgumentError,
    CloseableMapUnsupportedCloseTargetError,
    Tag,
    closeable,
    closeable_map,
)


@pytest.mark.parametrize(
    "error_type",
    [
        CloseableMapInvalidArgumentError,
        CloseableMapConstructionError,
        CloseableMapCloseError,
        CloseableMapUnsupportedCloseTargetError,
    ],
)
def test_every_error_derives_from_the_base(error_type: type[Exception]) -> None:
    assert issubclass(error_type, CloseableMapError)


class TestCloseableMapCloseError:
    def test_carries_node_and_path(self) -> None:
        node = object()

        error = CloseableMapCloseError("failed", node=node, path=("a", 0))

        assert error.node is node
        assert error.path == ("a", 0)
        assert str(error) == "failed"

    def test_defaults_to_unknown_node_at_root(self) -> None:
        error = CloseableMapCloseError("failed")

        assert error.node is None
        assert error.path == ()


class TestCloseableMapUnsupportedCloseTargetError:
    def test_is_a_close_error_carrying_the_mapping(self) -> None:
        db = {Tag.CLOSE: object()}

        with pytest.raises(CloseableMapCloseError) as exc_info:
            closeable_map({"db": db}).close()

        assert isinstance(exc_info.value, CloseableMapUnsupportedCloseTargetError)
        assert exc_info.value.node is db
        assert exc_info.value.path == ("db",)
        assert exc_info.value.__cause__ is None


class TestCloseableMapInvalidArgumentError:
    def test_raised_for_closeable_outside_construction(self) -> None:
        with pytest.raises(CloseableMapInvalidArgumentError):
            closeable(object())

    def test_is_not_a_close_error(self) -> None:
        assert not issubclass(CloseableMapInvalidArgumentError, CloseableMapCloseError)
