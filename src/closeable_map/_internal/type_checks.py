from __future__ import annotations

from collections.abc import Mapping, Sequence, Set
from typing import Any, Protocol, TypeGuard, runtime_checkable


@runtime_checkable
class SupportsClose(Protocol):
    """Describe the native closable capability: a no-argument ``close``."""

    def close(self) -> Any: ...


_OPAQUE_TYPES = (str, bytes, bytearray, memoryview, range)


def is_runtime_class(candidate: object) -> TypeGuard[type[Any]]:
    """Return true when candidate is a class usable as a registry key.

    Args:
        candidate: Value being checked.

    """
    return isinstance(candidate, type)


def is_mapping_node(candidate: object) -> TypeGuard[Mapping[Any, Any]]:
    return isinstance(candidate, Mapping)


def is_sequence_node(candidate: object) -> bool:
    """Return true for ordered or unordered collections walked element by element.

    Text, binary values and ranges are sequences in Python but never hold
    resources, so they are treated as opaque leaves.
    """
    if isinstance(candidate, _OPAQUE_TYPES):
        return False
    return isinstance(candidate, (Sequence, Set))


def supports_close(candidate: object) -> TypeGuard[SupportsClose]:
    # Classes expose ``close`` as an unbound function; only instances count.
    if isinstance(candidate, type) or not isinstance(candidate, SupportsClose):
        return False
    return callable(candidate.close)


__all__ = [
    "SupportsClose",
    "is_mapping_node",
    "is_runtime_class",
    "is_sequence_node",
    "supports_close",
]
