from __future__ import annotations

from typing import Any


class CloseableMapError(Exception):
    """Represent a base class for all closeable-map failures.

    Catch this type when you want to handle any closeable-map error path
    without matching each concrete exception class individually.
    """


class CloseableMapInvalidArgumentError(CloseableMapError):
    """Signal a precondition violation on a public entry point.

    Raised by ``closeable_map`` when the wrapped value is not a mapping, by
    ``CloseRegistry.register`` when the key is not a type or the procedure is
    not callable, and by ``closeable`` when no tracked construction is active.

    Typical fixes include wrapping a real mapping, registering by class, and
    calling ``closeable`` only inside ``build_closeable_map``,
    ``tracked_construction`` or ``ClosingBindings``.
    """


class CloseableMapConstructionError(CloseableMapError):
    """Signal that a resource acquisition failed during guarded construction.

    Only raised when ``wrap_construction_errors`` is enabled in the settings;
    by default the original error is re-raised unchanged. The original error
    is always available as ``__cause__``. Every resource tracked before the
    failure has already been closed when this error reaches the caller.
    """


class CloseableMapCloseError(CloseableMapError):
    """Signal that closing a node, or running one of its hooks, failed.

    Raised by ``CloseableMap.close`` when the failing node is not under an
    effective ``swallow`` policy. The original error is chained as
    ``__cause__``.

    Attributes:
        node: The value whose close or hook raised.
        path: Keys and indices leading from the closed root to ``node``.

    """

    def __init__(self, msg: str, *, node: Any = None, path: tuple[Any, ...] = ()) -> None:
        super().__init__(msg)
        self.node = node
        self.path = path


class CloseableMapUnsupportedCloseTargetError(CloseableMapCloseError):
    """Signal an explicit close procedure of an unrecognized shape.

    Raised when a mapping declares ``Tag.CLOSE`` with a value that is neither
    callable nor a sequence of callables.

    Typical fix is storing a one-argument function, or a list of them, under
    ``Tag.CLOSE``.
    """
