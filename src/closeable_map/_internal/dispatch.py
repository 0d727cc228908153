from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from typing import Any

from closeable_map._internal.markers import EMPTY_TAGS, Tag, Tagged, unwrap
from closeable_map._internal.type_checks import is_runtime_class, supports_close
from closeable_map.exceptions import CloseableMapInvalidArgumentError

logger = logging.getLogger(__name__)

CloseProcedure = Callable[[Any], Any]


class CloseRegistry:
    """Map concrete types to the procedure that closes their instances.

    Lookups walk the MRO of the value's class, so a procedure registered for a
    base class also closes instances of its subclasses. A procedure registered
    for the exact class wins over one registered for a base.

    Registrations are never removed. Registering the same type again replaces
    its procedure for every later close.
    """

    def __init__(self) -> None:
        self._procedures: dict[type[Any], CloseProcedure] = {}
        self._lock = threading.Lock()

    def register(self, cls: type[Any], procedure: CloseProcedure) -> None:
        """Register ``procedure`` to close instances of ``cls``.

        Args:
            cls: Concrete type, or base class, of the values to close.
            procedure: One-argument callable receiving the value to close.

        Raises:
            CloseableMapInvalidArgumentError: If ``cls`` is not a class or
                ``procedure`` is not callable.

        """
        if not is_runtime_class(cls):
            msg = f"Close procedures are registered by class, got {cls!r}."
            raise CloseableMapInvalidArgumentError(msg)
        if not callable(procedure):
            msg = f"Close procedure for {cls.__qualname__} must be callable, got {procedure!r}."
            raise CloseableMapInvalidArgumentError(msg)
        with self._lock:
            self._procedures = {**self._procedures, cls: procedure}
        logger.debug("Registered close procedure for %s", cls.__qualname__)

    def lookup(self, cls: type[Any]) -> CloseProcedure | None:
        procedures = self._procedures
        if not procedures:
            return None
        for base in cls.__mro__:
            procedure = procedures.get(base)
            if procedure is not None:
                return procedure
        return None

    def __contains__(self, cls: object) -> bool:
        return is_runtime_class(cls) and self.lookup(cls) is not None

    def __len__(self) -> int:
        return len(self._procedures)


close_registry = CloseRegistry()
"""Process-wide registry consulted by ``close_one`` before native ``close``."""


def register_closer(
    cls: type[Any],
    *,
    registry: CloseRegistry | None = None,
) -> Callable[[CloseProcedure], CloseProcedure]:
    """Register the decorated function as the close procedure for ``cls``.

    Args:
        cls: Class whose instances the decorated function closes.
        registry: Registry to extend. Defaults to the process-wide one.

    Examples:
        .. code-block:: python

            from concurrent.futures import ThreadPoolExecutor


            @register_closer(ThreadPoolExecutor)
            def shutdown_executor(executor: ThreadPoolExecutor) -> None:
                executor.shutdown(wait=True)

    """
    target = close_registry if registry is None else registry

    def decorator(procedure: CloseProcedure) -> CloseProcedure:
        target.register(cls, procedure)
        return procedure

    return decorator


def close_one(
    value: Any,
    tags: Mapping[Tag, Any] = EMPTY_TAGS,
    *,
    registry: CloseRegistry | None = None,
) -> bool:
    """Release a single value and report whether anything was called.

    The checks run in a fixed order and the first match wins: a registered
    procedure for the value's class, the value's own ``close()``, then the
    ``Tag.FN`` annotation. Any other value is left untouched.

    Errors raised by the close call propagate unchanged.

    Args:
        value: Value to close. A ``Tagged`` wrapper is unwrapped and its tags
            merged over ``tags``.
        tags: Annotations of the value.
        registry: Registry to consult. Defaults to the process-wide one.

    Returns:
        ``True`` when a close side effect was invoked, ``False`` for a no-op.

    """
    if isinstance(value, Tagged):
        value, own_tags = unwrap(value)
        tags = {**tags, **own_tags}

    procedure = (close_registry if registry is None else registry).lookup(type(value))
    if procedure is not None:
        procedure(value)
        return True

    if supports_close(value):
        value.close()
        return True

    fn_tag = tags.get(Tag.FN)
    if fn_tag is True:
        value()
        return True
    if callable(fn_tag):
        fn_tag(value)
        return True
    return False


__all__ = [
    "CloseProcedure",
    "CloseRegistry",
    "close_one",
    "close_registry",
    "register_closer",
]
