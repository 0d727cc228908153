from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar, Token
from enum import Enum
from types import TracebackType
from typing import TYPE_CHECKING, Any, TypeVar

from closeable_map._internal.container import CloseableMap, closeable_map
from closeable_map._internal.dispatch import CloseRegistry, close_one
from closeable_map._internal.markers import Tag, unwrap
from closeable_map._internal.policies import ErrorHandler
from closeable_map._internal.settings import get_settings
from closeable_map._internal.type_checks import is_mapping_node
from closeable_map.exceptions import (
    CloseableMapCloseError,
    CloseableMapConstructionError,
    CloseableMapInvalidArgumentError,
)

if TYPE_CHECKING:
    from typing_extensions import Self

T = TypeVar("T")

logger = logging.getLogger(__name__)

_current_tracker: ContextVar[ConstructionTracker | None] = ContextVar(
    "closeable_map_current_tracker",
    default=None,
)


class TrackerState(Enum):
    """Lifecycle of one guarded construction."""

    EMPTY = "empty"
    """Nothing acquired yet."""

    TRACKING = "tracking"
    """At least one resource acquired, construction still running."""

    COMMITTED = "committed"
    """Construction finished; tracked resources are handed over open."""

    UNWOUND = "unwound"
    """Construction failed; every tracked resource was closed."""


_TERMINAL_STATES = frozenset({TrackerState.COMMITTED, TrackerState.UNWOUND})


class ConstructionTracker:
    """Record resources acquired while building a value, in acquisition order.

    If the construction fails, ``unwind`` closes what was acquired in reverse
    order before the original error is re-raised. If it succeeds, ``commit``
    hands the resources over open; ``discharge`` later closes the ones the
    owner's own close did not reach. Each tracked value is closed at most
    once.

    A nested construction that commits is adopted by the enclosing one, so
    its resources are closed too if the enclosing construction fails.

    A tracker belongs to a single in-flight construction and is not shared
    between threads.
    """

    def __init__(
        self,
        *,
        registry: CloseRegistry | None = None,
        error_handler: ErrorHandler | None = None,
    ) -> None:
        self._registry = registry
        self._error_handler = error_handler
        self._pending: list[Any] = []
        self._acquired = 0
        self.state = TrackerState.EMPTY

    @property
    def pending(self) -> tuple[Any, ...]:
        """Tracked values and adopted nested trackers not closed yet, in order."""
        return tuple(self._pending)

    def __len__(self) -> int:
        return self._acquired

    def track(self, value: T) -> T:
        """Record ``value`` as acquired and return it unchanged.

        Raises:
            CloseableMapInvalidArgumentError: If the construction already
                committed or unwound.

        """
        self._ensure_open()
        self._pending.append(value)
        self._acquired += 1
        self.state = TrackerState.TRACKING
        return value

    def adopt(self, child: ConstructionTracker) -> None:
        """Take over a committed nested construction.

        The child's still-open values are closed with this tracker's own on
        ``unwind`` and ``discharge``.

        Raises:
            CloseableMapInvalidArgumentError: If this construction already
                committed or unwound.

        """
        self._ensure_open()
        self._pending.append(child)
        self.state = TrackerState.TRACKING

    def commit(self) -> None:
        if self.state is TrackerState.UNWOUND:
            msg = "Cannot commit a construction that was already unwound."
            raise CloseableMapInvalidArgumentError(msg)
        self.state = TrackerState.COMMITTED

    def unwind(self, error: BaseException) -> None:
        """Close every tracked value in reverse acquisition order.

        Errors raised while closing never replace ``error``: they are logged,
        passed to the error handler and attached to ``error`` as notes.

        Args:
            error: The failure that aborted the construction.

        """
        logger.debug("Unwinding construction of %d resource(s) after %r", len(self._pending), error)
        self._unwind(error, set())

    def discharge(self, skip_ids: Iterable[int] = ()) -> None:
        """Close the committed values that are still open, in reverse order.

        Values whose identity is in ``skip_ids`` were already handled by the
        owner and are only dropped. Every remaining value is attempted even
        when one fails; the first failure is raised afterwards.

        Args:
            skip_ids: ``id()`` of values already handled elsewhere.

        Raises:
            CloseableMapCloseError: If closing one of the values failed.

        """
        first_failure = self._discharge(set(skip_ids))
        if first_failure is not None:
            value, error = first_failure
            msg = f"Failed to close tracked resource {value!r}: {error!r}"
            raise CloseableMapCloseError(msg, node=value) from error

    def _ensure_open(self) -> None:
        if self.state in _TERMINAL_STATES:
            msg = f"Cannot track new resources after the construction is {self.state.value}."
            raise CloseableMapInvalidArgumentError(msg)

    def _unwind(self, error: BaseException, closed: set[int]) -> None:
        while self._pending:
            value = self._pending.pop()
            if isinstance(value, ConstructionTracker):
                value._unwind(error, closed)  # noqa: SLF001
                continue
            node_id = id(unwrap(value)[0])
            if node_id in closed:
                continue
            closed.add(node_id)
            try:
                close_one(value, registry=self._registry)
            except Exception as close_error:  # noqa: BLE001
                logger.warning(
                    "Error while closing %r during construction unwind: %r",
                    value,
                    close_error,
                )
                error.add_note(f"While closing {value!r} during unwind: {close_error!r}")
                self._report(close_error)
        self.state = TrackerState.UNWOUND

    def _discharge(self, skipped: set[int]) -> tuple[Any, Exception] | None:
        first_failure: tuple[Any, Exception] | None = None
        while self._pending:
            value = self._pending.pop()
            if isinstance(value, ConstructionTracker):
                failure = value._discharge(skipped)  # noqa: SLF001
                if first_failure is None:
                    first_failure = failure
                continue
            node_id = id(unwrap(value)[0])
            if node_id in skipped:
                continue
            skipped.add(node_id)
            try:
                close_one(value, registry=self._registry)
            except Exception as error:  # noqa: BLE001
                if first_failure is None:
                    first_failure = (value, error)
        return first_failure

    def _report(self, close_error: Exception) -> None:
        if self._error_handler is None:
            return
        try:
            self._error_handler(close_error)
        except Exception:
            logger.exception("Error handler failed during construction unwind")


def _reraise(error: BaseException) -> None:
    if (
        get_settings().wrap_construction_errors
        and isinstance(error, Exception)
        and not isinstance(error, CloseableMapConstructionError)
    ):
        msg = f"Construction failed: {error!r}"
        raise CloseableMapConstructionError(msg) from error
    raise error


def _hand_over(tracker: ConstructionTracker, parent: ConstructionTracker | None) -> None:
    if parent is not None and parent.state not in _TERMINAL_STATES:
        parent.adopt(tracker)


def closeable(value: T) -> T:
    """Track ``value`` in the innermost active guarded construction.

    Wrap every resource-acquiring expression with ``closeable`` inside
    ``build_closeable_map``, ``tracked_construction`` or ``ClosingBindings``
    so it is closed if a later expression raises.

    Raises:
        CloseableMapInvalidArgumentError: If no guarded construction is active.

    """
    tracker = _current_tracker.get()
    if tracker is None:
        msg = (
            "`closeable` should only be used within `build_closeable_map`, "
            "`tracked_construction` or `ClosingBindings`."
        )
        raise CloseableMapInvalidArgumentError(msg)
    return tracker.track(value)


@contextmanager
def tracked_construction(
    *,
    registry: CloseRegistry | None = None,
    error_handler: ErrorHandler | None = None,
) -> Iterator[ConstructionTracker]:
    """Open a guarded construction for ``closeable`` calls in the block.

    On error inside the block every value passed to ``closeable`` is closed
    in reverse order and the error is re-raised. On success the tracker is
    committed and the values stay open. A construction opened inside another
    one is handed over to the enclosing tracker on success, so its values are
    closed if the enclosing construction fails.

    Examples:
        .. code-block:: python

            with tracked_construction() as tracker:
                app = {
                    "server": closeable(start_server(config)),
                    "kafka": {
                        "consumer": closeable(kafka_consumer(config)),
                        "producer": closeable(kafka_producer(config)),
                    },
                }

    """
    tracker = ConstructionTracker(registry=registry, error_handler=error_handler)
    parent = _current_tracker.get()
    token = _current_tracker.set(tracker)
    try:
        yield tracker
    except BaseException as error:
        tracker.unwind(error)
        _reraise(error)
    else:
        tracker.commit()
        _hand_over(tracker, parent)
    finally:
        _current_tracker.reset(token)


def build_closeable_map(
    build: Callable[[], Mapping[Any, Any]],
    /,
    annotations: Mapping[Tag, Any] | None = None,
    *,
    registry: CloseRegistry | None = None,
    error_handler: ErrorHandler | None = None,
) -> CloseableMap:
    """Build a ``CloseableMap`` all or nothing.

    ``build`` returns the mapping to wrap and wraps each resource-acquiring
    expression in ``closeable``. Either every expression succeeds and an open
    map is returned, or the acquired resources are closed in reverse order
    and the error is re-raised.

    The returned map keeps the tracker: its ``close()`` also closes tracked
    values that are not reachable from the map, each at most once.

    Args:
        build: Zero-argument callable returning the mapping.
        annotations: Close annotations of the returned map.
        registry: Close registry used by the map and the unwind.
        error_handler: Receives errors raised while unwinding.

    Examples:
        .. code-block:: python

            def resources() -> dict[str, Any]:
                return {
                    "server": closeable(start_server(config)),
                    "kafka": {
                        "consumer": closeable(kafka_consumer(config)),
                        "producer": closeable(kafka_producer(config)),
                        "schema_registry_url": "https://localhost",
                    },
                }


            app = build_closeable_map(resources)

    """
    with tracked_construction(registry=registry, error_handler=error_handler) as tracker:
        wrapped = closeable_map(build(), annotations)
    return CloseableMap(
        wrapped.entries(),
        wrapped.annotations,
        registry=registry,
        tracker=tracker,
    )


class ClosingBindings:
    """Acquire resources one by one, all or nothing.

    Inside the ``with`` block each ``bind``/``acquire`` records a resource. If
    the block raises before ``commit()``, the recorded resources are closed
    in reverse order and the error propagates. Leaving the block normally
    commits: the resources are handed over open. After ``commit()`` errors in
    the block no longer close anything. Bindings opened inside another
    guarded construction are handed over to it on commit.

    Examples:
        .. code-block:: python

            with ClosingBindings() as bindings:
                server = bindings.acquire(lambda: start_server(config))
                consumer = bindings.bind(kafka_consumer(config))
                producer = bindings.bind(kafka_producer(config))
            # server, consumer and producer are open here.

    """

    def __init__(
        self,
        *,
        registry: CloseRegistry | None = None,
        error_handler: ErrorHandler | None = None,
    ) -> None:
        self.tracker = ConstructionTracker(registry=registry, error_handler=error_handler)
        self._parent: ConstructionTracker | None = None
        self._token: Token[ConstructionTracker | None] | None = None

    def bind(self, value: T) -> T:
        """Record an already acquired ``value`` and return it."""
        return self.tracker.track(value)

    def acquire(self, factory: Callable[[], T]) -> T:
        """Call ``factory`` and record its result."""
        return self.tracker.track(factory())

    def commit(self) -> None:
        """Hand the recorded resources over; later errors leave them open."""
        self.tracker.commit()

    def __enter__(self) -> Self:
        self._parent = _current_tracker.get()
        self._token = _current_tracker.set(self.tracker)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        if self._token is not None:
            _current_tracker.reset(self._token)
            self._token = None

        if exc_value is None or self.tracker.state is TrackerState.COMMITTED:
            self.tracker.commit()
            _hand_over(self.tracker, self._parent)
            return
        self.tracker.unwind(exc_value)
        if get_settings().wrap_construction_errors:
            _reraise(exc_value)


def with_closeable(
    bindings: Mapping[str, Callable[[], Any]] | Iterable[tuple[str, Callable[[], Any]]],
    body: Callable[..., T],
    *,
    close_on_body_error: bool = False,
    registry: CloseRegistry | None = None,
    error_handler: ErrorHandler | None = None,
) -> T:
    """Evaluate ``bindings`` in order, then call ``body`` with them.

    If a factory raises, the values bound so far are closed in reverse order,
    ``body`` never runs and the error is re-raised. Otherwise ``body`` is
    called with every binding as a keyword argument and its result returned;
    the bindings stay open.

    Args:
        bindings: ``(name, factory)`` pairs, or a mapping of name to factory.
            Factories take no arguments.
        body: Callable receiving the bindings as keyword arguments.
        close_on_body_error: Also close every binding, in reverse order, when
            ``body`` raises. The body error is re-raised unchanged.
        registry: Close registry used when unwinding.
        error_handler: Receives errors raised while unwinding.

    Examples:
        .. code-block:: python

            result = with_closeable(
                [
                    ("server", lambda: start_server(config)),
                    ("consumer", lambda: kafka_consumer(config)),
                    ("producer", lambda: kafka_producer(config)),
                ],
                lambda server, consumer, producer: serve(server, consumer, producer),
            )

    """
    pairs = list(bindings.items()) if is_mapping_node(bindings) else list(bindings)
    bound: dict[str, Any] = {}
    with ClosingBindings(registry=registry, error_handler=error_handler) as guard:
        for name, factory in pairs:
            bound[name] = guard.acquire(factory)
    if not close_on_body_error:
        return body(**bound)
    try:
        return body(**bound)
    except BaseException as error:
        guard.tracker.unwind(error)
        raise


__all__ = [
    "ClosingBindings",
    "ConstructionTracker",
    "TrackerState",
    "build_closeable_map",
    "closeable",
    "tracked_construction",
    "with_closeable",
]
