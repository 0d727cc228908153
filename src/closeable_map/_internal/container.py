from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from types import MappingProxyType, TracebackType
from typing import TYPE_CHECKING, Any

from closeable_map._internal.dispatch import CloseRegistry
from closeable_map._internal.markers import (
    EMPTY_TAGS,
    AnnotatedMapping,
    Tag,
    Tagged,
    freeze_tags,
)
from closeable_map._internal.settings import get_settings
from closeable_map._internal.type_checks import is_mapping_node
from closeable_map._internal.visitor import CloseVisitor
from closeable_map.exceptions import CloseableMapInvalidArgumentError

if TYPE_CHECKING:
    from typing_extensions import Self

    from closeable_map._internal.construction import ConstructionTracker

logger = logging.getLogger(__name__)


class CloseableMap(AnnotatedMapping):
    """Immutable mapping whose ``close()`` releases every resource it holds.

    Values may be anything: objects with a ``close()`` method, values tagged
    with ``Tag.FN`` or ``close_with``, instances of classes registered with
    ``register_closer``, and nested mappings, lists, tuples and sets of those.
    ``close()`` walks the whole structure, nested containers before the
    outer one, and closes each resource once.

    ``put``, ``remove`` and ``with_annotations`` return new maps; a
    ``CloseableMap`` is never modified after creation. Item access returns
    the bare value of ``Tagged`` entries.

    Examples:
        .. code-block:: python

            def start(config: Config) -> CloseableMap:
                return closeable_map(
                    {
                        "producer": kafka_producer(config),
                        "consumer": kafka_consumer(config),
                        "db": annotate({"conn": connect(config.db)}, swallow=True),
                        "executor": close_with(
                            lambda executor: executor.shutdown(),
                            ThreadPoolExecutor(),
                        ),
                    },
                )


            with start(config) as app:
                run(app["consumer"])

    """

    __slots__ = ("_annotations", "_data", "_registry", "_tracker")

    def __init__(
        self,
        data: Mapping[Any, Any] | None = None,
        annotations: Mapping[Tag, Any] | None = None,
        *,
        registry: CloseRegistry | None = None,
        tracker: ConstructionTracker | None = None,
    ) -> None:
        if isinstance(data, CloseableMap):
            data = data.entries()
        self._data: dict[Any, Any] = {} if data is None else dict(data)
        self._annotations: Mapping[Tag, Any] = (
            EMPTY_TAGS if not annotations else freeze_tags(annotations)
        )
        self._registry = registry
        self._tracker = tracker

    @property
    def annotations(self) -> Mapping[Tag, Any]:
        return self._annotations

    def __getitem__(self, key: Any) -> Any:
        value = self._data[key]
        if isinstance(value, Tagged):
            return value.value
        return value

    def __iter__(self) -> Iterator[Any]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __repr__(self) -> str:
        if self._annotations:
            return f"{type(self).__name__}({self._data!r}, annotations={dict(self._annotations)!r})"
        return f"{type(self).__name__}({self._data!r})"

    def raw(self, key: Any) -> Any:
        """Return the stored value for ``key`` without unwrapping ``Tagged``."""
        return self._data[key]

    def entries(self) -> Mapping[Any, Any]:
        """Return a read-only view of the stored values, ``Tagged`` wrappers included."""
        return MappingProxyType(self._data)

    def put(self, key: Any, value: Any) -> CloseableMap:
        """Return a new map with ``key`` set to ``value``."""
        return self._derive({**self._data, key: value}, self._annotations)

    def remove(self, key: Any) -> CloseableMap:
        """Return a new map without ``key``.

        Raises:
            KeyError: If ``key`` is not present.

        """
        if key not in self._data:
            raise KeyError(key)
        data = dict(self._data)
        del data[key]
        return self._derive(data, self._annotations)

    def with_annotations(self, annotations: Mapping[Tag, Any]) -> CloseableMap:
        """Return a new map with the same entries and ``annotations`` replacing the current ones."""
        return self._derive(self._data, annotations)

    def _derive(self, data: Mapping[Any, Any], annotations: Mapping[Tag, Any]) -> CloseableMap:
        return type(self)(data, annotations, registry=self._registry, tracker=self._tracker)

    def close(self) -> None:
        """Close every resource reachable from this map.

        Safe to call more than once; whether closing an already closed
        resource is harmless is up to that resource.

        Raises:
            CloseableMapCloseError: For the first failure not covered by an
                effective ``swallow`` policy.

        """
        visitor = CloseVisitor(registry=self._registry)
        visitor.visit(self)
        if self._tracker is not None:
            self._tracker.discharge(skip_ids=visitor.seen_ids)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        if exc_value is None or not get_settings().suppress_close_errors_during_unwind:
            self.close()
            return
        try:
            self.close()
        except Exception as close_error:  # noqa: BLE001
            logger.warning(
                "Error while closing %s during exception unwind: %r",
                type(self).__name__,
                close_error,
            )
            exc_value.add_note(f"While closing {type(self).__name__}: {close_error!r}")


def closeable_map(
    mapping: Mapping[Any, Any] | None = None,
    /,
    annotations: Mapping[Tag, Any] | None = None,
    **entries: Any,
) -> CloseableMap:
    """Wrap ``mapping`` into a ``CloseableMap``.

    Args:
        mapping: Mapping to wrap. Re-wrapping a ``CloseableMap`` keeps its
            annotations unless ``annotations`` is given.
        annotations: Close annotations of the map itself, such as
            ``{Tag.SWALLOW: True}``.
        **entries: Extra string-keyed entries merged over ``mapping``.

    Raises:
        CloseableMapInvalidArgumentError: If ``mapping`` is not a mapping.

    """
    if mapping is None:
        mapping = {}
    if not is_mapping_node(mapping):
        msg = f"closeable_map expects a mapping, got {type(mapping).__qualname__}."
        raise CloseableMapInvalidArgumentError(msg)

    if isinstance(mapping, CloseableMap):
        if annotations is None:
            annotations = mapping.annotations
        data: Mapping[Any, Any] = mapping.entries()
    else:
        data = mapping
    if entries:
        data = {**data, **entries}
    return CloseableMap(data, annotations)


EMPTY_MAP = CloseableMap()
"""Empty closeable map; ``put`` entries into it like any other map."""

SWALLOWED = CloseableMap(annotations={Tag.SWALLOW: True})
"""Empty closeable map that swallows every close error.

A nested value may still raise by carrying ``swallow=False``.
"""

IGNORED = CloseableMap(annotations={Tag.IGNORE: True})
"""Empty closeable map that closes nothing.

A nested value is closed again when it carries ``ignore=False``.
"""


__all__ = ["EMPTY_MAP", "IGNORED", "SWALLOWED", "CloseableMap", "closeable_map"]
