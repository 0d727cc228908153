from __future__ import annotations

from abc import abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Generic, TypeVar

from closeable_map.exceptions import CloseableMapInvalidArgumentError

T = TypeVar("T")


class Tag(Enum):
    """Name the reserved policy markers understood by the close traversal.

    Members can be attached to any node through ``Tagged`` or, for mappings,
    stored as ordinary keys. ``Tag`` is a plain ``Enum`` so its members never
    compare equal to user string keys such as ``"close"``.

    Examples:
        .. code-block:: python

            app = closeable_map(
                {
                    "producer": kafka_producer(config),
                    Tag.BEFORE_CLOSE: lambda m: flush(m),
                    Tag.EX_HANDLER: lambda error: print(error),
                },
            )

    """

    IGNORE = "ignore"
    """Skip closing the node; descendants inherit it unless they opt back in."""

    SWALLOW = "swallow"
    """Catch errors raised while closing the node and its descendants."""

    FN = "fn"
    """``True`` closes by calling the node itself, a callable closes with ``fn(node)``."""

    BEFORE_CLOSE = "before-close"
    """One-argument procedure called with the node before its children."""

    AFTER_CLOSE = "after-close"
    """One-argument procedure called with the node after it is closed."""

    EX_HANDLER = "ex-handler"
    """One-argument procedure called with every swallowed error."""

    CLOSE = "close"
    """Explicit close procedure, or sequence of procedures, receiving the mapping."""


_KEYWORD_TAGS: dict[str, Tag] = {tag.name.lower(): tag for tag in Tag}

EMPTY_TAGS: Mapping[Tag, Any] = MappingProxyType({})


def freeze_tags(tags: Mapping[Tag, Any]) -> Mapping[Tag, Any]:
    """Validate annotation keys and return a read-only copy."""
    for tag in tags:
        if not isinstance(tag, Tag):
            msg = f"Annotation keys must be `Tag` members, got {tag!r}."
            raise CloseableMapInvalidArgumentError(msg)
    return MappingProxyType(dict(tags))


@dataclass(frozen=True, slots=True, eq=False)
class Tagged(Generic[T]):
    """Attach close annotations to an arbitrary value.

    The wrapper is how any node, including builtins that cannot carry
    attributes, gets its own policy. It is immutable: tagging again produces a
    new wrapper with merged tags.

    ``CloseableMap`` unwraps ``Tagged`` values on item access, so code reading
    the map gets the resource itself.
    """

    value: T
    tags: Mapping[Tag, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        tags = dict(freeze_tags(self.tags))
        inner = self.value
        if isinstance(inner, Tagged):
            tags = {**inner.tags, **tags}
            object.__setattr__(self, "value", inner.value)
        object.__setattr__(self, "tags", MappingProxyType(tags))

    def retag(self, tags: Mapping[Tag, Any]) -> Tagged[T]:
        """Return a new wrapper around the same value with ``tags`` merged in."""
        return Tagged(self.value, {**self.tags, **tags})


class AnnotatedMapping(Mapping[Any, Any]):
    """Mapping that carries its own close annotations.

    The traversal merges ``annotations`` under the tags of any ``Tagged``
    wrapper around the mapping, and never calls its ``close``: its
    ``entries`` are walked directly instead.
    """

    __slots__ = ()

    @property
    @abstractmethod
    def annotations(self) -> Mapping[Tag, Any]:
        """Return the annotations attached to the mapping itself."""

    @abstractmethod
    def entries(self) -> Mapping[Any, Any]:
        """Return the stored values, ``Tagged`` wrappers included."""


def unwrap(value: Any) -> tuple[Any, Mapping[Tag, Any]]:
    """Split a possibly tagged value into the bare value and its tags."""
    if isinstance(value, Tagged):
        inner, tags = value.value, value.tags
        if isinstance(inner, AnnotatedMapping) and inner.annotations:
            tags = {**inner.annotations, **tags}
        return inner, tags
    if isinstance(value, AnnotatedMapping):
        return value, value.annotations
    return value, EMPTY_TAGS


def tags_of(value: Any) -> Mapping[Tag, Any]:
    return unwrap(value)[1]


def _tag(value: Any, tags: Mapping[Tag, Any]) -> Tagged[Any]:
    if isinstance(value, Tagged):
        return value.retag(tags)
    return Tagged(value, tags)


def with_tag(tag: Tag, value: T | Tagged[T]) -> Tagged[T]:
    """Return ``value`` tagged with ``tag`` set to ``True``.

    Args:
        tag: Marker to switch on, for example ``Tag.IGNORE`` or ``Tag.FN``.
        value: Value to tag. An existing ``Tagged`` wrapper is re-tagged.

    Examples:
        .. code-block:: python

            # A zero-argument function that stops the server.
            stop_server = with_tag(Tag.FN, http_server.start())

    """
    return _tag(value, {tag: True})


def close_with(proc: Callable[[T], Any], value: T | Tagged[T]) -> Tagged[T]:
    """Return ``value`` tagged so that closing it calls ``proc(value)``.

    Use it for objects that release resources through a method other than
    ``close``, such as ``ThreadPoolExecutor.shutdown``.

    Args:
        proc: One-argument procedure receiving the value when it is closed.
        value: Value to tag.

    Raises:
        CloseableMapInvalidArgumentError: If ``proc`` is not callable.

    """
    if not callable(proc):
        msg = f"close_with expects a callable procedure, got {proc!r}."
        raise CloseableMapInvalidArgumentError(msg)
    return _tag(value, {Tag.FN: proc})


def annotate(value: T | Tagged[T], **tags: Any) -> Tagged[T]:
    """Return ``value`` tagged with keyword annotations.

    Keywords are the lower-cased ``Tag`` member names: ``ignore``, ``swallow``,
    ``fn``, ``before_close``, ``after_close``, ``ex_handler`` and ``close``.

    Raises:
        CloseableMapInvalidArgumentError: On an unknown keyword.

    """
    resolved: dict[Tag, Any] = {}
    for name, tag_value in tags.items():
        tag = _KEYWORD_TAGS.get(name)
        if tag is None:
            msg = f"Unknown annotation {name!r}, expected one of {sorted(_KEYWORD_TAGS)}."
            raise CloseableMapInvalidArgumentError(msg)
        resolved[tag] = tag_value
    return _tag(value, resolved)


__all__ = [
    "EMPTY_TAGS",
    "AnnotatedMapping",
    "Tag",
    "Tagged",
    "annotate",
    "close_with",
    "freeze_tags",
    "tags_of",
    "unwrap",
    "with_tag",
]
