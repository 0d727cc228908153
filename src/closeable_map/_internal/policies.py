from __future__ import annotations

from collections.abc import Callable, Mapping
from contextlib import suppress
from dataclasses import dataclass, replace
from typing import Any

from closeable_map._internal.markers import AnnotatedMapping, Tag
from closeable_map._internal.type_checks import is_mapping_node

ErrorHandler = Callable[[Exception], Any]

_MISSING: Any = object()


@dataclass(frozen=True, slots=True)
class ClosePolicy:
    """Effective close policy of one node.

    Policies are ambient: a node without its own annotation inherits the
    policy of its nearest ancestor. They are passed down the traversal as
    plain values, never stored in shared state.
    """

    ignore: bool = False
    """Skip hooks and close of the node."""

    swallow: bool = False
    """Catch close and hook errors instead of propagating them."""

    error_handler: ErrorHandler | None = None
    """Called with every error caught under ``swallow``."""


ROOT_POLICY = ClosePolicy()


def lookup_tag(node: Any, tags: Mapping[Tag, Any], tag: Tag) -> Any:
    """Return the value declared for ``tag`` on ``node``, or a private sentinel.

    A reserved key stored inside a mapping node takes precedence over the
    same tag attached as an annotation.
    """
    if isinstance(node, AnnotatedMapping):
        return node.entries().get(tag, tags.get(tag, _MISSING))
    if is_mapping_node(node):
        # Mappings with typed keys, such as os.environ, reject a Tag lookup.
        with suppress(TypeError):
            if tag in node:
                return node[tag]
    return tags.get(tag, _MISSING)


def is_declared(value: Any) -> bool:
    return value is not _MISSING


def resolve_policy(node: Any, tags: Mapping[Tag, Any], inherited: ClosePolicy) -> ClosePolicy:
    """Compute the effective policy of ``node`` from its own declarations.

    Args:
        node: Unwrapped node value.
        tags: Annotations attached to the node.
        inherited: Effective policy of the parent node.

    Returns:
        ``inherited`` itself when the node declares nothing, otherwise a new
        policy with the declared fields overridden.

    """
    changes: dict[str, Any] = {}

    ignore = lookup_tag(node, tags, Tag.IGNORE)
    if is_declared(ignore):
        changes["ignore"] = bool(ignore)

    swallow = lookup_tag(node, tags, Tag.SWALLOW)
    if is_declared(swallow):
        changes["swallow"] = bool(swallow)

    error_handler = lookup_tag(node, tags, Tag.EX_HANDLER)
    if is_declared(error_handler):
        changes["error_handler"] = error_handler

    if not changes:
        return inherited
    return replace(inherited, **changes)


def find_hook(node: Any, tags: Mapping[Tag, Any], tag: Tag) -> Any | None:
    """Return the ``BEFORE_CLOSE``/``AFTER_CLOSE``/``CLOSE`` value of ``node``, if any."""
    hook = lookup_tag(node, tags, tag)
    if not is_declared(hook) or hook is None:
        return None
    return hook


__all__ = [
    "ROOT_POLICY",
    "ClosePolicy",
    "ErrorHandler",
    "find_hook",
    "is_declared",
    "lookup_tag",
    "resolve_policy",
]
