from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping
from typing import Any

from closeable_map._internal.dispatch import CloseRegistry, close_one
from closeable_map._internal.markers import EMPTY_TAGS, AnnotatedMapping, Tag, unwrap
from closeable_map._internal.policies import (
    ROOT_POLICY,
    ClosePolicy,
    ErrorHandler,
    find_hook,
    is_declared,
    lookup_tag,
    resolve_policy,
)
from closeable_map._internal.settings import get_settings
from closeable_map._internal.type_checks import is_mapping_node, is_sequence_node
from closeable_map.exceptions import (
    CloseableMapCloseError,
    CloseableMapUnsupportedCloseTargetError,
)

logger = logging.getLogger(__name__)

Path = tuple[Any, ...]


def describe_path(path: Path) -> str:
    if not path:
        return "<root>"
    return "".join(f"[{segment!r}]" for segment in path)


class CloseVisitor:
    """Walk a nested structure and close every resource found in it.

    For each node the visitor runs, in order: the ``BEFORE_CLOSE`` hook, every
    child (each one fully processed before the next), the explicit ``CLOSE``
    procedures, the close dispatch of the node itself and the ``AFTER_CLOSE``
    hook. Mapping values are visited in iteration order, values stored under
    ``Tag`` keys are configuration and never visited. Sequence and set
    elements are visited in iteration order.

    Policy flows down the recursion as an argument. An ignored node gets no
    hook and no close, but its children are still visited so that one of them
    can opt back in with an explicit ``ignore=False``.

    A visitor instance belongs to one close call. It records the identity of
    every node it reached in ``seen_ids`` and of every value it closed in
    ``closed_ids``.
    """

    def __init__(self, *, registry: CloseRegistry | None = None) -> None:
        self._registry = registry
        self._log_swallowed = get_settings().log_swallowed_errors
        self.seen_ids: set[int] = set()
        self.closed_ids: set[int] = set()
        self._on_path: set[int] = set()

    def visit(self, value: Any, policy: ClosePolicy = ROOT_POLICY, path: Path = ()) -> Any:
        """Close ``value`` and everything reachable from it.

        Args:
            value: Node to close, possibly wrapped in ``Tagged``.
            policy: Effective policy inherited from the parent node.
            path: Keys and indices leading from the root to ``value``.

        Returns:
            ``value`` itself.

        Raises:
            CloseableMapCloseError: For the first failure not covered by an
                effective ``swallow`` policy.

        """
        node, tags = unwrap(value)
        node_id = id(node)
        if node_id in self._on_path:
            # Reference back to an enclosing node.
            return value

        self.seen_ids.add(node_id)
        node_policy = resolve_policy(node, tags, policy)
        active = not node_policy.ignore

        if active:
            self._run_hook(node, tags, Tag.BEFORE_CLOSE, node_policy, path)

        self._on_path.add(node_id)
        try:
            for child_path, child in self._children(node, path):
                self.visit(child, node_policy, child_path)
        finally:
            self._on_path.discard(node_id)

        if active:
            self._run_explicit_close(node, tags, node_policy, path)
            if not isinstance(node, AnnotatedMapping):
                self._attempt(lambda: self._dispatch(node, tags), node, node_policy, path)
            self._run_hook(node, tags, Tag.AFTER_CLOSE, node_policy, path)

        return value

    def _children(self, node: Any, path: Path) -> Iterator[tuple[Path, Any]]:
        if is_mapping_node(node):
            items = node.entries().items() if isinstance(node, AnnotatedMapping) else node.items()
            for key, child in items:
                if isinstance(key, Tag):
                    continue
                yield (*path, key), child
        elif is_sequence_node(node):
            for index, child in enumerate(node):
                yield (*path, index), child

    def _dispatch(self, node: Any, tags: Mapping[Tag, Any]) -> None:
        if id(node) in self.closed_ids:
            return
        if close_one(node, tags, registry=self._registry):
            self.closed_ids.add(id(node))

    def _run_hook(
        self,
        node: Any,
        tags: Mapping[Tag, Any],
        tag: Tag,
        policy: ClosePolicy,
        path: Path,
    ) -> None:
        hook = find_hook(node, tags, tag)
        if hook is None:
            return
        procedure, hook_tags = unwrap(hook)
        self._attempt(lambda: procedure(node), node, policy, path, hook_tags=hook_tags)

    def _run_explicit_close(
        self,
        node: Any,
        tags: Mapping[Tag, Any],
        policy: ClosePolicy,
        path: Path,
    ) -> None:
        target = lookup_tag(node, tags, Tag.CLOSE)
        if not is_declared(target):
            return

        procedures = _close_procedures(target)
        if procedures is None:
            msg = "close must be a function, or a sequence of functions"
            error = CloseableMapUnsupportedCloseTargetError(msg, node=node, path=path)
            self._attempt(_raiser(error), node, policy, path)
            return

        for procedure, procedure_tags in procedures:
            self._attempt(
                lambda procedure=procedure: procedure(node),
                node,
                policy,
                path,
                hook_tags=procedure_tags,
            )

    def _attempt(
        self,
        call: Callable[[], Any],
        node: Any,
        policy: ClosePolicy,
        path: Path,
        *,
        hook_tags: Mapping[Tag, Any] = EMPTY_TAGS,
    ) -> None:
        swallow = policy.swallow
        error_handler: ErrorHandler | None = policy.error_handler
        if Tag.SWALLOW in hook_tags:
            swallow = bool(hook_tags[Tag.SWALLOW])
        if Tag.EX_HANDLER in hook_tags:
            error_handler = hook_tags[Tag.EX_HANDLER]

        try:
            call()
        except Exception as error:
            if not swallow:
                if isinstance(error, CloseableMapCloseError):
                    raise
                msg = f"Failed to close {describe_path(path)}: {error!r}"
                raise CloseableMapCloseError(msg, node=node, path=path) from error
            if self._log_swallowed:
                logger.debug(
                    "Swallowed error while closing %s",
                    describe_path(path),
                    exc_info=error,
                )
            if error_handler is not None:
                error_handler(error)


def _close_procedures(target: Any) -> list[tuple[Callable[[Any], Any], Mapping[Tag, Any]]] | None:
    procedure, procedure_tags = unwrap(target)
    if callable(procedure):
        return [(procedure, procedure_tags)]
    if not is_sequence_node(procedure):
        return None

    procedures: list[tuple[Callable[[Any], Any], Mapping[Tag, Any]]] = []
    for item in procedure:
        item_procedure, item_tags = unwrap(item)
        if not callable(item_procedure):
            return None
        procedures.append((item_procedure, item_tags))
    return procedures


def _raiser(error: Exception) -> Callable[[], None]:
    def raise_error() -> None:
        raise error

    return raise_error


def close_tree(value: Any, *, registry: CloseRegistry | None = None) -> Any:
    """Close ``value`` and everything reachable from it with a fresh visitor."""
    return CloseVisitor(registry=registry).visit(value)


__all__ = ["CloseVisitor", "close_tree", "describe_path"]
