from closeable_map._internal.construction import (
    ClosingBindings,
    ConstructionTracker,
    TrackerState,
    build_closeable_map,
    closeable,
    tracked_construction,
    with_closeable,
)
from closeable_map._internal.container import (
    EMPTY_MAP,
    IGNORED,
    SWALLOWED,
    CloseableMap,
    closeable_map,
)
from closeable_map._internal.dispatch import (
    CloseRegistry,
    close_one,
    close_registry,
    register_closer,
)
from closeable_map._internal.markers import Tag, Tagged, annotate, close_with, with_tag
from closeable_map._internal.policies import ClosePolicy
from closeable_map._internal.settings import CloseableMapSettings, get_settings, reset_settings
from closeable_map._internal.visitor import CloseVisitor, close_tree
from closeable_map.exceptions import (
    CloseableMapCloseError,
    CloseableMapConstructionError,
    CloseableMapError,
    CloseableMapInvalidArgumentError,
    CloseableMapUnsupportedCloseTargetError,
)

__all__ = [
    "EMPTY_MAP",
    "IGNORED",
    "SWALLOWED",
    "CloseRegistry",
    "CloseVisitor",
    "CloseableMap",
    "CloseableMapCloseError",
    "CloseableMapConstructionError",
    "CloseableMapError",
    "CloseableMapInvalidArgumentError",
    "CloseableMapSettings",
    "CloseableMapUnsupportedCloseTargetError",
    "ClosePolicy",
    "ClosingBindings",
    "ConstructionTracker",
    "Tag",
    "Tagged",
    "TrackerState",
    "annotate",
    "build_closeable_map",
    "close_one",
    "close_registry",
    "close_tree",
    "close_with",
    "closeable",
    "closeable_map",
    "get_settings",
    "register_closer",
    "reset_settings",
    "tracked_construction",
    "with_closeable",
    "with_tag",
]
