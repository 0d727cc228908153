"""Close errors and where they come from.

A failure that no ``swallow`` policy covers stops the close and is raised as
``CloseableMapCloseError``. The error names the failing node's path and keeps
the original exception as ``__cause__``.
"""

from __future__ import annotations

from closeable_map import (
    CloseableMapCloseError,
    CloseableMapInvalidArgumentError,
    CloseableMapUnsupportedCloseTargetError,
    Tag,
    closeable,
    closeable_map,
)


class BrokenResource:
    def close(self) -> None:
        msg = "disk full"
        raise OSError(msg)


def main() -> None:
    app = closeable_map({"storage": {"journal": BrokenResource()}})
    try:
        app.close()
    except CloseableMapCloseError as error:
        print(f"path={error.path}")  # => path=('storage', 'journal')
        print(f"cause={error.__cause__!r}")  # => cause=OSError('disk full')

    misconfigured = closeable_map({"db": {Tag.CLOSE: "not a function"}})
    try:
        misconfigured.close()
    except CloseableMapUnsupportedCloseTargetError as error:
        print(
            f"unsupported={error}",
        )  # => unsupported=close must be a function, or a sequence of functions

    try:
        closeable_map(["not", "a", "mapping"])  # type: ignore[arg-type]
    except CloseableMapInvalidArgumentError as error:
        print(f"invalid={type(error).__name__}")  # => invalid=CloseableMapInvalidArgumentError

    try:
        closeable(BrokenResource())
    except CloseableMapInvalidArgumentError as error:
        print(
            f"outside_construction={type(error).__name__}",
        )  # => outside_construction=CloseableMapInvalidArgumentError


if __name__ == "__main__":
    main()
