"""Close policies: ignore, swallow, error handlers and hooks.

Policies attach to any node through ``annotate`` (or ``Tag`` keys inside a
mapping) and flow down to every descendant until one of them overrides it.

1. ``swallow=True`` keeps closing after an error and hands it to ``ex_handler``.
2. ``ignore=True`` leaves a node open.
3. ``Tag.BEFORE_CLOSE`` and ``Tag.AFTER_CLOSE`` run around a mapping's close.
4. ``IGNORED`` and ``SWALLOWED`` are empty maps with the policy preset; a
   nested ``ignore=False`` opts back in.
"""

from __future__ import annotations

from closeable_map import IGNORED, SWALLOWED, Tag, annotate, closeable_map


class Resource:
    def __init__(self, name: str, closed: list[str]) -> None:
        self.name = name
        self._closed = closed

    def close(self) -> None:
        self._closed.append(self.name)


class BrokenResource:
    def close(self) -> None:
        msg = "socket already gone"
        raise RuntimeError(msg)


def main() -> None:
    events: list[str] = []
    handled: list[str] = []

    app = closeable_map(
        {
            "cache": annotate(
                BrokenResource(),
                swallow=True,
                ex_handler=lambda error: handled.append(repr(error)),
            ),
            "legacy": annotate(Resource("legacy", events), ignore=True),
            "db": Resource("db", events),
            Tag.BEFORE_CLOSE: lambda _app: events.append("before"),
            Tag.AFTER_CLOSE: lambda _app: events.append("after"),
        },
    )
    app.close()

    print(f"events={','.join(events)}")  # => events=before,db,after
    print(f"handled={handled}")  # => handled=["RuntimeError('socket already gone')"]

    archived: list[str] = []
    archive = IGNORED.put("old", Resource("old", archived)).put(
        "current",
        annotate(Resource("current", archived), ignore=False),
    )
    archive.close()
    print(f"archived_closed={archived}")  # => archived_closed=['current']

    best_effort = SWALLOWED.put("broken", BrokenResource())
    best_effort.close()
    print("swallowed_close=ok")  # => swallowed_close=ok


if __name__ == "__main__":
    main()
