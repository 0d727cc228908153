"""Teaching the map how to close things without a ``close()`` method.

1. ``register_closer`` maps a class (and its subclasses) to a procedure.
2. ``with_tag(Tag.FN, stop)`` closes a zero-argument function by calling it.
3. ``close_with(proc, value)`` closes ``value`` with ``proc(value)``.
4. A ``Tag.CLOSE`` key runs explicit procedures after a mapping's children.
"""

from __future__ import annotations

from closeable_map import (
    CloseableMap,
    CloseRegistry,
    Tag,
    close_one,
    close_with,
    register_closer,
    with_tag,
)


class LegacyPool:
    def __init__(self, events: list[str]) -> None:
        self._events = events

    def shutdown(self) -> None:
        self._events.append("pool.shutdown")


class Executor:
    def __init__(self, events: list[str]) -> None:
        self._events = events

    def shutdown(self, *, wait: bool) -> None:
        self._events.append(f"executor.shutdown(wait={wait})")


def main() -> None:
    events: list[str] = []
    registry = CloseRegistry()

    @register_closer(LegacyPool, registry=registry)
    def shutdown_pool(pool: LegacyPool) -> None:
        pool.shutdown()

    app = CloseableMap(
        {
            "pool": LegacyPool(events),
            "stop_server": with_tag(Tag.FN, lambda: events.append("server.stop")),
            "executor": close_with(lambda executor: executor.shutdown(wait=True), Executor(events)),
            "db": {
                "connection_string": "postgres://localhost",
                Tag.CLOSE: [
                    lambda _db: events.append("db.flush"),
                    lambda _db: events.append("db.disconnect"),
                ],
            },
        },
        registry=registry,
    )
    app.close()

    print(f"first={events[0]}")  # => first=pool.shutdown
    print(
        f"then={events[1:]}",
    )  # => then=['server.stop', 'executor.shutdown(wait=True)', 'db.flush', 'db.disconnect']

    print(f"plain_object_closed={close_one(object())}")  # => plain_object_closed=False


if __name__ == "__main__":
    main()
