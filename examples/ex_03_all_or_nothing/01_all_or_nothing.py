"""All-or-nothing construction.

Wrap each resource-acquiring expression with ``closeable`` inside
``build_closeable_map``. If any later expression raises, the resources
acquired so far are closed in reverse order and the original error
propagates; nothing leaks.

``with_closeable`` and ``ClosingBindings`` give the same guarantee to
sequential acquisitions that do not end up in a map.
"""

from __future__ import annotations

from typing import Any

from closeable_map import ClosingBindings, build_closeable_map, closeable, with_closeable


class Resource:
    def __init__(self, name: str, closed: list[str]) -> None:
        self.name = name
        self._closed = closed

    def close(self) -> None:
        self._closed.append(self.name)


def connect_producer() -> Resource:
    msg = "broker unreachable"
    raise ConnectionError(msg)


def main() -> None:
    closed: list[str] = []

    def broken_app() -> dict[str, Any]:
        return {
            "server": closeable(Resource("server", closed)),
            "kafka": {
                "consumer": closeable(Resource("consumer", closed)),
                "producer": closeable(connect_producer()),
            },
        }

    try:
        build_closeable_map(broken_app)
    except ConnectionError as error:
        print(f"error={error}")  # => error=broker unreachable
    print(f"unwound={','.join(closed)}")  # => unwound=consumer,server

    closed.clear()

    def healthy_app() -> dict[str, Any]:
        return {
            "server": closeable(Resource("server", closed)),
            "consumer": closeable(Resource("consumer", closed)),
        }

    with build_closeable_map(healthy_app) as app:
        print(f"open={sorted(app)} closed={len(closed)}")  # => open=['consumer', 'server'] closed=0
    print(f"closed={','.join(closed)}")  # => closed=server,consumer

    closed.clear()
    summary = with_closeable(
        [
            ("server", lambda: Resource("server", closed)),
            ("consumer", lambda: Resource("consumer", closed)),
        ],
        lambda server, consumer: f"{server.name}+{consumer.name}",
    )
    print(f"summary={summary} closed={len(closed)}")  # => summary=server+consumer closed=0

    try:
        with ClosingBindings() as bindings:
            bindings.bind(Resource("first", closed))
            bindings.acquire(lambda: Resource("second", closed))
            connect_producer()
    except ConnectionError:
        print(f"bindings_unwound={','.join(closed)}")  # => bindings_unwound=second,first


if __name__ == "__main__":
    main()
