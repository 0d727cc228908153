"""Quickstart: one map, one ``close()``.

Put every resource of an application into a plain nested mapping, wrap it
with ``closeable_map`` and let the ``with`` block release all of them, nested
ones included, in iteration order.
"""

from __future__ import annotations

from closeable_map import closeable_map


class Resource:
    def __init__(self, name: str, closed: list[str]) -> None:
        self.name = name
        self._closed = closed

    def close(self) -> None:
        self._closed.append(self.name)


def main() -> None:
    closed: list[str] = []
    app = closeable_map(
        {
            "server": Resource("server", closed),
            "kafka": {
                "consumer": Resource("consumer", closed),
                "producer": Resource("producer", closed),
                "schema_registry_url": "https://localhost",
            },
            "workers": [Resource("worker-1", closed), Resource("worker-2", closed)],
        },
    )

    with app:
        print(f"consumer={app['kafka']['consumer'].name}")  # => consumer=consumer
        print(f"closed_inside={len(closed)}")  # => closed_inside=0

    print(f"closed={','.join(closed)}")  # => closed=server,consumer,producer,worker-1,worker-2

    extended = app.put("cache", Resource("cache", closed))
    print(f"keys={sorted(extended)}")  # => keys=['cache', 'kafka', 'server', 'workers']
    print(f"original_keys={sorted(app)}")  # => original_keys=['kafka', 'server', 'workers']


if __name__ == "__main__":
    main()
