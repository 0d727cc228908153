from closeable_map.integrations.pytest_plugin.plugin import closeable_map_finalizer

__all__ = ["closeable_map_finalizer"]
