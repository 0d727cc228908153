from __future__ import annotations

import inspect

import closeable_map
import closeable_map.exceptions as exceptions_module


def test_every_name_in_all_is_importable() -> None:
    missing = [name for name in closeable_map.__all__ if not hasattr(closeable_map, name)]

    assert missing == []
    assert len(set(closeable_map.__all__)) == len(closeable_map.__all__)


def test_every_exception_is_exported() -> None:
    exception_names = {
        name
        for name, value in vars(exceptions_module).items()
        if inspect.isclass(value)
        and issubclass(value, Exception)
        and value.__module__ == exceptions_module.__name__
    }

    assert exception_names <= set(closeable_map.__all__)


def test_public_classes_and_functions_are_documented() -> None:
    public_objects = [getattr(closeable_map, name) for name in closeable_map.__all__]
    undocumented = [
        public_object
        for public_object in public_objects
        if (inspect.isclass(public_object) or inspect.isfunction(public_object))
        and not inspect.getdoc(public_object)
    ]

    assert undocumented == []


def test_registry_is_keyword_only_on_entry_points() -> None:
    for function in (
        closeable_map.build_closeable_map,
        closeable_map.with_closeable,
        closeable_map.tracked_construction,
        closeable_map.close_one,
        closeable_map.close_tree,
    ):
        parameter = inspect.signature(function).parameters["registry"]
        assert parameter.kind is inspect.Parameter.KEYWORD_ONLY, function.__name__
