from __future__ import annotations

import logging
import os
from collections.abc import Mapping

import pytest

from closeable_map import (
    EMPTY_MAP,
    IGNORED,
    SWALLOWED,
    CloseableMap,
    CloseableMapCloseError,
    CloseableMapInvalidArgumentError,
    CloseRegistry,
    Tag,
    Tagged,
    annotate,
    closeable_map,
    reset_settings,
    with_tag,
)
from tests.conftest import Resource


class TestMappingBehaviour:
    def test_is_a_read_only_mapping(self) -> None:
        app = closeable_map({"a": 1})

        assert isinstance(app, Mapping)
        assert dict(app) == {"a": 1}
        assert len(app) == 1
        assert "a" in app
        with pytest.raises(TypeError):
            app["b"] = 2  # type: ignore[index]

    def test_source_mapping_is_copied(self) -> None:
        source = {"a": 1}
        app = closeable_map(source)
        source["b"] = 2

        assert "b" not in app

    def test_item_access_unwraps_tagged_values(self, journal: list[str]) -> None:
        resource = Resource("db", journal)
        app = closeable_map({"db": annotate(resource, swallow=True)})

        assert app["db"] is resource
        assert isinstance(app.raw("db"), Tagged)
        assert isinstance(app.entries()["db"], Tagged)

    def test_keyword_entries_are_merged(self) -> None:
        app = closeable_map({"a": 1}, b=2)

        assert dict(app) == {"a": 1, "b": 2}

    def test_rejects_non_mappings(self) -> None:
        with pytest.raises(CloseableMapInvalidArgumentError, match="expects a mapping, got list"):
            closeable_map([("a", 1)])  # type: ignore[arg-type]

    def test_rejects_non_tag_annotations(self) -> None:
        with pytest.raises(CloseableMapInvalidArgumentError):
            closeable_map({}, {"swallow": True})  # type: ignore[dict-item]

    def test_put_and_remove_return_new_maps(self) -> None:
        app = closeable_map({"a": 1}, {Tag.SWALLOW: True})

        extended = app.put("b", 2)
        reduced = extended.remove("a")

        assert dict(app) == {"a": 1}
        assert dict(extended) == {"a": 1, "b": 2}
        assert dict(reduced) == {"b": 2}
        assert reduced.annotations == {Tag.SWALLOW: True}

    def test_remove_missing_key_raises_key_error(self) -> None:
        with pytest.raises(KeyError):
            EMPTY_MAP.remove("missing")

    def test_rewrapping_keeps_annotations(self) -> None:
        app = closeable_map({"a": 1}, {Tag.IGNORE: True})

        assert closeable_map(app).annotations == {Tag.IGNORE: True}
        assert closeable_map(app, {Tag.SWALLOW: True}).annotations == {Tag.SWALLOW: True}

    def test_with_annotations_replaces_annotations(self) -> None:
        app = SWALLOWED.with_annotations({Tag.IGNORE: True})

        assert app.annotations == {Tag.IGNORE: True}
        assert SWALLOWED.annotations == {Tag.SWALLOW: True}

    def test_repr_shows_entries_and_annotations(self) -> None:
        assert repr(closeable_map({"a": 1})) == "CloseableMap({'a': 1})"
        assert "annotations=" in repr(IGNORED)

    def test_user_close_key_is_plain_data(self, journal: list[str]) -> None:
        app = closeable_map({"close": "not a procedure", "db": Resource("db", journal)})

        app.close()

        assert app["close"] == "not a procedure"
        assert journal == ["db"]


class TestClose:
    def test_empty_map_close_is_a_no_op(self) -> None:
        EMPTY_MAP.close()
        EMPTY_MAP.close()

    def test_closes_nested_values(self, journal: list[str]) -> None:
        app = closeable_map(
            {
                "server": Resource("server", journal),
                "kafka": {
                    "consumer": Resource("consumer", journal),
                    "producer": Resource("producer", journal),
                    "schema_registry_url": "https://localhost",
                },
            },
        )

        app.close()

        assert journal == ["server", "consumer", "producer"]

    def test_close_twice_closes_again(self, journal: list[str]) -> None:
        resource = Resource("db", journal)
        app = closeable_map({"db": resource})

        app.close()
        app.close()

        assert resource.close_calls == 2

    def test_ignored_preset_skips_values(self, journal: list[str]) -> None:
        IGNORED.put("db", Resource("db", journal)).close()

        assert journal == []

    def test_swallowed_preset_never_raises(self, journal: list[str]) -> None:
        app = SWALLOWED.put("a", Resource("a", journal, error=RuntimeError("a"))).put(
            "b",
            Resource("b", journal),
        )

        app.close()

        assert journal == ["a", "b"]

    def test_swallowed_preset_child_can_opt_out(self, journal: list[str]) -> None:
        app = SWALLOWED.put(
            "strict",
            annotate(Resource("strict", journal, error=RuntimeError("x")), swallow=False),
        )

        with pytest.raises(CloseableMapCloseError):
            app.close()

    def test_wrapper_tags_override_map_annotations(self, journal: list[str]) -> None:
        inner = IGNORED.put("db", Resource("db", journal))

        closeable_map({"inner": Tagged(inner, {Tag.IGNORE: False})}).close()

        assert journal == ["db"]

    def test_uses_its_registry(self) -> None:
        class Client:
            pass

        registry = CloseRegistry()
        closed: list[Client] = []
        registry.register(Client, closed.append)
        client = Client()

        CloseableMap({"client": client}, registry=registry).close()

        assert closed == [client]

    def test_derived_maps_keep_the_registry(self) -> None:
        class Client:
            pass

        registry = CloseRegistry()
        closed: list[Client] = []
        registry.register(Client, closed.append)
        client = Client()

        CloseableMap(registry=registry).put("client", client).close()

        assert closed == [client]

    def test_mapping_with_typed_keys_is_walked(self, journal: list[str]) -> None:
        closeable_map({"env": os.environ, "db": Resource("db", journal)}).close()
        SWALLOWED.put("env", os.environ).put("cache", Resource("cache", journal)).close()

        assert journal == ["db", "cache"]

    def test_fn_tagged_values_are_closed(self) -> None:
        calls: list[str] = []

        closeable_map({"stop": with_tag(Tag.FN, lambda: calls.append("stop"))}).close()

        assert calls == ["stop"]


class TestContextManager:
    def test_closes_on_exit(self, journal: list[str]) -> None:
        with closeable_map({"db": Resource("db", journal)}) as app:
            assert app["db"].name == "db"
            assert journal == []

        assert journal == ["db"]

    def test_closes_when_block_raises(self, journal: list[str]) -> None:
        app = closeable_map({"db": Resource("db", journal)})

        with pytest.raises(ValueError, match="body"), app:
            msg = "body"
            raise ValueError(msg)

        assert journal == ["db"]

    def test_close_error_does_not_mask_block_error(
        self,
        journal: list[str],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        app = closeable_map({"db": Resource("db", journal, error=OSError("disk"))})

        with caplog.at_level(logging.WARNING), pytest.raises(ValueError, match="body") as exc_info:
            with app:
                msg = "body"
                raise ValueError(msg)

        assert any("While closing CloseableMap" in note for note in exc_info.value.__notes__)
        assert "during exception unwind" in caplog.text

    def test_close_error_replaces_block_error_when_suppression_is_off(
        self,
        journal: list[str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("CLOSEABLE_MAP_SUPPRESS_CLOSE_ERRORS_DURING_UNWIND", "0")
        reset_settings()
        app = closeable_map({"db": Resource("db", journal, error=OSError("disk"))})

        with pytest.raises(CloseableMapCloseError) as exc_info, app:
            msg = "body"
            raise ValueError(msg)

        assert isinstance(exc_info.value.__cause__, OSError)

    def test_close_error_propagates_after_clean_block(self, journal: list[str]) -> None:
        app = closeable_map({"db": Resource("db", journal, error=OSError("disk"))})

        with pytest.raises(CloseableMapCloseError), app:
            pass


def test_equality_compares_visible_items(journal: list[str]) -> None:
    resource = Resource("db", journal)

    assert closeable_map({"db": annotate(resource, swallow=True)}) == {"db": resource}
    assert closeable_map({"a": 1}).get("missing", "default") == "default"
