"""
tests/test_document_store.py — DocumentStore Load/Save Semantics
=================================================================

Tests auto-initialization, atomic writes, empty-save rejection, per-path
FIFO write serialization, load-during-save isolation, sanitization and
corruption repair.
"""

from __future__ import annotations

import asyncio
import json
import math
import time

import pytest

from streakbot.database import store as store_module
from streakbot.database.store import (
    DocumentStore,
    repair_json_structure,
    sanitize_document,
)


# Helper to run async tests without pytest-asyncio
def run_async(coro):
    """Run an async coroutine in a fresh event loop."""
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------
class TestSanitize:
    def test_valid_entries_kept(self):
        doc = {"a": {"x": 1}, "b": [1, 2], "c": "text"}
        assert sanitize_document(doc) == doc

    def test_nan_entry_dropped_alone(self):
        doc = {"good": {"n": 1}, "bad": {"n": math.nan}}
        assert sanitize_document(doc) == {"good": {"n": 1}}

    def test_unserializable_entry_dropped(self):
        doc = {"good": 1, "bad": {1, 2, 3}}
        assert sanitize_document(doc) == {"good": 1}


class TestRepair:
    def test_valid_json_unchanged(self):
        doc = {"1": {"streak": 2}, "2": {"streak": 0, "nested": {"a": [1, 2]}}}
        raw = json.dumps(doc, indent=2)
        assert repair_json_structure(raw) == doc

    def test_concatenated_objects_merged(self):
        raw = '{"1": {"streak": 1}}{"2": {"streak": 2}}'
        assert repair_json_structure(raw) == {"1": {"streak": 1}, "2": {"streak": 2}}

    def test_truncated_object_keeps_complete_entries(self):
        raw = '{"1": {"streak": 1}, "2": {"streak": 2}, "3": {"str'
        assert repair_json_structure(raw) == {"1": {"streak": 1}, "2": {"streak": 2}}

    def test_garbage_yields_empty(self):
        assert repair_json_structure("not json at all") == {}

    def test_empty_text_yields_empty(self):
        assert repair_json_structure("") == {}

    def test_non_object_json_yields_empty(self):
        assert repair_json_structure("[1, 2, 3]") == {}


# ---------------------------------------------------------------------------
# Load
# ---------------------------------------------------------------------------
class TestLoad:
    def test_missing_file_initialized_and_persisted(self, tmp_path):
        path = tmp_path / "g" / "userDatabase.json"
        store = DocumentStore()

        doc = run_async(store.load(path))

        assert doc == {}
        assert path.exists()
        assert json.loads(path.read_text(encoding="utf-8")) == {}

    def test_corrupt_file_repaired(self, tmp_path):
        path = tmp_path / "userDatabase.json"
        path.write_text('{"1": {"streak": 4}, "2": {"stre', encoding="utf-8")

        doc = run_async(DocumentStore().load(path))

        assert doc == {"1": {"streak": 4}}

    def test_top_level_array_becomes_empty(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2]", encoding="utf-8")
        assert run_async(DocumentStore().load(path)) == {}


# ---------------------------------------------------------------------------
# Save
# ---------------------------------------------------------------------------
class TestSave:
    def test_round_trip(self, tmp_path):
        path = tmp_path / "doc.json"
        store = DocumentStore()
        doc = {"1": {"streak": 3, "name": "Zoë"}, "2": {"list": [1, None, True]}}

        async def scenario():
            assert await store.save(path, doc) is True
            return await store.load(path)

        assert run_async(scenario()) == doc

    def test_written_as_utf8_two_space_indent(self, tmp_path):
        path = tmp_path / "doc.json"
        run_async(DocumentStore().save(path, {"k": {"name": "Zoë"}}))
        text = path.read_text(encoding="utf-8")
        assert '\n  "k": {' in text
        assert "Zoë" in text

    def test_empty_rejected(self, tmp_path):
        path = tmp_path / "doc.json"
        assert run_async(DocumentStore().save(path, {})) is False
        assert not path.exists()

    def test_empty_allowed_when_asked(self, tmp_path):
        path = tmp_path / "doc.json"
        assert run_async(DocumentStore().save(path, {}, allow_empty=True)) is True
        assert path.read_text(encoding="utf-8") == "{}"

    def test_no_temp_files_left_behind(self, tmp_path):
        path = tmp_path / "doc.json"
        run_async(DocumentStore().save(path, {"a": 1}))
        assert [p.name for p in tmp_path.iterdir()] == ["doc.json"]

    def test_write_failure_propagates_and_queue_recovers(self, tmp_path, monkeypatch):
        path = tmp_path / "doc.json"
        store = DocumentStore()
        real_write = store_module._atomic_write_json
        calls = {"n": 0}

        def flaky(p, document):
            calls["n"] += 1
            if calls["n"] == 1:
                raise OSError("disk full")
            real_write(p, document)

        monkeypatch.setattr(store_module, "_atomic_write_json", flaky)

        async def scenario():
            with pytest.raises(OSError):
                await store.save(path, {"v": 1})
            assert await store.save(path, {"v": 2}) is True
            return await store.load(path)

        assert run_async(scenario()) == {"v": 2}


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------
class TestWriteSerialization:
    def test_saves_run_in_submission_order(self, tmp_path, monkeypatch):
        path = tmp_path / "doc.json"
        store = DocumentStore()
        real_write = store_module._atomic_write_json
        order: list[int] = []

        def recording(p, document):
            time.sleep(0.005)
            order.append(document["n"])
            real_write(p, document)

        monkeypatch.setattr(store_module, "_atomic_write_json", recording)

        async def scenario():
            await asyncio.gather(*(store.save(path, {"n": i}) for i in range(10)))
            return await store.load(path)

        final = run_async(scenario())
        assert order == list(range(10))
        assert final == {"n": 9}

    def test_load_waits_for_inflight_save(self, tmp_path, monkeypatch):
        path = tmp_path / "doc.json"
        store = DocumentStore()
        real_write = store_module._atomic_write_json

        async def scenario():
            await store.save(path, {"v": 1})

            def slow(p, document):
                time.sleep(0.05)
                real_write(p, document)

            monkeypatch.setattr(store_module, "_atomic_write_json", slow)
            pending = asyncio.create_task(store.save(path, {"v": 2}))
            await asyncio.sleep(0)
            loaded = await store.load(path)
            await pending
            return loaded

        assert run_async(scenario()) == {"v": 2}

    def test_different_paths_independent(self, tmp_path):
        store = DocumentStore()

        async def scenario():
            await asyncio.gather(
                store.save(tmp_path / "a.json", {"a": 1}),
                store.save(tmp_path / "b.json", {"b": 2}),
            )
            return await store.load(tmp_path / "a.json"), await store.load(tmp_path / "b.json")

        assert run_async(scenario()) == ({"a": 1}, {"b": 2})


class TestLifecycle:
    def test_delete_and_exists(self, tmp_path):
        path = tmp_path / "doc.json"
        store = DocumentStore()

        async def scenario():
            await store.save(path, {"a": 1})
            before = await store.exists(path)
            first = await store.delete(path)
            second = await store.delete(path)
            after = await store.exists(path)
            return before, first, second, after

        assert run_async(scenario()) == (True, True, False, False)
