"""
Property-based tests for the key-value stores.

Uses Hypothesis for property-based testing to verify persistence round
trips, atomic whole-document rewrites, and HMAC tamper detection.
"""

import json
import tempfile
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from tracker_rules.exceptions import PersistenceError, TamperingError
from tracker_rules.kv_store import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    atomic_write_bytes,
)


# Strategies for generating test data

key_strategy = st.text(min_size=1, max_size=20)
value_strategy = st.text(max_size=50)
entries_strategy = st.dictionaries(key_strategy, value_strategy, max_size=10)


class TestStoreRoundTripProperty:
    """Values written to a store read back unchanged, across instances."""

    @given(entries=entries_strategy, secret=st.one_of(st.none(), st.just("s3cret")))
    @settings(max_examples=100)
    def test_file_store_round_trip(self, entries: dict[str, str], secret) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "store.json"
            store = JsonFileKeyValueStore(path, hmac_secret=secret)
            for key, value in entries.items():
                store.set(key, value)

            reopened = JsonFileKeyValueStore(path, hmac_secret=secret)

            assert sorted(reopened.keys()) == sorted(entries)
            for key, value in entries.items():
                assert reopened.get(key) == value

    @given(entries=entries_strategy)
    @settings(max_examples=50)
    def test_delete_removes_key(self, entries: dict[str, str]) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "store.json"
            store = JsonFileKeyValueStore(path)
            for key, value in entries.items():
                store.set(key, value)
            for key in entries:
                store.delete(key)
            store.delete("never-set")

            assert JsonFileKeyValueStore(path).keys() == []

    def test_stores_satisfy_protocol(self) -> None:
        assert isinstance(InMemoryKeyValueStore(), KeyValueStore)
        assert isinstance(JsonFileKeyValueStore(Path("unused.json")), KeyValueStore)

    def test_missing_file_is_empty_store(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = JsonFileKeyValueStore(Path(tmpdir) / "nested" / "store.json")
            assert store.get("anything") is None
            assert store.keys() == []

    def test_document_layout(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "store.json"
            JsonFileKeyValueStore(path, hmac_secret="k").set("a", "1")

            document = json.loads(path.read_text(encoding="utf-8"))
            assert document["version"] == JsonFileKeyValueStore.VERSION
            assert document["entries"] == {"a": "1"}
            assert len(document["hmac"]) == 64


class TestTamperDetectionProperty:
    """HMAC mismatch raises TamperingError."""

    @given(entries=entries_strategy.filter(bool), new_value=value_strategy)
    @settings(max_examples=100)
    def test_modified_entries_detected(self, entries: dict[str, str], new_value: str) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "store.json"
            store = JsonFileKeyValueStore(path, hmac_secret="secret")
            for key, value in entries.items():
                store.set(key, value)

            document = json.loads(path.read_text(encoding="utf-8"))
            key = next(iter(document["entries"]))
            if document["entries"][key] == new_value:
                new_value += "x"
            document["entries"][key] = new_value
            path.write_text(json.dumps(document), encoding="utf-8")

            with pytest.raises(TamperingError) as exc_info:
                JsonFileKeyValueStore(path, hmac_secret="secret").get(key)
            assert exc_info.value.code == "hmac_mismatch"

    def test_wrong_secret_detected(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "store.json"
            JsonFileKeyValueStore(path, hmac_secret="one").set("k", "v")

            with pytest.raises(TamperingError):
                JsonFileKeyValueStore(path, hmac_secret="two").keys()

    def test_no_secret_skips_validation(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "store.json"
            JsonFileKeyValueStore(path, hmac_secret="one").set("k", "v")

            assert JsonFileKeyValueStore(path).get("k") == "v"


class TestCorruptStoreProperty:
    """Unparseable documents raise PersistenceError."""

    @given(content=st.sampled_from(["", "{", "[]", '{"entries": []}', '{"entries": {"a": 1}}']))
    @settings(max_examples=20)
    def test_corrupt_document_raises(self, content: str) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "store.json"
            path.write_text(content, encoding="utf-8")

            with pytest.raises(PersistenceError) as exc_info:
                JsonFileKeyValueStore(path).get("a")
            assert exc_info.value.code == "parse_error"

    def test_reload_rereads_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "store.json"
            store = JsonFileKeyValueStore(path)
            store.set("k", "v1")
            JsonFileKeyValueStore(path).set("k", "v2")

            assert store.get("k") == "v1"
            store.reload()
            assert store.get("k") == "v2"


class TestAtomicWrite:
    """Whole-file replace leaves no temp files behind."""

    @given(payload=st.binary(max_size=512))
    @settings(max_examples=50)
    def test_atomic_write_replaces_content(self, payload: bytes) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "sub" / "file.bin"
            atomic_write_bytes(path, b"previous")
            atomic_write_bytes(path, payload)

            assert path.read_bytes() == payload
            assert [p.name for p in path.parent.iterdir()] == ["file.bin"]
