"""
Property-based tests for the Rule Cache.

Uses Hypothesis for property-based testing to verify store/read round trips,
expiry on the cached-rules path, the age-independent most-recent path, and
degradation of every read failure to a cache miss.
"""

import json
import tempfile
from pathlib import Path
from typing import Optional

from hypothesis import given, settings
from hypothesis import strategies as st

from tracker_rules.config import DEFAULT_MAX_CACHE_DURATION_SECONDS
from tracker_rules.rule_cache import CACHE_DIRECTORY_NAME, RuleCache


START_TIME = 1_700_000_000.0


class FakeClock:
    """Settable time source."""

    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


# Strategies for generating test data

rules_json_strategy = st.lists(
    st.fixed_dictionaries({
        "trigger": st.fixed_dictionaries({"url-filter": st.text(min_size=1, max_size=30)}),
        "action": st.fixed_dictionaries({"type": st.sampled_from(["block", "ignore-previous-rules"])}),
    }),
    max_size=5,
).map(json.dumps)

etag_strategy = st.one_of(
    st.none(),
    st.text(alphabet="abcdef0123456789-", min_size=1, max_size=20),
)


class TestRuleCacheRoundTripProperty:
    """Stored rules read back unchanged."""

    @given(rules_json=rules_json_strategy, etag=etag_strategy)
    @settings(max_examples=100)
    def test_store_then_read_returns_same_snapshot(self, rules_json: str, etag: Optional[str]) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            clock = FakeClock()
            cache = RuleCache(Path(tmpdir), time_source=clock)

            cache.store_cached_rules(rules_json, etag)
            snapshot = cache.get_cached_rules()

            assert snapshot is not None
            assert snapshot.rules_json == rules_json
            assert snapshot.etag == etag
            assert snapshot.timestamp == clock.now

    def test_cache_files_live_in_dedicated_directory(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            cache = RuleCache(Path(tmpdir))
            cache.store_cached_rules("[]", "v1")

            assert cache.cache_dir == Path(tmpdir) / CACHE_DIRECTORY_NAME
            assert cache.rules_file.read_text(encoding="utf-8") == "[]"
            metadata = json.loads(cache.metadata_file.read_text(encoding="utf-8"))
            assert metadata["etag"] == "v1"
            assert isinstance(metadata["timestamp"], float)

    @given(first=rules_json_strategy, second=rules_json_strategy)
    @settings(max_examples=50)
    def test_new_store_supersedes_previous(self, first: str, second: str) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            clock = FakeClock()
            cache = RuleCache(Path(tmpdir), time_source=clock)

            cache.store_cached_rules(first, "old")
            clock.now += 10
            cache.store_cached_rules(second, None)

            snapshot = cache.get_most_recent_rules()
            assert snapshot.rules_json == second
            assert snapshot.etag is None
            assert snapshot.timestamp == clock.now


class TestExpiryProperty:
    """get_cached_rules expires at max_cache_duration; get_most_recent_rules never does."""

    @given(age=st.floats(min_value=0, max_value=DEFAULT_MAX_CACHE_DURATION_SECONDS * 3))
    @settings(max_examples=100)
    def test_expiry_threshold(self, age: float) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            clock = FakeClock()
            cache = RuleCache(Path(tmpdir), time_source=clock)
            cache.store_cached_rules("[]", "tag")

            clock.now += age
            effective_age = clock.now - START_TIME

            cached = cache.get_cached_rules()
            if effective_age >= DEFAULT_MAX_CACHE_DURATION_SECONDS:
                assert cached is None
            else:
                assert cached is not None

            most_recent = cache.get_most_recent_rules()
            assert most_recent is not None
            assert most_recent.rules_json == "[]"

    def test_exactly_seven_days_is_expired(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            clock = FakeClock()
            cache = RuleCache(Path(tmpdir), time_source=clock)
            cache.store_cached_rules("[]", None)

            clock.now += 86400 * 7

            assert cache.get_cached_rules() is None
            assert cache.age_of(cache.get_most_recent_rules()) == 86400 * 7

    @given(max_duration=st.integers(min_value=1, max_value=100000))
    @settings(max_examples=50)
    def test_custom_max_duration(self, max_duration: int) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            clock = FakeClock()
            cache = RuleCache(Path(tmpdir), max_cache_duration=max_duration, time_source=clock)
            cache.store_cached_rules("[]", None)

            clock.now += max_duration
            assert cache.get_cached_rules() is None


class TestCacheMissProperty:
    """Missing or corrupt files read as a cache miss."""

    def test_empty_cache_is_miss(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            cache = RuleCache(Path(tmpdir))
            assert cache.get_cached_rules() is None
            assert cache.get_most_recent_rules() is None

    def test_missing_metadata_is_miss(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            cache = RuleCache(Path(tmpdir))
            cache.store_cached_rules("[]", None)
            cache.metadata_file.unlink()

            assert cache.get_most_recent_rules() is None

    @given(metadata=st.sampled_from([
        "not json",
        "[]",
        '{"etag": "x"}',
        '{"timestamp": "yesterday"}',
        '{"timestamp": true}',
        '{"timestamp": null}',
    ]))
    @settings(max_examples=20)
    def test_invalid_metadata_is_miss(self, metadata: str) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            cache = RuleCache(Path(tmpdir))
            cache.store_cached_rules("[]", "tag")
            cache.metadata_file.write_text(metadata, encoding="utf-8")

            assert cache.get_cached_rules() is None
            assert cache.get_most_recent_rules() is None

    def test_clear_cache_removes_snapshot(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            cache = RuleCache(Path(tmpdir))
            cache.store_cached_rules("[]", "tag")

            cache.clear_cache()
            cache.clear_cache()

            assert not cache.rules_file.exists()
            assert not cache.metadata_file.exists()
            assert cache.get_most_recent_rules() is None
