"""
Tests for the response cache.
"""

import pytest

from notespark.extraction.models import StructuredNote, Tone
from notespark.storage.cache import ResponseCache, content_fingerprint, make_cache_key


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


class TestCacheKeys:
    """Test key derivation."""

    def test_same_text_and_tone(self):
        """Test identical inputs share a key."""
        assert make_cache_key("hello world", Tone.CASUAL) == make_cache_key("hello world", "casual")

    def test_tone_changes_key(self):
        """Test tones are cached separately."""
        assert make_cache_key("hello world", Tone.CASUAL) != make_cache_key("hello world", Tone.PROFESSIONAL)

    def test_namespace_prefix(self):
        """Test namespaces keep rule and model results apart."""
        assert make_cache_key("text", Tone.CASUAL, namespace="model").startswith("model:casual_")

    def test_middle_of_long_text_changes_fingerprint(self):
        """Test texts differing only in the middle hash differently."""
        text_a = "a" * 100 + "x" * 50 + "b" * 100
        text_b = "a" * 100 + "y" * 50 + "b" * 100
        assert content_fingerprint(text_a) != content_fingerprint(text_b)
        assert make_cache_key(text_a, Tone.CASUAL) != make_cache_key(text_b, Tone.CASUAL)

    def test_length_in_key(self):
        """Test texts of different lengths get different keys."""
        text_a = "a" * 100 + "x" * 50 + "b" * 100
        text_b = "a" * 100 + "x" * 60 + "b" * 100
        assert make_cache_key(text_a, Tone.CASUAL) != make_cache_key(text_b, Tone.CASUAL)


class TestResponseCache:
    """Test TTL and capacity behaviour."""

    def test_hit(self, clock):
        """Test a fresh entry is returned."""
        cache = ResponseCache(ttl_seconds=300, clock=clock)
        note = StructuredNote(title="T", body="<h1>T</h1>")
        cache.set("k", note)
        assert cache.get("k") is note
        assert cache.stats()["hits"] == 1

    def test_expiry(self, clock):
        """Test entries older than the TTL are never served."""
        cache = ResponseCache(ttl_seconds=300, clock=clock)
        cache.set("k", "value")

        clock.now += 299
        assert cache.get("k") == "value"

        clock.now += 1
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_capacity_evicts_oldest(self, clock):
        """Test inserting past capacity removes the oldest entry."""
        cache = ResponseCache(capacity=3, clock=clock)
        for key in ("a", "b", "c", "d"):
            clock.now += 1
            cache.set(key, key.upper())

        assert len(cache) == 3
        assert cache.get("a") is None
        assert cache.get("d") == "D"

    def test_replace_refreshes_entry(self, clock):
        """Test setting an existing key replaces it whole."""
        cache = ResponseCache(ttl_seconds=10, capacity=2, clock=clock)
        cache.set("a", 1)
        clock.now += 8
        cache.set("a", 2)
        clock.now += 5
        assert cache.get("a") == 2
        assert len(cache) == 1

    def test_clear(self, clock):
        """Test clearing empties the cache."""
        cache = ResponseCache(clock=clock)
        cache.set("a", 1)
        cache.clear()
        assert len(cache) == 0
        assert cache.get("a") is None

    def test_invalid_capacity(self):
        """Test capacity must be positive."""
        with pytest.raises(ValueError):
            ResponseCache(capacity=0)
