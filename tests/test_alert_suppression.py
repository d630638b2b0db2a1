from __future__ import annotations

from typing import Dict

import pytest

from services.alert_suppression import MinuteSuppressionCache, RedisSuppressionCache, suppression_key
from services.alerts.base import AlertCandidate


def test_claim_is_exclusive_until_ttl_expires(monotonic) -> None:
    cache = MinuteSuppressionCache(ttl_seconds=75, clock=monotonic)

    assert cache.claim("u1:2024-05-10-14:05:daily_reminder:r1")
    assert not cache.claim("u1:2024-05-10-14:05:daily_reminder:r1")
    assert "u1:2024-05-10-14:05:daily_reminder:r1" in cache

    monotonic.advance(76)
    assert "u1:2024-05-10-14:05:daily_reminder:r1" not in cache
    assert cache.claim("u1:2024-05-10-14:05:daily_reminder:r1")


def test_release_frees_the_key(monotonic) -> None:
    cache = MinuteSuppressionCache(clock=monotonic)
    cache.claim("k")
    cache.release("k")
    assert cache.claim("k")


def test_oldest_entries_are_evicted_at_capacity(monotonic) -> None:
    cache = MinuteSuppressionCache(ttl_seconds=75, max_entries=2, clock=monotonic)
    cache.claim("a")
    monotonic.advance(1)
    cache.claim("b")
    monotonic.advance(1)
    cache.claim("c")

    assert len(cache) == 2
    assert "a" not in cache
    assert cache.claim("a")


def test_invalid_bounds_are_rejected() -> None:
    with pytest.raises(ValueError):
        MinuteSuppressionCache(ttl_seconds=0)
    with pytest.raises(ValueError):
        MinuteSuppressionCache(max_entries=0)


def test_suppression_key_scopes_subject_minute_and_candidate(at) -> None:
    candidate = AlertCandidate(subject_id="u1", alert_type="daily_reminder", dedup_key="r1-2024-05-10", message="m")
    assert suppression_key(candidate, at("2024-05-10T14:05")) == "u1:2024-05-10-14:05:daily_reminder:r1-2024-05-10"


def test_different_alerts_in_one_minute_do_not_collide(monotonic, at) -> None:
    cache = MinuteSuppressionCache(clock=monotonic)
    snapshot = at("2024-05-10T08:00")
    reminder = AlertCandidate(subject_id="u1", alert_type="daily_reminder", dedup_key="r1-2024-05-10", message="m")
    workout = AlertCandidate(subject_id="u1", alert_type="workout_schedule", dedup_key="2024-05-10", message="w")

    assert cache.claim(suppression_key(reminder, snapshot))
    assert cache.claim(suppression_key(workout, snapshot))
    assert not cache.claim(suppression_key(reminder, snapshot))


class FakeRedis:
    def __init__(self) -> None:
        self.store: Dict[str, bytes] = {}
        self.ttls: Dict[str, int] = {}

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = value
        self.ttls[key] = ex
        return True

    def delete(self, key):
        self.store.pop(key, None)


def test_redis_cache_uses_set_nx_with_ttl() -> None:
    client = FakeRedis()
    cache = RedisSuppressionCache(client, ttl_seconds=75)

    assert cache.claim("k")
    assert not cache.claim("k")
    assert client.ttls == {"alerts:minute:k": 75}
    cache.release("k")
    assert cache.claim("k")
