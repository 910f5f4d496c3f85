"""
Time-bounded cache of skill results.

An entry is keyed by the skill name and an xxhash64 fingerprint of the
canonical JSON of the input. The canonical payload itself is stored
alongside the value, so two inputs that happen to share a fingerprint
never return each other's result.

Entries live for `ttl_ms` from the moment they are stored and are
evicted lazily, on the lookup that finds them expired.

Usage:
    cached = cache.get("summarizer", {"text": "..."})
    if cached is not _CACHE_MISS:
        return cached  # Cache hit (may be None)
"""

from __future__ import annotations

import copy
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import xxhash

from skillflow.models.json_value import JsonValue, canonical_json
from skillflow.models.result import CacheStats

logger = logging.getLogger(__name__)

# Sentinel returned by ResultCache.get() on a miss; a cached value may be None
_CACHE_MISS = object()


def fingerprint(payload: str) -> int:
    """64-bit xxhash of a canonical payload."""
    return xxhash.xxh64(payload.encode("utf-8")).intdigest()


@dataclass(frozen=True)
class CacheEntry:
    """
    One cached skill result.

    **Attributes**:
        skill: Skill name
        fingerprint: xxhash64 of `payload`
        payload: Canonical JSON of the input
        value: The skill's output
        created_at: Clock reading when stored, in seconds
        ttl_ms: Lifetime of the entry
    """

    skill: str
    fingerprint: int
    payload: str
    value: JsonValue
    created_at: float
    ttl_ms: float

    def is_expired(self, now: float) -> bool:
        return (now - self.created_at) * 1000 >= self.ttl_ms

    @property
    def key(self) -> str:
        return f"{self.skill}:{self.fingerprint:016x}"


class ResultCache:
    """
    In-memory skill result cache.

    Confined to one event loop: every method runs to completion without
    awaiting, so concurrent runs sharing a cache need no lock.

    Args:
        ttl_ms: Lifetime of each entry
        clock: Monotonic clock in seconds; injectable for tests
    """

    def __init__(self, ttl_ms: float = 60_000, clock: Callable[[], float] = time.monotonic):
        self.ttl_ms = ttl_ms
        self._clock = clock
        self._entries: dict[tuple[str, int], CacheEntry] = {}

    def get(self, skill: str, input: Any) -> Any:
        """
        Look up a fresh result.

        Returns:
            The cached value (a copy), or _CACHE_MISS if there is no
            fresh entry for exactly this skill and input
        """
        payload = canonical_json(input)
        key = (skill, fingerprint(payload))

        entry = self._entries.get(key)
        if entry is None or entry.payload != payload:
            return _CACHE_MISS

        if entry.is_expired(self._clock()):
            logger.debug(f"Cache entry expired for skill {skill}")
            del self._entries[key]
            return _CACHE_MISS

        return copy.deepcopy(entry.value)

    def put(self, skill: str, input: Any, value: JsonValue) -> CacheEntry:
        """Store a result with a fresh timestamp, replacing any previous entry."""
        payload = canonical_json(input)
        entry = CacheEntry(
            skill=skill,
            fingerprint=fingerprint(payload),
            payload=payload,
            value=copy.deepcopy(value),
            created_at=self._clock(),
            ttl_ms=self.ttl_ms,
        )
        self._entries[(skill, entry.fingerprint)] = entry
        return entry

    def clear(self, skill: str | None = None) -> int:
        """
        Drop entries for one skill (exact name match), or all of them.

        Returns:
            Number of entries removed
        """
        if skill is None:
            removed = len(self._entries)
            self._entries.clear()
            return removed

        keys = [key for key in self._entries if key[0] == skill]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def stats(self) -> CacheStats:
        return CacheStats(
            size=len(self._entries),
            keys=[entry.key for entry in self._entries.values()],
        )

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["CacheEntry", "ResultCache", "fingerprint", "_CACHE_MISS"]
