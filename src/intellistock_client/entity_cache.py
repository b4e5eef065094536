"""Keyed read-through cache with stale-while-revalidate reads.

Each entry carries absolute ``stale_after`` / ``expire_after`` timestamps.
The read path classifies an entry synchronously as :class:`Fresh`,
:class:`Stale`, :class:`Expired` or :class:`Missing`:

* Fresh -> returned as is.
* Stale -> returned immediately; one background refresh is started.
* Expired / Missing / invalidated -> the caller awaits a fetch.

Fetches for the same key are single-flighted. A failed fetch never evicts
the current entry; the error goes to the caller of that read and is kept for
:meth:`EntityCache.peek`. Successful entries can be written to a JSON
snapshot and restored on the next process start.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Generic, TypeVar, Union

from pydantic import ValidationError as PydanticValidationError
from pydantic_core import to_jsonable_python

from .cache_keys import CacheKey, CachePolicy, key_matches
from .exceptions import ApiError
from .logger import get_logger, log_event
from .single_flight import SingleFlight

logger = get_logger(__name__)

T = TypeVar("T")
Fetcher = Callable[[], Awaitable[T]]
Decoder = Callable[[Any], Any]

SNAPSHOT_MAX_AGE_SECONDS = 24 * 60 * 60
FLUSH_THROTTLE_SECONDS = 1.0


@dataclass
class CacheEntry(Generic[T]):
    key: CacheKey
    value: T
    fetched_at: float
    stale_after: float
    expire_after: float
    persist: bool = True
    invalidated: bool = False
    raw: bool = False


@dataclass(frozen=True)
class Fresh(Generic[T]):
    value: T


@dataclass(frozen=True)
class Stale(Generic[T]):
    value: T
    refreshing: bool


@dataclass(frozen=True)
class Expired:
    pass


@dataclass(frozen=True)
class Missing:
    pass


EntryState = Union[Fresh[Any], Stale[Any], Expired, Missing]


@dataclass(frozen=True)
class CacheSnapshot(Generic[T]):
    """What a view can render right now for one key."""

    value: T | None = None
    is_placeholder: bool = False
    is_stale: bool = False
    is_fetching: bool = False
    fetched_at: float | None = None
    error: BaseException | None = None

    @property
    def has_value(self) -> bool:
        return self.value is not None


@dataclass
class SnapshotFile:
    """JSON persistence for cache contents (never in-flight state)."""

    path: Path
    buster: str
    max_age_seconds: float = SNAPSHOT_MAX_AGE_SECONDS

    def load(self, now: float) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (ValueError, OSError):
            log_event(logger, "entity_cache", "restore", "discarded", level=logging.WARNING, reason="unreadable")
            self.clear()
            return []
        if not isinstance(payload, dict) or payload.get("buster") != self.buster:
            self.clear()
            return []
        saved_at = payload.get("saved_at")
        if not isinstance(saved_at, (int, float)) or now - saved_at > self.max_age_seconds:
            self.clear()
            return []
        entries = payload.get("entries")
        return [entry for entry in entries if isinstance(entry, dict)] if isinstance(entries, list) else []

    def save(self, entries: list[dict[str, Any]], now: float) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"buster": self.buster, "saved_at": now, "entries": entries}
        tmp_path = self.path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        tmp_path.replace(self.path)

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()


class EntityCache:
    def __init__(
        self,
        snapshot: SnapshotFile | None = None,
        now: Callable[[], float] | None = None,
        flush_throttle_seconds: float = FLUSH_THROTTLE_SECONDS,
    ) -> None:
        self._snapshot = snapshot
        self._now = now or time.time
        self._flush_throttle_seconds = flush_throttle_seconds
        self._entries: dict[CacheKey, CacheEntry[Any]] = {}
        self._errors: dict[CacheKey, BaseException] = {}
        self._placeholders: dict[CacheKey, Callable[[], Any]] = {}
        self._decoders: dict[CacheKey, Decoder] = {}
        self._flights: SingleFlight[Any] = SingleFlight()
        # per key: last fetch started, fetch whose result is stored, last fetch covered by an invalidation
        self._started: dict[CacheKey, int] = {}
        self._stored: dict[CacheKey, int] = {}
        self._invalidated_through: dict[CacheKey, int] = {}
        self._background: set[asyncio.Task[Any]] = set()
        self._generation = 0
        self._dirty = False
        self._last_flush = 0.0

    # lifecycle

    def init(self) -> int:
        """Restore the persisted snapshot. Returns the number of entries restored."""
        if self._snapshot is None:
            return 0
        now = self._now()
        restored = 0
        for record in self._snapshot.load(now):
            try:
                key = tuple(record["key"])
                entry = CacheEntry(
                    key=key,
                    value=record["value"],
                    fetched_at=float(record["fetched_at"]),
                    stale_after=float(record["stale_after"]),
                    expire_after=float(record["expire_after"]),
                    invalidated=bool(record.get("invalidated", False)),
                    raw=True,
                )
            except (KeyError, TypeError, ValueError):
                continue
            if entry.expire_after <= now:
                continue
            self._entries[key] = entry
            restored += 1
        log_event(logger, "entity_cache", "restore", "success", entries=restored)
        return restored

    def clear(self) -> None:
        """Drop everything, including the persisted snapshot (sign-out)."""
        self._generation += 1
        self._cancel_background()
        self._flights.cancel_all()
        self._entries.clear()
        self._errors.clear()
        self._placeholders.clear()
        self._started.clear()
        self._stored.clear()
        self._invalidated_through.clear()
        self._dirty = False
        if self._snapshot is not None:
            self._snapshot.clear()
        log_event(logger, "entity_cache", "clear", "success")

    async def aclose(self) -> None:
        self.flush()
        self._cancel_background()
        self._flights.cancel_all()

    def register_decoder(self, prefix: CacheKey, decoder: Decoder) -> None:
        """Decoder turning restored JSON back into models for keys under ``prefix``."""
        self._decoders[prefix] = decoder

    # reads

    def state(self, key: CacheKey) -> EntryState:
        entry = self._entry(key)
        if entry is None:
            return Missing()
        now = self._now()
        if entry.invalidated or now >= entry.expire_after:
            return Expired()
        if now >= entry.stale_after:
            return Stale(entry.value, refreshing=self._flights.in_flight(key))
        return Fresh(entry.value)

    async def get(self, key: CacheKey, fetcher: Fetcher[T], policy: CachePolicy) -> T:
        state = self.state(key)
        if isinstance(state, Fresh):
            return state.value
        if isinstance(state, Stale):
            if not state.refreshing:
                self._refresh_in_background(key, fetcher, policy)
            return state.value
        return await self._fetch(key, fetcher, policy)

    async def refetch(self, key: CacheKey, fetcher: Fetcher[T], policy: CachePolicy) -> T:
        """Always start a new fetch, then cache the result.

        A fetch already in flight for ``key`` may have been issued before
        writes the caller depends on, so it is never joined. The new flight
        replaces it for later readers.
        """
        sequence = self._next_sequence(key)
        task = self._flights.restart(key, lambda: self._run_fetch(key, fetcher, policy, sequence))
        return await asyncio.shield(task)

    def prefetch(self, key: CacheKey, fetcher: Fetcher[Any], policy: CachePolicy) -> None:
        if isinstance(self.state(key), Fresh) or self._flights.in_flight(key):
            return
        self._refresh_in_background(key, fetcher, policy)

    def peek(self, key: CacheKey) -> CacheSnapshot[Any]:
        entry = self._entry(key)
        error = self._errors.get(key)
        fetching = self._flights.in_flight(key)
        now = self._now()
        if entry is not None and now < entry.expire_after:
            return CacheSnapshot(
                value=entry.value,
                is_stale=entry.invalidated or now >= entry.stale_after,
                is_fetching=fetching,
                fetched_at=entry.fetched_at,
                error=error,
            )
        derive = self._placeholders.get(key)
        placeholder = derive() if derive is not None else None
        return CacheSnapshot(
            value=placeholder,
            is_placeholder=placeholder is not None,
            is_fetching=fetching,
            error=error,
        )

    def get_cached(self, key: CacheKey) -> Any | None:
        """Current non-expired value without triggering any fetch."""
        entry = self._entry(key)
        if entry is None or self._now() >= entry.expire_after:
            return None
        return entry.value

    def keys(self) -> list[CacheKey]:
        return list(self._entries)

    # writes

    def set(self, key: CacheKey, value: Any, policy: CachePolicy) -> None:
        now = self._now()
        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            fetched_at=now,
            stale_after=now + policy.stale_after,
            expire_after=now + policy.expire_after,
            persist=policy.persist,
        )
        self._errors.pop(key, None)
        self._placeholders.pop(key, None)
        self._dirty = True
        self._maybe_flush()

    def set_placeholder(self, key: CacheKey, derive: Callable[[], Any]) -> None:
        self._placeholders[key] = derive

    def invalidate(self, key_or_prefix: CacheKey | str) -> int:
        prefix = (key_or_prefix,) if isinstance(key_or_prefix, str) else tuple(key_or_prefix)
        hits = 0
        for key, entry in self._entries.items():
            if key_matches(key, prefix):
                entry.invalidated = True
                hits += 1
        self._mark_in_flight_invalidated(prefix)
        if hits:
            self._dirty = True
        log_event(logger, "entity_cache", "invalidate", "success", prefix=list(prefix), entries=hits)
        return hits

    def evict(self, key_or_prefix: CacheKey | str) -> int:
        prefix = (key_or_prefix,) if isinstance(key_or_prefix, str) else tuple(key_or_prefix)
        doomed = [key for key in self._entries if key_matches(key, prefix)]
        for key in doomed:
            del self._entries[key]
            self._errors.pop(key, None)
        self._mark_in_flight_invalidated(prefix)
        if doomed:
            self._dirty = True
        log_event(logger, "entity_cache", "evict", "success", prefix=list(prefix), entries=len(doomed))
        return len(doomed)

    # persistence

    def flush(self) -> bool:
        if self._snapshot is None or not self._dirty:
            return False
        now = self._now()
        records = []
        for entry in self._entries.values():
            if not entry.persist or entry.expire_after <= now:
                continue
            records.append(
                {
                    "key": list(entry.key),
                    "value": entry.value if entry.raw else to_jsonable_python(entry.value, by_alias=True),
                    "fetched_at": entry.fetched_at,
                    "stale_after": entry.stale_after,
                    "expire_after": entry.expire_after,
                    "invalidated": entry.invalidated,
                }
            )
        try:
            self._snapshot.save(records, now)
        except OSError as exc:
            log_event(logger, "entity_cache", "flush", "error", level=logging.WARNING, message=str(exc))
            return False
        self._dirty = False
        self._last_flush = now
        return True

    def _maybe_flush(self) -> None:
        if self._now() - self._last_flush >= self._flush_throttle_seconds:
            self.flush()

    # internals

    def _entry(self, key: CacheKey) -> CacheEntry[Any] | None:
        entry = self._entries.get(key)
        if entry is None or not entry.raw:
            return entry
        decoder = self._decoder_for(key)
        if decoder is None:
            return entry
        try:
            entry.value = decoder(entry.value)
        except (PydanticValidationError, TypeError, ValueError):
            log_event(logger, "entity_cache", "restore", "dropped", level=logging.WARNING, key=list(key))
            del self._entries[key]
            return None
        entry.raw = False
        return entry

    def _decoder_for(self, key: CacheKey) -> Decoder | None:
        best: CacheKey | None = None
        for prefix in self._decoders:
            if key_matches(key, prefix) and (best is None or len(prefix) > len(best)):
                best = prefix
        return self._decoders[best] if best is not None else None

    async def _fetch(self, key: CacheKey, fetcher: Fetcher[T], policy: CachePolicy) -> T:
        return await self._flights.do(key, lambda: self._run_fetch(key, fetcher, policy, self._next_sequence(key)))

    def _next_sequence(self, key: CacheKey) -> int:
        sequence = self._started.get(key, 0) + 1
        self._started[key] = sequence
        return sequence

    def _mark_in_flight_invalidated(self, prefix: CacheKey) -> None:
        # covers flights that refetch replaced and no longer tracks
        for key, started in self._started.items():
            if key_matches(key, prefix):
                self._invalidated_through[key] = started

    async def _run_fetch(self, key: CacheKey, fetcher: Fetcher[T], policy: CachePolicy, sequence: int) -> T:
        generation = self._generation
        attempts = policy.retries + 1
        for attempt in range(attempts):
            try:
                value = await fetcher()
            except Exception as exc:
                if attempt < attempts - 1 and _is_retryable(exc):
                    continue
                if generation == self._generation and sequence == self._started.get(key):
                    self._errors[key] = exc
                log_event(
                    logger,
                    "entity_cache",
                    "fetch",
                    "error",
                    level=logging.WARNING,
                    key=list(key),
                    attempts=attempt + 1,
                    message=str(exc),
                )
                raise
            break
        if generation != self._generation:
            # cleared while in flight (sign-out); hand the value back but keep nothing
            return value
        if self._stored.get(key, 0) > sequence:
            # a fetch started later already landed; this result is older than the cached one
            return value
        self.set(key, value, policy)
        self._stored[key] = sequence
        if self._invalidated_through.get(key, 0) >= sequence:
            self._entries[key].invalidated = True
        return value

    def _refresh_in_background(self, key: CacheKey, fetcher: Fetcher[Any], policy: CachePolicy) -> None:
        # registered in the flight map right away so a second stale read sees it as refreshing
        task = self._flights.start(key, lambda: self._run_fetch(key, fetcher, policy, self._next_sequence(key)))
        if task in self._background:
            return
        self._background.add(task)
        task.add_done_callback(lambda done: self._background_done(done, key))

    def _background_done(self, task: asyncio.Task[Any], key: CacheKey) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log_event(
                logger,
                "entity_cache",
                "background_refresh",
                "error",
                level=logging.WARNING,
                key=list(key),
                message=str(exc),
            )

    def _cancel_background(self) -> None:
        for task in list(self._background):
            task.cancel()
        self._background.clear()


def _is_retryable(exc: Exception) -> bool:
    if isinstance(exc, ApiError) and 400 <= exc.status_code < 500:
        return False
    return True
