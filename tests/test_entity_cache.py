from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from intellistock_client.cache_keys import (
    DOCS_POLICY,
    INVENTORY_LIST_POLICY,
    ORDER_POLICY,
    REFERENCE_POLICY,
    STORE_PROFILE_POLICY,
    CachePolicy,
)
from intellistock_client.entity_cache import EntityCache, Expired, Fresh, Missing, SnapshotFile, Stale
from intellistock_client.exceptions import NotFoundError
from intellistock_client.models import Brand

POLICY = CachePolicy(stale_after=60, expire_after=600)
KEY = ("inventory", "list")


class Clock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class Source:
    """Fetcher returning v1, v2, ... and counting calls."""

    def __init__(self, fail_on: set[int] | None = None, error: Exception | None = None) -> None:
        self.calls = 0
        self.fail_on = fail_on or set()
        self.error = error or RuntimeError("backend down")

    async def __call__(self) -> str:
        self.calls += 1
        await asyncio.sleep(0)
        if self.calls in self.fail_on:
            raise self.error
        return f"v{self.calls}"


def test_family_policies() -> None:
    assert INVENTORY_LIST_POLICY.retries == 1
    assert REFERENCE_POLICY.stale_after == 3600
    assert (STORE_PROFILE_POLICY.retries, DOCS_POLICY.retries) == (0, 0)
    assert ORDER_POLICY.persist is False
    with pytest.raises(ValueError):
        CachePolicy(stale_after=60, expire_after=30)


def test_fresh_entries_are_served_without_fetching() -> None:
    clock = Clock()
    cache = EntityCache(now=clock)
    source = Source()

    async def run() -> list[str]:
        first = await cache.get(KEY, source, POLICY)
        clock.advance(30)
        return [first, await cache.get(KEY, source, POLICY)]

    assert asyncio.run(run()) == ["v1", "v1"]
    assert source.calls == 1
    assert isinstance(cache.state(KEY), Fresh)
    assert isinstance(cache.state(("missing",)), Missing)


def test_stale_entries_return_immediately_and_refresh_once() -> None:
    clock = Clock()
    cache = EntityCache(now=clock)
    source = Source()

    async def run() -> list[str]:
        await cache.get(KEY, source, POLICY)
        clock.advance(61)
        first = await cache.get(KEY, source, POLICY)
        state = cache.state(KEY)
        assert isinstance(state, Stale) and state.refreshing
        second = await cache.get(KEY, source, POLICY)
        await asyncio.sleep(0.01)
        return [first, second, await cache.get(KEY, source, POLICY)]

    assert asyncio.run(run()) == ["v1", "v1", "v2"]
    assert source.calls == 2


def test_expired_entries_block_on_a_fetch() -> None:
    clock = Clock()
    cache = EntityCache(now=clock)
    source = Source()

    async def run() -> str:
        await cache.get(KEY, source, POLICY)
        clock.advance(601)
        assert isinstance(cache.state(KEY), Expired)
        assert cache.peek(KEY).value is None
        return await cache.get(KEY, source, POLICY)

    assert asyncio.run(run()) == "v2"


def test_concurrent_misses_share_one_fetch() -> None:
    cache = EntityCache(now=Clock())
    source = Source()

    async def run() -> list[str]:
        return await asyncio.gather(*(cache.get(KEY, source, POLICY) for _ in range(4)))

    assert asyncio.run(run()) == ["v1"] * 4
    assert source.calls == 1


def test_failed_fetch_keeps_previous_value() -> None:
    cache = EntityCache(now=Clock())
    source = Source(fail_on={2})

    async def run() -> None:
        await cache.get(KEY, source, POLICY)
        cache.invalidate(KEY)
        with pytest.raises(RuntimeError, match="backend down"):
            await cache.get(KEY, source, POLICY)

    asyncio.run(run())

    snapshot = cache.peek(KEY)
    assert snapshot.value == "v1"
    assert snapshot.is_stale is True
    assert isinstance(snapshot.error, RuntimeError)
    assert asyncio.run(cache.get(KEY, source, POLICY)) == "v3"
    assert cache.peek(KEY).error is None


def test_retries_reinvoke_the_fetcher() -> None:
    cache = EntityCache(now=Clock())
    source = Source(fail_on={1})

    assert asyncio.run(cache.get(KEY, source, CachePolicy(stale_after=60, expire_after=600, retries=1))) == "v2"
    assert source.calls == 2


def test_client_errors_are_not_retried() -> None:
    cache = EntityCache(now=Clock())
    not_found = NotFoundError(code="NOT_FOUND", message="gone", details=None, trace_id=None, status_code=404)
    source = Source(fail_on={1}, error=not_found)

    with pytest.raises(NotFoundError):
        asyncio.run(cache.get(KEY, source, CachePolicy(stale_after=60, expire_after=600, retries=3)))
    assert source.calls == 1


def test_invalidate_prefix_leaves_other_families_untouched() -> None:
    clock = Clock()
    cache = EntityCache(now=clock)
    cache.set(("inventory", "list"), ["a"], POLICY)
    cache.set(("inventory", "list", "brand", "acme"), ["a"], POLICY)
    cache.set(("inventory", "detail", "1"), "a", POLICY)
    cache.set(("reference", "brands"), ["b"], POLICY)
    before = cache.peek(("reference", "brands")).fetched_at

    clock.advance(5)
    hits = cache.invalidate(("inventory", "list"))

    assert hits == 2
    assert isinstance(cache.state(("inventory", "list", "brand", "acme")), Expired)
    assert isinstance(cache.state(("inventory", "detail", "1")), Fresh)
    assert isinstance(cache.state(("reference", "brands")), Fresh)
    assert cache.peek(("reference", "brands")).fetched_at == before
    assert cache.peek(("inventory", "list")).value == ["a"]


def test_invalidation_during_fetch_marks_result_invalidated() -> None:
    cache = EntityCache(now=Clock())

    async def run() -> None:
        gate = asyncio.Event()

        async def fetch() -> str:
            await gate.wait()
            return "before-mutation"

        pending = asyncio.ensure_future(cache.get(KEY, fetch, POLICY))
        await asyncio.sleep(0)
        cache.invalidate(("inventory",))
        gate.set()
        assert await pending == "before-mutation"

    asyncio.run(run())

    assert isinstance(cache.state(KEY), Expired)


def test_evict_removes_entries() -> None:
    cache = EntityCache(now=Clock())
    cache.set(("inventory", "list"), ["a"], POLICY)
    cache.set(("store", "profile"), "p", POLICY)

    assert cache.evict(("inventory",)) == 1
    assert cache.peek(("inventory", "list")).value is None
    assert cache.peek(("store", "profile")).value == "p"


def test_placeholder_is_shown_until_real_fetch() -> None:
    cache = EntityCache(now=Clock())
    key = ("inventory", "detail", "1")
    cache.set_placeholder(key, lambda: "from-list")

    placeholder = cache.peek(key)
    assert placeholder.value == "from-list"
    assert placeholder.is_placeholder is True

    async def fetch() -> str:
        return "from-detail"

    assert asyncio.run(cache.get(key, fetch, POLICY)) == "from-detail"
    real = cache.peek(key)
    assert real.value == "from-detail"
    assert real.is_placeholder is False


def test_snapshot_round_trip_decodes_lazily(tmp_path: Path) -> None:
    clock = Clock()
    snapshot = SnapshotFile(tmp_path / "cache.json", buster="1.0")
    cache = EntityCache(snapshot=snapshot, now=clock)
    cache.set(("reference", "brands"), [Brand(id=1, name="Acme")], POLICY)
    cache.set(("docs",), {"links": []}, CachePolicy(stale_after=60, expire_after=600, persist=False))
    cache.flush()

    payload = json.loads((tmp_path / "cache.json").read_text(encoding="utf-8"))
    assert payload["buster"] == "1.0"
    assert [entry["key"] for entry in payload["entries"]] == [["reference", "brands"]]

    clock.advance(10)
    restored = EntityCache(snapshot=SnapshotFile(tmp_path / "cache.json", buster="1.0"), now=clock)
    restored.register_decoder(("reference", "brands"), lambda raw: [Brand.model_validate(row) for row in raw])

    assert restored.init() == 1
    brands = restored.get_cached(("reference", "brands"))
    assert brands == [Brand(id=1, name="Acme")]
    assert isinstance(restored.state(("reference", "brands")), Fresh)


def test_snapshot_with_other_buster_or_too_old_is_discarded(tmp_path: Path) -> None:
    clock = Clock()
    long_lived = CachePolicy(stale_after=60, expire_after=3 * 24 * 3600)
    cache = EntityCache(snapshot=SnapshotFile(tmp_path / "cache.json", buster="1.0"), now=clock)
    cache.set(("reference", "brands"), [], long_lived)
    cache.flush()

    other_version = EntityCache(snapshot=SnapshotFile(tmp_path / "cache.json", buster="2.0"), now=clock)
    assert other_version.init() == 0
    assert not (tmp_path / "cache.json").exists()

    cache.set(("reference", "brands"), [], long_lived)
    cache.flush()
    clock.advance(1.5 * 24 * 3600)
    too_old = EntityCache(snapshot=SnapshotFile(tmp_path / "cache.json", buster="1.0"), now=clock)
    assert too_old.init() == 0


def test_corrupt_snapshot_is_ignored(tmp_path: Path) -> None:
    (tmp_path / "cache.json").write_text("{not json", encoding="utf-8")

    cache = EntityCache(snapshot=SnapshotFile(tmp_path / "cache.json", buster="1.0"), now=Clock())

    assert cache.init() == 0
    assert not (tmp_path / "cache.json").exists()


def test_clear_drops_memory_and_snapshot(tmp_path: Path) -> None:
    cache = EntityCache(snapshot=SnapshotFile(tmp_path / "cache.json", buster="1.0"), now=Clock())
    cache.set(KEY, ["a"], POLICY)
    cache.flush()

    cache.clear()

    assert cache.keys() == []
    assert not (tmp_path / "cache.json").exists()


def test_clear_during_fetch_discards_the_result() -> None:
    cache = EntityCache(now=Clock())

    async def run() -> str:
        async def fetch() -> str:
            cache.clear()
            return "other-user"

        return await cache.refetch(KEY, fetch, POLICY)

    with pytest.raises(asyncio.CancelledError):
        asyncio.run(run())
    assert cache.keys() == []


def test_prefetch_fills_the_cache_in_the_background() -> None:
    cache = EntityCache(now=Clock())
    source = Source()

    async def run() -> str:
        cache.prefetch(KEY, source, POLICY)
        cache.prefetch(KEY, source, POLICY)
        await asyncio.sleep(0.01)
        cache.prefetch(KEY, source, POLICY)
        return await cache.get(KEY, source, POLICY)

    assert asyncio.run(run()) == "v1"
    assert source.calls == 1


def test_refetch_does_not_join_an_older_flight() -> None:
    cache = EntityCache(now=Clock())
    fetch_calls: list[str] = []

    async def run() -> tuple[str, str]:
        gate = asyncio.Event()

        async def before_write() -> str:
            fetch_calls.append("before")
            await gate.wait()
            return "before-write"

        async def after_write() -> str:
            fetch_calls.append("after")
            return "after-write"

        older = asyncio.ensure_future(cache.get(KEY, before_write, POLICY))
        await asyncio.sleep(0)
        fresh = await cache.refetch(KEY, after_write, POLICY)
        gate.set()
        return fresh, await older

    fresh, older = asyncio.run(run())

    assert fetch_calls == ["before", "after"]
    assert fresh == "after-write"
    assert older == "before-write"
    # the older flight finished last but must not replace the newer value
    assert cache.get_cached(KEY) == "after-write"


def test_invalidation_only_marks_flights_started_before_it() -> None:
    cache = EntityCache(now=Clock())

    async def run() -> None:
        gate = asyncio.Event()

        async def slow() -> str:
            await gate.wait()
            return "slow"

        async def quick() -> str:
            return "quick"

        pending = asyncio.ensure_future(cache.get(KEY, slow, POLICY))
        await asyncio.sleep(0)
        cache.invalidate(KEY)
        assert await cache.refetch(KEY, quick, POLICY) == "quick"
        gate.set()
        await pending

    asyncio.run(run())

    assert isinstance(cache.state(KEY), Fresh)
    assert cache.get_cached(KEY) == "quick"


def test_invalidation_reaches_a_flight_that_refetch_replaced() -> None:
    cache = EntityCache(now=Clock())

    async def run() -> None:
        gate = asyncio.Event()

        async def slow() -> str:
            await gate.wait()
            return "slow"

        async def failing() -> str:
            raise RuntimeError("backend down")

        pending = asyncio.ensure_future(cache.get(KEY, slow, POLICY))
        await asyncio.sleep(0)
        with pytest.raises(RuntimeError):
            await cache.refetch(KEY, failing, POLICY)
        cache.invalidate(KEY)
        gate.set()
        assert await pending == "slow"

    asyncio.run(run())

    assert isinstance(cache.state(KEY), Expired)
    assert cache.peek(KEY).value == "slow"
    assert cache.peek(KEY).is_stale is True
