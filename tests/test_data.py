"""Tests for perch.data: query cache and loader prefetch."""

import logging
from typing import Any

import anyio
import pytest

from perch.data.cache import QueryCache, QueryState, hash_query_key
from perch.data.prefetch import plan_prefetch, prefetch
from perch.routing.route import RouteEntry, RouteMatch


def _match(key: tuple | None, loader: Any, **params: Any) -> RouteMatch:
    return RouteMatch(RouteEntry("x", element="x.html", query_key=key, load_data=loader), params)


class TestHashQueryKey:
    def test_object_key_order_does_not_matter(self) -> None:
        assert hash_query_key(("jobs", {"page": 1, "limit": 12})) == hash_query_key(
            ("jobs", {"limit": 12, "page": 1})
        )

    def test_tuple_and_list_hash_equal(self) -> None:
        assert hash_query_key(("job", 7)) == hash_query_key(["job", 7])

    def test_distinct_keys_differ(self) -> None:
        assert hash_query_key(("job", 7)) != hash_query_key(("job", "7"))


class TestQueryCache:
    async def test_fetch_stores_success(self) -> None:
        cache = QueryCache()
        state = await cache.fetch(("home",), lambda params: {"ok": True}, {})
        assert state.status == "success"
        assert cache.get_data(("home",)) == {"ok": True}
        assert cache.fetch_count == 1
        assert state.updated_at > 0

    async def test_fetch_existing_key_skips_loader(self) -> None:
        cache = QueryCache()
        calls = 0

        async def loader(params: dict) -> int:
            nonlocal calls
            calls += 1
            return calls

        await cache.fetch(("n",), loader, {})
        await cache.fetch(("n",), loader, {})
        assert calls == 1
        assert cache.get_data(("n",)) == 1

    async def test_fetch_error_recorded_and_raised(self) -> None:
        cache = QueryCache()

        def loader(params: dict) -> None:
            raise LookupError("no such job")

        with pytest.raises(LookupError):
            await cache.fetch(("job",), loader, {})
        state = cache.get_state(("job",))
        assert state is not None
        assert state.status == "error"
        assert state.error is not None
        assert state.error.name == "LookupError"
        assert state.error.message == "no such job"
        assert cache.get_data(("job",), "fallback") == "fallback"

    def test_contains_by_key_or_hash(self) -> None:
        cache = QueryCache()
        cache.set_data(("jobs", 2), [])
        assert ("jobs", 2) in cache
        assert ["jobs", 2] in cache
        assert hash_query_key(("jobs", 2)) in cache
        assert ("jobs", 3) not in cache
        assert 42 not in cache

    def test_terminal_entries_exclude_pending(self) -> None:
        cache = QueryCache()
        cache.set_data(("a",), 1)
        cache.set_state(("b",), QueryState(status="pending"))
        assert [e.key for e in cache.terminal_entries()] == [("a",)]
        assert cache.pending_hashes() == [hash_query_key(("b",))]

    def test_clear(self) -> None:
        cache = QueryCache()
        cache.set_data(("a",), 1)
        cache.clear()
        assert len(cache) == 0


class TestPlanPrefetch:
    def test_skips_entries_without_loader(self) -> None:
        matches = [_match(("a",), None), _match(None, lambda p: 1), _match(("c",), lambda p: 3)]
        assert [key for key, _, _ in plan_prefetch(matches, QueryCache())] == [("c",)]

    def test_shared_key_planned_once(self) -> None:
        first, second = (lambda p: "parent"), (lambda p: "child")
        planned = plan_prefetch([_match(("k",), first), _match(("k",), second)], QueryCache())
        assert len(planned) == 1
        assert planned[0][1] is first

    def test_cached_key_not_planned(self) -> None:
        cache = QueryCache()
        cache.set_data(("k",), "already")
        assert plan_prefetch([_match(("k",), lambda p: "again")], cache) == []


class TestPrefetch:
    async def test_loaders_run_concurrently(self) -> None:
        started = anyio.Event()

        async def waits(params: dict) -> str:
            await started.wait()
            return "waited"

        async def signals(params: dict) -> str:
            started.set()
            return "signalled"

        cache = QueryCache()
        with anyio.fail_after(2):
            await prefetch([_match(("a",), waits), _match(("b",), signals)], cache)
        assert cache.get_data(("a",)) == "waited"
        assert cache.get_data(("b",)) == "signalled"

    async def test_loader_receives_match_params(self) -> None:
        seen: list[dict] = []

        def loader(params: dict) -> None:
            seen.append(params)

        await prefetch([_match(("job",), loader, id=7)], QueryCache())
        assert seen == [{"id": 7}]

    async def test_no_duplicate_fetch(self) -> None:
        calls = 0

        async def loader(params: dict) -> str:
            nonlocal calls
            calls += 1
            await anyio.sleep(0)
            return "data"

        cache = QueryCache()
        matches = [_match(("shared",), loader), _match(("shared",), loader)]
        await prefetch(matches, cache)
        await prefetch(matches, cache)
        assert calls == 1
        assert cache.fetch_count == 1

    async def test_failure_isolated_and_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        async def boom(params: dict) -> None:
            raise ConnectionError("upstream down")

        cache = QueryCache()
        with caplog.at_level(logging.WARNING, logger="perch.data"):
            await prefetch([_match(("bad",), boom), _match(("good",), lambda p: "fine")], cache)

        assert cache.get_data(("good",)) == "fine"
        bad = cache.get_state(("bad",))
        assert bad is not None and bad.status == "error"
        assert "upstream down" in caplog.text
        assert cache.pending_hashes() == []

    async def test_nothing_to_do(self) -> None:
        cache = QueryCache()
        await prefetch([], cache)
        assert len(cache) == 0
