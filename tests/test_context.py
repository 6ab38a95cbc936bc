"""Tests for perch.context: per-request state and its lifetime."""

import anyio
import pytest

from perch.context import RequestContext, get_request_context, request_scope


class TestRequestContext:
    def test_from_asgi(self) -> None:
        ctx = RequestContext.from_asgi(
            {
                "path": "/jobs",
                "method": "GET",
                "query_string": b"tab=remote&page=2",
                "headers": [(b"Accept", b"text/html"), (b"accept", b"*/*")],
            }
        )
        assert ctx.path == "/jobs"
        assert ctx.query["tab"] == "remote"
        assert ctx.query.get_int("page") == 2
        assert ctx.headers == {"accept": "text/html"}
        assert ctx.url == "/jobs?tab=remote&page=2"
        assert len(ctx.cache) == 0

    def test_url_without_query(self) -> None:
        assert RequestContext(path="/jobs").url == "/jobs"

    def test_first_redirect_wins(self) -> None:
        ctx = RequestContext(path="/old")
        ctx.redirect("/jobs", 301)
        ctx.redirect("/elsewhere", 302)
        assert (ctx.redirect_to, ctx.redirect_status) == ("/jobs", 301)

    def test_fresh_cache_per_context(self) -> None:
        assert RequestContext(path="/").cache is not RequestContext(path="/").cache


class TestRequestScope:
    def test_binds_and_resets(self) -> None:
        ctx = RequestContext(path="/jobs")
        with request_scope(ctx):
            assert get_request_context() is ctx
        with pytest.raises(LookupError):
            get_request_context()

    def test_cache_cleared_on_exit(self) -> None:
        ctx = RequestContext(path="/jobs")
        with request_scope(ctx):
            ctx.cache.set_data(("jobs",), [1, 2])
        assert len(ctx.cache) == 0

    def test_cache_cleared_when_request_fails(self) -> None:
        ctx = RequestContext(path="/jobs")
        with pytest.raises(RuntimeError), request_scope(ctx):
            ctx.cache.set_data(("jobs",), [1, 2])
            raise RuntimeError("boom")
        assert len(ctx.cache) == 0

    async def test_concurrent_requests_are_isolated(self) -> None:
        seen: dict[str, str] = {}

        async def handle(path: str) -> None:
            with request_scope(RequestContext(path=path)):
                await anyio.sleep(0)
                seen[path] = get_request_context().path

        async with anyio.create_task_group() as tg:
            tg.start_soon(handle, "/a")
            tg.start_soon(handle, "/b")
        assert seen == {"/a": "/a", "/b": "/b"}
