"""Request-scoped context.

Provides:
- ``RequestContext``: everything one in-flight request owns: its path,
  query, headers, query cache, dehydrated-state slot, and redirect slot.
- ``request_var``: the current ``RequestContext`` for this task.
- ``request_scope()``: creates the binding at request start and discards
  it (and the cache it owns) at request end.

The context is also passed *explicitly* to templates as ``ctx``. On the
client there is no request, and templates see ``ctx`` as ``None``; that
is how a component tells the two environments apart.

Thread safety:
    ``ContextVar`` is task-local under asyncio/anyio. No locks needed.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field

from perch._internal.asgi import Scope
from perch.data.cache import QueryCache
from perch.http.query import QueryParams


@dataclass(slots=True)
class RequestContext:
    """Per-request state. Owned by exactly one in-flight request."""

    path: str
    method: str = "GET"
    query: QueryParams = field(default_factory=QueryParams)
    headers: dict[str, str] = field(default_factory=dict)
    cache: QueryCache = field(default_factory=QueryCache)

    # Filled by the pipeline
    dehydrated_state: str | None = None
    status: int = 200
    redirect_to: str | None = None
    redirect_status: int = 301

    @classmethod
    def from_asgi(cls, scope: Scope) -> RequestContext:
        """Build a fresh context from an ASGI HTTP scope."""
        headers: dict[str, str] = {}
        for name, value in scope.get("headers", ()):
            headers.setdefault(name.decode("latin-1").lower(), value.decode("latin-1"))
        return cls(
            path=scope["path"],
            method=scope.get("method", "GET"),
            query=QueryParams(scope.get("query_string", b"")),
            headers=headers,
        )

    @property
    def url(self) -> str:
        """Path plus query string, as the client requested it."""
        if self.query.raw:
            return f"{self.path}?{self.query.raw}"
        return self.path

    def redirect(self, to: str, status: int = 301) -> None:
        """Turn this response into a redirect.

        Called by the ``redirect()`` template capability during a server
        render. The first redirect wins.
        """
        if self.redirect_to is None:
            self.redirect_to = to
            self.redirect_status = status


request_var: ContextVar[RequestContext] = ContextVar("perch_request")
"""The current request context. Set by the ASGI handler around the pipeline."""


def get_request_context() -> RequestContext:
    """Return the current request context.

    Raises ``LookupError`` if called outside a request scope.
    """
    return request_var.get()


@contextmanager
def request_scope(ctx: RequestContext) -> Iterator[RequestContext]:
    """Bind *ctx* for the duration of one request, then discard it.

    The cache is cleared on exit so nothing the request fetched can be
    observed after its response ended.
    """
    token = request_var.set(ctx)
    try:
        yield ctx
    finally:
        request_var.reset(token)
        ctx.cache.clear()
