"""Query cache: loader results keyed by a stable hash of the query key.

One ``QueryCache`` exists per request on the server and per page load
on the client. Nothing here is module-level state: a cache shared by
concurrent requests would leak one user's data into another response.

States follow the loader lifecycle::

    pending ──► success
            └─► error

Only terminal states (success, error) are ever serialized.
"""

from __future__ import annotations

import json
import time
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, Literal

from perch._internal.invoke import invoke

type QueryStatus = Literal["pending", "success", "error"]

TERMINAL: frozenset[str] = frozenset({"success", "error"})


def hash_query_key(key: tuple[Any, ...] | list[Any]) -> str:
    """Stable string identity for a query key.

    Object parts hash independently of their key order, so
    ``("jobs", {"page": 1, "limit": 12})`` and
    ``("jobs", {"limit": 12, "page": 1})`` share one entry.
    """
    return json.dumps(list(key), sort_keys=True, separators=(",", ":"), default=str)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class QueryError:
    """A loader failure captured as plain data.

    Stored instead of the exception itself so error entries survive the
    trip through the inline payload unchanged.
    """

    name: str
    message: str

    @classmethod
    def from_exception(cls, exc: BaseException) -> QueryError:
        return cls(name=type(exc).__name__, message=str(exc))


@dataclass(frozen=True, slots=True)
class QueryState:
    """The state of one cache entry."""

    status: QueryStatus
    data: Any = None
    error: QueryError | None = None
    updated_at: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """A cache entry: the key alongside its state."""

    key: tuple[Any, ...]
    hash: str
    state: QueryState


class QueryCache:
    """Mapping from query hash to ``CacheEntry``.

    Keys keep their identity across the server/client boundary: the hash
    is derived from the key alone, and the dehydrated payload carries
    both so the client reconstructs the exact same entries.

    Usage::

        cache = QueryCache()
        await cache.fetch(("home-page",), load_home, {})
        cache.get_data(("home-page",))
    """

    __slots__ = ("_entries", "fetch_count")

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}
        # Loader invocations made through this cache
        self.fetch_count: int = 0

    # -- Reads --

    def __contains__(self, key: object) -> bool:
        if isinstance(key, str):
            return key in self._entries
        if isinstance(key, (tuple, list)):
            return hash_query_key(key) in self._entries
        return False

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[CacheEntry]:
        return iter(list(self._entries.values()))

    def __repr__(self) -> str:
        states = ", ".join(f"{h}: {e.state.status}" for h, e in self._entries.items())
        return f"<QueryCache {{{states}}}>"

    def get_state(self, key: tuple[Any, ...]) -> QueryState | None:
        entry = self._entries.get(hash_query_key(key))
        return entry.state if entry is not None else None

    def get_data(self, key: tuple[Any, ...], default: Any = None) -> Any:
        """Return the data for *key*, or *default* if absent or not successful."""
        state = self.get_state(key)
        if state is None or state.status != "success":
            return default
        return state.data

    def terminal_entries(self) -> list[CacheEntry]:
        """Entries in a terminal state, in insertion order."""
        return [e for e in self._entries.values() if e.state.is_terminal]

    def pending_hashes(self) -> list[str]:
        return [h for h, e in self._entries.items() if not e.state.is_terminal]

    # -- Writes --

    def set_state(self, key: tuple[Any, ...], state: QueryState) -> None:
        key = tuple(key)
        query_hash = hash_query_key(key)
        self._entries[query_hash] = CacheEntry(key=key, hash=query_hash, state=state)

    def set_data(self, key: tuple[Any, ...], data: Any) -> None:
        self.set_state(key, QueryState(status="success", data=data, updated_at=_now_ms()))

    def set_error(self, key: tuple[Any, ...], exc: BaseException) -> None:
        self.set_state(
            key,
            QueryState(
                status="error",
                error=QueryError.from_exception(exc),
                updated_at=_now_ms(),
            ),
        )

    def clear(self) -> None:
        self._entries.clear()

    async def fetch(
        self,
        key: tuple[Any, ...],
        loader: Any,
        params: dict[str, Any],
    ) -> QueryState:
        """Run *loader* for *key* unless the key is already present.

        The entry is marked pending before the loader starts, so a
        second ``fetch`` for the same key issued while the first is in
        flight does not call the loader again. Loader exceptions are
        recorded as an error state and re-raised to the caller.
        """
        existing = self.get_state(key)
        if existing is not None:
            return existing

        self.set_state(key, QueryState(status="pending"))
        self.fetch_count += 1
        try:
            data = await invoke(loader, params)
        except Exception as exc:
            self.set_error(key, exc)
            raise
        self.set_data(key, data)
        state = self.get_state(key)
        assert state is not None
        return state
