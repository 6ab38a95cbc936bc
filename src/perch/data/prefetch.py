"""Loader prefetch: fan out every matched loader, fan in before render.

Pipeline::

    matches = tree.match("/jobs/42/edit")
    await prefetch(matches, cache)

    1. Keep matches that declare both query_key and load_data
    2. Drop keys already in the cache (at most one fetch per key per request)
    3. Run the remaining loaders concurrently (anyio.create_task_group)
    4. Return only after every loader reached success or error

A failing loader becomes an error entry under its own key; siblings keep
running and the render still happens.
"""

import logging
from collections.abc import Sequence
from typing import Any

import anyio

from perch.data.cache import QueryCache, hash_query_key
from perch.errors import LoaderFailure
from perch.routing.route import RouteMatch

logger = logging.getLogger("perch.data")


def plan_prefetch(
    matches: Sequence[RouteMatch],
    cache: QueryCache,
) -> list[tuple[tuple[Any, ...], Any, dict[str, Any]]]:
    """Select the loaders to run for *matches*, one per distinct key.

    Parent entries come first in *matches*, so when a parent and a child
    share a key the parent's loader wins.
    """
    planned: list[tuple[tuple[Any, ...], Any, dict[str, Any]]] = []
    seen: set[str] = set()
    for match in matches:
        entry = match.entry
        if not entry.prefetchable:
            continue
        key = tuple(entry.query_key or ())
        query_hash = hash_query_key(key)
        if query_hash in seen or query_hash in cache:
            continue
        seen.add(query_hash)
        planned.append((key, entry.load_data, match.params))
    return planned


async def prefetch(matches: Sequence[RouteMatch], cache: QueryCache) -> None:
    """Populate *cache* from the loaders of *matches*.

    Returns when every started loader is in a terminal state. Never
    raises for a loader failure.
    """
    planned = plan_prefetch(matches, cache)
    if not planned:
        return

    async def _load(key: tuple[Any, ...], loader: Any, params: dict[str, Any]) -> None:
        try:
            await cache.fetch(key, loader, params)
        except Exception as exc:
            failure = LoaderFailure(hash_query_key(key), exc)
            logger.warning("%s", failure)

    async with anyio.create_task_group() as tg:
        for key, loader, params in planned:
            tg.start_soon(_load, key, loader, params)

    logger.debug("prefetched %d queries", len(planned))
