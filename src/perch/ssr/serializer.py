"""Snapshot serialization for the three inline payloads.

Each payload is JSON inside ``<script type="application/json">``. The
browser ends a script element at the first ``</script``, whatever JSON
thinks of it, so every payload goes through ``escape_json`` first:
``<``, ``>``, ``&`` and the line separators U+2028/U+2029 become
``\\uXXXX`` escapes. ``JSON.parse`` (and ``json.loads``) read them back
as the original characters.

Payloads::

    __PERCH_QUERY_STATE__  {"queries": [{"queryKey", "queryHash", "state"}]}
    __PERCH_FLAG__         {"isSSR": true, "version": 1}
    __PERCH_STYLE_IDS__    {"ids": ["css-1x2y", ...]}

Parsing is strict: anything that does not match the schema raises
``ClientParseFailure`` and the client treats the payload as absent.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from typing import Any

from perch.data.cache import CacheEntry, QueryCache, QueryError, QueryState
from perch.errors import ClientParseFailure, SerializationFailure

logger = logging.getLogger("perch.render")

STATE_ID = "__PERCH_QUERY_STATE__"
FLAG_ID = "__PERCH_FLAG__"
STYLE_IDS_ID = "__PERCH_STYLE_IDS__"

FLAG_VERSION = 1

_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}
_ESCAPE_TABLE = str.maketrans(_ESCAPES)


def escape_json(text: str) -> str:
    """Make JSON text safe to embed inside a ``<script>`` element."""
    return text.translate(_ESCAPE_TABLE)


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


# -- Query cache --


def _encode_entry(entry: CacheEntry) -> dict[str, Any]:
    state = entry.state
    error = None
    if state.error is not None:
        error = {"name": state.error.name, "message": state.error.message}
    return {
        "queryKey": list(entry.key),
        "queryHash": entry.hash,
        "state": {
            "status": state.status,
            "data": state.data,
            "error": error,
            "dataUpdatedAt": state.updated_at,
        },
    }


def serialize(cache: Iterable[CacheEntry]) -> str:
    """Dehydrate the terminal entries of *cache* into the state payload.

    Pending entries are left out: the client must never mistake an
    unfinished fetch for data. An entry whose data JSON cannot encode is
    dropped with a warning and the rest of the payload is kept.
    """
    queries: list[str] = []
    for entry in cache:
        if not entry.state.is_terminal:
            continue
        try:
            queries.append(_dumps(_encode_entry(entry)))
        except (TypeError, ValueError, RecursionError) as exc:
            logger.warning("%s", SerializationFailure(entry.hash, exc))
    return escape_json('{"queries":[' + ",".join(queries) + "]}")


def _decode_state(element_id: str, raw: Any) -> QueryState:
    if not isinstance(raw, dict):
        raise ClientParseFailure(element_id, "query state is not an object")
    status = raw.get("status")
    if status not in ("success", "error"):
        raise ClientParseFailure(element_id, f"non-terminal status {status!r}")
    error = raw.get("error")
    query_error = None
    if error is not None:
        if not isinstance(error, dict):
            raise ClientParseFailure(element_id, "query error is not an object")
        query_error = QueryError(name=str(error.get("name", "Error")), message=str(error.get("message", "")))
    updated_at = raw.get("dataUpdatedAt", 0)
    if not isinstance(updated_at, int):
        raise ClientParseFailure(element_id, "dataUpdatedAt is not an integer")
    return QueryState(status=status, data=raw.get("data"), error=query_error, updated_at=updated_at)


def deserialize(text: str) -> QueryCache:
    """Rebuild a ``QueryCache`` from a state payload.

    Keys are restored from ``queryKey``, so the client computes the same
    hash for them that the server did.
    """
    payload = _loads(STATE_ID, text)
    queries = payload.get("queries")
    if not isinstance(queries, list):
        raise ClientParseFailure(STATE_ID, "missing 'queries' list")
    cache = QueryCache()
    for item in queries:
        if not isinstance(item, dict) or not isinstance(item.get("queryKey"), list):
            raise ClientParseFailure(STATE_ID, "query without a 'queryKey' list")
        cache.set_state(tuple(_freeze(item["queryKey"])), _decode_state(STATE_ID, item.get("state")))
    return cache


def _freeze(key: list[Any]) -> list[Any]:
    # JSON arrays inside a key come back as lists; keys are tuples
    return [tuple(_freeze(part)) if isinstance(part, list) else part for part in key]


# -- Style ids --


def serialize_style_ids(record: Iterable[str]) -> str:
    return escape_json(_dumps({"ids": list(record)}))


def parse_style_ids(text: str) -> tuple[str, ...]:
    payload = _loads(STYLE_IDS_ID, text)
    ids = payload.get("ids")
    if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
        raise ClientParseFailure(STYLE_IDS_ID, "'ids' is not a list of strings")
    return tuple(ids)


# -- SSR flag --


def serialize_flag(*, is_ssr: bool = True) -> str:
    return escape_json(_dumps({"isSSR": is_ssr, "version": FLAG_VERSION}))


def parse_flag(text: str) -> bool:
    """Return whether the document was server-rendered.

    Only ``{"isSSR": true, "version": FLAG_VERSION}`` counts. A payload
    from another schema version is treated as absent, never guessed at.
    """
    payload = _loads(FLAG_ID, text)
    if payload.get("version") != FLAG_VERSION:
        raise ClientParseFailure(FLAG_ID, f"unsupported version {payload.get('version')!r}")
    is_ssr = payload.get("isSSR")
    if not isinstance(is_ssr, bool):
        raise ClientParseFailure(FLAG_ID, "'isSSR' is not a boolean")
    return is_ssr


def _loads(element_id: str, text: str | None) -> dict[str, Any]:
    if text is None or not text.strip():
        raise ClientParseFailure(element_id, "payload is empty")
    try:
        payload = json.loads(text)
    except ValueError as exc:
        raise ClientParseFailure(element_id, f"invalid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ClientParseFailure(element_id, "payload is not an object")
    return payload
