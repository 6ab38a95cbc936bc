"""Request-scoped data: the query cache and the loader prefetch phase."""

from perch.data.cache import QueryCache, QueryError, QueryState, hash_query_key
from perch.data.prefetch import prefetch

__all__ = [
    "QueryCache",
    "QueryError",
    "QueryState",
    "hash_query_key",
    "prefetch",
]
