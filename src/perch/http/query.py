"""Search params shared by the server and the client.

The same type backs ``search_params`` on the server (from the ASGI
scope) and on the client (from the document URL), so a template reads
``search_params.get("tab")`` identically in both environments.
"""

from collections.abc import Iterator, Mapping
from urllib.parse import parse_qsl


class QueryParams(Mapping[str, str]):
    """Read-only view of a query string.

    Indexing yields the first value of a key; ``get_list`` yields all of
    them in the order they appeared.
    """

    __slots__ = ("_pairs", "_raw")

    def __init__(self, query_string: bytes | str = b"") -> None:
        if isinstance(query_string, bytes):
            query_string = query_string.decode("latin-1")
        self._raw = query_string.removeprefix("?")
        self._pairs = tuple(parse_qsl(self._raw, keep_blank_values=True))

    def __getitem__(self, key: str) -> str:
        for name, value in self._pairs:
            if name == key:
                return value
        raise KeyError(key)

    def __iter__(self) -> Iterator[str]:
        return iter(dict.fromkeys(name for name, _ in self._pairs))

    def __len__(self) -> int:
        return len({name for name, _ in self._pairs})

    def __eq__(self, other: object) -> bool:
        if isinstance(other, QueryParams):
            return self._pairs == other._pairs
        return super().__eq__(other)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"QueryParams({self._raw!r})"

    @property
    def raw(self) -> str:
        """The query string, without a leading ``?``."""
        return self._raw

    def get_list(self, key: str) -> list[str]:
        return [value for name, value in self._pairs if name == key]

    def get_int(self, key: str, default: int | None = None) -> int | None:
        """First value of *key* as an int; *default* when absent or not numeric."""
        value = self.get(key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            return default
