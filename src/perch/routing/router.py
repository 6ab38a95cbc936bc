"""Nested route tree with depth-first matching.

Routes are declared once at startup as a tree of ``RouteEntry`` values
and compiled into an immutable ``RouteTree``. ``match()`` returns the
whole branch from the outermost entry to the deepest, parent before
child, because child loaders may assume the parent's data is already
cached and child components render inside their parent's ``outlet``.
"""

from collections.abc import Iterator, Sequence
from typing import Any

from perch.errors import ConfigurationError
from perch.routing.params import CONVERTERS, SPLAT, convert_param, segment_regex
from perch.routing.route import PathSegment, RouteEntry, RouteMatch

# Ranking weights: static beats param beats splat
_STATIC_SCORE = 10
_PARAM_SCORE = 3
_INDEX_SCORE = 2
_SPLAT_PENALTY = -2


def parse_path(path: str) -> list[PathSegment]:
    """Parse a route path string into segments.

    Examples::

        "agents"           -> [PathSegment("agents")]
        "jobs/{id}"        -> [PathSegment("jobs"), PathSegment("{id}", is_param=True, ...)]
        "jobs/{id:int}"    -> [..., PathSegment("{id:int}", is_param=True, param_type="int")]
        "*"                -> [PathSegment("*", is_param=True, param_name="*", param_type="splat")]
    """
    segments: list[PathSegment] = []
    parts = [p for p in path.strip("/").split("/") if p]
    for i, part in enumerate(parts):
        if part.startswith("<") or part.startswith(":"):
            msg = (
                f"Route path {path!r} uses an unsupported parameter syntax. "
                f"Write parameters as {{param}} or {{param:int}}."
            )
            raise ConfigurationError(msg)
        if part == SPLAT:
            segments.append(
                PathSegment(value=part, is_param=True, param_name=SPLAT, param_type="splat")
            )
        elif part.startswith("{") and part.endswith("}"):
            inner = part[1:-1]
            if ":" in inner:
                param_name, param_type = inner.split(":", 1)
            else:
                param_name, param_type = inner, "str"
            if param_type not in CONVERTERS:
                msg = f"Unknown converter {param_type!r} in route path {path!r}."
                raise ConfigurationError(msg)
            segments.append(
                PathSegment(
                    value=part,
                    is_param=True,
                    param_name=param_name,
                    param_type=param_type,
                )
            )
        else:
            segments.append(PathSegment(value=part))

        if segments[-1].is_rest and i != len(parts) - 1:
            msg = f"Route path {path!r}: {part!r} must be the last segment."
            raise ConfigurationError(msg)
    return segments


class _CompiledEntry:
    """A route entry with its pre-parsed segments and compiled children."""

    __slots__ = ("children", "entry", "score", "segments")

    def __init__(self, entry: RouteEntry) -> None:
        self.entry = entry
        self.segments = parse_path(entry.path)
        self.children = _rank([_CompiledEntry(child) for child in entry.children])
        self.score = _score(entry, self.segments)


def _score(entry: RouteEntry, segments: list[PathSegment]) -> int:
    if entry.index:
        return _INDEX_SCORE
    score = 0
    for seg in segments:
        if not seg.is_param:
            score += _STATIC_SCORE
        elif seg.is_rest:
            score += _SPLAT_PENALTY
        else:
            score += _PARAM_SCORE
    return score


def _rank(entries: list[_CompiledEntry]) -> tuple[_CompiledEntry, ...]:
    # sorted() is stable: declaration order breaks ties
    return tuple(sorted(entries, key=lambda c: c.score, reverse=True))


class RouteTree:
    """Compiled, read-only route tree.

    Usage::

        tree = RouteTree([
            RouteEntry("/", element="layout.html", children=(
                RouteEntry(index=True, element="home.html"),
                RouteEntry("jobs/{id:int}", element="job.html"),
                RouteEntry("*", element="not_found.html"),
            )),
        ])
        matches = tree.match("/jobs/42")
        # -> [RouteMatch(layout), RouteMatch(job, params={"id": 42})]
    """

    __slots__ = ("_roots",)

    def __init__(self, entries: Sequence[RouteEntry]) -> None:
        for entry in self._walk(entries):
            if entry.index and entry.children:
                msg = f"Index route {entry.element!r} cannot have children."
                raise ConfigurationError(msg)
            if entry.index and entry.path:
                msg = f"Index route {entry.element!r} cannot declare a path ({entry.path!r})."
                raise ConfigurationError(msg)
        self._roots = _rank([_CompiledEntry(entry) for entry in entries])

    @property
    def entries(self) -> list[RouteEntry]:
        """Every entry in the tree, depth-first, in declaration order."""
        return list(self._walk(c.entry for c in self._roots))

    @staticmethod
    def _walk(entries: Any) -> Iterator[RouteEntry]:
        for entry in entries:
            yield entry
            yield from RouteTree._walk(entry.children)

    def match(self, path: str) -> list[RouteMatch]:
        """Match *path* against the tree.

        Returns the matched branch, outermost entry first. Returns an
        empty list if nothing matches; the caller renders its not-found
        branch. Never raises for an unmatched path.
        """
        parts = [p for p in path.split("?", 1)[0].strip("/").split("/") if p]
        branch = self._match_level(self._roots, parts, 0, {})
        if branch is None:
            return []
        return branch

    def _match_level(
        self,
        candidates: tuple[_CompiledEntry, ...],
        parts: list[str],
        index: int,
        params: dict[str, Any],
    ) -> list[RouteMatch] | None:
        for compiled in candidates:
            branch = self._match_entry(compiled, parts, index, params)
            if branch is not None:
                return branch
        return None

    def _match_entry(
        self,
        compiled: _CompiledEntry,
        parts: list[str],
        index: int,
        params: dict[str, Any],
    ) -> list[RouteMatch] | None:
        entry = compiled.entry

        if entry.index:
            if index != len(parts):
                return None
            return [RouteMatch(entry, dict(params), _pathname(parts, index))]

        consumed = _consume(compiled.segments, parts, index, params)
        if consumed is None:
            return None
        next_index, new_params = consumed
        here = RouteMatch(entry, new_params, _pathname(parts, next_index))

        if compiled.children:
            rest = self._match_level(compiled.children, parts, next_index, new_params)
            if rest is not None:
                return [here, *rest]

        if next_index == len(parts) and entry.element is not None:
            return [here]
        return None


def _consume(
    segments: list[PathSegment],
    parts: list[str],
    index: int,
    params: dict[str, Any],
) -> tuple[int, dict[str, Any]] | None:
    """Match *segments* as a prefix of ``parts[index:]``.

    Returns the next unconsumed index and the extended params, or
    ``None`` if the segments don't fit.
    """
    new_params = dict(params)
    i = index
    for seg in segments:
        if seg.is_rest:
            remaining = "/".join(parts[i:])
            if seg.param_type == "path" and not remaining:
                return None
            new_params[seg.param_name or SPLAT] = remaining
            return len(parts), new_params
        if i >= len(parts):
            return None
        part = parts[i]
        if not seg.is_param:
            if part != seg.value:
                return None
        else:
            if not segment_regex(seg.param_type).match(part):
                return None
            try:
                new_params[seg.param_name or ""] = convert_param(part, seg.param_type)
            except ValueError:
                return None
        i += 1
    return i, new_params


def _pathname(parts: list[str], upto: int) -> str:
    return "/" + "/".join(parts[:upto])
