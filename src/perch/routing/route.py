"""RouteEntry and RouteMatch frozen dataclasses."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from perch.render.chunks import Loadable

# A query key is a tuple of JSON-compatible parts: ("jobs",) or ("job-detail", 42)
type QueryKey = tuple[Any, ...]

# A route loader receives the matched path params; sync or async
type Loader = Callable[[dict[str, Any]], Any]


@dataclass(frozen=True, slots=True)
class PathSegment:
    """A parsed segment of a route path.

    Static:  ``users``     (is_param=False)
    Param:   ``{id}``      (is_param=True, param_name="id")
    Typed:   ``{id:int}``  (is_param=True, param_name="id", param_type="int")
    Splat:   ``*``         (is_param=True, param_name="*", param_type="splat")
    """

    value: str
    is_param: bool = False
    param_name: str | None = None
    param_type: str = "str"

    @property
    def is_rest(self) -> bool:
        """True for segments that consume the remainder of the path."""
        return self.param_type in ("splat", "path")


@dataclass(frozen=True, slots=True)
class RouteEntry:
    """One node of the route tree.

    ``element`` is the component rendered for this entry: a template
    name, or a ``Loadable`` for code-split pages. Entries without an
    element are pathless groupings that only contribute their children.

    ``query_key`` and ``load_data`` are both optional; an entry with
    neither participates in rendering but not in prefetching::

        RouteEntry(
            "jobs/{id}",
            element="jobs/detail.html",
            query_key=("job-detail",),
            load_data=lambda params: jobs.get(params["id"]),
        )
    """

    path: str = ""
    element: str | Loadable | None = None
    query_key: QueryKey | None = None
    load_data: Loader | None = None
    index: bool = False
    children: tuple[RouteEntry, ...] = ()
    name: str | None = None

    @property
    def prefetchable(self) -> bool:
        """Whether this entry contributes a loader to the prefetch phase."""
        return self.query_key is not None and self.load_data is not None


@dataclass(frozen=True, slots=True)
class RouteMatch:
    """One matched entry of a request path.

    ``params`` holds every parameter captured so far, so a child's loader
    sees its parents' params too. ``pathname`` is the portion of the path
    consumed up to and including this entry.
    """

    entry: RouteEntry
    params: dict[str, Any] = field(default_factory=dict)
    pathname: str = "/"
