"""Render engine: matched route branch to markup.

The branch renders inside-out. The innermost matched entry renders
first; its markup becomes ``outlet`` for the entry that wraps it, up to
the outermost layout::

    matches: [layout.html, jobs/layout.html, jobs/detail.html]

    detail = render("jobs/detail.html", outlet="")
    section = render("jobs/layout.html", outlet=detail)
    page = render("layout.html", outlet=section)      # streamed

Two modes:

- ``render_to_string()`` renders everything and returns a ``RenderResult``.
- ``render_to_stream()`` returns a ``StreamingRender``. Its ``run()``
  pulls chunks from kida's ``render_stream()`` for the outermost
  template, buffers them, and sets the ``ready`` event once the whole
  tree is done. ``wait()`` is the completion signal the writer awaits
  before flushing, so crawlers and the hydrating client always get the
  complete document.

A render that raises is contained: it is logged, and the result carries
``markup == ""`` and the error. Records gathered before the failure are
discarded so the document never references styles or chunks of markup
that was not sent.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field

import anyio
import anyio.lowlevel
from kida import Environment
from kida.template import Markup

from perch.context import RequestContext
from perch.data.cache import CacheEntry, QueryCache
from perch.errors import RenderFailure
from perch.http.query import QueryParams
from perch.render.chunks import ChunkExtractor, ChunkManifest
from perch.render.head import HeadCollector
from perch.render.scope import Element, RenderScope
from perch.render.styles import STYLE_KEY, StyleSheet
from perch.routing.route import RouteMatch
from perch.server.terminal_errors import log_error

logger = logging.getLogger("perch.render")


@dataclass(frozen=True, slots=True)
class RenderResult:
    """Everything one render produced. Consumed once by the assembler."""

    markup: str
    styles: tuple[str, ...]
    style_markup: str
    chunks: tuple[str, ...]
    link_tags: str
    chunk_style_tags: str
    script_tags: str
    cache: tuple[CacheEntry, ...]
    head: HeadCollector = field(default_factory=HeadCollector)
    navigations: tuple[str, ...] = ()
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Renderer:
    """Renders matched branches against one shared, read-only environment.

    The environment, component registry and manifest are process-wide.
    Every render builds its own ``RenderScope`` with a fresh style sheet,
    chunk extractor and head collector.
    """

    __slots__ = ("components", "entrypoints", "env", "manifest", "not_found_template", "style_key")

    def __init__(
        self,
        env: Environment,
        *,
        components: Mapping[str, Element] | None = None,
        manifest: ChunkManifest | None = None,
        entrypoints: tuple[str, ...] = ("client",),
        not_found_template: str | None = None,
        style_key: str = STYLE_KEY,
    ) -> None:
        self.env = env
        self.components: Mapping[str, Element] = components or {}
        self.manifest = manifest or ChunkManifest.empty()
        self.entrypoints = entrypoints
        self.not_found_template = not_found_template
        self.style_key = style_key

    def new_scope(
        self,
        cache: QueryCache,
        *,
        request: RequestContext | None = None,
        search_params: QueryParams | None = None,
        styles: StyleSheet | None = None,
        client_only: bool = False,
    ) -> RenderScope:
        return RenderScope(
            env=self.env,
            components=self.components,
            cache=cache,
            styles=styles if styles is not None else StyleSheet(self.style_key),
            chunks=ChunkExtractor(self.manifest, self.entrypoints),
            request=request,
            search_params=search_params,
            client_only=client_only,
        )

    # -- Tree --

    def iter_tree(self, scope: RenderScope, matches: Sequence[RouteMatch]) -> Iterator[str]:
        """Yield the branch's markup; only the outermost template streams."""
        branch = [m for m in matches if m.entry.element is not None]
        if not branch:
            if self.not_found_template is not None:
                yield from scope.stream_element(
                    self.not_found_template, {"params": {}, "outlet": Markup("")}
                )
            return

        outlet = Markup("")
        for match in reversed(branch[1:]):
            assert match.entry.element is not None
            outlet = Markup(
                scope.render_element(match.entry.element, {"params": match.params, "outlet": outlet})
            )
        root = branch[0]
        assert root.entry.element is not None
        yield from scope.stream_element(root.entry.element, {"params": root.params, "outlet": outlet})

    # -- Results --

    def finish(self, scope: RenderScope, markup: str) -> RenderResult:
        return RenderResult(
            markup=markup,
            styles=scope.styles.get_record(),
            style_markup=scope.styles.to_markup(),
            chunks=scope.chunks.get_record(),
            link_tags=scope.chunks.get_link_tags(),
            chunk_style_tags=scope.chunks.get_style_tags(),
            script_tags=scope.chunks.get_script_tags(),
            cache=tuple(scope.cache),
            head=scope.head,
            navigations=tuple(scope.navigations),
        )

    def fail(self, scope: RenderScope, exc: Exception) -> RenderResult:
        """Contain a render error: log it, keep the data, drop the records."""
        request = scope.request
        where = f" {request.method} {request.url}" if request is not None else ""
        log_error(exc, request, prefix=f"Render failed{where}", log=logger)

        failure = RenderFailure(f"{type(exc).__name__}: {exc}")
        failure.__cause__ = exc
        empty = ChunkExtractor(self.manifest, self.entrypoints)
        return RenderResult(
            markup="",
            styles=(),
            style_markup="",
            chunks=(),
            link_tags=empty.get_link_tags(),
            chunk_style_tags=empty.get_style_tags(),
            script_tags=empty.get_script_tags(),
            cache=tuple(scope.cache),
            error=failure,
        )

    # -- Modes --

    def render_scope(self, scope: RenderScope, matches: Sequence[RouteMatch]) -> RenderResult:
        try:
            markup = "".join(self.iter_tree(scope, matches))
        except Exception as exc:
            return self.fail(scope, exc)
        return self.finish(scope, markup)

    def render_to_string(
        self,
        matches: Sequence[RouteMatch],
        cache: QueryCache,
        *,
        request: RequestContext | None = None,
        search_params: QueryParams | None = None,
        styles: StyleSheet | None = None,
        client_only: bool = False,
    ) -> RenderResult:
        """Buffered render. Never raises for errors inside the tree."""
        scope = self.new_scope(
            cache, request=request, search_params=search_params, styles=styles, client_only=client_only
        )
        return self.render_scope(scope, matches)

    def render_to_stream(
        self,
        matches: Sequence[RouteMatch],
        cache: QueryCache,
        *,
        request: RequestContext | None = None,
        search_params: QueryParams | None = None,
    ) -> StreamingRender:
        """Streaming render; start ``run()`` in a task group, then ``wait()``."""
        scope = self.new_scope(cache, request=request, search_params=search_params)
        return StreamingRender(self, scope, matches)


class StreamingRender:
    """A render driven chunk by chunk, released in one flush.

    Usage::

        stream = renderer.render_to_stream(matches, cache, request=ctx)
        async with anyio.create_task_group() as tg:
            tg.start_soon(stream.run)
            result = await stream.wait()
    """

    __slots__ = ("_chunks", "_matches", "_renderer", "_result", "ready", "scope")

    def __init__(self, renderer: Renderer, scope: RenderScope, matches: Sequence[RouteMatch]) -> None:
        self._renderer = renderer
        self._matches = matches
        self.scope = scope
        self._chunks: list[str] = []
        self._result: RenderResult | None = None
        self.ready = anyio.Event()

    @property
    def chunk_count(self) -> int:
        return len(self._chunks)

    async def run(self) -> None:
        try:
            for chunk in self._renderer.iter_tree(self.scope, self._matches):
                self._chunks.append(chunk)
                await anyio.lowlevel.checkpoint()
        except Exception as exc:
            self._result = self._renderer.fail(self.scope, exc)
        else:
            self._result = self._renderer.finish(self.scope, "".join(self._chunks))
        finally:
            self.ready.set()

    async def wait(self) -> RenderResult:
        """Block until the whole tree has rendered (the all-ready signal)."""
        await self.ready.wait()
        if self._result is None:
            msg = "Streaming render was cancelled before completing."
            raise RenderFailure(msg)
        return self._result
