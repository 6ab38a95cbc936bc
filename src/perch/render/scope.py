"""Render scope: the capabilities one render pass hands to its templates.

Templates never reach for process-wide state. Everything they can do is
passed in their context by the scope that owns this render:

=================  ==========================================================
``ctx``            The ``RequestContext`` on the server, ``None`` on the client
``params``         Path params of the matched route entry
``outlet``         Markup of the child entry (layouts render it where it goes)
``search_params``  Query parameters, server request or client URL alike
``query(*key)``    Cached loader data for a query key, or ``None``
``query_state()``  The full ``QueryState`` (status, error) for a key
``css(decls)``     Records a style rule, returns its class name
``component()``    Renders a registered component, recording its chunk
``redirect(to)``   Server: redirect response. Client: navigation
``head``           ``HeadCollector`` for title/meta/link and root attrs
=================  ==========================================================
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any

from kida import Environment
from kida.template import Markup

from perch.context import RequestContext
from perch.data.cache import QueryCache, QueryState
from perch.errors import ConfigurationError
from perch.http.query import QueryParams
from perch.render.chunks import ChunkExtractor, Loadable
from perch.render.head import HeadCollector
from perch.render.styles import StyleSheet

type Element = str | Loadable

_EMPTY = Markup("")


class RenderScope:
    """Per-render state and the template-facing capabilities over it.

    Instantiate once per render pass. The registry, environment and
    manifest it references are process-wide and read-only; everything
    else it holds belongs to this render alone.
    """

    __slots__ = (
        "_components",
        "_env",
        "cache",
        "chunks",
        "client_only",
        "head",
        "navigations",
        "request",
        "search_params",
        "styles",
    )

    def __init__(
        self,
        *,
        env: Environment,
        components: Mapping[str, Element],
        cache: QueryCache,
        styles: StyleSheet,
        chunks: ChunkExtractor,
        request: RequestContext | None = None,
        search_params: QueryParams | None = None,
        client_only: bool = False,
    ) -> None:
        self._env = env
        self._components = components
        self.cache = cache
        self.styles = styles
        self.chunks = chunks
        self.head = HeadCollector()
        self.request = request
        # Render ssr=False components (client cold start only)
        self.client_only = client_only
        if search_params is None:
            search_params = request.query if request is not None else QueryParams()
        self.search_params = search_params
        # Client-side redirects, in call order
        self.navigations: list[str] = []

    # -- Capabilities --

    def query(self, *key: Any) -> Any:
        return self.cache.get_data(key)

    def query_state(self, *key: Any) -> QueryState | None:
        return self.cache.get_state(key)

    def css(self, declarations: str) -> str:
        return self.styles.insert(declarations)

    def redirect(self, to: str, status: int = 301) -> Markup:
        if self.request is not None:
            self.request.redirect(to, status)
        else:
            self.navigations.append(to)
        return _EMPTY

    def component(self, name: str, /, **props: Any) -> Markup:
        element = self._components.get(name)
        if element is None:
            msg = f"Component {name!r} is not registered."
            raise ConfigurationError(msg)
        return Markup(self.render_element(element, props))

    def capabilities(self) -> dict[str, Any]:
        return {
            "ctx": self.request,
            "search_params": self.search_params,
            "query": self.query,
            "query_state": self.query_state,
            "css": self.css,
            "component": self.component,
            "redirect": self.redirect,
            "head": self.head,
        }

    # -- Element rendering --

    def context_for(self, extra: Mapping[str, Any]) -> dict[str, Any]:
        return {**self.capabilities(), **extra}

    def resolve_template(self, element: Element) -> str | None:
        """Template name to render for *element*, recording its chunk.

        Returns ``None`` when an ``ssr=False`` ``Loadable`` should render
        its fallback (server renders and hydration).
        """
        if isinstance(element, Loadable):
            self.chunks.collect(element.chunk)
            if not element.ssr and not self.client_only:
                return None
            return element.template
        return element

    def render_element(self, element: Element, extra: Mapping[str, Any]) -> str:
        template_name = self.resolve_template(element)
        if template_name is None:
            assert isinstance(element, Loadable)
            return element.fallback
        template = self._env.get_template(template_name)
        return template.render(self.context_for(extra))

    def stream_element(self, element: Element, extra: Mapping[str, Any]) -> Iterator[str]:
        """Like ``render_element`` but yields kida ``render_stream()`` chunks."""
        template_name = self.resolve_template(element)
        if template_name is None:
            assert isinstance(element, Loadable)
            yield element.fallback
            return
        template = self._env.get_template(template_name)
        yield from template.render_stream(self.context_for(extra))


