"""Client bootstrap: resume a server-rendered document.

Mirrors what the browser runtime does (``perch.server.bootstrap``) for a
Python client, so the hydration contract can be exercised end to end::

    1. Parse the document; locate the flag, state and style-id payloads
    2. Parse each one; any failure means "absent"
    3. Flag valid (isSSR true, known version)?
       yes: hydrate
            - restore the query cache from the state payload
            - mark the server's style ids as already present
            - fetch only what the snapshot lacks (usually nothing)
            - render the same branch
            - reconcile against the existing root, reusing nodes
            - if that render fails, cold start instead
       no:  cold start
            - empty caches; run the matched loaders
            - render and replace the root's content

Restored queries count as fresh: nothing is refetched because the
window regained focus or the client mounted.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal
from urllib.parse import unquote, urlsplit

from perch.client.dom import Mismatch, Node, parse_fragment, parse_html, reconcile
from perch.data.cache import QueryCache
from perch.data.prefetch import prefetch
from perch.errors import ClientParseFailure
from perch.http.query import QueryParams
from perch.render.engine import RenderResult
from perch.render.styles import StyleSheet
from perch.ssr.serializer import (
    FLAG_ID,
    STATE_ID,
    STYLE_IDS_ID,
    deserialize,
    parse_flag,
    parse_style_ids,
)

if TYPE_CHECKING:
    from perch.app import App

logger = logging.getLogger("perch.client")

type BootMode = Literal["hydrate", "cold-start"]


@dataclass(frozen=True, slots=True)
class BootResult:
    """What booting one document did."""

    mode: BootMode
    document: Node
    root: Node
    cache: QueryCache
    styles: StyleSheet
    render: RenderResult
    reused_nodes: int = 0
    mismatches: tuple[Mismatch, ...] = ()
    errors: tuple[ClientParseFailure, ...] = ()
    # Restored queries are fresh; focus never triggers a refetch
    refetch_on_window_focus: bool = False

    @property
    def hydrated(self) -> bool:
        return self.mode == "hydrate"

    @property
    def loader_calls(self) -> int:
        return self.cache.fetch_count

    @property
    def navigations(self) -> tuple[str, ...]:
        return self.render.navigations

    @property
    def markup(self) -> str:
        """The root's content after boot."""
        return self.root.inner_html()


def _route_path(url: str) -> str:
    """Decoded path of *url*, as ASGI servers hand it to the app."""
    return unquote(urlsplit(url).path) or "/"


@dataclass(frozen=True, slots=True)
class _Payloads:
    cache: QueryCache
    style_ids: tuple[str, ...]


class ClientBootstrap:
    """Boots documents produced by *app* against the same routes and components.

    Usage::

        result = await ClientBootstrap(app).boot(response.text, "/jobs/42")
        assert result.hydrated and result.loader_calls == 0
    """

    __slots__ = ("app",)

    def __init__(self, app: App) -> None:
        self.app = app

    # -- Payloads --

    @staticmethod
    def _payload[T](document: Node, element_id: str, parse: Callable[[str], T]) -> T:
        element = document.get_element_by_id(element_id)
        if element is None:
            raise ClientParseFailure(element_id, "element not found")
        return parse(element.text_content())

    def read_payloads(self, document: Node) -> _Payloads:
        """Parse all three payloads; raises ``ClientParseFailure`` on the first bad one."""
        if not self._payload(document, FLAG_ID, parse_flag):
            raise ClientParseFailure(FLAG_ID, "document was not server-rendered")
        return _Payloads(
            cache=self._payload(document, STATE_ID, deserialize),
            style_ids=self._payload(document, STYLE_IDS_ID, parse_style_ids),
        )

    # -- Boot --

    async def boot(self, document: str, url: str = "/") -> BootResult:
        dom = parse_html(document)
        root_id = self.app.config.root_id
        root = dom.get_element_by_id(root_id)

        try:
            if root is None:
                raise ClientParseFailure(root_id, "root element not found")
            payloads = self.read_payloads(dom)
        except ClientParseFailure as exc:
            logger.warning("Cold start: %s", exc)
            return await self.cold_start(dom, url, errors=(exc,))
        assert root is not None
        return await self.hydrate(dom, root, url, payloads)

    async def hydrate(self, dom: Node, root: Node, url: str, payloads: _Payloads) -> BootResult:
        # Only entries the server could not snapshot are fetched here
        await prefetch(self.app.tree.match(_route_path(url)), payloads.cache)
        styles = StyleSheet(self.app.renderer.style_key)
        styles.restore(payloads.style_ids)
        render = self._render(url, payloads.cache, styles, client_only=False)
        if not render.ok:
            logger.warning("Hydration render failed, cold start: %s", render.error)
            return await self.cold_start(dom, url)

        reused, mismatches = reconcile(root, parse_fragment(render.markup))
        for mismatch in mismatches:
            logger.warning(
                "Hydration mismatch at %s: expected %s, found %s",
                mismatch.path,
                mismatch.expected,
                mismatch.actual,
            )
        return BootResult(
            mode="hydrate",
            document=dom,
            root=root,
            cache=payloads.cache,
            styles=styles,
            render=render,
            reused_nodes=reused,
            mismatches=tuple(mismatches),
        )

    async def cold_start(
        self,
        dom: Node,
        url: str,
        *,
        errors: tuple[ClientParseFailure, ...] = (),
    ) -> BootResult:
        cache = QueryCache()
        styles = StyleSheet(self.app.renderer.style_key)
        await prefetch(self.app.tree.match(_route_path(url)), cache)
        render = self._render(url, cache, styles, client_only=True)

        root = dom.get_element_by_id(self.app.config.root_id)
        if root is None:
            root = Node("div", attrs={"id": self.app.config.root_id})
            (dom.find("body") or dom).append(root)
        root.replace_children(parse_fragment(render.markup))
        return BootResult(
            mode="cold-start",
            document=dom,
            root=root,
            cache=cache,
            styles=styles,
            render=render,
            errors=errors,
        )

    def _render(self, url: str, cache: QueryCache, styles: StyleSheet, *, client_only: bool) -> RenderResult:
        return self.app.renderer.render_to_string(
            self.app.tree.match(_route_path(url)),
            cache,
            search_params=QueryParams(urlsplit(url).query),
            styles=styles,
            client_only=client_only,
        )
