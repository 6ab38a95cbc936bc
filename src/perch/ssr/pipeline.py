"""Per-request render pipeline.

Pipeline::

    ctx = RequestContext.from_asgi(scope)

    1. Match the path against the route tree (no match: status 404)
    2. Prefetch every matched loader into ctx.cache; all settle first
    3. Render the branch (buffered, or streamed until the ready event)
    4. A redirect() during render turns the response into a redirect
    5. Serialize the cache, style record and flag
    6. Assemble the document shell around the markup
    7. Write it through a StreamWriter, which always ends the response

Steps 1-6 live in ``build_page`` so they can be exercised without a
transport; ``render_page`` adds step 7.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import anyio

from perch._internal.asgi import Send
from perch.config import AppConfig
from perch.context import RequestContext
from perch.data.prefetch import prefetch
from perch.http.response import Response, redirect_response
from perch.render.engine import Renderer, RenderResult
from perch.routing.router import RouteTree
from perch.server.bootstrap import bootstrap_snippet
from perch.server.sender import StreamWriter, send_response
from perch.ssr.document import DocumentParts, assemble

logger = logging.getLogger("perch.server")


@dataclass(frozen=True, slots=True)
class Page:
    """A fully assembled document, ready to write."""

    status: int
    document: str
    result: RenderResult


async def render_result(
    tree: RouteTree,
    renderer: Renderer,
    ctx: RequestContext,
    *,
    mode: str = "streaming",
) -> RenderResult:
    """Match, prefetch and render for *ctx*."""
    matches = tree.match(ctx.path)
    if not matches:
        ctx.status = 404

    await prefetch(matches, ctx.cache)
    pending = ctx.cache.pending_hashes()
    if pending:
        # Every loader must settle before render; prefetch guarantees it
        logger.warning("Rendering with unsettled queries: %s", pending)

    if mode == "buffered":
        return renderer.render_to_string(matches, ctx.cache, request=ctx)

    stream = renderer.render_to_stream(matches, ctx.cache, request=ctx)
    async with anyio.create_task_group() as tg:
        tg.start_soon(stream.run)
        result = await stream.wait()
    return result


async def build_page(
    tree: RouteTree,
    renderer: Renderer,
    ctx: RequestContext,
    config: AppConfig,
) -> Page | Response:
    """Everything up to the bytes: a redirect ``Response`` or a ``Page``."""
    result = await render_result(tree, renderer, ctx, mode=config.render_mode)

    if ctx.redirect_to is not None:
        logger.debug("Render redirected %s -> %s", ctx.path, ctx.redirect_to)
        return redirect_response(ctx.redirect_to, ctx.redirect_status)

    parts = DocumentParts.from_result(
        result,
        root_id=config.root_id,
        html_lang=config.html_lang,
        bootstrap=bootstrap_snippet(config.root_id) if config.bootstrap_runtime else "",
    )
    ctx.dehydrated_state = parts.state
    return Page(status=ctx.status, document=assemble(parts), result=result)


async def render_page(
    tree: RouteTree,
    renderer: Renderer,
    ctx: RequestContext,
    config: AppConfig,
    send: Send,
) -> None:
    """Run the whole pipeline for one request and write the response."""
    page = await build_page(tree, renderer, ctx, config)
    if isinstance(page, Response):
        await send_response(page, send)
        return

    writer = StreamWriter(send, chunk_size=config.write_chunk_size)
    await writer.write_document(page.status, page.document)
    if writer.failure is not None:
        logger.debug("Discarded response for %s: %s", ctx.url, writer.failure)
