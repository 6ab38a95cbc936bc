"""ASGI handler: the only component that touches raw ASGI scopes.

Builds a ``RequestContext`` from the scope, binds it for the request's
lifetime, runs the render pipeline, and maps anything that escapes the
pipeline to a response. The context and its query cache are discarded
when the response has ended, whatever happened.
"""

import html
import logging

from perch._internal.asgi import Receive, Scope, Send
from perch.config import AppConfig
from perch.context import RequestContext, request_scope
from perch.errors import HTTPError
from perch.http.response import Response
from perch.render.engine import Renderer
from perch.routing.router import RouteTree
from perch.server.sender import send_response
from perch.server.terminal_errors import log_error
from perch.ssr.pipeline import render_page

logger = logging.getLogger("perch.server")

_ALLOWED_METHODS = frozenset({"GET", "HEAD"})


def error_response(status: int, detail: str = "", headers: tuple[tuple[str, str], ...] = ()) -> Response:
    """Minimal HTML body for errors raised outside the render."""
    body = f'<div class="perch-error" data-status="{status}">{html.escape(detail)}</div>'
    return Response(body=body, status=status, headers=headers)


async def handle_request(
    scope: Scope,
    receive: Receive,
    send: Send,
    *,
    tree: RouteTree,
    renderer: Renderer,
    config: AppConfig,
) -> None:
    """Process a single HTTP request through the render pipeline."""
    if scope["type"] != "http":
        return

    ctx = RequestContext.from_asgi(scope)
    with request_scope(ctx):
        try:
            if ctx.method not in _ALLOWED_METHODS:
                raise HTTPError(
                    status=405,
                    detail="Method Not Allowed",
                    headers=(("Allow", ", ".join(sorted(_ALLOWED_METHODS))),),
                )
            await render_page(tree, renderer, ctx, config, send)
        except HTTPError as exc:
            logger.debug("%s %s -> %s", ctx.method, ctx.path, exc)
            await send_response(error_response(exc.status, exc.detail, exc.headers), send)
        except Exception as exc:
            log_error(exc, ctx)
            detail = f"{type(exc).__name__}: {exc}" if config.debug else "Internal Server Error"
            await send_response(error_response(500, detail), send)
