"""Plain (non-streamed) HTTP responses.

Server-rendered pages go out through the ``StreamWriter``; these cover
everything else the handler answers with: redirects issued during
render, 405s, and the last-resort 500 body. The test client also
returns one per request.
"""

from __future__ import annotations

from dataclasses import dataclass, replace


@dataclass(frozen=True, slots=True)
class Response:
    """A complete response held in memory."""

    body: str | bytes = ""
    status: int = 200
    content_type: str = "text/html; charset=utf-8"
    headers: tuple[tuple[str, str], ...] = ()

    def with_header(self, name: str, value: str) -> Response:
        """Copy of this response with one more header."""
        return replace(self, headers=(*self.headers, (name, value)))

    @property
    def body_bytes(self) -> bytes:
        return self.body.encode("utf-8") if isinstance(self.body, str) else self.body

    @property
    def text(self) -> str:
        return self.body.decode("utf-8") if isinstance(self.body, bytes) else self.body

    def header(self, name: str) -> str | None:
        """First value of header *name*, compared case-insensitively."""
        wanted = name.lower()
        return next((value for key, value in self.headers if key.lower() == wanted), None)


def redirect_response(url: str, status: int = 302) -> Response:
    """An empty-bodied redirect to *url*."""
    return Response(status=status).with_header("Location", url)
