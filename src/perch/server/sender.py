"""ASGI response sending.

``send_response`` sends a plain ``Response`` (redirects, 500 bodies) as
two ASGI messages. ``StreamWriter`` sends rendered documents: headers
first, then the body in bounded chunks, each one awaited, so a slow
client slows the writer down instead of piling bytes up in memory.

A client that goes away mid-response makes ``send()`` raise. The writer
records that as a ``TransportFailure``, logs it, and turns every later
write into a no-op. Nothing past the request boundary sees the error.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

import anyio

from perch._internal.asgi import Send
from perch.errors import TransportFailure
from perch.http.response import Response

logger = logging.getLogger("perch.server")

DEFAULT_CHUNK_SIZE = 16 * 1024

# What a closed or failing ASGI sink raises
_SINK_ERRORS = (OSError, RuntimeError, anyio.ClosedResourceError, anyio.BrokenResourceError)


def _body_allowed(status: int) -> bool:
    """Whether an HTTP status code permits a response body."""
    # RFC: 1xx, 204, and 304 responses do not include a message body.
    return not (100 <= status < 200 or status in {204, 304})


def _raw_headers(content_type: str, headers: Iterable[tuple[str, str]]) -> list[tuple[bytes, bytes]]:
    raw = [(b"content-type", content_type.encode("latin-1"))]
    raw.extend((name.lower().encode("latin-1"), value.encode("latin-1")) for name, value in headers)
    return raw


async def send_response(response: Response, send: Send) -> None:
    """Translate a ``Response`` into ASGI send() calls."""
    raw_headers = _raw_headers(response.content_type, response.headers)
    body = response.body_bytes if _body_allowed(response.status) else b""
    raw_headers.append((b"content-length", str(len(body)).encode("latin-1")))

    await send({"type": "http.response.start", "status": response.status, "headers": raw_headers})
    await send({"type": "http.response.body", "body": body})


class StreamWriter:
    """Writes one response to an ASGI ``send`` callable.

    Usage::

        writer = StreamWriter(send)
        await writer.write_document(200, document)

    or step by step with ``start()``, ``write()`` and ``close()``.
    ``write()`` awaits every ``send()`` before returning and holds at
    most one chunk, so it never queues output.
    """

    __slots__ = ("_send", "bytes_sent", "chunk_size", "closed", "failure", "started")

    def __init__(self, send: Send, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        if chunk_size <= 0:
            msg = f"chunk_size must be positive, got {chunk_size}"
            raise ValueError(msg)
        self._send = send
        self.chunk_size = chunk_size
        self.started = False
        self.closed = False
        self.failure: TransportFailure | None = None
        self.bytes_sent = 0

    @property
    def writable(self) -> bool:
        return self.started and not self.closed and self.failure is None

    async def _emit(self, message: dict[str, object]) -> bool:
        if self.failure is not None:
            return False
        try:
            await self._send(message)
        except _SINK_ERRORS as exc:
            self.failure = TransportFailure(f"{type(exc).__name__}: {exc}")
            self.failure.__cause__ = exc
            logger.info("Client went away after %d bytes: %s", self.bytes_sent, self.failure)
            return False
        return True

    async def start(
        self,
        status: int,
        headers: Iterable[tuple[str, str]] = (),
        *,
        content_type: str = "text/html; charset=utf-8",
    ) -> None:
        if self.started:
            msg = "Response already started."
            raise RuntimeError(msg)
        self.started = True
        raw_headers = _raw_headers(content_type, headers)
        await self._emit({"type": "http.response.start", "status": status, "headers": raw_headers})

    async def write(self, text: str | bytes) -> None:
        """Send *text* in chunks of at most ``chunk_size`` bytes."""
        if not self.writable or not text:
            return
        data = text.encode("utf-8") if isinstance(text, str) else text
        for offset in range(0, len(data), self.chunk_size):
            chunk = data[offset : offset + self.chunk_size]
            sent = await self._emit({"type": "http.response.body", "body": chunk, "more_body": True})
            if not sent:
                return
            self.bytes_sent += len(chunk)

    async def close(self) -> None:
        """End the response body. Only the first call sends anything."""
        if self.closed:
            return
        self.closed = True
        if self.started:
            await self._emit({"type": "http.response.body", "body": b"", "more_body": False})

    async def write_document(
        self,
        status: int,
        document: str,
        headers: Iterable[tuple[str, str]] = (),
    ) -> None:
        """Start, write and close; the response always ends."""
        try:
            await self.start(status, headers)
            await self.write(document)
        finally:
            with anyio.CancelScope(shield=True):
                await self.close()
