"""Perch exception hierarchy.

Shared across the router, prefetcher, renderer, serializer, writer, and
client bootstrap so every module raises and catches the same types.

Most of these are *contained* failures: the pipeline catches them at the
narrowest boundary that keeps the response valid and logs them there.
Only ``TransportFailure`` ends a response early.
"""

from dataclasses import dataclass


class PerchError(Exception):
    """Base for all perch-specific errors."""


class ConfigurationError(PerchError):
    """Raised when app configuration is invalid.

    Typically raised during ``App._freeze()`` at startup, or when a
    template references a component or chunk the app never registered.
    """


@dataclass(frozen=True, slots=True)
class HTTPError(PerchError):
    """An error that maps directly to an HTTP status code."""

    status: int
    detail: str = ""
    headers: tuple[tuple[str, str], ...] = ()

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)


class LoaderFailure(PerchError):
    """A route loader raised or rejected.

    Isolated to the loader's cache entry; sibling loaders and the render
    continue.
    """

    def __init__(self, query_hash: str, cause: BaseException) -> None:
        self.query_hash = query_hash
        self.cause = cause
        super().__init__(f"loader for {query_hash} failed: {type(cause).__name__}: {cause}")


class RenderFailure(PerchError):
    """The component tree raised while rendering.

    Caught at the top of the render engine; the response still completes
    with fallback markup.
    """


class SerializationFailure(PerchError):
    """A cache value could not be encoded into the inline payload.

    The offending entry is omitted; the rest of the payload is kept.
    """

    def __init__(self, query_hash: str, cause: BaseException) -> None:
        self.query_hash = query_hash
        self.cause = cause
        super().__init__(f"cannot serialize {query_hash}: {cause}")


class TransportFailure(PerchError):
    """The response sink closed early or errored mid-stream."""


class ClientParseFailure(PerchError):
    """An inline payload was missing or malformed on the client.

    The bootstrap falls back to a cold-start render.
    """

    def __init__(self, element_id: str, reason: str) -> None:
        self.element_id = element_id
        self.reason = reason
        super().__init__(f"#{element_id}: {reason}")
