"""Terminal error formatting for contained failures.

Render failures, internal handler errors and transport failures are
logged here instead of with a raw ``logger.exception()``, so the
terminal shows the frames that matter.

For kida template errors:
    Calls ``exc.format_compact()`` and adds the request line::

        -- Template Error -----------------------------------------------
        K-RUN-001: Undefined variable 'jobz' in jobs/list.html:12
        ...
          Route: GET /jobs
        -----------------------------------------------------------------

For everything else:
    Traceback verbosity (compact/full/minimal) comes from the
    ``PERCH_TRACEBACK`` environment variable. Defaults to compact.
"""

from __future__ import annotations

import logging
import os
import traceback as _traceback
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from perch.context import RequestContext

logger = logging.getLogger("perch.server")

_BANNER_WIDTH = 65
_STDLIB_PREFIX = os.path.dirname(os.__file__)


def _is_kida_error(exc: BaseException) -> bool:
    module = type(exc).__module__ or ""
    return "kida" in module


def _is_app_frame(filename: str) -> bool:
    """True if the frame is from the application (not stdlib/site-packages)."""
    if "site-packages" in filename or filename.startswith("<"):
        return False
    return not filename.startswith(_STDLIB_PREFIX)


def _route_line(request: RequestContext | None) -> str | None:
    if request is None:
        return None
    return f"  Route: {request.method} {request.url}"


def format_template_error(exc: BaseException, request: RequestContext | None = None) -> str:
    """Wrap kida's compact error with a banner and the request line."""
    parts = [f"-- Template Error {'-' * (_BANNER_WIDTH - 18)}"]
    if hasattr(exc, "format_compact"):
        parts.append(exc.format_compact())
    else:
        parts.append(str(exc))
    route = _route_line(request)
    if route is not None:
        parts.extend(("", route))
    parts.append("-" * _BANNER_WIDTH)
    return "\n".join(parts)


def format_compact_traceback(exc: BaseException) -> str:
    """Error summary plus at most five application frames.

    Falls back to the last three frames when none are application code.
    """
    tb = exc.__traceback__
    frames = _traceback.extract_tb(tb) if tb else []
    app_frames = [f for f in frames if _is_app_frame(f.filename)]
    display_frames = app_frames or frames[-3:]

    parts = [f"{type(exc).__name__}: {exc}"]
    if display_frames:
        parts.append("  Trace (app frames):")
        for frame in display_frames[-5:]:
            parts.append(f"    {frame.filename}:{frame.lineno} in {frame.name}")
            if frame.line:
                parts.append(f"      {frame.line.strip()}")
    return "\n".join(parts)


def format_minimal_error(exc: BaseException) -> str:
    """One line: type, innermost location, message."""
    tb = exc.__traceback__
    frames = _traceback.extract_tb(tb) if tb else []
    location = f" at {frames[-1].filename}:{frames[-1].lineno}" if frames else ""
    return f"{type(exc).__name__}{location}: {exc}"


def log_error(
    exc: BaseException,
    request: RequestContext | None = None,
    *,
    prefix: str | None = None,
    log: logging.Logger = logger,
) -> None:
    """Log a contained failure with the configured verbosity.

    Args:
        exc: The exception being contained.
        request: The request it happened in, when there is one (the
            client bootstrap has none).
        prefix: First line of the log record. Defaults to
            ``"500 GET /path"`` or ``"Server error"``.
        log: Logger to write to; renderers pass ``perch.render``.
    """
    if prefix is None:
        prefix = f"500 {request.method} {request.url}" if request is not None else "Server error"

    if _is_kida_error(exc):
        log.error("%s\n%s", prefix, format_template_error(exc, request))
        return

    style = os.environ.get("PERCH_TRACEBACK", "compact").lower()
    if style == "full":
        log.error(prefix, exc_info=exc)
    elif style == "minimal":
        log.error("%s: %s", prefix, format_minimal_error(exc))
    else:
        log.error("%s\n%s", prefix, format_compact_traceback(exc))
