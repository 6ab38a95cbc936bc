"""Invoke helpers: call sync or async loaders and hooks uniformly.

Route loaders and lifecycle hooks can be ``def`` or ``async def``. Any
code that calls one must handle both cases. This module provides a
single helper so the sync/async check lives in exactly one place.

Usage::

    from perch._internal.invoke import invoke

    result = await invoke(loader, params)
"""

import inspect
from typing import Any


async def invoke(func: Any, *args: Any, **kwargs: Any) -> Any:
    """Call *func* and await the result if it's awaitable.

    Works with both sync and async callables::

        # sync: returns immediately
        def load_home(params):
            return {"title": "Home"}

        # async: the coroutine is awaited here
        async def load_job(params):
            return await jobs.get(params["id"])
    """
    result = func(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result
