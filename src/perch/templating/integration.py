"""Kida environment setup.

Components are kida templates. The environment is created once during
``App._freeze()``, shared by every render, and never mutated after.
Per-render capabilities (``query``, ``css``, ``component`` and friends)
are passed in each render's context, not registered as globals, so
concurrent requests never see each other's state.
"""

import json
from collections.abc import Callable
from typing import Any

from kida import ChoiceLoader, Environment, FileSystemLoader

from perch.config import AppConfig


def _json_attr(value: Any) -> str:
    """Filter: a value as JSON for a ``data-*`` attribute (autoescaped after)."""
    return json.dumps(value, separators=(",", ":"), default=str)


BUILTIN_FILTERS: dict[str, Callable[..., Any]] = {
    "json_attr": _json_attr,
}


def create_environment(
    config: AppConfig,
    filters: dict[str, Callable[..., Any]] | None = None,
    globals_: dict[str, Any] | None = None,
) -> Environment:
    """Create a kida Environment from app configuration.

    Looks up components in ``config.template_dir`` first, then each of
    ``config.component_dirs`` in order.
    """
    loaders = [FileSystemLoader(str(config.template_dir))]
    loaders.extend(FileSystemLoader(str(d)) for d in config.component_dirs)

    env = Environment(
        loader=ChoiceLoader(loaders),
        autoescape=config.autoescape,
        auto_reload=config.debug,
        trim_blocks=config.trim_blocks,
        lstrip_blocks=config.lstrip_blocks,
    )
    env.update_filters(BUILTIN_FILTERS)
    if filters:
        env.update_filters(filters)
    for name, value in (globals_ or {}).items():
        env.add_global(name, value)
    return env
