"""Path parameter patterns and type conversion.

Route patterns use ``{name}`` segments with an optional converter,
``{id:int}``, and a trailing ``*`` splat that captures the rest of the
path (including nothing) under the ``"*"`` key.
"""

import re
from functools import cache

SPLAT = "*"

# (regex_pattern, python_type) for each supported converter
CONVERTERS: dict[str, tuple[str, type]] = {
    "str": (r"[^/]+", str),
    "int": (r"\d+", int),
    "float": (r"\d+(?:\.\d+)?", float),
    "path": (r".+", str),
}


@cache
def segment_regex(param_type: str) -> re.Pattern[str]:
    """Compiled full-match regex for one path segment of *param_type*."""
    pattern, _ = CONVERTERS[param_type]
    return re.compile(f"^{pattern}$")


def convert_param(value: str, param_type: str) -> str | int | float:
    """Convert a captured path parameter string to the target type.

    Raises ``ValueError`` if the string cannot be converted.
    Raises ``KeyError`` if *param_type* is not a registered converter.
    """
    _, target_type = CONVERTERS[param_type]
    return target_type(value)
