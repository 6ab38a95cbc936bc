"""Style extraction: atomic class rules recorded in insertion order.

Templates request styling with ``css("color: red; padding: 4px")``. The
sheet hashes the declarations into a stable class name, records the
rule the first time it sees that name, and returns the class name::

    <div class="{{ css('display: flex; gap: 8px') }}">

The same declarations always produce the same identifier, on the server
and on the client. Re-inserting an identifier during one render is a
no-op, and identifiers restored from the server's style-id payload are
never emitted again by the client.
"""

import hashlib
import re

STYLE_KEY = "css"

_WS = re.compile(r"\s+")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(number: int) -> str:
    if number == 0:
        return "0"
    digits: list[str] = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def normalize_rule(declarations: str) -> str:
    """Collapse whitespace and trailing semicolons so cosmetic edits hash equal."""
    text = _WS.sub(" ", declarations).strip().rstrip(";").strip()
    return text


def style_id(declarations: str, key: str = STYLE_KEY) -> str:
    """The class name for *declarations*: ``css-<base36 hash>``."""
    digest = hashlib.blake2b(normalize_rule(declarations).encode("utf-8"), digest_size=6)
    return f"{key}-{_base36(int.from_bytes(digest.digest(), 'big'))}"


def _escape_style_text(text: str) -> str:
    # "<" never appears in valid declarations; escaping it keeps "</style>" inert
    return text.replace("<", "\\3c ")


class StyleSheet:
    """One render's style record.

    Create a fresh sheet per request on the server and per page load on
    the client. A sheet shared between concurrent requests would emit one
    user's rules into another user's document.
    """

    __slots__ = ("_present", "_rules", "key")

    def __init__(self, key: str = STYLE_KEY) -> None:
        self.key = key
        # id -> full rule text, insertion order
        self._rules: dict[str, str] = {}
        # ids already present in the document (restored on the client)
        self._present: set[str] = set()

    def insert(self, declarations: str) -> str:
        """Record *declarations* and return their class name."""
        class_name = style_id(declarations, self.key)
        if class_name in self._rules or class_name in self._present:
            return class_name
        self._rules[class_name] = f".{class_name}{{{normalize_rule(declarations)};}}"
        return class_name

    def restore(self, ids: list[str] | tuple[str, ...]) -> None:
        """Mark *ids* as already present in the document."""
        self._present.update(ids)

    def get_record(self) -> tuple[str, ...]:
        """Identifiers inserted by this render, in first-insertion order."""
        return tuple(self._rules)

    @property
    def inserted_ids(self) -> tuple[str, ...]:
        """Every identifier the document holds: restored first, then new."""
        restored = tuple(sorted(self._present - self._rules.keys()))
        return restored + self.get_record()

    def rule(self, class_name: str) -> str | None:
        return self._rules.get(class_name)

    def to_markup(self) -> str:
        """One ``<style>`` tag per recorded identifier."""
        return "".join(
            f'<style data-perch-{self.key}="{class_name}">{_escape_style_text(rule)}</style>'
            for class_name, rule in self._rules.items()
        )
