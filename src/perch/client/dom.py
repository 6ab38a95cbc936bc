"""Minimal document model for the Python client.

Just enough DOM to boot a server-rendered document outside a browser:
parse it, find elements by id, read ``textContent``, reconcile a fresh
render against the existing root, and serialize back to HTML. Built on
the stdlib ``html.parser``, which treats ``<script>`` and ``<style>``
contents as raw text the way browsers do.
"""

from __future__ import annotations

import html
from collections.abc import Iterator
from dataclasses import dataclass, field
from html.parser import HTMLParser

VOID_ELEMENTS = frozenset(
    {"area", "base", "br", "col", "embed", "hr", "img", "input", "link", "meta", "source", "track", "wbr"}
)
RAW_TEXT_ELEMENTS = frozenset({"script", "style"})

TEXT = "#text"
COMMENT = "#comment"
DOCUMENT = "#document"


@dataclass(eq=False, slots=True)
class Node:
    """An element, text or comment node.

    Identity matters: hydration keeps existing ``Node`` objects and only
    replaces the ones that differ, so tests can check which survived.
    """

    tag: str
    attrs: dict[str, str] = field(default_factory=dict)
    children: list[Node] = field(default_factory=list)
    data: str = ""
    parent: Node | None = field(default=None, repr=False)

    @property
    def is_element(self) -> bool:
        return not self.tag.startswith("#")

    def append(self, child: Node) -> None:
        child.parent = self
        self.children.append(child)

    def replace_child(self, index: int, child: Node) -> None:
        self.children[index].parent = None
        child.parent = self
        self.children[index] = child

    def replace_children(self, children: list[Node]) -> None:
        for old in self.children:
            old.parent = None
        self.children = []
        for child in children:
            self.append(child)

    def iter(self) -> Iterator[Node]:
        """Depth-first, document order, including self."""
        yield self
        for child in self.children:
            yield from child.iter()

    def get_element_by_id(self, element_id: str) -> Node | None:
        for node in self.iter():
            if node.is_element and node.attrs.get("id") == element_id:
                return node
        return None

    def find(self, tag: str) -> Node | None:
        for node in self.iter():
            if node.tag == tag:
                return node
        return None

    def text_content(self) -> str:
        if self.tag == TEXT:
            return self.data
        if self.tag == COMMENT:
            return ""
        return "".join(child.text_content() for child in self.children)

    def inner_html(self) -> str:
        raw = self.tag in RAW_TEXT_ELEMENTS
        return "".join(child.outer_html(raw_text=raw) for child in self.children)

    def outer_html(self, *, raw_text: bool = False) -> str:
        if self.tag == TEXT:
            return self.data if raw_text else html.escape(self.data, quote=False)
        if self.tag == COMMENT:
            return f"<!--{self.data}-->"
        if self.tag == DOCUMENT:
            return self.inner_html()
        attrs = "".join(f' {name}="{html.escape(value)}"' for name, value in self.attrs.items())
        if self.tag in VOID_ELEMENTS:
            return f"<{self.tag}{attrs}>"
        return f"<{self.tag}{attrs}>{self.inner_html()}</{self.tag}>"


class _TreeBuilder(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.root = Node(DOCUMENT)
        self._stack: list[Node] = [self.root]

    @property
    def _current(self) -> Node:
        return self._stack[-1]

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        node = Node(tag, attrs={name: value or "" for name, value in attrs})
        self._current.append(node)
        if tag not in VOID_ELEMENTS:
            self._stack.append(node)

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        self._current.append(Node(tag, attrs={name: value or "" for name, value in attrs}))

    def handle_endtag(self, tag: str) -> None:
        # Close up to the nearest open element with this tag; ignore strays
        for depth in range(len(self._stack) - 1, 0, -1):
            if self._stack[depth].tag == tag:
                del self._stack[depth:]
                return

    def handle_data(self, data: str) -> None:
        siblings = self._current.children
        if siblings and siblings[-1].tag == TEXT:
            siblings[-1].data += data
        else:
            self._current.append(Node(TEXT, data=data))

    def handle_comment(self, data: str) -> None:
        self._current.append(Node(COMMENT, data=data))


def parse_html(text: str) -> Node:
    """Parse a full document into a ``#document`` node."""
    builder = _TreeBuilder()
    builder.feed(text)
    builder.close()
    return builder.root


def parse_fragment(text: str) -> list[Node]:
    """Parse markup into a detached list of top-level nodes."""
    nodes = parse_html(text).children
    for node in nodes:
        node.parent = None
    return nodes


# -- Reconciliation --


@dataclass(frozen=True, slots=True)
class Mismatch:
    """A place where the existing DOM differed from the fresh render."""

    path: str
    expected: str
    actual: str


def _describe(node: Node | None) -> str:
    if node is None:
        return "(nothing)"
    if node.tag == TEXT:
        return repr(node.data)
    if node.tag == COMMENT:
        return f"<!--{node.data}-->"
    return f"<{node.tag}{''.join(f' {k}={v!r}' for k, v in sorted(node.attrs.items()))}>"


def _same_shell(existing: Node, fresh: Node) -> bool:
    if existing.tag != fresh.tag:
        return False
    if existing.is_element:
        return existing.attrs == fresh.attrs
    return existing.data == fresh.data


def reconcile(parent: Node, fresh: list[Node], path: str = "") -> tuple[int, list[Mismatch]]:
    """Adopt *fresh* into *parent*, reusing every node that already matches.

    Returns the number of existing nodes kept and the mismatches found.
    A mismatching node is replaced by its fresh counterpart, subtree and
    all, as a browser's hydration recovery would.
    """
    reused = 0
    mismatches: list[Mismatch] = []
    existing = parent.children

    for index, new in enumerate(fresh):
        here = f"{path}/{new.tag}[{index}]"
        old = existing[index] if index < len(existing) else None
        if old is not None and _same_shell(old, new):
            reused += 1
            child_reused, child_mismatches = reconcile(old, new.children, here)
            reused += child_reused
            mismatches.extend(child_mismatches)
            continue
        mismatches.append(Mismatch(path=here, expected=_describe(new), actual=_describe(old)))
        if old is None:
            parent.append(new)
        else:
            parent.replace_child(index, new)

    for offset, extra in enumerate(existing[len(fresh) :], start=len(fresh)):
        mismatches.append(
            Mismatch(path=f"{path}/{extra.tag}[{offset}]", expected="(nothing)", actual=_describe(extra))
        )
        extra.parent = None
    del existing[len(fresh) :]
    return reused, mismatches
