"""Per-render document head collection.

Components declare what belongs in ``<head>`` while they render::

    {{ head.title("Jobs") }}
    {{ head.meta(name="description", content="Open jobs") }}
    {{ head.html_attrs(lang="de") }}

Every call returns an empty string so it can sit anywhere in a template.
Layouts render inside-out (a page before the layout that wraps it), so
for ``title`` and root attributes the first call wins: the innermost
page overrides its layouts.
"""

from __future__ import annotations

import html

from kida.template import Markup

_EMPTY = Markup("")


def _attrs(attrs: dict[str, object]) -> str:
    parts: list[str] = []
    for name, value in attrs.items():
        if value is None or value is False:
            continue
        attr = name.rstrip("_").replace("_", "-")
        if value is True:
            parts.append(f" {attr}")
        else:
            parts.append(f' {attr}="{html.escape(str(value), quote=True)}"')
    return "".join(parts)


class HeadCollector:
    """Head tags and root-element attributes gathered during one render."""

    __slots__ = ("_body_attrs", "_html_attrs", "_links", "_metas", "_title")

    def __init__(self) -> None:
        self._title: str | None = None
        self._metas: list[dict[str, object]] = []
        self._links: list[dict[str, object]] = []
        self._html_attrs: dict[str, object] = {}
        self._body_attrs: dict[str, object] = {}

    def title(self, text: str) -> Markup:
        if self._title is None:
            self._title = str(text)
        return _EMPTY

    def meta(self, **attrs: object) -> Markup:
        if attrs not in self._metas:
            self._metas.append(attrs)
        return _EMPTY

    def link(self, **attrs: object) -> Markup:
        if attrs not in self._links:
            self._links.append(attrs)
        return _EMPTY

    def html_attrs(self, **attrs: object) -> Markup:
        for name, value in attrs.items():
            self._html_attrs.setdefault(name, value)
        return _EMPTY

    def body_attrs(self, **attrs: object) -> Markup:
        for name, value in attrs.items():
            self._body_attrs.setdefault(name, value)
        return _EMPTY

    # -- Output --

    def to_markup(self) -> str:
        """``<meta>`` tags, then ``<link>`` tags, then ``<title>``."""
        parts = [f"<meta{_attrs(m)}>" for m in self._metas]
        parts.extend(f"<link{_attrs(link)}>" for link in self._links)
        if self._title is not None:
            parts.append(f"<title>{html.escape(self._title)}</title>")
        return "".join(parts)

    def html_attributes(self, defaults: dict[str, object] | None = None) -> str:
        return _attrs({**(defaults or {}), **self._html_attrs})

    def body_attributes(self) -> str:
        return _attrs(self._body_attrs)
