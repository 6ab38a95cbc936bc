"""HTML assembler: the document shell around one render.

The order of the parts is fixed and the client depends on it::

    <!DOCTYPE html>
    <html {html attrs}>
    <head>
      {head tags}                       meta, link, title
      {chunk link tags}                 preload hints
      {style tags}                      extracted rules, then chunk CSS
    </head>
    <body {body attrs}>
      <div id="root">{markup}</div>
      <script id="__PERCH_FLAG__">      isSSR + version
      <script id="__PERCH_QUERY_STATE__">
      <script id="__PERCH_STYLE_IDS__">
      <script>{bootstrap runtime}</script>
      <script id="__PERCH_REQUIRED_CHUNKS__"> + chunk scripts
    </body>
    </html>

All three payloads come before any script that could read them, and the
chunk scripts come last, so by the time application code runs the data
cache is already in the DOM.
"""

from __future__ import annotations

import html
from dataclasses import dataclass

from perch.render.engine import RenderResult
from perch.ssr.serializer import FLAG_ID, STATE_ID, STYLE_IDS_ID, serialize, serialize_flag, serialize_style_ids


@dataclass(frozen=True, slots=True)
class DocumentParts:
    """Pre-rendered fragments in document order."""

    head_tags: str = ""
    link_tags: str = ""
    style_tags: str = ""
    markup: str = ""
    flag: str = ""
    state: str = ""
    style_ids: str = ""
    bootstrap: str = ""
    script_tags: str = ""
    html_attrs: str = ""
    body_attrs: str = ""
    root_id: str = "root"

    @classmethod
    def from_result(
        cls,
        result: RenderResult,
        *,
        root_id: str = "root",
        html_lang: str = "en",
        bootstrap: str = "",
    ) -> DocumentParts:
        """Serialize a render result into document parts.

        A failed render is marked ``isSSR: false`` so the client renders
        from scratch instead of hydrating an empty root.
        """
        return cls(
            head_tags=result.head.to_markup(),
            link_tags=result.link_tags,
            style_tags=result.style_markup + result.chunk_style_tags,
            markup=result.markup,
            flag=serialize_flag(is_ssr=result.ok),
            state=serialize(result.cache),
            style_ids=serialize_style_ids(result.styles),
            bootstrap=bootstrap,
            script_tags=result.script_tags,
            html_attrs=result.head.html_attributes({"lang": html_lang}),
            body_attrs=result.head.body_attributes(),
            root_id=root_id,
        )


def _json_script(element_id: str, payload: str) -> str:
    return f'<script id="{element_id}" type="application/json">{payload}</script>'


def assemble(parts: DocumentParts) -> str:
    """Join *parts* into the full HTML document."""
    root_id = html.escape(parts.root_id, quote=True)
    return "".join(
        (
            "<!DOCTYPE html>",
            f"<html{parts.html_attrs}>",
            "<head>",
            '<meta charset="utf-8">',
            parts.head_tags,
            parts.link_tags,
            parts.style_tags,
            "</head>",
            f"<body{parts.body_attrs}>",
            f'<div id="{root_id}">{parts.markup}</div>',
            _json_script(FLAG_ID, parts.flag),
            _json_script(STATE_ID, parts.state),
            _json_script(STYLE_IDS_ID, parts.style_ids),
            parts.bootstrap,
            parts.script_tags,
            "</body>",
            "</html>",
        )
    )
