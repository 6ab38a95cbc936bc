"""Code-split chunk extraction.

The build emits a manifest mapping each chunk id to its script and
stylesheet files. During a render, every ``Loadable`` component that
actually renders reports its chunk to the request's ``ChunkExtractor``.
After the render, the extractor turns exactly those chunks (plus the
entrypoints) into ``<link>`` and ``<script>`` tags, so the client loads
what the page needs: nothing the tree didn't touch, nothing missing.

Manifest format (``AppConfig.manifest_path``)::

    {
      "publicPath": "/static/",
      "entrypoints": {"client": {"js": ["runtime.js", "client.js"], "css": ["client.css"]}},
      "chunks": {
        "pages-home": {"js": ["pages-home.js"], "css": ["pages-home.css"]},
        "pages-jobs": {"js": ["vendor-table.js", "pages-jobs.js"], "css": []}
      }
    }
"""

from __future__ import annotations

import html
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from perch.errors import ConfigurationError
from perch.ssr.serializer import escape_json

REQUIRED_CHUNKS_ID = "__PERCH_REQUIRED_CHUNKS__"


@dataclass(frozen=True, slots=True)
class ChunkAssets:
    """Files belonging to one chunk or entrypoint."""

    js: tuple[str, ...] = ()
    css: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChunkAssets:
        return cls(js=tuple(data.get("js", ())), css=tuple(data.get("css", ())))


@dataclass(frozen=True, slots=True)
class ChunkManifest:
    """Read-only build manifest, shared by every request of the process.

    A manifest built with ``strict=False`` (the default when no manifest
    is configured) resolves unknown chunks to no files instead of
    raising, so apps can render without a client build.
    """

    public_path: str = "/static/"
    entrypoints: dict[str, ChunkAssets] = field(default_factory=dict)
    chunks: dict[str, ChunkAssets] = field(default_factory=dict)
    strict: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, strict: bool = True) -> ChunkManifest:
        return cls(
            public_path=data.get("publicPath", "/static/"),
            entrypoints={
                name: ChunkAssets.from_dict(assets)
                for name, assets in data.get("entrypoints", {}).items()
            },
            chunks={
                name: ChunkAssets.from_dict(assets)
                for name, assets in data.get("chunks", {}).items()
            },
            strict=strict,
        )

    @classmethod
    def from_file(cls, path: str | Path) -> ChunkManifest:
        """Load the manifest JSON written by the client build."""
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            msg = f"Cannot read chunk manifest {str(path)!r}: {exc}"
            raise ConfigurationError(msg) from exc
        return cls.from_dict(data)

    @classmethod
    def empty(cls, public_path: str = "/static/") -> ChunkManifest:
        return cls(public_path=public_path, strict=False)

    def resolve(self, chunk_id: str) -> ChunkAssets:
        assets = self.chunks.get(chunk_id)
        if assets is not None:
            return assets
        if self.strict:
            msg = f"Chunk {chunk_id!r} is not in the build manifest."
            raise ConfigurationError(msg)
        return ChunkAssets()

    def url(self, filename: str) -> str:
        if "://" in filename or filename.startswith("/"):
            return filename
        return self.public_path.rstrip("/") + "/" + filename


@dataclass(frozen=True, slots=True)
class Loadable:
    """A code-split component.

    Rendering a ``Loadable`` records its chunk. With ``ssr=False`` the
    server renders ``fallback`` instead of the template, but the chunk is
    still recorded so the client has the code to render it.

    Usage::

        jobs_page = Loadable("pages-jobs", "jobs/list.html")
        RouteEntry("jobs", element=jobs_page)
    """

    chunk: str
    template: str
    fallback: str = ""
    ssr: bool = True


class ChunkExtractor:
    """Records the chunks one render touches and emits their tags.

    Instantiate per request; a shared extractor accumulates unrelated
    chunks from concurrent requests.
    """

    __slots__ = ("_chunks", "entrypoints", "manifest")

    def __init__(self, manifest: ChunkManifest, entrypoints: tuple[str, ...] = ("client",)) -> None:
        self.manifest = manifest
        self.entrypoints = entrypoints
        # chunk id -> assets, insertion order
        self._chunks: dict[str, ChunkAssets] = {}

    def collect(self, chunk_id: str) -> None:
        """Record *chunk_id* as used by this render (idempotent)."""
        if chunk_id not in self._chunks:
            self._chunks[chunk_id] = self.manifest.resolve(chunk_id)

    def get_record(self) -> tuple[str, ...]:
        return tuple(self._chunks)

    # -- Asset collection --

    def _groups(self) -> list[tuple[str | None, ChunkAssets]]:
        groups: list[tuple[str | None, ChunkAssets]] = []
        for name in self.entrypoints:
            assets = self.manifest.entrypoints.get(name)
            if assets is not None:
                groups.append((None, assets))
        groups.extend(self._chunks.items())
        return groups

    def _assets(self, kind: str) -> list[tuple[str | None, str]]:
        """(chunk id, url) pairs for *kind*, de-duplicated, chunks after entrypoints."""
        seen: set[str] = set()
        result: list[tuple[str | None, str]] = []
        for chunk_id, assets in self._groups():
            for filename in getattr(assets, kind):
                url = self.manifest.url(filename)
                if url not in seen:
                    seen.add(url)
                    result.append((chunk_id, url))
        return result

    # -- Tags --

    @staticmethod
    def _chunk_attr(chunk_id: str | None) -> str:
        if chunk_id is None:
            return ""
        return f' data-chunk="{html.escape(chunk_id, quote=True)}"'

    def get_link_tags(self) -> str:
        """Preload hints for every script and stylesheet of this render."""
        tags = [
            f'<link{self._chunk_attr(c)} rel="preload" as="script" href="{html.escape(u, quote=True)}">'
            for c, u in self._assets("js")
        ]
        tags.extend(
            f'<link{self._chunk_attr(c)} rel="preload" as="style" href="{html.escape(u, quote=True)}">'
            for c, u in self._assets("css")
        )
        return "".join(tags)

    def get_style_tags(self) -> str:
        """Chunk-level stylesheets."""
        return "".join(
            f'<link{self._chunk_attr(c)} rel="stylesheet" href="{html.escape(u, quote=True)}">'
            for c, u in self._assets("css")
        )

    def get_script_tags(self) -> str:
        """Required-chunk list followed by the scripts themselves."""
        required = escape_json(json.dumps(list(self._chunks), separators=(",", ":")))
        tags = [f'<script id="{REQUIRED_CHUNKS_ID}" type="application/json">{required}</script>']
        tags.extend(
            f'<script async{self._chunk_attr(c)} src="{html.escape(u, quote=True)}"></script>'
            for c, u in self._assets("js")
        )
        return "".join(tags)
