"""Tests for perch.render.chunks: manifest resolution and chunk extraction."""

import json
from pathlib import Path

import pytest

from perch.errors import ConfigurationError
from perch.render.chunks import REQUIRED_CHUNKS_ID, ChunkExtractor, ChunkManifest


class TestChunkManifest:
    def test_from_dict(self, manifest: ChunkManifest) -> None:
        assert manifest.public_path == "/static/"
        assert manifest.entrypoints["client"].js == ("runtime.js", "client.js")
        assert manifest.resolve("chart-chunk").js == ("vendor-chart.js", "chart.js")

    def test_unknown_chunk_strict(self, manifest: ChunkManifest) -> None:
        with pytest.raises(ConfigurationError, match="not in the build manifest"):
            manifest.resolve("nope")

    def test_unknown_chunk_lenient(self) -> None:
        assert ChunkManifest.empty().resolve("nope").js == ()

    def test_url(self, manifest: ChunkManifest) -> None:
        assert manifest.url("a.js") == "/static/a.js"
        assert manifest.url("/cdn/a.js") == "/cdn/a.js"
        assert manifest.url("https://cdn.example/a.js") == "https://cdn.example/a.js"

    def test_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "chunks.json"
        path.write_text(json.dumps({"publicPath": "/assets/", "chunks": {"x": {"js": ["x.js"]}}}))
        manifest = ChunkManifest.from_file(path)
        assert manifest.url(manifest.resolve("x").js[0]) == "/assets/x.js"

    def test_from_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="Cannot read chunk manifest"):
            ChunkManifest.from_file(tmp_path / "missing.json")

    def test_from_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "chunks.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError):
            ChunkManifest.from_file(path)


class TestChunkExtractor:
    def test_exactly_the_touched_chunks(self, manifest: ChunkManifest) -> None:
        extractor = ChunkExtractor(manifest)
        extractor.collect("pages-job")
        extractor.collect("chart-chunk")
        extractor.collect("pages-job")

        assert extractor.get_record() == ("pages-job", "chart-chunk")
        scripts = extractor.get_script_tags()
        assert 'src="/static/pages-job.js"' in scripts
        assert 'src="/static/chart.js"' in scripts
        assert "pages-admin" not in scripts
        assert "pages-admin" not in extractor.get_link_tags()

    def test_required_chunks_payload_first(self, manifest: ChunkManifest) -> None:
        extractor = ChunkExtractor(manifest)
        extractor.collect("chart-chunk")
        scripts = extractor.get_script_tags()
        assert scripts.startswith(f'<script id="{REQUIRED_CHUNKS_ID}" type="application/json">["chart-chunk"]</script>')

    def test_entrypoints_before_chunks(self, manifest: ChunkManifest) -> None:
        extractor = ChunkExtractor(manifest)
        extractor.collect("pages-job")
        scripts = extractor.get_script_tags()
        assert scripts.index("runtime.js") < scripts.index("client.js") < scripts.index("pages-job.js")
        assert 'data-chunk="pages-job"' in scripts

    def test_style_and_link_tags(self, manifest: ChunkManifest) -> None:
        extractor = ChunkExtractor(manifest)
        extractor.collect("pages-job")
        styles = extractor.get_style_tags()
        assert 'rel="stylesheet" href="/static/client.css"' in styles
        assert 'href="/static/pages-job.css"' in styles
        links = extractor.get_link_tags()
        assert 'rel="preload" as="script" href="/static/pages-job.js"' in links
        assert 'rel="preload" as="style" href="/static/pages-job.css"' in links

    def test_shared_files_emitted_once(self) -> None:
        manifest = ChunkManifest.from_dict(
            {"chunks": {"a": {"js": ["vendor.js", "a.js"]}, "b": {"js": ["vendor.js", "b.js"]}}}
        )
        extractor = ChunkExtractor(manifest, entrypoints=())
        extractor.collect("a")
        extractor.collect("b")
        assert extractor.get_script_tags().count("vendor.js") == 1

    def test_no_chunks_still_loads_entrypoints(self, manifest: ChunkManifest) -> None:
        extractor = ChunkExtractor(manifest)
        assert extractor.get_record() == ()
        scripts = extractor.get_script_tags()
        assert ">[]</script>" in scripts
        assert "client.js" in scripts

    def test_unknown_chunk_raises_at_collect(self, manifest: ChunkManifest) -> None:
        with pytest.raises(ConfigurationError):
            ChunkExtractor(manifest).collect("missing")
