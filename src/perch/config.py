"""Application configuration.

One frozen dataclass, read by the app at freeze time and shared by
every request afterwards.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Literal


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Application configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = AppConfig(debug=True, manifest_path="build/chunks.json")
    """

    # Diagnostics
    debug: bool = False

    # Templates (components)
    template_dir: str | Path = "templates"
    component_dirs: tuple[str | Path, ...] = ()  # Additional template directories
    autoescape: bool = True
    trim_blocks: bool = True
    lstrip_blocks: bool = True

    # Document shell
    root_id: str = "root"
    html_lang: str = "en"
    not_found_template: str | None = None  # Rendered inside the shell on 404

    # Code-split chunks (build output, read once at freeze)
    manifest_path: str | Path | None = None
    entrypoints: tuple[str, ...] = ("client",)
    static_url: str = "/static/"

    # Rendering
    render_mode: Literal["buffered", "streaming"] = "streaming"
    write_chunk_size: int = 16 * 1024  # Bytes per ASGI body message

    # Inline browser runtime that reads the payloads and picks hydrate/cold-start
    bootstrap_runtime: bool = True
