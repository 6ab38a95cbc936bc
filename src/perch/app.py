"""The perch application: route tree, component registry, ASGI entry point."""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

from kida import Environment

from perch._internal.asgi import Receive, Scope, Send
from perch._internal.invoke import invoke
from perch.config import AppConfig
from perch.errors import ConfigurationError
from perch.render.chunks import ChunkManifest, Loadable
from perch.render.engine import Renderer
from perch.render.scope import Element
from perch.routing.route import RouteEntry
from perch.routing.router import RouteTree
from perch.server.handler import handle_request
from perch.templating.integration import create_environment


class App:
    """The perch application.

    Mutable during setup (routes, components, filters, hooks). Frozen on
    the first request or lifespan startup: the route tree, kida
    environment, component registry and chunk manifest are then built
    once and shared read-only by every request.

    Usage::

        app = App(AppConfig(template_dir="components"))
        app.add_routes(
            RouteEntry("", element="layout.html", children=(
                RouteEntry(index=True, element="home.html",
                           query_key=("home-page",), load_data=load_home),
                RouteEntry("jobs/{id:int}", element=Loadable("pages-job", "job.html"),
                           query_key=("job",), load_data=load_job),
            )),
        )

    Thread safety:
        Setup is single-threaded (module import time). The freeze
        transition uses a Lock + double-check so exactly one thread
        compiles the app, even when several workers take their first
        request at once.
    """

    __slots__ = (
        "_components",
        "_custom_kida_env",
        "_entries",
        "_freeze_lock",
        "_frozen",
        "_manifest",
        "_renderer",
        "_shutdown_hooks",
        "_startup_hooks",
        "_template_filters",
        "_template_globals",
        "_tree",
        "config",
    )

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        kida_env: Environment | None = None,
        manifest: ChunkManifest | None = None,
    ) -> None:
        self.config: AppConfig = config or AppConfig()
        self._entries: list[RouteEntry] = []
        self._components: dict[str, Element] = {}
        self._template_filters: dict[str, Callable[..., Any]] = {}
        self._template_globals: dict[str, Any] = {}
        self._startup_hooks: list[Callable[..., Any]] = []
        self._shutdown_hooks: list[Callable[..., Any]] = []
        self._custom_kida_env: Environment | None = kida_env
        self._manifest: ChunkManifest | None = manifest
        self._frozen: bool = False
        self._freeze_lock: threading.Lock = threading.Lock()

        # Compiled state, set during _freeze()
        self._tree: RouteTree | None = None
        self._renderer: Renderer | None = None

    # -- Registration --

    def add_routes(self, *entries: RouteEntry) -> None:
        """Append top-level route entries, in declaration order."""
        self._check_not_frozen()
        self._entries.extend(entries)

    def add_component(self, name: str, element: Element) -> None:
        """Register a component callable from templates as ``component(name)``.

        *element* is a template name or a ``Loadable``.
        """
        self._check_not_frozen()
        if name in self._components:
            msg = f"Component {name!r} is already registered."
            raise ConfigurationError(msg)
        self._components[name] = element

    def template_filter(self, name: str | None = None) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Register a kida filter: ``@app.template_filter()``."""

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self._check_not_frozen()
            self._template_filters[name or func.__name__] = func
            return func

        return decorator

    def template_global(self, name: str | None = None) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Register a kida global. Globals are shared by every request."""

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self._check_not_frozen()
            self._template_globals[name or func.__name__] = func
            return func

        return decorator

    def on_startup(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register a hook run at ASGI lifespan startup (sync or async)."""
        self._check_not_frozen()
        self._startup_hooks.append(func)
        return func

    def on_shutdown(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register a hook run at ASGI lifespan shutdown (sync or async)."""
        self._check_not_frozen()
        self._shutdown_hooks.append(func)
        return func

    # -- Compiled state --

    @property
    def tree(self) -> RouteTree:
        self._ensure_frozen()
        assert self._tree is not None
        return self._tree

    @property
    def renderer(self) -> Renderer:
        self._ensure_frozen()
        assert self._renderer is not None
        return self._renderer

    # -- ASGI --

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI 3.0 entry point."""
        if scope["type"] == "lifespan":
            await self._handle_lifespan(scope, receive, send)
            return

        self._ensure_frozen()
        assert self._tree is not None
        assert self._renderer is not None

        await handle_request(
            scope,
            receive,
            send,
            tree=self._tree,
            renderer=self._renderer,
            config=self.config,
        )

    async def _handle_lifespan(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Run the ASGI lifespan protocol, freezing before startup hooks."""
        while True:
            message = await receive()
            msg_type = message["type"]

            if msg_type == "lifespan.startup":
                try:
                    self._ensure_frozen()
                    for hook in self._startup_hooks:
                        await invoke(hook)
                except Exception as exc:
                    await send({"type": "lifespan.startup.failed", "message": str(exc)})
                    return
                await send({"type": "lifespan.startup.complete"})

            elif msg_type == "lifespan.shutdown":
                for hook in self._shutdown_hooks:
                    await invoke(hook)
                await send({"type": "lifespan.shutdown.complete"})
                return

    # -- Internal --

    def _ensure_frozen(self) -> None:
        if self._frozen:
            return
        with self._freeze_lock:
            if self._frozen:
                return
            self._freeze()

    def _freeze(self) -> None:
        """Compile the app into its frozen runtime state.

        MUST only be called while holding _freeze_lock.
        """
        tree = RouteTree(self._entries)

        manifest = self._manifest
        if manifest is None:
            if self.config.manifest_path is not None:
                manifest = ChunkManifest.from_file(self.config.manifest_path)
            else:
                manifest = ChunkManifest.empty(self.config.static_url)
        self._check_chunks(tree, manifest)

        env = self._custom_kida_env
        if env is None:
            env = create_environment(self.config, self._template_filters, self._template_globals)

        self._tree = tree
        self._renderer = Renderer(
            env,
            components=dict(self._components),
            manifest=manifest,
            entrypoints=self.config.entrypoints,
            not_found_template=self.config.not_found_template,
        )
        self._frozen = True

    def _check_chunks(self, tree: RouteTree, manifest: ChunkManifest) -> None:
        """Every ``Loadable`` must name a chunk the manifest knows."""
        if not manifest.strict:
            return
        elements = [entry.element for entry in tree.entries] + list(self._components.values())
        for element in elements:
            if isinstance(element, Loadable) and element.chunk not in manifest.chunks:
                msg = f"Chunk {element.chunk!r} is not in the build manifest."
                raise ConfigurationError(msg)
        for name in self.config.entrypoints:
            if name not in manifest.entrypoints:
                msg = f"Entrypoint {name!r} is not in the build manifest."
                raise ConfigurationError(msg)

    def _check_not_frozen(self) -> None:
        if self._frozen:
            msg = (
                "Cannot modify the app after it has started serving requests. "
                "Register routes, components, and filters before the first request."
            )
            raise RuntimeError(msg)
