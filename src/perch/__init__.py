"""Perch: server-rendered kida components that resume on the client.

Renders the matched route branch to HTML on the server, with every
loader's data prefetched, and ships three payloads alongside the markup
(the query cache, the inserted style ids and an SSR flag) so the client
can hydrate the same tree without fetching anything again.

Basic usage::

    from perch import App, AppConfig, RouteEntry

    app = App(AppConfig(template_dir="components"))
    app.add_routes(
        RouteEntry("/", element="layout.html", children=(
            RouteEntry(index=True, element="home.html",
                       query_key=("home-page",), load_data=load_home),
        )),
    )

Serve ``app`` with any ASGI server.
"""

__version__ = "0.1.0"
__all__ = [
    "App",
    "AppConfig",
    "BootResult",
    "ClientBootstrap",
    "ConfigurationError",
    "HTTPError",
    "Loadable",
    "PerchError",
    "QueryCache",
    "RequestContext",
    "RouteEntry",
    "get_request_context",
]


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import perch`` fast while providing a clean top-level API.
    """
    if name == "App":
        from perch.app import App

        return App

    if name == "AppConfig":
        from perch.config import AppConfig

        return AppConfig

    if name in ("BootResult", "ClientBootstrap"):
        from perch.client import bootstrap

        return getattr(bootstrap, name)

    if name in ("ConfigurationError", "HTTPError", "PerchError"):
        from perch import errors

        return getattr(errors, name)

    if name == "Loadable":
        from perch.render.chunks import Loadable

        return Loadable

    if name == "QueryCache":
        from perch.data.cache import QueryCache

        return QueryCache

    if name in ("RequestContext", "get_request_context"):
        from perch import context

        return getattr(context, name)

    if name == "RouteEntry":
        from perch.routing.route import RouteEntry

        return RouteEntry

    msg = f"module 'perch' has no attribute {name!r}"
    raise AttributeError(msg)
