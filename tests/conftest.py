"""Shared fixtures: an in-memory job board app."""

from typing import Any

import anyio
import pytest
from kida import DictLoader, Environment

from perch.app import App
from perch.config import AppConfig
from perch.render.chunks import ChunkManifest, Loadable
from perch.routing.route import RouteEntry

TEMPLATES = {
    "layout.html": (
        '<div class="{{ css("display: flex; gap: 8px") }}">'
        '{{ head.title("Perch Jobs") }}'
        '<nav>{{ search_params.get("tab", "all") }}</nav>'
        "<main>{{ outlet }}</main>"
        "</div>"
    ),
    "home.html": '<h1>{{ query("home-page")["headline"] }}</h1>',
    "jobs.html": (
        "<ul>"
        '{% for job in query("jobs") %}'
        '<li class="{{ css("padding: 4px") }}">{{ job["title"] }}</li>'
        "{% end %}"
        "</ul>"
    ),
    "job.html": (
        '{{ head.title(query("job")["title"]) }}'
        '{{ head.meta(name="description", content=query("job")["title"]) }}'
        '<article><h2>{{ query("job")["title"] }}</h2>{{ component("chart", points=3) }}</article>'
    ),
    "chart.html": '<figure class="{{ css("color: red") }}">{{ points }} points</figure>',
    "admin.html": "<section>admin</section>",
    "old.html": '{{ redirect("/jobs", 301) }}<p>moved</p>',
    "broken.html": '<p class="{{ css("color: blue") }}">{{ explode() }}</p>',
    "flaky.html": '<p>{% if query("flaky") %}data{% else %}no data{% end %}</p>',
    "not_found.html": "<p>Nothing here</p>",
}

MANIFEST = {
    "publicPath": "/static/",
    "entrypoints": {"client": {"js": ["runtime.js", "client.js"], "css": ["client.css"]}},
    "chunks": {
        "pages-job": {"js": ["pages-job.js"], "css": ["pages-job.css"]},
        "chart-chunk": {"js": ["vendor-chart.js", "chart.js"], "css": []},
        "pages-admin": {"js": ["pages-admin.js"], "css": []},
    },
}

JOBS = [
    {"id": 7, "title": "Python developer"},
    {"id": 8, "title": "Template author </script><b>"},
]


def explode() -> str:
    msg = "chart service unavailable"
    raise RuntimeError(msg)


def make_env(templates: dict[str, str] | None = None) -> Environment:
    env = Environment(loader=DictLoader(templates or TEMPLATES), autoescape=True)
    env.add_global("explode", explode)
    return env


class Loaders:
    """Route loaders that count their calls."""

    def __init__(self) -> None:
        self.calls: dict[str, int] = {}

    def _hit(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1

    @property
    def total(self) -> int:
        return sum(self.calls.values())

    def home(self, params: dict[str, Any]) -> dict[str, str]:
        self._hit("home")
        return {"headline": "Find work"}

    async def jobs(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        self._hit("jobs")
        await anyio.sleep(0)
        return JOBS

    async def job(self, params: dict[str, Any]) -> dict[str, Any]:
        self._hit("job")
        await anyio.sleep(0)
        return next(j for j in JOBS if j["id"] == params["id"])

    async def flaky(self, params: dict[str, Any]) -> None:
        self._hit("flaky")
        msg = "upstream timed out"
        raise ConnectionError(msg)


def make_routes(loaders: Loaders) -> tuple[RouteEntry, ...]:
    return (
        RouteEntry(
            "/",
            element="layout.html",
            children=(
                RouteEntry(index=True, element="home.html", query_key=("home-page",), load_data=loaders.home),
                RouteEntry("jobs", element="jobs.html", query_key=("jobs",), load_data=loaders.jobs),
                RouteEntry(
                    "jobs/{id:int}",
                    element=Loadable("pages-job", "job.html"),
                    query_key=("job",),
                    load_data=loaders.job,
                ),
                RouteEntry("admin", element=Loadable("pages-admin", "admin.html")),
                RouteEntry("old", element="old.html"),
                RouteEntry("broken", element="broken.html", query_key=("home-page",), load_data=loaders.home),
                RouteEntry("flaky", element="flaky.html", query_key=("flaky",), load_data=loaders.flaky),
            ),
        ),
    )


def make_app(
    loaders: Loaders,
    *,
    config: AppConfig | None = None,
    templates: dict[str, str] | None = None,
) -> App:
    app = App(
        config or AppConfig(not_found_template="not_found.html"),
        kida_env=make_env(templates),
        manifest=ChunkManifest.from_dict(MANIFEST),
    )
    app.add_routes(*make_routes(loaders))
    app.add_component("chart", Loadable("chart-chunk", "chart.html"))
    return app


@pytest.fixture
def loaders() -> Loaders:
    return Loaders()


@pytest.fixture
def app(loaders: Loaders) -> App:
    return make_app(loaders)


@pytest.fixture
def manifest() -> ChunkManifest:
    return ChunkManifest.from_dict(MANIFEST)
