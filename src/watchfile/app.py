"""Watchfile application — the live preview server on Chirp.

Wires the per-connection watch pipeline into a Chirp App: the browser shell,
static assets, the version endpoint, the ``/watch`` event stream and the
stats endpoint. ``serve()`` is the primary entry point.
"""

from __future__ import annotations

import json
import sys
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

from watchfile.config_loader import load_config

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from chirp import App, Request

    from watchfile.config import WatchfileConfig
    from watchfile.content.renderer import ContentRenderer
    from watchfile.observability.collector import WatchCollector
    from watchfile.reactive.registry import ConnectionRegistry
    from watchfile.reactive.session import PushSession
    from watchfile.reactive.supervisor import WatchSupervisor


WATCH_ENDPOINT = "/watch"
VERSION_ENDPOINT = "/version"
STATS_ENDPOINT = "/__watchfile/stats"

# SSE event name carrying rendered markup
UPDATE_EVENT = "update"

APP_NAME = "watchfile"
REPOSITORY = "https://github.com/mafumafuultu/watchfile"


def _create_chirp_app(config: WatchfileConfig, *, debug: bool = False) -> App:
    """Create a Chirp App bound to the configured host and port."""
    from chirp import App, AppConfig

    from watchfile.theme import bundled_theme_path

    app_config = AppConfig(
        template_dir=bundled_theme_path(),
        debug=debug,
        host=config.host,
        port=config.port,
    )
    return App(config=app_config)


def _json_response(payload: dict[str, Any]) -> Any:
    from chirp.http.response import Response

    return Response(
        body=json.dumps(payload, indent=2),
        status=200,
        content_type="application/json",
    )


def _register_index(app: App, config: WatchfileConfig) -> None:
    """Register ``/`` serving ``index.html`` from the asset fallback chain."""
    from watchfile.theme import INDEX_FILE, find_asset

    async def index_handler(request: Request) -> Any:
        from chirp.http.response import Response

        index = find_asset(config, INDEX_FILE)
        if index is None:
            return Response(body="index.html not found", status=404, content_type="text/plain")
        return Response(
            body=index.read_text(encoding="utf-8"),
            status=200,
            content_type="text/html; charset=utf-8",
        )

    app.route("/", name="watchfile:index")(index_handler)


def _register_version(app: App) -> None:
    """Register the ``/version`` JSON endpoint."""
    from watchfile import __version__

    async def version_handler(request: Request) -> Any:
        return _json_response({
            "app_name": APP_NAME,
            "version": __version__,
            "repository": REPOSITORY,
        })

    app.route(VERSION_ENDPOINT, name="watchfile:version")(version_handler)


async def update_stream(
    make_supervisor: Callable[[PushSession], WatchSupervisor],
    registry: ConnectionRegistry,
) -> AsyncIterator[Any]:
    """Event-stream generator for one client.

    The watch loop is spawned on first iteration, so a client that never
    reads the stream never costs a watch. Closing the generator (client
    disconnect) closes the session and cancels the loop; a loop that ends on
    its own closes the session, which ends the stream.

    """
    from chirp import SSEEvent

    from watchfile.reactive.session import PushSession

    session = PushSession()
    conn = registry.start(make_supervisor(session))
    try:
        async for markup in session.frames():
            yield SSEEvent(data=markup, event=UPDATE_EVENT)
    finally:
        session.close()
        if not conn.task.done():
            conn.task.cancel()


def _register_watch_endpoint(
    app: App,
    config: WatchfileConfig,
    registry: ConnectionRegistry,
    collector: WatchCollector | None,
    renderer: ContentRenderer,
) -> None:
    """Register the ``/watch`` stream: one independent watch loop per client."""
    from chirp import EventStream

    from watchfile.reactive.supervisor import WatchSupervisor

    target = config.target_path

    def make_supervisor(session: PushSession) -> WatchSupervisor:
        return WatchSupervisor(
            target,
            session,
            renderer=renderer,
            collector=collector,
            poll_interval_ms=config.poll_interval_ms,
            channel_capacity=config.channel_capacity,
            max_source_errors=config.max_source_errors,
            verbose=config.verbose,
        )

    async def watch_handler(request: Request) -> Any:
        return EventStream(update_stream(make_supervisor, registry))

    app.route(WATCH_ENDPOINT, name="watchfile:watch")(watch_handler)


def _register_stats_endpoint(
    app: App,
    registry: ConnectionRegistry,
    collector: WatchCollector,
) -> None:
    """Register the ``/__watchfile/stats`` JSON endpoint."""
    from watchfile.observability.profiler import compute_aggregate_stats

    async def stats_handler(request: Request) -> Any:
        log = collector.log
        clients = {
            conn.client_id: {
                "state": conn.supervisor.state,
                **log.client_summary(conn.client_id),
            }
            for conn in registry.get_connections()
        }
        return _json_response({
            "connections": len(clients),
            "clients": clients,
            "pushes": compute_aggregate_stats(log),
            "event_log": log.stats(),
        })

    app.route(STATS_ENDPOINT, name="watchfile:stats")(stats_handler)


def _mount_static_files(app: App, config: WatchfileConfig) -> None:
    """Mount static file middleware with theme fallback.

    Mounts the user static directory first, then the bundled theme assets,
    both under ``/static``. User files take precedence.

    """
    from chirp.middleware import StaticFiles

    from watchfile.theme import get_asset_dirs

    for asset_dir in get_asset_dirs(config):
        if asset_dir.is_dir():
            app.add_middleware(StaticFiles(directory=asset_dir, prefix="/static"))


def _wire_shutdown(app: App, registry: ConnectionRegistry) -> None:
    """Cancel every watch loop when the server shuts down."""

    @app.on_shutdown
    async def _cancel_watch_loops() -> None:
        cancelled = await registry.cancel_all()
        if cancelled:
            print(f"  Stopped {cancelled} watch loop(s)", file=sys.stderr)


def create_app(
    config: WatchfileConfig,
    *,
    collector: WatchCollector | None = None,
    registry: ConnectionRegistry | None = None,
    renderer: ContentRenderer | None = None,
    debug: bool = False,
) -> App:
    """Build the fully wired Chirp app for ``config``.

    Raises:
        ConfigError: If no file to watch is configured.

    """
    from watchfile.content.renderer import ContentRenderer
    from watchfile.observability import EventLog, WatchCollector
    from watchfile.reactive.registry import ConnectionRegistry

    if collector is None:
        collector = WatchCollector(EventLog())
    if registry is None:
        registry = ConnectionRegistry()
    if renderer is None:
        renderer = ContentRenderer()

    app = _create_chirp_app(config, debug=debug)
    _register_index(app, config)
    _register_version(app)
    _register_watch_endpoint(app, config, registry, collector, renderer)
    _register_stats_endpoint(app, registry, collector)
    _mount_static_files(app, config)
    _wire_shutdown(app, registry)
    return app


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------


def serve(
    root: str | Path = ".",
    config_file: str | Path | None = None,
    **kwargs: object,
) -> None:
    """Start the live preview server.

    Args:
        root: Directory holding the config file; relative paths resolve here.
        config_file: Explicit config file (defaults to discovery in ``root``).
        **kwargs: Override WatchfileConfig fields.

    """
    from watchfile.banner import print_banner
    from watchfile.observability import EventLog, WatchCollector

    t0 = time.perf_counter()
    config = load_config(
        Path(root),
        Path(config_file) if config_file is not None else None,
        **kwargs,
    )

    collector = WatchCollector(EventLog())
    app = create_app(config, collector=collector)

    load_ms = (time.perf_counter() - t0) * 1000
    print_banner(config, load_ms=load_ms)

    # The collector doubles as Pounce's lifecycle collector so connection
    # events land in the same EventLog as watch events.
    app.run(host=config.host, port=config.port, lifecycle_collector=collector)


def render_file(path: str | Path, output: str | Path | None = None) -> str:
    """Render a markdown file once and return the HTML.

    When ``output`` is given the HTML is also written there.

    """
    from watchfile.content.renderer import ContentRenderer

    source = Path(path).read_text(encoding="utf-8")
    html = ContentRenderer().render(source)
    if output is not None:
        Path(output).write_text(html, encoding="utf-8")
    return html
