#!/usr/bin/env python3
"""
NetShell web API - serves the clustered 3D model to a scene renderer

A lightweight aiohttp server that owns one snapshot session: it loads the
snapshot from the configured source, rebuilds the model wholesale on every
reload, and hands the model out as JSON (or as a flat PNG preview).

Usage:
    netshell-web [--port 8767] [--host 0.0.0.0] [--snapshot-url URL | --snapshot-file PATH] [--config PATH]
"""

import argparse
import asyncio
import logging

from aiohttp import web

from .logging_config import setup_logging
from .model import build_model
from .models import NetworkGraphConfigs
from .parser import model_to_json, parse_config_file, parse_config_yaml, parse_snapshot_yaml
from .renderer import VIEWS, PreviewRenderer
from .session import SnapshotSession
from .sources import FileSnapshotSource, HttpSnapshotSource, SnapshotSource, demo_source
from .themes import THEMES

logger = logging.getLogger(__name__)

SESSION_KEY = web.AppKey("session", SnapshotSession)


def _status_payload(session: SnapshotSession) -> dict:
    return {
        "loading": session.loading,
        "error": session.error,
        "load_count": session.load_count,
        "nodes": len(session.model.nodes),
        "edges": len(session.model.edges),
        "shells": len(session.model.shells),
    }


def _json_model_response(model) -> web.Response:
    return web.Response(text=model_to_json(model), content_type="application/json")


async def handle_status(request):
    """Session status: loading flag, last error and model size."""
    return web.json_response(_status_payload(request.app[SESSION_KEY]))


async def handle_model(request):
    """The current model as JSON."""
    return _json_model_response(request.app[SESSION_KEY].model)


async def handle_reload(request):
    """Fetch a fresh snapshot and rebuild the model."""
    session = request.app[SESSION_KEY]
    await session.reload()
    status = 502 if session.error else 200
    return web.json_response(_status_payload(session), status=status)


async def handle_build(request):
    """Build a model for a posted snapshot without touching the session.

    Body: {"yaml": "<snapshot yaml>"} or {"snapshot": {...}}, plus an
    optional "config_yaml".
    """
    try:
        data = await request.json()
    except ValueError:
        return web.json_response({"error": "Body must be JSON"}, status=400)
    if not isinstance(data, dict):
        return web.json_response({"error": "Body must be a JSON object"}, status=400)

    try:
        if data.get("yaml"):
            snapshot = parse_snapshot_yaml(data["yaml"])
        elif data.get("snapshot") is not None:
            snapshot = data["snapshot"]
        else:
            return web.json_response({"error": "No snapshot provided"}, status=400)

        configs = request.app[SESSION_KEY].configs
        if data.get("config_yaml"):
            configs = parse_config_yaml(data["config_yaml"])

        model = build_model(snapshot, configs)
    except ValueError as e:
        # pydantic.ValidationError is a ValueError
        return web.json_response({"error": str(e)}, status=400)

    return _json_model_response(model)


async def handle_preview(request):
    """PNG preview of the current model."""
    view = request.query.get("view", "top")
    theme = request.query.get("theme", "dark")
    if view not in VIEWS:
        return web.Response(text=f"Unknown view: {view}", status=400)
    if theme not in THEMES:
        return web.Response(text=f"Unknown theme: {theme}", status=400)

    renderer = PreviewRenderer(theme=theme)
    png_bytes = await asyncio.to_thread(
        renderer.render, request.app[SESSION_KEY].model, None, view
    )
    return web.Response(body=png_bytes, content_type="image/png")


def create_app(session: SnapshotSession, load_on_startup: bool = True) -> web.Application:
    """Create the aiohttp application."""
    app = web.Application()
    app[SESSION_KEY] = session

    app.router.add_get('/api/status', handle_status)
    app.router.add_get('/api/model', handle_model)
    app.router.add_post('/api/reload', handle_reload)
    app.router.add_post('/api/build', handle_build)
    app.router.add_get('/api/preview', handle_preview)

    if load_on_startup:
        async def _initial_load(app: web.Application):
            await app[SESSION_KEY].load()
        app.on_startup.append(_initial_load)

    return app


def _build_source(args: argparse.Namespace) -> SnapshotSource:
    if args.snapshot_url:
        return HttpSnapshotSource(args.snapshot_url)
    if args.snapshot_file:
        return FileSnapshotSource(args.snapshot_file)
    return demo_source


async def serve(host: str, port: int, session: SnapshotSession):
    """Run the web server."""
    app = create_app(session)

    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"NetShell web API running at http://{host}:{port}")

    # Keep running
    while True:
        await asyncio.sleep(3600)


def main():
    parser = argparse.ArgumentParser(description='NetShell web API')
    parser.add_argument('--host', default='0.0.0.0', help='Host to bind to')
    parser.add_argument('--port', type=int, default=8767, help='Port to listen on')
    source_group = parser.add_mutually_exclusive_group()
    source_group.add_argument('--snapshot-url', help='Fetch the snapshot JSON from this URL')
    source_group.add_argument('--snapshot-file', help='Read the snapshot from a YAML/JSON file')
    parser.add_argument('--config', help='YAML rule tables (defaults are built in)')
    parser.add_argument('--log-level', default=None, help='Logging level (default INFO)')
    args = parser.parse_args()

    setup_logging(args.log_level)

    configs = parse_config_file(args.config) if args.config else NetworkGraphConfigs()
    session = SnapshotSession(source=_build_source(args), configs=configs)

    try:
        asyncio.run(serve(args.host, args.port, session))
    except KeyboardInterrupt:
        logger.info("Shutting down...")


if __name__ == '__main__':
    main()
