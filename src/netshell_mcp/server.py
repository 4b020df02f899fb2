"""NetShell-MCP server — MCP tools for classifying and laying out network hosts."""

from __future__ import annotations

import base64
import json
import logging
import os
import uuid
from pathlib import Path

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import ImageContent, TextContent, Tool

from .logging_config import setup_logging
from .model import build_model, classify_snapshot, merge_configs
from .models import Host, NetworkGraphConfigs, NetworkSnapshot
from .parser import (
    config_to_yaml,
    model_to_json,
    parse_config_yaml,
    parse_snapshot_yaml,
    snapshot_to_yaml,
)
from .renderer import PreviewRenderer
from .sources import generate_demo_snapshot

logger = logging.getLogger(__name__)


# --- Constants ---
OUTPUT_DIR = Path(os.environ.get("NETSHELL_OUTPUT_DIR", Path.home() / ".netshell" / "models"))

server = Server("netshell-mcp")


def _ensure_output_dir():
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)


_CONFIG_YAML_PROPERTY = {
    "type": "string",
    "description": (
        "Optional YAML rule tables with any of the keys host_types, layers, "
        "categories. Omitted tables use the built-in defaults "
        "(see get_default_config)."
    ),
}


# --- Tool definitions ---

@server.list_tools()
async def list_tools() -> list[Tool]:
    return [
        Tool(
            name="build_network_model",
            description=(
                "Classify and lay out a network snapshot in 3D. "
                "Returns a summary (node, edge and shell counts, shells per category) "
                "and the path of the full model JSON."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "snapshot_yaml": {
                        "type": "string",
                        "description": (
                            "YAML or JSON snapshot. Example:\n"
                            "hosts:\n"
                            "  - hostname: e01core--gwr1\n"
                            "    host_type: GWR\n"
                            "  - hostname: e01edge--er1\n"
                            "connections:\n"
                            "  - [e01core--gwr1, e01edge--er1]"
                        ),
                    },
                    "config_yaml": _CONFIG_YAML_PROPERTY,
                    "filename": {
                        "type": "string",
                        "description": "Output filename (without extension). Default: auto-generated UUID.",
                    },
                },
                "required": ["snapshot_yaml"],
            },
        ),
        Tool(
            name="classify_hostnames",
            description=(
                "Classify hostnames without laying them out. Returns type, layer, "
                "category and cluster key for each host."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "hostnames": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Hostnames to classify.",
                    },
                    "config_yaml": _CONFIG_YAML_PROPERTY,
                },
                "required": ["hostnames"],
            },
        ),
        Tool(
            name="render_network_preview",
            description=(
                "Build the model for a snapshot and render a flat PNG preview "
                "(top or side projection) of shells, edges and hosts."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "snapshot_yaml": {
                        "type": "string",
                        "description": "YAML or JSON snapshot. Omit to preview the demo network.",
                    },
                    "config_yaml": _CONFIG_YAML_PROPERTY,
                    "view": {
                        "type": "string",
                        "enum": ["top", "side"],
                        "description": "'top' looks down the y axis, 'side' along the z axis.",
                        "default": "top",
                    },
                    "theme": {
                        "type": "string",
                        "enum": ["dark", "light"],
                        "default": "dark",
                    },
                    "scale": {
                        "type": "number",
                        "description": "Render scale factor (default 1.0)",
                        "default": 1.0,
                    },
                },
            },
        ),
        Tool(
            name="get_default_config",
            description="Get the built-in host type, layer and category tables as YAML.",
            inputSchema={
                "type": "object",
                "properties": {},
            },
        ),
        Tool(
            name="generate_demo_snapshot",
            description="Get the demo network snapshot (4 prefectures x 4 buildings) as YAML.",
            inputSchema={
                "type": "object",
                "properties": {},
            },
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent | ImageContent]:
    if name == "build_network_model":
        return await _build_network_model(arguments)
    elif name == "classify_hostnames":
        return await _classify_hostnames(arguments)
    elif name == "render_network_preview":
        return await _render_network_preview(arguments)
    elif name == "get_default_config":
        return await _get_default_config(arguments)
    elif name == "generate_demo_snapshot":
        return await _generate_demo_snapshot(arguments)
    else:
        return [TextContent(type="text", text=f"Unknown tool: {name}")]


def _parse_configs(args: dict) -> NetworkGraphConfigs:
    config_yaml = args.get("config_yaml")
    if not config_yaml:
        return merge_configs(None)
    return parse_config_yaml(config_yaml)


async def _build_network_model(args: dict) -> list[TextContent]:
    """Build a model from a snapshot and save it as JSON."""
    _ensure_output_dir()

    filename = args.get("filename", str(uuid.uuid4())[:8])

    try:
        snapshot = parse_snapshot_yaml(args["snapshot_yaml"])
        configs = _parse_configs(args)
    except Exception as e:
        return [TextContent(type="text", text=f"Failed to parse input: {e}")]

    model = build_model(snapshot, configs)

    output_path = OUTPUT_DIR / f"{filename}.json"
    output_path.write_text(model_to_json(model))
    logger.info(f"Saved model: {output_path}")

    shells_per_category: dict[str, int] = {}
    for shell in model.shells:
        category_id = shell.id.split(":", 1)[0]
        shells_per_category[category_id] = shells_per_category.get(category_id, 0) + 1

    return [TextContent(
        type="text",
        text=json.dumps({
            "status": "success",
            "path": str(output_path),
            "nodes": len(model.nodes),
            "edges": len(model.edges),
            "dropped_connections": len(snapshot.connections) - len(model.edges),
            "shells": len(model.shells),
            "shells_per_category": shells_per_category,
        }),
    )]


async def _classify_hostnames(args: dict) -> list[TextContent]:
    """Classify a list of hostnames."""
    try:
        configs = _parse_configs(args)
    except Exception as e:
        return [TextContent(type="text", text=f"Failed to parse config: {e}")]

    snapshot = NetworkSnapshot(hosts=[Host(hostname=name) for name in args["hostnames"]])
    records = classify_snapshot(snapshot, configs)

    return [TextContent(
        type="text",
        text=json.dumps({
            "hosts": [
                {
                    "hostname": host.hostname,
                    "host_type": host.host_type,
                    "layer_id": host.layer_id,
                    "category_id": host.category_id,
                    "cluster_key": host.cluster_key,
                    "prefecture_code": host.parsed.prefecture_code,
                    "building_code": host.parsed.building_code,
                    "unit_code": host.parsed.unit_code,
                }
                for host in records
            ],
        }),
    )]


async def _render_network_preview(args: dict) -> list[TextContent | ImageContent]:
    """Render a PNG preview of a snapshot's model."""
    _ensure_output_dir()

    try:
        if args.get("snapshot_yaml"):
            snapshot = parse_snapshot_yaml(args["snapshot_yaml"])
        else:
            snapshot = generate_demo_snapshot()
        configs = _parse_configs(args)
    except Exception as e:
        return [TextContent(type="text", text=f"Failed to parse input: {e}")]

    view = args.get("view", "top")
    model = build_model(snapshot, configs)
    output_path = str(OUTPUT_DIR / f"preview-{view}-{str(uuid.uuid4())[:8]}.png")

    try:
        renderer = PreviewRenderer(scale=args.get("scale", 1.0), theme=args.get("theme", "dark"))
        png_bytes = renderer.render(model, output_path=output_path, view=view)
    except Exception as e:
        return [TextContent(type="text", text=f"Rendering failed: {e}")]

    return [
        ImageContent(
            type="image",
            data=base64.b64encode(png_bytes).decode("ascii"),
            mimeType="image/png",
        ),
        TextContent(
            type="text",
            text=json.dumps({
                "status": "success",
                "path": output_path,
                "view": view,
                "nodes": len(model.nodes),
                "shells": len(model.shells),
            }),
        ),
    ]


async def _get_default_config(args: dict) -> list[TextContent]:
    return [TextContent(type="text", text=config_to_yaml(merge_configs(None)))]


async def _generate_demo_snapshot(args: dict) -> list[TextContent]:
    return [TextContent(type="text", text=snapshot_to_yaml(generate_demo_snapshot()))]


def main():
    """Entry point for the MCP server."""
    import asyncio
    setup_logging()
    asyncio.run(_run())


async def _run():
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


if __name__ == "__main__":
    main()
