"""YAML parser for NetShell-MCP rule tables and snapshots.

Supports two documents (JSON is accepted too, being valid YAML):
1. Rule tables — ``host_types``, ``layers`` and ``categories`` lists
2. Snapshots — ``hosts`` (hostname + optional host_type) and
   ``connections`` (pairs of hostnames)
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Optional

import yaml

from .models import (
    CategoryDefine,
    CategoryMatch,
    ClusteredGraphModel,
    Host,
    HostTypeRule,
    LayerDefine,
    NetworkGraphConfigs,
    NetworkSnapshot,
)

_INLINE_FLAGS = (
    (re.IGNORECASE, "i"),
    (re.MULTILINE, "m"),
    (re.DOTALL, "s"),
    (re.VERBOSE, "x"),
)

_MATCH_PATTERN_FIELDS = (
    "hostname_regexp",
    "prefecture_regexp",
    "building_regexp",
    "unit_regexp",
)


def _load(yaml_str: str) -> dict:
    try:
        data = yaml.safe_load(yaml_str)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML: {e}") from e
    if not data:
        raise ValueError("Empty YAML input")
    if not isinstance(data, dict):
        raise ValueError("Expected a mapping at the top level")
    return data


def _require(data: Any, keys: tuple[str, ...], kind: str) -> dict:
    """Check that a table entry is a mapping carrying ``keys``."""
    if not isinstance(data, dict):
        raise ValueError(f"Each {kind} entry must be a mapping, got {data!r}")
    missing = [key for key in keys if data.get(key) is None]
    if missing:
        raise ValueError(f"{kind} entry is missing {', '.join(missing)}: {data!r}")
    return data


# ---------------------------------------------------------------------------
# Rule tables
# ---------------------------------------------------------------------------

def parse_config_yaml(yaml_str: str) -> NetworkGraphConfigs:
    """Parse rule tables from YAML.  Missing tables use the defaults."""
    data = _load(yaml_str)

    provided: dict[str, Any] = {}
    if data.get("host_types") is not None:
        provided["host_type_config"] = [_parse_host_type(item) for item in data["host_types"]]
    if data.get("layers") is not None:
        provided["layer_config"] = [_parse_layer(item) for item in data["layers"]]
    if data.get("categories") is not None:
        provided["category_config"] = [_parse_category(item) for item in data["categories"]]

    return NetworkGraphConfigs(**provided)


def parse_config_file(path: str) -> NetworkGraphConfigs:
    """Parse a YAML rule table file."""
    content = Path(path).read_text()
    return parse_config_yaml(content)


def _parse_host_type(data: dict) -> HostTypeRule:
    _require(data, ("type", "regexp"), "host type")
    return HostTypeRule(type=data["type"], regexp=data["regexp"])


def _parse_layer(data: dict) -> LayerDefine:
    _require(data, ("id",), "layer")
    return LayerDefine(
        id=data["id"],
        order=int(data.get("order", 0)),
        host_types=data.get("host_types", []),
    )


def _parse_category(data: dict) -> CategoryDefine:
    """Parse a single category entry.

    Example:
        - id: prefecture-edges
          label: Prefecture
          order: 1
          scope: prefecture
          color: "#4DB6AC"
          match:
            host_types: [EDGE_ROUTER]
            prefecture_regexp: "(?i)^(e|w)\\d{2}$"
    """
    _require(data, ("id",), "category")
    match = None
    if data.get("match") is not None:
        if not isinstance(data["match"], dict):
            raise ValueError(f"Category {data['id']!r}: match must be a mapping")
        match = CategoryMatch.model_validate(data["match"])

    fields = {
        key: data[key]
        for key in (
            "host_types",
            "scope",
            "color",
            "cluster_ring_radius",
            "local_ring_radius",
            "local_ring_step",
        )
        if data.get(key) is not None
    }
    return CategoryDefine(
        id=data["id"],
        label=data.get("label", data["id"]),
        order=int(data.get("order", 0)),
        match=match,
        **fields,
    )


def _pattern_to_str(pattern: Optional[re.Pattern]) -> Optional[str]:
    """Render a compiled pattern as a string that recompiles to the same rule."""
    if pattern is None:
        return None
    flags = "".join(letter for flag, letter in _INLINE_FLAGS if pattern.flags & flag)
    source = pattern.pattern
    if flags and not source.startswith("(?"):
        return f"(?{flags}){source}"
    return source


def config_to_yaml(configs: NetworkGraphConfigs) -> str:
    """Serialize rule tables back to YAML."""
    data: dict[str, list] = {"host_types": [], "layers": [], "categories": []}

    for rule in configs.host_type_config:
        data["host_types"].append({"type": rule.type, "regexp": _pattern_to_str(rule.regexp)})

    for layer in configs.layer_config:
        data["layers"].append({
            "id": layer.id,
            "order": layer.order,
            "host_types": list(layer.host_types),
        })

    for category in configs.category_config:
        cat_data: dict[str, Any] = {
            "id": category.id,
            "label": category.label,
            "order": category.order,
            "scope": category.scope,
            "color": category.color,
            "cluster_ring_radius": category.cluster_ring_radius,
            "local_ring_radius": category.local_ring_radius,
            "local_ring_step": category.local_ring_step,
        }
        if category.host_types is not None:
            cat_data["host_types"] = list(category.host_types)
        if category.match is not None:
            match_data = {
                key: value
                for key, value in category.match.model_dump(exclude=set(_MATCH_PATTERN_FIELDS)).items()
                if value is not None
            }
            for key in _MATCH_PATTERN_FIELDS:
                pattern = _pattern_to_str(getattr(category.match, key))
                if pattern is not None:
                    match_data[key] = pattern
            cat_data["match"] = match_data
        data["categories"].append(cat_data)

    return yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------

def parse_snapshot_yaml(yaml_str: str) -> NetworkSnapshot:
    """Parse a snapshot document.

    Example:
        hosts:
          - hostname: e01core--gwr1
            host_type: GWR
          - hostname: e01edge--er1
        connections:
          - [e01core--gwr1, e01edge--er1]
    """
    data = _load(yaml_str)

    hosts = []
    for host_data in data.get("hosts") or []:
        if isinstance(host_data, str):
            hosts.append(Host(hostname=host_data))
        else:
            hosts.append(Host.model_validate(host_data))

    connections = [_parse_connection(pair) for pair in data.get("connections") or []]
    return NetworkSnapshot(hosts=hosts, connections=connections)


def _parse_connection(pair: Any) -> tuple[str, str]:
    if not isinstance(pair, (list, tuple)) or len(pair) != 2:
        raise ValueError(f"Each connection must be a [source, target] pair, got {pair!r}")
    return (str(pair[0]), str(pair[1]))


def parse_snapshot_file(path: str) -> NetworkSnapshot:
    """Parse a YAML or JSON snapshot file."""
    content = Path(path).read_text()
    return parse_snapshot_yaml(content)


def snapshot_to_yaml(snapshot: NetworkSnapshot) -> str:
    data = {
        "hosts": [
            {"hostname": host.hostname, "host_type": host.host_type}
            for host in snapshot.hosts
        ],
        "connections": [list(pair) for pair in snapshot.connections],
    }
    return yaml.dump(data, default_flow_style=False, sort_keys=False)


def model_to_json(model: ClusteredGraphModel, indent: Optional[int] = None) -> str:
    """Serialize a built model for the rendering collaborator."""
    return json.dumps(model.model_dump(mode="json"), indent=indent)
