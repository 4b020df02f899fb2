"""Model assembly — the single entry point from snapshot to renderable model."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Optional, Union

from .classify import build_edges, classify_hosts
from .layout import create_cluster_positions
from .models import (
    UNCLASSIFIED_COLOR,
    CategoryDefine,
    ClusteredGraphModel,
    GraphEdge,
    GraphNode,
    GraphNodeData,
    HostWithMeta,
    NetworkGraphConfigs,
    NetworkSnapshot,
    NodePosition,
)

logger = logging.getLogger(__name__)

SnapshotInput = Union[NetworkSnapshot, Mapping[str, Any]]
ConfigsInput = Union[NetworkGraphConfigs, Mapping[str, Any], None]


def merge_configs(configs: ConfigsInput = None) -> NetworkGraphConfigs:
    """Fill in any omitted rule table with the built-in default.

    A table explicitly set to ``None`` counts as omitted.
    """
    if configs is None:
        return NetworkGraphConfigs()
    if isinstance(configs, NetworkGraphConfigs):
        return configs
    provided = {key: value for key, value in configs.items() if value is not None}
    return NetworkGraphConfigs(**provided)


def build_graph_nodes(
    host_meta: list[HostWithMeta],
    category_config: list[CategoryDefine],
) -> list[GraphNode]:
    colors: dict[str, str] = {}
    for category in category_config:
        colors.setdefault(category.id, category.color)

    return [
        GraphNode(
            id=host.hostname,
            label=host.hostname,
            fill=colors.get(host.category_id, UNCLASSIFIED_COLOR),
            data=GraphNodeData(
                host_type=host.host_type,
                category_id=host.category_id,
                cluster_key=host.cluster_key,
                layer_id=host.layer_id,
                prefecture_code=host.parsed.prefecture_code,
                building_code=host.parsed.building_code,
            ),
        )
        for host in host_meta
    ]


def build_edge_vertices(
    edges: list[GraphEdge],
    positions_by_id: dict[str, NodePosition],
) -> list[float]:
    """Flatten edge endpoints into ``[sx, sy, sz, tx, ty, tz, ...]``."""
    points: list[float] = []
    for edge in edges:
        source = positions_by_id.get(edge.source)
        target = positions_by_id.get(edge.target)
        if source is None or target is None:
            continue
        points.extend((source.x, source.y, source.z, target.x, target.y, target.z))
    return points


def build_model(
    snapshot: SnapshotInput,
    configs: ConfigsInput = None,
) -> ClusteredGraphModel:
    """Classify, lay out and assemble a snapshot into a renderable model.

    Args:
        snapshot: The hosts and connections, as a ``NetworkSnapshot`` or a
                  mapping with ``hosts`` and ``connections`` keys.
        configs: Optional rule tables; any omitted table uses the default.

    The whole model is rebuilt from scratch on every call.
    """
    if not isinstance(snapshot, NetworkSnapshot):
        snapshot = NetworkSnapshot.model_validate(snapshot)
    merged = merge_configs(configs)

    host_meta = classify_hosts(snapshot.hosts, merged)
    nodes = build_graph_nodes(host_meta, merged.category_config)
    known_hosts = {node.id for node in nodes}
    edges = build_edges(snapshot.connections, known_hosts)

    layout = create_cluster_positions(host_meta, merged.category_config)
    edge_vertices = build_edge_vertices(edges, layout.positions_by_id)

    logger.debug("Built model: %d nodes, %d edges, %d shells",
                 len(nodes), len(edges), len(layout.shells))

    return ClusteredGraphModel(
        nodes=nodes,
        edges=edges,
        positions_by_id=layout.positions_by_id,
        edge_vertices=edge_vertices,
        shells=layout.shells,
    )


def empty_model() -> ClusteredGraphModel:
    return ClusteredGraphModel()


def classify_snapshot(
    snapshot: SnapshotInput,
    configs: Optional[ConfigsInput] = None,
) -> list[HostWithMeta]:
    """Run classification only, without layout."""
    if not isinstance(snapshot, NetworkSnapshot):
        snapshot = NetworkSnapshot.model_validate(snapshot)
    return classify_hosts(snapshot.hosts, merge_configs(configs))
