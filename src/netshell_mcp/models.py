"""
Data models for NetShell-MCP — the network shell ontology.

A network snapshot is a flat list of hosts and point-to-point connections.
Classification turns each host into a record that sits in a fixed hierarchy
of increasingly specific groupings:

    Category   — a visual/logical grouping rule (color, scope, ring radii)
    └── Cluster    — hosts sharing one cluster key (drawn as one shell)
        └── Layer      — an ordered tier of host types inside the cluster
            └── Host       — a single device (the atomic unit)

Each category has a **scope** that decides how widely its cluster key is
shared:

    global      — one cluster per category (``global::<categoryId>``)
    prefecture  — one cluster per region (``prefecture::<pref>``)
    building    — one cluster per building (``building::<pref>/<bldg>``)

Rule tables (host types, layers, categories) are ordered lists and are
evaluated first-match-wins in declaration order.
"""

from __future__ import annotations

import re
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


Hostname = str
HostType = str
LayerId = str
CategoryId = str
CategoryScope = Literal["global", "prefecture", "building"]

UNKNOWN_HOST_TYPE = "UNKNOWN"
UNKNOWN_PREFECTURE = "unknown-pref"
UNKNOWN_BUILDING = "unknown-building"
UNCLASSIFIED_LAYER_ID = "unclassified-layer"
UNCLASSIFIED_CATEGORY_ID = "unclassified-category"
UNCLASSIFIED_ORDER = 999
UNCLASSIFIED_COLOR = "#9aa5b1"


# ---------------------------------------------------------------------------
# Input snapshot
# ---------------------------------------------------------------------------

class Host(BaseModel):
    """A host as delivered by the data source.

    ``host_type`` is only a hint: the regex rules in the host type table
    override it, and the placeholder ``-`` counts as no hint at all.
    """
    hostname: Hostname
    host_type: HostType = Field(
        default="-",
        validation_alias=AliasChoices("host_type", "hostType"),
    )


Connection = tuple[Hostname, Hostname]


class NetworkSnapshot(BaseModel):
    """A complete, atomic snapshot of hosts and connections."""
    hosts: list[Host] = Field(default_factory=list)
    connections: list[Connection] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Rule tables
# ---------------------------------------------------------------------------

class HostTypeRule(BaseModel):
    """Maps hostnames matching ``regexp`` to ``type``.

    Regex strings are compiled on validation; use inline flags such as
    ``(?i)`` for case-insensitive rules.
    """
    type: HostType
    regexp: re.Pattern


class LayerDefine(BaseModel):
    """An ordering tier grouping one or more host types."""
    id: LayerId
    order: int
    host_types: list[HostType] = Field(default_factory=list)


class CategoryMatch(BaseModel):
    """Predicate over a host's type, layer and parsed hostname.

    Every provided field must accept the host.  Inclusion lists reject hosts
    not listed, exclusion lists reject hosts listed, and regexes are searched
    against their field (hostname, prefecture, building, unit code).
    """
    host_types: Optional[list[HostType]] = None
    exclude_host_types: Optional[list[HostType]] = None
    layer_ids: Optional[list[LayerId]] = None
    exclude_layer_ids: Optional[list[LayerId]] = None
    hostname_regexp: Optional[re.Pattern] = None
    prefecture_regexp: Optional[re.Pattern] = None
    building_regexp: Optional[re.Pattern] = None
    unit_regexp: Optional[re.Pattern] = None


class CategoryDefine(BaseModel):
    """A category — the rule that gives a host its color and cluster scope.

    Matching
    --------
    ``match`` holds the predicate.  The category-level ``host_types`` is a
    shorthand used when ``match.host_types`` is not given.  A category with
    no rule at all never matches, so an empty entry cannot silently swallow
    every host.

    Geometry
    --------
    ``cluster_ring_radius`` is the minimum radius of the ring carrying this
    category's clusters.  ``local_ring_radius`` and ``local_ring_step`` size
    the per-layer host rings inside each cluster.
    """
    id: CategoryId
    label: str
    order: int
    host_types: Optional[list[HostType]] = None
    match: Optional[CategoryMatch] = None
    scope: CategoryScope = "global"
    color: str = UNCLASSIFIED_COLOR
    cluster_ring_radius: float = 0.0
    local_ring_radius: float = 120.0
    local_ring_step: float = 40.0


def _default_host_type_config() -> list[HostTypeRule]:
    from .config import DEFAULT_HOST_TYPE_CONFIG
    return list(DEFAULT_HOST_TYPE_CONFIG)


def _default_layer_config() -> list[LayerDefine]:
    from .config import DEFAULT_LAYER_CONFIG
    return list(DEFAULT_LAYER_CONFIG)


def _default_category_config() -> list[CategoryDefine]:
    from .config import DEFAULT_CATEGORY_CONFIG
    return list(DEFAULT_CATEGORY_CONFIG)


class NetworkGraphConfigs(BaseModel):
    """The three ordered rule tables.  Omitted tables use the defaults."""
    host_type_config: list[HostTypeRule] = Field(default_factory=_default_host_type_config)
    layer_config: list[LayerDefine] = Field(default_factory=_default_layer_config)
    category_config: list[CategoryDefine] = Field(default_factory=_default_category_config)


# ---------------------------------------------------------------------------
# Classification output
# ---------------------------------------------------------------------------

class ParsedHostname(BaseModel):
    """Region, building and unit tokens extracted from a hostname."""
    raw: Hostname
    prefecture_code: str
    building_code: str
    unit_code: str


class HostWithMeta(BaseModel):
    """A fully classified host."""
    hostname: Hostname
    host_type: HostType
    parsed: ParsedHostname
    layer_id: LayerId
    layer_order: int
    category_id: CategoryId
    category_order: int
    cluster_key: str


# ---------------------------------------------------------------------------
# Renderable model
# ---------------------------------------------------------------------------

class NodePosition(BaseModel):
    id: str
    x: float
    y: float
    z: float


class ClusterShell(BaseModel):
    """The visual boundary around one cluster."""
    id: str
    label: str
    center: tuple[float, float, float]
    radius: float
    color: str
    opacity: float


class GraphNodeData(BaseModel):
    host_type: HostType
    category_id: CategoryId
    cluster_key: str
    layer_id: LayerId
    prefecture_code: str
    building_code: str


class GraphNode(BaseModel):
    id: str
    label: str
    fill: str = UNCLASSIFIED_COLOR
    data: GraphNodeData


class GraphEdge(BaseModel):
    id: str
    source: Hostname
    target: Hostname


class ClusteredGraphModel(BaseModel):
    """The complete renderable structure.

    ``positions_by_id`` is the single source of truth for node placement and
    edge endpoints.  ``edge_vertices`` is a flat buffer holding two 3D points
    (six numbers) per edge, in edge order.
    """
    model_config = ConfigDict(frozen=True)

    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)
    positions_by_id: dict[str, NodePosition] = Field(default_factory=dict)
    edge_vertices: list[float] = Field(default_factory=list)
    shells: list[ClusterShell] = Field(default_factory=list)

    def get_position(self, node_id: str) -> Optional[NodePosition]:
        """Look up a node position by hostname."""
        return self.positions_by_id.get(node_id)
