"""
Hierarchical radial layout for NetShell-MCP.

Turns classified hosts into 3D positions and the shells that enclose them.
The layout is built as nested rings:

  1. Category tier — categories are processed by ``order`` (ties by id).
     Categories sharing an order form one tier and are staggered around it
     by an angular phase; later slots in a tier are pushed outward so their
     rings never cross the previous slot's clusters.
  2. Cluster ring — a category's clusters (one per cluster key, sorted)
     sit evenly on a ring whose radius grows with the cluster count and
     the largest shell, so neighbouring shells never overlap.
  3. Nested buildings — building-scoped clusters are re-centered on a ring
     around their parent prefecture cluster, below it, packed against their
     sibling buildings only.
  4. Layer rings — inside a cluster, hosts are bucketed by layer order;
     each bucket gets its own ring, stacked vertically around the center.

Heights: a category sits at ``TOP_LEVEL_Y - order * CATEGORY_Y_STEP`` so
higher orders sink lower.  Buildings sit ``PREFECTURE_BUILDING_OFFSET_Y``
below their prefecture.

Every layout call starts from empty state and sorts before iterating, so
identical input always yields identical output.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Optional

from .models import (
    CategoryDefine,
    ClusterShell,
    HostWithMeta,
    NodePosition,
)

logger = logging.getLogger(__name__)


# --- Vertical placement ---

TOP_LEVEL_Y = 1000
CATEGORY_Y_STEP = 700
PREFECTURE_BUILDING_OFFSET_Y = -750
LAYER_Y_SPACING = 90

# --- Ring packing ---

CLUSTER_GAP = 120
BUILDING_CLUSTER_GAP = 100
MIN_SHELL_RADIUS = 120
SHELL_BASE_PADDING = 80
SHELL_LAYER_PADDING = 10

# --- Unplaced hosts ---

FALLBACK_RING_RADIUS = 300
FALLBACK_Y = TOP_LEVEL_Y - 3 * CATEGORY_Y_STEP

GLOBAL_SHELL_OPACITY = 0.12
SCOPED_SHELL_OPACITY = 0.07

Point3 = tuple[float, float, float]


@dataclass
class ClusterInfo:
    """All hosts sharing one cluster key within a category."""
    key: str
    hosts: list[HostWithMeta]
    shell_radius: float
    layer_count: int = 1

    @property
    def outer_radius(self) -> float:
        """Radius of the emitted shell, including per-layer padding."""
        return self.shell_radius + max(0, self.layer_count - 1) * SHELL_LAYER_PADDING


@dataclass
class TierSlot:
    """One category's share of an order tier."""
    category: CategoryDefine
    clusters: list[ClusterInfo] = field(default_factory=list)


@dataclass
class LayoutResult:
    positions_by_id: dict[str, NodePosition]
    shells: list[ClusterShell]


# ---------------------------------------------------------------------------
# Ring primitives
# ---------------------------------------------------------------------------

def get_ring_point(
    index: int,
    total: int,
    radius: float,
    y: float,
    phase: float = 0.0,
) -> Point3:
    """Point ``index`` of ``total`` evenly spaced points on a horizontal ring.

    A ring of one (or zero) points collapses to its center.
    """
    if total <= 1:
        return (0.0, y, 0.0)

    angle = phase + (math.pi * 2 * index) / total
    return (math.cos(angle) * radius, y, math.sin(angle) * radius)


def _point_at_angle(angle: float, radius: float, y: float) -> Point3:
    return (math.cos(angle) * radius, y, math.sin(angle) * radius)


def _tier_phase(slot: int, slot_count: int) -> float:
    return (math.pi * 2 * slot) / max(slot_count, 1)


def _max_outer_radius(clusters: list[ClusterInfo]) -> float:
    return max([cluster.outer_radius for cluster in clusters] + [MIN_SHELL_RADIUS])


# ---------------------------------------------------------------------------
# Cluster sizing
# ---------------------------------------------------------------------------

def create_cluster_infos(
    category_hosts: list[HostWithMeta],
    local_ring_radius: float,
    local_ring_step: float,
) -> list[ClusterInfo]:
    """Group a category's hosts by cluster key, sorted by key.

    A cluster's shell grows with the number of distinct layers it holds,
    since each layer adds one ring of ``local_ring_step``.
    """
    grouped: dict[str, list[HostWithMeta]] = {}
    for host in category_hosts:
        grouped.setdefault(host.cluster_key, []).append(host)

    clusters: list[ClusterInfo] = []
    for key in sorted(grouped):
        hosts = grouped[key]
        layer_count = len({host.layer_order for host in hosts}) or 1
        clusters.append(ClusterInfo(
            key=key,
            hosts=hosts,
            shell_radius=local_ring_radius + layer_count * local_ring_step + SHELL_BASE_PADDING,
            layer_count=layer_count,
        ))
    return clusters


def resolve_adaptive_ring_radius(
    clusters: list[ClusterInfo],
    cluster_ring_radius: float,
    gap: float,
) -> float:
    """Smallest ring radius at which evenly spaced clusters do not overlap.

    With one cluster (or none) the configured radius is used as is.
    Otherwise adjacent centers must be at least ``2 * maxShell + gap``
    apart.  Adjacent centers on a ring of ``n`` points are a chord
    ``2 r sin(pi / n)`` apart, which is always at least the arc-length
    estimate ``n * spacing / 2pi``, so the configured radius is only a
    lower bound.
    """
    count = len(clusters)
    if count <= 1:
        return cluster_ring_radius

    min_spacing = _max_outer_radius(clusters) * 2 + gap
    circumference_radius = (count * min_spacing) / (math.pi * 2)
    chord_radius = min_spacing / (2 * math.sin(math.pi / count))
    return max(cluster_ring_radius, circumference_radius, chord_radius)


# ---------------------------------------------------------------------------
# Cluster centers
# ---------------------------------------------------------------------------

def category_height(category_order: int) -> float:
    return TOP_LEVEL_Y - category_order * CATEGORY_Y_STEP


def create_cluster_centers(
    clusters: list[ClusterInfo],
    category_order: int,
    ring_radius: float,
    phase: float = 0.0,
    slot_count: int = 1,
) -> dict[str, Point3]:
    """Place each cluster on the category ring.

    A lone cluster normally sits on the ring axis.  When it shares its tier
    with other categories it sits on the ring at its slot phase instead, so
    tier siblings never stack on the axis.
    """
    y = category_height(category_order)
    if len(clusters) == 1 and slot_count > 1:
        return {clusters[0].key: _point_at_angle(phase, ring_radius, y)}

    return {
        cluster.key: get_ring_point(index, len(clusters), ring_radius, y, phase)
        for index, cluster in enumerate(clusters)
    }


def _building_prefecture(cluster_key: str) -> str:
    building_key = cluster_key.removeprefix("building::")
    return building_key.split("/", 1)[0]


def move_building_center_by_parent(
    cluster_key: str,
    raw_center: Point3,
    siblings: list[ClusterInfo],
    category_radius: float,
    order_slot: int,
    order_slot_count: int,
    prefecture_centers: dict[str, Point3],
) -> Point3:
    """Re-center a building cluster around its parent prefecture.

    Siblings are the building clusters of the same prefecture.  They are
    packed on their own adaptive ring around the parent, one fixed step
    below it.  Without a placed parent the raw center is kept.
    """
    parent_center = prefecture_centers.get(_building_prefecture(cluster_key))
    if parent_center is None:
        return raw_center

    sibling_keys = [cluster.key for cluster in siblings]
    sibling_index = sibling_keys.index(cluster_key) if cluster_key in sibling_keys else 0
    adaptive_radius = resolve_adaptive_ring_radius(siblings, category_radius, BUILDING_CLUSTER_GAP)
    offset = get_ring_point(
        sibling_index,
        len(siblings) or 1,
        adaptive_radius,
        0.0,
        _tier_phase(order_slot, order_slot_count),
    )

    return (
        parent_center[0] + offset[0],
        parent_center[1] + PREFECTURE_BUILDING_OFFSET_Y,
        parent_center[2] + offset[2],
    )


# ---------------------------------------------------------------------------
# Host placement
# ---------------------------------------------------------------------------

def place_cluster_nodes(
    cluster_hosts: list[HostWithMeta],
    center: Point3,
    local_ring_radius: float,
    local_ring_step: float,
    positions_by_id: dict[str, NodePosition],
) -> int:
    """Place a cluster's hosts on one ring per layer.

    Lower layer orders sit higher; the stack of rings is centered
    vertically on the cluster center.  Returns the number of layer rings.
    """
    buckets: dict[int, list[HostWithMeta]] = {}
    for host in cluster_hosts:
        buckets.setdefault(host.layer_order, []).append(host)

    layer_orders = sorted(buckets)
    for layer_index, layer_order in enumerate(layer_orders):
        bucket = buckets[layer_order]
        radius = local_ring_radius + layer_index * local_ring_step
        y_offset = ((len(layer_orders) - 1) / 2 - layer_index) * LAYER_Y_SPACING

        for node_index, host in enumerate(bucket):
            x, y, z = get_ring_point(node_index, len(bucket), radius, y_offset)
            positions_by_id[host.hostname] = NodePosition(
                id=host.hostname,
                x=center[0] + x,
                y=center[1] + y,
                z=center[2] + z,
            )

    return len(layer_orders)


def _place_unplaced_hosts(
    hosts: list[HostWithMeta],
    positions_by_id: dict[str, NodePosition],
) -> list[str]:
    """Put hosts the cluster pass skipped on the fallback ring."""
    unplaced: list[str] = []
    for index, host in enumerate(hosts):
        if host.hostname in positions_by_id:
            continue
        x, y, z = get_ring_point(index, len(hosts), FALLBACK_RING_RADIUS, FALLBACK_Y)
        positions_by_id[host.hostname] = NodePosition(id=host.hostname, x=x, y=y, z=z)
        unplaced.append(host.hostname)
    return unplaced


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def _group_tiers(
    hosts: list[HostWithMeta],
    category_config: list[CategoryDefine],
) -> dict[int, list[TierSlot]]:
    """Group categories with hosts into order tiers, sorted by (order, id)."""
    hosts_by_category: dict[str, list[HostWithMeta]] = {}
    for host in hosts:
        hosts_by_category.setdefault(host.category_id, []).append(host)

    tiers: dict[int, list[TierSlot]] = {}
    seen: set[str] = set()
    for category in sorted(category_config, key=lambda c: (c.order, c.id)):
        if category.id in seen:
            continue
        seen.add(category.id)

        category_hosts = hosts_by_category.get(category.id)
        if not category_hosts:
            continue

        clusters = create_cluster_infos(
            category_hosts,
            category.local_ring_radius,
            category.local_ring_step,
        )
        tiers.setdefault(category.order, []).append(TierSlot(category=category, clusters=clusters))
        logger.debug("Category %s: %d hosts in %d clusters",
                     category.id, len(category_hosts), len(clusters))
    return tiers


def create_cluster_positions(
    hosts: list[HostWithMeta],
    category_config: list[CategoryDefine],
) -> LayoutResult:
    """
    Lay out classified hosts and emit one shell per cluster.

    Steps:
    1. Group categories into order tiers and their hosts into clusters
    2. Per tier slot, size the cluster ring (adaptive radius, pushed outward
       past earlier slots of the same tier) and stagger it by phase
    3. Center clusters on the ring; record prefecture centers
    4. Re-center building clusters around their parent prefecture
    5. Place hosts on per-layer rings and emit the shell
    6. Put any host left over on the fallback ring
    """
    positions_by_id: dict[str, NodePosition] = {}
    shells: list[ClusterShell] = []
    prefecture_centers: dict[str, Point3] = {}

    tiers = _group_tiers(hosts, category_config)

    for order in sorted(tiers):
        tier = tiers[order]
        slot_count = len(tier)
        previous_outer = 0.0

        for order_slot, slot in enumerate(tier):
            category = slot.category
            clusters = slot.clusters
            phase = _tier_phase(order_slot, slot_count)
            max_shell = _max_outer_radius(clusters)

            adaptive_radius = resolve_adaptive_ring_radius(
                clusters, category.cluster_ring_radius, CLUSTER_GAP
            )
            if order_slot == 0:
                ring_radius = adaptive_radius
            else:
                ring_radius = max(adaptive_radius, previous_outer + max_shell + CLUSTER_GAP)
            previous_outer = ring_radius + max_shell

            centers = create_cluster_centers(
                clusters, category.order, ring_radius, phase, slot_count
            )

            siblings_by_prefecture: dict[str, list[ClusterInfo]] = {}
            if category.scope == "building":
                for cluster in clusters:
                    siblings_by_prefecture.setdefault(
                        _building_prefecture(cluster.key), []
                    ).append(cluster)

            for cluster in clusters:
                center: Optional[Point3] = centers.get(cluster.key)
                if center is None:
                    continue

                if category.scope == "prefecture":
                    prefecture_centers[cluster.key.removeprefix("prefecture::")] = center
                elif category.scope == "building":
                    center = move_building_center_by_parent(
                        cluster.key,
                        center,
                        siblings_by_prefecture.get(_building_prefecture(cluster.key), [cluster]),
                        category.cluster_ring_radius,
                        order_slot,
                        slot_count,
                        prefecture_centers,
                    )

                layer_count = place_cluster_nodes(
                    cluster.hosts,
                    center,
                    category.local_ring_radius,
                    category.local_ring_step,
                    positions_by_id,
                )

                shells.append(ClusterShell(
                    id=f"{category.id}:{cluster.key}",
                    label=f"{category.label} / {cluster.key}",
                    center=center,
                    radius=cluster.shell_radius + max(0, layer_count - 1) * SHELL_LAYER_PADDING,
                    color=category.color,
                    opacity=GLOBAL_SHELL_OPACITY if category.scope == "global" else SCOPED_SHELL_OPACITY,
                ))

    unplaced = _place_unplaced_hosts(hosts, positions_by_id)
    if unplaced:
        logger.warning(
            "%d hosts had no laid-out category and were put on the fallback ring: %s",
            len(unplaced), ", ".join(unplaced[:10]) + (" ..." if len(unplaced) > 10 else ""),
        )

    return LayoutResult(positions_by_id=positions_by_id, shells=shells)
