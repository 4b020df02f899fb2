"""Layout engine tests: ring primitives, adaptive packing, tiers, nesting
of buildings under prefectures, and fallback placement.

The demo network used here:

    core-network (order 0)        1 global cluster, 3 hosts
    prefecture-edges (order 1)    4 prefecture clusters, 2 edge routers each
    building-switches (order 2)   16 building clusters (4 per prefecture),
                                  csw / dsw / 2x asw each
"""

import logging
import math
from itertools import combinations

import pytest

from netshell_mcp.classify import classify_hosts
from netshell_mcp.config import DEFAULT_CATEGORY_CONFIG
from netshell_mcp.layout import (
    BUILDING_CLUSTER_GAP,
    CATEGORY_Y_STEP,
    CLUSTER_GAP,
    FALLBACK_Y,
    TOP_LEVEL_Y,
    ClusterInfo,
    create_cluster_infos,
    create_cluster_positions,
    get_ring_point,
    resolve_adaptive_ring_radius,
)
from netshell_mcp.models import CategoryDefine, CategoryMatch, Host, NetworkGraphConfigs
from netshell_mcp.sources import generate_demo_snapshot


def _layout(hosts, category_config=None):
    configs = NetworkGraphConfigs(category_config=category_config or DEFAULT_CATEGORY_CONFIG)
    records = classify_hosts(hosts, configs)
    return records, create_cluster_positions(records, configs.category_config)


def _shells_by_key(result):
    return {shell.id.split(":", 1)[1]: shell for shell in result.shells}


def _horizontal_distance(a, b) -> float:
    return math.hypot(a[0] - b[0], a[2] - b[2])


# =================================================================
# Ring primitives
# =================================================================

def test_ring_point_singleton_collapses_to_center():
    assert get_ring_point(0, 1, 500, 42) == (0.0, 42, 0.0)
    assert get_ring_point(0, 0, 500, 42, phase=1.0) == (0.0, 42, 0.0)


def test_ring_point_uniform_angles_with_phase():
    x, y, z = get_ring_point(1, 4, 100, 7)
    assert x == pytest.approx(0.0, abs=1e-9)
    assert z == pytest.approx(100.0)
    assert y == 7

    x, _, z = get_ring_point(0, 2, 100, 0, phase=math.pi / 2)
    assert x == pytest.approx(0.0, abs=1e-9)
    assert z == pytest.approx(100.0)


def test_adaptive_radius_uses_configured_radius_for_single_cluster():
    cluster = ClusterInfo(key="k", hosts=[], shell_radius=900)
    assert resolve_adaptive_ring_radius([cluster], 250, CLUSTER_GAP) == 250
    assert resolve_adaptive_ring_radius([], 250, CLUSTER_GAP) == 250


def test_adaptive_radius_grows_past_configured_radius():
    clusters = [ClusterInfo(key=str(i), hosts=[], shell_radius=300) for i in range(8)]
    radius = resolve_adaptive_ring_radius(clusters, 100, CLUSTER_GAP)
    spacing = 2 * 300 + CLUSTER_GAP
    assert radius >= 8 * spacing / (2 * math.pi)
    # adjacent centers on the ring are a full spacing apart
    assert 2 * radius * math.sin(math.pi / 8) == pytest.approx(spacing)


def test_adaptive_radius_respects_large_configured_radius():
    clusters = [ClusterInfo(key=str(i), hosts=[], shell_radius=100) for i in range(3)]
    assert resolve_adaptive_ring_radius(clusters, 5000, CLUSTER_GAP) == 5000


def test_cluster_infos_sorted_and_sized_by_layer_count():
    records, _ = _layout([
        Host(hostname="e02a01--csw1"),
        Host(hostname="e01b10--asw1"),
        Host(hostname="e01b10--asw2"),
        Host(hostname="e01b10--dsw1"),
    ])
    clusters = create_cluster_infos(records, 120, 55)
    assert [c.key for c in clusters] == ["building::e01/b10", "building::e02/a01"]
    assert clusters[0].layer_count == 2
    assert clusters[0].shell_radius == 120 + 2 * 55 + 80
    assert clusters[1].shell_radius == 120 + 1 * 55 + 80


# =================================================================
# Demo network
# =================================================================

def test_every_host_is_placed_exactly_once():
    snapshot = generate_demo_snapshot()
    records, result = _layout(snapshot.hosts)
    assert len(records) == 75
    assert set(result.positions_by_id) == {record.hostname for record in records}
    assert len(result.shells) == 1 + 4 + 16


def test_layout_is_deterministic():
    snapshot = generate_demo_snapshot()
    _, first = _layout(snapshot.hosts)
    _, second = _layout(snapshot.hosts)
    assert {k: v.model_dump() for k, v in first.positions_by_id.items()} == {
        k: v.model_dump() for k, v in second.positions_by_id.items()
    }
    assert [s.model_dump() for s in first.shells] == [s.model_dump() for s in second.shells]


def test_category_heights_sink_with_order():
    _, result = _layout(generate_demo_snapshot().hosts)
    shells = _shells_by_key(result)
    assert shells["global::core-network"].center[1] == TOP_LEVEL_Y
    assert shells["prefecture::e01"].center[1] == TOP_LEVEL_Y - CATEGORY_Y_STEP


def test_shell_metadata():
    _, result = _layout(generate_demo_snapshot().hosts)
    shells = _shells_by_key(result)

    core = shells["global::core-network"]
    assert core.id == "core-network:global::core-network"
    assert core.label == "Core network / global::core-network"
    assert core.opacity == 0.12
    assert core.color == "#7B8FEA"
    # one layer: 180 + 1 * 40 + 80, no layer padding
    assert core.radius == 300

    building = shells["building::e01/a01"]
    assert building.opacity == 0.07
    # three layers: 120 + 3 * 55 + 80, plus 2 * 10 padding
    assert building.radius == 365 + 20


def test_sibling_clusters_do_not_overlap():
    _, result = _layout(generate_demo_snapshot().hosts)
    prefectures = [s for s in result.shells if s.id.startswith("prefecture-edges:")]
    assert len(prefectures) == 4
    for a, b in combinations(prefectures, 2):
        distance = math.dist(a.center, b.center)
        assert distance >= a.radius + b.radius + CLUSTER_GAP - 1e-6


def test_sibling_buildings_do_not_overlap():
    _, result = _layout(generate_demo_snapshot().hosts)
    for pref in ["e01", "e02", "w03", "w04"]:
        buildings = [s for s in result.shells if s.id.startswith(f"building-switches:building::{pref}/")]
        assert len(buildings) == 4
        for a, b in combinations(buildings, 2):
            distance = math.dist(a.center, b.center)
            assert distance >= a.radius + b.radius + BUILDING_CLUSTER_GAP - 1e-6


def test_building_nests_below_its_prefecture():
    records, result = _layout(generate_demo_snapshot().hosts)
    shells = _shells_by_key(result)
    parent = shells["prefecture::e01"]
    child = shells["building::e01/a01"]

    assert child.center[1] < parent.center[1]

    sibling_hosts = [r for r in records if r.cluster_key.startswith("building::e01/")]
    siblings = create_cluster_infos(sibling_hosts, 120, 55)
    bound = resolve_adaptive_ring_radius(siblings, 530, BUILDING_CLUSTER_GAP)
    assert _horizontal_distance(child.center, parent.center) <= bound + 1e-6


def test_building_without_prefecture_keeps_raw_center():
    _, result = _layout([Host(hostname="e05a01--csw1"), Host(hostname="e05a02--csw1")])
    shells = _shells_by_key(result)
    y = TOP_LEVEL_Y - 2 * CATEGORY_Y_STEP
    assert shells["building::e05/a01"].center[1] == y
    assert shells["building::e05/a02"].center[1] == y


def test_layers_stack_around_cluster_center():
    _, result = _layout([
        Host(hostname="e01a01--csw1"),
        Host(hostname="e01a01--dsw1"),
        Host(hostname="e01a01--asw1"),
        Host(hostname="e01a01--asw2"),
    ])
    center = result.shells[0].center
    csw = result.positions_by_id["e01a01--csw1"]
    dsw = result.positions_by_id["e01a01--dsw1"]
    asw1 = result.positions_by_id["e01a01--asw1"]
    asw2 = result.positions_by_id["e01a01--asw2"]

    # lowest layer order on top, middle layer at the center height
    assert csw.y == pytest.approx(center[1] + 90)
    assert dsw.y == pytest.approx(center[1])
    assert asw1.y == pytest.approx(center[1] - 90)

    # single-host rings collapse onto the axis; the access ring has radius 120 + 2 * 55
    assert (csw.x, csw.z) == pytest.approx((center[0], center[2]))
    assert _horizontal_distance((asw1.x, 0, asw1.z), center) == pytest.approx(230)
    assert _horizontal_distance((asw1.x, 0, asw1.z), (asw2.x, 0, asw2.z)) == pytest.approx(460)


# =================================================================
# Tiers
# =================================================================

def _split_prefecture_categories():
    common = dict(scope="prefecture", order=1, color="#4DB6AC",
                  cluster_ring_radius=400, local_ring_radius=190, local_ring_step=35)
    return [
        CategoryDefine(id="pref-east", label="East",
                       match=CategoryMatch(host_types=["EDGE_ROUTER"], prefecture_regexp=r"^e"), **common),
        CategoryDefine(id="pref-west", label="West",
                       match=CategoryMatch(host_types=["EDGE_ROUTER"], prefecture_regexp=r"^w"), **common),
    ]


def test_tier_siblings_are_staggered_and_pushed_outward():
    hosts = [Host(hostname=name) for name in
             ["e01edge--er1", "e02edge--er1", "w03edge--er1", "w04edge--er1"]]
    _, result = _layout(hosts, _split_prefecture_categories())
    shells = _shells_by_key(result)

    east = [shells["prefecture::e01"], shells["prefecture::e02"]]
    west = [shells["prefecture::w03"], shells["prefecture::w04"]]

    for shell in east:
        assert _horizontal_distance(shell.center, (0, 0, 0)) == pytest.approx(400)
    # second slot: 400 + 305 (previous ring outer edge) + 305 + 120
    for shell in west:
        assert _horizontal_distance(shell.center, (0, 0, 0)) == pytest.approx(1130)
    # second slot is rotated by half a turn
    assert shells["prefecture::w03"].center[0] == pytest.approx(-1130)

    for a in east:
        for b in west:
            assert math.dist(a.center, b.center) >= a.radius + b.radius + CLUSTER_GAP - 1e-6


def test_single_cluster_categories_in_one_tier_do_not_stack():
    categories = [
        CategoryDefine(id="gateways", label="Gateways", order=0, host_types=["GWR"],
                       local_ring_radius=180, local_ring_step=40),
        CategoryDefine(id="routers", label="Routers", order=0, host_types=["CORE_ROUTER"],
                       local_ring_radius=180, local_ring_step=40),
    ]
    _, result = _layout([Host(hostname="e01core--gwr1"), Host(hostname="e01core--cr1")], categories)
    gateways, routers = result.shells
    assert gateways.center == (0.0, TOP_LEVEL_Y, 0.0)
    assert math.dist(gateways.center, routers.center) >= gateways.radius + routers.radius + CLUSTER_GAP - 1e-6


def test_categories_with_same_order_are_laid_out_by_id():
    categories = list(reversed(_split_prefecture_categories()))
    hosts = [Host(hostname="e01edge--er1"), Host(hostname="w03edge--er1")]
    _, result = _layout(hosts, categories)
    assert [shell.id.split(":", 1)[0] for shell in result.shells] == ["pref-east", "pref-west"]


# =================================================================
# Fallback placement
# =================================================================

def test_unclassified_host_lands_on_fallback_ring(caplog):
    with caplog.at_level(logging.WARNING, logger="netshell_mcp.layout"):
        records, result = _layout([Host(hostname="e01core--gwr1"), Host(hostname="lab-printer")])

    assert records[1].category_id == "unclassified-category"
    position = result.positions_by_id["lab-printer"]
    assert position.y == FALLBACK_Y
    assert math.hypot(position.x, position.z) == pytest.approx(300)
    assert "lab-printer" in caplog.text
    # no shell for the unclassified bucket
    assert all(not shell.id.startswith("unclassified-category") for shell in result.shells)


def test_empty_layout():
    result = create_cluster_positions([], DEFAULT_CATEGORY_CONFIG)
    assert result.positions_by_id == {}
    assert result.shells == []
