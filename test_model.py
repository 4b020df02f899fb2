"""Model assembly, YAML parsing, snapshot sources and the snapshot session."""

import asyncio

import aiohttp
import pytest
from aiohttp import test_utils, web

from netshell_mcp.classify import classify_hosts
from netshell_mcp.config import DEFAULT_CATEGORY_CONFIG, DEFAULT_LAYER_CONFIG
from netshell_mcp.model import build_model, merge_configs
from netshell_mcp.models import (
    UNCLASSIFIED_COLOR,
    ClusteredGraphModel,
    Host,
    HostTypeRule,
    NetworkGraphConfigs,
    NetworkSnapshot,
)
from netshell_mcp.parser import (
    config_to_yaml,
    model_to_json,
    parse_config_yaml,
    parse_snapshot_file,
    parse_snapshot_yaml,
    snapshot_to_yaml,
)
from netshell_mcp.session import DEFAULT_ERROR_MESSAGE, SnapshotSession
from netshell_mcp.sources import (
    FileSnapshotSource,
    HttpSnapshotSource,
    generate_demo_snapshot,
)


SMALL_SNAPSHOT = {
    "hosts": [
        {"hostname": "e01core--gwr1", "host_type": "GWR"},
        {"hostname": "e01edge--er1", "hostType": "EDGE_ROUTER"},
        {"hostname": "e01a01--csw1"},
        {"hostname": "lab-printer"},
    ],
    "connections": [
        ["e01core--gwr1", "e01edge--er1"],
        ["e01edge--er1", "e01a01--csw1"],
        ["e01a01--csw1", "ghost-host"],
    ],
}


# =================================================================
# Model assembly
# =================================================================

def test_demo_snapshot_counts():
    snapshot = generate_demo_snapshot()
    assert len(snapshot.hosts) == 75
    assert len(snapshot.connections) == 92


def test_build_model_from_mapping():
    model = build_model(SMALL_SNAPSHOT)

    assert [node.id for node in model.nodes] == [
        "e01core--gwr1", "e01edge--er1", "e01a01--csw1", "lab-printer",
    ]
    assert len(model.edges) == 2
    assert [edge.id for edge in model.edges] == ["edge-0", "edge-1"]
    assert set(model.positions_by_id) == {node.id for node in model.nodes}
    assert len(model.edge_vertices) == 6 * len(model.edges)


def test_node_fill_and_data():
    model = build_model(SMALL_SNAPSHOT)
    nodes = {node.id: node for node in model.nodes}

    assert nodes["e01core--gwr1"].fill == "#7B8FEA"
    assert nodes["e01edge--er1"].fill == "#4DB6AC"
    assert nodes["lab-printer"].fill == UNCLASSIFIED_COLOR

    data = nodes["e01a01--csw1"].data
    assert data.host_type == "BUILDING_CORE_SW"
    assert data.layer_id == "building-core"
    assert data.category_id == "building-switches"
    assert data.cluster_key == "building::e01/a01"
    assert data.prefecture_code == "e01"
    assert data.building_code == "a01"


def test_edge_vertices_follow_positions():
    model = build_model(generate_demo_snapshot())
    assert len(model.edges) == 92
    assert len(model.edge_vertices) == 92 * 6

    first = model.edges[0]
    source = model.get_position(first.source)
    target = model.get_position(first.target)
    assert model.edge_vertices[:6] == [source.x, source.y, source.z, target.x, target.y, target.z]


def test_build_model_is_repeatable():
    snapshot = generate_demo_snapshot()
    assert model_to_json(build_model(snapshot)) == model_to_json(build_model(snapshot))


def test_empty_snapshot_builds_empty_model():
    model = build_model({"hosts": [], "connections": []})
    assert model == ClusteredGraphModel()


def test_merge_configs_fills_missing_tables():
    merged = merge_configs({"category_config": None, "layer_config": DEFAULT_LAYER_CONFIG[:1]})
    assert [layer.id for layer in merged.layer_config] == ["upper-layer"]
    assert [c.id for c in merged.category_config] == [c.id for c in DEFAULT_CATEGORY_CONFIG]
    assert len(merged.host_type_config) == 6

    assert merge_configs(None) == NetworkGraphConfigs()


def test_custom_host_types_only():
    configs = {"host_type_config": [HostTypeRule(type="GWR", regexp=r"printer")]}
    model = build_model(SMALL_SNAPSHOT, configs)
    nodes = {node.id: node for node in model.nodes}

    assert nodes["lab-printer"].data.host_type == "GWR"
    assert nodes["lab-printer"].data.category_id == "core-network"
    # no rule matches, so the hint is kept
    assert nodes["e01edge--er1"].data.host_type == "EDGE_ROUTER"
    assert nodes["e01a01--csw1"].data.host_type == "UNKNOWN"


# =================================================================
# YAML parsing
# =================================================================

def test_config_yaml_round_trip_keeps_case_insensitivity():
    configs = parse_config_yaml(config_to_yaml(NetworkGraphConfigs()))

    assert [rule.type for rule in configs.host_type_config] == [
        rule.type for rule in NetworkGraphConfigs().host_type_config
    ]
    records = classify_hosts([Host(hostname="E01EDGE--ER1")], configs)
    assert records[0].host_type == "EDGE_ROUTER"
    assert records[0].category_id == "prefecture-edges"
    assert records[0].cluster_key == "prefecture::e01"


def test_partial_config_yaml_uses_defaults():
    configs = parse_config_yaml("""
categories:
  - id: everything
    label: Everything
    host_types: [GWR, CORE_ROUTER, EDGE_ROUTER]
    color: "#123456"
""")
    assert len(configs.layer_config) == 5
    assert len(configs.category_config) == 1

    category = configs.category_config[0]
    assert category.order == 0
    assert category.scope == "global"
    assert category.local_ring_radius == 120


def test_config_yaml_with_match_patterns():
    configs = parse_config_yaml(r"""
categories:
  - id: west
    label: West
    match:
      host_types: [EDGE_ROUTER]
      prefecture_regexp: "^w"
""")
    match = configs.category_config[0].match
    assert match.prefecture_regexp.search("w03")
    assert not match.prefecture_regexp.search("e01")


def test_empty_yaml_is_rejected():
    with pytest.raises(ValueError, match="Empty YAML input"):
        parse_config_yaml("")
    with pytest.raises(ValueError, match="Empty YAML input"):
        parse_snapshot_yaml("   \n")
    with pytest.raises(ValueError, match="mapping"):
        parse_snapshot_yaml("- a\n- b\n")


def test_parse_snapshot_yaml():
    snapshot = parse_snapshot_yaml("""
hosts:
  - e01core--gwr1
  - hostname: e01edge--er1
    hostType: EDGE_ROUTER
connections:
  - [e01core--gwr1, e01edge--er1]
""")
    assert [host.hostname for host in snapshot.hosts] == ["e01core--gwr1", "e01edge--er1"]
    assert snapshot.hosts[0].host_type == "-"
    assert snapshot.hosts[1].host_type == "EDGE_ROUTER"
    assert snapshot.connections == [("e01core--gwr1", "e01edge--er1")]


def test_malformed_yaml_is_a_value_error():
    with pytest.raises(ValueError, match="Invalid YAML"):
        parse_snapshot_yaml("hosts: [a, b\n")
    with pytest.raises(ValueError, match="Invalid YAML"):
        parse_config_yaml("layers: [{id: x")


@pytest.mark.parametrize("config_yaml, message", [
    ("layers:\n  - order: 1\n    host_types: [GWR]\n", "layer entry is missing id"),
    ("host_types:\n  - type: GWR\n", "host type entry is missing regexp"),
    ("categories:\n  - label: Nameless\n", "category entry is missing id"),
    ("layers:\n  - upper-layer\n", "must be a mapping"),
    ("categories:\n  - id: c\n    match: [GWR]\n", "match must be a mapping"),
])
def test_incomplete_config_entries_are_value_errors(config_yaml, message):
    with pytest.raises(ValueError, match=message):
        parse_config_yaml(config_yaml)


@pytest.mark.parametrize("connection", [
    "  - ab\n",
    "  - [e01core--gwr1]\n",
    "  - [a, b, ab]\n",
])
def test_connections_must_be_pairs(connection):
    with pytest.raises(ValueError, match=r"\[source, target\] pair"):
        parse_snapshot_yaml("hosts: [ab, a, b, e01core--gwr1]\nconnections:\n" + connection)


def test_snapshot_yaml_file(tmp_path):
    path = tmp_path / "snapshot.yaml"
    path.write_text(snapshot_to_yaml(generate_demo_snapshot()))

    snapshot = parse_snapshot_file(str(path))
    assert snapshot == generate_demo_snapshot()


def test_model_json_has_renderer_fields():
    text = model_to_json(build_model(SMALL_SNAPSHOT), indent=2)
    for key in ("nodes", "edges", "positions_by_id", "edge_vertices", "shells"):
        assert f'"{key}"' in text


# =================================================================
# Sources and session
# =================================================================

async def _failing_source():
    raise RuntimeError("upstream down")


async def _silent_failing_source():
    raise ConnectionError()


def test_session_loads_demo_by_default():
    session = SnapshotSession()
    model = asyncio.run(session.load())

    assert session.error is None
    assert session.loading is False
    assert session.load_count == 1
    assert len(model.nodes) == 75
    assert len(model.shells) == 21


def test_session_captures_fetch_errors():
    session = SnapshotSession(source=_failing_source)
    model = asyncio.run(session.load())

    assert session.error == "upstream down"
    assert session.loading is False
    assert session.load_count == 0
    assert model == ClusteredGraphModel()


def test_session_error_has_default_message():
    session = SnapshotSession(source=_silent_failing_source)
    asyncio.run(session.load())
    assert session.error == DEFAULT_ERROR_MESSAGE


def test_session_reload_replaces_model():
    session = SnapshotSession()
    first = asyncio.run(session.load())
    second = asyncio.run(session.reload())

    assert session.load_count == 2
    assert second is not first
    assert second == first


def test_session_is_loading_until_first_load_settles():
    session = SnapshotSession()
    assert session.loading is True
    assert session.error is None
    assert session.model == ClusteredGraphModel()

    asyncio.run(session.load())
    assert session.loading is False


def _gated_source(first_result):
    """A source whose first fetch waits on ``release``; later fetches return h2."""
    release = asyncio.Event()
    calls = []

    async def source():
        calls.append(len(calls))
        if len(calls) == 1:
            await release.wait()
            if isinstance(first_result, Exception):
                raise first_result
            return first_result
        return NetworkSnapshot(hosts=[Host(hostname="h2")])

    return source, release


@pytest.mark.parametrize("first_result", [
    NetworkSnapshot(hosts=[Host(hostname="h1")]),
    RuntimeError("stale fetch failed"),
])
def test_session_superseded_load_cannot_overwrite(first_result):
    async def run():
        source, release = _gated_source(first_result)
        session = SnapshotSession(source=source)

        slow = asyncio.create_task(session.load())
        await asyncio.sleep(0)
        await session.reload()

        after_reload = ([node.id for node in session.model.nodes], session.loading)
        release.set()
        await slow
        return session, after_reload

    session, (nodes_after_reload, loading_after_reload) = asyncio.run(run())

    assert nodes_after_reload == ["h2"]
    # the first fetch is still in flight
    assert loading_after_reload is True

    assert [node.id for node in session.model.nodes] == ["h2"]
    assert session.loading is False
    assert session.error is None
    assert session.load_count == 1


def test_session_set_configs_rebuilds():
    session = SnapshotSession()
    asyncio.run(session.load())

    model = session.set_configs({"category_config": []})
    assert model.shells == []
    assert len(model.positions_by_id) == 75
    assert all(node.fill == UNCLASSIFIED_COLOR for node in model.nodes)


def test_file_source(tmp_path):
    path = tmp_path / "snapshot.yaml"
    path.write_text(snapshot_to_yaml(generate_demo_snapshot()))

    session = SnapshotSession(source=FileSnapshotSource(path))
    model = asyncio.run(session.load())
    assert len(model.nodes) == 75


def _snapshot_app() -> web.Application:
    async def snapshot(request):
        return web.json_response(generate_demo_snapshot().model_dump(mode="json"))

    async def broken(request):
        return web.Response(status=500, text="boom")

    app = web.Application()
    app.router.add_get("/snapshot", snapshot)
    app.router.add_get("/broken", broken)
    return app


def test_http_source():
    async def run():
        async with test_utils.TestServer(_snapshot_app()) as server:
            source = HttpSnapshotSource(str(server.make_url("/snapshot")))
            return await source()

    snapshot = asyncio.run(run())
    assert snapshot == generate_demo_snapshot()


def test_http_source_error_status():
    async def run():
        async with test_utils.TestServer(_snapshot_app()) as server:
            source = HttpSnapshotSource(str(server.make_url("/broken")))
            with pytest.raises(aiohttp.ClientResponseError):
                await source()

            session = SnapshotSession(source=source)
            await session.load()
            return session

    session = asyncio.run(run())
    assert session.error
    assert session.model == ClusteredGraphModel()
