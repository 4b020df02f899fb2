"""Snapshot sources — where hosts and connections come from.

A source is any zero-argument coroutine function returning a
``NetworkSnapshot``.  The core never awaits anything itself; the session
awaits a source once per load and hands the result to ``build_model``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

import aiohttp

from .models import Host, HostType, NetworkSnapshot
from .parser import parse_snapshot_yaml

logger = logging.getLogger(__name__)

SnapshotSource = Callable[[], Awaitable[NetworkSnapshot]]

DEMO_PREFECTURES = ["e01", "e02", "w03", "w04"]
DEMO_BUILDINGS = ["a01", "a02", "b10", "c20"]


def _make_host(area: str, building: str, unit: str, host_type: HostType) -> Host:
    return Host(hostname=f"{area}{building}--{unit}", host_type=host_type)


def generate_demo_snapshot(
    prefectures: list[str] | None = None,
    buildings: list[str] | None = None,
) -> NetworkSnapshot:
    """Build a synthetic carrier network.

    Three core nodes feed two edge routers per prefecture; every building
    of every prefecture hangs one core switch off both edge routers, with
    a distribution switch and two access switches below it.
    """
    prefectures = DEMO_PREFECTURES if prefectures is None else prefectures
    buildings = DEMO_BUILDINGS if buildings is None else buildings

    hosts: list[Host] = []
    connections: list[tuple[str, str]] = []

    core_nodes = [
        _make_host("e01", "core", "gwr1", "GWR"),
        _make_host("w03", "core", "gwr2", "GWR"),
        _make_host("e01", "core", "cr1", "CORE_ROUTER"),
    ]
    hosts.extend(core_nodes)

    for pref_index, pref in enumerate(prefectures):
        edge1 = _make_host(pref, "edge", f"er{pref_index * 2 + 1}", "EDGE_ROUTER")
        edge2 = _make_host(pref, "edge", f"er{pref_index * 2 + 2}", "EDGE_ROUTER")
        hosts.extend([edge1, edge2])

        connections.append((core_nodes[0].hostname, edge1.hostname))
        connections.append((core_nodes[1].hostname, edge2.hostname))
        connections.append((core_nodes[2].hostname, edge1.hostname))

        for building in buildings:
            csw = _make_host(pref, building, "csw1", "BUILDING_CORE_SW")
            dsw = _make_host(pref, building, "dsw1", "BUILDING_DISTRIBUTION_SW")
            asw1 = _make_host(pref, building, "asw1", "BUILDING_ACCESS_SW")
            asw2 = _make_host(pref, building, "asw2", "BUILDING_ACCESS_SW")
            hosts.extend([csw, dsw, asw1, asw2])

            connections.append((edge1.hostname, csw.hostname))
            connections.append((edge2.hostname, csw.hostname))
            connections.append((csw.hostname, dsw.hostname))
            connections.append((dsw.hostname, asw1.hostname))
            connections.append((dsw.hostname, asw2.hostname))

    return NetworkSnapshot(hosts=hosts, connections=connections)


async def demo_source() -> NetworkSnapshot:
    return generate_demo_snapshot()


class FileSnapshotSource:
    """Reads a YAML or JSON snapshot file on every load."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    async def __call__(self) -> NetworkSnapshot:
        content = await asyncio.to_thread(self.path.read_text)
        return parse_snapshot_yaml(content)


class HttpSnapshotSource:
    """Fetches a JSON snapshot over HTTP.

    The endpoint must return ``{"hosts": [...], "connections": [...]}``.
    Non-2xx responses raise ``aiohttp.ClientResponseError``; there are no
    retries.
    """

    def __init__(self, url: str, timeout: float = 30.0, headers: dict[str, str] | None = None):
        self.url = url
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.headers = headers or {}

    async def __call__(self) -> NetworkSnapshot:
        async with aiohttp.ClientSession(timeout=self.timeout, headers=self.headers) as session:
            async with session.get(self.url) as response:
                response.raise_for_status()
                payload = await response.json(content_type=None)
        logger.info(f"Fetched snapshot from {self.url}")
        return NetworkSnapshot.model_validate(payload)
