"""Built-in rule tables.

These are used for any table the caller leaves out.  Order matters in every
table: the first matching entry wins.
"""

from __future__ import annotations

import re

from .models import (
    CategoryDefine,
    CategoryMatch,
    HostTypeRule,
    LayerDefine,
)


# Prefix: (e|w)NN + building code, delimiter, unit code.
HOSTNAME_PATTERN = re.compile(r"^((e|w)(\d{2}))(.+?)-+(.+)$", re.IGNORECASE)

DEFAULT_HOST_TYPE_CONFIG: list[HostTypeRule] = [
    HostTypeRule(type="GWR", regexp=r"(?i)-+gwr\d+$"),
    HostTypeRule(type="CORE_ROUTER", regexp=r"(?i)-+(core|cr|corert)\d+$"),
    HostTypeRule(type="EDGE_ROUTER", regexp=r"(?i)-+(edge|er)\d+$"),
    HostTypeRule(type="BUILDING_CORE_SW", regexp=r"(?i)-+(bcsw|coresw|csw)\d+$"),
    HostTypeRule(type="BUILDING_DISTRIBUTION_SW", regexp=r"(?i)-+(bdsw|distsw|dsw)\d+$"),
    HostTypeRule(type="BUILDING_ACCESS_SW", regexp=r"(?i)-+(basw|accsw|asw)\d+$"),
]

DEFAULT_LAYER_CONFIG: list[LayerDefine] = [
    LayerDefine(id="upper-layer", order=0, host_types=["GWR", "CORE_ROUTER"]),
    LayerDefine(id="prefecture-edge", order=1, host_types=["EDGE_ROUTER"]),
    LayerDefine(id="building-core", order=2, host_types=["BUILDING_CORE_SW"]),
    LayerDefine(id="building-distribution", order=3, host_types=["BUILDING_DISTRIBUTION_SW"]),
    LayerDefine(id="building-access", order=4, host_types=["BUILDING_ACCESS_SW"]),
]

DEFAULT_CATEGORY_CONFIG: list[CategoryDefine] = [
    CategoryDefine(
        id="core-network",
        label="Core network",
        order=0,
        match=CategoryMatch(host_types=["GWR", "CORE_ROUTER"]),
        scope="global",
        color="#7B8FEA",
        cluster_ring_radius=0,
        local_ring_radius=180,
        local_ring_step=40,
    ),
    CategoryDefine(
        id="prefecture-edges",
        label="Prefecture",
        order=1,
        match=CategoryMatch(
            host_types=["EDGE_ROUTER"],
            prefecture_regexp=r"(?i)^(e|w)\d{2}$",
        ),
        scope="prefecture",
        color="#4DB6AC",
        cluster_ring_radius=1300,
        local_ring_radius=190,
        local_ring_step=35,
    ),
    CategoryDefine(
        id="building-switches",
        label="Building",
        order=2,
        match=CategoryMatch(
            layer_ids=["building-core", "building-distribution", "building-access"],
        ),
        scope="building",
        color="#8AB4F8",
        cluster_ring_radius=530,
        local_ring_radius=120,
        local_ring_step=55,
    ),
]
