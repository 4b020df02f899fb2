"""
Host classification pipeline for NetShell-MCP.

Every host runs through the same four steps, each with an explicit
fallback so malformed input ends up in a visible "unclassified" bucket
instead of aborting:

  1. Type    — first matching host type regex, else the hint, else UNKNOWN
  2. Parse   — region / building / unit tokens, else sentinel codes
  3. Layer   — first layer listing the type, else ``unclassified-layer``
  4. Category — first category accepting the host, else ``unclassified-category``

The category's scope then decides the cluster key.  Connections are
filtered down to edges whose endpoints are both known hosts.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from .categories import CategoryTarget, find_category_for_host
from .config import HOSTNAME_PATTERN
from .models import (
    UNCLASSIFIED_LAYER_ID,
    UNCLASSIFIED_ORDER,
    UNKNOWN_BUILDING,
    UNKNOWN_HOST_TYPE,
    UNKNOWN_PREFECTURE,
    CategoryDefine,
    Connection,
    GraphEdge,
    Host,
    HostType,
    HostTypeRule,
    HostWithMeta,
    LayerDefine,
    NetworkGraphConfigs,
    ParsedHostname,
)

logger = logging.getLogger(__name__)

# Hint values that carry no information.
PLACEHOLDER_HOST_TYPES = frozenset({"", "-"})


# ---------------------------------------------------------------------------
# Single-host resolution
# ---------------------------------------------------------------------------

def resolve_host_type(
    hostname: str,
    host_type_config: list[HostTypeRule],
    fallback: HostType = "-",
) -> HostType:
    """Resolve a host type from the ordered regex rules.

    The first rule whose regex is found in the hostname wins.  With no
    match the hint is used unless it is a placeholder.
    """
    for rule in host_type_config:
        if rule.regexp.search(hostname):
            return rule.type
    if fallback and fallback not in PLACEHOLDER_HOST_TYPES:
        return fallback
    return UNKNOWN_HOST_TYPE


def parse_hostname(hostname: str) -> ParsedHostname:
    """Split a hostname into prefecture, building and unit codes.

    ``e01core--gwr1`` parses to prefecture ``e01``, building ``core`` and
    unit ``gwr1``.  Names that do not follow the pattern keep the whole
    name as their unit code.
    """
    match = HOSTNAME_PATTERN.fullmatch(hostname)
    if not match:
        return ParsedHostname(
            raw=hostname,
            prefecture_code=UNKNOWN_PREFECTURE,
            building_code=UNKNOWN_BUILDING,
            unit_code=hostname,
        )

    return ParsedHostname(
        raw=hostname,
        prefecture_code=match.group(1).lower(),
        building_code=match.group(4).lower(),
        unit_code=match.group(5).lower(),
    )


def find_layer(host_type: HostType, layer_config: list[LayerDefine]) -> LayerDefine:
    """Return the first layer listing ``host_type``, or a synthetic last layer."""
    for layer in layer_config:
        if host_type in layer.host_types:
            return layer
    return LayerDefine(
        id=UNCLASSIFIED_LAYER_ID,
        order=UNCLASSIFIED_ORDER,
        host_types=[host_type],
    )


def build_cluster_key(category: CategoryDefine, parsed: ParsedHostname) -> str:
    if category.scope == "prefecture":
        return f"prefecture::{parsed.prefecture_code}"
    if category.scope == "building":
        return f"building::{parsed.prefecture_code}/{parsed.building_code}"
    return f"global::{category.id}"


def to_host_meta(host: Host, configs: NetworkGraphConfigs) -> HostWithMeta:
    resolved_type = resolve_host_type(host.hostname, configs.host_type_config, host.host_type)
    parsed = parse_hostname(host.hostname)
    layer = find_layer(resolved_type, configs.layer_config)
    category = find_category_for_host(
        CategoryTarget(
            hostname=host.hostname,
            host_type=resolved_type,
            parsed=parsed,
            layer_id=layer.id,
        ),
        configs.category_config,
    )

    return HostWithMeta(
        hostname=host.hostname,
        host_type=resolved_type,
        parsed=parsed,
        layer_id=layer.id,
        layer_order=layer.order,
        category_id=category.id,
        category_order=category.order,
        cluster_key=build_cluster_key(category, parsed),
    )


# ---------------------------------------------------------------------------
# Batch classification
# ---------------------------------------------------------------------------

def dedupe_hosts(hosts: Iterable[Host]) -> list[Host]:
    """Deduplicate by hostname.

    The last record for a hostname wins; hosts keep the position of their
    first appearance.
    """
    by_name: dict[str, Host] = {}
    for host in hosts:
        by_name[host.hostname] = host
    return list(by_name.values())


def classify_hosts(hosts: Iterable[Host], configs: NetworkGraphConfigs) -> list[HostWithMeta]:
    """Classify every distinct host of a snapshot."""
    hosts = list(hosts)
    deduped = dedupe_hosts(hosts)
    if len(deduped) != len(hosts):
        logger.debug("Collapsed %d duplicate host records", len(hosts) - len(deduped))

    classified = [to_host_meta(host, configs) for host in deduped]

    unclassified = sum(1 for host in classified if host.layer_order == UNCLASSIFIED_ORDER
                       or host.category_order == UNCLASSIFIED_ORDER)
    if unclassified:
        logger.debug("%d of %d hosts fell back to an unclassified layer or category",
                     unclassified, len(classified))
    return classified


def build_edges(connections: Iterable[Connection], known_hosts: set[str]) -> list[GraphEdge]:
    """Keep connections whose endpoints are both known and number them."""
    edges: list[GraphEdge] = []
    dropped = 0
    for source, target in connections:
        if source not in known_hosts or target not in known_hosts:
            dropped += 1
            continue
        edges.append(GraphEdge(id=f"edge-{len(edges)}", source=source, target=target))

    if dropped:
        logger.debug("Dropped %d connections referencing unknown hosts", dropped)
    return edges
