"""Category matching — first-match-wins over the ordered category table."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from .models import (
    UNCLASSIFIED_CATEGORY_ID,
    UNCLASSIFIED_COLOR,
    UNCLASSIFIED_ORDER,
    CategoryDefine,
    CategoryMatch,
    HostType,
    LayerId,
    ParsedHostname,
)


@dataclass
class CategoryTarget:
    """The facts about a host that category predicates may test."""
    hostname: str
    host_type: HostType
    parsed: ParsedHostname
    layer_id: LayerId


def fallback_category(host_type: HostType) -> CategoryDefine:
    """Synthetic category for hosts no configured category accepts."""
    return CategoryDefine(
        id=UNCLASSIFIED_CATEGORY_ID,
        label="Unclassified",
        order=UNCLASSIFIED_ORDER,
        host_types=[host_type],
        scope="global",
        color=UNCLASSIFIED_COLOR,
        cluster_ring_radius=0,
        local_ring_radius=120,
        local_ring_step=40,
    )


def _test_regexp(regexp: re.Pattern, value: str) -> bool:
    return regexp.search(value) is not None


def has_rule(category: CategoryDefine) -> bool:
    """Return True if the category declares at least one predicate.

    The category-level ``host_types`` alias counts as a rule whenever
    ``match.host_types`` is not given, including when ``match`` is present
    but empty.
    """
    match = effective_match(category)
    return (
        bool(match.host_types)
        or bool(match.exclude_host_types)
        or bool(match.layer_ids)
        or bool(match.exclude_layer_ids)
        or match.hostname_regexp is not None
        or match.prefecture_regexp is not None
        or match.building_regexp is not None
        or match.unit_regexp is not None
    )


def effective_match(category: CategoryDefine) -> CategoryMatch:
    """Merge the category-level ``host_types`` alias into the match."""
    match = category.match or CategoryMatch()
    if match.host_types is None:
        return match.model_copy(update={"host_types": category.host_types})
    return match


def matches_category(target: CategoryTarget, category: CategoryDefine) -> bool:
    match = effective_match(category)

    if match.host_types and target.host_type not in match.host_types:
        return False
    if match.exclude_host_types and target.host_type in match.exclude_host_types:
        return False
    if match.layer_ids and target.layer_id not in match.layer_ids:
        return False
    if match.exclude_layer_ids and target.layer_id in match.exclude_layer_ids:
        return False
    if match.hostname_regexp is not None and not _test_regexp(match.hostname_regexp, target.hostname):
        return False
    if match.prefecture_regexp is not None and not _test_regexp(
        match.prefecture_regexp, target.parsed.prefecture_code
    ):
        return False
    if match.building_regexp is not None and not _test_regexp(
        match.building_regexp, target.parsed.building_code
    ):
        return False
    if match.unit_regexp is not None and not _test_regexp(match.unit_regexp, target.parsed.unit_code):
        return False

    return has_rule(category)


def find_category_for_host(
    target: CategoryTarget,
    category_config: list[CategoryDefine],
) -> CategoryDefine:
    """Return the first category accepting ``target``, or the fallback."""
    matched: Optional[CategoryDefine] = next(
        (category for category in category_config if matches_category(target, category)),
        None,
    )
    return matched if matched is not None else fallback_category(target.host_type)
