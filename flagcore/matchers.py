"""
Allocation, traffic and force matching.

Lists are evaluated in order and the first structural match wins.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

from flagcore.conditions import conditions_match
from flagcore.models import Allocation, Force, Traffic
from flagcore.segments import SegmentLookup, group_segments_match


def match_allocation(
    allocations: Sequence[Allocation],
    bucket_value: int,
) -> Optional[Allocation]:
    """
    Find the allocation whose closed range contains the bucket value.

    Ranges are expected not to overlap. If they do, list order decides and
    nothing reports it.
    """
    for allocation in allocations:
        start, end = allocation.range
        if start <= bucket_value <= end:
            return allocation
    return None


def match_traffic(
    traffic: Sequence[Traffic],
    context: Dict[str, Any],
    lookup: SegmentLookup,
) -> Optional[Traffic]:
    """Return the first traffic rule whose segments match the context."""
    for t in traffic:
        if group_segments_match(t.segments, context, lookup):
            return t
    return None


def match_traffic_and_allocation(
    traffic: Sequence[Traffic],
    context: Dict[str, Any],
    bucket_value: int,
    lookup: SegmentLookup,
) -> Tuple[Optional[Traffic], Optional[Allocation]]:
    """
    Match traffic by segments, then by allocation.

    Among the traffic rules whose segments match, the first one with an
    allocation containing the bucket value wins. When none of them has one,
    the first segment-matched rule is returned without an allocation: the
    context was targeted but falls outside every configured range.
    """
    matched: List[Traffic] = [
        t for t in traffic if group_segments_match(t.segments, context, lookup)
    ]

    if not matched:
        return None, None

    for t in matched:
        allocation = match_allocation(t.allocation, bucket_value)
        if allocation is not None:
            return t, allocation

    return matched[0], None


def match_force(
    force: Sequence[Force],
    context: Dict[str, Any],
    lookup: SegmentLookup,
) -> Tuple[Optional[Force], Optional[int]]:
    """
    Find the first force rule matching the context.

    Returns the rule and its index. A rule with neither conditions nor
    segments never matches.
    """
    for index, f in enumerate(force):
        if f.conditions is not None:
            matched = conditions_match(f.conditions, context)
        elif f.segments is not None:
            matched = group_segments_match(f.segments, context, lookup)
        else:
            matched = False

        if matched:
            return f, index
    return None, None
