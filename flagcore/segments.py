"""
Segment and group segment evaluation.
"""

from typing import Any, Dict, Optional, Protocol

from flagcore.conditions import conditions_match
from flagcore.errors import SegmentNotFoundError
from flagcore.expressions import parse_group_segments
from flagcore.models import And, Everyone, Node, Not, Or, Segment, SegmentRef


class SegmentLookup(Protocol):
    """Read-only access to segments of one datafile revision."""

    def get_segment(self, key: str) -> Optional[Segment]:
        ...


def segment_matches(key: str, context: Dict[str, Any], lookup: SegmentLookup) -> bool:
    """
    Check whether the context is part of the segment named `key`.

    Raises:
        SegmentNotFoundError: if the lookup has no such segment
    """
    segment = lookup.get_segment(key)
    if segment is None:
        raise SegmentNotFoundError(key)
    return conditions_match(segment.conditions, context)


def group_segments_match(
    group_segments: Any,
    context: Dict[str, Any],
    lookup: SegmentLookup,
) -> bool:
    """
    Evaluate a group segment expression.

    Accepts normalised nodes as well as raw values (`"*"`, a key, a list, a
    dict or a JSON-encoded string), which are normalised first.
    """
    return _evaluate(parse_group_segments(group_segments), context, lookup)


def _evaluate(node: Node, context: Dict[str, Any], lookup: SegmentLookup) -> bool:
    if isinstance(node, Everyone):
        return True
    if isinstance(node, SegmentRef):
        return segment_matches(node.key, context, lookup)
    if isinstance(node, And):
        return all(_evaluate(c, context, lookup) for c in node.children)
    if isinstance(node, Or):
        return any(_evaluate(c, context, lookup) for c in node.children)
    if isinstance(node, Not):
        return not all(_evaluate(c, context, lookup) for c in node.children)

    raise TypeError(f"Not a group segment node: {node!r}")
