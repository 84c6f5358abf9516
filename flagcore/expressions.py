"""
Normalisation of condition trees and group segment expressions.

Datafiles may carry these either as structures or as JSON-encoded strings.
They are decoded here, once, when the datafile is loaded. Passing an
already-normalised node returns it unchanged.
"""

import json
from typing import Any

from flagcore.errors import DatafileError, MalformedExpressionError
from flagcore.models import (
    EVERYONE,
    And,
    Condition,
    Everyone,
    Node,
    Not,
    Or,
    SegmentRef,
)

WILDCARD = "*"
MAX_EXPRESSION_DEPTH = 64

_NODE_TYPES = (Condition, SegmentRef, Everyone, And, Or, Not)


def _decode(value: str) -> Any:
    try:
        return json.loads(value)
    except ValueError as e:
        raise MalformedExpressionError(value, str(e)) from e


def is_encoded(value: Any) -> bool:
    """Whether value is a JSON-encoded expression rather than a plain key."""
    return isinstance(value, str) and (value.startswith("{") or value.startswith("["))


def parse_conditions(value: Any, _depth: int = 0) -> Node:
    """Turn a raw condition tree into nodes with Condition leaves."""
    if isinstance(value, _NODE_TYPES):
        return value
    if _depth > MAX_EXPRESSION_DEPTH:
        raise DatafileError(f"Conditions nested deeper than {MAX_EXPRESSION_DEPTH} levels")

    if isinstance(value, str):
        if value == WILDCARD:
            return EVERYONE
        if is_encoded(value):
            return parse_conditions(_decode(value), _depth + 1)
        raise MalformedExpressionError(value, "expected '*' or an encoded condition")

    if isinstance(value, list):
        return And(tuple(parse_conditions(c, _depth + 1) for c in value))

    if isinstance(value, dict):
        if "attribute" in value:
            return Condition(
                attribute=value["attribute"],
                operator=value.get("operator", ""),
                value=value.get("value"),
                regex_flags=value.get("regexFlags"),
            )
        for tag, node_type in (("and", And), ("or", Or), ("not", Not)):
            if tag in value:
                return node_type(_children(value[tag], parse_conditions, _depth))

    raise MalformedExpressionError(repr(value), "unrecognised condition")


def parse_group_segments(value: Any, _depth: int = 0) -> Node:
    """Turn a raw group segment expression into nodes with SegmentRef leaves.

    Plain strings are segment keys, `*` is the wildcard, and strings
    beginning with `{` or `[` are decoded as JSON first.
    """
    if isinstance(value, _NODE_TYPES):
        return value
    if _depth > MAX_EXPRESSION_DEPTH:
        raise DatafileError(f"Segments nested deeper than {MAX_EXPRESSION_DEPTH} levels")

    if isinstance(value, str):
        if value == WILDCARD:
            return EVERYONE
        if is_encoded(value):
            return parse_group_segments(_decode(value), _depth + 1)
        return SegmentRef(value)

    if isinstance(value, list):
        return And(tuple(parse_group_segments(s, _depth + 1) for s in value))

    if isinstance(value, dict):
        for tag, node_type in (("and", And), ("or", Or), ("not", Not)):
            if tag in value:
                return node_type(_children(value[tag], parse_group_segments, _depth))

    raise MalformedExpressionError(repr(value), "unrecognised group segments")


def _children(raw: Any, parse, depth: int) -> tuple:
    if not isinstance(raw, list):
        raw = [raw]
    return tuple(parse(child, depth + 1) for child in raw)
