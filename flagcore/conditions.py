"""
Condition evaluation.

Operators are strict about types: comparing values of incompatible types
yields False, never an exception.
"""

import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from flagcore.expressions import parse_conditions
from flagcore.models import And, Condition, Everyone, Node, Not, Or

logger = logging.getLogger("flagcore.conditions")

_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}


def get_attribute_value(attribute: str, context: Optional[Dict[str, Any]]) -> Any:
    """
    Get an attribute value from context.

    Dotted names that are not present verbatim are looked up as a path into
    nested mappings.
    """
    if not context:
        return None
    if attribute in context:
        return context[attribute]
    if "." not in attribute:
        return None

    current: Any = context
    for part in attribute.split("."):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


def conditions_match(conditions: Any, context: Dict[str, Any]) -> bool:
    """
    Evaluate a condition tree against a context.

    Accepts normalised nodes as well as raw values (`"*"`, a condition dict,
    a list, an and/or/not dict or a JSON-encoded string), which are
    normalised first.
    """
    return _match(parse_conditions(conditions), context)


def _match(node: Node, context: Dict[str, Any]) -> bool:
    if isinstance(node, Everyone):
        return True
    if isinstance(node, Condition):
        return condition_matches(node, context)
    if isinstance(node, And):
        return all(_match(c, context) for c in node.children)
    if isinstance(node, Or):
        return any(_match(c, context) for c in node.children)
    if isinstance(node, Not):
        return not all(_match(c, context) for c in node.children)

    raise TypeError(f"Not a condition node: {node!r}")


def condition_matches(condition: Condition, context: Dict[str, Any]) -> bool:
    """Check if a context matches a single condition."""
    operator = condition.operator
    attr_value = get_attribute_value(condition.attribute, context)

    if operator == "exists":
        return attr_value is not None
    if operator == "notExists":
        return attr_value is None

    # For other operators, if attribute doesn't exist, condition fails
    if attr_value is None:
        return False

    value = condition.value

    if operator == "equals":
        return _strict_equals(attr_value, value)
    elif operator == "notEquals":
        return not _strict_equals(attr_value, value)
    elif operator in ("greaterThan", "greaterThanOrEquals", "lessThan", "lessThanOrEquals"):
        return _compare_numeric(attr_value, value, operator)
    elif operator in ("contains", "notContains", "startsWith", "endsWith"):
        return _compare_string(attr_value, value, operator)
    elif operator.startswith("semver"):
        return _compare_semver(attr_value, value, operator)
    elif operator in ("before", "after"):
        return _compare_dates(attr_value, value, operator)
    elif operator == "in":
        return isinstance(value, list) and any(_strict_equals(attr_value, v) for v in value)
    elif operator == "notIn":
        return isinstance(value, list) and not any(_strict_equals(attr_value, v) for v in value)
    elif operator == "includes":
        return isinstance(attr_value, list) and any(_strict_equals(v, value) for v in attr_value)
    elif operator == "notIncludes":
        return isinstance(attr_value, list) and not any(_strict_equals(v, value) for v in attr_value)
    elif operator in ("matches", "notMatches"):
        matched = _matches_pattern(attr_value, value, condition.regex_flags)
        if matched is None:
            return False
        return matched if operator == "matches" else not matched

    logger.warning(f"Unknown condition operator: {operator}")
    return False


def _kind(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return type(value).__name__


def _strict_equals(a: Any, b: Any) -> bool:
    """Equality without cross-type coercion (True is not 1, "1" is not 1)."""
    return _kind(a) == _kind(b) and a == b


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _compare_numeric(attr_val: Any, cond_val: Any, op: str) -> bool:
    """Compare two numeric values."""
    if not (_is_number(attr_val) and _is_number(cond_val)):
        return False

    if op == "greaterThan":
        return attr_val > cond_val
    elif op == "greaterThanOrEquals":
        return attr_val >= cond_val
    elif op == "lessThan":
        return attr_val < cond_val
    elif op == "lessThanOrEquals":
        return attr_val <= cond_val
    return False


def _compare_string(attr_val: Any, cond_val: Any, op: str) -> bool:
    if not (isinstance(attr_val, str) and isinstance(cond_val, str)):
        return False

    if op == "contains":
        return cond_val in attr_val
    elif op == "notContains":
        return cond_val not in attr_val
    elif op == "startsWith":
        return attr_val.startswith(cond_val)
    elif op == "endsWith":
        return attr_val.endswith(cond_val)
    return False


def _matches_pattern(attr_val: Any, pattern: Any, flags: Optional[str]) -> Optional[bool]:
    """Regex search; None when either side is unusable."""
    if not (isinstance(attr_val, str) and isinstance(pattern, str)):
        return None

    re_flags = 0
    for flag in flags or "":
        re_flags |= _REGEX_FLAGS.get(flag, 0)

    try:
        return re.search(pattern, attr_val, re_flags) is not None
    except re.error:
        return None


def _parse_date(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _compare_dates(attr_val: Any, cond_val: Any, op: str) -> bool:
    a = _parse_date(attr_val)
    b = _parse_date(cond_val)
    if a is None or b is None:
        return False

    try:
        return a < b if op == "before" else a > b
    except TypeError:
        # naive vs timezone-aware
        return False


def _compare_semver(attr_val: Any, cond_val: Any, op: str) -> bool:
    """Compare two semantic versions."""
    if not (isinstance(attr_val, str) and isinstance(cond_val, str)):
        return False

    result = compare_versions(attr_val, cond_val)
    if result is None:
        return False

    if op == "semverEquals":
        return result == 0
    elif op == "semverNotEquals":
        return result != 0
    elif op == "semverGreaterThan":
        return result > 0
    elif op == "semverGreaterThanOrEquals":
        return result >= 0
    elif op == "semverLessThan":
        return result < 0
    elif op == "semverLessThanOrEquals":
        return result <= 0
    return False


def compare_versions(a: str, b: str) -> Optional[int]:
    """
    Compare two semantic versions.

    Returns -1, 0 or 1, or None when either side is not a version.
    """
    va = _parse_version(a)
    vb = _parse_version(b)
    if va is None or vb is None:
        return None

    core_a, pre_a = va
    core_b, pre_b = vb

    # Pad lists to same length
    while len(core_a) < len(core_b):
        core_a.append(0)
    while len(core_b) < len(core_a):
        core_b.append(0)

    for x, y in zip(core_a, core_b):
        if x != y:
            return 1 if x > y else -1

    # A release ranks above any of its pre-releases
    if not pre_a and not pre_b:
        return 0
    if not pre_a:
        return 1
    if not pre_b:
        return -1
    return _compare_prerelease(pre_a, pre_b)


def _compare_prerelease(a: List[str], b: List[str]) -> int:
    for x, y in zip(a, b):
        if x == y:
            continue
        x_num, y_num = x.isdigit(), y.isdigit()
        if x_num and y_num:
            return 1 if int(x) > int(y) else -1
        if x_num != y_num:
            # numeric identifiers rank lower
            return -1 if x_num else 1
        return 1 if x > y else -1

    if len(a) == len(b):
        return 0
    return 1 if len(a) > len(b) else -1


def _parse_version(v: str) -> Optional[Tuple[List[int], List[str]]]:
    """Parse a semantic version string into core parts and pre-release identifiers."""
    clean = v.strip().lstrip("v").split("+", 1)[0]
    if not clean:
        return None

    core, _, prerelease = clean.partition("-")
    try:
        parts = [int(p) for p in core.split(".")]
    except ValueError:
        return None

    return parts, prerelease.split(".") if prerelease else []
