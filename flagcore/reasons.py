"""
Evaluation reasons for flagcore.

Provides detailed information about why a feature evaluated the way it did.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class EvaluationReasonKind(str, Enum):
    """The category of reason for a feature evaluation."""

    NOT_FOUND = "NOT_FOUND"  # Feature key is not in the datafile
    FORCED = "FORCED"  # A force rule decided
    REQUIRED = "REQUIRED"  # A required feature is not satisfied
    RULE = "RULE"  # The matched traffic overrides enablement
    ALLOCATED = "ALLOCATED"  # Bucket value fell into an allocation
    OUT_OF_RANGE = "OUT_OF_RANGE"  # Traffic matched, no allocation contains the bucket value
    NO_MATCH = "NO_MATCH"  # No traffic matched the context
    ERROR = "ERROR"  # Evaluation raised


@dataclass
class EvaluationReason:
    """Explains why a feature evaluated to a particular value."""

    kind: EvaluationReasonKind
    traffic_key: Optional[str] = None
    force_index: Optional[int] = None
    required_key: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {"kind": self.kind.value}
        if self.traffic_key is not None:
            result["trafficKey"] = self.traffic_key
        if self.force_index is not None:
            result["forceIndex"] = self.force_index
        if self.required_key is not None:
            result["requiredKey"] = self.required_key
        if self.error is not None:
            result["error"] = self.error
        return result


def not_found_reason() -> EvaluationReason:
    return EvaluationReason(kind=EvaluationReasonKind.NOT_FOUND)


def forced_reason(force_index: int) -> EvaluationReason:
    return EvaluationReason(kind=EvaluationReasonKind.FORCED, force_index=force_index)


def required_reason(required_key: str) -> EvaluationReason:
    return EvaluationReason(kind=EvaluationReasonKind.REQUIRED, required_key=required_key)


def rule_reason(traffic_key: str) -> EvaluationReason:
    return EvaluationReason(kind=EvaluationReasonKind.RULE, traffic_key=traffic_key)


def allocated_reason(traffic_key: str) -> EvaluationReason:
    return EvaluationReason(kind=EvaluationReasonKind.ALLOCATED, traffic_key=traffic_key)


def out_of_range_reason(traffic_key: str) -> EvaluationReason:
    return EvaluationReason(kind=EvaluationReasonKind.OUT_OF_RANGE, traffic_key=traffic_key)


def no_match_reason() -> EvaluationReason:
    return EvaluationReason(kind=EvaluationReasonKind.NO_MATCH)


def error_reason(error: Exception) -> EvaluationReason:
    return EvaluationReason(kind=EvaluationReasonKind.ERROR, error=str(error))
