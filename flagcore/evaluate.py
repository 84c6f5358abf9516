"""
Feature resolution.

Composes force matching, bucketing, traffic and allocation matching into one
decision. Pure: no state is kept between calls and the lookup is only read.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Optional, Protocol

from flagcore.bucket import DEFAULT_BUCKET_KEY_SEPARATOR, bucket, get_bucket_key
from flagcore.conditions import conditions_match
from flagcore.errors import DatafileError
from flagcore.matchers import match_force, match_traffic_and_allocation
from flagcore.models import Allocation, Feature, Force, Required, Segment, Traffic, VariableSchema
from flagcore.reasons import (
    EvaluationReason,
    allocated_reason,
    forced_reason,
    no_match_reason,
    not_found_reason,
    out_of_range_reason,
    required_reason,
    rule_reason,
)
from flagcore.segments import group_segments_match

Context = Dict[str, Any]


class DatafileLookup(Protocol):
    """Read-only access to one datafile revision."""

    def get_feature(self, key: str) -> Optional[Feature]:
        ...

    def get_segment(self, key: str) -> Optional[Segment]:
        ...


@dataclass
class EvaluationOptions:
    """Hooks and settings applied while evaluating."""

    bucket_key_separator: str = DEFAULT_BUCKET_KEY_SEPARATOR
    """Separator between the parts of a bucket key."""

    configure_bucket_key: Optional[Callable[[Feature, Context, str], str]] = None
    """Rewrite the bucket key before hashing (e.g. to add a salt)."""

    configure_bucket_value: Optional[Callable[[Feature, Context, int], int]] = None
    """Replace the computed bucket value."""


DEFAULT_EVALUATION_OPTIONS = EvaluationOptions()


@dataclass
class Evaluation:
    """Represents the result of a feature evaluation."""

    feature_key: str
    enabled: bool
    reason: EvaluationReason
    variation: Optional[str] = None
    variables: Dict[str, Any] = field(default_factory=dict)
    bucket_key: Optional[str] = None
    bucket_value: Optional[int] = None
    traffic_key: Optional[str] = None
    force_index: Optional[int] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {
            "featureKey": self.feature_key,
            "enabled": self.enabled,
            "reason": self.reason.to_dict(),
            "variables": dict(self.variables),
        }
        if self.variation is not None:
            result["variation"] = self.variation
        if self.bucket_key is not None:
            result["bucketKey"] = self.bucket_key
        if self.bucket_value is not None:
            result["bucketValue"] = self.bucket_value
        if self.traffic_key is not None:
            result["trafficKey"] = self.traffic_key
        if self.force_index is not None:
            result["forceIndex"] = self.force_index
        return result


def evaluate(
    lookup: DatafileLookup,
    feature_key: str,
    context: Optional[Context],
    options: Optional[EvaluationOptions] = None,
) -> Evaluation:
    """Evaluate a feature by key; unknown keys evaluate to disabled."""
    feature = lookup.get_feature(feature_key)
    if feature is None:
        return Evaluation(feature_key=feature_key, enabled=False, reason=not_found_reason())
    return evaluate_feature(feature, context, lookup, options)


def evaluate_feature(
    feature: Feature,
    context: Optional[Context],
    lookup: DatafileLookup,
    options: Optional[EvaluationOptions] = None,
    _visiting: FrozenSet[str] = frozenset(),
) -> Evaluation:
    """
    Evaluate a feature for a given context.

    Evaluation priority:
    1. A matching force rule with `enabled: false` turns the feature off
    2. Unsatisfied required features turn it off (unless forced on)
    3. The first segment-matched traffic with an allocation containing the
       bucket value turns it on; a matched traffic without one leaves it off
    4. Variation and variables come from the force rule first, then the
       traffic, then the allocated variation, then schema defaults
    """
    context = context or {}
    opts = options or DEFAULT_EVALUATION_OPTIONS

    force, force_index = match_force(feature.force, context, lookup)

    if force is not None and force.enabled is False:
        return Evaluation(
            feature_key=feature.key,
            enabled=False,
            reason=forced_reason(force_index),
            force_index=force_index,
        )

    if force is None or force.enabled is None:
        unmet = _unmet_requirement(feature, context, lookup, opts, _visiting)
        if unmet is not None:
            return Evaluation(
                feature_key=feature.key,
                enabled=False,
                reason=required_reason(unmet.key),
                force_index=force_index,
            )

    bucket_key = get_bucket_key(feature, context, opts.bucket_key_separator)
    if opts.configure_bucket_key is not None:
        bucket_key = opts.configure_bucket_key(feature, context, bucket_key)

    bucket_value = bucket(bucket_key)
    if opts.configure_bucket_value is not None:
        bucket_value = opts.configure_bucket_value(feature, context, bucket_value)

    traffic, allocation = match_traffic_and_allocation(
        feature.traffic, context, bucket_value, lookup
    )

    if force is not None and force.enabled is not None:
        enabled, reason = force.enabled, forced_reason(force_index)
    elif traffic is None:
        enabled, reason = False, no_match_reason()
    elif traffic.enabled is not None:
        enabled, reason = traffic.enabled, rule_reason(traffic.key)
    elif allocation is None:
        enabled, reason = False, out_of_range_reason(traffic.key)
    else:
        enabled, reason = True, allocated_reason(traffic.key)

    evaluation = Evaluation(
        feature_key=feature.key,
        enabled=enabled,
        reason=reason,
        bucket_key=bucket_key,
        bucket_value=bucket_value,
        traffic_key=traffic.key if traffic is not None else None,
        force_index=force_index,
    )
    if not enabled:
        return evaluation

    evaluation.variation = _resolve_variation(force, traffic, allocation)
    # each evaluation owns its values; the revision is never handed out
    evaluation.variables = {
        schema.key: copy.deepcopy(_resolve_variable(
            feature, schema, evaluation.variation, force, traffic, context, lookup
        ))
        for schema in feature.variables_schema
    }
    return evaluation


def evaluate_variable(
    feature: Feature,
    variable_key: str,
    context: Optional[Context],
    lookup: DatafileLookup,
    options: Optional[EvaluationOptions] = None,
) -> Any:
    """Resolve a single variable; None when disabled or not in the schema."""
    return evaluate_feature(feature, context, lookup, options).variables.get(variable_key)


def _unmet_requirement(
    feature: Feature,
    context: Context,
    lookup: DatafileLookup,
    options: EvaluationOptions,
    visiting: FrozenSet[str],
) -> Optional[Required]:
    if not feature.required:
        return None

    visiting = visiting | {feature.key}
    for required in feature.required:
        if required.key in visiting:
            raise DatafileError(
                f"Circular required features: {feature.key} requires {required.key}"
            )

        required_feature = lookup.get_feature(required.key)
        if required_feature is None:
            return required

        result = evaluate_feature(required_feature, context, lookup, options, visiting)
        if not result.enabled:
            return required
        if required.variation is not None and result.variation != required.variation:
            return required

    return None


def _resolve_variation(
    force: Optional[Force],
    traffic: Optional[Traffic],
    allocation: Optional[Allocation],
) -> Optional[str]:
    if force is not None and force.variation is not None:
        return force.variation
    if traffic is not None and traffic.variation is not None:
        return traffic.variation
    if allocation is not None:
        return allocation.variation
    return None


def _resolve_variable(
    feature: Feature,
    schema: VariableSchema,
    variation_value: Optional[str],
    force: Optional[Force],
    traffic: Optional[Traffic],
    context: Context,
    lookup: DatafileLookup,
) -> Any:
    key = schema.key

    if force is not None and force.variables and key in force.variables:
        return force.variables[key]

    if traffic is not None and traffic.variables and key in traffic.variables:
        return traffic.variables[key]

    variation = feature.get_variation(variation_value)
    variable = variation.get_variable(key) if variation is not None else None
    if variable is not None:
        for override in variable.overrides:
            if override.conditions is not None:
                if conditions_match(override.conditions, context):
                    return override.value
            elif override.segments is not None:
                if group_segments_match(override.segments, context, lookup):
                    return override.value
        return variable.value

    return schema.default_value
