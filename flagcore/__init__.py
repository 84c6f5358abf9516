"""
flagcore - deterministic feature flag evaluation.

Usage:
    from flagcore import FlagcoreClient, ClientConfig

    client = FlagcoreClient(ClientConfig(datafile=datafile))

    if client.is_enabled("my-feature", {"userId": "123"}):
        # Feature is enabled
        pass
"""

from flagcore.client import FlagcoreClient, ClientConfig
from flagcore.retry import RetryConfig, calculate_backoff, is_retryable_error
from flagcore.errors import (
    FlagcoreError,
    DatafileError,
    MalformedExpressionError,
    SegmentNotFoundError,
    FeatureNotFoundError,
    InvalidTestSpecError,
    ConfigurationError,
    NetworkError,
    DatafileFetchError,
    ErrorCategory,
)
from flagcore.models import (
    Condition,
    SegmentRef,
    Everyone,
    And,
    Or,
    Not,
    Segment,
    Allocation,
    Traffic,
    Force,
    Variation,
    VariableSchema,
    Required,
    BucketBy,
    Feature,
)
from flagcore.bucket import MAX_BUCKETED_NUMBER, bucket, get_bucket_key, hash_key
from flagcore.conditions import conditions_match, condition_matches
from flagcore.segments import segment_matches, group_segments_match
from flagcore.expressions import parse_conditions, parse_group_segments
from flagcore.matchers import (
    match_allocation,
    match_traffic,
    match_traffic_and_allocation,
    match_force,
)
from flagcore.datafile import DatafileReader, load_datafile
from flagcore.evaluate import (
    Evaluation,
    EvaluationOptions,
    evaluate,
    evaluate_feature,
    evaluate_variable,
)
from flagcore.reasons import EvaluationReason, EvaluationReasonKind

__version__ = "0.1.0"
__all__ = [
    # Client
    "FlagcoreClient",
    "ClientConfig",
    # Retry
    "RetryConfig",
    "calculate_backoff",
    "is_retryable_error",
    # Errors
    "FlagcoreError",
    "DatafileError",
    "MalformedExpressionError",
    "SegmentNotFoundError",
    "FeatureNotFoundError",
    "InvalidTestSpecError",
    "ConfigurationError",
    "NetworkError",
    "DatafileFetchError",
    "ErrorCategory",
    # Models
    "Condition",
    "SegmentRef",
    "Everyone",
    "And",
    "Or",
    "Not",
    "Segment",
    "Allocation",
    "Traffic",
    "Force",
    "Variation",
    "VariableSchema",
    "Required",
    "BucketBy",
    "Feature",
    # Engine
    "MAX_BUCKETED_NUMBER",
    "bucket",
    "get_bucket_key",
    "hash_key",
    "conditions_match",
    "condition_matches",
    "segment_matches",
    "group_segments_match",
    "parse_conditions",
    "parse_group_segments",
    "match_allocation",
    "match_traffic",
    "match_traffic_and_allocation",
    "match_force",
    # Datafile
    "DatafileReader",
    "load_datafile",
    # Evaluation
    "Evaluation",
    "EvaluationOptions",
    "evaluate",
    "evaluate_feature",
    "evaluate_variable",
    "EvaluationReason",
    "EvaluationReasonKind",
]
