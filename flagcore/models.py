"""
Typed, immutable representation of datafile entities.

Condition trees and group segment expressions share the logical node types
(And, Or, Not, Everyone). Condition trees have Condition leaves, group
segment expressions have SegmentRef leaves.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union


@dataclass(frozen=True)
class Condition:
    """A single predicate over one context attribute."""
    attribute: str
    operator: str
    value: Any = None
    regex_flags: Optional[str] = None


@dataclass(frozen=True)
class SegmentRef:
    """Reference to a segment by key."""
    key: str


@dataclass(frozen=True)
class Everyone:
    """The `*` wildcard. Always matches."""


@dataclass(frozen=True)
class And:
    children: Tuple["Node", ...] = ()


@dataclass(frozen=True)
class Or:
    children: Tuple["Node", ...] = ()


@dataclass(frozen=True)
class Not:
    """Negation of the implicit AND of its children."""
    children: Tuple["Node", ...] = ()


Node = Union[Condition, SegmentRef, Everyone, And, Or, Not]

EVERYONE = Everyone()


@dataclass(frozen=True)
class Segment:
    """Named, reusable condition tree."""
    key: str
    conditions: Node
    archived: bool = False
    description: Optional[str] = None


@dataclass(frozen=True)
class Allocation:
    """Closed range of the bucket domain mapped to a variation."""
    variation: Optional[str]
    range: Tuple[int, int]

    @property
    def start(self) -> int:
        return self.range[0]

    @property
    def end(self) -> int:
        return self.range[1]


@dataclass(frozen=True)
class Traffic:
    """Targeting rule pairing an audience with an allocation table."""
    key: str
    segments: Node
    allocation: Tuple[Allocation, ...] = ()
    enabled: Optional[bool] = None
    variation: Optional[str] = None
    variables: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class Force:
    """Override rule bypassing bucketing."""
    conditions: Optional[Node] = None
    segments: Optional[Node] = None
    enabled: Optional[bool] = None
    variation: Optional[str] = None
    variables: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class VariableOverride:
    value: Any
    conditions: Optional[Node] = None
    segments: Optional[Node] = None


@dataclass(frozen=True)
class VariationVariable:
    key: str
    value: Any
    overrides: Tuple[VariableOverride, ...] = ()


@dataclass(frozen=True)
class Variation:
    value: str
    weight: Optional[float] = None
    description: Optional[str] = None
    variables: Tuple[VariationVariable, ...] = ()

    def get_variable(self, key: str) -> Optional[VariationVariable]:
        for variable in self.variables:
            if variable.key == key:
                return variable
        return None


@dataclass(frozen=True)
class VariableSchema:
    key: str
    type: str
    default_value: Any = None


@dataclass(frozen=True)
class Required:
    """Another feature that must be enabled (optionally with a variation)."""
    key: str
    variation: Optional[str] = None


@dataclass(frozen=True)
class BucketBy:
    """Which context attributes feed the bucket key.

    kind is "plain" for a single attribute, "and" for all listed attributes
    and "or" for the first one present in the context.
    """
    kind: str
    attributes: Tuple[str, ...]


@dataclass(frozen=True)
class Feature:
    """A feature definition as read from the datafile."""
    key: str
    bucket_by: BucketBy
    traffic: Tuple[Traffic, ...] = ()
    force: Tuple[Force, ...] = ()
    variations: Tuple[Variation, ...] = ()
    variables_schema: Tuple[VariableSchema, ...] = ()
    required: Tuple[Required, ...] = ()
    deprecated: bool = False

    def get_variation(self, value: Optional[str]) -> Optional[Variation]:
        if value is None:
            return None
        for variation in self.variations:
            if variation.value == value:
                return variation
        return None

    def get_variable_schema(self, key: str) -> Optional[VariableSchema]:
        for schema in self.variables_schema:
            if schema.key == key:
                return schema
        return None


@dataclass(frozen=True)
class DatafileContent:
    """One fully parsed datafile revision."""
    schema_version: str
    revision: str
    segments: Dict[str, Segment] = field(default_factory=dict)
    features: Dict[str, Feature] = field(default_factory=dict)
