"""
Datafile reading.

A datafile is parsed once into an immutable DatafileContent snapshot.
Encoded condition and segment expressions are decoded here so evaluation
never decodes anything.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from flagcore.errors import DatafileError
from flagcore.expressions import parse_conditions, parse_group_segments
from flagcore.models import (
    Allocation,
    BucketBy,
    DatafileContent,
    Feature,
    Force,
    Required,
    Segment,
    Traffic,
    VariableOverride,
    VariableSchema,
    Variation,
    VariationVariable,
)

logger = logging.getLogger("flagcore.datafile")

DEFAULT_SCHEMA_VERSION = "1"


class DatafileReader:
    """
    Read-only lookups over one datafile revision.

    Example:
        ```python
        reader = DatafileReader.from_json(text)
        feature = reader.get_feature("checkout")
        ```
    """

    def __init__(self, content: DatafileContent):
        self._content = content

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DatafileReader":
        """Parse a datafile from a dictionary (e.g., from JSON)."""
        return cls(parse_datafile(data))

    @classmethod
    def from_json(cls, text: str) -> "DatafileReader":
        """Parse a datafile from its JSON text."""
        try:
            data = json.loads(text)
        except ValueError as e:
            raise DatafileError(f"Datafile is not valid JSON: {e}") from e
        return cls.from_dict(data)

    @property
    def revision(self) -> str:
        """Get the datafile revision."""
        return self._content.revision

    @property
    def schema_version(self) -> str:
        return self._content.schema_version

    @property
    def content(self) -> DatafileContent:
        return self._content

    def get_feature(self, key: str) -> Optional[Feature]:
        return self._content.features.get(key)

    def get_segment(self, key: str) -> Optional[Segment]:
        return self._content.segments.get(key)

    def has_feature(self, key: str) -> bool:
        """Check if a feature exists."""
        return key in self._content.features

    def feature_keys(self) -> List[str]:
        return list(self._content.features)

    def segment_keys(self) -> List[str]:
        return list(self._content.segments)


def load_datafile(path: Union[str, Path]) -> DatafileReader:
    """Read and parse a datafile from disk."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise DatafileError(f"Cannot read datafile {path}: {e}") from e
    return DatafileReader.from_json(text)


def parse_datafile(data: Dict[str, Any]) -> DatafileContent:
    """Build a DatafileContent from raw datafile data."""
    if not isinstance(data, dict):
        raise DatafileError("Datafile must be a JSON object")

    segments = {}
    features = {}
    try:
        for segment_data in _entries(data.get("segments")):
            segment = _parse_segment(segment_data)
            segments[segment.key] = segment

        for feature_data in _entries(data.get("features")):
            feature = _parse_feature(feature_data)
            features[feature.key] = feature
    except (KeyError, TypeError, AttributeError) as e:
        raise DatafileError(f"Malformed datafile: {e!r}") from e

    content = DatafileContent(
        schema_version=str(data.get("schemaVersion", DEFAULT_SCHEMA_VERSION)),
        revision=str(data.get("revision", "")),
        segments=segments,
        features=features,
    )
    logger.debug(
        f"Parsed datafile revision {content.revision!r}: "
        f"{len(features)} features, {len(segments)} segments"
    )
    return content


def _entries(raw: Any) -> Iterable[Dict[str, Any]]:
    """Segments and features come either as a list or keyed by their key."""
    if raw is None:
        return []
    if isinstance(raw, list):
        return raw
    if isinstance(raw, dict):
        return [{"key": key, **value} for key, value in raw.items()]
    raise DatafileError(f"Expected a list or an object, got {type(raw).__name__}")


def _require_key(data: Dict[str, Any], kind: str) -> str:
    key = data.get("key") if isinstance(data, dict) else None
    if not isinstance(key, str) or not key:
        raise DatafileError(f"{kind} without a key: {data!r}")
    return key


def _parse_segment(data: Dict[str, Any]) -> Segment:
    key = _require_key(data, "Segment")
    if "conditions" not in data:
        raise DatafileError(f"Segment {key!r} has no conditions")
    return Segment(
        key=key,
        conditions=parse_conditions(data["conditions"]),
        archived=bool(data.get("archived", False)),
        description=data.get("description"),
    )


def _parse_bucket_by(key: str, raw: Any) -> BucketBy:
    if isinstance(raw, str):
        return BucketBy(kind="plain", attributes=(raw,))
    if isinstance(raw, list) and all(isinstance(a, str) for a in raw):
        return BucketBy(kind="and", attributes=tuple(raw))
    if isinstance(raw, dict) and isinstance(raw.get("or"), list):
        return BucketBy(kind="or", attributes=tuple(raw["or"]))
    raise DatafileError(f"Feature {key!r} has an invalid bucketBy: {raw!r}")


def _parse_feature(data: Dict[str, Any]) -> Feature:
    key = _require_key(data, "Feature")
    if "bucketBy" not in data:
        raise DatafileError(f"Feature {key!r} has no bucketBy")

    schemas = tuple(
        VariableSchema(
            key=s["key"],
            type=s.get("type", "string"),
            default_value=_variable_value(s.get("type"), s.get("defaultValue")),
        )
        for s in data.get("variablesSchema") or []
    )
    types = {s.key: s.type for s in schemas}

    return Feature(
        key=key,
        bucket_by=_parse_bucket_by(key, data["bucketBy"]),
        traffic=tuple(_parse_traffic(key, t, types) for t in data.get("traffic") or []),
        force=tuple(_parse_force(f, types) for f in data.get("force") or []),
        variations=tuple(_parse_variation(v, types) for v in data.get("variations") or []),
        variables_schema=schemas,
        required=tuple(_parse_required(r) for r in data.get("required") or []),
        deprecated=bool(data.get("deprecated", False)),
    )


def _parse_traffic(feature_key: str, data: Dict[str, Any], types: Dict[str, str]) -> Traffic:
    key = data.get("key", "")
    if "segments" not in data:
        raise DatafileError(f"Traffic {key!r} of feature {feature_key!r} has no segments")
    return Traffic(
        key=key,
        segments=parse_group_segments(data["segments"]),
        allocation=tuple(_parse_allocation(feature_key, a) for a in data.get("allocation") or []),
        enabled=data.get("enabled"),
        variation=data.get("variation"),
        variables=_variable_values(data.get("variables"), types),
    )


def _parse_allocation(feature_key: str, data: Dict[str, Any]) -> Allocation:
    raw_range = data.get("range")
    if (
        not isinstance(raw_range, (list, tuple))
        or len(raw_range) != 2
        or not all(isinstance(n, (int, float)) and not isinstance(n, bool) for n in raw_range)
        or raw_range[0] > raw_range[1]
    ):
        raise DatafileError(
            f"Feature {feature_key!r} has an invalid allocation range: {raw_range!r}"
        )
    return Allocation(variation=data.get("variation"), range=(raw_range[0], raw_range[1]))


def _parse_force(data: Dict[str, Any], types: Dict[str, str]) -> Force:
    return Force(
        conditions=parse_conditions(data["conditions"]) if data.get("conditions") is not None else None,
        segments=parse_group_segments(data["segments"]) if data.get("segments") is not None else None,
        enabled=data.get("enabled"),
        variation=data.get("variation"),
        variables=_variable_values(data.get("variables"), types),
    )


def _parse_variation(data: Dict[str, Any], types: Dict[str, str]) -> Variation:
    variables = []
    for v in data.get("variables") or []:
        variable_type = types.get(v["key"])
        overrides = tuple(
            VariableOverride(
                value=_variable_value(variable_type, o.get("value")),
                conditions=parse_conditions(o["conditions"]) if o.get("conditions") is not None else None,
                segments=parse_group_segments(o["segments"]) if o.get("segments") is not None else None,
            )
            for o in v.get("overrides") or []
        )
        variables.append(VariationVariable(
            key=v["key"],
            value=_variable_value(variable_type, v.get("value")),
            overrides=overrides,
        ))

    return Variation(
        value=data["value"],
        weight=data.get("weight"),
        description=data.get("description"),
        variables=tuple(variables),
    )


def _parse_required(raw: Any) -> Required:
    if isinstance(raw, str):
        return Required(key=raw)
    if isinstance(raw, dict) and isinstance(raw.get("key"), str):
        return Required(key=raw["key"], variation=raw.get("variation"))
    raise DatafileError(f"Invalid required feature: {raw!r}")


def _variable_values(raw: Optional[Dict[str, Any]], types: Dict[str, str]) -> Optional[Dict[str, Any]]:
    if raw is None:
        return None
    return {key: _variable_value(types.get(key), value) for key, value in raw.items()}


def _variable_value(variable_type: Optional[str], value: Any) -> Any:
    """JSON typed variables may be stored as encoded strings."""
    if variable_type == "json" and isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError as e:
            raise DatafileError(f"Invalid json variable value {value!r}: {e}") from e
    return value
