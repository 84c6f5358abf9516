"""Tests for feature resolution."""

import pytest
from flagcore.bucket import bucket
from flagcore.datafile import DatafileReader
from flagcore.errors import DatafileError, SegmentNotFoundError
from flagcore.evaluate import (
    EvaluationOptions,
    evaluate,
    evaluate_feature,
    evaluate_variable,
)
from flagcore.reasons import EvaluationReasonKind


class TestEvaluate:
    """Tests for evaluate() by key."""

    def test_unknown_feature(self, reader):
        evaluation = evaluate(reader, "nope", {"userId": "1"})
        assert evaluation.enabled is False
        assert evaluation.reason.kind == EvaluationReasonKind.NOT_FOUND

    def test_deterministic(self, reader):
        """Same context, same revision, same decision."""
        context = {"userId": "user-7", "country": "nl"}
        first = evaluate(reader, "checkout", context)
        for _ in range(50):
            again = evaluate(reader, "checkout", context)
            assert again.bucket_value == first.bucket_value
            assert again.to_dict() == first.to_dict()

    def test_bucket_value_from_bucket_key(self, reader):
        evaluation = evaluate(reader, "checkout", {"userId": "user-7", "country": "nl"})
        assert evaluation.bucket_key == "user-7.checkout"
        assert evaluation.bucket_value == bucket("user-7.checkout")

    def test_context_is_not_mutated(self, reader):
        context = {"userId": "user-7", "country": "nl"}
        evaluate(reader, "checkout", context)
        assert context == {"userId": "user-7", "country": "nl"}


class TestForce:
    """Force rules take precedence over traffic."""

    def test_internal_email_forced_off(self, reader, pinned):
        """Disabled even when the bucket value falls in an enabling allocation."""
        context = {"userId": "1", "country": "nl", "email": "dev@internal.com"}
        for bucket_value in (0, 49999, 50000, 99999):
            evaluation = evaluate(reader, "checkout", context, pinned(bucket_value))
            assert evaluation.enabled is False
            assert evaluation.reason.kind == EvaluationReasonKind.FORCED
            assert evaluation.force_index == 0
            assert evaluation.variation is None
            assert evaluation.variables == {}

    def test_forced_on_with_variation_and_variables(self, reader, pinned):
        evaluation = evaluate(reader, "checkout", {"userId": "vip", "country": "fr"}, pinned(50000))

        assert evaluation.enabled is True
        assert evaluation.reason.kind == EvaluationReasonKind.FORCED
        assert evaluation.force_index == 1
        assert evaluation.variation == "treatment"
        assert evaluation.variables == {
            "title": "Try it",
            "color": "gold",
            "config": {"steps": 1},
        }


class TestTraffic:
    """Traffic and allocation outcomes."""

    def test_allocated_treatment(self, reader, pinned):
        evaluation = evaluate(reader, "checkout", {"userId": "1", "country": "nl"}, pinned(60000))

        assert evaluation.enabled is True
        assert evaluation.reason.kind == EvaluationReasonKind.ALLOCATED
        assert evaluation.traffic_key == "dutch"
        assert evaluation.variation == "treatment"
        assert evaluation.variables == {"title": "Try it", "color": "blue", "config": {"steps": 1}}

    def test_allocated_control_uses_defaults(self, reader, pinned):
        evaluation = evaluate(reader, "checkout", {"userId": "1", "country": "nl"}, pinned(10000))

        assert evaluation.variation == "control"
        assert evaluation.variables == {"title": "Welcome", "color": "blue", "config": {"steps": 3}}

    def test_variable_override_by_segment(self, reader, pinned):
        context = {"userId": "1", "country": "nl", "device": "mobile"}
        evaluation = evaluate(reader, "checkout", context, pinned(60000))
        assert evaluation.variables["title"] == "Try it on mobile"

    def test_traffic_variables(self, reader, pinned):
        evaluation = evaluate(reader, "checkout", {"userId": "1", "country": "fr"}, pinned(5000))

        assert evaluation.traffic_key == "everyone"
        assert evaluation.variation == "control"
        assert evaluation.variables["color"] == "green"

    def test_matched_traffic_without_allocation(self, reader, pinned):
        """Targeted but outside every range: off, and not reported as no match."""
        evaluation = evaluate(reader, "checkout", {"userId": "1", "country": "fr"}, pinned(50000))

        assert evaluation.enabled is False
        assert evaluation.reason.kind == EvaluationReasonKind.OUT_OF_RANGE
        assert evaluation.traffic_key == "everyone"
        assert evaluation.variation is None

    def test_no_traffic_matched(self, pinned):
        reader = DatafileReader.from_dict({
            "segments": [{"key": "nl", "conditions": {"attribute": "country", "operator": "equals", "value": "nl"}}],
            "features": [{
                "key": "f",
                "bucketBy": "userId",
                "traffic": [{"key": "nl", "segments": "nl", "allocation": [{"range": [0, 99999]}]}],
            }],
        })
        evaluation = evaluate(reader, "f", {"userId": "1", "country": "de"}, pinned(0))
        assert evaluation.enabled is False
        assert evaluation.reason.kind == EvaluationReasonKind.NO_MATCH
        assert evaluation.traffic_key is None

    def test_traffic_enabled_override(self, reader, pinned):
        evaluation = evaluate(reader, "banner", {"userId": "1", "country": "de"}, pinned(10))
        assert evaluation.enabled is False
        assert evaluation.reason.kind == EvaluationReasonKind.RULE
        assert evaluation.traffic_key == "german"

    def test_feature_without_variations(self, reader):
        evaluation = evaluate(reader, "banner", {"deviceId": "d-1", "country": "nl"})
        assert evaluation.enabled is True
        assert evaluation.variation is None
        assert evaluation.bucket_key == "d-1.banner"

    def test_missing_segment_raises(self):
        reader = DatafileReader.from_dict({
            "features": [{
                "key": "f",
                "bucketBy": "userId",
                "traffic": [{"key": "beta", "segments": "beta-users", "allocation": []}],
            }],
        })
        with pytest.raises(SegmentNotFoundError):
            evaluate(reader, "f", {"userId": "1"})


class TestRequired:
    """Required features."""

    def test_required_disabled(self, reader, pinned):
        evaluation = evaluate(reader, "new-ui", {"userId": "1", "country": "fr"}, pinned(50000))
        assert evaluation.enabled is False
        assert evaluation.reason.kind == EvaluationReasonKind.REQUIRED
        assert evaluation.reason.required_key == "checkout"

    def test_required_enabled(self, reader, pinned):
        evaluation = evaluate(reader, "new-ui", {"userId": "1", "country": "fr"}, pinned(5000))
        assert evaluation.enabled is True
        assert evaluation.reason.kind == EvaluationReasonKind.ALLOCATED
        assert evaluation.bucket_key == "1.fr.new-ui"

    @pytest.fixture
    def required_reader(self):
        def feature(key, required=(), variation=None):
            return {
                "key": key,
                "bucketBy": "userId",
                "required": list(required),
                "variations": [{"value": "a"}, {"value": "b"}],
                "traffic": [{"key": "all", "segments": "*", "allocation": [{"variation": variation or "a", "range": [0, 99999]}]}],
            }

        return DatafileReader.from_dict({
            "features": [
                feature("base", variation="b"),
                feature("wants-a", required=[{"key": "base", "variation": "a"}]),
                feature("wants-b", required=[{"key": "base", "variation": "b"}]),
                feature("wants-missing", required=["ghost"]),
                feature("loop-1", required=["loop-2"]),
                feature("loop-2", required=["loop-1"]),
            ],
        })

    def test_required_variation(self, required_reader):
        assert evaluate(required_reader, "wants-b", {"userId": "1"}).enabled is True
        assert evaluate(required_reader, "wants-a", {"userId": "1"}).enabled is False

    def test_required_missing_feature(self, required_reader):
        evaluation = evaluate(required_reader, "wants-missing", {"userId": "1"})
        assert evaluation.enabled is False
        assert evaluation.reason.required_key == "ghost"

    def test_circular_requirements(self, required_reader):
        with pytest.raises(DatafileError):
            evaluate(required_reader, "loop-1", {"userId": "1"})


class TestOptions:
    """Bucket key and value hooks."""

    def test_salted_bucket_key(self, reader):
        options = EvaluationOptions(configure_bucket_key=lambda feature, context, key: f"salt.{key}")
        evaluation = evaluate(reader, "checkout", {"userId": "1"}, options)
        assert evaluation.bucket_key == "salt.1.checkout"
        assert evaluation.bucket_value == bucket("salt.1.checkout")

    def test_separator(self, reader):
        options = EvaluationOptions(bucket_key_separator="|")
        evaluation = evaluate(reader, "new-ui", {"userId": "1", "country": "nl"}, options)
        assert evaluation.bucket_key == "1|nl|new-ui"


class TestRevisionIsolation:
    """Mutating returned values never changes later evaluations."""

    @pytest.mark.parametrize("bucket_value, expected", [(10000, {"steps": 3}), (60000, {"steps": 1})])
    def test_json_variables(self, reader, pinned, bucket_value, expected):
        context = {"userId": "1", "country": "nl"}
        first = evaluate(reader, "checkout", context, pinned(bucket_value))
        first.variables["config"]["steps"] = 99
        first.variables["config"]["extra"] = True

        again = evaluate(reader, "checkout", context, pinned(bucket_value))
        assert again.variables["config"] == expected

    def test_traffic_and_force_variables(self):
        reader = DatafileReader.from_dict({
            "features": [{
                "key": "g",
                "bucketBy": "userId",
                "variablesSchema": [{"key": "tags", "type": "array", "defaultValue": []}],
                "force": [{"conditions": {"attribute": "userId", "operator": "equals", "value": "vip"},
                           "enabled": True, "variables": {"tags": ["vip"]}}],
                "traffic": [{"key": "all", "segments": "*", "variables": {"tags": ["all"]},
                             "allocation": [{"range": [0, 99999]}]}],
            }],
        })
        for user, expected in (("vip", ["vip"]), ("1", ["all"])):
            evaluate(reader, "g", {"userId": user}).variables["tags"].append("changed")
            assert evaluate(reader, "g", {"userId": user}).variables["tags"] == expected


class TestEvaluateVariable:
    """Tests for evaluate_variable()."""

    def test_enabled(self, reader, pinned):
        feature = reader.get_feature("checkout")
        value = evaluate_variable(feature, "title", {"userId": "1", "country": "nl"}, reader, pinned(60000))
        assert value == "Try it"

    def test_disabled(self, reader, pinned):
        feature = reader.get_feature("checkout")
        value = evaluate_variable(feature, "title", {"userId": "1", "country": "fr"}, reader, pinned(60000))
        assert value is None

    def test_unknown_variable(self, reader, pinned):
        feature = reader.get_feature("checkout")
        assert evaluate_variable(feature, "nope", {"userId": "1", "country": "nl"}, reader, pinned(0)) is None


class TestToDict:
    """Tests for Evaluation.to_dict()."""

    def test_to_dict(self, reader, pinned):
        evaluation = evaluate_feature(
            reader.get_feature("checkout"), {"userId": "1", "country": "nl"}, reader, pinned(60000)
        )
        data = evaluation.to_dict()
        assert data["featureKey"] == "checkout"
        assert data["enabled"] is True
        assert data["variation"] == "treatment"
        assert data["reason"] == {"kind": "ALLOCATED", "trafficKey": "dutch"}
        assert data["bucketValue"] == 60000
        assert "forceIndex" not in data
