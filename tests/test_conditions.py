"""Tests for condition evaluation."""

from datetime import datetime, timezone

import pytest
from flagcore.conditions import (
    compare_versions,
    condition_matches,
    conditions_match,
    get_attribute_value,
)
from flagcore.expressions import parse_conditions
from flagcore.models import And, Condition, Everyone, Not, Or


@pytest.fixture
def context():
    """Create a test context."""
    return {
        "userId": "user-123",
        "email": "test@example.com",
        "country": "US",
        "age": 25,
        "score": 7.5,
        "beta": True,
        "version": "1.2.3",
        "signedUpAt": "2023-06-01T12:00:00Z",
        "tags": ["early", "pro"],
        "device": {"os": "ios"},
    }


@pytest.fixture
def check(context):
    """Helper to evaluate a single condition against the context."""
    def _check(operator, value, attribute="country", **kwargs):
        return condition_matches(Condition(attribute, operator, value, **kwargs), context)
    return _check


class TestEqualityOperators:
    """Tests for equals / notEquals."""

    def test_country_equals(self):
        """A country condition matches only that country."""
        condition = Condition(attribute="country", operator="equals", value="US")
        assert conditions_match(condition, {"country": "US"}) is True
        assert conditions_match(condition, {"country": "CA"}) is False

    def test_equals_is_case_sensitive(self, check):
        assert check("equals", "us") is False

    def test_equals_does_not_coerce_types(self, check):
        """Booleans are not numbers and numbers are not strings."""
        assert check("equals", True, "beta") is True
        assert check("equals", 1, "beta") is False
        assert check("equals", "25", "age") is False
        assert check("equals", 25, "age") is True
        assert check("equals", 25.0, "age") is True

    def test_not_equals(self, check):
        assert check("notEquals", "CA") is True
        assert check("notEquals", "US") is False

    def test_not_equals_with_absent_attribute(self, check):
        """Absent attributes never match ordinary operators."""
        assert check("notEquals", "CA", "missing") is False


class TestExistenceOperators:
    """Tests for exists / notExists."""

    def test_exists(self, check):
        assert check("exists", None, "email") is True
        assert check("exists", None, "missing") is False

    def test_not_exists(self, check):
        assert check("notExists", None, "missing") is True
        assert check("notExists", None, "email") is False

    def test_none_counts_as_absent(self):
        condition = Condition("email", "notExists")
        assert condition_matches(condition, {"email": None}) is True


class TestNumericOperators:
    """Tests for numeric comparisons."""

    def test_greater_than(self, check):
        assert check("greaterThan", 20, "age") is True
        assert check("greaterThan", 25, "age") is False

    def test_greater_than_or_equals(self, check):
        assert check("greaterThanOrEquals", 25, "age") is True
        assert check("greaterThanOrEquals", 26, "age") is False

    def test_less_than(self, check):
        assert check("lessThan", 30, "age") is True
        assert check("lessThan", 7.5, "score") is False

    def test_less_than_or_equals(self, check):
        assert check("lessThanOrEquals", 7.5, "score") is True
        assert check("lessThanOrEquals", 24, "age") is False

    def test_incompatible_types_are_false(self, check):
        """Strings and booleans never compare as numbers."""
        assert check("greaterThan", "20", "age") is False
        assert check("greaterThan", 0, "email") is False
        assert check("greaterThan", 0, "beta") is False


class TestStringOperators:
    """Tests for string operators."""

    def test_contains(self, check):
        assert check("contains", "example", "email") is True
        assert check("contains", "gmail", "email") is False

    def test_not_contains(self, check):
        assert check("notContains", "gmail", "email") is True
        assert check("notContains", "example", "email") is False

    def test_starts_with(self, check):
        assert check("startsWith", "test", "email") is True
        assert check("startsWith", "admin", "email") is False

    def test_ends_with(self, check):
        assert check("endsWith", ".com", "email") is True
        assert check("endsWith", ".org", "email") is False

    def test_non_string_attribute(self, check):
        assert check("contains", "2", "age") is False


class TestMembershipOperators:
    """Tests for in / notIn / includes / notIncludes."""

    def test_in(self, check):
        assert check("in", ["US", "CA"]) is True
        assert check("in", ["NL", "DE"]) is False

    def test_not_in(self, check):
        assert check("notIn", ["NL", "DE"]) is True
        assert check("notIn", ["US", "CA"]) is False

    def test_in_requires_a_list(self, check):
        assert check("in", "US") is False

    def test_in_with_numbers(self, check):
        assert check("in", [18, 25], "age") is True
        assert check("in", ["25"], "age") is False

    def test_includes(self, check):
        assert check("includes", "pro", "tags") is True
        assert check("includes", "free", "tags") is False

    def test_not_includes(self, check):
        assert check("notIncludes", "free", "tags") is True
        assert check("notIncludes", "pro", "tags") is False


class TestPatternOperators:
    """Tests for matches / notMatches."""

    def test_matches(self, check):
        assert check("matches", r"@example\.com$", "email") is True
        assert check("matches", r"@gmail\.com$", "email") is False

    def test_matches_with_flags(self, check):
        assert check("matches", r"^TEST@", "email") is False
        assert check("matches", r"^TEST@", "email", regex_flags="i") is True

    def test_not_matches(self, check):
        assert check("notMatches", r"@gmail\.com$", "email") is True
        assert check("notMatches", r"@example\.com$", "email") is False

    def test_invalid_pattern_is_false(self, check):
        assert check("matches", "[unclosed", "email") is False
        assert check("notMatches", "[unclosed", "email") is False


class TestSemverOperators:
    """Tests for semantic version operators."""

    def test_semver_equals(self, check):
        assert check("semverEquals", "1.2.3", "version") is True
        assert check("semverEquals", "v1.2.3", "version") is True
        assert check("semverEquals", "1.2.4", "version") is False

    def test_semver_not_equals(self, check):
        assert check("semverNotEquals", "1.2.4", "version") is True

    def test_semver_greater_than(self, check):
        assert check("semverGreaterThan", "1.0.0", "version") is True
        assert check("semverGreaterThan", "1.10.0", "version") is False

    def test_semver_greater_than_or_equals(self, check):
        assert check("semverGreaterThanOrEquals", "1.2.3", "version") is True

    def test_semver_less_than(self, check):
        assert check("semverLessThan", "2.0.0", "version") is True
        assert check("semverLessThan", "1.0.0", "version") is False

    def test_semver_less_than_or_equals(self, check):
        assert check("semverLessThanOrEquals", "1.2", "version") is False
        assert check("semverLessThanOrEquals", "1.2.3", "version") is True

    def test_unparsable_version(self, check):
        assert check("semverEquals", "latest", "version") is False


class TestCompareVersions:
    """Tests for compare_versions."""

    def test_missing_parts_are_zero(self):
        assert compare_versions("1.2", "1.2.0") == 0

    def test_numeric_ordering(self):
        assert compare_versions("1.10.0", "1.9.0") == 1

    def test_prerelease_ranks_below_release(self):
        assert compare_versions("1.0.0-beta", "1.0.0") == -1
        assert compare_versions("1.0.0-alpha.1", "1.0.0-alpha.2") == -1
        assert compare_versions("1.0.0-alpha.beta", "1.0.0-alpha.1") == 1

    def test_build_metadata_ignored(self):
        assert compare_versions("1.0.0+build.5", "1.0.0") == 0

    def test_invalid(self):
        assert compare_versions("one", "1.0.0") is None


class TestDateOperators:
    """Tests for before / after."""

    def test_before(self, check):
        assert check("before", "2024-01-01T00:00:00Z", "signedUpAt") is True
        assert check("before", "2023-01-01T00:00:00Z", "signedUpAt") is False

    def test_after(self, check):
        assert check("after", "2023-01-01T00:00:00Z", "signedUpAt") is True
        assert check("after", "2024-01-01T00:00:00Z", "signedUpAt") is False

    def test_datetime_in_context(self):
        condition = Condition("now", "after", "2023-01-01T00:00:00Z")
        now = datetime(2023, 6, 1, tzinfo=timezone.utc)
        assert condition_matches(condition, {"now": now}) is True

    def test_naive_and_aware_never_compare(self, check):
        assert check("before", "2024-01-01T00:00:00", "signedUpAt") is False

    def test_not_a_date(self, check):
        assert check("before", "tomorrow", "signedUpAt") is False


class TestConditionGroups:
    """Tests for AND / OR / NOT and the wildcard."""

    def test_wildcard(self, context):
        assert conditions_match(Everyone(), context) is True
        assert conditions_match(parse_conditions("*"), {}) is True

    def test_raw_values_are_normalised(self, context):
        """Raw lists, dicts and encoded strings are accepted like nodes."""
        condition = {"attribute": "country", "operator": "equals", "value": "US"}
        assert conditions_match("*", {}) is True
        assert conditions_match(condition, context) is True
        assert conditions_match([condition, {"attribute": "beta", "operator": "equals", "value": True}], context) is True
        assert conditions_match({"not": [condition]}, context) is False
        assert conditions_match('[{"attribute": "country", "operator": "equals", "value": "CA"}]', context) is False

    def test_and(self, context):
        group = And((Condition("country", "equals", "US"), Condition("age", "greaterThan", 30)))
        assert conditions_match(group, context) is False

    def test_or(self, context):
        group = Or((Condition("country", "equals", "CA"), Condition("age", "greaterThan", 20)))
        assert conditions_match(group, context) is True

    def test_not(self, context):
        group = Not((Condition("country", "equals", "CA"),))
        assert conditions_match(group, context) is True

    def test_not_combines_children_with_and(self, context):
        group = Not((Condition("country", "equals", "US"), Condition("age", "equals", 99)))
        assert conditions_match(group, context) is True

    def test_plain_list_is_and(self, context):
        group = parse_conditions([
            {"attribute": "country", "operator": "equals", "value": "US"},
            {"attribute": "beta", "operator": "equals", "value": True},
        ])
        assert conditions_match(group, context) is True

    def test_nested(self, context):
        group = parse_conditions({
            "or": [
                {"and": [
                    {"attribute": "country", "operator": "equals", "value": "NL"},
                    {"attribute": "age", "operator": "greaterThan", "value": 18},
                ]},
                {"not": [{"attribute": "beta", "operator": "equals", "value": False}]},
            ]
        })
        assert conditions_match(group, context) is True

    def test_or_short_circuits(self):
        """The second child is never reached once the first matches."""
        group = Or((Everyone(), object()))
        assert conditions_match(group, {}) is True

    def test_unknown_operator_is_false(self, check):
        assert check("looksLike", "US") is False


class TestAttributeLookup:
    """Tests for get_attribute_value."""

    def test_nested_path(self, context):
        assert get_attribute_value("device.os", context) == "ios"

    def test_literal_key_with_dot_wins(self):
        assert get_attribute_value("a.b", {"a.b": 1, "a": {"b": 2}}) == 1

    def test_missing(self, context):
        assert get_attribute_value("device.model", context) is None
        assert get_attribute_value("anything", None) is None
