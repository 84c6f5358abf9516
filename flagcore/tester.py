"""
Test specs for segments and features, and the runner that executes them.

The runner only produces structured results; rendering them is the job of
flagcore.reporter.
"""

import json
import logging
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Pattern, Union

import yaml

from flagcore.bucket import MAX_BUCKETED_NUMBER
from flagcore.config import ProjectConfig
from flagcore.datafile import DatafileReader, load_datafile
from flagcore.errors import (
    ConfigurationError,
    FeatureNotFoundError,
    FlagcoreError,
    InvalidTestSpecError,
    SegmentNotFoundError,
)
from flagcore.evaluate import Evaluation, EvaluationOptions, evaluate
from flagcore.segments import segment_matches

logger = logging.getLogger("flagcore.tester")

TEST_FILE_EXTENSIONS = (".yml", ".yaml", ".json")


@dataclass(frozen=True)
class SegmentAssertion:
    context: Dict[str, Any]
    expected_to_match: bool
    description: Optional[str] = None


@dataclass(frozen=True)
class FeatureAssertion:
    context: Dict[str, Any]
    description: Optional[str] = None
    environment: Optional[str] = None
    at: Optional[float] = None
    expected_to_be_enabled: Optional[bool] = None
    expected_variation: Optional[str] = None
    expected_variables: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class SegmentSpec:
    segment: str
    assertions: List[SegmentAssertion]

    kind = "segment"

    @property
    def key(self) -> str:
        return self.segment


@dataclass(frozen=True)
class FeatureSpec:
    feature: str
    assertions: List[FeatureAssertion]

    kind = "feature"

    @property
    def key(self) -> str:
        return self.feature


TestSpec = Union[SegmentSpec, FeatureSpec]


def _assertion_entries(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    raw_assertions = data.get("assertions") or []
    if not isinstance(raw_assertions, list):
        raise InvalidTestSpecError(f"Invalid test, assertions must be a list: {data!r}")

    for index, a in enumerate(raw_assertions, start=1):
        if not isinstance(a, dict):
            raise InvalidTestSpecError(f"Invalid test, assertion #{index} must be a mapping: {a!r}")
        if not isinstance(a.get("context") or {}, dict):
            raise InvalidTestSpecError(f"Invalid test, context of assertion #{index} must be a mapping")
        if not isinstance(a.get("expectedVariables") or {}, dict):
            raise InvalidTestSpecError(
                f"Invalid test, expectedVariables of assertion #{index} must be a mapping"
            )
    return raw_assertions


def parse_test_spec(data: Any) -> TestSpec:
    """
    Decide the kind of a test fixture and parse it.

    Raises:
        InvalidTestSpecError: if it has neither a `segment` nor a `feature`
            key, or an assertion is not a mapping with a mapping `context`
    """
    if not isinstance(data, dict):
        raise InvalidTestSpecError(f"Invalid test: {data!r}")

    if data.get("segment"):
        return SegmentSpec(
            segment=str(data["segment"]),
            assertions=[
                SegmentAssertion(
                    context=a.get("context") or {},
                    expected_to_match=bool(a.get("expectedToMatch")),
                    description=a.get("description"),
                )
                for a in _assertion_entries(data)
            ],
        )

    if data.get("feature"):
        return FeatureSpec(
            feature=str(data["feature"]),
            assertions=[
                FeatureAssertion(
                    context=a.get("context") or {},
                    description=a.get("description"),
                    environment=a.get("environment"),
                    at=a.get("at"),
                    expected_to_be_enabled=a.get("expectedToBeEnabled"),
                    expected_variation=a.get("expectedVariation"),
                    expected_variables=a.get("expectedVariables"),
                )
                for a in _assertion_entries(data)
            ],
        )

    raise InvalidTestSpecError(f"Invalid test: {json.dumps(data, default=str)}")


def read_test_spec(path: Path) -> TestSpec:
    """Read a YAML or JSON test file."""
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise InvalidTestSpecError(f"Cannot read test {path}: {e}") from e
    return parse_test_spec(data)


@dataclass
class RunOptions:
    """Filters applied to a test run."""

    key_pattern: Optional[str] = None
    """Only run specs whose segment/feature key matches this regex."""

    assertion_pattern: Optional[str] = None
    """Only run assertions whose description matches this regex."""


@dataclass
class AssertionMismatch:
    """Expected and actual differ for one field of an assertion."""

    field: str
    expected: Any
    actual: Any

    @property
    def message(self) -> str:
        return f"{self.field}: expected {self.expected!r}, received {self.actual!r}"


@dataclass
class AssertionResult:
    description: str
    mismatches: List[AssertionMismatch] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.mismatches


@dataclass
class SpecResult:
    """Outcome of one test file."""

    file_path: Path
    key: Optional[str] = None
    kind: Optional[str] = None
    assertions: List[AssertionResult] = field(default_factory=list)
    error: Optional[FlagcoreError] = None

    @property
    def passed(self) -> bool:
        return self.error is None and all(a.passed for a in self.assertions)

    @property
    def passed_assertions(self) -> int:
        return sum(1 for a in self.assertions if a.passed)

    @property
    def failed_assertions(self) -> int:
        return sum(1 for a in self.assertions if not a.passed)


@dataclass
class RunSummary:
    results: List[SpecResult] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def passed_specs(self) -> int:
        return sum(1 for r in self.results if r.passed)

    @property
    def failed_specs(self) -> int:
        return sum(1 for r in self.results if not r.passed)

    @property
    def passed_assertions(self) -> int:
        return sum(r.passed_assertions for r in self.results)

    @property
    def failed_assertions(self) -> int:
        return sum(r.failed_assertions for r in self.results)

    @property
    def has_failures(self) -> bool:
        return self.failed_specs > 0


def _compile(pattern: Optional[str], name: str) -> Optional[Pattern]:
    if not pattern:
        return None
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ConfigurationError(f"Invalid {name} {pattern!r}: {e}") from e


class SpecRunner:
    """
    Runs every test file of a tests directory against loaded datafiles.

    Example:
        ```python
        runner = SpecRunner.from_project(load_project_config("flagcore.yml"))
        summary = runner.run()
        ```
    """

    def __init__(
        self,
        datafiles: Dict[str, DatafileReader],
        tests_directory_path: Path,
        default_environment: Optional[str] = None,
        options: Optional[RunOptions] = None,
    ):
        if not datafiles:
            raise ConfigurationError("No datafiles to test against")

        self._datafiles = datafiles
        self._tests_directory_path = Path(tests_directory_path)
        self._default_environment = default_environment or next(iter(datafiles))
        if self._default_environment not in datafiles:
            raise ConfigurationError(
                f"Default environment {self._default_environment!r} has no datafile"
            )

        options = options or RunOptions()
        self._key_pattern = _compile(options.key_pattern, "key pattern")
        self._assertion_pattern = _compile(options.assertion_pattern, "assertion pattern")

    @classmethod
    def from_project(cls, project: ProjectConfig, options: Optional[RunOptions] = None) -> "SpecRunner":
        """Load the project's datafiles and build a runner."""
        datafiles = {env: load_datafile(path) for env, path in project.datafiles.items()}
        return cls(datafiles, project.tests_directory_path, project.default_environment, options)

    def list_test_files(self) -> List[Path]:
        """
        List test files, sorted by path.

        Raises:
            ConfigurationError: if the directory is missing or holds no tests
        """
        directory = self._tests_directory_path
        if not directory.is_dir():
            raise ConfigurationError(f"Tests directory does not exist: {directory}")

        files = sorted(
            p for p in directory.rglob("*")
            if p.is_file() and p.suffix in TEST_FILE_EXTENSIONS
        )
        if not files:
            raise ConfigurationError(f"No tests found in: {directory}")
        return files

    def run(self) -> RunSummary:
        """Run all test files. Never stops at the first failure."""
        test_files = self.list_test_files()

        start = time.monotonic()
        summary = RunSummary()
        for path in test_files:
            result = self.execute_test_file(path)
            if result is not None:
                summary.results.append(result)

        summary.duration_ms = int((time.monotonic() - start) * 1000)
        return summary

    def execute_test_file(self, path: Path) -> Optional[SpecResult]:
        """
        Execute one test file.

        Returns None when the spec key does not match the key pattern.
        """
        try:
            spec = read_test_spec(path)
        except InvalidTestSpecError as e:
            logger.warning(e.message)
            return SpecResult(file_path=path, error=e)

        if self._key_pattern is not None and not self._key_pattern.search(spec.key):
            return None

        result = SpecResult(file_path=path, key=spec.key, kind=spec.kind)
        try:
            if isinstance(spec, SegmentSpec):
                self._test_segment(spec, result)
            else:
                self._test_feature(spec, result)
        except FlagcoreError as e:
            result.error = e

        return result

    def _descriptions(self, assertions: List[Any]):
        for index, assertion in enumerate(assertions, start=1):
            description = f"Assertion #{index}: {assertion.description or f'#{index}'}"
            if self._assertion_pattern is not None and not self._assertion_pattern.search(description):
                continue
            yield description, assertion

    def _test_segment(self, spec: SegmentSpec, result: SpecResult) -> None:
        reader = self._datafiles[self._default_environment]
        if reader.get_segment(spec.segment) is None:
            raise SegmentNotFoundError(spec.segment)

        for description, assertion in self._descriptions(spec.assertions):
            actual = segment_matches(spec.segment, assertion.context, reader)
            assertion_result = AssertionResult(description=description)
            if actual != assertion.expected_to_match:
                assertion_result.mismatches.append(
                    AssertionMismatch("match", assertion.expected_to_match, actual)
                )
            result.assertions.append(assertion_result)

    def _test_feature(self, spec: FeatureSpec, result: SpecResult) -> None:
        if not self._datafiles[self._default_environment].has_feature(spec.feature):
            raise FeatureNotFoundError(spec.feature)

        for description, assertion in self._descriptions(spec.assertions):
            environment = assertion.environment or self._default_environment
            reader = self._datafiles.get(environment)
            if reader is None:
                mismatches = [AssertionMismatch("environment", environment, None)]
            else:
                # an engine error aborts the spec before this assertion is recorded
                evaluation = evaluate(reader, spec.feature, assertion.context, _options_for(assertion))
                mismatches = _compare_feature(assertion, evaluation)

            result.assertions.append(AssertionResult(description=description, mismatches=mismatches))


def _options_for(assertion: FeatureAssertion) -> EvaluationOptions:
    if assertion.at is None:
        return EvaluationOptions()

    # `at` is a percentage; bucket values carry three more decimal places
    bucket_value = round(assertion.at * (MAX_BUCKETED_NUMBER / 100))
    return EvaluationOptions(configure_bucket_value=lambda feature, context, value: bucket_value)


def _compare_feature(assertion: FeatureAssertion, evaluation: Evaluation) -> List[AssertionMismatch]:
    mismatches = []

    if assertion.expected_to_be_enabled is not None and evaluation.enabled != assertion.expected_to_be_enabled:
        mismatches.append(
            AssertionMismatch("enabled", assertion.expected_to_be_enabled, evaluation.enabled)
        )

    if assertion.expected_variation is not None and evaluation.variation != assertion.expected_variation:
        mismatches.append(
            AssertionMismatch("variation", assertion.expected_variation, evaluation.variation)
        )

    for key, expected in (assertion.expected_variables or {}).items():
        actual = evaluation.variables.get(key)
        if isinstance(expected, str) and isinstance(actual, (dict, list)):
            try:
                expected = json.loads(expected)
            except ValueError:
                pass
        if actual != expected:
            mismatches.append(AssertionMismatch(f"variables.{key}", expected, actual))

    return mismatches
