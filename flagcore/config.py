"""Project configuration for the flagcore test runner."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Union

import yaml

from flagcore.errors import ConfigurationError

DEFAULT_CONFIG_FILE = "flagcore.yml"
DEFAULT_TESTS_DIRECTORY = "tests"
DEFAULT_ENVIRONMENT = "default"


@dataclass
class ProjectConfig:
    """Where tests and datafiles live."""

    root: Path
    tests_directory_path: Path
    datafiles: Dict[str, Path] = field(default_factory=dict)  # environment -> datafile
    default_environment: str = DEFAULT_ENVIRONMENT


def load_project_config(path: Union[str, Path]) -> ProjectConfig:
    """
    Load a project configuration file.

    Example `flagcore.yml`:

        testsDirectoryPath: tests
        defaultEnvironment: production
        datafiles:
          production: datafiles/production.json
          staging: datafiles/staging.json

    A single `datafile: <path>` is accepted as the "default" environment.
    Relative paths are resolved against the directory of the file.
    """
    path = Path(path)
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except OSError as e:
        raise ConfigurationError(f"Cannot read project config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid project config {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Project config {path} must be a mapping")

    root = path.resolve().parent

    raw_datafiles = data.get("datafiles")
    if raw_datafiles is None and data.get("datafile"):
        raw_datafiles = {DEFAULT_ENVIRONMENT: data["datafile"]}
    if not isinstance(raw_datafiles, dict) or not raw_datafiles:
        raise ConfigurationError(f"Project config {path} lists no datafiles")

    datafiles = {str(env): root / p for env, p in raw_datafiles.items()}
    default_environment = str(data.get("defaultEnvironment", next(iter(datafiles))))
    if default_environment not in datafiles:
        raise ConfigurationError(
            f"Default environment {default_environment!r} has no datafile"
        )

    return ProjectConfig(
        root=root,
        tests_directory_path=root / data.get("testsDirectoryPath", DEFAULT_TESTS_DIRECTORY),
        datafiles=datafiles,
        default_environment=default_environment,
    )
