"""
flagcore command line.

    flagcore test --config flagcore.yml --key-pattern checkout
    flagcore evaluate --datafile datafile.json --feature checkout --context '{"userId": "1"}'
"""

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape

from flagcore.config import DEFAULT_CONFIG_FILE, load_project_config
from flagcore.datafile import load_datafile
from flagcore.errors import FlagcoreError
from flagcore.evaluate import evaluate
from flagcore.reporter import ConsoleReporter
from flagcore.tester import RunOptions, SpecRunner

app = typer.Typer(help="Evaluate and test feature datafiles")
console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


@app.callback()
def main() -> None:
    """Evaluate and test feature datafiles."""


@app.command("test")
def test(
    config: Path = typer.Option(Path(DEFAULT_CONFIG_FILE), "-c", "--config", help="Project config file"),
    key_pattern: Optional[str] = typer.Option(None, "-k", "--key-pattern", help="Regex over segment/feature keys"),
    assertion_pattern: Optional[str] = typer.Option(
        None, "-a", "--assertion-pattern", help="Regex over assertion descriptions"
    ),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose output"),
):
    """
    Run segment and feature test specs against the project's datafiles.

    Exits with 1 when any spec or assertion fails.
    """
    _configure_logging(verbose)

    try:
        project = load_project_config(config)
        runner = SpecRunner.from_project(project, RunOptions(key_pattern, assertion_pattern))
        summary = runner.run()
    except FlagcoreError as e:
        console.print(f"[red]{escape(e.message)}[/red]")
        raise typer.Exit(1)

    ConsoleReporter(console, root=project.root, verbose=verbose).report(summary)

    if summary.has_failures:
        raise typer.Exit(1)


@app.command("evaluate")
def evaluate_command(
    datafile: Path = typer.Option(..., "-d", "--datafile", help="Datafile JSON"),
    feature: str = typer.Option(..., "-f", "--feature", help="Feature key"),
    context: str = typer.Option("{}", "--context", help="Context as a JSON object"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose output"),
):
    """Evaluate one feature and print the result as JSON."""
    _configure_logging(verbose)

    try:
        parsed_context = json.loads(context)
    except ValueError as e:
        console.print(f"[red]Invalid context: {escape(str(e))}[/red]")
        raise typer.Exit(1)
    if not isinstance(parsed_context, dict):
        console.print("[red]Context must be a JSON object[/red]")
        raise typer.Exit(1)

    try:
        reader = load_datafile(datafile)
        evaluation = evaluate(reader, feature, parsed_context)
    except FlagcoreError as e:
        console.print(f"[red]{escape(e.message)}[/red]")
        raise typer.Exit(1)

    console.print_json(json.dumps(evaluation.to_dict()))


if __name__ == "__main__":
    app()
