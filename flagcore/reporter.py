"""
Console rendering of test run results.
"""

import os
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape

from flagcore.tester import RunSummary, SpecResult


def pretty_duration(duration_ms: int) -> str:
    """Format milliseconds as e.g. `1m 2s 30ms`."""
    diff = abs(int(duration_ms))
    if diff == 0:
        return "0ms"

    ms = diff % 1000
    diff //= 1000
    secs = diff % 60
    diff //= 60
    mins = diff % 60
    hrs = diff // 60

    parts = []
    if hrs:
        parts.append(f"{hrs}h")
    if mins:
        parts.append(f"{mins}m")
    if secs:
        parts.append(f"{secs}s")
    if ms:
        parts.append(f"{ms}ms")
    return " ".join(parts)


class ConsoleReporter:
    """Prints spec results and the run summary with rich."""

    def __init__(
        self,
        console: Optional[Console] = None,
        root: Optional[Path] = None,
        verbose: bool = False,
    ):
        self._console = console or Console()
        self._root = root
        self._verbose = verbose

    def _relative(self, path: Path) -> str:
        if self._root is None:
            return str(path)
        return os.path.relpath(path, self._root)

    def report(self, summary: RunSummary) -> None:
        for result in summary.results:
            self.report_spec(result)
        self.report_summary(summary)

    def report_spec(self, result: SpecResult) -> None:
        console = self._console
        console.print(f"\nTesting: {escape(self._relative(result.file_path))}")

        if result.key is not None:
            console.print(f'[bold]  {result.kind.capitalize()} "{escape(result.key)}":[/bold]')

        if result.error is not None:
            console.print(f"[red]  {escape(result.error.message)}[/red]")

        for assertion in result.assertions:
            if assertion.passed:
                if self._verbose or not result.passed:
                    console.print(f"  [green]✔[/green] {escape(assertion.description)}")
                continue

            console.print(f"  [red]✘ {escape(assertion.description)}[/red]")
            for mismatch in assertion.mismatches:
                console.print(f"[red]    => {escape(mismatch.message)}[/red]")

        if result.passed and not self._verbose:
            console.print(f"  [green]✔ {len(result.assertions)} assertions passed[/green]")

    def report_summary(self, summary: RunSummary) -> None:
        color = "red" if summary.has_failures else "green"
        console = self._console

        console.print("\n---\n")
        console.print(
            f"[{color}]Test specs: {summary.passed_specs} passed, {summary.failed_specs} failed[/{color}]"
        )
        console.print(
            f"[{color}]Assertions: {summary.passed_assertions} passed, "
            f"{summary.failed_assertions} failed[/{color}]"
        )
        console.print(f"[bold]Time:       {pretty_duration(summary.duration_ms)}[/bold]")
