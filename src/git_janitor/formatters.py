"""Output formatters for console and JSON display."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape

if TYPE_CHECKING:
    from .core import BranchVerdict, ChangeSet, DirectoryReport, FleetScan, FleetSummary

HR = "[dim]" + "-" * 80 + "[/]"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


class OutputFormatter:
    """Format scan results for console or JSON."""

    def __init__(self, console: Console, use_json: bool = False, only_dirty: bool = False):
        self.console = console
        self.use_json = use_json
        self.only_dirty = only_dirty

    def print_fleet_scan(self, fleet_scan: FleetScan):
        """Print the reports and summary of one root."""
        if self.use_json:
            self._print_json(fleet_scan.to_dict())
        else:
            self._print_fleet_text(fleet_scan)
            self._print_summary(fleet_scan.summary)

    def print_multi_root_scans(self, scans: list[FleetScan], summary: FleetSummary):
        """Print every root, then the combined summary."""
        if self.use_json:
            self._print_json(
                {
                    "roots": [s.to_dict() for s in scans],
                    "summary": summary.to_dict(),
                }
            )
            return

        for fleet_scan in scans:
            self.console.print(f"[bold]Root:[/] {escape(str(fleet_scan.root_path))}")
            self._print_fleet_text(fleet_scan)
            self._print_summary(fleet_scan.summary)
            self.console.print()

        self.console.print(f"[bold]All roots ({len(scans)}):[/]")
        self._print_summary(summary)

    def _print_json(self, output: dict):
        self.console.print(json.dumps(output, indent=2, default=str), markup=False)

    def _print_fleet_text(self, fleet_scan: FleetScan):
        if fleet_scan.root_is_repository:
            self.console.print("Root directory is a git repository.\n")
        else:
            self.console.print(f"Subdirectories found: {len(fleet_scan.reports)}\n")

        for report in fleet_scan.reports:
            if self.only_dirty and not report.is_dirty:
                continue
            self._print_report(report)

    def _print_report(self, report: DirectoryReport):
        """Print one directory block."""
        self.console.print(f"> [yellow]{escape(report.dir_name)}[/]: {self._get_kind_display(report)}")

        if report.error:
            self.console.print(f"  error: [red]{escape(report.error)}[/]")
        elif report.change_set is not None:
            self.console.print(f"  status: {self._get_status_display(report.change_set)}")

        for verdict in report.branch_verdicts or ():
            self.console.print(
                f"[dim]  > [/]{escape(verdict.branch_name)} {self._get_relation_display(verdict)}"
            )

        self.console.print(HR)

    def _get_kind_display(self, report: DirectoryReport) -> str:
        from .core import VcsKind

        match report.vcs_kind:
            case VcsKind.PRIMARY:
                return "git repository"
            case VcsKind.UNSUPPORTED_OTHER:
                return "[red]unsupported (mercurial)[/]"
            case VcsKind.NONE:
                return "[red]unversioned[/]"

    def _get_status_display(self, change_set: ChangeSet) -> str:
        if change_set.is_clean:
            return "[green]clean[/]"

        parts = []
        if change_set.changed_paths:
            changed = _plural(len(change_set.changed_paths), "file")
            parts.append(f"[yellow]{changed} changed or added[/]")
        if change_set.conflict_count > 0:
            parts.append(f"[red]{_plural(change_set.conflict_count, 'conflict')}[/]")
        return ", ".join(parts)

    def _get_relation_display(self, verdict: BranchVerdict) -> str:
        from .core import BranchRelation

        match verdict.relation:
            case BranchRelation.SYNCHRONIZED:
                return "[green]nothing to push[/]"
            case BranchRelation.MUST_PUSH:
                return "[red]must push[/]"
            case BranchRelation.LOCAL_ONLY:
                return "[red]local only[/]"

    def _print_summary(self, summary: FleetSummary):
        """Print the one-line summary."""
        parts = [
            f"[bold]Total:[/] {summary.total_directories}",
            f"[green]✓ Clean:[/] {summary.clean_count}",
            f"[yellow]✎ Dirty:[/] {summary.dirty_count}",
        ]
        if summary.unversioned_count > 0:
            parts.append(f"[red]Unversioned:[/] {summary.unversioned_count}")
        if summary.unsupported_count > 0:
            parts.append(f"[red]Unsupported:[/] {summary.unsupported_count}")
        if summary.error_count > 0:
            parts.append(f"[red]✗ Errors:[/] {summary.error_count}")

        self.console.print(" | ".join(parts))
