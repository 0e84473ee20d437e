"""
git-janitor: Keep a directory full of working copies tidy.

Scans every immediate subdirectory of a root directory, detects which ones
are git working copies, and reports uncommitted changes, merge conflicts and
branches that are out of sync with their upstream.
"""

from __future__ import annotations

import json
import os
import re
import subprocess
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from enum import StrEnum
from pathlib import Path
from typing import NamedTuple

import typer
from rich.console import Console
from rich.markup import escape

from ._version import __version__
from .exceptions import GitCommandError, MalformedOutputError, RootNotFoundError, RootUnreadableError
from .formatters import OutputFormatter
from .logging_config import get_logger, setup_logging
from .schema import get_tool_schema

logger = get_logger(__name__)

DEFAULT_MAX_WORKERS = 8
DEFAULT_TIMEOUT = 30.0

# =============================================================================
# Domain Models
# =============================================================================


class VcsKind(StrEnum):
    """Version control system managing a directory."""

    NONE = "unversioned"
    PRIMARY = "git"
    UNSUPPORTED_OTHER = "mercurial"


class BranchRelation(StrEnum):
    """Relation between a local branch and its upstream."""

    SYNCHRONIZED = "synchronized"
    MUST_PUSH = "must_push"
    LOCAL_ONLY = "local_only"


class ParsePolicy(StrEnum):
    """How parsers treat records that do not have the expected shape."""

    LENIENT = "lenient"  # skip them
    STRICT = "strict"  # raise MalformedOutputError


@dataclass(frozen=True)
class ChangeSet:
    """Conflicts and changed paths reported by a porcelain status query."""

    conflict_count: int = 0
    changed_paths: frozenset[str] = frozenset()

    @property
    def is_clean(self) -> bool:
        return self.conflict_count == 0 and not self.changed_paths

    def to_dict(self) -> dict:
        return {
            "conflict_count": self.conflict_count,
            "changed_paths": sorted(self.changed_paths),
        }


@dataclass(frozen=True)
class RefEntry:
    """Commit a ref points at and the upstream it tracks, if any."""

    commit_id: str
    upstream_ref_name: str | None = None


# Fully qualified ref name -> entry, in listing order
RefGraph = dict[str, RefEntry]


@dataclass(frozen=True)
class BranchVerdict:
    """Sync verdict for one local branch."""

    branch_name: str
    relation: BranchRelation

    @property
    def is_synchronized(self) -> bool:
        return self.relation == BranchRelation.SYNCHRONIZED

    def to_dict(self) -> dict:
        return {"branch": self.branch_name, "relation": self.relation.value}


@dataclass
class DirectoryReport:
    """Everything known about one scanned directory."""

    dir_name: str
    vcs_kind: VcsKind
    change_set: ChangeSet | None = None
    branch_verdicts: tuple[BranchVerdict, ...] | None = None
    path: Path | None = None
    error: str = ""

    @property
    def is_dirty(self) -> bool:
        """Check if the directory needs attention."""
        if self.error:
            return True
        match self.vcs_kind:
            case VcsKind.NONE | VcsKind.UNSUPPORTED_OTHER:
                return True
            case VcsKind.PRIMARY:
                if self.change_set is not None and not self.change_set.is_clean:
                    return True
                return any(not v.is_synchronized for v in self.branch_verdicts or ())

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        return {
            "name": self.dir_name,
            "path": str(self.path) if self.path else None,
            "vcs": self.vcs_kind.value,
            "is_dirty": self.is_dirty,
            "status": self.change_set.to_dict() if self.change_set else None,
            "branches": (
                [v.to_dict() for v in self.branch_verdicts]
                if self.branch_verdicts is not None
                else None
            ),
            "error": self.error,
        }


@dataclass
class FleetSummary:
    """Counts folded from the directory reports of a scan."""

    total_directories: int = 0
    dirty_count: int = 0
    unversioned_count: int = 0
    unsupported_count: int = 0
    error_count: int = 0

    @property
    def clean_count(self) -> int:
        return self.total_directories - self.dirty_count

    def add(self, report: DirectoryReport) -> None:
        """Fold one report into the counters."""
        self.total_directories += 1
        self.dirty_count += int(report.is_dirty)
        match report.vcs_kind:
            case VcsKind.NONE:
                self.unversioned_count += 1
            case VcsKind.UNSUPPORTED_OTHER:
                self.unsupported_count += 1
            case VcsKind.PRIMARY:
                pass
        if report.error:
            self.error_count += 1

    @classmethod
    def from_reports(cls, reports: Iterable[DirectoryReport]) -> FleetSummary:
        summary = cls()
        for report in reports:
            summary.add(report)
        return summary

    @classmethod
    def combine(cls, summaries: Iterable[FleetSummary]) -> FleetSummary:
        """Merge the summaries of several roots."""
        combined = cls()
        for summary in summaries:
            combined.total_directories += summary.total_directories
            combined.dirty_count += summary.dirty_count
            combined.unversioned_count += summary.unversioned_count
            combined.unsupported_count += summary.unsupported_count
            combined.error_count += summary.error_count
        return combined

    def to_dict(self) -> dict:
        data = asdict(self)
        data["clean_count"] = self.clean_count
        return data


@dataclass
class FleetScan:
    """Result of scanning one root directory."""

    root_path: Path
    root_is_repository: bool
    reports: list[DirectoryReport]
    summary: FleetSummary

    def to_dict(self) -> dict:
        return {
            "root": str(self.root_path),
            "root_is_repository": self.root_is_repository,
            "directories": [r.to_dict() for r in self.reports],
            "summary": self.summary.to_dict(),
        }


# =============================================================================
# Version-Control Probe
# =============================================================================


class Entry(NamedTuple):
    """An immediate entry of a directory."""

    name: str
    is_dir: bool


# Checked in order: a directory holding both markers is a git working copy
VCS_MARKERS: tuple[tuple[str, VcsKind], ...] = (
    (".git", VcsKind.PRIMARY),
    (".hg", VcsKind.UNSUPPORTED_OTHER),
)


def list_entries(path: Path) -> list[Entry]:
    """List the immediate entries of a directory.

    Raises:
        RootNotFoundError: If the path does not exist or is not a directory.
        RootUnreadableError: If the directory cannot be listed.
    """
    try:
        with os.scandir(path) as it:
            return [Entry(entry.name, entry.is_dir()) for entry in it]
    except (FileNotFoundError, NotADirectoryError) as e:
        raise RootNotFoundError(path) from e
    except PermissionError as e:
        raise RootUnreadableError(path) from e


def classify_entries(entries: Iterable[Entry]) -> VcsKind:
    """Classify a directory from its entries; only directory markers count."""
    marker_dirs = {entry.name for entry in entries if entry.is_dir}
    for marker, kind in VCS_MARKERS:
        if marker in marker_dirs:
            return kind
    return VcsKind.NONE


def probe(path: Path) -> VcsKind:
    """Detect which version control system manages a directory."""
    return classify_entries(list_entries(path))


# =============================================================================
# Parsing
# =============================================================================

# Both sides unmerged: UU, AU, DU
CONFLICT_PATTERN = re.compile(r"^[A-Z]U ")
# Worktree modified/deleted, untracked, or indexed change
CHANGE_PATTERN = re.compile(r"^(.[MD]|\?\?|[AMDR].) ")
STATUS_PATH_OFFSET = 3

REF_KIND_COMMIT = "commit"
LOCAL_BRANCH_PREFIX = "refs/heads/"


def _records(raw_text: str) -> list[str]:
    """Split git output on newlines only; paths may hold other line separators."""
    return [line.removesuffix("\r") for line in raw_text.split("\n")]


def _normalize_status_record(line: str) -> str:
    """Restore the blank index column of a record whose leading space was stripped."""
    if len(line) >= 3 and line[0] != " " and line[1] == " " and line[2] != " ":
        return " " + line
    return line


def parse_status(raw_text: str, policy: ParsePolicy = ParsePolicy.LENIENT) -> ChangeSet:
    """Parse `git status --porcelain` output into a ChangeSet.

    Records with unrecognized status codes are ignored. Records without the
    `XY path` shape are skipped, or rejected under ParsePolicy.STRICT.
    """
    conflict_count = 0
    changed_paths: set[str] = set()

    for raw_line in _records(raw_text):
        if not raw_line:
            continue
        line = _normalize_status_record(raw_line)
        if len(line) <= STATUS_PATH_OFFSET or line[2] != " ":
            if policy == ParsePolicy.STRICT:
                raise MalformedOutputError("status", raw_line)
            continue

        if CONFLICT_PATTERN.match(line):
            conflict_count += 1
        elif CHANGE_PATTERN.match(line):
            changed_paths.add(line[STATUS_PATH_OFFSET:])

    return ChangeSet(conflict_count=conflict_count, changed_paths=frozenset(changed_paths))


def build_ref_graph(raw_text: str, policy: ParsePolicy = ParsePolicy.LENIENT) -> RefGraph:
    """Parse a `kind refname objectname upstream` ref listing.

    Only commit refs are kept. A repeated ref name overwrites the earlier
    entry but keeps its position.
    """
    graph: RefGraph = {}

    for line in _records(raw_text):
        fields = [field for field in line.split(" ") if field]
        if not fields:
            continue
        if len(fields) < 3:
            if policy == ParsePolicy.STRICT:
                raise MalformedOutputError("ref", line)
            continue

        kind, ref_name, commit_id = fields[:3]
        if kind != REF_KIND_COMMIT:
            continue
        upstream = fields[3] if len(fields) > 3 else None
        graph[ref_name] = RefEntry(commit_id=commit_id, upstream_ref_name=upstream or None)

    return graph


# =============================================================================
# Analysis
# =============================================================================


def analyze_divergence(ref_graph: RefGraph) -> list[BranchVerdict]:
    """Classify every local branch against its upstream, in graph order."""
    verdicts = []
    for ref_name, entry in ref_graph.items():
        if not ref_name.startswith(LOCAL_BRANCH_PREFIX):
            continue

        upstream = ref_graph.get(entry.upstream_ref_name) if entry.upstream_ref_name else None
        if upstream is None:
            relation = BranchRelation.LOCAL_ONLY
        elif upstream.commit_id == entry.commit_id:
            relation = BranchRelation.SYNCHRONIZED
        else:
            relation = BranchRelation.MUST_PUSH

        verdicts.append(BranchVerdict(ref_name[len(LOCAL_BRANCH_PREFIX) :], relation))
    return verdicts


def aggregate(
    dir_name: str,
    vcs_kind: VcsKind,
    change_set: ChangeSet | None = None,
    branch_verdicts: Iterable[BranchVerdict] | None = None,
    *,
    path: Path | None = None,
    error: str = "",
) -> DirectoryReport:
    """Compose probe, status and divergence results into one report.

    Only git working copies carry a change set and branch verdicts; for any
    other kind they are dropped and the directory is dirty.
    """
    match vcs_kind:
        case VcsKind.PRIMARY:
            verdicts = tuple(branch_verdicts) if branch_verdicts is not None else None
        case VcsKind.NONE | VcsKind.UNSUPPORTED_OTHER:
            change_set = None
            verdicts = None

    return DirectoryReport(
        dir_name=dir_name,
        vcs_kind=vcs_kind,
        change_set=change_set,
        branch_verdicts=verdicts,
        path=path,
        error=error,
    )


# =============================================================================
# Git Operations (Low-level)
# =============================================================================


class GitOperations:
    """Low-level git queries for a single working copy."""

    STATUS_ARGS = ("-c", "core.quotePath=false", "status", "--porcelain")
    REFS_ARGS = (
        "for-each-ref",
        "--format=%(objecttype) %(refname) %(objectname) %(upstream)",
    )

    def __init__(self, repo_path: Path, timeout: float | None = DEFAULT_TIMEOUT):
        self.repo_path = repo_path
        self.timeout = timeout

    def _run(self, *args: str) -> str:
        """Run a git command in the repository and return its raw stdout."""
        command = ["git", *args]
        logger.debug("Running %s in %s", " ".join(command), self.repo_path)
        try:
            result = subprocess.run(
                command,
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise GitCommandError(command, stderr=f"timed out after {self.timeout}s") from e
        except OSError as e:
            raise GitCommandError(command, stderr=str(e)) from e

        if result.returncode != 0:
            raise GitCommandError(command, result.returncode, result.stderr.strip())
        return result.stdout

    def get_status_porcelain(self) -> str:
        """Raw `git status --porcelain` output.

        Sample output:

             M README.md
            AM docs/intro.md
            UU setup.cfg
            ?? notes.txt
        """
        return self._run(*self.STATUS_ARGS)

    def get_refs(self) -> str:
        """Raw ref listing covering local branches, remote-tracking refs and tags.

        Sample output:

            commit refs/heads/main e7f4e9e... refs/remotes/origin/main
            commit refs/remotes/origin/HEAD e7f4e9e...
            commit refs/remotes/origin/main e7f4e9e...
            tag refs/tags/v1.0 95d157c...
        """
        return self._run(*self.REFS_ARGS)


# =============================================================================
# Repository Analysis
# =============================================================================


class GitRepository:
    """High-level interface for a single git working copy."""

    def __init__(
        self,
        path: Path,
        timeout: float | None = DEFAULT_TIMEOUT,
        policy: ParsePolicy = ParsePolicy.LENIENT,
    ):
        self.path = path
        self.name = path.name
        self.policy = policy
        self.ops = GitOperations(path, timeout)

    def get_change_set(self) -> ChangeSet:
        return parse_status(self.ops.get_status_porcelain(), self.policy)

    def get_branch_verdicts(self) -> list[BranchVerdict]:
        return analyze_divergence(build_ref_graph(self.ops.get_refs(), self.policy))


# =============================================================================
# Fleet Scanner
# =============================================================================


class FleetScanner:
    """Scan the immediate subdirectories of a root directory."""

    def __init__(
        self,
        root_path: Path,
        max_workers: int = DEFAULT_MAX_WORKERS,
        *,
        sequential: bool = False,
        timeout: float | None = DEFAULT_TIMEOUT,
        policy: ParsePolicy = ParsePolicy.LENIENT,
    ):
        self.root_path = Path(root_path).resolve()
        self.max_workers = max_workers
        self.sequential = sequential
        self.timeout = timeout
        self.policy = policy

    def discover_directories(self) -> tuple[bool, list[Path]]:
        """Return whether the root is itself a git working copy, and the directories to analyze."""
        entries = list_entries(self.root_path)
        if classify_entries(entries) == VcsKind.PRIMARY:
            return True, [self.root_path]

        names = sorted(entry.name for entry in entries if entry.is_dir)
        return False, [self.root_path / name for name in names]

    def analyze_directory(self, path: Path) -> DirectoryReport:
        """Probe one directory and, for a git working copy, query its state.

        A failing git query marks only this directory as errored.
        """
        try:
            vcs_kind = probe(path)
        except RootUnreadableError as e:
            logger.warning("Could not analyze %s: %s", path, e)
            return aggregate(path.name, VcsKind.NONE, path=path, error=str(e))
        match vcs_kind:
            case VcsKind.PRIMARY:
                repo = GitRepository(path, self.timeout, self.policy)
                try:
                    change_set = repo.get_change_set()
                    verdicts = repo.get_branch_verdicts()
                except (GitCommandError, MalformedOutputError) as e:
                    logger.warning("Could not analyze %s: %s", path, e)
                    return aggregate(path.name, vcs_kind, path=path, error=str(e))
                return aggregate(path.name, vcs_kind, change_set, verdicts, path=path)
            case VcsKind.NONE | VcsKind.UNSUPPORTED_OTHER:
                return aggregate(path.name, vcs_kind, path=path)

    def scan(self) -> FleetScan:
        """Analyze every candidate directory and fold the reports."""
        root_is_repository, directories = self.discover_directories()
        logger.info(
            "Scanning %d director%s under %s",
            len(directories),
            "y" if len(directories) == 1 else "ies",
            self.root_path,
        )

        if self.sequential or len(directories) <= 1:
            reports = [self.analyze_directory(d) for d in directories]
        else:
            # map() keeps enumeration order regardless of completion order
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                reports = list(executor.map(self.analyze_directory, directories))

        summary = FleetSummary.from_reports(reports)
        logger.info(
            "Scanned %s: %d total, %d dirty",
            self.root_path,
            summary.total_directories,
            summary.dirty_count,
        )
        return FleetScan(
            root_path=self.root_path,
            root_is_repository=root_is_repository,
            reports=reports,
            summary=summary,
        )


def scan(root_path: Path | str, **kwargs) -> FleetScan:
    """Scan a root directory; keyword arguments go to FleetScanner."""
    return FleetScanner(Path(root_path), **kwargs).scan()


def load_roots_file(roots_file: Path) -> list[Path]:
    """Load root directories from a file (one path per line).

    Supports:
    - Comments starting with #
    - Environment variables: $HOME, ${HOME}, $DEV_ROOT, etc.
    - Tilde expansion: ~/path
    """
    roots = []
    try:
        with open(roots_file.expanduser()) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#"):
                    expanded = os.path.expandvars(line)
                    path = Path(expanded).expanduser()
                    if path.is_dir():
                        roots.append(path)
                    else:
                        logger.warning("Skipping root %s: not a directory", path)
    except FileNotFoundError:
        logger.warning("Roots file %s not found", roots_file)
    return roots


def resolve_roots_file() -> Path | None:
    """Auto-resolve the roots file from environment and standard locations.

    Priority order:
    1. $GIT_JANITOR_ROOTS environment variable
    2. ~/.config/git-janitor/roots (XDG-compliant)
    3. ~/.git-janitor-roots
    """
    env_roots = os.environ.get("GIT_JANITOR_ROOTS")
    if env_roots:
        env_path = Path(env_roots).expanduser()
        if env_path.is_file():
            return env_path

    xdg_path = Path.home() / ".config" / "git-janitor" / "roots"
    if xdg_path.is_file():
        return xdg_path

    legacy_path = Path.home() / ".git-janitor-roots"
    if legacy_path.is_file():
        return legacy_path

    return None


class MultiRootScanner:
    """Scan several root directories, one after another."""

    def __init__(
        self,
        root_paths: list[Path],
        max_workers: int = DEFAULT_MAX_WORKERS,
        *,
        sequential: bool = False,
        timeout: float | None = DEFAULT_TIMEOUT,
        policy: ParsePolicy = ParsePolicy.LENIENT,
    ):
        self.scanners = [
            FleetScanner(
                root,
                max_workers,
                sequential=sequential,
                timeout=timeout,
                policy=policy,
            )
            for root in root_paths
        ]

    def scan(self) -> list[FleetScan]:
        return [scanner.scan() for scanner in self.scanners]

    def get_summary(self, scans: list[FleetScan]) -> FleetSummary:
        return FleetSummary.combine(s.summary for s in scans)


# =============================================================================
# CLI Application
# =============================================================================


app = typer.Typer(
    name="git-janitor",
    help="Find the working copies that need attention.",
    add_completion=False,
)


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        print(f"git-janitor {__version__}")
        raise typer.Exit()


def schema_callback(value: bool):
    """Print the tool schema and exit."""
    if value:
        print(json.dumps(get_tool_schema(), indent=2))
        raise typer.Exit()


def get_console_and_formatter(
    json_output: bool, no_color: bool, only_dirty: bool
) -> tuple[Console, OutputFormatter]:
    """Create console and formatter."""
    console = Console(
        color_system=None if no_color else "auto",
        highlight=False,
        emoji=False,
        soft_wrap=True,
    )
    formatter = OutputFormatter(console, use_json=json_output, only_dirty=only_dirty)
    return console, formatter


@app.command()
def main(
    path: Path = typer.Argument(
        None,
        help="Root directory whose subdirectories are scanned (default: current directory)",
        show_default=False,
    ),
    no_color: bool = typer.Option(
        False,
        "--no-color",
        help="Disable colored output",
    ),
    only_dirty: bool = typer.Option(
        False,
        "--only-dirty",
        help="Only show directories that need attention",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON",
    ),
    sequential: bool = typer.Option(
        False,
        "--sequential",
        "-s",
        help="Analyze directories one at a time instead of in parallel",
    ),
    timeout: float = typer.Option(
        DEFAULT_TIMEOUT,
        "--timeout",
        min=0.1,
        help="Seconds to wait for each git query",
    ),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Treat malformed git output as an error instead of skipping it",
    ),
    check: bool = typer.Option(
        False,
        "--check",
        help="Exit with status 1 when any directory is dirty",
    ),
    roots: Path = typer.Option(
        None,
        "--roots",
        "-r",
        help="File containing root directories (one per line)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show progress messages",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Show git commands and detailed log output",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    schema: bool = typer.Option(
        False,
        "--schema",
        callback=schema_callback,
        is_eager=True,
        help="Output MCP-compatible tool schema for AI agents",
    ),
):
    """Report uncommitted changes, conflicts and unpushed branches under a directory."""
    setup_logging(verbose=verbose, debug=debug)
    console, formatter = get_console_and_formatter(json_output, no_color, only_dirty)
    error_console = Console(stderr=True, color_system=None if no_color else "auto")
    policy = ParsePolicy.STRICT if strict else ParsePolicy.LENIENT

    if roots and path is not None:
        raise typer.BadParameter("cannot be combined with a ROOT argument", param_hint="'--roots'")

    roots_file = roots
    if roots_file is None and path is None:
        roots_file = resolve_roots_file()
        if roots_file:
            logger.info("No ROOT given, scanning roots listed in %s", roots_file)

    try:
        if roots_file:
            # Multi-root mode
            root_paths = load_roots_file(roots_file)
            if not root_paths:
                error_console.print(f"[red]Error: No valid roots found in {escape(str(roots_file))}[/]")
                raise typer.Exit(1)
            multi = MultiRootScanner(root_paths, sequential=sequential, timeout=timeout, policy=policy)
            scans = multi.scan()
            summary = multi.get_summary(scans)
            formatter.print_multi_root_scans(scans, summary)
        else:
            fleet_scan = FleetScanner(
                path if path else Path("."),
                sequential=sequential,
                timeout=timeout,
                policy=policy,
            ).scan()
            summary = fleet_scan.summary
            formatter.print_fleet_scan(fleet_scan)
    except (RootNotFoundError, RootUnreadableError) as e:
        error_console.print(f"[red]{escape(str(e))}[/]")
        raise typer.Exit(1)

    if check and summary.dirty_count > 0:
        raise typer.Exit(1)
