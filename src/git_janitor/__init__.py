"""git-janitor: Find the working copies that need attention."""

# Guard against deleted CWD (e.g. directory removed by another process).
# rich crashes on import if os.getcwd() fails, so recover before any imports.
import os

try:
    os.getcwd()
except (OSError, PermissionError):
    os.chdir(os.path.expanduser("~"))

from ._version import __version__
from .core import (
    BranchRelation,
    BranchVerdict,
    ChangeSet,
    DirectoryReport,
    Entry,
    FleetScan,
    FleetScanner,
    FleetSummary,
    GitOperations,
    GitRepository,
    MultiRootScanner,
    ParsePolicy,
    RefEntry,
    RefGraph,
    VcsKind,
    aggregate,
    analyze_divergence,
    app,
    build_ref_graph,
    list_entries,
    load_roots_file,
    parse_status,
    probe,
    resolve_roots_file,
    scan,
)
from .exceptions import (
    GitCommandError,
    JanitorError,
    MalformedOutputError,
    RootNotFoundError,
    RootUnreadableError,
)
from .formatters import OutputFormatter
from .schema import get_tool_schema

__all__ = [
    # Version
    "__version__",
    # CLI
    "app",
    # Models
    "BranchRelation",
    "BranchVerdict",
    "ChangeSet",
    "DirectoryReport",
    "Entry",
    "FleetScan",
    "FleetSummary",
    "ParsePolicy",
    "RefEntry",
    "RefGraph",
    "VcsKind",
    # Analysis
    "aggregate",
    "analyze_divergence",
    "build_ref_graph",
    "list_entries",
    "parse_status",
    "probe",
    # Operations
    "FleetScanner",
    "GitOperations",
    "GitRepository",
    "MultiRootScanner",
    "scan",
    # Configuration
    "load_roots_file",
    "resolve_roots_file",
    # Errors
    "GitCommandError",
    "JanitorError",
    "MalformedOutputError",
    "RootNotFoundError",
    "RootUnreadableError",
    # Formatters
    "OutputFormatter",
    "get_tool_schema",
]
