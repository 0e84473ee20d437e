"""MCP-compatible tool schema for AI agents."""

from __future__ import annotations

from ._version import __version__

_BRANCH_SCHEMA = {
    "type": "object",
    "properties": {
        "branch": {"type": "string"},
        "relation": {
            "type": "string",
            "enum": ["synchronized", "must_push", "local_only"],
        },
    },
}

_DIRECTORY_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "path": {"type": "string"},
        "vcs": {"type": "string", "enum": ["git", "mercurial", "unversioned"]},
        "is_dirty": {"type": "boolean"},
        "status": {
            "type": ["object", "null"],
            "properties": {
                "conflict_count": {"type": "integer"},
                "changed_paths": {"type": "array", "items": {"type": "string"}},
            },
        },
        "branches": {"type": ["array", "null"], "items": _BRANCH_SCHEMA},
        "error": {"type": "string"},
    },
}

_SUMMARY_SCHEMA = {
    "type": "object",
    "properties": {
        "total_directories": {"type": "integer"},
        "dirty_count": {"type": "integer"},
        "clean_count": {"type": "integer"},
        "unversioned_count": {"type": "integer"},
        "unsupported_count": {"type": "integer"},
        "error_count": {"type": "integer"},
    },
}


def get_tool_schema() -> dict:
    """Generate MCP-compatible tool schema for AI agents."""
    return {
        "name": "git-janitor",
        "version": __version__,
        "description": "Find the working copies under a directory that need attention: unversioned or Mercurial directories, uncommitted or conflicted files, and local branches that are not pushed to their upstream. Reads local git metadata only and never fetches.",
        "usage": "git-janitor [path] [options]",
        "tools": [
            {
                "name": "scan",
                "description": "Scan every immediate subdirectory of a root (or the root itself when it is a git working copy) and report its status and branch sync verdicts. Use --only-dirty to hide clean directories and --check to get a non-zero exit status when anything is dirty.",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "path": {
                            "type": "string",
                            "description": "Root directory to scan (default: current directory)",
                            "default": ".",
                        },
                        "roots": {
                            "type": "string",
                            "description": "Path to roots file (overrides auto-resolution). Auto-resolved when no path is given from: $GIT_JANITOR_ROOTS env var → ~/.config/git-janitor/roots → ~/.git-janitor-roots",
                        },
                        "json": {
                            "type": "boolean",
                            "description": "Output as JSON for machine parsing",
                            "default": False,
                        },
                        "only_dirty": {
                            "type": "boolean",
                            "description": "Only show directories that need attention (text output)",
                            "default": False,
                        },
                        "no_color": {
                            "type": "boolean",
                            "description": "Disable colored output",
                            "default": False,
                        },
                        "sequential": {
                            "type": "boolean",
                            "description": "Analyze directories one at a time instead of in parallel",
                            "default": False,
                        },
                        "timeout": {
                            "type": "number",
                            "description": "Seconds to wait for each git query",
                            "default": 30.0,
                        },
                        "strict": {
                            "type": "boolean",
                            "description": "Treat malformed git output as an error for that directory",
                            "default": False,
                        },
                        "check": {
                            "type": "boolean",
                            "description": "Exit with status 1 when any directory is dirty",
                            "default": False,
                        },
                    },
                    "required": [],
                },
                "outputSchema": {
                    "type": "object",
                    "properties": {
                        "root": {"type": "string"},
                        "root_is_repository": {"type": "boolean"},
                        "directories": {"type": "array", "items": _DIRECTORY_SCHEMA},
                        "summary": _SUMMARY_SCHEMA,
                    },
                },
            },
        ],
        "exit_codes": {
            "0": "Scan completed (or --check and nothing dirty)",
            "1": "Root directory not found or unreadable, no valid roots, or --check and something dirty",
            "2": "Invalid arguments, such as ROOT combined with --roots",
        },
    }
