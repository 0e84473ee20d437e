"""Pytest fixtures for git-janitor tests"""
import logging
import shutil
import subprocess
from pathlib import Path
from types import SimpleNamespace

import pytest

GIT_TEST_CONFIG = [
    "-c", "user.name=Test User",
    "-c", "user.email=test@example.com",
    "-c", "commit.gpgsign=false",
    "-c", "core.hooksPath=/dev/null",
]


def run_git(cwd: Path, *args: str, check: bool = True) -> subprocess.CompletedProcess:
    """Run git with a throwaway identity."""
    return subprocess.run(
        ["git", *GIT_TEST_CONFIG, *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=check,
    )


def commit_file(repo: Path, name: str, content: str, message: str = "Update") -> None:
    (repo / name).write_text(content)
    run_git(repo, "add", name)
    run_git(repo, "commit", "-m", message)


def init_repo(path: Path) -> Path:
    """Create a repository with one commit on main."""
    path.mkdir(parents=True)
    run_git(path, "init", "-q")
    run_git(path, "symbolic-ref", "HEAD", "refs/heads/main")
    commit_file(path, "README.md", "# Test Repository\n", "Initial commit")
    return path


def clone_repo(origin: Path, dest: Path) -> Path:
    """Clone origin so that main tracks origin/main."""
    run_git(origin.parent, "clone", "-q", str(origin), str(dest))
    return dest


@pytest.fixture(autouse=True)
def restore_logging():
    """CLI runs replace the root handlers; put them back after each test."""
    root_logger = logging.getLogger()
    handlers = root_logger.handlers[:]
    level = root_logger.level
    yield
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)


@pytest.fixture
def git():
    """Helpers for building repositories; skips the test when git is missing."""
    if shutil.which("git") is None:
        pytest.skip("git executable not available")
    return SimpleNamespace(run=run_git, commit_file=commit_file)


@pytest.fixture
def origin_repo(git, tmp_path):
    """A repository standing in for the remote."""
    return init_repo(tmp_path / "remotes" / "origin")


@pytest.fixture
def make_clone(origin_repo, tmp_path):
    """Factory for working copies cloned from origin_repo."""

    def _make(dest: Path) -> Path:
        dest.parent.mkdir(parents=True, exist_ok=True)
        return clone_repo(origin_repo, dest)

    return _make


@pytest.fixture
def fleet_root(tmp_path, make_clone):
    """A root holding one directory of each kind.

    fleet/
        clean/   clone in sync with origin
        dirty/   clone with a modified file
        hg/      Mercurial working copy
        plain/   unversioned
    """
    root = tmp_path / "fleet"
    root.mkdir()
    make_clone(root / "clean")
    dirty = make_clone(root / "dirty")
    (dirty / "README.md").write_text("# Changed\n")
    (root / "hg" / ".hg").mkdir(parents=True)
    (root / "plain").mkdir()
    (root / "plain" / "notes.txt").write_text("not versioned\n")
    return root
