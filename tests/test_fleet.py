"""Tests for scanning real working copies."""
import logging
import os
import subprocess
from pathlib import Path

import pytest

from git_janitor.core import (
    BranchRelation,
    BranchVerdict,
    FleetScanner,
    GitOperations,
    MultiRootScanner,
    ParsePolicy,
    VcsKind,
    load_roots_file,
    resolve_roots_file,
    scan,
)
from git_janitor.exceptions import GitCommandError, RootNotFoundError, RootUnreadableError


class TestFleetScan:
    """Test scanning a root of mixed directories."""

    def test_reports_every_subdirectory_in_name_order(self, fleet_root):
        result = scan(fleet_root)

        assert result.root_is_repository is False
        assert [r.dir_name for r in result.reports] == ["clean", "dirty", "hg", "plain"]

    def test_classifies_each_directory(self, fleet_root):
        reports = {r.dir_name: r for r in scan(fleet_root).reports}

        assert reports["clean"].vcs_kind == VcsKind.PRIMARY
        assert reports["clean"].is_dirty is False
        assert reports["clean"].change_set.is_clean
        assert reports["clean"].branch_verdicts == (BranchVerdict("main", BranchRelation.SYNCHRONIZED),)

        assert reports["dirty"].is_dirty is True
        assert reports["dirty"].change_set.changed_paths == {"README.md"}

        assert reports["hg"].vcs_kind == VcsKind.UNSUPPORTED_OTHER
        assert reports["hg"].is_dirty is True
        assert reports["plain"].vcs_kind == VcsKind.NONE
        assert reports["plain"].change_set is None

    def test_summary(self, fleet_root):
        summary = scan(fleet_root).summary

        assert summary.total_directories == 4
        assert summary.dirty_count == 3
        assert summary.clean_count == 1
        assert summary.unversioned_count == 1
        assert summary.unsupported_count == 1
        assert summary.error_count == 0

    def test_sequential_matches_parallel(self, fleet_root):
        parallel = scan(fleet_root, max_workers=4)
        sequential = scan(fleet_root, sequential=True)

        assert [r.to_dict() for r in parallel.reports] == [r.to_dict() for r in sequential.reports]

    def test_untracked_and_staged_files(self, fleet_root, git):
        clean = fleet_root / "clean"
        (clean / "new.txt").write_text("new\n")
        (clean / "staged.txt").write_text("staged\n")
        git.run(clean, "add", "staged.txt")

        report = FleetScanner(fleet_root).analyze_directory(clean)

        assert report.change_set.changed_paths == {"new.txt", "staged.txt"}
        assert report.is_dirty is True

    def test_must_push_and_local_only(self, fleet_root, git):
        clean = fleet_root / "clean"
        git.commit_file(clean, "README.md", "# Ahead\n", "Local work")
        git.run(clean, "branch", "topic")

        report = FleetScanner(fleet_root).analyze_directory(clean)

        assert report.branch_verdicts == (
            BranchVerdict("main", BranchRelation.MUST_PUSH),
            BranchVerdict("topic", BranchRelation.LOCAL_ONLY),
        )
        assert report.change_set.is_clean
        assert report.is_dirty is True

    def test_behind_upstream_is_not_synchronized(self, fleet_root, origin_repo, git):
        git.commit_file(origin_repo, "CHANGELOG.md", "- new\n", "Remote work")
        git.run(fleet_root / "clean", "fetch", "-q")

        report = FleetScanner(fleet_root).analyze_directory(fleet_root / "clean")

        assert report.branch_verdicts == (BranchVerdict("main", BranchRelation.MUST_PUSH),)

    def test_merge_conflict(self, fleet_root, git):
        clean = fleet_root / "clean"
        git.run(clean, "checkout", "-q", "-b", "topic")
        git.commit_file(clean, "README.md", "# Topic\n", "Topic change")
        git.run(clean, "checkout", "-q", "main")
        git.commit_file(clean, "README.md", "# Main\n", "Main change")
        merge = git.run(clean, "merge", "topic", check=False)
        assert merge.returncode != 0

        report = FleetScanner(fleet_root).analyze_directory(clean)

        assert report.change_set.conflict_count == 1
        assert "README.md" not in report.change_set.changed_paths
        assert report.is_dirty is True

    def test_root_is_the_repository(self, fleet_root):
        clean = fleet_root / "clean"
        (clean / "subdir").mkdir()

        result = scan(clean)

        assert result.root_is_repository is True
        assert len(result.reports) == 1
        assert result.reports[0].dir_name == "clean"
        assert result.summary.total_directories == 1
        assert result.summary.dirty_count == 0

    def test_empty_root(self, tmp_path):
        result = scan(tmp_path)

        assert result.reports == []
        assert result.summary.total_directories == 0

    def test_missing_root(self, tmp_path):
        with pytest.raises(RootNotFoundError):
            scan(tmp_path / "missing")


class TestErrorIsolation:
    """Test that one broken repository does not abort the scan."""

    def test_failing_query_marks_directory(self, fleet_root, monkeypatch, caplog):
        original = GitOperations.get_refs

        def failing_get_refs(self):
            if self.repo_path.name == "dirty":
                raise GitCommandError(["git", "for-each-ref"], 128, "fatal: bad object")
            return original(self)

        monkeypatch.setattr(GitOperations, "get_refs", failing_get_refs)

        with caplog.at_level(logging.WARNING):
            result = scan(fleet_root, sequential=True)

        reports = {r.dir_name: r for r in result.reports}
        assert "fatal: bad object" in reports["dirty"].error
        assert reports["dirty"].is_dirty is True
        assert reports["dirty"].change_set is None
        assert reports["clean"].is_dirty is False
        assert result.summary.error_count == 1
        assert "Could not analyze" in caplog.text

    def test_strict_policy_isolates_malformed_output(self, fleet_root, monkeypatch):
        monkeypatch.setattr(GitOperations, "get_status_porcelain", lambda self: "garbage\n")

        result = scan(fleet_root, policy=ParsePolicy.STRICT)

        reports = {r.dir_name: r for r in result.reports}
        assert "Malformed status record" in reports["clean"].error
        assert result.summary.error_count == 2

    def test_unreadable_directory_marks_directory(self, fleet_root, monkeypatch):
        original_scandir = os.scandir
        locked = (fleet_root / "plain").resolve()

        def scandir(path):
            if Path(path) == locked:
                raise PermissionError(13, "Permission denied", str(path))
            return original_scandir(path)

        monkeypatch.setattr("git_janitor.core.os.scandir", scandir)

        result = scan(fleet_root, sequential=True)

        reports = {r.dir_name: r for r in result.reports}
        assert "cannot be read" in reports["plain"].error
        assert reports["plain"].is_dirty is True
        assert reports["clean"].is_dirty is False
        assert result.summary.error_count == 1

    def test_unreadable_root(self, tmp_path, monkeypatch):
        def scandir(path):
            raise PermissionError(13, "Permission denied", str(path))

        monkeypatch.setattr("git_janitor.core.os.scandir", scandir)

        with pytest.raises(RootUnreadableError):
            scan(tmp_path)


class TestGitOperations:
    """Test the git command runner."""

    def _completed(self, returncode, stdout="", stderr=""):
        return subprocess.CompletedProcess(["git"], returncode, stdout, stderr)

    def test_returns_raw_stdout(self, tmp_path, monkeypatch):
        calls = []

        def fake_run(command, **kwargs):
            calls.append((command, kwargs))
            return self._completed(0, stdout=" M a.txt\n")

        monkeypatch.setattr("git_janitor.core.subprocess.run", fake_run)

        output = GitOperations(tmp_path, timeout=5).get_status_porcelain()

        assert output == " M a.txt\n"
        command, kwargs = calls[0]
        assert command[0] == "git"
        assert command[-2:] == ["status", "--porcelain"]
        assert kwargs["cwd"] == tmp_path
        assert kwargs["timeout"] == 5

    def test_ref_listing_format(self, tmp_path, monkeypatch):
        calls = []

        def fake_run(command, **kwargs):
            calls.append(command)
            return self._completed(0)

        monkeypatch.setattr("git_janitor.core.subprocess.run", fake_run)

        GitOperations(tmp_path).get_refs()

        assert calls[0] == [
            "git",
            "for-each-ref",
            "--format=%(objecttype) %(refname) %(objectname) %(upstream)",
        ]

    def test_non_zero_exit(self, tmp_path, monkeypatch):
        monkeypatch.setattr(
            "git_janitor.core.subprocess.run",
            lambda command, **kwargs: self._completed(128, stderr="fatal: not a git repository\n"),
        )

        with pytest.raises(GitCommandError) as exc_info:
            GitOperations(tmp_path).get_status_porcelain()

        assert exc_info.value.returncode == 128
        assert exc_info.value.stderr == "fatal: not a git repository"

    def test_timeout(self, tmp_path, monkeypatch):
        def fake_run(command, **kwargs):
            raise subprocess.TimeoutExpired(command, kwargs["timeout"])

        monkeypatch.setattr("git_janitor.core.subprocess.run", fake_run)

        with pytest.raises(GitCommandError) as exc_info:
            GitOperations(tmp_path, timeout=0.5).get_refs()

        assert "timed out" in str(exc_info.value)

    def test_spawn_failure(self, tmp_path, monkeypatch):
        def fake_run(command, **kwargs):
            raise FileNotFoundError("git")

        monkeypatch.setattr("git_janitor.core.subprocess.run", fake_run)

        with pytest.raises(GitCommandError):
            GitOperations(tmp_path).get_refs()


class TestRootsFile:
    """Test multi-root configuration."""

    def test_load_roots_file(self, tmp_path, monkeypatch):
        (tmp_path / "one").mkdir()
        (tmp_path / "two").mkdir()
        monkeypatch.setenv("JANITOR_TEST_BASE", str(tmp_path))
        roots_file = tmp_path / "roots"
        roots_file.write_text(
            "# work\n"
            f"{tmp_path / 'one'}\n"
            "\n"
            "$JANITOR_TEST_BASE/two\n"
            f"{tmp_path / 'missing'}\n"
        )

        assert load_roots_file(roots_file) == [tmp_path / "one", tmp_path / "two"]

    def test_missing_roots_file(self, tmp_path):
        assert load_roots_file(tmp_path / "nope") == []

    def test_resolve_from_environment(self, tmp_path, monkeypatch):
        roots_file = tmp_path / "roots"
        roots_file.write_text("")
        monkeypatch.setenv("GIT_JANITOR_ROOTS", str(roots_file))

        assert resolve_roots_file() == roots_file

    def test_resolve_from_xdg_location(self, tmp_path, monkeypatch):
        monkeypatch.delenv("GIT_JANITOR_ROOTS", raising=False)
        monkeypatch.setenv("HOME", str(tmp_path))
        xdg = tmp_path / ".config" / "git-janitor" / "roots"
        xdg.parent.mkdir(parents=True)
        xdg.write_text("")

        assert resolve_roots_file() == xdg

    def test_resolve_nothing(self, tmp_path, monkeypatch):
        monkeypatch.delenv("GIT_JANITOR_ROOTS", raising=False)
        monkeypatch.setenv("HOME", str(tmp_path))

        assert resolve_roots_file() is None

    def test_multi_root_scan(self, fleet_root, tmp_path):
        other = tmp_path / "other"
        (other / "plain").mkdir(parents=True)

        scanner = MultiRootScanner([fleet_root, other], sequential=True)
        scans = scanner.scan()
        summary = scanner.get_summary(scans)

        assert [s.root_path.name for s in scans] == ["fleet", "other"]
        assert summary.total_directories == 5
        assert summary.dirty_count == 4
