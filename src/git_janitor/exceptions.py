"""Exceptions raised while scanning a fleet of working copies."""

from __future__ import annotations

from pathlib import Path


class JanitorError(Exception):
    """Base exception for all git-janitor errors."""


class RootNotFoundError(JanitorError):
    """A directory that must be listed does not exist."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        super().__init__(f'Directory "{path}" not found.')


class GitCommandError(JanitorError):
    """A git query could not be run or exited non-zero."""

    def __init__(
        self,
        command: list[str],
        returncode: int | None = None,
        stderr: str = "",
    ):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr

        error_msg = f"'{' '.join(command)}' failed"
        if returncode is not None:
            error_msg += f" with exit code {returncode}"
        if stderr:
            error_msg += f": {stderr}"

        super().__init__(error_msg)


class MalformedOutputError(JanitorError):
    """Strict parsing met a record without the expected shape."""

    def __init__(self, source: str, line: str):
        self.source = source
        self.line = line
        super().__init__(f"Malformed {source} record: {line!r}")


class RootUnreadableError(JanitorError):
    """A directory that must be listed exists but cannot be read."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        super().__init__(f'Directory "{path}" cannot be read.')
