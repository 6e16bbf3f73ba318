"""Exception hierarchy for Git Identitree.

Library code raises these; only the CLI turns them into user-facing
messages and exit codes.
"""

from __future__ import annotations

from pathlib import Path


class IdentitreeError(Exception):
    """Base class for all errors raised by identitree."""


class HomeDirectoryError(IdentitreeError):
    """The home directory (or another environment prerequisite) is unavailable."""


class NotFoundError(IdentitreeError):
    """A profile, key or mapping required by the operation does not exist."""


class ConflictError(IdentitreeError):
    """An operation would violate a uniqueness rule.

    For directory mappings ``directory`` and ``profile`` name the existing
    mapping so the caller can offer to unmap it first.
    """

    def __init__(
        self,
        message: str,
        *,
        directory: str | None = None,
        profile: str | None = None,
    ) -> None:
        super().__init__(message)
        self.directory = directory
        self.profile = profile


class ConfigFileError(IdentitreeError):
    """A configuration file could not be read or written."""

    def __init__(self, message: str, path: Path | str) -> None:
        super().__init__(message)
        self.path = Path(path)


class FragmentWriteError(IdentitreeError):
    """A profile's config fragment could not be written."""

    def __init__(self, message: str, path: Path | str) -> None:
        super().__init__(message)
        self.path = Path(path)


class InvalidProfileError(IdentitreeError):
    """Profile data is missing required fields or is otherwise unusable."""


class AgentError(IdentitreeError):
    """The SSH agent (or ssh-add/ssh-keygen) reported a failure."""
