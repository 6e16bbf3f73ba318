"""Path helpers: home lookup, tilde expansion and directory normalization.

Mapped directories are compared as plain strings, so every directory that
reaches the mapping layer goes through :func:`normalize_dir` first. Two
spellings of the same directory (``~/code``, ``/home/me/code/.``, a symlink
to it) must come out byte-identical.
"""

from __future__ import annotations

import os
from pathlib import Path

from identitree.errors import HomeDirectoryError


def get_home_dir() -> Path:
    """Return the current user's home directory.

    Raises:
        HomeDirectoryError: If the home directory cannot be determined.
    """
    try:
        return Path.home()
    except (RuntimeError, KeyError, OSError) as e:
        raise HomeDirectoryError(f"failed to get home directory: {e}") from e


def expand_tilde(path: str) -> str:
    """Expand a leading ``~`` to the home directory.

    Only ``~`` and ``~/...`` are expanded; ``~user`` forms and paths
    without a leading tilde are returned unchanged. Unlike
    :func:`normalize` this neither makes the path absolute nor resolves
    symlinks.
    """
    if path == "~":
        return str(get_home_dir())
    if path.startswith("~/") or path.startswith("~\\"):
        rest = path[2:]
        home = get_home_dir()
        if not rest:
            return str(home) + os.sep
        return str(home / rest)
    return path


def normalize(path: str) -> str:
    """Convert ``path`` to an absolute, canonical path.

    Symlinks are resolved when the path exists; a path that does not exist
    yet keeps its absolute (cleaned) form.
    """
    absolute = os.path.abspath(expand_tilde(path))
    try:
        return str(Path(absolute).resolve(strict=True))
    except (OSError, RuntimeError):
        return absolute


def with_trailing_slash(path: str) -> str:
    """Ensure a directory path ends with a separator."""
    if not path:
        return path
    if path.endswith("/") or path.endswith("\\"):
        return path
    return path + os.sep


def normalize_dir(path: str) -> str:
    """Normalized, trailing-slash form used as the key of a mapping."""
    return with_trailing_slash(normalize(path))


def contract_home(path: Path | str) -> str:
    """Render ``path`` with ``~`` shorthand when it lives under the home directory.

    Falls back to the path unchanged when the home directory is unknown.
    """
    text = str(path)
    try:
        home = str(get_home_dir()).rstrip(os.sep)
    except HomeDirectoryError:
        return text
    if not home:
        return text
    if text == home:
        return "~"
    if text.startswith(home + os.sep):
        return "~" + text[len(home):]
    return text
