"""Editing ``includeIf`` blocks in the shared git config.

A managed block is exactly two lines::

    [includeIf "gitdir/i:/home/me/work/"]
        path = ~/.gitconfig-work

The editor only understands that shape: a header line followed directly by
its ``path =`` line. Everything else in the file is passed through
untouched. Extra lines hand-edited into a managed block are not supported;
``remove`` drops the header and whatever single line follows it.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
from pathlib import Path

from identitree.errors import ConfigFileError, IdentitreeError
from identitree.paths import contract_home, normalize_dir

logger = logging.getLogger(__name__)

INCLUDE_IF_RE = re.compile(r'^\s*\[includeIf\s+"gitdir/i:(.+)"\]\s*$')
PATH_RE = re.compile(r"^\s*path\s*=\s*(.+?)\s*$")

# Non-UTF-8 bytes round-trip through surrogates.
ENCODING = "utf-8"
ENCODING_ERRORS = "surrogateescape"


def match_header(line: str) -> str | None:
    """Return the raw directory of an ``includeIf`` header line, or None."""
    m = INCLUDE_IF_RE.match(line)
    return m.group(1) if m else None


def match_path(line: str) -> str | None:
    """Return the value of a ``path = ...`` line, or None."""
    m = PATH_RE.match(line)
    return m.group(1).strip() if m else None


def normalize_header_dir(raw: str) -> str:
    """Normalize a directory found in the file, keeping it raw if that fails."""
    try:
        return normalize_dir(raw)
    except IdentitreeError:
        logger.debug("Could not normalize %r, comparing it verbatim", raw)
        return raw


def render_header(directory: str) -> str:
    return f'[includeIf "gitdir/i:{directory}"]'


def render_path_line(fragment_path: Path | str) -> str:
    return f"    path = {contract_home(fragment_path)}"


# ---------------------------------------------------------------------------
# File I/O
# ---------------------------------------------------------------------------


def read_lines(path: Path) -> list[str]:
    """Read the file as a list of lines; a missing file reads as empty.

    Lines are split on ``\\n`` only and undecodable bytes are kept as
    surrogates, so content outside the managed blocks is written back
    unchanged.
    """
    if not path.exists():
        return []
    try:
        content = path.read_bytes().decode(ENCODING, errors=ENCODING_ERRORS)
    except OSError as e:
        raise ConfigFileError(f"failed to read git config: {e}", path) from e

    lines = content.split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


def write_lines(path: Path, lines: list[str]) -> None:
    """Replace the file's content with ``lines``.

    Writes to a temporary file next to the target and renames it into
    place, so a failed write never leaves a truncated config behind. A
    symlinked config is written through to its target.
    """
    target = path.resolve() if path.is_symlink() else path
    content = "\n".join(lines) + "\n" if lines else ""

    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    except OSError as e:
        raise ConfigFileError(f"failed to prepare git config for writing: {e}", path) from e

    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content.encode(ENCODING, errors=ENCODING_ERRORS))
        if target.exists():
            shutil.copymode(target, tmp_name)
        else:
            os.chmod(tmp_name, 0o644)
        os.replace(tmp_name, target)
    except OSError as e:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise ConfigFileError(f"failed to write git config: {e}", path) from e


# ---------------------------------------------------------------------------
# Block editing
# ---------------------------------------------------------------------------


class IncludeEditor:
    """Inserts, updates and removes ``includeIf`` blocks keyed by directory.

    ``directory`` arguments must already be normalized with a trailing
    slash (see :func:`identitree.paths.normalize_dir`).
    """

    def __init__(self, gitconfig_path: Path) -> None:
        self.gitconfig_path = gitconfig_path

    def upsert(self, directory: str, fragment_path: Path | str) -> None:
        """Point ``directory`` at ``fragment_path``.

        An existing complete block for the directory has its path line
        rewritten in place. Otherwise a new block is appended, preceded by
        a blank separator line.
        """
        lines = read_lines(self.gitconfig_path)
        path_line = render_path_line(fragment_path)

        for i, line in enumerate(lines):
            raw = match_header(line)
            if raw is None or normalize_header_dir(raw) != directory:
                continue
            if i + 1 < len(lines) and match_path(lines[i + 1]) is not None:
                lines[i + 1] = path_line
                write_lines(self.gitconfig_path, lines)
                logger.info("Updated includeIf block for %s", directory)
                return
            # A header without its path line is not a complete block.
            logger.debug("Ignoring incomplete includeIf block for %s at line %d", directory, i + 1)

        lines.append("")
        lines.append(render_header(directory))
        lines.append(path_line)
        write_lines(self.gitconfig_path, lines)
        logger.info("Added includeIf block for %s", directory)

    def remove(self, directory: str) -> bool:
        """Drop the block for ``directory``.

        Removes the header, the line right after it and the blank separator
        line before it. Leaves the file untouched when no block matches.

        Returns:
            True if at least one block was removed.

        Raises:
            ConfigFileError: If the config exists but cannot be read or written.
        """
        lines = read_lines(self.gitconfig_path)

        kept: list[str] = []
        removed = False
        skip_next = False
        for i, line in enumerate(lines):
            if skip_next:
                skip_next = False
                continue

            raw = match_header(line)
            if raw is not None and normalize_header_dir(raw) == directory:
                skip_next = True
                removed = True
                # Drop the separator, but only if it is still the last kept line
                if i > 0 and not lines[i - 1].strip() and kept and not kept[-1].strip():
                    kept.pop()
                continue

            kept.append(line)

        if not removed:
            logger.debug("No includeIf block for %s, nothing to remove", directory)
            return False

        write_lines(self.gitconfig_path, kept)
        logger.info("Removed includeIf block for %s", directory)
        return True
