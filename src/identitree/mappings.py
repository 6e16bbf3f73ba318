"""Reading directory-to-profile mappings back out of the shared git config.

Nothing is cached: every query re-reads the file, which stays the single
source of truth for which directory uses which profile.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from identitree.errors import HomeDirectoryError
from identitree.fragment import extract_profile_name
from identitree.gitconfig import match_header, match_path, normalize_header_dir, read_lines
from identitree.paths import expand_tilde, normalize_dir

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Mapping:
    """A directory mapped to a profile through an ``includeIf`` block."""

    directory: str  # normalized, trailing slash
    profile: str  # "" when the fragment name is not .gitconfig-<name>
    fragment_path: str  # tilde-expanded


class ScanState(Enum):
    """Where the block scanner is within an ``includeIf`` block."""

    SCANNING = "scanning"
    AWAITING_PATH = "awaiting_path"


class BlockScanner:
    """Line-by-line state machine that turns config lines into mappings.

    A header line starts a block; the next ``path =`` line completes it.
    Any other section header seen first abandons the block without
    producing a mapping. A second ``includeIf`` header replaces the pending
    directory.
    """

    def __init__(self) -> None:
        self.state = ScanState.SCANNING
        self.current_directory: str | None = None
        self.mappings: list[Mapping] = []

    def feed(self, line: str) -> None:
        line = line.strip()

        raw = match_header(line)
        if raw is not None:
            if self.state is ScanState.AWAITING_PATH:
                logger.debug("includeIf block for %s has no path line", self.current_directory)
            self.current_directory = normalize_header_dir(raw)
            self.state = ScanState.AWAITING_PATH
            return

        if self.state is not ScanState.AWAITING_PATH:
            return

        value = match_path(line)
        if value is not None:
            fragment_path = _expand_fragment_path(value)
            self.mappings.append(
                Mapping(
                    directory=self.current_directory or "",
                    profile=extract_profile_name(fragment_path),
                    fragment_path=fragment_path,
                )
            )
            self._reset()
        elif line.startswith("["):
            logger.debug("Skipping incomplete includeIf block for %s", self.current_directory)
            self._reset()

    def _reset(self) -> None:
        self.state = ScanState.SCANNING
        self.current_directory = None


def _expand_fragment_path(value: str) -> str:
    try:
        return expand_tilde(value)
    except HomeDirectoryError:
        return value


class MappingParser:
    """Queries over the mappings recorded in a git config file."""

    def __init__(self, gitconfig_path: Path) -> None:
        self.gitconfig_path = gitconfig_path

    def parse(self) -> list[Mapping]:
        """Return all complete mappings in file order.

        A missing config file yields an empty list.
        """
        scanner = BlockScanner()
        for line in read_lines(self.gitconfig_path):
            scanner.feed(line)
        return scanner.mappings

    def lookup(self, directory: str) -> Mapping | None:
        """Find the mapping that applies to ``directory``.

        An exact match wins; otherwise the first mapping (in file order)
        whose directory is a prefix of ``directory``. Returns None when no
        mapping applies.
        """
        normalized = normalize_dir(directory)
        mappings = self.parse()

        for m in mappings:
            if m.directory == normalized:
                return m

        for m in mappings:
            if m.directory and normalized.startswith(m.directory):
                return m

        return None

    def is_profile_mapped(self, profile_name: str) -> bool:
        return any(m.profile == profile_name for m in self.parse())

    def directories_for_profile(self, profile_name: str) -> list[str]:
        """All directories mapped to ``profile_name``, in file order."""
        return [m.directory for m in self.parse() if m.profile == profile_name]
