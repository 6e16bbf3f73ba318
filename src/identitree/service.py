"""Mapping profiles to directories.

Ties the fragment writer, the ``includeIf`` editor and the mapping parser
together and enforces one profile per directory.
"""

from __future__ import annotations

import logging

from identitree.config import Settings, get_settings
from identitree.errors import ConflictError
from identitree.fragment import FragmentWriter
from identitree.gitconfig import IncludeEditor
from identitree.mappings import Mapping, MappingParser
from identitree.paths import normalize_dir
from identitree.profiles import Profile

logger = logging.getLogger(__name__)


class MappingService:
    """Map and unmap directories in the shared git config."""

    def __init__(
        self,
        writer: FragmentWriter,
        editor: IncludeEditor,
        parser: MappingParser,
    ) -> None:
        self.writer = writer
        self.editor = editor
        self.parser = parser

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> MappingService:
        settings = settings or get_settings()
        return cls(
            writer=FragmentWriter(settings.fragment_dir, settings.ssh_command),
            editor=IncludeEditor(settings.gitconfig_path),
            parser=MappingParser(settings.gitconfig_path),
        )

    def map_profile(self, profile: Profile, directory: str) -> Mapping:
        """Map ``profile`` to ``directory``.

        Mapping a directory again to the same profile rewrites its fragment
        and block in place.

        Raises:
            ConflictError: If the directory is mapped to another profile.
        """
        normalized = normalize_dir(directory)

        for existing in self.parser.parse():
            if existing.directory == normalized and existing.profile != profile.name:
                raise ConflictError(
                    f"directory '{directory}' is already mapped to profile '{existing.profile}'",
                    directory=normalized,
                    profile=existing.profile,
                )

        fragment_path = self.writer.write(profile)
        self.editor.upsert(normalized, fragment_path)
        logger.info("Mapped %s to profile %s", normalized, profile.name)

        return Mapping(directory=normalized, profile=profile.name, fragment_path=str(fragment_path))

    def unmap(self, directory: str) -> bool:
        """Remove the mapping for ``directory``. Unmapped directories are a no-op.

        Returns:
            True if a block was removed.
        """
        normalized = normalize_dir(directory)
        removed = self.editor.remove(normalized)
        if removed:
            logger.info("Unmapped %s", normalized)
        return removed

    def unmap_profile(self, profile_name: str) -> list[str]:
        """Unmap every directory mapped to ``profile_name``; return them."""
        directories = self.parser.directories_for_profile(profile_name)
        for directory in directories:
            self.editor.remove(directory)
        return directories

    def refresh_fragment(self, profile: Profile) -> bool:
        """Rewrite the fragment of a mapped profile so edits take effect."""
        if not self.parser.is_profile_mapped(profile.name):
            return False
        self.writer.write(profile)
        return True

    # Read-only queries

    def mappings(self) -> list[Mapping]:
        return self.parser.parse()

    def lookup(self, directory: str) -> Mapping | None:
        return self.parser.lookup(directory)

    def directories_for_profile(self, profile_name: str) -> list[str]:
        return self.parser.directories_for_profile(profile_name)

    def is_profile_mapped(self, profile_name: str) -> bool:
        return self.parser.is_profile_mapped(profile_name)
