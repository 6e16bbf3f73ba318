"""Identity profiles and their YAML-backed store.

Profiles are stored as a YAML list in ``~/.gidtree/profiles.yaml``. On
first run the file does not exist and ``load()`` returns an empty store.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import yaml

from identitree.errors import (
    ConfigFileError,
    ConflictError,
    InvalidProfileError,
    NotFoundError,
)
from identitree.paths import expand_tilde

logger = logging.getLogger(__name__)

# Profile names end up as fragment file suffixes (~/.gitconfig-<name>).
_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


@dataclass
class Profile:
    """A Git identity."""

    name: str
    email: str
    author_name: str | None = None
    ssh_key_path: str | None = None
    gpg_key_id: str | None = None

    @property
    def effective_author_name(self) -> str:
        """Author name written to git, falling back to the profile name."""
        return self.author_name or self.name

    @classmethod
    def from_dict(cls, data: dict) -> Profile:
        return cls(
            name=str(data.get("name") or ""),
            email=str(data.get("email") or ""),
            author_name=data.get("author_name") or None,
            ssh_key_path=data.get("ssh_key_path") or None,
            gpg_key_id=data.get("gpg_key_id") or None,
        )

    def to_dict(self) -> dict:
        data = {"name": self.name, "email": self.email}
        # Optional keys are omitted when empty
        if self.author_name:
            data["author_name"] = self.author_name
        if self.ssh_key_path:
            data["ssh_key_path"] = self.ssh_key_path
        if self.gpg_key_id:
            data["gpg_key_id"] = self.gpg_key_id
        return data


def validate_profile(profile: Profile) -> None:
    """Check a profile before it is stored.

    Raises:
        InvalidProfileError: On an unsafe name, a missing email or an SSH
            key path that does not exist.
    """
    if not profile.name:
        raise InvalidProfileError("profile name cannot be empty")
    if not _NAME_RE.match(profile.name):
        raise InvalidProfileError(
            f"invalid profile name '{profile.name}': use letters, digits, '.', '_' or '-'"
        )
    if not profile.email:
        raise InvalidProfileError("email cannot be empty")
    if profile.ssh_key_path:
        expanded = expand_tilde(profile.ssh_key_path)
        if not os.path.exists(expanded):
            raise InvalidProfileError(f"SSH key path does not exist: {profile.ssh_key_path}")


class ProfileStore:
    """Collection of profiles keyed by unique name."""

    def __init__(self, path: Path, profiles: list[Profile] | None = None) -> None:
        self.path = path
        self._profiles: list[Profile] = list(profiles or [])

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, path: Path) -> ProfileStore:
        """Load profiles from disk, or return an empty store if missing."""
        if not path.exists():
            return cls(path)
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8")) or []
        except (OSError, yaml.YAMLError) as e:
            raise ConfigFileError(f"failed to read profiles file: {e}", path) from e
        if not isinstance(raw, list):
            raise ConfigFileError("profiles file must contain a list", path)
        return cls(path, [Profile.from_dict(item) for item in raw if isinstance(item, dict)])

    def save(self) -> None:
        """Persist profiles to disk."""
        data = [p.to_dict() for p in self._profiles]
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                yaml.dump(data, f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            raise ConfigFileError(f"failed to write profiles file: {e}", self.path) from e

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, name: str) -> Profile:
        for profile in self._profiles:
            if profile.name == name:
                return profile
        raise NotFoundError(f"profile '{name}' not found")

    def list(self) -> list[Profile]:
        return list(self._profiles)

    def names(self) -> list[str]:
        return [p.name for p in self._profiles]

    def __contains__(self, name: object) -> bool:
        return any(p.name == name for p in self._profiles)

    def __len__(self) -> int:
        return len(self._profiles)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add(self, profile: Profile) -> None:
        """Add a new profile and save."""
        if profile.name in self:
            raise ConflictError(f"profile '{profile.name}' already exists", profile=profile.name)
        validate_profile(profile)
        self._profiles.append(profile)
        self.save()
        logger.info("Created profile %s", profile.name)

    def update(self, name: str, profile: Profile) -> None:
        """Replace an existing profile and save. The name cannot change."""
        for i, existing in enumerate(self._profiles):
            if existing.name == name:
                if profile.name != name:
                    raise InvalidProfileError(
                        f"cannot rename profile '{name}' to '{profile.name}'"
                    )
                validate_profile(profile)
                self._profiles[i] = profile
                self.save()
                logger.info("Updated profile %s", name)
                return
        raise NotFoundError(f"profile '{name}' not found")

    def delete(self, name: str, is_mapped: Callable[[str], bool] | None = None) -> None:
        """Remove a profile and save.

        Args:
            name: Profile to delete.
            is_mapped: Optional check; a mapped profile must be unmapped first.

        Raises:
            NotFoundError: If the profile does not exist.
            ConflictError: If ``is_mapped`` reports the profile as mapped.
        """
        self.get(name)
        if is_mapped is not None and is_mapped(name):
            raise ConflictError(
                f"profile '{name}' is mapped to one or more directories. Please unmap it first",
                profile=name,
            )
        self._profiles = [p for p in self._profiles if p.name != name]
        self.save()
        logger.info("Deleted profile %s", name)
