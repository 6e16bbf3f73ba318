"""Per-profile git config fragments.

Each profile is rendered into its own file, ``<fragment dir>/.gitconfig-<name>``,
which the shared git config pulls in through an ``includeIf`` block. The
fragment is regenerated in full on every write.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from identitree.errors import FragmentWriteError, InvalidProfileError
from identitree.profiles import Profile

logger = logging.getLogger(__name__)

FRAGMENT_PREFIX = ".gitconfig-"


def fragment_path_for(name: str, fragment_dir: Path) -> Path:
    """Return the fragment location for a profile name."""
    return fragment_dir / f"{FRAGMENT_PREFIX}{name}"


def extract_profile_name(fragment_path: str) -> str:
    """Recover the profile name from a fragment path.

    Returns an empty string when the file name does not follow the
    ``.gitconfig-<name>`` convention.
    """
    base = os.path.basename(fragment_path.rstrip("/\\"))
    if base.startswith(FRAGMENT_PREFIX):
        return base[len(FRAGMENT_PREFIX):]
    return ""


def render_fragment(profile: Profile, ssh_command: str = "ssh") -> str:
    """Render a profile as git config text."""
    lines = [
        "[user]",
        f"    name = {profile.effective_author_name}",
        f"    email = {profile.email}",
    ]
    if profile.gpg_key_id:
        lines.append(f"    signingkey = {profile.gpg_key_id}")

    if profile.ssh_key_path:
        lines.append("")
        lines.append("[core]")
        lines.append(f"    sshCommand = {ssh_command} -i {profile.ssh_key_path} -F /dev/null")

    return "\n".join(lines) + "\n"


class FragmentWriter:
    """Writes profile fragments into a fixed directory."""

    def __init__(self, fragment_dir: Path, ssh_command: str = "ssh") -> None:
        self.fragment_dir = fragment_dir
        self.ssh_command = ssh_command

    def path_for(self, name: str) -> Path:
        return fragment_path_for(name, self.fragment_dir)

    def write(self, profile: Profile) -> Path:
        """Write (or overwrite) the fragment for ``profile``.

        Returns:
            Absolute path of the written fragment.

        Raises:
            InvalidProfileError: If name or email is empty.
            FragmentWriteError: If the file cannot be written.
        """
        if not profile.name or not profile.email:
            raise InvalidProfileError("profile needs a name and an email to be mapped")

        path = self.path_for(profile.name).absolute()
        content = render_fragment(profile, self.ssh_command)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise FragmentWriteError(f"failed to write profile config: {e}", path) from e

        logger.info("Wrote fragment for %s to %s", profile.name, path)
        return path
