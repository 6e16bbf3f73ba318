"""Loading and unloading profile SSH keys in the running ssh-agent.

Uses ``ssh-add`` and ``ssh-keygen`` as subprocesses. Failures here never
touch the git config: a mapping stays in place even if its key cannot be
loaded.
"""

from __future__ import annotations

import logging
import os
import subprocess

from identitree.errors import AgentError, NotFoundError
from identitree.paths import normalize
from identitree.profiles import Profile

logger = logging.getLogger(__name__)


def _run(args: list[str]) -> subprocess.CompletedProcess:
    logger.debug("Running %s", " ".join(args))
    try:
        return subprocess.run(args, capture_output=True, text=True)
    except OSError as e:
        raise AgentError(f"failed to run {args[0]}: {e}") from e


def key_fingerprint(key_path: str) -> str:
    """Return the fingerprint of a key file (``ssh-keygen -lf``)."""
    result = _run(["ssh-keygen", "-lf", key_path])
    if result.returncode != 0:
        raise AgentError(f"failed to get key fingerprint: {result.stderr.strip()}")

    # "<bits> <fingerprint> <comment> (<type>)"
    fields = result.stdout.split()
    if len(fields) < 2:
        raise AgentError("unexpected fingerprint format")
    return fields[1]


def is_key_loaded(key_path: str) -> bool:
    """Check whether the key is currently held by the agent."""
    normalized = normalize(key_path)
    fingerprint = key_fingerprint(normalized)

    result = _run(["ssh-add", "-l"])
    if result.returncode != 0:
        # No agent, or an agent without identities
        return False
    return fingerprint in result.stdout


def load_key(key_path: str) -> None:
    """Add a key to the agent; already-loaded keys are left alone.

    Raises:
        NotFoundError: If the key file does not exist.
        AgentError: If ssh-add fails.
    """
    normalized = normalize(key_path)
    if not os.path.exists(normalized):
        raise NotFoundError(f"SSH key does not exist: {normalized}")

    if is_key_loaded(normalized):
        logger.info("SSH key %s already loaded", normalized)
        return

    result = _run(["ssh-add", normalized])
    if result.returncode != 0:
        raise AgentError(f"failed to add SSH key to agent: {result.stderr.strip()}")
    logger.info("Loaded SSH key %s", normalized)


def unload_key(key_path: str) -> None:
    """Remove a key from the agent, by fingerprint first and then by path."""
    normalized = normalize(key_path)
    fingerprint = key_fingerprint(normalized)

    result = _run(["ssh-add", "-d", fingerprint])
    if result.returncode != 0:
        result = _run(["ssh-add", "-d", normalized])
        if result.returncode != 0:
            raise AgentError(f"failed to remove SSH key from agent: {result.stderr.strip()}")
    logger.info("Unloaded SSH key %s", normalized)


def load_key_for_profile(profile: Profile) -> bool:
    """Load the profile's key. Returns False when it has none."""
    if not profile.ssh_key_path:
        return False
    load_key(profile.ssh_key_path)
    return True


def unload_key_for_profile(profile: Profile) -> bool:
    """Unload the profile's key. Returns False when it has none."""
    if not profile.ssh_key_path:
        return False
    unload_key(profile.ssh_key_path)
    return True
