"""Configuration for Git Identitree.

Profiles and settings live in ~/.gidtree/ (``GIDTREE_HOME`` overrides it).
An optional ~/.gidtree/config.yaml can move the shared git config and the
fragment directory; environment variables override the config file.

Settings are resolved on each call rather than at import time, so nothing
here touches the home directory until a command actually needs it.
"""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from identitree.errors import ConfigFileError
from identitree.paths import expand_tilde, get_home_dir

DATA_DIR_NAME = ".gidtree"
PROFILES_FILE_NAME = "profiles.yaml"
SETTINGS_FILE_NAME = "config.yaml"
GITCONFIG_FILE_NAME = ".gitconfig"


# ---------------------------------------------------------------------------
# Default configuration
# ---------------------------------------------------------------------------

_DEFAULTS: dict = {
    "gitconfig": {
        "path": None,  # None = ~/.gitconfig
    },
    "fragments": {
        "directory": None,  # None = home directory
    },
    "ssh": {
        "command": "ssh",
    },
    "logging": {
        "level": "WARNING",
    },
}


@dataclass(frozen=True)
class Settings:
    """Resolved locations and options used by the mapping layer."""

    data_dir: Path
    profiles_path: Path
    gitconfig_path: Path
    fragment_dir: Path
    ssh_command: str = "ssh"
    log_level: str = "WARNING"


def get_data_dir() -> Path:
    """Return the directory holding profiles.yaml and config.yaml."""
    override = os.environ.get("GIDTREE_HOME")
    if override:
        return Path(expand_tilde(override))
    return get_home_dir() / DATA_DIR_NAME


def get_config_path() -> Path:
    """Return the settings file path."""
    return get_data_dir() / SETTINGS_FILE_NAME


def get_profiles_path() -> Path:
    """Return the profiles file path."""
    return get_data_dir() / PROFILES_FILE_NAME


def load_config() -> dict:
    """Load configuration from YAML file, with defaults as fallback."""
    config = copy.deepcopy(_DEFAULTS)
    config_path = get_config_path()

    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                user_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigFileError(f"failed to read settings: {e}", config_path) from e

        if not isinstance(user_config, dict):
            raise ConfigFileError("settings must be a mapping of sections", config_path)

        # Deep merge user config into defaults
        for section, values in user_config.items():
            if section in config:
                if values is None:
                    continue
                if not isinstance(values, dict):
                    raise ConfigFileError(f"settings section '{section}' must be a mapping", config_path)
                config[section].update(values)
            else:
                config[section] = values

    return config


def get_settings() -> Settings:
    """Resolve the effective settings (env > config.yaml > defaults)."""
    config = load_config()
    data_dir = get_data_dir()

    gitconfig = os.environ.get("GIDTREE_GITCONFIG") or config["gitconfig"].get("path")
    if gitconfig:
        gitconfig_path = Path(expand_tilde(str(gitconfig)))
    else:
        gitconfig_path = get_home_dir() / GITCONFIG_FILE_NAME

    fragments = config["fragments"].get("directory")
    fragment_dir = Path(expand_tilde(str(fragments))) if fragments else get_home_dir()

    return Settings(
        data_dir=data_dir,
        profiles_path=data_dir / PROFILES_FILE_NAME,
        gitconfig_path=gitconfig_path,
        fragment_dir=fragment_dir,
        ssh_command=str(config["ssh"].get("command") or "ssh"),
        log_level=str(config["logging"].get("level") or "WARNING").upper(),
    )


def ensure_directories() -> Path:
    """Ensure the data directory exists and return it."""
    data_dir = get_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir
