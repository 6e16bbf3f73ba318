"""Shared fixtures: every test runs against a throwaway home directory."""

from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point HOME at a temporary directory and clear identitree overrides."""
    home_dir = (tmp_path / "home").resolve()
    home_dir.mkdir()
    monkeypatch.setenv("HOME", str(home_dir))
    monkeypatch.delenv("GIDTREE_HOME", raising=False)
    monkeypatch.delenv("GIDTREE_GITCONFIG", raising=False)
    return home_dir
