"""Tests for ssh-agent integration (subprocess calls are mocked)."""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from identitree.errors import AgentError, NotFoundError
from identitree.profiles import Profile
from identitree.ssh_agent import (
    is_key_loaded,
    key_fingerprint,
    load_key,
    load_key_for_profile,
    unload_key,
    unload_key_for_profile,
)

FINGERPRINT = "SHA256:abcdef123456"


def _done(args: list[str], returncode: int = 0, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args, returncode, stdout=stdout, stderr=stderr)


class FakeAgent:
    """Stands in for ssh-keygen/ssh-add, recording every call."""

    def __init__(self, loaded: bool = False, running: bool = True, add_ok: bool = True) -> None:
        self.loaded = loaded
        self.running = running
        self.add_ok = add_ok
        self.calls: list[list[str]] = []

    def __call__(self, args: list[str], **kwargs) -> subprocess.CompletedProcess:
        self.calls.append(args)
        if args[:2] == ["ssh-keygen", "-lf"]:
            return _done(args, stdout=f"256 {FINGERPRINT} me@host (ED25519)\n")
        if args == ["ssh-add", "-l"]:
            if not self.running:
                return _done(args, 2, stderr="Could not open a connection to your authentication agent.")
            listing = f"256 {FINGERPRINT} me@host (ED25519)\n" if self.loaded else ""
            return _done(args, 0 if listing else 1, stdout=listing)
        if args[:2] == ["ssh-add", "-d"]:
            return _done(args, 0 if self.loaded else 1, stderr="not found")
        if args[0] == "ssh-add":
            return _done(args, 0 if self.add_ok else 1, stderr="bad passphrase")
        raise AssertionError(f"unexpected command {args}")


@pytest.fixture
def key(home: Path) -> Path:
    path = home / ".ssh" / "id_work"
    path.parent.mkdir()
    path.write_text("PRIVATE KEY")
    return path


class TestFingerprint:
    def test_parses_second_field(self, key: Path) -> None:
        with patch("identitree.ssh_agent.subprocess.run", FakeAgent()):
            assert key_fingerprint(str(key)) == FINGERPRINT

    def test_keygen_failure(self, key: Path) -> None:
        with patch(
            "identitree.ssh_agent.subprocess.run",
            return_value=_done(["ssh-keygen"], 1, stderr="not a key"),
        ):
            with pytest.raises(AgentError):
                key_fingerprint(str(key))

    def test_unexpected_output(self, key: Path) -> None:
        with patch("identitree.ssh_agent.subprocess.run", return_value=_done(["ssh-keygen"], stdout="x")):
            with pytest.raises(AgentError):
                key_fingerprint(str(key))

    def test_missing_binary(self, key: Path) -> None:
        with patch("identitree.ssh_agent.subprocess.run", side_effect=FileNotFoundError("ssh-keygen")):
            with pytest.raises(AgentError):
                key_fingerprint(str(key))


class TestIsKeyLoaded:
    def test_loaded(self, key: Path) -> None:
        with patch("identitree.ssh_agent.subprocess.run", FakeAgent(loaded=True)):
            assert is_key_loaded(str(key)) is True

    def test_not_loaded(self, key: Path) -> None:
        with patch("identitree.ssh_agent.subprocess.run", FakeAgent(loaded=False)):
            assert is_key_loaded(str(key)) is False

    def test_agent_not_running(self, key: Path) -> None:
        with patch("identitree.ssh_agent.subprocess.run", FakeAgent(running=False)):
            assert is_key_loaded(str(key)) is False


class TestLoadKey:
    def test_loads_with_tilde_path(self, key: Path) -> None:
        agent = FakeAgent()
        with patch("identitree.ssh_agent.subprocess.run", agent):
            load_key("~/.ssh/id_work")
        assert agent.calls[-1] == ["ssh-add", str(key)]

    def test_already_loaded_is_noop(self, key: Path) -> None:
        agent = FakeAgent(loaded=True)
        with patch("identitree.ssh_agent.subprocess.run", agent):
            load_key(str(key))
        assert ["ssh-add", str(key)] not in agent.calls

    def test_missing_key(self, home: Path) -> None:
        with patch("identitree.ssh_agent.subprocess.run", FakeAgent()) as agent:
            with pytest.raises(NotFoundError):
                load_key("~/.ssh/missing")
        assert agent.calls == []

    def test_ssh_add_failure(self, key: Path) -> None:
        with patch("identitree.ssh_agent.subprocess.run", FakeAgent(add_ok=False)):
            with pytest.raises(AgentError):
                load_key(str(key))


class TestUnloadKey:
    def test_by_fingerprint(self, key: Path) -> None:
        agent = FakeAgent(loaded=True)
        with patch("identitree.ssh_agent.subprocess.run", agent):
            unload_key(str(key))
        assert ["ssh-add", "-d", FINGERPRINT] in agent.calls
        assert ["ssh-add", "-d", str(key)] not in agent.calls

    def test_falls_back_to_path_then_fails(self, key: Path) -> None:
        agent = FakeAgent(loaded=False)
        with patch("identitree.ssh_agent.subprocess.run", agent):
            with pytest.raises(AgentError):
                unload_key(str(key))
        assert agent.calls[-2:] == [
            ["ssh-add", "-d", FINGERPRINT],
            ["ssh-add", "-d", str(key)],
        ]


class TestProfileHelpers:
    def test_no_key_configured_is_noop(self) -> None:
        with patch("identitree.ssh_agent.subprocess.run") as run:
            assert load_key_for_profile(Profile(name="work", email="x@y")) is False
            assert unload_key_for_profile(Profile(name="work", email="x@y")) is False
        run.assert_not_called()

    def test_loads_profile_key(self, key: Path) -> None:
        agent = FakeAgent()
        with patch("identitree.ssh_agent.subprocess.run", agent):
            assert load_key_for_profile(
                Profile(name="work", email="x@y", ssh_key_path="~/.ssh/id_work")
            ) is True
        assert ["ssh-add", str(key)] in agent.calls
