"""End-to-end tests for mapping profiles to directories."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from identitree.config import get_settings
from identitree.errors import ConflictError, HomeDirectoryError
from identitree.gitconfig import match_header, read_lines
from identitree.profiles import Profile
from identitree.service import MappingService

UNRELATED = """\
[user]
    name = Global Me
    email = me@example.com
[core]
    editor = vim

# keep this comment
[alias]
    lg = log --oneline
"""


@pytest.fixture
def service() -> MappingService:
    return MappingService.from_settings()


@pytest.fixture
def gitconfig(home: Path) -> Path:
    return home / ".gitconfig"


@pytest.fixture
def work() -> Profile:
    return Profile(name="work", email="me@work.com")


@pytest.fixture
def personal() -> Profile:
    return Profile(name="personal", email="me@home.org", author_name="Me")


def _headers(path: Path) -> list[str]:
    return [h for h in (match_header(line) for line in read_lines(path)) if h]


class TestMap:
    def test_map_then_parse(self, service: MappingService, work: Profile, tmp_path: Path) -> None:
        proj = tmp_path / "proj"
        proj.mkdir()

        service.map_profile(work, str(proj))

        mappings = service.mappings()
        assert len(mappings) == 1
        assert mappings[0].directory == str(proj.resolve()) + "/"
        assert mappings[0].profile == "work"

    def test_scenario_empty_file(
        self, service: MappingService, work: Profile, gitconfig: Path, home: Path
    ) -> None:
        result = service.map_profile(work, "/nonexistent-root/u/proj")

        assert result.directory == "/nonexistent-root/u/proj/"
        assert read_lines(gitconfig) == [
            "",
            '[includeIf "gitdir/i:/nonexistent-root/u/proj/"]',
            "    path = ~/.gitconfig-work",
        ]
        assert (home / ".gitconfig-work").read_text() == (
            "[user]\n    name = work\n    email = me@work.com\n"
        )
        assert [(m.directory, m.profile) for m in service.mappings()] == [
            ("/nonexistent-root/u/proj/", "work"),
        ]

    def test_remap_same_profile_keeps_one_block(
        self, service: MappingService, work: Profile, gitconfig: Path
    ) -> None:
        service.map_profile(work, "/nonexistent-root/proj")
        service.map_profile(work, "/nonexistent-root/proj/")

        assert _headers(gitconfig) == ["/nonexistent-root/proj/"]

    def test_remap_same_profile_refreshes_fragment(
        self, service: MappingService, work: Profile, home: Path
    ) -> None:
        service.map_profile(work, "/nonexistent-root/proj")
        work.email = "new@work.com"
        service.map_profile(work, "/nonexistent-root/proj")

        assert "new@work.com" in (home / ".gitconfig-work").read_text()

    def test_conflicting_profile_rejected(
        self,
        service: MappingService,
        work: Profile,
        personal: Profile,
        gitconfig: Path,
        home: Path,
    ) -> None:
        service.map_profile(work, "/nonexistent-root/proj")
        before = gitconfig.read_bytes()

        with pytest.raises(ConflictError) as exc_info:
            service.map_profile(personal, "/nonexistent-root/proj")

        assert exc_info.value.profile == "work"
        assert exc_info.value.directory == "/nonexistent-root/proj/"
        assert "work" in str(exc_info.value)
        assert gitconfig.read_bytes() == before
        assert not (home / ".gitconfig-personal").exists()

    def test_nested_directory_is_not_a_conflict(
        self, service: MappingService, work: Profile, personal: Profile
    ) -> None:
        service.map_profile(work, "/nonexistent-root/a")
        service.map_profile(personal, "/nonexistent-root/a/b")

        assert [m.profile for m in service.mappings()] == ["work", "personal"]
        assert service.lookup("/nonexistent-root/a/b/c").profile == "personal"

    def test_map_preserves_unrelated_content(
        self, service: MappingService, work: Profile, gitconfig: Path
    ) -> None:
        gitconfig.write_text(UNRELATED)
        service.map_profile(work, "/nonexistent-root/proj")
        assert gitconfig.read_text().startswith(UNRELATED)

    def test_map_with_tilde_directory(self, service: MappingService, work: Profile, home: Path) -> None:
        service.map_profile(work, "~/code")
        assert service.mappings()[0].directory == f"{home}/code/"

    def test_map_without_home_fails(self, service: MappingService, work: Profile) -> None:
        with patch("identitree.paths.Path.home", side_effect=RuntimeError("no home")):
            with pytest.raises(HomeDirectoryError):
                service.map_profile(work, "~/code")


class TestUnmap:
    def test_map_unmap_roundtrip(
        self, service: MappingService, work: Profile, gitconfig: Path
    ) -> None:
        gitconfig.write_text(UNRELATED)

        service.map_profile(work, "/nonexistent-root/proj")
        assert service.unmap("/nonexistent-root/proj") is True

        assert service.mappings() == []
        assert gitconfig.read_text() == UNRELATED

    def test_map_unmap_keeps_unusual_bytes(
        self, service: MappingService, work: Profile, gitconfig: Path
    ) -> None:
        original = (
            "[alias]\n    x = !printf 'a\x0cb'\n# note\u2028more\r\n".encode() + b"# Jos\xe9\n"
        )
        gitconfig.write_bytes(original)

        service.map_profile(work, "/nonexistent-root/proj")
        assert service.lookup("/nonexistent-root/proj").profile == "work"
        service.unmap("/nonexistent-root/proj")

        assert gitconfig.read_bytes() == original

    def test_unmap_never_mapped_is_noop(self, service: MappingService, gitconfig: Path) -> None:
        gitconfig.write_text(UNRELATED)
        assert service.unmap("/nonexistent-root/never") is False
        assert gitconfig.read_text() == UNRELATED

    def test_unmap_accepts_other_spellings(self, service: MappingService, work: Profile, home: Path) -> None:
        service.map_profile(work, f"{home}/code")
        assert service.unmap("~/code/") is True
        assert service.mappings() == []

    def test_unmap_profile_removes_all_its_directories(
        self, service: MappingService, work: Profile, personal: Profile
    ) -> None:
        service.map_profile(work, "/nonexistent-root/w1")
        service.map_profile(personal, "/nonexistent-root/p")
        service.map_profile(work, "/nonexistent-root/w2")

        removed = service.unmap_profile("work")

        assert removed == ["/nonexistent-root/w1/", "/nonexistent-root/w2/"]
        assert [m.profile for m in service.mappings()] == ["personal"]


class TestQueries:
    def test_directories_for_profile(
        self, service: MappingService, work: Profile, personal: Profile
    ) -> None:
        service.map_profile(work, "/nonexistent-root/one")
        service.map_profile(personal, "/nonexistent-root/two")

        assert service.directories_for_profile("work") == ["/nonexistent-root/one/"]
        assert service.directories_for_profile("personal") == ["/nonexistent-root/two/"]

    def test_lookup_prefix(self, service: MappingService, work: Profile) -> None:
        service.map_profile(work, "/nonexistent-root/a/b")
        assert service.lookup("/nonexistent-root/a/b/c").profile == "work"
        assert service.lookup("/nonexistent-root/a/other") is None

    def test_refresh_fragment_only_when_mapped(
        self, service: MappingService, work: Profile, home: Path
    ) -> None:
        assert service.refresh_fragment(work) is False
        assert not (home / ".gitconfig-work").exists()

        service.map_profile(work, "/nonexistent-root/a")
        work.gpg_key_id = "ABCD"
        assert service.refresh_fragment(work) is True
        assert "signingkey = ABCD" in (home / ".gitconfig-work").read_text()


class TestSettingsWiring:
    def test_custom_gitconfig_and_fragment_dir(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, work: Profile
    ) -> None:
        shared = tmp_path / "etc" / "gitconfig"
        monkeypatch.setenv("GIDTREE_GITCONFIG", str(shared))
        data_dir = tmp_path / "data"
        data_dir.mkdir()
        (data_dir / "config.yaml").write_text(
            f"fragments:\n  directory: {tmp_path / 'frags'}\n"
        )
        monkeypatch.setenv("GIDTREE_HOME", str(data_dir))

        service = MappingService.from_settings(get_settings())
        service.map_profile(work, "/nonexistent-root/proj")

        assert (tmp_path / "frags" / ".gitconfig-work").exists()
        assert f"    path = {tmp_path / 'frags' / '.gitconfig-work'}" in read_lines(shared)
        assert service.mappings()[0].profile == "work"
