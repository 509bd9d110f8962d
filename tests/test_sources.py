"""Tests for APT source rewriting and mirror URL validation."""

import pytest

from conftest import DEBIAN_SOURCES, UBUNTU_SOURCES
from sdtlib.errors import ValidationError
from sdtlib.sources import (
    MirrorMutator,
    current_mirror,
    find_source_files,
    rewrite_sources,
    validate_mirror_url,
)


class TestValidateMirrorUrl:
    """Tests for validate_mirror_url()."""

    def test_strips_trailing_slash(self):
        assert validate_mirror_url("ubuntu", "http://se.archive.ubuntu.com/ubuntu/") == \
            "http://se.archive.ubuntu.com/ubuntu"

    def test_https_allowed(self):
        assert validate_mirror_url("debian", " https://mirror.example.org/debian ") == \
            "https://mirror.example.org/debian"

    @pytest.mark.parametrize("url", [
        "ftp://mirror.example.org/ubuntu",
        "mirror.example.org/ubuntu",
        "http:///ubuntu",
        "http://mirror.example.org/ubuntu extra",
        "",
    ])
    def test_bad_scheme_or_host(self, url):
        with pytest.raises(ValidationError, match="Invalid URL"):
            validate_mirror_url("ubuntu", url)

    @pytest.mark.parametrize("url", [
        "http://mirror.example.org/debian",
        "http://mirror.example.org/ubuntu-ports",
        "http://mirror.example.org/",
    ])
    def test_path_must_end_with_distro(self, url):
        with pytest.raises(ValidationError, match="must end with /ubuntu"):
            validate_mirror_url("ubuntu", url)

    def test_unsupported_distro(self):
        with pytest.raises(ValidationError, match="Unsupported"):
            validate_mirror_url("fedora", "http://mirror.example.org/fedora")


class TestRewriteSources:
    """Tests for rewrite_sources()."""

    def test_ubuntu_official(self):
        result = rewrite_sources(UBUNTU_SOURCES, "ubuntu", "http://se.archive.ubuntu.com/ubuntu")
        assert result == (
            "# See http://help.ubuntu.com/community/UpgradeNotes\n"
            "deb http://se.archive.ubuntu.com/ubuntu jammy main restricted\n"
            "deb http://se.archive.ubuntu.com/ubuntu jammy-updates main restricted\n"
            "deb http://security.ubuntu.com/ubuntu jammy-security main restricted\n"
        )

    def test_ubuntu_country_mirror_to_official(self):
        text = "deb http://de.archive.ubuntu.com/ubuntu jammy main\n"
        assert rewrite_sources(text, "ubuntu", "http://archive.ubuntu.com/ubuntu") == \
            "deb http://archive.ubuntu.com/ubuntu jammy main\n"

    def test_debian_main_and_security(self):
        result = rewrite_sources(DEBIAN_SOURCES, "debian", "http://ftp.de.debian.org/debian")
        assert result == (
            "deb http://ftp.de.debian.org/debian bookworm main\n"
            "deb http://ftp.de.debian.org/debian-security bookworm-security main\n"
        )

    def test_debian_from_country_mirror(self):
        text = (
            "deb http://ftp.us.debian.org/debian bookworm main\n"
            "deb http://ftp.us.debian.org/debian-security bookworm-security main\n"
        )
        result = rewrite_sources(text, "debian", "http://deb.debian.org/debian")
        assert result == (
            "deb http://deb.debian.org/debian bookworm main\n"
            "deb http://deb.debian.org/debian-security bookworm-security main\n"
        )

    def test_deb822(self):
        text = (
            "Types: deb\n"
            "URIs: http://archive.ubuntu.com/ubuntu/\n"
            "Suites: noble noble-updates\n"
            "Components: main restricted\n"
        )
        result = rewrite_sources(text, "ubuntu", "http://jp.archive.ubuntu.com/ubuntu")
        assert "URIs: http://jp.archive.ubuntu.com/ubuntu/\n" in result
        assert result.replace("jp.", "", 1) == text

    def test_custom_current_mirror_is_replaced(self):
        text = "deb http://mirror.example.com/ubuntu jammy main\n"
        assert rewrite_sources(text, "ubuntu", "http://archive.ubuntu.com/ubuntu") == text
        assert rewrite_sources(
            text, "ubuntu", "http://archive.ubuntu.com/ubuntu", current="http://mirror.example.com/ubuntu",
        ) == "deb http://archive.ubuntu.com/ubuntu jammy main\n"

    def test_unrelated_repositories_untouched(self):
        text = "deb [arch=amd64] https://download.docker.com/linux/ubuntu jammy stable\n"
        assert rewrite_sources(text, "ubuntu", "http://se.archive.ubuntu.com/ubuntu") == text


class TestCurrentMirror:
    """Tests for current-mirror detection."""

    def test_from_sources_list(self, ubuntu_apt):
        assert current_mirror(ubuntu_apt) == "http://archive.ubuntu.com/ubuntu"

    def test_from_deb822(self, config):
        config.apt_sources_dir.mkdir(parents=True)
        (config.apt_sources_dir / "ubuntu.sources").write_text(
            "Types: deb\nURIs: http://se.archive.ubuntu.com/ubuntu/\nSuites: noble\n"
        )
        assert current_mirror(config) == "http://se.archive.ubuntu.com/ubuntu/"

    def test_unknown(self, config):
        assert current_mirror(config) == "Unknown"


class TestMirrorMutator:
    """Tests for MirrorMutator against a fake apt tree."""

    def test_find_source_files(self, ubuntu_apt):
        (ubuntu_apt.apt_sources_dir / "ubuntu.sources").write_text("Types: deb\n")
        (ubuntu_apt.apt_sources_dir / "old.list.save").write_text("deb http://x/ubuntu a b\n")
        names = [p.name for p in find_source_files(ubuntu_apt)]
        assert names == ["sources.list", "docker.list", "ubuntu.sources"]

    def test_files_outside_sources_dir_are_left_alone(self, ubuntu_apt):
        stray = ubuntu_apt.apt_sources_list.parent / "mirrors" / "old.list"
        stray.parent.mkdir()
        stray.write_text(UBUNTU_SOURCES)

        assert stray not in find_source_files(ubuntu_apt)
        MirrorMutator(ubuntu_apt).apply("ubuntu", "http://se.archive.ubuntu.com/ubuntu")
        assert stray.read_text() == UBUNTU_SOURCES

    def test_apply_rewrites_matching_files(self, ubuntu_apt):
        mutator = MirrorMutator(ubuntu_apt)
        changed = mutator.apply("ubuntu", "http://se.archive.ubuntu.com/ubuntu/")

        assert changed == [ubuntu_apt.apt_sources_list]
        assert "deb http://se.archive.ubuntu.com/ubuntu jammy main" in ubuntu_apt.apt_sources_list.read_text()
        assert mutator.changes

    def test_apply_twice_changes_nothing_second_time(self, ubuntu_apt):
        MirrorMutator(ubuntu_apt).apply("ubuntu", "http://se.archive.ubuntu.com/ubuntu")
        assert MirrorMutator(ubuntu_apt).apply("ubuntu", "http://se.archive.ubuntu.com/ubuntu") == []

    def test_apply_without_matches_warns(self, config, capsys):
        config.apt_sources_dir.mkdir(parents=True)
        config.apt_sources_list.write_text("deb http://internal.example/repo stable main\n")
        assert MirrorMutator(config).apply("ubuntu", "http://se.archive.ubuntu.com/ubuntu") == []
        assert "No repository references matched" in capsys.readouterr().out

    def test_apply_validates_url(self, ubuntu_apt):
        with pytest.raises(ValidationError):
            MirrorMutator(ubuntu_apt).apply("ubuntu", "http://se.archive.ubuntu.com/debian")
