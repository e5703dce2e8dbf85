"""Unit tests for platform detection."""

from __future__ import annotations

import pytest

from bosbase_installer.errors import UnsupportedPlatformError
from bosbase_installer.provisioning.platform import (
    CommandStep,
    FileStep,
    PlatformDetector,
    PlatformFamily,
    PlatformProfile,
    Prerequisite,
    RockyProfile,
    UbuntuProfile,
    parse_major,
    read_os_release,
)


class TestOsRelease:
    """Tests for os-release parsing."""

    def test_read_os_release(self, tmp_path):
        """Test quoted and unquoted values, comments and blank lines."""
        path = tmp_path / "os-release"
        path.write_text('# comment\n\nID=ubuntu\nVERSION_ID="22.04"\nNAME=\'Ubuntu\'\n')

        info = read_os_release(path)

        assert info == {"ID": "ubuntu", "VERSION_ID": "22.04", "NAME": "Ubuntu"}

    @pytest.mark.parametrize(
        "version_id,major", [("22.04", 22), ("9.3", 9), ("9", 9), ("", -1), ("rolling", -1)]
    )
    def test_parse_major(self, version_id, major):
        """Test major version extraction."""
        assert parse_major(version_id) == major


class TestPlatformDetector:
    """Tests for PlatformDetector."""

    def test_detect_ubuntu(self, system_paths):
        """Test Ubuntu 22.04 is classified with its codename."""
        profile = PlatformDetector(system_paths).detect()

        assert isinstance(profile, UbuntuProfile)
        assert profile.family == PlatformFamily.UBUNTU
        assert profile.major_version == 22
        assert profile.codename == "jammy"
        assert profile.label == "ubuntu 22.04"

    def test_detect_rocky(self, rocky_paths):
        """Test Rocky 9.3 is classified."""
        profile = PlatformDetector(rocky_paths).detect()

        assert isinstance(profile, RockyProfile)
        assert profile.major_version == 9
        assert profile.configure_firewall is True

    def test_ubuntu_codename_fallback(self):
        """Test UBUNTU_CODENAME is used when VERSION_CODENAME is absent."""
        profile = PlatformDetector().classify(
            {"ID": "ubuntu", "VERSION_ID": "20.04", "UBUNTU_CODENAME": "focal"}
        )

        assert profile.codename == "focal"

    @pytest.mark.parametrize(
        "info,detected",
        [
            ({"ID": "debian", "VERSION_ID": "12"}, "debian 12"),
            ({"ID": "centos", "VERSION_ID": "9"}, "centos 9"),
            ({}, "unknown"),
        ],
    )
    def test_unsupported_distribution(self, info, detected):
        """Test unknown distributions are rejected with the detected identity."""
        with pytest.raises(UnsupportedPlatformError) as exc_info:
            PlatformDetector().classify(info)

        assert exc_info.value.detected == detected
        assert "Unsupported distribution" in str(exc_info.value)

    @pytest.mark.parametrize(
        "info",
        [
            {"ID": "ubuntu", "VERSION_ID": "18.04", "VERSION_CODENAME": "bionic"},
            {"ID": "rocky", "VERSION_ID": "8.9"},
            {"ID": "rocky", "VERSION_ID": "10.0"},
        ],
    )
    def test_wrong_major_version(self, info):
        """Test the right family with the wrong version is a failure."""
        with pytest.raises(UnsupportedPlatformError):
            PlatformDetector().classify(info)

    def test_ubuntu_without_codename(self):
        """Test Ubuntu without any codename is rejected."""
        with pytest.raises(UnsupportedPlatformError):
            PlatformDetector().classify({"ID": "ubuntu", "VERSION_ID": "22.04"})

    def test_missing_os_release(self, system_paths):
        """Test a host without os-release is rejected."""
        system_paths.os_release.unlink()

        with pytest.raises(UnsupportedPlatformError) as exc_info:
            PlatformDetector(system_paths).detect()

        assert exc_info.value.detected == "unknown"


class TestInstallRecipes:
    """Tests for per-platform install recipes."""

    def test_ubuntu_docker_recipe(self, system_paths):
        """Test the Docker recipe adds the signed apt source for the codename."""
        profile = UbuntuProfile("22.04", "jammy", system_paths)

        steps = profile.install_steps(Prerequisite.DOCKER)

        sources = [s for s in steps if isinstance(s, FileStep)]
        assert len(sources) == 1
        assert sources[0].path == system_paths.apt_sources / "docker.list"
        assert "signed-by=" in sources[0].content
        assert " jammy stable" in sources[0].content
        assert steps[-1] == CommandStep(
            ("apt-get", "install", "-y", "docker-ce", "docker-ce-cli", "containerd.io",
             "docker-buildx-plugin", "docker-compose-plugin")
        )

    def test_ubuntu_key_download_is_skippable(self, system_paths):
        """Test the key download is skipped once the keyring exists."""
        profile = UbuntuProfile("22.04", "jammy", system_paths)

        downloads = [
            s
            for s in profile.install_steps(Prerequisite.CADDY)
            if isinstance(s, CommandStep) and s.argv[0] == "curl"
        ]

        assert len(downloads) == 1
        assert downloads[0].creates == (
            system_paths.share_keyrings / "caddy-stable-archive-keyring.asc"
        )

    def test_rocky_caddy_recipe(self, rocky_paths):
        """Test Caddy comes from the COPR on Rocky."""
        profile = RockyProfile("9.3", paths=rocky_paths)

        argvs = [s.argv for s in profile.install_steps(Prerequisite.CADDY)]

        assert ("dnf", "-y", "copr", "enable", "@caddy/caddy") in argvs
        assert argvs[-1] == ("dnf", "-y", "install", "caddy")

    def test_profile_base_is_abstract(self):
        """Test only concrete platform variants can be instantiated."""
        with pytest.raises(TypeError):
            PlatformProfile("22.04")

    @pytest.mark.parametrize(
        "profile,argv",
        [
            (UbuntuProfile("22.04", "jammy"), ("apt-get", "install", "-y", "caddy")),
            (RockyProfile("9.3"), ("dnf", "-y", "install", "caddy")),
        ],
    )
    def test_install_packages(self, profile, argv):
        """Test each variant builds its own package-manager command."""
        assert profile.install_packages(["caddy"]) == argv
