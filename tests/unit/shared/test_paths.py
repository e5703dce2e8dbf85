"""Unit tests for bosbase_installer.shared.paths module."""

from pathlib import Path

from bosbase_installer.shared.paths import (
    DEFAULT_INSTALL_DIR,
    PROJECT_NAME,
    UNIT_NAME,
    SystemPaths,
)


class TestPaths:
    """Tests for path constants and SystemPaths."""

    def test_default_install_dir(self):
        """Test the stack installs under /opt/bosbase by default."""
        assert DEFAULT_INSTALL_DIR == Path("/opt/bosbase")

    def test_unit_name_uses_project(self):
        """Test the boot unit is named after the compose project."""
        assert UNIT_NAME == f"docker-compose@{PROJECT_NAME}.service"

    def test_unit_file_under_systemd_dir(self, tmp_path):
        """Test unit_file follows a substituted systemd directory."""
        paths = SystemPaths(systemd_dir=tmp_path)

        assert paths.unit_file == tmp_path / UNIT_NAME

    def test_host_defaults(self):
        """Test default host locations."""
        paths = SystemPaths()

        assert paths.os_release == Path("/etc/os-release")
        assert paths.caddy_config == Path("/etc/caddy/Caddyfile")
