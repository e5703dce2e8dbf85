"""Unit tests for installation state detection."""

from __future__ import annotations

from bosbase_installer.provisioning.compose import InstallationLayout
from bosbase_installer.provisioning.stack import StackManager, StackState
from bosbase_installer.provisioning.state import (
    InstallationKind,
    InstallationState,
    InstallationStateManager,
)


class TestInstallationState:
    """Tests for InstallationState."""

    def test_fresh(self):
        """Test no artifacts means a fresh host."""
        assert InstallationState().kind == InstallationKind.FRESH

    def test_incomplete(self):
        """Test some artifacts means an interrupted run."""
        state = InstallationState(has_app_compose_file=True, has_env_file=True)
        assert state.kind == InstallationKind.INCOMPLETE

    def test_installed(self):
        """Test every artifact present."""
        state = InstallationState(
            has_db_compose_file=True,
            has_app_compose_file=True,
            has_env_file=True,
            has_caddyfile=True,
            has_unit_file=True,
        )
        assert state.kind == InstallationKind.INSTALLED


class TestInstallationStateManager:
    """Tests for InstallationStateManager."""

    def test_detect_fresh(self, install_dir, system_paths):
        """Test a missing installation root."""
        manager = InstallationStateManager(InstallationLayout(install_dir), system_paths)
        state = manager.detect_state()

        assert state.kind == InstallationKind.FRESH
        assert state.data_dirs == []
        assert state.stack_state is None

    def test_detect_files(self, install_dir, system_paths):
        """Test artifacts and data directories are found."""
        install_dir.mkdir(parents=True)
        (install_dir / "docker-compose.yml").write_text("services: {}\n")
        (install_dir / ".env").write_text("")
        (install_dir / "postgres-data").mkdir()

        manager = InstallationStateManager(InstallationLayout(install_dir), system_paths)
        state = manager.detect_state()

        assert state.kind == InstallationKind.INCOMPLETE
        assert state.has_app_compose_file is True
        assert state.has_db_compose_file is False
        assert state.data_dirs == [install_dir / "postgres-data"]

    def test_detect_with_stack(self, install_dir, system_paths, fake_runner):
        """Test container status is included when a stack manager is given."""
        install_dir.mkdir(parents=True)
        (install_dir / "docker-compose.yml").write_text("services: {}\n")
        fake_runner.respond("docker", stdout='{"Service":"bosbase-node","State":"running"}\n')

        state = InstallationStateManager(
            InstallationLayout(install_dir),
            system_paths,
            stack_manager=StackManager(install_dir, fake_runner),
        ).detect_state()

        assert state.stack_state == StackState.RUNNING
        assert state.running_services == ["bosbase-node"]
