"""Installation state detection.

Looks at what a previous run left under the installation root so a re-run
can report what it is replacing and the status command can describe the host.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from ..shared.paths import SystemPaths
from .compose import InstallationLayout
from .stack import StackManager, StackState


class InstallationKind(Enum):
    """What a run will find under the installation root."""

    FRESH = "fresh"  # Nothing installed
    INCOMPLETE = "incomplete"  # Some artifacts missing
    INSTALLED = "installed"  # Every artifact present


@dataclass
class InstallationState:
    """Current state of an installation root."""

    has_db_compose_file: bool = False
    has_app_compose_file: bool = False
    has_env_file: bool = False
    has_caddyfile: bool = False
    has_unit_file: bool = False
    data_dirs: list[Path] = field(default_factory=list)
    stack_state: StackState | None = None
    running_services: list[str] = field(default_factory=list)
    stopped_services: list[str] = field(default_factory=list)

    @property
    def artifacts(self) -> dict[str, bool]:
        return {
            "db stack file": self.has_db_compose_file,
            "app stack file": self.has_app_compose_file,
            "env file": self.has_env_file,
            "Caddyfile": self.has_caddyfile,
            "boot unit": self.has_unit_file,
        }

    @property
    def kind(self) -> InstallationKind:
        present = [p for p in self.artifacts.values() if p]
        if not present:
            return InstallationKind.FRESH
        if len(present) == len(self.artifacts):
            return InstallationKind.INSTALLED
        return InstallationKind.INCOMPLETE


class InstallationStateManager:
    """Detect installation state for idempotent re-runs."""

    def __init__(
        self,
        layout: InstallationLayout,
        paths: SystemPaths | None = None,
        stack_manager: StackManager | None = None,
    ):
        """Initialize state manager.

        Args:
            layout: Installation layout to inspect.
            paths: Host locations (for the boot unit).
            stack_manager: When given, container status is queried as well.
        """
        self.layout = layout
        self.paths = paths or SystemPaths()
        self.stack_manager = stack_manager

    def detect_state(self) -> InstallationState:
        """Detect current installation state.

        Returns:
            InstallationState describing files and, optionally, containers.
        """
        state = InstallationState(
            has_db_compose_file=self.layout.db_compose_file.exists(),
            has_app_compose_file=self.layout.app_compose_file.exists(),
            has_env_file=self.layout.env_file.exists(),
            has_caddyfile=self.layout.caddyfile.exists(),
            has_unit_file=self.paths.unit_file.exists(),
            data_dirs=[d for d in self.layout.data_dirs if d.is_dir()],
        )

        if self.stack_manager is not None:
            status = self.stack_manager.status()
            state.stack_state = status.state
            state.running_services = status.running_services
            state.stopped_services = status.stopped_services

        return state
