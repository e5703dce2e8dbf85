"""The provisioning run.

Drives every stage against one resolved ProvisioningConfig, strictly in
order. A fatal ProvisioningError stops the run where it happened and leaves
whatever the earlier stages produced for the operator to inspect. Degraded
conditions are collected on the InstallReport.

Concurrent runs against the same installation root are not supported and
are not guarded against.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from ..config import ProvisioningConfig
from ..errors import PreconditionError
from ..shared.logging import get_logger
from ..shared.paths import SystemPaths
from .caddy import CaddyConfigWriter, ProxyReloadResult
from .command import CommandRunner
from .compose import (
    ComposeGenerator,
    DirectoryReport,
    EnvFileWriter,
    InstallationLayout,
    VolumeManager,
)
from .health import HealthChecker, ProbeResult
from .permissions import PermissionManager
from .platform import PlatformDetector, PlatformProfile, Prerequisite
from .prerequisites import FirewallConfigurator, PackageProvisioner, ProvisionResult
from .stack import StackEntry, StackManager
from .state import InstallationState, InstallationStateManager
from .systemd import BootUnitInstaller

log = get_logger(__name__)

StageCallback = Callable[[str], None]


@dataclass
class InstallReport:
    """Everything a completed run did, for the final summary."""

    config: ProvisioningConfig
    platform: PlatformProfile | None = None
    provisioned: list[ProvisionResult] = field(default_factory=list)
    user_added: bool = False
    previous: InstallationState | None = None
    replaced_previous: bool = False
    directories: DirectoryReport | None = None
    artifacts: list[Path] = field(default_factory=list)
    proxy: ProxyReloadResult | None = None
    started: list[str] = field(default_factory=list)
    unit_path: Path | None = None
    health: list[ProbeResult] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def unverified(self) -> list[ProbeResult]:
        return [r for r in self.health if not r.healthy]


def _is_root() -> bool:
    return os.geteuid() == 0


class Installer:
    """Run the provisioning stages for one configuration."""

    def __init__(
        self,
        config: ProvisioningConfig,
        runner: CommandRunner | None = None,
        paths: SystemPaths | None = None,
        health_checker: HealthChecker | None = None,
        is_root: Callable[[], bool] = _is_root,
        on_stage: StageCallback | None = None,
    ):
        """Initialize installer.

        Args:
            config: Resolved configuration, never modified by the run.
            runner: Command runner for every host command.
            paths: Host locations outside the installation root.
            health_checker: Probes to run after the stack starts.
            is_root: Returns whether the process has superuser privileges.
            on_stage: Called with a short title as each stage begins.
        """
        self.config = config
        self.runner = runner or CommandRunner()
        self.paths = paths or SystemPaths()
        self.health_checker = health_checker or HealthChecker()
        self.is_root = is_root
        self.on_stage = on_stage
        self.layout = InstallationLayout(config.install_dir)
        self.generator = ComposeGenerator()

    def _stage(self, title: str) -> None:
        log.info("stage.begin", stage=title)
        if self.on_stage:
            self.on_stage(title)

    def check_preconditions(self) -> None:
        """Refuse to run without root or without systemd.

        Raises:
            PreconditionError: If either is missing.
        """
        if not self.is_root():
            raise PreconditionError(
                "This installer must be run as root.", hint="re-run with sudo"
            )
        if not self.runner.which("systemctl"):
            raise PreconditionError(
                "systemd is required but systemctl was not found.",
                hint="this installer only supports systemd hosts",
            )

    def run(self) -> InstallReport:
        """Run every stage in order.

        Returns:
            InstallReport for the completed run.

        Raises:
            ProvisioningError: On the first fatal failure.
        """
        config = self.config
        report = InstallReport(config)

        self.check_preconditions()

        self._stage("Detecting platform")
        profile = PlatformDetector(self.paths).detect()
        report.platform = profile

        self._stage("Installing prerequisites")
        provisioner = PackageProvisioner(profile, self.runner)
        permissions = PermissionManager(self.runner)
        # Group membership needs the docker group the engine package creates
        report.provisioned.append(provisioner.ensure(Prerequisite.DOCKER))
        report.user_added = permissions.ensure_access(config.target_user)
        report.provisioned.append(provisioner.ensure(Prerequisite.CADDY))
        for result in report.provisioned:
            report.warnings.extend(result.warnings)
        report.warnings.extend(FirewallConfigurator(profile, self.runner).configure())

        stack_files = self.generator.build(config)
        stack = StackManager(
            config.install_dir,
            self.runner,
            entries=[StackEntry(s.filename, wait=s.wait) for s in stack_files],
        )

        self._stage("Stopping previous instance")
        report.previous = InstallationStateManager(self.layout, self.paths).detect_state()
        log.info("state.detected", kind=report.previous.kind.value)
        report.replaced_previous = stack.teardown_previous()

        self._stage("Writing configuration")
        report.directories = VolumeManager(self.layout).prepare(reset=config.reset_data)
        report.artifacts.extend(self.generator.generate(config, self.layout))
        report.artifacts.append(EnvFileWriter().write(config, self.layout))
        caddy = CaddyConfigWriter(self.runner, self.paths)
        report.artifacts.append(caddy.write(config, self.layout))
        report.proxy = caddy.apply()
        report.warnings.extend(report.proxy.warnings)
        permissions.hand_over(config.target_user, config.install_dir)

        self._stage("Starting services")
        report.started = stack.up()
        report.unit_path = BootUnitInstaller(self.runner, self.paths).install(
            config.install_dir, stack.start_commands(), stack.stop_commands()
        )

        self._stage("Checking health")
        report.health = self.health_checker.check_all_sync()
        report.warnings.extend(r.error for r in report.unverified if r.error)

        log.info("install.complete", warnings=len(report.warnings))
        return report
