"""Prerequisite provisioning.

Ensures the container runtime (Docker Engine) and the reverse proxy (Caddy)
are installed, enabled and running. Installation is skipped entirely when the
program is already invocable; the service is then only (re-)enabled.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..errors import InstallationError
from ..shared.logging import get_logger
from .command import CommandRunner
from .files import atomic_write
from .platform import FileStep, InstallStep, PlatformProfile, Prerequisite
from .systemd import Systemctl

log = get_logger(__name__)

START_TIMEOUT_SECONDS = 5.0


@dataclass
class ProvisionResult:
    """Outcome of ensuring one prerequisite."""

    prerequisite: Prerequisite
    already_installed: bool
    installed: bool = False
    steps_run: int = 0
    warnings: list[str] = field(default_factory=list)


class PackageProvisioner:
    """Install and enable host prerequisites for a detected platform."""

    def __init__(
        self,
        profile: PlatformProfile,
        runner: CommandRunner,
        start_timeout: float = START_TIMEOUT_SECONDS,
    ):
        """Initialize provisioner.

        Args:
            profile: Detected platform; supplies the install recipes.
            runner: Command runner used for every host command.
            start_timeout: Seconds allowed for a service start attempt.
        """
        self.profile = profile
        self.runner = runner
        self.start_timeout = start_timeout
        self.systemctl = Systemctl(runner)

    def ensure(self, prerequisite: Prerequisite) -> ProvisionResult:
        """Make sure a prerequisite is installed, enabled and started.

        Args:
            prerequisite: Which service to ensure.

        Returns:
            ProvisionResult describing what was done.

        Raises:
            InstallationError: If an install recipe step fails.
        """
        name = prerequisite.value
        if self.runner.which(name):
            log.info("prerequisite.present", prerequisite=name)
            result = ProvisionResult(prerequisite, already_installed=True)
        else:
            log.info("prerequisite.installing", prerequisite=name, platform=self.profile.label)
            steps = self.profile.install_steps(prerequisite)
            result = ProvisionResult(prerequisite, already_installed=False)
            result.steps_run = self._run_steps(prerequisite, steps)
            result.installed = True
            log.info("prerequisite.installed", prerequisite=name)

        result.warnings.extend(self._enable_and_start(name))
        return result

    def ensure_all(self) -> list[ProvisionResult]:
        """Ensure Docker, then Caddy."""
        return [self.ensure(p) for p in (Prerequisite.DOCKER, Prerequisite.CADDY)]

    def _run_steps(self, prerequisite: Prerequisite, steps: list[InstallStep]) -> int:
        count = 0
        for step in steps:
            if isinstance(step, FileStep):
                atomic_write(step.path, step.content, mode=step.mode)
                log.debug("prerequisite.file", path=str(step.path))
                count += 1
            elif step.creates is not None and step.creates.exists():
                log.debug("prerequisite.step_skipped", creates=str(step.creates))
            else:
                self.runner.run(list(step.argv)).raise_for_failure(
                    InstallationError,
                    hint=f"installing {prerequisite.value} on {self.profile.label}",
                )
                count += 1
        return count

    def _enable_and_start(self, unit: str) -> list[str]:
        warnings: list[str] = []

        enabled = self.systemctl.enable(unit)
        if not enabled.ok:
            message = f"Could not enable {unit}: {enabled.describe_failure()}"
            log.warning("prerequisite.enable_failed", unit=unit, detail=enabled.describe_failure())
            warnings.append(message)

        if self.systemctl.is_active(unit):
            return warnings

        started = self.systemctl.start(unit, timeout=self.start_timeout)
        if not started.ok:
            message = f"{unit} start timed out or failed, continuing anyway"
            log.warning("prerequisite.start_failed", unit=unit, detail=started.describe_failure())
            warnings.append(message)
        return warnings


class FirewallConfigurator:
    """Open HTTP(S) to the reverse proxy on hosts that ship SELinux and firewalld."""

    def __init__(self, profile: PlatformProfile, runner: CommandRunner):
        self.profile = profile
        self.runner = runner
        self.systemctl = Systemctl(runner)

    def configure(self) -> list[str]:
        """Apply SELinux and firewall settings. Every failure is a warning.

        Returns:
            Warning messages, empty when everything applied cleanly.
        """
        if not self.profile.configure_firewall:
            return []

        warnings: list[str] = []

        if self.runner.which("selinuxenabled") and self.runner.run(["selinuxenabled"]).ok:
            if self.runner.which("setsebool"):
                result = self.runner.run(["setsebool", "-P", "httpd_can_network_connect", "1"])
                if not result.ok:
                    warnings.append(f"setsebool failed: {result.describe_failure()}")

        if not self.runner.which("firewall-cmd"):
            warnings.append("firewall-cmd not available; skipping firewall configuration.")
        elif not self.systemctl.is_active("firewalld"):
            warnings.append("firewalld is not running; skipping firewall configuration.")
        else:
            for argv in (
                ["firewall-cmd", "--permanent", "--add-service=http"],
                ["firewall-cmd", "--permanent", "--add-service=https"],
                ["firewall-cmd", "--reload"],
            ):
                result = self.runner.run(argv)
                if not result.ok:
                    warnings.append(f"firewall update failed: {result.describe_failure()}")
                    break

        for message in warnings:
            log.warning("firewall.degraded", detail=message)
        return warnings
