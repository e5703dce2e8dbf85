"""Shared test fixtures for bosbase-installer tests.

This module provides fixtures for exercising the provisioning stages without
touching the real host:
- FakeRunner: Records every command and answers with scripted results
- system_paths: Host locations redirected under a temporary directory
- make_config: Builds a resolved ProvisioningConfig with test defaults
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import pytest

from bosbase_installer.config import ProvisioningConfig
from bosbase_installer.provisioning.command import CommandResult, CommandRunner
from bosbase_installer.shared.paths import SystemPaths

# =============================================================================
# FakeRunner - Stands in for subprocess and PATH lookups
# =============================================================================

# Package that, once installed, makes a program invocable
PROVIDES = {"docker-ce": "docker", "caddy": "caddy"}

UBUNTU_OS_RELEASE = """\
NAME="Ubuntu"
VERSION_ID="22.04"
ID=ubuntu
VERSION_CODENAME=jammy
"""

ROCKY_OS_RELEASE = """\
NAME="Rocky Linux"
VERSION_ID="9.3"
ID="rocky"
"""


@dataclass
class Rule:
    """A scripted answer for commands starting with prefix."""

    prefix: tuple[str, ...]
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False


@dataclass
class FakeRunner(CommandRunner):
    """CommandRunner that records argv and returns scripted results.

    Unscripted commands succeed. Package installs that provide docker or
    caddy make the program invocable, like a real package manager would.
    """

    installed: set[str] = field(default_factory=lambda: {"systemctl"})
    calls: list[list[str]] = field(default_factory=list)
    timeouts: list[float | None] = field(default_factory=list)
    rules: list[Rule] = field(default_factory=list)

    def which(self, program: str) -> str | None:
        return f"/usr/bin/{program}" if program in self.installed else None

    def run(self, argv, timeout=None, cwd=None, input_text=None) -> CommandResult:
        argv = list(argv)
        self.calls.append(argv)
        self.timeouts.append(timeout)

        # Later rules override earlier ones
        for rule in reversed(self.rules):
            if tuple(argv[: len(rule.prefix)]) == rule.prefix:
                return CommandResult(
                    argv,
                    returncode=rule.returncode,
                    stdout=rule.stdout,
                    stderr=rule.stderr,
                    timed_out=rule.timed_out,
                )

        if argv[0] in ("apt-get", "dnf") and "install" in argv:
            for package, program in PROVIDES.items():
                if package in argv:
                    self.installed.add(program)
        return CommandResult(argv, returncode=0)

    def respond(self, *prefix: str, stdout: str = "") -> None:
        self.rules.append(Rule(prefix, stdout=stdout))

    def fail(
        self, *prefix: str, returncode: int = 1, stderr: str = "failed", timed_out: bool = False
    ) -> None:
        self.rules.append(
            Rule(
                prefix,
                returncode=-1 if timed_out else returncode,
                stderr=stderr,
                timed_out=timed_out,
            )
        )

    def matching(self, *prefix: str) -> list[list[str]]:
        """Recorded commands starting with prefix."""
        return [argv for argv in self.calls if tuple(argv[: len(prefix)]) == prefix]

    def installs(self) -> list[list[str]]:
        """Recorded package installation commands."""
        return [
            argv
            for argv in self.calls
            if argv[0] in ("apt-get", "dnf") and "install" in argv
        ]


@pytest.fixture
def fake_runner() -> FakeRunner:
    """Runner on a host with systemd but without docker or caddy."""
    return FakeRunner()


# =============================================================================
# Host paths
# =============================================================================


@pytest.fixture
def system_paths(tmp_path: Path) -> SystemPaths:
    """Host locations under a scratch root, with an Ubuntu 22.04 os-release."""
    host = tmp_path / "host"
    paths = SystemPaths(
        os_release=host / "etc" / "os-release",
        systemd_dir=host / "etc" / "systemd" / "system",
        caddy_config=host / "etc" / "caddy" / "Caddyfile",
        apt_keyrings=host / "etc" / "apt" / "keyrings",
        apt_sources=host / "etc" / "apt" / "sources.list.d",
        share_keyrings=host / "usr" / "share" / "keyrings",
    )
    paths.os_release.parent.mkdir(parents=True)
    paths.os_release.write_text(UBUNTU_OS_RELEASE)
    return paths


@pytest.fixture
def rocky_paths(system_paths: SystemPaths) -> SystemPaths:
    """Same scratch host, identifying as Rocky Linux 9.3."""
    system_paths.os_release.write_text(ROCKY_OS_RELEASE)
    return system_paths


@pytest.fixture
def install_dir(tmp_path: Path) -> Path:
    return tmp_path / "opt" / "bosbase"


# =============================================================================
# Configuration
# =============================================================================


@pytest.fixture
def make_config(install_dir: Path):
    """Factory for resolved configurations."""

    def _make(**overrides) -> ProvisioningConfig:
        values = {
            "domain": "example.com",
            "encryption_key": "0123456789abcdef0123456789abcdef",
            "postgres_password": "Pa55w0rdPa55w0rd",
            "install_dir": install_dir,
            "target_user": "deploy",
        }
        values.update(overrides)
        return ProvisioningConfig(**values)

    return _make
