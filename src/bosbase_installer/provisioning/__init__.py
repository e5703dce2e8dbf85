"""Provisioning package for bootstrapping the BosBase stack.

This package provides the `bosbase-install install` run which:
1. Detects the host platform (Ubuntu or Rocky Linux 9)
2. Installs Docker and Caddy when they are missing
3. Grants the target user access to Docker
4. Writes the compose files, .env and Caddyfile
5. Starts the stack and registers it with systemd
6. Probes the application's health endpoint
"""

from .caddy import CaddyConfigWriter, ProxyReloadResult, ProxyRoute, render_caddyfile
from .command import CommandResult, CommandRunner
from .compose import (
    ComposeGenerator,
    DirectoryReport,
    EnvFileWriter,
    InstallationLayout,
    ServiceDefinition,
    StackFile,
    VolumeManager,
    order_stack_files,
)
from .files import atomic_write, replace_symlink
from .health import HealthChecker, HealthProbe, ProbeResult
from .orchestrator import InstallReport, Installer
from .permissions import PermissionManager
from .platform import (
    CommandStep,
    FileStep,
    PlatformDetector,
    PlatformFamily,
    PlatformProfile,
    Prerequisite,
    RockyProfile,
    UbuntuProfile,
)
from .prerequisites import FirewallConfigurator, PackageProvisioner, ProvisionResult
from .stack import StackEntry, StackManager, StackState, StackStatus
from .state import InstallationKind, InstallationState, InstallationStateManager
from .systemd import BootUnitInstaller, Systemctl, render_unit

__all__ = [
    # Commands
    "CommandResult",
    "CommandRunner",
    # Platform
    "PlatformDetector",
    "PlatformFamily",
    "PlatformProfile",
    "UbuntuProfile",
    "RockyProfile",
    "Prerequisite",
    "CommandStep",
    "FileStep",
    # Prerequisites
    "PackageProvisioner",
    "ProvisionResult",
    "FirewallConfigurator",
    "PermissionManager",
    # Configuration writing
    "InstallationLayout",
    "ServiceDefinition",
    "StackFile",
    "order_stack_files",
    "ComposeGenerator",
    "EnvFileWriter",
    "VolumeManager",
    "DirectoryReport",
    "CaddyConfigWriter",
    "ProxyReloadResult",
    "ProxyRoute",
    "render_caddyfile",
    "atomic_write",
    "replace_symlink",
    # Stack management
    "StackEntry",
    "StackManager",
    "StackState",
    "StackStatus",
    "BootUnitInstaller",
    "Systemctl",
    "render_unit",
    # State
    "InstallationKind",
    "InstallationState",
    "InstallationStateManager",
    # Health
    "HealthChecker",
    "HealthProbe",
    "ProbeResult",
    # Run
    "Installer",
    "InstallReport",
]
