"""Error taxonomy for the installer.

Every fatal condition raises a ProvisioningError subclass. The CLI catches
the base class, prints the labelled message and exits non-zero. Degraded
conditions are never raised; they are logged where they happen and recorded
on the run report.
"""

from dataclasses import dataclass


@dataclass
class ProvisioningError(Exception):
    """Base error class for fatal provisioning errors."""

    message: str
    hint: str | None = None
    label: str = "error"

    def __str__(self) -> str:
        return self.message

    def render(self) -> str:
        """Format as a single labelled line for terminal output."""
        text = f"[{self.label}] {self.message}"
        if self.hint:
            text = f"{text} ({self.hint})"
        return text


@dataclass
class ConfigurationError(ProvisioningError):
    """A required value is missing or a supplied value is malformed."""

    label: str = "config"
    field: str | None = None


@dataclass
class PreconditionError(ProvisioningError):
    """The host cannot run the installer (no root, no systemd)."""

    label: str = "precondition"


@dataclass
class UnsupportedPlatformError(ProvisioningError):
    """The detected distribution or version is not supported."""

    label: str = "platform"
    detected: str | None = None


@dataclass
class CommandFailedError(ProvisioningError):
    """An external command that must succeed did not."""

    label: str = "command"
    returncode: int | None = None
    stderr: str = ""


@dataclass
class InstallationError(ProvisioningError):
    """A prerequisite package could not be installed."""

    label: str = "install"


@dataclass
class PermissionSetupError(ProvisioningError):
    """The target user could not be granted container runtime access."""

    label: str = "permissions"


@dataclass
class StackStartError(ProvisioningError):
    """The service stack failed to start."""

    label: str = "stack"


@dataclass
class ServiceUnitError(ProvisioningError):
    """The boot persistence unit could not be installed or activated."""

    label: str = "systemd"
