"""Host platform detection.

Reads /etc/os-release and classifies the host into one of a closed set of
platform profiles. Each profile carries its own package-manager command
table, so provisioning dispatches on the profile instead of comparing
distribution strings.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ..errors import UnsupportedPlatformError
from ..shared.logging import get_logger
from ..shared.paths import SystemPaths

log = get_logger(__name__)

DOCKER_PACKAGES = (
    "docker-ce",
    "docker-ce-cli",
    "containerd.io",
    "docker-buildx-plugin",
    "docker-compose-plugin",
)


class PlatformFamily(Enum):
    """Supported distribution families."""

    UBUNTU = "ubuntu"
    ROCKY = "rocky"


class Prerequisite(Enum):
    """Host services the stack depends on."""

    DOCKER = "docker"
    CADDY = "caddy"


@dataclass(frozen=True)
class CommandStep:
    """Run a command as part of an install recipe."""

    argv: tuple[str, ...]
    creates: Path | None = None  # skip when this path already exists


@dataclass(frozen=True)
class FileStep:
    """Publish a file (e.g. a package repository source) as part of a recipe."""

    path: Path
    content: str
    mode: int = 0o644


InstallStep = CommandStep | FileStep


@dataclass(frozen=True)
class PlatformProfile(ABC):
    """Detected platform and the commands that apply to it."""

    version_id: str
    codename: str = ""
    paths: SystemPaths = SystemPaths()

    family = None  # set by each variant
    configure_firewall = False

    @property
    def major_version(self) -> int:
        return parse_major(self.version_id)

    @property
    def label(self) -> str:
        return f"{self.family.value} {self.version_id}"

    @abstractmethod
    def install_packages(self, packages: list[str] | tuple[str, ...]) -> tuple[str, ...]:
        """Command that installs packages non-interactively."""

    def install_steps(self, prerequisite: Prerequisite) -> list[InstallStep]:
        """Ordered recipe that installs a prerequisite from its upstream repository."""
        recipes = {
            Prerequisite.DOCKER: self.docker_steps,
            Prerequisite.CADDY: self.caddy_steps,
        }
        return recipes[prerequisite]()

    @abstractmethod
    def docker_steps(self) -> list[InstallStep]: ...

    @abstractmethod
    def caddy_steps(self) -> list[InstallStep]: ...


@dataclass(frozen=True)
class UbuntuProfile(PlatformProfile):
    """Ubuntu 20.04 and later, apt with signed upstream repositories."""

    family = PlatformFamily.UBUNTU
    min_major = 20

    def install_packages(self, packages: list[str] | tuple[str, ...]) -> tuple[str, ...]:
        return ("apt-get", "install", "-y", *packages)

    def docker_steps(self) -> list[InstallStep]:
        keyring = self.paths.apt_keyrings / "docker.asc"
        return [
            CommandStep(("apt-get", "update")),
            CommandStep(self.install_packages(["ca-certificates", "curl", "gnupg"])),
            CommandStep(("install", "-m", "0755", "-d", str(self.paths.apt_keyrings))),
            CommandStep(
                (
                    "curl",
                    "-fsSL",
                    "https://download.docker.com/linux/ubuntu/gpg",
                    "-o",
                    str(keyring),
                ),
                creates=keyring,
            ),
            CommandStep(("chmod", "a+r", str(keyring))),
            FileStep(
                self.paths.apt_sources / "docker.list",
                f"deb [signed-by={keyring}] https://download.docker.com/linux/ubuntu "
                f"{self.codename} stable\n",
            ),
            CommandStep(("apt-get", "update")),
            CommandStep(self.install_packages(DOCKER_PACKAGES)),
        ]

    def caddy_steps(self) -> list[InstallStep]:
        keyring = self.paths.share_keyrings / "caddy-stable-archive-keyring.asc"
        return [
            CommandStep(("apt-get", "update")),
            CommandStep(
                self.install_packages(
                    ["debian-keyring", "debian-archive-keyring", "apt-transport-https", "curl"]
                )
            ),
            CommandStep(
                (
                    "curl",
                    "-fsSL",
                    "https://dl.cloudsmith.io/public/caddy/stable/gpg.key",
                    "-o",
                    str(keyring),
                ),
                creates=keyring,
            ),
            CommandStep(("chmod", "a+r", str(keyring))),
            FileStep(
                self.paths.apt_sources / "caddy-stable.list",
                f"deb [signed-by={keyring}] "
                "https://dl.cloudsmith.io/public/caddy/stable/deb/ubuntu any-version main\n",
            ),
            CommandStep(("apt-get", "update")),
            CommandStep(self.install_packages(["caddy"])),
        ]


@dataclass(frozen=True)
class RockyProfile(PlatformProfile):
    """Rocky Linux 9.x, dnf with the Docker CE repo and the Caddy COPR."""

    family = PlatformFamily.ROCKY
    required_major = 9
    configure_firewall = True

    def install_packages(self, packages: list[str] | tuple[str, ...]) -> tuple[str, ...]:
        return ("dnf", "-y", "install", *packages)

    def docker_steps(self) -> list[InstallStep]:
        return [
            CommandStep(self.install_packages(["curl", "dnf-plugins-core"])),
            CommandStep(
                (
                    "dnf",
                    "config-manager",
                    "--add-repo",
                    "https://download.docker.com/linux/centos/docker-ce.repo",
                ),
                creates=Path("/etc/yum.repos.d/docker-ce.repo"),
            ),
            CommandStep(self.install_packages(DOCKER_PACKAGES)),
        ]

    def caddy_steps(self) -> list[InstallStep]:
        return [
            CommandStep(self.install_packages(["dnf-command(copr)"])),
            CommandStep(("dnf", "-y", "copr", "enable", "@caddy/caddy")),
            CommandStep(self.install_packages(["caddy"])),
        ]


def parse_major(version_id: str) -> int:
    """Major component of a VERSION_ID such as "22.04" or "9.3"; -1 if unparseable."""
    head = version_id.split(".", 1)[0]
    return int(head) if head.isdigit() else -1


def read_os_release(path: Path) -> dict[str, str]:
    """Parse an os-release file into a dictionary of key/value pairs."""
    data: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8", errors="ignore").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        data[key.strip()] = value.strip().strip('"').strip("'")
    return data


class PlatformDetector:
    """Classify the host into a supported PlatformProfile."""

    def __init__(self, paths: SystemPaths | None = None):
        self.paths = paths or SystemPaths()

    def detect(self) -> PlatformProfile:
        """Detect the host platform.

        Returns:
            UbuntuProfile or RockyProfile.

        Raises:
            UnsupportedPlatformError: If os-release is missing, the
                distribution is unknown, or its major version does not match.
        """
        if not self.paths.os_release.is_file():
            raise UnsupportedPlatformError(
                f"{self.paths.os_release} not found. Unsupported distribution.",
                detected="unknown",
            )

        info = read_os_release(self.paths.os_release)
        return self.classify(info)

    def classify(self, info: dict[str, str]) -> PlatformProfile:
        """Map os-release values to a profile."""
        distro = info.get("ID", "").lower()
        version_id = info.get("VERSION_ID", "")
        identity = f"{distro or 'unknown'} {version_id}".strip()
        major = parse_major(version_id)

        if distro == PlatformFamily.UBUNTU.value:
            if major < UbuntuProfile.min_major:
                raise UnsupportedPlatformError(
                    f"Unsupported Ubuntu version: {version_id or 'unknown'}. "
                    "Use Ubuntu 20.04 or later.",
                    detected=identity,
                )
            codename = info.get("VERSION_CODENAME") or info.get("UBUNTU_CODENAME", "")
            if not codename:
                raise UnsupportedPlatformError(
                    f"Could not determine VERSION_CODENAME for Ubuntu {version_id}.",
                    detected=identity,
                )
            profile: PlatformProfile = UbuntuProfile(version_id, codename, self.paths)
        elif distro == PlatformFamily.ROCKY.value:
            if major != RockyProfile.required_major:
                raise UnsupportedPlatformError(
                    f"Unsupported Rocky Linux version: {version_id or 'unknown'}. "
                    "Use Rocky Linux 9.x.",
                    detected=identity,
                )
            profile = RockyProfile(version_id, info.get("VERSION_CODENAME", ""), self.paths)
        else:
            raise UnsupportedPlatformError(
                f"Unsupported distribution: {distro or 'unknown'}. "
                "This installer supports Ubuntu and Rocky Linux 9.x.",
                detected=identity,
            )

        log.info("platform.detected", platform=profile.label)
        return profile
