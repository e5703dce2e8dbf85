"""Well-known paths and names used by the installer.

Host paths are module constants so that tests and the orchestrator can
substitute a scratch root through SystemPaths.
"""

from dataclasses import dataclass
from pathlib import Path

# Default installation root for the stack
DEFAULT_INSTALL_DIR = Path("/opt/bosbase")

# Compose project name shared by every stack file
PROJECT_NAME = "bosbase"

# Boot persistence unit
UNIT_NAME = f"docker-compose@{PROJECT_NAME}.service"

# Files inside the installation root
DB_COMPOSE_FILE = "docker-compose.db.yml"
APP_COMPOSE_FILE = "docker-compose.yml"
ENV_FILE = ".env"
CADDYFILE = "Caddyfile"

# Data directories inside the installation root
APP_DATA_DIR = "bosbase-data"
DB_DATA_DIR = "postgres-data"
HOOKS_DIR = "pb_hooks"


@dataclass(frozen=True)
class SystemPaths:
    """Host locations outside the installation root."""

    os_release: Path = Path("/etc/os-release")
    systemd_dir: Path = Path("/etc/systemd/system")
    caddy_config: Path = Path("/etc/caddy/Caddyfile")
    apt_keyrings: Path = Path("/etc/apt/keyrings")
    apt_sources: Path = Path("/etc/apt/sources.list.d")
    share_keyrings: Path = Path("/usr/share/keyrings")

    @property
    def unit_file(self) -> Path:
        """Path of the boot persistence unit."""
        return self.systemd_dir / UNIT_NAME
