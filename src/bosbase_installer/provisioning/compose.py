"""Stack definition generation.

This module renders the docker compose documents, the environment file and
the data directory layout under the installation root.
"""

from __future__ import annotations

import re
import shutil
from dataclasses import dataclass, field
from graphlib import CycleError, TopologicalSorter
from pathlib import Path
from typing import Any
from urllib.parse import quote

import yaml

from ..config import ProvisioningConfig
from ..errors import ConfigurationError
from ..shared.logging import get_logger
from ..shared.paths import (
    APP_COMPOSE_FILE,
    APP_DATA_DIR,
    CADDYFILE,
    DB_COMPOSE_FILE,
    DB_DATA_DIR,
    ENV_FILE,
    HOOKS_DIR,
)
from .files import atomic_write

log = get_logger(__name__)

# Images
POSTGRES_IMAGE = "pgvector/pgvector:pg16"
BOSBASE_IMAGE = "bosbase/bosbase:ve1"

# Ports
APP_PORT = 8090
BOOSTER_PORT = 2678
POSTGRES_PORT = 5432

POSTGRES_DB = "pbosbase"
POSTGRES_USER = "postgres"
NETWORK_NAME = "basenode"

# Tunables passed to the application, with their defaults
TUNABLES: dict[str, str] = {
    "PB_ACTIVATION_VERIFY_URL": "https://ve.bosbase.com/verify",
    "WASM_ENABLE": "true",
    "WASM_INSTANCE_NUM": "32",
    "SCRIPT_CONCURRENCY": "32",
    "FUNCTION_CONN_NUM": "10",
    "EXECUTE_PATH": "/pb/functions",
    "PB_DATA_MAX_OPEN_CONNS": "30",
    "PB_DATA_MAX_IDLE_CONNS": "15",
    "PB_AUX_MAX_OPEN_CONNS": "10",
    "PB_AUX_MAX_IDLE_CONNS": "3",
    "PB_QUERY_TIMEOUT": "300s",
}

_ENV_SAFE = re.compile(r"^[A-Za-z0-9_./:@+=,-]*$")


@dataclass
class InstallationLayout:
    """Files and directories under the installation root."""

    root: Path

    @property
    def db_compose_file(self) -> Path:
        return self.root / DB_COMPOSE_FILE

    @property
    def app_compose_file(self) -> Path:
        return self.root / APP_COMPOSE_FILE

    @property
    def env_file(self) -> Path:
        return self.root / ENV_FILE

    @property
    def caddyfile(self) -> Path:
        return self.root / CADDYFILE

    @property
    def data_dirs(self) -> list[Path]:
        """Directories holding service state; purged only on explicit reset."""
        return [self.root / APP_DATA_DIR, self.root / DB_DATA_DIR]

    @property
    def hooks_dir(self) -> Path:
        return self.root / HOOKS_DIR


@dataclass
class ServiceDefinition:
    """One service in a stack definition."""

    name: str
    image: str
    environment: dict[str, str] = field(default_factory=dict)
    ports: list[str] = field(default_factory=list)
    volumes: list[str] = field(default_factory=list)
    depends_on: list[str] = field(default_factory=list)
    networks: list[str] = field(default_factory=list)
    command: list[str] | None = None
    healthcheck: dict[str, Any] | None = None
    restart: str = "unless-stopped"

    def to_compose(self, local_services: set[str]) -> dict[str, Any]:
        """Compose representation.

        Dependencies on services in another document are expressed through
        start order, so only edges to services in the same document are emitted.
        """
        data: dict[str, Any] = {"image": self.image, "restart": self.restart}
        if self.command:
            data["command"] = list(self.command)
        if self.environment:
            data["environment"] = dict(self.environment)
        if self.volumes:
            data["volumes"] = list(self.volumes)
        if self.ports:
            data["ports"] = list(self.ports)
        local_deps = [d for d in self.depends_on if d in local_services]
        if local_deps:
            data["depends_on"] = local_deps
        if self.networks:
            data["networks"] = list(self.networks)
        if self.healthcheck:
            data["healthcheck"] = dict(self.healthcheck)
        return data


@dataclass
class StackFile:
    """One compose document and the services it declares."""

    filename: str
    services: list[ServiceDefinition]
    networks: dict[str, Any] = field(default_factory=dict)
    wait: bool = False  # block `up` until healthchecks pass

    @property
    def service_names(self) -> set[str]:
        return {s.name for s in self.services}

    def to_compose(self) -> dict[str, Any]:
        names = self.service_names
        data: dict[str, Any] = {
            "services": {s.name: s.to_compose(names) for s in self.services},
        }
        if self.networks:
            data["networks"] = self.networks
        return data


def order_stack_files(stack_files: list[StackFile]) -> list[StackFile]:
    """Order stack files so every dependency is started before its dependents.

    Args:
        stack_files: Stack files in declaration order.

    Returns:
        Stack files in start order. Ties keep declaration order.

    Raises:
        ConfigurationError: If dependencies are cyclic or name unknown services.
    """
    owner: dict[str, str] = {}
    for stack_file in stack_files:
        for service in stack_file.services:
            owner[service.name] = stack_file.filename

    sorter: TopologicalSorter[str] = TopologicalSorter()
    for stack_file in stack_files:
        sorter.add(stack_file.filename)
        for service in stack_file.services:
            for dep in service.depends_on:
                if dep not in owner:
                    raise ConfigurationError(
                        f"Service '{service.name}' depends on unknown service '{dep}'"
                    )
                if owner[dep] != stack_file.filename:
                    sorter.add(stack_file.filename, owner[dep])

    try:
        sorter.prepare()
    except CycleError as e:
        raise ConfigurationError(f"Cyclic stack dependencies: {e.args[1]}") from e

    by_name = {s.filename: s for s in stack_files}
    position = {s.filename: i for i, s in enumerate(stack_files)}
    ordered: list[StackFile] = []
    while sorter.is_active():
        ready = sorted(sorter.get_ready(), key=position.__getitem__)
        for name in ready:
            ordered.append(by_name[name])
            sorter.done(name)
    return ordered


def _compose_literal(value: str) -> str:
    """Escape a literal value for compose variable interpolation."""
    return value.replace("$", "$$")


def _env_value(value: str) -> str:
    if _ENV_SAFE.match(value):
        return value
    if "'" not in value:
        return f"'{value}'"
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class ComposeGenerator:
    """Generate the stack definition documents."""

    def build(self, config: ProvisioningConfig) -> list[StackFile]:
        """Build the stack files in start order.

        Args:
            config: Resolved provisioning configuration.

        Returns:
            Ordered list of StackFile.
        """
        postgres_url = (
            f"postgres://{POSTGRES_USER}:{quote(config.postgres_password, safe='')}"
            f"@postgres-db:{POSTGRES_PORT}/{POSTGRES_DB}?sslmode=disable"
        )

        database = ServiceDefinition(
            name="postgres-db",
            image=POSTGRES_IMAGE,
            environment={
                "POSTGRES_DB": POSTGRES_DB,
                "POSTGRES_USER": POSTGRES_USER,
                "POSTGRES_PASSWORD": _compose_literal(config.postgres_password),
            },
            volumes=[f"./{DB_DATA_DIR}:/var/lib/postgresql/data"],
            ports=[f"{POSTGRES_PORT}:{POSTGRES_PORT}"],
            networks=[NETWORK_NAME],
            healthcheck={
                "test": ["CMD-SHELL", f"pg_isready -U {POSTGRES_USER} -d {POSTGRES_DB}"],
                "interval": "2s",
                "timeout": "5s",
                "retries": 10,
                "start_period": "10s",
            },
        )

        environment = {
            "SASSPB_POSTGRES_URL": _compose_literal(postgres_url),
            "BS_ENCRYPTION_KEY": _compose_literal(config.encryption_key),
            "OPENAI_API_KEY": "${OPENAI_API_KEY:-}",
            "OPENAI_BASE_URL": "${OPENAI_BASE_URL:-}",
        }
        for name, default in TUNABLES.items():
            environment[name] = f"${{{name}:-{default}}}"

        application = ServiceDefinition(
            name="bosbase-node",
            image=BOSBASE_IMAGE,
            environment=environment,
            ports=[f"{APP_PORT}:{APP_PORT}", f"{BOOSTER_PORT}:{BOOSTER_PORT}"],
            volumes=[f"./{APP_DATA_DIR}:/pb/pb_data", f"./{HOOKS_DIR}:/pb_hooks"],
            depends_on=["postgres-db"],
            networks=[NETWORK_NAME],
        )

        stack_files = [
            StackFile(
                APP_COMPOSE_FILE,
                [application],
                networks={NETWORK_NAME: {"external": True, "name": NETWORK_NAME}},
            ),
            StackFile(
                DB_COMPOSE_FILE,
                [database],
                networks={NETWORK_NAME: {"driver": "bridge", "name": NETWORK_NAME}},
                wait=True,
            ),
        ]
        return order_stack_files(stack_files)

    def generate(self, config: ProvisioningConfig, layout: InstallationLayout) -> list[Path]:
        """Write every stack file into the installation root.

        Args:
            config: Resolved provisioning configuration.
            layout: Installation layout to write into.

        Returns:
            Paths of the written compose files, in start order.
        """
        written = []
        for stack_file in self.build(config):
            path = layout.root / stack_file.filename
            content = yaml.dump(stack_file.to_compose(), default_flow_style=False, sort_keys=False)
            atomic_write(path, content, mode=0o640)
            log.info("compose.written", path=str(path))
            written.append(path)
        return written


class EnvFileWriter:
    """Render the .env file holding secrets and tunables."""

    def render(self, config: ProvisioningConfig) -> str:
        entries = {
            "OPENAI_API_KEY": config.openai_api_key,
            "OPENAI_BASE_URL": config.openai_base_url,
            "BS_ENCRYPTION_KEY": config.encryption_key,
            "POSTGRES_PASSWORD": config.postgres_password,
            **TUNABLES,
        }
        return "".join(f"{key}={_env_value(value)}\n" for key, value in entries.items())

    def write(self, config: ProvisioningConfig, layout: InstallationLayout) -> Path:
        """Write the env file with owner-only permissions."""
        path = atomic_write(layout.env_file, self.render(config), mode=0o600)
        log.info("env.written", path=str(path))
        return path


@dataclass
class DirectoryReport:
    """What VolumeManager did to the data directories."""

    created: list[Path] = field(default_factory=list)
    preserved: list[Path] = field(default_factory=list)
    purged: list[Path] = field(default_factory=list)


class VolumeManager:
    """Manage data directories under the installation root."""

    def __init__(self, layout: InstallationLayout):
        self.layout = layout

    def prepare(self, reset: bool = False) -> DirectoryReport:
        """Create the installation root and its data directories.

        Existing data directories are kept unless reset is requested. The
        hooks directory is operator-owned and always kept.

        Args:
            reset: Purge and recreate data directories.

        Returns:
            DirectoryReport listing created, preserved and purged paths.
        """
        report = DirectoryReport()
        self.layout.root.mkdir(mode=0o755, parents=True, exist_ok=True)

        for directory in self.layout.data_dirs:
            if directory.exists() and reset:
                log.warning("volumes.purging", path=str(directory))
                shutil.rmtree(directory)
                report.purged.append(directory)
            if directory.exists():
                log.info("volumes.preserved", path=str(directory))
                report.preserved.append(directory)
            else:
                directory.mkdir(mode=0o755)
                report.created.append(directory)

        hooks = self.layout.hooks_dir
        if hooks.exists():
            log.info("volumes.preserved", path=str(hooks))
            report.preserved.append(hooks)
        else:
            hooks.mkdir(mode=0o755)
            report.created.append(hooks)

        return report
