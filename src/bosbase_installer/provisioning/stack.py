"""Stack management.

This module provides docker compose stack lifecycle management: teardown of
a previous instance, ordered start, status, stop and logs.
"""

from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from ..errors import StackStartError
from ..shared.logging import get_logger
from ..shared.paths import APP_COMPOSE_FILE, DB_COMPOSE_FILE, PROJECT_NAME
from .command import CommandRunner

log = get_logger(__name__)


class StackState(Enum):
    """State of the compose stack."""

    NOT_FOUND = "not_found"  # No compose file
    STOPPED = "stopped"  # Compose file exists, services down
    PARTIAL = "partial"  # Some services running
    RUNNING = "running"  # All services running


@dataclass
class StackStatus:
    """Status of the compose stack."""

    state: StackState
    running_services: list[str] = field(default_factory=list)
    stopped_services: list[str] = field(default_factory=list)
    message: str = ""


@dataclass(frozen=True)
class StackEntry:
    """A compose file in start order and whether `up` waits for health."""

    filename: str
    wait: bool = False


class StackManager:
    """Manage the compose stack under the installation root."""

    def __init__(
        self,
        install_dir: Path,
        runner: CommandRunner | None = None,
        entries: list[StackEntry] | None = None,
        project_name: str = PROJECT_NAME,
    ):
        """Initialize stack manager.

        Args:
            install_dir: Directory containing the compose files.
            runner: Command runner for docker commands.
            entries: Compose files in start order. Defaults to the data store
                file (waiting for health) followed by the application file.
            project_name: Compose project name shared by every file.
        """
        self.install_dir = install_dir
        self.runner = runner or CommandRunner()
        self.entries = entries or [
            StackEntry(DB_COMPOSE_FILE, wait=True),
            StackEntry(APP_COMPOSE_FILE),
        ]
        self.project_name = project_name

    @property
    def compose_file(self) -> Path:
        """The application compose file; its presence marks an installed stack."""
        return self.install_dir / APP_COMPOSE_FILE

    def _compose(self, filename: str, *args: str) -> list[str]:
        return ["docker", "compose", "--project-name", self.project_name, "-f", filename, *args]

    def start_commands(self) -> list[list[str]]:
        """`up` commands in dependency order."""
        commands = []
        for entry in self.entries:
            args = ["up", "-d"]
            if entry.wait:
                args.append("--wait")
            commands.append(self._compose(entry.filename, *args))
        return commands

    def stop_commands(self) -> list[list[str]]:
        """`down` commands in reverse dependency order."""
        return [self._compose(entry.filename, "down") for entry in reversed(self.entries)]

    def teardown_previous(self) -> bool:
        """Stop a previous instance if one was installed here.

        Best effort: a missing, already stopped or unreachable stack is not
        an error.

        Returns:
            True if a previous definition was found and down was issued.
        """
        if not self.compose_file.exists():
            return False

        log.info("stack.stopping_previous", project=self.project_name)
        for entry in reversed(self.entries):
            if not (self.install_dir / entry.filename).exists():
                continue
            result = self.runner.run(self._compose(entry.filename, "down"), cwd=self.install_dir)
            if not result.ok:
                log.debug("stack.teardown_ignored", detail=result.describe_failure())
        return True

    def up(self) -> list[str]:
        """Start every stack file in order.

        Returns:
            Names of the files started.

        Raises:
            StackStartError: If any `up` fails.
        """
        started = []
        for entry, argv in zip(self.entries, self.start_commands()):
            log.info("stack.starting", file=entry.filename, wait=entry.wait)
            self.runner.run(argv, cwd=self.install_dir).raise_for_failure(
                StackStartError,
                hint=f"check logs with: docker compose -p {self.project_name} -f "
                f"{entry.filename} logs",
            )
            started.append(entry.filename)
        log.info("stack.started", project=self.project_name)
        return started

    def down(self, remove_volumes: bool = False) -> tuple[bool, str]:
        """Stop stack.

        Args:
            remove_volumes: Whether to remove named volumes.

        Returns:
            Tuple of (success, message).
        """
        if not self.compose_file.exists():
            return False, f"No {APP_COMPOSE_FILE} found in {self.install_dir}"

        for argv in self.stop_commands():
            if remove_volumes:
                argv.append("-v")
            result = self.runner.run(argv, cwd=self.install_dir)
            if not result.ok:
                return False, f"Failed to stop stack: {result.describe_failure()}"

        return True, "Stack stopped successfully"

    def status(self) -> StackStatus:
        """Get current stack status.

        Returns:
            StackStatus with current state and service information.
        """
        if not self.compose_file.exists():
            return StackStatus(StackState.NOT_FOUND, message=f"No {APP_COMPOSE_FILE} found")

        services: list[dict] = []
        for entry in self.entries:
            if not (self.install_dir / entry.filename).exists():
                continue
            result = self.runner.run(
                self._compose(entry.filename, "ps", "--all", "--format", "json"),
                cwd=self.install_dir,
            )
            if result.returncode == 127:
                return StackStatus(
                    StackState.NOT_FOUND,
                    message="Docker not found. Is Docker installed?",
                )
            if not result.ok:
                return StackStatus(
                    StackState.STOPPED,
                    message=result.stderr.strip() or "Stack not running",
                )
            services.extend(_parse_ps(result.stdout))

        if not services:
            return StackStatus(StackState.STOPPED, message="No services found")

        running = [
            s.get("Service", s.get("Name", "unknown"))
            for s in services
            if s.get("State") == "running"
        ]
        stopped = [
            s.get("Service", s.get("Name", "unknown"))
            for s in services
            if s.get("State") != "running"
        ]

        if len(running) == 0:
            state = StackState.STOPPED
        elif len(stopped) == 0:
            state = StackState.RUNNING
        else:
            state = StackState.PARTIAL

        return StackStatus(state, running, stopped)

    def logs(
        self,
        service: str | None = None,
        follow: bool = False,
        tail: int | None = None,
    ) -> int:
        """Stream logs to the terminal.

        Args:
            service: Specific service to show logs for.
            follow: Whether to follow log output.
            tail: Number of lines to show from end.

        Returns:
            Exit status of docker compose.
        """
        args = ["docker", "compose", "--project-name", self.project_name]
        for entry in self.entries:
            args.extend(["-f", entry.filename])
        args.append("logs")
        if follow:
            args.append("-f")
        if tail:
            args.extend(["--tail", str(tail)])
        if service:
            args.append(service)

        # Output goes straight to the terminal, so this bypasses CommandRunner
        return subprocess.run(args, cwd=self.install_dir).returncode


def _parse_ps(output: str) -> list[dict]:
    """Parse `docker compose ps --format json` output.

    Compose emits one JSON object per line; older releases emit one array.
    """
    output = output.strip()
    if not output:
        return []
    if output.startswith("["):
        try:
            data = json.loads(output)
        except json.JSONDecodeError:
            return []
        return [s for s in data if isinstance(s, dict)]

    services = []
    for line in output.splitlines():
        if line.strip():
            try:
                services.append(json.loads(line))
            except json.JSONDecodeError:
                pass
    return services
