"""systemd integration.

Provides a thin systemctl wrapper shared by every stage, and the boot
persistence unit that replays the stack's ordered start and stop sequences.
"""

from __future__ import annotations

import shlex
from pathlib import Path

from jinja2 import Template

from ..errors import ServiceUnitError
from ..shared.logging import get_logger
from ..shared.paths import PROJECT_NAME, UNIT_NAME, SystemPaths
from .command import CommandResult, CommandRunner
from .files import atomic_write

log = get_logger(__name__)

UNIT_TEMPLATE = Template(
    """\
[Unit]
Description={{ description }}
Requires=docker.service
After=docker.service

[Service]
WorkingDirectory={{ working_directory }}
ExecStart=/bin/sh -c {{ exec_start }}
ExecStop=/bin/sh -c {{ exec_stop }}
TimeoutStartSec=0
RemainAfterExit=yes

[Install]
WantedBy=multi-user.target
"""
)


class Systemctl:
    """Issue systemctl commands through a CommandRunner."""

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def is_active(self, unit: str) -> bool:
        return self.runner.run(["systemctl", "is-active", "--quiet", unit]).ok

    def enable(self, unit: str, now: bool = False) -> CommandResult:
        argv = ["systemctl", "enable"]
        if now:
            argv.append("--now")
        return self.runner.run([*argv, unit])

    def start(self, unit: str, timeout: float | None = None) -> CommandResult:
        return self.runner.run(["systemctl", "start", unit], timeout=timeout)

    def reload(self, unit: str, timeout: float | None = None) -> CommandResult:
        return self.runner.run(["systemctl", "reload", unit], timeout=timeout)

    def restart(self, unit: str, timeout: float | None = None) -> CommandResult:
        return self.runner.run(["systemctl", "restart", unit], timeout=timeout)

    def daemon_reload(self) -> CommandResult:
        return self.runner.run(["systemctl", "daemon-reload"])


def render_unit(
    working_directory: Path,
    start_commands: list[list[str]],
    stop_commands: list[list[str]],
    description: str = "BosBase Docker Compose stack",
) -> str:
    """Render the boot unit.

    Args:
        working_directory: Installation root the compose commands run in.
        start_commands: Commands chained with && for ExecStart.
        stop_commands: Commands chained with && for ExecStop.
        description: Unit description.

    Returns:
        Unit file text.
    """

    def chain(commands: list[list[str]]) -> str:
        return shlex.quote(" && ".join(shlex.join(cmd) for cmd in commands))

    return UNIT_TEMPLATE.render(
        description=description,
        working_directory=working_directory,
        exec_start=chain(start_commands),
        exec_stop=chain(stop_commands),
    )


class BootUnitInstaller:
    """Install, enable and activate the stack's boot persistence unit."""

    def __init__(
        self,
        runner: CommandRunner,
        paths: SystemPaths | None = None,
        unit_name: str = UNIT_NAME,
    ):
        self.runner = runner
        self.paths = paths or SystemPaths()
        self.unit_name = unit_name
        self.systemctl = Systemctl(runner)

    @property
    def unit_path(self) -> Path:
        return self.paths.systemd_dir / self.unit_name

    def install(
        self,
        working_directory: Path,
        start_commands: list[list[str]],
        stop_commands: list[list[str]],
    ) -> Path:
        """Write the unit, reload systemd and enable it immediately.

        Returns:
            Path of the unit file.

        Raises:
            ServiceUnitError: If systemd rejects the unit.
        """
        content = render_unit(
            working_directory,
            start_commands,
            stop_commands,
            description=f"BosBase Docker Compose stack ({PROJECT_NAME})",
        )
        atomic_write(self.unit_path, content, mode=0o644)
        log.info("systemd.unit_written", unit=self.unit_name, path=str(self.unit_path))

        self.systemctl.daemon_reload().raise_for_failure(ServiceUnitError)
        self.systemctl.enable(self.unit_name, now=True).raise_for_failure(
            ServiceUnitError, hint=f"inspect with: journalctl -u {self.unit_name}"
        )
        log.info("systemd.unit_enabled", unit=self.unit_name)
        return self.unit_path

    def disable(self) -> CommandResult:
        """Stop and disable the unit (best effort)."""
        return self.runner.run(["systemctl", "disable", "--now", self.unit_name])
