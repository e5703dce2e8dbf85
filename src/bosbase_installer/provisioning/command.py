"""External command execution.

Every host command the installer issues goes through CommandRunner, which
never raises on a non-zero exit. Call sites decide whether a failure is
fatal, a warning, or ignorable by inspecting the CommandResult.
"""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from ..errors import CommandFailedError, ProvisioningError
from ..shared.logging import get_logger

log = get_logger(__name__)


@dataclass
class CommandResult:
    """Outcome of one external command invocation."""

    argv: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        """True when the command ran to completion with exit status 0."""
        return self.returncode == 0 and not self.timed_out

    @property
    def command_line(self) -> str:
        return " ".join(self.argv)

    def describe_failure(self) -> str:
        if self.timed_out:
            return f"`{self.command_line}` timed out"
        detail = self.stderr.strip() or self.stdout.strip()
        message = f"`{self.command_line}` exited with status {self.returncode}"
        return f"{message}: {detail}" if detail else message

    def raise_for_failure(
        self, error_cls: type[ProvisioningError] | None = None, hint: str | None = None
    ) -> CommandResult:
        """Raise if the command failed, otherwise return self.

        Args:
            error_cls: ProvisioningError subclass to raise (default CommandFailedError)
            hint: Optional operator hint attached to the error

        Returns:
            This result, for chaining.
        """
        if self.ok:
            return self
        if error_cls is None:
            raise CommandFailedError(
                self.describe_failure(),
                hint=hint,
                returncode=self.returncode,
                stderr=self.stderr,
            )
        raise error_cls(self.describe_failure(), hint=hint)


class CommandRunner:
    """Run host commands and capture their output."""

    def which(self, program: str) -> str | None:
        """Return the resolved path of a program, or None if not invocable."""
        return shutil.which(program)

    def run(
        self,
        argv: list[str],
        timeout: float | None = None,
        cwd: Path | None = None,
        input_text: str | None = None,
    ) -> CommandResult:
        """Run a command to completion.

        Args:
            argv: Program and arguments.
            timeout: Seconds before the command is killed (None waits forever).
            cwd: Working directory.
            input_text: Text fed to the command's stdin.

        Returns:
            CommandResult describing the outcome. A missing executable is
            reported as returncode 127, matching the shell.
        """
        log.debug("command.run", argv=argv, cwd=str(cwd) if cwd else None, timeout=timeout)
        try:
            completed = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=timeout,
                cwd=cwd,
                input=input_text,
            )
        except subprocess.TimeoutExpired as e:
            return CommandResult(
                argv,
                returncode=-1,
                stdout=_decode(e.stdout),
                stderr=_decode(e.stderr),
                timed_out=True,
            )
        except FileNotFoundError as e:
            return CommandResult(argv, returncode=127, stderr=str(e))

        return CommandResult(
            argv,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )


def _decode(output: str | bytes | None) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode(errors="replace")
    return output
