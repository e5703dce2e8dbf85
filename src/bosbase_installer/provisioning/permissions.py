"""Container runtime access for the target user."""

from __future__ import annotations

from pathlib import Path

from ..errors import PermissionSetupError
from ..shared.logging import get_logger
from .command import CommandRunner

log = get_logger(__name__)

DOCKER_GROUP = "docker"


class PermissionManager:
    """Grant a user access to the Docker daemon through the docker group."""

    def __init__(self, runner: CommandRunner, group: str = DOCKER_GROUP):
        self.runner = runner
        self.group = group

    def ensure_access(self, user: str) -> bool:
        """Create the group if needed and add the user to it.

        groupadd -f and usermod -aG are both no-ops on already satisfied
        state, so this is safe to repeat.

        Args:
            user: Operating-system user name.

        Returns:
            True if the user was added to the group, False for root.

        Raises:
            PermissionSetupError: If the user does not exist or a command fails.
        """
        self.runner.run(["groupadd", "-f", self.group]).raise_for_failure(PermissionSetupError)

        if user == "root":
            log.debug("permissions.root_skipped")
            return False

        if not self.runner.run(["id", "-u", user]).ok:
            raise PermissionSetupError(f"User '{user}' does not exist.", hint="pass --user")

        self.runner.run(["usermod", "-aG", self.group, user]).raise_for_failure(
            PermissionSetupError
        )
        log.info("permissions.granted", user=user, group=self.group)
        return True

    def hand_over(self, user: str, path: Path) -> None:
        """Give the user and the group ownership of the installation root."""
        self.runner.run(["chown", "-R", f"{user}:{self.group}", str(path)]).raise_for_failure(
            PermissionSetupError
        )
        log.debug("permissions.chown", user=user, path=str(path))
