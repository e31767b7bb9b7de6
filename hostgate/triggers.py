"""External commands run after an entry changes state."""

import logging
import os
import subprocess
from collections.abc import Callable
from typing import Optional

logger = logging.getLogger(__name__)

ENTRY_ENV_VAR = "HOSTGATE_ENTRY"

# Called with the entry name after a lock or unlock
ExternalTrigger = Callable[[str], None]


class ShellTrigger:
    """Runs a shell command without waiting for it.

    The entry name is passed in the HOSTGATE_ENTRY environment variable.
    """

    def __init__(self, command: str) -> None:
        self.command = command

    def __call__(self, name: str) -> None:
        env = dict(os.environ)
        env[ENTRY_ENV_VAR] = name
        try:
            subprocess.Popen(
                ["sh", "-c", self.command],
                env=env,
                stdin=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            logger.error(f"Failed to run trigger for '{name}': {e}")

    def __repr__(self) -> str:
        return f"ShellTrigger({self.command!r})"


def make_trigger(command: Optional[str]) -> Optional[ExternalTrigger]:
    """Build a trigger for an optional config command."""
    if not command:
        return None
    return ShellTrigger(command)
