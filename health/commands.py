# ============================================================================
# COMMAND RUNNER
# ============================================================================
# STATUS: Infrastructure - External CLI invocation
# PURPOSE: Isolate shelling out from the platform probe
# ============================================================================
"""
Command Runner

The platform section reports the version of the platform's admin CLI.
Running it is a side effect, so it goes through an injectable runner:

- SubprocessCommandRunner: runs the configured argv with a timeout
- DisabledCommandRunner: never runs anything (default when no command
  is configured, and in tests)

Both return None when no version is available; the probe turns that into
UNKNOWN.
"""

import logging
import subprocess
from typing import List, Optional, Protocol, Sequence

logger = logging.getLogger(__name__)


class CommandRunner(Protocol):
    def run(self, argv: Sequence[str]) -> Optional[str]:
        ...


class DisabledCommandRunner:
    """Runner that refuses to execute anything."""

    def run(self, argv: Sequence[str]) -> Optional[str]:
        return None


class SubprocessCommandRunner:
    """Run a command without a shell and return its trimmed stdout."""

    def __init__(self, timeout: float = 2.0):
        self.timeout = timeout

    def run(self, argv: Sequence[str]) -> Optional[str]:
        if not argv:
            return None

        try:
            completed = subprocess.run(
                list(argv),
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"Command {argv[0]!r} failed to run: {e}")
            return None

        if completed.returncode != 0:
            logger.warning(
                f"Command {argv[0]!r} exited with {completed.returncode}: "
                f"{completed.stderr.strip()[:200]}"
            )
            return None

        output = completed.stdout.strip()
        return output or None


def build_command_runner(argv: List[str], timeout: float = 2.0) -> CommandRunner:
    """Runner for the configured command (disabled when none is set)."""
    if not argv:
        return DisabledCommandRunner()
    return SubprocessCommandRunner(timeout=timeout)


__all__ = [
    "CommandRunner",
    "DisabledCommandRunner",
    "SubprocessCommandRunner",
    "build_command_runner",
]
