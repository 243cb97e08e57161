# ============================================================================
# APPLICATION PLATFORM HEALTH PROBE
# ============================================================================
# STATUS: Infrastructure - Application platform version
# PURPOSE: `wp` section (code version, schema versions, admin CLI)
# ============================================================================
"""
Platform Health Probe

Reports:
- version: platform version the code ships
- schema_version: schema version the code expects
- db_version: schema version stored in the options table (`db_version`)
- cli: output of the configured admin CLI version command
- super_admin: whether the caller holds elevated privileges

Anything that cannot be determined is reported as UNKNOWN.
"""

from typing import Any, Dict, Optional, Sequence

from core.logging import ComponentType, get_logger
from health.commands import CommandRunner, DisabledCommandRunner
from health.core import (
    HealthEvaluation,
    HealthProbe,
    ProbeContext,
    SECTION_WP,
    STATUS_UNKNOWN,
    sort_fields,
)

logger = get_logger(__name__, ComponentType.PROBE)

DB_VERSION_OPTION = "db_version"


def parse_db_version(raw: Any) -> Any:
    """Numeric option value as int, else UNKNOWN."""
    if raw is None:
        return STATUS_UNKNOWN
    try:
        return int(float(str(raw).strip()))
    except (TypeError, ValueError, OverflowError):
        return STATUS_UNKNOWN


class PlatformProbe(HealthProbe):
    section = SECTION_WP

    def __init__(
        self,
        version: Optional[str] = None,
        schema_version: Optional[int] = None,
        command_runner: Optional[CommandRunner] = None,
        cli_command: Sequence[str] = (),
    ):
        self.version = version
        self.schema_version = schema_version
        self.command_runner = command_runner or DisabledCommandRunner()
        self.cli_command = list(cli_command)

    def run(self, evaluation: HealthEvaluation, context: ProbeContext) -> Dict[str, Any]:
        raw = None
        if context.datastore is not None:
            raw = context.datastore.get_option(DB_VERSION_OPTION)

        request = context.request
        return sort_fields({
            "cli": self._cli_version(),
            "db_version": parse_db_version(raw),
            "schema_version": self.schema_version if self.schema_version is not None else STATUS_UNKNOWN,
            "super_admin": bool(request is not None and request.privileged),
            "version": self.version or STATUS_UNKNOWN,
        })

    def _cli_version(self) -> str:
        try:
            output = self.command_runner.run(self.cli_command)
        except Exception as e:
            logger.warning(f"CLI version lookup failed: {e}")
            return STATUS_UNKNOWN
        return output or STATUS_UNKNOWN


__all__ = ["PlatformProbe", "parse_db_version", "DB_VERSION_OPTION"]
