# ============================================================================
# RUNTIME HEALTH PROBE
# ============================================================================
# STATUS: Infrastructure - Interpreter facts
# PURPOSE: `php` section (memory ceiling and interpreter version)
# ============================================================================
"""
Runtime Health Probe

Reads two facts about the running interpreter. No external calls and no
failure mode.
"""

import platform
from typing import Any, Dict

try:
    import resource
except ImportError:  # not available on Windows
    resource = None

from health.core import (
    HealthEvaluation,
    HealthProbe,
    ProbeContext,
    SECTION_PHP,
    STATUS_UNKNOWN,
    sort_fields,
)

MEGABYTE = 1024 * 1024


def memory_limit() -> str:
    """Address-space ceiling of this process."""
    if resource is None:
        return STATUS_UNKNOWN

    try:
        soft, _ = resource.getrlimit(resource.RLIMIT_AS)
    except (ValueError, OSError):
        return STATUS_UNKNOWN

    if soft == resource.RLIM_INFINITY or soft < 0:
        return "unlimited"
    return f"{soft // MEGABYTE}M"


class RuntimeProbe(HealthProbe):
    section = SECTION_PHP

    def run(self, evaluation: HealthEvaluation, context: ProbeContext) -> Dict[str, Any]:
        return sort_fields({
            "memory_limit": memory_limit(),
            "version": platform.python_version(),
        })


__all__ = ["RuntimeProbe", "memory_limit"]
