# ============================================================================
# HEALTH CHECK PROBES
# ============================================================================
# STATUS: Infrastructure - Section probe implementations
# PURPOSE: One probe per response section
# ============================================================================
"""
Health Check Probes

- DatastoreProbe (mysql): connection gate with failover, process list
- CacheProbe (object_cache): sentinel round-trip, alloptions drift, flush
- RuntimeProbe (php): interpreter version, memory ceiling
- BuildInfoReader (build): `.info` artifact
- PlatformProbe (wp): platform/schema versions, admin CLI version
"""

from health.checks.database import DatastoreProbe
from health.checks.cache import CacheProbe
from health.checks.runtime import RuntimeProbe
from health.checks.build import BuildInfoReader
from health.checks.application import PlatformProbe

__all__ = [
    "DatastoreProbe",
    "CacheProbe",
    "RuntimeProbe",
    "BuildInfoReader",
    "PlatformProbe",
]
