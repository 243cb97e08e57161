# ============================================================================
# CACHE DIAGNOSTICS
# ============================================================================
# STATUS: Infrastructure - Cache backend capability detection
# PURPOSE: Pick one diagnostics strategy per evaluation
# ============================================================================
"""
Cache Diagnostics

Object cache backends expose different amounts of self-reporting. The
strategy is chosen once per evaluation by detect_cache_diagnostics():

1. RichDiagnostics: backend has diagnostics() returning a mapping
2. SimpleStatus: backend has redis_status() returning a bool
3. UnknownDiagnostics: neither; status is UNKNOWN
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict

from health.core import CacheStatus

logger = logging.getLogger(__name__)


class CacheDiagnostics(ABC):
    """Produces the diagnostic fields of the object_cache section."""

    name: str = "unknown"

    def __init__(self, cache: Any):
        self.cache = cache

    @abstractmethod
    def fields(self) -> Dict[str, Any]:
        """Fields merged into the section; always includes `status`."""


class RichDiagnostics(CacheDiagnostics):
    name = "rich"

    KEYS = ("cache", "connector", "redis_py", "server_version")

    def fields(self) -> Dict[str, Any]:
        report = self.cache.diagnostics() or {}
        fields = {
            key: report.get(key) or CacheStatus.UNKNOWN.value
            for key in self.KEYS
        }
        fields["status"] = report.get("status") or CacheStatus.UNKNOWN.value
        return fields


class SimpleStatus(CacheDiagnostics):
    name = "simple"

    def fields(self) -> Dict[str, Any]:
        connected = self.cache.redis_status()
        status = CacheStatus.CONNECTED if connected else CacheStatus.NOT_CONNECTED
        return {"status": status.value}


class UnknownDiagnostics(CacheDiagnostics):
    name = "unknown"

    def fields(self) -> Dict[str, Any]:
        return {"status": CacheStatus.UNKNOWN.value}


def detect_cache_diagnostics(cache: Any) -> CacheDiagnostics:
    """Select the richest strategy the backend supports."""
    if callable(getattr(cache, "diagnostics", None)):
        return RichDiagnostics(cache)
    if callable(getattr(cache, "redis_status", None)):
        return SimpleStatus(cache)
    return UnknownDiagnostics(cache)


__all__ = [
    "CacheDiagnostics",
    "RichDiagnostics",
    "SimpleStatus",
    "UnknownDiagnostics",
    "detect_cache_diagnostics",
]
