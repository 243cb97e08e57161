# ============================================================================
# OBJECT CACHE HEALTH PROBE
# ============================================================================
# STATUS: Infrastructure - Cache availability and coherency
# PURPOSE: Sentinel round-trip, alloptions drift check, diagnostics, flush
# ============================================================================
"""
Object Cache Health Probe

Checks (all non-fatal, recorded in the `cache` collector):

1. Sentinel write       object-cache-unable-to-set
2. Sentinel read-back   object-cache-unable-to-get
3. alloptions snapshot  object-cache-alloptions (missing / not a mapping)
4. Per-option drift     object-cache-alloptions-option-<name> (missing)
                        object-cache-alloptions-cache_value-<name> (differs)

Datastore rows are always strings while cached values keep their scalar
type, so cached scalars are stringified before comparing. Every autoloaded
option is checked; the pass never stops early.

A flush runs only for `cli=flush|flushdb` on a privileged request, and is
reported in the `flush` field.
"""

from typing import Any, Dict

from core.logging import ComponentType, get_logger
from health.core import (
    HealthEvaluation,
    HealthProbe,
    ProbeContext,
    NAMESPACE_CACHE,
    SECTION_OBJECT_CACHE,
    CacheStatus,
    sort_fields,
)
from health.diagnostics import detect_cache_diagnostics

logger = get_logger(__name__, ComponentType.PROBE)

SENTINEL_KEY = "test"
SENTINEL_VALUE = 1
ALLOPTIONS_KEY = "alloptions"
OPTIONS_GROUP = "options"


def normalize_cache_value(value: Any) -> Any:
    """Render a cached scalar the way the datastore stores it."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "1" if value else ""
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    return value


def is_sentinel(value: Any) -> bool:
    return type(value) is int and value == SENTINEL_VALUE


class CacheProbe(HealthProbe):
    """`object_cache` section."""

    section = SECTION_OBJECT_CACHE
    collector_namespace = NAMESPACE_CACHE

    def run(self, evaluation: HealthEvaluation, context: ProbeContext) -> Dict[str, Any]:
        cache = context.cache
        errors = evaluation.cache_errors

        if cache is None:
            errors.add(errors.slug("unavailable"), "Object cache is not configured.")
            return sort_fields({
                "cache": None,
                "client": None,
                "errors": errors.all(),
                "flush": None,
                "hits": 0,
                "misses": 0,
                "status": CacheStatus.UNKNOWN.value,
            })

        self._check_round_trip(cache, errors)
        self._check_alloptions(cache, context.datastore, errors)

        fields: Dict[str, Any] = {
            "cache": None,
            "client": getattr(cache, "redis_client", None),
            "errors": None,
            "flush": None,
            "hits": getattr(cache, "cache_hits", 0),
            "misses": getattr(cache, "cache_misses", 0),
            "status": None,
        }
        fields.update(self._diagnostics(cache, errors))

        fields["errors"] = errors.all()

        request = context.request
        if request is not None and request.wants_flush and request.privileged:
            fields["flush"] = self._flush(cache)

        return sort_fields(fields)

    def _check_round_trip(self, cache: Any, errors) -> None:
        if not cache.set(SENTINEL_KEY, SENTINEL_VALUE):
            errors.add(errors.slug("unable-to-set"), "Unable to set object cache value.")

        if not is_sentinel(cache.get(SENTINEL_KEY)):
            errors.add(errors.slug("unable-to-get"), "Unable to get object cache value.")

    def _check_alloptions(self, cache: Any, datastore: Any, errors) -> None:
        alloptions: Dict[str, Any] = {}
        if datastore is not None:
            for row in datastore.autoload_options():
                alloptions[row["option_name"]] = row["option_value"]

        snapshot = cache.get(ALLOPTIONS_KEY, group=OPTIONS_GROUP)
        if not isinstance(snapshot, dict):
            errors.add(
                errors.slug("alloptions"),
                "Object cache returned no alloptions snapshot.",
            )
            return

        for option, value in alloptions.items():
            if option not in snapshot:
                errors.add(
                    errors.slug(f"alloptions-option-{option}"),
                    f"{option} option not found in cache",
                )
                continue

            if normalize_cache_value(snapshot[option]) != value:
                errors.add(
                    errors.slug(f"alloptions-cache_value-{option}"),
                    f"{option} value not the same in cache and DB.",
                )

    def _diagnostics(self, cache: Any, errors) -> Dict[str, Any]:
        strategy = detect_cache_diagnostics(cache)
        try:
            return strategy.fields()
        except Exception as e:
            logger.warning(f"Cache diagnostics ({strategy.name}) failed: {e}")
            errors.add(errors.slug("diagnostics-failed"), str(e))
            return {"status": CacheStatus.UNKNOWN.value}

    def _flush(self, cache: Any) -> str:
        logger.warning("Object cache flush requested through the health endpoint")
        reason = ""
        try:
            result = cache.flush()
        except Exception as e:
            reason = str(e)
            result = False

        if result:
            return "Object cache flushed."
        return f"Object cache could not be flushed. {reason}".strip()


__all__ = [
    "CacheProbe",
    "normalize_cache_value",
    "SENTINEL_KEY",
    "SENTINEL_VALUE",
    "ALLOPTIONS_KEY",
    "OPTIONS_GROUP",
]
