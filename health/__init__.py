# ============================================================================
# HEALTH CHECK MODULE
# ============================================================================
# STATUS: Infrastructure - Stack health aggregation
# PURPOSE: Single health endpoint for load balancers and deploy tooling
# ============================================================================
"""
Health Check Module

Aggregates the health of the application stack into one response:
- mysql: primary datastore connectivity (fatal when unreachable)
- object_cache: cache round-trip and alloptions coherency
- php: interpreter version and memory ceiling
- build: commit/version from the `.info` artifact
- wp: platform and schema versions

Architecture:
- HealthEvaluation: per-request state (timer, error collectors, sections)
- Probes (health.checks): one per section, sandboxed by the aggregator
- HealthAggregator: runs probes, derives the summary status, renders
- HealthHookRegistry: response / authorization extension points

Usage:
    from health import HealthAggregator, health_router, set_health_services

    set_health_services(HealthAggregator(datastore=..., cache=...))
    app.include_router(health_router)
"""

from health.core import (
    SummaryStatus,
    CacheStatus,
    EvaluationState,
    HealthCheckFailure,
    HealthEvaluation,
    HealthProbe,
    ErrorCollector,
    Timer,
)
from health.hooks import (
    HealthHookRegistry,
    get_hooks,
    on_response,
)
from health.request import HealthRequest
from health.aggregator import HealthAggregator
from health.router import health_router, set_health_services

__all__ = [
    # Core types
    "SummaryStatus",
    "CacheStatus",
    "EvaluationState",
    "HealthCheckFailure",
    "HealthEvaluation",
    "HealthProbe",
    "ErrorCollector",
    "Timer",
    # Hooks
    "HealthHookRegistry",
    "get_hooks",
    "on_response",
    # Request / aggregation
    "HealthRequest",
    "HealthAggregator",
    # Router
    "health_router",
    "set_health_services",
]
