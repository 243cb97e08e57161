# ============================================================================
# HEALTH CHECK ROUTER
# ============================================================================
# STATUS: Infrastructure - FastAPI health endpoints
# PURPOSE: Map HTTP requests onto the health aggregator
# ============================================================================
"""
Health Check Router

Endpoints:
    GET /health        - Public health page. JSON when `?json` is present
                         or the request is `Content-Type: application/json`,
                         HTML otherwise. No authentication.

    GET /health/check  - Authenticated variant, always JSON. Requires a
                         valid token unless the require_authentication
                         hook returns something other than True.

Query parameters select sections (mysql, object_cache/redis, php, wp,
build); see health.request.

Response Codes:
    200 - Evaluated (summary status in the body)
    401 - Authentication required (/health/check only)
    416 - Evaluated, but the response was slow
    503 - Datastore unreachable, or service not initialized
"""

import logging
from typing import Optional

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from core.logging import log_context
from health.aggregator import HealthAggregator
from health.core import SummaryStatus
from health.hooks import get_hooks
from health.render import NO_CACHE_HEADERS, RenderedResponse
from health.request import HealthRequest

logger = logging.getLogger(__name__)

health_router = APIRouter(tags=["Health"])

# ============================================================================
# SERVICE REFERENCES (set by main.py)
# ============================================================================

_aggregator: Optional[HealthAggregator] = None


def set_health_services(aggregator: Optional[HealthAggregator]) -> None:
    """Set the aggregator used by the health routes."""
    global _aggregator
    _aggregator = aggregator


def get_aggregator() -> Optional[HealthAggregator]:
    return _aggregator


# ============================================================================
# HELPERS
# ============================================================================

def _parse_request(request: Request) -> HealthRequest:
    health_request = HealthRequest.from_http(request.query_params, request.headers)
    health_request.privileged = get_hooks().is_privileged(health_request)
    return health_request


def _to_response(rendered: RenderedResponse) -> Response:
    return Response(
        content=rendered.body,
        status_code=rendered.status_code,
        media_type=rendered.media_type,
        headers=rendered.headers,
    )


def _not_initialized() -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={
            "errors": "Health service not initialized",
            "status": SummaryStatus.FAILURE.value,
        },
        headers=NO_CACHE_HEADERS,
    )


def _evaluate(request: Request, health_request: HealthRequest, route: str) -> Response:
    aggregator = get_aggregator()
    if aggregator is None:
        logger.error("Health request received before the aggregator was set")
        return _not_initialized()

    started_at = getattr(request.state, "started_at", None)
    with log_context(route=route):
        rendered = aggregator.respond(health_request, started_at=started_at)
    return _to_response(rendered)


# ============================================================================
# ROUTES
# ============================================================================

@health_router.get("/health")
def health_page(request: Request) -> Response:
    """
    Public health check.

    Runs the requested sections and reports the summary status.
    """
    return _evaluate(request, _parse_request(request), route="health")


@health_router.get("/health/check")
def health_check(request: Request) -> Response:
    """
    Authenticated health check (always JSON).

    Authentication is skipped only when the require_authentication hook
    returns something other than True.
    """
    hooks = get_hooks()
    health_request = _parse_request(request)

    if hooks.require_authentication() and not hooks.is_authenticated(health_request):
        return JSONResponse(
            status_code=401,
            content={"detail": "Authentication required"},
            headers=NO_CACHE_HEADERS,
        )

    health_request.json_requested = True
    return _evaluate(request, health_request, route="health/check")


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "health_router",
    "set_health_services",
    "get_aggregator",
]
