# ============================================================================
# HEALTH RESPONSE AGGREGATOR
# ============================================================================
# STATUS: Infrastructure - Evaluation orchestration
# PURPOSE: Run probes, derive the summary status, render the response
# ============================================================================
"""
Health Response Aggregator

Drives one evaluation through INIT -> PROBING -> AGGREGATING -> RENDERED.

PROBING:
1. Datastore gate (always). An unreachable datastore raises
   HealthCheckFailure and skips straight to AGGREGATING with the
   exception's status code; sections not yet probed stay null.
2. Slow check. Past the threshold the HTTP status becomes 416 while the
   summary keeps using 200, so status-field consumers still read OK.
3. Requested sections in order: mysql, object_cache, php, build, wp.
   Each probe is sandboxed; an unexpected exception is recorded as data
   and the next probe still runs.

AGGREGATING:
- Both the datastore and cache collectors hold errors -> WARN
- Otherwise the HTTP-status-like code decides (see SummaryStatus)
- Response hooks run exactly once, then the payload is sorted by key.

RENDERED:
- JSON (when asked for) or HTML, with no-cache headers. One shot.

Usage:
    aggregator = HealthAggregator(datastore=..., cache=...)
    rendered = aggregator.respond(HealthRequest.from_http(query, headers))
"""

import time
from typing import Any, Callable, Dict, Optional

from __version__ import __version__
from core.config import HealthConfig, get_config
from core.logging import get_logger, log_checkpoint, log_context, ComponentType
from health.checks.application import PlatformProbe
from health.checks.build import BuildInfoReader
from health.checks.cache import CacheProbe
from health.checks.database import DatastoreProbe, HandleProvider, close_handle
from health.checks.runtime import RuntimeProbe
from health.commands import CommandRunner, build_command_runner
from health.core import (
    SECTIONS,
    SECTION_BUILD,
    SECTION_MYSQL,
    SECTION_OBJECT_CACHE,
    SECTION_PHP,
    SECTION_WP,
    STATUS_UNKNOWN,
    EvaluationState,
    HealthCheckFailure,
    HealthEvaluation,
    HealthProbe,
    ProbeContext,
    SummaryStatus,
    sort_fields,
)
from health.hooks import HealthHookRegistry, get_hooks
from health.render import (
    HTML_MEDIA_TYPE,
    JSON_MEDIA_TYPE,
    RenderedResponse,
    render_html,
    render_json,
)
from health.request import HealthRequest

logger = get_logger(__name__, ComponentType.AGGREGATOR)

HTTP_RANGE_NOT_SATISFIABLE = 416
HTTP_SERVICE_UNAVAILABLE = 503

SLOW_MESSAGE = "Application loaded, but the response time is slow. Current response is {elapsed:.2f}s."


class HealthAggregator:
    """
    Orchestrates the probes for one request at a time.

    The aggregator itself is stateless between requests and may be shared
    by concurrent handlers; all per-request state lives on the
    HealthEvaluation it creates.
    """

    def __init__(
        self,
        datastore: Optional[HandleProvider] = None,
        fallback: Optional[HandleProvider] = None,
        cache: Optional[Callable[[], Any]] = None,
        config: Optional[HealthConfig] = None,
        hooks: Optional[HealthHookRegistry] = None,
        command_runner: Optional[CommandRunner] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            datastore: Returns the primary datastore handle per evaluation
            fallback: Returns the failover datastore handle (optional)
            cache: Returns the object cache handle per evaluation
            config: Health configuration (global config if None)
            hooks: Hook registry (global registry if None)
            command_runner: Runner for the platform CLI version command
            clock: Monotonic clock, injectable for tests
        """
        self.config = config if config is not None else get_config()
        self.hooks = hooks if hooks is not None else get_hooks()
        self.clock = clock
        self._cache_provider = cache

        runner = command_runner or build_command_runner(
            self.config.cli_version_command,
            timeout=self.config.cli_timeout_seconds,
        )

        self.datastore_probe = DatastoreProbe(datastore, fallback)
        self.probes: Dict[str, HealthProbe] = {
            SECTION_MYSQL: self.datastore_probe,
            SECTION_OBJECT_CACHE: CacheProbe(),
            SECTION_PHP: RuntimeProbe(),
            SECTION_BUILD: BuildInfoReader(self.config.app_root),
            SECTION_WP: PlatformProbe(
                version=self.config.platform_version or __version__,
                schema_version=self.config.schema_version,
                command_runner=runner,
                cli_command=self.config.cli_version_command,
            ),
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def respond(
        self,
        request: HealthRequest,
        started_at: Optional[float] = None,
        message: Optional[str] = None,
    ) -> RenderedResponse:
        """Evaluate and render in one call."""
        evaluation = self.evaluate(request, started_at=started_at, message=message)
        return self.render(evaluation, request)

    def evaluate(
        self,
        request: HealthRequest,
        started_at: Optional[float] = None,
        message: Optional[str] = None,
    ) -> HealthEvaluation:
        """
        Run every requested probe and aggregate the payload.

        Args:
            request: Parsed request
            started_at: Monotonic request start (from the routing layer)
            message: Caller-supplied top-level message

        Returns:
            Evaluation in the AGGREGATING state, payload populated
        """
        evaluation = HealthEvaluation.create(
            request.requested_sections(),
            started_at=started_at,
            clock=self.clock,
            message=message,
        )

        with log_context(evaluation_id=evaluation.evaluation_id):
            log_checkpoint("evaluation_init", {
                "sections": sorted(evaluation.requested_sections),
            })

            evaluation.transition(EvaluationState.PROBING)
            context = ProbeContext(request=request)
            try:
                self._probe(evaluation, context)
            except HealthCheckFailure as e:
                self._short_circuit(evaluation, str(e), e.status_code)
            except Exception as e:
                logger.error(f"Unexpected failure while probing: {e}", exc_info=True)
                self._short_circuit(evaluation, f"Health check failed: {e}", HTTP_SERVICE_UNAVAILABLE)
            finally:
                if context.datastore is not None:
                    close_handle(context.datastore)

            self._aggregate(evaluation)

        return evaluation

    def render(self, evaluation: HealthEvaluation, request: HealthRequest) -> RenderedResponse:
        """
        Serialize an aggregated evaluation.

        Raises:
            RuntimeError: Evaluation not aggregated, or already rendered
        """
        if evaluation.state is not EvaluationState.AGGREGATING:
            raise RuntimeError(
                f"Cannot render evaluation in state {evaluation.state.value}"
            )

        if request.wants_json:
            pretty = self.config.pretty_json or request.pretty
            body = render_json(evaluation.payload, pretty=pretty)
            media_type = JSON_MEDIA_TYPE
        else:
            body = render_html(evaluation.payload, evaluation.summary_status.value)
            media_type = HTML_MEDIA_TYPE

        evaluation.transition(EvaluationState.RENDERED)
        with log_context(evaluation_id=evaluation.evaluation_id):
            log_checkpoint("evaluation_rendered", {"http_status": evaluation.http_status})

        return RenderedResponse(
            status_code=evaluation.http_status,
            body=body,
            media_type=media_type,
        )

    @staticmethod
    def summary_status(evaluation: HealthEvaluation) -> SummaryStatus:
        """Coarse verdict for the `status` field."""
        if evaluation.mysql_errors.has_errors() and evaluation.cache_errors.has_errors():
            return SummaryStatus.WARN
        return SummaryStatus.from_status_code(evaluation.status_code)

    # ------------------------------------------------------------------
    # PROBING
    # ------------------------------------------------------------------

    def _probe(self, evaluation: HealthEvaluation, context: ProbeContext) -> None:
        context.datastore = self.datastore_probe.connect(evaluation)

        if evaluation.timer.is_slow(self.config.slow_threshold_seconds):
            self._mark_slow(evaluation)

        for section in SECTIONS:
            if not evaluation.is_requested(section):
                continue

            if section == SECTION_OBJECT_CACHE:
                context.cache = self._open_cache(evaluation)

            evaluation.sections[section] = self._run_sandboxed(
                self.probes[section], evaluation, context
            )

    def _open_cache(self, evaluation: HealthEvaluation) -> Any:
        if self._cache_provider is None:
            return None

        try:
            return self._cache_provider()
        except Exception as e:
            logger.warning(f"Object cache handle unavailable: {e}")
            errors = evaluation.cache_errors
            errors.add(errors.slug("connect-failed"), str(e))
            return None

    def _mark_slow(self, evaluation: HealthEvaluation) -> None:
        elapsed = evaluation.timer.elapsed()
        evaluation.http_status = HTTP_RANGE_NOT_SATISFIABLE
        if not evaluation.top_level_message:
            evaluation.top_level_message = SLOW_MESSAGE.format(elapsed=elapsed)
        logger.warning(
            f"Slow health response: {elapsed:.2f}s "
            f"(threshold {self.config.slow_threshold_seconds}s)"
        )

    def _run_sandboxed(
        self,
        probe: HealthProbe,
        evaluation: HealthEvaluation,
        context: ProbeContext,
    ) -> Dict[str, Any]:
        with log_context(section=probe.section):
            try:
                return probe.run(evaluation, context)
            except Exception as e:
                logger.error(f"Probe {probe.section} failed: {e}", exc_info=True)
                message = f"{type(e).__name__}: {e}"

                if probe.collector_namespace:
                    collector = evaluation.collectors[probe.collector_namespace]
                    collector.add(collector.slug("probe-failed"), message)
                    errors = collector.all()
                else:
                    errors = {f"{probe.section}-probe-failed": message}

                return sort_fields({"errors": errors, "status": STATUS_UNKNOWN})

    def _short_circuit(self, evaluation: HealthEvaluation, message: str, status_code: int) -> None:
        logger.error(f"Health evaluation short-circuited ({status_code}): {message}")
        evaluation.fatal = True
        evaluation.status_code = status_code
        evaluation.http_status = status_code
        evaluation.top_level_message = message

    # ------------------------------------------------------------------
    # AGGREGATING
    # ------------------------------------------------------------------

    def _aggregate(self, evaluation: HealthEvaluation) -> None:
        evaluation.transition(EvaluationState.AGGREGATING)
        evaluation.summary_status = self.summary_status(evaluation)

        sections = evaluation.sections
        payload: Dict[str, Any] = {
            "build": sections[SECTION_BUILD],
            "errors": evaluation.top_level_message,
            "mysql": sections[SECTION_MYSQL],
            "object_cache": sections[SECTION_OBJECT_CACHE],
            "php": sections[SECTION_PHP],
            "status": evaluation.summary_status.value,
            "wp": sections[SECTION_WP],
        }

        if not evaluation.hooks_applied:
            evaluation.hooks_applied = True
            self.hooks.apply_response_hooks(payload, evaluation)

        evaluation.payload = sort_fields(payload)

        log_checkpoint("evaluation_aggregated", {
            "summary": evaluation.summary_status.value,
            "fatal": evaluation.fatal,
        })
        if evaluation.fatal:
            skipped = sorted(
                name for name in evaluation.requested_sections
                if evaluation.sections[name] is None
            )
            logger.warning(f"Sections skipped after fatal failure: {skipped}")

        logger.info(
            f"Health evaluation complete: status={evaluation.summary_status.value} "
            f"http={evaluation.http_status} elapsed={evaluation.timer.elapsed():.3f}s"
        )


__all__ = [
    "HealthAggregator",
    "SLOW_MESSAGE",
]
