# ============================================================================
# HEALTH AGGREGATOR TESTS
# ============================================================================
# STATUS: Tests - End-to-end evaluation without HTTP
# PURPOSE: Verify probing order, summary status, short-circuit, hooks, render
# ============================================================================
"""
Health Aggregator Tests

Drives HealthAggregator with in-memory handles and an injected clock.

Run with:
    pytest tests/test_health_aggregator.py -v
"""

import json
import logging

import pytest
from unittest.mock import MagicMock

from health.aggregator import HealthAggregator, SLOW_MESSAGE
from health.commands import DisabledCommandRunner
from health.core import EvaluationState, HealthEvaluation, SummaryStatus
from health.render import NO_CACHE_HEADERS

from fakes import FakeCache, FakeDatastore, make_request, make_synced_cache


ALL_SECTIONS = {"mysql": "1", "object_cache": "1", "php": "1", "build": "1", "wp": "1"}
PAYLOAD_KEYS = ["build", "errors", "mysql", "object_cache", "php", "status", "wp"]


# ============================================================================
# HELPERS
# ============================================================================

def _make_aggregator(config, hooks, datastore=None, cache=None, fallback=None, clock=lambda: 0.5):
    datastore = datastore if datastore is not None else FakeDatastore()
    if cache is None:
        cache = make_synced_cache(datastore)
    return HealthAggregator(
        datastore=lambda: datastore,
        fallback=fallback,
        cache=lambda: cache,
        config=config,
        hooks=hooks,
        command_runner=DisabledCommandRunner(),
        clock=clock,
    )


def _all_sections_request(**extra):
    return make_request(**ALL_SECTIONS, **extra)


# ============================================================================
# SCENARIOS
# ============================================================================

class TestHealthyEvaluation:

    def test_all_sections_ok(self, config, hooks):
        datastore = FakeDatastore()
        aggregator = _make_aggregator(config, hooks, datastore=datastore)

        evaluation = aggregator.evaluate(_all_sections_request())
        payload = evaluation.payload

        assert list(payload) == PAYLOAD_KEYS
        assert payload["status"] == "OK"
        assert payload["errors"] is None
        assert evaluation.http_status == 200
        assert payload["mysql"]["errors"] is None
        assert payload["object_cache"]["errors"] is None
        assert payload["wp"]["version"] == "6.8.1"
        assert payload["wp"]["db_version"] == 57155
        assert evaluation.state is EvaluationState.AGGREGATING
        assert datastore.closed is True

    def test_no_flags_still_runs_gate(self, config, hooks):
        datastore = FakeDatastore()
        aggregator = _make_aggregator(config, hooks, datastore=datastore)

        payload = aggregator.evaluate(make_request()).payload

        assert datastore.num_queries == 1
        assert payload["status"] == "OK"
        for section in ("build", "mysql", "object_cache", "php", "wp"):
            assert payload[section] is None

    def test_only_requested_sections_populated(self, config, hooks):
        aggregator = _make_aggregator(config, hooks)

        payload = aggregator.evaluate(make_request(php="1", redis="1")).payload

        assert payload["php"] is not None
        assert payload["object_cache"] is not None
        assert payload["mysql"] is None
        assert payload["wp"] is None


class TestWarnings:

    def test_datastore_and_cache_errors_warn(self, config, hooks):
        datastore = FakeDatastore(processes=[])
        cache = FakeCache()
        aggregator = _make_aggregator(config, hooks, datastore=datastore, cache=cache)

        evaluation = aggregator.evaluate(_all_sections_request())

        assert evaluation.payload["status"] == "WARN"
        assert evaluation.http_status == 200
        assert "mysql-processlist-failed" in evaluation.payload["mysql"]["errors"]
        assert "object-cache-alloptions" in evaluation.payload["object_cache"]["errors"]

    def test_cache_errors_alone_stay_ok(self, config, hooks):
        aggregator = _make_aggregator(config, hooks, cache=FakeCache())

        payload = aggregator.evaluate(_all_sections_request()).payload

        assert payload["status"] == "OK"
        assert payload["object_cache"]["errors"] is not None

    def test_cache_write_failure_and_drift_with_healthy_datastore_is_ok(self, config, hooks):
        datastore = FakeDatastore(options={"siteurl": "https://a.test"})
        cache = FakeCache(set_ok=False)
        cache.set_alloptions({"siteurl": "https://stale.test"})
        aggregator = _make_aggregator(config, hooks, datastore=datastore, cache=cache)

        evaluation = aggregator.evaluate(make_request(mysql="1", object_cache="1"))

        assert set(evaluation.payload["object_cache"]["errors"]) == {
            "object-cache-unable-to-set",
            "object-cache-unable-to-get",
            "object-cache-alloptions-cache_value-siteurl",
        }
        assert evaluation.payload["mysql"]["errors"] is None
        assert evaluation.http_status == 200
        assert evaluation.payload["status"] == "OK"

    def test_warn_needs_errors_in_both_collectors(self, config, hooks):
        datastore = FakeDatastore(options={"siteurl": "https://a.test"}, last_error="lock wait timeout")
        cache = FakeCache(set_ok=False)
        cache.set_alloptions({"siteurl": "https://stale.test"})
        aggregator = _make_aggregator(config, hooks, datastore=datastore, cache=cache)

        evaluation = aggregator.evaluate(make_request(object_cache="1"))

        assert evaluation.mysql_errors.has_errors()
        assert evaluation.payload["status"] == "WARN"


class TestSlowResponse:

    def test_slow_response_is_416_but_ok(self, config, hooks):
        aggregator = _make_aggregator(config, hooks, clock=lambda: 5.2)

        evaluation = aggregator.evaluate(make_request(mysql="1"), started_at=0.0)

        assert evaluation.http_status == 416
        assert evaluation.status_code == 200
        assert evaluation.payload["status"] == "OK"
        assert evaluation.payload["errors"] == SLOW_MESSAGE.format(elapsed=5.2)
        assert evaluation.payload["mysql"]["errors"] == {
            "mysql-has-message": SLOW_MESSAGE.format(elapsed=5.2),
        }

    def test_caller_message_kept_when_slow(self, config, hooks):
        aggregator = _make_aggregator(config, hooks, clock=lambda: 5.2)

        evaluation = aggregator.evaluate(make_request(), started_at=0.0, message="maintenance")

        assert evaluation.http_status == 416
        assert evaluation.payload["errors"] == "maintenance"

    def test_threshold_from_config(self, config, hooks):
        config.slow_threshold_seconds = 10.0
        aggregator = _make_aggregator(config, hooks, clock=lambda: 5.2)

        evaluation = aggregator.evaluate(make_request(), started_at=0.0)

        assert evaluation.http_status == 200


class TestShortCircuit:

    def test_unreachable_datastore_is_failure(self, config, hooks):
        datastore = FakeDatastore(connected=False, last_error="connection refused")
        aggregator = _make_aggregator(config, hooks, datastore=datastore)

        evaluation = aggregator.evaluate(_all_sections_request())
        payload = evaluation.payload

        assert evaluation.fatal is True
        assert evaluation.http_status == 503
        assert payload["status"] == "FAILURE"
        assert "connection refused" in payload["errors"]
        for section in ("build", "mysql", "object_cache", "php", "wp"):
            assert payload[section] is None

    def test_skipped_sections_logged_after_fatal(self, config, hooks, caplog):
        datastore = FakeDatastore(connected=False)
        aggregator = _make_aggregator(config, hooks, datastore=datastore)

        with caplog.at_level(logging.WARNING, logger="health.aggregator"):
            aggregator.evaluate(make_request(php="1", wp="1"))

        assert "Sections skipped after fatal failure: ['php', 'wp']" in caplog.text

    def test_no_skip_warning_when_healthy(self, config, hooks, caplog):
        with caplog.at_level(logging.WARNING, logger="health.aggregator"):
            _make_aggregator(config, hooks).evaluate(make_request(php="1"))

        assert "Sections skipped" not in caplog.text

    def test_fallback_keeps_evaluation_going(self, config, hooks):
        primary = FakeDatastore(connected=False, last_error="primary down")
        replica = FakeDatastore(is_fallback=True)
        aggregator = _make_aggregator(
            config, hooks, datastore=primary,
            cache=make_synced_cache(replica), fallback=lambda: replica,
        )

        evaluation = aggregator.evaluate(_all_sections_request())

        assert evaluation.http_status == 200
        assert evaluation.payload["mysql"]["errors"] == {"mysql-has-error": "primary down"}
        assert replica.closed is True

    def test_unexpected_gate_error_is_failure(self, config, hooks):
        def broken():
            raise RuntimeError("pool exhausted")

        aggregator = HealthAggregator(
            datastore=broken, config=config, hooks=hooks,
            command_runner=DisabledCommandRunner(), clock=lambda: 0.5,
        )

        evaluation = aggregator.evaluate(make_request(php="1"))

        assert evaluation.http_status == 503
        assert evaluation.payload["status"] == "FAILURE"
        assert evaluation.payload["errors"] == "Health check failed: pool exhausted"


class TestSandboxing:

    def _failing_probe(self, section, namespace=None):
        probe = MagicMock()
        probe.section = section
        probe.collector_namespace = namespace
        probe.run.side_effect = RuntimeError("boom")
        return probe

    def test_failing_probe_does_not_stop_others(self, config, hooks):
        aggregator = _make_aggregator(config, hooks)
        aggregator.probes["php"] = self._failing_probe("php")

        payload = aggregator.evaluate(_all_sections_request()).payload

        assert payload["php"] == {
            "errors": {"php-probe-failed": "RuntimeError: boom"},
            "status": "UNKNOWN",
        }
        assert payload["wp"] is not None
        assert payload["build"] is not None
        assert payload["status"] == "OK"

    def test_failing_probe_with_collector(self, config, hooks):
        aggregator = _make_aggregator(config, hooks)
        aggregator.probes["mysql"] = self._failing_probe("mysql", "mysql")

        evaluation = aggregator.evaluate(make_request(mysql="1"))

        assert evaluation.payload["mysql"]["errors"] == {"mysql-probe-failed": "RuntimeError: boom"}
        assert "mysql-probe-failed" in evaluation.mysql_errors

    def test_cache_provider_failure_recorded(self, config, hooks):
        def broken_cache():
            raise ConnectionError("redis unreachable")

        aggregator = HealthAggregator(
            datastore=lambda: FakeDatastore(), cache=broken_cache, config=config,
            hooks=hooks, command_runner=DisabledCommandRunner(), clock=lambda: 0.5,
        )

        section = aggregator.evaluate(make_request(object_cache="1")).payload["object_cache"]

        assert section["errors"]["object-cache-connect-failed"] == "redis unreachable"
        assert section["status"] == "UNKNOWN"


class TestResponseHooks:

    def test_hook_runs_once_and_sees_sections(self, config, hooks):
        seen = []

        def add_region(payload, evaluation):
            seen.append(payload["php"] is not None)
            payload["region"] = "eu-west-1"

        hooks.add_response_hook(add_region)
        aggregator = _make_aggregator(config, hooks)

        payload = aggregator.evaluate(make_request(php="1")).payload

        assert seen == [True]
        assert payload["region"] == "eu-west-1"
        assert list(payload) == sorted(payload)

    def test_hooks_run_in_priority_order(self, config, hooks):
        order = []
        hooks.add_response_hook(lambda p, e: order.append("late"), priority=50, name="late")
        hooks.add_response_hook(lambda p, e: order.append("early"), priority=1, name="early")

        _make_aggregator(config, hooks).evaluate(make_request())

        assert order == ["early", "late"]

    def test_failing_hook_is_skipped(self, config, hooks):
        def broken(payload, evaluation):
            raise ValueError("bad hook")

        hooks.add_response_hook(broken, priority=1)
        hooks.add_response_hook(lambda p, e: p.update(extra=True), priority=2)

        payload = _make_aggregator(config, hooks).evaluate(make_request()).payload

        assert payload["extra"] is True

    def test_hooks_run_on_short_circuit(self, config, hooks):
        calls = []
        hooks.add_response_hook(lambda p, e: calls.append(e.fatal))
        datastore = FakeDatastore(connected=False)

        _make_aggregator(config, hooks, datastore=datastore).evaluate(make_request())

        assert calls == [True]


# ============================================================================
# RENDERING
# ============================================================================

class TestRendering:

    def test_json_response(self, config, hooks):
        aggregator = _make_aggregator(config, hooks)

        rendered = aggregator.respond(make_request(json=True, php="1"))

        assert rendered.status_code == 200
        assert rendered.media_type == "application/json"
        assert rendered.headers == NO_CACHE_HEADERS
        body = json.loads(rendered.body)
        assert list(body) == PAYLOAD_KEYS
        assert body["status"] == "OK"

    def test_compact_json(self, config, hooks):
        config.pretty_json = False
        rendered = _make_aggregator(config, hooks).respond(make_request(json=True))
        assert "\n" not in rendered.body

    def test_html_response(self, config, hooks):
        aggregator = _make_aggregator(config, hooks)

        rendered = aggregator.respond(make_request(php="1"))

        assert rendered.media_type == "text/html"
        assert "<title>Status: OK</title>" in rendered.body
        assert "<strong>php</strong>" in rendered.body
        assert "<strong>memory_limit</strong>" in rendered.body

    def test_html_escapes_values(self, config, hooks):
        hooks.add_response_hook(lambda p, e: p.update(note="<script>x</script>"))

        rendered = _make_aggregator(config, hooks).respond(make_request())

        assert "<script>" not in rendered.body
        assert "&lt;script&gt;" in rendered.body

    def test_render_only_once(self, config, hooks):
        aggregator = _make_aggregator(config, hooks)
        request = make_request(json=True)
        evaluation = aggregator.evaluate(request)

        aggregator.render(evaluation, request)

        assert evaluation.state is EvaluationState.RENDERED
        with pytest.raises(RuntimeError):
            aggregator.render(evaluation, request)

    def test_render_requires_aggregated_evaluation(self, config, hooks):
        evaluation = HealthEvaluation.create([])

        with pytest.raises(RuntimeError):
            _make_aggregator(config, hooks).render(evaluation, make_request())


class TestSummaryStatus:

    def test_both_collectors_warn_over_code(self):
        evaluation = HealthEvaluation.create([])
        evaluation.status_code = 503
        evaluation.mysql_errors.add("mysql-has-error", "x")
        evaluation.cache_errors.add("object-cache-unable-to-set", "y")

        assert HealthAggregator.summary_status(evaluation) is SummaryStatus.WARN

    def test_code_decides_otherwise(self):
        evaluation = HealthEvaluation.create([])
        evaluation.status_code = 503
        evaluation.mysql_errors.add("mysql-has-error", "x")

        assert HealthAggregator.summary_status(evaluation) is SummaryStatus.FAILURE
