# ============================================================================
# DATASTORE HEALTH PROBE
# ============================================================================
# STATUS: Infrastructure - Primary datastore connectivity
# PURPOSE: Connection gate with failover, and the `mysql` section
# ============================================================================
"""
Datastore Health Probe

Two operations:

connect()
    Runs on every evaluation before any section. Confirms the primary
    datastore answers, recording the driver's last error in the `mysql`
    collector. When the primary cannot connect, one fallback handle
    (the failover datastore, when configured) is tried. No handle, or no
    working fallback, raises HealthCheckFailure: the datastore is absent
    and the evaluation short-circuits with 503.

run()
    Builds the `mysql` section: a process-list query, driver and handle
    class names, and the number of queries issued during the evaluation.

Handles are duck-typed; they need suppress_errors(), connect_check(),
last_error, process_list(), num_queries and optionally connection,
is_fallback and close().
"""

from typing import Any, Callable, Dict, Optional

from core.logging import ComponentType, get_logger
from health.core import (
    HealthCheckFailure,
    HealthEvaluation,
    HealthProbe,
    ProbeContext,
    NAMESPACE_MYSQL,
    SECTION_MYSQL,
    STATUS_UNKNOWN,
    SummaryStatus,
    sort_fields,
)

logger = get_logger(__name__, ComponentType.PROBE)

HandleProvider = Callable[[], Any]

MISSING_HANDLE_MESSAGE = "Application couldn't load the datastore handle."
MISSING_FALLBACK_MESSAGE = "Application couldn't load the fallback datastore handle."
NOT_CONNECTED_MESSAGE = "Application loaded, but could not connect to the datastore."


def close_handle(handle: Any) -> None:
    close = getattr(handle, "close", None)
    if callable(close):
        try:
            close()
        except Exception as e:
            logger.warning(f"Failed to close datastore handle: {e}")


class DatastoreProbe(HealthProbe):
    """Primary datastore gate and `mysql` section."""

    section = SECTION_MYSQL
    collector_namespace = NAMESPACE_MYSQL

    def __init__(
        self,
        datastore: Optional[HandleProvider],
        fallback: Optional[HandleProvider] = None,
    ):
        """
        Args:
            datastore: Returns the primary handle for this evaluation
            fallback: Returns a handle for the secondary datastore; None
                when no failover is configured
        """
        self._datastore = datastore
        self._fallback = fallback

    @property
    def has_fallback(self) -> bool:
        return self._fallback is not None

    def connect(self, evaluation: HealthEvaluation) -> Any:
        """
        Open and verify the datastore handle for this evaluation.

        Returns:
            A connected handle (primary, or fallback after failover)

        Raises:
            HealthCheckFailure: The datastore is unreachable
        """
        errors = evaluation.mysql_errors

        handle = self._datastore() if self._datastore is not None else None
        if handle is None:
            raise HealthCheckFailure(MISSING_HANDLE_MESSAGE)

        handle.suppress_errors()
        connected = handle.connect_check()

        if handle.last_error:
            errors.add(errors.slug("has-error"), handle.last_error)

        if connected:
            return handle

        logger.warning(f"Primary datastore connect failed: {handle.last_error}")
        return self._failover(handle)

    def _failover(self, primary: Any) -> Any:
        reason = primary.last_error
        if getattr(primary, "is_fallback", False) or self._fallback is None:
            close_handle(primary)
            raise HealthCheckFailure(self._not_connected(reason))

        try:
            handle = self._fallback()
        except Exception as e:
            logger.error(f"Fallback datastore unavailable: {e}")
            close_handle(primary)
            raise HealthCheckFailure(self._not_connected(str(e))) from e

        if handle is None:
            close_handle(primary)
            raise HealthCheckFailure(MISSING_FALLBACK_MESSAGE)

        handle.suppress_errors()
        if not handle.connect_check():
            close_handle(primary)
            close_handle(handle)
            raise HealthCheckFailure(self._not_connected(handle.last_error or reason))

        logger.info("Connected to fallback datastore")
        close_handle(primary)
        return handle

    @staticmethod
    def _not_connected(reason: Optional[str]) -> str:
        if not reason:
            return NOT_CONNECTED_MESSAGE
        return f"{NOT_CONNECTED_MESSAGE} {reason}"

    def run(self, evaluation: HealthEvaluation, context: ProbeContext) -> Dict[str, Any]:
        handle = context.datastore
        errors = evaluation.mysql_errors

        process_list = handle.process_list()
        if not process_list:
            errors.add(
                errors.slug("processlist-failed"),
                f"Unable to get process list. {handle.last_error or ''}".strip(),
            )

        if evaluation.top_level_message:
            errors.add(errors.slug("has-message"), evaluation.top_level_message)

        connection = getattr(handle, "connection", None)
        return sort_fields({
            "errors": errors.all(),
            "extension": type(connection).__name__ if connection is not None else STATUS_UNKNOWN,
            "instance": type(handle).__name__,
            "num_queries": getattr(handle, "num_queries", 0),
            "status": SummaryStatus.OK.value,
        })


__all__ = [
    "DatastoreProbe",
    "close_handle",
    "MISSING_HANDLE_MESSAGE",
    "NOT_CONNECTED_MESSAGE",
]
