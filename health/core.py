# ============================================================================
# HEALTH CHECK CORE TYPES
# ============================================================================
# STATUS: Infrastructure - Evaluation state and value objects
# PURPOSE: Timer, error collectors and the per-request evaluation
# ============================================================================
"""
Health Check Core Types

Value objects shared by every probe. Everything here is request-scoped:
the aggregator builds a fresh HealthEvaluation (with its own Timer and
ErrorCollectors) for each request and drops it once the response is
rendered.

Summary status (derived last):
- OK: HTTP-status-like code in [200, 300)
- WARN: code in [400, 500), or both the datastore and cache collectors
  hold errors
- FAILURE: code in [500, 600)
- UNKNOWN: anything else

Evaluation states (forward only):
    INIT -> PROBING -> AGGREGATING -> RENDERED
"""

import time
import uuid
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, Optional
from dataclasses import dataclass, field


# Section names, in probing order
SECTION_MYSQL = "mysql"
SECTION_OBJECT_CACHE = "object_cache"
SECTION_PHP = "php"
SECTION_BUILD = "build"
SECTION_WP = "wp"

SECTIONS = (
    SECTION_MYSQL,
    SECTION_OBJECT_CACHE,
    SECTION_PHP,
    SECTION_BUILD,
    SECTION_WP,
)

# Collector namespaces
NAMESPACE_MYSQL = "mysql"
NAMESPACE_CACHE = "cache"

STATUS_UNKNOWN = "UNKNOWN"

# Seconds before a response counts as slow
DEFAULT_SLOW_THRESHOLD = 4.0


class SummaryStatus(str, Enum):
    """Coarse verdict reported in the `status` field."""
    OK = "OK"
    WARN = "WARN"
    FAILURE = "FAILURE"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_status_code(cls, status_code: int) -> "SummaryStatus":
        """Map an HTTP-status-like code onto a summary status."""
        if 200 <= status_code < 300:
            return cls.OK
        if 400 <= status_code < 500:
            return cls.WARN
        if 500 <= status_code < 600:
            return cls.FAILURE
        return cls.UNKNOWN


class CacheStatus(str, Enum):
    """Connection status reported by the cache diagnostics."""
    CONNECTED = "CONNECTED"
    NOT_CONNECTED = "NOT CONNECTED"
    UNKNOWN = "UNKNOWN"


class EvaluationState(str, Enum):
    """Lifecycle of one evaluation."""
    INIT = "init"
    PROBING = "probing"
    AGGREGATING = "aggregating"
    RENDERED = "rendered"

    @property
    def order(self) -> int:
        return list(EvaluationState).index(self)


class HealthCheckFailure(Exception):
    """
    Fatal probe failure.

    Raised only when the evaluation cannot continue (the primary
    datastore is absent even after the fallback attempt). The aggregator
    catches it and renders a short-circuited response.
    """

    def __init__(self, message: str, status_code: int = 503):
        super().__init__(message)
        self.status_code = status_code


def sort_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of `fields` ordered by key (case-sensitive ascending)."""
    return {key: fields[key] for key in sorted(fields)}


class Timer:
    """
    Wall-clock timer for one evaluation.

    The origin is fixed once; elapsed() never resets it, so repeated
    calls are monotonic non-decreasing.
    """

    def __init__(
        self,
        started_at: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._clock = clock
        self._origin = started_at

    @property
    def started_at(self) -> Optional[float]:
        return self._origin

    def start(self) -> float:
        """Fix the origin (no-op when already started)."""
        if self._origin is None:
            self._origin = self._clock()
        return self._origin

    def elapsed(self) -> float:
        """Seconds since start()."""
        if self._origin is None:
            self.start()
        return max(0.0, self._clock() - self._origin)

    def is_slow(self, threshold: float = DEFAULT_SLOW_THRESHOLD) -> bool:
        return self.elapsed() > threshold


class ErrorCollector:
    """
    Ordered slug -> message accumulator for one subsystem.

    Re-adding an existing slug replaces its message in place; every
    other slug is appended.
    """

    def __init__(self, namespace: str, prefix: Optional[str] = None):
        self.namespace = namespace
        self.prefix = prefix or namespace
        self._errors: Dict[str, str] = {}

    def slug(self, suffix: str) -> str:
        return f"{self.prefix}-{suffix}"

    def add(self, slug: str, message: str) -> None:
        self._errors[slug] = message

    def has_errors(self) -> bool:
        return bool(self._errors)

    def all(self) -> Optional[Dict[str, str]]:
        """Errors for output; None when nothing was recorded."""
        if not self._errors:
            return None
        return dict(self._errors)

    def __contains__(self, slug: str) -> bool:
        return slug in self._errors

    def __len__(self) -> int:
        return len(self._errors)

    def __repr__(self) -> str:
        return f"ErrorCollector(namespace={self.namespace!r}, errors={len(self._errors)})"


def new_collectors() -> Dict[str, ErrorCollector]:
    """Fresh collectors for a new evaluation."""
    return {
        NAMESPACE_MYSQL: ErrorCollector(NAMESPACE_MYSQL, prefix="mysql"),
        NAMESPACE_CACHE: ErrorCollector(NAMESPACE_CACHE, prefix="object-cache"),
    }


@dataclass
class HealthEvaluation:
    """
    Root object for one health request.

    Owned by the aggregator for the lifetime of a single request.
    """
    requested_sections: FrozenSet[str]
    timer: Timer
    top_level_message: Optional[str] = None
    status_code: int = 200
    http_status: int = 200
    summary_status: Optional[SummaryStatus] = None
    sections: Dict[str, Optional[Dict[str, Any]]] = field(
        default_factory=lambda: {name: None for name in SECTIONS}
    )
    collectors: Dict[str, ErrorCollector] = field(default_factory=new_collectors)
    state: EvaluationState = EvaluationState.INIT
    payload: Optional[Dict[str, Any]] = None
    hooks_applied: bool = False
    fatal: bool = False
    evaluation_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    @classmethod
    def create(
        cls,
        sections: Iterable[str],
        started_at: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        message: Optional[str] = None,
    ) -> "HealthEvaluation":
        timer = Timer(started_at=started_at, clock=clock)
        timer.start()
        return cls(
            requested_sections=frozenset(s for s in sections if s in SECTIONS),
            timer=timer,
            top_level_message=message,
        )

    @property
    def started_at(self) -> float:
        return self.timer.started_at

    @property
    def mysql_errors(self) -> ErrorCollector:
        return self.collectors[NAMESPACE_MYSQL]

    @property
    def cache_errors(self) -> ErrorCollector:
        return self.collectors[NAMESPACE_CACHE]

    def is_requested(self, section: str) -> bool:
        return section in self.requested_sections

    def transition(self, state: EvaluationState) -> None:
        """Move forward to `state`; states are never revisited."""
        if state.order <= self.state.order:
            raise RuntimeError(
                f"Invalid evaluation transition {self.state.value} -> {state.value}"
            )
        self.state = state


@dataclass
class ProbeContext:
    """Handles a probe may use during one evaluation."""
    request: Any
    datastore: Any = None
    cache: Any = None


class HealthProbe(ABC):
    """
    Base class for section probes.

    Attributes:
        section: Response section the probe fills
        collector_namespace: ErrorCollector the probe records into, if any
    """

    section: str = "unnamed"
    collector_namespace: Optional[str] = None

    @abstractmethod
    def run(self, evaluation: HealthEvaluation, context: ProbeContext) -> Dict[str, Any]:
        """
        Produce the section fields.

        Returns:
            Field mapping, sorted by key
        """


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "SECTIONS",
    "SECTION_MYSQL",
    "SECTION_OBJECT_CACHE",
    "SECTION_PHP",
    "SECTION_BUILD",
    "SECTION_WP",
    "NAMESPACE_MYSQL",
    "NAMESPACE_CACHE",
    "STATUS_UNKNOWN",
    "DEFAULT_SLOW_THRESHOLD",
    "SummaryStatus",
    "CacheStatus",
    "EvaluationState",
    "HealthCheckFailure",
    "sort_fields",
    "Timer",
    "ErrorCollector",
    "new_collectors",
    "HealthEvaluation",
    "ProbeContext",
    "HealthProbe",
]
