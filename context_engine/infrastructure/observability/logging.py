import logging
import sys
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog

from context_engine.infrastructure.config.settings import EngineSettings, get_settings

# Identifiers bound with structlog.contextvars that every entry should carry
_CORRELATION_KEYS = ("request_id", "experiment_id")


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    service_name: str = "context-engine",
    settings: Optional[EngineSettings] = None,
) -> None:
    """Configure structlog for the engine.

    Level and format default to the engine settings (CONTEXT_ENGINE_LOG_LEVEL,
    CONTEXT_ENGINE_LOG_FORMAT) when not passed explicitly.
    """

    settings = settings or get_settings()
    level_name = (log_level or settings.log_level).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    if not any(getattr(h, "_context_engine", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(message)s"))
        handler._context_engine = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    root.setLevel(level)

    renderer: Any
    if (log_format or settings.log_format) == "console":
        renderer = structlog.dev.ConsoleRenderer()
        exc_processor: Any = structlog.dev.set_exc_info
    else:
        renderer = structlog.processors.JSONRenderer(sort_keys=True)
        exc_processor = structlog.processors.dict_tracebacks

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            add_service_context,
            exc_processor,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(service=service_name)


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Stamp entries with a UTC timestamp and the bound request/experiment ids"""

    event_dict.setdefault("timestamp", datetime.now(timezone.utc).isoformat())

    bound = structlog.contextvars.get_contextvars()
    for key in _CORRELATION_KEYS:
        if bound.get(key) and key not in event_dict:
            event_dict[key] = bound[key]

    return event_dict


class EngineLogger:
    """Domain log helpers for collectors, rounds, refinement and trials"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_collector_execution(
        self,
        collector_name: str,
        request_id: str,
        status: str,
        duration_ms: Optional[float] = None,
        relevance: Optional[float] = None,
        error: Optional[str] = None
    ):
        # Failures surface at warning, successes are debug noise
        emit = self.logger.warning if error else self.logger.debug
        emit(
            "collector_execution",
            collector_name=collector_name,
            request_id=request_id,
            status=status,
            duration_ms=duration_ms,
            relevance=relevance,
            error=error
        )

    def log_round(
        self,
        request_id: str,
        iteration: int,
        fragment_count: int,
        total_tokens: int,
        aggregate_relevance: float,
        contributing: Optional[List[str]] = None
    ):
        self.logger.info(
            "assembly_round",
            request_id=request_id,
            iteration=iteration,
            fragment_count=fragment_count,
            total_tokens=total_tokens,
            aggregate_relevance=round(aggregate_relevance, 4),
            contributing=contributing or []
        )

    def log_refinement(
        self,
        request_id: str,
        iteration: int,
        from_scope: str,
        to_scope: str,
        relaxed: bool,
        aggregate_relevance: float,
        threshold: float
    ):
        """Log a refinement step widening the request"""

        self.logger.info(
            "refinement_triggered",
            request_id=request_id,
            iteration=iteration,
            from_scope=from_scope,
            to_scope=to_scope,
            relaxed=relaxed,
            aggregate_relevance=round(aggregate_relevance, 4),
            threshold=threshold
        )

    def log_experiment_trial(
        self,
        experiment_id: str,
        trial_index: int,
        baseline: Dict[str, float],
        variant: Dict[str, float],
        excluded: bool = False
    ):
        self.logger.debug(
            "experiment_trial",
            experiment_id=experiment_id,
            trial_index=trial_index,
            baseline=baseline,
            variant=variant,
            excluded=excluded
        )


engine_logger = EngineLogger("context_engine")


@dataclass
class LatencyStats:
    """Running latency aggregate for one operation, in milliseconds"""

    count: int = 0
    total_ms: float = 0.0
    min_ms: float = 0.0
    max_ms: float = 0.0

    def add(self, duration_ms: float) -> None:
        if self.count == 0:
            self.min_ms = self.max_ms = duration_ms
        else:
            self.min_ms = min(self.min_ms, duration_ms)
            self.max_ms = max(self.max_ms, duration_ms)
        self.count += 1
        self.total_ms += duration_ms

    def as_dict(self) -> Dict[str, float]:
        return {
            "count": self.count,
            "avg": self.total_ms / self.count if self.count else 0.0,
            "min": self.min_ms,
            "max": self.max_ms,
        }


class MetricsCollector:
    """In-process counters, gauges and latencies for the engine.

    Collector latencies are recorded under ``collector.<name>``; counters
    track failures, timeouts, rounds, exclusions and promotions. All
    mutation happens under one lock so executor tasks and experiment
    trials can share an instance.
    """

    def __init__(self):
        self._counters: Dict[str, int] = {}
        self._gauges: Dict[str, float] = {}
        self._latencies: Dict[str, LatencyStats] = {}
        self._lock = threading.Lock()
        self._log = structlog.get_logger("context_engine.metrics")

    def record_latency(self, operation: str, duration_ms: float, tags: Optional[Dict[str, str]] = None):
        with self._lock:
            self._latencies.setdefault(operation, LatencyStats()).add(duration_ms)
        self._log.debug("latency_recorded", operation=operation, duration_ms=duration_ms, tags=tags or {})

    def increment_counter(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None):
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + value
        self._log.debug("counter_incremented", counter=name, by=value, tags=tags or {})

    def set_gauge(self, name: str, value: float, tags: Optional[Dict[str, str]] = None):
        with self._lock:
            self._gauges[name] = value
        self._log.debug("gauge_set", gauge=name, value=value, tags=tags or {})

    def get_counter(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    def get_latency(self, operation: str) -> Optional[Dict[str, float]]:
        with self._lock:
            stats = self._latencies.get(operation)
            return stats.as_dict() if stats else None

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Flat snapshot: counters and gauges by name, latencies under ``latency.<operation>``"""

        with self._lock:
            summary: Dict[str, Any] = dict(self._counters)
            summary.update(self._gauges)
            for operation, stats in self._latencies.items():
                summary[f"latency.{operation}"] = stats.as_dict()
        return summary

    def reset(self):
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._latencies.clear()


metrics = MetricsCollector()
