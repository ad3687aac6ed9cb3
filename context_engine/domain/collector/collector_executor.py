# Collector execution with isolation, timeouts and bounded concurrency
from typing import List, Optional, Sequence
from enum import Enum
import asyncio
import time

import structlog
from pydantic import BaseModel, ConfigDict

from context_engine.domain.errors import CollectorFailure
from context_engine.domain.models import ContextFragment, ContextRequest
from context_engine.infrastructure.observability.event_bus import EventBus
from context_engine.infrastructure.observability.events import (
    CollectorFailedEvent,
    CollectorFinishedEvent,
    CollectorStartedEvent,
)
from context_engine.infrastructure.observability.logging import (
    MetricsCollector,
    engine_logger,
    metrics as default_metrics,
)
from .base_collector import BaseCollector
from .collector_registry import CollectorRegistration

logger = structlog.get_logger(__name__)


class CollectorStatus(str, Enum):
    """Outcome of a single collector call"""
    SUCCESS = "success"
    EMPTY = "empty"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class CollectorOutcome(BaseModel):
    """Result of running one collector for one request"""
    model_config = ConfigDict(frozen=True)

    collector_name: str
    status: CollectorStatus
    fragment: Optional[ContextFragment] = None
    duration_ms: float = 0.0
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status in (CollectorStatus.FAILED, CollectorStatus.TIMED_OUT)


class CollectorExecutor:
    """Runs collectors concurrently with per-call timeouts.

    A collector that raises, times out or returns something other than a
    fragment yields a failed outcome; it never aborts the round.
    """

    def __init__(
        self,
        max_concurrency: int = 4,
        timeout_seconds: float = 5.0,
        event_bus: Optional[EventBus] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")

        self.max_concurrency = max_concurrency
        self.timeout_seconds = timeout_seconds
        self.event_bus = event_bus or EventBus()
        self.metrics = metrics or default_metrics

    async def execute_all(
        self,
        registrations: Sequence[CollectorRegistration],
        request: ContextRequest,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[CollectorOutcome]:
        """Run every registration's collector; outcomes keep the input order"""

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run_bounded(registration: CollectorRegistration) -> CollectorOutcome:
            async with semaphore:
                if cancel_event is not None and cancel_event.is_set():
                    return CollectorOutcome(
                        collector_name=registration.name,
                        status=CollectorStatus.CANCELLED,
                    )
                return await self.execute(registration.collector, request, name=registration.name)

        return list(await asyncio.gather(*(run_bounded(r) for r in registrations)))

    async def execute(
        self,
        collector: BaseCollector,
        request: ContextRequest,
        name: Optional[str] = None,
    ) -> CollectorOutcome:
        """Run a single collector and describe what happened"""

        collector_name = name or collector.name
        await self.event_bus.emit(CollectorStartedEvent(
            collector_name=collector_name,
            request_id=request.request_id,
        ))

        start = time.perf_counter()
        try:
            fragment = await self._invoke(collector, request, collector_name)
        except CollectorFailure as failure:
            duration_ms = (time.perf_counter() - start) * 1000
            return await self._record_failure(collector_name, request, failure, duration_ms)

        duration_ms = (time.perf_counter() - start) * 1000
        status = CollectorStatus.SUCCESS if fragment is not None else CollectorStatus.EMPTY

        self.metrics.record_latency(f"collector.{collector_name}", duration_ms)
        engine_logger.log_collector_execution(
            collector_name=collector_name,
            request_id=request.request_id,
            status=status.value,
            duration_ms=round(duration_ms, 3),
            relevance=fragment.relevance_score if fragment else None,
        )
        await self.event_bus.emit(CollectorFinishedEvent(
            collector_name=collector_name,
            request_id=request.request_id,
            duration_ms=duration_ms,
            produced_fragment=fragment is not None,
            relevance=fragment.relevance_score if fragment else None,
        ))

        return CollectorOutcome(
            collector_name=collector_name,
            status=status,
            fragment=fragment,
            duration_ms=duration_ms,
        )

    async def _invoke(
        self,
        collector: BaseCollector,
        request: ContextRequest,
        collector_name: str,
    ) -> Optional[ContextFragment]:
        try:
            fragment = await asyncio.wait_for(collector.collect(request), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise CollectorFailure(
                collector_name, f"timed out after {self.timeout_seconds}s", timed_out=True
            ) from e
        except Exception as e:
            raise CollectorFailure(collector_name, f"{type(e).__name__}: {e}") from e

        if fragment is not None and not isinstance(fragment, ContextFragment):
            raise CollectorFailure(
                collector_name, f"returned {type(fragment).__name__} instead of a fragment"
            )
        return fragment

    async def _record_failure(
        self,
        collector_name: str,
        request: ContextRequest,
        failure: CollectorFailure,
        duration_ms: float,
    ) -> CollectorOutcome:
        status = CollectorStatus.TIMED_OUT if failure.timed_out else CollectorStatus.FAILED
        counter = "collector.timeouts" if failure.timed_out else "collector.failures"

        self.metrics.increment_counter(counter, tags={"collector": collector_name})
        logger.warning("Collector failed",
                      collector_name=collector_name,
                      request_id=request.request_id,
                      reason=failure.reason,
                      status=status.value,
                      duration_ms=round(duration_ms, 3),
                      exc_info=failure.__cause__ is not None and not failure.timed_out)
        await self.event_bus.emit(CollectorFailedEvent(
            collector_name=collector_name,
            request_id=request.request_id,
            duration_ms=duration_ms,
            error=failure.reason,
            timed_out=failure.timed_out,
        ))

        return CollectorOutcome(
            collector_name=collector_name,
            status=status,
            duration_ms=duration_ms,
            error=failure.reason,
        )
