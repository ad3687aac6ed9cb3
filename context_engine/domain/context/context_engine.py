from typing import Dict, List, Optional, Sequence
import asyncio

import structlog

from context_engine.domain.collector.collector_executor import CollectorExecutor
from context_engine.domain.collector.collector_registry import (
    CollectorRegistration,
    CollectorRegistry,
    get_collector_registry,
)
from context_engine.domain.errors import AssemblyCancelledError
from context_engine.domain.models import (
    AssembledContext,
    ContextFragment,
    ContextMetrics,
    ContextRequest,
    RefinementStep,
)
from context_engine.infrastructure.config.settings import EngineSettings, get_settings
from context_engine.infrastructure.observability.event_bus import EventBus
from context_engine.infrastructure.observability.events import (
    RefinementTriggeredEvent,
    RoundCompletedEvent,
)
from context_engine.infrastructure.observability.logging import (
    MetricsCollector,
    engine_logger,
    metrics as default_metrics,
)
from .context_evaluator import QualityEvaluator
from .context_ranker import ContextRanker, FilterRule

logger = structlog.get_logger(__name__)


class ContextEngine:
    """Assembles context for a request from the registered collectors"""

    def __init__(
        self,
        registry: Optional[CollectorRegistry] = None,
        settings: Optional[EngineSettings] = None,
        event_bus: Optional[EventBus] = None,
        metrics: Optional[MetricsCollector] = None,
        filter_rules: Sequence[FilterRule] = (),
    ):
        self.settings = settings or get_settings()
        self.registry = registry if registry is not None else get_collector_registry()
        self.event_bus = event_bus or EventBus()
        self.metrics = metrics or default_metrics

        self.context_ranker = ContextRanker(
            budget_policy=self.settings.budget_policy,
            min_relevance=self.settings.min_relevance,
            max_fragments=self.settings.max_fragments_per_request,
            max_age_seconds=self.settings.context_max_age_seconds,
            filter_rules=filter_rules,
        )
        self.quality_evaluator = QualityEvaluator(
            relevance_threshold=self.settings.relevance_threshold,
            required_aspects=self.settings.required_aspects,
        )
        self.collector_executor = CollectorExecutor(
            max_concurrency=self.settings.max_concurrency,
            timeout_seconds=self.settings.collector_timeout_seconds,
            event_bus=self.event_bus,
            metrics=self.metrics,
        )

    def select_collectors(self, request: ContextRequest) -> List[CollectorRegistration]:
        """Applicable registrations, highest priority first, registration order on ties"""

        applicable = []
        for registration in self.registry.snapshot():
            collector = registration.collector
            try:
                # Scope is enforced here even if a collector overrides is_applicable
                if not collector.scope_permits(request):
                    continue
                if collector.is_applicable(request) or (
                    request.relaxed and collector.is_loosely_applicable(request)
                ):
                    applicable.append(registration)
            except Exception as e:
                logger.warning("Applicability check failed",
                              collector_name=registration.name,
                              request_id=request.request_id,
                              error=str(e))

        return sorted(applicable, key=lambda r: (-r.priority, r.sequence))

    async def assemble(
        self,
        request: ContextRequest,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AssembledContext:
        """Run one assembly round for the request"""

        with structlog.contextvars.bound_contextvars(request_id=request.request_id):
            return await self._assemble_round(request, 1, cancel_event)

    async def assemble_with_refinement(
        self,
        request: ContextRequest,
        max_iterations: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AssembledContext:
        """Assemble, widening the request until relevance is sufficient or iterations run out"""

        if max_iterations is None:
            max_iterations = self.settings.max_iterations
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")

        threshold = self.quality_evaluator.relevance_threshold
        trace: List[RefinementStep] = []
        current = request
        iteration = 0

        with structlog.contextvars.bound_contextvars(request_id=request.request_id):
            while True:
                iteration += 1
                context = await self._assemble_round(current, iteration, cancel_event)
                trace.append(RefinementStep(
                    iteration=iteration,
                    scope=current.scope,
                    relaxed=current.relaxed,
                    aggregate_relevance=context.aggregate_relevance,
                    fragment_count=len(context.fragments),
                ))

                sufficient = self.quality_evaluator.is_sufficient(context)
                if sufficient or iteration >= max_iterations:
                    break

                widened = self.quality_evaluator.next_request(current)
                if widened is None:
                    logger.info("Request cannot be widened further", iteration=iteration)
                    break

                engine_logger.log_refinement(
                    request_id=request.request_id,
                    iteration=iteration,
                    from_scope=current.scope.name,
                    to_scope=widened.scope.name,
                    relaxed=widened.relaxed,
                    aggregate_relevance=context.aggregate_relevance,
                    threshold=threshold,
                )
                self.metrics.increment_counter("refinement.iterations")
                await self.event_bus.emit(RefinementTriggeredEvent(
                    request_id=request.request_id,
                    iteration=iteration,
                    from_scope=current.scope.name,
                    to_scope=widened.scope.name,
                    relaxed=widened.relaxed,
                    aggregate_relevance=context.aggregate_relevance,
                    threshold=threshold,
                ))
                current = widened

        if not sufficient:
            logger.info("Refinement finished below threshold",
                       request_id=request.request_id,
                       iterations=iteration,
                       aggregate_relevance=context.aggregate_relevance,
                       threshold=threshold)

        return context.model_copy(update={
            "iterations": iteration,
            "refinement_exhausted": not sufficient,
            "refinement_trace": tuple(trace),
        })

    def analyze(self, context: AssembledContext) -> ContextMetrics:
        """Quality metrics for an assembled context"""
        return self.quality_evaluator.analyze(context)

    async def _assemble_round(
        self,
        request: ContextRequest,
        iteration: int,
        cancel_event: Optional[asyncio.Event],
    ) -> AssembledContext:
        self._raise_if_cancelled(request, cancel_event)

        registrations = self.select_collectors(request)
        if not registrations:
            logger.info("No applicable collectors",
                       task_kind=request.task_kind.value,
                       scope=request.scope.name)
            context = AssembledContext.empty(request)
            await self._finish_round(context, iteration, applicable=0)
            return context

        outcomes = await self.collector_executor.execute_all(registrations, request, cancel_event)

        # Merge barrier: results gathered after a cancellation are discarded
        self._raise_if_cancelled(request, cancel_event)

        owners: Dict[str, str] = {}
        fragments: List[ContextFragment] = []
        for outcome in outcomes:
            if outcome.fragment is not None:
                owners[outcome.fragment.fragment_id] = outcome.collector_name
                fragments.append(outcome.fragment)

        selected = self.context_ranker.rank(fragments, request)
        contributing = frozenset(owners[f.fragment_id] for f in selected)
        applicable_names = frozenset(r.name for r in registrations)

        context = AssembledContext(
            request=request,
            fragments=tuple(selected),
            aggregate_relevance=self.context_ranker.aggregate_relevance(selected),
            total_tokens=self.context_ranker.total_tokens(selected),
            contributing_collectors=contributing,
            silent_collectors=applicable_names - contributing,
        )
        await self._finish_round(context, iteration, applicable=len(registrations))
        return context

    async def _finish_round(self, context: AssembledContext, iteration: int, applicable: int):
        self.metrics.increment_counter("assembly.rounds")
        engine_logger.log_round(
            request_id=context.request.request_id,
            iteration=iteration,
            fragment_count=len(context.fragments),
            total_tokens=context.total_tokens,
            aggregate_relevance=context.aggregate_relevance,
            contributing=sorted(context.contributing_collectors),
        )
        await self.event_bus.emit(RoundCompletedEvent(
            request_id=context.request.request_id,
            iteration=iteration,
            applicable_collectors=applicable,
            fragment_count=len(context.fragments),
            total_tokens=context.total_tokens,
            aggregate_relevance=context.aggregate_relevance,
        ))

    @staticmethod
    def _raise_if_cancelled(request: ContextRequest, cancel_event: Optional[asyncio.Event]):
        if cancel_event is not None and cancel_event.is_set():
            logger.info("Context assembly cancelled", request_id=request.request_id)
            raise AssemblyCancelledError(request.request_id)
