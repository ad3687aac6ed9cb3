# Runs A/B experiments between a baseline collector and a variant
from typing import Dict, List, Optional
from uuid import uuid4
import asyncio
import random

import structlog
from pydantic import BaseModel, ConfigDict, Field

from context_engine.domain.collector.collector_executor import CollectorExecutor, CollectorOutcome
from context_engine.domain.models import ContextRequest, Scope, TaskKind
from context_engine.infrastructure.config.settings import ExperimentSettings, MetricName, get_experiment_settings
from context_engine.infrastructure.observability.event_bus import EventBus
from context_engine.infrastructure.observability.events import ExperimentTrialEvent
from context_engine.infrastructure.observability.logging import (
    MetricsCollector,
    engine_logger,
    metrics as default_metrics,
)
from .experiment import Experiment, ExperimentResult, MetricSummary
from .statistics import compare_samples

logger = structlog.get_logger(__name__)


class TrialMeasurement(BaseModel):
    """Metric values of both sides for one trial"""
    model_config = ConfigDict(frozen=True)

    index: int
    request_id: str
    baseline: Dict[str, float] = Field(default_factory=dict)
    variant: Dict[str, float] = Field(default_factory=dict)
    excluded: bool = False


class ExperimentRunner:
    """Runs trials of an experiment and decides on the variant.

    Each trial invokes the baseline and then the variant on the same request.
    Trials themselves run concurrently, bounded by max_parallel_trials.
    """

    def __init__(
        self,
        settings: Optional[ExperimentSettings] = None,
        executor: Optional[CollectorExecutor] = None,
        event_bus: Optional[EventBus] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.settings = settings or get_experiment_settings()
        self.event_bus = event_bus or EventBus()
        self.metrics = metrics or default_metrics
        self.executor = executor or CollectorExecutor(
            max_concurrency=self.settings.max_parallel_trials,
            timeout_seconds=self.settings.collector_timeout_seconds,
            event_bus=self.event_bus,
            metrics=self.metrics,
        )

    async def run(self, experiment: Experiment) -> ExperimentResult:
        """Run every trial and summarize the comparison"""

        primary_metric = self._primary_metric(experiment)
        seed = experiment.seed if experiment.seed is not None else self.settings.seed
        rng = random.Random(seed)
        requests = [self._draw_request(experiment, rng, index) for index in range(experiment.trials)]

        with structlog.contextvars.bound_contextvars(experiment_id=experiment.experiment_id):
            logger.info("Starting experiment",
                       hypothesis=experiment.hypothesis,
                       baseline=experiment.baseline.name,
                       variant=experiment.variant.name,
                       trials=experiment.trials,
                       metrics=[m.value for m in experiment.metrics],
                       primary_metric=primary_metric.value)

            semaphore = asyncio.Semaphore(self.settings.max_parallel_trials)

            async def run_bounded(index: int, request: ContextRequest) -> TrialMeasurement:
                async with semaphore:
                    return await self._run_trial(experiment, index, request)

            trials = await asyncio.gather(*(run_bounded(i, r) for i, r in enumerate(requests)))
            result = self._build_result(experiment, primary_metric, list(trials))

            logger.info("Experiment completed",
                       completed_trials=result.completed_trials,
                       excluded_trials=result.excluded_trials,
                       p_value=round(result.p_value, 6),
                       significant=result.significant,
                       variant_better=result.variant_better,
                       inconclusive=result.inconclusive,
                       improvement=round(result.get_improvement(), 2))

        return result

    async def _run_trial(self, experiment: Experiment, index: int, request: ContextRequest) -> TrialMeasurement:
        baseline_outcome = await self.executor.execute(experiment.baseline, request)
        variant_outcome = await self.executor.execute(experiment.variant, request)

        excluded = baseline_outcome.failed and variant_outcome.failed
        trial = TrialMeasurement(
            index=index,
            request_id=request.request_id,
            baseline=self._measure(baseline_outcome, experiment),
            variant=self._measure(variant_outcome, experiment),
            excluded=excluded,
        )

        if excluded:
            self.metrics.increment_counter("experiment.trials_excluded")
            logger.warning("Both collectors failed; trial excluded",
                          trial_index=index,
                          baseline_error=baseline_outcome.error,
                          variant_error=variant_outcome.error)

        engine_logger.log_experiment_trial(
            experiment_id=experiment.experiment_id,
            trial_index=index,
            baseline=trial.baseline,
            variant=trial.variant,
            excluded=excluded,
        )
        await self.event_bus.emit(ExperimentTrialEvent(
            experiment_id=experiment.experiment_id,
            request_id=request.request_id,
            trial_index=index,
            baseline=trial.baseline,
            variant=trial.variant,
            excluded=excluded,
        ))
        return trial

    def _measure(self, outcome: CollectorOutcome, experiment: Experiment) -> Dict[str, float]:
        """Metric values for one side of a trial; a failed side scores zero everywhere"""

        values: Dict[str, float] = {}
        fragment = None if outcome.failed else outcome.fragment

        for metric in experiment.metrics:
            if outcome.failed:
                values[metric.value] = 0.0
            elif metric is MetricName.RELEVANCE:
                values[metric.value] = fragment.relevance_score if fragment is not None else 0.0
            elif metric is MetricName.SPEED:
                # operations per second
                values[metric.value] = 1000.0 / max(outcome.duration_ms, 0.001)
            elif metric is MetricName.COVERAGE:
                covered = fragment.aspects & experiment.reference_aspects if fragment is not None else frozenset()
                values[metric.value] = len(covered) / len(experiment.reference_aspects)

        return values

    def _build_result(
        self,
        experiment: Experiment,
        primary_metric: MetricName,
        trials: List[TrialMeasurement],
    ) -> ExperimentResult:
        surviving = [t for t in trials if not t.excluded]

        summaries = {
            metric: MetricSummary.from_samples(
                metric,
                [t.baseline[metric.value] for t in surviving],
                [t.variant[metric.value] for t in surviving],
            )
            for metric in experiment.metrics
        }

        inconclusive = len(surviving) < self.settings.min_samples
        if inconclusive:
            p_value, significant, variant_better = 1.0, False, False
            logger.warning("Experiment inconclusive",
                          surviving_trials=len(surviving),
                          min_samples=self.settings.min_samples)
        else:
            primary = summaries[primary_metric]
            p_value, significant = compare_samples(
                primary.baseline_samples,
                primary.variant_samples,
                alpha=self.settings.alpha,
                test=self.settings.significance_test,
            )
            wins = sum(1 for s in summaries.values() if s.variant_at_least_baseline)
            variant_better = (
                significant
                and wins * 2 > len(summaries)
                and primary.variant_at_least_baseline
            )

        return ExperimentResult(
            experiment_id=experiment.experiment_id,
            hypothesis=experiment.hypothesis,
            baseline=experiment.baseline,
            variant=experiment.variant,
            primary_metric=primary_metric,
            summaries=summaries,
            p_value=p_value,
            significant=significant,
            variant_better=variant_better,
            inconclusive=inconclusive,
            completed_trials=len(surviving),
            excluded_trials=len(trials) - len(surviving),
            significance_test=self.settings.significance_test,
            confidence_level=self.settings.confidence_level,
        )

    def _primary_metric(self, experiment: Experiment) -> MetricName:
        if experiment.primary_metric is not None:
            return experiment.primary_metric
        if self.settings.primary_metric in experiment.metrics:
            return self.settings.primary_metric
        return experiment.metrics[0]

    def _draw_request(self, experiment: Experiment, rng: random.Random, index: int) -> ContextRequest:
        """Request for one trial, sampled from the templates when there are any"""

        if experiment.request_templates:
            template = rng.choice(experiment.request_templates)
            return template.model_copy(update={
                "parameters": {**template.parameters, "trial": index},
                "request_id": uuid4().hex[:12],
            })

        return ContextRequest(
            task_kind=TaskKind.CODE_GENERATION,
            scope=Scope.PROJECT,
            token_budget=self.settings.default_token_budget,
            task_description=experiment.hypothesis,
            parameters={"trial": index},
        )
