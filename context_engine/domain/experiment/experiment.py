from typing import Dict, FrozenSet, List, Optional, Tuple
from uuid import uuid4

import structlog
from pydantic import BaseModel, ConfigDict, Field, model_validator

from context_engine.domain.collector.base_collector import BaseCollector
from context_engine.domain.collector.collector_registry import (
    CollectorRegistration,
    CollectorRegistry,
    get_collector_registry,
)
from context_engine.domain.errors import ExperimentInconclusiveError, PromotionRefusedError
from context_engine.domain.models import ContextRequest
from context_engine.infrastructure.config.settings import MetricName
from context_engine.infrastructure.observability.event_bus import EventBus
from context_engine.infrastructure.observability.events import CollectorPromotedEvent
from context_engine.infrastructure.observability.logging import metrics as engine_metrics
from .statistics import relative_improvement, sample_mean, sample_variance

logger = structlog.get_logger(__name__)


class Experiment(BaseModel):
    """An A/B comparison of a baseline collector against a variant"""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    experiment_id: str = Field(default_factory=lambda: uuid4().hex[:12])
    hypothesis: str = Field(min_length=1)
    baseline: BaseCollector
    variant: BaseCollector
    metrics: List[MetricName] = Field(
        default_factory=lambda: [MetricName.RELEVANCE, MetricName.SPEED, MetricName.COVERAGE]
    )
    trials: int = Field(default=10, gt=0)
    reference_aspects: FrozenSet[str] = Field(
        default_factory=frozenset,
        description="Aspects a complete answer covers; required for the coverage metric"
    )
    request_templates: List[ContextRequest] = Field(
        default_factory=list,
        description="Requests sampled for each trial; a default request is used when empty"
    )
    primary_metric: Optional[MetricName] = Field(
        default=None,
        description="Metric used for significance and improvement; falls back to the configured default"
    )
    seed: Optional[int] = None

    @model_validator(mode="after")
    def check_consistency(self) -> "Experiment":
        if not self.metrics:
            raise ValueError("at least one metric is required")
        if len(set(self.metrics)) != len(self.metrics):
            raise ValueError("metrics must not repeat")
        if MetricName.COVERAGE in self.metrics and not self.reference_aspects:
            raise ValueError("reference_aspects are required to measure coverage")
        if self.primary_metric is not None and self.primary_metric not in self.metrics:
            raise ValueError(f"primary metric {self.primary_metric.value} is not among the measured metrics")
        if self.baseline is self.variant:
            raise ValueError("baseline and variant must be different collectors")
        return self


class MetricSummary(BaseModel):
    """Samples and descriptive statistics of one metric on both sides"""
    model_config = ConfigDict(frozen=True)

    metric: MetricName
    baseline_samples: Tuple[float, ...]
    variant_samples: Tuple[float, ...]
    baseline_mean: float
    variant_mean: float
    baseline_variance: float
    variant_variance: float
    improvement: float

    @classmethod
    def from_samples(
        cls,
        metric: MetricName,
        baseline: List[float],
        variant: List[float],
    ) -> "MetricSummary":
        baseline_mean = sample_mean(baseline)
        variant_mean = sample_mean(variant)
        return cls(
            metric=metric,
            baseline_samples=tuple(baseline),
            variant_samples=tuple(variant),
            baseline_mean=baseline_mean,
            variant_mean=variant_mean,
            baseline_variance=sample_variance(baseline),
            variant_variance=sample_variance(variant),
            improvement=relative_improvement(baseline_mean, variant_mean),
        )

    @property
    def variant_at_least_baseline(self) -> bool:
        return self.variant_mean >= self.baseline_mean


class ExperimentResult(BaseModel):
    """Outcome of an experiment. Immutable; promote() acts on a registry."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    experiment_id: str
    hypothesis: str
    baseline: BaseCollector = Field(exclude=True)
    variant: BaseCollector = Field(exclude=True)
    primary_metric: MetricName
    summaries: Dict[MetricName, MetricSummary]
    p_value: float = Field(ge=0.0, le=1.0)
    significant: bool
    variant_better: bool
    inconclusive: bool
    completed_trials: int = Field(ge=0)
    excluded_trials: int = Field(ge=0)
    significance_test: str
    confidence_level: float

    def is_significant(self) -> bool:
        return self.significant

    def variant_is_better(self) -> bool:
        return self.variant_better

    def is_inconclusive(self) -> bool:
        return self.inconclusive

    def get_improvement(self, metric: Optional[MetricName] = None) -> float:
        """Percent improvement of the variant, on the primary metric by default"""
        return self.summary(metric or self.primary_metric).improvement

    def summary(self, metric: MetricName) -> MetricSummary:
        if metric not in self.summaries:
            raise KeyError(f"Metric {metric.value} was not measured")
        return self.summaries[metric]

    async def promote(
        self,
        registry: Optional[CollectorRegistry] = None,
        force: bool = False,
        event_bus: Optional[EventBus] = None,
    ) -> CollectorRegistration:
        """Replace the baseline's registration with the variant.

        The variant takes over the baseline's registration name and order, so
        later assemblies see it in the baseline's place. Contexts assembled
        before the swap keep the fragments they already hold.

        Raises:
            ExperimentInconclusiveError: too few trials survived for a verdict
            PromotionRefusedError: the variant is not better and force is False
            RegistryError: the baseline is not registered
        """

        if self.inconclusive:
            raise ExperimentInconclusiveError(
                f"Experiment {self.experiment_id} is inconclusive "
                f"({self.completed_trials} usable trials); nothing to promote"
            )
        if not self.variant_better and not force:
            raise PromotionRefusedError(
                f"Variant {self.variant.name} is not better than {self.baseline.name} "
                f"(p={self.p_value:.4f}, improvement={self.get_improvement():.1f}%)"
            )

        registry = registry if registry is not None else get_collector_registry()
        registration = registry.find_by_collector(self.baseline)
        name = registration.name if registration is not None else self.baseline.name
        promoted = registry.replace(name, self.variant, keep_name=True)

        engine_metrics.increment_counter("experiment.promotions", tags={"collector": name})
        logger.info("Promoted variant collector",
                   experiment_id=self.experiment_id,
                   registration_name=name,
                   variant_name=self.variant.name,
                   forced=force and not self.variant_better,
                   improvement=round(self.get_improvement(), 2))

        if event_bus is not None:
            await event_bus.emit(CollectorPromotedEvent(
                experiment_id=self.experiment_id,
                registration_name=name,
                variant_name=self.variant.name,
                improvement=self.get_improvement(),
                metadata={"forced": force and not self.variant_better, "p_value": self.p_value},
            ))

        return promoted
