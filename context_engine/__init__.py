from context_engine.domain.collector import (
    BaseCollector,
    CollectorExecutor,
    CollectorKind,
    CollectorRegistry,
    get_collector_registry,
)
from context_engine.domain.collector.builtin import register_builtin_collectors
from context_engine.domain.context import ContextEngine, ContextRanker, FilterRule, QualityEvaluator
from context_engine.domain.errors import (
    AssemblyCancelledError,
    BudgetExceededError,
    CollectorFailure,
    ContextEngineError,
    ExperimentInconclusiveError,
    PromotionRefusedError,
    RegistryError,
)
from context_engine.domain.experiment import Experiment, ExperimentResult, ExperimentRunner
from context_engine.domain.models import (
    AssembledContext,
    ContextFragment,
    ContextMetrics,
    ContextRequest,
    FragmentType,
    Scope,
    TaskKind,
)
from context_engine.infrastructure.config import BudgetPolicy, EngineSettings, ExperimentSettings, MetricName

__version__ = "0.1.0"

__all__ = [
    "AssembledContext",
    "AssemblyCancelledError",
    "BaseCollector",
    "BudgetExceededError",
    "BudgetPolicy",
    "CollectorExecutor",
    "CollectorFailure",
    "CollectorKind",
    "CollectorRegistry",
    "ContextEngine",
    "ContextEngineError",
    "ContextFragment",
    "ContextMetrics",
    "ContextRanker",
    "ContextRequest",
    "EngineSettings",
    "Experiment",
    "ExperimentInconclusiveError",
    "ExperimentResult",
    "ExperimentRunner",
    "ExperimentSettings",
    "FilterRule",
    "FragmentType",
    "MetricName",
    "PromotionRefusedError",
    "QualityEvaluator",
    "RegistryError",
    "Scope",
    "TaskKind",
    "get_collector_registry",
    "register_builtin_collectors",
]
