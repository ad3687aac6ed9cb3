"""
Configuration for the context engine.

Configuration Sources (in order of precedence):
1. Explicit constructor arguments
2. Environment variables (CONTEXT_ENGINE_* and CONTEXT_ENGINE_EXPERIMENT_*)
3. Default values

Environment Variables:
    CONTEXT_ENGINE_RELEVANCE_THRESHOLD=0.7
    CONTEXT_ENGINE_MAX_ITERATIONS=3
    CONTEXT_ENGINE_COLLECTOR_TIMEOUT_SECONDS=5.0
    CONTEXT_ENGINE_BUDGET_POLICY=skip_then_stop
    CONTEXT_ENGINE_CONTEXT_MAX_AGE_SECONDS=86400
    CONTEXT_ENGINE_EXPERIMENT_CONFIDENCE_LEVEL=0.95
"""

import os
from enum import Enum
from functools import lru_cache
from typing import Literal, Optional, Set

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BudgetPolicy(str, Enum):
    """What to do with a fragment that does not fit the remaining budget"""
    SKIP_THEN_STOP = "skip_then_stop"
    TRUNCATE = "truncate"


class MetricName(str, Enum):
    """Metrics an experiment can compare"""
    RELEVANCE = "relevance"
    SPEED = "speed"
    COVERAGE = "coverage"


def _default_concurrency() -> int:
    return os.cpu_count() or 4


class EngineSettings(BaseSettings):
    """Settings for context assembly and refinement"""

    model_config = SettingsConfigDict(
        env_prefix="CONTEXT_ENGINE_",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    relevance_threshold: float = Field(
        default=0.7, ge=0.0, le=1.0,
        description="Aggregate relevance at which refinement stops"
    )
    max_iterations: int = Field(default=3, ge=1, description="Upper bound on refinement iterations")
    collector_timeout_seconds: float = Field(default=5.0, gt=0, description="Per-call collector timeout")
    max_concurrency: int = Field(
        default_factory=_default_concurrency, ge=1,
        description="Collectors run in parallel within one round"
    )
    budget_policy: BudgetPolicy = Field(default=BudgetPolicy.SKIP_THEN_STOP)
    min_relevance: float = Field(
        default=0.0, ge=0.0, le=1.0,
        description="Fragments scoring below this are dropped before budget selection"
    )
    max_fragments_per_request: int = Field(default=1000, ge=1)
    context_max_age_seconds: Optional[float] = Field(
        default=24 * 60 * 60, gt=0,
        description="Fragments older than this are dropped; None keeps them regardless of age"
    )
    required_aspects: Set[str] = Field(
        default_factory=set,
        description="Aspects an assembled context is expected to cover (used for coverage metrics)"
    )

    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="json")


class ExperimentSettings(BaseSettings):
    """Settings for running collector experiments"""

    model_config = SettingsConfigDict(
        env_prefix="CONTEXT_ENGINE_EXPERIMENT_",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    confidence_level: float = Field(default=0.95, gt=0.0, lt=1.0)
    min_samples: int = Field(default=2, ge=2, description="Minimum surviving trials for a verdict")
    significance_test: Literal["welch", "mann_whitney"] = Field(default="welch")
    max_parallel_trials: int = Field(default=4, ge=1)
    collector_timeout_seconds: float = Field(default=5.0, gt=0)
    seed: Optional[int] = Field(default=None, description="Seed for request sampling across trials")
    primary_metric: MetricName = Field(default=MetricName.RELEVANCE)
    default_token_budget: int = Field(default=5000, gt=0)

    @property
    def alpha(self) -> float:
        return 1.0 - self.confidence_level


@lru_cache(maxsize=1)
def get_settings() -> EngineSettings:
    """Process-wide engine settings loaded from the environment"""
    return EngineSettings()


@lru_cache(maxsize=1)
def get_experiment_settings() -> ExperimentSettings:
    """Process-wide experiment settings loaded from the environment"""
    return ExperimentSettings()
