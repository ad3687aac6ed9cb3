from .settings import (
    BudgetPolicy,
    EngineSettings,
    ExperimentSettings,
    MetricName,
    get_experiment_settings,
    get_settings,
)

__all__ = [
    "BudgetPolicy",
    "EngineSettings",
    "ExperimentSettings",
    "MetricName",
    "get_experiment_settings",
    "get_settings",
]
