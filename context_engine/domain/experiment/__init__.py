from .experiment import Experiment, ExperimentResult, MetricSummary
from .experiment_runner import ExperimentRunner, TrialMeasurement
from .statistics import compare_samples, relative_improvement

__all__ = [
    "Experiment",
    "ExperimentResult",
    "ExperimentRunner",
    "MetricSummary",
    "TrialMeasurement",
    "compare_samples",
    "relative_improvement",
]
