"""
Significance testing for experiment samples.

Two tests are supported:
- welch: Welch's unequal-variance t-test (scipy.stats.ttest_ind, equal_var=False)
- mann_whitney: two-sided Mann-Whitney U (scipy.stats.mannwhitneyu)

Samples with zero variance on both sides cannot be tested; they are
treated as significantly different exactly when their means differ.
"""

from typing import Sequence, Tuple
import math

import numpy as np
from scipy import stats  # type: ignore[import-untyped]

SIGNIFICANCE_TESTS = ("welch", "mann_whitney")


def sample_mean(samples: Sequence[float]) -> float:
    if len(samples) == 0:
        return 0.0
    return float(np.mean(samples))


def sample_variance(samples: Sequence[float]) -> float:
    """Unbiased sample variance; 0.0 for fewer than two samples"""

    if len(samples) < 2:
        return 0.0
    return float(np.var(samples, ddof=1))


def relative_improvement(baseline_mean: float, variant_mean: float) -> float:
    """Percent change of the variant over the baseline"""
    return (variant_mean - baseline_mean) / max(baseline_mean, 0.001) * 100


def compare_samples(
    baseline: Sequence[float],
    variant: Sequence[float],
    alpha: float = 0.05,
    test: str = "welch",
) -> Tuple[float, bool]:
    """Return (p_value, significant) for the two samples"""

    if test not in SIGNIFICANCE_TESTS:
        raise ValueError(f"Unknown significance test: {test}")

    if len(baseline) < 2 or len(variant) < 2:
        return 1.0, False

    if sample_variance(baseline) == 0.0 and sample_variance(variant) == 0.0:
        if sample_mean(baseline) == sample_mean(variant):
            return 1.0, False
        return 0.0, True

    if test == "welch":
        _, p_value = stats.ttest_ind(variant, baseline, equal_var=False)
    else:
        _, p_value = stats.mannwhitneyu(variant, baseline, alternative="two-sided")

    p_value = float(p_value)
    if math.isnan(p_value):
        return 1.0, False
    p_value = min(max(p_value, 0.0), 1.0)
    return p_value, p_value < alpha
