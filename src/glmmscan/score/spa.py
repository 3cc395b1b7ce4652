"""Tail-probability solver interface for binary-outcome recalibration.

The binary score test hands small p-values to a solver implementing the
saddle-point approximation (SPA) of the score statistic's tail. The solver is
injected, so any implementation of TailProbabilitySolver can be used.

NormalApproximationSolver is the default. It evaluates the same contract with
the two-sided normal tail of the centred statistic and is deterministic,
which makes it the reference stub for tests; production scans with
imbalanced case/control ratios should pass a real saddle-point solver.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import numpy as np
from scipy.special import ndtr


@runtime_checkable
class TailProbabilitySolver(Protocol):
    """Contract of the saddle-point tail-probability solver.

    Args:
        q: Observed statistic, on the unadjusted-variance scale.
        mean: Mean of the statistic under the null.
        variance: Variance of the statistic under the null.
        n: Number of samples.
        mu: Fitted null means (n,).
        g: Covariate-adjusted, scaled genotype (n,).
        cutoff: Standardised distance below which the normal approximation
            is used instead of the saddle point.

    Returns:
        Tuple of (pvalue, converged). Non-finite input must give
        converged=False with a finite placeholder p-value, or raise.
    """

    def __call__(
        self,
        q: float,
        mean: float,
        variance: float,
        n: int,
        mu: np.ndarray,
        g: np.ndarray,
        cutoff: float,
    ) -> tuple[float, bool]: ...


class NormalApproximationSolver:
    """Two-sided normal tail of (q - mean) / sqrt(variance).

    Satisfies the solver contract without a saddle-point correction.
    """

    placeholder_pvalue = 1.0

    def __call__(
        self,
        q: float,
        mean: float,
        variance: float,
        n: int,
        mu: np.ndarray,
        g: np.ndarray,
        cutoff: float,
    ) -> tuple[float, bool]:
        if not (np.isfinite(q) and np.isfinite(mean) and np.isfinite(variance)):
            return self.placeholder_pvalue, False
        if variance <= 0.0:
            return self.placeholder_pvalue, False
        z = abs(q - mean) / np.sqrt(variance)
        return float(2.0 * ndtr(-z)), True
