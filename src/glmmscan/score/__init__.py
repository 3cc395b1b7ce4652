"""Per-variant GLMM score tests.

Key components:
- NullModel / ModelContext: fitted null model and per-worker scratch buffers
- quantitative_score_test: continuous outcomes
- binary_score_test: binary outcomes with saddle-point recalibration
- score_test: dispatcher on the model's trait type
"""

from __future__ import annotations

import numpy as np

from glmmscan.score.binary import binary_score_test
from glmmscan.score.model import ModelContext, NullModel, ScratchBuffers, Strategy, Trait
from glmmscan.score.quantitative import quantitative_score_test
from glmmscan.score.results import ScoreResult
from glmmscan.score.spa import NormalApproximationSolver, TailProbabilitySolver

__all__ = [
    "ModelContext",
    "NormalApproximationSolver",
    "NullModel",
    "ScoreResult",
    "ScratchBuffers",
    "Strategy",
    "TailProbabilitySolver",
    "Trait",
    "binary_score_test",
    "quantitative_score_test",
    "score_test",
]


def score_test(
    context: ModelContext,
    dosage: np.ndarray,
    solver: TailProbabilitySolver | None = None,
) -> ScoreResult | None:
    """Test one variant, routing on the null model's trait type.

    Args:
        context: Null model and scratch buffers (one per thread).
        dosage: Raw dosage vector (n_samples,) in model sample order.
        solver: Tail-probability solver, used for binary outcomes only.

    Returns:
        ScoreResult, or None when the variant fails the MAF/MAC gate.
    """
    if context.model.trait is Trait.BINARY:
        return binary_score_test(context, dosage, solver=solver)
    return quantitative_score_test(context, dosage)
