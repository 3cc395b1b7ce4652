"""glmmscan: per-variant GLMM score tests for genome-wide scans.

glmmscan computes, one variant at a time, the score test of a dosage vector
under a pre-fitted generalized linear mixed model (SAIGE-style), for
quantitative and binary outcomes.

Key features:
- Mean imputation of missing dosages and minor-allele flipping
- Sparse projection for rare variants, dense projection otherwise
- Saddle-point recalibration of small binary p-values via a pluggable solver
- Read-only models shared across worker threads, one scratch buffer set each

Example:
    >>> from glmmscan import ModelContext, score_test
    >>> from glmmscan.io.model import load_null_model
    >>> context = ModelContext(load_null_model("null_model.npz"))
    >>> result = score_test(context, dosage)
"""

from importlib.metadata import PackageNotFoundError, version

from glmmscan.utils.logging import configure_console

try:
    __version__ = version("glmmscan")
except PackageNotFoundError:
    __version__ = "0.0.0"

# Console logging on import; call configure_console(verbose=True) for DEBUG
configure_console()

from glmmscan.score import (  # noqa: E402
    ModelContext,
    NullModel,
    ScoreResult,
    score_test,
)

__all__ = ["ModelContext", "NullModel", "ScoreResult", "score_test", "__version__"]
