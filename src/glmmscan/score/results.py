"""Per-variant score test result record."""

from dataclasses import astuple, dataclass


@dataclass
class ScoreResult:
    """Score test result for a single variant.

    Fields present depend on the outcome type:
    - Quantitative: af, ac, n, beta, se, pval
    - Binary: all of the above plus pval_noadj and converged

    Non-finite beta/se/pval mark a numerically degenerate variant (zero or
    negative variance); converged=False marks an unconverged saddle-point
    recalibration. Both are reported, never raised.
    """

    af: float  # frequency of the counted allele, can be > 0.5
    ac: float  # counted allele count over non-missing samples
    n: int  # non-missing sample count
    beta: float
    se: float
    pval: float
    pval_noadj: float | None = None  # Binary only: before recalibration
    converged: bool | None = None  # Binary only

    def as_tuple(self) -> tuple:
        """(af, ac, n, beta, se, pval[, pval_noadj, converged])."""
        values = astuple(self)
        if self.pval_noadj is None and self.converged is None:
            return values[:6]
        return values
