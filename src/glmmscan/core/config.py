"""Configuration dataclasses for glmmscan.

This module contains dataclasses that configure the per-variant score test:
the allele-frequency cut-offs that select the sparse or dense projection, and
the p-value region in which binary outcomes are recalibrated with the
saddle-point solver.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ScoreConfig:
    """Constants governing strategy selection and tail recalibration.

    Attributes:
        binary_sparse_maf: Binary outcomes use the sparse projection when
            maf < binary_sparse_maf, the dense projection otherwise.
        quant_sparse_maf: Quantitative outcomes use the sparse projection when
            maf > quant_sparse_maf. The default (-0.05) keeps every
            quantitative variant on the sparse path.
        spa_pval_threshold: Binary p-values at or below this value are
            recalibrated with the tail-probability solver.
        spa_cutoff: Normal-vs-saddle-point switch passed to the solver.
    """

    binary_sparse_maf: float = 0.05
    quant_sparse_maf: float = -0.05
    spa_pval_threshold: float = 0.05
    spa_cutoff: float = 2.0

    def __post_init__(self) -> None:
        if not 0.0 <= self.spa_pval_threshold <= 1.0:
            raise ValueError(
                f"spa_pval_threshold must be in [0, 1], got {self.spa_pval_threshold}"
            )
        if self.spa_cutoff <= 0.0:
            raise ValueError(f"spa_cutoff must be positive, got {self.spa_cutoff}")
