"""Per-variant preprocessing shared by both outcome types.

Copies the raw dosage into the worker's scratch buffer, imputes missing
dosages to the mean, applies the MAF/MAC gate and flips the coding to the
minor allele when the counted allele is the major one.
"""

from __future__ import annotations

from typing import NamedTuple

import numpy as np

from glmmscan.score.kernels import af_ac_impute, negate_and_shift, nonzero_index
from glmmscan.score.model import ModelContext


class PreparedVariant(NamedTuple):
    """Summary of a dosage vector that passed the MAF/MAC gate.

    Attributes:
        af: Frequency of the counted allele (before flipping).
        ac: Count of the counted allele over non-missing samples.
        n: Non-missing sample count.
        maf: min(af, 1 - af).
        mac: min(ac, 2n - ac).
        minus: True when the genotype was flipped (af > 0.5).
        n_nonzero: Non-zero entries of the (flipped) genotype; their indices
            are in buffers.sparse_index[:n_nonzero].
    """

    af: float
    ac: float
    n: int
    maf: float
    mac: float
    minus: bool
    n_nonzero: int

    @property
    def sign(self) -> int:
        return -1 if self.minus else 1


def load_dosage(context: ModelContext, dosage: np.ndarray) -> np.ndarray:
    """Copy a raw dosage vector into the context's genotype buffer.

    The caller's array is never modified. Any numeric dtype is accepted
    (bed-reader float32, int8 with -127 missing, float64 with NaN).

    Raises:
        ValueError: If the dosage length differs from the model's sample count.
    """
    dosage = np.asarray(dosage)
    if dosage.shape != (context.model.n_samples,):
        raise ValueError(
            f"Dosage vector has shape {dosage.shape}, expected "
            f"({context.model.n_samples},)"
        )
    g = context.buffers.geno
    np.copyto(g, dosage, casting="unsafe")
    return g


def prepare_variant(context: ModelContext, g: np.ndarray) -> PreparedVariant | None:
    """Impute, filter and flip a genotype buffer in place.

    Returns:
        PreparedVariant, or None when the variant is monomorphic, entirely
        missing, or below the model's MAF/MAC thresholds. None is an
        exclusion, not an error.
    """
    model = context.model
    index = context.buffers.sparse_index

    af, ac, n, n_nonzero = af_ac_impute(g, index)
    maf = min(af, 1.0 - af)
    mac = min(ac, 2.0 * n - ac)
    if not (
        n > 0
        and maf > 0.0
        and maf >= model.maf_threshold
        and mac >= model.mac_threshold
    ):
        return None

    minus = af > 0.5
    if minus:
        negate_and_shift(g, 2.0)
        n_nonzero = nonzero_index(g, index)

    return PreparedVariant(af, ac, n, maf, mac, minus, n_nonzero)
