"""Vector kernels for the per-variant score test.

Elementary float64 primitives used by the quantitative and binary tests.
Every kernel writes into caller-provided buffers (sized once by
ScratchBuffers) and performs no scaling beyond what its docstring states;
normalising by allele count or variance ratio is the caller's job.

Matrix layout: model matrices are stored coefficient-major, shape
(n_coeff, n_samples), so a column is one sample. "Sparse" variants restrict
the sample axis to an index set of non-zero genotypes.
"""

from __future__ import annotations

import numpy as np

MAX_DOSAGE = 2.0


def af_ac_impute(
    g: np.ndarray, index_out: np.ndarray
) -> tuple[float, float, int, int]:
    """Allele frequency/count with mean imputation of missing dosages.

    A dosage is missing when it is non-finite or outside [0, 2] (this covers
    NaN, PLINK's -9 and other negative sentinels). Missing entries are
    replaced in place by 2 * AF.

    Args:
        g: Dosage vector (n,), float64, modified in place.
        index_out: Integer buffer (n,) receiving the indices of non-zero
            entries of the imputed vector in its first n_nonzero slots.

    Returns:
        Tuple of (af, ac, n_nonmissing, n_nonzero). af is 0.0 when every
        dosage is missing.
    """
    with np.errstate(invalid="ignore"):
        missing = ~((g >= 0.0) & (g <= MAX_DOSAGE))

    n_missing = int(np.count_nonzero(missing))
    n_nonmissing = g.shape[0] - n_missing

    if n_missing:
        ac = float(np.sum(g, where=~missing))
    else:
        ac = float(np.sum(g))
    af = ac / (2.0 * n_nonmissing) if n_nonmissing > 0 else 0.0

    if n_missing:
        g[missing] = 2.0 * af

    n_nonzero = nonzero_index(g, index_out)
    return af, ac, n_nonmissing, n_nonzero


def negate_and_shift(g: np.ndarray, k: float) -> None:
    """g[i] = k - g[i] in place (k=2 swaps the counted allele)."""
    np.subtract(k, g, out=g)


def nonzero_index(g: np.ndarray, index_out: np.ndarray) -> int:
    """Write indices of non-zero entries of g into index_out; return count."""
    idx = np.flatnonzero(g)
    count = idx.shape[0]
    index_out[:count] = idx
    return count


def mat_vec(M: np.ndarray, x: np.ndarray, out: np.ndarray) -> np.ndarray:
    """out = M @ x for M of shape (k, n)."""
    return np.dot(M, x, out=out)


def mat_vec_sparse(
    M: np.ndarray, x: np.ndarray, index: np.ndarray, out: np.ndarray
) -> np.ndarray:
    """out = M[:, index] @ x[index], summing only the indexed samples."""
    return np.dot(M[:, index], x[index], out=out)


def mat_t_vec_sparse(
    M: np.ndarray, coeff: np.ndarray, index: np.ndarray, out: np.ndarray
) -> np.ndarray:
    """(M.T @ coeff)[index] into out[:len(index)].

    Returns:
        View of out holding the len(index) results.
    """
    view = out[: index.shape[0]]
    np.dot(coeff, M[:, index], out=view)
    return view


def sub_mat_t_vec(
    x: np.ndarray, M: np.ndarray, coeff: np.ndarray, out: np.ndarray
) -> np.ndarray:
    """out = x - M.T @ coeff.

    With coeff = M1 @ x computed by mat_vec this is the subtract-dense-product
    x - M2.T (M1 x).
    """
    np.dot(coeff, M, out=out)
    np.subtract(x, out, out=out)
    return out


def quad_form(W: np.ndarray, x: np.ndarray) -> float:
    """x.T @ W @ x."""
    return x @ W @ x


def dot(x: np.ndarray, y: np.ndarray) -> float:
    return np.dot(x, y)


def dot_and_sumsq(x: np.ndarray, y: np.ndarray) -> tuple[float, float]:
    """(sum x*y, sum y*y) in one call."""
    return np.dot(x, y), np.dot(y, y)


def dot_and_weighted_sumsq(
    x: np.ndarray, w: np.ndarray, y: np.ndarray
) -> tuple[float, float]:
    """(sum x*y, sum w*y*y) in one call."""
    return np.dot(x, y), np.dot(w * y, y)


def scale(x: np.ndarray, k: float) -> None:
    """x *= k in place."""
    np.multiply(x, k, out=x)
