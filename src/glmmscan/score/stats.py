"""Distribution helpers for the score test.

Thin wrappers over scipy.special ufuncs. They are called once per variant,
so they avoid the frozen-distribution overhead of scipy.stats.
"""

import numpy as np
from scipy.special import chdtrc, ndtri


def chisq1_sf(x: float) -> float:
    """Upper tail of the chi-squared distribution with one degree of freedom."""
    return chdtrc(1.0, x)


def score_pvalue(stat: float, var: float) -> float:
    """P-value of a score statistic with the given variance.

    A variance that is not strictly positive and finite makes the test
    uncomputable; the result is NaN rather than an exception so the variant
    still produces a record.
    """
    if not (var > 0.0 and np.isfinite(var)):
        return np.nan
    return chisq1_sf(stat * stat / var)


def standard_error(beta: float, pval: float) -> float:
    """SE implied by an effect estimate and its two-sided p-value.

    |beta / z| with z the normal quantile at pval / 2. p = 1 gives an
    infinite SE, a non-finite p gives NaN.
    """
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.abs(beta / ndtri(pval / 2.0))
