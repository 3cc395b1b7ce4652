"""Score test for quantitative outcomes.

The genotype g is adjusted for the null-model covariates,

    adj = g - X (X'VX)^-1 X'V g,

and the dense path tests T = (y - mu)'adj / sqrt(mac) / tau[0] with variance
adj'adj / mac * var.ratio.

The sparse path never forms adj. With coeff = (X'VX)^-1 X'V g computed over
the non-zero genotypes I and B = (X coeff)[I]:

    adj'adj = coeff' X'VX coeff + sum_I (g - B)^2 - sum_I B^2
    S1      = sum_I (y - mu)(g - B)
    S2      = ((X'(y - mu))_I - S_a)' coeff

where (X'(y - mu))_I sums over I only and S_a is the full-sample sum.
S1 + S2 equals (y - mu)'adj, but the SAIGE statistic scales only S1:

    T = (S1 / sqrt(mac) + S2) / tau[0]

so the two paths share the variance and differ in T whenever S2 != 0 and
mac != 1. Quantitative variants take the sparse path by default.
"""

from __future__ import annotations

from typing import NamedTuple

import numpy as np

from glmmscan.score.kernels import (
    dot,
    dot_and_sumsq,
    mat_t_vec_sparse,
    mat_vec,
    mat_vec_sparse,
    quad_form,
    sub_mat_t_vec,
)
from glmmscan.score.model import ModelContext, Strategy
from glmmscan.score.prepare import PreparedVariant, load_dosage, prepare_variant
from glmmscan.score.results import ScoreResult
from glmmscan.score.stats import score_pvalue, standard_error


class QuantStatistic(NamedTuple):
    """Scaled score statistic and its variance (variance ratio applied)."""

    tstat: float
    var: float


def quant_statistic(
    context: ModelContext,
    g: np.ndarray,
    variant: PreparedVariant,
    strategy: Strategy,
) -> QuantStatistic:
    """Compute the quantitative score statistic with the given projection.

    Both strategies give the same variance. The sparse statistic follows
    SAIGE and scales only S1 by 1/sqrt(mac), so it matches the dense one
    only when S2 vanishes or mac is 1.

    Args:
        context: Model and scratch buffers.
        g: Prepared (imputed, flipped) genotype, as left by prepare_variant.
        variant: Summary returned by prepare_variant for g.
        strategy: Projection to use.

    Returns:
        QuantStatistic(tstat, var).
    """
    model = context.model
    buf = context.buffers
    inv_sqrt_mac = 1.0 / np.sqrt(variant.mac)

    if strategy is Strategy.SPARSE:
        idx = buf.sparse_index[: variant.n_nonzero]
        # coeff = (X'VX)^-1 X'V g over the non-zero genotypes
        mat_vec_sparse(model.proj_coeff_weighted, g, idx, out=buf.coeff)
        B = mat_t_vec_sparse(model.covariate_t, buf.coeff, idx, out=buf.proj_geno)
        g_tilde = np.subtract(g[idx], B, out=buf.g_tilde[: variant.n_nonzero])

        var2 = (
            quad_form(model.cov_cross_prod, buf.coeff)
            + dot(g_tilde, g_tilde)
            - dot(B, B)
        )
        var1 = var2 / variant.mac * model.variance_ratio

        s1 = dot(model.residual[idx], g_tilde)
        mat_vec_sparse(model.covariate_t, model.residual, idx, out=buf.tmp)
        np.subtract(buf.tmp, model.score_adj, out=buf.tmp)
        s2 = dot(buf.tmp, buf.coeff)
        tstat = (s1 * inv_sqrt_mac + s2) / model.tau[0]
    else:
        mat_vec(model.cov_weighted, g, out=buf.coeff)
        sub_mat_t_vec(g, model.proj_inv_coeff_t, buf.coeff, out=buf.adj_geno)
        s, var = dot_and_sumsq(model.residual, buf.adj_geno)
        tstat = s * inv_sqrt_mac / model.tau[0]
        var1 = var / variant.mac * model.variance_ratio

    return QuantStatistic(tstat, var1)


def quantitative_score_test(
    context: ModelContext, dosage: np.ndarray
) -> ScoreResult | None:
    """Score test of one variant against a quantitative outcome.

    Args:
        context: Quantitative null model and the caller's scratch buffers.
        dosage: Raw dosage vector (n_samples,); missing values allowed.

    Returns:
        ScoreResult(af, ac, n, beta, se, pval), or None when the variant is
        excluded by the MAF/MAC gate.
    """
    g = load_dosage(context, dosage)
    variant = prepare_variant(context, g)
    if variant is None:
        return None

    strategy = context.select_strategy(variant.maf)
    with np.errstate(divide="ignore", invalid="ignore"):
        stat = quant_statistic(context, g, variant, strategy)
        pval = score_pvalue(stat.tstat, stat.var)
        beta = variant.sign * stat.tstat / stat.var / np.sqrt(variant.mac)
        se = standard_error(beta, pval)

    return ScoreResult(
        af=variant.af,
        ac=variant.ac,
        n=variant.n,
        beta=float(beta),
        se=float(se),
        pval=float(pval),
    )
