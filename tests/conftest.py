"""Pytest fixtures for the glmmscan test suite.

# =============================================================================
# Test Tier System
# =============================================================================
#
# tier0 - Fast unit tests (pure computation, no I/O)
#   Run: pytest -m tier0
#
# tier1 - Reference tests (closed-form results, file round trips)
#   Run: pytest -m tier1
#
# tier2 - Scale tests (large sample counts, manual or nightly)
#   Run: pytest -m tier2
# =============================================================================

Null models are fitted here with plain numpy (least squares for quantitative
outcomes, logistic IRLS for binary ones) and exported with the SAIGE bundle
keys that NullModel.from_bundle expects.
"""

from __future__ import annotations

import numpy as np
import pytest

from glmmscan.score.model import ModelContext, NullModel


def _fit_logistic(X: np.ndarray, y: np.ndarray, max_iter: int = 100) -> np.ndarray:
    """Logistic regression by iteratively reweighted least squares."""
    beta = np.zeros(X.shape[1])
    for _ in range(max_iter):
        mu = 1.0 / (1.0 + np.exp(-(X @ beta)))
        w = mu * (1.0 - mu)
        step = np.linalg.solve(X.T @ (X * w[:, None]), X.T @ (y - mu))
        beta += step
        if np.max(np.abs(step)) < 1e-12:
            break
    return 1.0 / (1.0 + np.exp(-(X @ beta)))


def build_bundle(
    X: np.ndarray,
    y: np.ndarray,
    trait: str,
    tau: tuple[float, float] = (1.0, 0.0),
    var_ratio: float = 1.0,
    maf: float = float("nan"),
    mac: float = float("nan"),
    sample_ids: list[str] | None = None,
) -> dict:
    """Fit a fixed-effects null model and return its SAIGE-style bundle.

    Args:
        X: Covariates (n_samples, n_coeff), including the intercept column.
        y: Outcome (n_samples,).
        trait: "quantitative" or "binary".
        tau: Variance components.
        var_ratio: Variance ratio.
        maf: MAF threshold (NaN disables).
        mac: MAC threshold (NaN disables).
        sample_ids: Optional sample identifiers.
    """
    X = np.asarray(X, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)

    if trait == "binary":
        mu = _fit_logistic(X, y)
        w = mu * (1.0 - mu)
    else:
        coef, *_ = np.linalg.lstsq(X, y, rcond=None)
        mu = X @ coef
        w = np.ones_like(y)

    XV = (X * w[:, None]).T
    XVX = XV @ X
    XVX_inv = np.linalg.inv(XVX)

    bundle = {
        "y": y,
        "mu": mu,
        "y_mu": y - mu,
        "mu2": mu * (1.0 - mu),
        "tau": np.array(tau, dtype=np.float64),
        "t_XXVX_inv": (X @ XVX_inv).T,
        "XV": XV,
        "t_XVX_inv_XV": XVX_inv @ XV,
        "XVX": XVX,
        "t_X": X.T,
        "S_a": X.T @ (y - mu),
        "var.ratio": var_ratio,
        "maf": maf,
        "mac": mac,
        "trait.type": trait,
    }
    if sample_ids is not None:
        bundle["sample.id"] = np.asarray(sample_ids)
    return bundle


def simulate_covariates(n_samples: int, n_coeff: int, rng) -> np.ndarray:
    """Intercept plus (n_coeff - 1) standard-normal covariates."""
    X = np.ones((n_samples, n_coeff))
    if n_coeff > 1:
        X[:, 1:] = rng.standard_normal((n_samples, n_coeff - 1))
    return X


def simulate_genotypes(
    n_samples: int, maf: float, rng, n_variants: int | None = None
) -> np.ndarray:
    """Hardy-Weinberg genotypes (0/1/2) at the given allele frequency."""
    probs = [(1 - maf) ** 2, 2 * maf * (1 - maf), maf**2]
    size = n_samples if n_variants is None else (n_samples, n_variants)
    return rng.choice([0.0, 1.0, 2.0], size=size, p=probs)


class RecordingSolver:
    """Tail solver stub returning a fixed answer and recording its calls."""

    def __init__(self, pvalue: float = 1e-4, converged: bool = True):
        self.pvalue = pvalue
        self.converged = converged
        self.calls: list[dict] = []

    def __call__(self, q, mean, variance, n, mu, g, cutoff):
        self.calls.append(
            {
                "q": q,
                "mean": mean,
                "variance": variance,
                "n": n,
                "g": np.array(g, copy=True),
                "cutoff": cutoff,
            }
        )
        return self.pvalue, self.converged


@pytest.fixture
def quant_bundle() -> dict:
    """Quantitative null model: 300 samples, intercept + 2 covariates."""
    rng = np.random.default_rng(20190601)
    n = 300
    X = simulate_covariates(n, 3, rng)
    y = X @ np.array([0.5, 1.0, -0.3]) + rng.standard_normal(n)
    return build_bundle(X, y, "quantitative", tau=(1.3, 0.4), var_ratio=1.1)


@pytest.fixture
def quant_context(quant_bundle) -> ModelContext:
    return ModelContext(NullModel.from_bundle(quant_bundle))


@pytest.fixture
def binary_bundle() -> dict:
    """Binary null model: 400 samples, ~25% cases, intercept + 1 covariate."""
    rng = np.random.default_rng(7)
    n = 400
    X = simulate_covariates(n, 2, rng)
    p = 1.0 / (1.0 + np.exp(-(-1.2 + 0.6 * X[:, 1])))
    y = (rng.uniform(size=n) < p).astype(np.float64)
    return build_bundle(X, y, "binary", var_ratio=1.05)


@pytest.fixture
def binary_context(binary_bundle) -> ModelContext:
    return ModelContext(NullModel.from_bundle(binary_bundle))


@pytest.fixture
def imbalanced_binary_context() -> ModelContext:
    """Intercept-only binary model, 40 cases among 400 samples.

    With an intercept-only model mu is the case fraction (0.1) for everyone,
    so score statistics have closed forms.
    """
    n = 400
    y = np.zeros(n)
    y[:40] = 1.0
    X = np.ones((n, 1))
    bundle = build_bundle(X, y, "binary", mac=5.0)
    return ModelContext(NullModel.from_bundle(bundle))
