"""Null-model snapshot and per-worker scratch buffers.

NullModel holds everything the per-variant score test reads from the fitted
GLMM null model. It is built once, validated in full at construction, and
its arrays are made read-only so one instance can be shared by many worker
threads. ScratchBuffers holds the mutable per-call workspace; ModelContext
pairs one model with one buffer set.

Bundle keys follow the SAIGE null-model object:

    key              field                 shape
    ---------------  --------------------  -----------------
    y                y                     (n,)
    mu               mu                    (n,)
    y_mu             residual              (n,)
    mu2              mu_var                (n,)
    tau              tau                   (2,)
    t_XXVX_inv       proj_inv_coeff_t      (k, n)
    XV               cov_weighted          (k, n)
    t_XVX_inv_XV     proj_coeff_weighted   (k, n)
    XVX              cov_cross_prod        (k, k)
    t_X              covariate_t           (k, n)
    S_a              score_adj             (k,)
    var.ratio        variance_ratio        scalar
    maf, mac         thresholds            scalar
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np
from loguru import logger

from glmmscan.core.config import ScoreConfig


class Trait(str, Enum):
    """Outcome type of the null model."""

    QUANTITATIVE = "quantitative"
    BINARY = "binary"


class Strategy(str, Enum):
    """Projection strategy chosen once per variant from its MAF."""

    SPARSE = "sparse"
    DENSE = "dense"


# bundle key -> (field name, shape spec); "n" and "k" are resolved from y and XV
_VECTOR_FIELDS: dict[str, tuple[str, tuple[str, ...]]] = {
    "y": ("y", ("n",)),
    "mu": ("mu", ("n",)),
    "y_mu": ("residual", ("n",)),
    "mu2": ("mu_var", ("n",)),
    "tau": ("tau", ("2",)),
    "t_XXVX_inv": ("proj_inv_coeff_t", ("k", "n")),
    "XV": ("cov_weighted", ("k", "n")),
    "t_XVX_inv_XV": ("proj_coeff_weighted", ("k", "n")),
    "XVX": ("cov_cross_prod", ("k", "k")),
    "t_X": ("covariate_t", ("k", "n")),
    "S_a": ("score_adj", ("k",)),
}
_SCALAR_FIELDS = ("maf", "mac", "var.ratio")


def _threshold(value: Any) -> float:
    # non-finite threshold means "no filter"
    value = float(value)
    return value if math.isfinite(value) else -1.0


def _as_scalar(bundle: Mapping[str, Any], key: str) -> float:
    arr = np.asarray(bundle[key], dtype=np.float64)
    if arr.size != 1:
        raise ValueError(f"Model field {key!r} must be a scalar, got shape {arr.shape}")
    return float(arr.reshape(-1)[0])


def _frozen(arr: np.ndarray) -> np.ndarray:
    arr = np.array(arr, dtype=np.float64, order="C", copy=True)
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True, eq=False)
class NullModel:
    """Immutable snapshot of a fitted GLMM null model.

    All vectors and matrices share the sample ordering fixed at
    construction. Matrices are stored (n_coeff, n_samples).

    Attributes:
        trait: Outcome type; selects the quantitative or binary test.
        n_samples: Number of samples (length of y).
        n_coeff: Number of mean-model covariates (rows of XV).
        tau: Variance components; tau[0] scales the quantitative statistic.
        y: Phenotype.
        mu: Fitted mean under the null.
        residual: y - mu.
        mu_var: Binomial variance mu * (1 - mu).
        proj_inv_coeff_t: (X (X'VX)^-1)' used by the dense projection.
        cov_weighted: (XV)' weighted covariates, dense projection.
        proj_coeff_weighted: (X'VX)^-1 (XV)', sparse projection.
        cov_cross_prod: X'VX.
        covariate_t: X'.
        score_adj: X'(y - mu), full-sample score adjustment.
        variance_ratio: Scalar correction applied to every variance.
        maf_threshold: Inclusive lower MAF bound (-1 disables).
        mac_threshold: Inclusive lower MAC bound (-1 disables).
        sample_ids: Optional sample identifiers in model order.
    """

    trait: Trait
    n_samples: int
    n_coeff: int
    tau: np.ndarray
    y: np.ndarray
    mu: np.ndarray
    residual: np.ndarray
    mu_var: np.ndarray
    proj_inv_coeff_t: np.ndarray
    cov_weighted: np.ndarray
    proj_coeff_weighted: np.ndarray
    cov_cross_prod: np.ndarray
    covariate_t: np.ndarray
    score_adj: np.ndarray
    variance_ratio: float
    maf_threshold: float = -1.0
    mac_threshold: float = -1.0
    sample_ids: tuple[str, ...] | None = None

    @classmethod
    def from_bundle(
        cls,
        bundle: Mapping[str, Any],
        trait: Trait | str | None = None,
    ) -> NullModel:
        """Build a NullModel from a SAIGE-style mapping.

        n_samples is taken from len(y) and n_coeff from the row count of XV.
        Every missing key and every dimension mismatch is collected and
        reported in a single ValueError, before any variant is tested.

        Args:
            bundle: Mapping with the keys listed in the module docstring,
                plus optional "trait.type" and "sample.id".
            trait: Outcome type; overrides bundle["trait.type"] when given.

        Returns:
            Validated, read-only NullModel.

        Raises:
            ValueError: If keys are missing, shapes are inconsistent, the
                trait is unknown, or tau[0] is zero.
        """
        required = list(_VECTOR_FIELDS) + list(_SCALAR_FIELDS)
        missing = [key for key in required if key not in bundle]
        if missing:
            raise ValueError(f"Null model is missing required fields: {missing}")

        if trait is None:
            trait = bundle.get("trait.type")
            if trait is None:
                raise ValueError(
                    "Trait type not given and bundle has no 'trait.type' field"
                )
            trait = str(np.asarray(trait).reshape(-1)[0])
        try:
            trait = Trait(trait)
        except ValueError:
            raise ValueError(
                f"trait must be 'quantitative' or 'binary', got {trait!r}"
            ) from None

        arrays = {key: np.asarray(bundle[key], dtype=np.float64) for key in _VECTOR_FIELDS}
        if arrays["y"].ndim != 1:
            raise ValueError(f"y must be 1-D, got shape {arrays['y'].shape}")
        if arrays["XV"].ndim != 2:
            raise ValueError(f"XV must be 2-D, got shape {arrays['XV'].shape}")
        dims = {"n": arrays["y"].shape[0], "k": arrays["XV"].shape[0], "2": 2}

        errors = []
        for key, (_, spec) in _VECTOR_FIELDS.items():
            expected = tuple(dims[s] for s in spec)
            if arrays[key].shape != expected:
                errors.append(f"{key}: expected {expected}, got {arrays[key].shape}")
        if errors:
            raise ValueError(
                f"Null model dimension mismatch (n_samples={dims['n']}, "
                f"n_coeff={dims['k']}): " + "; ".join(errors)
            )

        if dims["n"] == 0 or dims["k"] == 0:
            raise ValueError(
                f"Null model must have samples and covariates, got "
                f"n_samples={dims['n']}, n_coeff={dims['k']}"
            )
        # configuration error: every quantitative statistic is divided by tau[0]
        if trait is Trait.QUANTITATIVE and arrays["tau"][0] == 0.0:
            raise ValueError("tau[0] must be non-zero for a quantitative model")

        sample_ids = None
        if "sample.id" in bundle and bundle["sample.id"] is not None:
            sample_ids = tuple(str(s) for s in np.asarray(bundle["sample.id"]).reshape(-1))
            if len(sample_ids) != dims["n"]:
                raise ValueError(
                    f"sample.id has {len(sample_ids)} entries but y has {dims['n']}"
                )

        fields = {name: _frozen(arrays[key]) for key, (name, _) in _VECTOR_FIELDS.items()}
        model = cls(
            trait=trait,
            n_samples=dims["n"],
            n_coeff=dims["k"],
            variance_ratio=_as_scalar(bundle, "var.ratio"),
            maf_threshold=_threshold(_as_scalar(bundle, "maf")),
            mac_threshold=_threshold(_as_scalar(bundle, "mac")),
            sample_ids=sample_ids,
            **fields,
        )
        logger.info(
            f"Null model: {model.trait.value}, {model.n_samples} samples, "
            f"{model.n_coeff} covariates, var.ratio={model.variance_ratio:.4g}"
        )
        logger.debug(
            f"Thresholds: maf>={model.maf_threshold}, mac>={model.mac_threshold}"
        )
        return model

    def to_bundle(self) -> dict[str, Any]:
        """Inverse of from_bundle, using SAIGE key names."""
        bundle: dict[str, Any] = {
            key: np.asarray(getattr(self, name)) for key, (name, _) in _VECTOR_FIELDS.items()
        }
        bundle["var.ratio"] = self.variance_ratio
        bundle["maf"] = self.maf_threshold
        bundle["mac"] = self.mac_threshold
        bundle["trait.type"] = self.trait.value
        if self.sample_ids is not None:
            bundle["sample.id"] = np.asarray(self.sample_ids)
        return bundle


@dataclass(eq=False)
class ScratchBuffers:
    """Mutable per-call workspace, reused across variants.

    Not safe to share between threads: give each worker its own instance.
    """

    geno: np.ndarray
    coeff: np.ndarray
    adj_geno: np.ndarray
    sparse_index: np.ndarray
    proj_geno: np.ndarray
    g_tilde: np.ndarray
    tmp: np.ndarray

    @classmethod
    def allocate(cls, n_samples: int, n_coeff: int) -> ScratchBuffers:
        return cls(
            geno=np.empty(n_samples, dtype=np.float64),
            coeff=np.empty(n_coeff, dtype=np.float64),
            adj_geno=np.empty(n_samples, dtype=np.float64),
            sparse_index=np.empty(n_samples, dtype=np.intp),
            proj_geno=np.empty(n_samples, dtype=np.float64),
            g_tilde=np.empty(n_samples, dtype=np.float64),
            tmp=np.empty(n_coeff, dtype=np.float64),
        )


@dataclass(eq=False)
class ModelContext:
    """A NullModel plus the scratch buffers of one worker.

    Example:
        >>> context = ModelContext(model)
        >>> worker_context = context.fork()  # same model, own buffers
    """

    model: NullModel
    config: ScoreConfig = field(default_factory=ScoreConfig)
    buffers: ScratchBuffers | None = None

    def __post_init__(self) -> None:
        if self.buffers is None:
            self.buffers = ScratchBuffers.allocate(
                self.model.n_samples, self.model.n_coeff
            )
        elif self.buffers.geno.shape[0] != self.model.n_samples or (
            self.buffers.coeff.shape[0] != self.model.n_coeff
        ):
            raise ValueError("Scratch buffers do not match the model dimensions")

    @classmethod
    def from_bundle(
        cls,
        bundle: Mapping[str, Any],
        trait: Trait | str | None = None,
        config: ScoreConfig | None = None,
    ) -> ModelContext:
        model = NullModel.from_bundle(bundle, trait=trait)
        return cls(model, config=config or ScoreConfig())

    def fork(self) -> ModelContext:
        """New context over the same read-only model with fresh buffers."""
        return ModelContext(self.model, config=self.config)

    def select_strategy(self, maf: float) -> Strategy:
        """Sparse or dense projection for a variant with this MAF.

        Binary: sparse when maf < binary_sparse_maf. Quantitative: sparse
        when maf > quant_sparse_maf, which with the default of -0.05 holds
        for every variant.
        """
        if self.model.trait is Trait.BINARY:
            if maf < self.config.binary_sparse_maf:
                return Strategy.SPARSE
            return Strategy.DENSE
        if maf > self.config.quant_sparse_maf:
            return Strategy.SPARSE
        return Strategy.DENSE
