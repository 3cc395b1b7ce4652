"""Tests for the score-test vector kernels.

Covers mean imputation of missing dosages, the non-zero index set used by
the sparse projection, and agreement of the sparse and dense matrix-vector
products.
"""

from __future__ import annotations

import numpy as np
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from glmmscan.score.kernels import (
    af_ac_impute,
    dot_and_sumsq,
    dot_and_weighted_sumsq,
    mat_t_vec_sparse,
    mat_vec,
    mat_vec_sparse,
    negate_and_shift,
    nonzero_index,
    quad_form,
    scale,
    sub_mat_t_vec,
)

dosage_values = st.one_of(
    st.sampled_from([0.0, 1.0, 2.0]),
    st.floats(min_value=0.0, max_value=2.0),
    st.sampled_from([np.nan, -9.0, -1.0, 3.0, np.inf]),
)


@pytest.mark.tier0
class TestAfAcImpute:
    """Tests for af_ac_impute()."""

    def test_no_missing(self):
        g = np.array([0.0, 1.0, 2.0, 1.0])
        index = np.empty(4, dtype=np.intp)
        af, ac, n, n_nonzero = af_ac_impute(g, index)
        assert ac == 4.0
        assert n == 4
        assert af == pytest.approx(0.5)
        assert n_nonzero == 3
        np.testing.assert_array_equal(index[:n_nonzero], [1, 2, 3])

    def test_missing_imputed_to_twice_af(self):
        g = np.array([np.nan, 1.0, -9.0, 2.0, 0.0])
        index = np.empty(5, dtype=np.intp)
        af, ac, n, n_nonzero = af_ac_impute(g, index)
        assert n == 3
        assert ac == 3.0
        assert af == pytest.approx(0.5)
        np.testing.assert_allclose(g, [1.0, 1.0, 1.0, 2.0, 0.0])
        assert n_nonzero == 4

    def test_out_of_range_is_missing(self):
        g = np.array([2.5, 1.0, 0.0, np.inf])
        index = np.empty(4, dtype=np.intp)
        af, ac, n, _ = af_ac_impute(g, index)
        assert n == 2
        assert ac == 1.0
        assert af == pytest.approx(0.25)
        np.testing.assert_allclose(g, [0.5, 1.0, 0.0, 0.5])

    def test_all_missing(self):
        g = np.full(3, np.nan)
        index = np.empty(3, dtype=np.intp)
        af, ac, n, n_nonzero = af_ac_impute(g, index)
        assert n == 0
        assert ac == 0.0
        assert af == 0.0
        assert n_nonzero == 0
        np.testing.assert_array_equal(g, 0.0)

    @given(st.lists(dosage_values, min_size=1, max_size=60))
    @settings(max_examples=200, deadline=None)
    def test_imputation_properties(self, values):
        """Imputed vector is finite, in range, and keeps the observed mean."""
        raw = np.array(values, dtype=np.float64)
        observed = (raw >= 0.0) & (raw <= 2.0)
        g = raw.copy()
        index = np.empty(g.shape[0], dtype=np.intp)

        af, ac, n, n_nonzero = af_ac_impute(g, index)

        assert n == int(observed.sum())
        assert np.all(np.isfinite(g))
        assert np.all((g >= 0.0) & (g <= 2.0))
        np.testing.assert_array_equal(g[observed], raw[observed])
        if n > 0:
            assert ac == pytest.approx(raw[observed].sum())
            assert af == pytest.approx(ac / (2 * n))
            np.testing.assert_allclose(g[~observed], 2 * af)
        np.testing.assert_array_equal(index[:n_nonzero], np.flatnonzero(g))

    @given(st.lists(dosage_values, min_size=1, max_size=60))
    @settings(max_examples=100, deadline=None)
    def test_flip_preserves_minor_allele_count(self, values):
        """After flipping, the counted allele sums to 2n - ac."""
        g = np.array(values, dtype=np.float64)
        index = np.empty(g.shape[0], dtype=np.intp)
        af, ac, n, _ = af_ac_impute(g, index)
        if n == 0:
            return
        negate_and_shift(g, 2.0)
        imputed_total = g.sum()
        n_missing = g.shape[0] - n
        # observed entries flip to 2n - ac; imputed ones to 2 - 2af each
        expected = (2.0 * n - ac) + n_missing * (2.0 - 2.0 * af)
        assert imputed_total == pytest.approx(expected)


@pytest.mark.tier0
class TestNonzeroIndex:
    """Tests for nonzero_index() and negate_and_shift()."""

    def test_indices_written_in_order(self):
        g = np.array([0.0, 0.0, 1.5, 0.0, 2.0])
        index = np.full(5, -1, dtype=np.intp)
        count = nonzero_index(g, index)
        assert count == 2
        np.testing.assert_array_equal(index[:2], [2, 4])

    def test_negate_and_shift_in_place(self):
        g = np.array([0.0, 1.0, 2.0, 0.4])
        negate_and_shift(g, 2.0)
        np.testing.assert_allclose(g, [2.0, 1.0, 0.0, 1.6])


@pytest.mark.tier0
class TestProducts:
    """Sparse products equal their dense counterparts on sparse vectors."""

    @pytest.fixture
    def sparse_setup(self):
        rng = np.random.default_rng(11)
        k, n = 3, 50
        M = rng.standard_normal((k, n))
        x = np.zeros(n)
        hits = rng.choice(n, size=6, replace=False)
        x[hits] = rng.choice([1.0, 2.0], size=6)
        index = np.flatnonzero(x)
        return M, x, index

    def test_mat_vec_sparse_matches_dense(self, sparse_setup):
        M, x, index = sparse_setup
        out_sparse = np.empty(M.shape[0])
        out_dense = np.empty(M.shape[0])
        mat_vec_sparse(M, x, index, out_sparse)
        mat_vec(M, x, out_dense)
        np.testing.assert_allclose(out_sparse, out_dense, rtol=1e-12)
        np.testing.assert_allclose(out_dense, M @ x, rtol=1e-12)

    def test_mat_t_vec_sparse_returns_view(self, sparse_setup):
        M, _, index = sparse_setup
        coeff = np.array([0.3, -1.2, 2.0])
        out = np.full(M.shape[1], np.nan)
        view = mat_t_vec_sparse(M, coeff, index, out)
        assert view.shape == (index.shape[0],)
        assert np.shares_memory(view, out)
        np.testing.assert_allclose(view, (M.T @ coeff)[index], rtol=1e-12)

    def test_sub_mat_t_vec(self, sparse_setup):
        M, x, _ = sparse_setup
        coeff = np.array([1.0, 0.5, -0.25])
        out = np.empty_like(x)
        sub_mat_t_vec(x, M, coeff, out)
        np.testing.assert_allclose(out, x - M.T @ coeff, rtol=1e-12)

    def test_reductions(self):
        x = np.array([1.0, 2.0, 3.0])
        y = np.array([0.5, -1.0, 2.0])
        w = np.array([0.1, 0.2, 0.3])
        W = np.array([[2.0, 0.5, 0.0], [0.5, 1.0, 0.0], [0.0, 0.0, 3.0]])

        s, ss = dot_and_sumsq(x, y)
        assert s == pytest.approx(4.5)
        assert ss == pytest.approx(5.25)

        s, wss = dot_and_weighted_sumsq(x, w, y)
        assert s == pytest.approx(4.5)
        assert wss == pytest.approx(0.025 + 0.2 + 1.2)

        assert quad_form(W, x) == pytest.approx(x @ W @ x)

    def test_scale_in_place(self):
        x = np.array([1.0, -2.0, 4.0])
        scale(x, 0.5)
        np.testing.assert_allclose(x, [0.5, -1.0, 2.0])


@pytest.mark.tier0
class TestFlipInvolution:
    """negate_and_shift(k=2) applied twice is the identity."""

    @given(
        st.lists(
            st.sampled_from([0.0, 0.5, 1.0, 1.25, 2.0]), min_size=1, max_size=80
        )
    )
    @settings(max_examples=100, deadline=None)
    def test_double_flip_exact(self, values):
        g = np.array(values, dtype=np.float64)
        original = g.copy()
        negate_and_shift(g, 2.0)
        negate_and_shift(g, 2.0)
        np.testing.assert_array_equal(g, original)
