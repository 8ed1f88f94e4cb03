"""
Test Gaussian and zero-inflated log-likelihoods.
"""

import numpy as np
import pytest
from scipy.stats import norm

from scswitch.likelihood import (
    gaussian_log_likelihood,
    gaussian_log_likelihood_grad,
    null_log_likelihood,
    dropout_probability,
    zero_inflated_log_likelihood,
    dropout_responsibilities,
    expected_log_likelihood,
    expected_log_likelihood_grad
)
from scswitch.sigmoid import sigmoid


def numeric_grad(f, params, eps=1e-6):
    """Central finite-difference gradient."""
    params = np.asarray(params, dtype=float)
    grad = np.zeros_like(params)
    for j in range(len(params)):
        hi = params.copy()
        lo = params.copy()
        hi[j] += eps
        lo[j] -= eps
        grad[j] = (f(hi) - f(lo)) / (2 * eps)
    return grad


@pytest.fixture
def gene_data():
    rng = np.random.default_rng(3)
    pst = np.sort(rng.uniform(0, 1, 80))
    x = sigmoid(pst, 6.0, 7.0, 0.45) + rng.normal(0, 0.5, 80)
    return x, pst


@pytest.fixture
def dropout_data():
    rng = np.random.default_rng(11)
    pst = np.sort(rng.uniform(0, 1, 80))
    x = np.abs(sigmoid(pst, 5.0, -6.0, 0.5) + rng.normal(0, 0.4, 80))
    x[rng.uniform(size=80) < 0.3] = 0.0
    return x, pst


class TestGaussianLikelihood:
    """Test the Gaussian sigmoid model log-likelihood."""

    def test_matches_scipy_normal(self, gene_data):
        x, pst = gene_data
        params = np.array([5.5, 6.0, 0.5, 0.6])
        expected = norm.logpdf(x, loc=sigmoid(pst, 5.5, 6.0, 0.5), scale=0.6).sum()
        assert gaussian_log_likelihood(params, x, pst) == pytest.approx(expected)

    def test_weights_scale_terms(self, gene_data):
        x, pst = gene_data
        params = np.array([5.5, 6.0, 0.5, 0.6])
        full = gaussian_log_likelihood(params, x, pst)
        half = gaussian_log_likelihood(params, x, pst, weights=np.full(len(x), 0.5))
        assert half == pytest.approx(0.5 * full)

    def test_gradient_matches_finite_differences(self, gene_data):
        x, pst = gene_data
        params = np.array([5.5, 6.0, 0.5, 0.6])
        analytic = gaussian_log_likelihood_grad(params, x, pst)
        numeric = numeric_grad(lambda p: gaussian_log_likelihood(p, x, pst), params)
        np.testing.assert_allclose(analytic, numeric, rtol=1e-4, atol=1e-4)

    def test_tiny_sigma_stays_finite(self):
        """Collapsed residuals must not produce log(0) or division by zero."""
        pst = np.linspace(0, 1, 10)
        x = sigmoid(pst, 2.0, 3.0, 0.5)
        ll = gaussian_log_likelihood(np.array([2.0, 3.0, 0.5, 0.0]), x, pst)
        assert np.isfinite(ll)


class TestNullLikelihood:
    """Test the closed-form constant-mean model."""

    def test_estimates(self, gene_data):
        x, _ = gene_data
        ll, mean, sigma = null_log_likelihood(x)
        assert mean == pytest.approx(np.mean(x))
        assert sigma == pytest.approx(np.std(x))
        assert ll == pytest.approx(norm.logpdf(x, mean, sigma).sum())

    def test_equals_full_model_at_k_zero(self, gene_data):
        """The sigmoid model with k = 0 reproduces the null likelihood for any t0."""
        x, pst = gene_data
        ll_null, mean, sigma = null_log_likelihood(x)
        for t0 in [-1.0, 0.2, 0.9, 5.0]:
            ll_full = gaussian_log_likelihood(np.array([2 * mean, 0.0, t0, sigma]), x, pst)
            assert ll_full == pytest.approx(ll_null, rel=1e-12)

    def test_null_is_maximum_over_constant_means(self, gene_data):
        x, pst = gene_data
        ll_null, mean, sigma = null_log_likelihood(x)
        for shift in [-0.1, 0.1]:
            ll = gaussian_log_likelihood(np.array([2 * (mean + shift), 0.0, 0.5, sigma]), x, pst)
            assert ll < ll_null


class TestDropoutProbability:
    """Test the exp(-mu^2 / lambda) dropout link."""

    def test_range_and_monotonicity(self):
        mean = np.linspace(0.01, 10, 200)
        p = dropout_probability(mean, 4.0)
        assert np.all((p >= 0) & (p <= 1))
        assert np.all(np.diff(p) <= 0)

    def test_lambda_zero_disables_dropout(self):
        p = dropout_probability(np.array([0.1, 1.0, 5.0]), 0.0)
        assert np.allclose(p, 0.0)

    def test_zero_mean_always_drops(self):
        assert dropout_probability(np.array([0.0]), 2.0)[0] == pytest.approx(1.0)

    def test_value(self):
        assert dropout_probability(np.array([2.0]), 8.0)[0] == pytest.approx(np.exp(-0.5))


class TestZeroInflatedLikelihood:
    """Test the zero-inflated mixture and EM quantities."""

    def test_reduces_to_gaussian_without_zeros_or_dropout(self, gene_data):
        x, pst = gene_data
        params = np.array([5.5, 6.0, 0.5, 0.6])
        # Means stay well away from zero so log(1 - p) = 0 at lambda = 0
        assert np.all(sigmoid(pst, 5.5, 6.0, 0.5) > 0.1)
        zi = zero_inflated_log_likelihood(np.append(params, 0.0), x, pst)
        assert zi == pytest.approx(gaussian_log_likelihood(params, x, pst))

    def test_matches_direct_mixture(self, dropout_data):
        x, pst = dropout_data
        params = np.array([5.0, -6.0, 0.5, 0.4, 3.0])
        mean = sigmoid(pst, 5.0, -6.0, 0.5)
        p = np.exp(-mean ** 2 / 3.0)
        dens = norm.pdf(x, mean, 0.4)
        lik = np.where(x == 0, p + (1 - p) * dens, (1 - p) * dens)
        assert zero_inflated_log_likelihood(params, x, pst) == pytest.approx(np.log(lik).sum())

    def test_responsibilities(self, dropout_data):
        """Only observed zeros can be dropouts."""
        x, pst = dropout_data
        params = np.array([5.0, -6.0, 0.5, 0.4, 3.0])
        resp = dropout_responsibilities(params, x, pst)
        assert np.all(resp[x != 0] == 0)
        assert np.all((resp[x == 0] > 0) & (resp[x == 0] <= 1))

    def test_expected_log_likelihood_bounds_observed(self, dropout_data):
        """Q(theta) + H = log L(theta) at the E-step point, so Q <= log L."""
        x, pst = dropout_data
        params = np.array([5.0, -6.0, 0.5, 0.4, 3.0])
        resp = dropout_responsibilities(params, x, pst)
        q = expected_log_likelihood(params, x, pst, resp)
        assert q <= zero_inflated_log_likelihood(params, x, pst) + 1e-9

    def test_expected_gradient_matches_finite_differences(self, dropout_data):
        x, pst = dropout_data
        params = np.array([4.5, -5.0, 0.55, 0.5, 2.0])
        resp = dropout_responsibilities(np.array([5.0, -6.0, 0.5, 0.4, 3.0]), x, pst)
        analytic = expected_log_likelihood_grad(params, x, pst, resp)
        numeric = numeric_grad(lambda p: expected_log_likelihood(p, x, pst, resp), params)
        np.testing.assert_allclose(analytic, numeric, rtol=1e-4, atol=1e-3)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
