"""
Test maximum-likelihood fitting of the Gaussian sigmoid model.
"""

import numpy as np
import pytest

from scswitch.exceptions import OptimizationFailure
from scswitch.hypothesis import likelihood_ratio_test
from scswitch.likelihood import null_log_likelihood
from scswitch.optimize import (
    MU0_MIN,
    initial_parameters,
    starting_points,
    multi_start_optimize,
    fit_sigmoid_mle,
    fit_null_model
)
from scswitch.sigmoid import sigmoid
from scswitch.synthetic import simulate_gene


def make_gene(mu0, k, t0, sigma, n_cells, seed):
    rng = np.random.default_rng(seed)
    pst = np.sort(rng.uniform(0, 1, n_cells))
    x = simulate_gene(pst, mu0, k, t0, sigma, random_state=seed + 1)
    return x, pst


class TestStartingPoints:
    """Test initialization heuristics."""

    def test_heuristic_start(self):
        x, pst = make_gene(8.0, 6.0, 0.5, 0.3, 100, seed=0)
        mu0, k, t0, sigma = initial_parameters(x, pst)
        assert mu0 > np.mean(x)
        assert k > 0
        assert t0 == pytest.approx(np.median(pst))
        assert sigma > 0

    def test_sign_follows_correlation(self):
        x, pst = make_gene(8.0, -6.0, 0.5, 0.3, 100, seed=1)
        assert initial_parameters(x, pst)[1] < 0

    def test_number_of_starts(self):
        x, pst = make_gene(8.0, 6.0, 0.5, 0.3, 60, seed=2)
        for n in [1, 3, 6]:
            starts = starting_points(x, pst, n_starts=n)
            assert len(starts) == n
            for s in starts:
                assert s.shape == (4,)
                assert s[0] >= MU0_MIN and s[3] > 0

    def test_null_point_included(self):
        x, pst = make_gene(8.0, 6.0, 0.5, 0.3, 60, seed=2)
        _, mean, sigma = null_log_likelihood(x)
        null_start = starting_points(x, pst, n_starts=3)[1]
        assert null_start[1] == 0.0
        assert null_start[0] == pytest.approx(2 * mean)
        assert null_start[3] == pytest.approx(sigma)

    def test_random_starts_reproducible(self):
        x, pst = make_gene(8.0, 6.0, 0.5, 0.3, 60, seed=2)
        a = starting_points(x, pst, n_starts=6, random_state=4)
        b = starting_points(x, pst, n_starts=6, random_state=4)
        for s, t in zip(a, b):
            assert np.array_equal(s, t)


class TestMultiStart:
    """Test the multi-start L-BFGS-B driver."""

    def test_quadratic(self):
        target = np.array([1.0, -2.0])

        def f(theta):
            return float(np.sum((theta - target) ** 2))

        def g(theta):
            return 2 * (theta - target)

        x, fval, info = multi_start_optimize(
            f, [np.zeros(2), np.ones(2) * 5], [(None, None), (None, None)], jac=g
        )
        assert np.allclose(x, target, atol=1e-5)
        assert fval == pytest.approx(0.0, abs=1e-8)
        assert len(info['all_results']) == 2

    def test_respects_bounds(self):
        def f(theta):
            return float((theta[0] + 3.0) ** 2)

        x, _, _ = multi_start_optimize(f, [np.array([1.0])], [(0.5, None)], jac=lambda t: 2 * (t + 3.0))
        assert x[0] == pytest.approx(0.5)

    def test_all_starts_non_finite_raises(self):
        def f(theta):
            return np.nan

        with pytest.raises(OptimizationFailure):
            multi_start_optimize(f, [np.zeros(2)], [(None, None), (None, None)])


class TestSigmoidMLE:
    """Test parameter recovery and the likelihood-ratio test on single genes."""

    def test_recovers_parameters(self):
        """Low noise, n = 200: relative error below 10%."""
        x, pst = make_gene(10.0, 10.0, 0.5, 0.2, 200, seed=10)
        fit = fit_sigmoid_mle(x, pst)
        mu0, k, t0, sigma = fit.params

        assert fit.success
        assert abs(mu0 - 10.0) / 10.0 < 0.1
        assert abs(k - 10.0) / 10.0 < 0.1
        assert abs(t0 - 0.5) < 0.05
        assert abs(sigma - 0.2) / 0.2 < 0.2

    def test_recovers_down_regulation(self):
        x, pst = make_gene(6.0, -12.0, 0.35, 0.2, 150, seed=20)
        mu0, k, t0, _ = fit_sigmoid_mle(x, pst).params
        assert k < 0
        assert abs(t0 - 0.35) < 0.05
        assert abs(mu0 - 6.0) / 6.0 < 0.1

    def test_switching_gene_scenario(self):
        """mu0 = 10, k = 2, t0 = 0.5, 50 cells, sigma = 0.5."""
        x, pst = make_gene(10.0, 2.0, 0.5, 0.5, 50, seed=5)
        full = fit_sigmoid_mle(x, pst)
        null = fit_null_model(x, pst)
        _, pval = likelihood_ratio_test(full.log_lik, null.log_lik)

        mu0, k, t0, _ = full.params
        assert k > 0
        assert pval < 0.01

        # Fitted curve tracks the data trend
        rss = np.sum((x - sigmoid(pst, mu0, k, t0)) ** 2)
        tss = np.sum((x - np.mean(x)) ** 2)
        assert rss / tss < 0.3

    def test_steep_switch_activation_time(self):
        """A steep switch pins t0 inside [0.3, 0.7] with 50 cells."""
        x, pst = make_gene(10.0, 10.0, 0.5, 0.5, 50, seed=6)
        _, k, t0, _ = fit_sigmoid_mle(x, pst).params
        assert k > 0
        assert 0.3 <= t0 <= 0.7

    def test_full_never_below_null(self):
        """The null optimum is one of the starts, so D >= 0."""
        rng = np.random.default_rng(8)
        pst = rng.uniform(0, 1, 50)
        for _ in range(5):
            x = rng.normal(5.0, 1.0, 50)
            full = fit_sigmoid_mle(x, pst)
            null = fit_null_model(x, pst)
            assert full.log_lik >= null.log_lik - 1e-8

    def test_user_start_accepted(self):
        x, pst = make_gene(10.0, 10.0, 0.5, 0.2, 100, seed=12)
        fit = fit_sigmoid_mle(x, pst, x0=np.array([9.0, 8.0, 0.45]))
        assert abs(fit.params[2] - 0.5) < 0.05

    def test_mu0_stays_positive(self):
        """Mostly negative data must not push mu0 below its bound."""
        rng = np.random.default_rng(9)
        pst = rng.uniform(0, 1, 60)
        x = rng.normal(-1.0, 0.3, 60)
        fit = fit_sigmoid_mle(x, pst)
        assert fit.params[0] >= MU0_MIN


class TestNullModel:
    """Test the closed-form null fit."""

    def test_params(self):
        rng = np.random.default_rng(1)
        pst = rng.uniform(0, 1, 40)
        x = rng.normal(3.0, 1.0, 40)
        fit = fit_null_model(x, pst)
        assert fit.params[0] == pytest.approx(2 * np.mean(x))
        assert fit.params[1] == 0.0
        assert fit.log_lik == pytest.approx(null_log_likelihood(x)[0])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
