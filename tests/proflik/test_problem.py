########################################################################################
##
##                                  TESTS FOR
##                          'problem.py' and 'optimiser.py'
##
########################################################################################

# IMPORTS ==============================================================================

import numpy as np
import pytest
from scipy.stats import norm

from proflik import (
    ConfigurationError,
    LikelihoodProblem,
    LikelihoodSolution,
    Optimiser,
    gaussian_loglikelihood,
    mle,
)
from proflik.optimiser import as_optimiser


# ═══════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════

def _normal_loglik(theta, data):
    mu, sigma = theta
    return gaussian_loglikelihood(data, mu, sigma, data.size)


@pytest.fixture
def normal_sample():
    rng = np.random.default_rng(7)
    return rng.normal(2.0, 0.5, 200)


# ═══════════════════════════════════════════════════════════════════════════
# LikelihoodProblem
# ═══════════════════════════════════════════════════════════════════════════

class TestLikelihoodProblem:

    def test_defaults(self):
        prob = LikelihoodProblem(_normal_loglik, [0.0, 1.0])
        assert prob.n_params == 2
        assert prob.names == ["theta_0", "theta_1"]
        assert np.all(np.isinf(prob.lower_bounds)) and np.all(np.isinf(prob.upper_bounds))

    def test_index_of(self):
        prob = LikelihoodProblem(_normal_loglik, [0.0, 1.0], names=["mu", "sigma"])
        assert prob.index_of("sigma") == 1
        assert prob.index_of(-1) == 1
        assert prob.index_of(np.int64(0)) == 0
        for key in ("tau", 2, -3, 1.0, True):
            with pytest.raises(ConfigurationError):
                prob.index_of(key)

    @pytest.mark.parametrize("kwargs", [
        {"lower_bounds": [0.0]},
        {"lower_bounds": [1.0, 1.0], "upper_bounds": [0.0, 2.0]},
        {"names": ["mu"]},
        {"names": ["mu", "mu"]},
    ])
    def test_invalid_configuration(self, kwargs):
        with pytest.raises(ConfigurationError):
            LikelihoodProblem(_normal_loglik, [0.5, 1.0], **kwargs)

    def test_theta0_outside_bounds_warns(self):
        with pytest.warns(UserWarning, match="outside"):
            LikelihoodProblem(_normal_loglik, [5.0, 1.0], lower_bounds=[0.0, 0.1], upper_bounds=[1.0, 2.0])

    def test_call_passes_data(self, normal_sample):
        prob = LikelihoodProblem(_normal_loglik, [0.0, 1.0], data=normal_sample)
        assert prob([2.0, 0.5]) == pytest.approx(np.sum(norm.logpdf(normal_sample, 2.0, 0.5)))


# ═══════════════════════════════════════════════════════════════════════════
# LikelihoodSolution and mle
# ═══════════════════════════════════════════════════════════════════════════

class TestSolution:

    def test_mle_is_read_only_copy(self):
        prob = LikelihoodProblem(_normal_loglik, [0.0, 1.0], names=["mu", "sigma"])
        theta = np.array([1.0, 2.0])
        sol = LikelihoodSolution(prob, theta, -3.0)
        theta[0] = 99.0
        assert sol["mu"] == 1.0
        with pytest.raises(ValueError):
            sol.mle[0] = 5.0

    def test_wrong_length(self):
        prob = LikelihoodProblem(_normal_loglik, [0.0, 1.0])
        with pytest.raises(ConfigurationError):
            LikelihoodSolution(prob, [1.0], 0.0)

    def test_mle_of_gaussian_sample(self, normal_sample):
        prob = LikelihoodProblem(
            _normal_loglik, [1.0, 1.0], data=normal_sample,
            lower_bounds=[-5.0, 0.05], upper_bounds=[5.0, 5.0], names=["mu", "sigma"],
        )
        sol = mle(prob)
        assert sol.success
        assert isinstance(sol.optimiser, Optimiser)
        assert sol["mu"] == pytest.approx(normal_sample.mean(), abs=1e-4)
        assert sol["sigma"] == pytest.approx(normal_sample.std(), rel=1e-3)
        assert sol.maximum == pytest.approx(prob(sol.mle))

    def test_mle_with_named_method(self, normal_sample):
        prob = LikelihoodProblem(
            _normal_loglik, [1.0, 1.0], data=normal_sample,
            lower_bounds=[-5.0, 0.05], upper_bounds=[5.0, 5.0],
        )
        sol = mle(prob, "Nelder-Mead")
        assert sol.optimiser.method == "Nelder-Mead"
        assert sol.mle[0] == pytest.approx(normal_sample.mean(), abs=1e-3)


# ═══════════════════════════════════════════════════════════════════════════
# Optimiser
# ═══════════════════════════════════════════════════════════════════════════

class TestOptimiser:

    def test_respects_bounds(self):
        res = Optimiser().minimize(lambda x: float(np.sum((x - 3.0) ** 2)), [0.0, 0.0], ([-1.0, -1.0], [1.0, 2.0]))
        np.testing.assert_allclose(res.x, [1.0, 2.0], atol=1e-6)
        assert res.success

    def test_initial_estimate_is_clipped(self):
        calls = []

        def f(x):
            calls.append(x.copy())
            return float(np.sum(x ** 2))

        Optimiser().minimize(f, [10.0], ([-1.0], [1.0]))
        assert calls[0][0] == 1.0

    def test_no_free_parameters(self):
        res = Optimiser().minimize(lambda x: 4.0, np.empty(0), (np.empty(0), np.empty(0)))
        assert res.fun == 4.0 and res.x.size == 0 and res.nfev == 1

    def test_unbounded_method_rejected(self):
        with pytest.raises(ConfigurationError, match="bounds"):
            Optimiser("BFGS")

    def test_as_optimiser(self):
        assert isinstance(as_optimiser(None), Optimiser)
        assert as_optimiser("Powell").method == "Powell"
        with pytest.raises(ConfigurationError, match="minimize"):
            as_optimiser(object())


# ═══════════════════════════════════════════════════════════════════════════
# Gaussian log-likelihood
# ═══════════════════════════════════════════════════════════════════════════

def test_gaussian_loglikelihood_matches_scipy(normal_sample):
    predicted = np.full_like(normal_sample, 1.8)
    expected = np.sum(norm.logpdf(normal_sample, predicted, 0.7))
    assert gaussian_loglikelihood(normal_sample, predicted, 0.7, normal_sample.size) == pytest.approx(expected)
