########################################################################################
##
##                          SHARED FIXTURES FOR THE PROFLIK TESTS
##                                    (conftest.py)
##
########################################################################################

# IMPORTS ==============================================================================

import numpy as np
import pytest

from proflik import LikelihoodProblem, LikelihoodSolution, Optimiser
from proflik.optimiser import OptimiserResult


# ═══════════════════════════════════════════════════════════════════════════
# Optimisers
# ═══════════════════════════════════════════════════════════════════════════

class EvalOptimiser:
    """Evaluates the objective at the initial estimate and counts calls."""

    def __init__(self, success=True):
        self.success = success
        self.calls = 0

    def minimize(self, f, x0, bounds):
        self.calls += 1
        x = np.array(x0, dtype=float)
        return OptimiserResult(x=x, fun=float(f(x)), success=self.success, message="eval", nfev=1)


@pytest.fixture
def eval_optimiser():
    return EvalOptimiser()


@pytest.fixture
def failing_optimiser():
    return EvalOptimiser(success=False)


@pytest.fixture
def tight_optimiser():
    return Optimiser("L-BFGS-B", options={"ftol": 1e-13, "gtol": 1e-10, "maxiter": 500})


# ═══════════════════════════════════════════════════════════════════════════
# Problems
# ═══════════════════════════════════════════════════════════════════════════

def _quadratic_1d(theta, data):
    return -0.5 * (theta[0] - 3.0) ** 2


@pytest.fixture
def quadratic_1d():
    """ℓ(θ) = -(θ - 3)² / 2 on [-10, 10] with its exact optimum."""
    prob = LikelihoodProblem(_quadratic_1d, [0.0], lower_bounds=[-10.0], upper_bounds=[10.0], names=["theta"])
    sol = LikelihoodSolution(prob, [3.0], 0.0, optimiser=Optimiser())
    return prob, sol


# correlated Gaussian log-likelihood, so profiling has to move the nuisance parameters
_MU  = np.array([1.0, -0.5, 2.0])
_COV = np.array([
    [1.0, 0.6, 0.2],
    [0.6, 2.0, 0.5],
    [0.2, 0.5, 0.8],
])
_PRECISION = np.linalg.inv(_COV)


def _quadratic_3d(theta, data):
    d = np.asarray(theta) - _MU
    return -0.5 * float(d @ _PRECISION @ d)


@pytest.fixture
def quadratic_3d(tight_optimiser):
    """Correlated 3-D Gaussian log-likelihood; the profile of θi has variance Σii."""
    prob = LikelihoodProblem(
        _quadratic_3d, [0.0, 0.0, 0.0],
        lower_bounds=[-8.0, -8.0, -8.0], upper_bounds=[8.0, 8.0, 8.0],
        names=["a", "b", "c"],
    )
    sol = LikelihoodSolution(prob, _MU, 0.0, optimiser=tight_optimiser)
    return prob, sol, _COV


def _regression_loglik(theta, data):
    sigma, b0, b1 = theta
    x, y = data
    resid = y - (b0 + b1 * x)
    n = y.size
    return -0.5 * n * np.log(2 * np.pi * sigma ** 2) - 0.5 * np.sum(resid ** 2) / sigma ** 2


@pytest.fixture
def linear_regression(tight_optimiser):
    """Seeded straight-line regression with its closed-form MLE."""
    rng = np.random.default_rng(2024)
    x = np.linspace(0.0, 10.0, 120)
    y = 1.5 + 0.8 * x + rng.normal(0.0, 0.5, x.size)

    X = np.column_stack([np.ones_like(x), x])
    beta, *_ = np.linalg.lstsq(X, y, rcond=None)
    sigma = np.sqrt(np.mean((y - X @ beta) ** 2))
    theta_hat = np.array([sigma, beta[0], beta[1]])

    prob = LikelihoodProblem(
        _regression_loglik, [1.0, 0.0, 0.0], data=(x, y),
        lower_bounds=[0.3, 0.5, 0.6], upper_bounds=[0.8, 2.5, 1.0],
        names=["sigma", "beta0", "beta1"],
    )
    sol = LikelihoodSolution(prob, theta_hat, prob(theta_hat), optimiser=tight_optimiser)
    return prob, sol


def _bowl(theta, data):
    a, b, c = theta
    return -0.5 * (a ** 2 + b ** 2) - 0.5 * (c - 0.5 * a) ** 2


@pytest.fixture
def bowl_3d(tight_optimiser):
    """ℓ = -(a² + b²)/2 - (c - a/2)²/2; profiling out c leaves a circular bowl in (a, b)."""
    prob = LikelihoodProblem(
        _bowl, [0.5, 0.5, 0.5],
        lower_bounds=[-5.0, -5.0, -5.0], upper_bounds=[5.0, 5.0, 5.0],
        names=["a", "b", "c"],
    )
    sol = LikelihoodSolution(prob, [0.0, 0.0, 0.0], 0.0, optimiser=tight_optimiser)
    return prob, sol
