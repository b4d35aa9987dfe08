#########################################################################################
##
##                          LIKELIHOOD PROBLEM AND SOLUTION
##                                   (problem.py)
##
##         The fitted-model side of profiling: a log-likelihood with bounds and
##         parameter names, and the maximum likelihood estimate computed from it.
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

import warnings
from typing import Any, Callable, Sequence

import numpy as np

from .errors import ConfigurationError
from .optimiser import as_optimiser
from .utils.logger import LoggerManager

_log = LoggerManager().get_logger("problem")


# LIKELIHOOD PROBLEM ====================================================================

class LikelihoodProblem:
    """Log-likelihood to be maximised, with bounds and parameter names.

    Parameters
    ----------
    loglik : callable
        ``loglik(theta, data) -> float``.
    theta0 : array_like
        Initial guess used by :func:`mle`.
    data : object, optional
        Passed unchanged as the second argument of ``loglik``. It is deep
        copied for every parallel worker, so caches stored in it are safe to
        mutate inside ``loglik``.
    lower_bounds, upper_bounds : array_like, optional
        Box constraints; default to ``-inf`` / ``+inf``. Any parameter that is
        profiled must have finite bounds.
    names : sequence of str, optional
        Parameter names; default ``theta_0 ... theta_{n-1}``.

    Example
    -------
    .. code-block:: python

        def loglik(theta, data):
            mu, sigma = theta
            return gaussian_loglikelihood(data, mu, sigma, len(data))

        prob = LikelihoodProblem(loglik, [0.0, 1.0], data=y,
                                 lower_bounds=[-5, 1e-3], upper_bounds=[5, 5],
                                 names=["mu", "sigma"])
    """

    def __init__(
        self,
        loglik: Callable[[np.ndarray, Any], float],
        theta0: Sequence[float] | np.ndarray,
        *,
        data: Any = None,
        lower_bounds: Sequence[float] | np.ndarray | None = None,
        upper_bounds: Sequence[float] | np.ndarray | None = None,
        names: Sequence[str] | None = None,
    ):
        if not callable(loglik):
            raise TypeError("loglik must be callable as loglik(theta, data)")

        self.loglik = loglik
        self.theta0 = np.asarray(theta0, dtype=float).reshape(-1).copy()
        self.data   = data

        n = self.theta0.size
        if n == 0:
            raise ConfigurationError("theta0 must contain at least one parameter")

        self.lower_bounds = self._as_bounds(lower_bounds, -np.inf, "lower_bounds")
        self.upper_bounds = self._as_bounds(upper_bounds, np.inf, "upper_bounds")

        bad = np.flatnonzero(self.lower_bounds > self.upper_bounds)
        if bad.size:
            i = int(bad[0])
            raise ConfigurationError(
                f"Parameter {i}: lower bound {self.lower_bounds[i]} > upper bound {self.upper_bounds[i]}",
                context={"parameter": i},
            )

        if names is None:
            names = [f"theta_{i}" for i in range(n)]
        names = [str(s) for s in names]
        if len(names) != n:
            raise ConfigurationError(f"Expected {n} parameter names, got {len(names)}")
        if len(set(names)) != n:
            raise ConfigurationError(f"Parameter names must be unique, got {names}")
        self.names = names
        self._name_to_index = {s: i for i, s in enumerate(names)}

        outside = (self.theta0 < self.lower_bounds) | (self.theta0 > self.upper_bounds)
        for i in np.flatnonzero(outside):
            warnings.warn(
                f"Parameter '{names[i]}': initial value {self.theta0[i]} lies outside "
                f"[{self.lower_bounds[i]}, {self.upper_bounds[i]}]",
                UserWarning,
                stacklevel=2,
            )


    def _as_bounds(self, bounds, fill: float, label: str) -> np.ndarray:
        n = self.theta0.size
        if bounds is None:
            return np.full(n, fill, dtype=float)
        arr = np.asarray(bounds, dtype=float).reshape(-1).copy()
        if arr.size != n:
            raise ConfigurationError(f"Expected {n} values for {label}, got {arr.size}")
        return arr


    @property
    def n_params(self) -> int:
        return self.theta0.size


    @property
    def bounds(self) -> tuple[np.ndarray, np.ndarray]:
        return self.lower_bounds, self.upper_bounds


    def index_of(self, key: int | str) -> int:
        """Resolve a parameter name or (possibly negative) index to an index."""
        if isinstance(key, (int, np.integer)) and not isinstance(key, bool):
            idx = int(key)
            if idx < 0:
                idx += self.n_params
            if not 0 <= idx < self.n_params:
                raise ConfigurationError(
                    f"Parameter index {key} out of range for {self.n_params} parameters",
                    context={"parameter": key},
                )
            return idx
        if isinstance(key, str):
            try:
                return self._name_to_index[key]
            except KeyError:
                raise ConfigurationError(
                    f"Unknown parameter name '{key}'. Available: {self.names}",
                    context={"parameter": key},
                ) from None
        raise ConfigurationError(f"Cannot interpret {key!r} as a parameter name or index")


    def __call__(self, theta: Sequence[float] | np.ndarray) -> float:
        """Evaluate the log-likelihood at ``theta``."""
        return float(self.loglik(np.asarray(theta, dtype=float), self.data))


    def __repr__(self) -> str:
        return f"LikelihoodProblem(n_params={self.n_params}, names={self.names})"


# LIKELIHOOD SOLUTION ===================================================================

class LikelihoodSolution:
    """Maximum likelihood estimate of a :class:`LikelihoodProblem`.

    Parameters
    ----------
    problem : LikelihoodProblem
        Problem the estimate belongs to.
    mle : array_like
        Maximiser; an owned copy is stored.
    maximum : float
        Log-likelihood at ``mle``.
    optimiser : object, optional
        Optimiser that produced the estimate; reused as the default for
        profiling.
    success : bool
    message : str
    """

    def __init__(
        self,
        problem: LikelihoodProblem,
        mle: Sequence[float] | np.ndarray,
        maximum: float,
        *,
        optimiser=None,
        success: bool = True,
        message: str = "",
    ):
        mle_arr = np.array(mle, dtype=float).reshape(-1)
        if mle_arr.size != problem.n_params:
            raise ConfigurationError(
                f"MLE has {mle_arr.size} entries but the problem has {problem.n_params} parameters"
            )
        mle_arr.setflags(write=False)

        self.problem   = problem
        self._mle      = mle_arr
        self.maximum   = float(maximum)
        self.optimiser = optimiser
        self.success   = bool(success)
        self.message   = str(message)


    @property
    def mle(self) -> np.ndarray:
        """Read-only maximiser."""
        return self._mle


    def __getitem__(self, key: int | str) -> float:
        return float(self._mle[self.problem.index_of(key)])


    def __repr__(self) -> str:
        status = "SUCCESS" if self.success else "FAILED"
        return f"LikelihoodSolution({status}, maximum={self.maximum:.6g}, mle={np.asarray(self._mle)})"


# FUNCTIONS =============================================================================

def mle(problem: LikelihoodProblem, optimiser=None) -> LikelihoodSolution:
    """Maximise ``problem`` and return its :class:`LikelihoodSolution`.

    Parameters
    ----------
    problem : LikelihoodProblem
    optimiser : Optimiser, str or object with ``minimize``, optional
        Defaults to ``Optimiser("L-BFGS-B")``.
    """
    opt = as_optimiser(optimiser)

    def negloglik(theta: np.ndarray) -> float:
        return -problem.loglik(theta, problem.data)

    res = opt.minimize(negloglik, problem.theta0, problem.bounds)
    if not res.success:
        _log.warning("MLE optimiser did not report success: %s", res.message)

    return LikelihoodSolution(
        problem, res.x, -res.fun,
        optimiser=opt, success=res.success, message=res.message,
    )


def gaussian_loglikelihood(observed, predicted, sigma: float, n: int) -> float:
    """Log-likelihood of ``observed ~ Normal(predicted, sigma**2)`` for ``n`` samples."""
    resid = np.asarray(observed, dtype=float) - np.asarray(predicted, dtype=float)
    return float(
        -0.5 * n * np.log(2.0 * np.pi * sigma ** 2) - 0.5 / sigma ** 2 * np.sum(resid ** 2)
    )


__all__ = [
    "LikelihoodProblem",
    "LikelihoodSolution",
    "mle",
    "gaussian_loglikelihood",
]
