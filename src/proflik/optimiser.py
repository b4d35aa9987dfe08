#########################################################################################
##
##                                OPTIMISER ADAPTER
##                                  (optimiser.py)
##
##         Thin wrapper around scipy.optimize.minimize used for the MLE and for every
##         restricted sub-problem solved while profiling.
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence

import numpy as np
import scipy.optimize as sci_opt

from .errors import ConfigurationError


# Methods that accept a ``bounds`` argument in scipy.optimize.minimize
_BOUNDED_METHODS = {
    "L-BFGS-B", "TNC", "SLSQP", "Powell", "trust-constr", "COBYLA", "COBYQA", "Nelder-Mead",
}


# OPTIMISER RESULT ======================================================================

@dataclass
class OptimiserResult:
    """Outcome of a single minimisation."""

    x: np.ndarray
    fun: float
    success: bool
    message: str
    nfev: int


    def __repr__(self) -> str:
        status = "SUCCESS" if self.success else "FAILED"
        return (
            f"OptimiserResult({status}, fun={self.fun:.6g}, "
            f"nfev={self.nfev}, x={self.x})"
        )


# OPTIMISER =============================================================================

class Optimiser:
    """Bounded minimiser backed by ``scipy.optimize.minimize``.

    Parameters
    ----------
    method : str
        Any bounded ``scipy.optimize.minimize`` method, e.g. ``"L-BFGS-B"``
        (default), ``"Nelder-Mead"``, ``"Powell"`` or ``"SLSQP"``.
    options : dict, optional
        Forwarded as ``options=`` to scipy (``maxiter``, ``ftol``, ...).
    tol : float, optional
        Forwarded as ``tol=`` to scipy.

    Notes
    -----
    The profiling engine only relies on :meth:`minimize`; any object with the
    same signature can be used in place of this class.
    """

    def __init__(self, method: str = "L-BFGS-B", options: dict | None = None, tol: float | None = None):
        if method not in _BOUNDED_METHODS:
            raise ConfigurationError(
                f"Optimiser method '{method}' does not support bounds. "
                f"Use one of {sorted(_BOUNDED_METHODS)}.",
                context={"option": "optimiser"},
            )
        self.method  = method
        self.options = dict(options or {})
        self.tol     = tol


    def minimize(
        self,
        f: Callable[[np.ndarray], float],
        x0: Sequence[float] | np.ndarray,
        bounds: tuple[np.ndarray, np.ndarray],
    ) -> OptimiserResult:
        """Minimise ``f`` from ``x0`` within ``bounds = (lower, upper)``.

        A zero-length ``x0`` is evaluated directly: when every parameter is
        held fixed there is nothing left to optimise.
        """
        x0_arr = np.asarray(x0, dtype=float).reshape(-1)

        if x0_arr.size == 0:
            fun = float(f(x0_arr))
            return OptimiserResult(
                x=x0_arr.copy(), fun=fun, success=bool(np.isfinite(fun)),
                message="no free parameters", nfev=1,
            )

        lower = np.asarray(bounds[0], dtype=float)
        upper = np.asarray(bounds[1], dtype=float)
        x0_arr = np.clip(x0_arr, lower, upper)

        res = sci_opt.minimize(
            lambda x: float(f(x)),
            x0=x0_arr,
            method=self.method,
            bounds=sci_opt.Bounds(lower, upper),
            tol=self.tol,
            options=self.options or None,
        )

        return OptimiserResult(
            x=np.asarray(res.x, dtype=float).reshape(-1),
            fun=float(res.fun),
            success=bool(res.success),
            message=str(res.message),
            nfev=int(getattr(res, "nfev", 0)),
        )


    def __repr__(self) -> str:
        return f"Optimiser(method={self.method!r}, options={self.options})"


def as_optimiser(alg) -> object:
    """Promote ``None`` / a method name to :class:`Optimiser`; pass anything else through."""
    if alg is None:
        return Optimiser()
    if isinstance(alg, str):
        return Optimiser(method=alg)
    if not callable(getattr(alg, "minimize", None)):
        raise ConfigurationError(
            f"Expected an optimiser exposing minimize(f, x0, bounds), got {type(alg).__name__}",
            context={"option": "optimiser"},
        )
    return alg


__all__ = [
    "Optimiser",
    "OptimiserResult",
    "as_optimiser",
]
