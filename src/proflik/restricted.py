#########################################################################################
##
##                              RESTRICTED PROBLEM VIEW
##                                  (restricted.py)
##
##         Reduced objective over the nuisance parameters with one or two interest
##         parameters held fixed through a reusable full-size scratch buffer.
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

import copy
import types as _types
from typing import Any, Callable, Sequence

import numpy as np

from .utils.logger import LoggerManager

_log = LoggerManager().get_logger("restricted")


# DEEP-COPY HELPERS =====================================================================
#
# deepcopy treats functions as atomic, so a log-likelihood closure that captures
# a data cache or an ODE workspace keeps pointing at the caller's object after
# the copy. The helpers below rebuild such functions with their own cells.

def _make_cell(value):
    """Return a new closure cell containing *value*."""
    def _factory():
        return value
    return _factory.__closure__[0]


def _isolate_func_closure(func, memo):
    """Return a copy of *func* whose closure cells hold deep copies.

    Cells already copied as part of the enclosing ``deepcopy`` are taken from
    *memo*. Cells whose contents refuse to be copied (modules, locks, ...) stay
    shared with the original. Returns *func* unchanged when it has no closure.
    """
    closure = getattr(func, "__closure__", None)
    if not closure:
        return func
    if id(func) in memo:
        return memo[id(func)]

    new_cells = tuple(_make_cell(None) for _ in closure)
    new_func = _types.FunctionType(
        func.__code__,
        func.__globals__,
        func.__name__,
        func.__defaults__,
        new_cells,
    )
    if func.__kwdefaults__ is not None:
        new_func.__kwdefaults__ = func.__kwdefaults__

    # registered before filling so self-referencing closures terminate
    memo[id(func)] = new_func

    for old, new in zip(closure, new_cells):
        try:
            obj = old.cell_contents
        except ValueError:            # empty cell
            del new.cell_contents
            continue

        if isinstance(obj, _types.FunctionType):
            new.cell_contents = _isolate_func_closure(obj, memo)
            continue

        try:
            new.cell_contents = copy.deepcopy(obj, memo)
        except (TypeError, copy.Error) as err:
            _log.debug("closure cell of %s left shared: %s", func.__name__, err)
            new.cell_contents = obj

    return new_func


def _copy_callable(func, memo):
    """Deep copy of a plain function, bound method or callable object."""
    if isinstance(func, _types.FunctionType):
        return _isolate_func_closure(func, memo)
    return copy.deepcopy(func, memo)


# SHIFTED OBJECTIVE =====================================================================

class ShiftedObjective:
    """Negated, optionally shifted log-likelihood over the full parameter vector.

    ``f(theta) = -(loglik(theta, data) - shift)``; minimising ``f`` maximises the
    log-likelihood and ``-f`` is the profile value.

    Parameters
    ----------
    loglik : callable
        ``loglik(theta, data) -> float``.
    data : object
    shift : float
        ``ℓmax`` when profiles are normalised, otherwise ``0``.
    """

    def __init__(self, loglik: Callable[[np.ndarray, Any], float], data: Any = None, shift: float = 0.0):
        self.loglik = loglik
        self.data   = data
        self.shift  = float(shift)


    def __call__(self, theta: np.ndarray) -> float:
        return -(float(self.loglik(theta, self.data)) - self.shift)


    def __deepcopy__(self, memo):
        data   = copy.deepcopy(self.data, memo)
        loglik = _copy_callable(self.loglik, memo)
        new = ShiftedObjective(loglik, data, self.shift)
        memo[id(self)] = new
        return new


# RESTRICTED OBJECTIVE ==================================================================

class RestrictedObjective:
    """Objective over the free parameters with ``fixed_indices`` held constant.

    The fixed value(s) live in :attr:`fixed_values` and are re-read on every
    evaluation, so the same view is reused for every stepped value by writing
    only that slot (see :meth:`fix`).

    Parameters
    ----------
    objective : callable
        Full-vector objective to minimise, e.g. a :class:`ShiftedObjective`.
    n_params : int
        Length of the full parameter vector.
    fixed_indices : sequence of int
        One (univariate) or two (bivariate) indices.
    lower_bounds, upper_bounds : array_like
        Full-vector bounds; the reduced bounds are taken from them.

    Notes
    -----
    A view is not safe to share between threads. Use :meth:`isolated_copy`
    to give each concurrent task its own objective and scratch buffers.
    """

    def __init__(
        self,
        objective: Callable[[np.ndarray], float],
        n_params: int,
        fixed_indices: Sequence[int],
        lower_bounds,
        upper_bounds,
    ):
        fixed = np.asarray(fixed_indices, dtype=int).reshape(-1)
        if len(set(fixed.tolist())) != fixed.size:
            raise ValueError(f"fixed indices must be distinct, got {fixed.tolist()}")

        self.objective     = objective
        self.n_params      = int(n_params)
        self.fixed_indices = fixed
        self.free_indices  = np.setdiff1d(np.arange(self.n_params), fixed)

        lower = np.asarray(lower_bounds, dtype=float)
        upper = np.asarray(upper_bounds, dtype=float)
        self.lower_bounds = lower[self.free_indices].copy()
        self.upper_bounds = upper[self.free_indices].copy()

        # scratch buffers
        self.full_buffer  = np.zeros(self.n_params)
        self.fixed_values = np.zeros(fixed.size)


    @property
    def n_free(self) -> int:
        return self.free_indices.size


    @property
    def bounds(self) -> tuple[np.ndarray, np.ndarray]:
        return self.lower_bounds, self.upper_bounds


    def fix(self, *values: float) -> None:
        """Write the current fixed value(s) into the scratch slot."""
        self.fixed_values[:] = values


    def expand(self, reduced: np.ndarray) -> np.ndarray:
        """Full parameter vector for ``reduced`` at the current fixed values."""
        full = np.empty(self.n_params)
        full[self.free_indices]  = reduced
        full[self.fixed_indices] = self.fixed_values
        return full


    def is_inbounds(self, reduced: np.ndarray) -> bool:
        reduced = np.asarray(reduced, dtype=float)
        return bool(np.all(reduced >= self.lower_bounds) and np.all(reduced <= self.upper_bounds))


    def __call__(self, reduced: np.ndarray) -> float:
        buf = self.full_buffer
        buf[self.free_indices]  = reduced
        buf[self.fixed_indices] = self.fixed_values
        return self.objective(buf)


    def isolated_copy(self) -> "RestrictedObjective":
        """Deep copy with its own objective, data, closures and scratch buffers."""
        return copy.deepcopy(self)


def shifted_objective(problem, solution, normalise: bool = True) -> ShiftedObjective:
    """Objective minimised by every restricted solve of ``problem``.

    Shifted by the maximum of ``solution`` when ``normalise`` is set, so the
    profile value at the optimum is exactly zero.
    """
    shift = solution.maximum if normalise else 0.0
    return ShiftedObjective(problem.loglik, problem.data, shift)


def exclude_parameters(
    objective: Callable[[np.ndarray], float],
    n_params: int,
    fixed_indices: int | Sequence[int],
    lower_bounds,
    upper_bounds,
) -> RestrictedObjective:
    """Build the :class:`RestrictedObjective` holding ``fixed_indices`` constant.

    Example
    -------
    .. code-block:: python

        f = ShiftedObjective(loglik, data, shift=sol.maximum)
        g = exclude_parameters(f, 3, 1, lb, ub)
        g.fix(2.5)
        g(np.array([0.1, 0.4]))   # == f([0.1, 2.5, 0.4])
    """
    if np.isscalar(fixed_indices):
        fixed_indices = [int(fixed_indices)]
    return RestrictedObjective(objective, n_params, fixed_indices, lower_bounds, upper_bounds)


__all__ = [
    "ShiftedObjective",
    "RestrictedObjective",
    "exclude_parameters",
    "shifted_objective",
]
