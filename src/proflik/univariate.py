#########################################################################################
##
##                           UNIVARIATE PROFILE LIKELIHOOD
##                                 (univariate.py)
##
##         Walks each profiled parameter away from its MLE in both directions,
##         re-optimising the nuisance parameters at every step, until the profile
##         drops below the threshold or the range runs out.
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

from functools import partial
from typing import Iterable, Sequence

import numpy as np
from scipy.interpolate import CubicSpline

from .errors import ConfigurationError
from .estimates import ProfileHistory, next_initial_estimate
from .optimiser import as_optimiser
from .options import MinStepsFallback, ProfileOptions, _check_count
from .parallel import chunks, default_workers, isolated_copies, run_tasks
from .problem import LikelihoodProblem, LikelihoodSolution
from .ranges import construct_solution_ranges
from .restricted import RestrictedObjective, exclude_parameters, shifted_objective
from .results import (
    ProfileLikelihoodSolution,
    ProfileSeries,
    assemble_series,
    merge_histories,
    sort_unique,
)
from .utils.logger import LoggerManager

_log = LoggerManager().get_logger("univariate")


# PROFILING RUN =========================================================================

class _ProfileRun:
    """Read-only state shared by every task of one profiling call.

    ``mle`` is an owned, write-protected copy of the optimum; the objective is
    shared only by serial tasks, concurrent tasks work on isolated copies.
    """

    def __init__(self, problem: LikelihoodProblem, solution: LikelihoodSolution, options: ProfileOptions):
        self.problem   = problem
        self.options   = options
        self.optimiser = as_optimiser(
            options.optimiser if options.optimiser is not None else solution.optimiser
        )
        self.objective = shifted_objective(problem, solution, options.normalise)
        self.mle       = np.array(solution.mle, dtype=float)
        self.mle.setflags(write=False)
        self.maximum   = solution.maximum
        self.cutoff    = options.cutoff(solution.maximum)
        self.n_workers = default_workers(options.n_workers)


    @property
    def optimum_profile(self) -> float:
        return 0.0 if self.options.normalise else self.maximum


    def restricted(self, index: int) -> RestrictedObjective:
        lb, ub = self.problem.bounds
        return exclude_parameters(self.objective, self.problem.n_params, index, lb, ub)


# POINT SOLVES ==========================================================================

def _solve_point(
    run: _ProfileRun,
    restricted: RestrictedObjective,
    index: int,
    theta: float,
    x0: np.ndarray,
) -> tuple[float, np.ndarray, bool]:
    """Profile value, nuisance vector and success flag at ``theta``."""
    restricted.fix(theta)
    res = run.optimiser.minimize(restricted, x0, restricted.bounds)
    if not res.success:
        _log.warning(
            "optimiser failed for %s = %.6g: %s", run.problem.names[index], theta, res.message
        )
    return -res.fun, np.asarray(res.x, dtype=float), bool(res.success)


def _add_point(
    run: _ProfileRun,
    restricted: RestrictedObjective,
    index: int,
    history: ProfileHistory,
    theta: float,
) -> None:
    mle_value = run.mle[index]
    nuisance  = run.mle[restricted.free_indices]

    if not history and theta == mle_value:
        # the optimum itself needs no solve
        history.append(theta, run.optimum_profile, nuisance, True)
        return

    if history:
        x0 = next_initial_estimate(run.options.next_initial_estimate_method, history, theta, restricted)
    else:
        x0 = nuisance
    profile, x, success = _solve_point(run, restricted, index, theta, x0)
    history.append(theta, profile, x, success)


# ENDPOINT FINDER =======================================================================

def find_endpoint(
    run: _ProfileRun,
    restricted: RestrictedObjective,
    index: int,
    values: Sequence[float],
    history: ProfileHistory,
    cutoff: float,
    min_steps: int,
) -> ProfileHistory:
    """Step through ``values`` until the profile drops to ``cutoff``.

    Parameters
    ----------
    run : _ProfileRun
    restricted : RestrictedObjective
        View with ``index`` fixed; owned by the caller for the duration.
    index : int
        Profiled parameter.
    values : sequence of float
        Monotone ray starting at the MLE value.
    history : ProfileHistory
        Receives every solved point.
    cutoff : float
        Stepping stops once a profile value is ``<= cutoff``.
    min_steps : int
        Minimum number of points; fewer triggers the refill policy.
    """
    for theta in values:
        _add_point(run, restricted, index, history, float(theta))
        if history.profiles[-1] <= cutoff:
            break

    if len(history) < min_steps:
        reach_min_steps(run, restricted, index, history, min_steps)
    return history


# REFILL POLICIES =======================================================================

def reach_min_steps(
    run: _ProfileRun,
    restricted: RestrictedObjective,
    index: int,
    history: ProfileHistory,
    min_steps: int,
) -> None:
    """Bring ``history`` up to ``min_steps`` points with the configured policy."""
    policy = run.options.min_steps_fallback
    if len(history) == 0 or history.values[0] == history.values[-1]:
        _log.debug("parameter %d: nothing to refill between equal endpoints", index)
        return

    _log.debug(
        "parameter %d: %d < %d points, refilling with %s",
        index, len(history), min_steps, policy.value,
    )

    if policy is MinStepsFallback.REPLACE:
        _reach_min_steps_replace(run, restricted, index, history, min_steps)
    elif policy is MinStepsFallback.REFINE:
        _reach_min_steps_refine(run, restricted, index, history, min_steps, parallel=False)
    elif policy is MinStepsFallback.PARALLEL_REFINE:
        _reach_min_steps_refine(run, restricted, index, history, min_steps, parallel=True)
    else:
        raise ValueError(f"unhandled refill policy {policy!r}")


def _reach_min_steps_replace(run, restricted, index, history, min_steps) -> None:
    # the last evaluated value is the crossing point, or the range end when
    # the threshold was never reached
    new_values = np.linspace(history.values[0], history.values[-1], min_steps)
    history.clear()
    find_endpoint(run, restricted, index, new_values, history, -np.inf, 0)


def refine_values(values: Sequence[float], target: int) -> np.ndarray:
    """New values evenly spaced between the extremes of ``values``.

    Returns enough values, none already present, for ``values`` to reach at
    least ``target`` points.
    """
    values = np.asarray(values, dtype=float)
    n = values.size
    if n >= target or n == 0:
        return np.empty(0)
    a, b = values.min(), values.max()
    if a == b:
        return np.empty(0)

    k = target - n
    while True:
        candidates = a + np.arange(1, k + 1) * (b - a) / (k + 1)
        fresh = candidates[~np.isin(candidates, values)]
        if n + fresh.size >= target:
            return fresh
        k += 1


def _nuisance_seeds(history: ProfileHistory, new_values: np.ndarray) -> np.ndarray:
    """Cubic spline of the solved nuisance vectors, evaluated at ``new_values``."""
    ordered = sort_unique(history)
    other = np.stack(ordered.other_mles)
    if other.shape[1] == 0 or len(ordered) < 2:
        return np.repeat(other[:1], new_values.size, axis=0)
    spline = CubicSpline(np.asarray(ordered.values), other, axis=0, bc_type="natural")
    return np.atleast_2d(spline(new_values))


def _solve_chunk(run, restricted, index, thetas, seeds) -> list:
    return [
        (theta, *_solve_point(run, restricted, index, theta, x0))
        for theta, x0 in zip(thetas, seeds)
    ]


def _reach_min_steps_refine(run, restricted, index, history, target, *, parallel: bool) -> None:
    new_values = refine_values(history.values, target)
    if new_values.size == 0:
        return
    seeds = _nuisance_seeds(history, new_values)

    if not parallel:
        solved = _solve_chunk(run, restricted, index, new_values, seeds)
    else:
        parts  = chunks(list(range(new_values.size)), run.n_workers)
        copies = isolated_copies(restricted, len(parts))
        tasks  = [
            partial(_solve_chunk, run, copy_, index, new_values[part], seeds[part])
            for part, copy_ in zip(parts, copies)
        ]
        solved = [item for chunk in run_tasks(tasks, True, run.n_workers) for item in chunk]

    for theta, profile, x, success in solved:
        history.append(theta, profile, x, success)


# PER-PARAMETER DRIVER ==================================================================

def _profile_direction(run, restricted, index, values) -> ProfileHistory:
    history = ProfileHistory()
    return find_endpoint(
        run, restricted, index, values, history, run.cutoff, run.options.min_steps
    )


def _profile_parameter(
    run: _ProfileRun,
    prof: ProfileLikelihoodSolution,
    index: int,
    ranges: tuple[np.ndarray, np.ndarray],
) -> ProfileSeries:
    name = run.problem.names[index]
    _log.info("profiling %s", name)

    base = run.restricted(index)
    if run.options.parallel:
        left_view, right_view = isolated_copies(base, 2)
    else:
        left_view = right_view = base

    left, right = run_tasks(
        [
            partial(_profile_direction, run, left_view, index, ranges[0]),
            partial(_profile_direction, run, right_view, index, ranges[1]),
        ],
        parallel=run.options.parallel,
        n_workers=2,
    )

    merged = merge_histories(left, right)
    series = assemble_series(index, name, merged, run.mle[index], run.cutoff, run.options)
    prof.store(series)

    _log.info(
        "profiled %s: %d points, interval (%.6g, %.6g)",
        name, len(series), *series.confidence_interval,
    )
    return series


# PARAMETER SELECTION ===================================================================

def _resolve_parameters(problem: LikelihoodProblem, parameters) -> list[int]:
    if parameters is None:
        return list(range(problem.n_params))
    if isinstance(parameters, (str, int, np.integer)):
        parameters = [parameters]
    indices = []
    for key in parameters:
        idx = problem.index_of(key)
        if idx not in indices:
            indices.append(idx)
    if not indices:
        raise ConfigurationError("No parameters selected for profiling")
    return indices


def _resolve_ranges(
    problem: LikelihoodProblem,
    solution: LikelihoodSolution,
    indices: Iterable[int],
    options: ProfileOptions,
) -> dict[int, tuple[np.ndarray, np.ndarray]]:
    overrides = {}
    for key, rays in (options.param_ranges or {}).items():
        left, right = rays
        left  = np.asarray(left, dtype=float).reshape(-1)
        right = np.asarray(right, dtype=float).reshape(-1)
        if left.size == 0 or right.size == 0:
            raise ConfigurationError(
                f"param_ranges for {key!r} must hold non-empty left and right sequences",
                context={"parameter": key},
            )
        overrides[problem.index_of(key)] = (left, right)

    remaining = [i for i in indices if i not in overrides]
    lb, ub = problem.bounds
    ranges = construct_solution_ranges(solution.mle, lb, ub, options.resolution, remaining)
    ranges.update({i: overrides[i] for i in indices if i in overrides})
    return ranges


def _profile_into(prof: ProfileLikelihoodSolution, indices: list[int], options: ProfileOptions) -> None:
    ranges = _resolve_ranges(prof.problem, prof.solution, indices, options)
    run = _ProfileRun(prof.problem, prof.solution, options)
    tasks = [partial(_profile_parameter, run, prof, i, ranges[i]) for i in indices]
    run_tasks(tasks, parallel=options.parallel, n_workers=run.n_workers)


# PUBLIC API ============================================================================

def profile(
    problem: LikelihoodProblem,
    solution: LikelihoodSolution,
    parameters=None,
    *,
    options: ProfileOptions | None = None,
    **kwargs,
) -> ProfileLikelihoodSolution:
    """Compute univariate profile likelihoods.

    Parameters
    ----------
    problem : LikelihoodProblem
    solution : LikelihoodSolution
        Fitted optimum, e.g. from :func:`proflik.mle`.
    parameters : int, str or sequence, optional
        Parameters to profile, by index or name; defaults to all.
    options : ProfileOptions, optional
        Base options; keyword arguments override its fields.
    **kwargs
        Any :class:`ProfileOptions` field.

    Returns
    -------
    ProfileLikelihoodSolution

    Raises
    ------
    ConfigurationError
        For invalid options, unknown parameters or infinite bounds on a
        profiled parameter, before any optimiser call.

    Example
    -------
    .. code-block:: python

        sol  = mle(prob)
        prof = profile(prob, sol, ["beta0", "beta1"], resolution=60, parallel=True)
        prof["beta0"].confidence_interval
    """
    opts = ProfileOptions.from_kwargs(options, **kwargs)
    indices = _resolve_parameters(problem, parameters)
    prof = ProfileLikelihoodSolution(problem, solution, opts)
    _profile_into(prof, indices, opts)
    return prof


def _check_normalise(prof, opts) -> None:
    if opts.normalise != prof.options.normalise:
        raise ConfigurationError(
            "normalise must match the existing profiles "
            f"(normalise={prof.options.normalise})",
            context={"option": "normalise"},
        )


def replace_profile(prof: ProfileLikelihoodSolution, parameters, **kwargs) -> None:
    """Re-profile ``parameters`` and overwrite their entries in ``prof``.

    Options default to those ``prof`` was computed with; other entries are
    left untouched.
    """
    opts = ProfileOptions.from_kwargs(prof.options, **kwargs)
    _check_normalise(prof, opts)
    indices = _resolve_parameters(prof.problem, parameters)
    _profile_into(prof, indices, opts)


def refine_profile(
    prof: ProfileLikelihoodSolution,
    parameters,
    target_number: int = 10,
    **kwargs,
) -> None:
    """Add interior points until each profile in ``parameters`` has ``target_number`` points.

    Existing points are kept; new points are seeded from a cubic spline
    through the solved nuisance vectors and solved concurrently when
    ``parallel`` is set or ``min_steps_fallback="parallel_refine"``.
    Profiles already at or above the target are left untouched.
    """
    opts = ProfileOptions.from_kwargs(prof.options, **kwargs)
    _check_normalise(prof, opts)
    target = _check_count(target_number, "target_number")
    indices = _resolve_parameters(prof.problem, parameters)
    for idx in indices:
        prof[idx]   # must already be profiled

    run = _ProfileRun(prof.problem, prof.solution, opts)
    parallel = opts.parallel or opts.min_steps_fallback is MinStepsFallback.PARALLEL_REFINE

    for idx in indices:
        series = prof[idx]
        if len(series) >= target:
            continue

        history = ProfileHistory()
        for k in range(len(series)):
            history.append(
                series.parameter_values[k], series.profile_values[k],
                series.other_mles[k], series.converged[k],
            )
        _reach_min_steps_refine(run, run.restricted(idx), idx, history, target, parallel=parallel)

        refined = assemble_series(
            idx, series.name, sort_unique(history), run.mle[idx], run.cutoff, opts
        )
        prof.store(refined)
        _log.info("refined %s to %d points", series.name, len(refined))


__all__ = [
    "profile",
    "replace_profile",
    "refine_profile",
    "find_endpoint",
    "reach_min_steps",
    "refine_values",
]
