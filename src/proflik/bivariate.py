#########################################################################################
##
##                            BIVARIATE PROFILE LIKELIHOOD
##                                  (bivariate.py)
##
##         Grows square layers of grid nodes outwards from the joint MLE of a
##         parameter pair until whole layers fall below the threshold, then reads
##         the confidence region off the resulting surface.
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

from functools import partial
from typing import Sequence

import numpy as np

from .errors import ConfigurationError
from .estimates import SurfaceBuffer, next_bivariate_estimate
from .intervals import ConfidenceRegion, get_confidence_region, surface_interpolant
from .optimiser import as_optimiser
from .options import BivariateProfileOptions
from .parallel import chunks, default_workers, isolated_copies, run_tasks
from .problem import LikelihoodProblem, LikelihoodSolution
from .ranges import LayerIterator, ProfileGrid, construct_profile_grids
from .restricted import RestrictedObjective, exclude_parameters, shifted_objective
from .results import BivariateProfileLikelihoodSolution, ProfileSurface
from .utils.logger import LoggerManager

_log = LoggerManager().get_logger("bivariate")


# PROFILING RUN =========================================================================

class _BivariateRun:
    """Read-only state shared by every task of one bivariate profiling call."""

    def __init__(self, problem: LikelihoodProblem, solution: LikelihoodSolution,
                 options: BivariateProfileOptions):
        self.problem   = problem
        self.options   = options
        self.optimiser = as_optimiser(
            options.optimiser if options.optimiser is not None else solution.optimiser
        )
        self.objective = shifted_objective(problem, solution, options.normalise)
        self.mle       = np.array(solution.mle, dtype=float)
        self.mle.setflags(write=False)
        self.cutoff    = options.cutoff(solution.maximum)
        self.optimum_profile = 0.0 if options.normalise else solution.maximum
        self.n_workers = default_workers(options.n_workers)


    def restricted(self, pair: tuple[int, int]) -> RestrictedObjective:
        lb, ub = self.problem.bounds
        return exclude_parameters(self.objective, self.problem.n_params, pair, lb, ub)


# LAYER EXPANDER ========================================================================

def _solve_nodes(
    run: _BivariateRun,
    restricted: RestrictedObjective,
    buffer: SurfaceBuffer,
    grid: ProfileGrid,
    layer: int,
    nodes: Sequence[tuple[int, int]],
) -> bool:
    """Solve ``nodes`` of ``layer`` into ``buffer``; True if any lies above the cutoff."""
    method = run.options.next_initial_estimate_method
    any_above = False
    for i, j in nodes:
        x, y = grid.point(i, j)
        x0 = next_bivariate_estimate(method, buffer, grid, (i, j), layer, restricted)
        restricted.fix(x, y)
        res = run.optimiser.minimize(restricted, x0, restricted.bounds)
        if not res.success:
            _log.warning("optimiser failed at (%.6g, %.6g): %s", x, y, res.message)
        profile = -res.fun
        buffer.set(i, j, profile, res.x, res.success)
        if profile > run.cutoff:
            any_above = True
    return any_above


def expand_layer(
    run: _BivariateRun,
    views: Sequence[RestrictedObjective],
    buffer: SurfaceBuffer,
    grid: ProfileGrid,
    layer: int,
) -> bool:
    """Solve every node of ``layer``, splitting them across ``views`` when parallel.

    Nodes of one layer only read inner layers, so they are solved in any
    order; the call returns once all of them are done.
    """
    nodes = list(LayerIterator(layer))
    if not run.options.parallel or len(views) == 1:
        any_above = _solve_nodes(run, views[0], buffer, grid, layer, nodes)
    else:
        parts = chunks(nodes, len(views))
        tasks = [
            partial(_solve_nodes, run, view, buffer, grid, layer, part)
            for part, view in zip(parts, views)
        ]
        any_above = any(run_tasks(tasks, True, len(views)))

    buffer.filled_layer = layer
    return any_above


def _grow_layers(run, views, buffer, grid) -> int:
    """Grow layers until the stopping rule holds; returns the last grown layer."""
    opts  = run.options
    outer = 0
    for layer in range(1, grid.resolution + 1):
        any_above = expand_layer(run, views, buffer, grid, layer)
        _log.debug("layer %d grown, any above threshold: %s", layer, any_above)
        if not any_above:
            outer += 1
            if outer >= opts.outer_layers and layer >= opts.min_layers:
                break
    return buffer.filled_layer


# PER-PAIR DRIVER =======================================================================

def _profile_pair(
    run: _BivariateRun,
    prof: BivariateProfileLikelihoodSolution,
    pair: tuple[int, int],
    grid: ProfileGrid,
) -> ProfileSurface:
    names = (run.problem.names[pair[0]], run.problem.names[pair[1]])
    _log.info("profiling pair %s", names)

    base = run.restricted(pair)
    if run.options.parallel:
        views = isolated_copies(base, run.n_workers)
    else:
        views = [base]

    buffer = SurfaceBuffer(grid.resolution, base.n_free)
    buffer.set(0, 0, run.optimum_profile, run.mle[base.free_indices], True)

    final = _grow_layers(run, views, buffer, grid)
    profile_block, other_block, converged_block = (arr.copy() for arr in buffer.block(final))
    x = grid.axis(0, -final, final)
    y = grid.axis(1, -final, final)

    error = None
    try:
        region = get_confidence_region(x, y, profile_block, run.cutoff, run.options.conf_level)
        interp = surface_interpolant(x, y, profile_block)
    except (ValueError, RuntimeError) as err:
        error = f"Error assembling the surface for pair {names}: {err}. Try increasing the resolution or min_layers."
        _log.error(error)
        region = ConfidenceRegion([], [], run.options.conf_level)
        interp = None

    surface = ProfileSurface(
        pair, names, x, y, profile_block, other_block, converged_block,
        interp, region, final, (run.mle[pair[0]], run.mle[pair[1]]), error,
    )
    prof.store(surface)
    _log.info("profiled pair %s: %d layers, %d region vertices", names, final, len(region))
    return surface


# PAIR SELECTION ========================================================================

def _resolve_pairs(problem: LikelihoodProblem, pairs) -> list[tuple[int, int]]:
    if problem.n_params < 2:
        raise ConfigurationError("Bivariate profiling needs at least two parameters")
    if pairs is None:
        raise ConfigurationError("No parameter pairs selected for profiling")

    pairs = list(pairs)
    if len(pairs) == 2 and all(isinstance(p, (str, int, np.integer)) for p in pairs):
        pairs = [tuple(pairs)]

    resolved = []
    for pair in pairs:
        try:
            a, b = pair
        except (TypeError, ValueError):
            raise ConfigurationError(f"Expected a pair of parameters, got {pair!r}") from None
        idx = (problem.index_of(a), problem.index_of(b))
        if idx[0] == idx[1]:
            raise ConfigurationError(f"A pair needs two distinct parameters, got {pair!r}")
        if idx not in resolved:
            resolved.append(idx)
    if not resolved:
        raise ConfigurationError("No parameter pairs selected for profiling")
    return resolved


def _profile_into(prof: BivariateProfileLikelihoodSolution, pairs, options: BivariateProfileOptions) -> None:
    lb, ub = prof.problem.bounds
    grids = construct_profile_grids(pairs, prof.solution.mle, lb, ub, options.resolution)
    run = _BivariateRun(prof.problem, prof.solution, options)
    tasks = [partial(_profile_pair, run, prof, pair, grids[pair]) for pair in pairs]
    run_tasks(tasks, parallel=options.parallel, n_workers=run.n_workers)


# PUBLIC API ============================================================================

def bivariate_profile(
    problem: LikelihoodProblem,
    solution: LikelihoodSolution,
    pairs,
    *,
    options: BivariateProfileOptions | None = None,
    **kwargs,
) -> BivariateProfileLikelihoodSolution:
    """Compute bivariate profile likelihoods.

    Parameters
    ----------
    problem : LikelihoodProblem
    solution : LikelihoodSolution
    pairs : pair or sequence of pairs
        Ordered ``(first, second)`` parameters by index or name.
    options : BivariateProfileOptions, optional
    **kwargs
        Any :class:`BivariateProfileOptions` field.

    Returns
    -------
    BivariateProfileLikelihoodSolution

    Raises
    ------
    ConfigurationError
        For invalid options or pairs, infinite bounds, or an MLE lying on a
        bound of a profiled pair, before any optimiser call.
    """
    opts  = BivariateProfileOptions.from_kwargs(options, **kwargs)
    pairs = _resolve_pairs(problem, pairs)
    prof  = BivariateProfileLikelihoodSolution(problem, solution, opts)
    _profile_into(prof, pairs, opts)
    return prof


def replace_bivariate_profile(prof: BivariateProfileLikelihoodSolution, pairs, **kwargs) -> None:
    """Re-profile ``pairs`` and overwrite their entries in ``prof``."""
    opts = BivariateProfileOptions.from_kwargs(prof.options, **kwargs)
    if opts.normalise != prof.options.normalise:
        raise ConfigurationError(
            f"normalise must match the existing profiles (normalise={prof.options.normalise})",
            context={"option": "normalise"},
        )
    _profile_into(prof, _resolve_pairs(prof.problem, pairs), opts)


__all__ = [
    "bivariate_profile",
    "replace_bivariate_profile",
    "expand_layer",
]
