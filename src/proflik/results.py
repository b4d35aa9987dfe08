#########################################################################################
##
##                          PROFILE LIKELIHOOD RESULT CONTAINERS
##                                   (results.py)
##
##         Assembled univariate series and bivariate surfaces, keyed by parameter
##         index (or index pair), with name lookup, display and plotting.
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Iterator, Sequence

import numpy as np

from .errors import InterpolationError, ProfileLikelihoodError
from .estimates import ProfileHistory
from .intervals import (
    ConfidenceInterval,
    ConfidenceRegion,
    ProfileSpline,
    build_spline,
    get_confidence_interval,
)
from .options import BivariateProfileOptions, ProfileOptions
from .problem import LikelihoodProblem, LikelihoodSolution
from .utils.logger import LoggerManager

_log = LoggerManager().get_logger("results")


# UNIVARIATE SERIES =====================================================================

@dataclass
class ProfileSeries:
    """Assembled profile of one parameter.

    Attributes
    ----------
    index, name : int, str
        Parameter index and name.
    parameter_values : ndarray
        Strictly increasing stepped values.
    profile_values : ndarray
        Profile log-likelihood at each value.
    other_mles : ndarray
        Nuisance vectors, shape ``(len(parameter_values), n_params - 1)``.
    converged : ndarray of bool
        Optimiser success flag at each value.
    spline : ProfileSpline or None
        ``None`` when the interpolant could not be built.
    confidence_interval : ConfidenceInterval
    mle : float
        Parameter value at the optimum.
    error : str or None
        Assembly failure message, if any.
    """

    index: int
    name: str
    parameter_values: np.ndarray
    profile_values: np.ndarray
    other_mles: np.ndarray
    converged: np.ndarray
    spline: ProfileSpline | None
    confidence_interval: ConfidenceInterval
    mle: float
    error: str | None = None


    def __len__(self) -> int:
        return self.parameter_values.size


    def __call__(self, theta):
        if self.spline is None:
            raise InterpolationError(
                f"No interpolant available for parameter {self.name}: {self.error}",
                context={"parameter": self.index},
            )
        return self.spline(theta)


    def __repr__(self) -> str:
        return (
            f"ProfileSeries({self.name!r}, {len(self)} points, "
            f"ci={self.confidence_interval})"
        )


def merge_histories(left: ProfileHistory, right: ProfileHistory) -> ProfileHistory:
    """Concatenate both directions, sort by value and drop repeated values.

    The first occurrence of a repeated value is kept, so the optimum recorded
    by the left ray wins over the copy recorded by the right ray.
    """
    merged = ProfileHistory()
    merged.extend(left)
    merged.extend(right)
    return sort_unique(merged)


def sort_unique(history: ProfileHistory) -> ProfileHistory:
    values = np.asarray(history.values, dtype=float)
    order  = np.argsort(values, kind="stable")
    _, first = np.unique(values[order], return_index=True)
    keep = order[first]

    out = ProfileHistory()
    for k in keep:
        out.append(history.values[k], history.profiles[k], history.other_mles[k], history.converged[k])
    return out


def assemble_series(
    index: int,
    name: str,
    history: ProfileHistory,
    mle_value: float,
    cutoff: float,
    options: ProfileOptions,
) -> ProfileSeries:
    """Build the interpolant and confidence interval of a sorted, unique history.

    An :class:`InterpolationError` is confined to this parameter: the raw
    series is kept, the spline is ``None`` and the interval is ``(nan, nan)``.
    """
    values   = np.asarray(history.values, dtype=float)
    profiles = np.asarray(history.profiles, dtype=float)
    if history.other_mles:
        other = np.stack(history.other_mles)
    else:
        other = np.empty((0, 0))
    converged = np.asarray(history.converged, dtype=bool)

    error = None
    try:
        spline = build_spline(values, profiles, options.spline_alg, options.extrap, name)
        ci = get_confidence_interval(
            values, profiles, mle_value, cutoff, options.conf_level,
            options.confidence_interval_method, options.spline_alg, options.extrap, name,
        )
    except InterpolationError as err:
        _log.error(err.log_message())
        spline = None
        ci     = ConfidenceInterval(np.nan, np.nan, options.conf_level)
        error  = str(err)

    return ProfileSeries(
        index=index, name=name,
        parameter_values=values, profile_values=profiles,
        other_mles=other, converged=converged,
        spline=spline, confidence_interval=ci,
        mle=float(mle_value), error=error,
    )


# UNIVARIATE SOLUTION ===================================================================

class ProfileLikelihoodSolution:
    """Univariate profiles keyed by parameter index.

    Entries are looked up by index or name (``prof[0]``, ``prof["sigma"]``)
    and evaluated through their spline with ``prof(theta, key)``. Entries are
    replaced in place by :meth:`replace_profile` and :meth:`refine_profile`
    without touching the others.

    Parameters
    ----------
    problem : LikelihoodProblem
    solution : LikelihoodSolution
    options : ProfileOptions
        Options the entries were computed with.
    """

    def __init__(self, problem: LikelihoodProblem, solution: LikelihoodSolution, options: ProfileOptions):
        self.problem  = problem
        self.solution = solution
        self.options  = options
        self.errors: dict[int, str] = {}
        self._series: dict[int, ProfileSeries] = {}
        self._lock = threading.Lock()


    def store(self, series: ProfileSeries) -> None:
        """Insert or overwrite the entry of ``series.index``."""
        with self._lock:
            self._series[series.index] = series
            if series.error is None:
                self.errors.pop(series.index, None)
            else:
                self.errors[series.index] = series.error


    def _index(self, key: int | str) -> int:
        idx = self.problem.index_of(key)
        if idx not in self._series:
            raise KeyError(f"Parameter {key!r} has not been profiled")
        return idx


    def __getitem__(self, key: int | str) -> ProfileSeries:
        return self._series[self._index(key)]


    def __contains__(self, key) -> bool:
        try:
            self._index(key)
        except (KeyError, ProfileLikelihoodError):
            return False
        return True


    def __iter__(self) -> Iterator[ProfileSeries]:
        return (self._series[i] for i in self.profiled_parameters)


    def __len__(self) -> int:
        return len(self._series)


    def __call__(self, theta, key: int | str):
        """Evaluate the spline of parameter ``key`` at ``theta``."""
        return self[key](theta)


    @property
    def profiled_parameters(self) -> list[int]:
        return sorted(self._series)


    @property
    def number_of_profiled_parameters(self) -> int:
        return len(self._series)


    @property
    def confidence_intervals(self) -> dict[int, ConfidenceInterval]:
        return {i: s.confidence_interval for i, s in self._series.items()}


    def replace_profile(self, parameters, **options) -> None:
        """Re-profile ``parameters`` and splice the new entries in place."""
        from .univariate import replace_profile  # circular
        replace_profile(self, parameters, **options)


    def refine_profile(self, parameters, target_number: int = 10, **options) -> None:
        """Add points to ``parameters`` until each has ``target_number`` points."""
        from .univariate import refine_profile  # circular
        refine_profile(self, parameters, target_number=target_number, **options)


    def display(self) -> None:
        """Print a summary table of the profiled parameters."""
        print("=" * 72)
        print("Profile Likelihood Results")
        print("=" * 72)
        print(f"  {'Parameter':<20} {'MLE':>12} {'Lower':>12} {'Upper':>12} {'Points':>7}")
        print("-" * 72)
        for s in self:
            lo, hi = s.confidence_interval
            flag = "" if s.error is None else "  (failed)"
            print(f"  {s.name:<20} {s.mle:>12.6g} {lo:>12.6g} {hi:>12.6g} {len(s):>7d}{flag}")
        print("-" * 72)
        print(f"  Confidence level : {self.options.conf_level:g}")
        print(f"  Maximum          : {self.solution.maximum:.6g}")
        print("=" * 72)


    def plot(
        self,
        parameters: Sequence[int | str] | None = None,
        *,
        fig=None,
        axes=None,
        n_cols: int = 3,
        show_points: bool = True,
        show_interval: bool = True,
        grid: bool = True,
    ):
        """Plot each profile with its spline, threshold and confidence interval.

        Parameters
        ----------
        parameters : sequence, optional
            Names or indices; defaults to all profiled parameters.
        fig : matplotlib.figure.Figure, optional
        axes : sequence of matplotlib.axes.Axes, optional
            One axis per parameter.
        n_cols : int
            Columns of the subplot grid when ``axes`` is not given.
        show_points : bool
            Draw the evaluated points.
        show_interval : bool
            Shade the confidence interval and draw the threshold line.
        grid : bool

        Returns
        -------
        fig : matplotlib.figure.Figure
        axes : list[matplotlib.axes.Axes]
        """
        import matplotlib.pyplot as plt  # lazy import

        keys = self.profiled_parameters if parameters is None else [self._index(p) for p in parameters]
        if not keys:
            raise ValueError("No profiles to plot.")

        if axes is None:
            n_cols = min(n_cols, len(keys))
            n_rows = -(-len(keys) // n_cols)
            fig, axes_arr = plt.subplots(
                n_rows, n_cols, figsize=(4 * n_cols, 3.2 * n_rows), squeeze=False
            )
            axes_list = list(axes_arr.ravel())
            for ax in axes_list[len(keys):]:
                ax.set_visible(False)
        else:
            axes_list = list(np.atleast_1d(axes))

        cutoff = self.options.cutoff(self.solution.maximum)

        for ax, idx in zip(axes_list, keys):
            s = self._series[idx]
            if s.spline is not None:
                fine = np.linspace(s.parameter_values[0], s.parameter_values[-1], 400)
                ax.plot(fine, s.spline(fine), "-", lw=2, label="spline")
            if show_points:
                ax.plot(s.parameter_values, s.profile_values, "o", ms=3, alpha=0.6, label="profile")
            if show_interval:
                ax.axhline(cutoff, color="r", ls="--", lw=1, label="threshold")
                lo, hi = s.confidence_interval
                if s.confidence_interval.is_defined:
                    ax.axvspan(lo, hi, color="C1", alpha=0.15)
            ax.axvline(s.mle, color="k", ls=":", lw=1)
            ax.set_xlabel(s.name)
            ax.set_ylabel("profile log-likelihood")
            if grid:
                ax.grid(True, alpha=0.3)

        return fig, axes_list[:len(keys)]


    def __repr__(self) -> str:
        names = [self.problem.names[i] for i in self.profiled_parameters]
        return f"ProfileLikelihoodSolution(parameters={names})"


# BIVARIATE SURFACE =====================================================================

class ProfileSurface:
    """Assembled profile of one parameter pair over a square grid.

    Node ``(i, j)`` with ``-layers <= i, j <= layers`` sits at
    ``(x[i + layers], y[j + layers])``.

    Attributes
    ----------
    pair, names : tuple
    x, y : ndarray
        Grid values of the first and second parameter.
    profile_values : ndarray
        Shape ``(len(x), len(y))``.
    other_mles : ndarray
        Shape ``(len(x), len(y), n_params - 2)``.
    converged : ndarray of bool
    interpolant : callable or None
    confidence_region : ConfidenceRegion
    layers : int
        Number of grown layers.
    mle : tuple of float
    error : str or None
    """

    def __init__(self, pair, names, x, y, profile_values, other_mles, converged,
                 interpolant, confidence_region, layers, mle, error=None):
        self.pair              = tuple(pair)
        self.names             = tuple(names)
        self.x                 = np.asarray(x, dtype=float)
        self.y                 = np.asarray(y, dtype=float)
        self.profile_values    = np.asarray(profile_values, dtype=float)
        self.other_mles        = np.asarray(other_mles, dtype=float)
        self.converged         = np.asarray(converged, dtype=bool)
        self.interpolant       = interpolant
        self.confidence_region = confidence_region
        self.layers            = int(layers)
        self.mle               = tuple(float(m) for m in mle)
        self.error             = error


    def _pos(self, i: int, j: int) -> tuple[int, int]:
        L = self.layers
        if not (-L <= i <= L and -L <= j <= L):
            raise IndexError(f"offset ({i}, {j}) outside layers -{L}..{L}")
        return i + L, j + L


    def profile_at(self, i: int, j: int) -> float:
        """Profile value at signed grid offset ``(i, j)``."""
        return float(self.profile_values[self._pos(i, j)])


    def other_mles_at(self, i: int, j: int) -> np.ndarray:
        """Nuisance vector at signed grid offset ``(i, j)``."""
        return self.other_mles[self._pos(i, j)]


    def __call__(self, x, y):
        """Bilinear interpolation of the profile at ``(x, y)``."""
        if self.interpolant is None:
            raise InterpolationError(
                f"No interpolant available for pair {self.names}: {self.error}",
                context={"pair": self.pair},
            )
        x, y  = np.broadcast_arrays(np.asarray(x, dtype=float), np.asarray(y, dtype=float))
        shape = x.shape
        out   = self.interpolant(np.column_stack((x.ravel(), y.ravel())))
        return float(out[0]) if shape == () else out.reshape(shape)


    def __repr__(self) -> str:
        return f"ProfileSurface({self.names}, layers={self.layers}, region={self.confidence_region})"


# BIVARIATE SOLUTION ====================================================================

class BivariateProfileLikelihoodSolution:
    """Bivariate profiles keyed by ordered index pair.

    Looked up with ``prof[(0, 1)]`` or ``prof[("a", "b")]``.
    """

    def __init__(self, problem: LikelihoodProblem, solution: LikelihoodSolution,
                 options: BivariateProfileOptions):
        self.problem  = problem
        self.solution = solution
        self.options  = options
        self.errors: dict[tuple[int, int], str] = {}
        self._surfaces: dict[tuple[int, int], ProfileSurface] = {}
        self._lock = threading.Lock()


    def store(self, surface: ProfileSurface) -> None:
        with self._lock:
            self._surfaces[surface.pair] = surface
            if surface.error is None:
                self.errors.pop(surface.pair, None)
            else:
                self.errors[surface.pair] = surface.error


    def _pair(self, key) -> tuple[int, int]:
        a, b = key
        pair = (self.problem.index_of(a), self.problem.index_of(b))
        if pair not in self._surfaces:
            raise KeyError(f"Pair {key!r} has not been profiled")
        return pair


    def __getitem__(self, key) -> ProfileSurface:
        return self._surfaces[self._pair(key)]


    def __contains__(self, key) -> bool:
        try:
            self._pair(key)
        except (KeyError, ValueError, TypeError, ProfileLikelihoodError):
            return False
        return True


    def __iter__(self) -> Iterator[ProfileSurface]:
        return (self._surfaces[p] for p in self.profiled_parameters)


    def __len__(self) -> int:
        return len(self._surfaces)


    def __call__(self, x, y, key):
        return self[key](x, y)


    @property
    def profiled_parameters(self) -> list[tuple[int, int]]:
        return sorted(self._surfaces)


    @property
    def number_of_profiled_parameters(self) -> int:
        return len(self._surfaces)


    @property
    def confidence_regions(self) -> dict[tuple[int, int], ConfidenceRegion]:
        return {p: s.confidence_region for p, s in self._surfaces.items()}


    def replace_profile(self, pairs, **options) -> None:
        from .bivariate import replace_bivariate_profile  # circular
        replace_bivariate_profile(self, pairs, **options)


    def display(self) -> None:
        print("=" * 72)
        print("Bivariate Profile Likelihood Results")
        print("=" * 72)
        print(f"  {'Pair':<32} {'Layers':>7} {'Vertices':>9} {'Grid':>10}")
        print("-" * 72)
        for s in self:
            label = f"{s.names[0]}, {s.names[1]}"
            flag = "" if s.error is None else "  (failed)"
            print(f"  {label:<32} {s.layers:>7d} {len(s.confidence_region):>9d} "
                  f"{s.x.size:>4d}x{s.y.size:<5d}{flag}")
        print("-" * 72)
        print(f"  Confidence level : {self.options.conf_level:g}")
        print("=" * 72)


    def plot(self, pairs=None, *, fig=None, axes=None, n_cols: int = 3,
             fill: bool = True, show_mle: bool = True):
        """Filled contour of each surface with its confidence region outlined.

        Returns
        -------
        fig : matplotlib.figure.Figure
        axes : list[matplotlib.axes.Axes]
        """
        import matplotlib.pyplot as plt  # lazy import

        keys = self.profiled_parameters if pairs is None else [self._pair(p) for p in pairs]
        if not keys:
            raise ValueError("No profiles to plot.")

        if axes is None:
            n_cols = min(n_cols, len(keys))
            n_rows = -(-len(keys) // n_cols)
            fig, axes_arr = plt.subplots(
                n_rows, n_cols, figsize=(4.2 * n_cols, 4 * n_rows), squeeze=False
            )
            axes_list = list(axes_arr.ravel())
            for ax in axes_list[len(keys):]:
                ax.set_visible(False)
        else:
            axes_list = list(np.atleast_1d(axes))

        for ax, pair in zip(axes_list, keys):
            s = self._surfaces[pair]
            if fill:
                ax.contourf(s.x, s.y, np.ma.masked_invalid(s.profile_values.T), levels=20, cmap="viridis")
            region = s.confidence_region
            if len(region):
                ax.fill(region.x, region.y, fill=False, edgecolor="r", lw=2)
            if show_mle:
                ax.plot(*s.mle, "k+", ms=10)
            ax.set_xlabel(s.names[0])
            ax.set_ylabel(s.names[1])

        return fig, axes_list[:len(keys)]


    def __repr__(self) -> str:
        names = [(self.problem.names[a], self.problem.names[b]) for a, b in self.profiled_parameters]
        return f"BivariateProfileLikelihoodSolution(pairs={names})"


__all__ = [
    "ProfileSeries",
    "ProfileLikelihoodSolution",
    "ProfileSurface",
    "BivariateProfileLikelihoodSolution",
    "merge_histories",
    "sort_unique",
    "assemble_series",
]
