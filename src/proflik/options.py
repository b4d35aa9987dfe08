#########################################################################################
##
##                               PROFILING OPTIONS
##                                  (options.py)
##
##         Validated option sets for univariate and bivariate profiling. Every named
##         choice is a closed Enum; strings are converted once, at construction.
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Sequence

import numpy as np
from scipy.stats import chi2

from .errors import ConfigurationError
from .optimiser import as_optimiser


# ENUMS =================================================================================

class IntervalMethod(Enum):
    """How a confidence interval is read off a univariate profile."""
    SPLINE  = "spline"
    EXTREMA = "extrema"


class RegionMethod(Enum):
    """How a confidence region is read off a bivariate profile."""
    CONTOUR = "contour"


class MinStepsFallback(Enum):
    """Refill policy when a direction records fewer than ``min_steps`` points."""
    REPLACE         = "replace"
    REFINE          = "refine"
    PARALLEL_REFINE = "parallel_refine"


class SplineAlgorithm(Enum):
    PCHIP  = "pchip"
    AKIMA  = "akima"
    LINEAR = "linear"


class Extrapolation(Enum):
    LINEAR = "linear"
    FLAT   = "flat"
    NAN    = "nan"


class EstimateMethod(Enum):
    """Initial estimate for the next univariate sub-problem."""
    PREV   = "prev"
    INTERP = "interp"


class BivariateEstimateMethod(Enum):
    """Initial estimate for the next bivariate sub-problem."""
    MLE     = "mle"
    NEAREST = "nearest"
    INTERP  = "interp"


# accepted spellings besides the enum values
_ALIASES = {
    IntervalMethod: {"spline-root": "spline", "spline_root": "spline"},
    MinStepsFallback: {"parallel-refine": "parallel_refine"},
    EstimateMethod: {"previous": "prev", "linear-interpolate": "interp", "linear_interpolate": "interp"},
    BivariateEstimateMethod: {
        "center": "mle", "centre": "mle", "nearest-neighbor": "nearest",
        "nearest_neighbor": "nearest", "grid-interpolate": "interp", "grid_interpolate": "interp",
    },
}


def as_choice(enum_cls: type[Enum], value: Any, option: str) -> Enum:
    """Convert ``value`` to a member of ``enum_cls`` or raise ConfigurationError."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        key = value.strip().lower().lstrip(":")
        key = _ALIASES.get(enum_cls, {}).get(key, key)
        try:
            return enum_cls(key)
        except ValueError:
            pass
    valid = ", ".join(repr(m.value) for m in enum_cls)
    raise ConfigurationError(
        f"Invalid value {value!r} for option '{option}'. Valid choices: {valid}",
        context={"option": option, "value": value},
    )


# THRESHOLD =============================================================================

def get_chisq_threshold(level: float, dof: int = 1) -> float:
    """Log-likelihood drop from the maximum at confidence ``level``.

    Returns ``-chi2.ppf(level, dof) / 2``, e.g. ``-1.92`` for ``level=0.95``
    and one degree of freedom.
    """
    if not 0.0 < level < 1.0:
        raise ConfigurationError(
            f"Confidence level must lie in (0, 1), got {level}", context={"option": "conf_level"}
        )
    return -float(chi2.ppf(level, dof)) / 2.0


# VALIDATION HELPERS ====================================================================

def _check_resolution(resolution) -> int | tuple[int, ...]:
    if np.isscalar(resolution):
        values = [resolution]
    else:
        values = list(resolution)
    for r in values:
        if isinstance(r, bool) or int(r) != r or int(r) < 2:
            raise ConfigurationError(
                f"Resolution must be an integer >= 2, got {r!r}", context={"option": "resolution"}
            )
    if np.isscalar(resolution):
        return int(resolution)
    return tuple(int(r) for r in values)


def _check_count(value, option: str) -> int:
    if isinstance(value, bool) or int(value) != value or int(value) < 0:
        raise ConfigurationError(
            f"Option '{option}' must be a non-negative integer, got {value!r}", context={"option": option}
        )
    return int(value)


def _check_threshold(threshold, conf_level: float, dof: int) -> float:
    if threshold is None:
        return get_chisq_threshold(conf_level, dof)
    threshold = float(threshold)
    if not (np.isfinite(threshold) and threshold < 0.0):
        raise ConfigurationError(
            f"Threshold is the drop from the maximum and must be finite and negative, got {threshold}",
            context={"option": "threshold"},
        )
    return threshold


def _check_workers(n_workers) -> int | None:
    if n_workers is None:
        return None
    if isinstance(n_workers, bool) or int(n_workers) != n_workers or int(n_workers) < 1:
        raise ConfigurationError(
            f"n_workers must be a positive integer, got {n_workers!r}", context={"option": "n_workers"}
        )
    return int(n_workers)


def resolution_for(resolution, index: int) -> int:
    """Resolution of parameter ``index`` from a scalar or per-parameter resolution."""
    if isinstance(resolution, int):
        return resolution
    try:
        return resolution[index]
    except IndexError:
        raise ConfigurationError(
            f"No resolution given for parameter {index}; got {len(resolution)} values",
            context={"option": "resolution", "parameter": index},
        ) from None


# UNIVARIATE OPTIONS ====================================================================

@dataclass(frozen=True)
class ProfileOptions:
    """Options for :func:`proflik.profile`.

    Parameters
    ----------
    optimiser : Optimiser, str or object with ``minimize``, optional
        Solver for every restricted sub-problem. Defaults to the optimiser
        that produced the MLE.
    conf_level : float
        Confidence level of the intervals.
    confidence_interval_method : {"spline", "extrema"}
    threshold : float, optional
        Drop from the maximum defining the interval; defaults to
        ``get_chisq_threshold(conf_level, 1)``.
    resolution : int or sequence of int
        Number of candidate values on each side of the MLE, per parameter
        if a sequence is given.
    param_ranges : mapping, optional
        ``{parameter: (left_values, right_values)}`` overriding the ranges
        built from the bounds. Both sequences start at the MLE value.
    min_steps : int
        Minimum number of points recorded in each direction.
    min_steps_fallback : {"replace", "refine", "parallel_refine"}
    normalise : bool
        Report ``ℓ - ℓmax`` instead of ``ℓ``.
    spline_alg : {"pchip", "akima", "linear"}
    extrap : {"linear", "flat", "nan"}
    parallel : bool
        Profile parameters, and the two directions of each parameter,
        concurrently.
    next_initial_estimate_method : {"prev", "interp"}
    n_workers : int, optional
        Worker pool size; defaults to ``os.cpu_count()``.
    """

    optimiser: Any = None
    conf_level: float = 0.95
    confidence_interval_method: IntervalMethod | str = IntervalMethod.SPLINE
    threshold: float | None = None
    resolution: int | Sequence[int] = 200
    param_ranges: Mapping[Any, tuple[Sequence[float], Sequence[float]]] | None = None
    min_steps: int = 10
    min_steps_fallback: MinStepsFallback | str = MinStepsFallback.REPLACE
    normalise: bool = True
    spline_alg: SplineAlgorithm | str = SplineAlgorithm.PCHIP
    extrap: Extrapolation | str = Extrapolation.LINEAR
    parallel: bool = False
    next_initial_estimate_method: EstimateMethod | str = EstimateMethod.PREV
    n_workers: int | None = None

    def __post_init__(self):
        _set = lambda name, value: object.__setattr__(self, name, value)

        if self.optimiser is not None:
            _set("optimiser", as_optimiser(self.optimiser))
        _set("conf_level", float(self.conf_level))
        _set("threshold", _check_threshold(self.threshold, self.conf_level, 1))
        _set("confidence_interval_method",
             as_choice(IntervalMethod, self.confidence_interval_method, "confidence_interval_method"))
        _set("min_steps_fallback",
             as_choice(MinStepsFallback, self.min_steps_fallback, "min_steps_fallback"))
        _set("spline_alg", as_choice(SplineAlgorithm, self.spline_alg, "spline_alg"))
        _set("extrap", as_choice(Extrapolation, self.extrap, "extrap"))
        _set("next_initial_estimate_method",
             as_choice(EstimateMethod, self.next_initial_estimate_method, "next_initial_estimate_method"))
        _set("resolution", _check_resolution(self.resolution))
        _set("min_steps", _check_count(self.min_steps, "min_steps"))
        _set("n_workers", _check_workers(self.n_workers))
        _set("normalise", bool(self.normalise))
        _set("parallel", bool(self.parallel))
        if self.param_ranges is not None:
            _set("param_ranges", dict(self.param_ranges))


    @classmethod
    def from_kwargs(cls, options: "ProfileOptions | None" = None, **kwargs) -> "ProfileOptions":
        """Build options from keywords, optionally overriding an existing set."""
        try:
            if options is None:
                return cls(**kwargs)
            if "conf_level" in kwargs and "threshold" not in kwargs:
                kwargs["threshold"] = None
            return dataclasses.replace(options, **kwargs)
        except TypeError as err:
            valid = ", ".join(f.name for f in dataclasses.fields(cls))
            raise ConfigurationError(f"{err}. Valid options: {valid}") from None


    def cutoff(self, maximum: float) -> float:
        """Profile value at which stepping stops for a problem with maximum ``maximum``."""
        return self.threshold if self.normalise else maximum + self.threshold


# BIVARIATE OPTIONS =====================================================================

@dataclass(frozen=True)
class BivariateProfileOptions:
    """Options for :func:`proflik.bivariate_profile`.

    Parameters
    ----------
    optimiser : Optimiser, str or object with ``minimize``, optional
    conf_level : float
    confidence_region_method : {"contour"}
    threshold : float, optional
        Defaults to ``get_chisq_threshold(conf_level, 2)``.
    resolution : int or sequence of int
        Grid resolution; a pair uses the larger of its two resolutions.
    min_layers : int
        Layers always grown before stopping is considered.
    outer_layers : int
        Additional layers grown once a layer lies entirely below the threshold.
    normalise : bool
    parallel : bool
        Profile pairs concurrently and solve the nodes of each layer
        concurrently.
    next_initial_estimate_method : {"mle", "nearest", "interp"}
    n_workers : int, optional
    """

    optimiser: Any = None
    conf_level: float = 0.95
    confidence_region_method: RegionMethod | str = RegionMethod.CONTOUR
    threshold: float | None = None
    resolution: int | Sequence[int] = 200
    min_layers: int = 10
    outer_layers: int = 0
    normalise: bool = True
    parallel: bool = False
    next_initial_estimate_method: BivariateEstimateMethod | str = BivariateEstimateMethod.MLE
    n_workers: int | None = None

    def __post_init__(self):
        _set = lambda name, value: object.__setattr__(self, name, value)

        if self.optimiser is not None:
            _set("optimiser", as_optimiser(self.optimiser))
        _set("conf_level", float(self.conf_level))
        _set("threshold", _check_threshold(self.threshold, self.conf_level, 2))
        _set("confidence_region_method",
             as_choice(RegionMethod, self.confidence_region_method, "confidence_region_method"))
        _set("next_initial_estimate_method",
             as_choice(BivariateEstimateMethod, self.next_initial_estimate_method, "next_initial_estimate_method"))
        _set("resolution", _check_resolution(self.resolution))
        _set("min_layers", _check_count(self.min_layers, "min_layers"))
        _set("outer_layers", _check_count(self.outer_layers, "outer_layers"))
        _set("n_workers", _check_workers(self.n_workers))
        _set("normalise", bool(self.normalise))
        _set("parallel", bool(self.parallel))


    @classmethod
    def from_kwargs(cls, options: "BivariateProfileOptions | None" = None, **kwargs) -> "BivariateProfileOptions":
        try:
            if options is None:
                return cls(**kwargs)
            if "conf_level" in kwargs and "threshold" not in kwargs:
                kwargs["threshold"] = None
            return dataclasses.replace(options, **kwargs)
        except TypeError as err:
            valid = ", ".join(f.name for f in dataclasses.fields(cls))
            raise ConfigurationError(f"{err}. Valid options: {valid}") from None


    def cutoff(self, maximum: float) -> float:
        return self.threshold if self.normalise else maximum + self.threshold


__all__ = [
    "IntervalMethod",
    "RegionMethod",
    "MinStepsFallback",
    "SplineAlgorithm",
    "Extrapolation",
    "EstimateMethod",
    "BivariateEstimateMethod",
    "ProfileOptions",
    "BivariateProfileOptions",
    "get_chisq_threshold",
]
