#########################################################################################
##
##                       CONFIDENCE INTERVALS, REGIONS AND SPLINES
##                                  (intervals.py)
##
##         Interpolants through assembled profiles and the confidence sets read off
##         them: root finding or extrema in 1-D, iso-contours in 2-D.
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Iterator

import numpy as np
import scipy.optimize as sci_opt
from contourpy import contour_generator
from matplotlib.path import Path
from scipy.interpolate import (
    Akima1DInterpolator,
    PchipInterpolator,
    RegularGridInterpolator,
    make_interp_spline,
)

from .errors import InterpolationError
from .options import Extrapolation, IntervalMethod, SplineAlgorithm
from .utils.logger import LoggerManager

_log = LoggerManager().get_logger("intervals")


# CONFIDENCE INTERVAL ===================================================================

@dataclass(frozen=True)
class ConfidenceInterval:
    """Interval ``[lower, upper]`` at confidence ``level``; NaN bounds when undefined."""

    lower: float
    upper: float
    level: float

    def __iter__(self) -> Iterator[float]:
        yield self.lower
        yield self.upper


    @property
    def length(self) -> float:
        return self.upper - self.lower


    @property
    def is_defined(self) -> bool:
        return bool(np.isfinite(self.lower) and np.isfinite(self.upper))


    def __contains__(self, value: float) -> bool:
        return bool(self.lower <= value <= self.upper)


    def __repr__(self) -> str:
        return f"ConfidenceInterval({self.lower:.6g}, {self.upper:.6g}, level={self.level:g})"


# CONFIDENCE REGION =====================================================================

class ConfidenceRegion:
    """Polygon bounding a bivariate confidence region.

    Parameters
    ----------
    x, y : array_like
        Boundary vertices, without a repeated closing vertex.
    level : float
    """

    def __init__(self, x, y, level: float):
        self.x     = np.asarray(x, dtype=float)
        self.y     = np.asarray(y, dtype=float)
        self.level = float(level)
        self._path = Path(np.column_stack([self.x, self.y])) if self.x.size >= 3 else None


    def __len__(self) -> int:
        return self.x.size


    def __iter__(self) -> Iterator[tuple[float, float]]:
        return zip(self.x.tolist(), self.y.tolist())


    def __contains__(self, point) -> bool:
        if self._path is None:
            return False
        return bool(self._path.contains_point(tuple(point)))


    def __repr__(self) -> str:
        return f"ConfidenceRegion({len(self)} vertices, level={self.level:g})"


# SPLINES ===============================================================================

class ProfileSpline:
    """Interpolant through ``(parameter value, profile value)`` pairs.

    Inside the data range the chosen algorithm is evaluated; outside it the
    curve is continued according to ``extrap``: along the end slopes
    (``LINEAR``), at the end values (``FLAT``) or as NaN (``NAN``).

    Raises
    ------
    InterpolationError
        With fewer than two points, non-finite values or values that are not
        strictly increasing.
    """

    def __init__(self, x, y, alg: SplineAlgorithm = SplineAlgorithm.PCHIP,
                 extrap: Extrapolation = Extrapolation.LINEAR):
        x = np.asarray(x, dtype=float)
        y = np.asarray(y, dtype=float)

        if x.size < 2:
            raise InterpolationError(f"need at least two points, got {x.size}")
        if not (np.all(np.isfinite(x)) and np.all(np.isfinite(y))):
            raise InterpolationError("profile contains non-finite values")
        if np.any(np.diff(x) <= 0):
            raise InterpolationError("parameter values must be strictly increasing")

        try:
            if alg is SplineAlgorithm.PCHIP:
                interp = PchipInterpolator(x, y, extrapolate=False)
            elif alg is SplineAlgorithm.AKIMA:
                interp = Akima1DInterpolator(x, y)
            else:
                interp = make_interp_spline(x, y, k=1)
            deriv = interp.derivative()
        except ValueError as err:
            raise InterpolationError(str(err)) from err

        self.x      = x
        self.y      = y
        self.alg    = alg
        self.extrap = extrap
        self._interp = interp
        self._slopes = (float(deriv(x[0])), float(deriv(x[-1])))


    def __call__(self, theta):
        t = np.asarray(theta, dtype=float)
        scalar = t.ndim == 0
        t = np.atleast_1d(t)

        x0, x1 = self.x[0], self.x[-1]
        below  = t < x0
        above  = t > x1
        inside = ~(below | above)

        out = np.empty_like(t)
        out[inside] = self._interp(t[inside])

        if self.extrap is Extrapolation.LINEAR:
            out[below] = self.y[0] + self._slopes[0] * (t[below] - x0)
            out[above] = self.y[-1] + self._slopes[1] * (t[above] - x1)
        elif self.extrap is Extrapolation.FLAT:
            out[below] = self.y[0]
            out[above] = self.y[-1]
        else:
            out[below | above] = np.nan

        return float(out[0]) if scalar else out


    def __repr__(self) -> str:
        return f"ProfileSpline({self.x.size} points, alg={self.alg.value}, extrap={self.extrap.value})"


def build_spline(values, profiles, alg, extrap, name: str = "") -> ProfileSpline:
    """:class:`ProfileSpline` with an actionable message on failure."""
    try:
        return ProfileSpline(values, profiles, alg, extrap)
    except InterpolationError as err:
        raise InterpolationError(
            f"Error creating the spline for parameter {name}: {err}. "
            f"Try increasing the resolution or min_steps for this parameter.",
            context={"parameter": name},
        ) from err


# CONFIDENCE INTERVALS ==================================================================

def _interval_from_spline(values, profiles, mle_value, cutoff, alg, extrap, level) -> ConfidenceInterval:
    spline = ProfileSpline(values, np.asarray(profiles) - cutoff, alg, extrap)
    lower = sci_opt.brentq(spline, values[0], mle_value)
    upper = sci_opt.brentq(spline, mle_value, values[-1])
    return ConfidenceInterval(float(lower), float(upper), level)


def _interval_from_extrema(values, profiles, cutoff, level) -> ConfidenceInterval:
    inside = np.asarray(values)[np.asarray(profiles) >= cutoff]
    if inside.size == 0:
        raise ValueError("no profile value reaches the threshold")
    return ConfidenceInterval(float(inside.min()), float(inside.max()), level)


def get_confidence_interval(
    values,
    profiles,
    mle_value: float,
    cutoff: float,
    level: float,
    method: IntervalMethod = IntervalMethod.SPLINE,
    alg: SplineAlgorithm = SplineAlgorithm.PCHIP,
    extrap: Extrapolation = Extrapolation.LINEAR,
    name: str = "",
) -> ConfidenceInterval:
    """Confidence interval of one assembled profile.

    Parameters
    ----------
    values, profiles : array_like
        Sorted, unique parameter values and their profile values.
    mle_value : float
        Parameter value at the optimum; splits the two root brackets.
    cutoff : float
        Profile value bounding the interval.
    level : float
    method : IntervalMethod
        ``SPLINE`` finds where the interpolant crosses ``cutoff`` on each side
        of ``mle_value`` with Brent's method and falls back to ``EXTREMA``
        when either bracket fails. ``EXTREMA`` takes the smallest and largest
        value whose profile is at least ``cutoff``.

    Returns
    -------
    ConfidenceInterval
        With NaN bounds, and a UserWarning, when no method succeeds.
    """
    values   = np.asarray(values, dtype=float)
    profiles = np.asarray(profiles, dtype=float)

    if method is IntervalMethod.SPLINE:
        try:
            return _interval_from_spline(values, profiles, mle_value, cutoff, alg, extrap, level)
        except (ValueError, RuntimeError, InterpolationError) as err:
            _log.debug("spline interval for %s failed: %s", name, err)
            warnings.warn(
                f"Failed to create the confidence interval for parameter {name} using a spline. "
                f"Falling back to the extrema method.",
                UserWarning,
                stacklevel=2,
            )

    try:
        return _interval_from_extrema(values, profiles, cutoff, level)
    except ValueError:
        warnings.warn(
            f"Failed to create the confidence interval for parameter {name}.",
            UserWarning,
            stacklevel=2,
        )
        return ConfidenceInterval(np.nan, np.nan, level)


# CONFIDENCE REGIONS ====================================================================

def get_confidence_region(x, y, profile, cutoff: float, level: float) -> ConfidenceRegion:
    """Iso-contour of ``profile`` at ``cutoff`` as a :class:`ConfidenceRegion`.

    ``profile[i, j]`` is the value at ``(x[i], y[j])``; NaN nodes are masked
    out. The longest contour line is taken as the boundary.
    """
    z = np.ma.masked_invalid(np.asarray(profile, dtype=float).T)
    gen = contour_generator(x=np.asarray(x), y=np.asarray(y), z=z, line_type="Separate")
    lines = [np.asarray(line) for line in gen.lines(cutoff)]

    if not lines:
        _log.warning("no contour found at level %g; confidence region is empty", cutoff)
        return ConfidenceRegion([], [], level)

    boundary = max(lines, key=len)
    if len(boundary) > 1 and np.array_equal(boundary[0], boundary[-1]):
        boundary = boundary[:-1]
    return ConfidenceRegion(boundary[:, 0], boundary[:, 1], level)


def surface_interpolant(x, y, profile) -> RegularGridInterpolator:
    """Bilinear interpolant of a profile surface, extrapolating linearly."""
    return RegularGridInterpolator(
        (np.asarray(x, dtype=float), np.asarray(y, dtype=float)),
        np.asarray(profile, dtype=float),
        method="linear",
        bounds_error=False,
        fill_value=None,
    )


__all__ = [
    "ConfidenceInterval",
    "ConfidenceRegion",
    "ProfileSpline",
    "build_spline",
    "get_confidence_interval",
    "get_confidence_region",
    "surface_interpolant",
]
