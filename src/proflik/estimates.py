#########################################################################################
##
##                          INITIAL ESTIMATES AND SOLVE HISTORY
##                                  (estimates.py)
##
##         Starting guesses for each restricted sub-problem, chosen from the points
##         already solved along a ray (univariate) or on inner layers (bivariate).
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

import numpy as np
from scipy.interpolate import RegularGridInterpolator

from .options import BivariateEstimateMethod, EstimateMethod
from .ranges import ProfileGrid
from .restricted import RestrictedObjective


# UNIVARIATE HISTORY ====================================================================

class ProfileHistory:
    """Points solved along one ray, in the order they were solved.

    Holds the stepped parameter values, profile values, nuisance vectors
    (``other_mles``) and optimiser success flags as index-aligned lists.
    """

    def __init__(self):
        self.values     = []
        self.profiles   = []
        self.other_mles = []
        self.converged  = []


    def __len__(self) -> int:
        return len(self.values)


    def append(self, value: float, profile: float, other_mles: np.ndarray, converged: bool = True) -> None:
        self.values.append(float(value))
        self.profiles.append(float(profile))
        self.other_mles.append(np.array(other_mles, dtype=float))
        self.converged.append(bool(converged))


    def clear(self) -> None:
        self.values.clear()
        self.profiles.clear()
        self.other_mles.clear()
        self.converged.clear()


    def extend(self, other: "ProfileHistory") -> None:
        self.values.extend(other.values)
        self.profiles.extend(other.profiles)
        self.other_mles.extend(other.other_mles)
        self.converged.extend(other.converged)


# SURFACE BUFFER ========================================================================

class SurfaceBuffer:
    """Square buffer of solved nodes addressed by signed offsets ``(i, j)``.

    Sized for ``resolution`` layers up front; node ``(i, j)`` lives at array
    position ``(i + resolution, j + resolution)``. Only the square of layers
    ``0..filled_layer`` holds solved values, the rest is NaN.

    Parameters
    ----------
    resolution : int
        Largest layer that can be grown.
    n_other : int
        Length of a nuisance vector.
    """

    def __init__(self, resolution: int, n_other: int):
        size = 2 * resolution + 1
        self.resolution   = int(resolution)
        self.profile      = np.full((size, size), np.nan)
        self.other_mles   = np.full((size, size, n_other), np.nan)
        self.converged    = np.zeros((size, size), dtype=bool)
        self.filled_layer = 0


    def _pos(self, i: int, j: int) -> tuple[int, int]:
        return i + self.resolution, j + self.resolution


    def set(self, i: int, j: int, profile: float, other_mles: np.ndarray, converged: bool = True) -> None:
        pos = self._pos(i, j)
        self.profile[pos]    = profile
        self.other_mles[pos] = other_mles
        self.converged[pos]  = converged


    def profile_at(self, i: int, j: int) -> float:
        return float(self.profile[self._pos(i, j)])


    def other_mles_at(self, i: int, j: int) -> np.ndarray:
        return self.other_mles[self._pos(i, j)]


    def block(self, layer: int):
        """Views of the square of layers ``0..layer``: profile, other_mles, converged."""
        lo = self.resolution - layer
        hi = self.resolution + layer + 1
        return (
            self.profile[lo:hi, lo:hi],
            self.other_mles[lo:hi, lo:hi],
            self.converged[lo:hi, lo:hi],
        )


# UNIVARIATE ESTIMATES ==================================================================

def linear_extrapolation(x: float, x0: float, y0: np.ndarray, x1: float, y1: np.ndarray) -> np.ndarray:
    """Value at ``x`` of the line through ``(x0, y0)`` and ``(x1, y1)``."""
    y0 = np.asarray(y0, dtype=float)
    y1 = np.asarray(y1, dtype=float)
    return y1 + (x - x1) * (y1 - y0) / (x1 - x0)


def previous_estimate(history: ProfileHistory) -> np.ndarray:
    return np.array(history.other_mles[-1], dtype=float)


def interpolated_estimate(
    history: ProfileHistory,
    theta_next: float,
    restricted: RestrictedObjective,
) -> np.ndarray:
    """Extrapolate the last two solved points to ``theta_next``.

    Falls back to :func:`previous_estimate` with fewer than two points, or
    when the extrapolated vector leaves the restricted bounds.
    """
    if len(history) < 2:
        return previous_estimate(history)
    guess = linear_extrapolation(
        theta_next,
        history.values[-2], history.other_mles[-2],
        history.values[-1], history.other_mles[-1],
    )
    if not (np.all(np.isfinite(guess)) and restricted.is_inbounds(guess)):
        return previous_estimate(history)
    return guess


def next_initial_estimate(
    method: EstimateMethod,
    history: ProfileHistory,
    theta_next: float,
    restricted: RestrictedObjective,
) -> np.ndarray:
    """Initial estimate for the sub-problem fixed at ``theta_next``."""
    if method is EstimateMethod.PREV:
        return previous_estimate(history)
    if method is EstimateMethod.INTERP:
        return interpolated_estimate(history, theta_next, restricted)
    raise ValueError(f"unhandled estimate method {method!r}")


# BIVARIATE ESTIMATES ===================================================================

def nearest_node_to_layer(i: int, j: int, layer: int) -> tuple[int, int]:
    """Closest node of layer ``layer - 1`` to node ``(i, j)`` of layer ``layer``.

    Corners step diagonally inwards, edge nodes step straight inwards, and
    every node of layer 1 maps to the centre.
    """
    if layer == 1:
        return 0, 0
    u = i - 1 if i == layer else i + 1 if i == -layer else i
    v = j - 1 if j == layer else j + 1 if j == -layer else j
    return u, v


def grid_interpolated_estimate(
    buffer: SurfaceBuffer,
    grid: ProfileGrid,
    layer: int,
    point: tuple[float, float],
    restricted: RestrictedObjective,
) -> np.ndarray:
    """Bilinear estimate at ``point`` from the solved square of layers ``0..layer-1``.

    Falls back to the centre nuisance vector for layer 1 or when the
    estimate leaves the restricted bounds.
    """
    centre = np.array(buffer.other_mles_at(0, 0))
    if layer <= 1 or centre.size == 0:
        return centre

    inner = layer - 1
    _, values, _ = buffer.block(inner)
    interp = RegularGridInterpolator(
        (grid.axis(0, -inner, inner), grid.axis(1, -inner, inner)),
        values,
        method="linear",
        bounds_error=False,
        fill_value=None,
    )
    guess = np.asarray(interp(np.array([point]))[0], dtype=float)
    if not (np.all(np.isfinite(guess)) and restricted.is_inbounds(guess)):
        return centre
    return guess


def next_bivariate_estimate(
    method: BivariateEstimateMethod,
    buffer: SurfaceBuffer,
    grid: ProfileGrid,
    node: tuple[int, int],
    layer: int,
    restricted: RestrictedObjective,
) -> np.ndarray:
    """Initial estimate for the sub-problem at grid ``node`` of ``layer``."""
    if method is BivariateEstimateMethod.MLE:
        return np.array(buffer.other_mles_at(0, 0))
    if method is BivariateEstimateMethod.NEAREST:
        return np.array(buffer.other_mles_at(*nearest_node_to_layer(*node, layer)))
    if method is BivariateEstimateMethod.INTERP:
        return grid_interpolated_estimate(buffer, grid, layer, grid.point(*node), restricted)
    raise ValueError(f"unhandled estimate method {method!r}")


__all__ = [
    "ProfileHistory",
    "SurfaceBuffer",
    "linear_extrapolation",
    "previous_estimate",
    "interpolated_estimate",
    "next_initial_estimate",
    "nearest_node_to_layer",
    "grid_interpolated_estimate",
    "next_bivariate_estimate",
]
