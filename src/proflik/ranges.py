#########################################################################################
##
##                            PARAMETER RANGES AND GRIDS
##                                   (ranges.py)
##
##         Candidate values stepped through while profiling: two monotone rays per
##         parameter, and a square grid of signed offsets per parameter pair.
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

from typing import Iterable, Iterator, Sequence

import numpy as np

from .errors import ConfigurationError
from .options import resolution_for


# UNIVARIATE RANGES =====================================================================

def construct_profile_ranges(
    lower: float,
    upper: float,
    midpoint: float,
    resolution: int,
) -> tuple[np.ndarray, np.ndarray]:
    """Left and right candidate rays for one parameter.

    Both rays start at ``midpoint`` (the MLE value) and run to ``lower`` and
    ``upper`` respectively with ``resolution`` evenly spaced values each. A
    ray whose bound equals ``midpoint`` holds ``midpoint`` only.

    Raises
    ------
    ConfigurationError
        If either bound is infinite.
    """
    if not (np.isfinite(lower) and np.isfinite(upper)):
        raise ConfigurationError(
            f"Bounds of a profiled parameter must be finite, got [{lower}, {upper}]",
            context={"lower": lower, "upper": upper},
        )
    # a midpoint sitting on a bound leaves nothing to step through on that side
    left  = np.linspace(midpoint, lower, resolution) if lower < midpoint else np.array([float(midpoint)])
    right = np.linspace(midpoint, upper, resolution) if upper > midpoint else np.array([float(midpoint)])
    return left, right


def construct_solution_ranges(
    mle: Sequence[float],
    lower_bounds: Sequence[float],
    upper_bounds: Sequence[float],
    resolution,
    parameters: Iterable[int] | None = None,
) -> dict[int, tuple[np.ndarray, np.ndarray]]:
    """:func:`construct_profile_ranges` for every index in ``parameters``.

    ``resolution`` is a scalar or one value per parameter.
    """
    if parameters is None:
        parameters = range(len(mle))
    ranges = {}
    for i in parameters:
        try:
            ranges[i] = construct_profile_ranges(
                lower_bounds[i], upper_bounds[i], mle[i], resolution_for(resolution, i)
            )
        except ConfigurationError as err:
            raise ConfigurationError(
                f"Parameter {i}: {err}", context={**err.context, "parameter": i}
            ) from None
    return ranges


# LAYER ITERATOR ========================================================================

class LayerIterator:
    """Signed ``(i, j)`` offsets of the square ring at Chebyshev distance ``layer``.

    Nodes are visited bottom row left to right, right column bottom to top,
    top row right to left, then left column top to bottom; ``8 * layer``
    offsets in total.
    """

    def __init__(self, layer: int):
        if layer < 1:
            raise ValueError(f"layer must be >= 1, got {layer}")
        self.layer = int(layer)


    def __len__(self) -> int:
        return 8 * self.layer


    def __iter__(self) -> Iterator[tuple[int, int]]:
        L = self.layer
        for i in range(-L, L + 1):
            yield i, -L
        for j in range(-L + 1, L + 1):
            yield L, j
        for i in range(L - 1, -L - 1, -1):
            yield i, L
        for j in range(L - 1, -L, -1):
            yield -L, j


    def __repr__(self) -> str:
        return f"LayerIterator(layer={self.layer})"


# PROFILE GRID ==========================================================================

class ProfileGrid:
    """Regular grid for a parameter pair, centred on the MLE.

    Offset ``k`` along dimension ``d`` maps to
    ``centre[d] + k * (centre[d] - lower[d]) / resolution`` for ``k < 0`` and
    ``centre[d] + k * (upper[d] - centre[d]) / resolution`` for ``k > 0``, so
    offsets ``-resolution`` and ``+resolution`` land on the bounds.

    Parameters
    ----------
    lower, upper, centre : sequence of 2 floats
    resolution : int
        Number of layers that fit between the centre and each bound.
    """

    def __init__(self, lower, upper, centre, resolution: int):
        self.lower      = np.asarray(lower, dtype=float).reshape(2)
        self.upper      = np.asarray(upper, dtype=float).reshape(2)
        self.centre     = np.asarray(centre, dtype=float).reshape(2)
        self.resolution = int(resolution)

        if not (np.all(np.isfinite(self.lower)) and np.all(np.isfinite(self.upper))):
            raise ConfigurationError(
                f"Bounds of a profiled pair must be finite, got lower={self.lower}, upper={self.upper}"
            )
        if np.any(self.centre <= self.lower) or np.any(self.centre >= self.upper):
            raise ConfigurationError(
                f"The MLE {self.centre} of a profiled pair must lie strictly inside "
                f"its bounds lower={self.lower}, upper={self.upper}"
            )

        self.step_below = (self.centre - self.lower) / self.resolution
        self.step_above = (self.upper - self.centre) / self.resolution


    def value(self, dim: int, offset: int) -> float:
        """Parameter value of dimension ``dim`` at signed ``offset``."""
        if offset < 0:
            return float(self.centre[dim] + offset * self.step_below[dim])
        return float(self.centre[dim] + offset * self.step_above[dim])


    def point(self, i: int, j: int) -> tuple[float, float]:
        """Parameter pair at node ``(i, j)``."""
        return self.value(0, i), self.value(1, j)


    def axis(self, dim: int, first: int, last: int) -> np.ndarray:
        """Values of dimension ``dim`` for offsets ``first..last`` inclusive."""
        return np.array([self.value(dim, k) for k in range(first, last + 1)])


    def __repr__(self) -> str:
        return (
            f"ProfileGrid(lower={self.lower}, upper={self.upper}, "
            f"centre={self.centre}, resolution={self.resolution})"
        )


def construct_profile_grids(
    pairs: Iterable[tuple[int, int]],
    mle: Sequence[float],
    lower_bounds: Sequence[float],
    upper_bounds: Sequence[float],
    resolution,
) -> dict[tuple[int, int], ProfileGrid]:
    """One :class:`ProfileGrid` per pair, using the larger of the pair's resolutions."""
    grids = {}
    for a, b in pairs:
        res = max(resolution_for(resolution, a), resolution_for(resolution, b))
        try:
            grids[(a, b)] = ProfileGrid(
                [lower_bounds[a], lower_bounds[b]],
                [upper_bounds[a], upper_bounds[b]],
                [mle[a], mle[b]],
                res,
            )
        except ConfigurationError as err:
            raise ConfigurationError(f"Pair ({a}, {b}): {err}", context={"pair": (a, b)}) from None
    return grids


__all__ = [
    "construct_profile_ranges",
    "construct_solution_ranges",
    "construct_profile_grids",
    "LayerIterator",
    "ProfileGrid",
]
