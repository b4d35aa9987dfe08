########################################################################################
##
##                                  TESTS FOR
##                                'estimates.py'
##
########################################################################################

# IMPORTS ==============================================================================

import numpy as np
import pytest

from proflik.estimates import (
    ProfileHistory,
    SurfaceBuffer,
    grid_interpolated_estimate,
    linear_extrapolation,
    nearest_node_to_layer,
    next_bivariate_estimate,
    next_initial_estimate,
)
from proflik.options import BivariateEstimateMethod, EstimateMethod
from proflik.ranges import LayerIterator, ProfileGrid
from proflik.restricted import ShiftedObjective, exclude_parameters


# ═══════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════

def _zero(theta, data):
    return 0.0


def _restricted_5():
    lb = [0.0, -5.0, -5.0, -5.0, -5.0]
    ub = [15.0, 15.0, 15.0, 15.0, 15.0]
    return exclude_parameters(ShiftedObjective(_zero), 5, 0, lb, ub)


def _history(values, other_mles):
    h = ProfileHistory()
    for v, m in zip(values, other_mles):
        h.append(v, 0.0, m)
    return h


MIDPOINT = [5.0, 5.0, 5.0, 5.0]


# ═══════════════════════════════════════════════════════════════════════════
# Univariate estimates
# ═══════════════════════════════════════════════════════════════════════════

class TestUnivariateEstimates:

    def test_prev_uses_last_solution(self):
        h = _history([2.0, 3.0, 4.0], [MIDPOINT, [4.7, 4.3, 1.0, 5.0], [2.3, 3.3, 3.3, 4.9]])
        x0 = next_initial_estimate(EstimateMethod.PREV, h, 4.4, _restricted_5())
        np.testing.assert_allclose(x0, [2.3, 3.3, 3.3, 4.9])

    def test_interp_extrapolates_last_two(self):
        h = _history([2.0, 3.0, 4.0], [MIDPOINT, [4.7, 4.3, 1.0, 5.0], [2.3, 3.3, 3.3, 4.9]])
        x0 = next_initial_estimate(EstimateMethod.INTERP, h, 4.4, _restricted_5())
        np.testing.assert_allclose(x0, [1.34, 2.9, 4.22, 4.86])

    def test_interp_falls_back_when_out_of_bounds(self):
        h = _history([2.0, 3.0, 4.0], [MIDPOINT, [4.7, 4.3, 1.0, 15.0], [2.3, 3.3, 3.3, 15.9]])
        x0 = next_initial_estimate(EstimateMethod.INTERP, h, 4.4, _restricted_5())
        np.testing.assert_allclose(x0, [2.3, 3.3, 3.3, 15.9])

    def test_interp_with_single_point_uses_prev(self):
        h = _history([2.0], [MIDPOINT])
        x0 = next_initial_estimate(EstimateMethod.INTERP, h, 4.4, _restricted_5())
        np.testing.assert_allclose(x0, MIDPOINT)

    def test_estimate_is_a_copy(self):
        h = _history([2.0], [MIDPOINT])
        x0 = next_initial_estimate(EstimateMethod.PREV, h, 3.0, _restricted_5())
        x0[:] = -1.0
        np.testing.assert_allclose(h.other_mles[-1], MIDPOINT)

    def test_linear_extrapolation(self):
        y = linear_extrapolation(3.0, 1.0, [0.0, 1.0], 2.0, [1.0, 3.0])
        np.testing.assert_allclose(y, [2.0, 5.0])


# ═══════════════════════════════════════════════════════════════════════════
# History
# ═══════════════════════════════════════════════════════════════════════════

class TestProfileHistory:

    def test_append_and_clear(self):
        h = ProfileHistory()
        h.append(1.0, -0.5, [1.0, 2.0], converged=False)
        assert len(h) == 1
        assert h.converged == [False]
        h.clear()
        assert len(h) == 0 and not h.other_mles

    def test_extend(self):
        a = _history([1.0], [[0.0]])
        b = _history([2.0, 3.0], [[1.0], [2.0]])
        a.extend(b)
        assert a.values == [1.0, 2.0, 3.0]


# ═══════════════════════════════════════════════════════════════════════════
# Bivariate estimates
# ═══════════════════════════════════════════════════════════════════════════

class TestNearestNode:

    def test_layer_one_maps_to_centre(self):
        assert all(nearest_node_to_layer(i, j, 1) == (0, 0) for i, j in LayerIterator(1))

    @pytest.mark.parametrize("node, expected", [
        ((3, 3), (2, 2)),
        ((3, -3), (2, -2)),
        ((-3, 3), (-2, 2)),
        ((-3, -3), (-2, -2)),
        ((3, 1), (2, 1)),
        ((-3, -2), (-2, -2)),
        ((0, 3), (0, 2)),
        ((2, -3), (2, -2)),
    ])
    def test_corner_and_edge_rules(self, node, expected):
        assert nearest_node_to_layer(*node, 3) == expected

    def test_result_lies_on_previous_layer(self):
        for i, j in LayerIterator(4):
            u, v = nearest_node_to_layer(i, j, 4)
            assert max(abs(u), abs(v)) == 3


def _filled_buffer(grid, layers, fn):
    buf = SurfaceBuffer(grid.resolution, 2)
    buf.set(0, 0, 0.0, fn(*grid.point(0, 0)))
    for layer in range(1, layers + 1):
        for i, j in LayerIterator(layer):
            buf.set(i, j, 0.0, fn(*grid.point(i, j)))
    buf.filled_layer = layers
    return buf


class TestBivariateEstimates:

    def setup_method(self):
        self.grid = ProfileGrid([-4.0, -4.0], [4.0, 4.0], [0.0, 0.0], 8)
        self.restricted = exclude_parameters(
            ShiftedObjective(_zero), 4, (0, 1), [-4.0] * 4, [4.0] * 4
        )
        self.plane = lambda x, y: np.array([0.5 * x + 0.1, -0.25 * y])

    def test_mle_uses_centre(self):
        buf = _filled_buffer(self.grid, 2, self.plane)
        x0 = next_bivariate_estimate(BivariateEstimateMethod.MLE, buf, self.grid, (3, 1), 3, self.restricted)
        np.testing.assert_allclose(x0, self.plane(0.0, 0.0))

    def test_nearest_uses_inner_neighbour(self):
        buf = _filled_buffer(self.grid, 2, self.plane)
        x0 = next_bivariate_estimate(BivariateEstimateMethod.NEAREST, buf, self.grid, (3, 3), 3, self.restricted)
        np.testing.assert_allclose(x0, self.plane(*self.grid.point(2, 2)))

    def test_interp_reproduces_a_plane(self):
        buf = _filled_buffer(self.grid, 2, self.plane)
        point = self.grid.point(3, -1)
        x0 = next_bivariate_estimate(BivariateEstimateMethod.INTERP, buf, self.grid, (3, -1), 3, self.restricted)
        np.testing.assert_allclose(x0, self.plane(*point), atol=1e-12)

    def test_interp_on_first_layer_uses_centre(self):
        buf = _filled_buffer(self.grid, 0, self.plane)
        x0 = grid_interpolated_estimate(buf, self.grid, 1, self.grid.point(1, 0), self.restricted)
        np.testing.assert_allclose(x0, self.plane(0.0, 0.0))

    def test_interp_out_of_bounds_uses_centre(self):
        steep = lambda x, y: np.array([3.0 * x, 0.0])
        buf = _filled_buffer(self.grid, 2, steep)
        # extrapolates to 3 * 3.0 = 9, beyond the bound of 4
        x0 = grid_interpolated_estimate(buf, self.grid, 3, self.grid.point(6, 0), self.restricted)
        np.testing.assert_allclose(x0, steep(0.0, 0.0))


class TestSurfaceBuffer:

    def test_offsets_and_block(self):
        buf = SurfaceBuffer(3, 1)
        buf.set(-1, 2, -0.7, [4.0], converged=True)
        assert buf.profile_at(-1, 2) == -0.7
        np.testing.assert_array_equal(buf.other_mles_at(-1, 2), [4.0])
        prof, other, conv = buf.block(2)
        assert prof.shape == (5, 5)
        assert other.shape == (5, 5, 1)
        assert prof[-1 + 2, 2 + 2] == -0.7
        assert conv[1, 4]

    def test_unfilled_nodes_are_nan(self):
        buf = SurfaceBuffer(2, 0)
        assert np.isnan(buf.profile_at(2, -2))
