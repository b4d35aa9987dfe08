########################################################################################
##
##                                  TESTS FOR
##                               'restricted.py'
##
########################################################################################

# IMPORTS ==============================================================================

import threading

import numpy as np
import pytest

from proflik.restricted import (
    RestrictedObjective,
    ShiftedObjective,
    exclude_parameters,
    shifted_objective,
)
from proflik import LikelihoodProblem, LikelihoodSolution


# ═══════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════

def _sum_of_squares(theta, data):
    return -float(np.sum(np.asarray(theta) ** 2))


def _weighted(theta, data):
    return -float(np.dot(data["weights"], np.asarray(theta) ** 2))


LB = np.array([-1.0, -2.0, -3.0, -4.0])
UB = np.array([1.0, 2.0, 3.0, 4.0])


# ═══════════════════════════════════════════════════════════════════════════
# ShiftedObjective
# ═══════════════════════════════════════════════════════════════════════════

class TestShiftedObjective:

    def test_negates_and_shifts(self):
        f = ShiftedObjective(_sum_of_squares, None, shift=-2.0)
        # -(ℓ - shift) with ℓ = -5
        assert f(np.array([1.0, 2.0])) == pytest.approx(3.0)

    def test_unshifted(self):
        f = ShiftedObjective(_sum_of_squares)
        assert f(np.array([1.0, 2.0])) == pytest.approx(5.0)

    def test_shifted_objective_uses_maximum_when_normalised(self):
        prob = LikelihoodProblem(_sum_of_squares, [0.5, 0.5])
        sol = LikelihoodSolution(prob, [0.0, 0.0], -1.5)
        assert shifted_objective(prob, sol, True).shift == -1.5
        assert shifted_objective(prob, sol, False).shift == 0.0


# ═══════════════════════════════════════════════════════════════════════════
# RestrictedObjective
# ═══════════════════════════════════════════════════════════════════════════

class TestRestrictedObjective:

    def test_single_fixed_index(self):
        g = exclude_parameters(ShiftedObjective(_sum_of_squares), 4, 1, LB, UB)
        g.fix(2.0)
        assert g(np.array([1.0, 1.0, 1.0])) == pytest.approx(7.0)
        np.testing.assert_array_equal(g.free_indices, [0, 2, 3])
        np.testing.assert_array_equal(g.lower_bounds, [-1.0, -3.0, -4.0])
        np.testing.assert_array_equal(g.upper_bounds, [1.0, 3.0, 4.0])

    def test_pair_fixed_in_given_order(self):
        g = exclude_parameters(lambda th: float(th[0] + 10 * th[3]), 4, (3, 0), LB, UB)
        g.fix(1.0, 2.0)
        np.testing.assert_array_equal(g.expand(np.array([5.0, 6.0])), [2.0, 5.0, 6.0, 1.0])
        assert g(np.array([5.0, 6.0])) == pytest.approx(2.0 + 10.0)

    def test_rereads_fixed_value_every_call(self):
        g = exclude_parameters(ShiftedObjective(_sum_of_squares), 2, 0, LB[:2], UB[:2])
        g.fix(1.0)
        first = g(np.array([0.0]))
        g.fix(3.0)
        assert first == pytest.approx(1.0)
        assert g(np.array([0.0])) == pytest.approx(9.0)

    def test_is_inbounds(self):
        g = exclude_parameters(ShiftedObjective(_sum_of_squares), 4, 0, LB, UB)
        assert g.is_inbounds([0.0, 0.0, 0.0])
        assert g.is_inbounds([2.0, 3.0, 4.0])
        assert not g.is_inbounds([2.1, 0.0, 0.0])

    def test_repeated_fixed_index_rejected(self):
        with pytest.raises(ValueError):
            RestrictedObjective(_sum_of_squares, 3, [1, 1], LB[:3], UB[:3])

    def test_all_parameters_fixed(self):
        g = exclude_parameters(ShiftedObjective(_sum_of_squares), 1, 0, [-1.0], [1.0])
        g.fix(0.5)
        assert g.n_free == 0
        assert g(np.empty(0)) == pytest.approx(0.25)


# ═══════════════════════════════════════════════════════════════════════════
# Isolation
# ═══════════════════════════════════════════════════════════════════════════

class TestIsolatedCopy:

    def test_scratch_buffers_are_independent(self):
        g = exclude_parameters(ShiftedObjective(_sum_of_squares), 3, 0, LB[:3], UB[:3])
        h = g.isolated_copy()
        g.fix(1.0)
        h.fix(2.0)
        assert g.fixed_values[0] == 1.0
        assert h.fixed_values[0] == 2.0
        assert g.full_buffer is not h.full_buffer

    def test_data_is_copied(self):
        data = {"weights": np.array([1.0, 1.0])}
        g = exclude_parameters(ShiftedObjective(_weighted, data), 2, 0, LB[:2], UB[:2])
        h = g.isolated_copy()
        h.objective.data["weights"][:] = 10.0
        g.fix(1.0)
        assert g(np.array([1.0])) == pytest.approx(2.0)
        np.testing.assert_array_equal(data["weights"], [1.0, 1.0])

    def test_closure_state_is_copied(self):
        calls = []

        def loglik(theta, data):
            calls.append(theta[0])
            return -float(np.sum(theta ** 2))

        g = exclude_parameters(ShiftedObjective(loglik), 2, 0, LB[:2], UB[:2])
        h = g.isolated_copy()
        h.fix(1.0)
        h(np.array([0.0]))
        assert calls == []
        g.fix(1.0)
        g(np.array([0.0]))
        assert calls == [1.0]

    def test_uncopyable_closure_cells_stay_shared(self):
        lock = threading.Lock()

        def loglik(theta, data):
            with lock:
                return -float(np.sum(theta ** 2))

        g = exclude_parameters(ShiftedObjective(loglik), 2, 1, LB[:2], UB[:2])
        h = g.isolated_copy()
        h.fix(2.0)
        assert h(np.array([1.0])) == pytest.approx(5.0)

    def test_self_referencing_closure(self):
        def outer():
            def recurse(theta, data, depth=0):
                if depth < 2:
                    return recurse(theta, data, depth + 1)
                return -float(np.sum(theta ** 2))
            return recurse

        g = exclude_parameters(ShiftedObjective(outer()), 2, 0, LB[:2], UB[:2])
        h = g.isolated_copy()
        h.fix(1.0)
        assert h(np.array([2.0])) == pytest.approx(5.0)
