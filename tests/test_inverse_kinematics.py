"""Tests for the optimization driver and collision-aware IK."""

import numpy as np
import pytest

from kinopt import (Converged, ConvergedInfeasible, DimensionMismatchError, IKSolver,
                    IterationLimitReached, Obstacle, ProximityEngine, SolveOptions, SolverError,
                    solve_ik)
from kinopt.motion_planning import OptimizationDriver, PoseTarget, compose_ik_objective

from conftest import FailingOptimizer, FlakyOptimizer

DIAGONAL_TARGET = np.array([1.414, 1.414, 0.0])


def tool_position(outcome):
    return outcome.joint_state.link_transforms().position('tool')


class TestScenarios:

    def test_free_target_converges(self, arm, options):
        outcome = solve_ik(arm, DIAGONAL_TARGET, 'tool', options=options)

        assert isinstance(outcome, Converged)
        assert outcome.feasible
        np.testing.assert_allclose(tool_position(outcome), DIAGONAL_TARGET, atol=1e-3)
        # The target sits just inside full reach, so the elbow is nearly straight
        q1, q2 = outcome.joint_state.values
        assert q1 == pytest.approx(np.pi / 4, abs=0.05)
        assert abs(q2) < 0.1

    def test_obstacle_on_path(self, arm):
        options = SolveOptions(margin=0.1, restart_count=4, iteration_budget=500, seed=11)
        obstacle = Obstacle.sphere('pillar', (0.7, 0.7, 0.0), 0.2)
        outcome = solve_ik(arm, DIAGONAL_TARGET, 'tool', [obstacle], options)

        assert isinstance(outcome, (Converged, ConvergedInfeasible))
        if isinstance(outcome, Converged):
            engine = ProximityEngine.from_model(arm)
            clearance = engine.minimum_clearance(outcome.joint_state.link_transforms(), [obstacle])
            assert clearance >= options.margin - 2e-3
        else:
            assert 'collision' in outcome.violated_terms

    def test_joint_limit_blocks_target(self, limited_arm, options):
        outcome = solve_ik(limited_arm, [0.0, 2.0, 0.0], 'tool', options=options)

        assert isinstance(outcome, ConvergedInfeasible)
        assert 'joint_limit' in outcome.violated_terms
        np.testing.assert_allclose(outcome.joint_state.values, [0.5, 0.5], atol=1e-6)

    def test_full_pose_target(self, arm, options):
        q = np.array([0.6, -0.9])
        target = arm.state(q).link_transforms().pose('tool')
        outcome = solve_ik(arm, target, 'tool', options=options, initial_guess=[0.3, -0.5])

        assert isinstance(outcome, Converged)
        np.testing.assert_allclose(outcome.joint_state.values, q, atol=1e-3)


class TestDriver:

    def test_multi_start_deterministic(self, arm):
        options = SolveOptions(margin=0.1, restart_count=4, seed=3)
        obstacle = Obstacle.sphere('pillar', (0.7, 0.7, 0.0), 0.2)

        first = solve_ik(arm, DIAGONAL_TARGET, 'tool', [obstacle], options)
        second = solve_ik(arm, DIAGONAL_TARGET, 'tool', [obstacle], options)

        assert type(first) is type(second)
        np.testing.assert_array_equal(first.joint_state.values, second.joint_state.values)
        assert first.cost == second.cost

    def test_parallel_and_serial_restarts_agree(self, arm):
        obstacle = Obstacle.sphere('pillar', (0.7, 0.7, 0.0), 0.2)
        serial = solve_ik(arm, DIAGONAL_TARGET, 'tool', [obstacle],
                          SolveOptions(margin=0.1, restart_count=3, max_workers=1))
        parallel = solve_ik(arm, DIAGONAL_TARGET, 'tool', [obstacle],
                            SolveOptions(margin=0.1, restart_count=3, max_workers=3))

        np.testing.assert_array_equal(serial.joint_state.values, parallel.joint_state.values)

    def test_initial_guesses(self, arm):
        driver = OptimizationDriver(SolveOptions(restart_count=3, seed=5, perturbation_scale=10.0))
        lower, upper = np.array([-1.0, -1.0]), np.array([1.0, 1.0])
        guesses = driver.initial_guesses(np.array([0.2, 0.3]), lower, upper)

        assert len(guesses) == 3
        np.testing.assert_array_equal(guesses[0], [0.2, 0.3])
        assert all(np.all(g >= lower) and np.all(g <= upper) for g in guesses)
        again = driver.initial_guesses(np.array([0.2, 0.3]), lower, upper)
        np.testing.assert_array_equal(np.array(guesses), np.array(again))

    def test_wrong_guess_length(self, arm, options):
        with pytest.raises(DimensionMismatchError):
            solve_ik(arm, DIAGONAL_TARGET, 'tool', options=options, initial_guess=[0.0, 0.0, 0.0])

        objective = compose_ik_objective(arm, PoseTarget('tool', DIAGONAL_TARGET))
        with pytest.raises(DimensionMismatchError):
            OptimizationDriver(options).solve(objective, [0.0])

    def test_all_restarts_failing(self, arm):
        options = SolveOptions(restart_count=3)
        outcome = solve_ik(arm, DIAGONAL_TARGET, 'tool', options=options, optimizer=FailingOptimizer())

        assert isinstance(outcome, SolverError)
        assert not outcome.feasible
        assert "singular system" in outcome.reason

    def test_failed_restart_absorbed(self, arm):
        options = SolveOptions(restart_count=3, max_workers=1, iteration_budget=500)
        outcome = solve_ik(arm, DIAGONAL_TARGET, 'tool', options=options, optimizer=FlakyOptimizer())

        assert isinstance(outcome, Converged)
        np.testing.assert_allclose(tool_position(outcome), DIAGONAL_TARGET, atol=1e-3)

    def test_iteration_budget(self, arm):
        options = SolveOptions(iteration_budget=1)
        outcome = solve_ik(arm, [-1.0, 0.5, 0.0], 'tool', options=options)

        assert isinstance(outcome, IterationLimitReached)
        assert outcome.cost < np.inf
        assert len(outcome.joint_state) == 2

    def test_time_budget(self, arm):
        options = SolveOptions(time_budget=1e-9, restart_count=4)
        outcome = solve_ik(arm, DIAGONAL_TARGET, 'tool', options=options, initial_guess=[0.1, 0.2])

        assert isinstance(outcome, IterationLimitReached)
        np.testing.assert_array_equal(outcome.joint_state.values, [0.1, 0.2])

    def test_locked_dof(self, arm, options):
        options = options.replace(locked_dofs={'elbow': 0.0})
        outcome = solve_ik(arm, [0.0, 2.0, 0.0], 'tool', options=options)

        assert isinstance(outcome, Converged)
        assert outcome.joint_state.values[1] == 0.0
        assert outcome.joint_state.values[0] == pytest.approx(np.pi / 2, abs=1e-3)

    def test_slsqp_backend(self, arm):
        options = SolveOptions(optimizer_method='SLSQP', iteration_budget=500)
        outcome = solve_ik(arm, [1.0, 1.0, 0.0], 'tool', options=options, initial_guess=[0.5, 1.0])

        assert isinstance(outcome, Converged)
        np.testing.assert_allclose(tool_position(outcome), [1.0, 1.0, 0.0], atol=1e-3)


class TestIKSolver:

    def test_solver_reuse(self, arm, options):
        solver = IKSolver(arm, options)
        first = solver.solve([1.0, 1.0, 0.0], 'tool', initial_guess=[0.5, 1.0])
        second = solver.solve([0.0, 1.5, 0.0], 'tool', initial_guess=first.joint_state)

        assert isinstance(first, Converged) and isinstance(second, Converged)
        np.testing.assert_allclose(tool_position(second), [0.0, 1.5, 0.0], atol=1e-3)

    def test_default_guess_from_options(self, arm):
        solver = IKSolver(arm, SolveOptions(initial_guess=[0.1, 0.2]))
        np.testing.assert_array_equal(solver.default_guess(), [0.1, 0.2])
