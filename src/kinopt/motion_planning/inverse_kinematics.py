"""
Inverse Kinematics Solver
=========================

Optimization driver running multi-start local minimization of an objective
under joint-limit box bounds, and the single-pose IK API built on it.
"""

import time
import numpy as np
from concurrent.futures import ThreadPoolExecutor
from typing import Any, List, Optional, Sequence, Tuple, Union
from dataclasses import dataclass
from enum import Enum
import logging

from .objectives import ObjectiveComposer, PoseTarget, compose_ik_objective
from .optimizers import NumericalOptimizer, OptimizerStatus, ScipyOptimizer
from .outcomes import (Outcome, Converged, ConvergedInfeasible,
                       IterationLimitReached, SolverError)
from ..collision.collision_filter import CollisionFilter
from ..collision.distance import DistancePrimitive
from ..collision.geometry_store import CollisionGeometryStore
from ..collision.proximity import ProximityEngine
from ..collision.shapes import Obstacle
from ..config import SolveOptions
from ..errors import DimensionMismatchError, NumericalFailure
from ..robot_models.model import KinematicTreeModel
from ..robot_models.state import JointState

logger = logging.getLogger(__name__)


class RunStatus(Enum):
    """Termination of one driver run."""
    CONVERGED = "converged"
    BUDGET_EXHAUSTED = "budget_exhausted"
    FAILED = "failed"


@dataclass
class DriverResult:
    """
    Selected result of a multi-start run, as a raw vector.

    Attributes:
        status: How the selected restart terminated
        x: Final (or best seen) vector, None if every restart failed
        cost: Objective value at x
        violated_terms: Constraint terms violated at x
        restart_index: Index of the selected restart
        reason: Failure description when status is FAILED
    """
    status: RunStatus
    x: Optional[np.ndarray] = None
    cost: float = np.inf
    violated_terms: Tuple[str, ...] = ()
    restart_index: int = -1
    reason: str = ""

    @property
    def feasible_converged(self) -> bool:
        return self.status is RunStatus.CONVERGED and not self.violated_terms


class _BudgetExhausted(Exception):
    """Raised from inside the objective when the wall-clock deadline passes."""


class _BudgetedObjective:
    """Per-restart objective wrapper enforcing the deadline and tracking the best point."""

    def __init__(self, objective, deadline: Optional[float]):
        self.objective = objective
        self.deadline = deadline
        self.best_x: Optional[np.ndarray] = None
        self.best_cost = np.inf

    def _check_deadline(self):
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise _BudgetExhausted()

    def cost(self, x: np.ndarray) -> float:
        self._check_deadline()
        value = self.objective.cost(x)
        if np.isfinite(value) and value < self.best_cost:
            self.best_cost = value
            self.best_x = np.array(x, dtype=float)
        return value

    def gradient(self, x: np.ndarray) -> np.ndarray:
        self._check_deadline()
        return self.objective.gradient(x)


class OptimizationDriver:
    """
    Multi-start local optimization of an objective.

    Restart 0 starts from the initial guess; restarts 1..k-1 start from
    seeded Gaussian perturbations of it, clipped to the bounds. Restarts
    share only read-only inputs and run on a thread pool. The selected
    result is the lowest-cost feasible converged restart (ties broken by
    the lowest restart index), otherwise the lowest-cost remaining one.
    """

    def __init__(self, options: Optional[SolveOptions] = None,
                 optimizer: Optional[NumericalOptimizer] = None):
        """
        Initialize the driver.

        Args:
            options: Solve options (budgets, restarts, seed)
            optimizer: Local minimizer (ScipyOptimizer from the options if None)
        """
        self.options = options or SolveOptions()
        self.optimizer = optimizer or ScipyOptimizer(
            method=self.options.optimizer_method,
            convergence_tolerance=self.options.convergence_tolerance,
            gradient_tolerance=self.options.gradient_tolerance
        )

    def initial_guesses(self, x0: np.ndarray, lower: np.ndarray, upper: np.ndarray) -> List[np.ndarray]:
        """Deterministic start vectors of all restarts."""
        rng = np.random.default_rng(self.options.seed)
        guesses = [np.clip(x0, lower, upper)]
        for _ in range(1, self.options.restart_count):
            noise = rng.normal(0.0, self.options.perturbation_scale, size=x0.shape)
            guesses.append(np.clip(x0 + noise, lower, upper))
        return guesses

    def run(self, objective, initial_guess: Sequence[float],
            iteration_budget: Optional[int] = None,
            time_budget: Optional[float] = None) -> DriverResult:
        """
        Run all restarts and select one result.

        Args:
            objective: Object exposing dimension, cost, gradient, bounds,
                lower_bounds, upper_bounds and violated_terms
            initial_guess: Start vector of length objective.dimension
            iteration_budget: Iterations per restart (options default if None)
            time_budget: Wall-clock seconds for the whole run (options default if None)

        Returns:
            DriverResult of the selected restart

        Raises:
            DimensionMismatchError: If the initial guess has the wrong length
        """
        x0 = np.asarray(getattr(initial_guess, 'values', initial_guess), dtype=float)
        if x0.ndim != 1 or x0.shape[0] != objective.dimension:
            raise DimensionMismatchError(objective.dimension, x0.size, "initial guess")

        iteration_budget = iteration_budget or self.options.iteration_budget
        time_budget = time_budget if time_budget is not None else self.options.time_budget
        deadline = time.monotonic() + time_budget if time_budget is not None else None

        bounds = objective.bounds()
        guesses = self.initial_guesses(x0, objective.lower_bounds(), objective.upper_bounds())

        def run_restart(index: int) -> Optional[DriverResult]:
            return self._run_restart(objective, index, guesses[index], bounds, iteration_budget, deadline)

        if len(guesses) == 1 or self.options.max_workers == 1:
            results = [run_restart(i) for i in range(len(guesses))]
        else:
            with ThreadPoolExecutor(max_workers=self.options.max_workers) as executor:
                results = list(executor.map(run_restart, range(len(guesses))))

        return self._select(results)

    def _run_restart(self, objective, index: int, x0: np.ndarray, bounds,
                     iteration_budget: int, deadline: Optional[float]) -> Optional[DriverResult]:
        if index > 0 and deadline is not None and time.monotonic() >= deadline:
            logger.debug(f"Restart {index} not started: time budget exhausted")
            return None

        wrapped = _BudgetedObjective(objective, deadline)
        try:
            result = self.optimizer.minimize(wrapped.cost, x0, wrapped.gradient, bounds, iteration_budget)
        except _BudgetExhausted:
            logger.debug(f"Restart {index} stopped by time budget")
            return self._best_seen(objective, index, wrapped, x0)
        except NumericalFailure as e:
            logger.warning(f"Restart {index} failed: {e}")
            return DriverResult(RunStatus.FAILED, restart_index=index, reason=str(e))

        if result.status is OptimizerStatus.ITERATION_LIMIT:
            logger.debug(f"Restart {index} reached the iteration limit after {result.iterations} iterations")
            if wrapped.best_x is not None and wrapped.best_cost < result.cost:
                return self._best_seen(objective, index, wrapped, x0)
            return DriverResult(RunStatus.BUDGET_EXHAUSTED, result.x, result.cost,
                                objective.violated_terms(result.x), index)

        violated = objective.violated_terms(result.x)
        logger.debug(f"Restart {index} converged in {result.iterations} iterations, "
                     f"cost {result.cost:.3e}, violated {list(violated)}")
        return DriverResult(RunStatus.CONVERGED, result.x, result.cost, violated, index)

    @staticmethod
    def _best_seen(objective, index: int, wrapped: _BudgetedObjective, x0: np.ndarray) -> DriverResult:
        if wrapped.best_x is None:
            x, cost = x0, objective.cost(x0)
        else:
            x, cost = wrapped.best_x, wrapped.best_cost
        return DriverResult(RunStatus.BUDGET_EXHAUSTED, x, cost, objective.violated_terms(x), index)

    @staticmethod
    def _select(results: List[Optional[DriverResult]]) -> DriverResult:
        candidates = [r for r in results if r is not None and r.status is not RunStatus.FAILED]

        feasible = [r for r in candidates if r.feasible_converged]
        if feasible:
            return min(feasible, key=lambda r: (r.cost, r.restart_index))
        if candidates:
            return min(candidates, key=lambda r: (r.cost, r.restart_index))

        reasons = "; ".join(f"restart {r.restart_index}: {r.reason}" for r in results if r is not None)
        return DriverResult(RunStatus.FAILED, reason=f"All restarts failed ({reasons})")

    def solve(self, objective: ObjectiveComposer, initial_guess: Sequence[float],
              iteration_budget: Optional[int] = None,
              time_budget: Optional[float] = None) -> Outcome:
        """
        Run the restarts and report the selected result as an Outcome.

        Args:
            objective: Single-configuration objective
            initial_guess: Start configuration
            iteration_budget: Iterations per restart
            time_budget: Wall-clock seconds for the whole solve

        Returns:
            Converged, ConvergedInfeasible, IterationLimitReached or SolverError
        """
        result = self.run(objective, initial_guess, iteration_budget, time_budget)
        return to_outcome(result, objective.state_from_vector)


def to_outcome(result: DriverResult, make_state, cost: Optional[float] = None,
               violated_terms: Optional[Tuple[str, ...]] = None) -> Outcome:
    """Convert a driver result (or a slice of it) to an Outcome."""
    if result.status is RunStatus.FAILED:
        return SolverError(result.reason)

    state = make_state(result.x)
    cost = result.cost if cost is None else cost
    violated = result.violated_terms if violated_terms is None else violated_terms

    if result.status is RunStatus.BUDGET_EXHAUSTED:
        return IterationLimitReached(state, cost, violated)
    if violated:
        return ConvergedInfeasible(state, cost, violated)
    return Converged(state, cost)


class IKSolver:
    """
    Collision-aware inverse kinematics for one kinematic tree model.

    Builds the model's geometry store, collision filter and proximity engine
    once; each solve composes a fresh objective for its target and obstacles.
    """

    def __init__(self, model: KinematicTreeModel,
                 options: Optional[SolveOptions] = None,
                 optimizer: Optional[NumericalOptimizer] = None,
                 primitive: Optional[DistancePrimitive] = None,
                 collision_filter: Optional[CollisionFilter] = None):
        """
        Initialize IK solver.

        Args:
            model: Kinematic tree model
            options: Solve options
            optimizer: Local minimizer capability
            primitive: Distance primitive capability
            collision_filter: Self-collision filter (model adjacency filter if None)
        """
        self.model = model
        self.options = options or SolveOptions()
        self.driver = OptimizationDriver(self.options, optimizer)
        self.proximity = ProximityEngine(
            CollisionGeometryStore.from_model(model),
            collision_filter or CollisionFilter.from_model(model),
            primitive=primitive,
            self_collision=self.options.self_collision,
            max_workers=self.options.max_workers
        )

        logger.info(f"Initialized IKSolver with {model.dof_count()} DOF")

    def default_guess(self) -> np.ndarray:
        if self.options.initial_guess is not None:
            return np.asarray(self.options.initial_guess, dtype=float)
        return self.model.clip_to_limits(np.zeros(self.model.dof_count()))

    def objective(self, target: PoseTarget, obstacles: Sequence[Obstacle] = (),
                  reference: Optional[Sequence[float]] = None) -> ObjectiveComposer:
        return compose_ik_objective(self.model, target, self.options, self.proximity,
                                    obstacles, reference)

    def solve(self, target_pose: Any, link_id: Union[int, str],
              obstacles: Sequence[Obstacle] = (),
              initial_guess: Optional[Union[JointState, Sequence[float]]] = None,
              reference: Optional[Union[JointState, Sequence[float]]] = None) -> Outcome:
        """
        Solve IK for a link pose.

        Args:
            target_pose: Pose, 4x4 matrix, 3-vector or PoseTarget
            link_id: Link index or name
            obstacles: World obstacles
            initial_guess: Start configuration (options/zero configuration if None)
            reference: Smoothness reference (the initial guess if None)

        Returns:
            Outcome of the solve

        Raises:
            DimensionMismatchError: If the guess or reference has the wrong length
        """
        target = PoseTarget.create(link_id, target_pose)
        guess = self.default_guess() if initial_guess is None else initial_guess
        guess = np.asarray(getattr(guess, 'values', guess), dtype=float)
        if guess.ndim != 1 or guess.shape[0] != self.model.dof_count():
            raise DimensionMismatchError(self.model.dof_count(), guess.size, "initial guess")

        reference = guess if reference is None else np.asarray(getattr(reference, 'values', reference), dtype=float)
        if reference.shape != guess.shape:
            raise DimensionMismatchError(self.model.dof_count(), reference.size, "reference")

        objective = self.objective(target, obstacles, reference)
        outcome = self.driver.solve(objective, guess)
        logger.debug(f"IK for link '{self.model.link(target.link).name}': {type(outcome).__name__}")
        return outcome


def solve_ik(model: KinematicTreeModel, target_pose: Any, link_id: Union[int, str],
             obstacles: Sequence[Obstacle] = (),
             options: Optional[SolveOptions] = None,
             initial_guess: Optional[Union[JointState, Sequence[float]]] = None,
             optimizer: Optional[NumericalOptimizer] = None,
             primitive: Optional[DistancePrimitive] = None) -> Outcome:
    """
    Solve inverse kinematics for one link pose.

    Args:
        model: Kinematic tree model
        target_pose: Target pose (Pose, 4x4 matrix or position-only 3-vector)
        link_id: Link index or name
        obstacles: World obstacles
        options: Solve options
        initial_guess: Start configuration
        optimizer: Local minimizer capability
        primitive: Distance primitive capability

    Returns:
        Outcome of the solve
    """
    solver = IKSolver(model, options, optimizer=optimizer, primitive=primitive)
    with solver.proximity:
        return solver.solve(target_pose, link_id, obstacles, initial_guess=initial_guess)
