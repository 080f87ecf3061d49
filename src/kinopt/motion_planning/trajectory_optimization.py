"""
Trajectory Optimization
=======================

Multi-waypoint IK. Sequential mode chains single-pose solves, each seeded
and regularized by the previous waypoint's result. Joint mode optimizes all
waypoint configurations as one vector with inter-waypoint smoothness.
"""

import numpy as np
from typing import Any, List, Optional, Sequence, Tuple, Union
import logging

from .inverse_kinematics import IKSolver, RunStatus, to_outcome
from .objectives import ObjectiveComposer, PoseTarget
from .optimizers import NumericalOptimizer
from .outcomes import Outcome, SolverError
from ..collision.distance import DistancePrimitive
from ..collision.shapes import Obstacle
from ..config import SolveOptions, TrajectoryMode
from ..errors import DimensionMismatchError
from ..robot_models.model import KinematicTreeModel
from ..robot_models.state import JointState

logger = logging.getLogger(__name__)


class TrajectoryObjective:
    """
    Summed objective over concatenated waypoint configurations.

    cost(x) = sum_k f_k(x_k) + w_s * sum_k |x_k - x_{k-1}|^2 with x_{-1} the
    start configuration. The gradient is the block-wise gradient of each
    waypoint objective plus the analytic smoothness gradient.
    """

    def __init__(self, waypoint_objectives: Sequence[ObjectiveComposer],
                 start: np.ndarray, smoothness_weight: float):
        self.waypoint_objectives = list(waypoint_objectives)
        self.start = np.asarray(start, dtype=float)
        self.smoothness_weight = smoothness_weight
        self.dof = self.start.shape[0]
        self.n_waypoints = len(self.waypoint_objectives)

    @property
    def dimension(self) -> int:
        return self.dof * self.n_waypoints

    def split(self, x: np.ndarray) -> np.ndarray:
        """Waypoint configurations [n_waypoints, dof]."""
        x = np.asarray(x, dtype=float)
        if x.shape != (self.dimension,):
            raise DimensionMismatchError(self.dimension, x.size, "trajectory vector")
        return x.reshape(self.n_waypoints, self.dof)

    def _steps(self, blocks: np.ndarray) -> np.ndarray:
        return np.diff(np.vstack([self.start, blocks]), axis=0)

    def smoothness(self, x: np.ndarray) -> float:
        steps = self._steps(self.split(x))
        return float(np.sum(steps * steps))

    def cost(self, x: np.ndarray) -> float:
        blocks = self.split(x)
        total = sum(objective.cost(block) for objective, block in zip(self.waypoint_objectives, blocks))
        return total + self.smoothness_weight * self.smoothness(x)

    def gradient(self, x: np.ndarray) -> np.ndarray:
        blocks = self.split(x)
        gradient = np.concatenate([objective.gradient(block)
                                   for objective, block in zip(self.waypoint_objectives, blocks)])

        # d/dx_k of |x_k - x_{k-1}|^2 + |x_{k+1} - x_k|^2
        steps = self._steps(blocks)
        smooth = 2.0 * steps
        smooth[:-1] -= 2.0 * steps[1:]
        return gradient + self.smoothness_weight * smooth.ravel()

    def bounds(self):
        return [b for objective in self.waypoint_objectives for b in objective.bounds()]

    def lower_bounds(self) -> np.ndarray:
        return np.concatenate([o.lower_bounds() for o in self.waypoint_objectives])

    def upper_bounds(self) -> np.ndarray:
        return np.concatenate([o.upper_bounds() for o in self.waypoint_objectives])

    def violated_terms(self, x: np.ndarray) -> Tuple[str, ...]:
        violated = []
        for objective, block in zip(self.waypoint_objectives, self.split(x)):
            for name in objective.violated_terms(block):
                if name not in violated:
                    violated.append(name)
        return tuple(violated)


class TrajectorySolver:
    """
    Solves sequences of waypoint targets in sequential or joint mode.

    The mode is taken from the solve options.
    """

    def __init__(self, model: KinematicTreeModel,
                 options: Optional[SolveOptions] = None,
                 optimizer: Optional[NumericalOptimizer] = None,
                 primitive: Optional[DistancePrimitive] = None):
        self.model = model
        self.options = options or SolveOptions()
        self.ik = IKSolver(model, self.options, optimizer=optimizer, primitive=primitive)

        logger.info(f"Initialized TrajectorySolver in {self.options.mode.value} mode")

    def solve(self, waypoint_targets: Sequence[Any],
              obstacles: Sequence[Obstacle] = (),
              initial_guess: Optional[Union[JointState, Sequence[float]]] = None) -> List[Outcome]:
        """
        Solve every waypoint.

        Args:
            waypoint_targets: PoseTarget or (link, pose-like) per waypoint
            obstacles: World obstacles shared by all waypoints
            initial_guess: Start configuration (options/zero configuration if None)

        Returns:
            One Outcome per waypoint
        """
        targets = [PoseTarget.from_waypoint(w) for w in waypoint_targets]
        if not targets:
            return []

        start = self.ik.default_guess() if initial_guess is None else initial_guess
        start = np.asarray(getattr(start, 'values', start), dtype=float)
        if start.ndim != 1 or start.shape[0] != self.model.dof_count():
            raise DimensionMismatchError(self.model.dof_count(), start.size, "initial guess")

        if self.options.mode is TrajectoryMode.JOINT:
            return self._solve_joint(targets, obstacles, start)
        return self._solve_sequential(targets, obstacles, start)

    def _solve_sequential(self, targets: List[PoseTarget], obstacles: Sequence[Obstacle],
                          start: np.ndarray) -> List[Outcome]:
        outcomes = []
        previous = start

        for i, target in enumerate(targets):
            outcome = self.ik.solve(target, target.link, obstacles,
                                    initial_guess=previous, reference=previous)
            outcomes.append(outcome)

            if not outcome.feasible:
                logger.warning(f"Waypoint {i} infeasible ({type(outcome).__name__}); "
                               f"skipping {len(targets) - i - 1} remaining waypoints")
                outcomes.extend(SolverError(f"Skipped: waypoint {i} was infeasible")
                                for _ in range(i + 1, len(targets)))
                break

            previous = outcome.joint_state.as_array()

        return outcomes

    def _solve_joint(self, targets: List[PoseTarget], obstacles: Sequence[Obstacle],
                     start: np.ndarray) -> List[Outcome]:
        waypoint_objectives = [self.ik.objective(target, obstacles) for target in targets]
        objective = TrajectoryObjective(waypoint_objectives, start, self.options.weights.smoothness)

        result = self.ik.driver.run(objective, np.tile(start, len(targets)))
        if result.status is RunStatus.FAILED:
            return [SolverError(result.reason) for _ in targets]

        outcomes = []
        for waypoint_objective, block in zip(waypoint_objectives, objective.split(result.x)):
            outcomes.append(to_outcome(
                result, lambda _, values=block: JointState(self.model, values),
                cost=waypoint_objective.cost(block),
                violated_terms=waypoint_objective.violated_terms(block)
            ))
        return outcomes


def solve_trajectory(model: KinematicTreeModel, waypoint_targets: Sequence[Any],
                     obstacles: Sequence[Obstacle] = (),
                     options: Optional[SolveOptions] = None,
                     initial_guess: Optional[Union[JointState, Sequence[float]]] = None,
                     optimizer: Optional[NumericalOptimizer] = None,
                     primitive: Optional[DistancePrimitive] = None) -> List[Outcome]:
    """
    Solve a sequence of waypoint targets.

    Args:
        model: Kinematic tree model
        waypoint_targets: PoseTarget or (link, pose-like) per waypoint
        obstacles: World obstacles
        options: Solve options; options.mode selects sequential or joint mode
        initial_guess: Start configuration
        optimizer: Local minimizer capability
        primitive: Distance primitive capability

    Returns:
        One Outcome per waypoint
    """
    solver = TrajectorySolver(model, options, optimizer=optimizer, primitive=primitive)
    with solver.ik.proximity:
        return solver.solve(waypoint_targets, obstacles, initial_guess)
