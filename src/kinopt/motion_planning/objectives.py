"""
Objective Composition
=====================

Weighted objective terms over joint configurations (pose error, collision
penalty, joint-limit penalty, smoothness) and the composer that turns them
into a scalar cost with a gradient for the numerical optimizer.

Orientation error is the geodesic angle of the relative rotation; the
collision and joint-limit penalties are hinge-squared.
"""

import numpy as np
from abc import ABC, abstractmethod
from typing import Dict, Any, Callable, List, Optional, Sequence, Tuple, Union
from dataclasses import dataclass
import logging

from .forward_kinematics import compute
from ..collision.proximity import ProximityEngine
from ..collision.shapes import Obstacle
from ..config import SolveOptions
from ..errors import DimensionMismatchError
from ..robot_models.model import KinematicTreeModel
from ..robot_models.state import JointState, LinkTransformSet
from ..robot_models.transforms import Pose, angle_between

logger = logging.getLogger(__name__)

CONSTRAINT_TERMS = ('collision', 'joint_limit')


@dataclass
class PoseTarget:
    """
    Target pose of a link.

    Attributes:
        link: Link index or name
        position: Target world position [x, y, z]
        rotation: Target world rotation (3x3), None for a position-only target
    """
    link: Union[int, str]
    position: np.ndarray
    rotation: Optional[np.ndarray] = None

    def __post_init__(self):
        self.position = np.asarray(self.position, dtype=float)
        if self.position.shape != (3,):
            raise ValueError(f"Target position must have 3 components, got {self.position.shape}")
        if self.rotation is not None:
            self.rotation = np.asarray(self.rotation, dtype=float)
            if self.rotation.shape != (3, 3):
                raise ValueError("Target rotation must be 3x3")

    @classmethod
    def create(cls, link: Union[int, str], target: Any) -> 'PoseTarget':
        """
        Build a target from a pose-like value.

        Args:
            link: Link index or name
            target: PoseTarget, Pose, 4x4 matrix, 3-vector (position only) or
                dictionary accepted by Pose.from_dict

        Returns:
            PoseTarget instance
        """
        if isinstance(target, PoseTarget):
            return cls(link, target.position, target.rotation)
        if isinstance(target, Pose):
            return cls(link, target.position, target.rotation)
        if isinstance(target, dict):
            pose = Pose.from_dict(target)
            rotation = pose.rotation if any(k in target for k in ('rpy', 'quaternion', 'rotation')) else None
            return cls(link, pose.position, rotation)

        array = np.asarray(target, dtype=float)
        if array.shape == (4, 4):
            return cls(link, array[:3, 3], array[:3, :3])
        return cls(link, array)

    @classmethod
    def from_waypoint(cls, waypoint: Any) -> 'PoseTarget':
        """Accept a PoseTarget or a (link, pose-like) tuple."""
        if isinstance(waypoint, PoseTarget):
            return waypoint
        link, target = waypoint
        return cls.create(link, target)


class ObjectiveTerm(ABC):
    """A named raw (unweighted) objective term."""

    name: str = ""
    is_constraint: bool = False
    is_goal: bool = False

    @abstractmethod
    def value(self, values: np.ndarray, transforms: LinkTransformSet) -> float:
        """Raw term value for a configuration and its link transforms."""


class PoseErrorTerm(ObjectiveTerm):
    """Weighted squared position error plus weighted squared rotation angle."""

    name = "pose"
    is_goal = True

    def __init__(self, model: KinematicTreeModel, target: PoseTarget,
                 position_weight: float = 1.0, orientation_weight: float = 1.0):
        self.link = model.link_index(target.link)
        self.target = target
        self.position_weight = position_weight
        self.orientation_weight = orientation_weight

    def value(self, values: np.ndarray, transforms: LinkTransformSet) -> float:
        T = transforms[self.link]
        error = T[:3, 3] - self.target.position
        cost = self.position_weight * float(error @ error)

        if self.target.rotation is not None and self.orientation_weight > 0:
            angle = angle_between(T[:3, :3], self.target.rotation)
            cost += self.orientation_weight * angle ** 2

        return cost


def collision_penalty(distance: float, margin: float) -> float:
    """Hinge-squared penalty: zero at or beyond the margin."""
    violation = margin - distance
    return violation * violation if violation > 0.0 else 0.0


class CollisionTerm(ObjectiveTerm):
    """Sum over proximity pairs of the hinge-squared clearance violation."""

    name = "collision"
    is_constraint = True

    def __init__(self, engine: ProximityEngine, obstacles: Sequence[Obstacle], margin: float):
        self.engine = engine
        self.obstacles = tuple(obstacles)
        self.margin = margin

    def value(self, values: np.ndarray, transforms: LinkTransformSet) -> float:
        results = self.engine.min_distance(transforms, self.obstacles)
        return float(sum(collision_penalty(r.distance, self.margin) for r in results))


class JointLimitTerm(ObjectiveTerm):
    """Squared excursion outside the limits of bounded DOFs."""

    name = "joint_limit"
    is_constraint = True

    def __init__(self, lower: np.ndarray, upper: np.ndarray):
        self.lower = np.asarray(lower, dtype=float)
        self.upper = np.asarray(upper, dtype=float)

    def value(self, values: np.ndarray, transforms: LinkTransformSet) -> float:
        below = np.where(np.isfinite(self.lower), np.maximum(self.lower - values, 0.0), 0.0)
        above = np.where(np.isfinite(self.upper), np.maximum(values - self.upper, 0.0), 0.0)
        return float(below @ below + above @ above)


class SmoothnessTerm(ObjectiveTerm):
    """Squared deviation from a reference configuration."""

    name = "smoothness"

    def __init__(self, reference: np.ndarray):
        self.reference = np.array(reference, dtype=float)

    def value(self, values: np.ndarray, transforms: LinkTransformSet) -> float:
        delta = values - self.reference
        return float(delta @ delta)


def resolve_locked_dofs(model: KinematicTreeModel,
                        locked: Dict[Union[str, int], float]) -> Dict[int, float]:
    """Map DOF names/indices of locked DOFs to state-vector positions."""
    return {model.dof_index(key): float(value) for key, value in (locked or {}).items()}


class ObjectiveComposer:
    """
    Scalar objective over joint-value vectors.

    Closes over the model, the weighted terms, the obstacle set and the
    gradient settings. Cost is the weighted sum of the raw term values; the
    gradient is a central finite difference unless an analytic gradient is
    supplied.
    """

    def __init__(self, model: KinematicTreeModel,
                 terms: Sequence[Tuple[ObjectiveTerm, float]],
                 finite_difference_step: float = 1e-6,
                 analytic_gradient: Optional[Callable[[np.ndarray], np.ndarray]] = None,
                 locked_dofs: Optional[Dict[int, float]] = None,
                 feasibility_tolerance: float = 1e-6,
                 limit_gradient_tolerance: float = 1e-4,
                 limit_activity_tolerance: float = 1e-6):
        """
        Initialize the composer.

        Args:
            model: Kinematic tree model
            terms: (term, weight) pairs with unique term names
            finite_difference_step: Central-difference step
            analytic_gradient: Optional exact gradient of the total cost
            locked_dofs: State-vector positions pinned to fixed values
            feasibility_tolerance: Raw constraint value above which a term is violated
            limit_gradient_tolerance: Goal gradient magnitude treated as pushing on a limit
            limit_activity_tolerance: Distance to a limit at which a DOF counts as on it
        """
        names = [term.name for term, _ in terms]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate objective terms: {names}")

        self.model = model
        self.terms = list(terms)
        self.fd_step = finite_difference_step
        self.analytic_gradient = analytic_gradient
        self.locked_dofs = dict(locked_dofs or {})
        self.feasibility_tolerance = feasibility_tolerance
        self.limit_gradient_tolerance = limit_gradient_tolerance
        self.limit_activity_tolerance = limit_activity_tolerance

        self._lower = model.lower_limits().copy()
        self._upper = model.upper_limits().copy()
        for index, value in self.locked_dofs.items():
            self._lower[index] = self._upper[index] = value

    @property
    def dimension(self) -> int:
        return self.model.dof_count()

    def _vector(self, values: Union[JointState, Sequence[float]]) -> np.ndarray:
        x = np.asarray(getattr(values, 'values', values), dtype=float)
        if x.ndim != 1 or x.shape[0] != self.dimension:
            raise DimensionMismatchError(self.dimension, x.size)
        return x

    def evaluate(self, values: Union[JointState, Sequence[float]]) -> Tuple[float, Dict[str, float]]:
        """
        Evaluate the objective.

        Args:
            values: JointState or joint-value vector

        Returns:
            Tuple of (total cost, raw value per term name)
        """
        x = self._vector(values)
        transforms = compute(self.model, x)

        breakdown = {}
        cost = 0.0
        for term, weight in self.terms:
            raw = term.value(x, transforms)
            breakdown[term.name] = raw
            cost += weight * raw

        return cost, breakdown

    def cost(self, values: Union[JointState, Sequence[float]]) -> float:
        return self.evaluate(values)[0]

    def _weighted(self, x: np.ndarray, names: Optional[Sequence[str]]) -> float:
        transforms = compute(self.model, x)
        return sum(weight * term.value(x, transforms) for term, weight in self.terms
                   if names is None or term.name in names)

    def term_gradient(self, values: Union[JointState, Sequence[float]],
                      names: Optional[Sequence[str]] = None) -> np.ndarray:
        """Central finite-difference gradient of the weighted sum of selected terms."""
        x = self._vector(values)
        gradient = np.zeros_like(x)
        h = self.fd_step

        for i in range(x.shape[0]):
            plus = x.copy()
            minus = x.copy()
            plus[i] += h
            minus[i] -= h
            gradient[i] = (self._weighted(plus, names) - self._weighted(minus, names)) / (2 * h)

        return gradient

    def gradient(self, values: Union[JointState, Sequence[float]]) -> np.ndarray:
        if self.analytic_gradient is not None:
            return np.asarray(self.analytic_gradient(self._vector(values)), dtype=float)
        return self.term_gradient(values)

    def bounds(self) -> List[Tuple[Optional[float], Optional[float]]]:
        """Optimizer box bounds (joint limits, locked DOFs pinned)."""
        return [(None if np.isinf(lo) else float(lo), None if np.isinf(hi) else float(hi))
                for lo, hi in zip(self._lower, self._upper)]

    def lower_bounds(self) -> np.ndarray:
        return self._lower

    def upper_bounds(self) -> np.ndarray:
        return self._upper

    def violated_terms(self, values: Union[JointState, Sequence[float]]) -> Tuple[str, ...]:
        """
        Constraint terms not satisfied at a configuration.

        A constraint term is violated when its raw value exceeds the
        feasibility tolerance. The joint-limit term is also reported when a
        free DOF sits on a limit while the goal terms are unsatisfied and
        their gradient pushes that DOF outward, i.e. the limit is what
        keeps the goal from being reached.

        Returns:
            Names of violated terms
        """
        x = self._vector(values)
        _, breakdown = self.evaluate(x)

        violated = [name for name in CONSTRAINT_TERMS
                    if breakdown.get(name, 0.0) > self.feasibility_tolerance]

        if 'joint_limit' not in violated and self._limit_blocks_goal(x, breakdown):
            violated.append('joint_limit')

        return tuple(violated)

    def _limit_blocks_goal(self, x: np.ndarray, breakdown: Dict[str, float]) -> bool:
        goal_names = [term.name for term, _ in self.terms if term.is_goal]
        if not goal_names or sum(breakdown[n] for n in goal_names) <= self.feasibility_tolerance:
            return False

        lower, upper = self.model.lower_limits(), self.model.upper_limits()
        free = np.ones_like(x, dtype=bool)
        if self.locked_dofs:
            free[list(self.locked_dofs)] = False
        at_lower = free & np.isfinite(lower) & (x <= lower + self.limit_activity_tolerance)
        at_upper = free & np.isfinite(upper) & (x >= upper - self.limit_activity_tolerance)
        if not (at_lower.any() or at_upper.any()):
            return False

        # Descent direction is -gradient
        g = self.term_gradient(x, goal_names)
        tol = self.limit_gradient_tolerance
        return bool(np.any(g[at_lower] > tol) or np.any(g[at_upper] < -tol))

    def state_from_vector(self, x: np.ndarray) -> JointState:
        return JointState(self.model, x)


def compose_ik_objective(model: KinematicTreeModel, target: PoseTarget,
                         options: Optional[SolveOptions] = None,
                         engine: Optional[ProximityEngine] = None,
                         obstacles: Sequence[Obstacle] = (),
                         reference: Optional[Sequence[float]] = None,
                         include_smoothness: bool = True) -> ObjectiveComposer:
    """
    Build the objective of a single-pose IK problem.

    Args:
        model: Kinematic tree model
        target: Pose target of a link
        options: Solve options (defaults if None)
        engine: Proximity engine; no collision term if None
        obstacles: World obstacles
        reference: Smoothness reference configuration
        include_smoothness: Add the smoothness term when a reference is given

    Returns:
        ObjectiveComposer instance
    """
    options = options or SolveOptions()
    weights = options.weights

    terms: List[Tuple[ObjectiveTerm, float]] = [
        (PoseErrorTerm(model, target, weights.position, weights.orientation), 1.0)
    ]
    if engine is not None:
        terms.append((CollisionTerm(engine, obstacles, options.margin), weights.collision))
    terms.append((JointLimitTerm(model.lower_limits(), model.upper_limits()), weights.joint_limit))
    if include_smoothness and reference is not None and weights.smoothness > 0:
        terms.append((SmoothnessTerm(reference), weights.smoothness))

    return ObjectiveComposer(
        model, terms,
        finite_difference_step=options.finite_difference_step,
        locked_dofs=resolve_locked_dofs(model, options.locked_dofs),
        feasibility_tolerance=options.feasibility_tolerance,
        limit_gradient_tolerance=options.limit_gradient_tolerance,
        limit_activity_tolerance=options.limit_activity_tolerance,
    )
