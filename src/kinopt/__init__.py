"""
kinopt
======

Kinematic tree models, collision proximity queries and collision-aware
inverse kinematics and trajectory optimization for robots.
"""

from .errors import (KinoptError, MalformedModelError, DimensionMismatchError,
                     NumericalFailure, ConfigurationError)
from .config import SolveOptions, ObjectiveWeights, TrajectoryMode
from .robot_models import KinematicTreeModel, Joint, JointKind, Link, JointState, LinkTransformSet, Pose
from .collision import (Sphere, Capsule, Box, Obstacle, CollisionFilter,
                        CollisionGeometryStore, ProximityEngine, ConvexDistance)
from .motion_planning import (ForwardKinematics, compute, PoseTarget, ObjectiveComposer,
                              OptimizationDriver, IKSolver, TrajectorySolver,
                              Converged, ConvergedInfeasible, IterationLimitReached, SolverError,
                              solve_ik, solve_trajectory, JointTrajectory)

__version__ = "0.1.0"

__all__ = [
    'KinoptError',
    'MalformedModelError',
    'DimensionMismatchError',
    'NumericalFailure',
    'ConfigurationError',
    'SolveOptions',
    'ObjectiveWeights',
    'TrajectoryMode',
    'KinematicTreeModel',
    'Joint',
    'JointKind',
    'Link',
    'JointState',
    'LinkTransformSet',
    'Pose',
    'Sphere',
    'Capsule',
    'Box',
    'Obstacle',
    'CollisionFilter',
    'CollisionGeometryStore',
    'ProximityEngine',
    'ConvexDistance',
    'ForwardKinematics',
    'compute',
    'PoseTarget',
    'ObjectiveComposer',
    'OptimizationDriver',
    'IKSolver',
    'TrajectorySolver',
    'Converged',
    'ConvergedInfeasible',
    'IterationLimitReached',
    'SolverError',
    'solve_ik',
    'solve_trajectory',
    'JointTrajectory'
]
