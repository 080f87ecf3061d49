"""
Motion Planning Package
=======================

Forward kinematics, objective composition and collision-aware numerical
optimization of joint configurations for single poses and multi-waypoint
trajectories.

Classes:
--------
- ForwardKinematics: Forward kinematics and numerical Jacobians
- ObjectiveComposer: Weighted pose/collision/limit/smoothness objective
- OptimizationDriver: Multi-start local optimization with budgets
- IKSolver: Collision-aware inverse kinematics
- TrajectorySolver: Sequential and joint multi-waypoint solves
- ScipyOptimizer: scipy.optimize backend of the local minimizer
- JointTrajectory: Time-parameterized joint trajectory
"""

from .forward_kinematics import ForwardKinematics, compute, compute_jacobian
from .objectives import (ObjectiveComposer, ObjectiveTerm, PoseTarget, PoseErrorTerm,
                         CollisionTerm, JointLimitTerm, SmoothnessTerm,
                         collision_penalty, compose_ik_objective)
from .optimizers import NumericalOptimizer, ScipyOptimizer, OptimizerResult, OptimizerStatus
from .outcomes import Outcome, Converged, ConvergedInfeasible, IterationLimitReached, SolverError
from .inverse_kinematics import OptimizationDriver, IKSolver, solve_ik
from .trajectory_optimization import TrajectoryObjective, TrajectorySolver, solve_trajectory
from .utils import JointTrajectory

__all__ = [
    'ForwardKinematics',
    'compute',
    'compute_jacobian',
    'ObjectiveComposer',
    'ObjectiveTerm',
    'PoseTarget',
    'PoseErrorTerm',
    'CollisionTerm',
    'JointLimitTerm',
    'SmoothnessTerm',
    'collision_penalty',
    'compose_ik_objective',
    'NumericalOptimizer',
    'ScipyOptimizer',
    'OptimizerResult',
    'OptimizerStatus',
    'Outcome',
    'Converged',
    'ConvergedInfeasible',
    'IterationLimitReached',
    'SolverError',
    'OptimizationDriver',
    'IKSolver',
    'solve_ik',
    'TrajectoryObjective',
    'TrajectorySolver',
    'solve_trajectory',
    'JointTrajectory'
]
