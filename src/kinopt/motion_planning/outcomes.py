"""
Solve Outcomes
==============

Every solve returns exactly one of these values. Infeasible results are
outcomes, not exceptions.
"""

from typing import Tuple
from dataclasses import dataclass

from ..robot_models.state import JointState


@dataclass(frozen=True, eq=False)
class Outcome:
    """Base class of solve outcomes."""

    @property
    def feasible(self) -> bool:
        return False


@dataclass(frozen=True, eq=False)
class Converged(Outcome):
    """Optimizer converged and every constraint term is within tolerance."""
    joint_state: JointState
    cost: float

    @property
    def feasible(self) -> bool:
        return True


@dataclass(frozen=True, eq=False)
class ConvergedInfeasible(Outcome):
    """Optimizer converged but some constraint terms are violated."""
    joint_state: JointState
    cost: float
    violated_terms: Tuple[str, ...]


@dataclass(frozen=True, eq=False)
class IterationLimitReached(Outcome):
    """Iteration or wall-clock budget exhausted; holds the best state seen."""
    joint_state: JointState
    cost: float
    violated_terms: Tuple[str, ...] = ()

    @property
    def feasible(self) -> bool:
        return not self.violated_terms


@dataclass(frozen=True, eq=False)
class SolverError(Outcome):
    """Numerical failure with no usable candidate."""
    reason: str
