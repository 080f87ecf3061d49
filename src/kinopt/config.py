"""
Solve configuration for kinematic optimization.

This module provides the option records passed to the IK and trajectory
solvers, with validation and YAML persistence.
"""

import numpy as np
from typing import Dict, Any, List, Optional, Union
from dataclasses import dataclass, field, asdict, replace
from enum import Enum
import logging

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

SUPPORTED_OPTIMIZERS = ("L-BFGS-B", "SLSQP")


class TrajectoryMode(Enum):
    """How multi-waypoint problems are solved."""
    SEQUENTIAL = "sequential"
    JOINT = "joint"


@dataclass
class ObjectiveWeights:
    """
    Weights of the objective terms.

    position and orientation weight the squared position error and the
    squared rotation angle inside the pose term; the other weights scale
    whole terms.
    """
    position: float = 1.0
    orientation: float = 1.0
    collision: float = 100.0
    joint_limit: float = 100.0
    smoothness: float = 1e-4

    def __post_init__(self):
        self.validate()

    def validate(self) -> bool:
        for name, value in asdict(self).items():
            if not np.isfinite(value) or value < 0:
                raise ConfigurationError(f"Invalid {name} weight: {value}")
        return True

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    @classmethod
    def from_dict(cls, weights_dict: Dict[str, Any]) -> 'ObjectiveWeights':
        unknown = set(weights_dict) - set(cls.__dataclass_fields__)
        if unknown:
            raise ConfigurationError(f"Unknown objective weights: {sorted(unknown)}")
        return cls(**{k: float(v) for k, v in weights_dict.items()})


@dataclass
class SolveOptions:
    """
    Options of an IK or trajectory solve.

    Contains the objective weights and clearance margin, the optimization
    budgets, the multi-start policy and the trajectory mode.
    """

    # Objective
    margin: float = 0.05  # Minimum clearance distance
    weights: ObjectiveWeights = field(default_factory=ObjectiveWeights)
    self_collision: bool = True

    # Budgets
    iteration_budget: int = 200  # Per restart
    time_budget: Optional[float] = None  # Wall-clock seconds for the whole solve

    # Multi-start
    restart_count: int = 1
    seed: int = 0
    perturbation_scale: float = 0.5  # Std-dev of restart perturbations
    max_workers: Optional[int] = None

    # Trajectory
    mode: TrajectoryMode = TrajectoryMode.SEQUENTIAL

    # Feasibility
    feasibility_tolerance: float = 1e-6
    limit_gradient_tolerance: float = 1e-4
    limit_activity_tolerance: float = 1e-6

    # Numerical optimizer
    optimizer_method: str = "L-BFGS-B"
    convergence_tolerance: float = 1e-12
    gradient_tolerance: float = 1e-9
    finite_difference_step: float = 1e-6

    # Start configuration and locked DOFs (name or index -> value)
    initial_guess: Optional[List[float]] = None
    locked_dofs: Dict[Union[str, int], float] = field(default_factory=dict)

    def __post_init__(self):
        """Coerce nested records and validate."""
        if isinstance(self.weights, dict):
            self.weights = ObjectiveWeights.from_dict(self.weights)
        if not isinstance(self.mode, TrajectoryMode):
            try:
                self.mode = TrajectoryMode(self.mode)
            except ValueError:
                raise ConfigurationError(f"Invalid trajectory mode: {self.mode}")
        if self.initial_guess is not None:
            self.initial_guess = [float(v) for v in self.initial_guess]
        self.validate()

    def validate(self) -> bool:
        """
        Validate option values.

        Returns:
            bool: True if the options are valid

        Raises:
            ConfigurationError: If an option is invalid
        """
        if self.margin < 0:
            raise ConfigurationError(f"Invalid margin: {self.margin}")

        if self.iteration_budget <= 0:
            raise ConfigurationError(f"Invalid iteration budget: {self.iteration_budget}")

        if self.time_budget is not None and self.time_budget <= 0:
            raise ConfigurationError(f"Invalid time budget: {self.time_budget}")

        if self.restart_count < 1:
            raise ConfigurationError(f"Invalid restart count: {self.restart_count}")

        if self.perturbation_scale < 0:
            raise ConfigurationError(f"Invalid perturbation scale: {self.perturbation_scale}")

        if self.max_workers is not None and self.max_workers < 1:
            raise ConfigurationError(f"Invalid max workers: {self.max_workers}")

        for name in ('feasibility_tolerance', 'limit_gradient_tolerance', 'limit_activity_tolerance',
                     'convergence_tolerance', 'gradient_tolerance'):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"Invalid {name}: {getattr(self, name)}")

        if self.finite_difference_step <= 0:
            raise ConfigurationError(f"Invalid finite difference step: {self.finite_difference_step}")

        if self.optimizer_method not in SUPPORTED_OPTIMIZERS:
            raise ConfigurationError(f"Unsupported optimizer method: {self.optimizer_method}")

        self.weights.validate()
        logger.debug("Solve options validation passed")
        return True

    def replace(self, **changes) -> 'SolveOptions':
        """Copy of the options with some fields changed."""
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert options to a plain dictionary.

        Returns:
            Dict containing all option values
        """
        options_dict = asdict(self)
        options_dict['mode'] = self.mode.value
        options_dict['locked_dofs'] = dict(self.locked_dofs)
        return options_dict

    @classmethod
    def from_dict(cls, options_dict: Dict[str, Any]) -> 'SolveOptions':
        """
        Create options from a dictionary.

        Args:
            options_dict: Dictionary containing option values

        Returns:
            SolveOptions instance
        """
        unknown = set(options_dict) - set(cls.__dataclass_fields__)
        if unknown:
            raise ConfigurationError(f"Unknown solve options: {sorted(unknown)}")
        return cls(**options_dict)

    @classmethod
    def from_yaml(cls, yaml_path: str) -> 'SolveOptions':
        """
        Load options from a YAML file.

        Args:
            yaml_path: Path to YAML file

        Returns:
            SolveOptions instance
        """
        import yaml

        try:
            with open(yaml_path, 'r') as f:
                options_dict = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load solve options from {yaml_path}: {e}")
            raise

        return cls.from_dict(options_dict)

    def save_yaml(self, yaml_path: str):
        """
        Save options to a YAML file.

        Args:
            yaml_path: Path to save YAML file
        """
        import yaml

        try:
            with open(yaml_path, 'w') as f:
                yaml.safe_dump(self.to_dict(), f, default_flow_style=False, indent=2)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to save solve options to {yaml_path}: {e}")
            raise

        logger.info(f"Solve options saved to {yaml_path}")
