"""
Motion Planning Utilities
=========================

Post-processing of solved waypoint sequences into time-parameterized
joint trajectories.
"""

import numpy as np
from typing import Dict, Any, List, Optional, Sequence
from dataclasses import dataclass
import logging

from scipy.interpolate import interp1d, CubicSpline

from .outcomes import Outcome, SolverError

logger = logging.getLogger(__name__)


@dataclass
class JointTrajectory:
    """
    Joint space trajectory representation.

    Attributes:
        positions: Joint positions [n_points, n_joints]
        timestamps: Time stamps [n_points]
        joint_names: Names of the DOFs
        metadata: Additional trajectory metadata
    """
    positions: np.ndarray
    timestamps: Optional[np.ndarray] = None
    joint_names: Optional[List[str]] = None
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        """Initialize default values and validate."""
        self.positions = np.atleast_2d(np.asarray(self.positions, dtype=float))
        n_points, n_joints = self.positions.shape

        if self.timestamps is None:
            self.timestamps = np.linspace(0, 1, n_points)
        self.timestamps = np.asarray(self.timestamps, dtype=float)
        if self.timestamps.shape != (n_points,):
            raise ValueError("Timestamps must match the number of trajectory points")

        if self.joint_names is None:
            self.joint_names = [f'joint_{i+1}' for i in range(n_joints)]

        if self.metadata is None:
            self.metadata = {}

    @classmethod
    def from_outcomes(cls, outcomes: Sequence[Outcome], joint_names: Optional[Sequence[str]] = None,
                      duration: float = 1.0,
                      start: Optional[Sequence[float]] = None) -> 'JointTrajectory':
        """
        Build a trajectory from per-waypoint solve outcomes.

        Args:
            outcomes: Outcomes of solve_trajectory, in waypoint order
            joint_names: DOF names (e.g. model.dof_names())
            duration: Total duration, waypoints are spaced uniformly
            start: Optional start configuration prepended at t=0

        Returns:
            JointTrajectory instance

        Raises:
            ValueError: If any outcome carries no joint state
        """
        failed = [i for i, o in enumerate(outcomes) if isinstance(o, SolverError)]
        if failed:
            raise ValueError(f"Waypoints without a solution: {failed}")

        positions = [o.joint_state.as_array() for o in outcomes]
        if start is not None:
            positions.insert(0, np.asarray(start, dtype=float))

        return cls(
            positions=np.array(positions),
            timestamps=np.linspace(0.0, duration, len(positions)),
            joint_names=list(joint_names) if joint_names is not None else None,
            metadata={'feasible': all(o.feasible for o in outcomes),
                      'outcomes': [type(o).__name__ for o in outcomes]}
        )

    def get_duration(self) -> float:
        """Get trajectory duration."""
        return float(self.timestamps[-1] - self.timestamps[0])

    def get_joint_index(self, joint_name: str) -> int:
        """Get index of joint by name."""
        try:
            return self.joint_names.index(joint_name)
        except ValueError:
            raise ValueError(f"Joint '{joint_name}' not found in trajectory")

    def velocities(self) -> np.ndarray:
        """Finite-difference joint velocities [n_points, n_joints]."""
        if len(self.timestamps) < 2:
            return np.zeros_like(self.positions)
        return np.gradient(self.positions, self.timestamps, axis=0)

    def max_joint_step(self) -> float:
        """Largest per-DOF change between consecutive points."""
        if len(self.positions) < 2:
            return 0.0
        return float(np.max(np.abs(np.diff(self.positions, axis=0))))

    def interpolate(self, new_timestamps: np.ndarray, method: str = 'cubic') -> 'JointTrajectory':
        """
        Resample the trajectory at new time stamps.

        Args:
            new_timestamps: Time stamps inside the trajectory's time range
            method: 'linear' or 'cubic'

        Returns:
            Interpolated JointTrajectory
        """
        new_timestamps = np.asarray(new_timestamps, dtype=float)

        if method == 'linear' or len(self.timestamps) < 3:
            f_pos = interp1d(self.timestamps, self.positions, kind='linear', axis=0)
        elif method == 'cubic':
            f_pos = CubicSpline(self.timestamps, self.positions, axis=0)
        else:
            raise ValueError(f"Unknown interpolation method: {method}")

        return JointTrajectory(
            positions=f_pos(new_timestamps),
            timestamps=new_timestamps,
            joint_names=list(self.joint_names),
            metadata={**self.metadata, 'interpolation': method}
        )

    def resample(self, num_points: int, method: str = 'cubic') -> 'JointTrajectory':
        """Resample at num_points uniformly spaced time stamps."""
        return self.interpolate(np.linspace(self.timestamps[0], self.timestamps[-1], num_points), method)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'positions': self.positions.tolist(),
            'timestamps': self.timestamps.tolist(),
            'joint_names': list(self.joint_names),
            'metadata': dict(self.metadata),
        }
