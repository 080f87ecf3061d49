"""
Rigid Transforms
================

Homogeneous SE(3) helpers and the Pose value type used throughout the
kinematic model, the collision layer and the objective terms.
"""

import numpy as np
from typing import Dict, Any, Optional, Sequence, Tuple, Union
from dataclasses import dataclass
import logging

from scipy.spatial.transform import Rotation, Slerp

logger = logging.getLogger(__name__)

ArrayLike = Union[Sequence[float], np.ndarray]


def rotation_matrix(axis: np.ndarray, angle: float) -> np.ndarray:
    """
    Rotation matrix about a unit axis (Rodrigues' formula).

    Args:
        axis: Unit rotation axis [x, y, z]
        angle: Rotation angle in radians

    Returns:
        3x3 rotation matrix
    """
    x, y, z = axis
    c = np.cos(angle)
    s = np.sin(angle)
    t = 1.0 - c

    return np.array([
        [t * x * x + c,     t * x * y - s * z, t * x * z + s * y],
        [t * x * y + s * z, t * y * y + c,     t * y * z - s * x],
        [t * x * z - s * y, t * y * z + s * x, t * z * z + c]
    ])


def rpy_matrix(roll: float, pitch: float, yaw: float) -> np.ndarray:
    """Rotation matrix from roll/pitch/yaw (R = Rz(yaw) @ Ry(pitch) @ Rx(roll))."""
    cr, sr = np.cos(roll), np.sin(roll)
    cp, sp = np.cos(pitch), np.sin(pitch)
    cy, sy = np.cos(yaw), np.sin(yaw)

    return np.array([
        [cy * cp, cy * sp * sr - sy * cr, cy * sp * cr + sy * sr],
        [sy * cp, sy * sp * sr + cy * cr, sy * sp * cr - cy * sr],
        [-sp,     cp * sr,                cp * cr]
    ])


def make_transform(rotation: Optional[np.ndarray] = None,
                   translation: Optional[ArrayLike] = None) -> np.ndarray:
    """Assemble a 4x4 homogeneous transform from a rotation and a translation."""
    T = np.eye(4)
    if rotation is not None:
        T[:3, :3] = rotation
    if translation is not None:
        T[:3, 3] = translation
    return T


def invert_transform(T: np.ndarray) -> np.ndarray:
    """Inverse of a rigid transform without a general matrix inverse."""
    R = T[:3, :3]
    inv = np.eye(4)
    inv[:3, :3] = R.T
    inv[:3, 3] = -R.T @ T[:3, 3]
    return inv


def rotation_angle(R: np.ndarray) -> float:
    """Angle of a rotation matrix in [0, pi]."""
    cos_angle = 0.5 * (np.trace(R) - 1.0)
    if cos_angle > 0.999:
        # arccos loses precision near identity
        return float(Rotation.from_matrix(R).magnitude())
    return float(np.arccos(np.clip(cos_angle, -1.0, 1.0)))


def angle_between(R_a: np.ndarray, R_b: np.ndarray) -> float:
    """Geodesic distance between two rotations (angle of R_a^T R_b)."""
    return rotation_angle(R_a.T @ R_b)


def interpolate_transforms(T_a: np.ndarray, T_b: np.ndarray, t: float) -> np.ndarray:
    """Linear interpolation of translation and slerp of rotation."""
    rotations = Rotation.from_matrix(np.stack([T_a[:3, :3], T_b[:3, :3]]))
    slerp = Slerp([0.0, 1.0], rotations)
    rotation = slerp([t]).as_matrix()[0]
    translation = (1.0 - t) * T_a[:3, 3] + t * T_b[:3, 3]
    return make_transform(rotation, translation)


@dataclass
class Pose:
    """
    Rigid pose in 3D as a homogeneous transformation matrix.

    Attributes:
        matrix: 4x4 transformation matrix
    """
    matrix: np.ndarray

    def __post_init__(self):
        """Validate and take an owned copy of the matrix."""
        self.matrix = np.array(self.matrix, dtype=float)
        if self.matrix.shape != (4, 4):
            raise ValueError(f"Transformation matrix must be 4x4, got {self.matrix.shape}")

    @property
    def position(self) -> np.ndarray:
        return self.matrix[:3, 3]

    @property
    def rotation(self) -> np.ndarray:
        return self.matrix[:3, :3]

    @property
    def quaternion(self) -> np.ndarray:
        """Orientation as a quaternion [x, y, z, w]."""
        return Rotation.from_matrix(self.rotation).as_quat()

    @property
    def rpy(self) -> np.ndarray:
        """Orientation as [roll, pitch, yaw] (ZYX convention)."""
        return Rotation.from_matrix(self.rotation).as_euler('ZYX')[::-1]

    @classmethod
    def identity(cls) -> 'Pose':
        return cls(np.eye(4))

    @classmethod
    def from_position(cls, position: ArrayLike,
                      rotation: Optional[np.ndarray] = None) -> 'Pose':
        """Build a pose from a position and an optional 3x3 rotation."""
        return cls(make_transform(rotation, np.asarray(position, dtype=float)))

    @classmethod
    def from_xyz_rpy(cls, xyz: ArrayLike = (0.0, 0.0, 0.0),
                     rpy: ArrayLike = (0.0, 0.0, 0.0)) -> 'Pose':
        """Build a pose from a translation and roll/pitch/yaw angles."""
        return cls(make_transform(rpy_matrix(*rpy), np.asarray(xyz, dtype=float)))

    @classmethod
    def from_dict(cls, pose_dict: Optional[Dict[str, Any]]) -> 'Pose':
        """
        Create a pose from a dictionary.

        Recognized keys are ``position`` plus one of ``rpy``,
        ``quaternion`` ([x, y, z, w]) or ``rotation`` (3x3 nested list).

        Args:
            pose_dict: Pose description, or None for identity

        Returns:
            Pose instance
        """
        if pose_dict is None:
            return cls.identity()

        position = pose_dict.get('position', (0.0, 0.0, 0.0))
        if 'rotation' in pose_dict:
            rotation = np.asarray(pose_dict['rotation'], dtype=float)
        elif 'quaternion' in pose_dict:
            rotation = Rotation.from_quat(pose_dict['quaternion']).as_matrix()
        else:
            rotation = rpy_matrix(*pose_dict.get('rpy', (0.0, 0.0, 0.0)))

        return cls.from_position(position, rotation)

    def to_dict(self) -> Dict[str, Any]:
        return {'position': self.position.tolist(), 'quaternion': self.quaternion.tolist()}

    def inverse(self) -> 'Pose':
        return Pose(invert_transform(self.matrix))

    def __matmul__(self, other: 'Pose') -> 'Pose':
        return Pose(self.matrix @ other.matrix)

    def transform_point(self, point: ArrayLike) -> np.ndarray:
        return self.rotation @ np.asarray(point, dtype=float) + self.position

    def distance_to(self, other: 'Pose') -> Tuple[float, float]:
        """
        Position and orientation distance to another pose.

        Returns:
            Tuple of (euclidean position distance, geodesic angle in radians)
        """
        position_error = float(np.linalg.norm(other.position - self.position))
        return position_error, angle_between(self.rotation, other.rotation)

    def interpolate(self, other: 'Pose', t: float) -> 'Pose':
        """Interpolate towards another pose (t=0 gives self, t=1 gives other)."""
        return Pose(interpolate_transforms(self.matrix, other.matrix, t))
