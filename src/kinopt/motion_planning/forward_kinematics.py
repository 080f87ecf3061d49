"""
Forward Kinematics Implementation
=================================

Propagates a joint configuration through the kinematic tree into
world-frame link transforms, plus numerical Jacobians of link poses.
"""

import numpy as np
from typing import Sequence, Union
import logging

from scipy.spatial.transform import Rotation

from ..errors import DimensionMismatchError
from ..robot_models.model import KinematicTreeModel
from ..robot_models.state import JointState, LinkTransformSet
from ..robot_models.transforms import Pose

logger = logging.getLogger(__name__)


def _joint_values(model: KinematicTreeModel,
                  joint_state: Union[JointState, Sequence[float]]) -> np.ndarray:
    """Owned float copy of the joint values, length-checked against the model."""
    values = getattr(joint_state, 'values', joint_state)
    values = np.array(values, dtype=float)
    if values.ndim != 1 or values.shape[0] != model.dof_count():
        raise DimensionMismatchError(model.dof_count(), values.size)
    return values


def compute(model: KinematicTreeModel,
            joint_state: Union[JointState, Sequence[float]]) -> LinkTransformSet:
    """
    World transforms of all links for a joint configuration.

    Joints are visited in topological order; a child link's transform is
    the parent link's transform composed with the joint origin and the
    joint's motion for its DOF slice. The root link sits at the identity
    unless a floating root joint places it.

    Args:
        model: Kinematic tree model
        joint_state: JointState or vector of length model.dof_count()

    Returns:
        LinkTransformSet paired with the joint values it was computed from

    Raises:
        DimensionMismatchError: If the vector length does not match the model
    """
    values = _joint_values(model, joint_state)

    transforms = np.empty((model.n_links, 4, 4))
    transforms[model.root_link.index] = np.eye(4)

    for joint, dofs in model.joint_slices():
        local = joint.local_transform(values[dofs])
        if joint.parent_link is None:
            transforms[joint.child_link] = local
        else:
            transforms[joint.child_link] = transforms[joint.parent_link] @ local

    return LinkTransformSet(values, transforms, tuple(link.name for link in model.links))


def compute_jacobian(model: KinematicTreeModel,
                     joint_state: Union[JointState, Sequence[float]],
                     link: Union[int, str],
                     step: float = 1e-6) -> np.ndarray:
    """
    Numerical geometric Jacobian of a link frame.

    Args:
        model: Kinematic tree model
        joint_state: Configuration at which to differentiate
        link: Link index or name
        step: Central-difference step

    Returns:
        6 x n Jacobian (rows 0-2 linear velocity, rows 3-5 angular velocity, world frame)
    """
    values = _joint_values(model, joint_state)
    index = model.link_index(link)
    jacobian = np.zeros((6, values.shape[0]))

    for i in range(values.shape[0]):
        plus = values.copy()
        minus = values.copy()
        plus[i] += step
        minus[i] -= step
        T_plus = compute(model, plus)[index]
        T_minus = compute(model, minus)[index]

        jacobian[:3, i] = (T_plus[:3, 3] - T_minus[:3, 3]) / (2 * step)
        R_delta = T_plus[:3, :3] @ T_minus[:3, :3].T
        jacobian[3:, i] = Rotation.from_matrix(R_delta).as_rotvec() / (2 * step)

    return jacobian


class ForwardKinematics:
    """
    Forward kinematics bound to one kinematic tree model.

    Thin stateful facade over compute() for callers that repeatedly query
    the same model; it holds no per-configuration cache.
    """

    def __init__(self, model: KinematicTreeModel):
        """
        Initialize forward kinematics solver.

        Args:
            model: Kinematic tree model
        """
        self.model = model
        self.num_joints = model.dof_count()

        logger.info(f"Initialized ForwardKinematics for {self.num_joints}-DOF robot '{model.name}'")

    def forward_kinematics(self, joint_state: Union[JointState, Sequence[float]]) -> LinkTransformSet:
        return compute(self.model, joint_state)

    def link_pose(self, joint_state: Union[JointState, Sequence[float]],
                  link: Union[int, str]) -> Pose:
        """World pose of a single link."""
        return compute(self.model, joint_state).pose(self.model.link_index(link))

    def compute_jacobian(self, joint_state: Union[JointState, Sequence[float]],
                         link: Union[int, str], step: float = 1e-6) -> np.ndarray:
        return compute_jacobian(self.model, joint_state, link, step)

    def manipulability(self, joint_state: Union[JointState, Sequence[float]],
                       link: Union[int, str]) -> float:
        """Yoshikawa manipulability measure sqrt(det(J J^T))."""
        J = self.compute_jacobian(joint_state, link)
        # Redundant arms use J J^T, arms with fewer than 6 DOF use J^T J
        gram = J @ J.T if J.shape[1] >= J.shape[0] else J.T @ J
        return float(np.sqrt(max(np.linalg.det(gram), 0.0)))
