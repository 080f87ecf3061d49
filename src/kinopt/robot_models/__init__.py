"""
Robot Models Package
====================

Kinematic tree representation of a robot: links, joints, the validated
tree model with its DOF layout, and joint-state vectors.

Classes:
--------
- KinematicTreeModel: Immutable single-rooted tree of links and joints
- Joint: Joint record with kind-specific motion transform
- JointKind: Closed set of joint kinds
- Link: Rigid body with collision shapes
- JointState: Joint-configuration vector with cached link transforms
- LinkTransformSet: World-frame link transforms of one configuration
- Pose: Rigid SE(3) pose
"""

from .transforms import Pose
from .joints import Joint, JointKind
from .links import Link
from .model import KinematicTreeModel
from .state import JointState, LinkTransformSet

__all__ = [
    'Pose',
    'Joint',
    'JointKind',
    'Link',
    'KinematicTreeModel',
    'JointState',
    'LinkTransformSet'
]
