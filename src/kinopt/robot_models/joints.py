"""
Joints
======

Joint kinds as a closed set with per-kind DOF counts and motion transforms,
and the immutable Joint record connecting a parent link to a child link.
"""

import numpy as np
from typing import Dict, Any, Callable, Optional, Sequence, Tuple, Union
from dataclasses import dataclass, field
from enum import Enum
import logging

from .transforms import Pose, make_transform, rotation_matrix, rpy_matrix
from ..errors import MalformedModelError

logger = logging.getLogger(__name__)


class JointKind(Enum):
    """Supported joint kinds."""
    FIXED = "fixed"
    REVOLUTE = "revolute"
    PRISMATIC = "prismatic"
    CONTINUOUS = "continuous"
    PLANAR = "planar"
    FLOATING = "floating"

    @property
    def dof(self) -> int:
        return _KIND_DOF[self]

    @property
    def bounded(self) -> bool:
        """Whether joints of this kind may carry position limits."""
        return self not in (JointKind.CONTINUOUS, JointKind.FLOATING)

    @property
    def dof_suffixes(self) -> Tuple[str, ...]:
        return _KIND_SUFFIXES[self]


def _plane_basis(axis: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Orthonormal in-plane directions u, v with u x v == axis."""
    # For a z normal this gives u = x, v = y
    helper = np.array([0.0, 1.0, 0.0]) if abs(axis[1]) < 0.9 else np.array([0.0, 0.0, 1.0])
    u = np.cross(helper, axis)
    u /= np.linalg.norm(u)
    v = np.cross(axis, u)
    return u, v


def _fixed_motion(axis: np.ndarray, q: np.ndarray) -> np.ndarray:
    return np.eye(4)


def _revolute_motion(axis: np.ndarray, q: np.ndarray) -> np.ndarray:
    return make_transform(rotation_matrix(axis, q[0]))


def _prismatic_motion(axis: np.ndarray, q: np.ndarray) -> np.ndarray:
    return make_transform(translation=axis * q[0])


def _planar_motion(axis: np.ndarray, q: np.ndarray) -> np.ndarray:
    u, v = _plane_basis(axis)
    return make_transform(rotation_matrix(axis, q[2]), u * q[0] + v * q[1])


def _floating_motion(axis: np.ndarray, q: np.ndarray) -> np.ndarray:
    return make_transform(rpy_matrix(q[3], q[4], q[5]), q[:3])


_KIND_DOF = {
    JointKind.FIXED: 0,
    JointKind.REVOLUTE: 1,
    JointKind.PRISMATIC: 1,
    JointKind.CONTINUOUS: 1,
    JointKind.PLANAR: 3,
    JointKind.FLOATING: 6,
}

_KIND_SUFFIXES = {
    JointKind.FIXED: (),
    JointKind.REVOLUTE: ('',),
    JointKind.PRISMATIC: ('',),
    JointKind.CONTINUOUS: ('',),
    JointKind.PLANAR: ('x', 'y', 'theta'),
    JointKind.FLOATING: ('x', 'y', 'z', 'roll', 'pitch', 'yaw'),
}

_KIND_MOTION: Dict[JointKind, Callable[[np.ndarray, np.ndarray], np.ndarray]] = {
    JointKind.FIXED: _fixed_motion,
    JointKind.REVOLUTE: _revolute_motion,
    JointKind.PRISMATIC: _prismatic_motion,
    JointKind.CONTINUOUS: _revolute_motion,
    JointKind.PLANAR: _planar_motion,
    JointKind.FLOATING: _floating_motion,
}


def _limit_vector(limits: Union[None, float, Sequence[Optional[float]]],
                  dof: int, fill: float, name: str, side: str) -> np.ndarray:
    """Normalize a scalar/sequence limit (None entries unbounded) to a float vector."""
    if limits is None:
        return np.full(dof, fill)
    if np.isscalar(limits):
        limits = [limits]
    if len(limits) != dof:
        raise MalformedModelError(
            f"Joint '{name}' has {len(limits)} {side} limits for {dof} DOF"
        )
    return np.array([fill if value is None else float(value) for value in limits])


@dataclass(frozen=True, eq=False)
class Joint:
    """
    A joint connecting a parent link to a child link.

    Attributes:
        index: Position of the joint in the model's joint sequence
        name: Unique joint name
        kind: Joint kind (fixed, revolute, prismatic, continuous, planar, floating)
        parent_link: Parent link index (None only for a floating root joint)
        child_link: Child link index
        origin: Fixed transform from the parent link frame to the joint frame
        axis: Rotation/translation axis (plane normal for planar joints)
        lower_limits: Per-DOF lower limits (-inf where unbounded)
        upper_limits: Per-DOF upper limits (+inf where unbounded)
        declared_dof: DOF count stated by the model description, checked against the kind
    """
    index: int
    name: str
    kind: JointKind
    parent_link: Optional[int]
    child_link: int
    origin: np.ndarray = field(default_factory=lambda: np.eye(4))
    axis: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0, 1.0]))
    lower_limits: Any = None
    upper_limits: Any = None
    declared_dof: Optional[int] = None

    def __post_init__(self):
        """Normalize fields and validate kind-dependent fields."""
        try:
            kind = JointKind(self.kind) if not isinstance(self.kind, JointKind) else self.kind
        except ValueError:
            raise MalformedModelError(f"Joint '{self.name}' has unknown kind: {self.kind}")
        object.__setattr__(self, 'kind', kind)

        dof = kind.dof
        if self.declared_dof is not None and self.declared_dof != dof:
            raise MalformedModelError(
                f"Joint '{self.name}' declares {self.declared_dof} DOF but a {kind.value} joint has {dof}"
            )

        origin = self.origin.matrix if isinstance(self.origin, Pose) else self.origin
        origin = np.array(origin, dtype=float)
        if origin.shape != (4, 4):
            raise MalformedModelError(f"Joint '{self.name}' origin must be 4x4")

        axis = np.array(self.axis, dtype=float)
        norm = np.linalg.norm(axis)
        if axis.shape != (3,) or norm < 1e-12:
            raise MalformedModelError(f"Joint '{self.name}' has an invalid axis: {self.axis}")
        axis = axis / norm

        if not kind.bounded and (self.lower_limits is not None or self.upper_limits is not None):
            raise MalformedModelError(f"{kind.value.capitalize()} joint '{self.name}' cannot have limits")

        lower = _limit_vector(self.lower_limits, dof, -np.inf, self.name, 'lower')
        upper = _limit_vector(self.upper_limits, dof, np.inf, self.name, 'upper')
        if np.any(lower > upper):
            raise MalformedModelError(f"Joint '{self.name}' has lower limits above upper limits")

        for array in (origin, axis, lower, upper):
            array.setflags(write=False)
        object.__setattr__(self, 'origin', origin)
        object.__setattr__(self, 'axis', axis)
        object.__setattr__(self, 'lower_limits', lower)
        object.__setattr__(self, 'upper_limits', upper)

    @property
    def dof(self) -> int:
        return self.kind.dof

    @property
    def is_bounded(self) -> bool:
        """True if any DOF of the joint has a finite limit."""
        return bool(np.any(np.isfinite(self.lower_limits)) or np.any(np.isfinite(self.upper_limits)))

    def dof_names(self):
        """Names of the joint's DOFs as they appear in a joint-state layout."""
        return [self.name if not suffix else f"{self.name}_{suffix}" for suffix in self.kind.dof_suffixes]

    def motion_transform(self, values: np.ndarray) -> np.ndarray:
        """Kind-specific transform for the joint's DOF slice."""
        return _KIND_MOTION[self.kind](self.axis, values)

    def local_transform(self, values: np.ndarray) -> np.ndarray:
        """Transform from the parent link frame to the child link frame."""
        if self.kind is JointKind.FIXED:
            return self.origin
        return self.origin @ self.motion_transform(values)

    def to_dict(self, link_names: Optional[Sequence[str]] = None) -> Dict[str, Any]:
        """
        Convert the joint to a dictionary.

        Args:
            link_names: If given, links are referenced by name instead of index

        Returns:
            Dictionary accepted by Joint.from_dict
        """
        def link_ref(index):
            if index is None or link_names is None:
                return index
            return link_names[index]

        joint_dict = {
            'name': self.name,
            'kind': self.kind.value,
            'parent': link_ref(self.parent_link),
            'child': link_ref(self.child_link),
            'origin': Pose(self.origin).to_dict(),
            'axis': self.axis.tolist(),
        }
        if self.kind.bounded and self.is_bounded:
            joint_dict['limits'] = {
                'lower': [None if np.isinf(v) else float(v) for v in self.lower_limits],
                'upper': [None if np.isinf(v) else float(v) for v in self.upper_limits],
            }
        return joint_dict

    @classmethod
    def from_dict(cls, joint_dict: Dict[str, Any], index: int,
                  link_lookup: Optional[Callable[[Any], int]] = None) -> 'Joint':
        """
        Create a joint from a dictionary.

        Args:
            joint_dict: Joint description with name, kind, parent, child and
                optional origin, axis, limits and dof
            index: Index of the joint in the model
            link_lookup: Resolves link references (names) to indices

        Returns:
            Joint instance
        """
        lookup = link_lookup or (lambda ref: ref)
        parent = joint_dict.get('parent')
        limits = joint_dict.get('limits') or {}

        return cls(
            index=index,
            name=joint_dict['name'],
            kind=joint_dict.get('kind', 'fixed'),
            parent_link=None if parent is None else lookup(parent),
            child_link=lookup(joint_dict['child']),
            origin=Pose.from_dict(joint_dict.get('origin')).matrix,
            axis=joint_dict.get('axis', (0.0, 0.0, 1.0)),
            lower_limits=limits.get('lower'),
            upper_limits=limits.get('upper'),
            declared_dof=joint_dict.get('dof'),
        )
