"""
Joint State
===========

Joint-configuration vectors bound to a model, and the world-frame link
transforms derived from them. A JointState owns a read-only copy of its
values and caches its LinkTransformSet, so the two always travel as one
versioned pair; new values always mean a new JointState.
"""

import numpy as np
from typing import Any, Optional, Sequence, Tuple, Union
from dataclasses import dataclass

from .transforms import Pose
from ..errors import DimensionMismatchError


@dataclass(frozen=True, eq=False)
class LinkTransformSet:
    """
    World-frame transforms of every link for one joint configuration.

    Attributes:
        joint_values: Joint values the transforms were computed from
        transforms: Link transforms [n_links, 4, 4]
        link_names: Link names, aligned with the first axis of transforms
    """
    joint_values: np.ndarray
    transforms: np.ndarray
    link_names: Tuple[str, ...]

    def __post_init__(self):
        self.joint_values.setflags(write=False)
        self.transforms.setflags(write=False)

    def _index(self, link: Union[int, str]) -> int:
        if isinstance(link, str):
            try:
                return self.link_names.index(link)
            except ValueError:
                raise KeyError(f"Unknown link: '{link}'")
        if hasattr(link, 'index') and hasattr(link, 'name'):
            return link.index
        return int(link)

    def __getitem__(self, link: Union[int, str]) -> np.ndarray:
        return self.transforms[self._index(link)]

    def __len__(self) -> int:
        return len(self.link_names)

    def pose(self, link: Union[int, str]) -> Pose:
        return Pose(self[link])

    def position(self, link: Union[int, str]) -> np.ndarray:
        return self[link][:3, 3]

    def rotation(self, link: Union[int, str]) -> np.ndarray:
        return self[link][:3, :3]

    def matches(self, values: Sequence[float]) -> bool:
        """True if these transforms were computed from exactly these values."""
        return np.array_equal(self.joint_values, np.asarray(values, dtype=float))


class JointState:
    """
    Joint-configuration vector of a kinematic tree model.

    Supports addition and subtraction with states of the same model and
    multiplication by a scalar; each produces a new state.
    """

    __slots__ = ('_model', '_values', '_transforms')

    def __init__(self, model: Any, values: Sequence[float]):
        """
        Initialize the joint state.

        Args:
            model: KinematicTreeModel the values belong to
            values: Joint values, length must equal model.dof_count()

        Raises:
            DimensionMismatchError: If the length does not match the model
        """
        array = np.array(values, dtype=float)
        if array.ndim != 1 or array.shape[0] != model.dof_count():
            raise DimensionMismatchError(model.dof_count(), array.size)
        array.setflags(write=False)

        self._model = model
        self._values = array
        self._transforms: Optional[LinkTransformSet] = None

    @property
    def model(self):
        return self._model

    @property
    def values(self) -> np.ndarray:
        """Read-only joint values."""
        return self._values

    def as_array(self) -> np.ndarray:
        """Writable copy of the joint values."""
        return self._values.copy()

    def joint_values(self, joint) -> np.ndarray:
        """Values of a single joint's DOFs."""
        dofs = self._model.dof_range(joint)
        return self._values[dofs.start:dofs.stop]

    def link_transforms(self) -> LinkTransformSet:
        """World-frame link transforms, computed on first access."""
        if self._transforms is None:
            from ..motion_planning.forward_kinematics import compute
            self._transforms = compute(self._model, self._values)
        return self._transforms

    def with_values(self, values: Sequence[float]) -> 'JointState':
        return JointState(self._model, values)

    def _other_values(self, other: 'JointState') -> np.ndarray:
        if not isinstance(other, JointState):
            return NotImplemented
        if other._model is not self._model:
            raise ValueError("Joint states belong to different models")
        return other._values

    def __add__(self, other: 'JointState') -> 'JointState':
        values = self._other_values(other)
        if values is NotImplemented:
            return NotImplemented
        return JointState(self._model, self._values + values)

    def __sub__(self, other: 'JointState') -> 'JointState':
        values = self._other_values(other)
        if values is NotImplemented:
            return NotImplemented
        return JointState(self._model, self._values - values)

    def __mul__(self, scalar: float) -> 'JointState':
        if not np.isscalar(scalar):
            return NotImplemented
        return JointState(self._model, self._values * float(scalar))

    __rmul__ = __mul__

    def __len__(self) -> int:
        return self._values.shape[0]

    def __array__(self, dtype=None, copy=None):
        return self._values.astype(dtype) if dtype is not None else self._values.copy()

    def __eq__(self, other) -> bool:
        if not isinstance(other, JointState):
            return NotImplemented
        return other._model is self._model and np.array_equal(other._values, self._values)

    __hash__ = None

    def __repr__(self) -> str:
        return f"JointState({np.array2string(self._values, precision=4)})"
