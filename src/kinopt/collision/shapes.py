"""
Collision Shapes
================

Convex primitives attached to links (in the link frame) or placed in the
world as obstacles.
"""

import numpy as np
from abc import ABC, abstractmethod
from typing import Dict, Any, Optional
from dataclasses import dataclass, field

from ..robot_models.transforms import Pose


@dataclass(frozen=True, eq=False)
class Shape(ABC):
    """Base class of convex collision primitives."""

    def world_transform(self, frame: np.ndarray) -> np.ndarray:
        """World transform of the shape given the transform of its parent frame."""
        return frame @ self.offset.matrix

    @abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        """Plain dictionary accepted by shape_from_dict."""


@dataclass(frozen=True, eq=False)
class Sphere(Shape):
    """Sphere centered at the offset origin."""
    radius: float
    offset: Pose = field(default_factory=Pose.identity)

    def __post_init__(self):
        if self.radius < 0:
            raise ValueError(f"Invalid sphere radius: {self.radius}")

    @property
    def bounding_radius(self) -> float:
        return self.radius

    def to_dict(self) -> Dict[str, Any]:
        return {'type': 'sphere', 'radius': self.radius, 'offset': self.offset.to_dict()}


@dataclass(frozen=True, eq=False)
class Capsule(Shape):
    """
    Capsule: segment along the local z axis, centered at the offset origin,
    swept by a sphere.

    Attributes:
        radius: Sweep radius
        length: Length of the core segment (without the hemispherical caps)
        offset: Placement in the parent frame
    """
    radius: float
    length: float
    offset: Pose = field(default_factory=Pose.identity)

    def __post_init__(self):
        if self.radius < 0 or self.length < 0:
            raise ValueError(f"Invalid capsule dimensions: radius={self.radius}, length={self.length}")

    @property
    def bounding_radius(self) -> float:
        return self.radius + 0.5 * self.length

    def to_dict(self) -> Dict[str, Any]:
        return {'type': 'capsule', 'radius': self.radius, 'length': self.length,
                'offset': self.offset.to_dict()}


@dataclass(frozen=True, eq=False)
class Box(Shape):
    """Axis-aligned box in its own frame, centered at the offset origin."""
    half_extents: np.ndarray
    offset: Pose = field(default_factory=Pose.identity)

    def __post_init__(self):
        half_extents = np.array(self.half_extents, dtype=float)
        if half_extents.shape != (3,) or np.any(half_extents < 0):
            raise ValueError(f"Invalid box half extents: {self.half_extents}")
        half_extents.setflags(write=False)
        object.__setattr__(self, 'half_extents', half_extents)

    @property
    def bounding_radius(self) -> float:
        return float(np.linalg.norm(self.half_extents))

    def to_dict(self) -> Dict[str, Any]:
        return {'type': 'box', 'half_extents': self.half_extents.tolist(),
                'offset': self.offset.to_dict()}


def shape_from_dict(shape_dict: Dict[str, Any]) -> Shape:
    """
    Create a shape from a dictionary.

    Args:
        shape_dict: Dictionary with 'type' (sphere, capsule or box), the
            type's dimensions and an optional 'offset' pose

    Returns:
        Shape instance
    """
    shape_type = shape_dict.get('type')
    offset = Pose.from_dict(shape_dict.get('offset'))

    if shape_type == 'sphere':
        return Sphere(radius=float(shape_dict['radius']), offset=offset)
    elif shape_type == 'capsule':
        return Capsule(radius=float(shape_dict['radius']), length=float(shape_dict['length']), offset=offset)
    elif shape_type == 'box':
        if 'half_extents' in shape_dict:
            half_extents = shape_dict['half_extents']
        else:
            half_extents = 0.5 * np.asarray(shape_dict['size'], dtype=float)
        return Box(half_extents=half_extents, offset=offset)
    else:
        raise ValueError(f"Unknown shape type: {shape_type}")


@dataclass(frozen=True, eq=False)
class Obstacle:
    """
    A shape fixed in the world frame.

    Attributes:
        name: Obstacle name
        shape: Convex shape
        pose: World pose of the shape frame
    """
    name: str
    shape: Shape
    pose: Pose = field(default_factory=Pose.identity)

    def world_transform(self) -> np.ndarray:
        return self.shape.world_transform(self.pose.matrix)

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'shape': self.shape.to_dict(), 'pose': self.pose.to_dict()}

    @classmethod
    def from_dict(cls, obstacle_dict: Dict[str, Any], default_name: Optional[str] = None) -> 'Obstacle':
        return cls(
            name=obstacle_dict.get('name', default_name or 'obstacle'),
            shape=shape_from_dict(obstacle_dict['shape']),
            pose=Pose.from_dict(obstacle_dict.get('pose')),
        )

    @classmethod
    def sphere(cls, name: str, center, radius: float) -> 'Obstacle':
        """Convenience constructor for a spherical obstacle."""
        return cls(name=name, shape=Sphere(radius=radius), pose=Pose.from_position(center))
