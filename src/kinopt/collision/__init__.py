"""
Collision Package
=================

Convex collision geometry, self-collision filtering and proximity queries
over robot links and world obstacles.

Classes:
--------
- Sphere, Capsule, Box: Convex collision primitives
- Obstacle: Shape fixed in the world frame
- DistancePrimitive: Interface of a convex distance capability
- ConvexDistance: Default distance primitive
- CollisionFilter: Symmetric "do not check" relation over link pairs
- CollisionGeometryStore: Per-link collision shapes
- ProximityEngine: Pairwise signed distances for a link transform set
"""

from .shapes import Shape, Sphere, Capsule, Box, Obstacle, shape_from_dict
from .distance import DistancePrimitive, ConvexDistance, DistanceResult
from .collision_filter import CollisionFilter, calibrate_collision_filter
from .geometry_store import CollisionGeometryStore
from .proximity import ProximityEngine, ProximityResult, PairId

__all__ = [
    'Shape',
    'Sphere',
    'Capsule',
    'Box',
    'Obstacle',
    'shape_from_dict',
    'DistancePrimitive',
    'ConvexDistance',
    'DistanceResult',
    'CollisionFilter',
    'calibrate_collision_filter',
    'CollisionGeometryStore',
    'ProximityEngine',
    'ProximityResult',
    'PairId'
]
