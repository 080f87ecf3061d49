"""
Convex Distance Queries
=======================

Signed distance and witness points between two convex shapes placed in the
world. Consumers depend only on the DistancePrimitive interface; ConvexDistance
is the default implementation for spheres, capsules and boxes.
"""

import numpy as np
from abc import ABC, abstractmethod
from typing import Tuple
from dataclasses import dataclass

from scipy.optimize import minimize, minimize_scalar

from .shapes import Shape, Sphere, Capsule, Box


@dataclass(frozen=True)
class DistanceResult:
    """
    Result of a distance query.

    Attributes:
        distance: Signed distance (negative when penetrating)
        point_a: Witness point on shape a (world frame)
        point_b: Witness point on shape b (world frame)
    """
    distance: float
    point_a: np.ndarray
    point_b: np.ndarray

    def swapped(self) -> 'DistanceResult':
        return DistanceResult(self.distance, self.point_b, self.point_a)


class DistancePrimitive(ABC):
    """Interface of a convex-shape distance capability."""

    @abstractmethod
    def distance(self, shape_a: Shape, pose_a: np.ndarray,
                 shape_b: Shape, pose_b: np.ndarray) -> DistanceResult:
        """
        Signed distance between two shapes.

        Args:
            shape_a: First shape
            pose_a: World transform of the first shape's frame (offset applied)
            shape_b: Second shape
            pose_b: World transform of the second shape's frame (offset applied)

        Returns:
            DistanceResult with signed distance and world witness points
        """

    def __call__(self, shape_a, pose_a, shape_b, pose_b) -> DistanceResult:
        return self.distance(shape_a, pose_a, shape_b, pose_b)


def _segment(shape: Shape, pose: np.ndarray) -> Tuple[np.ndarray, np.ndarray, float]:
    """Core segment endpoints and sweep radius of a sphere or capsule."""
    center = pose[:3, 3]
    if isinstance(shape, Sphere):
        return center, center, shape.radius
    half = 0.5 * shape.length * pose[:3, 2]
    return center - half, center + half, shape.radius


def closest_points_segments(p1: np.ndarray, q1: np.ndarray,
                            p2: np.ndarray, q2: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Closest points between segments [p1, q1] and [p2, q2].

    Returns:
        Tuple of (point on first segment, point on second segment)
    """
    d1 = q1 - p1
    d2 = q2 - p2
    r = p1 - p2
    a = d1 @ d1
    e = d2 @ d2
    f = d2 @ r
    eps = 1e-12

    if a <= eps and e <= eps:
        return p1, p2

    if a <= eps:
        s = 0.0
        t = np.clip(f / e, 0.0, 1.0)
    else:
        c = d1 @ r
        if e <= eps:
            t = 0.0
            s = np.clip(-c / a, 0.0, 1.0)
        else:
            b = d1 @ d2
            denom = a * e - b * b
            s = np.clip((b * f - c * e) / denom, 0.0, 1.0) if denom > eps else 0.0
            t = (b * s + f) / e
            if t < 0.0:
                t = 0.0
                s = np.clip(-c / a, 0.0, 1.0)
            elif t > 1.0:
                t = 1.0
                s = np.clip((b - c) / a, 0.0, 1.0)

    return p1 + d1 * s, p2 + d2 * t


def _unit(vector: np.ndarray) -> np.ndarray:
    norm = np.linalg.norm(vector)
    if norm < 1e-12:
        return np.array([1.0, 0.0, 0.0])
    return vector / norm


def point_box_signed_distance(point: np.ndarray, half_extents: np.ndarray) -> float:
    """Signed distance from a point (box frame) to a centered box."""
    q = np.abs(point) - half_extents
    outside = np.linalg.norm(np.maximum(q, 0.0))
    inside = min(np.max(q), 0.0)
    return float(outside + inside)


def _box_surface_point(point: np.ndarray, half_extents: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Closest surface point of the box and the outward direction at the query point."""
    q = np.abs(point) - half_extents
    if np.any(q > 0.0):
        surface = np.clip(point, -half_extents, half_extents)
        return surface, _unit(point - surface)

    # Inside: push out through the nearest face
    axis = int(np.argmax(q))
    sign = 1.0 if point[axis] >= 0.0 else -1.0
    surface = point.copy()
    surface[axis] = sign * half_extents[axis]
    normal = np.zeros(3)
    normal[axis] = sign
    return surface, normal


class ConvexDistance(DistancePrimitive):
    """
    Default distance primitive.

    Sphere and capsule pairs are solved in closed form by segment-segment
    closest points. Pairs involving a box minimize the convex point-box
    signed distance along the other shape's core segment; box-box pairs
    solve the closest-point program over both boxes when separated and use
    the separating-axis overlap when penetrating.
    """

    def __init__(self, tolerance: float = 1e-9):
        self.tolerance = tolerance

    def distance(self, shape_a: Shape, pose_a: np.ndarray,
                 shape_b: Shape, pose_b: np.ndarray) -> DistanceResult:
        a_is_box = isinstance(shape_a, Box)
        b_is_box = isinstance(shape_b, Box)

        if not a_is_box and not b_is_box:
            return self._swept_swept(shape_a, pose_a, shape_b, pose_b)
        if a_is_box and b_is_box:
            return self._box_box(shape_a, pose_a, shape_b, pose_b)
        if a_is_box:
            return self._swept_box(shape_b, pose_b, shape_a, pose_a).swapped()
        return self._swept_box(shape_a, pose_a, shape_b, pose_b)

    def _check_swept(self, shape: Shape):
        if not isinstance(shape, (Sphere, Capsule)):
            raise TypeError(f"Unsupported shape type: {type(shape).__name__}")

    def _swept_swept(self, shape_a, pose_a, shape_b, pose_b) -> DistanceResult:
        self._check_swept(shape_a)
        self._check_swept(shape_b)
        p1, q1, r1 = _segment(shape_a, pose_a)
        p2, q2, r2 = _segment(shape_b, pose_b)

        c1, c2 = closest_points_segments(p1, q1, p2, q2)
        gap = c2 - c1
        n = _unit(gap)
        distance = float(np.linalg.norm(gap)) - r1 - r2
        return DistanceResult(distance, c1 + n * r1, c2 - n * r2)

    def _swept_box(self, shape, pose, box: Box, box_pose) -> DistanceResult:
        self._check_swept(shape)
        p, q, radius = _segment(shape, pose)

        # Work in the box frame
        R = box_pose[:3, :3]
        origin = box_pose[:3, 3]
        p_local = R.T @ (p - origin)
        q_local = R.T @ (q - origin)
        h = box.half_extents

        def sd(t):
            return point_box_signed_distance(p_local + t * (q_local - p_local), h)

        if np.allclose(p_local, q_local):
            t_best = 0.0
        else:
            # Signed distance to a convex set is convex along the segment
            result = minimize_scalar(sd, bounds=(0.0, 1.0), method='bounded',
                                     options={'xatol': self.tolerance})
            candidates = [(sd(0.0), 0.0), (sd(1.0), 1.0), (float(result.fun), float(result.x))]
            t_best = min(candidates)[1]

        point_local = p_local + t_best * (q_local - p_local)
        surface_local, normal_local = _box_surface_point(point_local, h)
        distance = point_box_signed_distance(point_local, h) - radius

        point_world = R @ point_local + origin
        normal_world = R @ normal_local
        return DistanceResult(float(distance), point_world - normal_world * radius,
                              R @ surface_local + origin)

    def _box_box(self, box_a: Box, pose_a, box_b: Box, pose_b) -> DistanceResult:
        Ra, ca, ha = pose_a[:3, :3], pose_a[:3, 3], box_a.half_extents
        Rb, cb, hb = pose_b[:3, :3], pose_b[:3, 3], box_b.half_extents

        # Separating-axis test over face normals and edge cross products
        axes = [Ra[:, i] for i in range(3)] + [Rb[:, i] for i in range(3)]
        axes += [np.cross(Ra[:, i], Rb[:, j]) for i in range(3) for j in range(3)]
        best_sep, best_axis = -np.inf, None
        for axis in axes:
            norm = np.linalg.norm(axis)
            if norm < 1e-9:
                continue
            axis = axis / norm
            ra = np.sum(ha * np.abs(Ra.T @ axis))
            rb = np.sum(hb * np.abs(Rb.T @ axis))
            sep = abs((cb - ca) @ axis) - ra - rb
            if sep > best_sep:
                best_sep, best_axis = sep, axis

        if best_sep <= 0.0:
            # Penetrating: minimum overlap along the best axis
            direction = best_axis if (cb - ca) @ best_axis >= 0.0 else -best_axis
            point_a = ca + Ra @ (ha * np.sign(Ra.T @ direction))
            point_b = cb - Rb @ (hb * np.sign(Rb.T @ direction))
            return DistanceResult(float(best_sep), point_a, point_b)

        # Separated: closest points via a bound-constrained convex program
        def objective(z):
            diff = (Ra @ z[:3] + ca) - (Rb @ z[3:] + cb)
            grad = np.concatenate([2.0 * Ra.T @ diff, -2.0 * Rb.T @ diff])
            return diff @ diff, grad

        z0 = np.concatenate([np.clip(Ra.T @ (cb - ca), -ha, ha), np.clip(Rb.T @ (ca - cb), -hb, hb)])
        bounds = [(-e, e) for e in ha] + [(-e, e) for e in hb]
        result = minimize(objective, z0, jac=True, method='L-BFGS-B', bounds=bounds,
                          options={'ftol': 1e-15, 'gtol': 1e-12, 'maxiter': 200})

        point_a = Ra @ result.x[:3] + ca
        point_b = Rb @ result.x[3:] + cb
        return DistanceResult(float(np.linalg.norm(point_b - point_a)), point_a, point_b)
