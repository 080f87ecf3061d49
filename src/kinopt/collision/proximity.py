"""
Proximity Engine
================

Pairwise signed distances between link shapes, and between links and
external obstacles, for one link transform set.
"""

import numpy as np
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence, Tuple
from dataclasses import dataclass
import threading
import logging

from .collision_filter import CollisionFilter
from .distance import ConvexDistance, DistancePrimitive, DistanceResult
from .geometry_store import CollisionGeometryStore
from .shapes import Obstacle

logger = logging.getLogger(__name__)

LINK_LINK = 0
LINK_OBSTACLE = 1


@dataclass(frozen=True, order=True)
class PairId:
    """
    Identity of a checked pair.

    Link-link pairs sort before link-obstacle pairs. For link-link pairs
    first < second are link indices; for link-obstacle pairs first is the
    link index and second the obstacle index.
    """
    category: int
    first: int
    second: int

    @property
    def is_obstacle_pair(self) -> bool:
        return self.category == LINK_OBSTACLE

    def __str__(self) -> str:
        kind = 'obstacle' if self.is_obstacle_pair else 'link'
        return f"link {self.first} / {kind} {self.second}"


@dataclass(frozen=True)
class ProximityResult:
    """
    Minimum signed distance of one pair.

    Attributes:
        pair_id: Identity of the pair
        distance: Signed distance (negative when penetrating)
        witness_points: Closest points (on the link, on the other link/obstacle)
    """
    pair_id: PairId
    distance: float
    witness_points: Tuple[np.ndarray, np.ndarray]


class ProximityEngine:
    """
    Distance queries over all unfiltered link pairs and (link, obstacle) pairs.

    The store, the filter and the distance primitive are read-only and shared
    by all worker threads; each pair is an independent unit of work and the
    results are ordered by pair id.
    """

    def __init__(self, store: CollisionGeometryStore,
                 collision_filter: Optional[CollisionFilter] = None,
                 primitive: Optional[DistancePrimitive] = None,
                 self_collision: bool = True,
                 parallel_threshold: int = 64,
                 max_workers: Optional[int] = None):
        """
        Initialize the proximity engine.

        Args:
            store: Collision geometry of the model
            collision_filter: Exempt link pairs (no exemptions if None)
            primitive: Distance capability (ConvexDistance if None)
            self_collision: Check link-link pairs
            parallel_threshold: Pair count from which queries run on a thread pool
            max_workers: Thread pool size (1 disables parallel evaluation)
        """
        self.store = store
        self.collision_filter = collision_filter or CollisionFilter(store.n_links)
        self.primitive = primitive or ConvexDistance()
        self.self_collision = self_collision
        self.parallel_threshold = parallel_threshold
        self.max_workers = max_workers
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

        geometric_links = store.links_with_geometry()
        self._geometric_links = geometric_links
        self._link_pairs = (
            [PairId(LINK_LINK, a, b) for a, b in self.collision_filter.unfiltered_pairs(geometric_links)]
            if self_collision else []
        )

        logger.debug(f"ProximityEngine tracks {len(self._link_pairs)} link pairs "
                     f"over {len(geometric_links)} links with geometry")

    @classmethod
    def from_model(cls, model, **kwargs) -> 'ProximityEngine':
        """Engine over a model's link shapes with its adjacency filter."""
        return cls(CollisionGeometryStore.from_model(model), CollisionFilter.from_model(model), **kwargs)

    def candidate_pairs(self, n_obstacles: int = 0) -> List[PairId]:
        """Pairs checked by min_distance, in output order."""
        obstacle_pairs = [PairId(LINK_OBSTACLE, link, k)
                          for link in self._geometric_links for k in range(n_obstacles)]
        return self._link_pairs + obstacle_pairs

    def min_distance(self, link_transforms, obstacles: Sequence[Obstacle] = ()) -> List[ProximityResult]:
        """
        Minimum signed distance of every checked pair.

        Args:
            link_transforms: LinkTransformSet of the configuration
            obstacles: World obstacles, treated as read-only

        Returns:
            One ProximityResult per pair, sorted by pair id
        """
        world = {link: self.store.world_shapes(link, link_transforms) for link in self._geometric_links}
        obstacle_shapes = [(o.shape, o.world_transform()) for o in obstacles]
        pairs = self.candidate_pairs(len(obstacle_shapes))

        def evaluate(pair_id: PairId) -> ProximityResult:
            others = obstacle_shapes[pair_id.second:pair_id.second + 1] \
                if pair_id.is_obstacle_pair else world[pair_id.second]
            return self._pair_distance(pair_id, world[pair_id.first], others)

        if len(pairs) >= self.parallel_threshold and self.max_workers != 1:
            results = list(self._get_executor().map(evaluate, pairs))
        else:
            results = [evaluate(pair_id) for pair_id in pairs]

        results.sort(key=lambda r: r.pair_id)
        return results

    def _get_executor(self) -> ThreadPoolExecutor:
        """Thread pool shared by all queries of this engine, created on first use."""
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=self.max_workers,
                                                    thread_name_prefix='proximity')
                logger.debug(f"Started proximity thread pool (max_workers={self.max_workers})")
            return self._executor

    def close(self):
        """Shut down the thread pool; a later parallel query starts a new one."""
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

    def __enter__(self) -> 'ProximityEngine':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _pair_distance(self, pair_id: PairId, shapes_a, shapes_b) -> ProximityResult:
        best: Optional[DistanceResult] = None
        for shape_a, pose_a in shapes_a:
            for shape_b, pose_b in shapes_b:
                result = self.primitive.distance(shape_a, pose_a, shape_b, pose_b)
                if best is None or result.distance < best.distance:
                    best = result
        return ProximityResult(pair_id, best.distance, (best.point_a, best.point_b))

    def minimum_clearance(self, link_transforms, obstacles: Sequence[Obstacle] = ()) -> float:
        """Smallest signed distance over all pairs (inf if nothing is checked)."""
        results = self.min_distance(link_transforms, obstacles)
        return min((r.distance for r in results), default=np.inf)

    def in_collision(self, link_transforms, obstacles: Sequence[Obstacle] = (),
                     margin: float = 0.0) -> bool:
        return self.minimum_clearance(link_transforms, obstacles) < margin

    def check_path_collision(self, model, path: Sequence, obstacles: Sequence[Obstacle] = (),
                             resolution: float = 0.05,
                             margin: float = 0.0) -> Tuple[bool, List[float]]:
        """
        Check a joint-space path by linear interpolation between waypoints.

        Args:
            model: KinematicTreeModel of the path
            path: Sequence of JointState or joint-value vectors
            obstacles: World obstacles
            resolution: Maximum joint-space step between checked configurations
            margin: Clearance below which a configuration counts as colliding

        Returns:
            Tuple of (has_collision, fractional path indices of colliding configurations)
        """
        waypoints = [np.asarray(getattr(p, 'values', p), dtype=float) for p in path]
        collision_points = []

        for i, start in enumerate(waypoints):
            if i + 1 < len(waypoints):
                end = waypoints[i + 1]
                n_steps = max(1, int(np.ceil(np.max(np.abs(end - start), initial=0.0) / resolution)))
            else:
                end, n_steps = start, 1

            # Last waypoint is checked once, intermediate ones as segment starts
            for step in range(n_steps):
                t = step / n_steps
                state = model.state(start + t * (end - start))
                if self.in_collision(state.link_transforms(), obstacles, margin):
                    collision_points.append(i + t)

        return len(collision_points) > 0, collision_points
