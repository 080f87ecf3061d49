"""
Collision Filter
================

Symmetric, reflexive set of link pairs that are never checked against each
other: links sharing a joint, explicitly excluded pairs and, optionally,
pairs found by sampling to be always or never in contact.
"""

import numpy as np
from typing import Iterable, FrozenSet, List, Optional, Tuple
import logging

logger = logging.getLogger(__name__)


def _key(link_a: int, link_b: int) -> Tuple[int, int]:
    return (link_a, link_b) if link_a <= link_b else (link_b, link_a)


class CollisionFilter:
    """
    Static "do not check" relation over link pairs.

    is_filtered(a, b) == is_filtered(b, a) for every pair, and a link is
    always filtered against itself.
    """

    def __init__(self, n_links: int, pairs: Iterable[Tuple[int, int]] = ()):
        """
        Initialize the filter.

        Args:
            n_links: Number of links in the model
            pairs: Exempt link index pairs (order irrelevant)
        """
        self.n_links = n_links
        keys = set()
        for a, b in pairs:
            if not (0 <= a < n_links and 0 <= b < n_links):
                raise ValueError(f"Link pair ({a}, {b}) out of range for {n_links} links")
            if a != b:
                keys.add(_key(int(a), int(b)))
        self._pairs: FrozenSet[Tuple[int, int]] = frozenset(keys)

    @classmethod
    def from_model(cls, model, extra_pairs: Iterable[Tuple] = (),
                   filter_adjacent: bool = True) -> 'CollisionFilter':
        """
        Build the filter of a kinematic tree model.

        Args:
            model: KinematicTreeModel
            extra_pairs: Additional link pairs (names or indices) to exempt
            filter_adjacent: Exempt parent/child links connected by a joint

        Returns:
            CollisionFilter instance
        """
        pairs = list(model.collision_exclusions)
        if filter_adjacent:
            pairs.extend(model.adjacent_link_pairs())
        pairs.extend((model.link_index(a), model.link_index(b)) for a, b in extra_pairs)
        return cls(model.n_links, pairs)

    @property
    def pairs(self) -> FrozenSet[Tuple[int, int]]:
        """Exempt pairs as (lower index, higher index)."""
        return self._pairs

    def is_filtered(self, link_a: int, link_b: int) -> bool:
        if link_a == link_b:
            return True
        return _key(link_a, link_b) in self._pairs

    def with_pairs(self, pairs: Iterable[Tuple[int, int]]) -> 'CollisionFilter':
        """New filter with additional exempt pairs."""
        return CollisionFilter(self.n_links, list(self._pairs) + list(pairs))

    def unfiltered_pairs(self, links: Optional[Iterable[int]] = None) -> List[Tuple[int, int]]:
        """All (a, b), a < b, of the given links that must be checked."""
        links = sorted(range(self.n_links) if links is None else links)
        return [(a, b) for i, a in enumerate(links) for b in links[i + 1:]
                if not self.is_filtered(a, b)]

    def __len__(self) -> int:
        return len(self._pairs)

    def __contains__(self, pair: Tuple[int, int]) -> bool:
        return self.is_filtered(*pair)

    def __repr__(self) -> str:
        return f"CollisionFilter(n_links={self.n_links}, exempt_pairs={len(self._pairs)})"


def calibrate_collision_filter(model, store, base_filter: Optional[CollisionFilter] = None,
                               n_samples: int = 1000,
                               always_colliding_ratio: float = 0.99,
                               filter_never_colliding: bool = False,
                               min_samples_for_never: int = 1000,
                               seed: Optional[int] = 0) -> CollisionFilter:
    """
    Extend a collision filter by sampling random configurations.

    Pairs in contact in at least always_colliding_ratio of the samples are
    structurally overlapping and get exempted. With filter_never_colliding,
    pairs that are never in contact are exempted too, but only once at
    least min_samples_for_never samples have been drawn.

    Args:
        model: KinematicTreeModel
        store: CollisionGeometryStore of the model
        base_filter: Filter to extend (adjacency filter of the model if None)
        n_samples: Number of random configurations
        always_colliding_ratio: Contact frequency above which a pair is exempted
        filter_never_colliding: Also exempt pairs never found in contact
        min_samples_for_never: Minimum samples required to exempt never-colliding pairs
        seed: Seed of the sampling generator

    Returns:
        Calibrated CollisionFilter
    """
    from .proximity import ProximityEngine

    if n_samples <= 0:
        raise ValueError(f"Invalid sample count: {n_samples}")

    base_filter = base_filter or CollisionFilter.from_model(model)
    engine = ProximityEngine(store, base_filter, max_workers=1)
    rng = np.random.default_rng(seed)

    contact_counts = {}
    for _ in range(n_samples):
        transforms = model.sample_state(rng).link_transforms()
        for result in engine.min_distance(transforms):
            pair = (result.pair_id.first, result.pair_id.second)
            contact_counts[pair] = contact_counts.get(pair, 0) + int(result.distance < 0.0)

    exempt = [pair for pair, count in contact_counts.items()
              if count / n_samples >= always_colliding_ratio]

    if filter_never_colliding:
        if n_samples >= min_samples_for_never:
            exempt.extend(pair for pair, count in contact_counts.items() if count == 0)
        else:
            logger.warning(f"Not filtering never-colliding pairs with only {n_samples} samples "
                           f"(need {min_samples_for_never})")

    logger.info(f"Collision filter calibration exempted {len(exempt)} of {len(contact_counts)} link pairs")
    return base_filter.with_pairs(exempt)
