"""
Kinematic Tree Model
====================

Static description of a robot as a single-rooted tree of links and joints.
Links and joints live in flat tuples and refer to each other by index; the
joint traversal order and the DOF layout of joint-state vectors are fixed
at construction.
"""

import heapq
import numpy as np
from collections import deque
from dataclasses import replace
from typing import Dict, Any, List, Optional, Sequence, Tuple, Union
import logging

from .joints import Joint, JointKind
from .links import Link
from ..errors import MalformedModelError, DimensionMismatchError

logger = logging.getLogger(__name__)

LinkRef = Union[int, str, Link]
JointRef = Union[int, str, Joint]


class KinematicTreeModel:
    """
    Immutable kinematic tree.

    Validates the link/joint graph on construction and precomputes a stable
    topological joint order (input order is kept when it is already
    parent-before-child) together with contiguous DOF ranges.
    """

    def __init__(self, links: Sequence[Link], joints: Sequence[Joint],
                 name: str = "robot",
                 collision_exclusions: Sequence[Tuple[LinkRef, LinkRef]] = ()):
        """
        Initialize and validate the model.

        Args:
            links: Links, link.index must equal its position
            joints: Joints, joint.index must equal its position
            name: Robot name
            collision_exclusions: Link pairs never checked for self-collision

        Raises:
            MalformedModelError: If the links and joints do not form a single tree
        """
        self.name = name
        links = tuple(links)
        joints = tuple(joints)

        if not links:
            raise MalformedModelError("Model must contain at least one link")

        self._validate_indices(links, joints)
        self._link_by_name = {link.name: link.index for link in links}
        self._joint_by_name = {joint.name: joint.index for joint in joints}

        # Parent joint of every link
        parent_joint = [None] * len(links)
        for joint in joints:
            if parent_joint[joint.child_link] is not None:
                other = joints[parent_joint[joint.child_link]].name
                raise MalformedModelError(
                    f"Link '{links[joint.child_link].name}' has multiple parent joints: "
                    f"'{other}' and '{joint.name}'"
                )
            parent_joint[joint.child_link] = joint.index

        roots = [i for i in range(len(links))
                 if parent_joint[i] is None or joints[parent_joint[i]].parent_link is None]
        if len(roots) != 1:
            names = [links[i].name for i in roots]
            raise MalformedModelError(f"Model must have exactly one root link, found {len(roots)}: {names}")
        self._root = roots[0]

        for link, parent in zip(links, parent_joint):
            if link.parent_joint is not None and link.parent_joint != parent:
                raise MalformedModelError(
                    f"Link '{link.name}' declares parent joint {link.parent_joint}, but joint graph gives {parent}"
                )
        self._links = tuple(replace(link, parent_joint=parent) for link, parent in zip(links, parent_joint))
        self._joints = joints

        self._children = [[] for _ in links]
        for joint in joints:
            if joint.parent_link is not None:
                self._children[joint.parent_link].append(joint.child_link)

        self._joint_order = self._topological_order()

        # Contiguous DOF layout along the traversal order
        self._dof_start = [0] * len(joints)
        offset = 0
        for joint in self._joint_order:
            self._dof_start[joint.index] = offset
            offset += joint.dof
        self._dof_count = offset
        self._joint_slices = tuple(
            (joint, slice(self._dof_start[joint.index], self._dof_start[joint.index] + joint.dof))
            for joint in self._joint_order
        )

        self._lower = np.concatenate([j.lower_limits for j in self._joint_order] or [np.zeros(0)])
        self._upper = np.concatenate([j.upper_limits for j in self._joint_order] or [np.zeros(0)])
        self._lower.setflags(write=False)
        self._upper.setflags(write=False)
        self._dof_names = tuple(n for j in self._joint_order for n in j.dof_names())

        try:
            self.collision_exclusions = tuple(
                (self.link_index(a), self.link_index(b)) for a, b in collision_exclusions
            )
        except KeyError as e:
            raise MalformedModelError(f"Invalid collision exclusion: {e}") from e

        logger.info(f"Initialized KinematicTreeModel '{name}' with {len(links)} links, "
                    f"{len(joints)} joints and {self._dof_count} DOF")

    @staticmethod
    def _validate_indices(links: Tuple[Link, ...], joints: Tuple[Joint, ...]):
        """Check index/position agreement, name uniqueness and link references."""
        for position, link in enumerate(links):
            if link.index != position:
                raise MalformedModelError(f"Link '{link.name}' has index {link.index} at position {position}")
        for position, joint in enumerate(joints):
            if joint.index != position:
                raise MalformedModelError(f"Joint '{joint.name}' has index {joint.index} at position {position}")

        for kind, items in (('link', links), ('joint', joints)):
            seen = set()
            for item in items:
                if item.name in seen:
                    raise MalformedModelError(f"Duplicate {kind} name: '{item.name}'")
                seen.add(item.name)

        n_links = len(links)
        for joint in joints:
            if not 0 <= joint.child_link < n_links:
                raise MalformedModelError(f"Joint '{joint.name}' refers to unknown child link {joint.child_link}")
            if joint.parent_link is None:
                if joint.kind is not JointKind.FLOATING:
                    raise MalformedModelError(f"Joint '{joint.name}' has no parent link but is not a floating joint")
                continue
            if not 0 <= joint.parent_link < n_links:
                raise MalformedModelError(f"Joint '{joint.name}' refers to unknown parent link {joint.parent_link}")
            if joint.parent_link == joint.child_link:
                raise MalformedModelError(f"Joint '{joint.name}' connects link {joint.child_link} to itself")

    def _topological_order(self) -> Tuple[Joint, ...]:
        """Kahn's algorithm keyed on the joint index for a stable order."""
        # A floating root joint places the root, so it precedes the root's outgoing joints
        ready = [joint.index for joint in self._joints if joint.parent_link is None]
        if not ready:
            ready = [joint.index for joint in self._joints if joint.parent_link == self._root]
        heapq.heapify(ready)

        order = []
        while ready:
            joint = self._joints[heapq.heappop(ready)]
            order.append(joint)
            for child_joint in self._joints:
                if child_joint.parent_link == joint.child_link:
                    heapq.heappush(ready, child_joint.index)

        if len(order) != len(self._joints):
            reached = {self._root} | {j.child_link for j in order}
            stranded = [link.name for link in self._links if link.index not in reached]
            raise MalformedModelError(f"Kinematic graph contains a cycle; unreachable links: {stranded}")

        return tuple(order)

    # Structure

    @property
    def links(self) -> Tuple[Link, ...]:
        return self._links

    @property
    def joints(self) -> Tuple[Joint, ...]:
        return self._joints

    @property
    def n_links(self) -> int:
        return len(self._links)

    @property
    def n_joints(self) -> int:
        return len(self._joints)

    @property
    def root_link(self) -> Link:
        return self._links[self._root]

    @property
    def root_joint(self) -> Optional[Joint]:
        """Floating joint placing the root link, if any."""
        parent = self._links[self._root].parent_joint
        return None if parent is None else self._joints[parent]

    def dof_count(self) -> int:
        return self._dof_count

    def joint_order(self) -> Tuple[Joint, ...]:
        """Joints in parent-before-child traversal order."""
        return self._joint_order

    def joint_slices(self) -> Tuple[Tuple[Joint, slice], ...]:
        """(joint, DOF slice) pairs in traversal order."""
        return self._joint_slices

    def dof_range(self, joint: JointRef) -> range:
        """Positions of a joint's DOFs in a joint-state vector."""
        index = self.joint_index(joint)
        start = self._dof_start[index]
        return range(start, start + self._joints[index].dof)

    def dof_names(self) -> Tuple[str, ...]:
        return self._dof_names

    def dof_index(self, dof: Union[int, str]) -> int:
        """Resolve a DOF name or position to its position in the state vector."""
        if isinstance(dof, (int, np.integer)):
            if not 0 <= dof < self._dof_count:
                raise KeyError(f"DOF index {dof} out of range for {self._dof_count} DOF")
            return int(dof)
        try:
            return self._dof_names.index(dof)
        except ValueError:
            raise KeyError(f"Unknown DOF: '{dof}'")

    # Lookup

    def link_index(self, link: LinkRef) -> int:
        if isinstance(link, Link):
            return link.index
        if isinstance(link, str):
            if link not in self._link_by_name:
                raise KeyError(f"Unknown link: '{link}'")
            return self._link_by_name[link]
        if not 0 <= link < len(self._links):
            raise KeyError(f"Link index {link} out of range")
        return int(link)

    def joint_index(self, joint: JointRef) -> int:
        if isinstance(joint, Joint):
            return joint.index
        if isinstance(joint, str):
            if joint not in self._joint_by_name:
                raise KeyError(f"Unknown joint: '{joint}'")
            return self._joint_by_name[joint]
        if not 0 <= joint < len(self._joints):
            raise KeyError(f"Joint index {joint} out of range")
        return int(joint)

    def link(self, link: LinkRef) -> Link:
        return self._links[self.link_index(link)]

    def joint(self, joint: JointRef) -> Joint:
        return self._joints[self.joint_index(joint)]

    # Tree queries

    def parent_link_of(self, link: LinkRef) -> Optional[int]:
        parent = self.link(link).parent_joint
        return None if parent is None else self._joints[parent].parent_link

    def children_of(self, link: LinkRef) -> Tuple[int, ...]:
        return tuple(self._children[self.link_index(link)])

    def traversal_layers(self) -> List[List[int]]:
        """Breadth-first layers of link indices starting at the root."""
        layers = [[self._root]]
        while True:
            next_layer = [child for link in layers[-1] for child in self._children[link]]
            if not next_layer:
                return layers
            layers.append(next_layer)

    def link_chain(self, start: LinkRef, end: LinkRef) -> Optional[List[int]]:
        """
        Links on the path from start down to end.

        Returns:
            Link indices from start to end inclusive, or None if end is not
            downstream of start
        """
        start = self.link_index(start)
        chain = [self.link_index(end)]
        while chain[-1] != start:
            parent = self.parent_link_of(chain[-1])
            if parent is None:
                return None
            chain.append(parent)
        return chain[::-1]

    def downstream_links(self, link: LinkRef) -> List[int]:
        """All descendants of a link (the link itself excluded)."""
        queue = deque(self._children[self.link_index(link)])
        result = []
        while queue:
            current = queue.popleft()
            result.append(current)
            queue.extend(self._children[current])
        return result

    def adjacent_link_pairs(self) -> List[Tuple[int, int]]:
        """(parent, child) link pairs connected by a joint."""
        return [(j.parent_link, j.child_link) for j in self._joints if j.parent_link is not None]

    # Limits and states

    def lower_limits(self) -> np.ndarray:
        return self._lower

    def upper_limits(self) -> np.ndarray:
        return self._upper

    def bounds(self) -> List[Tuple[Optional[float], Optional[float]]]:
        """Per-DOF (lower, upper) bounds with None where unbounded."""
        return [(None if np.isinf(lo) else float(lo), None if np.isinf(hi) else float(hi))
                for lo, hi in zip(self._lower, self._upper)]

    def clip_to_limits(self, values: Sequence[float]) -> np.ndarray:
        values = self._check_length(values)
        return np.clip(values, self._lower, self._upper)

    def state(self, values: Sequence[float]):
        """Wrap values as a JointState of this model."""
        from .state import JointState
        return JointState(self, values)

    def zero_state(self):
        """All-zero configuration."""
        return self.state(np.zeros(self._dof_count))

    def mid_state(self):
        """Midpoint of the limits (zero clipped into one-sided limits)."""
        values = np.where(np.isfinite(self._lower) & np.isfinite(self._upper),
                          0.5 * (self._lower + self._upper), 0.0)
        return self.state(np.clip(values, self._lower, self._upper))

    def sample_state(self, rng: Optional[np.random.Generator] = None,
                     unbounded_range: float = np.pi):
        """
        Uniformly sample a configuration inside the limits.

        Args:
            rng: Random generator (a fresh default generator if None)
            unbounded_range: Half-width of the sampling interval for unbounded DOFs

        Returns:
            JointState sample
        """
        rng = rng if rng is not None else np.random.default_rng()
        lower = np.where(np.isfinite(self._lower), self._lower, -unbounded_range)
        upper = np.where(np.isfinite(self._upper), self._upper, unbounded_range)
        lower = np.minimum(lower, upper)
        return self.state(rng.uniform(lower, upper))

    def _check_length(self, values: Sequence[float]) -> np.ndarray:
        values = np.asarray(values, dtype=float)
        if values.ndim != 1 or values.shape[0] != self._dof_count:
            raise DimensionMismatchError(self._dof_count, values.size)
        return values

    # Serialization

    def to_dict(self) -> Dict[str, Any]:
        """Convert the model to a dictionary (links referenced by name)."""
        link_names = [link.name for link in self._links]
        model_dict = {
            'name': self.name,
            'links': [link.to_dict() for link in self._links],
            'joints': [joint.to_dict(link_names) for joint in self._joints],
        }
        if self.collision_exclusions:
            model_dict['collision_exclusions'] = [
                [link_names[a], link_names[b]] for a, b in self.collision_exclusions
            ]
        return model_dict

    @classmethod
    def from_dict(cls, model_dict: Dict[str, Any]) -> 'KinematicTreeModel':
        """
        Create a model from an already-parsed robot description.

        Args:
            model_dict: Dictionary with 'links', 'joints' and optional
                'name' and 'collision_exclusions'

        Returns:
            KinematicTreeModel instance
        """
        links = [Link.from_dict(link, i) for i, link in enumerate(model_dict.get('links', ()))]
        names = {link.name: link.index for link in links}

        def lookup(ref):
            if isinstance(ref, str):
                if ref not in names:
                    raise MalformedModelError(f"Joint refers to unknown link: '{ref}'")
                return names[ref]
            return int(ref)

        joints = [Joint.from_dict(joint, i, lookup) for i, joint in enumerate(model_dict.get('joints', ()))]

        return cls(links, joints,
                   name=model_dict.get('name', 'robot'),
                   collision_exclusions=[tuple(p) for p in model_dict.get('collision_exclusions', ())])

    def __repr__(self) -> str:
        return f"KinematicTreeModel(name={self.name!r}, links={self.n_links}, dof={self._dof_count})"
