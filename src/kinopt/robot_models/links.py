"""
Links
=====

Immutable link records holding the collision shapes of a rigid body.
"""

from typing import Dict, Any, Optional, Tuple
from dataclasses import dataclass


@dataclass(frozen=True, eq=False)
class Link:
    """
    A rigid body in the kinematic tree.

    Attributes:
        index: Position of the link in the model's link sequence
        name: Unique link name
        shapes: Convex collision shapes in the link frame
        parent_joint: Index of the joint whose child this link is (None for the root)
        visual_mesh: Optional visual mesh reference, not used for computation
    """
    index: int
    name: str
    shapes: Tuple[Any, ...] = ()
    parent_joint: Optional[int] = None
    visual_mesh: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'shapes', tuple(self.shapes))

    @property
    def has_geometry(self) -> bool:
        return len(self.shapes) > 0

    def to_dict(self) -> Dict[str, Any]:
        link_dict = {'name': self.name}
        if self.shapes:
            link_dict['shapes'] = [shape.to_dict() for shape in self.shapes]
        if self.visual_mesh is not None:
            link_dict['visual_mesh'] = self.visual_mesh
        return link_dict

    @classmethod
    def from_dict(cls, link_dict: Dict[str, Any], index: int) -> 'Link':
        """
        Create a link from a dictionary.

        Args:
            link_dict: Link description with name and optional shapes list
            index: Index of the link in the model

        Returns:
            Link instance
        """
        from ..collision.shapes import shape_from_dict

        return cls(
            index=index,
            name=link_dict['name'],
            shapes=tuple(shape_from_dict(s) for s in link_dict.get('shapes', ())),
            visual_mesh=link_dict.get('visual_mesh'),
        )
