"""
Collision Geometry Store
========================

Per-link collision shapes of a model, expressed in link frames and placed
in the world with a link transform set.
"""

import numpy as np
from typing import List, Sequence, Tuple, Union

from .shapes import Shape


class CollisionGeometryStore:
    """Read-only mapping from links to their convex collision shapes."""

    def __init__(self, shapes_by_link: Sequence[Sequence[Shape]],
                 link_names: Sequence[str] = ()):
        self._shapes = tuple(tuple(shapes) for shapes in shapes_by_link)
        self.link_names = tuple(link_names) or tuple(f"link_{i}" for i in range(len(self._shapes)))
        if len(self.link_names) != len(self._shapes):
            raise ValueError("Link names must match the number of links")

    @classmethod
    def from_model(cls, model) -> 'CollisionGeometryStore':
        return cls([link.shapes for link in model.links], [link.name for link in model.links])

    @property
    def n_links(self) -> int:
        return len(self._shapes)

    def _index(self, link: Union[int, str]) -> int:
        if isinstance(link, str):
            try:
                return self.link_names.index(link)
            except ValueError:
                raise KeyError(f"Unknown link: '{link}'")
        return int(link)

    def shapes_for(self, link: Union[int, str]) -> Tuple[Shape, ...]:
        return self._shapes[self._index(link)]

    def has_geometry(self, link: Union[int, str]) -> bool:
        return len(self.shapes_for(link)) > 0

    def links_with_geometry(self) -> List[int]:
        return [i for i, shapes in enumerate(self._shapes) if shapes]

    def world_shapes(self, link: Union[int, str], link_transforms) -> List[Tuple[Shape, np.ndarray]]:
        """
        Shapes of a link with their world transforms.

        Args:
            link: Link index or name
            link_transforms: LinkTransformSet (or [n_links, 4, 4] array)

        Returns:
            List of (shape, 4x4 world transform)
        """
        index = self._index(link)
        frame = link_transforms[index]
        return [(shape, shape.world_transform(frame)) for shape in self._shapes[index]]
