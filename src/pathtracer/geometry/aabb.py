"""Axis-aligned bounding boxes.

The host-side :class:`AABB` is used while building the scene: every primitive
reports one, the BVH builder unions them, and the flattened tree uploads
their corners into Taichi fields. :func:`hit_aabb` is the slab test run
against those corners during traversal.

Example:
    >>> a = AABB.from_points([(0, 0, 0), (1, 1, 1)])
    >>> b = AABB((2, 0, 0), (3, 1, 1))
    >>> a.union(b).extent
    array([3., 1., 1.])
"""

from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from ..errors import ConstructionError

vec3 = tm.vec3

# Minimum extent per axis. Flat primitives (quads, points) are padded to this
# so the slab test never divides a zero-width interval.
AABB_PADDING = 1e-4


@dataclass(frozen=True, eq=False)
class AABB:
    """Axis-aligned bounding box with ``minimum <= maximum`` on every axis.

    Attributes:
        minimum: Lower corner as a float64 array of shape (3,).
        maximum: Upper corner as a float64 array of shape (3,).

    Raises:
        ConstructionError: If a corner is not finite or min exceeds max.
    """

    minimum: npt.NDArray[np.float64]
    maximum: npt.NDArray[np.float64]

    def __init__(self, minimum: Sequence[float], maximum: Sequence[float]):
        lo = np.asarray(minimum, dtype=np.float64).reshape(3)
        hi = np.asarray(maximum, dtype=np.float64).reshape(3)
        if not (np.all(np.isfinite(lo)) and np.all(np.isfinite(hi))):
            raise ConstructionError(f"AABB corners must be finite, got {lo} / {hi}")
        if np.any(lo > hi):
            raise ConstructionError(f"AABB minimum {lo} exceeds maximum {hi}")
        object.__setattr__(self, "minimum", lo)
        object.__setattr__(self, "maximum", hi)

    @classmethod
    def from_points(cls, points: Iterable[Sequence[float]]) -> "AABB":
        """Smallest box containing every point."""
        pts = np.asarray(list(points), dtype=np.float64).reshape(-1, 3)
        if pts.shape[0] == 0:
            raise ConstructionError("Cannot bound an empty point set")
        return cls(pts.min(axis=0), pts.max(axis=0))

    @property
    def extent(self) -> npt.NDArray[np.float64]:
        return self.maximum - self.minimum

    @property
    def centroid(self) -> npt.NDArray[np.float64]:
        return 0.5 * (self.minimum + self.maximum)

    @property
    def corners(self) -> npt.NDArray[np.float64]:
        """The eight corners as an (8, 3) array."""
        lo, hi = self.minimum, self.maximum
        return np.array(
            [
                [x, y, z]
                for x in (lo[0], hi[0])
                for y in (lo[1], hi[1])
                for z in (lo[2], hi[2])
            ]
        )

    def union(self, other: "AABB") -> "AABB":
        """Smallest box enclosing both boxes."""
        return AABB(
            np.minimum(self.minimum, other.minimum),
            np.maximum(self.maximum, other.maximum),
        )

    def contains(self, other: "AABB") -> bool:
        return bool(
            np.all(self.minimum <= other.minimum)
            and np.all(self.maximum >= other.maximum)
        )

    def longest_axis(self) -> int:
        """Index of the axis with the largest extent (ties pick the lowest)."""
        return int(np.argmax(self.extent))

    def surface_area(self) -> float:
        d = self.extent
        return float(2.0 * (d[0] * d[1] + d[0] * d[2] + d[1] * d[2]))

    def padded(self, epsilon: float = AABB_PADDING) -> "AABB":
        """Grow every axis thinner than ``epsilon`` symmetrically to ``epsilon``."""
        extent = self.extent
        grow = np.where(extent < epsilon, 0.5 * (epsilon - extent), 0.0)
        return AABB(self.minimum - grow, self.maximum + grow)

    def transformed(self, matrix: npt.ArrayLike, offset: npt.ArrayLike) -> "AABB":
        """Bound this box after the affine map ``p -> matrix @ p + offset``."""
        m = np.asarray(matrix, dtype=np.float64)
        pts = self.corners @ m.T + np.asarray(offset, dtype=np.float64)
        return AABB.from_points(pts)

    def __repr__(self) -> str:
        return f"AABB(min={self.minimum.tolist()}, max={self.maximum.tolist()})"


def surrounding_box(boxes: Iterable[AABB]) -> AABB:
    """Union of a non-empty collection of boxes."""
    it = iter(boxes)
    try:
        result = next(it)
    except StopIteration:
        raise ConstructionError("Cannot bound an empty collection of boxes") from None
    for box in it:
        result = result.union(box)
    return result


@ti.func
def hit_aabb(
    box_min: vec3,
    box_max: vec3,
    ray_origin: vec3,
    inv_direction: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
) -> ti.i32:
    """Slab test of a ray against a box.

    Args:
        box_min: Lower corner of the box.
        box_max: Upper corner of the box.
        ray_origin: Ray origin.
        inv_direction: Componentwise reciprocal of the ray direction
            (see :func:`pathtracer.core.ray.safe_inverse`).
        t_min: Lower bound of the ray interval.
        t_max: Upper bound of the ray interval.

    Returns:
        1 if the ray overlaps the box anywhere in [t_min, t_max], else 0.
    """
    t_enter = t_min
    t_exit = t_max
    for a in ti.static(range(3)):
        t0 = (box_min[a] - ray_origin[a]) * inv_direction[a]
        t1 = (box_max[a] - ray_origin[a]) * inv_direction[a]
        t_enter = ti.max(t_enter, ti.min(t0, t1))
        t_exit = ti.min(t_exit, ti.max(t0, t1))
    return t_enter <= t_exit
