"""Bounding volume hierarchy.

The tree is built once on the host from the primitives' bounding boxes,
flattened depth-first into numpy arrays, and uploaded into Taichi fields
that the scene intersection routine walks during rendering.

Construction (median split):
    1. Bound the centroids of the current primitive set.
    2. Split along the longest axis of that centroid box.
    3. Sort by centroid on that axis (stable; ties keep primitive order).
    4. Split the sorted list at its midpoint and recurse.
    5. Stop when a set holds at most ``MAX_LEAF_SIZE`` primitives.

Every internal node's box is the exact union of its children's boxes and
every leaf's box is the union of its primitives' boxes. Leaves refer to
primitives by index into the scene's primitive table.

Example:
    >>> boxes = [AABB((i, 0, 0), (i + 1, 1, 1)) for i in range(5)]
    >>> root = build_bvh(boxes)
    >>> sorted(root.primitive_indices())
    [0, 1, 2, 3, 4]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, Sequence

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from ..errors import ConstructionError, ResourceExhaustionError
from .aabb import AABB, AABB_PADDING

logger = logging.getLogger(__name__)

vec3 = tm.vec3

# Maximum primitives in a leaf
MAX_LEAF_SIZE = 2

# Maximum number of primitives and nodes the device tables hold
MAX_BVH_PRIMITIVES = 4096
MAX_BVH_NODES = 2 * MAX_BVH_PRIMITIVES

# Traversal stack depth. A median-split tree over MAX_BVH_PRIMITIVES
# primitives is about 12 levels deep.
BVH_STACK_SIZE = 64


@dataclass(eq=False)
class BVHNode:
    """Node of the host-side hierarchy.

    A node is either internal (``left`` and ``right`` set) or a leaf
    (``primitives`` non-empty). The tree owns its nodes; leaf entries are
    indices into the scene primitive list.

    Attributes:
        bbox: Box enclosing the whole subtree.
        left: First child, or None for a leaf.
        right: Second child, or None for a leaf.
        primitives: Primitive indices held by a leaf.
        axis: Split axis used to order the children (0, 1 or 2).
    """

    bbox: AABB
    left: BVHNode | None = None
    right: BVHNode | None = None
    primitives: tuple[int, ...] = ()
    axis: int = 0

    @property
    def is_leaf(self) -> bool:
        return self.left is None

    def bounding_box(self, time0: float = 0.0, time1: float = 1.0) -> AABB:
        """Box enclosing the subtree (independent of the time range)."""
        return self.bbox

    def primitive_indices(self) -> Iterator[int]:
        """Yield every primitive index in depth-first order."""
        if self.is_leaf:
            yield from self.primitives
        else:
            yield from self.left.primitive_indices()
            yield from self.right.primitive_indices()

    def depth(self) -> int:
        if self.is_leaf:
            return 1
        return 1 + max(self.left.depth(), self.right.depth())

    def node_count(self) -> int:
        if self.is_leaf:
            return 1
        return 1 + self.left.node_count() + self.right.node_count()

    def iter_nodes(self) -> Iterator[BVHNode]:
        """Yield nodes in depth-first preorder."""
        yield self
        if not self.is_leaf:
            yield from self.left.iter_nodes()
            yield from self.right.iter_nodes()


def build_bvh(boxes: Sequence[AABB]) -> BVHNode | None:
    """Build a hierarchy over primitive bounding boxes.

    Args:
        boxes: One bounding box per primitive; the primitive index is the
            position in this sequence.

    Returns:
        The root node, or None for an empty sequence.

    Raises:
        ConstructionError: If any box is not finite.
    """
    if len(boxes) == 0:
        return None

    padded = [box.padded(AABB_PADDING) for box in boxes]
    centroids = np.array([box.centroid for box in padded], dtype=np.float64)
    if not np.all(np.isfinite(centroids)):
        raise ConstructionError("Primitive bounding boxes must be finite")

    return _build_recursive(padded, centroids, list(range(len(padded))))


def _build_recursive(
    boxes: list[AABB], centroids: npt.NDArray[np.float64], indices: list[int]
) -> BVHNode:
    bbox = boxes[indices[0]]
    for i in indices[1:]:
        bbox = bbox.union(boxes[i])

    if len(indices) <= MAX_LEAF_SIZE:
        return BVHNode(bbox=bbox, primitives=tuple(indices))

    pts = centroids[indices]
    axis = int(np.argmax(pts.max(axis=0) - pts.min(axis=0)))

    # Stable sort so equal centroids keep primitive order
    order = np.argsort(pts[:, axis], kind="stable")
    ordered = [indices[k] for k in order]
    mid = len(ordered) // 2

    left = _build_recursive(boxes, centroids, ordered[:mid])
    right = _build_recursive(boxes, centroids, ordered[mid:])
    return BVHNode(bbox=bbox, left=left, right=right, axis=axis)


@dataclass
class FlatBVH:
    """Depth-first array layout of a hierarchy.

    Node 0 is the root. Internal nodes have ``prim_count == 0`` and valid
    ``left``/``right``; leaves have ``left == right == -1`` and own the range
    ``leaf_primitives[prim_start : prim_start + prim_count]``.
    """

    bbox_min: npt.NDArray[np.float32]
    bbox_max: npt.NDArray[np.float32]
    left: npt.NDArray[np.int32]
    right: npt.NDArray[np.int32]
    axis: npt.NDArray[np.int32]
    prim_start: npt.NDArray[np.int32]
    prim_count: npt.NDArray[np.int32]
    leaf_primitives: npt.NDArray[np.int32]

    @property
    def node_count(self) -> int:
        return len(self.left)


def _round_outward(lo: npt.NDArray, hi: npt.NDArray):
    """Convert corners to float32 without shrinking the box."""
    lo32 = lo.astype(np.float32)
    hi32 = hi.astype(np.float32)
    lo32 = np.where(lo32 > lo, np.nextafter(lo32, np.float32(-np.inf)), lo32)
    hi32 = np.where(hi32 < hi, np.nextafter(hi32, np.float32(np.inf)), hi32)
    return lo32, hi32


def flatten_bvh(root: BVHNode | None) -> FlatBVH:
    """Flatten a hierarchy into depth-first preorder arrays."""
    nodes = [] if root is None else list(root.iter_nodes())
    n = len(nodes)
    index_of = {id(node): i for i, node in enumerate(nodes)}

    flat = FlatBVH(
        bbox_min=np.zeros((n, 3), dtype=np.float32),
        bbox_max=np.zeros((n, 3), dtype=np.float32),
        left=-np.ones(n, dtype=np.int32),
        right=-np.ones(n, dtype=np.int32),
        axis=np.zeros(n, dtype=np.int32),
        prim_start=np.zeros(n, dtype=np.int32),
        prim_count=np.zeros(n, dtype=np.int32),
        leaf_primitives=np.zeros(0, dtype=np.int32),
    )

    leaf_prims: list[int] = []
    for i, node in enumerate(nodes):
        flat.bbox_min[i], flat.bbox_max[i] = _round_outward(
            node.bbox.minimum, node.bbox.maximum
        )
        flat.axis[i] = node.axis
        if node.is_leaf:
            flat.prim_start[i] = len(leaf_prims)
            flat.prim_count[i] = len(node.primitives)
            leaf_prims.extend(node.primitives)
        else:
            flat.left[i] = index_of[id(node.left)]
            flat.right[i] = index_of[id(node.right)]

    flat.leaf_primitives = np.asarray(leaf_prims, dtype=np.int32)
    return flat


# =============================================================================
# Device tables
# =============================================================================

bvh_bbox_min = ti.Vector.field(3, dtype=ti.f32, shape=MAX_BVH_NODES)
bvh_bbox_max = ti.Vector.field(3, dtype=ti.f32, shape=MAX_BVH_NODES)
bvh_left = ti.field(dtype=ti.i32, shape=MAX_BVH_NODES)
bvh_right = ti.field(dtype=ti.i32, shape=MAX_BVH_NODES)
bvh_axis = ti.field(dtype=ti.i32, shape=MAX_BVH_NODES)
bvh_prim_start = ti.field(dtype=ti.i32, shape=MAX_BVH_NODES)
bvh_prim_count = ti.field(dtype=ti.i32, shape=MAX_BVH_NODES)
bvh_leaf_primitives = ti.field(dtype=ti.i32, shape=MAX_BVH_PRIMITIVES)
num_bvh_nodes = ti.field(dtype=ti.i32, shape=())


def _padded(values: npt.NDArray, capacity: int, fill=0) -> npt.NDArray:
    out = np.full((capacity,) + values.shape[1:], fill, dtype=values.dtype)
    out[: len(values)] = values
    return out


def upload_bvh(flat: FlatBVH) -> None:
    """Copy a flattened hierarchy into the device tables.

    Raises:
        ResourceExhaustionError: If the tree exceeds the table capacity.
    """
    if flat.node_count > MAX_BVH_NODES:
        raise ResourceExhaustionError(
            f"BVH has {flat.node_count} nodes, maximum is {MAX_BVH_NODES}"
        )
    if len(flat.leaf_primitives) > MAX_BVH_PRIMITIVES:
        raise ResourceExhaustionError(
            f"BVH references {len(flat.leaf_primitives)} primitives, "
            f"maximum is {MAX_BVH_PRIMITIVES}"
        )

    bvh_bbox_min.from_numpy(_padded(flat.bbox_min, MAX_BVH_NODES))
    bvh_bbox_max.from_numpy(_padded(flat.bbox_max, MAX_BVH_NODES))
    bvh_left.from_numpy(_padded(flat.left, MAX_BVH_NODES, -1))
    bvh_right.from_numpy(_padded(flat.right, MAX_BVH_NODES, -1))
    bvh_axis.from_numpy(_padded(flat.axis, MAX_BVH_NODES))
    bvh_prim_start.from_numpy(_padded(flat.prim_start, MAX_BVH_NODES))
    bvh_prim_count.from_numpy(_padded(flat.prim_count, MAX_BVH_NODES))
    bvh_leaf_primitives.from_numpy(_padded(flat.leaf_primitives, MAX_BVH_PRIMITIVES))
    num_bvh_nodes[None] = flat.node_count
    logger.debug(
        "Uploaded BVH: %d nodes, %d leaf references",
        flat.node_count,
        len(flat.leaf_primitives),
    )


def clear_bvh() -> None:
    num_bvh_nodes[None] = 0


def get_bvh_node_count() -> int:
    return num_bvh_nodes[None]
