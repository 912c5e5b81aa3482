"""Affine instance transforms.

A :class:`Transform` maps object space to world space as
``p_world = linear @ p_object + offset``. Primitives that carry a transform
are intersected by moving the ray into object space, running the ordinary
shape test there, and moving the hit back. Because the map is affine, the ray
parameter t is the same in both spaces.

Transforms are built on the host with numpy and registered into Taichi fields
when the scene is built.

Example:
    >>> xf = Transform.rotate_y(15.0).then(Transform.translate((265, 0, 295)))
    >>> xf.apply_point((0.0, 0.0, 0.0))
    array([265.,   0., 295.])
"""

import math
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from ..errors import ConstructionError, ResourceExhaustionError
from .sphere import HitRecord

vec3 = tm.vec3
mat3 = tm.mat3

# Maximum number of distinct transforms in a scene
MAX_TRANSFORMS = 1024

# Determinant below which a linear map is treated as singular
MIN_DETERMINANT = 1e-12


@dataclass(frozen=True, eq=False)
class Transform:
    """Affine object-to-world transform.

    Attributes:
        linear: 3x3 linear part (rotation and scale).
        offset: Translation applied after the linear part.
    """

    linear: npt.NDArray[np.float64] = field(default_factory=lambda: np.eye(3))
    offset: npt.NDArray[np.float64] = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self):
        linear = np.asarray(self.linear, dtype=np.float64).reshape(3, 3)
        offset = np.asarray(self.offset, dtype=np.float64).reshape(3)
        if not (np.all(np.isfinite(linear)) and np.all(np.isfinite(offset))):
            raise ConstructionError("Transform entries must be finite")
        if abs(np.linalg.det(linear)) < MIN_DETERMINANT:
            raise ConstructionError("Transform linear part is singular")
        object.__setattr__(self, "linear", linear)
        object.__setattr__(self, "offset", offset)

    @classmethod
    def identity(cls) -> "Transform":
        return cls()

    @classmethod
    def translate(cls, offset: Sequence[float]) -> "Transform":
        return cls(np.eye(3), np.asarray(offset, dtype=np.float64))

    @classmethod
    def scale(cls, factors: float | Sequence[float]) -> "Transform":
        f = np.broadcast_to(np.asarray(factors, dtype=np.float64), (3,))
        return cls(np.diag(f), np.zeros(3))

    @classmethod
    def rotate(cls, axis: Sequence[float], degrees: float) -> "Transform":
        """Rotation about an axis through the origin (right-handed).

        Raises:
            ConstructionError: If the axis has zero length.
        """
        a = np.asarray(axis, dtype=np.float64)
        norm = np.linalg.norm(a)
        if not np.isfinite(norm) or norm == 0.0:
            raise ConstructionError(f"Rotation axis must be non-zero, got {axis}")
        x, y, z = a / norm
        theta = math.radians(degrees)
        c, s = math.cos(theta), math.sin(theta)
        t = 1.0 - c
        # Rodrigues rotation matrix
        linear = np.array(
            [
                [t * x * x + c, t * x * y - s * z, t * x * z + s * y],
                [t * x * y + s * z, t * y * y + c, t * y * z - s * x],
                [t * x * z - s * y, t * y * z + s * x, t * z * z + c],
            ]
        )
        return cls(linear, np.zeros(3))

    @classmethod
    def rotate_x(cls, degrees: float) -> "Transform":
        return cls.rotate((1.0, 0.0, 0.0), degrees)

    @classmethod
    def rotate_y(cls, degrees: float) -> "Transform":
        return cls.rotate((0.0, 1.0, 0.0), degrees)

    @classmethod
    def rotate_z(cls, degrees: float) -> "Transform":
        return cls.rotate((0.0, 0.0, 1.0), degrees)

    def then(self, other: "Transform") -> "Transform":
        """Compose: apply ``self`` first, then ``other``."""
        return Transform(
            other.linear @ self.linear, other.linear @ self.offset + other.offset
        )

    def inverse(self) -> "Transform":
        inv = np.linalg.inv(self.linear)
        return Transform(inv, -inv @ self.offset)

    @property
    def normal_matrix(self) -> npt.NDArray[np.float64]:
        """Inverse transpose of the linear part, used to map normals."""
        return np.linalg.inv(self.linear).T

    def apply_point(self, point: Sequence[float]) -> npt.NDArray[np.float64]:
        return self.linear @ np.asarray(point, dtype=np.float64) + self.offset

    def apply_vector(self, vector: Sequence[float]) -> npt.NDArray[np.float64]:
        return self.linear @ np.asarray(vector, dtype=np.float64)

    def to_dict(self) -> dict:
        return {"linear": self.linear.tolist(), "offset": self.offset.tolist()}

    @classmethod
    def from_dict(cls, data: dict) -> "Transform":
        return cls(np.asarray(data["linear"]), np.asarray(data["offset"]))


# =============================================================================
# Transform table (read by kernels)
# =============================================================================

transform_linear = ti.Matrix.field(3, 3, dtype=ti.f32, shape=MAX_TRANSFORMS)
transform_inverse = ti.Matrix.field(3, 3, dtype=ti.f32, shape=MAX_TRANSFORMS)
transform_normal = ti.Matrix.field(3, 3, dtype=ti.f32, shape=MAX_TRANSFORMS)
transform_offset = ti.Vector.field(3, dtype=ti.f32, shape=MAX_TRANSFORMS)
num_transforms = ti.field(dtype=ti.i32, shape=())


def register_transform(xf: Transform) -> int:
    """Upload a transform and return its index.

    Raises:
        ResourceExhaustionError: If MAX_TRANSFORMS transforms are registered.
    """
    idx = num_transforms[None]
    if idx >= MAX_TRANSFORMS:
        raise ResourceExhaustionError(
            f"Maximum number of transforms ({MAX_TRANSFORMS}) exceeded"
        )
    transform_linear[idx] = xf.linear.astype(np.float32).tolist()
    transform_inverse[idx] = np.linalg.inv(xf.linear).astype(np.float32).tolist()
    transform_normal[idx] = xf.normal_matrix.astype(np.float32).tolist()
    transform_offset[idx] = xf.offset.astype(np.float32).tolist()
    num_transforms[None] = idx + 1
    return idx


def clear_transforms() -> None:
    num_transforms[None] = 0


def get_transform_count() -> int:
    return num_transforms[None]


@ti.func
def ray_to_object(xf: ti.i32, origin: vec3, direction: vec3):
    """Map a world-space ray into the object space of transform ``xf``.

    Returns:
        Tuple of (object_origin, object_direction). The direction is not
        renormalized so that t values agree between spaces.
    """
    inv = transform_inverse[xf]
    return inv @ (origin - transform_offset[xf]), inv @ direction


@ti.func
def hit_to_world(xf: ti.i32, rec: HitRecord) -> HitRecord:
    """Map an object-space hit record back to world space.

    The inverse transpose preserves the sign of dot(normal, direction), so the
    normal stays oriented against the ray and front_face is unchanged.
    """
    out = rec
    out.point = transform_linear[xf] @ rec.point + transform_offset[xf]
    out.normal = tm.normalize(transform_normal[xf] @ rec.normal)
    return out
