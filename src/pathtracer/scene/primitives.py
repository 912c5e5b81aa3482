"""Host-side primitive descriptors.

Each descriptor holds the parameters of one scene object, checks them, and
reports a bounding box valid over a time range. The scene manager collects
descriptors, and :meth:`SceneManager.build` validates them, builds the BVH
over their boxes and uploads them into the device primitive table.

Any descriptor may carry a :class:`~pathtracer.geometry.transform.Transform`,
which places the object in the world by an affine map (the translated/rotated
instance wrapper).

Example:
    >>> ball = SphereInfo(center=(0, 1, 0), radius=1.0, material_id=0)
    >>> ball.bounding_box()
    AABB(min=[-1.0, 0.0, -1.0], max=[1.0, 2.0, 1.0])
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Sequence, Union

import numpy as np

from ..errors import ConstructionError
from ..geometry.aabb import AABB

Vec3 = tuple[float, float, float]


def _as_vec3(value: Sequence[float], name: str) -> Vec3:
    if len(value) != 3:
        raise ConstructionError(f"{name} must have 3 components, got {len(value)}")
    out = tuple(float(c) for c in value)
    if not all(math.isfinite(c) for c in out):
        raise ConstructionError(f"{name} must be finite, got {out}")
    return out  # type: ignore[return-value]


def _check_scalar(value: float, name: str) -> float:
    value = float(value)
    if not math.isfinite(value):
        raise ConstructionError(f"{name} must be finite, got {value}")
    return value


def _transformed(box: AABB, transform) -> AABB:
    if transform is None:
        return box
    return box.transformed(transform.linear, transform.offset)


def _transform_to_dict(transform) -> dict | None:
    return None if transform is None else transform.to_dict()


def _transform_from_dict(data: dict | None):
    if data is None:
        return None
    from ..geometry.transform import Transform

    return Transform.from_dict(data)


@dataclass
class SphereInfo:
    """A sphere, optionally moving linearly between two centers.

    Attributes:
        center: Center at ``time0``.
        radius: Radius. A negative radius flips the normal (hollow shell).
        material_id: Unified material id.
        center_end: Center at ``time1`` for a moving sphere, else None.
        time0: Time at which the sphere is at ``center``.
        time1: Time at which the sphere is at ``center_end``.
        transform: Optional instance transform.
    """

    center: Vec3
    radius: float
    material_id: int = -1
    center_end: Vec3 | None = None
    time0: float = 0.0
    time1: float = 1.0
    transform: Any = None

    @property
    def is_moving(self) -> bool:
        return self.center_end is not None

    def validate(self) -> None:
        """Raise ConstructionError for non-finite or degenerate parameters."""
        self.center = _as_vec3(self.center, "Sphere center")
        self.radius = _check_scalar(self.radius, "Sphere radius")
        if self.radius == 0.0:
            raise ConstructionError("Sphere radius must be non-zero")
        if self.center_end is not None:
            self.center_end = _as_vec3(self.center_end, "Sphere end center")
            self.time0 = _check_scalar(self.time0, "Sphere time0")
            self.time1 = _check_scalar(self.time1, "Sphere time1")
            if self.time1 <= self.time0:
                raise ConstructionError(
                    f"Moving sphere needs time1 > time0, got {self.time0}..{self.time1}"
                )

    def center_at(self, time: float) -> np.ndarray:
        c0 = np.asarray(self.center, dtype=np.float64)
        if self.center_end is None:
            return c0
        c1 = np.asarray(self.center_end, dtype=np.float64)
        return c0 + ((time - self.time0) / (self.time1 - self.time0)) * (c1 - c0)

    def bounding_box(self, time0: float = 0.0, time1: float = 1.0) -> AABB:
        r = abs(self.radius)
        c0 = self.center_at(time0)
        box = AABB(c0 - r, c0 + r)
        if self.is_moving:
            c1 = self.center_at(time1)
            box = box.union(AABB(c1 - r, c1 + r))
        return _transformed(box, self.transform)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "sphere",
            "center": list(self.center),
            "radius": self.radius,
            "material_id": self.material_id,
            "center_end": None if self.center_end is None else list(self.center_end),
            "time0": self.time0,
            "time1": self.time1,
            "transform": _transform_to_dict(self.transform),
        }


@dataclass
class QuadInfo:
    """A parallelogram with vertices Q, Q+u, Q+v, Q+u+v.

    Attributes:
        corner: The corner point Q.
        edge_u: First edge vector.
        edge_v: Second edge vector.
        material_id: Unified material id.
        transform: Optional instance transform.
    """

    corner: Vec3
    edge_u: Vec3
    edge_v: Vec3
    material_id: int = -1
    transform: Any = None

    def validate(self) -> None:
        """Raise ConstructionError for non-finite input or parallel edges."""
        self.corner = _as_vec3(self.corner, "Quad corner")
        self.edge_u = _as_vec3(self.edge_u, "Quad edge_u")
        self.edge_v = _as_vec3(self.edge_v, "Quad edge_v")
        n = np.cross(self.edge_u, self.edge_v)
        if float(np.dot(n, n)) <= 1e-20:
            raise ConstructionError(
                "Quad edges are parallel or zero-length; the quad has no plane"
            )

    def bounding_box(self, time0: float = 0.0, time1: float = 1.0) -> AABB:
        q = np.asarray(self.corner, dtype=np.float64)
        u = np.asarray(self.edge_u, dtype=np.float64)
        v = np.asarray(self.edge_v, dtype=np.float64)
        box = AABB.from_points([q, q + u, q + v, q + u + v])
        return _transformed(box, self.transform)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "quad",
            "corner": list(self.corner),
            "edge_u": list(self.edge_u),
            "edge_v": list(self.edge_v),
            "material_id": self.material_id,
            "transform": _transform_to_dict(self.transform),
        }


@dataclass
class BoxInfo:
    """An axis-aligned box (rotate it with a transform).

    Attributes:
        p_min: Lower corner.
        p_max: Upper corner.
        material_id: Unified material id.
        transform: Optional instance transform.
    """

    p_min: Vec3
    p_max: Vec3
    material_id: int = -1
    transform: Any = None

    def validate(self) -> None:
        """Raise ConstructionError for non-finite corners or min > max."""
        self.p_min = _as_vec3(self.p_min, "Box p_min")
        self.p_max = _as_vec3(self.p_max, "Box p_max")
        if any(lo > hi for lo, hi in zip(self.p_min, self.p_max)):
            raise ConstructionError(
                f"Box p_min {self.p_min} exceeds p_max {self.p_max}"
            )

    def bounding_box(self, time0: float = 0.0, time1: float = 1.0) -> AABB:
        return _transformed(AABB(self.p_min, self.p_max), self.transform)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "box",
            "p_min": list(self.p_min),
            "p_max": list(self.p_max),
            "material_id": self.material_id,
            "transform": _transform_to_dict(self.transform),
        }


BoundaryInfo = Union[SphereInfo, BoxInfo]


@dataclass
class MediumInfo:
    """A constant-density participating medium inside a closed boundary.

    Attributes:
        boundary: A sphere or box bounding the medium. Its material and
            transform are not used; transform the medium instead.
        density: Extinction density (positive).
        material_id: Unified material id, normally an isotropic material.
        transform: Optional instance transform.
    """

    boundary: BoundaryInfo
    density: float
    material_id: int = -1
    transform: Any = None

    def validate(self) -> None:
        """Raise ConstructionError for a bad boundary or density."""
        if not isinstance(self.boundary, (SphereInfo, BoxInfo)):
            raise ConstructionError(
                f"Medium boundary must be a sphere or box, got {type(self.boundary).__name__}"
            )
        if self.boundary.transform is not None:
            raise ConstructionError(
                "Medium boundary cannot carry its own transform; transform the medium"
            )
        self.boundary.validate()
        self.density = _check_scalar(self.density, "Medium density")
        if self.density <= 0.0:
            raise ConstructionError(f"Medium density must be positive, got {self.density}")

    def bounding_box(self, time0: float = 0.0, time1: float = 1.0) -> AABB:
        return _transformed(self.boundary.bounding_box(time0, time1), self.transform)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "medium",
            "boundary": self.boundary.to_dict(),
            "density": self.density,
            "material_id": self.material_id,
            "transform": _transform_to_dict(self.transform),
        }


PrimitiveInfo = Union[SphereInfo, QuadInfo, BoxInfo, MediumInfo]


def primitive_from_dict(data: dict[str, Any]) -> PrimitiveInfo:
    """Rebuild a descriptor from :meth:`to_dict` output.

    Raises:
        ConstructionError: If the type tag is unknown.
    """
    kind = data.get("type", "")
    transform = _transform_from_dict(data.get("transform"))
    material_id = data.get("material_id", -1)
    if kind == "sphere":
        end = data.get("center_end")
        return SphereInfo(
            center=tuple(data["center"]),
            radius=data["radius"],
            material_id=material_id,
            center_end=None if end is None else tuple(end),
            time0=data.get("time0", 0.0),
            time1=data.get("time1", 1.0),
            transform=transform,
        )
    if kind == "quad":
        return QuadInfo(
            corner=tuple(data["corner"]),
            edge_u=tuple(data["edge_u"]),
            edge_v=tuple(data["edge_v"]),
            material_id=material_id,
            transform=transform,
        )
    if kind == "box":
        return BoxInfo(
            p_min=tuple(data["p_min"]),
            p_max=tuple(data["p_max"]),
            material_id=material_id,
            transform=transform,
        )
    if kind == "medium":
        return MediumInfo(
            boundary=primitive_from_dict(data["boundary"]),
            density=data["density"],
            material_id=material_id,
            transform=transform,
        )
    raise ConstructionError(f"Unknown primitive type: {kind!r}")
