"""Geometry module for shapes, bounding boxes and acceleration.

Components:
    sphere: Sphere (static or moving) and the shared HitRecord
    quad: Parallelogram primitive, including axis-aligned rectangles
    box: Axis-aligned box primitive
    medium: Distance sampling inside constant-density media
    aabb: Host-side bounding boxes and the device slab test
    transform: Affine instance transforms (declares Taichi fields)
    bvh: Bounding volume hierarchy build and device tables (declares fields)

All intersection routines are Taichi functions with the signature:
    rec = hit_shape(ray_origin, ray_direction, shape, t_min, t_max)

The transform and bvh modules declare Taichi fields and are not imported
here; import them directly after the runtime is initialized.
"""

from .aabb import AABB, AABB_PADDING, hit_aabb, surrounding_box
from .box import Box, hit_box
from .medium import medium_hit_record, sample_medium_distance
from .quad import Quad, hit_quad
from .sphere import (
    HitRecord,
    Sphere,
    hit_sphere,
    miss_record,
    orient_normal,
    sphere_center_at,
)

__all__ = [
    "AABB",
    "AABB_PADDING",
    "hit_aabb",
    "surrounding_box",
    "Box",
    "hit_box",
    "medium_hit_record",
    "sample_medium_distance",
    "Sphere",
    "HitRecord",
    "hit_sphere",
    "miss_record",
    "orient_normal",
    "sphere_center_at",
    "Quad",
    "hit_quad",
]
