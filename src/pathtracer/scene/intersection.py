"""Scene-level ray intersection.

This module holds the device-side primitive table and answers closest-hit
queries against it through the BVH.

Every primitive is a row in a structure-of-arrays table:

    prim_types[i]        PrimitiveType tag (sphere, quad, box, medium)
    prim_shape_index[i]  row in the table for that shape kind
    prim_material_ids[i] unified material id
    prim_transform_ids[i] instance transform, or -1 for none

Media reference a boundary sphere or box stored in the shape tables but not
listed as a primitive of its own.

The closest-hit query walks the flattened BVH with a small local stack,
visits the nearer child first, and narrows t_max as hits are found. A hit
replaces the current one only at strictly smaller t, so among primitives at
exactly the same distance the first one reached in traversal order wins.

Example:
    >>> # Inside a Taichi kernel:
    >>> # rec, state = intersect_scene(ray, T_MIN, T_MAX, state)
"""

from enum import IntEnum

import numpy as np
import taichi as ti
import taichi.math as tm

from ..core.ray import Ray, axis_component, safe_inverse
from ..errors import ResourceExhaustionError
from ..geometry.aabb import hit_aabb
from ..geometry.box import Box, hit_box
from ..geometry.bvh import (
    BVH_STACK_SIZE,
    bvh_bbox_max,
    bvh_bbox_min,
    bvh_axis,
    bvh_leaf_primitives,
    bvh_left,
    bvh_prim_count,
    bvh_prim_start,
    bvh_right,
    num_bvh_nodes,
)
from ..geometry.medium import medium_hit_record, sample_medium_distance
from ..geometry.quad import Quad, hit_quad
from ..geometry.sphere import HitRecord, Sphere, hit_sphere, miss_record, sphere_center_at
from ..geometry.transform import hit_to_world, ray_to_object

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3

# Parameter range used when probing a medium boundary
BOUNDARY_T_LIMIT = 1e30

# Gap between the entry hit and the exit search on a medium boundary
BOUNDARY_EXIT_EPSILON = 1e-4


class PrimitiveType(IntEnum):
    """Closed set of primitive kinds dispatched during intersection."""

    SPHERE = 0
    QUAD = 1
    BOX = 2
    MEDIUM = 3


@ti.dataclass
class SceneHitRecord:
    """Record of a ray-scene intersection with material information.

    Attributes:
        hit: 1 if any primitive was hit, 0 otherwise.
        t: The parameter value along the ray where intersection occurred.
        point: The world-space hit point.
        normal: The unit surface normal, oriented against the ray.
        front_face: 1 if the ray hit the outward-facing side.
        u: Surface texture coordinate.
        v: Surface texture coordinate.
        material_id: The unified material id, -1 on a miss.
        primitive_id: Index of the primitive hit, -1 on a miss.
    """

    hit: ti.i32
    t: ti.f32
    point: vec3
    normal: vec3
    front_face: ti.i32
    u: ti.f32
    v: ti.f32
    material_id: ti.i32
    primitive_id: ti.i32


# Maximum number of entries in each table
MAX_PRIMITIVES = 4096
MAX_SPHERES = 4096
MAX_QUADS = 4096
MAX_BOXES = 4096
MAX_MEDIA = 1024

# Sphere storage: center at time0, center at time1 (equal for static spheres)
sphere_center0 = ti.Vector.field(3, dtype=ti.f32, shape=MAX_SPHERES)
sphere_center1 = ti.Vector.field(3, dtype=ti.f32, shape=MAX_SPHERES)
sphere_time0 = ti.field(dtype=ti.f32, shape=MAX_SPHERES)
sphere_time1 = ti.field(dtype=ti.f32, shape=MAX_SPHERES)
sphere_radii = ti.field(dtype=ti.f32, shape=MAX_SPHERES)
num_spheres = ti.field(dtype=ti.i32, shape=())

# Quad storage: corner Q and edges u, v
quad_corners = ti.Vector.field(3, dtype=ti.f32, shape=MAX_QUADS)
quad_edge_u = ti.Vector.field(3, dtype=ti.f32, shape=MAX_QUADS)
quad_edge_v = ti.Vector.field(3, dtype=ti.f32, shape=MAX_QUADS)
num_quads = ti.field(dtype=ti.i32, shape=())

# Box storage
box_min = ti.Vector.field(3, dtype=ti.f32, shape=MAX_BOXES)
box_max = ti.Vector.field(3, dtype=ti.f32, shape=MAX_BOXES)
num_boxes = ti.field(dtype=ti.i32, shape=())

# Media: boundary kind/index and -1/density
medium_boundary_type = ti.field(dtype=ti.i32, shape=MAX_MEDIA)
medium_boundary_index = ti.field(dtype=ti.i32, shape=MAX_MEDIA)
medium_neg_inv_density = ti.field(dtype=ti.f32, shape=MAX_MEDIA)
num_media = ti.field(dtype=ti.i32, shape=())

# Primitive table
prim_types = ti.field(dtype=ti.i32, shape=MAX_PRIMITIVES)
prim_shape_index = ti.field(dtype=ti.i32, shape=MAX_PRIMITIVES)
prim_material_ids = ti.field(dtype=ti.i32, shape=MAX_PRIMITIVES)
prim_transform_ids = ti.field(dtype=ti.i32, shape=MAX_PRIMITIVES)
num_primitives = ti.field(dtype=ti.i32, shape=())


def clear_scene() -> None:
    """Clear all primitives and shapes from the device tables."""
    num_spheres[None] = 0
    num_quads[None] = 0
    num_boxes[None] = 0
    num_media[None] = 0
    num_primitives[None] = 0


def _next_index(counter, capacity: int, name: str) -> int:
    idx = counter[None]
    if idx >= capacity:
        raise ResourceExhaustionError(f"Maximum number of {name} ({capacity}) exceeded")
    counter[None] = idx + 1
    return idx


def store_sphere(
    center0, radius: float, center1=None, time0: float = 0.0, time1: float = 0.0
) -> int:
    """Write a sphere into the shape table and return its row.

    A static sphere stores ``center1 == center0`` and ``time1 == time0``.

    Raises:
        ResourceExhaustionError: If the sphere table is full.
    """
    idx = _next_index(num_spheres, MAX_SPHERES, "spheres")
    sphere_center0[idx] = vec3(*center0)
    sphere_center1[idx] = vec3(*(center0 if center1 is None else center1))
    sphere_time0[idx] = time0
    sphere_time1[idx] = time0 if center1 is None else time1
    sphere_radii[idx] = radius
    return idx


def store_quad(q, u, v) -> int:
    """Write a quad into the shape table and return its row."""
    idx = _next_index(num_quads, MAX_QUADS, "quads")
    quad_corners[idx] = vec3(*q)
    quad_edge_u[idx] = vec3(*u)
    quad_edge_v[idx] = vec3(*v)
    return idx


def store_box(p_min, p_max) -> int:
    """Write a box into the shape table and return its row."""
    idx = _next_index(num_boxes, MAX_BOXES, "boxes")
    box_min[idx] = vec3(*p_min)
    box_max[idx] = vec3(*p_max)
    return idx


def store_medium(boundary_type: PrimitiveType, boundary_index: int, density: float) -> int:
    """Write a medium into the medium table and return its row."""
    idx = _next_index(num_media, MAX_MEDIA, "media")
    medium_boundary_type[idx] = int(boundary_type)
    medium_boundary_index[idx] = boundary_index
    medium_neg_inv_density[idx] = -1.0 / density
    return idx


def add_primitive(
    prim_type: PrimitiveType, shape_index: int, material_id: int, transform_id: int = -1
) -> int:
    """Append a row to the primitive table and return its index.

    Raises:
        ResourceExhaustionError: If the primitive table is full.
    """
    idx = _next_index(num_primitives, MAX_PRIMITIVES, "primitives")
    prim_types[idx] = int(prim_type)
    prim_shape_index[idx] = shape_index
    prim_material_ids[idx] = material_id
    prim_transform_ids[idx] = transform_id
    return idx


def get_primitive_count() -> int:
    return int(num_primitives[None])


def get_sphere_count() -> int:
    return int(num_spheres[None])


def get_quad_count() -> int:
    return int(num_quads[None])


def get_box_count() -> int:
    return int(num_boxes[None])


def get_medium_count() -> int:
    return int(num_media[None])


def get_primitive_table() -> dict[str, np.ndarray]:
    """Copy the live rows of the primitive table to numpy (for inspection)."""
    n = get_primitive_count()
    return {
        "types": prim_types.to_numpy()[:n],
        "shape_index": prim_shape_index.to_numpy()[:n],
        "material_ids": prim_material_ids.to_numpy()[:n],
        "transform_ids": prim_transform_ids.to_numpy()[:n],
    }


# =============================================================================
# Device-side queries
# =============================================================================


@ti.func
def _sphere_at(idx: ti.i32, time: ti.f32) -> Sphere:
    center = sphere_center_at(
        sphere_center0[idx], sphere_center1[idx], sphere_time0[idx], sphere_time1[idx], time
    )
    return Sphere(center=center, radius=sphere_radii[idx])


@ti.func
def _hit_shape(
    shape_type: ti.i32,
    shape_idx: ti.i32,
    origin: vec3,
    direction: vec3,
    time: ti.f32,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Dispatch a surface intersection on sphere, quad or box storage."""
    rec = miss_record()
    if shape_type == int(PrimitiveType.SPHERE):
        rec = hit_sphere(origin, direction, _sphere_at(shape_idx, time), t_min, t_max)
    elif shape_type == int(PrimitiveType.QUAD):
        quad = Quad(Q=quad_corners[shape_idx], u=quad_edge_u[shape_idx], v=quad_edge_v[shape_idx])
        rec = hit_quad(origin, direction, quad, t_min, t_max)
    elif shape_type == int(PrimitiveType.BOX):
        box = Box(box_min=box_min[shape_idx], box_max=box_max[shape_idx])
        rec = hit_box(origin, direction, box, t_min, t_max)
    return rec


@ti.func
def _hit_medium(
    medium_idx: ti.i32,
    origin: vec3,
    direction: vec3,
    time: ti.f32,
    t_min: ti.f32,
    t_max: ti.f32,
    world_length: ti.f32,
    state: ti.u32,
):
    """Sample a scattering event inside a medium's boundary.

    origin and direction may be in object space. Free-flight distances are
    measured with world_length, the length of the world-space direction, so
    a scaled medium keeps its density. t is shared by both spaces.

    Returns:
        Tuple of (HitRecord, state).
    """
    btype = medium_boundary_type[medium_idx]
    bidx = medium_boundary_index[medium_idx]
    rec = miss_record()
    s = state

    enter = _hit_shape(btype, bidx, origin, direction, time, -BOUNDARY_T_LIMIT, BOUNDARY_T_LIMIT)
    if enter.hit == 1:
        leave = _hit_shape(
            btype,
            bidx,
            origin,
            direction,
            time,
            enter.t + BOUNDARY_EXIT_EPSILON,
            BOUNDARY_T_LIMIT,
        )
        if leave.hit == 1:
            hit, t, s1 = sample_medium_distance(
                enter.t,
                leave.t,
                t_min,
                t_max,
                world_length,
                medium_neg_inv_density[medium_idx],
                s,
            )
            s = s1
            if hit == 1:
                rec = medium_hit_record(origin, direction, t)
    return rec, s


@ti.func
def hit_primitive(prim_idx: ti.i32, ray: Ray, t_min: ti.f32, t_max: ti.f32, state: ti.u32):
    """Intersect one primitive, applying its instance transform if any.

    Args:
        prim_idx: Row in the primitive table.
        ray: World-space ray.
        t_min: Exclusive lower bound on t.
        t_max: Exclusive upper bound on t.
        state: Generator state (consumed only by media).

    Returns:
        Tuple of (SceneHitRecord, state).
    """
    ptype = prim_types[prim_idx]
    shape_idx = prim_shape_index[prim_idx]
    xf = prim_transform_ids[prim_idx]

    origin = ray.origin
    direction = ray.direction
    if xf >= 0:
        origin, direction = ray_to_object(xf, ray.origin, ray.direction)

    rec = miss_record()
    s = state
    if ptype == int(PrimitiveType.MEDIUM):
        rec, s = _hit_medium(
            shape_idx, origin, direction, ray.time, t_min, t_max, tm.length(ray.direction), state
        )
    else:
        rec = _hit_shape(ptype, shape_idx, origin, direction, ray.time, t_min, t_max)

    if rec.hit == 1 and xf >= 0:
        rec = hit_to_world(xf, rec)

    result = SceneHitRecord(
        hit=rec.hit,
        t=rec.t,
        point=rec.point,
        normal=rec.normal,
        front_face=rec.front_face,
        u=rec.u,
        v=rec.v,
        material_id=-1,
        primitive_id=-1,
    )
    if rec.hit == 1:
        result.material_id = prim_material_ids[prim_idx]
        result.primitive_id = prim_idx
    return result, s


@ti.func
def _miss_scene_record() -> SceneHitRecord:
    return SceneHitRecord(
        hit=0,
        t=0.0,
        point=vec3(0.0, 0.0, 0.0),
        normal=vec3(0.0, 0.0, 0.0),
        front_face=0,
        u=0.0,
        v=0.0,
        material_id=-1,
        primitive_id=-1,
    )


@ti.func
def intersect_scene(ray: Ray, t_min: ti.f32, t_max: ti.f32, state: ti.u32):
    """Find the closest intersection of a ray with the scene.

    Args:
        ray: World-space ray.
        t_min: Exclusive lower bound on t (self-intersection floor).
        t_max: Exclusive upper bound on t.
        state: Generator state.

    Returns:
        Tuple of (SceneHitRecord, state). hit is 0 when nothing is hit,
        including for an empty scene.
    """
    result = _miss_scene_record()
    s = state
    closest = t_max
    inv_dir = safe_inverse(ray.direction)

    stack = ti.Vector([0 for _ in range(BVH_STACK_SIZE)], dt=ti.i32)
    sp = 0
    if num_bvh_nodes[None] > 0:
        stack[0] = 0
        sp = 1

    while sp > 0:
        sp -= 1
        node = stack[sp]
        if hit_aabb(bvh_bbox_min[node], bvh_bbox_max[node], ray.origin, inv_dir, t_min, closest):
            count = bvh_prim_count[node]
            if count > 0:
                start = bvh_prim_start[node]
                for k in range(count):
                    prim = bvh_leaf_primitives[start + k]
                    rec, s1 = hit_primitive(prim, ray, t_min, closest, s)
                    s = s1
                    if rec.hit == 1 and rec.t < closest:
                        closest = rec.t
                        result = rec
            elif sp + 2 <= BVH_STACK_SIZE:
                near = bvh_left[node]
                far = bvh_right[node]
                if axis_component(ray.direction, bvh_axis[node]) < 0.0:
                    near = bvh_right[node]
                    far = bvh_left[node]
                # Far child first so the near child is popped next
                stack[sp] = far
                stack[sp + 1] = near
                sp += 2

    return result, s


@ti.func
def intersect_scene_linear(ray: Ray, t_min: ti.f32, t_max: ti.f32, state: ti.u32):
    """Closest hit by testing every primitive in table order.

    Same contract as :func:`intersect_scene`; used to check the hierarchy.
    """
    result = _miss_scene_record()
    s = state
    closest = t_max
    for prim in range(num_primitives[None]):
        rec, s1 = hit_primitive(prim, ray, t_min, closest, s)
        s = s1
        if rec.hit == 1 and rec.t < closest:
            closest = rec.t
            result = rec
    return result, s


@ti.func
def intersect_scene_any(ray: Ray, t_min: ti.f32, t_max: ti.f32, state: ti.u32):
    """Return (1, state) if anything blocks the ray within (t_min, t_max).

    Traversal stops at the first hit found; it need not be the closest.
    """
    found = 0
    s = state
    inv_dir = safe_inverse(ray.direction)

    stack = ti.Vector([0 for _ in range(BVH_STACK_SIZE)], dt=ti.i32)
    sp = 0
    if num_bvh_nodes[None] > 0:
        stack[0] = 0
        sp = 1

    while sp > 0:
        sp -= 1
        node = stack[sp]
        if hit_aabb(bvh_bbox_min[node], bvh_bbox_max[node], ray.origin, inv_dir, t_min, t_max):
            count = bvh_prim_count[node]
            if count > 0:
                start = bvh_prim_start[node]
                for k in range(count):
                    rec, s1 = hit_primitive(bvh_leaf_primitives[start + k], ray, t_min, t_max, s)
                    s = s1
                    if rec.hit == 1:
                        found = 1
                        break
                if found == 1:
                    sp = 0
            elif sp + 2 <= BVH_STACK_SIZE:
                stack[sp] = bvh_right[node]
                stack[sp + 1] = bvh_left[node]
                sp += 2

    return found, s
