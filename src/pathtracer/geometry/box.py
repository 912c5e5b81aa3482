"""Axis-aligned box primitive.

A box is intersected directly with the slab method instead of as six quads,
so it stays a single primitive in the BVH and can bound a volumetric medium.
Rotated boxes are expressed with an instance transform.
"""

import taichi as ti
import taichi.math as tm

from .sphere import HitRecord, miss_record, orient_normal

vec3 = tm.vec3


@ti.dataclass
class Box:
    """Axis-aligned box given by its two opposite corners.

    Attributes:
        box_min: Lower corner (vec3).
        box_max: Upper corner (vec3).
    """

    box_min: vec3
    box_max: vec3


@ti.func
def _axis_normal(axis: ti.i32, sign: ti.f32) -> vec3:
    n = vec3(0.0, 0.0, 0.0)
    if axis == 0:
        n.x = sign
    elif axis == 1:
        n.y = sign
    else:
        n.z = sign
    return n


@ti.func
def hit_box(
    ray_origin: vec3,
    ray_direction: vec3,
    box: Box,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Closest intersection of a ray with the surface of a box.

    The entry face is reported when it lies inside (t_min, t_max); otherwise
    the exit face is reported, which covers rays starting inside the box.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray.
        box: The box to test.
        t_min: Exclusive lower bound on t.
        t_max: Exclusive upper bound on t.

    Returns:
        A HitRecord with u, v set from the two face-plane coordinates.
    """
    t_near = -1e30
    t_far = 1e30
    near_axis = 0
    far_axis = 0
    near_sign = -1.0
    far_sign = 1.0
    valid = 1

    for a in ti.static(range(3)):
        d = ray_direction[a]
        if ti.abs(d) < 1e-12:
            # Parallel to this slab pair: miss unless the origin is between them
            if ray_origin[a] < box.box_min[a] or ray_origin[a] > box.box_max[a]:
                valid = 0
        else:
            inv = 1.0 / d
            t0 = (box.box_min[a] - ray_origin[a]) * inv
            t1 = (box.box_max[a] - ray_origin[a]) * inv
            # Outward normal of the face crossed at t0 is -axis, at t1 +axis
            s0 = -1.0
            s1 = 1.0
            if t0 > t1:
                tmp = t0
                t0 = t1
                t1 = tmp
                s0 = 1.0
                s1 = -1.0
            if t0 > t_near:
                t_near = t0
                near_axis = a
                near_sign = s0
            if t1 < t_far:
                t_far = t1
                far_axis = a
                far_sign = s1

    rec = miss_record()

    if valid == 1 and t_near <= t_far:
        t = t_near
        axis = near_axis
        sign = near_sign
        ok = t > t_min and t < t_max
        if not ok:
            t = t_far
            axis = far_axis
            sign = far_sign
            ok = t > t_min and t < t_max
        if ok:
            point = ray_origin + t * ray_direction
            outward = _axis_normal(axis, sign)
            normal, front_face = orient_normal(ray_direction, outward)
            extent = ti.max(box.box_max - box.box_min, vec3(1e-12))
            local = (point - box.box_min) / extent
            u = ti.select(axis == 0, local.y, local.x)
            v = ti.select(axis == 2, local.y, local.z)
            rec = HitRecord(
                hit=1,
                t=t,
                point=point,
                normal=normal,
                front_face=front_face,
                u=u,
                v=v,
            )

    return rec
