"""Sphere primitive with robust ray-sphere intersection.

This module provides the Sphere dataclass, the HitRecord shared by every
shape, and the intersection routine. Moving spheres are represented by two
centers and a time interval; :func:`sphere_center_at` places the sphere at a
ray's time before the static intersection test runs.

The robust quadratic formula avoids catastrophic cancellation when b^2 is
nearly equal to 4ac by using a reformulated calculation that maintains
numerical stability.

A negative radius keeps the same surface but flips the outward normal, which
is how hollow glass shells are modelled.

Example:
    >>> sphere = Sphere(center=vec3(0, 0, -1), radius=0.5)
    >>> # Use hit_sphere within a Taichi kernel
"""

import taichi as ti
import taichi.math as tm

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3


@ti.dataclass
class Sphere:
    """A sphere defined by center point and radius.

    Attributes:
        center: The center point of the sphere (vec3).
        radius: The radius of the sphere. Negative values invert the normal.
    """

    center: vec3
    radius: ti.f32


@ti.dataclass
class HitRecord:
    """Record of a ray-shape intersection.

    Attributes:
        hit: Whether the ray intersected the shape (1 if hit, 0 if miss).
        t: The parameter value along the ray where intersection occurred.
            Only valid if hit == 1.
        point: The 3D point where the ray intersected the shape.
        normal: The unit surface normal at the intersection point, oriented
            against the incoming ray.
        front_face: 1 if the ray hit the outward-facing side, 0 otherwise.
        u: First surface texture coordinate in [0, 1].
        v: Second surface texture coordinate in [0, 1].
    """

    hit: ti.i32
    t: ti.f32
    point: vec3
    normal: vec3
    front_face: ti.i32
    u: ti.f32
    v: ti.f32


@ti.func
def miss_record() -> HitRecord:
    """Return an empty HitRecord with hit == 0."""
    return HitRecord(
        hit=0,
        t=0.0,
        point=vec3(0.0, 0.0, 0.0),
        normal=vec3(0.0, 0.0, 0.0),
        front_face=0,
        u=0.0,
        v=0.0,
    )


@ti.func
def orient_normal(ray_direction: vec3, outward_normal: vec3):
    """Orient an outward normal against the ray.

    Returns:
        Tuple of (normal, front_face).
    """
    front_face = 1
    normal = outward_normal
    if tm.dot(ray_direction, outward_normal) > 0.0:
        front_face = 0
        normal = -outward_normal
    return normal, front_face


@ti.func
def _solve_quadratic_robust(h: ti.f32, a: ti.f32, c: ti.f32, sqrt_d: ti.f32):
    """Solve a*t^2 + 2*h*t + c = 0 with the Ray Tracing Gems formulation.

    Returns:
        Tuple of (t0, t1) where t0 <= t1.
    """
    # q = -(h + sign(h) * sqrt(discriminant))
    sign_h = ti.select(h < 0.0, -1.0, 1.0)
    q = -(h + sign_h * sqrt_d)

    t0 = 0.0
    t1 = 0.0

    if ti.abs(q) < 1e-10:
        # Tangent ray
        t0 = (-h - sqrt_d) / a
        t1 = (-h + sqrt_d) / a
    else:
        t0 = q / a
        t1 = c / q

    if t0 > t1:
        temp = t0
        t0 = t1
        t1 = temp

    return t0, t1


@ti.func
def sphere_uv(unit_outward: vec3):
    """Spherical texture coordinates for a point on the unit sphere.

    u runs with the angle around the Y axis from X=-1, v from Y=-1 to Y=+1.
    """
    theta = tm.acos(tm.clamp(-unit_outward.y, -1.0, 1.0))
    phi = tm.atan2(-unit_outward.z, unit_outward.x) + tm.pi
    return phi / (2.0 * tm.pi), theta / tm.pi


@ti.func
def sphere_center_at(
    center0: vec3, center1: vec3, time0: ti.f32, time1: ti.f32, time: ti.f32
) -> vec3:
    """Center of a linearly moving sphere at the given time.

    Static spheres have ``time1 <= time0`` and always return ``center0``.
    """
    center = center0
    if time1 > time0:
        center = center0 + ((time - time0) / (time1 - time0)) * (center1 - center0)
    return center


@ti.func
def hit_sphere(
    ray_origin: vec3,
    ray_direction: vec3,
    sphere: Sphere,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Test for ray-sphere intersection using robust quadratic formula.

    The ray-sphere intersection is found by solving:
        |ray_origin + t * ray_direction - center|^2 = radius^2

    which expands to a*t^2 + 2*h*t + c = 0 with
        a = dot(direction, direction)
        h = dot(direction, oc)
        c = dot(oc, oc) - radius^2
        oc = origin - center

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray (need not be normalized).
        sphere: The sphere to test intersection against.
        t_min: Exclusive lower bound on t (avoids self-intersection).
        t_max: Exclusive upper bound on t.

    Returns:
        A HitRecord. Check the hit field to determine if intersection occurred.
    """
    oc = ray_origin - sphere.center

    a = tm.dot(ray_direction, ray_direction)
    h = tm.dot(ray_direction, oc)
    c = tm.dot(oc, oc) - sphere.radius * sphere.radius

    discriminant = h * h - a * c

    # Taichi requires outer-scope declaration
    rec = miss_record()

    if discriminant >= 0.0 and a > 0.0:
        sqrt_d = ti.sqrt(discriminant)
        t0, t1 = _solve_quadratic_robust(h, a, c, sqrt_d)

        # First valid root in (t_min, t_max)
        t = t0
        valid = (t > t_min) and (t < t_max)

        if not valid:
            t = t1
            valid = (t > t_min) and (t < t_max)

        if valid:
            point = ray_origin + t * ray_direction
            outward_normal = (point - sphere.center) / sphere.radius
            normal, front_face = orient_normal(ray_direction, outward_normal)
            u, v = sphere_uv((point - sphere.center) / ti.abs(sphere.radius))
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
