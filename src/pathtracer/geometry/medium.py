"""Constant-density participating medium.

A medium is bounded by a closed shape (a sphere or a box). A ray entering the
boundary travels an exponentially distributed distance before scattering; if
that distance exceeds the path length inside the boundary, the ray passes
through. The scene intersection code finds the entry and exit distances and
hands them to :func:`sample_medium_distance`.
"""

import taichi as ti
import taichi.math as tm

from ..core.sampler import next_float
from .sphere import HitRecord, miss_record

vec3 = tm.vec3

# Smallest uniform sample fed to the logarithm
MIN_LOG_SAMPLE = 1e-12


@ti.func
def sample_medium_distance(
    t_enter: ti.f32,
    t_exit: ti.f32,
    t_min: ti.f32,
    t_max: ti.f32,
    ray_length: ti.f32,
    neg_inv_density: ti.f32,
    state: ti.u32,
):
    """Sample where a ray scatters inside a medium.

    Args:
        t_enter: Ray parameter where the ray enters the boundary.
        t_exit: Ray parameter where the ray leaves the boundary.
        t_min: Lower bound of the query interval.
        t_max: Upper bound of the query interval.
        ray_length: Length of the ray direction vector.
        neg_inv_density: -1 / density of the medium.
        state: Generator state.

    Returns:
        Tuple of (hit, t, new_state). hit is 0 if the ray passes through.
    """
    t0 = ti.max(ti.max(t_enter, t_min), 0.0)
    t1 = ti.min(t_exit, t_max)

    hit = 0
    t = 0.0
    s = state
    if t0 < t1 and ray_length > 0.0:
        r, s = next_float(state)
        distance_inside = (t1 - t0) * ray_length
        hit_distance = neg_inv_density * ti.log(ti.max(r, MIN_LOG_SAMPLE))
        if hit_distance <= distance_inside:
            hit = 1
            t = t0 + hit_distance / ray_length
    return hit, t, s


@ti.func
def medium_hit_record(ray_origin: vec3, ray_direction: vec3, t: ti.f32) -> HitRecord:
    """Hit record for a scattering event inside a medium.

    The normal and face are arbitrary: isotropic scattering ignores them.
    """
    rec = miss_record()
    rec.hit = 1
    rec.t = t
    rec.point = ray_origin + t * ray_direction
    rec.normal = vec3(1.0, 0.0, 0.0)
    rec.front_face = 1
    return rec
