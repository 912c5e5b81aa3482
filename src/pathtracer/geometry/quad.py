"""Quad primitive with ray-quad intersection.

A quad is defined by:
- Q: A corner point of the quad
- u: Edge vector from Q to adjacent corner
- v: Edge vector from Q to other adjacent corner

The quad spans the parallelogram from Q to Q+u+v. The outward normal is
normalize(cross(u, v)). Axis-aligned rectangles (walls, area lights) are quads
whose edges lie along two coordinate axes.

Ray-quad intersection uses the parametric plane test:
1. Find where ray intersects the plane containing the quad
2. Check if the planar coordinates (alpha, beta) lie in [0, 1] x [0, 1]

The planar coordinates double as texture coordinates.

Example:
    >>> # Floor quad at y=0, spanning x=[0,1] and z=[0,1]
    >>> quad = Quad(Q=vec3(0, 0, 0), u=vec3(1, 0, 0), v=vec3(0, 0, 1))
    >>> # Use hit_quad within a Taichi kernel
"""

import taichi as ti
import taichi.math as tm

from .sphere import HitRecord, miss_record, orient_normal

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3


@ti.dataclass
class Quad:
    """A parallelogram defined by a corner point and two edge vectors.

    Attributes:
        Q: The corner point of the quad (vec3).
        u: Edge vector from Q to adjacent corner (vec3).
        v: Edge vector from Q to other adjacent corner (vec3).
    """

    Q: vec3
    u: vec3
    v: vec3


@ti.func
def _compute_quad_frame(quad: Quad):
    """Compute the quad's plane and the vectors that recover (alpha, beta).

    With n = u x v (unnormalized):
        w_u = (v x n) / dot(n, n)   so alpha = dot(w_u, P - Q)
        w_v = (n x u) / dot(n, n)   so beta  = dot(w_v, P - Q)

    Returns:
        Tuple of (normal, d, w_u, w_v) where dot(normal, P) = d on the plane.
    """
    n = tm.cross(quad.u, quad.v)
    n_dot_n = tm.dot(n, n)

    normal = vec3(0.0, 0.0, 0.0)
    d = 0.0
    w_u = vec3(0.0, 0.0, 0.0)
    w_v = vec3(0.0, 0.0, 0.0)

    # Parallel edges leave every vector zero so nothing is hit
    if n_dot_n > 1e-20:
        normal = n / ti.sqrt(n_dot_n)
        d = tm.dot(normal, quad.Q)
        w_u = tm.cross(quad.v, n) / n_dot_n
        w_v = tm.cross(n, quad.u) / n_dot_n

    return normal, d, w_u, w_v


@ti.func
def hit_quad(
    ray_origin: vec3,
    ray_direction: vec3,
    quad: Quad,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Test for ray-quad intersection.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray (need not be normalized).
        quad: The quad to test intersection against.
        t_min: Exclusive lower bound on t (avoids self-intersection).
        t_max: Exclusive upper bound on t.

    Returns:
        A HitRecord with u, v set to the planar coordinates of the hit.
    """
    normal, d, w_u, w_v = _compute_quad_frame(quad)
    denom = tm.dot(normal, ray_direction)

    rec = miss_record()

    if ti.abs(denom) > 1e-8:
        t = (d - tm.dot(normal, ray_origin)) / denom

        if t > t_min and t < t_max:
            point = ray_origin + t * ray_direction
            p_minus_q = point - quad.Q
            alpha = tm.dot(w_u, p_minus_q)
            beta = tm.dot(w_v, p_minus_q)

            if alpha >= 0.0 and alpha <= 1.0 and beta >= 0.0 and beta <= 1.0:
                oriented, front_face = orient_normal(ray_direction, normal)
                rec = HitRecord(
                    hit=1,
                    t=t,
                    point=point,
                    normal=oriented,
                    front_face=front_face,
                    u=alpha,
                    v=beta,
                )

    return rec
