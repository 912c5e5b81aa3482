"""Ray data structure and vector utilities.

This module provides the Ray dataclass used by every intersection query and
the small vector helpers shared by geometry and materials. All functions are
Taichi functions and must be called from inside kernels.

Random sampling lives in :mod:`pathtracer.core.sampler`, which threads an
explicit generator state instead of relying on a global generator.

Example:
    >>> @ti.kernel
    ... def point_on_ray() -> ti.f32:
    ...     ray = make_ray(vec3(0.0), vec3(0.0, 0.0, -1.0), 0.0)
    ...     return ray_at(ray, 5.0).z
"""

import taichi as ti
import taichi.math as tm

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3

# Stand-in for an infinite reciprocal when a direction component is zero.
INV_DIRECTION_LIMIT = 1e12


@ti.dataclass
class Ray:
    """A ray with an origin, a direction and a time.

    Attributes:
        origin: The starting point of the ray (vec3).
        direction: The direction vector of the ray (vec3). Not required to be
            unit length; instance transforms may scale it.
        time: Sample time within the camera shutter interval, used to place
            moving primitives.
    """

    origin: vec3
    direction: vec3
    time: ti.f32


@ti.func
def ray_at(ray: Ray, t: ti.f32) -> vec3:
    """Compute the point along the ray at parameter t."""
    return ray.origin + t * ray.direction


@ti.func
def make_ray(origin: vec3, direction: vec3, time: ti.f32) -> Ray:
    """Create a ray from origin, direction and time inside a kernel."""
    return Ray(origin=origin, direction=direction, time=time)


# =============================================================================
# Vector Utility Functions
# =============================================================================


@ti.func
def length(v: vec3) -> ti.f32:
    return tm.length(v)


@ti.func
def length_squared(v: vec3) -> ti.f32:
    """Compute the squared length of a vector without a square root."""
    return tm.dot(v, v)


@ti.func
def normalize(v: vec3) -> vec3:
    return tm.normalize(v)


@ti.func
def dot(a: vec3, b: vec3) -> ti.f32:
    return tm.dot(a, b)


@ti.func
def cross(a: vec3, b: vec3) -> vec3:
    return tm.cross(a, b)


@ti.func
def reflect(incident: vec3, normal: vec3) -> vec3:
    """Reflect an incident vector about a unit normal.

    Args:
        incident: The incoming direction vector (pointing toward the surface).
        normal: The surface normal (should be normalized).

    Returns:
        The reflected direction vector.
    """
    return incident - 2.0 * tm.dot(incident, normal) * normal


@ti.func
def refract(incident: vec3, normal: vec3, eta: ti.f32) -> vec3:
    """Refract a unit incident vector through a surface using Snell's law.

    The normal must face against the incident direction. With ``eta == 1``
    the result equals the incident direction.

    Args:
        incident: The incoming direction vector (normalized).
        normal: The surface normal on the incident side (normalized).
        eta: The ratio of refractive indices (n_incident / n_transmitted).

    Returns:
        The refracted direction, or a zero vector under total internal
        reflection.
    """
    cos_i = ti.min(-tm.dot(incident, normal), 1.0)
    sin2_t = eta * eta * (1.0 - cos_i * cos_i)
    result = vec3(0.0, 0.0, 0.0)
    if sin2_t <= 1.0:
        cos_t = ti.sqrt(1.0 - sin2_t)
        result = eta * incident + (eta * cos_i - cos_t) * normal
    return result


@ti.func
def schlick_fresnel(cosine: ti.f32, ref_idx: ti.f32) -> ti.f32:
    """Approximate Fresnel reflectance using Schlick's polynomial.

    Args:
        cosine: Cosine of the angle between incident direction and normal.
        ref_idx: Ratio of refractive indices.

    Returns:
        The approximate Fresnel reflectance coefficient.
    """
    r0 = ((1.0 - ref_idx) / (1.0 + ref_idx)) ** 2
    return r0 + (1.0 - r0) * ((1.0 - cosine) ** 5)


@ti.func
def near_zero(v: vec3) -> ti.i32:
    """Return 1 if every component of v is within 1e-8 of zero."""
    s = 1e-8
    return ti.abs(v.x) < s and ti.abs(v.y) < s and ti.abs(v.z) < s


@ti.func
def _finite_component(x: ti.f32) -> ti.i32:
    # All exponent bits set: inf or NaN
    return (ti.bit_cast(x, ti.u32) & ti.u32(0x7F800000)) != ti.u32(0x7F800000)


@ti.func
def is_finite(v: vec3) -> ti.i32:
    """Return 1 if no component of v is NaN or infinite."""
    return _finite_component(v.x) and _finite_component(v.y) and _finite_component(v.z)


@ti.func
def safe_inverse(direction: vec3) -> vec3:
    """Componentwise reciprocal of a direction for slab tests.

    Zero components map to a large finite value with a positive sign so slab
    arithmetic never produces ``0 * inf``.
    """
    inv = vec3(0.0, 0.0, 0.0)
    for a in ti.static(range(3)):
        d = direction[a]
        if ti.abs(d) > 1.0 / INV_DIRECTION_LIMIT:
            inv[a] = 1.0 / d
        else:
            inv[a] = INV_DIRECTION_LIMIT
    return inv


@ti.func
def axis_component(v: vec3, axis: ti.i32) -> ti.f32:
    """Select v[axis] for a runtime axis index in {0, 1, 2}."""
    return ti.select(axis == 0, v.x, ti.select(axis == 1, v.y, v.z))


@ti.func
def build_onb_from_normal(normal: vec3):
    """Build an orthonormal basis with the normal as its z-axis.

    Args:
        normal: The surface normal (should be normalized).

    Returns:
        A tuple (tangent, bitangent, normal) forming an orthonormal basis.
    """
    # Choose a vector not parallel to normal
    a = vec3(1.0, 0.0, 0.0)
    if ti.abs(normal.x) > 0.9:
        a = vec3(0.0, 1.0, 0.0)
    tangent = normalize(cross(a, normal))
    bitangent = cross(normal, tangent)
    return tangent, bitangent, normal


@ti.func
def local_to_world(local_dir: vec3, tangent: vec3, bitangent: vec3, normal: vec3) -> vec3:
    """Transform a direction from a local z-up frame to world coordinates."""
    return local_dir.x * tangent + local_dir.y * bitangent + local_dir.z * normal
