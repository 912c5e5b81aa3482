"""Deterministic random sampling for Monte Carlo integration.

Every random decision in a path is drawn from an explicit 32-bit generator
state that is threaded through the call chain: each function takes a state
and returns ``(value, new_state)``. A fresh state is derived for every
(seed, pixel, sample) triple with a Wang hash, then advanced with xorshift32.
Because no state is shared between pixels, results do not depend on thread
count, tile size or scheduling order.

Example:
    >>> @ti.kernel
    ... def draw() -> ti.f32:
    ...     state = sample_state(7, 0, 0)
    ...     x, state = next_float(state)
    ...     return x
"""

import taichi as ti
import taichi.math as tm

from .ray import build_onb_from_normal, length_squared, local_to_world, normalize, vec3

# 2^-24: maps the top 24 bits of a u32 onto [0, 1).
INV_2_POW_24 = 1.0 / 16777216.0

# Cap on rejection-sampling iterations
MAX_REJECTION_TRIES = 100


@ti.func
def wang_hash(value: ti.u32) -> ti.u32:
    """Scramble a 32-bit integer (Thomas Wang's integer hash)."""
    x = value
    x = (x ^ ti.u32(61)) ^ (x >> ti.u32(16))
    x *= ti.u32(9)
    x = x ^ (x >> ti.u32(4))
    x *= ti.u32(668265261)
    x = x ^ (x >> ti.u32(15))
    return x


@ti.func
def sample_state(seed: ti.i32, pixel_index: ti.i32, sample_index: ti.i32) -> ti.u32:
    """Derive the generator state for one sample of one pixel.

    Args:
        seed: Global render seed.
        pixel_index: Linear pixel index (row * width + column).
        sample_index: Index of the sample within the pixel.

    Returns:
        A non-zero xorshift32 state.
    """
    h = wang_hash(ti.cast(seed, ti.u32) ^ wang_hash(ti.cast(pixel_index, ti.u32)))
    h = wang_hash(h ^ wang_hash(ti.cast(sample_index, ti.u32) + ti.u32(1)))
    if h == ti.u32(0):
        h = ti.u32(1)
    return h


@ti.func
def next_u32(state: ti.u32) -> ti.u32:
    """Advance a xorshift32 state."""
    x = state
    x ^= x << ti.u32(13)
    x ^= x >> ti.u32(17)
    x ^= x << ti.u32(5)
    return x


@ti.func
def next_float(state: ti.u32):
    """Draw a float uniformly from [0, 1).

    Returns:
        A tuple (value, new_state).
    """
    s = next_u32(state)
    value = ti.cast(s >> ti.u32(8), ti.f32) * INV_2_POW_24
    return value, s


@ti.func
def random_in_unit_sphere(state: ti.u32):
    """Uniform point inside the unit sphere by rejection sampling.

    Returns:
        A tuple (point, new_state). After ``MAX_REJECTION_TRIES`` failures the
        origin is returned.
    """
    s = state
    p = vec3(0.0, 0.0, 0.0)
    found = 0
    for _ in range(MAX_REJECTION_TRIES):
        if found == 0:
            x, s1 = next_float(s)
            y, s2 = next_float(s1)
            z, s3 = next_float(s2)
            s = s3
            candidate = vec3(x * 2.0 - 1.0, y * 2.0 - 1.0, z * 2.0 - 1.0)
            if length_squared(candidate) < 1.0:
                p = candidate
                found = 1
    return p, s


@ti.func
def random_unit_vector(state: ti.u32):
    """Uniform direction on the unit sphere.

    Uses the z/phi parameterization so no rejection loop is needed.

    Returns:
        A tuple (direction, new_state).
    """
    r1, s1 = next_float(state)
    r2, s2 = next_float(s1)
    z = 1.0 - 2.0 * r1
    r = ti.sqrt(ti.max(0.0, 1.0 - z * z))
    phi = 2.0 * tm.pi * r2
    return vec3(r * ti.cos(phi), r * ti.sin(phi), z), s2


@ti.func
def random_in_unit_disk(state: ti.u32):
    """Uniform point inside the unit disk in the xy-plane.

    Returns:
        A tuple ((x, y, 0), new_state).
    """
    s = state
    p = vec3(0.0, 0.0, 0.0)
    found = 0
    for _ in range(MAX_REJECTION_TRIES):
        if found == 0:
            x, s1 = next_float(s)
            y, s2 = next_float(s1)
            s = s2
            candidate = vec3(x * 2.0 - 1.0, y * 2.0 - 1.0, 0.0)
            if candidate.x * candidate.x + candidate.y * candidate.y < 1.0:
                p = candidate
                found = 1
    return p, s


@ti.func
def random_cosine_direction(state: ti.u32):
    """Cosine-weighted direction in the local z-up frame (pdf = cos/pi).

    Returns:
        A tuple (direction, new_state).
    """
    r1, s1 = next_float(state)
    r2, s2 = next_float(s1)
    phi = 2.0 * tm.pi * r1
    sqrt_r2 = ti.sqrt(r2)
    x = ti.cos(phi) * sqrt_r2
    y = ti.sin(phi) * sqrt_r2
    z = ti.sqrt(1.0 - r2)
    return vec3(x, y, z), s2


@ti.func
def sample_cosine_hemisphere(normal: vec3, state: ti.u32):
    """Cosine-weighted hemisphere sampling about a normal.

    Args:
        normal: Unit surface normal defining the hemisphere.
        state: Generator state.

    Returns:
        A tuple (direction, pdf, new_state) where direction is a unit vector
        with non-negative dot product with the normal and pdf = cos(theta)/pi.
    """
    local_dir, s = random_cosine_direction(state)
    tangent, bitangent, n = build_onb_from_normal(normal)
    world_dir = normalize(local_to_world(local_dir, tangent, bitangent, n))
    pdf = ti.max(tm.dot(world_dir, normal), 0.0) / tm.pi
    return world_dir, pdf, s
