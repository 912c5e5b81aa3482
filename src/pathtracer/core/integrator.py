"""Path tracing integrator for Monte Carlo light transport.

This module implements the per-path bounce loop, material dispatch, and the
tile kernel that accumulates samples into the render target.

The path tracer follows one path per sample from the camera into the scene.
At every hit it adds the surface emission weighted by the current
throughput, then asks the material to scatter. Absorption, escaping the
scene, Russian roulette or the depth cap end the path.

Every sample draws its random numbers from its own stream, derived from
(seed, pixel index, sample index). A pixel's value therefore does not depend
on the tile it belongs to, the order tiles run in, the number of worker
threads, or how the samples are split into passes.

Example:
    >>> setup_render_target(320, 180)
    >>> render_tile(0, 0, 32, 32, 320, 180, sample_start=0, sample_count=16,
    ...             seed=7, max_depth=50, rr_depth=-1)
    >>> image = get_finalized_image()
"""

import logging

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from ..camera.thin_lens import background, get_ray_for_pixel
from ..config import MAX_IMAGE_HEIGHT, MAX_IMAGE_WIDTH
from ..errors import ResourceExhaustionError
from ..materials.dielectric import scatter_dielectric_by_id
from ..materials.diffuse_light import emit_diffuse_light
from ..materials.isotropic import scatter_isotropic_by_id
from ..materials.lambertian import scatter_lambertian_by_id
from ..materials.metal import scatter_metal_by_id
from ..scene.intersection import intersect_scene
from ..scene.manager import MaterialType, get_material_type, get_material_type_index
from .ray import Ray, is_finite, make_ray, near_zero
from .sampler import next_float, sample_state

logger = logging.getLogger(__name__)

# Type alias for 3D vectors
vec3 = tm.vec3

# =============================================================================
# Rendering Constants
# =============================================================================

# Russian roulette survival probability cap
MAX_RR_PROBABILITY = 0.95

# Ray offset epsilon to avoid self-intersection
RAY_EPSILON = 1e-4

# t_min and t_max for ray intersection
T_MIN = 1e-3
T_MAX = 1e10

# rr_depth value that disables Russian roulette
RR_DISABLED = -1

# =============================================================================
# Render Target (Image Buffer)
# =============================================================================

# Image dimensions (actual active size)
_image_width = ti.field(dtype=ti.i32, shape=())
_image_height = ti.field(dtype=ti.i32, shape=())

# Running sum of sample radiance per pixel, indexed [x, y] with y = 0 at the bottom
_color_sum = ti.Vector.field(3, dtype=ti.f32, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))

# Sample count per pixel
_sample_count = ti.field(dtype=ti.i32, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))

# Non-finite samples replaced by black since the last clear
_anomaly_count = ti.field(dtype=ti.i32, shape=())

_render_target_initialized = ti.field(dtype=ti.i32, shape=())


def setup_render_target(width: int, height: int) -> None:
    """Set the active image dimensions and clear the buffers.

    The buffers are preallocated to MAX_IMAGE_WIDTH x MAX_IMAGE_HEIGHT so
    the kernels are compiled once for any resolution.

    Raises:
        ResourceExhaustionError: If the dimensions exceed the buffer size.
    """
    if width > MAX_IMAGE_WIDTH or height > MAX_IMAGE_HEIGHT:
        raise ResourceExhaustionError(
            f"Image dimensions ({width}x{height}) exceed maximum supported "
            f"({MAX_IMAGE_WIDTH}x{MAX_IMAGE_HEIGHT})"
        )

    _image_width[None] = width
    _image_height[None] = height
    _render_target_initialized[None] = 1
    clear_render_target()


def clear_render_target() -> None:
    """Clear the accumulation buffers and the anomaly counter."""
    _color_sum.fill(0.0)
    _sample_count.fill(0)
    _anomaly_count[None] = 0


def get_image_dimensions() -> tuple[int, int]:
    return int(_image_width[None]), int(_image_height[None])


def get_anomaly_count() -> int:
    """Number of non-finite samples replaced by black since the last clear."""
    return int(_anomaly_count[None])


def _check_render_target_initialized() -> None:
    if _render_target_initialized[None] == 0:
        raise RuntimeError("Render target not set up. Call setup_render_target() first.")


# =============================================================================
# Material Dispatch
# =============================================================================


@ti.func
def _scatter_material(
    material_id: ti.i32,
    incident_direction: vec3,
    point: vec3,
    normal: vec3,
    front_face: ti.i32,
    u: ti.f32,
    v: ti.f32,
    state: ti.u32,
):
    """Dispatch to the scatter function of the hit material.

    Returns:
        A tuple of (scattered_direction, attenuation, did_scatter, state).
        A zero-length or non-finite direction counts as absorption.
    """
    mat_type = get_material_type(material_id)
    type_index = get_material_type_index(material_id)

    scattered_direction = vec3(0.0, 0.0, 0.0)
    attenuation = vec3(0.0, 0.0, 0.0)
    did_scatter = 0
    s = state

    if mat_type == int(MaterialType.LAMBERTIAN):
        d, att, _, s1 = scatter_lambertian_by_id(type_index, normal, u, v, point, s)
        scattered_direction = d
        attenuation = att
        did_scatter = 1
        s = s1

    elif mat_type == int(MaterialType.METAL):
        d, att, ok, s1 = scatter_metal_by_id(type_index, incident_direction, normal, s)
        scattered_direction = d
        attenuation = att
        did_scatter = ok
        s = s1

    elif mat_type == int(MaterialType.DIELECTRIC):
        d, att, ok, s1 = scatter_dielectric_by_id(
            type_index, incident_direction, normal, front_face, s
        )
        scattered_direction = d
        attenuation = att
        did_scatter = ok
        s = s1

    elif mat_type == int(MaterialType.ISOTROPIC):
        d, att, s1 = scatter_isotropic_by_id(type_index, u, v, point, s)
        scattered_direction = d
        attenuation = att
        did_scatter = 1
        s = s1

    if did_scatter == 1:
        if near_zero(scattered_direction) or not is_finite(scattered_direction):
            did_scatter = 0

    return scattered_direction, attenuation, did_scatter, s


@ti.func
def _get_emission(
    material_id: ti.i32, u: ti.f32, v: ti.f32, point: vec3, front_face: ti.i32
) -> vec3:
    """Emitted radiance at a hit point; zero for every non-light material."""
    emission = vec3(0.0, 0.0, 0.0)
    if get_material_type(material_id) == int(MaterialType.DIFFUSE_LIGHT):
        emission = emit_diffuse_light(
            get_material_type_index(material_id), u, v, point, front_face
        )
    return emission


# =============================================================================
# Path Tracing Core
# =============================================================================


@ti.func
def _offset_ray_origin(point: vec3, normal: vec3, direction: vec3) -> vec3:
    """Push the origin off the surface, to the side the new ray travels into."""
    offset_dir = normal
    if tm.dot(direction, normal) < 0.0:
        offset_dir = -normal
    return point + RAY_EPSILON * offset_dir


@ti.func
def trace_path(ray: Ray, max_depth: ti.i32, rr_depth: ti.i32, state: ti.u32):
    """Trace a single path from a camera ray through the scene.

    Args:
        ray: The primary ray.
        max_depth: Maximum number of path segments. A path still alive
            after this many segments contributes nothing further.
        rr_depth: Bounce count after which Russian roulette may end the
            path, or RR_DISABLED.
        state: Generator state.

    Returns:
        A tuple of (radiance, bounces, state) where bounces counts the
        scatter events along the path.
    """
    origin = ray.origin
    direction = ray.direction
    time = ray.time
    s = state

    radiance = vec3(0.0, 0.0, 0.0)
    throughput = vec3(1.0, 1.0, 1.0)
    bounces = 0

    # Taichi doesn't support break in ti.func loops
    active = 1

    for depth in range(max_depth):
        if active == 1:
            rec, s1 = intersect_scene(make_ray(origin, direction, time), T_MIN, T_MAX, s)
            s = s1

            if rec.hit == 0:
                radiance += throughput * background(direction)
                active = 0
            else:
                radiance += throughput * _get_emission(
                    rec.material_id, rec.u, rec.v, rec.point, rec.front_face
                )

                scattered, attenuation, did_scatter, s2 = _scatter_material(
                    rec.material_id,
                    direction,
                    rec.point,
                    rec.normal,
                    rec.front_face,
                    rec.u,
                    rec.v,
                    s,
                )
                s = s2

                if did_scatter == 0:
                    active = 0
                else:
                    throughput *= attenuation
                    bounces += 1

                    if rr_depth >= 0 and depth >= rr_depth:
                        peak = tm.max(throughput.x, tm.max(throughput.y, throughput.z))
                        survive = tm.min(peak, MAX_RR_PROBABILITY)
                        r, s3 = next_float(s)
                        s = s3
                        if survive <= 0.0 or r >= survive:
                            active = 0
                        else:
                            throughput /= survive

                    if active == 1:
                        origin = _offset_ray_origin(rec.point, rec.normal, scattered)
                        direction = scattered

    return radiance, bounces, s


# =============================================================================
# Rendering Kernels
# =============================================================================


@ti.kernel
def _render_tile(
    x0: ti.i32,
    y0: ti.i32,
    tile_w: ti.i32,
    tile_h: ti.i32,
    width: ti.i32,
    height: ti.i32,
    sample_start: ti.i32,
    sample_count: ti.i32,
    seed: ti.i32,
    max_depth: ti.i32,
    rr_depth: ti.i32,
):
    for di, dj in ti.ndrange(tile_w, tile_h):
        i = x0 + di
        j = y0 + dj

        # Row-major index counted from the top row
        pixel_index = (height - 1 - j) * width + i

        acc = _color_sum[i, j]
        for k in range(sample_start, sample_start + sample_count):
            state = sample_state(seed, pixel_index, k)
            ray, s1 = get_ray_for_pixel(i, j, width, height, state)
            color, _bounces, _state = trace_path(ray, max_depth, rr_depth, s1)

            if not is_finite(color):
                color = vec3(0.0, 0.0, 0.0)
                ti.atomic_add(_anomaly_count[None], 1)

            acc += color

        _color_sum[i, j] = acc
        _sample_count[i, j] += sample_count


def render_tile(
    x0: int,
    y0: int,
    tile_w: int,
    tile_h: int,
    width: int,
    height: int,
    sample_start: int,
    sample_count: int,
    seed: int,
    max_depth: int,
    rr_depth: int = RR_DISABLED,
) -> None:
    """Accumulate samples [sample_start, sample_start + sample_count) for one tile.

    Pixel (x0, y0) is the tile's bottom-left corner. Each pixel is written
    only by its own loop iteration.

    Raises:
        RuntimeError: If the render target has not been set up.
    """
    _check_render_target_initialized()
    _render_tile(
        x0, y0, tile_w, tile_h, width, height, sample_start, sample_count, seed, max_depth, rr_depth
    )


# Single-ray trace used by tests and debugging
_single_radiance = ti.Vector.field(3, dtype=ti.f32, shape=())
_single_bounces = ti.field(dtype=ti.i32, shape=())


@ti.kernel
def _trace_single(
    origin: vec3,
    direction: vec3,
    time: ti.f32,
    max_depth: ti.i32,
    rr_depth: ti.i32,
    seed: ti.i32,
):
    state = sample_state(seed, 0, 0)
    radiance, bounces, _ = trace_path(
        make_ray(origin, tm.normalize(direction), time), max_depth, rr_depth, state
    )
    _single_radiance[None] = radiance
    _single_bounces[None] = bounces


def trace_ray(
    origin: tuple[float, float, float],
    direction: tuple[float, float, float],
    max_depth: int = 50,
    rr_depth: int | None = None,
    seed: int = 0,
    time: float = 0.0,
) -> tuple[tuple[float, float, float], int]:
    """Trace one path from an explicit ray.

    Returns:
        Tuple of ((R, G, B), bounces).
    """
    _trace_single(
        vec3(*origin),
        vec3(*direction),
        time,
        max_depth,
        RR_DISABLED if rr_depth is None else rr_depth,
        seed,
    )
    color = _single_radiance[None]
    return (float(color[0]), float(color[1]), float(color[2])), int(_single_bounces[None])


# =============================================================================
# Finalization
# =============================================================================


def get_sample_counts() -> npt.NDArray[np.int32]:
    """Per-pixel sample counts as an (H, W) array, top row first."""
    _check_render_target_initialized()
    width, height = get_image_dimensions()
    counts = _sample_count.to_numpy()[:width, :height]
    return np.flipud(counts.T)


def get_finalized_image() -> npt.NDArray[np.float32]:
    """Average, gamma-correct and clamp the accumulated samples.

    Each pixel becomes ``sqrt(sum / N)`` clamped to [0, 1]. Pixels without
    samples are black.

    Returns:
        Array of shape (height, width, 3), dtype float32, top row first.
    """
    _check_render_target_initialized()
    width, height = get_image_dimensions()

    sums = _color_sum.to_numpy()[:width, :height, :].astype(np.float64)
    counts = _sample_count.to_numpy()[:width, :height].astype(np.float64)

    average = sums / np.maximum(counts, 1.0)[..., None]
    image = np.sqrt(np.clip(average, 0.0, None))
    image = np.clip(image, 0.0, 1.0)

    # Transpose from (width, height, 3) to (height, width, 3)
    image = np.transpose(image, (1, 0, 2))

    # Flip vertically (buffer rows are bottom-up, images are top-down)
    image = np.flipud(image)

    return np.ascontiguousarray(image, dtype=np.float32)
