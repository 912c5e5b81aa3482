"""Thin-lens camera ray generation.

The camera state lives in scalar Taichi fields written once per render by
:func:`setup_camera`. Rays start on a lens disk of radius ``aperture / 2``
around the camera origin and pass through a point on the focus plane, so
objects at ``focus_dist`` stay sharp. Each ray carries a time sampled
uniformly over the shutter interval for motion blur.

Image coordinates are normalized:
    s = 0: left edge of image,   s = 1: right edge
    t = 0: bottom edge of image, t = 1: top edge

Example:
    >>> setup_camera(camera, aspect_ratio=16.0 / 9.0)
    >>> # Inside a Taichi kernel:
    >>> # ray, state = get_ray(s, t, state)
"""

import taichi as ti
import taichi.math as tm

from ..core.ray import Ray, make_ray
from ..core.sampler import next_float, random_in_unit_disk
from .camera import Camera

# Type alias for 3D vectors
vec3 = tm.vec3

# =============================================================================
# Taichi Fields for Camera State
# =============================================================================

_camera_origin = ti.Vector.field(3, dtype=ti.f32, shape=())
_camera_u = ti.Vector.field(3, dtype=ti.f32, shape=())  # Right
_camera_v = ti.Vector.field(3, dtype=ti.f32, shape=())  # Up
_camera_w = ti.Vector.field(3, dtype=ti.f32, shape=())  # Backward

_viewport_horizontal = ti.Vector.field(3, dtype=ti.f32, shape=())
_viewport_vertical = ti.Vector.field(3, dtype=ti.f32, shape=())
_lower_left_corner = ti.Vector.field(3, dtype=ti.f32, shape=())

_lens_radius = ti.field(dtype=ti.f32, shape=())
_shutter_open = ti.field(dtype=ti.f32, shape=())
_shutter_close = ti.field(dtype=ti.f32, shape=())

_background_bottom = ti.Vector.field(3, dtype=ti.f32, shape=())
_background_top = ti.Vector.field(3, dtype=ti.f32, shape=())
_background_gradient = ti.field(dtype=ti.i32, shape=())


def setup_camera(camera: Camera, aspect_ratio: float) -> None:
    """Validate a camera and upload its state for rendering.

    Args:
        camera: Camera parameters.
        aspect_ratio: Image width divided by height.

    Raises:
        ConstructionError: If the camera parameters are invalid.
    """
    camera.validate()
    view = camera.viewport(aspect_ratio)

    _camera_origin[None] = view["origin"].tolist()
    _camera_u[None] = view["u"].tolist()
    _camera_v[None] = view["v"].tolist()
    _camera_w[None] = view["w"].tolist()
    _viewport_horizontal[None] = view["horizontal"].tolist()
    _viewport_vertical[None] = view["vertical"].tolist()
    _lower_left_corner[None] = view["lower_left"].tolist()

    _lens_radius[None] = camera.aperture / 2.0
    _shutter_open[None] = camera.shutter_open
    _shutter_close[None] = camera.shutter_close

    _background_bottom[None] = list(camera.background)
    if camera.background_top is None:
        _background_top[None] = list(camera.background)
        _background_gradient[None] = 0
    else:
        _background_top[None] = list(camera.background_top)
        _background_gradient[None] = 1


@ti.func
def get_ray(s: ti.f32, t: ti.f32, state: ti.u32):
    """Generate a camera ray through normalized image coordinates (s, t).

    Args:
        s: Horizontal coordinate in [0, 1] (left to right).
        t: Vertical coordinate in [0, 1] (bottom to top).
        state: Generator state.

    Returns:
        A tuple (Ray, state). The ray direction is normalized.
    """
    disk, s1 = random_in_unit_disk(state)
    rd = _lens_radius[None] * disk
    offset = _camera_u[None] * rd.x + _camera_v[None] * rd.y

    r_time, s2 = next_float(s1)
    time = _shutter_open[None] + r_time * (_shutter_close[None] - _shutter_open[None])

    origin = _camera_origin[None] + offset
    target = _lower_left_corner[None] + s * _viewport_horizontal[None] + t * _viewport_vertical[None]
    direction = tm.normalize(target - origin)

    return make_ray(origin, direction, time), s2


@ti.func
def get_ray_for_pixel(
    pixel_i: ti.i32, pixel_j: ti.i32, width: ti.i32, height: ti.i32, state: ti.u32
):
    """Generate a jittered ray through a pixel.

    Pixel (0, 0) is the bottom-left corner. The jittered coordinate is
    divided by ``width - 1`` and ``height - 1`` so pixel centers span the
    full viewport; a one-pixel dimension divides by 1 instead.

    Returns:
        A tuple (Ray, state).
    """
    r1, s1 = next_float(state)
    r2, s2 = next_float(s1)

    s = (ti.cast(pixel_i, ti.f32) + r1) / ti.cast(ti.max(width - 1, 1), ti.f32)
    t = (ti.cast(pixel_j, ti.f32) + r2) / ti.cast(ti.max(height - 1, 1), ti.f32)

    return get_ray(s, t, s2)


@ti.func
def background(direction: vec3) -> vec3:
    """Radiance for a ray that left the scene."""
    color = _background_bottom[None]
    if _background_gradient[None] == 1:
        a = 0.5 * (tm.normalize(direction).y + 1.0)
        color = (1.0 - a) * _background_bottom[None] + a * _background_top[None]
    return color


def get_camera_info() -> dict[str, tuple[float, float, float]]:
    """Get the uploaded camera state for debugging.

    Returns:
        Dictionary with origin, u, v, w, horizontal, vertical, lower_left.
    """
    fields = {
        "origin": _camera_origin,
        "u": _camera_u,
        "v": _camera_v,
        "w": _camera_w,
        "horizontal": _viewport_horizontal,
        "vertical": _viewport_vertical,
        "lower_left": _lower_left_corner,
    }
    info = {}
    for name, field in fields.items():
        vec = field[None]
        info[name] = (float(vec[0]), float(vec[1]), float(vec[2]))
    return info


def get_lens_radius() -> float:
    return float(_lens_radius[None])
