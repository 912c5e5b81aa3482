"""Diffuse area light material.

An emitter never scatters; it contributes ``texture * intensity`` radiance
where a path hits it. By default it emits from both faces. A one-sided light
emits only toward the side its outward normal faces, which keeps the back of
a ceiling panel dark.

Example:
    >>> light = add_diffuse_light_material(color=(1.0, 1.0, 1.0), intensity=15.0)
"""

import math

import taichi as ti
import taichi.math as tm

from ..errors import ConstructionError, ResourceExhaustionError
from ._validation import validate_color
from .textures import add_solid_texture, get_texture_count, texture_value

vec3 = tm.vec3

# Maximum number of diffuse light materials in the scene
MAX_DIFFUSE_LIGHT_MATERIALS = 256

light_textures = ti.field(dtype=ti.i32, shape=MAX_DIFFUSE_LIGHT_MATERIALS)
light_intensities = ti.field(dtype=ti.f32, shape=MAX_DIFFUSE_LIGHT_MATERIALS)
light_one_sided = ti.field(dtype=ti.i32, shape=MAX_DIFFUSE_LIGHT_MATERIALS)
num_diffuse_light_materials = ti.field(dtype=ti.i32, shape=())


def clear_diffuse_light_materials() -> None:
    num_diffuse_light_materials[None] = 0


def add_diffuse_light_material(
    color: tuple[float, float, float] | None = (1.0, 1.0, 1.0),
    intensity: float = 1.0,
    one_sided: bool = False,
    texture_id: int | None = None,
) -> int:
    """Add an emissive material to the registry.

    Args:
        color: Emission color as (R, G, B). Ignored when texture_id is given.
        intensity: Scalar multiplier on the color. Zero gives a black emitter.
        one_sided: Emit only where the ray hits the front face.
        texture_id: Existing texture supplying the emission color.

    Returns:
        The index of the added material.

    Raises:
        ConstructionError: If the color or intensity is negative or not finite,
            or the texture id is unknown.
        ResourceExhaustionError: If the maximum number of materials is exceeded.
    """
    if not math.isfinite(intensity) or intensity < 0.0:
        raise ConstructionError(
            f"Light intensity must be finite and non-negative, got {intensity}"
        )

    idx = num_diffuse_light_materials[None]
    if idx >= MAX_DIFFUSE_LIGHT_MATERIALS:
        raise ResourceExhaustionError(
            f"Maximum number of diffuse light materials ({MAX_DIFFUSE_LIGHT_MATERIALS}) exceeded"
        )

    if texture_id is None:
        if color is None:
            raise ConstructionError("Give a color or a texture_id for the light")
        validate_color(color, "Light color")
        texture_id = add_solid_texture(color)
    elif not 0 <= texture_id < get_texture_count():
        raise ConstructionError(f"Unknown texture id {texture_id}")

    light_textures[idx] = texture_id
    light_intensities[idx] = intensity
    light_one_sided[idx] = 1 if one_sided else 0
    num_diffuse_light_materials[None] = idx + 1
    return idx


def get_diffuse_light_material_count() -> int:
    return int(num_diffuse_light_materials[None])


@ti.func
def emit_diffuse_light(
    material_idx: ti.i32, u: ti.f32, v: ti.f32, point: vec3, front_face: ti.i32
) -> vec3:
    """Radiance emitted by a light at a hit point.

    Args:
        material_idx: Index into the diffuse light registry.
        u: Surface texture coordinate.
        v: Surface texture coordinate.
        point: World-space hit point.
        front_face: 1 if the ray hit the outward face.

    Returns:
        The emitted RGB radiance (zero on the back of a one-sided light).
    """
    emitted = vec3(0.0, 0.0, 0.0)
    if light_one_sided[material_idx] == 0 or front_face == 1:
        emitted = light_intensities[material_idx] * texture_value(
            light_textures[material_idx], u, v, point
        )
    return emitted
