"""Isotropic phase function for participating media.

Scattering inside a constant-density medium picks a new direction uniformly
over the whole sphere, independent of the incoming direction and of the
(arbitrary) normal reported by the medium hit.

Example:
    >>> fog = add_isotropic_material(albedo=(1.0, 1.0, 1.0))
"""

import taichi as ti
import taichi.math as tm

from ..core.sampler import random_unit_vector
from ..errors import ConstructionError, ResourceExhaustionError
from ._validation import validate_albedo
from .textures import add_solid_texture, get_texture_count, texture_value

vec3 = tm.vec3

# Maximum number of isotropic materials in the scene
MAX_ISOTROPIC_MATERIALS = 256

isotropic_textures = ti.field(dtype=ti.i32, shape=MAX_ISOTROPIC_MATERIALS)
num_isotropic_materials = ti.field(dtype=ti.i32, shape=())


def clear_isotropic_materials() -> None:
    num_isotropic_materials[None] = 0


def add_isotropic_material(
    albedo: tuple[float, float, float] | None = None,
    texture_id: int | None = None,
) -> int:
    """Add an isotropic material to the registry.

    Args:
        albedo: Scattering color as (R, G, B), each component in [0, 1].
        texture_id: Existing texture supplying the color.

    Returns:
        The index of the added material.

    Raises:
        ConstructionError: If neither or both arguments are given, the albedo
            is out of range, or the texture id is unknown.
        ResourceExhaustionError: If the maximum number of materials is exceeded.
    """
    if (albedo is None) == (texture_id is None):
        raise ConstructionError("Give exactly one of albedo or texture_id")

    idx = num_isotropic_materials[None]
    if idx >= MAX_ISOTROPIC_MATERIALS:
        raise ResourceExhaustionError(
            f"Maximum number of isotropic materials ({MAX_ISOTROPIC_MATERIALS}) exceeded"
        )

    if albedo is not None:
        validate_albedo(albedo)
        texture_id = add_solid_texture(albedo)
    elif not 0 <= texture_id < get_texture_count():
        raise ConstructionError(f"Unknown texture id {texture_id}")

    isotropic_textures[idx] = texture_id
    num_isotropic_materials[None] = idx + 1
    return idx


def get_isotropic_material_count() -> int:
    return int(num_isotropic_materials[None])


@ti.func
def scatter_isotropic(albedo: vec3, state: ti.u32):
    """Scatter uniformly over the sphere.

    Returns:
        A tuple of (scattered_direction, attenuation, state).
    """
    direction, s = random_unit_vector(state)
    return direction, albedo, s


@ti.func
def scatter_isotropic_by_id(
    material_idx: ti.i32, u: ti.f32, v: ti.f32, point: vec3, state: ti.u32
):
    """Look up an isotropic material and scatter.

    Returns:
        A tuple of (scattered_direction, attenuation, state).
    """
    albedo = texture_value(isotropic_textures[material_idx], u, v, point)
    return scatter_isotropic(albedo, state)
