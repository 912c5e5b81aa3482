"""Lambertian (ideal diffuse) material implementation.

Incident light is scattered with a cosine-weighted distribution about the
surface normal. With cosine-weighted sampling the BRDF, the cosine term and
the pdf cancel, so the path throughput is multiplied by the albedo alone:

    f_r = albedo / pi,  pdf = cos(theta) / pi,  f_r * cos / pdf = albedo

The albedo comes from a texture, so diffuse surfaces can carry a solid color
or a checker pattern.

Example:
    >>> # Inside a Taichi kernel:
    >>> # direction, attenuation, pdf, state = scatter_lambertian(albedo, normal, state)
"""

import taichi as ti
import taichi.math as tm

from ..core.ray import near_zero
from ..core.sampler import sample_cosine_hemisphere
from ..errors import ConstructionError, ResourceExhaustionError
from ._validation import validate_albedo
from .textures import (
    add_solid_texture,
    get_texture_count,
    get_texture_max_component,
    texture_value,
)

# Type alias for 3D vectors
vec3 = tm.vec3


@ti.func
def scatter_lambertian(albedo: vec3, normal: vec3, state: ti.u32):
    """Sample a scattered direction for a Lambertian surface.

    Args:
        albedo: The diffuse reflectance color (RGB).
        normal: The surface normal at the hit point, facing the incoming ray.
        state: Generator state.

    Returns:
        A tuple of (scattered_direction, attenuation, pdf, state) where the
        direction is unit length and never below the surface.
    """
    scattered_direction, pdf, s = sample_cosine_hemisphere(normal, state)

    # Degenerate sample: fall back to the normal
    if near_zero(scattered_direction):
        scattered_direction = normal
        pdf = 1.0 / tm.pi

    return scattered_direction, albedo, pdf, s


# =============================================================================
# Material Field Storage (for scene-level material management)
# =============================================================================

# Maximum number of Lambertian materials in the scene
MAX_LAMBERTIAN_MATERIALS = 1024

# Texture id holding each material's albedo
lambertian_textures = ti.field(dtype=ti.i32, shape=MAX_LAMBERTIAN_MATERIALS)
num_lambertian_materials = ti.field(dtype=ti.i32, shape=())


def clear_lambertian_materials() -> None:
    num_lambertian_materials[None] = 0


def add_lambertian_material(
    albedo: tuple[float, float, float] | None = None,
    texture_id: int | None = None,
) -> int:
    """Add a Lambertian material to the material registry.

    Exactly one of ``albedo`` and ``texture_id`` must be given. A plain albedo
    is stored as a solid texture.

    Args:
        albedo: The diffuse reflectance color as (R, G, B), each in [0, 1].
        texture_id: An existing texture supplying the albedo.

    Returns:
        The index of the added material.

    Raises:
        ConstructionError: If the albedo is outside [0, 1] or the texture id
            is unknown.
        ResourceExhaustionError: If the maximum number of materials is exceeded.
    """
    if (albedo is None) == (texture_id is None):
        raise ConstructionError("Give exactly one of albedo or texture_id")

    idx = num_lambertian_materials[None]
    if idx >= MAX_LAMBERTIAN_MATERIALS:
        raise ResourceExhaustionError(
            f"Maximum number of Lambertian materials ({MAX_LAMBERTIAN_MATERIALS}) exceeded"
        )

    if albedo is not None:
        validate_albedo(albedo)
        texture_id = add_solid_texture(albedo)
    else:
        if not 0 <= texture_id < get_texture_count():
            raise ConstructionError(f"Unknown texture id {texture_id}")
        if get_texture_max_component(texture_id) > 1.0:
            raise ConstructionError(
                f"Texture {texture_id} exceeds 1.0 and cannot be used as an albedo"
            )

    lambertian_textures[idx] = texture_id
    num_lambertian_materials[None] = idx + 1
    return idx


def get_lambertian_material_count() -> int:
    return int(num_lambertian_materials[None])


def get_lambertian_texture(material_idx: int) -> int:
    """Texture id of a Lambertian material (host side)."""
    return int(lambertian_textures[material_idx])


@ti.func
def get_lambertian_albedo(material_idx: ti.i32, u: ti.f32, v: ti.f32, point: vec3) -> vec3:
    """Albedo of a Lambertian material evaluated at a surface point."""
    return texture_value(lambertian_textures[material_idx], u, v, point)


@ti.func
def scatter_lambertian_by_id(
    material_idx: ti.i32, normal: vec3, u: ti.f32, v: ti.f32, point: vec3, state: ti.u32
):
    """Look up the albedo from the registry and call scatter_lambertian.

    Returns:
        A tuple of (scattered_direction, attenuation, pdf, state).
    """
    albedo = get_lambertian_albedo(material_idx, u, v, point)
    return scatter_lambertian(albedo, normal, state)
