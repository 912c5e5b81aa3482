"""Metal (specular reflective) material implementation.

The incident direction is mirrored about the normal and then perturbed by a
random point in the unit sphere scaled by the roughness (fuzz):

    scattered = normalize(reflect(d, n) + roughness * random_in_unit_sphere)

A roughness of 0 is a perfect mirror. If the perturbed direction points into
the surface, or the perturbation cancels the reflection to a zero-length
vector, the ray is absorbed.

Example:
    >>> # Inside a Taichi kernel:
    >>> # direction, attenuation, did_scatter, state = scatter_metal(
    >>> #     albedo, roughness, incident, normal, state)
"""

import taichi as ti
import taichi.math as tm

from ..core.ray import near_zero, reflect
from ..core.sampler import random_in_unit_sphere
from ..errors import ResourceExhaustionError
from ._validation import validate_albedo, validate_unit_interval

# Type alias for 3D vectors
vec3 = tm.vec3


@ti.func
def scatter_metal(
    albedo: vec3,
    roughness: ti.f32,
    incident_direction: vec3,
    normal: vec3,
    state: ti.u32,
):
    """Compute the scattered direction for a metal surface.

    Args:
        albedo: The reflective color (RGB, each component in [0, 1]).
        roughness: The surface roughness in [0, 1]. 0 = perfect mirror.
        incident_direction: The incoming ray direction (need not be unit length).
        normal: The surface normal (normalized, facing the incoming ray).
        state: Generator state.

    Returns:
        A tuple of (scattered_direction, attenuation, did_scatter, state).
        When did_scatter is 0 the direction is the zero vector.
    """
    reflected = reflect(tm.normalize(incident_direction), normal)

    fuzz, s = random_in_unit_sphere(state)
    perturbed = reflected + roughness * fuzz

    did_scatter = 0
    scattered_direction = vec3(0.0, 0.0, 0.0)
    if not near_zero(perturbed):
        candidate = tm.normalize(perturbed)
        if tm.dot(candidate, normal) > 0.0:
            did_scatter = 1
            scattered_direction = candidate

    return scattered_direction, albedo, did_scatter, s


# =============================================================================
# Material Field Storage (for scene-level material management)
# =============================================================================

# Maximum number of metal materials in the scene
MAX_METAL_MATERIALS = 512

metal_albedos = ti.Vector.field(3, dtype=ti.f32, shape=MAX_METAL_MATERIALS)
metal_roughnesses = ti.field(dtype=ti.f32, shape=MAX_METAL_MATERIALS)
num_metal_materials = ti.field(dtype=ti.i32, shape=())


def clear_metal_materials() -> None:
    num_metal_materials[None] = 0


def add_metal_material(
    albedo: tuple[float, float, float],
    roughness: float = 0.0,
) -> int:
    """Add a metal material to the material registry.

    Args:
        albedo: The reflective color as (R, G, B), each component in [0, 1].
        roughness: The surface roughness in [0, 1]. Default is 0 (perfect mirror).

    Returns:
        The index of the added material.

    Raises:
        ConstructionError: If the albedo or roughness is outside [0, 1].
        ResourceExhaustionError: If the maximum number of materials is exceeded.
    """
    validate_albedo(albedo)
    validate_unit_interval(roughness, "Roughness")

    idx = num_metal_materials[None]
    if idx >= MAX_METAL_MATERIALS:
        raise ResourceExhaustionError(
            f"Maximum number of metal materials ({MAX_METAL_MATERIALS}) exceeded"
        )

    metal_albedos[idx] = vec3(albedo[0], albedo[1], albedo[2])
    metal_roughnesses[idx] = roughness
    num_metal_materials[None] = idx + 1
    return idx


def get_metal_material_count() -> int:
    return int(num_metal_materials[None])


@ti.func
def get_metal_albedo(material_idx: ti.i32) -> vec3:
    return metal_albedos[material_idx]


@ti.func
def get_metal_roughness(material_idx: ti.i32) -> ti.f32:
    return metal_roughnesses[material_idx]


@ti.func
def scatter_metal_by_id(
    material_idx: ti.i32, incident_direction: vec3, normal: vec3, state: ti.u32
):
    """Look up a metal material and scatter off it.

    Returns:
        A tuple of (scattered_direction, attenuation, did_scatter, state).
    """
    return scatter_metal(
        get_metal_albedo(material_idx),
        get_metal_roughness(material_idx),
        incident_direction,
        normal,
        state,
    )
