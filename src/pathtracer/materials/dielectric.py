"""Dielectric (glass-like) material implementation.

Dielectrics reflect or refract. The refraction ratio is 1/ior when the ray
enters through the front face and ior when it leaves from inside. When
Snell's law has no solution (eta * sin(theta) > 1) the ray is totally
internally reflected; otherwise it reflects with the Schlick reflectance as
probability and refracts the rest of the time.

Matched indices (a refraction ratio of exactly 1) have no interface at all:
the ray always continues straight through.

The attenuation is always white: this model does not absorb.

Example:
    >>> # Inside a Taichi kernel:
    >>> # direction, attenuation, did_scatter, state = scatter_dielectric(
    >>> #     ior, incident, normal, front_face, state)
"""

import math

import taichi as ti
import taichi.math as tm

from ..core.ray import reflect, refract, schlick_fresnel
from ..core.sampler import next_float
from ..errors import ConstructionError, ResourceExhaustionError

# Type alias for 3D vectors
vec3 = tm.vec3


@ti.func
def _refraction_ratio(ior: ti.f32, front_face: ti.i32) -> ti.f32:
    ratio = 1.0 / ior
    if front_face == 0:
        ratio = ior
    return ratio


@ti.func
def scatter_dielectric(
    ior: ti.f32,
    incident_direction: vec3,
    normal: vec3,
    front_face: ti.i32,
    state: ti.u32,
):
    """Compute the scattered direction for a dielectric surface.

    Args:
        ior: Index of refraction of the material.
        incident_direction: The incoming ray direction (need not be unit length).
        normal: The surface normal (normalized, facing the incoming ray).
        front_face: 1 if the ray hits the outside of the surface,
            0 if it hits from within the material.
        state: Generator state.

    Returns:
        A tuple of (scattered_direction, attenuation, did_scatter, state).
        did_scatter is always 1.
    """
    attenuation = vec3(1.0, 1.0, 1.0)
    unit_direction = tm.normalize(incident_direction)
    refraction_ratio = _refraction_ratio(ior, front_face)

    cos_theta = tm.min(-tm.dot(unit_direction, normal), 1.0)
    sin_theta = tm.sqrt(ti.max(0.0, 1.0 - cos_theta * cos_theta))

    cannot_refract = refraction_ratio * sin_theta > 1.0

    reflectance = schlick_fresnel(cos_theta, refraction_ratio)
    if refraction_ratio == 1.0:
        reflectance = 0.0

    r, s = next_float(state)

    scattered_direction = vec3(0.0, 0.0, 0.0)
    if cannot_refract or r < reflectance:
        scattered_direction = reflect(unit_direction, normal)
    else:
        scattered_direction = refract(unit_direction, normal, refraction_ratio)

    scattered_direction = tm.normalize(scattered_direction)

    return scattered_direction, attenuation, 1, s


# =============================================================================
# Material Field Storage (for scene-level material management)
# =============================================================================

# Maximum number of dielectric materials in the scene
MAX_DIELECTRIC_MATERIALS = 256

dielectric_iors = ti.field(dtype=ti.f32, shape=MAX_DIELECTRIC_MATERIALS)
num_dielectric_materials = ti.field(dtype=ti.i32, shape=())


def clear_dielectric_materials() -> None:
    num_dielectric_materials[None] = 0


def add_dielectric_material(ior: float = 1.5) -> int:
    """Add a dielectric material to the material registry.

    Args:
        ior: Index of refraction. Default is 1.5 (typical glass).
            Must be finite and >= 1.0. Common values:
            - Air: 1.0
            - Water: 1.33
            - Glass: 1.5
            - Diamond: 2.4

    Returns:
        The index of the added material.

    Raises:
        ConstructionError: If the IOR is less than 1.0 or not finite.
        ResourceExhaustionError: If the maximum number of materials is exceeded.
    """
    if not math.isfinite(ior) or ior < 1.0:
        raise ConstructionError(
            f"Index of refraction = {ior} is invalid. "
            "IOR must be finite and >= 1.0 for physically meaningful materials."
        )

    idx = num_dielectric_materials[None]
    if idx >= MAX_DIELECTRIC_MATERIALS:
        raise ResourceExhaustionError(
            f"Maximum number of dielectric materials ({MAX_DIELECTRIC_MATERIALS}) exceeded"
        )

    dielectric_iors[idx] = ior
    num_dielectric_materials[None] = idx + 1
    return idx


def get_dielectric_material_count() -> int:
    return int(num_dielectric_materials[None])


@ti.func
def get_dielectric_ior(material_idx: ti.i32) -> ti.f32:
    return dielectric_iors[material_idx]


@ti.func
def scatter_dielectric_by_id(
    material_idx: ti.i32,
    incident_direction: vec3,
    normal: vec3,
    front_face: ti.i32,
    state: ti.u32,
):
    """Look up a dielectric material and scatter through it.

    Returns:
        A tuple of (scattered_direction, attenuation, did_scatter, state).
    """
    return scatter_dielectric(
        get_dielectric_ior(material_idx), incident_direction, normal, front_face, state
    )
