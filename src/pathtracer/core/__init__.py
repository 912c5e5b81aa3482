"""Core rendering module.

Components:
    ray: Ray data structure and vector utilities
    sampler: Per-sample deterministic random number generation
    integrator: Iterative path tracing and the tile sampling kernel
    pipeline: Tiled render orchestration, progress and cancellation

Only the field-free modules are imported here. Import the integrator and
pipeline directly once the Taichi runtime is initialized:

    from pathtracer.core.pipeline import Renderer, render
"""

from .ray import (
    Ray,
    axis_component,
    build_onb_from_normal,
    cross,
    dot,
    is_finite,
    length,
    length_squared,
    local_to_world,
    make_ray,
    near_zero,
    normalize,
    ray_at,
    reflect,
    refract,
    safe_inverse,
    schlick_fresnel,
    vec3,
)
from .sampler import (
    next_float,
    random_cosine_direction,
    random_in_unit_disk,
    random_in_unit_sphere,
    random_unit_vector,
    sample_cosine_hemisphere,
    sample_state,
    wang_hash,
)

__all__ = [
    "Ray",
    "ray_at",
    "make_ray",
    "vec3",
    "length",
    "length_squared",
    "normalize",
    "dot",
    "cross",
    "reflect",
    "refract",
    "schlick_fresnel",
    "near_zero",
    "is_finite",
    "safe_inverse",
    "axis_component",
    "build_onb_from_normal",
    "local_to_world",
    "wang_hash",
    "sample_state",
    "next_float",
    "random_in_unit_sphere",
    "random_unit_vector",
    "random_in_unit_disk",
    "random_cosine_direction",
    "sample_cosine_hemisphere",
]
