"""Offline path tracer built on Taichi.

This package renders scenes by Monte Carlo path tracing on the Taichi CPU
backend, with support for:
- Bounding volume hierarchy acceleration for ray-scene queries
- Lambertian, metal, dielectric, diffuse light and isotropic materials
- Spheres (optionally moving), quads, boxes, constant-density media and
  affine instance transforms
- Thin-lens camera with depth of field and motion blur
- Deterministic, tiled, per-pixel parallel sample accumulation

Subpackages:
    core: Rays, random sampling, the path integrator and the render pipeline
    geometry: Shape intersection, bounding boxes, transforms and the BVH
    materials: Scattering models and textures
    scene: Scene building, primitive tables and built-in scenes
    camera: Thin-lens camera and background
    output: Image export helpers

Taichi must be initialized (see :func:`pathtracer.runtime.init_runtime`)
before importing any module that declares Taichi fields.
"""

from .config import RenderSettings
from .errors import (
    ConstructionError,
    PathTracerError,
    RenderCancelledError,
    ResourceExhaustionError,
)
from .runtime import init_runtime, is_initialized, worker_count

__version__ = "0.1.0"

__all__ = [
    "RenderSettings",
    "PathTracerError",
    "ConstructionError",
    "ResourceExhaustionError",
    "RenderCancelledError",
    "init_runtime",
    "is_initialized",
    "worker_count",
]
