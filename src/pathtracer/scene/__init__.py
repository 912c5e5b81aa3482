"""Scene module for scene construction and ray-scene queries.

Components:
    primitives: Host-side primitive descriptors (sphere, quad, box, medium)
    intersection: Device primitive table and BVH-accelerated hit queries
    manager: SceneManager (materials, primitives, build) and AcceleratedScene
    scenes: Built-in example scenes

Scene data is organized for the kernels as structure-of-arrays Taichi
fields, with one unified material id per primitive.

Only the field-free descriptors are imported here. Import the manager and
scenes directly once the Taichi runtime is initialized:

    from pathtracer.scene.manager import SceneManager
"""

from .primitives import (
    BoxInfo,
    MediumInfo,
    PrimitiveInfo,
    QuadInfo,
    SphereInfo,
    primitive_from_dict,
)

__all__ = [
    "SphereInfo",
    "QuadInfo",
    "BoxInfo",
    "MediumInfo",
    "PrimitiveInfo",
    "primitive_from_dict",
]
