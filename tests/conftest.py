"""Pytest configuration for path tracer tests.

This module provides shared fixtures for all test modules, including
Taichi initialization which must happen once per session.
"""

import pytest


@pytest.fixture(scope="session", autouse=True)
def init_taichi_session():
    """Initialize Taichi once for the entire test session.

    Using session scope prevents multiple ti.init() calls, which would
    invalidate every field declared by modules already imported.
    """
    from pathtracer.runtime import init_runtime

    init_runtime(workers=4)
    yield


@pytest.fixture(autouse=True)
def clear_all_scene_data():
    """Clear scene, material and render state before and after each test.

    This ensures tests are isolated from each other.
    """
    # Import here so Taichi is initialized before any field is declared
    from pathtracer.core.integrator import clear_render_target
    from pathtracer.geometry.bvh import clear_bvh
    from pathtracer.geometry.transform import clear_transforms
    from pathtracer.materials import clear_all_materials
    from pathtracer.scene.intersection import clear_scene
    from pathtracer.scene.manager import _clear_material_tracking

    def _clear_all():
        clear_scene()
        clear_bvh()
        clear_transforms()
        clear_all_materials()
        _clear_material_tracking()
        clear_render_target()

    _clear_all()
    yield
    _clear_all()


@pytest.fixture
def light_and_sphere_scene():
    """A diffuse sphere under a large quad light, black background.

    Returns:
        Tuple of (SceneManager, Camera, light_material_id).
    """
    from pathtracer.camera import Camera
    from pathtracer.scene.manager import SceneManager

    scene = SceneManager()
    white = scene.add_lambertian_material(albedo=(0.7, 0.7, 0.7))
    light = scene.add_diffuse_light_material(color=(1.0, 1.0, 1.0), intensity=4.0)

    scene.add_sphere((0.0, 0.0, 0.0), 1.0, white)
    scene.add_quad((-2.0, 3.0, -2.0), (4.0, 0.0, 0.0), (0.0, 0.0, 4.0), light)

    camera = Camera(lookfrom=(0.0, 0.0, 6.0), lookat=(0.0, 0.0, 0.0), vfov=60.0)
    return scene, camera, light
