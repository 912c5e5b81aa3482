"""Built-in scenes.

Each factory builds a scene into a fresh SceneManager and returns it with a
matching Camera. The caller builds and renders:

    >>> scene, camera = cornell_box()
    >>> built = scene.build(camera.shutter_open, camera.shutter_close)
    >>> result = render(built, camera, RenderSettings(width=256, height=256))

Scenes:
    simple_light: a diffuse sphere resting on a ground sphere, lit by a
        rectangular area light, black background
    cornell_box: the classic box with two rotated blocks
    cornell_smoke: the Cornell box with the blocks replaced by smoke and fog
    bouncing_spheres: a field of random spheres on a checkered ground, the
        diffuse ones moving during the exposure
    two_perlin_spheres: a sphere on a ground sphere, both noise textured
    earth: a globe with an image texture
    random_lights: the random sphere field at dusk with some spheres glowing
    cornell_box_measured: the Cornell box from the measurements of the real
        box, faces not quite axis aligned
    final_scene: boxes, glass, metal, media, textures and a rotated cluster
        of spheres under one light
"""

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import numpy as np

from ..camera.camera import Camera
from ..errors import ConstructionError
from ..geometry.transform import Transform
from ..materials.textures import missing_texture_pixels
from .manager import SceneManager
from .primitives import BoxInfo, SphereInfo

logger = logging.getLogger(__name__)

# Classic Cornell box dimensions (555 units on each side)
BOX_SIZE = 555.0

RED_WALL_ALBEDO = (0.65, 0.05, 0.05)
GREEN_WALL_ALBEDO = (0.12, 0.45, 0.15)
WHITE_WALL_ALBEDO = (0.73, 0.73, 0.73)


@dataclass
class CornellBoxParams:
    """Parameters for configuring a Cornell box scene.

    Attributes:
        light_intensity: Brightness multiplier of the ceiling light.
        light_color: RGB color of the light.
        left_wall_color: Albedo of the wall on the left of the image.
        right_wall_color: Albedo of the wall on the right of the image.
        white_color: Albedo of the floor, ceiling, back wall and blocks.

    Example:
        >>> params = CornellBoxParams(light_intensity=20.0)
        >>> scene, camera = cornell_box(params)
    """

    light_intensity: float = 15.0
    light_color: tuple[float, float, float] = (1.0, 1.0, 1.0)
    left_wall_color: tuple[float, float, float] = GREEN_WALL_ALBEDO
    right_wall_color: tuple[float, float, float] = RED_WALL_ALBEDO
    white_color: tuple[float, float, float] = WHITE_WALL_ALBEDO


def _cornell_camera() -> Camera:
    return Camera(
        lookfrom=(278.0, 278.0, -800.0),
        lookat=(278.0, 278.0, 0.0),
        vup=(0.0, 1.0, 0.0),
        vfov=40.0,
    )


def _sky_camera() -> Camera:
    return Camera(
        lookfrom=(13.0, 2.0, 3.0),
        lookat=(0.0, 0.0, 0.0),
        vfov=20.0,
        background=(1.0, 1.0, 1.0),
        background_top=(0.5, 0.7, 1.0),
    )


def _cornell_walls(scene: SceneManager, params: CornellBoxParams) -> int:
    """Add the five walls and return the white material id."""
    left_mat = scene.add_lambertian_material(albedo=params.left_wall_color)
    right_mat = scene.add_lambertian_material(albedo=params.right_wall_color)
    white_mat = scene.add_lambertian_material(albedo=params.white_color)

    s = BOX_SIZE
    # The camera looks down +Z, so x = 555 is on the left of the image
    scene.add_quad((s, 0.0, 0.0), (0.0, s, 0.0), (0.0, 0.0, s), left_mat)
    scene.add_quad((0.0, 0.0, 0.0), (0.0, s, 0.0), (0.0, 0.0, s), right_mat)
    scene.add_quad((0.0, 0.0, 0.0), (s, 0.0, 0.0), (0.0, 0.0, s), white_mat)  # floor
    scene.add_quad((s, s, s), (-s, 0.0, 0.0), (0.0, 0.0, -s), white_mat)  # ceiling
    scene.add_quad((0.0, 0.0, s), (s, 0.0, 0.0), (0.0, s, 0.0), white_mat)  # back
    return white_mat


def _cornell_blocks() -> tuple[BoxInfo, BoxInfo]:
    """The short and tall blocks, rotated about Y and moved into place."""
    short_block = BoxInfo(
        p_min=(0.0, 0.0, 0.0),
        p_max=(165.0, 165.0, 165.0),
        transform=Transform.rotate_y(-18.0).then(Transform.translate((130.0, 0.0, 65.0))),
    )
    tall_block = BoxInfo(
        p_min=(0.0, 0.0, 0.0),
        p_max=(165.0, 330.0, 165.0),
        transform=Transform.rotate_y(15.0).then(Transform.translate((265.0, 0.0, 295.0))),
    )
    return short_block, tall_block


def simple_light() -> tuple[SceneManager, Camera]:
    """A sphere on a ground sphere lit only by a rectangular light."""
    scene = SceneManager()

    ground = scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
    ball = scene.add_lambertian_material(albedo=(0.7, 0.3, 0.2))
    light = scene.add_diffuse_light_material(color=(1.0, 1.0, 1.0), intensity=4.0)

    scene.add_sphere((0.0, -1000.0, 0.0), 1000.0, ground)
    scene.add_sphere((0.0, 2.0, 0.0), 2.0, ball)
    scene.add_quad((3.0, 1.0, -2.0), (2.0, 0.0, 0.0), (0.0, 2.0, 0.0), light)

    camera = Camera(
        lookfrom=(26.0, 3.0, 6.0),
        lookat=(0.0, 2.0, 0.0),
        vfov=20.0,
    )
    return scene, camera


def cornell_box(params: CornellBoxParams | None = None) -> tuple[SceneManager, Camera]:
    """The Cornell box with a ceiling light and two rotated blocks.

    Args:
        params: Optional colors and light settings. Defaults to
            CornellBoxParams().

    Returns:
        A tuple of (SceneManager, Camera).
    """
    if params is None:
        params = CornellBoxParams()

    scene = SceneManager()
    white_mat = _cornell_walls(scene, params)

    light_mat = scene.add_diffuse_light_material(
        color=params.light_color, intensity=params.light_intensity
    )
    scene.add_quad((213.0, 554.0, 227.0), (130.0, 0.0, 0.0), (0.0, 0.0, 105.0), light_mat)

    for block in _cornell_blocks():
        block.material_id = white_mat
        scene.add_primitive(block)

    return scene, _cornell_camera()


def cornell_smoke(
    params: CornellBoxParams | None = None, density: float = 0.01
) -> tuple[SceneManager, Camera]:
    """The Cornell box with the blocks turned into dark smoke and white fog.

    Args:
        params: Optional colors. The light is a larger, dimmer panel.
        density: Density of both media.

    Returns:
        A tuple of (SceneManager, Camera).
    """
    if params is None:
        params = CornellBoxParams(light_intensity=7.0)

    scene = SceneManager()
    _cornell_walls(scene, params)

    light_mat = scene.add_diffuse_light_material(
        color=params.light_color, intensity=params.light_intensity
    )
    scene.add_quad((113.0, 554.0, 127.0), (330.0, 0.0, 0.0), (0.0, 0.0, 305.0), light_mat)

    smoke = scene.add_isotropic_material(albedo=(0.0, 0.0, 0.0))
    fog = scene.add_isotropic_material(albedo=(1.0, 1.0, 1.0))

    short_block, tall_block = _cornell_blocks()
    for block, material in ((tall_block, smoke), (short_block, fog)):
        boundary = BoxInfo(p_min=block.p_min, p_max=block.p_max)
        scene.add_constant_medium(boundary, density, material, transform=block.transform)

    return scene, _cornell_camera()


def bouncing_spheres(grid: int = 11, seed: int = 0) -> tuple[SceneManager, Camera]:
    """Random small spheres on a checkered ground, with three large feature spheres.

    Diffuse spheres bounce upward during the exposure (shutter 0..1), which
    renders as motion blur.

    Args:
        grid: Half-width of the square grid of small spheres. 11 gives the
            classic 22x22 layout; small values make quick test scenes.
        seed: Seed for the layout.

    Returns:
        A tuple of (SceneManager, Camera).
    """
    rng = np.random.default_rng(seed)
    scene = SceneManager()

    checker = scene.add_checker_texture(even=(0.2, 0.3, 0.1), odd=(0.9, 0.9, 0.9), scale=10.0)
    ground = scene.add_lambertian_material(texture_id=checker)
    scene.add_sphere((0.0, -1000.0, 0.0), 1000.0, ground)

    reference = np.array([4.0, 0.2, 0.0])
    glass = scene.add_dielectric_material(ior=1.5)

    for a in range(-grid, grid):
        for b in range(-grid, grid):
            choose = rng.random()
            center = np.array([a + 0.9 * rng.random(), 0.2, b + 0.9 * rng.random()])
            if np.linalg.norm(center - reference) <= 0.9:
                continue

            if choose < 0.8:
                albedo = tuple(float(c) for c in rng.random(3) * rng.random(3))
                material = scene.add_lambertian_material(albedo=albedo)
                end = center + np.array([0.0, 0.5 * rng.random(), 0.0])
                scene.add_moving_sphere(tuple(center), tuple(end), 0.2, material, 0.0, 1.0)
            elif choose < 0.95:
                albedo = tuple(float(c) for c in 0.5 + 0.5 * rng.random(3))
                material = scene.add_metal_material(albedo, roughness=0.5 * rng.random())
                scene.add_sphere(tuple(center), 0.2, material)
            else:
                scene.add_sphere(tuple(center), 0.2, glass)

    scene.add_sphere((0.0, 1.0, 0.0), 1.0, glass)
    brown = scene.add_lambertian_material(albedo=(0.4, 0.2, 0.1))
    scene.add_sphere((-4.0, 1.0, 0.0), 1.0, brown)
    steel = scene.add_metal_material((0.7, 0.6, 0.5), roughness=0.0)
    scene.add_sphere((4.0, 1.0, 0.0), 1.0, steel)

    logger.debug("bouncing_spheres: %d primitives", scene.get_primitive_count())

    camera = Camera(
        lookfrom=(13.0, 2.0, 3.0),
        lookat=(0.0, 0.0, 0.0),
        vfov=20.0,
        aperture=0.1,
        focus_dist=10.0,
        shutter_open=0.0,
        shutter_close=1.0,
        background=(1.0, 1.0, 1.0),
        background_top=(0.5, 0.7, 1.0),
    )
    return scene, camera


def two_perlin_spheres(scale: float = 4.0) -> tuple[SceneManager, Camera]:
    """A noise-textured sphere resting on a noise-textured ground sphere."""
    scene = SceneManager()
    noise = scene.add_noise_texture(scale=scale)
    material = scene.add_lambertian_material(texture_id=noise)
    scene.add_sphere((0.0, -1000.0, 0.0), 1000.0, material)
    scene.add_sphere((0.0, 2.0, 0.0), 2.0, material)
    return scene, _sky_camera()


def _image_or_placeholder(scene: SceneManager, image_path: str | os.PathLike | None) -> int:
    """Load an image texture, or fall back to a checkerboard if it cannot be read."""
    if image_path is not None:
        try:
            return scene.add_image_texture(image_path)
        except ConstructionError as exc:
            logger.warning("%s; using the placeholder texture", exc)
    return scene.add_image_texture_array(missing_texture_pixels())


def earth(image_path: str | os.PathLike | None = None) -> tuple[SceneManager, Camera]:
    """A single globe with an equirectangular image mapped onto it.

    Args:
        image_path: Image file to wrap around the sphere. Without one, or if
            it cannot be loaded, a magenta checkerboard is used.
    """
    scene = SceneManager()
    texture = _image_or_placeholder(scene, image_path)
    surface = scene.add_lambertian_material(texture_id=texture)
    scene.add_sphere((0.0, 0.0, 0.0), 2.0, surface)
    return scene, _sky_camera()


def random_lights(grid: int = 11, seed: int = 0) -> tuple[SceneManager, Camera]:
    """The random sphere field at dusk, with a few of the small spheres glowing.

    Args:
        grid: Half-width of the square grid of small spheres.
        seed: Seed for the layout.

    Returns:
        A tuple of (SceneManager, Camera).
    """
    rng = np.random.default_rng(seed)
    scene = SceneManager()

    ground = scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
    scene.add_sphere((0.0, -1000.0, 0.0), 1000.0, ground)

    reference = np.array([4.0, 0.2, 0.0])
    glass = scene.add_dielectric_material(ior=1.5)

    for a in range(-grid, grid):
        for b in range(-grid, grid):
            center = np.array([a + 0.9 * rng.random(), 0.2, b + 0.9 * rng.random()])
            if np.linalg.norm(center - reference) <= 0.9:
                continue

            choose = rng.random()
            if choose < 0.75:
                albedo = tuple(float(c) for c in rng.random(3) * rng.random(3))
                material = scene.add_lambertian_material(albedo=albedo)
            elif choose < 0.85:
                albedo = tuple(float(c) for c in rng.random(3))
                material = scene.add_metal_material(albedo, roughness=float(rng.random()))
            elif choose < 0.9:
                color = tuple(float(c) for c in rng.random(3))
                material = scene.add_diffuse_light_material(
                    color=color, intensity=float(rng.uniform(2.0, 10.0))
                )
            else:
                material = glass
            scene.add_sphere(tuple(center), 0.2, material)

    scene.add_sphere((0.0, 1.0, 0.0), 1.0, glass)
    brown = scene.add_lambertian_material(albedo=(0.4, 0.2, 0.1))
    scene.add_sphere((-4.0, 1.0, 0.0), 1.0, brown)
    steel = scene.add_metal_material((0.7, 0.6, 0.5), roughness=0.0)
    scene.add_sphere((4.0, 1.0, 0.0), 1.0, steel)

    logger.debug("random_lights: %d primitives", scene.get_primitive_count())

    camera = Camera(
        lookfrom=(13.0, 2.0, 3.0),
        lookat=(0.0, 0.0, 0.0),
        vfov=20.0,
        aperture=0.1,
        focus_dist=10.0,
        background=(0.07, 0.08, 0.1),
    )
    return scene, camera


# Per face: a measured corner of the physical Cornell box and its two neighbours
_MEASURED_WALLS = {
    "floor": ((552.8, 0.0, 0.0), (0.0, 0.0, 0.0), (549.6, 0.0, 559.2)),
    "ceiling": ((556.0, 548.8, 0.0), (556.0, 548.8, 559.2), (0.0, 548.8, 0.0)),
    "back": ((549.6, 0.0, 559.2), (0.0, 0.0, 559.2), (556.0, 548.8, 559.2)),
    "right": ((0.0, 0.0, 559.2), (0.0, 0.0, 0.0), (0.0, 548.8, 559.2)),
    "left": ((552.8, 0.0, 0.0), (549.6, 0.0, 559.2), (556.0, 548.8, 0.0)),
}
_MEASURED_LIGHT = ((343.0, 548.8, 227.0), (343.0, 548.8, 332.0), (213.0, 548.8, 227.0))
_MEASURED_SHORT_BLOCK = (
    ((130.0, 165.0, 65.0), (82.0, 165.0, 225.0), (290.0, 165.0, 114.0)),
    ((290.0, 0.0, 114.0), (290.0, 165.0, 114.0), (240.0, 0.0, 272.0)),
    ((130.0, 0.0, 65.0), (130.0, 165.0, 65.0), (290.0, 0.0, 114.0)),
    ((82.0, 0.0, 225.0), (82.0, 165.0, 225.0), (130.0, 0.0, 65.0)),
    ((240.0, 0.0, 272.0), (240.0, 165.0, 272.0), (82.0, 0.0, 225.0)),
)
_MEASURED_TALL_BLOCK = (
    ((423.0, 330.0, 247.0), (265.0, 330.0, 296.0), (472.0, 330.0, 406.0)),
    ((423.0, 0.0, 247.0), (423.0, 330.0, 247.0), (472.0, 0.0, 406.0)),
    ((472.0, 0.0, 406.0), (472.0, 330.0, 406.0), (314.0, 0.0, 456.0)),
    ((314.0, 0.0, 456.0), (314.0, 330.0, 456.0), (265.0, 0.0, 296.0)),
    ((265.0, 0.0, 296.0), (265.0, 330.0, 296.0), (423.0, 0.0, 247.0)),
)


def _add_measured_quad(scene: SceneManager, corners, material_id: int) -> int:
    """Add the parallelogram spanned by a corner and its two neighbours.

    The measured faces are not exact parallelograms; the fourth corner is
    off by at most a few units.
    """
    origin, a, b = (np.asarray(c, dtype=np.float64) for c in corners)
    return scene.add_quad(tuple(origin), tuple(a - origin), tuple(b - origin), material_id)


def cornell_box_measured(params: CornellBoxParams | None = None) -> tuple[SceneManager, Camera]:
    """The Cornell box built from the published measurements of the real box."""
    if params is None:
        params = CornellBoxParams(light_intensity=12.0)

    scene = SceneManager()
    right = scene.add_lambertian_material(albedo=params.right_wall_color)
    left = scene.add_lambertian_material(albedo=params.left_wall_color)
    white = scene.add_lambertian_material(albedo=params.white_color)
    light = scene.add_diffuse_light_material(
        color=params.light_color, intensity=params.light_intensity
    )

    for name, corners in _MEASURED_WALLS.items():
        material = {"left": left, "right": right}.get(name, white)
        _add_measured_quad(scene, corners, material)
    _add_measured_quad(scene, _MEASURED_LIGHT, light)
    for face in _MEASURED_SHORT_BLOCK + _MEASURED_TALL_BLOCK:
        _add_measured_quad(scene, face, white)

    return scene, _cornell_camera()


def final_scene(
    seed: int = 0,
    boxes_per_side: int = 20,
    cluster_size: int = 1000,
    image_path: str | os.PathLike | None = None,
) -> tuple[SceneManager, Camera]:
    """Every feature at once: a field of boxes under a ceiling light.

    Contains a moving sphere, glass, brushed metal, a glass ball filled with
    blue subsurface medium, thin fog over the whole scene, an image-textured
    globe, a noise sphere and a rotated cluster of small white spheres.

    Args:
        seed: Seed for the box heights and the sphere cluster.
        boxes_per_side: The ground is boxes_per_side squared boxes.
        cluster_size: Number of small spheres in the cluster.
        image_path: Image for the globe, as in :func:`earth`.

    Returns:
        A tuple of (SceneManager, Camera).
    """
    rng = np.random.default_rng(seed)
    scene = SceneManager()

    ground = scene.add_lambertian_material(albedo=(0.48, 0.83, 0.53))
    w = 100.0
    for i in range(boxes_per_side):
        for j in range(boxes_per_side):
            x0 = -1000.0 + i * w
            z0 = -1000.0 + j * w
            y1 = float(rng.uniform(1.0, 101.0))
            scene.add_box((x0, 0.0, z0), (x0 + w, y1, z0 + w), ground)

    light = scene.add_diffuse_light_material(color=(1.0, 1.0, 1.0), intensity=7.0)
    scene.add_quad((123.0, 554.0, 147.0), (300.0, 0.0, 0.0), (0.0, 0.0, 265.0), light)

    orange = scene.add_lambertian_material(albedo=(0.7, 0.3, 0.1))
    scene.add_moving_sphere((400.0, 400.0, 200.0), (430.0, 400.0, 200.0), 50.0, orange)

    glass = scene.add_dielectric_material(ior=1.5)
    scene.add_sphere((260.0, 150.0, 45.0), 50.0, glass)
    metal = scene.add_metal_material((0.8, 0.8, 0.9), roughness=1.0)
    scene.add_sphere((0.0, 150.0, 145.0), 50.0, metal)

    subsurface = SphereInfo(center=(360.0, 150.0, 145.0), radius=70.0)
    scene.add_sphere(subsurface.center, subsurface.radius, glass)
    blue = scene.add_isotropic_material(albedo=(0.2, 0.4, 0.9))
    scene.add_constant_medium(subsurface, 0.2, blue)

    mist = scene.add_isotropic_material(albedo=(1.0, 1.0, 1.0))
    scene.add_constant_medium(SphereInfo(center=(0.0, 0.0, 0.0), radius=5000.0), 1e-5, mist)

    globe = scene.add_lambertian_material(texture_id=_image_or_placeholder(scene, image_path))
    scene.add_sphere((400.0, 200.0, 400.0), 100.0, globe)
    noise = scene.add_lambertian_material(texture_id=scene.add_noise_texture(scale=0.5))
    scene.add_sphere((220.0, 280.0, 300.0), 90.0, noise)

    # A rotated sphere is still a sphere, so the cluster is placed on the host
    placement = Transform.rotate_y(15.0).then(Transform.translate((-100.0, 270.0, 395.0)))
    white = scene.add_lambertian_material(albedo=(0.73, 0.73, 0.73))
    for center in rng.uniform(0.0, 165.0, size=(cluster_size, 3)):
        scene.add_sphere(tuple(float(c) for c in placement.apply_point(center)), 10.0, white)

    logger.debug("final_scene: %d primitives", scene.get_primitive_count())

    camera = Camera(
        lookfrom=(478.0, 278.0, -600.0),
        lookat=(278.0, 278.0, 0.0),
        vfov=40.0,
        shutter_open=0.0,
        shutter_close=1.0,
    )
    return scene, camera


SCENES: dict[str, Callable[..., tuple[SceneManager, Camera]]] = {
    "simple_light": simple_light,
    "cornell_box": cornell_box,
    "cornell_smoke": cornell_smoke,
    "bouncing_spheres": bouncing_spheres,
    "two_perlin_spheres": two_perlin_spheres,
    "earth": earth,
    "random_lights": random_lights,
    "cornell_box_measured": cornell_box_measured,
    "final_scene": final_scene,
}


def get_scene(name: str, **kwargs: Any) -> tuple[SceneManager, Camera]:
    """Create a built-in scene by name.

    Keyword arguments are passed to the scene factory, for example
    ``get_scene("earth", image_path="earthmap.jpg")``.

    Raises:
        KeyError: If no scene has that name.
    """
    if name not in SCENES:
        raise KeyError(f"Unknown scene {name!r}; choose from {sorted(SCENES)}")
    return SCENES[name](**kwargs)
