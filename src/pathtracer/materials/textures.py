"""Textures for material colors.

Textures are registered into a small table and referenced by id from the
materials that take a color (Lambertian albedo, diffuse light emission and
isotropic medium albedo).

Texture types:
    SOLID: A constant color.
    CHECKER: A 3D checker pattern alternating between an even and an odd
        color. The parity is the sign of sin(s*x) * sin(s*y) * sin(s*z) at
        the hit point, where s is the scale.
    NOISE: Gradient (Perlin) noise of the scaled hit point, remapped from
        [-1, 1] to [0, 1] and multiplied by a tint. With a turbulence depth,
        the noise instead perturbs the phase of sin(s*z) for a marbled look.
    IMAGE: An RGB image looked up by the surface (u, v) coordinates, with u
        running left to right and v bottom to top. Coordinates are clamped
        to [0, 1] and texels are sampled without filtering.

Image texels for every image texture share one pool of MAX_TEXELS entries.

Example:
    >>> solid = add_solid_texture((0.8, 0.8, 0.0))
    >>> checker = add_checker_texture((0.2, 0.3, 0.1), (0.9, 0.9, 0.9))
    >>> marble = add_noise_texture(scale=4.0, turbulence=7)
    >>> earth = add_image_texture("earthmap.jpg")
"""

import logging
import os
from enum import IntEnum

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm
from PIL import Image, UnidentifiedImageError

from ..errors import ConstructionError, ResourceExhaustionError
from ._validation import validate_color

logger = logging.getLogger(__name__)

vec3 = tm.vec3

# Maximum number of textures in the scene. Every color-backed material
# registers one, so this exceeds the material capacity.
MAX_TEXTURES = 2048

# Total texels shared by all image textures (a 1024 x 1024 image fills it)
MAX_TEXELS = 1 << 20

# Checker frequency used when none is given
DEFAULT_CHECKER_SCALE = 10.0

# Lattice size of the gradient noise; must be a power of two
PERLIN_POINT_COUNT = 256

# Fixed so that noise textures look the same in every process
PERLIN_SEED = 0

# Octave limit for turbulence
MAX_TURBULENCE_DEPTH = 16


class TextureType(IntEnum):
    SOLID = 0
    CHECKER = 1
    NOISE = 2
    IMAGE = 3


texture_types = ti.field(dtype=ti.i32, shape=MAX_TEXTURES)
# Color (SOLID), even color (CHECKER), tint (NOISE), per-channel max (IMAGE)
texture_even = ti.Vector.field(3, dtype=ti.f32, shape=MAX_TEXTURES)
texture_odd = ti.Vector.field(3, dtype=ti.f32, shape=MAX_TEXTURES)
texture_scale = ti.field(dtype=ti.f32, shape=MAX_TEXTURES)
texture_depth = ti.field(dtype=ti.i32, shape=MAX_TEXTURES)
texture_offset = ti.field(dtype=ti.i32, shape=MAX_TEXTURES)
texture_width = ti.field(dtype=ti.i32, shape=MAX_TEXTURES)
texture_height = ti.field(dtype=ti.i32, shape=MAX_TEXTURES)
num_textures = ti.field(dtype=ti.i32, shape=())

texels = ti.Vector.field(3, dtype=ti.f32, shape=MAX_TEXELS)
num_texels = ti.field(dtype=ti.i32, shape=())

perlin_vectors = ti.Vector.field(3, dtype=ti.f32, shape=PERLIN_POINT_COUNT)
perlin_perm = ti.field(dtype=ti.i32, shape=(3, PERLIN_POINT_COUNT))

_perlin_state = {"ready": False}


def _next_texture_index() -> int:
    idx = num_textures[None]
    if idx >= MAX_TEXTURES:
        raise ResourceExhaustionError(f"Maximum number of textures ({MAX_TEXTURES}) exceeded")
    return idx


def _store_texture(
    kind: TextureType,
    even: tuple[float, float, float],
    odd: tuple[float, float, float],
    scale: float = 0.0,
    depth: int = 0,
) -> int:
    idx = _next_texture_index()
    texture_types[idx] = int(kind)
    texture_even[idx] = vec3(*even)
    texture_odd[idx] = vec3(*odd)
    texture_scale[idx] = scale
    texture_depth[idx] = depth
    texture_offset[idx] = 0
    texture_width[idx] = 0
    texture_height[idx] = 0
    num_textures[None] = idx + 1
    return idx


def _check_scale(scale: float, name: str) -> None:
    if not (scale > 0.0 and scale < float("inf")):
        raise ConstructionError(f"{name} scale must be positive and finite, got {scale}")


def add_solid_texture(color: tuple[float, float, float]) -> int:
    """Register a constant-color texture.

    Colors are not limited to [0, 1] here; the material that uses the texture
    applies its own range check.

    Returns:
        The texture id.

    Raises:
        ConstructionError: If a component is negative or not finite.
        ResourceExhaustionError: If the texture table is full.
    """
    validate_color(color, "Texture color")
    return _store_texture(TextureType.SOLID, color, color)


def add_checker_texture(
    even: tuple[float, float, float],
    odd: tuple[float, float, float],
    scale: float = DEFAULT_CHECKER_SCALE,
) -> int:
    """Register a 3D checker texture.

    Args:
        even: Color where the sine product is non-negative.
        odd: Color where the sine product is negative.
        scale: Spatial frequency of the pattern.

    Returns:
        The texture id.

    Raises:
        ConstructionError: If a color or the scale is invalid.
        ResourceExhaustionError: If the texture table is full.
    """
    validate_color(even, "Checker even color")
    validate_color(odd, "Checker odd color")
    _check_scale(scale, "Checker")
    return _store_texture(TextureType.CHECKER, even, odd, scale)


def _ensure_perlin_tables() -> None:
    """Fill the gradient lattice once per process."""
    if _perlin_state["ready"]:
        return
    rng = np.random.default_rng(PERLIN_SEED)
    vectors = rng.uniform(-1.0, 1.0, size=(PERLIN_POINT_COUNT, 3))
    vectors /= np.linalg.norm(vectors, axis=1, keepdims=True)
    perms = np.stack([rng.permutation(PERLIN_POINT_COUNT) for _ in range(3)])
    perlin_vectors.from_numpy(vectors.astype(np.float32))
    perlin_perm.from_numpy(perms.astype(np.int32))
    _perlin_state["ready"] = True


def add_noise_texture(
    scale: float = 1.0,
    color: tuple[float, float, float] = (1.0, 1.0, 1.0),
    turbulence: int = 0,
) -> int:
    """Register a gradient noise texture.

    Args:
        scale: Frequency applied to the hit point before sampling the noise.
        color: Tint multiplied into the [0, 1] noise value.
        turbulence: Number of octaves for a marble pattern. 0 gives plain
            smooth noise.

    Returns:
        The texture id.

    Raises:
        ConstructionError: If the scale, tint or depth is invalid.
        ResourceExhaustionError: If the texture table is full.
    """
    validate_color(color, "Noise color")
    _check_scale(scale, "Noise")
    if not 0 <= turbulence <= MAX_TURBULENCE_DEPTH:
        raise ConstructionError(
            f"Noise turbulence must be in [0, {MAX_TURBULENCE_DEPTH}], got {turbulence}"
        )
    _ensure_perlin_tables()
    return _store_texture(TextureType.NOISE, color, color, scale, turbulence)


def add_image_texture_array(pixels: npt.ArrayLike) -> int:
    """Register an image texture from an array of shape (height, width, 3).

    Integer arrays are read as 8-bit channels and divided by 255; float
    arrays are used as is. The first row is the top of the image.

    Returns:
        The texture id.

    Raises:
        ConstructionError: If the array has the wrong shape or values outside
            [0, 1] after conversion.
        ResourceExhaustionError: If the texture table or texel pool is full.
    """
    data = np.asarray(pixels)
    if data.ndim != 3 or data.shape[2] != 3 or data.shape[0] < 1 or data.shape[1] < 1:
        raise ConstructionError(f"Image must have shape (height, width, 3), got {data.shape}")
    if np.issubdtype(data.dtype, np.integer):
        data = data.astype(np.float32) / 255.0
    data = data.astype(np.float32)
    if not np.all(np.isfinite(data)) or data.min() < 0.0 or data.max() > 1.0:
        raise ConstructionError("Image values must be finite and in [0, 1]")

    height, width = data.shape[:2]
    offset = num_texels[None]
    if offset + width * height > MAX_TEXELS:
        raise ResourceExhaustionError(
            f"Image of {width}x{height} exceeds the remaining texel capacity "
            f"({MAX_TEXELS - offset} of {MAX_TEXELS})"
        )
    channel_max = tuple(float(c) for c in data.reshape(-1, 3).max(axis=0))
    idx = _store_texture(TextureType.IMAGE, channel_max, channel_max)
    _upload_texels(offset, data.reshape(-1, 3))
    texture_offset[idx] = offset
    texture_width[idx] = width
    texture_height[idx] = height
    num_texels[None] = offset + width * height
    return idx


@ti.kernel
def _copy_texels(offset: ti.i32, values: ti.types.ndarray(dtype=ti.f32, ndim=2)):
    for i in range(values.shape[0]):
        texels[offset + i] = vec3(values[i, 0], values[i, 1], values[i, 2])


def _upload_texels(offset: int, values: npt.NDArray[np.float32]) -> None:
    _copy_texels(offset, np.ascontiguousarray(values))


def add_image_texture(path: str | os.PathLike) -> int:
    """Load an image file with Pillow and register it as a texture.

    Returns:
        The texture id.

    Raises:
        ConstructionError: If the file cannot be read or decoded.
        ResourceExhaustionError: If the texture table or texel pool is full.
    """
    try:
        with Image.open(path) as image:
            pixels = np.asarray(image.convert("RGB"), dtype=np.uint8)
    except (OSError, UnidentifiedImageError) as exc:
        raise ConstructionError(f"Cannot load image texture {os.fspath(path)!r}: {exc}") from exc
    logger.debug("Loaded image texture %s (%dx%d)", path, pixels.shape[1], pixels.shape[0])
    return add_image_texture_array(pixels)


def missing_texture_pixels(size: int = 64, cells: int = 8) -> npt.NDArray[np.uint8]:
    """Magenta and black checkerboard used in place of an unavailable image."""
    yy, xx = np.mgrid[0:size, 0:size] * cells // size
    mask = ((xx + yy) % 2 == 0)[..., None]
    return np.where(mask, np.array([255, 0, 255], dtype=np.uint8), np.uint8(0)).astype(np.uint8)


def clear_textures() -> None:
    num_textures[None] = 0
    num_texels[None] = 0


def get_texture_count() -> int:
    return int(num_textures[None])


def get_texture_max_component(texture_id: int) -> float:
    """Largest color component the texture can return."""
    even = texture_even[texture_id]
    odd = texture_odd[texture_id]
    return float(max(max(even[k], odd[k]) for k in range(3)))


@ti.func
def _perlin_noise(p: vec3) -> ti.f32:
    """Gradient noise in roughly [-1, 1], zero at every lattice point."""
    fl = tm.floor(p)
    f = p - fl
    i = ti.cast(fl.x, ti.i32)
    j = ti.cast(fl.y, ti.i32)
    k = ti.cast(fl.z, ti.i32)
    # Hermite smoothing
    s = f * f * (3.0 - 2.0 * f)
    mask = PERLIN_POINT_COUNT - 1

    accum = 0.0
    for di in ti.static(range(2)):
        for dj in ti.static(range(2)):
            for dk in ti.static(range(2)):
                h = (
                    perlin_perm[0, (i + di) & mask]
                    ^ perlin_perm[1, (j + dj) & mask]
                    ^ perlin_perm[2, (k + dk) & mask]
                )
                weight = f - vec3(di, dj, dk)
                wx = di * s.x + (1 - di) * (1.0 - s.x)
                wy = dj * s.y + (1 - dj) * (1.0 - s.y)
                wz = dk * s.z + (1 - dk) * (1.0 - s.z)
                accum += wx * wy * wz * tm.dot(perlin_vectors[h], weight)
    return accum


@ti.func
def _turbulence(p: vec3, depth: ti.i32) -> ti.f32:
    accum = 0.0
    temp = p
    weight = 1.0
    for _ in range(depth):
        accum += weight * _perlin_noise(temp)
        weight *= 0.5
        temp *= 2.0
    return ti.abs(accum)


@ti.func
def _image_value(texture_id: ti.i32, u: ti.f32, v: ti.f32) -> vec3:
    width = texture_width[texture_id]
    height = texture_height[texture_id]
    uc = tm.clamp(u, 0.0, 1.0)
    # Flip v so that v = 1 is the first (top) row
    vc = 1.0 - tm.clamp(v, 0.0, 1.0)
    i = ti.min(ti.cast(uc * width, ti.i32), width - 1)
    j = ti.min(ti.cast(vc * height, ti.i32), height - 1)
    return texels[texture_offset[texture_id] + j * width + i]


@ti.func
def texture_value(texture_id: ti.i32, u: ti.f32, v: ti.f32, point: vec3) -> vec3:
    """Evaluate a texture at a surface point.

    Args:
        texture_id: Index into the texture table.
        u: Surface texture coordinate.
        v: Surface texture coordinate.
        point: World-space hit point.

    Returns:
        The RGB color.
    """
    color = texture_even[texture_id]
    kind = texture_types[texture_id]
    if kind == int(TextureType.CHECKER):
        s = texture_scale[texture_id]
        sines = ti.sin(s * point.x) * ti.sin(s * point.y) * ti.sin(s * point.z)
        if sines < 0.0:
            color = texture_odd[texture_id]
    elif kind == int(TextureType.NOISE):
        s = texture_scale[texture_id]
        depth = texture_depth[texture_id]
        n = 0.0
        if depth > 0:
            n = 0.5 * (1.0 + ti.sin(s * point.z + 10.0 * _turbulence(point, depth)))
        else:
            n = 0.5 * (1.0 + _perlin_noise(s * point))
        color = tm.clamp(n, 0.0, 1.0) * color
    elif kind == int(TextureType.IMAGE):
        color = _image_value(texture_id, u, v)
    return color
