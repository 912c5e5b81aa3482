"""Render configuration.

Settings are plain dataclasses validated on construction, so an invalid
configuration fails before any Taichi work is launched.

Example:
    >>> settings = RenderSettings(width=320, height=180, samples_per_pixel=64)
    >>> settings.aspect_ratio
    1.7777777777777777
"""

from dataclasses import asdict, dataclass

# Render target capacity. Buffers are preallocated at this size so kernels
# are compiled once regardless of the requested resolution.
MAX_IMAGE_WIDTH = 2048
MAX_IMAGE_HEIGHT = 2048

DEFAULT_SAMPLES_PER_PIXEL = 100
DEFAULT_MAX_DEPTH = 50
DEFAULT_TILE_SIZE = 32

# Seeds are passed to kernels as i32.
MAX_SEED = 2**31 - 1


@dataclass
class RenderSettings:
    """Image and sampling parameters for a render.

    Attributes:
        width: Image width in pixels.
        height: Image height in pixels.
        samples_per_pixel: Number of paths traced per pixel.
        max_depth: Maximum number of path segments. Paths still alive after
            this many segments contribute nothing further.
        seed: Global seed. Each sample's random stream is derived from this
            seed, the pixel index and the sample index.
        tile_size: Edge length of the square tiles dispatched per kernel
            launch. Cancellation and progress are checked between tiles.
        russian_roulette_depth: If set, paths may be terminated
            probabilistically after this many bounces (with energy
            compensation). ``None`` uses the hard depth cap only.
        workers: Requested worker count. The Taichi thread pool is sized
            when the runtime is first initialized and cannot
            change afterwards; a different count is logged and ignored.

    Raises:
        ValueError: If any parameter is out of range.
    """

    width: int
    height: int
    samples_per_pixel: int = DEFAULT_SAMPLES_PER_PIXEL
    max_depth: int = DEFAULT_MAX_DEPTH
    seed: int = 0
    tile_size: int = DEFAULT_TILE_SIZE
    russian_roulette_depth: int | None = None
    workers: int | None = None

    def __post_init__(self):
        if self.width < 1 or self.height < 1:
            raise ValueError(
                f"Image dimensions must be positive, got {self.width}x{self.height}"
            )
        if self.width > MAX_IMAGE_WIDTH or self.height > MAX_IMAGE_HEIGHT:
            raise ValueError(
                f"Image dimensions {self.width}x{self.height} exceed maximum "
                f"{MAX_IMAGE_WIDTH}x{MAX_IMAGE_HEIGHT}"
            )
        if self.samples_per_pixel < 1:
            raise ValueError(
                f"samples_per_pixel must be at least 1, got {self.samples_per_pixel}"
            )
        if self.max_depth < 1:
            raise ValueError(f"max_depth must be at least 1, got {self.max_depth}")
        if not 0 <= self.seed <= MAX_SEED:
            raise ValueError(f"seed must be in [0, {MAX_SEED}], got {self.seed}")
        if self.tile_size < 1:
            raise ValueError(f"tile_size must be at least 1, got {self.tile_size}")
        if self.russian_roulette_depth is not None and self.russian_roulette_depth < 0:
            raise ValueError(
                "russian_roulette_depth must be non-negative, "
                f"got {self.russian_roulette_depth}"
            )
        if self.workers is not None and self.workers < 1:
            raise ValueError(f"workers must be at least 1, got {self.workers}")

    @property
    def aspect_ratio(self) -> float:
        """Width divided by height."""
        return self.width / self.height

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    def to_dict(self) -> dict:
        return asdict(self)
