"""Tiled render pipeline with progress, cancellation and progressive passes.

The image is split into square tiles. Each tile is one kernel launch whose
outer loop Taichi spreads across its CPU worker pool, one pixel per loop
iteration. Between tiles the host checks the cancel token and reports
progress, so cancellation takes effect at tile granularity.

Results are bit-identical for a given seed whatever the tile size, worker
count, or split of samples into passes.

Example:
    >>> from pathtracer.core.pipeline import Renderer, render
    >>> result = render(built, camera, RenderSettings(width=64, height=64, samples_per_pixel=16))
    >>> result.pixels.shape
    (64, 64, 3)
    >>>
    >>> renderer = Renderer(built, camera, settings)
    >>> for done in renderer.render_passes(batch=8):
    ...     preview = renderer.get_result()
"""

import logging
import time
from collections.abc import Callable, Generator, Iterator
from dataclasses import dataclass
from typing import Protocol

import numpy as np
import numpy.typing as npt

from ..camera.camera import Camera
from ..camera.thin_lens import setup_camera
from ..config import RenderSettings
from ..errors import RenderCancelledError
from ..runtime import init_runtime, worker_count
from ..scene.manager import AcceleratedScene
from .integrator import (
    RR_DISABLED,
    clear_render_target,
    get_anomaly_count,
    get_finalized_image,
    render_tile,
    setup_render_target,
)

logger = logging.getLogger(__name__)

# Callback receives (completed_pixels, total_pixels)
ProgressCallback = Callable[[int, int], None]


class CancelToken(Protocol):
    """Anything with an ``is_set()`` method, e.g. ``threading.Event``."""

    def is_set(self) -> bool: ...


@dataclass(frozen=True)
class RenderResult:
    """A finalized image.

    Attributes:
        pixels: Array of shape (height, width, 3), float32, top row first,
            gamma-corrected and clamped to [0, 1].
        samples_per_pixel: Samples averaged into every pixel.
        anomalies: Non-finite samples that were replaced by black.
        elapsed: Wall-clock seconds spent tracing.
    """

    pixels: npt.NDArray[np.float32]
    samples_per_pixel: int
    anomalies: int = 0
    elapsed: float = 0.0

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    def to_uint8(self) -> npt.NDArray[np.uint8]:
        """Convert to 8-bit by truncating ``pixel * 255``."""
        return (self.pixels * 255.0).astype(np.uint8)


def iter_tiles(width: int, height: int, tile_size: int) -> Iterator[tuple[int, int, int, int]]:
    """Yield (x0, y0, tile_w, tile_h) covering the image, edge tiles clipped."""
    for y0 in range(0, height, tile_size):
        for x0 in range(0, width, tile_size):
            yield x0, y0, min(tile_size, width - x0), min(tile_size, height - y0)


class Renderer:
    """Accumulates samples for one scene, camera and settings.

    The renderer owns the global render target while it is in use. Samples
    are numbered from 0 per pixel, and every pass continues where the last
    one stopped, so several passes produce the same image as one pass with
    the same total.

    Attributes:
        scene: The built scene.
        camera: Camera parameters.
        settings: Image and sampling parameters.
        workers: Size of the worker pool the render actually runs on.
    """

    def __init__(
        self, scene: AcceleratedScene, camera: Camera, settings: RenderSettings
    ) -> None:
        """Set up the camera and render target.

        Raises:
            ConstructionError: If the scene was modified after it was built,
                or the camera parameters are invalid.
            ResourceExhaustionError: If the image exceeds the buffer size.
        """
        scene.ensure_current()
        self.scene = scene
        self.camera = camera
        self.settings = settings

        # Warns and keeps the existing pool if the counts differ
        self.workers = worker_count() if settings.workers is None else init_runtime(settings.workers)
        if camera.shutter_open < scene.time0 or camera.shutter_close > scene.time1:
            logger.warning(
                "Camera shutter [%g, %g] extends past the scene build range [%g, %g]",
                camera.shutter_open,
                camera.shutter_close,
                scene.time0,
                scene.time1,
            )

        setup_camera(camera, settings.aspect_ratio)
        setup_render_target(settings.width, settings.height)
        self._samples_done = 0
        self._elapsed = 0.0

    @property
    def sample_count(self) -> int:
        """Samples accumulated per pixel so far."""
        return self._samples_done

    @property
    def is_complete(self) -> bool:
        return self._samples_done >= self.settings.samples_per_pixel

    def reset(self) -> None:
        """Discard accumulated samples; the next pass restarts at sample 0."""
        clear_render_target()
        self._samples_done = 0
        self._elapsed = 0.0

    def _render_pass(
        self,
        count: int,
        progress: ProgressCallback | None,
        cancel: CancelToken | None,
    ) -> None:
        self.scene.ensure_current()
        settings = self.settings
        total = settings.pixel_count
        rr_depth = (
            RR_DISABLED
            if settings.russian_roulette_depth is None
            else settings.russian_roulette_depth
        )

        completed = 0
        start = time.perf_counter()
        for x0, y0, tile_w, tile_h in iter_tiles(
            settings.width, settings.height, settings.tile_size
        ):
            if cancel is not None and cancel.is_set():
                # A partial pass leaves pixels with unequal sample counts
                self.reset()
                logger.info("Render cancelled after %d/%d pixels", completed, total)
                raise RenderCancelledError(completed, total)

            render_tile(
                x0,
                y0,
                tile_w,
                tile_h,
                settings.width,
                settings.height,
                self._samples_done,
                count,
                settings.seed,
                settings.max_depth,
                rr_depth,
            )
            completed += tile_w * tile_h
            logger.debug("Tile (%d, %d) done: %d/%d pixels", x0, y0, completed, total)
            if progress is not None:
                progress(completed, total)

        self._elapsed += time.perf_counter() - start
        self._samples_done += count

    def render(
        self,
        progress: ProgressCallback | None = None,
        cancel: CancelToken | None = None,
    ) -> RenderResult:
        """Render the remaining samples up to settings.samples_per_pixel.

        Args:
            progress: Called after each tile with (completed, total) pixels.
            cancel: Checked before each tile.

        Returns:
            The finalized image.

        Raises:
            RenderCancelledError: If the cancel token was set. The
                accumulated samples are discarded.
            ConstructionError: If the scene was modified after it was built.
        """
        settings = self.settings
        logger.info(
            "Rendering %dx%d at %d spp (max depth %d)",
            settings.width,
            settings.height,
            settings.samples_per_pixel,
            settings.max_depth,
        )
        remaining = settings.samples_per_pixel - self._samples_done
        if remaining > 0:
            self._render_pass(remaining, progress, cancel)

        result = self.get_result()
        logger.info("Render finished in %.2fs", result.elapsed)
        return result

    def render_passes(
        self,
        batch: int = 1,
        progress: ProgressCallback | None = None,
        cancel: CancelToken | None = None,
    ) -> Generator[int, None, None]:
        """Render in passes of ``batch`` samples, yielding after each pass.

        Useful for progressive preview: call :meth:`get_result` between
        passes to see the image refine.

        Yields:
            The number of samples per pixel accumulated so far.

        Raises:
            ValueError: If batch is less than 1.
            RenderCancelledError: If the cancel token was set.
        """
        if batch < 1:
            raise ValueError(f"batch must be at least 1, got {batch}")

        while not self.is_complete:
            count = min(batch, self.settings.samples_per_pixel - self._samples_done)
            self._render_pass(count, progress, cancel)
            yield self._samples_done

    def get_result(self) -> RenderResult:
        """Finalize the samples accumulated so far."""
        anomalies = get_anomaly_count()
        if anomalies:
            logger.warning("Replaced %d non-finite samples with black", anomalies)
        return RenderResult(
            pixels=get_finalized_image(),
            samples_per_pixel=self._samples_done,
            anomalies=anomalies,
            elapsed=self._elapsed,
        )

    def __repr__(self) -> str:
        return (
            f"Renderer(width={self.settings.width}, height={self.settings.height}, "
            f"samples={self._samples_done}/{self.settings.samples_per_pixel})"
        )


def render(
    scene: AcceleratedScene,
    camera: Camera,
    settings: RenderSettings,
    progress: ProgressCallback | None = None,
    cancel: CancelToken | None = None,
) -> RenderResult:
    """Render a built scene in one go.

    The worker pool is fixed when the Taichi runtime is first initialized,
    which happens before any scene can be built. ``settings.workers`` is
    therefore honored only if it matches the pool passed to
    :func:`~pathtracer.runtime.init_runtime`; otherwise a warning is logged
    and the existing pool is used. The image does not depend on the pool
    size.

    Args:
        scene: Handle returned by SceneManager.build().
        camera: Camera parameters.
        settings: Image and sampling parameters.
        progress: Called after each tile with (completed, total) pixels.
        cancel: Object with ``is_set()``, checked before each tile.

    Returns:
        The finalized image.

    Raises:
        ConstructionError: If the scene is stale or the camera is invalid.
        RenderCancelledError: If the cancel token was set.
    """
    return Renderer(scene, camera, settings).render(progress=progress, cancel=cancel)
