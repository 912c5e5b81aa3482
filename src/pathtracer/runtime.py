"""Taichi runtime initialization.

Taichi owns the worker pool: on the CPU backend, every kernel's outermost
loop is split across a fixed number of threads chosen at ``ti.init`` time.
The runtime can only be initialized once per process without invalidating
every field, so the pool size is fixed by the first call.

Modules that declare Taichi fields (materials, scene tables, BVH, camera,
integrator) must be imported after :func:`init_runtime`.

Example:
    >>> from pathtracer.runtime import init_runtime
    >>> init_runtime(workers=4)
    >>> from pathtracer.scene.manager import SceneManager
"""

import logging
import os

import taichi as ti

from .errors import ResourceExhaustionError

logger = logging.getLogger(__name__)

_state = {"initialized": False, "workers": 0, "debug": False}


def init_runtime(workers: int | None = None, debug: bool = False) -> int:
    """Initialize Taichi on the CPU backend with a fixed worker pool.

    Fast math is disabled so that infinities and NaNs propagate as IEEE
    values and non-finite samples can be detected.

    Calling this again is a no-op. If a different worker count is requested
    after initialization, a warning is logged and the existing pool is kept.

    Args:
        workers: Number of worker threads. Defaults to ``os.cpu_count()``.
        debug: Enable Taichi debug mode (bounds checking).

    Returns:
        The number of worker threads in the pool.

    Raises:
        ValueError: If workers is less than 1.
        ResourceExhaustionError: If the Taichi runtime cannot be created.
    """
    if workers is None:
        workers = os.cpu_count() or 1
    if workers < 1:
        raise ValueError(f"workers must be at least 1, got {workers}")

    if _state["initialized"]:
        if workers != _state["workers"]:
            logger.warning(
                "Taichi runtime already initialized with %d workers; "
                "ignoring request for %d",
                _state["workers"],
                workers,
            )
        return _state["workers"]

    try:
        ti.init(
            arch=ti.cpu,
            cpu_max_num_threads=workers,
            debug=debug,
            default_fp=ti.f32,
            fast_math=False,
            random_seed=0,
        )
    except Exception as exc:
        raise ResourceExhaustionError(
            f"Failed to initialize Taichi CPU runtime with {workers} workers"
        ) from exc

    _state.update(initialized=True, workers=workers, debug=debug)
    logger.info("Taichi CPU runtime initialized with %d workers", workers)
    return workers


def is_initialized() -> bool:
    """Return True once :func:`init_runtime` has succeeded."""
    return _state["initialized"]


def worker_count() -> int:
    """Return the worker pool size, or 0 before initialization."""
    return _state["workers"]
