"""Exception hierarchy for the path tracer.

Construction problems are reported as ``ConstructionError`` (a ``ValueError``)
when a scene or material is registered or built. Capacity and runtime
problems are reported as ``ResourceExhaustionError`` (a ``RuntimeError``)
before any rendering work starts.

Numeric anomalies met while tracing (zero-length or NaN scatter directions,
non-finite samples) are not exceptions: the integrator treats them as
absorption or replaces the sample with black, and the pipeline counts them.
"""


class PathTracerError(Exception):
    """Base class for all path tracer errors."""


class ConstructionError(PathTracerError, ValueError):
    """Malformed or degenerate scene input.

    Raised for non-finite coordinates, degenerate primitives that cannot be
    padded, out-of-range material parameters, unknown material or texture
    ids, and scenes that were modified after being built.
    """


class ResourceExhaustionError(PathTracerError, RuntimeError):
    """Runtime initialization failed or a fixed-capacity table is full."""


class RenderCancelledError(PathTracerError):
    """Rendering was aborted at a tile boundary.

    Attributes:
        completed_pixels: Number of pixels fully sampled before cancellation.
        total_pixels: Number of pixels in the image.
    """

    def __init__(self, completed_pixels: int, total_pixels: int):
        super().__init__(
            f"Render cancelled after {completed_pixels}/{total_pixels} pixels"
        )
        self.completed_pixels = completed_pixels
        self.total_pixels = total_pixels
