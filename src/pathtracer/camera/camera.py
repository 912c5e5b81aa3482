"""Camera parameters.

A :class:`Camera` describes a thin-lens perspective camera placed with
look-at vectors. The viewport geometry is derived on the host with NumPy;
:func:`pathtracer.camera.thin_lens.setup_camera` uploads it for the kernels.

The camera basis (u, v, w) follows the usual convention:
    w: points from lookat toward lookfrom (opposite the view direction)
    u: points right in the image plane
    v: points up in the image plane

Example:
    >>> camera = Camera(lookfrom=(13, 2, 3), lookat=(0, 0, 0), vfov=20.0, aperture=0.1)
    >>> camera.focus_distance
    13.490737563232042
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from ..errors import ConstructionError

Vec3 = tuple[float, float, float]


@dataclass
class Camera:
    """Configuration for a thin-lens camera.

    Attributes:
        lookfrom: Camera position in world space.
        lookat: Point the camera looks at.
        vup: Up direction used to orient the camera.
        vfov: Vertical field of view in degrees, in (0, 180).
        aperture: Lens diameter. 0 gives a pinhole camera.
        focus_dist: Distance to the plane in focus. Defaults to the
            distance between lookfrom and lookat.
        shutter_open: Time the shutter opens.
        shutter_close: Time the shutter closes. Equal to shutter_open for
            no motion blur.
        background: Radiance returned by rays that leave the scene. With
            background_top set, this is the color at the bottom of the sky.
        background_top: Color at the top of a vertical sky gradient, or None
            for a constant background.
    """

    lookfrom: Vec3
    lookat: Vec3
    vup: Vec3 = (0.0, 1.0, 0.0)
    vfov: float = 40.0
    aperture: float = 0.0
    focus_dist: float | None = None
    shutter_open: float = 0.0
    shutter_close: float = 0.0
    background: Vec3 = (0.0, 0.0, 0.0)
    background_top: Vec3 | None = None

    def validate(self) -> None:
        """Check the camera parameters.

        Raises:
            ConstructionError: If a vector is not finite, the view direction
                is degenerate or parallel to vup, or a scalar is out of range.
        """
        vectors = [self.lookfrom, self.lookat, self.vup, self.background]
        if self.background_top is not None:
            vectors.append(self.background_top)
        for vec in vectors:
            if len(vec) != 3 or not all(math.isfinite(c) for c in vec):
                raise ConstructionError(f"Camera vector must be 3 finite values, got {vec}")

        view = np.subtract(self.lookat, self.lookfrom)
        if float(np.dot(view, view)) <= 0.0:
            raise ConstructionError("Camera lookfrom and lookat must differ")
        if float(np.linalg.norm(np.cross(self.vup, view))) <= 1e-12:
            raise ConstructionError("Camera vup must not be parallel to the view direction")

        if not 0.0 < self.vfov < 180.0:
            raise ConstructionError(f"vfov must be in (0, 180) degrees, got {self.vfov}")
        if not math.isfinite(self.aperture) or self.aperture < 0.0:
            raise ConstructionError(f"Aperture must be non-negative, got {self.aperture}")
        if self.focus_dist is not None and not (
            math.isfinite(self.focus_dist) and self.focus_dist > 0.0
        ):
            raise ConstructionError(f"focus_dist must be positive, got {self.focus_dist}")
        if not (math.isfinite(self.shutter_open) and math.isfinite(self.shutter_close)):
            raise ConstructionError("Shutter times must be finite")
        if self.shutter_close < self.shutter_open:
            raise ConstructionError(
                f"shutter_close ({self.shutter_close}) is before shutter_open "
                f"({self.shutter_open})"
            )
        if min(self.background) < 0.0 or (
            self.background_top is not None and min(self.background_top) < 0.0
        ):
            raise ConstructionError("Background color must be non-negative")

    @property
    def focus_distance(self) -> float:
        if self.focus_dist is not None:
            return float(self.focus_dist)
        return float(np.linalg.norm(np.subtract(self.lookfrom, self.lookat)))

    @property
    def has_motion_blur(self) -> bool:
        return self.shutter_close > self.shutter_open

    def basis(self) -> tuple[npt.NDArray[np.float64], ...]:
        """Return the orthonormal camera basis (u, v, w)."""
        lookfrom = np.asarray(self.lookfrom, dtype=np.float64)
        lookat = np.asarray(self.lookat, dtype=np.float64)
        vup = np.asarray(self.vup, dtype=np.float64)

        w = lookfrom - lookat
        w = w / np.linalg.norm(w)
        u = np.cross(vup, w)
        u = u / np.linalg.norm(u)
        v = np.cross(w, u)
        return u, v, w

    def viewport(self, aspect_ratio: float) -> dict[str, npt.NDArray[np.float64]]:
        """Compute the focus-plane viewport for an image aspect ratio.

        Returns:
            Dictionary with origin, u, v, w, horizontal, vertical and
            lower_left (the lower-left corner of the viewport).
        """
        h = math.tan(math.radians(self.vfov) / 2.0)
        viewport_height = 2.0 * h
        viewport_width = aspect_ratio * viewport_height

        u, v, w = self.basis()
        origin = np.asarray(self.lookfrom, dtype=np.float64)
        focus = self.focus_distance

        horizontal = focus * viewport_width * u
        vertical = focus * viewport_height * v
        lower_left = origin - horizontal / 2.0 - vertical / 2.0 - focus * w
        return {
            "origin": origin,
            "u": u,
            "v": v,
            "w": w,
            "horizontal": horizontal,
            "vertical": vertical,
            "lower_left": lower_left,
        }

    def to_dict(self) -> dict:
        return {
            "lookfrom": list(self.lookfrom),
            "lookat": list(self.lookat),
            "vup": list(self.vup),
            "vfov": self.vfov,
            "aperture": self.aperture,
            "focus_dist": self.focus_dist,
            "shutter_open": self.shutter_open,
            "shutter_close": self.shutter_close,
            "background": list(self.background),
            "background_top": None if self.background_top is None else list(self.background_top),
        }
