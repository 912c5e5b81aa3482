"""Image export utilities for rendered images.

Rendered images are already gamma-corrected and clamped to [0, 1], so
export only quantizes to 8 bits and encodes.

Supported formats:
    - PNG (8-bit RGB via Pillow)

Example:
    >>> from pathtracer.output.export import save_png
    >>> result = render(built, camera, settings)
    >>> save_png(result, "output.png")
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Union

import numpy as np
import numpy.typing as npt
from PIL import Image as PILImage

if TYPE_CHECKING:
    from ..core.pipeline import RenderResult

logger = logging.getLogger(__name__)

ImageSource = Union["RenderResult", npt.NDArray[np.floating]]


def _as_array(image: ImageSource) -> npt.NDArray[np.floating]:
    pixels = getattr(image, "pixels", image)
    array = np.asarray(pixels)
    if array.ndim != 3 or array.shape[2] != 3:
        raise ValueError(f"Expected an image of shape (H, W, 3), got {array.shape}")
    return array


def image_to_uint8(image: ImageSource) -> npt.NDArray[np.uint8]:
    """Convert a [0, 1] float image to uint8.

    Values are clamped to [0, 1], scaled by 255 and truncated.

    Args:
        image: A RenderResult or an array of shape (H, W, 3).

    Returns:
        8-bit image array of shape (H, W, 3).

    Raises:
        ValueError: If the array does not have shape (H, W, 3).
    """
    array = _as_array(image)
    array = np.nan_to_num(array.astype(np.float64), nan=0.0, posinf=1.0, neginf=0.0)
    return (np.clip(array, 0.0, 1.0) * 255.0).astype(np.uint8)


def save_png(image: ImageSource, filepath: str | os.PathLike) -> None:
    """Save a rendered image as an 8-bit RGB PNG.

    Args:
        image: A RenderResult or a [0, 1] float array of shape (H, W, 3),
            top row first.
        filepath: Output file path.

    Raises:
        ValueError: If the array does not have shape (H, W, 3).
        OSError: If the file cannot be written.
    """
    image_uint8 = image_to_uint8(image)
    pil_image = PILImage.fromarray(image_uint8)
    pil_image.save(filepath, format="PNG")
    logger.info(
        "Saved %dx%d image to %s", image_uint8.shape[1], image_uint8.shape[0], filepath
    )


def compute_rmse(
    image_a: npt.NDArray[np.floating[npt.NBitBase]],
    image_b: npt.NDArray[np.floating[npt.NBitBase]],
) -> float:
    """Compute root mean squared error between two images.

    Args:
        image_a: First image array.
        image_b: Second image array (must have same shape as image_a).

    Returns:
        RMSE value (lower is more similar).

    Raises:
        ValueError: If image shapes don't match.
    """
    if image_a.shape != image_b.shape:
        raise ValueError(f"Image shapes must match: {image_a.shape} vs {image_b.shape}")

    diff = image_a.astype(np.float64) - image_b.astype(np.float64)
    return float(np.sqrt(np.mean(diff**2)))
