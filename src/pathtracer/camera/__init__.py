"""Camera module for view and ray generation.

Components:
    camera: Camera parameters and host-side viewport geometry
    thin_lens: Ray generation with depth of field and motion blur

Ray generation uses normalized image coordinates:
    s in [0, 1]: left to right across image
    t in [0, 1]: bottom to top across image

Only the field-free Camera dataclass is imported here. Import thin_lens
directly once the Taichi runtime is initialized.
"""

from .camera import Camera

__all__ = ["Camera"]
