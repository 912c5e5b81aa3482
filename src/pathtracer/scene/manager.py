"""Scene manager: materials, primitives and the build entry point.

The SceneManager is the builder side of a scene. Materials are registered
immediately into the per-type Taichi registries and given a unified material
id; primitives are collected as host-side descriptors. :meth:`SceneManager.build`
then validates every descriptor, computes bounding boxes over the shutter
time range, builds the BVH and uploads everything into the device tables,
returning an immutable :class:`AcceleratedScene` handle.

The device tables are global, so only the most recent build is live. Any
later change through a SceneManager invalidates outstanding handles and the
render entry point refuses them.

Example:
    >>> scene = SceneManager()
    >>> red = scene.add_lambertian_material(albedo=(0.8, 0.1, 0.1))
    >>> light = scene.add_diffuse_light_material(color=(1, 1, 1), intensity=4.0)
    >>> scene.add_sphere(center=(0, 0, -1), radius=0.5, material_id=red)
    >>> scene.add_quad((-1, 2, -2), (2, 0, 0), (0, 0, 2), material_id=light)
    >>> built = scene.build()
"""

import logging
import math
import os
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from ..errors import ConstructionError, ResourceExhaustionError
from ..geometry.aabb import AABB, surrounding_box
from ..geometry.bvh import BVHNode, build_bvh, clear_bvh, flatten_bvh, upload_bvh
from ..geometry.transform import Transform, clear_transforms, register_transform
from ..materials import clear_all_materials
from ..materials.dielectric import add_dielectric_material as _add_dielectric
from ..materials.diffuse_light import add_diffuse_light_material as _add_diffuse_light
from ..materials.isotropic import add_isotropic_material as _add_isotropic
from ..materials.lambertian import add_lambertian_material as _add_lambertian
from ..materials.metal import add_metal_material as _add_metal
from ..materials.textures import (
    add_checker_texture,
    add_image_texture,
    add_image_texture_array,
    add_noise_texture,
    add_solid_texture,
)
from .intersection import (
    MAX_PRIMITIVES,
    PrimitiveType,
    add_primitive,
    clear_scene,
    store_box,
    store_medium,
    store_quad,
    store_sphere,
)
from .primitives import (
    BoxInfo,
    MediumInfo,
    PrimitiveInfo,
    QuadInfo,
    SphereInfo,
    primitive_from_dict,
)

logger = logging.getLogger(__name__)

# Type alias for 3D vectors
vec3 = tm.vec3


class MaterialType(IntEnum):
    """Closed set of material kinds dispatched by the integrator."""

    LAMBERTIAN = 0
    METAL = 1
    DIELECTRIC = 2
    DIFFUSE_LIGHT = 3
    ISOTROPIC = 4


# Maximum number of materials across all types
MAX_MATERIALS = 1024

# material_types[i] stores the MaterialType for material_id i
material_types = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
# material_type_indices[i] stores the type-local index for material_id i
# (e.g., if material_id 5 is the 2nd metal material, material_type_indices[5] = 1)
material_type_indices = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
num_materials = ti.field(dtype=ti.i32, shape=())

# Identifies the live contents of the device tables
_generation = {"live": 0}


def _clear_material_tracking() -> None:
    num_materials[None] = 0


def _bump_generation() -> int:
    _generation["live"] += 1
    return _generation["live"]


def current_generation() -> int:
    return _generation["live"]


@ti.func
def get_material_type(material_id: ti.i32) -> ti.i32:
    """Material type for a unified material id, or -1 if it is invalid."""
    result = -1
    if 0 <= material_id < num_materials[None]:
        result = material_types[material_id]
    return result


@ti.func
def get_material_type_index(material_id: ti.i32) -> ti.i32:
    """Index into the type-specific registry, or -1 if the id is invalid."""
    result = -1
    if 0 <= material_id < num_materials[None]:
        result = material_type_indices[material_id]
    return result


@dataclass
class MaterialInfo:
    """Information about a registered material.

    Attributes:
        material_id: The unified material ID.
        material_type: The kind of material.
        type_index: The index within the type-specific registry.
        params: The parameters as given, used for serialization.
    """

    material_id: int
    material_type: MaterialType
    type_index: int
    params: dict[str, Any]


@dataclass(frozen=True)
class AcceleratedScene:
    """Immutable handle to a built scene.

    Attributes:
        primitive_count: Number of primitives in the table.
        node_count: Number of BVH nodes.
        depth: Depth of the BVH (0 for an empty scene).
        bounds: Box enclosing the whole scene, or None if empty.
        time0: Start of the time range the boxes are valid for.
        time1: End of the time range the boxes are valid for.
        generation: Build identifier, compared against the live tables.
        root: Host copy of the hierarchy.
    """

    primitive_count: int
    node_count: int
    depth: int
    bounds: AABB | None
    time0: float
    time1: float
    generation: int
    root: BVHNode | None = field(default=None, repr=False)

    @property
    def is_empty(self) -> bool:
        return self.primitive_count == 0

    def is_current(self) -> bool:
        """True while the device tables still hold this build."""
        return self.generation == current_generation()

    def ensure_current(self) -> None:
        """Raise ConstructionError if the scene was modified after the build."""
        if not self.is_current():
            raise ConstructionError(
                "Scene was modified or rebuilt after this build; call build() again"
            )


class SceneManager:
    """Builder for scenes: unified material ids plus primitive descriptors.

    Attributes:
        materials: MaterialInfo for every registered material.
        primitives: Primitive descriptors in insertion order.

    Example:
        >>> scene = SceneManager()
        >>> glass = scene.add_dielectric_material(ior=1.5)
        >>> scene.add_sphere((0, 0, -1), 0.5, glass)
        0
        >>> built = scene.build(time0=0.0, time1=1.0)
    """

    def __init__(self) -> None:
        self.materials: list[MaterialInfo] = []
        self.primitives: list[PrimitiveInfo] = []
        self._textures: dict[int, dict[str, Any]] = {}
        self._clear_all()

    def _clear_all(self) -> None:
        clear_scene()
        clear_bvh()
        clear_transforms()
        clear_all_materials()
        _clear_material_tracking()
        self.materials.clear()
        self.primitives.clear()
        self._textures.clear()
        _bump_generation()

    def clear(self) -> None:
        """Clear the entire scene (primitives, materials and device tables)."""
        self._clear_all()

    # =========================================================================
    # Textures
    # =========================================================================

    def add_solid_texture(self, color: tuple[float, float, float]) -> int:
        """Register a constant-color texture and return its texture id."""
        texture_id = add_solid_texture(color)
        self._textures[texture_id] = {"type": "solid", "color": list(color)}
        return texture_id

    def add_checker_texture(
        self,
        even: tuple[float, float, float],
        odd: tuple[float, float, float],
        scale: float = 10.0,
    ) -> int:
        """Register a 3D checker texture and return its texture id."""
        texture_id = add_checker_texture(even, odd, scale)
        self._textures[texture_id] = {
            "type": "checker",
            "even": list(even),
            "odd": list(odd),
            "scale": scale,
        }
        return texture_id

    def add_noise_texture(
        self,
        scale: float = 1.0,
        color: tuple[float, float, float] = (1.0, 1.0, 1.0),
        turbulence: int = 0,
    ) -> int:
        """Register a gradient noise texture and return its texture id."""
        texture_id = add_noise_texture(scale, color, turbulence)
        self._textures[texture_id] = {
            "type": "noise",
            "scale": scale,
            "color": list(color),
            "turbulence": turbulence,
        }
        return texture_id

    def add_image_texture(self, path: str | os.PathLike) -> int:
        """Load an image file and return its texture id.

        Raises:
            ConstructionError: If the file cannot be read or decoded.
        """
        texture_id = add_image_texture(path)
        self._textures[texture_id] = {"type": "image", "path": os.fspath(path)}
        return texture_id

    def add_image_texture_array(self, pixels: npt.ArrayLike) -> int:
        """Register an in-memory (height, width, 3) image and return its texture id."""
        data = np.asarray(pixels)
        texture_id = add_image_texture_array(data)
        self._textures[texture_id] = {"type": "image", "pixels": data.tolist()}
        return texture_id

    def _texture_spec(self, texture_id: int) -> dict[str, Any]:
        if texture_id not in self._textures:
            raise ConstructionError(f"Unknown texture id {texture_id}")
        return self._textures[texture_id]

    def _texture_from_spec(self, spec: dict[str, Any]) -> int:
        kind = spec.get("type")
        if kind == "solid":
            return self.add_solid_texture(tuple(spec["color"]))
        if kind == "checker":
            return self.add_checker_texture(
                tuple(spec["even"]), tuple(spec["odd"]), spec.get("scale", 10.0)
            )
        if kind == "noise":
            return self.add_noise_texture(
                spec.get("scale", 1.0),
                tuple(spec.get("color", (1.0, 1.0, 1.0))),
                spec.get("turbulence", 0),
            )
        if kind == "image":
            if "path" in spec:
                return self.add_image_texture(spec["path"])
            return self.add_image_texture_array(np.asarray(spec["pixels"]))
        raise ConstructionError(f"Unknown texture type: {kind!r}")

    # =========================================================================
    # Material Management
    # =========================================================================

    def _register_material(
        self, material_type: MaterialType, type_index: int, params: dict[str, Any]
    ) -> int:
        material_id = num_materials[None]
        if material_id >= MAX_MATERIALS:
            raise ResourceExhaustionError(
                f"Maximum number of materials ({MAX_MATERIALS}) exceeded"
            )

        material_types[material_id] = int(material_type)
        material_type_indices[material_id] = type_index
        num_materials[None] = material_id + 1

        self.materials.append(
            MaterialInfo(
                material_id=material_id,
                material_type=material_type,
                type_index=type_index,
                params=params,
            )
        )
        _bump_generation()
        return material_id

    def _check_material_capacity(self) -> None:
        if num_materials[None] >= MAX_MATERIALS:
            raise ResourceExhaustionError(
                f"Maximum number of materials ({MAX_MATERIALS}) exceeded"
            )

    def add_lambertian_material(
        self,
        albedo: tuple[float, float, float] | None = None,
        texture_id: int | None = None,
    ) -> int:
        """Add a Lambertian (diffuse) material.

        Args:
            albedo: The diffuse reflectance color as (R, G, B), each in [0, 1].
            texture_id: A texture from add_*_texture() to use instead.

        Returns:
            The unified material ID.

        Raises:
            ConstructionError: If the albedo or texture is invalid.
            ResourceExhaustionError: If a material table is full.
        """
        self._check_material_capacity()
        if texture_id is not None:
            params: dict[str, Any] = {"texture": self._texture_spec(texture_id)}
        else:
            params = {"albedo": None if albedo is None else list(albedo)}
        type_index = _add_lambertian(albedo=albedo, texture_id=texture_id)
        return self._register_material(MaterialType.LAMBERTIAN, type_index, params)

    def add_metal_material(
        self,
        albedo: tuple[float, float, float],
        roughness: float = 0.0,
    ) -> int:
        """Add a metal material.

        Args:
            albedo: The reflective color as (R, G, B), each in [0, 1].
            roughness: Fuzz in [0, 1]; 0 is a perfect mirror.

        Returns:
            The unified material ID.

        Raises:
            ConstructionError: If albedo or roughness is outside [0, 1].
            ResourceExhaustionError: If a material table is full.
        """
        self._check_material_capacity()
        type_index = _add_metal(albedo, roughness)
        return self._register_material(
            MaterialType.METAL, type_index, {"albedo": list(albedo), "roughness": roughness}
        )

    def add_dielectric_material(self, ior: float = 1.5) -> int:
        """Add a dielectric (glass-like) material.

        Raises:
            ConstructionError: If the IOR is below 1.0 or not finite.
            ResourceExhaustionError: If a material table is full.
        """
        self._check_material_capacity()
        type_index = _add_dielectric(ior)
        return self._register_material(MaterialType.DIELECTRIC, type_index, {"ior": ior})

    def add_diffuse_light_material(
        self,
        color: tuple[float, float, float] = (1.0, 1.0, 1.0),
        intensity: float = 1.0,
        one_sided: bool = False,
        texture_id: int | None = None,
    ) -> int:
        """Add an emissive material.

        Args:
            color: Emission color as (R, G, B).
            intensity: Multiplier on the color; 0 turns the light off.
            one_sided: Emit only from the front face.
            texture_id: A texture to use instead of the color.

        Returns:
            The unified material ID.

        Raises:
            ConstructionError: If the color, intensity or texture is invalid.
            ResourceExhaustionError: If a material table is full.
        """
        self._check_material_capacity()
        params: dict[str, Any] = {"intensity": intensity, "one_sided": one_sided}
        if texture_id is not None:
            params["texture"] = self._texture_spec(texture_id)
        else:
            params["color"] = list(color)
        type_index = _add_diffuse_light(
            color=color, intensity=intensity, one_sided=one_sided, texture_id=texture_id
        )
        return self._register_material(MaterialType.DIFFUSE_LIGHT, type_index, params)

    def add_isotropic_material(
        self,
        albedo: tuple[float, float, float] | None = None,
        texture_id: int | None = None,
    ) -> int:
        """Add an isotropic material for participating media.

        Raises:
            ConstructionError: If the albedo or texture is invalid.
            ResourceExhaustionError: If a material table is full.
        """
        self._check_material_capacity()
        if texture_id is not None:
            params: dict[str, Any] = {"texture": self._texture_spec(texture_id)}
        else:
            params = {"albedo": None if albedo is None else list(albedo)}
        type_index = _add_isotropic(albedo=albedo, texture_id=texture_id)
        return self._register_material(MaterialType.ISOTROPIC, type_index, params)

    def get_material_count(self) -> int:
        return int(num_materials[None])

    def get_material_info(self, material_id: int) -> MaterialInfo | None:
        if 0 <= material_id < len(self.materials):
            return self.materials[material_id]
        return None

    def get_material_type_python(self, material_id: int) -> MaterialType | None:
        """Material type for an id (host side), or None if it is invalid."""
        info = self.get_material_info(material_id)
        return None if info is None else info.material_type

    # =========================================================================
    # Primitive Management
    # =========================================================================

    def _check_material_id(self, material_id: int) -> None:
        if not 0 <= material_id < len(self.materials):
            raise ConstructionError(f"Invalid material_id: {material_id}")

    def add_primitive(self, primitive: PrimitiveInfo) -> int:
        """Validate and append a primitive descriptor.

        Returns:
            The primitive index (its row in the primitive table after build).

        Raises:
            ConstructionError: If the descriptor or its material id is invalid.
            ResourceExhaustionError: If MAX_PRIMITIVES would be exceeded.
        """
        if len(self.primitives) >= MAX_PRIMITIVES:
            raise ResourceExhaustionError(
                f"Maximum number of primitives ({MAX_PRIMITIVES}) exceeded"
            )
        self._check_material_id(primitive.material_id)
        primitive.validate()
        self.primitives.append(primitive)
        _bump_generation()
        return len(self.primitives) - 1

    def add_sphere(
        self,
        center: tuple[float, float, float],
        radius: float,
        material_id: int,
        transform: Transform | None = None,
    ) -> int:
        """Add a static sphere.

        Raises:
            ConstructionError: If the center is not finite, the radius is zero,
                or material_id is invalid.
        """
        return self.add_primitive(
            SphereInfo(center=center, radius=radius, material_id=material_id, transform=transform)
        )

    def add_moving_sphere(
        self,
        center0: tuple[float, float, float],
        center1: tuple[float, float, float],
        radius: float,
        material_id: int,
        time0: float = 0.0,
        time1: float = 1.0,
    ) -> int:
        """Add a sphere moving linearly from center0 at time0 to center1 at time1."""
        return self.add_primitive(
            SphereInfo(
                center=center0,
                radius=radius,
                material_id=material_id,
                center_end=center1,
                time0=time0,
                time1=time1,
            )
        )

    def add_quad(
        self,
        corner: tuple[float, float, float],
        edge_u: tuple[float, float, float],
        edge_v: tuple[float, float, float],
        material_id: int,
        transform: Transform | None = None,
    ) -> int:
        """Add a parallelogram with vertices corner, corner+u, corner+v, corner+u+v.

        Raises:
            ConstructionError: If the edges are parallel or material_id is invalid.
        """
        return self.add_primitive(
            QuadInfo(
                corner=corner,
                edge_u=edge_u,
                edge_v=edge_v,
                material_id=material_id,
                transform=transform,
            )
        )

    def add_box(
        self,
        p_min: tuple[float, float, float],
        p_max: tuple[float, float, float],
        material_id: int,
        transform: Transform | None = None,
    ) -> int:
        """Add an axis-aligned box, optionally placed by a transform."""
        return self.add_primitive(
            BoxInfo(p_min=p_min, p_max=p_max, material_id=material_id, transform=transform)
        )

    def add_constant_medium(
        self,
        boundary: SphereInfo | BoxInfo,
        density: float,
        material_id: int,
        transform: Transform | None = None,
    ) -> int:
        """Add a constant-density medium filling a sphere or box boundary."""
        return self.add_primitive(
            MediumInfo(
                boundary=boundary, density=density, material_id=material_id, transform=transform
            )
        )

    # =========================================================================
    # Convenience Methods (add object with material in one call)
    # =========================================================================

    def add_lambertian_sphere(
        self,
        center: tuple[float, float, float],
        radius: float,
        albedo: tuple[float, float, float],
    ) -> tuple[int, int]:
        """Add a sphere with a new Lambertian material.

        Returns:
            Tuple of (primitive_index, material_id).
        """
        material_id = self.add_lambertian_material(albedo)
        return self.add_sphere(center, radius, material_id), material_id

    def add_metal_sphere(
        self,
        center: tuple[float, float, float],
        radius: float,
        albedo: tuple[float, float, float],
        roughness: float = 0.0,
    ) -> tuple[int, int]:
        """Add a sphere with a new metal material.

        Returns:
            Tuple of (primitive_index, material_id).
        """
        material_id = self.add_metal_material(albedo, roughness)
        return self.add_sphere(center, radius, material_id), material_id

    def add_dielectric_sphere(
        self,
        center: tuple[float, float, float],
        radius: float,
        ior: float = 1.5,
    ) -> tuple[int, int]:
        """Add a sphere with a new dielectric material.

        Returns:
            Tuple of (primitive_index, material_id).
        """
        material_id = self.add_dielectric_material(ior)
        return self.add_sphere(center, radius, material_id), material_id

    def add_light_quad(
        self,
        corner: tuple[float, float, float],
        edge_u: tuple[float, float, float],
        edge_v: tuple[float, float, float],
        color: tuple[float, float, float] = (1.0, 1.0, 1.0),
        intensity: float = 1.0,
        one_sided: bool = False,
    ) -> tuple[int, int]:
        """Add a quad area light with a new diffuse light material.

        Returns:
            Tuple of (primitive_index, material_id).
        """
        material_id = self.add_diffuse_light_material(color, intensity, one_sided)
        return self.add_quad(corner, edge_u, edge_v, material_id), material_id

    # =========================================================================
    # Build
    # =========================================================================

    def get_primitive_count(self) -> int:
        return len(self.primitives)

    def build(self, time0: float = 0.0, time1: float = 1.0) -> AcceleratedScene:
        """Upload the primitives and build the BVH.

        Args:
            time0: Start of the shutter interval the scene is rendered over.
            time1: End of the shutter interval. Moving spheres are bounded
                over [time0, time1].

        Returns:
            An immutable handle to the built scene.

        Raises:
            ConstructionError: If the time range or any primitive is invalid.
            ResourceExhaustionError: If a device table overflows.
        """
        if not (math.isfinite(time0) and math.isfinite(time1)) or time1 < time0:
            raise ConstructionError(f"Invalid time range [{time0}, {time1}]")

        for primitive in self.primitives:
            self._check_material_id(primitive.material_id)
            primitive.validate()

        boxes = [p.bounding_box(time0, time1) for p in self.primitives]

        clear_scene()
        clear_transforms()
        clear_bvh()

        transform_ids: dict[int, int] = {}
        for primitive in self.primitives:
            xf_id = -1
            if primitive.transform is not None:
                key = id(primitive.transform)
                if key not in transform_ids:
                    transform_ids[key] = register_transform(primitive.transform)
                xf_id = transform_ids[key]
            prim_type, shape_index = _store_shape(primitive)
            add_primitive(prim_type, shape_index, primitive.material_id, xf_id)

        root = build_bvh(boxes)
        flat = flatten_bvh(root)
        upload_bvh(flat)

        generation = _bump_generation()
        built = AcceleratedScene(
            primitive_count=len(self.primitives),
            node_count=flat.node_count,
            depth=0 if root is None else root.depth(),
            bounds=None if root is None else surrounding_box(boxes),
            time0=time0,
            time1=time1,
            generation=generation,
            root=root,
        )
        logger.info(
            "Built scene: %d primitives, %d BVH nodes, depth %d",
            built.primitive_count,
            built.node_count,
            built.depth,
        )
        return built

    # =========================================================================
    # Scene Serialization
    # =========================================================================

    def to_dict(self) -> dict[str, Any]:
        """Export materials and primitives to plain data."""
        return {
            "materials": [
                {"type": m.material_type.name.lower(), **m.params} for m in self.materials
            ],
            "primitives": [p.to_dict() for p in self.primitives],
        }

    def from_dict(self, data: dict[str, Any]) -> None:
        """Replace the scene with the contents of :meth:`to_dict` output.

        Raises:
            ConstructionError: If the data contains unknown types or invalid
                parameters.
        """
        self.clear()

        for mat in data.get("materials", []):
            kind = mat.get("type", "").lower()
            texture_id = None
            if "texture" in mat:
                texture_id = self._texture_from_spec(mat["texture"])
            if kind == "lambertian":
                albedo = mat.get("albedo")
                self.add_lambertian_material(
                    None if albedo is None else tuple(albedo), texture_id
                )
            elif kind == "metal":
                self.add_metal_material(tuple(mat["albedo"]), mat.get("roughness", 0.0))
            elif kind == "dielectric":
                self.add_dielectric_material(mat.get("ior", 1.5))
            elif kind == "diffuse_light":
                self.add_diffuse_light_material(
                    tuple(mat.get("color", (1.0, 1.0, 1.0))),
                    mat.get("intensity", 1.0),
                    mat.get("one_sided", False),
                    texture_id,
                )
            elif kind == "isotropic":
                albedo = mat.get("albedo")
                self.add_isotropic_material(
                    None if albedo is None else tuple(albedo), texture_id
                )
            else:
                raise ConstructionError(f"Unknown material type: {kind!r}")

        for prim in data.get("primitives", []):
            self.add_primitive(primitive_from_dict(prim))

    # =========================================================================
    # Capacity Information
    # =========================================================================

    @staticmethod
    def get_max_primitives() -> int:
        return MAX_PRIMITIVES

    @staticmethod
    def get_max_materials() -> int:
        return MAX_MATERIALS


def _store_boundary(boundary: SphereInfo | BoxInfo) -> tuple[PrimitiveType, int]:
    if isinstance(boundary, SphereInfo):
        return PrimitiveType.SPHERE, _store_sphere_info(boundary)
    return PrimitiveType.BOX, store_box(boundary.p_min, boundary.p_max)


def _store_sphere_info(sphere: SphereInfo) -> int:
    if sphere.is_moving:
        return store_sphere(
            sphere.center, sphere.radius, sphere.center_end, sphere.time0, sphere.time1
        )
    return store_sphere(sphere.center, sphere.radius)


def _store_shape(primitive: PrimitiveInfo) -> tuple[PrimitiveType, int]:
    """Write a descriptor's shape data and return (type, shape row)."""
    if isinstance(primitive, SphereInfo):
        return PrimitiveType.SPHERE, _store_sphere_info(primitive)
    if isinstance(primitive, QuadInfo):
        return PrimitiveType.QUAD, store_quad(
            primitive.corner, primitive.edge_u, primitive.edge_v
        )
    if isinstance(primitive, BoxInfo):
        return PrimitiveType.BOX, store_box(primitive.p_min, primitive.p_max)
    if isinstance(primitive, MediumInfo):
        boundary_type, boundary_index = _store_boundary(primitive.boundary)
        return PrimitiveType.MEDIUM, store_medium(
            boundary_type, boundary_index, primitive.density
        )
    raise ConstructionError(f"Unsupported primitive: {type(primitive).__name__}")
