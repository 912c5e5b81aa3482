"""Materials module for scattering and emission models.

Components:
    lambertian: Ideal diffuse reflection with cosine-weighted sampling
    metal: Specular reflection with roughness (fuzz)
    dielectric: Glass-like reflection/refraction with Schlick reflectance
    diffuse_light: Emissive surfaces that never scatter
    isotropic: Uniform scattering inside participating media
    textures: Solid and checker textures referenced by materials

Each material type keeps its parameters in a fixed-capacity Taichi field
registry with ``add_*``/``clear_*``/``get_*_count`` host functions. The
scene manager maps unified material ids onto (type, registry index).

Every scatter function takes and returns the generator state, so a path's
random sequence is fully determined by its seed.
"""

from .dielectric import (
    add_dielectric_material,
    clear_dielectric_materials,
    get_dielectric_ior,
    get_dielectric_material_count,
    scatter_dielectric,
    scatter_dielectric_by_id,
)
from .diffuse_light import (
    add_diffuse_light_material,
    clear_diffuse_light_materials,
    emit_diffuse_light,
    get_diffuse_light_material_count,
)
from .isotropic import (
    add_isotropic_material,
    clear_isotropic_materials,
    get_isotropic_material_count,
    scatter_isotropic,
    scatter_isotropic_by_id,
)
from .lambertian import (
    add_lambertian_material,
    clear_lambertian_materials,
    get_lambertian_albedo,
    get_lambertian_material_count,
    get_lambertian_texture,
    scatter_lambertian,
    scatter_lambertian_by_id,
)
from .metal import (
    add_metal_material,
    clear_metal_materials,
    get_metal_albedo,
    get_metal_material_count,
    get_metal_roughness,
    scatter_metal,
    scatter_metal_by_id,
)
from .textures import (
    TextureType,
    add_checker_texture,
    add_image_texture,
    add_image_texture_array,
    add_noise_texture,
    add_solid_texture,
    clear_textures,
    get_texture_count,
    texture_value,
)


def clear_all_materials() -> None:
    """Reset every material registry and the texture table."""
    clear_lambertian_materials()
    clear_metal_materials()
    clear_dielectric_materials()
    clear_diffuse_light_materials()
    clear_isotropic_materials()
    clear_textures()


__all__ = [
    "clear_all_materials",
    # Lambertian
    "scatter_lambertian",
    "scatter_lambertian_by_id",
    "add_lambertian_material",
    "clear_lambertian_materials",
    "get_lambertian_material_count",
    "get_lambertian_albedo",
    "get_lambertian_texture",
    # Metal
    "scatter_metal",
    "scatter_metal_by_id",
    "add_metal_material",
    "clear_metal_materials",
    "get_metal_material_count",
    "get_metal_albedo",
    "get_metal_roughness",
    # Dielectric
    "scatter_dielectric",
    "scatter_dielectric_by_id",
    "add_dielectric_material",
    "clear_dielectric_materials",
    "get_dielectric_material_count",
    "get_dielectric_ior",
    # Diffuse light
    "add_diffuse_light_material",
    "clear_diffuse_light_materials",
    "emit_diffuse_light",
    "get_diffuse_light_material_count",
    # Isotropic
    "add_isotropic_material",
    "clear_isotropic_materials",
    "get_isotropic_material_count",
    "scatter_isotropic",
    "scatter_isotropic_by_id",
    # Textures
    "TextureType",
    "add_solid_texture",
    "add_checker_texture",
    "add_noise_texture",
    "add_image_texture",
    "add_image_texture_array",
    "clear_textures",
    "get_texture_count",
    "texture_value",
]
