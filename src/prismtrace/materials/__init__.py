"""Materials module for the three physical scattering models.

Components:
    lambertian: Ideal diffuse reflection
    metal: Specular reflection with optional fuzz
    dielectric: Glass-like refraction with Schlick Fresnel and optional
        Cauchy dispersion

Every scatter function takes an RNG state and returns
(scattered_direction, attenuation, did_scatter, state). Parameters live in
per-type registries (Taichi fields) filled from the host with the
``add_*_material`` functions.
"""

from .dielectric import (
    add_cauchy_material,
    add_dielectric_material,
    clear_dielectric_materials,
    get_dielectric_ior_at,
    get_dielectric_material_count,
    is_dispersive,
    scatter_dielectric,
    scatter_dielectric_by_id,
    validate_dielectric,
)
from .lambertian import (
    add_lambertian_material,
    clear_lambertian_materials,
    get_lambertian_albedo,
    get_lambertian_material_count,
    scatter_lambertian,
    scatter_lambertian_by_id,
    validate_albedo,
)
from .metal import (
    add_metal_material,
    clear_metal_materials,
    get_metal_albedo,
    get_metal_fuzz,
    get_metal_material_count,
    scatter_metal,
    scatter_metal_by_id,
)

__all__ = [
    # Lambertian
    "add_lambertian_material",
    "clear_lambertian_materials",
    "get_lambertian_albedo",
    "get_lambertian_material_count",
    "scatter_lambertian",
    "scatter_lambertian_by_id",
    "validate_albedo",
    # Metal
    "add_metal_material",
    "clear_metal_materials",
    "get_metal_albedo",
    "get_metal_fuzz",
    "get_metal_material_count",
    "scatter_metal",
    "scatter_metal_by_id",
    # Dielectric
    "add_cauchy_material",
    "add_dielectric_material",
    "clear_dielectric_materials",
    "get_dielectric_ior_at",
    "get_dielectric_material_count",
    "is_dispersive",
    "scatter_dielectric",
    "scatter_dielectric_by_id",
    "validate_dielectric",
]
