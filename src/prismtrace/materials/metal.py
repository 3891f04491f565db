"""Metal (specular reflective) material implementation.

Perfect metals (fuzz = 0) reflect like a mirror:

    R = I - 2(I . N)N

Fuzzy metals add a random offset, fuzz * random_in_unit_sphere(), to the
unit reflected direction, spreading reflections within a cone. A perturbed
direction that ends up below the surface is absorbed.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from prismtrace.materials.metal import scatter_metal
    >>> # Use within a Taichi kernel:
    >>> # direction, attenuation, did_scatter, state = scatter_metal(
    >>> #     albedo, fuzz, incident_dir, normal, state
    >>> # )
"""

import math

import taichi as ti
import taichi.math as tm

from prismtrace.core.errors import SceneConstructionError
from prismtrace.core.ray import random_in_unit_sphere, reflect
from prismtrace.materials.lambertian import validate_albedo

# Type alias for 3D vectors
vec3 = tm.vec3


@ti.func
def scatter_metal(
    albedo: vec3,
    fuzz: ti.f32,
    incident_direction: vec3,
    normal: vec3,
    state: ti.i32,
):
    """Compute scattered ray direction for metal material.

    Args:
        albedo: The reflective color (RGB, each component in [0, 1]).
        fuzz: Perturbation radius in [0, 1]. 0 = perfect mirror.
        incident_direction: The incoming ray direction.
        normal: The surface normal, facing the incoming ray.
        state: RNG state.

    Returns:
        A tuple of (scattered_direction, attenuation, did_scatter, state):
        - scattered_direction: The reflected direction (normalized), or zero
          if absorbed.
        - attenuation: The albedo.
        - did_scatter: 1 if the ray left above the surface, 0 if absorbed.
        - state: The advanced RNG state.
    """
    reflected = tm.normalize(reflect(incident_direction, normal))

    offset, s = random_in_unit_sphere(state)
    scattered_direction = reflected
    if fuzz > 0.0:
        scattered_direction = tm.normalize(reflected + fuzz * offset)

    did_scatter = 1
    if tm.dot(scattered_direction, normal) <= 0.0:
        did_scatter = 0
        scattered_direction = vec3(0.0, 0.0, 0.0)

    return scattered_direction, albedo, did_scatter, s


# =============================================================================
# Material Field Storage (for scene-level material management)
# =============================================================================

# Maximum number of metal materials in the scene
MAX_METAL_MATERIALS = 256

# Storage for metal material properties
metal_albedos = ti.Vector.field(3, dtype=ti.f32, shape=MAX_METAL_MATERIALS)
metal_fuzzes = ti.field(dtype=ti.f32, shape=MAX_METAL_MATERIALS)
num_metal_materials = ti.field(dtype=ti.i32, shape=())


def clear_metal_materials() -> None:
    """Clear all metal materials."""
    num_metal_materials[None] = 0


def add_metal_material(
    albedo: tuple[float, float, float],
    fuzz: float = 0.0,
) -> int:
    """Add a metal material to the material registry.

    Args:
        albedo: The reflective color as (R, G, B), each in [0, 1].
        fuzz: Perturbation radius in [0, 1]. Default is 0 (perfect mirror).

    Returns:
        The index of the added material.

    Raises:
        SceneConstructionError: If albedo or fuzz is out of range, or the
            registry is full.
    """
    r, g, b = validate_albedo(albedo)

    fuzz = float(fuzz)
    if not math.isfinite(fuzz) or fuzz < 0.0 or fuzz > 1.0:
        raise SceneConstructionError(
            f"Fuzz = {fuzz} is outside [0, 1]. "
            "Fuzz must be between 0 (perfect mirror) and 1 (maximum fuzz)."
        )

    idx = num_metal_materials[None]
    if idx >= MAX_METAL_MATERIALS:
        raise SceneConstructionError(
            f"Maximum number of metal materials ({MAX_METAL_MATERIALS}) exceeded"
        )

    metal_albedos[idx] = vec3(r, g, b)
    metal_fuzzes[idx] = fuzz
    num_metal_materials[None] = idx + 1
    return idx


def get_metal_material_count() -> int:
    """Get the number of metal materials in the registry."""
    return int(num_metal_materials[None])


@ti.func
def get_metal_albedo(material_idx: ti.i32) -> vec3:
    return metal_albedos[material_idx]


@ti.func
def get_metal_fuzz(material_idx: ti.i32) -> ti.f32:
    return metal_fuzzes[material_idx]


@ti.func
def scatter_metal_by_id(
    material_idx: ti.i32,
    incident_direction: vec3,
    normal: vec3,
    state: ti.i32,
):
    """Scatter off the registered metal material at material_idx.

    Returns:
        A tuple of (scattered_direction, attenuation, did_scatter, state).
    """
    albedo = get_metal_albedo(material_idx)
    fuzz = get_metal_fuzz(material_idx)
    return scatter_metal(albedo, fuzz, incident_direction, normal, state)
