"""Lambertian (ideal diffuse) material implementation.

Scattered directions are normal + random_unit_vector(), which is distributed
proportionally to the cosine of the angle from the normal. With that sampling
the BRDF (albedo / pi), the cosine term and the pdf (cos / pi) cancel, so the
attenuation of every scattered ray is exactly the albedo.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from prismtrace.materials.lambertian import scatter_lambertian
    >>> # Use within a Taichi kernel:
    >>> # direction, attenuation, did_scatter, state = scatter_lambertian(
    >>> #     albedo, normal, state
    >>> # )
"""

import taichi as ti
import taichi.math as tm

from prismtrace.core.errors import SceneConstructionError
from prismtrace.core.ray import near_zero, random_unit_vector

# Type alias for 3D vectors
vec3 = tm.vec3


@ti.func
def scatter_lambertian(albedo: vec3, normal: vec3, state: ti.i32):
    """Sample a scattered ray direction for Lambertian material.

    Args:
        albedo: The diffuse reflectance color (RGB, each component in [0, 1]).
        normal: The surface normal at the hit point, facing the incoming ray.
        state: RNG state.

    Returns:
        A tuple of (scattered_direction, attenuation, did_scatter, state):
        - scattered_direction: Unit direction in the hemisphere of the normal.
        - attenuation: The albedo.
        - did_scatter: Always 1; diffuse surfaces never absorb the path.
        - state: The advanced RNG state.
    """
    offset, s = random_unit_vector(state)
    direction = normal + offset

    # The random vector can cancel the normal almost exactly
    if near_zero(direction):
        direction = normal

    return tm.normalize(direction), albedo, 1, s


# =============================================================================
# Material Field Storage (for scene-level material management)
# =============================================================================

# Maximum number of Lambertian materials in the scene
MAX_LAMBERTIAN_MATERIALS = 256

# Storage for Lambertian material properties
lambertian_albedos = ti.Vector.field(3, dtype=ti.f32, shape=MAX_LAMBERTIAN_MATERIALS)
num_lambertian_materials = ti.field(dtype=ti.i32, shape=())


def validate_albedo(albedo) -> tuple[float, float, float]:
    """Check an RGB albedo and return it as a float triple.

    Raises:
        SceneConstructionError: If it does not have three components in [0, 1].
    """
    values = tuple(float(c) for c in albedo)
    if len(values) != 3:
        raise SceneConstructionError(f"Albedo must have 3 components, got {len(values)}")
    for i, component in enumerate(values):
        if not 0.0 <= component <= 1.0:
            raise SceneConstructionError(
                f"Albedo component {i} = {component} is outside [0, 1]. "
                "This would violate energy conservation."
            )
    return values


def clear_lambertian_materials() -> None:
    """Clear all Lambertian materials."""
    num_lambertian_materials[None] = 0


def add_lambertian_material(albedo: tuple[float, float, float]) -> int:
    """Add a Lambertian material to the material registry.

    Args:
        albedo: The diffuse reflectance color as (R, G, B), each in [0, 1].

    Returns:
        The index of the added material.

    Raises:
        SceneConstructionError: If the albedo is invalid or the registry is full.
    """
    r, g, b = validate_albedo(albedo)

    idx = num_lambertian_materials[None]
    if idx >= MAX_LAMBERTIAN_MATERIALS:
        raise SceneConstructionError(
            f"Maximum number of Lambertian materials ({MAX_LAMBERTIAN_MATERIALS}) exceeded"
        )

    lambertian_albedos[idx] = vec3(r, g, b)
    num_lambertian_materials[None] = idx + 1
    return idx


def get_lambertian_material_count() -> int:
    """Get the number of Lambertian materials in the registry."""
    return int(num_lambertian_materials[None])


@ti.func
def get_lambertian_albedo(material_idx: ti.i32) -> vec3:
    return lambertian_albedos[material_idx]


@ti.func
def scatter_lambertian_by_id(material_idx: ti.i32, normal: vec3, state: ti.i32):
    """Scatter off the registered Lambertian material at material_idx.

    Returns:
        A tuple of (scattered_direction, attenuation, did_scatter, state).
    """
    albedo = get_lambertian_albedo(material_idx)
    return scatter_lambertian(albedo, normal, state)
