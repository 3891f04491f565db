"""Dielectric (glass/water) material implementation.

Key physics:
    - Snell's law for refraction: n1 * sin(theta1) = n2 * sin(theta2)
    - Schlick's approximation for Fresnel reflectance
    - Total internal reflection when sin(theta_t) > 1

The material randomly chooses between reflection and refraction based on
the Fresnel reflectance probability, which increases at grazing angles.

A dielectric may also be dispersive. Its index then follows Cauchy's
equation n(lambda) = ior + dispersion / lambda_um^2, evaluated at the
wavelength carried by the path (see :mod:`prismtrace.core.spectral`).

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from prismtrace.materials.dielectric import scatter_dielectric
    >>> # Use within a Taichi kernel:
    >>> # direction, attenuation, did_scatter, state = scatter_dielectric(
    >>> #     ior, incident_dir, normal, front_face, state
    >>> # )
"""

import math

import taichi as ti
import taichi.math as tm

from prismtrace.core.errors import SceneConstructionError
from prismtrace.core.ray import reflect, refract, schlick_fresnel
from prismtrace.core.sampler import next_float
from prismtrace.core.spectral import (
    WAVELENGTH_MAX,
    WAVELENGTH_MIN,
    CauchyDispersion,
    cauchy_ior,
)

# Type alias for 3D vectors
vec3 = tm.vec3


@ti.func
def scatter_dielectric(
    ior: ti.f32,
    incident_direction: vec3,
    normal: vec3,
    front_face: ti.i32,
    state: ti.i32,
):
    """Compute scattered ray direction for dielectric material.

    Args:
        ior: Index of refraction of the material (at the path's wavelength).
        incident_direction: The incoming ray direction.
        normal: The surface normal, facing the incoming ray.
        front_face: 1 if ray is hitting the outside of the surface,
            0 if ray is inside the material hitting from within.
        state: RNG state.

    Returns:
        A tuple of (scattered_direction, attenuation, did_scatter, state):
        - scattered_direction: The reflected or refracted direction (normalized).
        - attenuation: White; clear dielectrics absorb nothing.
        - did_scatter: Always 1 for dielectrics.
        - state: The advanced RNG state.
    """
    attenuation = vec3(1.0, 1.0, 1.0)
    unit_direction = tm.normalize(incident_direction)

    # Entering: eta_i / eta_t = 1 / ior; leaving: ior / 1
    refraction_ratio = 1.0 / ior
    if front_face == 0:
        refraction_ratio = ior

    cos_theta = tm.min(-tm.dot(unit_direction, normal), 1.0)
    sin_theta = tm.sqrt(tm.max(0.0, 1.0 - cos_theta * cos_theta))

    cannot_refract = refraction_ratio * sin_theta > 1.0
    reflectance = schlick_fresnel(cos_theta, refraction_ratio)

    # Always draw, so the path consumes the same number of values either way
    r, s = next_float(state)

    scattered_direction = vec3(0.0, 0.0, 0.0)
    if cannot_refract or r < reflectance:
        scattered_direction = reflect(unit_direction, normal)
    else:
        scattered_direction = refract(unit_direction, normal, refraction_ratio)

    return tm.normalize(scattered_direction), attenuation, 1, s


# =============================================================================
# Material Field Storage (for scene-level material management)
# =============================================================================

# Maximum number of dielectric materials in the scene
MAX_DIELECTRIC_MATERIALS = 256

# Storage for dielectric material properties
dielectric_iors = ti.field(dtype=ti.f32, shape=MAX_DIELECTRIC_MATERIALS)
dielectric_dispersions = ti.field(dtype=ti.f32, shape=MAX_DIELECTRIC_MATERIALS)
num_dielectric_materials = ti.field(dtype=ti.i32, shape=())


def clear_dielectric_materials() -> None:
    """Clear all dielectric materials."""
    num_dielectric_materials[None] = 0


def validate_dielectric(ior: float, dispersion: float = 0.0) -> None:
    """Check dielectric parameters.

    Raises:
        SceneConstructionError: If the index is not positive, the dispersion
            is not finite, or the Cauchy index drops to zero or below
            anywhere in the visible range.
    """
    if not math.isfinite(ior) or ior <= 0.0:
        raise SceneConstructionError(
            f"Index of refraction = {ior} must be a positive finite number."
        )
    if not math.isfinite(dispersion):
        raise SceneConstructionError(f"Dispersion coefficient = {dispersion} is not finite.")
    if dispersion != 0.0:
        lo, _ = CauchyDispersion(ior, dispersion).ior_range()
        if lo <= 0.0:
            raise SceneConstructionError(
                f"Cauchy index ({ior}, {dispersion}) is not positive over "
                f"[{WAVELENGTH_MIN:.0f}, {WAVELENGTH_MAX:.0f}] nm."
            )


def add_dielectric_material(ior: float = 1.5, dispersion: float = 0.0) -> int:
    """Add a dielectric material to the material registry.

    Args:
        ior: Index of refraction (> 0). Default is 1.5 (typical glass).
            For a dispersive material this is the Cauchy A term.
        dispersion: Cauchy B coefficient in square micrometres. 0 gives a
            wavelength-independent index.

    Returns:
        The index of the added material.

    Raises:
        SceneConstructionError: If the parameters are invalid or the registry
            is full.
    """
    ior = float(ior)
    dispersion = float(dispersion)
    validate_dielectric(ior, dispersion)

    idx = num_dielectric_materials[None]
    if idx >= MAX_DIELECTRIC_MATERIALS:
        raise SceneConstructionError(
            f"Maximum number of dielectric materials ({MAX_DIELECTRIC_MATERIALS}) exceeded"
        )

    dielectric_iors[idx] = ior
    dielectric_dispersions[idx] = dispersion
    num_dielectric_materials[None] = idx + 1
    return idx


def add_cauchy_material(curve: CauchyDispersion) -> int:
    """Add a dispersive dielectric from a Cauchy curve (e.g. a preset)."""
    return add_dielectric_material(curve.a, curve.b)


def get_dielectric_material_count() -> int:
    """Get the number of dielectric materials in the registry."""
    return int(num_dielectric_materials[None])


@ti.func
def is_dispersive(material_idx: ti.i32) -> ti.i32:
    """1 if the material's index depends on wavelength."""
    return dielectric_dispersions[material_idx] != 0.0


@ti.func
def get_dielectric_ior_at(material_idx: ti.i32, wavelength_nm: ti.f32) -> ti.f32:
    """Index of refraction of a registered material at a wavelength."""
    return cauchy_ior(dielectric_iors[material_idx], dielectric_dispersions[material_idx], wavelength_nm)


@ti.func
def scatter_dielectric_by_id(
    material_idx: ti.i32,
    incident_direction: vec3,
    normal: vec3,
    front_face: ti.i32,
    wavelength_nm: ti.f32,
    state: ti.i32,
):
    """Scatter off the registered dielectric at material_idx.

    Args:
        material_idx: The index of the material in the registry.
        incident_direction: The incoming ray direction.
        normal: The surface normal, facing the incoming ray.
        front_face: 1 if hitting the outside of the surface.
        wavelength_nm: Wavelength of the path in nanometres.
        state: RNG state.

    Returns:
        A tuple of (scattered_direction, attenuation, did_scatter, state).
    """
    ior = get_dielectric_ior_at(material_idx, wavelength_nm)
    return scatter_dielectric(ior, incident_direction, normal, front_face, state)
