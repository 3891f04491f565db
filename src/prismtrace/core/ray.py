"""Rays, vector helpers and direction sampling for Taichi kernels.

Everything here is a ``@ti.func``. Random samplers take the RNG state
produced by :mod:`prismtrace.core.sampler` and hand back the advanced state
as their last return value, so each camera sample owns a reproducible stream.

    state = seed_rng(pixel_index, sample_index, seed)
    d, state = random_unit_vector(state)
    ray = make_ray(vec3(0.0), d)
    p = ray_at(ray, 2.5)
"""

import taichi as ti
import taichi.math as tm

from prismtrace.core.sampler import next_float

vec3 = tm.vec3


@ti.dataclass
class Ray:
    """Half-line ``origin + t * direction``.

    Directions produced by the camera and by material scattering are unit
    length; ``cast_ray`` accepts unnormalized ones.
    """

    origin: vec3
    direction: vec3


@ti.func
def ray_at(ray: Ray, t: ti.f32) -> vec3:
    return ray.origin + t * ray.direction


@ti.func
def make_ray(origin: vec3, direction: vec3) -> Ray:
    return Ray(origin=origin, direction=direction)


# =============================================================================
# Vector helpers
# =============================================================================


@ti.func
def length(v: vec3) -> ti.f32:
    return tm.length(v)


@ti.func
def normalize(v: vec3) -> vec3:
    return tm.normalize(v)


@ti.func
def dot(a: vec3, b: vec3) -> ti.f32:
    return tm.dot(a, b)


@ti.func
def cross(a: vec3, b: vec3) -> vec3:
    return tm.cross(a, b)


@ti.func
def reflect(incident: vec3, normal: vec3) -> vec3:
    """Mirror ``incident`` about the plane with unit normal ``normal``."""
    return incident - 2.0 * tm.dot(incident, normal) * normal


@ti.func
def refract(incident: vec3, normal: vec3, eta: ti.f32) -> vec3:
    """Bend a unit direction through an interface by Snell's law.

    Args:
        incident: Unit direction travelling toward the surface.
        normal: Unit normal on the incident side (dot(incident, normal) <= 0).
        eta: eta_i / eta_t, index of the medium being left over the index of
            the medium being entered.

    Returns:
        The transmitted unit direction. Zero when eta * sin(theta_i) > 1
        (total internal reflection); callers normally test for that first.
    """
    cos_i = tm.min(-tm.dot(incident, normal), 1.0)
    sin2_t = eta * eta * (1.0 - cos_i * cos_i)
    transmitted = vec3(0.0, 0.0, 0.0)
    if sin2_t <= 1.0:
        cos_t = ti.sqrt(1.0 - sin2_t)
        transmitted = eta * incident + (eta * cos_i - cos_t) * normal
    return transmitted


@ti.func
def schlick_fresnel(cosine: ti.f32, ref_idx: ti.f32) -> ti.f32:
    """Schlick reflectance ``R0 + (1 - R0)(1 - cosine)^5``.

    ``R0 = ((1 - ref_idx) / (1 + ref_idx))^2``; the formula is symmetric in
    the index ratio, so passing eta or 1/eta gives the same R0.
    """
    r0 = (1.0 - ref_idx) / (1.0 + ref_idx)
    r0 = r0 * r0
    return r0 + (1.0 - r0) * (1.0 - cosine) ** 5


@ti.func
def near_zero(v: vec3) -> ti.i32:
    """1 when every component of v is below 1e-8 in magnitude."""
    eps = 1e-8
    return ti.abs(v.x) < eps and ti.abs(v.y) < eps and ti.abs(v.z) < eps


@ti.func
def is_finite(v: vec3) -> ti.i32:
    """Return 1 if no component of v is NaN or infinite."""
    ok = 1
    for c in ti.static(range(3)):
        if tm.isnan(v[c]) or tm.isinf(v[c]):
            ok = 0
    return ok


# =============================================================================
# Direction sampling
# =============================================================================


@ti.func
def random_unit_vector(state: ti.i32):
    """Uniform direction on the unit sphere.

    Uses the inverse-CDF mapping (z uniform in [-1, 1], phi uniform), which
    consumes exactly two draws.

    Args:
        state: RNG state.

    Returns:
        A tuple (unit_vector, new_state).
    """
    r1, s = next_float(state)
    r2, s = next_float(s)
    z = 1.0 - 2.0 * r1
    r = ti.sqrt(tm.max(0.0, 1.0 - z * z))
    phi = 2.0 * tm.pi * r2
    return vec3(r * ti.cos(phi), r * ti.sin(phi), z), s


@ti.func
def random_in_unit_sphere(state: ti.i32):
    """Uniform point in the unit ball (cube-root radius, three draws).

    Returns:
        A tuple (point, new_state) with length(point) <= 1.
    """
    direction, s = random_unit_vector(state)
    r3, s = next_float(s)
    radius = ti.pow(r3, 1.0 / 3.0)
    return radius * direction, s


@ti.func
def random_on_hemisphere(normal: vec3, state: ti.i32):
    """Uniform direction on the hemisphere around ``normal``.

    Returns:
        A tuple (unit_vector, new_state) with dot(unit_vector, normal) >= 0.
    """
    on_sphere, s = random_unit_vector(state)
    result = on_sphere
    if tm.dot(on_sphere, normal) < 0.0:
        result = -on_sphere
    return result, s


@ti.func
def random_in_unit_disk(state: ti.i32):
    """Uniform point in the unit disk at z = 0, for lens sampling.

    Returns:
        A tuple (point, new_state) with point = (x, y, 0), x^2 + y^2 <= 1.
    """
    r1, s = next_float(state)
    r2, s = next_float(s)
    radius = ti.sqrt(r1)
    phi = 2.0 * tm.pi * r2
    return vec3(radius * ti.cos(phi), radius * ti.sin(phi), 0.0), s
