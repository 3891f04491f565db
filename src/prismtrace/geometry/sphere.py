"""Sphere primitive with robust ray-sphere intersection.

This module provides the Sphere and HitRecord dataclasses and the ray-sphere
intersection function. Roots are computed with the robust quadratic formula
from Ray Tracing Gems to avoid catastrophic cancellation when b^2 is nearly
equal to 4ac.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from prismtrace.geometry.sphere import Sphere, hit_sphere
    >>> sphere = Sphere(center=ti.math.vec3(0, 0, -1), radius=0.5)
    >>> # Use hit_sphere within a Taichi kernel
"""

import math

import taichi as ti
import taichi.math as tm

from prismtrace.core.errors import SceneConstructionError

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3


@ti.dataclass
class Sphere:
    """A sphere defined by center point and radius.

    Attributes:
        center: The center point of the sphere (vec3).
        radius: The radius of the sphere (positive float).
    """

    center: vec3
    radius: ti.f32


@ti.dataclass
class HitRecord:
    """Record of a ray-primitive intersection.

    Attributes:
        hit: Whether the ray intersected the primitive (1 if hit, 0 if miss).
        t: The parameter value along the ray where intersection occurred.
        point: The 3D point where the ray intersected the surface.
        normal: Unit surface normal, oriented against the incoming ray.
        front_face: 1 if the ray hit the outside of the surface, 0 otherwise.
        u: First surface parameter (spherical azimuth or barycentric).
        v: Second surface parameter (spherical polar or barycentric).

    Fields other than ``hit`` are only meaningful when hit == 1.
    """

    hit: ti.i32
    t: ti.f32
    point: vec3
    normal: vec3
    front_face: ti.i32
    u: ti.f32
    v: ti.f32


@ti.func
def _solve_quadratic_robust(h: ti.f32, a: ti.f32, c: ti.f32, sqrt_d: ti.f32):
    """Solve a*t^2 + 2*h*t + c = 0 with the numerically stable formula.

    Returns:
        Tuple of (t0, t1) where t0 <= t1.
    """
    sign_h = ti.select(h < 0.0, -1.0, 1.0)
    q = -(h + sign_h * sqrt_d)

    t0 = 0.0
    t1 = 0.0

    if ti.abs(q) < 1e-10:
        # Tangent ray: fall back to the textbook formula
        t0 = (-h - sqrt_d) / a
        t1 = (-h + sqrt_d) / a
    else:
        t0 = q / a
        t1 = c / q

    if t0 > t1:
        temp = t0
        t0 = t1
        t1 = temp

    return t0, t1


@ti.func
def sphere_uv(outward_normal: vec3):
    """Spherical coordinates of a point on the unit sphere.

    u is the azimuth around the y axis, measured from x = -1, and v the polar
    angle from y = -1, both mapped to [0, 1].

    Returns:
        Tuple of (u, v).
    """
    theta = ti.acos(tm.clamp(-outward_normal.y, -1.0, 1.0))
    phi = ti.atan2(-outward_normal.z, outward_normal.x) + tm.pi
    return phi / (2.0 * tm.pi), theta / tm.pi


@ti.func
def hit_sphere(
    ray_origin: vec3,
    ray_direction: vec3,
    sphere: Sphere,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Test for ray-sphere intersection using robust quadratic formula.

    The intersection is found by solving |O + t*D - C|^2 = r^2, i.e.
    a*t^2 + 2*h*t + c = 0 with

        a = dot(D, D)
        h = dot(D, O - C)  (half of traditional b)
        c = dot(O - C, O - C) - r^2

    The smaller root inside the open interval (t_min, t_max) is taken, else
    the larger one.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray (need not be normalized).
        sphere: The sphere to test intersection against.
        t_min: Lower bound (exclusive) for a valid hit.
        t_max: Upper bound (exclusive) for a valid hit.

    Returns:
        A HitRecord; check the hit field to see if intersection occurred.
    """
    oc = ray_origin - sphere.center

    a = tm.dot(ray_direction, ray_direction)
    h = tm.dot(ray_direction, oc)
    c = tm.dot(oc, oc) - sphere.radius * sphere.radius

    discriminant = h * h - a * c

    # Initialize result fields (Taichi requires outer-scope declaration)
    did_hit = 0
    hit_t = 0.0
    hit_point = vec3(0.0, 0.0, 0.0)
    hit_normal = vec3(0.0, 0.0, 0.0)
    is_front_face = 0
    hit_u = 0.0
    hit_v = 0.0

    if discriminant >= 0.0 and a > 0.0:
        sqrt_d = ti.sqrt(discriminant)
        t0, t1 = _solve_quadratic_robust(h, a, c, sqrt_d)

        t = t0
        valid = (t > t_min) and (t < t_max)

        if not valid:
            t = t1
            valid = (t > t_min) and (t < t_max)

        if valid:
            did_hit = 1
            hit_t = t
            hit_point = ray_origin + t * ray_direction

            outward_normal = tm.normalize(hit_point - sphere.center)
            hit_u, hit_v = sphere_uv(outward_normal)

            if tm.dot(ray_direction, outward_normal) > 0.0:
                # Ray is inside the sphere, hitting back face
                is_front_face = 0
                hit_normal = -outward_normal
            else:
                is_front_face = 1
                hit_normal = outward_normal

    return HitRecord(
        hit=did_hit,
        t=hit_t,
        point=hit_point,
        normal=hit_normal,
        front_face=is_front_face,
        u=hit_u,
        v=hit_v,
    )


def validate_sphere(center, radius: float) -> None:
    """Reject spheres that cannot be rendered.

    Args:
        center: Sphere center as a 3-sequence.
        radius: Sphere radius.

    Raises:
        SceneConstructionError: If the radius is not positive or any value is
            not finite.
    """
    coords = [float(c) for c in center]
    if len(coords) != 3:
        raise SceneConstructionError(f"Sphere center must have 3 components, got {len(coords)}")
    if not all(math.isfinite(c) for c in coords):
        raise SceneConstructionError(f"Sphere center must be finite, got {tuple(coords)}")
    if not math.isfinite(radius) or radius <= 0.0:
        raise SceneConstructionError(f"Sphere radius must be positive, got {radius}")


@ti.func
def miss_record() -> HitRecord:
    """A HitRecord with hit == 0 and every other field zeroed."""
    return HitRecord(
        hit=0,
        t=0.0,
        point=vec3(0.0, 0.0, 0.0),
        normal=vec3(0.0, 0.0, 0.0),
        front_face=0,
        u=0.0,
        v=0.0,
    )
