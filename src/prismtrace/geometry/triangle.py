"""Triangle primitive with Moller-Trumbore intersection.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from prismtrace.geometry.triangle import Triangle, hit_triangle
    >>> tri = Triangle(
    ...     v0=ti.math.vec3(-1, -1, -2),
    ...     v1=ti.math.vec3(1, -1, -2),
    ...     v2=ti.math.vec3(0, 1, -2),
    ... )
    >>> # Use hit_triangle within a Taichi kernel
"""

import math

import numpy as np
import taichi as ti
import taichi.math as tm

from prismtrace.core.errors import SceneConstructionError
from prismtrace.geometry.sphere import HitRecord

vec3 = tm.vec3

# |det| at or below this fraction of |edge1| |edge2| |direction| counts as a
# ray parallel to the triangle plane (sine of the grazing angle)
PARALLEL_EPSILON = 1e-8

# Triangles with a smaller area are rejected at scene construction
MIN_TRIANGLE_AREA = 1e-12


@ti.dataclass
class Triangle:
    """A triangle given by its three vertices (counter-clockwise is the front)."""

    v0: vec3
    v1: vec3
    v2: vec3


@ti.func
def hit_triangle(
    ray_origin: vec3,
    ray_direction: vec3,
    tri: Triangle,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Test for ray-triangle intersection using the Moller-Trumbore algorithm.

    The geometric normal is normalize(cross(v1 - v0, v2 - v0)); it is flipped
    to face the incoming ray and ``front_face`` records which side was hit.
    The surface parameters (u, v) are the barycentric weights of v1 and v2.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray.
        tri: The triangle to test.
        t_min: Lower bound (exclusive) for a valid hit.
        t_max: Upper bound (exclusive) for a valid hit.

    Returns:
        A HitRecord; check the hit field to see if intersection occurred.
    """
    edge1 = tri.v1 - tri.v0
    edge2 = tri.v2 - tri.v0
    h = tm.cross(ray_direction, edge2)
    det = tm.dot(edge1, h)

    did_hit = 0
    hit_t = 0.0
    hit_point = vec3(0.0, 0.0, 0.0)
    hit_normal = vec3(0.0, 0.0, 0.0)
    is_front_face = 0
    bary_u = 0.0
    bary_v = 0.0

    scale = tm.length(edge1) * tm.length(edge2) * tm.length(ray_direction)

    if ti.abs(det) > PARALLEL_EPSILON * scale:
        inv_det = 1.0 / det
        s = ray_origin - tri.v0
        u = inv_det * tm.dot(s, h)

        if u >= 0.0 and u <= 1.0:
            q = tm.cross(s, edge1)
            v = inv_det * tm.dot(ray_direction, q)

            if v >= 0.0 and u + v <= 1.0:
                t = inv_det * tm.dot(edge2, q)

                if t > t_min and t < t_max:
                    did_hit = 1
                    hit_t = t
                    hit_point = ray_origin + t * ray_direction
                    bary_u = u
                    bary_v = v

                    outward_normal = tm.normalize(tm.cross(edge1, edge2))
                    if tm.dot(ray_direction, outward_normal) > 0.0:
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
        u=bary_u,
        v=bary_v,
    )


def triangle_area(v0, v1, v2) -> float:
    """Area of a triangle from three 3-sequences (host side)."""
    a = np.asarray(v0, dtype=np.float64)
    b = np.asarray(v1, dtype=np.float64)
    c = np.asarray(v2, dtype=np.float64)
    return float(0.5 * np.linalg.norm(np.cross(b - a, c - a)))


def triangle_normal(v0, v1, v2) -> tuple[float, float, float]:
    """Unit geometric normal normalize(cross(v1 - v0, v2 - v0)) (host side)."""
    a = np.asarray(v0, dtype=np.float64)
    n = np.cross(np.asarray(v1, dtype=np.float64) - a, np.asarray(v2, dtype=np.float64) - a)
    norm = np.linalg.norm(n)
    if norm == 0.0:
        return (0.0, 0.0, 0.0)
    n = n / norm
    return (float(n[0]), float(n[1]), float(n[2]))


def validate_triangle(v0, v1, v2) -> None:
    """Reject triangles that cannot be rendered.

    Raises:
        SceneConstructionError: If a vertex is not a finite 3-vector or the
            triangle is degenerate (zero area).
    """
    for name, vertex in (("v0", v0), ("v1", v1), ("v2", v2)):
        coords = [float(c) for c in vertex]
        if len(coords) != 3:
            raise SceneConstructionError(f"Triangle vertex {name} must have 3 components")
        if not all(math.isfinite(c) for c in coords):
            raise SceneConstructionError(f"Triangle vertex {name} must be finite, got {tuple(coords)}")
    area = triangle_area(v0, v1, v2)
    if area < MIN_TRIANGLE_AREA:
        raise SceneConstructionError(f"Triangle is degenerate (area {area:.3g})")
