"""Axis-aligned bounding boxes.

The host-side :class:`AABB` is used while building the BVH; :func:`hit_aabb`
is the slab test run against the uploaded node boxes during traversal.
"""

from dataclasses import dataclass

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

vec3 = tm.vec3

# Boxes thinner than this along an axis are padded (flat triangles, planes)
MIN_BOX_THICKNESS = 1e-4

# Direction components smaller than this are treated as this value in the slab test
SLAB_EPSILON = 1e-12


@dataclass
class AABB:
    """Axis-aligned box given by its minimum and maximum corners."""

    minimum: npt.NDArray[np.float64]
    maximum: npt.NDArray[np.float64]

    @classmethod
    def from_points(cls, points: npt.ArrayLike) -> "AABB":
        """Smallest box containing every point of an (n, 3) array."""
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        return cls(pts.min(axis=0), pts.max(axis=0))

    @classmethod
    def empty(cls) -> "AABB":
        return cls(np.full(3, np.inf), np.full(3, -np.inf))

    @staticmethod
    def surrounding_box(box0: "AABB", box1: "AABB") -> "AABB":
        return AABB(np.minimum(box0.minimum, box1.minimum), np.maximum(box0.maximum, box1.maximum))

    def padded(self, min_thickness: float = MIN_BOX_THICKNESS) -> "AABB":
        """Return a copy grown symmetrically so no axis is thinner than min_thickness."""
        extent = self.maximum - self.minimum
        grow = np.where(extent < min_thickness, 0.5 * (min_thickness - extent), 0.0)
        return AABB(self.minimum - grow, self.maximum + grow)

    @property
    def centroid(self) -> npt.NDArray[np.float64]:
        return 0.5 * (self.minimum + self.maximum)

    def surface_area(self) -> float:
        d = np.maximum(self.maximum - self.minimum, 0.0)
        return float(2.0 * (d[0] * d[1] + d[0] * d[2] + d[1] * d[2]))

    def contains(self, other: "AABB", tolerance: float = 0.0) -> bool:
        """True if other lies entirely inside this box."""
        return bool(
            np.all(other.minimum >= self.minimum - tolerance)
            and np.all(other.maximum <= self.maximum + tolerance)
        )


@ti.func
def hit_aabb(
    box_min: vec3,
    box_max: vec3,
    ray_origin: vec3,
    ray_direction: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
):
    """Slab test of a ray against a box.

    Direction components close to zero are replaced by a tiny value of the
    same sign, so axis-parallel rays never divide by zero.

    Args:
        box_min: Minimum corner of the box.
        box_max: Maximum corner of the box.
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray.
        t_min: Start of the ray interval.
        t_max: End of the ray interval (usually the closest hit so far).

    Returns:
        Tuple (hit, t_enter): hit is 1 if the ray overlaps the box inside
        [t_min, t_max], t_enter the parameter where it enters the box.
    """
    t_lo = t_min
    t_hi = t_max
    hit = 1

    for axis in ti.static(range(3)):
        d = ray_direction[axis]
        if ti.abs(d) < SLAB_EPSILON:
            d = ti.select(d < 0.0, -SLAB_EPSILON, SLAB_EPSILON)
        inv_d = 1.0 / d
        ta = (box_min[axis] - ray_origin[axis]) * inv_d
        tb = (box_max[axis] - ray_origin[axis]) * inv_d

        t_lo = tm.max(tm.min(ta, tb), t_lo)
        t_hi = tm.min(tm.max(ta, tb), t_hi)

        if t_hi < t_lo:
            hit = 0

    return hit, t_lo
