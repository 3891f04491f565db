"""Geometry module for shape primitives and bounding boxes.

Components:
    sphere: Sphere primitive, HitRecord and ray-sphere intersection
    triangle: Triangle primitive with Moller-Trumbore intersection
    mesh: Host-side triangle meshes and range intersection
    aabb: Axis-aligned bounding boxes and the slab test

Intersection routines are Taichi functions (@ti.func) returning a HitRecord;
validation helpers run on the host and raise SceneConstructionError.
"""

from .aabb import AABB, hit_aabb
from .mesh import Mesh, hit_mesh
from .sphere import HitRecord, Sphere, hit_sphere, miss_record, validate_sphere
from .triangle import Triangle, hit_triangle, triangle_area, triangle_normal, validate_triangle

__all__ = [
    "AABB",
    "hit_aabb",
    "Mesh",
    "hit_mesh",
    "HitRecord",
    "Sphere",
    "hit_sphere",
    "miss_record",
    "validate_sphere",
    "Triangle",
    "hit_triangle",
    "triangle_area",
    "triangle_normal",
    "validate_triangle",
]
