"""Scene storage, acceleration and construction.

Components:
    bvh: host-side BVH build (NumPy) and the node arena fields
    intersection: primitive storage fields and nearest-hit queries
    manager: SceneManager, the host API for materials and primitives
    presets: ready-made scenes

Scene data lives in Structure-of-Arrays Taichi fields with fixed
capacities; SceneManager collects primitives on the host and uploads them,
together with the BVH, in ``build()``.
"""

from .bvh import (
    BVHArena,
    PrimitiveKind,
    build_bvh,
    get_bvh_node_count,
)
from .intersection import (
    MAX_MESHES,
    MAX_SPHERES,
    MAX_TRIANGLES,
    SceneHitRecord,
    cast_ray,
    clear_scene,
    get_mesh_count,
    get_sphere_count,
    get_triangle_count,
    intersect_scene,
    intersect_scene_linear,
)
from .manager import (
    MAX_MATERIALS,
    MaterialInfo,
    MaterialType,
    MeshInfo,
    SceneConfig,
    SceneManager,
    SphereInfo,
    get_material_type,
    get_material_type_index,
)
from .presets import create_prism_scene, create_three_spheres_scene, triangular_prism

__all__ = [
    # BVH
    "BVHArena",
    "PrimitiveKind",
    "build_bvh",
    "get_bvh_node_count",
    # Intersection
    "SceneHitRecord",
    "cast_ray",
    "clear_scene",
    "get_mesh_count",
    "get_sphere_count",
    "get_triangle_count",
    "intersect_scene",
    "intersect_scene_linear",
    "MAX_MESHES",
    "MAX_SPHERES",
    "MAX_TRIANGLES",
    # Manager
    "SceneManager",
    "MaterialType",
    "MaterialInfo",
    "SphereInfo",
    "MeshInfo",
    "SceneConfig",
    "MAX_MATERIALS",
    "get_material_type",
    "get_material_type_index",
    # Presets
    "create_three_spheres_scene",
    "create_prism_scene",
    "triangular_prism",
]
