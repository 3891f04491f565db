"""Scene-level primitive storage and nearest-hit queries.

Primitives live in Taichi fields (Structure of Arrays) uploaded from the
host when the scene is built:

    - spheres: center, radius, material id
    - triangles: three vertices, material id
    - meshes: contiguous ranges [first, first + count) of the triangle store;
      a loose triangle is stored as a one-triangle range

Two queries return the same nearest hit:

    - :func:`intersect_scene` walks the BVH with an explicit stack
    - :func:`intersect_scene_linear` tests every sphere and every mesh range

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from prismtrace.scene.intersection import cast_ray
    >>> # After SceneManager.build():
    >>> hit = cast_ray((0, 0, 0), (0, 0, -1))
"""

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from prismtrace.core.errors import SceneConstructionError
from prismtrace.geometry.aabb import hit_aabb
from prismtrace.geometry.mesh import hit_mesh
from prismtrace.geometry.sphere import HitRecord, Sphere, hit_sphere, miss_record
from prismtrace.geometry.triangle import Triangle, hit_triangle
from prismtrace.scene.bvh import (
    BVH_STACK_SIZE,
    MAX_BVH_PRIMITIVES,
    PrimitiveKind,
    bvh_left,
    bvh_node_max,
    bvh_node_min,
    bvh_prim_count,
    bvh_prim_start,
    bvh_ref_index,
    bvh_ref_kind,
    bvh_right,
    clear_bvh,
    num_bvh_nodes,
)

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3

PRIM_SPHERE = int(PrimitiveKind.SPHERE)
PRIM_TRIANGLE = int(PrimitiveKind.TRIANGLE)


@ti.dataclass
class SceneHitRecord:
    """Record of a ray-scene intersection with material information.

    Attributes:
        hit: 1 if any primitive was hit, 0 otherwise.
        t: Ray parameter of the nearest hit.
        point: Hit point.
        normal: Unit normal, oriented against the incoming ray.
        front_face: 1 if the outside of the surface was hit.
        material_id: Unified material id of the hit primitive (-1 on miss).
        u: First surface parameter.
        v: Second surface parameter.
        prim_kind: PrimitiveKind of the hit primitive (-1 on miss).
        prim_index: Index of the hit primitive in its store (-1 on miss).
    """

    hit: ti.i32
    t: ti.f32
    point: vec3
    normal: vec3
    front_face: ti.i32
    material_id: ti.i32
    u: ti.f32
    v: ti.f32
    prim_kind: ti.i32
    prim_index: ti.i32


# Maximum number of primitives supported in the scene
MAX_SPHERES = 1024
MAX_TRIANGLES = 65536
MAX_MESHES = 65536

assert MAX_SPHERES + MAX_TRIANGLES <= MAX_BVH_PRIMITIVES

# Sphere storage
sphere_centers = ti.Vector.field(3, dtype=ti.f32, shape=MAX_SPHERES)
sphere_radii = ti.field(dtype=ti.f32, shape=MAX_SPHERES)
sphere_material_ids = ti.field(dtype=ti.i32, shape=MAX_SPHERES)
num_spheres = ti.field(dtype=ti.i32, shape=())

# Triangle storage
triangle_v0 = ti.Vector.field(3, dtype=ti.f32, shape=MAX_TRIANGLES)
triangle_v1 = ti.Vector.field(3, dtype=ti.f32, shape=MAX_TRIANGLES)
triangle_v2 = ti.Vector.field(3, dtype=ti.f32, shape=MAX_TRIANGLES)
triangle_material_ids = ti.field(dtype=ti.i32, shape=MAX_TRIANGLES)
num_triangles = ti.field(dtype=ti.i32, shape=())

# Mesh ranges into the triangle storage
mesh_first = ti.field(dtype=ti.i32, shape=MAX_MESHES)
mesh_count = ti.field(dtype=ti.i32, shape=MAX_MESHES)
num_meshes = ti.field(dtype=ti.i32, shape=())


def clear_scene() -> None:
    """Clear all primitives and the uploaded BVH.

    Resets the counts to zero; stale field data is overwritten by the next
    upload.
    """
    num_spheres[None] = 0
    num_triangles[None] = 0
    num_meshes[None] = 0
    clear_bvh()


def _padded(values: npt.ArrayLike, capacity: int, dtype, width: int = 0) -> npt.NDArray:
    arr = np.asarray(values, dtype=dtype)
    if width:
        arr = arr.reshape(-1, width)
        out = np.zeros((capacity, width), dtype=dtype)
    else:
        arr = arr.reshape(-1)
        out = np.zeros(capacity, dtype=dtype)
    out[: arr.shape[0]] = arr
    return out


def load_spheres(
    centers: npt.ArrayLike, radii: npt.ArrayLike, material_ids: npt.ArrayLike
) -> None:
    """Upload n spheres, replacing the current sphere store.

    Raises:
        SceneConstructionError: If more than MAX_SPHERES are given.
    """
    n = int(np.asarray(radii).size)
    if n > MAX_SPHERES:
        raise SceneConstructionError(f"Maximum number of spheres ({MAX_SPHERES}) exceeded: {n}")
    sphere_centers.from_numpy(_padded(centers, MAX_SPHERES, np.float32, width=3))
    sphere_radii.from_numpy(_padded(radii, MAX_SPHERES, np.float32))
    sphere_material_ids.from_numpy(_padded(material_ids, MAX_SPHERES, np.int32))
    num_spheres[None] = n


def load_triangles(
    v0: npt.ArrayLike, v1: npt.ArrayLike, v2: npt.ArrayLike, material_ids: npt.ArrayLike
) -> None:
    """Upload n triangles, replacing the current triangle store.

    Raises:
        SceneConstructionError: If more than MAX_TRIANGLES are given.
    """
    n = int(np.asarray(material_ids).size)
    if n > MAX_TRIANGLES:
        raise SceneConstructionError(
            f"Maximum number of triangles ({MAX_TRIANGLES}) exceeded: {n}"
        )
    triangle_v0.from_numpy(_padded(v0, MAX_TRIANGLES, np.float32, width=3))
    triangle_v1.from_numpy(_padded(v1, MAX_TRIANGLES, np.float32, width=3))
    triangle_v2.from_numpy(_padded(v2, MAX_TRIANGLES, np.float32, width=3))
    triangle_material_ids.from_numpy(_padded(material_ids, MAX_TRIANGLES, np.int32))
    num_triangles[None] = n


def load_mesh_ranges(first: npt.ArrayLike, count: npt.ArrayLike) -> None:
    """Upload the triangle ranges that make up each mesh.

    Raises:
        SceneConstructionError: If more than MAX_MESHES are given.
    """
    n = int(np.asarray(first).size)
    if n > MAX_MESHES:
        raise SceneConstructionError(f"Maximum number of meshes ({MAX_MESHES}) exceeded: {n}")
    mesh_first.from_numpy(_padded(first, MAX_MESHES, np.int32))
    mesh_count.from_numpy(_padded(count, MAX_MESHES, np.int32))
    num_meshes[None] = n


def get_sphere_count() -> int:
    """Get the number of spheres in the scene."""
    return int(num_spheres[None])


def get_triangle_count() -> int:
    """Get the number of triangles in the scene."""
    return int(num_triangles[None])


def get_mesh_count() -> int:
    """Get the number of mesh ranges in the scene."""
    return int(num_meshes[None])


@ti.func
def _to_scene_hit_record(
    rec: HitRecord, material_id: ti.i32, prim_kind: ti.i32, prim_index: ti.i32
) -> SceneHitRecord:
    return SceneHitRecord(
        hit=rec.hit,
        t=rec.t,
        point=rec.point,
        normal=rec.normal,
        front_face=rec.front_face,
        material_id=material_id,
        u=rec.u,
        v=rec.v,
        prim_kind=prim_kind,
        prim_index=prim_index,
    )


@ti.func
def _make_miss_record() -> SceneHitRecord:
    return SceneHitRecord(
        hit=0,
        t=0.0,
        point=vec3(0.0, 0.0, 0.0),
        normal=vec3(0.0, 0.0, 0.0),
        front_face=0,
        material_id=-1,
        u=0.0,
        v=0.0,
        prim_kind=-1,
        prim_index=-1,
    )


@ti.func
def _hit_primitive(
    kind: ti.i32,
    index: ti.i32,
    ray_origin: vec3,
    ray_direction: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
):
    """Intersect one stored primitive; returns (HitRecord, material_id)."""
    rec = miss_record()
    material_id = -1
    if kind == PRIM_SPHERE:
        sphere = Sphere(center=sphere_centers[index], radius=sphere_radii[index])
        rec = hit_sphere(ray_origin, ray_direction, sphere, t_min, t_max)
        material_id = sphere_material_ids[index]
    else:
        tri = Triangle(v0=triangle_v0[index], v1=triangle_v1[index], v2=triangle_v2[index])
        rec = hit_triangle(ray_origin, ray_direction, tri, t_min, t_max)
        material_id = triangle_material_ids[index]
    return rec, material_id


@ti.func
def intersect_scene(
    ray_origin: vec3,
    ray_direction: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
) -> SceneHitRecord:
    """Nearest hit using the BVH.

    Nodes are visited from an explicit stack. A node whose box the ray
    misses within (t_min, closest_t) is skipped; at an interior node the
    farther child is pushed first so the nearer one is visited first, which
    shrinks closest_t early and prunes more of the tree.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray.
        t_min: Lower bound (exclusive) for a valid hit.
        t_max: Upper bound (exclusive) for a valid hit.

    Returns:
        A SceneHitRecord for the nearest intersection, or a miss record.
    """
    closest_t = t_max
    result = _make_miss_record()

    stack = ti.Vector([0 for _ in range(BVH_STACK_SIZE)], dt=ti.i32)
    stack_ptr = 0
    if num_bvh_nodes[None] > 0:
        stack[0] = 0
        stack_ptr = 1

    while stack_ptr > 0:
        stack_ptr -= 1
        node = stack[stack_ptr]

        box_hit, box_t = hit_aabb(
            bvh_node_min[node], bvh_node_max[node], ray_origin, ray_direction, t_min, closest_t
        )
        if box_hit == 1:
            count = bvh_prim_count[node]
            if count > 0:
                start = bvh_prim_start[node]
                for k in range(count):
                    ref = start + k
                    kind = bvh_ref_kind[ref]
                    index = bvh_ref_index[ref]
                    rec, material_id = _hit_primitive(
                        kind, index, ray_origin, ray_direction, t_min, closest_t
                    )
                    if rec.hit == 1:
                        closest_t = rec.t
                        result = _to_scene_hit_record(rec, material_id, kind, index)
            else:
                near = bvh_left[node]
                far = bvh_right[node]
                near_hit, near_t = hit_aabb(
                    bvh_node_min[near], bvh_node_max[near], ray_origin, ray_direction, t_min, closest_t
                )
                far_hit, far_t = hit_aabb(
                    bvh_node_min[far], bvh_node_max[far], ray_origin, ray_direction, t_min, closest_t
                )
                if far_hit == 1 and (near_hit == 0 or far_t < near_t):
                    swap_node = near
                    near = far
                    far = swap_node
                    swap_hit = near_hit
                    near_hit = far_hit
                    far_hit = swap_hit

                if far_hit == 1 and stack_ptr < BVH_STACK_SIZE:
                    stack[stack_ptr] = far
                    stack_ptr += 1
                if near_hit == 1 and stack_ptr < BVH_STACK_SIZE:
                    stack[stack_ptr] = near
                    stack_ptr += 1

    return result


@ti.func
def intersect_scene_linear(
    ray_origin: vec3,
    ray_direction: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
) -> SceneHitRecord:
    """Nearest hit by testing every sphere and every mesh range.

    Reference query for :func:`intersect_scene`; both return the same hit.
    """
    closest_t = t_max
    result = _make_miss_record()

    for i in range(num_spheres[None]):
        sphere = Sphere(center=sphere_centers[i], radius=sphere_radii[i])
        rec = hit_sphere(ray_origin, ray_direction, sphere, t_min, closest_t)
        if rec.hit == 1:
            closest_t = rec.t
            result = _to_scene_hit_record(rec, sphere_material_ids[i], PRIM_SPHERE, i)

    for m in range(num_meshes[None]):
        rec, tri_index = hit_mesh(
            ray_origin,
            ray_direction,
            triangle_v0,
            triangle_v1,
            triangle_v2,
            mesh_first[m],
            mesh_count[m],
            t_min,
            closest_t,
        )
        if rec.hit == 1:
            closest_t = rec.t
            result = _to_scene_hit_record(
                rec, triangle_material_ids[tri_index], PRIM_TRIANGLE, tri_index
            )

    return result


# =============================================================================
# Host-side single ray query
# =============================================================================

_query_result = SceneHitRecord.field(shape=())


@ti.kernel
def _cast_ray_kernel(
    ox: ti.f32,
    oy: ti.f32,
    oz: ti.f32,
    dx: ti.f32,
    dy: ti.f32,
    dz: ti.f32,
    t_min: ti.f32,
    t_max: ti.f32,
    use_bvh: ti.i32,
):
    origin = vec3(ox, oy, oz)
    direction = vec3(dx, dy, dz)
    rec = _make_miss_record()
    if use_bvh == 1:
        rec = intersect_scene(origin, direction, t_min, t_max)
    else:
        rec = intersect_scene_linear(origin, direction, t_min, t_max)
    _query_result[None] = rec


def cast_ray(
    origin,
    direction,
    t_min: float = 0.001,
    t_max: float = 1.0e30,
    use_bvh: bool = True,
) -> dict:
    """Run one nearest-hit query from the host (debugging and tests).

    Returns:
        Dict with keys hit, t, point, normal, front_face, material_id, u, v,
        prim_kind and prim_index.
    """
    _cast_ray_kernel(
        float(origin[0]),
        float(origin[1]),
        float(origin[2]),
        float(direction[0]),
        float(direction[1]),
        float(direction[2]),
        float(t_min),
        float(t_max),
        1 if use_bvh else 0,
    )
    return {
        "hit": int(_query_result.hit[None]),
        "t": float(_query_result.t[None]),
        "point": tuple(float(c) for c in _query_result.point[None].to_numpy()),
        "normal": tuple(float(c) for c in _query_result.normal[None].to_numpy()),
        "front_face": int(_query_result.front_face[None]),
        "material_id": int(_query_result.material_id[None]),
        "u": float(_query_result.u[None]),
        "v": float(_query_result.v[None]),
        "prim_kind": int(_query_result.prim_kind[None]),
        "prim_index": int(_query_result.prim_index[None]),
    }
