"""Triangle meshes.

A mesh is a list of triangles that share one material. On the host it is a
NumPy array of shape (n, 3, 3) (triangle, vertex, xyz); once the scene is
built its triangles occupy a contiguous range of the scene's triangle store,
and :func:`hit_mesh` tests that range.

Parsing mesh files is left to the caller: :meth:`Mesh.from_triangles` takes
the flat list of vertex triples a loader would produce.
"""

from dataclasses import dataclass

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from prismtrace.core.errors import SceneConstructionError
from prismtrace.geometry.aabb import AABB
from prismtrace.geometry.sphere import miss_record
from prismtrace.geometry.triangle import Triangle, hit_triangle, validate_triangle

vec3 = tm.vec3


@dataclass
class Mesh:
    """Host-side triangle mesh.

    Attributes:
        vertices: Array of shape (n, 3, 3) holding the three vertices of each
            triangle.
    """

    vertices: npt.NDArray[np.float64]

    @classmethod
    def from_triangles(cls, triangles) -> "Mesh":
        """Build a mesh from a sequence of (v0, v1, v2) vertex triples.

        Accepts anything that reshapes to (n, 3, 3): a list of triples of
        3-sequences, or a flat list of 9n floats.

        Raises:
            SceneConstructionError: If the input is empty, has the wrong
                shape or contains a degenerate triangle.
        """
        try:
            data = np.asarray(triangles, dtype=np.float64)
        except (TypeError, ValueError) as exc:
            raise SceneConstructionError(f"Mesh triangles are not numeric: {exc}") from exc
        if data.size == 0:
            raise SceneConstructionError("Mesh must contain at least one triangle")
        if data.size % 9 != 0:
            raise SceneConstructionError(
                f"Mesh data must hold 9 floats per triangle, got {data.size} values"
            )
        mesh = cls(data.reshape(-1, 3, 3))
        mesh.validate()
        return mesh

    def __len__(self) -> int:
        return int(self.vertices.shape[0])

    def validate(self) -> None:
        """Check every triangle (see :func:`validate_triangle`)."""
        if len(self) == 0:
            raise SceneConstructionError("Mesh must contain at least one triangle")
        for i, (v0, v1, v2) in enumerate(self.vertices):
            try:
                validate_triangle(v0, v1, v2)
            except SceneConstructionError as exc:
                raise SceneConstructionError(f"Mesh triangle {i}: {exc}") from exc

    def bounding_box(self) -> AABB:
        return AABB.from_points(self.vertices)

    def translated(self, offset) -> "Mesh":
        """Return a copy moved by offset."""
        return Mesh(self.vertices + np.asarray(offset, dtype=np.float64))

    def scaled(self, factor: float) -> "Mesh":
        """Return a copy scaled about the origin."""
        return Mesh(self.vertices * float(factor))


@ti.func
def hit_mesh(
    ray_origin: vec3,
    ray_direction: vec3,
    tri_v0: ti.template(),
    tri_v1: ti.template(),
    tri_v2: ti.template(),
    first: ti.i32,
    count: ti.i32,
    t_min: ti.f32,
    t_max: ti.f32,
):
    """Closest hit among a contiguous range of stored triangles.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray.
        tri_v0: Vertex field holding the first vertex of every triangle.
        tri_v1: Vertex field holding the second vertex of every triangle.
        tri_v2: Vertex field holding the third vertex of every triangle.
        first: Index of the mesh's first triangle in the fields.
        count: Number of triangles in the mesh.
        t_min: Lower bound (exclusive) for a valid hit.
        t_max: Upper bound (exclusive) for a valid hit.

    Returns:
        Tuple (record, triangle_index). triangle_index is the global index of
        the triangle that was hit, or -1.
    """
    closest_t = t_max
    result = miss_record()
    hit_index = -1

    for k in range(count):
        i = first + k
        tri = Triangle(v0=tri_v0[i], v1=tri_v1[i], v2=tri_v2[i])
        rec = hit_triangle(ray_origin, ray_direction, tri, t_min, closest_t)
        if rec.hit == 1:
            closest_t = rec.t
            result = rec
            hit_index = i

    return result, hit_index
