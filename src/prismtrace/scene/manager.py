"""Scene construction: materials, primitives and the BVH in one place.

Every material, whatever its type, gets an id from one shared counter.
Kernels resolve an id to (MaterialType, index into that type's registry)
through ``get_material_type`` / ``get_material_type_index`` and then call the
matching scatter function.

Materials go into their registries as soon as they are added. Spheres,
triangles and meshes are collected on the host and validated; ``build()``
uploads them and the BVH built over them. ``to_dict`` / ``from_dict`` round
trip the whole description through plain Python data (JSON friendly).

The scene is read-only while rendering.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from prismtrace.scene.manager import SceneManager
    >>> scene = SceneManager()
    >>> mat_id = scene.add_lambertian_material(albedo=(0.8, 0.3, 0.3))
    >>> scene.add_sphere(center=(0, 0, -1), radius=0.5, material_id=mat_id)
    0
    >>> arena = scene.build()
"""

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

import numpy as np
import taichi as ti

from prismtrace.core.errors import SceneConstructionError
from prismtrace.core.spectral import CAUCHY_PRESETS, CauchyDispersion
from prismtrace.geometry.aabb import AABB
from prismtrace.geometry.mesh import Mesh
from prismtrace.geometry.sphere import validate_sphere
from prismtrace.geometry.triangle import validate_triangle
from prismtrace.materials.dielectric import (
    add_dielectric_material,
    clear_dielectric_materials,
)
from prismtrace.materials.lambertian import (
    add_lambertian_material,
    clear_lambertian_materials,
)
from prismtrace.materials.metal import (
    add_metal_material,
    clear_metal_materials,
)
from prismtrace.scene.bvh import (
    DEFAULT_MAX_LEAF_SIZE,
    BVHArena,
    PrimitiveKind,
    build_bvh,
    sphere_bounds,
    triangle_bounds,
    upload_bvh,
)
from prismtrace.scene.intersection import (
    MAX_MESHES,
    MAX_SPHERES,
    MAX_TRIANGLES,
    clear_scene,
    load_mesh_ranges,
    load_spheres,
    load_triangles,
)

logger = logging.getLogger(__name__)


class MaterialType(IntEnum):
    """Tag stored per material id; selects the scatter function."""

    LAMBERTIAN = 0
    METAL = 1
    DIELECTRIC = 2


MAX_MATERIALS = 768  # every registry full

material_types = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
# id -> row in the per-type registry
material_type_indices = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
num_materials = ti.field(dtype=ti.i32, shape=())


def _clear_material_tracking() -> None:
    """Clear the material tracking fields."""
    num_materials[None] = 0


@ti.func
def get_material_type(material_id: ti.i32) -> ti.i32:
    """MaterialType of an id as i32, or -1 when the id is not registered."""
    result = -1
    if 0 <= material_id < num_materials[None]:
        result = material_types[material_id]
    return result


@ti.func
def get_material_type_index(material_id: ti.i32) -> ti.i32:
    """Row of an id in its type registry, or -1 when not registered."""
    result = -1
    if 0 <= material_id < num_materials[None]:
        result = material_type_indices[material_id]
    return result


@dataclass
class MaterialInfo:
    """Information about a registered material.

    Attributes:
        material_id: The unified material ID.
        material_type: The type of material (Lambertian, Metal, Dielectric).
        type_index: The index within the type-specific material array.
        params: The material parameters as provided during creation.
    """

    material_id: int
    material_type: MaterialType
    type_index: int
    params: dict[str, Any]


@dataclass
class SphereInfo:
    """A sphere in the scene (index into the sphere store once built)."""

    sphere_index: int
    center: tuple[float, float, float]
    radius: float
    material_id: int


@dataclass
class MeshInfo:
    """A mesh in the scene.

    Attributes:
        mesh_index: Index of the mesh range.
        first_triangle: Index of its first triangle in the triangle store.
        mesh: The triangles.
        material_id: The material shared by every triangle.
        is_single_triangle: True for a triangle added with add_triangle().
    """

    mesh_index: int
    first_triangle: int
    mesh: Mesh
    material_id: int
    is_single_triangle: bool = False


@dataclass
class SceneConfig:
    """Configuration for scene serialization.

    Attributes:
        materials: List of material configurations.
        spheres: List of sphere configurations.
        triangles: List of single-triangle configurations.
        meshes: List of mesh configurations.
    """

    materials: list[dict[str, Any]] = field(default_factory=list)
    spheres: list[dict[str, Any]] = field(default_factory=list)
    triangles: list[dict[str, Any]] = field(default_factory=list)
    meshes: list[dict[str, Any]] = field(default_factory=list)


def _as_vec3(value, name: str) -> tuple[float, float, float]:
    try:
        values = tuple(float(c) for c in value)
    except (TypeError, ValueError) as exc:
        raise SceneConstructionError(f"{name} must be a 3-vector, got {value!r}") from exc
    if len(values) != 3:
        raise SceneConstructionError(f"{name} must have 3 components, got {len(values)}")
    return values  # type: ignore[return-value]


class SceneManager:
    """Unified scene manager coordinating primitives and materials.

    Attributes:
        materials: List of MaterialInfo for all registered materials.
        spheres: List of SphereInfo for all spheres in the scene.
        meshes: List of MeshInfo for all meshes (and loose triangles).

    Example:
        >>> scene = SceneManager()
        >>> red_diffuse = scene.add_lambertian_material(albedo=(0.8, 0.1, 0.1))
        >>> gold_metal = scene.add_metal_material(albedo=(0.8, 0.6, 0.2), fuzz=0.3)
        >>> glass = scene.add_dielectric_material(ior=1.5)
        >>> scene.add_sphere((0, 0, -1), 0.5, red_diffuse)
        >>> scene.add_sphere((1, 0, -1), 0.5, gold_metal)
        >>> scene.add_sphere((-1, 0, -1), 0.5, glass)
        >>> scene.build()
    """

    def __init__(self) -> None:
        """Initialize an empty scene."""
        self.materials: list[MaterialInfo] = []
        self.spheres: list[SphereInfo] = []
        self.meshes: list[MeshInfo] = []
        self.bvh: BVHArena | None = None
        self._triangle_total = 0
        self._clear_all()

    def _clear_all(self) -> None:
        """Clear all scene data including Taichi fields."""
        clear_scene()
        clear_lambertian_materials()
        clear_metal_materials()
        clear_dielectric_materials()
        _clear_material_tracking()
        self.materials.clear()
        self.spheres.clear()
        self.meshes.clear()
        self.bvh = None
        self._triangle_total = 0

    def clear(self) -> None:
        """Clear the entire scene (primitives, materials and BVH)."""
        self._clear_all()

    # =========================================================================
    # Material Management
    # =========================================================================

    def _register_material(
        self, material_type: MaterialType, type_index: int, params: dict[str, Any]
    ) -> int:
        material_id = num_materials[None]
        if material_id >= MAX_MATERIALS:
            raise SceneConstructionError(f"Maximum number of materials ({MAX_MATERIALS}) exceeded")

        material_types[material_id] = int(material_type)
        material_type_indices[material_id] = type_index
        num_materials[None] = material_id + 1

        self.materials.append(
            MaterialInfo(
                material_id=material_id,
                material_type=material_type,
                type_index=type_index,
                params=params,
            )
        )
        return material_id

    def add_lambertian_material(self, albedo: tuple[float, float, float]) -> int:
        """Add a Lambertian (diffuse) material to the scene.

        Args:
            albedo: The diffuse reflectance color as (R, G, B), each in [0, 1].

        Returns:
            The unified material ID for this material.

        Raises:
            SceneConstructionError: If the albedo is invalid or a limit is hit.
        """
        type_index = add_lambertian_material(albedo)
        return self._register_material(
            MaterialType.LAMBERTIAN, type_index, {"albedo": tuple(float(c) for c in albedo)}
        )

    def add_metal_material(self, albedo: tuple[float, float, float], fuzz: float = 0.0) -> int:
        """Add a metal (specular reflective) material to the scene.

        Args:
            albedo: The reflective color as (R, G, B), each in [0, 1].
            fuzz: Perturbation radius in [0, 1]. Default is 0 (perfect mirror).

        Returns:
            The unified material ID for this material.
        """
        type_index = add_metal_material(albedo, fuzz)
        return self._register_material(
            MaterialType.METAL,
            type_index,
            {"albedo": tuple(float(c) for c in albedo), "fuzz": float(fuzz)},
        )

    def add_dielectric_material(self, ior: float = 1.5, dispersion: float = 0.0) -> int:
        """Add a dielectric (glass/water) material to the scene.

        Args:
            ior: Index of refraction (> 0); the Cauchy A term when dispersive.
            dispersion: Cauchy B coefficient in square micrometres.

        Returns:
            The unified material ID for this material.
        """
        type_index = add_dielectric_material(ior, dispersion)
        return self._register_material(
            MaterialType.DIELECTRIC,
            type_index,
            {"ior": float(ior), "dispersion": float(dispersion)},
        )

    def add_dispersive_material(self, glass: str | CauchyDispersion) -> int:
        """Add a dispersive dielectric from a Cauchy curve or a preset name.

        Args:
            glass: A CauchyDispersion, or one of the CAUCHY_PRESETS keys
                (e.g. "bk7", "sf10").
        """
        if isinstance(glass, str):
            try:
                curve = CAUCHY_PRESETS[glass.lower()]
            except KeyError:
                known = ", ".join(sorted(CAUCHY_PRESETS))
                raise SceneConstructionError(
                    f"Unknown glass preset {glass!r}; expected one of {known}"
                ) from None
        else:
            curve = glass
        return self.add_dielectric_material(curve.a, curve.b)

    def get_material_count(self) -> int:
        """Get the total number of materials in the scene."""
        return int(num_materials[None])

    def get_material_info(self, material_id: int) -> MaterialInfo | None:
        if 0 <= material_id < len(self.materials):
            return self.materials[material_id]
        return None

    def get_material_type_python(self, material_id: int) -> MaterialType | None:
        """Get the material type for a given material ID (Python side).

        For kernel-side lookup, use the get_material_type() Taichi function.
        """
        if 0 <= material_id < len(self.materials):
            return self.materials[material_id].material_type
        return None

    def _check_material_id(self, material_id: int) -> None:
        if not isinstance(material_id, (int, np.integer)) or not (
            0 <= material_id < len(self.materials)
        ):
            raise SceneConstructionError(f"Invalid material_id: {material_id}")

    # =========================================================================
    # Primitive Management
    # =========================================================================

    def add_sphere(
        self,
        center: tuple[float, float, float],
        radius: float,
        material_id: int,
    ) -> int:
        """Add a sphere to the scene.

        Args:
            center: The center point of the sphere as (x, y, z).
            radius: The radius of the sphere (positive).
            material_id: The unified material ID to assign to the sphere.

        Returns:
            The index of the added sphere.

        Raises:
            SceneConstructionError: If the sphere or material_id is invalid.
        """
        center_t = _as_vec3(center, "Sphere center")
        validate_sphere(center_t, float(radius))
        self._check_material_id(material_id)

        sphere_index = len(self.spheres)
        self.spheres.append(
            SphereInfo(
                sphere_index=sphere_index,
                center=center_t,
                radius=float(radius),
                material_id=int(material_id),
            )
        )
        self.bvh = None
        return sphere_index

    def add_triangle(self, v0, v1, v2, material_id: int) -> int:
        """Add a single triangle to the scene.

        The front face is the side from which v0, v1, v2 appear
        counter-clockwise.

        Returns:
            The index of the triangle in the triangle store.

        Raises:
            SceneConstructionError: If the triangle is degenerate, a vertex
                is not finite, or material_id is invalid.
        """
        verts = (_as_vec3(v0, "v0"), _as_vec3(v1, "v1"), _as_vec3(v2, "v2"))
        validate_triangle(*verts)
        self._check_material_id(material_id)
        info = self._append_mesh(Mesh(np.asarray([verts], dtype=np.float64)), int(material_id))
        info.is_single_triangle = True
        return info.first_triangle

    def add_mesh(self, triangles, material_id: int) -> int:
        """Add a triangle mesh with one material.

        Args:
            triangles: A Mesh, or a flat list of (v0, v1, v2) vertex triples
                as a mesh loader would produce.
            material_id: The unified material ID shared by all triangles.

        Returns:
            The index of the added mesh.

        Raises:
            SceneConstructionError: If the mesh is empty or contains a
                degenerate triangle, or material_id is invalid.
        """
        mesh = triangles if isinstance(triangles, Mesh) else Mesh.from_triangles(triangles)
        if isinstance(triangles, Mesh):
            mesh.validate()
        self._check_material_id(material_id)
        return self._append_mesh(mesh, int(material_id)).mesh_index

    def _append_mesh(self, mesh: Mesh, material_id: int) -> MeshInfo:
        info = MeshInfo(
            mesh_index=len(self.meshes),
            first_triangle=self._triangle_total,
            mesh=mesh,
            material_id=material_id,
        )
        self.meshes.append(info)
        self._triangle_total += len(mesh)
        self.bvh = None
        return info

    # =========================================================================
    # Convenience Methods (add object with material in one call)
    # =========================================================================

    def add_lambertian_sphere(
        self,
        center: tuple[float, float, float],
        radius: float,
        albedo: tuple[float, float, float],
    ) -> tuple[int, int]:
        """Add a sphere with a new Lambertian material.

        Returns:
            Tuple of (sphere_index, material_id).
        """
        material_id = self.add_lambertian_material(albedo)
        sphere_index = self.add_sphere(center, radius, material_id)
        return sphere_index, material_id

    def add_metal_sphere(
        self,
        center: tuple[float, float, float],
        radius: float,
        albedo: tuple[float, float, float],
        fuzz: float = 0.0,
    ) -> tuple[int, int]:
        """Add a sphere with a new metal material.

        Returns:
            Tuple of (sphere_index, material_id).
        """
        material_id = self.add_metal_material(albedo, fuzz)
        sphere_index = self.add_sphere(center, radius, material_id)
        return sphere_index, material_id

    def add_dielectric_sphere(
        self,
        center: tuple[float, float, float],
        radius: float,
        ior: float = 1.5,
        dispersion: float = 0.0,
    ) -> tuple[int, int]:
        """Add a sphere with a new dielectric material.

        Returns:
            Tuple of (sphere_index, material_id).
        """
        material_id = self.add_dielectric_material(ior, dispersion)
        sphere_index = self.add_sphere(center, radius, material_id)
        return sphere_index, material_id

    def add_lambertian_mesh(self, triangles, albedo: tuple[float, float, float]) -> tuple[int, int]:
        """Add a mesh with a new Lambertian material.

        Returns:
            Tuple of (mesh_index, material_id).
        """
        material_id = self.add_lambertian_material(albedo)
        mesh_index = self.add_mesh(triangles, material_id)
        return mesh_index, material_id

    # =========================================================================
    # Build
    # =========================================================================

    def build(self, max_leaf_size: int = DEFAULT_MAX_LEAF_SIZE) -> BVHArena:
        """Upload every primitive and build the BVH.

        Must be called after the last primitive is added and before
        rendering. Calling it again rebuilds from the current host lists.

        Args:
            max_leaf_size: Largest number of primitives per BVH leaf.

        Returns:
            The BVH arena that was uploaded.

        Raises:
            SceneConstructionError: If a capacity limit is exceeded.
        """
        n_spheres = len(self.spheres)
        n_triangles = self._triangle_total
        if n_spheres > MAX_SPHERES:
            raise SceneConstructionError(
                f"Maximum number of spheres ({MAX_SPHERES}) exceeded: {n_spheres}"
            )
        if n_triangles > MAX_TRIANGLES:
            raise SceneConstructionError(
                f"Maximum number of triangles ({MAX_TRIANGLES}) exceeded: {n_triangles}"
            )
        if len(self.meshes) > MAX_MESHES:
            raise SceneConstructionError(
                f"Maximum number of meshes ({MAX_MESHES}) exceeded: {len(self.meshes)}"
            )

        centers = np.array([s.center for s in self.spheres], dtype=np.float64).reshape(-1, 3)
        radii = np.array([s.radius for s in self.spheres], dtype=np.float64)
        sphere_mats = np.array([s.material_id for s in self.spheres], dtype=np.int32)
        load_spheres(centers, radii, sphere_mats)

        if self.meshes:
            verts = np.concatenate([m.mesh.vertices for m in self.meshes], axis=0)
            tri_mats = np.concatenate(
                [np.full(len(m.mesh), m.material_id, dtype=np.int32) for m in self.meshes]
            )
        else:
            verts = np.zeros((0, 3, 3), dtype=np.float64)
            tri_mats = np.zeros(0, dtype=np.int32)
        load_triangles(verts[:, 0], verts[:, 1], verts[:, 2], tri_mats)
        load_mesh_ranges(
            [m.first_triangle for m in self.meshes],
            [len(m.mesh) for m in self.meshes],
        )

        s_min, s_max = sphere_bounds(centers, radii)
        t_min, t_max = triangle_bounds(verts[:, 0], verts[:, 1], verts[:, 2])
        arena = build_bvh(
            np.concatenate([s_min, t_min]),
            np.concatenate([s_max, t_max]),
            np.concatenate(
                [
                    np.full(n_spheres, int(PrimitiveKind.SPHERE), dtype=np.int32),
                    np.full(n_triangles, int(PrimitiveKind.TRIANGLE), dtype=np.int32),
                ]
            ),
            np.concatenate(
                [np.arange(n_spheres, dtype=np.int32), np.arange(n_triangles, dtype=np.int32)]
            ),
            max_leaf_size=max_leaf_size,
        )
        upload_bvh(arena)
        self.bvh = arena

        logger.info(
            "Scene built: %d spheres, %d triangles in %d meshes, %d materials, "
            "BVH %d nodes (depth %d)",
            n_spheres,
            n_triangles,
            len(self.meshes),
            len(self.materials),
            arena.node_count,
            arena.depth(),
        )
        return arena

    @property
    def is_built(self) -> bool:
        """True if the uploaded data matches the current host lists."""
        return self.bvh is not None

    # =========================================================================
    # Scene Queries
    # =========================================================================

    def get_sphere_count(self) -> int:
        return len(self.spheres)

    def get_triangle_count(self) -> int:
        return self._triangle_total

    def get_mesh_count(self) -> int:
        return len(self.meshes)

    def get_primitive_count(self) -> int:
        """Get the total number of intersectable primitives (spheres + triangles)."""
        return self.get_sphere_count() + self.get_triangle_count()

    def get_bounds(self) -> AABB | None:
        """Bounding box of every primitive, or None for an empty scene."""
        box = AABB.empty()
        found = False
        for s in self.spheres:
            c = np.asarray(s.center, dtype=np.float64)
            box = AABB.surrounding_box(box, AABB(c - s.radius, c + s.radius))
            found = True
        for m in self.meshes:
            box = AABB.surrounding_box(box, m.mesh.bounding_box())
            found = True
        return box if found else None

    def has_dispersive_material(self) -> bool:
        return any(
            m.material_type == MaterialType.DIELECTRIC and m.params.get("dispersion", 0.0) != 0.0
            for m in self.materials
        )

    # =========================================================================
    # Scene Serialization
    # =========================================================================

    def to_config(self) -> SceneConfig:
        """Export the scene to a configuration object."""
        config = SceneConfig()

        for mat in self.materials:
            mat_config: dict[str, Any] = {"type": mat.material_type.name.lower()}
            for key, value in mat.params.items():
                mat_config[key] = list(value) if isinstance(value, tuple) else value
            config.materials.append(mat_config)

        for sphere in self.spheres:
            config.spheres.append(
                {
                    "center": list(sphere.center),
                    "radius": sphere.radius,
                    "material_id": sphere.material_id,
                }
            )

        for mesh in self.meshes:
            if mesh.is_single_triangle:
                v0, v1, v2 = mesh.mesh.vertices[0].tolist()
                config.triangles.append(
                    {"v0": v0, "v1": v1, "v2": v2, "material_id": mesh.material_id}
                )
            else:
                config.meshes.append(
                    {"triangles": mesh.mesh.vertices.tolist(), "material_id": mesh.material_id}
                )

        return config

    def from_config(self, config: SceneConfig) -> None:
        """Load a scene from a configuration object.

        Clears the current scene and loads the configuration. The scene is
        not built; call ``build()`` afterwards.

        Raises:
            SceneConstructionError: If the configuration contains invalid data.
        """
        self.clear()

        for mat_config in config.materials:
            mat_type = str(mat_config.get("type", "")).lower()
            if mat_type == "lambertian":
                self.add_lambertian_material(tuple(mat_config.get("albedo", (0.5, 0.5, 0.5))))
            elif mat_type == "metal":
                self.add_metal_material(
                    tuple(mat_config.get("albedo", (0.8, 0.8, 0.8))),
                    mat_config.get("fuzz", 0.0),
                )
            elif mat_type == "dielectric":
                self.add_dielectric_material(
                    mat_config.get("ior", 1.5), mat_config.get("dispersion", 0.0)
                )
            else:
                raise SceneConstructionError(f"Unknown material type: {mat_type!r}")

        for sphere_config in config.spheres:
            self.add_sphere(
                tuple(sphere_config.get("center", (0.0, 0.0, 0.0))),
                sphere_config.get("radius", 1.0),
                sphere_config.get("material_id", 0),
            )

        for tri_config in config.triangles:
            self.add_triangle(
                tri_config["v0"],
                tri_config["v1"],
                tri_config["v2"],
                tri_config.get("material_id", 0),
            )

        for mesh_config in config.meshes:
            self.add_mesh(mesh_config["triangles"], mesh_config.get("material_id", 0))

    def to_dict(self) -> dict[str, Any]:
        """Export the scene to a dictionary (for JSON serialization)."""
        config = self.to_config()
        return {
            "materials": config.materials,
            "spheres": config.spheres,
            "triangles": config.triangles,
            "meshes": config.meshes,
        }

    def from_dict(self, data: dict[str, Any]) -> None:
        """Load a scene from a dictionary with 'materials', 'spheres',
        'triangles' and 'meshes' keys."""
        config = SceneConfig(
            materials=data.get("materials", []),
            spheres=data.get("spheres", []),
            triangles=data.get("triangles", []),
            meshes=data.get("meshes", []),
        )
        self.from_config(config)

    # =========================================================================
    # Capacity Information
    # =========================================================================

    @staticmethod
    def get_max_spheres() -> int:
        return MAX_SPHERES

    @staticmethod
    def get_max_triangles() -> int:
        return MAX_TRIANGLES

    @staticmethod
    def get_max_materials() -> int:
        return MAX_MATERIALS
