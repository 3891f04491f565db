"""Bounding Volume Hierarchy built on the host and traversed in kernels.

The tree is built once with NumPy and flattened into an arena: parallel
arrays addressed by node index. Interior nodes store two child indices;
leaves store a range into a reordered list of primitive references, each a
(kind, index) pair pointing into the sphere or triangle store.

Build rules:
    - every primitive box is padded to at least MIN_BOX_THICKNESS per axis
    - a node with at most ``max_leaf_size`` primitives becomes a leaf
    - otherwise split on the axis of largest centroid spread (round-robin
      by depth when all centroids coincide), stable-sort by centroid and
      cut at the median

Median splits keep the tree balanced, so its depth is about
log2(n / max_leaf_size) and traversal fits in a fixed 64-entry stack.

Example:
    >>> import numpy as np
    >>> from prismtrace.scene.bvh import PrimitiveKind, build_bvh
    >>> mins = np.array([[0, 0, 0], [2, 0, 0], [4, 0, 0]], dtype=float)
    >>> arena = build_bvh(mins, mins + 1.0, [PrimitiveKind.SPHERE] * 3, [0, 1, 2])
    >>> arena.node_count
    3
"""

import logging
from dataclasses import dataclass
from enum import IntEnum

import numpy as np
import numpy.typing as npt
import taichi as ti

from prismtrace.core.errors import SceneConstructionError
from prismtrace.geometry.aabb import MIN_BOX_THICKNESS

logger = logging.getLogger(__name__)


class PrimitiveKind(IntEnum):
    """Kinds of primitive a BVH leaf can reference."""

    SPHERE = 0
    TRIANGLE = 1


DEFAULT_MAX_LEAF_SIZE = 2

# Fixed traversal stack depth
BVH_STACK_SIZE = 64

# Capacity of the uploaded tree (primitive references and nodes)
MAX_BVH_PRIMITIVES = 1024 + 65536
MAX_BVH_NODES = 2 * MAX_BVH_PRIMITIVES


@dataclass
class BVHArena:
    """Flattened BVH.

    Attributes:
        node_min: (n, 3) minimum corner of each node box.
        node_max: (n, 3) maximum corner of each node box.
        left: (n,) left child index, -1 for leaves.
        right: (n,) right child index, -1 for leaves.
        prim_start: (n,) first primitive reference of a leaf.
        prim_count: (n,) number of primitive references (0 for interior nodes).
        prim_kind: (m,) PrimitiveKind of each primitive reference.
        prim_index: (m,) index into the sphere or triangle store.
    """

    node_min: npt.NDArray[np.float64]
    node_max: npt.NDArray[np.float64]
    left: npt.NDArray[np.int32]
    right: npt.NDArray[np.int32]
    prim_start: npt.NDArray[np.int32]
    prim_count: npt.NDArray[np.int32]
    prim_kind: npt.NDArray[np.int32]
    prim_index: npt.NDArray[np.int32]

    @classmethod
    def empty(cls) -> "BVHArena":
        return cls(
            node_min=np.zeros((0, 3)),
            node_max=np.zeros((0, 3)),
            left=np.zeros(0, dtype=np.int32),
            right=np.zeros(0, dtype=np.int32),
            prim_start=np.zeros(0, dtype=np.int32),
            prim_count=np.zeros(0, dtype=np.int32),
            prim_kind=np.zeros(0, dtype=np.int32),
            prim_index=np.zeros(0, dtype=np.int32),
        )

    @property
    def node_count(self) -> int:
        return int(self.left.shape[0])

    @property
    def primitive_count(self) -> int:
        return int(self.prim_kind.shape[0])

    def is_leaf(self, node: int) -> bool:
        return bool(self.prim_count[node] > 0)

    def depth(self) -> int:
        """Number of levels; 0 for an empty tree, 1 for a single leaf."""
        if self.node_count == 0:
            return 0
        deepest = 0
        pending = [(0, 1)]
        while pending:
            node, level = pending.pop()
            deepest = max(deepest, level)
            if not self.is_leaf(node):
                pending.append((int(self.left[node]), level + 1))
                pending.append((int(self.right[node]), level + 1))
        return deepest

    def leaf_nodes(self) -> list[int]:
        return [i for i in range(self.node_count) if self.is_leaf(i)]

    def primitives_under(self, node: int) -> list[int]:
        """Positions (into prim_kind / prim_index) of every reference below node."""
        result = []
        pending = [node]
        while pending:
            current = pending.pop()
            if self.is_leaf(current):
                start = int(self.prim_start[current])
                result.extend(range(start, start + int(self.prim_count[current])))
            else:
                pending.append(int(self.left[current]))
                pending.append(int(self.right[current]))
        return result


def sphere_bounds(centers: npt.ArrayLike, radii: npt.ArrayLike):
    """Boxes of n spheres: returns (mins, maxs), each (n, 3)."""
    c = np.asarray(centers, dtype=np.float64).reshape(-1, 3)
    r = np.asarray(radii, dtype=np.float64).reshape(-1, 1)
    return c - r, c + r


def triangle_bounds(v0: npt.ArrayLike, v1: npt.ArrayLike, v2: npt.ArrayLike):
    """Boxes of n triangles: returns (mins, maxs), each (n, 3)."""
    stacked = np.stack(
        [
            np.asarray(v0, dtype=np.float64).reshape(-1, 3),
            np.asarray(v1, dtype=np.float64).reshape(-1, 3),
            np.asarray(v2, dtype=np.float64).reshape(-1, 3),
        ]
    )
    return stacked.min(axis=0), stacked.max(axis=0)


def _pad_boxes(mins, maxs, min_thickness: float):
    extent = maxs - mins
    grow = np.where(extent < min_thickness, 0.5 * (min_thickness - extent), 0.0)
    return mins - grow, maxs + grow


def build_bvh(
    prim_min: npt.ArrayLike,
    prim_max: npt.ArrayLike,
    prim_kind: npt.ArrayLike,
    prim_index: npt.ArrayLike,
    max_leaf_size: int = DEFAULT_MAX_LEAF_SIZE,
) -> BVHArena:
    """Build a BVH over a set of primitive boxes.

    Args:
        prim_min: (n, 3) minimum corners of the primitive boxes.
        prim_max: (n, 3) maximum corners of the primitive boxes.
        prim_kind: (n,) PrimitiveKind of each primitive.
        prim_index: (n,) index of each primitive in its own store.
        max_leaf_size: Largest number of primitives kept in one leaf.

    Returns:
        The flattened tree. Node 0 is the root.

    Raises:
        SceneConstructionError: If the inputs disagree in length, a box is
            not finite or max_leaf_size < 1.
    """
    if max_leaf_size < 1:
        raise SceneConstructionError(f"max_leaf_size must be at least 1, got {max_leaf_size}")

    mins = np.asarray(prim_min, dtype=np.float64).reshape(-1, 3)
    maxs = np.asarray(prim_max, dtype=np.float64).reshape(-1, 3)
    kinds = np.asarray(prim_kind, dtype=np.int32).reshape(-1)
    indices = np.asarray(prim_index, dtype=np.int32).reshape(-1)

    n = mins.shape[0]
    if not (maxs.shape[0] == n and kinds.shape[0] == n and indices.shape[0] == n):
        raise SceneConstructionError("Primitive bounds, kinds and indices differ in length")
    if n == 0:
        return BVHArena.empty()
    if not (np.all(np.isfinite(mins)) and np.all(np.isfinite(maxs))):
        raise SceneConstructionError("Primitive bounds must be finite")

    mins, maxs = _pad_boxes(mins, maxs, MIN_BOX_THICKNESS)
    centroids = 0.5 * (mins + maxs)

    node_min: list[npt.NDArray[np.float64]] = []
    node_max: list[npt.NDArray[np.float64]] = []
    left: list[int] = []
    right: list[int] = []
    start: list[int] = []
    count: list[int] = []
    ordered: list[int] = []

    def build(ids: npt.NDArray[np.intp], depth: int) -> int:
        node = len(left)
        node_min.append(mins[ids].min(axis=0))
        node_max.append(maxs[ids].max(axis=0))
        left.append(-1)
        right.append(-1)
        start.append(0)
        count.append(0)

        if len(ids) <= max_leaf_size:
            start[node] = len(ordered)
            count[node] = len(ids)
            ordered.extend(int(i) for i in ids)
            return node

        c = centroids[ids]
        spread = c.max(axis=0) - c.min(axis=0)
        if np.all(spread == 0.0):
            axis = depth % 3
        else:
            axis = int(np.argmax(spread))

        sorted_ids = ids[np.argsort(c[:, axis], kind="stable")]
        mid = len(sorted_ids) // 2
        left[node] = build(sorted_ids[:mid], depth + 1)
        right[node] = build(sorted_ids[mid:], depth + 1)
        return node

    build(np.arange(n), 0)

    order = np.asarray(ordered, dtype=np.intp)
    arena = BVHArena(
        node_min=np.asarray(node_min),
        node_max=np.asarray(node_max),
        left=np.asarray(left, dtype=np.int32),
        right=np.asarray(right, dtype=np.int32),
        prim_start=np.asarray(start, dtype=np.int32),
        prim_count=np.asarray(count, dtype=np.int32),
        prim_kind=kinds[order],
        prim_index=indices[order],
    )
    logger.debug(
        "Built BVH: %d primitives, %d nodes, depth %d", n, arena.node_count, arena.depth()
    )
    return arena


# =============================================================================
# Taichi Fields (uploaded tree)
# =============================================================================

bvh_node_min = ti.Vector.field(3, dtype=ti.f32, shape=MAX_BVH_NODES)
bvh_node_max = ti.Vector.field(3, dtype=ti.f32, shape=MAX_BVH_NODES)
bvh_left = ti.field(dtype=ti.i32, shape=MAX_BVH_NODES)
bvh_right = ti.field(dtype=ti.i32, shape=MAX_BVH_NODES)
bvh_prim_start = ti.field(dtype=ti.i32, shape=MAX_BVH_NODES)
bvh_prim_count = ti.field(dtype=ti.i32, shape=MAX_BVH_NODES)
bvh_ref_kind = ti.field(dtype=ti.i32, shape=MAX_BVH_PRIMITIVES)
bvh_ref_index = ti.field(dtype=ti.i32, shape=MAX_BVH_PRIMITIVES)
num_bvh_nodes = ti.field(dtype=ti.i32, shape=())


def _padded(values: npt.NDArray, capacity: int, dtype) -> npt.NDArray:
    shape = (capacity,) + values.shape[1:]
    out = np.zeros(shape, dtype=dtype)
    out[: values.shape[0]] = values
    return out


def clear_bvh() -> None:
    """Forget the uploaded tree; traversal then reports no hits."""
    num_bvh_nodes[None] = 0


def upload_bvh(arena: BVHArena) -> None:
    """Copy an arena into the BVH fields.

    Raises:
        SceneConstructionError: If the tree exceeds the field capacity.
    """
    if arena.node_count > MAX_BVH_NODES:
        raise SceneConstructionError(f"BVH has {arena.node_count} nodes, limit is {MAX_BVH_NODES}")
    if arena.primitive_count > MAX_BVH_PRIMITIVES:
        raise SceneConstructionError(
            f"BVH references {arena.primitive_count} primitives, limit is {MAX_BVH_PRIMITIVES}"
        )
    if arena.node_count == 0:
        clear_bvh()
        return

    # Round outward so f32 boxes still enclose their primitives
    lo = np.nextafter(arena.node_min.astype(np.float32), np.float32(-np.inf))
    hi = np.nextafter(arena.node_max.astype(np.float32), np.float32(np.inf))
    bvh_node_min.from_numpy(_padded(lo, MAX_BVH_NODES, np.float32))
    bvh_node_max.from_numpy(_padded(hi, MAX_BVH_NODES, np.float32))
    bvh_left.from_numpy(_padded(arena.left, MAX_BVH_NODES, np.int32))
    bvh_right.from_numpy(_padded(arena.right, MAX_BVH_NODES, np.int32))
    bvh_prim_start.from_numpy(_padded(arena.prim_start, MAX_BVH_NODES, np.int32))
    bvh_prim_count.from_numpy(_padded(arena.prim_count, MAX_BVH_NODES, np.int32))
    bvh_ref_kind.from_numpy(_padded(arena.prim_kind, MAX_BVH_PRIMITIVES, np.int32))
    bvh_ref_index.from_numpy(_padded(arena.prim_index, MAX_BVH_PRIMITIVES, np.int32))
    num_bvh_nodes[None] = arena.node_count
    logger.debug("Uploaded BVH with %d nodes", arena.node_count)


def get_bvh_node_count() -> int:
    return int(num_bvh_nodes[None])
