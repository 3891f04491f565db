"""Tests for scene-level nearest-hit queries.

Every query runs through both the BVH traversal and the linear scan.

Tests cover:
- Hit records: t, point, normal, front face, material and primitive ids
- Closest hit among spheres and triangles
- The open (t_min, t_max) interval
- Empty scenes and clearing
"""

import math

import pytest
import taichi as ti

MODES = pytest.mark.parametrize("use_bvh", [True, False], ids=["bvh", "linear"])


def _scene():
    from prismtrace.scene.manager import SceneManager

    return SceneManager()


class TestHitRecord:
    def test_miss_record(self):
        from prismtrace.scene.intersection import _make_miss_record

        result = ti.field(dtype=ti.i32, shape=4)

        @ti.kernel
        def test_kernel():
            rec = _make_miss_record()
            result[0] = rec.hit
            result[1] = rec.material_id
            result[2] = rec.prim_kind
            result[3] = rec.prim_index

        test_kernel()
        assert [result[i] for i in range(4)] == [0, -1, -1, -1]

    @MODES
    def test_sphere_hit_fields(self, use_bvh):
        from prismtrace.scene.bvh import PrimitiveKind
        from prismtrace.scene.intersection import cast_ray

        scene = _scene()
        _, mat = scene.add_lambertian_sphere((0.0, 0.0, -3.0), 1.0, (0.5, 0.5, 0.5))
        scene.build()

        rec = cast_ray((0.0, 0.0, 0.0), (0.0, 0.0, -1.0), use_bvh=use_bvh)
        assert rec["hit"] == 1
        assert rec["t"] == pytest.approx(2.0, abs=1e-5)
        assert rec["point"] == pytest.approx((0.0, 0.0, -2.0), abs=1e-5)
        assert rec["normal"] == pytest.approx((0.0, 0.0, 1.0), abs=1e-5)
        assert rec["front_face"] == 1
        assert rec["material_id"] == mat
        assert rec["prim_kind"] == int(PrimitiveKind.SPHERE)
        assert rec["prim_index"] == 0

    @MODES
    def test_inside_sphere_is_back_face(self, use_bvh):
        from prismtrace.scene.intersection import cast_ray

        scene = _scene()
        scene.add_lambertian_sphere((0.0, 0.0, 0.0), 2.0, (0.5, 0.5, 0.5))
        scene.build()

        rec = cast_ray((0.0, 0.0, 0.0), (1.0, 0.0, 0.0), use_bvh=use_bvh)
        assert rec["hit"] == 1
        assert rec["t"] == pytest.approx(2.0, abs=1e-5)
        assert rec["front_face"] == 0
        # Normal faces back toward the ray
        assert rec["normal"] == pytest.approx((-1.0, 0.0, 0.0), abs=1e-5)

    @MODES
    def test_triangle_hit_fields(self, use_bvh):
        from prismtrace.scene.bvh import PrimitiveKind
        from prismtrace.scene.intersection import cast_ray

        scene = _scene()
        mat = scene.add_metal_material((0.9, 0.9, 0.9))
        tri = scene.add_triangle((0.0, 0.0, -1.0), (1.0, 0.0, -1.0), (0.0, 1.0, -1.0), mat)
        scene.build()

        rec = cast_ray((0.2, 0.3, 0.0), (0.0, 0.0, -1.0), use_bvh=use_bvh)
        assert rec["hit"] == 1
        assert rec["t"] == pytest.approx(1.0, abs=1e-5)
        assert rec["front_face"] == 1
        assert rec["normal"] == pytest.approx((0.0, 0.0, 1.0), abs=1e-5)
        assert rec["u"] == pytest.approx(0.2, abs=1e-5)
        assert rec["v"] == pytest.approx(0.3, abs=1e-5)
        assert rec["material_id"] == mat
        assert rec["prim_kind"] == int(PrimitiveKind.TRIANGLE)
        assert rec["prim_index"] == tri

    @MODES
    def test_triangle_seen_from_behind(self, use_bvh):
        from prismtrace.scene.intersection import cast_ray

        scene = _scene()
        mat = scene.add_lambertian_material((0.5, 0.5, 0.5))
        scene.add_triangle((0.0, 0.0, -1.0), (1.0, 0.0, -1.0), (0.0, 1.0, -1.0), mat)
        scene.build()

        rec = cast_ray((0.2, 0.3, -2.0), (0.0, 0.0, 1.0), use_bvh=use_bvh)
        assert rec["hit"] == 1
        assert rec["front_face"] == 0
        assert rec["normal"] == pytest.approx((0.0, 0.0, -1.0), abs=1e-5)

    @MODES
    def test_tiny_triangle_accepted_by_build_is_visible(self, use_bvh):
        from prismtrace.scene.intersection import cast_ray

        e = 5e-5
        scene = _scene()
        mat = scene.add_lambertian_material((0.5, 0.5, 0.5))
        scene.add_triangle((0.0, 0.0, -1.0), (e, 0.0, -1.0), (0.0, e, -1.0), mat)
        scene.build()

        rec = cast_ray((e / 3.0, e / 3.0, 0.0), (0.0, 0.0, -1.0), use_bvh=use_bvh)
        assert rec["hit"] == 1
        assert rec["t"] == pytest.approx(1.0, abs=1e-5)
        assert rec["material_id"] == mat


class TestClosestHit:
    @MODES
    def test_closest_of_two_spheres_in_either_order(self, use_bvh):
        from prismtrace.scene.intersection import cast_ray

        scene = _scene()
        far, _ = scene.add_lambertian_sphere((0.0, 0.0, -10.0), 1.0, (0.1, 0.1, 0.1))
        near, _ = scene.add_lambertian_sphere((0.0, 0.0, -4.0), 1.0, (0.9, 0.9, 0.9))
        scene.build()

        forward = cast_ray((0.0, 0.0, 0.0), (0.0, 0.0, -1.0), use_bvh=use_bvh)
        assert forward["prim_index"] == near
        assert forward["t"] == pytest.approx(3.0, abs=1e-5)

        backward = cast_ray((0.0, 0.0, -14.0), (0.0, 0.0, 1.0), use_bvh=use_bvh)
        assert backward["prim_index"] == far
        assert backward["t"] == pytest.approx(3.0, abs=1e-5)

    @MODES
    def test_sphere_in_front_of_mesh(self, use_bvh):
        from prismtrace.scene.bvh import PrimitiveKind
        from prismtrace.scene.intersection import cast_ray

        scene = _scene()
        wall = [
            ((-5.0, -5.0, -6.0), (5.0, -5.0, -6.0), (5.0, 5.0, -6.0)),
            ((-5.0, -5.0, -6.0), (5.0, 5.0, -6.0), (-5.0, 5.0, -6.0)),
        ]
        _, wall_mat = scene.add_lambertian_mesh(wall, (0.5, 0.5, 0.5))
        _, ball_mat = scene.add_lambertian_sphere((0.0, 0.0, -3.0), 1.0, (0.9, 0.1, 0.1))
        scene.build()

        hit_ball = cast_ray((0.0, 0.0, 0.0), (0.0, 0.0, -1.0), use_bvh=use_bvh)
        assert hit_ball["prim_kind"] == int(PrimitiveKind.SPHERE)
        assert hit_ball["material_id"] == ball_mat

        hit_wall = cast_ray((3.0, 3.0, 0.0), (0.0, 0.0, -1.0), use_bvh=use_bvh)
        assert hit_wall["prim_kind"] == int(PrimitiveKind.TRIANGLE)
        assert hit_wall["material_id"] == wall_mat
        assert hit_wall["t"] == pytest.approx(6.0, abs=1e-5)

    @MODES
    def test_grid_of_spheres(self, use_bvh):
        from prismtrace.scene.intersection import cast_ray

        scene = _scene()
        mat = scene.add_lambertian_material((0.5, 0.5, 0.5))
        index = {}
        for x in range(-3, 4):
            for y in range(-3, 4):
                index[(x, y)] = scene.add_sphere((float(x), float(y), -5.0), 0.3, mat)
        scene.build()

        for (x, y), expected in index.items():
            rec = cast_ray((float(x), float(y), 0.0), (0.0, 0.0, -1.0), use_bvh=use_bvh)
            assert rec["prim_index"] == expected
            assert rec["t"] == pytest.approx(4.7, abs=1e-5)


class TestInterval:
    @MODES
    def test_t_min_is_exclusive(self, use_bvh):
        from prismtrace.scene.intersection import cast_ray

        scene = _scene()
        scene.add_lambertian_sphere((0.0, 0.0, -3.0), 1.0, (0.5, 0.5, 0.5))
        scene.build()

        # Entry at t = 2 is skipped, exit at t = 4 remains
        rec = cast_ray((0.0, 0.0, 0.0), (0.0, 0.0, -1.0), t_min=2.5, use_bvh=use_bvh)
        assert rec["hit"] == 1
        assert rec["t"] == pytest.approx(4.0, abs=1e-5)
        assert rec["front_face"] == 0

    @MODES
    def test_t_max_cuts_off(self, use_bvh):
        from prismtrace.scene.intersection import cast_ray

        scene = _scene()
        scene.add_lambertian_sphere((0.0, 0.0, -3.0), 1.0, (0.5, 0.5, 0.5))
        scene.build()

        assert cast_ray((0, 0, 0), (0, 0, -1), t_max=1.5, use_bvh=use_bvh)["hit"] == 0

    @MODES
    def test_unnormalized_direction_scales_t(self, use_bvh):
        from prismtrace.scene.intersection import cast_ray

        scene = _scene()
        scene.add_lambertian_sphere((0.0, 0.0, -3.0), 1.0, (0.5, 0.5, 0.5))
        scene.build()

        rec = cast_ray((0.0, 0.0, 0.0), (0.0, 0.0, -2.0), use_bvh=use_bvh)
        assert rec["t"] == pytest.approx(1.0, abs=1e-5)
        assert rec["point"] == pytest.approx((0.0, 0.0, -2.0), abs=1e-5)


class TestEmptyScene:
    @MODES
    def test_empty_scene_misses(self, use_bvh):
        from prismtrace.scene.intersection import cast_ray

        _scene().build()
        for k in range(8):
            angle = 2.0 * math.pi * k / 8
            rec = cast_ray((0, 0, 0), (math.cos(angle), math.sin(angle), 0.3), use_bvh=use_bvh)
            assert rec["hit"] == 0
            assert rec["material_id"] == -1

    def test_clear_scene_resets_counts(self):
        from prismtrace.scene import intersection

        scene = _scene()
        scene.add_lambertian_sphere((0.0, 0.0, -3.0), 1.0, (0.5, 0.5, 0.5))
        scene.add_lambertian_mesh([((0, 0, 0), (1, 0, 0), (0, 1, 0))], (0.5, 0.5, 0.5))
        scene.build()
        assert intersection.get_sphere_count() == 1

        intersection.clear_scene()
        assert intersection.get_sphere_count() == 0
        assert intersection.get_triangle_count() == 0
        assert intersection.get_mesh_count() == 0
        assert intersection.cast_ray((0, 0, 0), (0, 0, -1))["hit"] == 0
