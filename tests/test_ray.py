"""Unit tests for the ray module.

Tests cover:
- Ray dataclass and ray_at function
- Vector utility functions (normalize, reflect, refract, schlick_fresnel)
- Random sampling functions driven by an explicit RNG state
"""

import math

import pytest
import taichi as ti

N_SAMPLES = 2000


class TestRayBasics:
    """Tests for Ray dataclass and basic operations."""

    def test_ray_at_positive_t(self):
        """Test ray_at computes origin + t * direction."""
        from prismtrace.core.ray import Ray, ray_at, vec3

        result = ti.field(dtype=ti.math.vec3, shape=())

        @ti.kernel
        def test_kernel():
            ray = Ray(origin=vec3(1.0, 2.0, 3.0), direction=vec3(1.0, 0.0, 0.0))
            result[None] = ray_at(ray, 5.0)

        test_kernel()
        r = result[None]
        assert r[0] == pytest.approx(6.0)
        assert r[1] == pytest.approx(2.0)
        assert r[2] == pytest.approx(3.0)

    def test_make_ray_keeps_direction(self):
        """make_ray does not normalize the direction."""
        from prismtrace.core.ray import make_ray, vec3

        result = ti.field(dtype=ti.math.vec3, shape=())

        @ti.kernel
        def test_kernel():
            ray = make_ray(vec3(0.0, 0.0, 0.0), vec3(0.0, 0.0, -2.0))
            result[None] = ray.direction

        test_kernel()
        assert result[None][2] == pytest.approx(-2.0)


class TestVectorHelpers:
    """Tests for reflection, refraction and Fresnel helpers."""

    def test_reflect_flips_normal_component(self):
        from prismtrace.core.ray import reflect, vec3

        result = ti.field(dtype=ti.math.vec3, shape=())

        @ti.kernel
        def test_kernel():
            result[None] = reflect(vec3(1.0, -1.0, 0.5), vec3(0.0, 1.0, 0.0))

        test_kernel()
        r = result[None]
        assert r[0] == pytest.approx(1.0)
        assert r[1] == pytest.approx(1.0)
        assert r[2] == pytest.approx(0.5)

    def test_refract_normal_incidence_is_straight(self):
        """A ray hitting the surface head-on passes straight through."""
        from prismtrace.core.ray import refract, vec3

        result = ti.field(dtype=ti.math.vec3, shape=())

        @ti.kernel
        def test_kernel():
            result[None] = refract(vec3(0.0, -1.0, 0.0), vec3(0.0, 1.0, 0.0), 1.0 / 1.5)

        test_kernel()
        r = result[None]
        assert abs(r[0]) < 1e-6
        assert r[1] == pytest.approx(-1.0, abs=1e-5)
        assert abs(r[2]) < 1e-6

    def test_refract_obeys_snell(self):
        """sin(theta_t) = eta * sin(theta_i)."""
        from prismtrace.core.ray import refract, vec3

        result = ti.field(dtype=ti.math.vec3, shape=())
        angle = math.radians(30.0)
        eta = 1.0 / 1.5

        @ti.kernel
        def test_kernel():
            incident = vec3(ti.sin(angle), -ti.cos(angle), 0.0)
            result[None] = refract(incident, vec3(0.0, 1.0, 0.0), eta)

        test_kernel()
        r = result[None]
        length = math.sqrt(r[0] ** 2 + r[1] ** 2 + r[2] ** 2)
        assert length == pytest.approx(1.0, abs=1e-5)
        assert r[0] == pytest.approx(eta * math.sin(angle), abs=1e-5)

    def test_refract_total_internal_reflection_returns_zero(self):
        from prismtrace.core.ray import refract, vec3

        result = ti.field(dtype=ti.math.vec3, shape=())
        angle = math.radians(60.0)

        @ti.kernel
        def test_kernel():
            incident = vec3(ti.sin(angle), -ti.cos(angle), 0.0)
            result[None] = refract(incident, vec3(0.0, 1.0, 0.0), 1.5)

        test_kernel()
        r = result[None]
        assert r[0] == 0.0 and r[1] == 0.0 and r[2] == 0.0

    @pytest.mark.parametrize("ior", [1.33, 1.5, 2.4])
    def test_schlick_at_normal_incidence_equals_r0(self, ior):
        from prismtrace.core.ray import schlick_fresnel

        result = ti.field(dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            result[None] = schlick_fresnel(1.0, ior)

        test_kernel()
        r0 = ((1.0 - ior) / (1.0 + ior)) ** 2
        assert result[None] == pytest.approx(r0, abs=1e-6)

    def test_schlick_at_grazing_is_one(self):
        from prismtrace.core.ray import schlick_fresnel

        result = ti.field(dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            result[None] = schlick_fresnel(0.0, 1.5)

        test_kernel()
        assert result[None] == pytest.approx(1.0, abs=1e-6)


class TestRandomSampling:
    """Tests for state-passing random direction samplers."""


    def test_random_unit_vector_has_unit_length(self):
        from prismtrace.core.ray import random_unit_vector
        from prismtrace.core.sampler import seed_rng

        lengths = ti.field(dtype=ti.f32, shape=N_SAMPLES)

        @ti.kernel
        def test_kernel():
            for i in range(N_SAMPLES):
                v, _ = random_unit_vector(seed_rng(i, 0, 7))
                lengths[i] = v.norm()

        test_kernel()
        values = lengths.to_numpy()
        assert abs(values - 1.0).max() < 1e-5

    def test_random_unit_vector_is_centered(self):
        """Uniform directions on the sphere average to the origin."""
        from prismtrace.core.ray import random_unit_vector
        from prismtrace.core.sampler import seed_rng

        vectors = ti.Vector.field(3, dtype=ti.f32, shape=N_SAMPLES)

        @ti.kernel
        def test_kernel():
            for i in range(N_SAMPLES):
                v, _ = random_unit_vector(seed_rng(i, 3, 11))
                vectors[i] = v

        test_kernel()
        mean = vectors.to_numpy().mean(axis=0)
        assert abs(mean).max() < 0.08

    def test_random_in_unit_sphere_is_inside(self):
        from prismtrace.core.ray import random_in_unit_sphere
        from prismtrace.core.sampler import seed_rng

        lengths = ti.field(dtype=ti.f32, shape=N_SAMPLES)

        @ti.kernel
        def test_kernel():
            for i in range(N_SAMPLES):
                p, _ = random_in_unit_sphere(seed_rng(i, 1, 5))
                lengths[i] = p.norm()

        test_kernel()
        assert lengths.to_numpy().max() <= 1.0 + 1e-6

    def test_random_on_hemisphere_faces_normal(self):
        from prismtrace.core.ray import random_on_hemisphere, vec3
        from prismtrace.core.sampler import seed_rng

        dots = ti.field(dtype=ti.f32, shape=N_SAMPLES)

        @ti.kernel
        def test_kernel():
            n = ti.math.normalize(vec3(1.0, 2.0, -0.5))
            for i in range(N_SAMPLES):
                d, _ = random_on_hemisphere(n, seed_rng(i, 2, 9))
                dots[i] = ti.math.dot(d, n)

        test_kernel()
        assert dots.to_numpy().min() >= 0.0

    def test_random_in_unit_disk_is_planar(self):
        from prismtrace.core.ray import random_in_unit_disk
        from prismtrace.core.sampler import seed_rng

        points = ti.Vector.field(3, dtype=ti.f32, shape=N_SAMPLES)

        @ti.kernel
        def test_kernel():
            for i in range(N_SAMPLES):
                p, _ = random_in_unit_disk(seed_rng(i, 4, 13))
                points[i] = p

        test_kernel()
        pts = points.to_numpy()
        assert abs(pts[:, 2]).max() == 0.0
        assert (pts[:, 0] ** 2 + pts[:, 1] ** 2).max() <= 1.0 + 1e-6

    def test_samplers_advance_the_state(self):
        """Each sampler returns a state different from its input."""
        from prismtrace.core.ray import random_unit_vector

        states = ti.field(dtype=ti.i32, shape=2)

        @ti.kernel
        def test_kernel():
            _, s = random_unit_vector(12345)
            states[0] = 12345
            states[1] = s

        test_kernel()
        assert states[0] != states[1]
