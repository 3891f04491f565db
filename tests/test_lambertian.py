"""Unit tests for the Lambertian material.

Tests cover:
- Attenuation equals albedo
- Scattered directions in the hemisphere of the normal
- Cosine-weighted distribution (mean cosine 2/3)
- Material registry and albedo validation
"""

import numpy as np
import pytest
import taichi as ti

N_SAMPLES = 20000


class TestScatter:
    def test_attenuation_is_albedo_and_always_scatters(self):
        from prismtrace.core.ray import vec3
        from prismtrace.materials.lambertian import scatter_lambertian

        atten = ti.Vector.field(3, dtype=ti.f32, shape=())
        did = ti.field(dtype=ti.i32, shape=())

        @ti.kernel
        def test_kernel():
            _, a, d, _ = scatter_lambertian(vec3(0.2, 0.5, 0.9), vec3(0.0, 1.0, 0.0), 77)
            atten[None] = a
            did[None] = d

        test_kernel()
        np.testing.assert_allclose(atten[None].to_numpy(), [0.2, 0.5, 0.9], atol=1e-7)
        assert did[None] == 1

    def test_directions_are_unit_and_in_hemisphere(self):
        from prismtrace.core.ray import vec3
        from prismtrace.core.sampler import seed_rng
        from prismtrace.materials.lambertian import scatter_lambertian

        cosines = ti.field(dtype=ti.f32, shape=N_SAMPLES)
        lengths = ti.field(dtype=ti.f32, shape=N_SAMPLES)

        @ti.kernel
        def test_kernel():
            normal = ti.math.normalize(vec3(0.3, 1.0, -0.2))
            for i in range(N_SAMPLES):
                d, _, _, _ = scatter_lambertian(vec3(1.0), normal, seed_rng(i, 0, 3))
                cosines[i] = ti.math.dot(d, normal)
                lengths[i] = d.norm()

        test_kernel()
        cos = cosines.to_numpy()
        assert cos.min() >= -1e-6
        assert abs(lengths.to_numpy() - 1.0).max() < 1e-4

    def test_mean_cosine_is_two_thirds(self):
        """Cosine-weighted sampling has E[cos theta] = 2/3."""
        from prismtrace.core.ray import vec3
        from prismtrace.core.sampler import seed_rng
        from prismtrace.materials.lambertian import scatter_lambertian

        cosines = ti.field(dtype=ti.f32, shape=N_SAMPLES)

        @ti.kernel
        def test_kernel():
            normal = vec3(0.0, 0.0, 1.0)
            for i in range(N_SAMPLES):
                d, _, _, _ = scatter_lambertian(vec3(1.0), normal, seed_rng(i, 1, 5))
                cosines[i] = d.z

        test_kernel()
        assert cosines.to_numpy().mean() == pytest.approx(2.0 / 3.0, abs=0.01)


class TestRegistry:
    def test_add_and_read_back(self):
        from prismtrace.materials.lambertian import (
            add_lambertian_material,
            get_lambertian_albedo,
            get_lambertian_material_count,
        )

        first = add_lambertian_material((0.1, 0.2, 0.3))
        second = add_lambertian_material((0.9, 0.8, 0.7))
        assert (first, second) == (0, 1)
        assert get_lambertian_material_count() == 2

        result = ti.Vector.field(3, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            result[None] = get_lambertian_albedo(1)

        test_kernel()
        np.testing.assert_allclose(result[None].to_numpy(), [0.9, 0.8, 0.7], atol=1e-6)

    @pytest.mark.parametrize("albedo", [(1.1, 0.5, 0.5), (-0.1, 0.5, 0.5), (0.5, 0.5)])
    def test_invalid_albedo(self, albedo):
        from prismtrace.core.errors import SceneConstructionError
        from prismtrace.materials.lambertian import add_lambertian_material

        with pytest.raises(SceneConstructionError):
            add_lambertian_material(albedo)

    def test_boundary_albedo_allowed(self):
        from prismtrace.materials.lambertian import validate_albedo

        assert validate_albedo((0, 1, 0.5)) == (0.0, 1.0, 0.5)

    def test_clear(self):
        from prismtrace.materials.lambertian import (
            add_lambertian_material,
            clear_lambertian_materials,
            get_lambertian_material_count,
        )

        add_lambertian_material((0.5, 0.5, 0.5))
        clear_lambertian_materials()
        assert get_lambertian_material_count() == 0
