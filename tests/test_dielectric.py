"""Unit tests for the Dielectric material.

Tests cover:
- Normal incidence passes straight through or reflects straight back
- Fresnel reflection fraction at normal incidence
- Total internal reflection from inside the material
- Snell's law for the refracted branch
- Wavelength-dependent index for dispersive materials
- Angular separation of refracted wavelengths (none for a flat curve)
- Parameter validation
"""

import math

import numpy as np
import pytest
import taichi as ti

N_SAMPLES = 20000


def _scatter_many(incident, normal, ior, front_face):
    from prismtrace.core.ray import vec3
    from prismtrace.core.sampler import seed_rng
    from prismtrace.materials.dielectric import scatter_dielectric

    directions = ti.Vector.field(3, dtype=ti.f32, shape=N_SAMPLES)
    atten = ti.Vector.field(3, dtype=ti.f32, shape=N_SAMPLES)
    flags = ti.field(dtype=ti.i32, shape=N_SAMPLES)

    @ti.kernel
    def test_kernel():
        inc = vec3(incident[0], incident[1], incident[2])
        n = vec3(normal[0], normal[1], normal[2])
        for i in range(N_SAMPLES):
            d, a, s, _ = scatter_dielectric(ior, inc, n, front_face, seed_rng(i, 0, 13))
            directions[i] = d
            atten[i] = a
            flags[i] = s

    test_kernel()
    return directions.to_numpy(), atten.to_numpy(), flags.to_numpy()


class TestScatter:
    def test_normal_incidence_is_collinear(self):
        d, _, _ = _scatter_many((0.0, -1.0, 0.0), (0.0, 1.0, 0.0), 1.5, 1)
        np.testing.assert_allclose(np.abs(d[:, 1]), 1.0, atol=1e-5)
        np.testing.assert_allclose(d[:, 0], 0.0, atol=1e-5)
        np.testing.assert_allclose(d[:, 2], 0.0, atol=1e-5)

    def test_normal_incidence_reflect_fraction(self):
        """Glass reflects about ((1 - 1.5) / (1 + 1.5))^2 = 4% head-on."""
        d, _, _ = _scatter_many((0.0, -1.0, 0.0), (0.0, 1.0, 0.0), 1.5, 1)
        reflected = np.mean(d[:, 1] > 0.0)
        assert reflected == pytest.approx(0.04, abs=0.01)

    def test_always_scatters_with_white_attenuation(self):
        _, a, f = _scatter_many((0.3, -1.0, 0.2), (0.0, 1.0, 0.0), 1.5, 1)
        assert f.min() == 1
        np.testing.assert_allclose(a, 1.0)

    def test_total_internal_reflection(self):
        angle = math.radians(60.0)
        incident = (math.sin(angle), -math.cos(angle), 0.0)
        # Inside the glass: sin(60) * 1.5 > 1
        d, _, _ = _scatter_many(incident, (0.0, 1.0, 0.0), 1.5, 0)
        expected = np.array([math.sin(angle), math.cos(angle), 0.0])
        np.testing.assert_allclose(d, np.broadcast_to(expected, d.shape), atol=1e-5)

    def test_refracted_branch_obeys_snell(self):
        angle = math.radians(30.0)
        incident = (math.sin(angle), -math.cos(angle), 0.0)
        d, _, _ = _scatter_many(incident, (0.0, 1.0, 0.0), 1.5, 1)
        transmitted = d[d[:, 1] < 0.0]
        assert len(transmitted) > N_SAMPLES // 2
        np.testing.assert_allclose(transmitted[:, 0], math.sin(angle) / 1.5, atol=1e-5)
        np.testing.assert_allclose(np.linalg.norm(transmitted, axis=1), 1.0, atol=1e-5)

    def test_ior_one_passes_straight_through(self):
        incident = np.array([0.6, -0.8, 0.0])
        d, _, _ = _scatter_many(tuple(incident), (0.0, 1.0, 0.0), 1.0, 1)
        transmitted = d[d[:, 1] < 0.0]
        assert len(transmitted) > N_SAMPLES * 0.99
        np.testing.assert_allclose(
            transmitted, np.broadcast_to(incident, transmitted.shape), atol=1e-5
        )


class TestDispersion:
    def test_registered_index_follows_cauchy(self):
        from prismtrace.core.spectral import CAUCHY_PRESETS, CauchyDispersion
        from prismtrace.materials.dielectric import (
            add_cauchy_material,
            get_dielectric_ior_at,
            is_dispersive,
        )

        flat = add_cauchy_material(CauchyDispersion(1.5, 0.0))
        glass = add_cauchy_material(CAUCHY_PRESETS["bk7"])
        result = ti.field(dtype=ti.f32, shape=4)
        flags = ti.field(dtype=ti.i32, shape=2)

        @ti.kernel
        def test_kernel():
            result[0] = get_dielectric_ior_at(glass, 400.0)
            result[1] = get_dielectric_ior_at(glass, 700.0)
            result[2] = get_dielectric_ior_at(flat, 400.0)
            result[3] = get_dielectric_ior_at(flat, 700.0)
            flags[0] = is_dispersive(glass)
            flags[1] = is_dispersive(flat)

        test_kernel()
        curve = CAUCHY_PRESETS["bk7"]
        assert result[0] == pytest.approx(curve.ior(400.0), abs=1e-5)
        assert result[1] == pytest.approx(curve.ior(700.0), abs=1e-5)
        assert result[0] > result[1]
        assert result[2] == pytest.approx(1.5)
        assert result[3] == pytest.approx(1.5)
        assert flags[0] == 1
        assert flags[1] == 0

    @staticmethod
    def _refract_at_band_edges(material_idx, n_seeds=64):
        """Scatter one oblique ray at 380 nm and 750 nm with shared seeds.

        Returns the direction pairs where both wavelengths took the
        transmitted branch.
        """
        from prismtrace.core.ray import vec3
        from prismtrace.core.sampler import seed_rng
        from prismtrace.core.spectral import WAVELENGTH_MAX, WAVELENGTH_MIN
        from prismtrace.materials.dielectric import scatter_dielectric_by_id

        short = ti.Vector.field(3, dtype=ti.f32, shape=n_seeds)
        long = ti.Vector.field(3, dtype=ti.f32, shape=n_seeds)

        @ti.kernel
        def test_kernel():
            s45 = ti.sqrt(0.5)
            incident = vec3(s45, -s45, 0.0)
            n = vec3(0.0, 1.0, 0.0)
            for i in range(n_seeds):
                state = seed_rng(i, 0, 29)
                d_short, _, _, _ = scatter_dielectric_by_id(
                    material_idx, incident, n, 1, WAVELENGTH_MIN, state
                )
                d_long, _, _, _ = scatter_dielectric_by_id(
                    material_idx, incident, n, 1, WAVELENGTH_MAX, state
                )
                short[i] = d_short
                long[i] = d_long

        test_kernel()
        a = short.to_numpy()
        b = long.to_numpy()
        both = (a[:, 1] < 0.0) & (b[:, 1] < 0.0)
        assert both.sum() > n_seeds // 2
        return a[both], b[both]

    @staticmethod
    def _angles_deg(a, b):
        a = a.astype(np.float64)
        b = b.astype(np.float64)
        sin = np.linalg.norm(np.cross(a, b), axis=1)
        cos = np.sum(a * b, axis=1)
        return np.degrees(np.arctan2(sin, cos))

    def test_flat_curve_has_no_angular_spread(self):
        from prismtrace.core.spectral import CauchyDispersion
        from prismtrace.materials.dielectric import add_cauchy_material

        flat = add_cauchy_material(CauchyDispersion(1.5, 0.0))
        short, long = self._refract_at_band_edges(flat)
        np.testing.assert_array_equal(short, long)
        assert np.all(self._angles_deg(short, long) == 0.0)

    def test_cauchy_curve_separates_band_edges(self):
        """Violet bends more than red: sin(t) = sin(45 deg) / n(lambda)."""
        from prismtrace.core.spectral import CAUCHY_PRESETS, WAVELENGTH_MAX, WAVELENGTH_MIN
        from prismtrace.materials.dielectric import add_cauchy_material

        curve = CAUCHY_PRESETS["sf10"]
        glass = add_cauchy_material(curve)
        short, long = self._refract_at_band_edges(glass)

        sin_i = math.sqrt(0.5)
        np.testing.assert_allclose(short[:, 0], sin_i / curve.ior(WAVELENGTH_MIN), atol=1e-5)
        np.testing.assert_allclose(long[:, 0], sin_i / curve.ior(WAVELENGTH_MAX), atol=1e-5)

        expected = math.degrees(
            math.asin(sin_i / curve.ior(WAVELENGTH_MAX)) - math.asin(sin_i / curve.ior(WAVELENGTH_MIN))
        )
        gap = self._angles_deg(short, long)
        assert expected > 0.5
        np.testing.assert_allclose(gap, expected, atol=0.01)
        assert np.all(short[:, 0] < long[:, 0])


class TestValidation:
    @pytest.mark.parametrize("ior", [0.0, -1.5, float("inf"), float("nan")])
    def test_invalid_ior(self, ior):
        from prismtrace.core.errors import SceneConstructionError
        from prismtrace.materials.dielectric import add_dielectric_material

        with pytest.raises(SceneConstructionError):
            add_dielectric_material(ior)

    def test_non_positive_cauchy_index(self):
        from prismtrace.core.errors import SceneConstructionError
        from prismtrace.materials.dielectric import add_dielectric_material

        with pytest.raises(SceneConstructionError):
            add_dielectric_material(0.5, -0.5)

    def test_error_is_value_error(self):
        from prismtrace.materials.dielectric import add_dielectric_material

        with pytest.raises(ValueError):
            add_dielectric_material(-1.0)

    def test_count(self):
        from prismtrace.materials.dielectric import (
            add_dielectric_material,
            get_dielectric_material_count,
        )

        add_dielectric_material(1.5)
        add_dielectric_material(1.33, 0.003)
        assert get_dielectric_material_count() == 2
