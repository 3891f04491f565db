"""Tests for wavelength sampling, Cauchy dispersion and colour weights."""

import numpy as np
import pytest
import taichi as ti


class TestCauchyDispersion:
    """Host-side Cauchy curves and presets."""

    def test_flat_curve_is_constant(self):
        from prismtrace.core.spectral import CauchyDispersion

        curve = CauchyDispersion(1.5)
        assert curve.is_flat
        assert curve.ior(400.0) == 1.5
        assert curve.ior(700.0) == 1.5

    def test_index_decreases_with_wavelength(self):
        from prismtrace.core.spectral import CAUCHY_PRESETS, table_wavelengths

        wavelengths = table_wavelengths()
        for name, curve in CAUCHY_PRESETS.items():
            n = curve.ior(wavelengths)
            assert np.all(np.diff(n) < 0.0), name

    def test_bk7_matches_catalogue_d_line(self):
        """BK7 has n_d close to 1.5168."""
        from prismtrace.core.spectral import CAUCHY_PRESETS, REFERENCE_WAVELENGTH

        assert CAUCHY_PRESETS["bk7"].ior(REFERENCE_WAVELENGTH) == pytest.approx(1.5168, abs=2e-3)

    def test_ior_range_orders_bounds(self):
        from prismtrace.core.spectral import CAUCHY_PRESETS, WAVELENGTH_MAX, WAVELENGTH_MIN

        curve = CAUCHY_PRESETS["sf10"]
        lo, hi = curve.ior_range()
        assert lo == pytest.approx(curve.ior(WAVELENGTH_MAX))
        assert hi == pytest.approx(curve.ior(WAVELENGTH_MIN))
        assert lo < hi

    def test_kernel_cauchy_matches_host(self):
        from prismtrace.core.spectral import CAUCHY_PRESETS, cauchy_ior

        curve = CAUCHY_PRESETS["baf10"]
        a, b = curve.a, curve.b
        wavelengths = [400.0, 500.0, 600.0, 700.0]
        result = ti.field(dtype=ti.f32, shape=len(wavelengths))

        @ti.kernel
        def test_kernel():
            for i in ti.static(range(len(wavelengths))):
                result[i] = cauchy_ior(a, b, wavelengths[i])

        test_kernel()
        for i, lam in enumerate(wavelengths):
            assert result[i] == pytest.approx(curve.ior(lam), abs=1e-5)


class TestWeightTable:
    """The wavelength -> RGB weight table."""

    def test_table_shape(self):
        from prismtrace.core.spectral import WEIGHT_TABLE_SIZE, build_weight_table

        table = build_weight_table()
        assert table.shape == (WEIGHT_TABLE_SIZE, 3)
        assert table.dtype == np.float32

    def test_weights_average_to_white(self):
        """A uniform spectrum integrates to (1, 1, 1)."""
        from prismtrace.core.spectral import (
            WAVELENGTH_MAX,
            WAVELENGTH_MIN,
            build_weight_table,
            wavelength_weight_host,
        )

        table = build_weight_table()
        lams = np.linspace(WAVELENGTH_MIN, WAVELENGTH_MAX, 20001)
        weights = np.array([wavelength_weight_host(lam, table) for lam in lams])
        mean = weights.mean(axis=0)
        np.testing.assert_allclose(mean, [1.0, 1.0, 1.0], atol=2e-3)

    def test_blue_and_red_ends(self):
        """Short wavelengths weigh toward blue, long ones toward red."""
        from prismtrace.core.spectral import build_weight_table, wavelength_weight_host

        table = build_weight_table()
        blue = wavelength_weight_host(450.0, table)
        red = wavelength_weight_host(630.0, table)
        assert blue[2] > blue[0]
        assert red[0] > red[2]

    def test_kernel_weight_matches_host(self):
        from prismtrace.core.spectral import (
            build_weight_table,
            setup_spectral_tables,
            wavelength_weight,
            wavelength_weight_host,
        )

        setup_spectral_tables()
        wavelengths = [380.0, 455.5, 587.6, 700.25, 750.0]
        result = ti.Vector.field(3, dtype=ti.f32, shape=len(wavelengths))

        @ti.kernel
        def test_kernel():
            for i in ti.static(range(len(wavelengths))):
                result[i] = wavelength_weight(wavelengths[i])

        test_kernel()
        table = build_weight_table()
        for i, lam in enumerate(wavelengths):
            np.testing.assert_allclose(
                result[i].to_numpy(), wavelength_weight_host(lam, table), rtol=1e-4, atol=1e-4
            )


class TestWavelengthSampling:
    """Stratified wavelength selection."""

    def test_samples_cover_their_strata(self):
        from prismtrace.core.spectral import WAVELENGTH_MAX, WAVELENGTH_MIN, sample_wavelength

        strata = 8
        result = ti.field(dtype=ti.f32, shape=strata)

        @ti.kernel
        def test_kernel():
            for k in range(strata):
                result[k] = sample_wavelength(k, strata, 0.5)

        test_kernel()
        width = (WAVELENGTH_MAX - WAVELENGTH_MIN) / strata
        for k in range(strata):
            expected = WAVELENGTH_MIN + (k + 0.5) * width
            assert result[k] == pytest.approx(expected, abs=1e-3)

    def test_strata_wrap_around(self):
        """Sample k and sample k + strata fall in the same stratum."""
        from prismtrace.core.spectral import sample_wavelength

        result = ti.field(dtype=ti.f32, shape=2)

        @ti.kernel
        def test_kernel():
            result[0] = sample_wavelength(1, 4, 0.25)
            result[1] = sample_wavelength(5, 4, 0.25)

        test_kernel()
        assert result[0] == pytest.approx(result[1])

    def test_single_stratum_spans_range(self):
        from prismtrace.core.spectral import WAVELENGTH_MAX, WAVELENGTH_MIN, sample_wavelength

        result = ti.field(dtype=ti.f32, shape=2)

        @ti.kernel
        def test_kernel():
            result[0] = sample_wavelength(0, 1, 0.0)
            result[1] = sample_wavelength(3, 1, 0.999)

        test_kernel()
        assert result[0] == pytest.approx(WAVELENGTH_MIN)
        assert result[1] == pytest.approx(WAVELENGTH_MIN + 0.999 * (WAVELENGTH_MAX - WAVELENGTH_MIN), abs=1e-2)
