"""Spectral extension: wavelength sampling, dispersion and colour weights.

Each camera sample is tagged with a single wavelength, stratified over the
visible range by sample index. Only dispersive dielectrics look at it: their
index of refraction follows Cauchy's equation

    n(lambda) = A + B / lambda^2      (lambda in micrometres)

so short and long wavelengths bend by different amounts through the same
geometry. Throughput stays RGB. When a path has scattered off a dispersive
surface, its radiance is multiplied at termination by a colour weight
w(lambda): the CIE 1931 colour matching functions (analytic multi-lobe fit of
Wyman, Sloan and Shirley, JCGT 2013) converted to linear sRGB and normalized
so that the average of w over the sampled range is exactly (1, 1, 1).

Paths that never touch a dispersive surface keep weight 1. A flat curve
(B = 0) is therefore not dispersive at all and renders exactly like the plain
RGB path.

Example:
    >>> from prismtrace.core.spectral import CAUCHY_PRESETS
    >>> bk7 = CAUCHY_PRESETS["bk7"]
    >>> round(bk7.ior(486.1), 4) > round(bk7.ior(656.3), 4)
    True
"""

import logging
import math
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

logger = logging.getLogger(__name__)

vec3 = tm.vec3

# =============================================================================
# Spectral Constants
# =============================================================================

# Sampled visible range in nanometres
WAVELENGTH_MIN = 380.0
WAVELENGTH_MAX = 750.0

# Resolution of the colour weight table (nm)
WEIGHT_TABLE_STEP = 1.0
WEIGHT_TABLE_SIZE = int(round((WAVELENGTH_MAX - WAVELENGTH_MIN) / WEIGHT_TABLE_STEP)) + 1

# Fraunhofer d line; used for dispersive glass when spectral mode is off
REFERENCE_WAVELENGTH = 587.6

# CIE XYZ -> linear sRGB (D65)
XYZ_TO_SRGB = np.array(
    [
        [3.2404542, -1.5371385, -0.4985314],
        [-0.9692660, 1.8760108, 0.0415560],
        [0.0556434, -0.2040259, 1.0572252],
    ],
    dtype=np.float64,
)


# =============================================================================
# Dispersion Curves
# =============================================================================


@dataclass(frozen=True)
class CauchyDispersion:
    """Two-term Cauchy dispersion curve n(lambda) = a + b / lambda_um^2.

    Attributes:
        a: Asymptotic index of refraction at infinite wavelength.
        b: Dispersion coefficient in square micrometres. Zero gives a flat,
            wavelength-independent index.
    """

    a: float
    b: float = 0.0

    def ior(self, wavelength_nm: float | npt.ArrayLike) -> float | npt.NDArray[np.float64]:
        """Evaluate the index of refraction at one or more wavelengths (nm)."""
        wavelength_um = np.asarray(wavelength_nm, dtype=np.float64) / 1000.0
        result = self.a + self.b / (wavelength_um * wavelength_um)
        if result.ndim == 0:
            return float(result)
        return result

    @property
    def is_flat(self) -> bool:
        """True if the index does not depend on wavelength."""
        return self.b == 0.0

    def ior_range(self) -> tuple[float, float]:
        """Minimum and maximum index over the sampled visible range."""
        lo = self.ior(WAVELENGTH_MAX)
        hi = self.ior(WAVELENGTH_MIN)
        return (min(lo, hi), max(lo, hi))


# Coefficients from the standard Cauchy table for optical glasses
CAUCHY_PRESETS: dict[str, CauchyDispersion] = {
    "fused_silica": CauchyDispersion(1.4580, 0.00354),
    "bk7": CauchyDispersion(1.5046, 0.00420),
    "k5": CauchyDispersion(1.5220, 0.00459),
    "bak4": CauchyDispersion(1.5690, 0.00531),
    "baf10": CauchyDispersion(1.6700, 0.00743),
    "sf10": CauchyDispersion(1.7280, 0.01342),
}


@ti.func
def cauchy_ior(a: ti.f32, b: ti.f32, wavelength_nm: ti.f32) -> ti.f32:
    """Evaluate Cauchy's equation inside a kernel.

    Args:
        a: Constant term.
        b: Dispersion coefficient (square micrometres).
        wavelength_nm: Wavelength in nanometres.

    Returns:
        Index of refraction at the given wavelength.
    """
    wavelength_um = wavelength_nm * 0.001
    return a + b / (wavelength_um * wavelength_um)


# =============================================================================
# Colour Matching Functions (host side)
# =============================================================================


def _piecewise_gaussian(
    x: npt.NDArray[np.float64], mu: float, sigma_left: float, sigma_right: float
) -> npt.NDArray[np.float64]:
    sigma = np.where(x < mu, sigma_left, sigma_right)
    t = (x - mu) / sigma
    return np.exp(-0.5 * t * t)


def cie_xyz(wavelength_nm: npt.ArrayLike) -> npt.NDArray[np.float64]:
    """CIE 1931 2-degree colour matching functions (multi-lobe fit).

    Args:
        wavelength_nm: Wavelengths in nanometres, any shape.

    Returns:
        Array of shape (..., 3) with the x-bar, y-bar and z-bar values.
    """
    lam = np.asarray(wavelength_nm, dtype=np.float64)
    x = (
        1.056 * _piecewise_gaussian(lam, 599.8, 37.9, 31.0)
        + 0.362 * _piecewise_gaussian(lam, 442.0, 16.0, 26.7)
        - 0.065 * _piecewise_gaussian(lam, 501.1, 20.4, 26.2)
    )
    y = 0.821 * _piecewise_gaussian(lam, 568.8, 46.9, 40.5) + 0.286 * _piecewise_gaussian(
        lam, 530.9, 16.3, 31.1
    )
    z = 1.217 * _piecewise_gaussian(lam, 437.0, 11.8, 36.0) + 0.681 * _piecewise_gaussian(
        lam, 459.0, 26.0, 13.8
    )
    return np.stack([x, y, z], axis=-1)


def xyz_to_linear_srgb(xyz: npt.ArrayLike) -> npt.NDArray[np.float64]:
    """Convert CIE XYZ values of shape (..., 3) to linear sRGB."""
    return np.asarray(xyz, dtype=np.float64) @ XYZ_TO_SRGB.T


def table_wavelengths() -> npt.NDArray[np.float64]:
    """Wavelengths (nm) at which the colour weight table is sampled."""
    return WAVELENGTH_MIN + WEIGHT_TABLE_STEP * np.arange(WEIGHT_TABLE_SIZE, dtype=np.float64)


def build_weight_table() -> npt.NDArray[np.float32]:
    """Build the normalized wavelength -> RGB weight table.

    The kernel interpolates the table linearly, so the mean of the weight
    over a uniformly sampled wavelength equals the trapezoidal average of the
    table. Each channel is divided by that average, which makes a white
    spectrum integrate to exactly (1, 1, 1).

    Returns:
        Array of shape (WEIGHT_TABLE_SIZE, 3), dtype float32.
    """
    rgb = xyz_to_linear_srgb(cie_xyz(table_wavelengths()))
    n = rgb.shape[0]
    trapezoid_mean = (rgb.sum(axis=0) - 0.5 * (rgb[0] + rgb[-1])) / (n - 1)
    return (rgb / trapezoid_mean).astype(np.float32)


def wavelength_weight_host(wavelength_nm: float, table: npt.NDArray[np.float32] | None = None):
    """Host-side mirror of :func:`wavelength_weight` for inspection and tests."""
    if table is None:
        table = build_weight_table()
    x = (wavelength_nm - WAVELENGTH_MIN) / WEIGHT_TABLE_STEP
    k = min(max(int(math.floor(x)), 0), WEIGHT_TABLE_SIZE - 2)
    f = min(max(x - k, 0.0), 1.0)
    return (1.0 - f) * table[k] + f * table[k + 1]


# =============================================================================
# Taichi Fields and Kernel-side Helpers
# =============================================================================

_weight_table = ti.Vector.field(3, dtype=ti.f32, shape=WEIGHT_TABLE_SIZE)
_weight_table_ready = ti.field(dtype=ti.i32, shape=())


def setup_spectral_tables() -> None:
    """Upload the colour weight table to its Taichi field (idempotent)."""
    if _weight_table_ready[None] == 1:
        return
    _weight_table.from_numpy(build_weight_table())
    _weight_table_ready[None] = 1
    logger.debug("Uploaded %d-entry wavelength weight table", WEIGHT_TABLE_SIZE)


@ti.func
def sample_wavelength(sample_index: ti.i32, strata: ti.i32, jitter: ti.f32) -> ti.f32:
    """Pick the wavelength of a sample, stratified by sample index.

    The visible range is split into ``strata`` equal bins; sample k lands in
    bin (k mod strata) at the given jitter offset.

    Args:
        sample_index: Index of the sample within its pixel.
        strata: Number of strata (normally samples_per_pixel, at least 1).
        jitter: Offset within the bin, in [0, 1).

    Returns:
        Wavelength in nanometres.
    """
    n = tm.max(strata, 1)
    stratum = sample_index % n
    u = (ti.cast(stratum, ti.f32) + jitter) / ti.cast(n, ti.f32)
    return WAVELENGTH_MIN + u * (WAVELENGTH_MAX - WAVELENGTH_MIN)


@ti.func
def wavelength_weight(wavelength_nm: ti.f32) -> vec3:
    """Colour weight of a single-wavelength radiance sample.

    Args:
        wavelength_nm: Wavelength in nanometres.

    Returns:
        RGB weight; averages to (1, 1, 1) over the sampled range.
    """
    x = (wavelength_nm - WAVELENGTH_MIN) / WEIGHT_TABLE_STEP
    k = ti.cast(ti.floor(x), ti.i32)
    k = tm.clamp(k, 0, WEIGHT_TABLE_SIZE - 2)
    f = tm.clamp(x - ti.cast(k, ti.f32), 0.0, 1.0)
    return (1.0 - f) * _weight_table[k] + f * _weight_table[k + 1]
