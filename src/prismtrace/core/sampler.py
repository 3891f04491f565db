"""Deterministic random number generation for Taichi kernels.

Every camera sample owns its own random state, seeded from the pair
(pixel_index, sample_index) and a global base seed. Nothing is shared
between samples, so a render produces identical output no matter how the
backend schedules the pixel loop, and progressive batches continue the
sequence exactly where the previous batch stopped.

The generator is a 31-bit linear congruential generator (glibc constants)
and seeds are mixed with a Wang-style integer hash. All arithmetic stays in
signed 32-bit integers masked to 31 bits, so the same sequence can be
reproduced on the host with plain Python integers (see the ``*_host``
helpers, which the tests use as a reference).

Usage inside a kernel:

    state = seed_rng(pixel_index, sample_index, base_seed)
    u, state = next_float(state)
    v, state = next_float(state)

Random functions never mutate their argument; they return the advanced
state as their last value.
"""

import taichi as ti

# 31-bit mask keeps every intermediate non-negative in i32
RNG_MASK = 0x7FFFFFFF

LCG_MULTIPLIER = 1103515245
LCG_INCREMENT = 12345

# Wang hash multiplier (0x27d4eb2d)
HASH_MULTIPLIER = 668265261

# 24 random mantissa bits -> float in [0, 1)
_INV_2_24 = 1.0 / 16777216.0

# Salts separating independent streams derived from the same sample
SALT_PATH = 0x5BD1E995 & RNG_MASK
SALT_WAVELENGTH = 0x1B873593


@ti.func
def hash_u31(x: ti.i32) -> ti.i32:
    """Mix an integer into a well-distributed 31-bit value.

    Args:
        x: Input integer (any value; only the low 31 bits are used).

    Returns:
        Hashed value in [0, 2^31).
    """
    h = x & RNG_MASK
    h = (h ^ 61) ^ (h >> 16)
    h = (h * 9) & RNG_MASK
    h = h ^ (h >> 4)
    h = (h * HASH_MULTIPLIER) & RNG_MASK
    h = h ^ (h >> 15)
    return h


@ti.func
def seed_rng(pixel_index: ti.i32, sample_index: ti.i32, base_seed: ti.i32) -> ti.i32:
    """Derive the initial path RNG state for one (pixel, sample) pair.

    Args:
        pixel_index: Linear pixel index (unique per pixel).
        sample_index: Index of the sample within the pixel.
        base_seed: Global seed of the render.

    Returns:
        Initial RNG state.
    """
    h = hash_u31(base_seed ^ SALT_PATH)
    h = hash_u31(h + sample_index)
    h = hash_u31(h ^ pixel_index)
    return h


@ti.func
def hash_float(pixel_index: ti.i32, sample_index: ti.i32, salt: ti.i32) -> ti.f32:
    """Stateless uniform value in [0, 1) keyed by (pixel, sample, salt).

    Used for per-sample decisions that must not consume draws from the path
    RNG (e.g. the wavelength jitter).
    """
    h = hash_u31(salt)
    h = hash_u31(h + sample_index)
    h = hash_u31(h ^ pixel_index)
    return ti.cast(h >> 7, ti.f32) * _INV_2_24


@ti.func
def next_float(state: ti.i32):
    """Advance the generator and return a uniform float.

    Args:
        state: Current RNG state.

    Returns:
        A tuple (value, new_state) with value in [0, 1).
    """
    s = (state * LCG_MULTIPLIER + LCG_INCREMENT) & RNG_MASK
    value = ti.cast(s >> 7, ti.f32) * _INV_2_24
    return value, s


# =============================================================================
# Host-side reference implementation
# =============================================================================


def hash_u31_host(x: int) -> int:
    """Python mirror of :func:`hash_u31`."""
    h = x & RNG_MASK
    h = (h ^ 61) ^ (h >> 16)
    h = (h * 9) & RNG_MASK
    h = h ^ (h >> 4)
    h = (h * HASH_MULTIPLIER) & RNG_MASK
    h = h ^ (h >> 15)
    return h


def seed_rng_host(pixel_index: int, sample_index: int, base_seed: int) -> int:
    """Python mirror of :func:`seed_rng`."""
    h = hash_u31_host(base_seed ^ SALT_PATH)
    h = hash_u31_host(h + sample_index)
    return hash_u31_host(h ^ pixel_index)


def next_float_host(state: int) -> tuple[float, int]:
    """Python mirror of :func:`next_float`."""
    s = (state * LCG_MULTIPLIER + LCG_INCREMENT) & RNG_MASK
    return (s >> 7) * _INV_2_24, s
