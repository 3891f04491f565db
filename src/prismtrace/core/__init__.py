"""Core rendering module.

Components:
    ray: Ray data structure, vector helpers and random direction sampling
    sampler: Deterministic per-(pixel, sample) random number generation
    spectral: Wavelength sampling, Cauchy dispersion and colour weights
    errors: Exceptions raised while building scenes or configuring renders
    integrator: Iterative path tracing and the render target
    progressive: Batched rendering with progress callbacks

All compute-intensive operations use Taichi kernels.
"""

from .errors import ConfigurationError, SceneConstructionError
from .ray import (
    Ray,
    cross,
    dot,
    is_finite,
    length,
    make_ray,
    near_zero,
    normalize,
    random_in_unit_disk,
    random_in_unit_sphere,
    random_on_hemisphere,
    random_unit_vector,
    ray_at,
    reflect,
    refract,
    schlick_fresnel,
    vec3,
)
from .sampler import hash_float, next_float, seed_rng

# integrator, progressive and spectral allocate Taichi fields; import them
# directly (e.g. ``from prismtrace.core.integrator import render_image``).

__all__ = [
    "ConfigurationError",
    "SceneConstructionError",
    "Ray",
    "ray_at",
    "make_ray",
    "vec3",
    "length",
    "normalize",
    "dot",
    "cross",
    "reflect",
    "refract",
    "schlick_fresnel",
    "near_zero",
    "is_finite",
    "random_in_unit_sphere",
    "random_unit_vector",
    "random_on_hemisphere",
    "random_in_unit_disk",
    "hash_float",
    "next_float",
    "seed_rng",
]
