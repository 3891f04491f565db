"""Spectral path tracer built on Taichi.

This package renders still images by Monte Carlo path tracing, with support for:
- Spheres, triangles and triangle meshes behind a bounding volume hierarchy
- Lambertian, metal and dielectric materials
- Wavelength-dependent (Cauchy) dispersion for dielectrics
- Thin-lens camera with depth of field
- Deterministic, per-sample seeded random numbers

Subpackages:
    core: Ray math, random sampling, spectral utilities, integrator
    geometry: Shape primitives, bounding boxes and intersection routines
    materials: Scattering models (Lambertian, metal, dielectric)
    scene: Primitive storage, BVH construction, scene management
    camera: Thin-lens camera model with ray generation
    preview: Tone mapping and image export
"""

__version__ = "0.1.0"
