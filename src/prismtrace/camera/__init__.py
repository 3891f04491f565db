"""Camera module for primary ray generation.

Components:
    thin_lens: Look-at perspective camera with optional defocus blur

The camera configuration also carries the sampling parameters
(samples_per_pixel, max_depth) used by the integrator.
"""

from .thin_lens import (
    CameraConfig,
    get_camera_info,
    get_ray,
    get_ray_jittered,
    get_ray_through_lens,
    setup_camera,
)

__all__ = [
    "CameraConfig",
    "setup_camera",
    "get_ray",
    "get_ray_through_lens",
    "get_ray_jittered",
    "get_camera_info",
]
