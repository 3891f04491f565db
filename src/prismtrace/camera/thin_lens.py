"""Thin-lens camera model for primary ray generation.

The camera supports:
- Look-at positioning (lookfrom, lookat, vup)
- Vertical field of view specification
- Arbitrary aspect ratios (image height derived from the width)
- Defocus blur: ray origins sampled on a lens disk, all rays through a pixel
  converge on the focus plane at ``focus_dist``
- Jittered sampling for anti-aliasing (box filter over the pixel footprint)

The camera builds an orthonormal basis (u, v, w) from the view parameters:
- w: points from lookat toward lookfrom (opposite view direction)
- u: points right in the image plane
- v: points up in the image plane

The viewport lies on the focus plane, so with defocus_angle = 0 this is a
pinhole camera.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from prismtrace.camera.thin_lens import CameraConfig, setup_camera
    >>> config = CameraConfig(
    ...     lookfrom=(0.0, 0.0, 3.0),
    ...     lookat=(0.0, 0.0, 0.0),
    ...     vfov=60.0,
    ...     image_width=400,
    ... )
    >>> setup_camera(config)
"""

import math
from dataclasses import dataclass

import numpy as np
import taichi as ti
import taichi.math as tm

from prismtrace.core.errors import ConfigurationError
from prismtrace.core.ray import Ray, make_ray, random_in_unit_disk, vec3
from prismtrace.core.sampler import next_float

# =============================================================================
# Camera Configuration
# =============================================================================


@dataclass
class CameraConfig:
    """Camera and sampling configuration.

    Attributes:
        aspect_ratio: Width divided by height of the output image.
        image_width: Output width in pixels.
        samples_per_pixel: Rays traced per pixel (>= 1).
        max_depth: Maximum number of scattering events per path (>= 0).
        vfov: Vertical field of view in degrees, in (0, 180).
        lookfrom: Camera position in world space.
        lookat: Point the camera is looking at.
        vup: Up direction used to orient the camera.
        defocus_angle: Cone angle (degrees) of rays through each pixel; 0
            disables depth of field.
        focus_dist: Distance from lookfrom to the plane of perfect focus.
    """

    aspect_ratio: float = 16.0 / 9.0
    image_width: int = 1200
    samples_per_pixel: int = 10
    max_depth: int = 20
    vfov: float = 20.0
    lookfrom: tuple[float, float, float] = (0.0, 0.0, 0.0)
    lookat: tuple[float, float, float] = (0.0, 0.0, -1.0)
    vup: tuple[float, float, float] = (0.0, 1.0, 0.0)
    defocus_angle: float = 0.0
    focus_dist: float = 10.0

    @property
    def image_height(self) -> int:
        """Output height in pixels, derived from width and aspect (at least 1)."""
        return max(1, int(self.image_width / self.aspect_ratio))

    def validate(self) -> None:
        """Check the configuration.

        Raises:
            ConfigurationError: If any value is out of range or the view is
                degenerate.
        """
        if not (math.isfinite(self.aspect_ratio) and self.aspect_ratio > 0.0):
            raise ConfigurationError(f"aspect_ratio must be positive, got {self.aspect_ratio}")
        if int(self.image_width) != self.image_width or self.image_width < 1:
            raise ConfigurationError(
                f"image_width must be a positive integer, got {self.image_width}"
            )
        if int(self.samples_per_pixel) != self.samples_per_pixel or self.samples_per_pixel < 1:
            raise ConfigurationError(
                f"samples_per_pixel must be at least 1, got {self.samples_per_pixel}"
            )
        if int(self.max_depth) != self.max_depth or self.max_depth < 0:
            raise ConfigurationError(f"max_depth must be non-negative, got {self.max_depth}")
        if not 0.0 < self.vfov < 180.0:
            raise ConfigurationError(f"vfov must be in (0, 180) degrees, got {self.vfov}")
        if not (math.isfinite(self.defocus_angle) and self.defocus_angle >= 0.0):
            raise ConfigurationError(
                f"defocus_angle must be non-negative, got {self.defocus_angle}"
            )
        if not (math.isfinite(self.focus_dist) and self.focus_dist > 0.0):
            raise ConfigurationError(f"focus_dist must be positive, got {self.focus_dist}")

        for name in ("lookfrom", "lookat", "vup"):
            value = getattr(self, name)
            if len(value) != 3 or not all(math.isfinite(float(c)) for c in value):
                raise ConfigurationError(f"{name} must be a finite 3-vector, got {value}")

        view = np.asarray(self.lookfrom, dtype=np.float64) - np.asarray(self.lookat, dtype=np.float64)
        view_len = float(np.linalg.norm(view))
        if view_len == 0.0:
            raise ConfigurationError("lookfrom and lookat must differ")
        vup = np.asarray(self.vup, dtype=np.float64)
        if np.linalg.norm(np.cross(vup, view / view_len)) < 1e-8:
            raise ConfigurationError("vup must not be parallel to the view direction")


# =============================================================================
# Taichi Fields for Camera State
# =============================================================================

# Camera origin (lens center)
_camera_origin = ti.Vector.field(3, dtype=ti.f32, shape=())

# Orthonormal basis vectors
_camera_u = ti.Vector.field(3, dtype=ti.f32, shape=())  # Right
_camera_v = ti.Vector.field(3, dtype=ti.f32, shape=())  # Up
_camera_w = ti.Vector.field(3, dtype=ti.f32, shape=())  # Backward (opposite view)

# Viewport on the focus plane
_viewport_horizontal = ti.Vector.field(3, dtype=ti.f32, shape=())  # Full width
_viewport_vertical = ti.Vector.field(3, dtype=ti.f32, shape=())  # Full height
_lower_left_corner = ti.Vector.field(3, dtype=ti.f32, shape=())  # Lower-left of viewport

# Lens disk radius (0 = pinhole)
_defocus_radius = ti.field(dtype=ti.f32, shape=())


# =============================================================================
# Camera Setup (Python-side, called once per camera configuration)
# =============================================================================


def setup_camera(config: CameraConfig) -> None:
    """Initialize camera state from configuration.

    Computes the basis (u, v, w), the viewport on the focus plane and the
    lens radius, and writes them to the camera fields.

    Raises:
        ConfigurationError: If the configuration is invalid.
    """
    config.validate()

    theta = math.radians(config.vfov)
    h = math.tan(theta / 2.0)

    viewport_height = 2.0 * h * config.focus_dist
    viewport_width = config.aspect_ratio * viewport_height

    lookfrom = np.array(config.lookfrom, dtype=np.float64)
    lookat = np.array(config.lookat, dtype=np.float64)
    vup = np.array(config.vup, dtype=np.float64)

    # w points from lookat toward lookfrom (backward)
    w = lookfrom - lookat
    w = w / np.linalg.norm(w)

    # u points right (perpendicular to w and vup)
    u = np.cross(vup, w)
    u = u / np.linalg.norm(u)

    # v points up in the camera's frame
    v = np.cross(w, u)

    _camera_origin[None] = lookfrom.tolist()
    _camera_u[None] = u.tolist()
    _camera_v[None] = v.tolist()
    _camera_w[None] = w.tolist()

    horizontal = viewport_width * u
    vertical = viewport_height * v
    lower_left = lookfrom - config.focus_dist * w - horizontal / 2.0 - vertical / 2.0

    _viewport_horizontal[None] = horizontal.tolist()
    _viewport_vertical[None] = vertical.tolist()
    _lower_left_corner[None] = lower_left.tolist()

    _defocus_radius[None] = config.focus_dist * math.tan(math.radians(config.defocus_angle / 2.0))


# =============================================================================
# Ray Generation
# =============================================================================


@ti.func
def get_ray(u: ti.f32, v: ti.f32) -> Ray:
    """Generate a ray from the lens center through normalized image coordinates.

    - u = 0: left edge, u = 1: right edge
    - v = 0: bottom edge, v = 1: top edge

    Returns:
        A Ray with a normalized direction.
    """
    point_on_viewport = (
        _lower_left_corner[None] + u * _viewport_horizontal[None] + v * _viewport_vertical[None]
    )
    origin = _camera_origin[None]
    direction = tm.normalize(point_on_viewport - origin)
    return make_ray(origin, direction)


@ti.func
def get_ray_through_lens(u: ti.f32, v: ti.f32, state: ti.i32):
    """Generate a ray through (u, v) starting from a random point on the lens.

    With a zero defocus radius this is :func:`get_ray` and consumes no draws.

    Returns:
        A tuple (ray, state).
    """
    point_on_viewport = (
        _lower_left_corner[None] + u * _viewport_horizontal[None] + v * _viewport_vertical[None]
    )
    origin = _camera_origin[None]
    s = state
    radius = _defocus_radius[None]
    if radius > 0.0:
        disk, s = random_in_unit_disk(state)
        origin = origin + radius * (disk.x * _camera_u[None] + disk.y * _camera_v[None])
    direction = tm.normalize(point_on_viewport - origin)
    return make_ray(origin, direction), s


@ti.func
def get_ray_jittered(
    pixel_i: ti.i32, pixel_j: ti.i32, width: ti.i32, height: ti.i32, state: ti.i32
):
    """Generate a jittered ray for anti-aliasing.

    The sample point is uniform over the pixel footprint; with several
    samples per pixel this is a box filter.

    Args:
        pixel_i: Pixel x-coordinate (0 = left).
        pixel_j: Pixel y-coordinate (0 = bottom).
        width: Image width in pixels.
        height: Image height in pixels.
        state: RNG state.

    Returns:
        A tuple (ray, state).
    """
    jitter_u, s = next_float(state)
    jitter_v, s = next_float(s)

    u = (ti.cast(pixel_i, ti.f32) + jitter_u) / ti.cast(width, ti.f32)
    v = (ti.cast(pixel_j, ti.f32) + jitter_v) / ti.cast(height, ti.f32)

    return get_ray_through_lens(u, v, s)


# =============================================================================
# Utility Functions
# =============================================================================


def get_camera_info() -> dict:
    """Get current camera state for debugging.

    Returns:
        Dictionary with origin, u, v, w, horizontal, vertical, lower_left
        (3-tuples) and defocus_radius.
    """

    def _tuple(f) -> tuple[float, float, float]:
        vec = f[None]
        return (float(vec[0]), float(vec[1]), float(vec[2]))

    return {
        "origin": _tuple(_camera_origin),
        "u": _tuple(_camera_u),
        "v": _tuple(_camera_v),
        "w": _tuple(_camera_w),
        "horizontal": _tuple(_viewport_horizontal),
        "vertical": _tuple(_viewport_vertical),
        "lower_left": _tuple(_lower_left_corner),
        "defocus_radius": float(_defocus_radius[None]),
    }
