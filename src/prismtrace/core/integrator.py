"""Path tracing integrator for Monte Carlo light transport.

This module implements the main rendering kernel: camera rays are traced
through the scene, bounced off surfaces according to their material, and the
radiance of each path is averaged into the render target.

Key features:
    - Material dispatch (Lambertian, Metal, Dielectric)
    - Iterative path loop with running throughput, bounded by depth
    - Background: sky gradient or a constant colour
    - One wavelength per sample for dispersive dielectrics
    - Deterministic per-(pixel, sample) random streams
    - Progressive sample accumulation (running mean)
    - Self-intersection avoidance with ray offset

Depth convention: ``ray_color(ray, depth)`` traces at most ``depth`` ray
segments and returns zero when ``depth == 0``. The camera traces each
primary ray with ``max_depth + 1`` so ``max_depth`` counts scattering events.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from prismtrace.core.integrator import prepare_render, render_image
    >>> from prismtrace.scene.presets import create_three_spheres_scene
    >>>
    >>> scene, camera = create_three_spheres_scene()
    >>> scene.build()
    >>> prepare_render(camera)
    >>> render_image()
"""

import logging
import math
import time
from dataclasses import dataclass

import numpy as np
import taichi as ti
import taichi.math as tm

from prismtrace.camera.thin_lens import CameraConfig, get_ray_jittered, setup_camera
from prismtrace.core.errors import ConfigurationError
from prismtrace.core.ray import is_finite
from prismtrace.core.sampler import SALT_WAVELENGTH, hash_float, seed_rng
from prismtrace.core.spectral import (
    REFERENCE_WAVELENGTH,
    sample_wavelength,
    setup_spectral_tables,
    wavelength_weight,
)
from prismtrace.materials.dielectric import (
    get_dielectric_ior_at,
    is_dispersive,
    scatter_dielectric,
)
from prismtrace.materials.lambertian import (
    get_lambertian_albedo,
    scatter_lambertian,
)
from prismtrace.materials.metal import (
    get_metal_albedo,
    get_metal_fuzz,
    scatter_metal,
)
from prismtrace.scene.intersection import intersect_scene
from prismtrace.scene.manager import (
    MaterialType,
    get_material_type,
    get_material_type_index,
)

logger = logging.getLogger(__name__)

# Type alias for 3D vectors
vec3 = tm.vec3

# =============================================================================
# Rendering Constants
# =============================================================================

# Secondary ray origin offset, relative to the largest coordinate of the hit
# point (at least 1)
RAY_OFFSET_SCALE = 1e-4

# Offset origins already sit off the surface, so t_min only excludes t ~ 0
T_MIN = 1e-6
T_MAX = 1e10

BACKGROUND_SKY = 0
BACKGROUND_CONSTANT = 1
BACKGROUND_MODES = {"sky": BACKGROUND_SKY, "constant": BACKGROUND_CONSTANT}


# =============================================================================
# Render Settings
# =============================================================================


@dataclass
class RenderSettings:
    """Renderer options that are not part of the camera.

    Attributes:
        seed: Base seed of every per-(pixel, sample) random stream.
        background: "sky" for the white-to-blue gradient, "constant" for
            background_color.
        background_color: Radiance of escaped rays in "constant" mode.
        gamma: Display gamma applied when producing the pixel buffer.
        spectral: Trace one wavelength per sample so dispersive glass splits
            light. When off, dispersive glass uses its index at 587.6 nm.
    """

    seed: int = 0
    background: str = "sky"
    background_color: tuple[float, float, float] = (1.0, 1.0, 1.0)
    gamma: float = 2.2
    spectral: bool = True

    def validate(self) -> None:
        """Raises ConfigurationError on an invalid option."""
        if self.background not in BACKGROUND_MODES:
            known = ", ".join(sorted(BACKGROUND_MODES))
            raise ConfigurationError(
                f"Unknown background {self.background!r}; expected one of {known}"
            )
        if len(self.background_color) != 3 or not all(
            math.isfinite(float(c)) and float(c) >= 0.0 for c in self.background_color
        ):
            raise ConfigurationError(
                f"background_color must be 3 non-negative numbers, got {self.background_color}"
            )
        if not (math.isfinite(self.gamma) and self.gamma > 0.0):
            raise ConfigurationError(f"gamma must be positive, got {self.gamma}")
        if int(self.seed) != self.seed:
            raise ConfigurationError(f"seed must be an integer, got {self.seed}")


_background_mode = ti.field(dtype=ti.i32, shape=())
_background_color = ti.Vector.field(3, dtype=ti.f32, shape=())
_spectral_enabled = ti.field(dtype=ti.i32, shape=())
_base_seed = ti.field(dtype=ti.i32, shape=())

# Sampling parameters of the configured render
_max_depth = ti.field(dtype=ti.i32, shape=())
_strata = ti.field(dtype=ti.i32, shape=())


def apply_render_settings(settings: RenderSettings) -> None:
    """Write render settings to the integrator fields.

    Raises:
        ConfigurationError: If the settings are invalid.
    """
    settings.validate()
    setup_spectral_tables()
    _background_mode[None] = BACKGROUND_MODES[settings.background]
    _background_color[None] = [float(c) for c in settings.background_color]
    _spectral_enabled[None] = 1 if settings.spectral else 0
    _base_seed[None] = int(settings.seed) & 0x7FFFFFFF


# =============================================================================
# Render Target (Image Buffer)
# =============================================================================

# Maximum supported image dimensions (preallocated to avoid kernel recompilation)
MAX_IMAGE_WIDTH = 2048
MAX_IMAGE_HEIGHT = 2048

# Image dimensions (actual active size)
_image_width = ti.field(dtype=ti.i32, shape=())
_image_height = ti.field(dtype=ti.i32, shape=())

# Color accumulation buffer (preallocated to max size)
_color_buffer = ti.Vector.field(3, dtype=ti.f32, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))

# Sample count per pixel (preallocated to max size)
_sample_count = ti.field(dtype=ti.i32, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))

# Flag to track if render target is initialized
_render_target_initialized = ti.field(dtype=ti.i32, shape=())


def setup_render_target(width: int, height: int) -> None:
    """Initialize the render target buffers.

    Sets the active image dimensions and clears the buffers. The buffers are
    preallocated to MAX_IMAGE_WIDTH x MAX_IMAGE_HEIGHT.

    Raises:
        ConfigurationError: If a dimension is not positive or exceeds the
            maximum supported size.
    """
    if width < 1 or height < 1:
        raise ConfigurationError(f"Image dimensions ({width}x{height}) must be positive")
    if width > MAX_IMAGE_WIDTH or height > MAX_IMAGE_HEIGHT:
        raise ConfigurationError(
            f"Image dimensions ({width}x{height}) exceed maximum supported "
            f"({MAX_IMAGE_WIDTH}x{MAX_IMAGE_HEIGHT})"
        )

    _image_width[None] = width
    _image_height[None] = height
    _render_target_initialized[None] = 1

    clear_render_target()


def clear_render_target() -> None:
    """Clear the render target buffers to zero."""
    _color_buffer.fill(0.0)
    _sample_count.fill(0)


def reset_render_target() -> None:
    """Clear the buffers and mark the render target as not set up."""
    clear_render_target()
    _render_target_initialized[None] = 0


def get_image_dimensions() -> tuple[int, int]:
    """Get the current render target dimensions as (width, height)."""
    return int(_image_width[None]), int(_image_height[None])


def _check_render_target_initialized() -> None:
    """Check if render target is initialized and raise if not."""
    if _render_target_initialized[None] == 0:
        raise RuntimeError("Render target not set up. Call setup_render_target() first.")


def prepare_render(config: CameraConfig, settings: RenderSettings | None = None) -> None:
    """Configure camera, render target and settings for a render.

    Args:
        config: Camera and sampling configuration.
        settings: Renderer options; defaults to RenderSettings().

    Raises:
        ConfigurationError: If the configuration or settings are invalid or
            the image does not fit the render target.
    """
    if settings is None:
        settings = RenderSettings()
    config.validate()
    settings.validate()

    setup_camera(config)
    setup_render_target(config.image_width, config.image_height)
    apply_render_settings(settings)
    _max_depth[None] = int(config.max_depth)
    _strata[None] = int(config.samples_per_pixel)

    logger.debug(
        "Prepared %dx%d render: spp=%d max_depth=%d spectral=%s seed=%d",
        config.image_width,
        config.image_height,
        config.samples_per_pixel,
        config.max_depth,
        settings.spectral,
        settings.seed,
    )


# =============================================================================
# Background
# =============================================================================


@ti.func
def background_color(direction: vec3) -> vec3:
    """Radiance of a ray that escapes the scene."""
    result = _background_color[None]
    if _background_mode[None] == BACKGROUND_SKY:
        unit_direction = tm.normalize(direction)
        a = 0.5 * (unit_direction.y + 1.0)
        result = (1.0 - a) * vec3(1.0, 1.0, 1.0) + a * vec3(0.5, 0.7, 1.0)
    return result


# =============================================================================
# Material Dispatch
# =============================================================================


@ti.func
def _scatter_material(
    material_id: ti.i32,
    incident_direction: vec3,
    normal: vec3,
    front_face: ti.i32,
    wavelength: ti.f32,
    state: ti.i32,
):
    """Dispatch to the appropriate material scattering function.

    Args:
        material_id: The unified material ID.
        incident_direction: The incoming ray direction.
        normal: The surface normal (normalized, facing toward ray).
        front_face: 1 if hit front face, 0 if back face.
        wavelength: Wavelength of the path in nanometres.
        state: RNG state.

    Returns:
        A tuple of (scattered_direction, attenuation, did_scatter,
        dispersive, state). dispersive is 1 if the surface's index depended
        on the wavelength.
    """
    mat_type = get_material_type(material_id)
    type_index = get_material_type_index(material_id)

    scattered_direction = vec3(0.0, 0.0, 0.0)
    attenuation = vec3(0.0, 0.0, 0.0)
    did_scatter = 0
    dispersive = 0
    s = state

    if mat_type == int(MaterialType.LAMBERTIAN):
        albedo = get_lambertian_albedo(type_index)
        scattered_direction, attenuation, did_scatter, s = scatter_lambertian(albedo, normal, state)

    elif mat_type == int(MaterialType.METAL):
        albedo = get_metal_albedo(type_index)
        fuzz = get_metal_fuzz(type_index)
        scattered_direction, attenuation, did_scatter, s = scatter_metal(
            albedo, fuzz, incident_direction, normal, state
        )

    elif mat_type == int(MaterialType.DIELECTRIC):
        lam = REFERENCE_WAVELENGTH
        if _spectral_enabled[None] == 1 and is_dispersive(type_index) == 1:
            lam = wavelength
            dispersive = 1
        ior = get_dielectric_ior_at(type_index, lam)
        scattered_direction, attenuation, did_scatter, s = scatter_dielectric(
            ior, incident_direction, normal, front_face, state
        )

    return scattered_direction, attenuation, did_scatter, dispersive, s


# =============================================================================
# Path Tracing Core
# =============================================================================


@ti.func
def _offset_ray_origin(point: vec3, normal: vec3, direction: vec3) -> vec3:
    """Offset ray origin to avoid self-intersection.

    Pushes the point along the normal on the side the scattered ray leaves
    from (above the surface for reflection, below for refraction). The
    distance scales with the magnitude of the point, matching f32 spacing.
    """
    offset_dir = normal
    if tm.dot(direction, normal) < 0.0:
        offset_dir = -normal
    magnitude = tm.max(tm.max(ti.abs(point.x), ti.abs(point.y)), tm.max(ti.abs(point.z), 1.0))
    return point + RAY_OFFSET_SCALE * magnitude * offset_dir


@ti.func
def trace_path(origin: vec3, direction: vec3, depth: ti.i32, wavelength: ti.f32, state: ti.i32):
    """Estimate the radiance arriving along a ray.

    Equivalent to the recursion

        ray_color(ray, 0) = 0
        ray_color(ray, d) = background             if the ray escapes
                          = 0                      if the surface absorbs it
                          = atten * ray_color(scattered, d - 1)

    written as a loop with a running throughput. A path that scattered off a
    dispersive surface is multiplied by the colour weight of its wavelength.

    Args:
        origin: Ray origin.
        direction: Ray direction.
        depth: Maximum number of ray segments to trace.
        wavelength: Wavelength of the path in nanometres.
        state: RNG state.

    Returns:
        A tuple (radiance, state).
    """
    ray_origin = origin
    ray_direction = direction
    radiance = vec3(0.0, 0.0, 0.0)
    throughput = vec3(1.0, 1.0, 1.0)
    dispersive_path = 0
    s = state

    # Active flag for path continuation (no break inside ti.func loops)
    active = 1

    for _ in range(depth):
        if active == 1:
            hit_record = intersect_scene(ray_origin, ray_direction, T_MIN, T_MAX)

            if hit_record.hit == 0:
                radiance = throughput * background_color(ray_direction)
                active = 0
            else:
                scattered_direction, attenuation, did_scatter, dispersive, s = _scatter_material(
                    hit_record.material_id,
                    ray_direction,
                    hit_record.normal,
                    hit_record.front_face,
                    wavelength,
                    s,
                )

                if did_scatter == 0 or is_finite(scattered_direction) == 0:
                    active = 0
                else:
                    throughput *= attenuation
                    if dispersive == 1:
                        dispersive_path = 1
                    ray_origin = _offset_ray_origin(
                        hit_record.point, hit_record.normal, scattered_direction
                    )
                    ray_direction = scattered_direction

    if dispersive_path == 1:
        radiance *= wavelength_weight(wavelength)

    return radiance, s


@ti.func
def _sample_wavelength_for(pixel_index: ti.i32, sample_index: ti.i32) -> ti.f32:
    """Wavelength of one camera sample (the reference line if spectral is off)."""
    wavelength = REFERENCE_WAVELENGTH
    if _spectral_enabled[None] == 1:
        jitter = hash_float(pixel_index, sample_index, SALT_WAVELENGTH)
        wavelength = sample_wavelength(sample_index, _strata[None], jitter)
    return wavelength


@ti.func
def render_sample_impl(
    pixel_i: ti.i32,
    pixel_j: ti.i32,
    width: ti.i32,
    height: ti.i32,
    sample_index: ti.i32,
    max_depth: ti.i32,
    seed: ti.i32,
) -> vec3:
    """Trace one camera sample for a pixel.

    Args:
        pixel_i: Pixel x-coordinate (0 = left).
        pixel_j: Pixel y-coordinate (0 = bottom).
        width: Image width in pixels.
        height: Image height in pixels.
        sample_index: Index of the sample within the pixel.
        max_depth: Maximum number of scattering events.
        seed: Base seed of the render.

    Returns:
        The estimated radiance (RGB) for this sample.
    """
    pixel_index = pixel_j * width + pixel_i
    state = seed_rng(pixel_index, sample_index, seed)
    ray, state = get_ray_jittered(pixel_i, pixel_j, width, height, state)
    wavelength = _sample_wavelength_for(pixel_index, sample_index)
    color, state = trace_path(ray.origin, ray.direction, max_depth + 1, wavelength, state)
    return color


@ti.func
def _sanitize(color: vec3) -> vec3:
    """Replace NaN or infinite components with zero."""
    result = color
    for c in ti.static(range(3)):
        if tm.isnan(result[c]) or tm.isinf(result[c]):
            result[c] = 0.0
    return result


# =============================================================================
# Rendering Kernels
# =============================================================================


@ti.kernel
def _render_samples(
    width: ti.i32,
    height: ti.i32,
    sample_offset: ti.i32,
    num_samples: ti.i32,
    max_depth: ti.i32,
    seed: ti.i32,
):
    """Render num_samples samples per pixel and fold them into the buffer.

    Each pixel keeps its running mean in a local and writes it back once.
    """
    for i, j in ti.ndrange(width, height):
        mean = _color_buffer[i, j]
        n = _sample_count[i, j]
        for k in range(num_samples):
            color = _sanitize(
                render_sample_impl(i, j, width, height, sample_offset + k, max_depth, seed)
            )
            n += 1
            # Running average: avg_n = avg_{n-1} + (x_n - avg_{n-1}) / n
            mean += (color - mean) / ti.cast(n, ti.f32)
        _color_buffer[i, j] = mean
        _sample_count[i, j] = n


@ti.kernel
def _render_single_pixel(
    pixel_i: ti.i32,
    pixel_j: ti.i32,
    width: ti.i32,
    height: ti.i32,
    sample_index: ti.i32,
    max_depth: ti.i32,
    seed: ti.i32,
) -> vec3:
    return render_sample_impl(pixel_i, pixel_j, width, height, sample_index, max_depth, seed)


@ti.kernel
def _ray_color_kernel(
    ox: ti.f32,
    oy: ti.f32,
    oz: ti.f32,
    dx: ti.f32,
    dy: ti.f32,
    dz: ti.f32,
    depth: ti.i32,
    wavelength: ti.f32,
    seed: ti.i32,
) -> vec3:
    state = seed_rng(0, 0, seed)
    color, state = trace_path(vec3(ox, oy, oz), vec3(dx, dy, dz), depth, wavelength, state)
    return color


# =============================================================================
# Public Rendering API
# =============================================================================


def ray_color(
    origin: tuple[float, float, float],
    direction: tuple[float, float, float],
    depth: int,
    wavelength: float | None = None,
    seed: int = 0,
) -> tuple[float, float, float]:
    """Trace one ray from the host (debugging and tests).

    Args:
        origin: Ray origin.
        direction: Ray direction.
        depth: Maximum number of ray segments; 0 always gives black.
        wavelength: Wavelength in nm; defaults to the 587.6 nm reference.
        seed: Seed of the ray's random stream.

    Returns:
        Tuple of (R, G, B) radiance.
    """
    lam = REFERENCE_WAVELENGTH if wavelength is None else float(wavelength)
    color = _ray_color_kernel(
        float(origin[0]),
        float(origin[1]),
        float(origin[2]),
        float(direction[0]),
        float(direction[1]),
        float(direction[2]),
        int(depth),
        lam,
        int(seed) & 0x7FFFFFFF,
    )
    return (float(color[0]), float(color[1]), float(color[2]))


def render_sample(pixel_i: int, pixel_j: int, sample_index: int = 0) -> tuple[float, float, float]:
    """Render a single sample for a specific pixel.

    Uses the camera, settings and max_depth of the prepared render.

    Args:
        pixel_i: Pixel x-coordinate (0 = left).
        pixel_j: Pixel y-coordinate (0 = bottom).
        sample_index: Index of the sample within the pixel.

    Returns:
        Tuple of (R, G, B) color values.

    Raises:
        RuntimeError: If render target has not been set up.
    """
    _check_render_target_initialized()

    width, height = get_image_dimensions()
    color = _render_single_pixel(
        pixel_i, pixel_j, width, height, sample_index, int(_max_depth[None]), int(_base_seed[None])
    )
    return (float(color[0]), float(color[1]), float(color[2]))


def render_image(num_samples: int | None = None) -> None:
    """Add samples to every pixel of the render target.

    Samples continue the per-pixel sample sequence, so rendering 4 then 6
    samples gives the same image as rendering 10 at once.

    Args:
        num_samples: Samples per pixel to add; defaults to the configured
            samples_per_pixel.

    Raises:
        RuntimeError: If render target has not been set up.
    """
    _check_render_target_initialized()

    if num_samples is None:
        num_samples = max(1, int(_strata[None]))
    if num_samples <= 0:
        return

    width, height = get_image_dimensions()
    offset = get_total_samples()
    start = time.perf_counter()
    _render_samples(
        width, height, offset, num_samples, int(_max_depth[None]), int(_base_seed[None])
    )
    ti.sync()
    logger.debug(
        "Rendered samples %d-%d of %dx%d in %.3fs",
        offset,
        offset + num_samples - 1,
        width,
        height,
        time.perf_counter() - start,
    )


def get_total_samples() -> int:
    """Get the number of samples accumulated per pixel so far.

    Raises:
        RuntimeError: If render target has not been set up.
    """
    _check_render_target_initialized()

    return int(_sample_count[0, 0])


def get_image_numpy() -> np.ndarray:
    """Get the accumulated linear radiance as a NumPy array.

    Returns:
        Array of shape (height, width, 3), dtype float32, top row first.

    Raises:
        RuntimeError: If render target has not been set up.
    """
    _check_render_target_initialized()

    width, height = get_image_dimensions()
    full_image = _color_buffer.to_numpy()
    image = full_image[:width, :height, :]

    # Transpose from (width, height, 3) to (height, width, 3) for standard image format
    image = np.transpose(image, (1, 0, 2))

    # Flip vertically (buffer row 0 is the bottom, images start at the top)
    image = np.flipud(image)

    return np.ascontiguousarray(image, dtype=np.float32)


def render(
    config: CameraConfig,
    settings: RenderSettings | None = None,
) -> np.ndarray:
    """Render the built scene and return the finished pixel buffer.

    The scene must have been built (``SceneManager.build()``) beforehand.

    Args:
        config: Camera and sampling configuration.
        settings: Renderer options; defaults to RenderSettings().

    Returns:
        uint8 array of shape (height, width, 3), top row first.
    """
    from prismtrace.preview.export import to_pixel_buffer

    if settings is None:
        settings = RenderSettings()
    prepare_render(config, settings)

    start = time.perf_counter()
    render_image(config.samples_per_pixel)
    logger.info(
        "Rendered %dx%d at %d spp in %.2fs",
        config.image_width,
        config.image_height,
        config.samples_per_pixel,
        time.perf_counter() - start,
    )
    return to_pixel_buffer(get_image_numpy(), gamma=settings.gamma)
