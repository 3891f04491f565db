"""Progressive renderer for iterative sample accumulation.

Wraps the integrator so a render can be refined over time:
- Batch rendering (several samples per pixel per kernel launch)
- Progress callbacks or a generator for UI updates
- Reset and re-render without reconfiguring

The integrator owns the render target (Taichi fields), so only one
ProgressiveRenderer is active at a time; constructing a new one reconfigures
the target.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from prismtrace.core.progressive import ProgressiveRenderer
    >>> from prismtrace.scene.presets import create_prism_scene
    >>>
    >>> scene, camera = create_prism_scene()
    >>> scene.build()
    >>> renderer = ProgressiveRenderer(camera)
    >>> for current, target in renderer.render_progressive(64, batch_size=8):
    ...     print(f"{current}/{target}")
    >>> renderer.save_image("prism.png")
"""

import os
from collections.abc import Callable, Generator

import numpy as np
import numpy.typing as npt

from prismtrace.camera.thin_lens import CameraConfig
from prismtrace.core.integrator import (
    RenderSettings,
    clear_render_target,
    get_image_numpy,
    get_total_samples,
    prepare_render,
    render_image,
)

# Callback receives (current_samples, target_samples)
ProgressCallback = Callable[[int, int], None]


class ProgressiveRenderer:
    """Accumulates samples for one camera configuration.

    Attributes:
        config: Camera and sampling configuration.
        settings: Renderer options (seed, background, gamma, spectral).
    """

    def __init__(self, config: CameraConfig, settings: RenderSettings | None = None) -> None:
        """Configure the integrator for a render.

        Raises:
            ConfigurationError: If the configuration or settings are invalid.
        """
        self.config = config
        self.settings = settings if settings is not None else RenderSettings()
        prepare_render(self.config, self.settings)

    @property
    def width(self) -> int:
        return self.config.image_width

    @property
    def height(self) -> int:
        return self.config.image_height

    @property
    def sample_count(self) -> int:
        """Samples accumulated per pixel so far."""
        return get_total_samples()

    def reset(self) -> None:
        """Discard accumulated samples; the next render starts at sample 0."""
        clear_render_target()

    def render(
        self,
        num_samples: int | None = None,
        batch_size: int = 1,
        callback: ProgressCallback | None = None,
    ) -> None:
        """Add samples to the image, calling back after each batch.

        Args:
            num_samples: Samples per pixel to add; defaults to the
                configured samples_per_pixel.
            batch_size: Samples per kernel launch.
            callback: Called with (current_samples, target_samples).
        """
        for current, target in self.render_progressive(num_samples, batch_size):
            if callback is not None:
                callback(current, target)

    def render_progressive(
        self,
        num_samples: int | None = None,
        batch_size: int = 1,
    ) -> Generator[tuple[int, int], None, None]:
        """Add samples to the image, yielding progress after each batch.

        Stopping the iteration early leaves the samples rendered so far in
        the buffer.

        Yields:
            Tuple of (current_samples, target_samples).
        """
        if num_samples is None:
            num_samples = self.config.samples_per_pixel
        if num_samples <= 0:
            return
        batch_size = max(1, batch_size)

        target_samples = self.sample_count + num_samples
        remaining = num_samples
        while remaining > 0:
            batch = min(batch_size, remaining)
            render_image(batch)
            remaining -= batch
            yield (self.sample_count, target_samples)

    def get_image_numpy(self) -> npt.NDArray[np.float32]:
        """Linear radiance, shape (height, width, 3), top row first."""
        return get_image_numpy()

    def get_pixel_buffer(self) -> npt.NDArray[np.uint8]:
        """The 8-bit output buffer using the settings' gamma."""
        from prismtrace.preview.export import to_pixel_buffer

        return to_pixel_buffer(self.get_image_numpy(), gamma=self.settings.gamma)

    def save_image(self, filepath: str | os.PathLike) -> None:
        """Save the image as PNG, or as PPM if the path ends in ``.ppm``."""
        from prismtrace.preview.export import save_png, save_ppm

        pixels = self.get_pixel_buffer()
        if str(filepath).lower().endswith(".ppm"):
            save_ppm(pixels, filepath)
        else:
            save_png(pixels, filepath)

    def __repr__(self) -> str:
        return (
            f"ProgressiveRenderer(width={self.width}, height={self.height}, "
            f"samples={self.sample_count})"
        )
