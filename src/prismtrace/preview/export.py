"""Pixel buffer and file output.

``to_pixel_buffer`` turns the integrator's linear radiance into the final
8-bit buffer: shape (height, width, 3), row-major, top row first. The buffer
is written as PNG with Pillow or as plain-text PPM (P3).

Example:
    >>> from prismtrace.preview.export import save_png, to_pixel_buffer
    >>> pixels = to_pixel_buffer(get_image_numpy())
    >>> save_png(pixels, "spheres.png")
"""

from __future__ import annotations

import logging
import os

import numpy as np
import numpy.typing as npt
from PIL import Image as PILImage

from prismtrace.preview.display import ToneMapMethod, process_image_for_display

logger = logging.getLogger(__name__)


def to_pixel_buffer(
    image: npt.NDArray[np.float32],
    *,
    tone_map: ToneMapMethod = "none",
    gamma: float = 2.2,
    exposure: float = 1.0,
) -> npt.NDArray[np.uint8]:
    """Convert a linear image to the 8-bit pixel buffer.

    Args:
        image: Linear radiance of shape (H, W, 3), top row first.
        tone_map: Tone mapping method ("none", "reinhard" or "exposure").
        gamma: Display gamma (default 2.2).
        exposure: Exposure for the "exposure" tone map.

    Returns:
        uint8 array of shape (H, W, 3).
    """
    processed = process_image_for_display(
        image, tone_map=tone_map, gamma=gamma, exposure=exposure
    )
    return (processed * 255.0 + 0.5).astype(np.uint8)


def _as_pixel_buffer(pixels: npt.NDArray) -> npt.NDArray[np.uint8]:
    """Check that pixels is an (H, W, 3) buffer and return it as uint8."""
    pixels = np.asarray(pixels)
    if pixels.ndim != 3 or pixels.shape[2] != 3:
        raise ValueError(f"Expected a pixel buffer of shape (H, W, 3), got {pixels.shape}")
    if pixels.dtype != np.uint8:
        pixels = to_pixel_buffer(pixels.astype(np.float32))
    return pixels


def save_png(pixels: npt.NDArray, filepath: str | os.PathLike) -> None:
    """Save a pixel buffer as an 8-bit RGB PNG.

    A float image is treated as linear radiance and run through
    to_pixel_buffer with the default gamma first.
    """
    pixels = _as_pixel_buffer(pixels)
    PILImage.fromarray(pixels).save(filepath)
    logger.info("Wrote %dx%d PNG to %s", pixels.shape[1], pixels.shape[0], filepath)


def encode_ppm(pixels: npt.NDArray) -> str:
    """Encode a pixel buffer as plain-text PPM (P3).

    The header is ``P3``, ``<width> <height>`` and ``255``, followed by one
    ``R G B`` line per pixel in row-major order, top row first.
    """
    pixels = _as_pixel_buffer(pixels)
    height, width = pixels.shape[:2]
    lines = ["P3", f"{width} {height}", "255"]
    lines.extend(f"{r} {g} {b}" for r, g, b in pixels.reshape(-1, 3).tolist())
    return "\n".join(lines) + "\n"


def save_ppm(pixels: npt.NDArray, filepath: str | os.PathLike) -> None:
    """Save a pixel buffer as plain-text PPM (P3)."""
    text = encode_ppm(pixels)
    with open(filepath, "w", encoding="ascii") as f:
        f.write(text)
    logger.info("Wrote PPM to %s", filepath)
