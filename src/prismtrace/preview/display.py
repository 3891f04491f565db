"""Display pipeline and Matplotlib preview for rendered images.

The integrator accumulates linear radiance. Before an image is shown or
written it goes through the display pipeline:

    1. optional tone mapping ("none", "reinhard", "exposure")
    2. gamma encoding, x ** (1 / gamma)
    3. clamping to [0, 1]

Example:
    >>> from prismtrace.preview.display import show_preview
    >>> renderer = ProgressiveRenderer(camera)
    >>> renderer.render(16)
    >>> show_preview(renderer.get_image_numpy(), title="three spheres")
"""

from __future__ import annotations

from typing import Literal

import numpy as np
import numpy.typing as npt

from prismtrace.core.errors import ConfigurationError

ToneMapMethod = Literal["none", "reinhard", "exposure"]

TONE_MAP_METHODS = ("none", "reinhard", "exposure")


def tone_map_reinhard(image: npt.NDArray[np.float32]) -> npt.NDArray[np.float32]:
    """Compress radiance with the Reinhard operator c / (1 + c)."""
    image = np.maximum(image, 0.0)
    return (image / (1.0 + image)).astype(np.float32)


def tone_map_exposure(
    image: npt.NDArray[np.float32],
    exposure: float = 1.0,
) -> npt.NDArray[np.float32]:
    """Compress radiance with 1 - exp(-c * exposure)."""
    image = np.maximum(image, 0.0)
    return (1.0 - np.exp(-image * exposure)).astype(np.float32)


def apply_gamma(
    image: npt.NDArray[np.float32],
    gamma: float = 2.2,
) -> npt.NDArray[np.float32]:
    """Gamma-encode a linear image.

    Values are clamped to [0, 1] first; a negative channel (possible for
    wavelengths whose colour weight leaves the sRGB gamut) would otherwise
    become NaN.

    Args:
        image: Linear image of shape (H, W, 3).
        gamma: Display gamma; 1.0 leaves the image unchanged.

    Returns:
        The encoded image.
    """
    if gamma == 1.0:
        return image
    image = np.clip(image, 0.0, 1.0)
    return np.power(image, 1.0 / gamma).astype(np.float32)


def process_image_for_display(
    image: npt.NDArray[np.float32],
    tone_map: ToneMapMethod = "none",
    gamma: float = 2.2,
    exposure: float = 1.0,
) -> npt.NDArray[np.float32]:
    """Run the display pipeline on a linear image.

    Args:
        image: Linear radiance of shape (H, W, 3).
        tone_map: Tone mapping method ("none", "reinhard" or "exposure").
        gamma: Display gamma (default 2.2).
        exposure: Exposure for the "exposure" tone map.

    Returns:
        Float32 image in [0, 1].

    Raises:
        ConfigurationError: If tone_map is unknown or gamma is not positive.
    """
    if tone_map not in TONE_MAP_METHODS:
        raise ConfigurationError(
            f"Unknown tone mapping method {tone_map!r}; expected one of {TONE_MAP_METHODS}"
        )
    if not gamma > 0.0:
        raise ConfigurationError(f"gamma must be positive, got {gamma}")

    result = np.nan_to_num(np.asarray(image, dtype=np.float32), nan=0.0, posinf=1.0, neginf=0.0)

    if tone_map == "reinhard":
        result = tone_map_reinhard(result)
    elif tone_map == "exposure":
        result = tone_map_exposure(result, exposure)

    result = apply_gamma(result, gamma)
    return np.clip(result, 0.0, 1.0).astype(np.float32)


def show_preview(
    image: npt.NDArray[np.float32],
    *,
    tone_map: ToneMapMethod = "none",
    gamma: float = 2.2,
    exposure: float = 1.0,
    title: str | None = None,
    figsize: tuple[float, float] = (8, 4.5),
    block: bool = True,
) -> None:
    """Show a linear image in a Matplotlib window.

    Requires the ``preview`` extra (matplotlib).

    Args:
        image: Linear radiance of shape (H, W, 3), top row first.
        tone_map: Tone mapping method.
        gamma: Display gamma.
        exposure: Exposure for the "exposure" tone map.
        title: Window title; defaults to the image size.
        figsize: Figure size in inches (width, height).
        block: Whether to block until the window is closed.
    """
    import matplotlib.pyplot as plt

    display_image = process_image_for_display(
        image, tone_map=tone_map, gamma=gamma, exposure=exposure
    )

    fig, ax = plt.subplots(1, 1, figsize=figsize)
    ax.imshow(display_image)
    ax.axis("off")

    if title is None:
        height, width = display_image.shape[:2]
        title = f"{width}x{height}"
        if tone_map != "none":
            title += f" ({tone_map})"
    ax.set_title(title)

    plt.tight_layout()
    plt.show(block=block)
