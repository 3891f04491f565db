"""Output and visualization.

Components:
    display: tone mapping, gamma and the Matplotlib preview window
    export: 8-bit pixel buffer, PNG (Pillow) and PPM (P3) output

Example:
    >>> from prismtrace.preview import save_png, to_pixel_buffer
    >>> pixels = to_pixel_buffer(renderer.get_image_numpy(), gamma=2.2)
    >>> save_png(pixels, "output.png")
"""

from prismtrace.preview.display import (
    ToneMapMethod,
    apply_gamma,
    process_image_for_display,
    show_preview,
    tone_map_exposure,
    tone_map_reinhard,
)
from prismtrace.preview.export import (
    encode_ppm,
    save_png,
    save_ppm,
    to_pixel_buffer,
)

__all__ = [
    # Display pipeline
    "ToneMapMethod",
    "apply_gamma",
    "process_image_for_display",
    "show_preview",
    "tone_map_exposure",
    "tone_map_reinhard",
    # Output
    "encode_ppm",
    "save_png",
    "save_ppm",
    "to_pixel_buffer",
]
