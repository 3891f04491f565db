#!/usr/bin/env python3
"""Render one of the preset scenes.

Usage:
    python examples/render_scene.py [options]

Options:
    --scene NAME        "spheres" or "prism" (default: prism)
    --width WIDTH       Image width in pixels (default: 400)
    --samples SAMPLES   Samples per pixel (default: the preset's)
    --max-depth DEPTH   Maximum scattering events (default: the preset's)
    --glass NAME        Cauchy preset for the prism (default: sf10)
    --seed SEED         Base random seed (default: 0)
    --no-spectral       Trace every sample at 587.6 nm
    --output OUTPUT     Output file, .png or .ppm (default: <scene>.png)
    --batch-size SIZE   Samples per progress update (default: 4)
    --arch ARCH         Taichi backend, "cpu" or "gpu" (default: cpu)
    --preview           Show the result in a Matplotlib window
    --quiet             Suppress progress output
    --verbose           Log build and render details

Example:
    python examples/render_scene.py --scene prism --width 320 --samples 64
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

import taichi as ti

SCENES = ("spheres", "prism")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Render a preset scene with the spectral path tracer.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--scene", choices=SCENES, default="prism", help="Preset scene")
    parser.add_argument("--width", type=int, default=400, help="Image width in pixels")
    parser.add_argument("--samples", type=int, default=None, help="Samples per pixel")
    parser.add_argument("--max-depth", type=int, default=None, help="Maximum scattering events")
    parser.add_argument("--glass", default="sf10", help="Cauchy preset for the prism")
    parser.add_argument("--seed", type=int, default=0, help="Base random seed")
    parser.add_argument(
        "--no-spectral",
        action="store_true",
        help="Trace every sample at the 587.6 nm reference wavelength",
    )
    parser.add_argument("--output", type=str, default=None, help="Output .png or .ppm path")
    parser.add_argument("--batch-size", type=int, default=4, help="Samples per progress update")
    parser.add_argument("--arch", choices=("cpu", "gpu"), default="cpu", help="Taichi backend")
    parser.add_argument("--preview", action="store_true", help="Show a Matplotlib preview")
    parser.add_argument("--quiet", action="store_true", help="Suppress progress output")
    parser.add_argument("--verbose", action="store_true", help="Log build and render details")
    return parser.parse_args(argv)


def render_scene(args: argparse.Namespace) -> Path:
    """Build the chosen preset, render it progressively and save it.

    Returns:
        Path to the saved image file.
    """
    # Imported after ti.init so the fields are placed on the chosen backend
    from prismtrace.core.integrator import RenderSettings
    from prismtrace.core.progressive import ProgressiveRenderer
    from prismtrace.scene.presets import create_prism_scene, create_three_spheres_scene

    if args.scene == "prism":
        scene, camera = create_prism_scene(glass=args.glass, image_width=args.width)
    else:
        scene, camera = create_three_spheres_scene(image_width=args.width)
    if args.samples is not None:
        camera.samples_per_pixel = args.samples
    if args.max_depth is not None:
        camera.max_depth = args.max_depth

    if not args.quiet:
        print(
            f"Building {args.scene} scene "
            f"({scene.get_primitive_count()} primitives, "
            f"{camera.image_width}x{camera.image_height})..."
        )
    scene.build()

    settings = RenderSettings(seed=args.seed, spectral=not args.no_spectral)
    renderer = ProgressiveRenderer(camera, settings)

    start_time = time.time()

    def progress_callback(current: int, target: int) -> None:
        if args.quiet:
            return
        elapsed = time.time() - start_time
        rate = current / elapsed if elapsed > 0 else 0.0
        print(
            f"\r  Progress: {current}/{target} samples "
            f"({100.0 * current / target:.1f}%) - {rate:.1f} spp/s",
            end="",
            flush=True,
        )

    renderer.render(batch_size=args.batch_size, callback=progress_callback)
    if not args.quiet:
        print()

    output_file = Path(args.output if args.output else f"{args.scene}.png")
    renderer.save_image(output_file)

    if not args.quiet:
        print(f"Saved to: {output_file.absolute()}")
        print(f"Total time: {time.time() - start_time:.2f}s")

    if args.preview:
        from prismtrace.preview.display import show_preview

        show_preview(renderer.get_image_numpy(), gamma=settings.gamma, title=args.scene)

    return output_file


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ti.init(arch=ti.gpu if args.arch == "gpu" else ti.cpu)

    try:
        render_scene(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
