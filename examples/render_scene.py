#!/usr/bin/env python3
"""Render one of the built-in scenes to a PNG file.

Usage:
    python examples/render_scene.py [options]

Options:
    --scene NAME        simple_light, cornell_box, cornell_smoke,
                        bouncing_spheres, two_perlin_spheres, earth,
                        random_lights, cornell_box_measured or final_scene
                        (default: cornell_box)
    --image PATH        Image texture for the earth and final_scene globes
    --width WIDTH       Image width in pixels (default: 400)
    --height HEIGHT     Image height in pixels (default: 400)
    --samples SAMPLES   Number of samples per pixel (default: 100)
    --depth DEPTH       Maximum path depth (default: 50)
    --seed SEED         Render seed (default: 0)
    --workers N         Worker threads (default: all cores)
    --batch-size SIZE   Samples per progressive pass (default: 10)
    --output OUTPUT     Output file path (default: <scene>.png)
    --quiet             Suppress progress output

Example:
    python examples/render_scene.py --scene cornell_smoke --width 256 --height 256 --samples 50
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

from pathtracer import PathTracerError, RenderSettings, init_runtime

logger = logging.getLogger("render_scene")

SCENE_NAMES = (
    "simple_light",
    "cornell_box",
    "cornell_smoke",
    "bouncing_spheres",
    "two_perlin_spheres",
    "earth",
    "random_lights",
    "cornell_box_measured",
    "final_scene",
)

# Scenes that wrap an image texture around a globe
IMAGE_SCENES = ("earth", "final_scene")


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Render a built-in scene.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--scene", choices=SCENE_NAMES, default="cornell_box")
    parser.add_argument(
        "--image", type=str, default=None, help="Image texture for the earth and final_scene globes"
    )
    parser.add_argument(
        "--width", type=int, default=400, help="Image width in pixels (default: 400)"
    )
    parser.add_argument(
        "--height", type=int, default=400, help="Image height in pixels (default: 400)"
    )
    parser.add_argument(
        "--samples", type=int, default=100, help="Number of samples per pixel (default: 100)"
    )
    parser.add_argument("--depth", type=int, default=50, help="Maximum path depth (default: 50)")
    parser.add_argument("--seed", type=int, default=0, help="Render seed (default: 0)")
    parser.add_argument(
        "--workers", type=int, default=None, help="Worker threads (default: all cores)"
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=10,
        help="Samples per progressive pass (default: 10)",
    )
    parser.add_argument("--output", type=str, default=None, help="Output file path")
    parser.add_argument("--quiet", action="store_true", help="Suppress progress output")
    return parser.parse_args()


def render_scene(args: argparse.Namespace) -> Path:
    """Build the chosen scene, render it progressively and save it.

    Returns:
        Path to the saved image file.
    """
    # Lazy imports to allow Taichi initialization first
    from pathtracer.core.pipeline import Renderer
    from pathtracer.output.export import save_png
    from pathtracer.scene.scenes import get_scene

    settings = RenderSettings(
        width=args.width,
        height=args.height,
        samples_per_pixel=args.samples,
        max_depth=args.depth,
        seed=args.seed,
        workers=args.workers,
    )

    kwargs = {"image_path": args.image} if args.scene in IMAGE_SCENES else {}
    scene, camera = get_scene(args.scene, **kwargs)
    built = scene.build(camera.shutter_open, camera.shutter_close)
    renderer = Renderer(built, camera, settings)

    start_time = time.time()
    for done in renderer.render_passes(batch=args.batch_size):
        if not args.quiet:
            elapsed = time.time() - start_time
            rate = done / elapsed if elapsed > 0 else 0.0
            print(
                f"\r  Progress: {done}/{settings.samples_per_pixel} samples "
                f"- {rate:.1f} spp/s",
                end="",
                flush=True,
            )
    if not args.quiet:
        print()

    result = renderer.get_result()
    output_file = Path(args.output or f"{args.scene}.png")
    save_png(result, output_file)

    if not args.quiet:
        print(f"Saved to: {output_file.absolute()}")
        print(f"Total time: {result.elapsed:.2f}s")
    return output_file


def main() -> int:
    """Main entry point."""
    args = parse_args()
    logging.basicConfig(
        level=logging.WARNING if args.quiet else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        init_runtime(workers=args.workers)
        render_scene(args)
        return 0
    except (PathTracerError, ValueError, OSError) as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
