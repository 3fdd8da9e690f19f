"""Procedural placeholder icon drawn with Pillow when no artwork exists."""

from __future__ import annotations

import math
from pathlib import Path

from PIL import Image, ImageDraw

DISC_INNER = (59, 130, 246)
DISC_OUTER = (30, 64, 175)
BADGE_GREEN = (16, 185, 129, 255)
WHITE = (255, 255, 255, 255)


def _lerp(start: tuple[int, int, int], end: tuple[int, int, int], t: float) -> tuple[int, int, int, int]:
    return (
        int(start[0] + (end[0] - start[0]) * t),
        int(start[1] + (end[1] - start[1]) * t),
        int(start[2] + (end[2] - start[2]) * t),
        255,
    )


def render_placeholder(pixels: int) -> Image.Image:
    """Blue radial disc, white hexagon outline with a centre dot, green plus badge."""

    # Draw at 4x and downsample for anti-aliased edges.
    scale = 4
    canvas_px = pixels * scale
    image = Image.new("RGBA", (canvas_px, canvas_px), (0, 0, 0, 0))
    draw = ImageDraw.Draw(image)

    center = canvas_px / 2
    radius = center - 2 * scale
    steps = max(8, pixels // 2)
    for step in range(steps, 0, -1):
        t = step / steps
        r = radius * t
        draw.ellipse([center - r, center - r, center + r, center + r], fill=_lerp(DISC_INNER, DISC_OUTER, t))

    hex_radius = canvas_px * 0.25
    hex_center_y = center * 0.85
    vertices = [
        (
            center + hex_radius * math.cos(math.pi / 3 * index - math.pi / 2),
            hex_center_y + hex_radius * math.sin(math.pi / 3 * index - math.pi / 2),
        )
        for index in range(6)
    ]
    line_width = max(scale, int(canvas_px * 0.02))
    draw.line([*vertices, vertices[0]], fill=(255, 255, 255, 200), width=line_width, joint="curve")

    dot = max(2 * scale, canvas_px * 0.05)
    draw.ellipse([center - dot, hex_center_y - dot, center + dot, hex_center_y + dot], fill=WHITE)

    badge_x = badge_y = canvas_px * 0.75
    badge_r = canvas_px * 0.12
    draw.ellipse([badge_x - badge_r, badge_y - badge_r, badge_x + badge_r, badge_y + badge_r], fill=BADGE_GREEN)
    half_bar = max(scale, canvas_px * 0.02)
    arm = badge_r * 0.7
    draw.rectangle([badge_x - arm, badge_y - half_bar, badge_x + arm, badge_y + half_bar], fill=WHITE)
    draw.rectangle([badge_x - half_bar, badge_y - arm, badge_x + half_bar, badge_y + arm], fill=WHITE)

    return image.resize((pixels, pixels), Image.Resampling.LANCZOS)


def write_placeholder_png(pixels: int, output_path: Path) -> Path:
    """Render the placeholder at one size and save it as PNG."""

    output_path.parent.mkdir(parents=True, exist_ok=True)
    render_placeholder(pixels).save(output_path, "PNG")
    return output_path
