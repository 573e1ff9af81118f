#!/usr/bin/env python3
"""Render the default cursor sprites used by the frame compositor.

Usage:
    python scripts/generate_cursor_assets.py [--size 32] [--out DIR]

Outputs (in ``cursor_assets_dir`` unless ``--out`` is given):
    cursor_normal.png  -- pointer arrow, hotspot at the top-left pixel
    cursor_hand.png    -- pointing hand, fingertip near the top-left
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from PIL import Image, ImageDraw, ImageFilter

# Standard pointer arrow, normalized so full height = 1.0; (0, 0) is the tip.
ARROW_POINTS = [
    (0.00, 0.00),
    (0.00, 1.00),
    (0.22, 0.74),
    (0.42, 1.08),
    (0.56, 0.96),
    (0.32, 0.63),
    (0.60, 0.63),
]

OUTLINE = (20, 20, 20, 255)
FILL = (255, 255, 255, 255)
SHADOW_ALPHA = 90


def _with_shadow(shape: Image.Image, offset: int, blur: float) -> Image.Image:
    """Put a soft drop shadow under an RGBA shape."""
    alpha = shape.getchannel("A")
    shadow = Image.new("RGBA", shape.size, (0, 0, 0, 0))
    shadow_alpha = alpha.point(lambda a: SHADOW_ALPHA if a else 0)
    shadow.putalpha(shadow_alpha)
    shadow = shadow.transform(
        shape.size, Image.Transform.AFFINE, (1, 0, -offset, 0, 1, -offset)
    ).filter(ImageFilter.GaussianBlur(blur))
    return Image.alpha_composite(shadow, shape)


def render_arrow(height: int = 32) -> Image.Image:
    """Pointer arrow with outline and shadow; tip at (1, 1)."""
    h = max(height, 8)
    outline = max(1, round(h * 0.06))
    pad = outline
    shadow_off = max(1, round(h * 0.06))
    width = int(h * 0.65) + pad * 2 + shadow_off * 2
    total_h = int(h * 1.1) + pad * 2 + shadow_off * 2

    shape = Image.new("RGBA", (width, total_h), (0, 0, 0, 0))
    draw = ImageDraw.Draw(shape)
    pts = [(x * h + pad, y * h + pad) for x, y in ARROW_POINTS]
    draw.polygon(pts, fill=FILL, outline=OUTLINE, width=outline)

    return _with_shadow(shape, shadow_off, blur=shadow_off)


def render_hand(height: int = 32) -> Image.Image:
    """Pointing hand with outline and shadow; index fingertip at the top-left."""
    h = max(height, 8)
    outline = max(1, round(h * 0.06))
    shadow_off = max(1, round(h * 0.06))
    unit = h / 16.0
    width = int(12 * unit) + outline * 2 + shadow_off * 2
    total_h = h + outline * 2 + shadow_off * 2

    shape = Image.new("RGBA", (width, total_h), (0, 0, 0, 0))
    draw = ImageDraw.Draw(shape)
    o = outline

    def box(x0: float, y0: float, x1: float, y1: float) -> tuple[int, int, int, int]:
        return (round(x0 * unit) + o, round(y0 * unit) + o, round(x1 * unit) + o, round(y1 * unit) + o)

    radius = max(1, round(1.5 * unit))
    parts = [
        box(0, 0, 3, 10),     # index finger
        box(3, 5, 6, 10),     # middle finger
        box(6, 5.5, 9, 10),   # ring finger
        box(9, 6, 11.5, 10),  # little finger
        box(0, 8, 11.5, 15.5),  # palm
    ]
    for part in parts:
        draw.rounded_rectangle(part, radius=radius, fill=OUTLINE)
    inset = max(1, o // 2 + 1)
    for x0, y0, x1, y1 in parts:
        draw.rounded_rectangle(
            (x0 + inset, y0 + inset, x1 - inset, y1 - inset),
            radius=max(1, radius - inset),
            fill=FILL,
        )
    return _with_shadow(shape, shadow_off, blur=shadow_off)


def generate(out_dir: Path, size: int = 32) -> list[Path]:
    out_dir.mkdir(parents=True, exist_ok=True)
    written = []
    for style, render in (("normal", render_arrow), ("hand", render_hand)):
        path = out_dir / f"cursor_{style}.png"
        render(size).save(path)
        written.append(path)
    return written


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--size", type=int, default=32, help="Cursor height in pixels")
    parser.add_argument("--out", default=None, help="Output directory")
    args = parser.parse_args(argv)

    if args.out:
        out_dir = Path(args.out)
    else:
        from recast.config import get_settings

        out_dir = Path(get_settings().cursor_assets_dir)

    for path in generate(out_dir, args.size):
        print(f"Wrote {path}")


if __name__ == "__main__":
    main(sys.argv[1:])
