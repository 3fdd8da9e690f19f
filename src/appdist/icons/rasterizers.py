"""Interchangeable SVG rasterizer providers, tried in a fixed preference order."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence


@dataclass(frozen=True, slots=True)
class Rasterizer:
    """One external SVG-to-PNG converter."""

    tool_name: str
    template: tuple[str, ...]

    def command(self, tool_path: Path, source: Path, output: Path, pixels: int) -> list[str]:
        """Build the argv that renders ``source`` into a ``pixels``-square PNG."""

        values = {"source": str(source), "output": str(output), "px": str(pixels)}
        return [str(tool_path), *(part.format(**values) for part in self.template)]


RSVG_CONVERT = Rasterizer(
    tool_name="rsvg-convert",
    template=("-w", "{px}", "-h", "{px}", "-o", "{output}", "{source}"),
)
IMAGEMAGICK_7 = Rasterizer(
    tool_name="magick",
    template=("-background", "none", "{source}", "-resize", "{px}x{px}", "{output}"),
)
IMAGEMAGICK_6 = Rasterizer(
    tool_name="convert",
    template=("-background", "none", "{source}", "-resize", "{px}x{px}", "{output}"),
)
INKSCAPE = Rasterizer(
    tool_name="inkscape",
    template=("{source}", "--export-type=png", "--export-filename={output}", "-w", "{px}", "-h", "{px}"),
)

KNOWN_RASTERIZERS: dict[str, Rasterizer] = {
    rasterizer.tool_name: rasterizer for rasterizer in (RSVG_CONVERT, IMAGEMAGICK_7, IMAGEMAGICK_6, INKSCAPE)
}


def rasterizers_from_names(names: Sequence[str]) -> list[Rasterizer]:
    """Resolve configured tool names into providers, keeping their order."""

    unknown = [name for name in names if name not in KNOWN_RASTERIZERS]
    if unknown:
        allowed = ",".join(KNOWN_RASTERIZERS)
        raise ValueError(f"unknown rasterizers {unknown}; expected any of: {allowed}")
    return [KNOWN_RASTERIZERS[name] for name in names]
