"""Raster size matrices required by each icon container format."""

from __future__ import annotations

from appdist.models import IconFormat, IconSize

ICNS_BASE_SIZES: tuple[int, ...] = (16, 32, 64, 128, 256, 512)
ICO_SIZES: tuple[int, ...] = (16, 32, 48, 64, 128, 256)

ICNS_SIZE_MATRIX: tuple[IconSize, ...] = tuple(
    IconSize(size=size, scale=scale) for size in ICNS_BASE_SIZES for scale in (1, 2)
)
ICO_SIZE_MATRIX: tuple[IconSize, ...] = tuple(IconSize(size=size) for size in ICO_SIZES)


def size_matrix_for(target_format: IconFormat) -> tuple[IconSize, ...]:
    """Return the fixed size matrix of an icon container format."""

    if target_format == "icns":
        return ICNS_SIZE_MATRIX
    if target_format == "ico":
        return ICO_SIZE_MATRIX
    raise ValueError(f"unknown icon format: {target_format}")
