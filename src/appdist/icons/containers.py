"""Pack rendered rasters into ICNS and ICO icon containers."""

from __future__ import annotations

import logging
import os
import shutil
import struct
from pathlib import Path
from typing import Mapping

from PIL import Image

from appdist.errors import RasterizationFailed
from appdist.models import IconSize
from appdist.tools.runner import run_tool
from appdist.utils.paths import atomic_temp_path

LOGGER = logging.getLogger(__name__)

# PNG-capable ICNS element types keyed by (point size, scale).
ICNS_TYPES: dict[tuple[int, int], bytes] = {
    (16, 1): b"icp4",
    (16, 2): b"ic11",
    (32, 1): b"icp5",
    (32, 2): b"ic12",
    (64, 1): b"icp6",
    (128, 1): b"ic07",
    (128, 2): b"ic13",
    (256, 1): b"ic08",
    (256, 2): b"ic14",
    (512, 1): b"ic09",
    (512, 2): b"ic10",
}

def icns_type_for(size: IconSize) -> bytes | None:
    """ICNS element type for a matrix entry, or None when the format has no slot for it."""

    return ICNS_TYPES.get((size.size, size.scale))


def _write_bytes_atomically(payload: bytes, output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = atomic_temp_path(output_path)
    try:
        temp_path.write_bytes(payload)
        os.replace(temp_path, output_path)
    finally:
        if temp_path.exists():
            temp_path.unlink()
    return output_path


def write_icns(rasters: Mapping[IconSize, Path], output_path: Path, *, logger: logging.Logger | None = None) -> Path:
    """Write an ICNS file whose elements are the given PNG rasters."""

    effective_logger = logger or LOGGER
    chunks: list[bytes] = []
    for size in sorted(rasters, key=lambda item: (item.pixels, item.scale)):
        element_type = icns_type_for(size)
        if element_type is None:
            effective_logger.debug("icns.no_slot size=%s scale=%s", size.size, size.scale)
            continue
        data = rasters[size].read_bytes()
        chunks.append(element_type + struct.pack(">I", 8 + len(data)) + data)

    body = b"".join(chunks)
    return _write_bytes_atomically(b"icns" + struct.pack(">I", 8 + len(body)) + body, output_path)


def write_ico(rasters: Mapping[IconSize, Path], output_path: Path) -> Path:
    """Write a multi-resolution ICO file, one entry per raster.

    The largest raster is the base image; the others are passed as exact
    bitmaps so Pillow does not downscale them.
    """

    ordered = sorted(rasters, key=lambda item: item.pixels, reverse=True)
    images: list[Image.Image] = []
    for size in ordered:
        with Image.open(rasters[size]) as raster:
            images.append(raster.convert("RGBA"))

    output_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = atomic_temp_path(output_path)
    try:
        images[0].save(
            temp_path,
            format="ICO",
            sizes=[(size.pixels, size.pixels) for size in ordered],
            append_images=images[1:],
        )
        os.replace(temp_path, output_path)
    finally:
        if temp_path.exists():
            temp_path.unlink()
    return output_path


def pack_with_iconutil(
    iconutil: Path,
    rasters: Mapping[IconSize, Path],
    scratch_dir: Path,
    output_path: Path,
    *,
    timeout: float | None = None,
    logger: logging.Logger | None = None,
) -> Path:
    """Build an ``.iconset`` directory and let iconutil pack it."""

    iconset = scratch_dir / "AppIcon.iconset"
    iconset.mkdir(parents=True, exist_ok=True)
    for size, raster in rasters.items():
        if icns_type_for(size) is not None:
            shutil.copyfile(raster, iconset / size.iconset_name)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = atomic_temp_path(output_path).with_suffix(".icns")
    try:
        result = run_tool([iconutil, "-c", "icns", iconset, "-o", temp_path], timeout=timeout, logger=logger)
        if not result.ok or not temp_path.is_file():
            raise RasterizationFailed(
                f"iconutil exited with status {result.returncode}",
                output=result.output,
            )
        os.replace(temp_path, output_path)
    finally:
        if temp_path.exists():
            temp_path.unlink()
    return output_path
