"""Render a vector source into a platform icon container."""

from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from appdist.config import AppSettings
from appdist.errors import ConverterUnavailable, RasterizationFailed
from appdist.icons.containers import pack_with_iconutil, write_icns, write_ico
from appdist.icons.placeholder import write_placeholder_png
from appdist.icons.rasterizers import rasterizers_from_names
from appdist.icons.size_matrix import size_matrix_for
from appdist.models import IconAsset, IconFormat, IconSize
from appdist.tools.probe import ToolAvailable, choose_provider, probe_tool
from appdist.tools.runner import run_tool

LOGGER = logging.getLogger(__name__)

SCRATCH_PREFIX = "appdist-icon-"


@dataclass(frozen=True, slots=True)
class IconOptions:
    """Converter settings resolved from configuration."""

    rasterizers: tuple[str, ...] = ("rsvg-convert", "magick", "convert", "inkscape")
    use_iconutil: bool = True
    timeout_sec: int = 120

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "IconOptions":
        return cls(
            rasterizers=tuple(settings.icons.rasterizers),
            use_iconutil=settings.icons.use_iconutil,
            timeout_sec=settings.icons.timeout_sec,
        )


def _check_raster(path: Path, size: IconSize) -> None:
    """A raster must exist, decode, and have exactly the requested pixel size."""

    if not path.is_file():
        raise RasterizationFailed(f"rasterizer produced no file for {size.iconset_name}")
    try:
        with Image.open(path) as image:
            dimensions = image.size
    except (UnidentifiedImageError, OSError) as exc:
        raise RasterizationFailed(f"unreadable raster {path.name}: {exc}") from exc
    if dimensions != (size.pixels, size.pixels):
        raise RasterizationFailed(
            f"{path.name} is {dimensions[0]}x{dimensions[1]}, expected {size.pixels}x{size.pixels}",
            details={"expected": size.pixels, "found": list(dimensions)},
        )


def _require_complete(rasters: dict[IconSize, Path], matrix: tuple[IconSize, ...]) -> None:
    missing = [size.iconset_name for size in matrix if size not in rasters]
    if missing:
        raise RasterizationFailed(f"size matrix incomplete, missing: {', '.join(missing)}", details={"missing": missing})


def _pack(
    target_format: IconFormat,
    rasters: dict[IconSize, Path],
    scratch_dir: Path,
    output_path: Path,
    options: IconOptions,
    logger: logging.Logger,
) -> Path:
    if target_format == "ico":
        return write_ico(rasters, output_path)
    if options.use_iconutil:
        iconutil = probe_tool("iconutil")
        if isinstance(iconutil, ToolAvailable):
            return pack_with_iconutil(
                iconutil.path,
                rasters,
                scratch_dir,
                output_path,
                timeout=options.timeout_sec,
                logger=logger,
            )
    return write_icns(rasters, output_path, logger=logger)


def convert_icon(
    source: Path,
    target_format: IconFormat,
    output_path: Path,
    *,
    options: IconOptions | None = None,
    logger: logging.Logger | None = None,
) -> IconAsset:
    """Rasterize ``source`` at every matrix size and pack the icon container.

    Intermediate rasters live in a scratch directory that is removed whether
    conversion succeeds or fails.
    """

    effective_logger = logger or LOGGER
    effective_options = options or IconOptions()
    if not source.is_file():
        raise RasterizationFailed(f"icon source {source} does not exist")

    selected = choose_provider(rasterizers_from_names(effective_options.rasterizers))
    if selected is None:
        raise ConverterUnavailable(
            f"no SVG rasterizer found; install one of: {', '.join(effective_options.rasterizers)}",
            details={"tried": list(effective_options.rasterizers)},
        )
    rasterizer, probe = selected
    matrix = size_matrix_for(target_format)
    effective_logger.info(
        "icon.convert.start source=%s format=%s tool=%s sizes=%s",
        source,
        target_format,
        rasterizer.tool_name,
        len(matrix),
    )

    with tempfile.TemporaryDirectory(prefix=SCRATCH_PREFIX) as scratch:
        scratch_dir = Path(scratch)
        rasters: dict[IconSize, Path] = {}
        for size in matrix:
            raster_path = scratch_dir / "rasters" / size.iconset_name
            raster_path.parent.mkdir(parents=True, exist_ok=True)
            result = run_tool(
                rasterizer.command(probe.path, source, raster_path, size.pixels),
                timeout=effective_options.timeout_sec,
                logger=effective_logger,
            )
            if not result.ok:
                raise RasterizationFailed(
                    f"{rasterizer.tool_name} failed for {size.iconset_name} with status {result.returncode}",
                    output=result.output,
                )
            _check_raster(raster_path, size)
            rasters[size] = raster_path

        _require_complete(rasters, matrix)
        packed = _pack(target_format, rasters, scratch_dir, output_path, effective_options, effective_logger)

    effective_logger.info("icon.convert.complete output=%s", packed)
    return IconAsset(
        source_vector_path=source,
        target_format=target_format,
        size_matrix=matrix,
        file_path=packed,
    )


def generate_placeholder_icon(
    target_format: IconFormat,
    output_path: Path,
    *,
    options: IconOptions | None = None,
    logger: logging.Logger | None = None,
) -> IconAsset:
    """Draw the procedural placeholder at every matrix size and pack it."""

    effective_logger = logger or LOGGER
    effective_options = options or IconOptions()
    matrix = size_matrix_for(target_format)
    with tempfile.TemporaryDirectory(prefix=SCRATCH_PREFIX) as scratch:
        scratch_dir = Path(scratch)
        rasters = {
            size: write_placeholder_png(size.pixels, scratch_dir / "rasters" / size.iconset_name) for size in matrix
        }
        _require_complete(rasters, matrix)
        packed = _pack(target_format, rasters, scratch_dir, output_path, effective_options, effective_logger)

    effective_logger.info("icon.placeholder.complete output=%s format=%s", packed, target_format)
    return IconAsset(
        source_vector_path=None,
        target_format=target_format,
        size_matrix=matrix,
        file_path=packed,
    )
