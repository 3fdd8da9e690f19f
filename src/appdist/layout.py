"""Deterministic on-disk layout under the per-triple output root."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from appdist.models import BuildTarget

BUNDLE_SUBDIR = "bundle"
DIST_SUBDIR = "dist"
ICONS_SUBDIR = "icons"


@dataclass(frozen=True, slots=True)
class OutputLayout:
    """Fixed subpaths hosting the container and the distributables of one triple."""

    triple: str
    root: Path
    bundle_dir: Path
    dist_dir: Path
    icons_dir: Path


def output_layout(output_root: Path, triple: str) -> OutputLayout:
    """Return the container/dist locations for one toolchain triple."""

    root = output_root / triple
    return OutputLayout(
        triple=triple,
        root=root,
        bundle_dir=root / BUNDLE_SUBDIR,
        dist_dir=root / DIST_SUBDIR,
        icons_dir=root / ICONS_SUBDIR,
    )


def compiled_binary_path(output_root: Path, target: BuildTarget, *, profile: str, binary_name: str) -> Path:
    """Where cargo leaves the executable for one target."""

    return output_root / target.toolchain_triple / profile / f"{binary_name}{target.executable_suffix}"


def universal_binary_path(output_root: Path, triple: str, *, profile: str, binary_name: str) -> Path:
    """Where the merged multi-architecture executable is written."""

    return output_root / triple / profile / binary_name
