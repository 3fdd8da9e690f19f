"""Merge thin per-architecture executables into one universal binary."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from appdist.errors import ArchitectureMismatch, MergeVerificationFailed, MissingConstituent
from appdist.models import CompiledBinary, UniversalBinary
from appdist.tools.probe import choose_provider
from appdist.tools.runner import run_tool
from appdist.universal.macho import NotMachO, is_fat, read_architectures, write_fat
from appdist.utils.paths import atomic_temp_path

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LipoMerger:
    """Merge through Apple's ``lipo -create``."""

    tool_name: str = "lipo"

    def merge(self, tool_path: Path, inputs: Sequence[Path], output_path: Path, logger: logging.Logger) -> None:
        result = run_tool([tool_path, "-create", *inputs, "-output", output_path], timeout=300, logger=logger)
        if not result.ok:
            raise MergeVerificationFailed(
                f"lipo -create exited with status {result.returncode}",
                output=result.output,
            )


def _check_constituents(binaries: Sequence[CompiledBinary]) -> None:
    """Validate OS/architecture preconditions before anything is written."""

    systems = {binary.target.operating_system for binary in binaries}
    if len(systems) != 1:
        raise ArchitectureMismatch(
            f"universal binary constituents target different operating systems: {sorted(systems)}",
            details={"operating_systems": sorted(systems)},
        )
    (operating_system,) = systems
    if operating_system != "macos":
        raise ArchitectureMismatch(f"universal binaries are a macos format, not {operating_system}")

    tags = [binary.architecture_tag for binary in binaries]
    if len(set(tags)) != len(tags):
        raise ArchitectureMismatch(f"duplicate architectures requested: {tags}", details={"architectures": tags})


def _check_thin_images(binaries: Sequence[CompiledBinary]) -> None:
    for binary in binaries:
        try:
            fat = is_fat(binary.file_path)
            architectures = read_architectures(binary.file_path)
        except NotMachO as exc:
            raise ArchitectureMismatch(f"{binary.file_path} is not a Mach-O executable: {exc}") from exc
        if fat or len(architectures) != 1:
            raise ArchitectureMismatch(f"{binary.file_path} is not a single-architecture executable")
        if architectures[0] != binary.architecture_tag:
            raise ArchitectureMismatch(
                f"{binary.file_path} contains {architectures[0]}, expected {binary.architecture_tag}",
                details={"expected": binary.architecture_tag, "found": architectures[0]},
            )


def verify_universal(path: Path, expected: Sequence[str]) -> tuple[str, ...]:
    """Confirm the architectures embedded in a fat binary equal the expected set."""

    try:
        embedded = read_architectures(path)
    except NotMachO as exc:
        raise MergeVerificationFailed(f"merged output {path} is unreadable: {exc}") from exc
    if sorted(embedded) != sorted(expected) or not is_fat(path):
        raise MergeVerificationFailed(
            f"merged output carries {sorted(embedded)}, requested {sorted(expected)}",
            details={"embedded": sorted(embedded), "requested": sorted(expected)},
        )
    return embedded


def assemble_universal(
    binaries: Sequence[CompiledBinary],
    output_path: Path,
    *,
    prefer_lipo: bool = True,
    logger: logging.Logger | None = None,
) -> UniversalBinary:
    """Merge thin executables into ``output_path`` and verify the result.

    Nothing is left at ``output_path`` unless the merged file passed
    verification; a stale output from an earlier run is removed when a
    constituent is missing.
    """

    effective_logger = logger or LOGGER
    if not binaries:
        raise ValueError("assemble_universal requires at least one constituent binary")

    _check_constituents(binaries)
    missing = [str(binary.file_path) for binary in binaries if not binary.file_path.is_file()]
    if missing:
        if output_path.exists():
            output_path.unlink()
        raise MissingConstituent(
            f"missing constituent binaries: {', '.join(missing)}",
            details={"missing": missing},
        )
    _check_thin_images(binaries)

    requested = [binary.architecture_tag for binary in binaries]
    inputs = [binary.file_path for binary in binaries]
    output_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = atomic_temp_path(output_path)
    try:
        selected = choose_provider([LipoMerger()]) if prefer_lipo else None
        if selected is not None:
            merger, probe = selected
            effective_logger.info("merge.provider tool=%s path=%s", merger.tool_name, probe.path)
            merger.merge(probe.path, inputs, temp_path, effective_logger)
        else:
            effective_logger.info("merge.provider tool=builtin")
            write_fat(inputs, temp_path)

        embedded = verify_universal(temp_path, requested)
        os.chmod(temp_path, 0o755)
        os.replace(temp_path, output_path)
    finally:
        if temp_path.exists():
            temp_path.unlink()

    effective_logger.info("merge.complete path=%s architectures=%s", output_path, ",".join(embedded))
    return UniversalBinary(
        constituent_binaries=tuple(binaries),
        file_path=output_path,
        architectures=embedded,
    )
