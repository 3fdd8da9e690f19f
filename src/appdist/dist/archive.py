"""Portable archive variant: stage files and compress them into one zip."""

from __future__ import annotations

import logging
import os
import shutil
import stat
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path

from appdist.config import AppSettings
from appdist.errors import CompressionFailed, StagingFailed
from appdist.models import AppContainer, DistArtifact
from appdist.utils.paths import atomic_temp_path

LOGGER = logging.getLogger(__name__)

# zip cannot store timestamps before 1980; a fixed stamp keeps archives reproducible
FIXED_ZIP_TIMESTAMP = (1980, 1, 1, 0, 0, 0)
STAGING_PREFIX = "appdist-stage-"


@dataclass(frozen=True, slots=True)
class AuxiliaryFile:
    path: Path
    required: bool = False


@dataclass(frozen=True, slots=True)
class ArchiveOptions:
    compression_level: int = 9
    auxiliary_files: tuple[AuxiliaryFile, ...] = ()

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "ArchiveOptions":
        return cls(
            compression_level=settings.archive.compression_level,
            auxiliary_files=tuple(
                AuxiliaryFile(path=item.path, required=item.required) for item in settings.archive.auxiliary_files
            ),
        )


def archive_file_name(container: AppContainer, triple: str) -> str:
    return f"{container.metadata.name}-{container.version}-{triple}.zip"


def stage_files(container: AppContainer, staging_root: Path, auxiliary_files: tuple[AuxiliaryFile, ...]) -> list[Path]:
    """Copy the application and auxiliary files into ``staging_root``."""

    staged: list[Path] = []
    try:
        if container.target_os == "macos":
            destination = staging_root / container.root_path.name
            shutil.copytree(container.root_path, destination, symlinks=True)
        else:
            destination = staging_root
            shutil.copytree(container.root_path, destination, symlinks=True, dirs_exist_ok=True)
        staged.append(destination)
    except OSError as exc:
        raise StagingFailed(f"could not stage {container.root_path}: {exc}") from exc

    for item in auxiliary_files:
        if not item.path.is_file():
            if item.required:
                raise StagingFailed(f"required file {item.path} is missing", details={"path": str(item.path)})
            LOGGER.info("archive.optional_file_missing path=%s", item.path)
            continue
        try:
            staged.append(Path(shutil.copy2(item.path, staging_root / item.path.name)))
        except OSError as exc:
            raise StagingFailed(f"could not stage {item.path}: {exc}") from exc
    return staged


def _zip_info(arcname: str, mode: int) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(arcname, date_time=FIXED_ZIP_TIMESTAMP)
    info.create_system = 3
    info.external_attr = (mode & 0xFFFF) << 16
    return info


def write_deterministic_zip(source_dir: Path, output_path: Path, *, compression_level: int = 9) -> Path:
    """Zip ``source_dir`` (including its own name) with sorted entries and fixed timestamps."""

    base = source_dir.parent
    with zipfile.ZipFile(output_path, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=compression_level) as archive:
        for current, dirnames, filenames in os.walk(source_dir):
            dirnames.sort()
            current_path = Path(current)
            directory_info = _zip_info(current_path.relative_to(base).as_posix() + "/", stat.S_IFDIR | 0o755)
            archive.writestr(directory_info, b"")
            for name in sorted(filenames + [d for d in dirnames if (current_path / d).is_symlink()]):
                path = current_path / name
                arcname = path.relative_to(base).as_posix()
                if path.is_symlink():
                    archive.writestr(_zip_info(arcname, stat.S_IFLNK | 0o777), os.readlink(path))
                    continue
                mode = path.stat().st_mode
                info = _zip_info(arcname, stat.S_IFREG | stat.S_IMODE(mode))
                info.compress_type = zipfile.ZIP_DEFLATED
                archive.writestr(info, path.read_bytes(), compresslevel=compression_level)
            dirnames[:] = [d for d in dirnames if not (current_path / d).is_symlink()]
    return output_path


def produce_portable_archive(
    container: AppContainer,
    dist_dir: Path,
    *,
    triple: str,
    options: ArchiveOptions | None = None,
    logger: logging.Logger | None = None,
) -> DistArtifact:
    """Stage the container plus auxiliary files and compress them into a versioned zip."""

    effective_logger = logger or LOGGER
    effective_options = options or ArchiveOptions()
    output_path = dist_dir / archive_file_name(container, triple)

    with tempfile.TemporaryDirectory(prefix=STAGING_PREFIX) as scratch:
        staging_root = Path(scratch) / f"{container.metadata.name}-{container.version}"
        staging_root.mkdir(parents=True)
        staged = stage_files(container, staging_root, effective_options.auxiliary_files)
        effective_logger.info("archive.staged entries=%s staging=%s", len(staged), staging_root)

        dist_dir.mkdir(parents=True, exist_ok=True)
        temp_path = atomic_temp_path(output_path)
        try:
            write_deterministic_zip(staging_root, temp_path, compression_level=effective_options.compression_level)
            os.replace(temp_path, output_path)
        except (OSError, zipfile.BadZipFile, ValueError) as exc:
            raise CompressionFailed(f"could not write {output_path}: {exc}") from exc
        finally:
            if temp_path.exists():
                temp_path.unlink()

    effective_logger.info("archive.complete path=%s bytes=%s", output_path, output_path.stat().st_size)
    return DistArtifact(
        kind="portable-archive",
        file_path=output_path,
        version=container.version,
        target_platform=triple,
    )
