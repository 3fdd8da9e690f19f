"""Assemble platform-native application containers."""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from appdist.bundle.metadata import (
    MACOS_ICON_FILE,
    PKG_INFO_CONTENT,
    render_info_plist,
    render_windows_info,
)
from appdist.errors import ExecutableMissing, MetadataWriteFailed, ResourceCopyFailed
from appdist.models import (
    AppContainer,
    CompiledBinary,
    IconAsset,
    MetadataDescriptor,
    OperatingSystem,
    UniversalBinary,
)
from appdist.utils.paths import remove_path

LOGGER = logging.getLogger(__name__)

WINDOWS_INFO_FILE = "app-info.json"
WINDOWS_ICON_FILE = "app.ico"


@dataclass(frozen=True, slots=True)
class ContainerLayout:
    """Canonical slots of a container, relative to its root."""

    root_name: str
    executable: Path
    metadata: Path
    icon: Path
    directories: tuple[Path, ...]


def container_layout(metadata: MetadataDescriptor, target_os: OperatingSystem) -> ContainerLayout:
    """Describe the canonical directory skeleton for one operating system."""

    if target_os == "macos":
        contents = Path("Contents")
        return ContainerLayout(
            root_name=f"{metadata.name}.app",
            executable=contents / "MacOS" / metadata.executable_name,
            metadata=contents / "Info.plist",
            icon=contents / "Resources" / MACOS_ICON_FILE,
            directories=(contents / "MacOS", contents / "Resources"),
        )
    return ContainerLayout(
        root_name=metadata.name,
        executable=Path(f"{metadata.executable_name}.exe"),
        metadata=Path(WINDOWS_INFO_FILE),
        icon=Path("resources") / WINDOWS_ICON_FILE,
        directories=(Path("resources"),),
    )


def container_root(output_dir: Path, metadata: MetadataDescriptor, target_os: OperatingSystem) -> Path:
    return output_dir / container_layout(metadata, target_os).root_name


def _write_metadata(
    staging: Path,
    layout: ContainerLayout,
    metadata: MetadataDescriptor,
    target_os: OperatingSystem,
    *,
    has_icon: bool,
) -> None:
    try:
        if target_os == "macos":
            payload = render_info_plist(metadata, has_icon=has_icon)
        else:
            payload = render_windows_info(metadata, icon_name=layout.icon.as_posix() if has_icon else None)
    except (TypeError, ValueError, OverflowError) as exc:
        raise MetadataWriteFailed(f"metadata descriptor could not be serialized: {exc}") from exc

    try:
        (staging / layout.metadata).write_bytes(payload)
        if target_os == "macos":
            (staging / layout.metadata.parent / "PkgInfo").write_bytes(PKG_INFO_CONTENT)
    except OSError as exc:
        raise MetadataWriteFailed(f"could not write {layout.metadata}: {exc}") from exc


def package_container(
    binary: CompiledBinary | UniversalBinary,
    metadata: MetadataDescriptor,
    output_dir: Path,
    *,
    target_os: OperatingSystem,
    icon: IconAsset | None = None,
    logger: logging.Logger | None = None,
) -> AppContainer:
    """Build the application container for ``binary`` under ``output_dir``.

    Any existing container is destroyed first. The new one is assembled in a
    hidden staging directory and renamed into place, so a failure leaves no
    container at all rather than a half-written one.
    """

    effective_logger = logger or LOGGER
    layout = container_layout(metadata, target_os)
    root = output_dir / layout.root_name

    if remove_path(root):
        effective_logger.info("package.removed_existing path=%s", root)

    source = binary.file_path
    if not source.is_file():
        raise ExecutableMissing(f"executable {source} does not exist", details={"path": str(source)})

    output_dir.mkdir(parents=True, exist_ok=True)
    staging = output_dir / f".{layout.root_name}.{uuid4().hex}.staging"
    try:
        for directory in layout.directories:
            (staging / directory).mkdir(parents=True, exist_ok=True)

        executable = staging / layout.executable
        executable.parent.mkdir(parents=True, exist_ok=True)
        try:
            shutil.copyfile(source, executable)
        except OSError as exc:
            raise ExecutableMissing(f"could not copy executable {source}: {exc}") from exc
        os.chmod(executable, 0o755)

        _write_metadata(staging, layout, metadata, target_os, has_icon=icon is not None)

        if icon is not None:
            try:
                shutil.copyfile(icon.file_path, staging / layout.icon)
            except OSError as exc:
                raise ResourceCopyFailed(f"could not copy icon {icon.file_path}: {exc}") from exc

        os.replace(staging, root)
    finally:
        if staging.exists():
            shutil.rmtree(staging)

    effective_logger.info(
        "package.complete path=%s os=%s bundle_id=%s version=%s icon=%s",
        root,
        target_os,
        metadata.bundle_identifier,
        metadata.version,
        icon is not None,
    )
    return AppContainer(
        root_path=root,
        executable_path=root / layout.executable,
        metadata_path=root / layout.metadata,
        metadata=metadata,
        icon_path=root / layout.icon if icon is not None else None,
        target_os=target_os,
    )
