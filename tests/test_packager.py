"""Application container packaging for macOS bundles and Windows directories."""

from __future__ import annotations

import json
import os
import plistlib
from pathlib import Path

import pytest

from conftest import compiled_binary_for, write_png
from appdist.bundle.metadata import info_plist_payload
from appdist.bundle.packager import container_layout, package_container
from appdist.config import AppConfig
from appdist.errors import ExecutableMissing
from appdist.icons.containers import write_ico
from appdist.icons.size_matrix import ICO_SIZE_MATRIX
from appdist.models import CompiledBinary, IconAsset, MetadataDescriptor


@pytest.fixture
def metadata() -> MetadataDescriptor:
    return MetadataDescriptor.build(AppConfig())


@pytest.fixture
def icns_icon(tmp_path: Path) -> IconAsset:
    path = tmp_path / "icons" / "AppIcon.icns"
    path.parent.mkdir(parents=True)
    path.write_bytes(b"icns\x00\x00\x00\x08")
    return IconAsset(source_vector_path=None, target_format="icns", size_matrix=(), file_path=path)


def _tree_bytes(root: Path) -> dict[str, bytes]:
    return {
        path.relative_to(root).as_posix(): path.read_bytes()
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }


def test_macos_container_layout_and_metadata(tmp_path, macos_targets, metadata, icns_icon) -> None:
    """GIVEN a compiled macOS binary, default metadata and an icon
    WHEN package_container builds the bundle
    THEN the canonical .app layout exists with version and name preserved verbatim.
    """
    binary = compiled_binary_for(tmp_path / "target", macos_targets[0])
    output_dir = tmp_path / "bundle"

    container = package_container(binary, metadata, output_dir, target_os="macos", icon=icns_icon)

    root = output_dir / "MultiInstance.app"
    assert container.root_path == root
    assert (root / "Contents" / "MacOS" / "multiinstance").read_bytes() == binary.file_path.read_bytes()
    assert os.stat(root / "Contents" / "MacOS" / "multiinstance").st_mode & 0o777 == 0o755
    assert (root / "Contents" / "PkgInfo").read_bytes() == b"APPL????"
    assert (root / "Contents" / "Resources" / "AppIcon.icns").read_bytes() == icns_icon.file_path.read_bytes()

    plist = plistlib.loads((root / "Contents" / "Info.plist").read_bytes())
    assert plist["CFBundleShortVersionString"] == "1.0.0"
    assert plist["CFBundleVersion"] == "1.0.0"
    assert plist["CFBundleName"] == "MultiInstance"
    assert plist["CFBundleIdentifier"] == "com.jackzhang.multiinstance"
    assert plist["CFBundleExecutable"] == "multiinstance"
    assert plist["CFBundleIconFile"] == "AppIcon.icns"
    assert plist["LSMinimumSystemVersion"] == "10.15"
    assert container.version == "1.0.0"


def test_macos_container_without_icon_omits_icon_key(tmp_path, macos_targets, metadata) -> None:
    binary = compiled_binary_for(tmp_path / "target", macos_targets[1])

    container = package_container(binary, metadata, tmp_path / "bundle", target_os="macos")

    plist = plistlib.loads(container.metadata_path.read_bytes())
    assert "CFBundleIconFile" not in plist
    assert container.icon_path is None
    assert list((container.root_path / "Contents" / "Resources").iterdir()) == []


def test_packaging_is_idempotent(tmp_path, macos_targets, metadata, icns_icon) -> None:
    """GIVEN the same inputs
    WHEN package_container runs twice
    THEN both containers are byte-identical and no staging directory is left.
    """
    binary = compiled_binary_for(tmp_path / "target", macos_targets[0])
    output_dir = tmp_path / "bundle"

    first = _tree_bytes(package_container(binary, metadata, output_dir, target_os="macos", icon=icns_icon).root_path)
    second = _tree_bytes(package_container(binary, metadata, output_dir, target_os="macos", icon=icns_icon).root_path)

    assert first == second
    assert [path.name for path in output_dir.iterdir()] == ["MultiInstance.app"]


def test_repackaging_removes_stale_files(tmp_path, macos_targets, metadata) -> None:
    binary = compiled_binary_for(tmp_path / "target", macos_targets[0])
    output_dir = tmp_path / "bundle"
    container = package_container(binary, metadata, output_dir, target_os="macos")
    stray = container.root_path / "Contents" / "Resources" / "leftover.txt"
    stray.write_text("old")

    package_container(binary, metadata, output_dir, target_os="macos")

    assert not stray.exists()


def test_windows_container_layout(tmp_path, windows_target, metadata) -> None:
    """GIVEN a Windows executable and an ICO icon
    WHEN package_container builds the container
    THEN the executable, JSON descriptor and icon sit in their fixed slots.
    """
    binary = compiled_binary_for(tmp_path / "target", windows_target)
    rasters = {size: write_png(tmp_path / "png" / f"{size.pixels}.png", size.pixels) for size in ICO_SIZE_MATRIX}
    ico = IconAsset(
        source_vector_path=None,
        target_format="ico",
        size_matrix=ICO_SIZE_MATRIX,
        file_path=write_ico(rasters, tmp_path / "app.ico"),
    )

    container = package_container(binary, metadata, tmp_path / "bundle", target_os="windows", icon=ico)

    root = tmp_path / "bundle" / "MultiInstance"
    assert container.executable_path == root / "multiinstance.exe"
    assert container.executable_path.is_file()
    assert (root / "resources" / "app.ico").read_bytes() == ico.file_path.read_bytes()
    info = json.loads((root / "app-info.json").read_text(encoding="utf-8"))
    assert info["version"] == "1.0.0"
    assert info["name"] == "MultiInstance"
    assert info["executable"] == "multiinstance"
    assert info["icon"] == "resources/app.ico"


def test_missing_executable_leaves_no_container(tmp_path, macos_targets, metadata) -> None:
    """GIVEN an existing container and a binary path that no longer exists
    WHEN package_container runs
    THEN ExecutableMissing is raised and neither the old nor a partial container remains.
    """
    output_dir = tmp_path / "bundle"
    real = compiled_binary_for(tmp_path / "target", macos_targets[0])
    package_container(real, metadata, output_dir, target_os="macos")
    ghost = CompiledBinary(target=macos_targets[0], file_path=tmp_path / "missing", architecture_tag="arm64")

    with pytest.raises(ExecutableMissing):
        package_container(ghost, metadata, output_dir, target_os="macos")

    assert list(output_dir.iterdir()) == []


def test_extra_metadata_is_carried_into_plist() -> None:
    descriptor = MetadataDescriptor.build(
        AppConfig(extra_metadata={"LSApplicationCategoryType": "public.app-category.utilities"}),
    )

    payload = info_plist_payload(descriptor, has_icon=False)

    assert payload["LSApplicationCategoryType"] == "public.app-category.utilities"


def test_metadata_and_container_are_hashable(tmp_path, macos_targets) -> None:
    app_config = AppConfig(extra_metadata={"LSApplicationCategoryType": "public.app-category.utilities"})
    descriptor = MetadataDescriptor.build(app_config)
    binary = compiled_binary_for(tmp_path / "target", macos_targets[1])

    container = package_container(binary, descriptor, tmp_path / "bundle", target_os="macos")

    assert {descriptor, MetadataDescriptor.build(app_config)} == {descriptor}
    assert container in {container}


def test_container_layout_names() -> None:
    descriptor = MetadataDescriptor.build(AppConfig())

    assert container_layout(descriptor, "macos").root_name == "MultiInstance.app"
    assert container_layout(descriptor, "windows").executable == Path("multiinstance.exe")
