"""Portable archive and installer-executable production."""

from __future__ import annotations

import stat
import zipfile
from pathlib import Path

import pytest

from conftest import FakeToolHost, compiled_binary_for
from appdist.bundle.packager import package_container
from appdist.config import AppConfig
from appdist.dist.archive import (
    FIXED_ZIP_TIMESTAMP,
    ArchiveOptions,
    AuxiliaryFile,
    produce_portable_archive,
)
from appdist.dist.installer import (
    InstallerOptions,
    produce_installer,
    render_installer_script,
    replace_tokens,
)
from appdist.errors import InstallerCompileFailed, InstallerToolMissing, StagingFailed
from appdist.models import AppContainer, MetadataDescriptor


@pytest.fixture
def macos_container(tmp_path, macos_targets) -> AppContainer:
    binary = compiled_binary_for(tmp_path / "target", macos_targets[0])
    return package_container(binary, MetadataDescriptor.build(AppConfig()), tmp_path / "bundle", target_os="macos")


@pytest.fixture
def windows_container(tmp_path, windows_target) -> AppContainer:
    binary = compiled_binary_for(tmp_path / "target", windows_target)
    return package_container(binary, MetadataDescriptor.build(AppConfig()), tmp_path / "bundle", target_os="windows")


@pytest.fixture
def license_file(tmp_path: Path) -> Path:
    path = tmp_path / "LICENSE"
    path.write_text("MIT License\n", encoding="utf-8")
    return path


def test_portable_archive_contents(tmp_path, macos_container, license_file, scratch_dir) -> None:
    """GIVEN a macOS bundle, a license file and a missing optional readme
    WHEN the portable archive is produced
    THEN the versioned zip holds the bundle and the license with fixed timestamps and exec bits.
    """
    options = ArchiveOptions(
        auxiliary_files=(AuxiliaryFile(license_file, required=True), AuxiliaryFile(tmp_path / "README.md")),
    )

    artifact = produce_portable_archive(
        macos_container, tmp_path / "dist", triple="aarch64-apple-darwin", options=options
    )

    assert artifact.kind == "portable-archive"
    assert artifact.file_path == tmp_path / "dist" / "MultiInstance-1.0.0-aarch64-apple-darwin.zip"
    assert artifact.version == "1.0.0"
    with zipfile.ZipFile(artifact.file_path) as archive:
        names = archive.namelist()
        executable = archive.getinfo("MultiInstance-1.0.0/MultiInstance.app/Contents/MacOS/multiinstance")
        infos = archive.infolist()
    assert "MultiInstance-1.0.0/LICENSE" in names
    assert "MultiInstance-1.0.0/MultiInstance.app/Contents/Info.plist" in names
    assert not any(name.endswith("README.md") for name in names)
    assert stat.S_IMODE(executable.external_attr >> 16) == 0o755
    assert {info.date_time for info in infos} == {FIXED_ZIP_TIMESTAMP}
    assert list(scratch_dir.iterdir()) == []


def test_portable_archive_is_reproducible(tmp_path, macos_container, license_file) -> None:
    options = ArchiveOptions(auxiliary_files=(AuxiliaryFile(license_file),))

    first = produce_portable_archive(macos_container, tmp_path / "a", triple="t", options=options).file_path
    second = produce_portable_archive(macos_container, tmp_path / "b", triple="t", options=options).file_path

    assert first.read_bytes() == second.read_bytes()


def test_windows_archive_flattens_container(tmp_path, windows_container) -> None:
    artifact = produce_portable_archive(windows_container, tmp_path / "dist", triple="x86_64-pc-windows-msvc")

    with zipfile.ZipFile(artifact.file_path) as archive:
        names = archive.namelist()
    assert "MultiInstance-1.0.0/multiinstance.exe" in names
    assert "MultiInstance-1.0.0/app-info.json" in names


def test_missing_required_file_fails_staging(tmp_path, macos_container) -> None:
    """GIVEN a required auxiliary file that does not exist
    WHEN the portable archive is produced
    THEN StagingFailed is raised and no archive is written.
    """
    options = ArchiveOptions(auxiliary_files=(AuxiliaryFile(tmp_path / "LICENSE", required=True),))

    with pytest.raises(StagingFailed):
        produce_portable_archive(macos_container, tmp_path / "dist", triple="t", options=options)

    assert not (tmp_path / "dist").exists() or list((tmp_path / "dist").iterdir()) == []


def test_installer_script_rendering(tmp_path, windows_container, license_file) -> None:
    """GIVEN a Windows container with an optional readme and startup registration
    WHEN the installer script is rendered
    THEN every token is filled and per-file flags are set.
    """
    options = InstallerOptions(
        app_id="MultiInstance",
        register_startup=True,
        auxiliary_files=(AuxiliaryFile(license_file, required=True), AuxiliaryFile(tmp_path / "README.md")),
    )

    script = render_installer_script(windows_container, tmp_path / "dist", options)

    assert "{{" not in script
    assert "AppName=MultiInstance" in script
    assert "AppVersion=1.0.0" in script
    assert "AppId=MultiInstance" in script
    assert "OutputBaseFilename=MultiInstance-1.0.0-setup" in script
    assert "Compression=lzma2" in script
    assert "multiinstance.exe\"; DestDir: \"{app}\"; Flags: ignoreversion" in script
    readme_line = next(line for line in script.splitlines() if "README.md" in line)
    assert readme_line.endswith("Flags: ignoreversion skipifsourcedoesntexist")
    license_line = next(line for line in script.splitlines() if "LICENSE" in line)
    assert "skipifsourcedoesntexist" not in license_line
    assert "[Registry]" in script
    assert "CurrentVersion\\Run" in script
    assert "SetupIconFile" not in script


def test_installer_script_without_startup_entry(tmp_path, windows_container) -> None:
    script = render_installer_script(windows_container, tmp_path / "dist", InstallerOptions())

    assert "[Registry]" not in script
    assert "AppId=" not in script


def test_unreplaced_tokens_are_rejected() -> None:
    with pytest.raises(InstallerCompileFailed) as excinfo:
        replace_tokens("AppName={{app_name}}\nAppVersion={{ app_version }}\n", {"app_name": "MultiInstance"})

    assert "app_version" in excinfo.value.message


def test_installer_tool_missing_keeps_script(tmp_path, windows_container, tool_host: FakeToolHost) -> None:
    """GIVEN no iscc on PATH
    WHEN the installer is produced
    THEN InstallerToolMissing (non-fatal, with a remediation hint) is raised after the script is written.
    """
    dist_dir = tmp_path / "dist"

    with pytest.raises(InstallerToolMissing) as excinfo:
        produce_installer(windows_container, dist_dir, triple="x86_64-pc-windows-msvc")

    assert excinfo.value.fatal is False
    assert "jrsoftware.org" in excinfo.value.details["remediation"]
    assert (dist_dir / "MultiInstance-1.0.0.iss").is_file()


def test_installer_compiles_with_iscc(tmp_path, windows_container, tool_host: FakeToolHost) -> None:
    dist_dir = tmp_path / "dist"

    def iscc(argv: list[str]) -> tuple[int, str, str]:
        (dist_dir / "MultiInstance-1.0.0-setup.exe").write_bytes(b"MZ-setup")
        return 0, "Successful compile", ""

    tool_host.add("iscc", iscc)

    artifact = produce_installer(windows_container, dist_dir, triple="x86_64-pc-windows-msvc")

    assert artifact.kind == "installer-executable"
    assert artifact.file_path == dist_dir / "MultiInstance-1.0.0-setup.exe"
    assert tool_host.calls_for("iscc")[0][1] == str(dist_dir / "MultiInstance-1.0.0.iss")


def test_installer_compile_failure(tmp_path, windows_container, tool_host: FakeToolHost) -> None:
    tool_host.add("iscc", lambda argv: (2, "", "Error on line 12: Unknown flag"))

    with pytest.raises(InstallerCompileFailed) as excinfo:
        produce_installer(windows_container, tmp_path / "dist", triple="x86_64-pc-windows-msvc")

    assert excinfo.value.fatal is False
    assert "Unknown flag" in (excinfo.value.output or "")
