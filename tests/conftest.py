"""Shared pytest fixtures: project settings, fake Mach-O images and a fake tool host."""

from __future__ import annotations

import shutil
import struct
import subprocess
from pathlib import Path
from typing import Callable

import pytest
from PIL import Image

from appdist.config import AppSettings, load_settings
from appdist.models import ARCHITECTURE_TAGS, BuildTarget, CompiledBinary, find_target
from appdist.universal.macho import ARCH_CPU_TYPES

ToolHandler = Callable[[list[str]], tuple[int, str, str]]

MACHO_64_LE = b"\xcf\xfa\xed\xfe"


def write_thin_macho(path: Path, architecture: str, payload: bytes = b"") -> Path:
    """Write a minimal little-endian 64-bit Mach-O image for ``architecture`` (lipo name)."""

    cputype, cpusubtype = ARCH_CPU_TYPES[architecture]
    path.parent.mkdir(parents=True, exist_ok=True)
    body = MACHO_64_LE + struct.pack("<ii", cputype, cpusubtype) + b"\x00" * 20 + payload + architecture.encode()
    path.write_bytes(body)
    path.chmod(0o755)
    return path


def write_png(path: Path, pixels: int) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGBA", (pixels, pixels), (59, 130, 246, 255)).save(path, format="PNG")
    return path


def compiled_binary_for(output_root: Path, target: BuildTarget, *, binary_name: str = "multiinstance") -> CompiledBinary:
    """Place a fake compiled executable where cargo would leave it."""

    path = output_root / target.toolchain_triple / "release" / f"{binary_name}{target.executable_suffix}"
    tag = ARCHITECTURE_TAGS[target.architecture]
    if target.operating_system == "macos":
        write_thin_macho(path, tag)
    else:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"MZ" + b"\x00" * 62 + b"windows-executable")
    return CompiledBinary(target=target, file_path=path, architecture_tag=tag)


class FakeToolHost:
    """Stand-in for PATH lookup and subprocess execution of external tools."""

    def __init__(self) -> None:
        self.handlers: dict[str, ToolHandler] = {}
        self.calls: list[list[str]] = []

    def add(self, name: str, handler: ToolHandler | None = None) -> "FakeToolHost":
        self.handlers[name] = handler or (lambda argv: (0, "", ""))
        return self

    def remove(self, name: str) -> None:
        self.handlers.pop(name, None)

    def which(self, name: str, *args: object, **kwargs: object) -> str | None:
        return f"/fake/bin/{name}" if name in self.handlers else None

    def run(self, command: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
        argv = [str(part) for part in command]
        self.calls.append(argv)
        handler = self.handlers.get(Path(argv[0]).name)
        if handler is None:
            raise FileNotFoundError(argv[0])
        returncode, stdout, stderr = handler(argv)
        return subprocess.CompletedProcess(argv, returncode, stdout, stderr)

    def calls_for(self, name: str) -> list[list[str]]:
        return [call for call in self.calls if Path(call[0]).name == name]


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("APPDIST_SETTINGS_FILE", raising=False)
    monkeypatch.delenv("APPDIST_LOG_LEVEL", raising=False)


@pytest.fixture
def tool_host(monkeypatch: pytest.MonkeyPatch) -> FakeToolHost:
    """Empty tool host: nothing is on PATH until a test adds it."""

    host = FakeToolHost()
    monkeypatch.setattr(shutil, "which", host.which)
    monkeypatch.setattr(subprocess, "run", host.run)
    return host


@pytest.fixture
def scratch_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Redirect tempfile scratch directories so leftovers can be asserted on."""

    import tempfile

    directory = tmp_path / "scratch"
    directory.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(directory))
    return directory


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    (root / "configs").mkdir(parents=True)
    (root / "configs" / "settings.yaml").write_text(
        "project:\n"
        "  name: appdist\n"
        "  env: test\n"
        "app:\n"
        "  name: MultiInstance\n"
        "  bundle_identifier: com.jackzhang.multiinstance\n"
        '  version: "1.0.0"\n'
        "toolchain:\n"
        "  parallel_builds: false\n",
        encoding="utf-8",
    )
    return root


@pytest.fixture
def settings_file(project_root: Path) -> Path:
    return project_root / "configs" / "settings.yaml"


@pytest.fixture
def settings(settings_file: Path) -> AppSettings:
    return load_settings(config_file=settings_file)


@pytest.fixture
def macos_targets() -> tuple[BuildTarget, BuildTarget]:
    return find_target("macos", "aarch64"), find_target("macos", "x86_64")


@pytest.fixture
def windows_target() -> BuildTarget:
    return find_target("windows", "x86_64")
