"""Typed stage inputs and outputs passed between pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from appdist.config import AppConfig

OperatingSystem = Literal["macos", "windows"]
Architecture = Literal["x86_64", "aarch64"]
IconFormat = Literal["icns", "ico"]
ArtifactKind = Literal["portable-archive", "installer-executable"]

OPERATING_SYSTEMS: tuple[OperatingSystem, ...] = ("macos", "windows")
ARCHITECTURES: tuple[Architecture, ...] = ("x86_64", "aarch64")

# Slice names as reported by lipo / Mach-O cputype.
ARCHITECTURE_TAGS: dict[Architecture, str] = {
    "x86_64": "x86_64",
    "aarch64": "arm64",
}

UNIVERSAL_MACOS_TRIPLE = "universal-apple-darwin"


@dataclass(frozen=True, slots=True)
class BuildTarget:
    """One (OS, architecture, toolchain ABI) compilation unit."""

    operating_system: OperatingSystem
    architecture: Architecture
    toolchain_triple: str

    @property
    def key(self) -> str:
        return f"{self.operating_system}-{self.architecture}"

    @property
    def executable_suffix(self) -> str:
        return ".exe" if self.operating_system == "windows" else ""


BUILD_TARGETS: tuple[BuildTarget, ...] = (
    BuildTarget("macos", "aarch64", "aarch64-apple-darwin"),
    BuildTarget("macos", "x86_64", "x86_64-apple-darwin"),
    BuildTarget("windows", "x86_64", "x86_64-pc-windows-msvc"),
)


def targets_for(operating_system: OperatingSystem) -> tuple[BuildTarget, ...]:
    """Return the static targets available for one operating system."""

    return tuple(target for target in BUILD_TARGETS if target.operating_system == operating_system)


def find_target(operating_system: OperatingSystem, architecture: str) -> BuildTarget:
    """Look up a static target, raising ValueError for unsupported pairs."""

    for target in targets_for(operating_system):
        if target.architecture == architecture:
            return target
    supported = ",".join(target.architecture for target in targets_for(operating_system))
    raise ValueError(f"unsupported architecture {architecture!r} for {operating_system}; supported: {supported}")


@dataclass(frozen=True, slots=True)
class CompiledBinary:
    """Executable produced by the compiler for exactly one target."""

    target: BuildTarget
    file_path: Path
    architecture_tag: str


@dataclass(frozen=True, slots=True)
class UniversalBinary:
    """Multi-architecture executable merged from thin constituents."""

    constituent_binaries: tuple[CompiledBinary, ...]
    file_path: Path
    architectures: tuple[str, ...]

    @property
    def operating_system(self) -> OperatingSystem:
        return self.constituent_binaries[0].target.operating_system


@dataclass(frozen=True, slots=True)
class IconSize:
    """One entry in an icon size matrix."""

    size: int
    scale: int = 1

    @property
    def pixels(self) -> int:
        return self.size * self.scale

    @property
    def iconset_name(self) -> str:
        suffix = f"@{self.scale}x" if self.scale > 1 else ""
        return f"icon_{self.size}x{self.size}{suffix}.png"


@dataclass(frozen=True, slots=True)
class IconAsset:
    """Packed icon container produced from one vector source."""

    source_vector_path: Path | None
    target_format: IconFormat
    size_matrix: tuple[IconSize, ...]
    file_path: Path


@dataclass(frozen=True, slots=True)
class MetadataDescriptor:
    """Application metadata written verbatim into the container."""

    name: str
    bundle_identifier: str
    version: str
    min_os_version: str
    executable_name: str
    publisher: str | None = None
    copyright: str | None = None
    extra: dict[str, str] = field(default_factory=dict, hash=False)

    @classmethod
    def build(cls, app: AppConfig, *, executable_name: str | None = None) -> "MetadataDescriptor":
        """Create a descriptor from application settings."""

        return cls(
            name=app.name,
            bundle_identifier=app.bundle_identifier,
            version=app.version,
            min_os_version=app.min_os_version,
            executable_name=executable_name or app.binary_name,
            publisher=app.publisher,
            copyright=app.copyright,
            extra=dict(app.extra_metadata),
        )


@dataclass(frozen=True, slots=True)
class AppContainer:
    """Assembled application bundle on disk."""

    root_path: Path
    executable_path: Path
    metadata_path: Path
    metadata: MetadataDescriptor
    icon_path: Path | None
    target_os: OperatingSystem

    @property
    def bundle_identifier(self) -> str:
        return self.metadata.bundle_identifier

    @property
    def version(self) -> str:
        return self.metadata.version


@dataclass(frozen=True, slots=True)
class DistArtifact:
    """Final distributable file."""

    kind: ArtifactKind
    file_path: Path
    version: str
    target_platform: str
