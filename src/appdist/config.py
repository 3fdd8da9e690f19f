"""Settings models for the distribution pipeline and how they are loaded."""

from __future__ import annotations

import os
from pathlib import Path
from typing import ClassVar, Literal

from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

DEFAULT_SETTINGS_FILE = Path("configs/settings.yaml")
SETTINGS_FILE_ENV = "APPDIST_SETTINGS_FILE"

RasterizerName = Literal["rsvg-convert", "magick", "convert", "inkscape"]


class ProjectConfig(BaseModel):
    """Project metadata settings."""

    name: str = "appdist"
    env: str = "dev"


class AppConfig(BaseModel):
    """Static application metadata written into containers and installers."""

    name: str = "MultiInstance"
    bundle_identifier: str = "com.jackzhang.multiinstance"
    version: str = "1.0.0"
    min_os_version: str = "10.15"
    binary_name: str = "multiinstance"
    publisher: str = "MultiInstance"
    copyright: str | None = None
    extra_metadata: dict[str, str] = Field(default_factory=dict)


class PathsConfig(BaseModel):
    """Filesystem paths used by the packaging stages."""

    project_root: Path = Path(".")
    output_root: Path = Path("./target")
    artifacts_root: Path = Path("./artifacts")
    logs_root: Path = Path("./logs")
    icon_source: Path = Path("./assets/MultiInstance_Logo.svg")
    macos_icon: Path = Path("./resources/macos/AppIcon.icns")
    windows_icon: Path = Path("./resources/windows/app.ico")

    def anchored_at(self, root: Path) -> "PathsConfig":
        """Copy with every relative path made absolute under ``root``."""

        return self.model_copy(
            update={name: _absolute(getattr(self, name), root) for name in type(self).model_fields},
        )


class ToolchainConfig(BaseModel):
    """Compiler toolchain invocation settings."""

    cargo: str = "cargo"
    rustup: str = "rustup"
    profile: str = "release"
    extra_args: list[str] = Field(default_factory=list)
    auto_install_targets: bool = False
    parallel_builds: bool = True
    timeout_sec: int = Field(default=3600, ge=1)


class IconsConfig(BaseModel):
    """Icon conversion policy and rasterizer preference order."""

    required: bool = False
    rasterizers: list[RasterizerName] = Field(
        default_factory=lambda: ["rsvg-convert", "magick", "convert", "inkscape"],
        min_length=1,
    )
    use_iconutil: bool = True
    generate_placeholder: bool = False
    timeout_sec: int = Field(default=120, ge=1)


class SigningConfig(BaseModel):
    """Ad-hoc signing behavior."""

    enabled: bool = True
    required: bool = False
    identity: str = "-"
    codesign: str = "codesign"


class AuxiliaryFileConfig(BaseModel):
    """One extra file copied next to the application in the portable archive."""

    path: Path
    required: bool = False


class ArchiveConfig(BaseModel):
    """Portable archive settings."""

    compression_level: int = Field(default=9, ge=0, le=9)
    auxiliary_files: list[AuxiliaryFileConfig] = Field(
        default_factory=lambda: [
            AuxiliaryFileConfig(path=Path("LICENSE")),
            AuxiliaryFileConfig(path=Path("README.md")),
        ]
    )


class InstallerConfig(BaseModel):
    """Installer-executable settings (Inno Setup)."""

    compiler: str = "iscc"
    app_id: str | None = None
    publisher_url: str | None = None
    register_startup: bool = False
    compression: Literal["lzma2", "lzma", "zip", "none"] = "lzma2"
    timeout_sec: int = Field(default=900, ge=1)


class AppSettings(BaseSettings):
    """Top-level application settings."""

    _yaml_file_override: ClassVar[Path | None] = None

    project: ProjectConfig = Field(default_factory=ProjectConfig)
    app: AppConfig = Field(default_factory=AppConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    toolchain: ToolchainConfig = Field(default_factory=ToolchainConfig)
    icons: IconsConfig = Field(default_factory=IconsConfig)
    signing: SigningConfig = Field(default_factory=SigningConfig)
    archive: ArchiveConfig = Field(default_factory=ArchiveConfig)
    installer: InstallerConfig = Field(default_factory=InstallerConfig)

    model_config = SettingsConfigDict(
        env_prefix="APPDIST_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Precedence: explicit kwargs, APPDIST_* env, .env, settings YAML, secrets."""

        yaml_source = YamlConfigSettingsSource(
            settings_cls,
            yaml_file=cls._yaml_file_override or resolve_settings_file(),
        )
        return init_settings, env_settings, dotenv_settings, yaml_source, file_secret_settings

    def as_dict(self) -> dict[str, object]:
        """JSON-compatible nested view used by ``show-config``."""

        return self.model_dump(mode="json")


ROOT_MARKERS: tuple[Path, ...] = (DEFAULT_SETTINGS_FILE, Path("Cargo.toml"))


def find_project_root(start: Path | None = None) -> Path:
    """Walk upward to the nearest directory holding settings, else the nearest Cargo project."""

    origin = (start or Path.cwd()).resolve()
    lineage = (origin, *origin.parents)
    for marker in ROOT_MARKERS:
        match = next((directory for directory in lineage if (directory / marker).is_file()), None)
        if match is not None:
            return match
    return origin


def resolve_settings_file(override: Path | None = None) -> Path:
    """Pick the settings YAML: explicit path, then APPDIST_SETTINGS_FILE, then configs/settings.yaml."""

    env_value = os.getenv(SETTINGS_FILE_ENV)
    chosen = override or (Path(env_value) if env_value else DEFAULT_SETTINGS_FILE)
    return chosen if chosen.is_absolute() else (find_project_root() / chosen).resolve()


def _absolute(path: Path, root: Path) -> Path:
    return path if path.is_absolute() else (root / path).resolve()


def load_settings(config_file: Path | None = None) -> AppSettings:
    """Load YAML settings plus env overrides and anchor every path at the project root.

    The project root is the directory above the one holding the settings file.
    """

    settings_file = resolve_settings_file(config_file)
    AppSettings._yaml_file_override = settings_file
    try:
        settings = AppSettings()
    finally:
        AppSettings._yaml_file_override = None

    paths = settings.paths.anchored_at(settings_file.parent.parent.resolve())
    auxiliary = [
        item.model_copy(update={"path": _absolute(item.path, paths.project_root)})
        for item in settings.archive.auxiliary_files
    ]
    archive = settings.archive.model_copy(update={"auxiliary_files": auxiliary})
    return settings.model_copy(update={"paths": paths, "archive": archive})
