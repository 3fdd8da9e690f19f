"""Installer-executable variant: render an Inno Setup script and compile it with iscc."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path, PureWindowsPath

from appdist.config import AppSettings
from appdist.dist.archive import AuxiliaryFile
from appdist.errors import InstallerCompileFailed, InstallerToolMissing
from appdist.models import AppContainer, DistArtifact
from appdist.tools.probe import ToolAvailable, ToolProbe, probe_tool
from appdist.tools.runner import run_tool
from appdist.utils.paths import write_text_atomically

LOGGER = logging.getLogger(__name__)

INNO_KNOWN_LOCATIONS = (
    Path(r"C:\Program Files (x86)\Inno Setup 6\ISCC.exe"),
    Path(r"C:\Program Files\Inno Setup 6\ISCC.exe"),
)
INNO_REMEDIATION = "Install Inno Setup 6 from https://jrsoftware.org/isdl.php or set installer.compiler to the ISCC.exe path."
STARTUP_RUN_KEY = r"Software\Microsoft\Windows\CurrentVersion\Run"

INNO_TEMPLATE = """\
; Generated by appdist. Changes are overwritten on the next build.

[Setup]
AppName={{app_name}}
AppVersion={{app_version}}
AppVerName={{app_name}} {{app_version}}
AppPublisher={{publisher}}
{{setup_extra}}DefaultDirName={autopf}\\{{app_name}}
DefaultGroupName={{app_name}}
DisableProgramGroupPage=yes
OutputDir={{output_dir}}
OutputBaseFilename={{output_base_filename}}
Compression={{compression}}
SolidCompression=yes
ArchitecturesAllowed=x64compatible
ArchitecturesInstallIn64BitMode=x64compatible
UninstallDisplayIcon={app}\\{{executable}}
WizardStyle=modern

[Files]
{{files}}
[Icons]
Name: "{group}\\{{app_name}}"; Filename: "{app}\\{{executable}}"; WorkingDir: "{app}"
Name: "{group}\\Uninstall {{app_name}}"; Filename: "{uninstallexe}"
{{registry}}
[Run]
Filename: "{app}\\{{executable}}"; Description: "Launch {{app_name}}"; Flags: nowait postinstall skipifsilent
"""

_TOKEN_PATTERN = re.compile(r"{{\s*([A-Za-z0-9_]+)\s*}}")


@dataclass(frozen=True, slots=True)
class InstallerFile:
    """One [Files] entry of the installer script."""

    source: Path
    dest_dir: str = "{app}"
    flags: tuple[str, ...] = ("ignoreversion",)
    recursive: bool = False

    def render(self) -> str:
        source = str(PureWindowsPath(self.source) / "*") if self.recursive else str(PureWindowsPath(self.source))
        return f'Source: "{source}"; DestDir: "{self.dest_dir}"; Flags: {" ".join(self.flags)}'


@dataclass(frozen=True, slots=True)
class InstallerOptions:
    compiler: str = "iscc"
    app_id: str | None = None
    publisher_url: str | None = None
    register_startup: bool = False
    compression: str = "lzma2"
    timeout_sec: int = 900
    auxiliary_files: tuple[AuxiliaryFile, ...] = ()

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "InstallerOptions":
        return cls(
            compiler=settings.installer.compiler,
            app_id=settings.installer.app_id,
            publisher_url=settings.installer.publisher_url,
            register_startup=settings.installer.register_startup,
            compression=settings.installer.compression,
            timeout_sec=settings.installer.timeout_sec,
            auxiliary_files=tuple(
                AuxiliaryFile(path=item.path, required=item.required) for item in settings.archive.auxiliary_files
            ),
        )


def installer_base_name(container: AppContainer) -> str:
    return f"{container.metadata.name}-{container.version}-setup"


def replace_tokens(template: str, tokens: dict[str, str]) -> str:
    """Substitute ``{{key}}`` tokens and reject any that remain unreplaced."""

    text = template
    for key, value in tokens.items():
        text = text.replace(f"{{{{{key}}}}}", value)
    leftover = _TOKEN_PATTERN.findall(text)
    if leftover:
        unique = ", ".join(sorted(set(leftover)))
        raise InstallerCompileFailed(f"unreplaced tokens remain in installer template: {unique}")
    return text


def installer_files(container: AppContainer, auxiliary_files: tuple[AuxiliaryFile, ...]) -> list[InstallerFile]:
    """Build the [Files] entries for a Windows container and its auxiliary files."""

    entries = [
        InstallerFile(source=container.executable_path),
        InstallerFile(source=container.metadata_path),
    ]
    if container.icon_path is not None:
        entries.append(
            InstallerFile(
                source=container.icon_path.parent,
                dest_dir="{app}\\resources",
                flags=("ignoreversion", "recursesubdirs", "createallsubdirs"),
                recursive=True,
            )
        )
    for item in auxiliary_files:
        flags = ("ignoreversion",) if item.required else ("ignoreversion", "skipifsourcedoesntexist")
        entries.append(InstallerFile(source=item.path, flags=flags))
    return entries


def render_installer_script(
    container: AppContainer,
    output_dir: Path,
    options: InstallerOptions,
) -> str:
    """Render the declarative Inno Setup script for ``container``."""

    metadata = container.metadata
    executable = container.executable_path.name

    setup_extra: list[str] = []
    if options.app_id:
        setup_extra.append(f"AppId={options.app_id}")
    if options.publisher_url:
        setup_extra.append(f"AppPublisherURL={options.publisher_url}")
    if metadata.copyright:
        setup_extra.append(f"AppCopyright={metadata.copyright}")
    if container.icon_path is not None:
        setup_extra.append(f"SetupIconFile={PureWindowsPath(container.icon_path)}")

    registry = ""
    if options.register_startup:
        registry = (
            "\n[Registry]\n"
            f'Root: HKCU; Subkey: "{STARTUP_RUN_KEY}"; ValueType: string; ValueName: "{metadata.name}"; '
            f'ValueData: """{{app}}\\{executable}"""; Flags: uninsdeletevalue\n'
        )

    tokens = {
        "app_name": metadata.name,
        "app_version": metadata.version,
        "publisher": metadata.publisher or metadata.name,
        "setup_extra": "".join(f"{line}\n" for line in setup_extra),
        "output_dir": str(PureWindowsPath(output_dir)),
        "output_base_filename": installer_base_name(container),
        "compression": options.compression,
        "executable": executable,
        "files": "".join(f"{entry.render()}\n" for entry in installer_files(container, options.auxiliary_files)),
        "registry": registry,
    }
    return replace_tokens(INNO_TEMPLATE, tokens)


def locate_inno_compiler(compiler: str) -> ToolProbe:
    """Find iscc on PATH, at an explicit path, or in the default install folders."""

    probe = probe_tool(compiler)
    if isinstance(probe, ToolAvailable):
        return probe
    for location in INNO_KNOWN_LOCATIONS:
        if location.is_file():
            return ToolAvailable(name=compiler, path=location)
    return probe


def produce_installer(
    container: AppContainer,
    dist_dir: Path,
    *,
    triple: str,
    options: InstallerOptions | None = None,
    logger: logging.Logger | None = None,
) -> DistArtifact:
    """Write the installer script into ``dist_dir`` and compile it.

    The script is written before the compiler is probed so it can still be
    compiled by hand when iscc is missing on the build host.
    """

    effective_logger = logger or LOGGER
    effective_options = options or InstallerOptions()
    if container.target_os != "windows":
        raise InstallerCompileFailed(f"installer executables are only produced for windows, not {container.target_os}")

    base_name = installer_base_name(container)
    script_path = dist_dir / f"{container.metadata.name}-{container.version}.iss"
    output_path = dist_dir / f"{base_name}.exe"

    dist_dir.mkdir(parents=True, exist_ok=True)
    write_text_atomically(script_path, render_installer_script(container, dist_dir, effective_options))
    effective_logger.info("installer.script_written path=%s", script_path)

    probe = locate_inno_compiler(effective_options.compiler)
    if not isinstance(probe, ToolAvailable):
        raise InstallerToolMissing(
            f"{effective_options.compiler} not found; {INNO_REMEDIATION}",
            details={"script": str(script_path), "remediation": INNO_REMEDIATION},
        )

    result = run_tool(
        [probe.path, script_path],
        cwd=dist_dir,
        timeout=effective_options.timeout_sec,
        logger=effective_logger,
    )
    if not result.ok:
        raise InstallerCompileFailed(
            f"iscc exited with status {result.returncode}",
            output=result.output,
            details={"script": str(script_path), "exit_status": result.returncode},
        )
    if not output_path.is_file():
        raise InstallerCompileFailed(
            f"iscc reported success but {output_path.name} was not produced",
            output=result.output,
            details={"script": str(script_path)},
        )

    effective_logger.info("installer.complete path=%s", output_path)
    return DistArtifact(
        kind="installer-executable",
        file_path=output_path,
        version=container.version,
        target_platform=triple,
    )
