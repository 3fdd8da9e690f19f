"""Typer CLI entrypoint for appdist."""

from __future__ import annotations

import logging
import signal
import sys
from pathlib import Path
from typing import Annotated, cast

import polars as pl
import typer
import yaml

from appdist.compile.invoker import installed_targets
from appdist.config import AppSettings, load_settings
from appdist.errors import DistError
from appdist.icons.converter import IconOptions, convert_icon, generate_placeholder_icon
from appdist.logging_utils import configure_logging
from appdist.models import BUILD_TARGETS, Architecture, IconFormat, OperatingSystem
from appdist.orchestrator.pipeline import (
    BuildRunOptions,
    cancel_on_signal,
    load_stage_history,
    resolve_requests,
    run_build,
)
from appdist.orchestrator.state import CancelToken
from appdist.tools.probe import ToolAvailable, probe_first, probe_tool
from appdist.utils.paths import ensure_directories, write_marker_file

app = typer.Typer(
    add_completion=False,
    help="Build, package, sign and archive MultiInstance for macOS and Windows.",
    no_args_is_help=True,
)

ConfigFileOption = Annotated[
    Path | None,
    typer.Option(
        "--config-file",
        help="Settings YAML to load instead of configs/settings.yaml.",
        dir_okay=False,
    ),
]

ARCH_ALIASES: dict[str, Architecture] = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "aarch64": "aarch64",
    "arm64": "aarch64",
}


def _load_and_optionally_configure_logger(
    config_file: Path | None,
    configure: bool,
) -> tuple[AppSettings, logging.Logger]:
    settings = load_settings(config_file=config_file)
    if configure:
        logger = configure_logging(settings.paths.logs_root / "appdist.log")
    else:
        logger = logging.getLogger("appdist")
    return settings, logger


def _normalize_choice(value: str, *, allowed: set[str], option_name: str) -> str:
    normalized = value.strip().lower()
    if normalized not in allowed:
        allowed_rendered = ",".join(sorted(allowed))
        raise ValueError(f"--{option_name} must be one of: {allowed_rendered}")
    return normalized


def _default_platform() -> OperatingSystem:
    if sys.platform == "darwin":
        return "macos"
    if sys.platform.startswith("win"):
        return "windows"
    raise ValueError("--platform is required on this host (macos or windows).")


def _parse_platforms(values: list[str] | None) -> tuple[OperatingSystem, ...]:
    if not values:
        return (_default_platform(),)
    return tuple(
        cast(OperatingSystem, _normalize_choice(value, allowed={"macos", "windows"}, option_name="platform"))
        for value in values
    )


def _parse_arches(values: list[str] | None) -> tuple[Architecture, ...]:
    parsed: list[Architecture] = []
    for value in values or []:
        key = _normalize_choice(value, allowed=set(ARCH_ALIASES), option_name="arch")
        if ARCH_ALIASES[key] not in parsed:
            parsed.append(ARCH_ALIASES[key])
    return tuple(parsed)


@app.command("show-config")
def show_config(config_file: ConfigFileOption = None) -> None:
    """Print the effective configuration after env overrides."""

    settings, _ = _load_and_optionally_configure_logger(config_file, configure=False)
    rendered = yaml.safe_dump(settings.as_dict(), sort_keys=False)
    typer.echo(rendered)


@app.command("targets")
def targets(config_file: ConfigFileOption = None) -> None:
    """List supported build targets and probe the external tools each stage uses."""

    settings, logger = _load_and_optionally_configure_logger(config_file, configure=False)
    installed = installed_targets(settings.toolchain.rustup, logger=logger)
    for target in BUILD_TARGETS:
        if installed is None:
            state = "unknown"
        else:
            state = "installed" if target.toolchain_triple in installed else "missing"
        typer.echo(f"{target.key}: {target.toolchain_triple} rust_target={state}")

    probes = {
        "cargo": probe_tool(settings.toolchain.cargo),
        "lipo": probe_tool("lipo"),
        "codesign": probe_tool(settings.signing.codesign),
        "iconutil": probe_tool("iconutil"),
        "rasterizer": probe_first(settings.icons.rasterizers),
        "iscc": probe_tool(settings.installer.compiler),
    }
    for label, probe in probes.items():
        rendered = str(probe.path) if isinstance(probe, ToolAvailable) else f"missing ({probe.reason})"
        typer.echo(f"tool.{label}: {rendered}")


@app.command("build")
def build(
    platform: list[str] | None = typer.Option(
        None,
        "--platform",
        help="Target OS: macos or windows. Repeat for several platforms. Defaults to the host OS.",
    ),
    arch: list[str] | None = typer.Option(
        None,
        "--arch",
        help="Target architecture: x86_64 or aarch64 (arm64). Repeat for several.",
    ),
    universal: bool = typer.Option(
        False,
        "--universal",
        help="Merge macOS architectures into one universal executable.",
    ),
    installer: bool = typer.Option(
        False,
        "--installer",
        help="Also compile a Windows installer executable (requires Inno Setup).",
    ),
    skip_compile: bool = typer.Option(
        False,
        "--skip-compile",
        help="Package executables left by a previous compile instead of invoking cargo.",
    ),
    config_file: ConfigFileOption = None,
) -> None:
    """Compile, package, sign and archive the application for each requested platform."""

    try:
        options = BuildRunOptions(
            platforms=_parse_platforms(platform),
            architectures=_parse_arches(arch),
            universal=universal,
            installer=installer,
            skip_compile=skip_compile,
        )
    except ValueError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    settings, logger = _load_and_optionally_configure_logger(config_file, configure=True)
    if installer and "windows" not in options.platforms:
        typer.echo("warning: --installer ignored, installer executables are only produced for windows", err=True)
    try:
        resolve_requests(options)
    except (DistError, ValueError) as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    token = CancelToken()
    previous_handlers = cancel_on_signal(token, [signal.SIGINT, signal.SIGTERM])
    try:
        result = run_build(settings, options=options, cancel_token=token, logger=logger)
    finally:
        for signum, handler in previous_handlers.items():
            signal.signal(signum, handler)

    typer.echo(f"run_id: {result.run_id}")
    for record in result.records:
        typer.echo(f"platform: {record.platform} status: {record.status} stage: {record.stage}")
        if record.failure is not None:
            typer.echo(f"  failure: {record.failure['code']} at {record.failure['stage']}: {record.failure['message']}")
        for warning in record.warnings:
            typer.echo(f"  warning: {warning.code}: {warning.message}")
        for artifact in record.artifacts:
            typer.echo(f"  artifact: {artifact.kind} {artifact.file_path}")
        if record.install_hint:
            typer.echo(f"  hint: {record.install_hint}")
    typer.echo(f"summary_path: {result.summary_path}")
    typer.echo(f"stage_results_path: {result.stage_results_path}")
    typer.echo(f"exit_code: {result.exit_code}")
    raise typer.Exit(code=result.exit_code)


@app.command("icons")
def icons(
    source: Path = typer.Argument(
        ...,
        help="Vector (SVG) source image.",
        exists=False,
        dir_okay=False,
    ),
    icon_format: str = typer.Option(
        "icns",
        "--format",
        help="Icon container format: icns or ico.",
    ),
    output: Path = typer.Option(
        ...,
        "--output",
        help="Destination icon container path.",
        dir_okay=False,
    ),
    placeholder: bool = typer.Option(
        False,
        "--placeholder",
        help="Draw the built-in placeholder artwork instead of rasterizing SOURCE.",
    ),
    config_file: ConfigFileOption = None,
) -> None:
    """Generate an ICNS or ICO icon container from an SVG source."""

    try:
        target_format = cast(IconFormat, _normalize_choice(icon_format, allowed={"icns", "ico"}, option_name="format"))
    except ValueError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    settings, logger = _load_and_optionally_configure_logger(config_file, configure=True)
    options = IconOptions.from_settings(settings)
    try:
        if placeholder:
            asset = generate_placeholder_icon(target_format, output, options=options, logger=logger)
        else:
            asset = convert_icon(source, target_format, output, options=options, logger=logger)
    except DistError as exc:
        typer.echo(f"error: {exc.code}: {exc.message}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(f"format: {asset.target_format}")
    typer.echo(f"sizes: {len(asset.size_matrix)}")
    typer.echo(f"output: {asset.file_path}")


@app.command("history")
def history(
    limit: int = typer.Option(
        5,
        "--limit",
        min=1,
        help="Show stage results of at most N recent runs.",
    ),
    config_file: ConfigFileOption = None,
) -> None:
    """Print stage timings and outcomes of recent build runs."""

    settings, _ = _load_and_optionally_configure_logger(config_file, configure=False)
    frame = load_stage_history(settings.paths.artifacts_root, limit=limit)
    if frame.is_empty():
        typer.echo("No build runs recorded yet.")
        return

    runs = (
        frame.group_by("run_id", maintain_order=True)
        .agg(
            pl.col("platform").n_unique().alias("platforms"),
            (pl.col("status") == "failed").sum().alias("failed_stages"),
            pl.col("duration_sec").sum().round(3).alias("duration_sec"),
        )
        .sort("run_id", descending=True)
    )
    typer.echo(f"runs: {runs.height}")
    with pl.Config(tbl_rows=-1, tbl_cols=-1, tbl_width_chars=160):
        typer.echo(str(runs))
        typer.echo(str(frame.select("run_id", "platform", "stage", "status", "duration_sec", "error_code")))


@app.command("init-layout")
def init_layout(config_file: ConfigFileOption = None) -> None:
    """Create output/artifacts/log folders and the icon resource folders."""

    settings, logger = _load_and_optionally_configure_logger(config_file, configure=True)
    created_dirs = ensure_directories(
        [
            settings.paths.output_root,
            settings.paths.artifacts_root / "run_summaries",
            settings.paths.logs_root,
            settings.paths.macos_icon.parent,
            settings.paths.windows_icon.parent,
        ]
    )
    readme = write_marker_file(
        settings.paths.macos_icon.parent.parent / "README.md",
        "Prebuilt icon containers placed here are packaged as-is:\n"
        f"- {settings.paths.macos_icon.name} for macOS bundles\n"
        f"- {settings.paths.windows_icon.name} for Windows containers\n"
        "Without them the build converts the configured SVG icon source.",
    )
    logger.info("init_layout.created_dirs count=%s", len(created_dirs))
    logger.info("init_layout.marker_file path=%s", readme)
    typer.echo("Initialized output/artifacts/logs folders and icon resource folders.")


def main() -> None:
    """CLI script entrypoint."""

    app()


if __name__ == "__main__":
    main()
