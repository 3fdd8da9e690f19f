"""Build orchestration across platforms: compile, merge, package, sign, produce."""

from __future__ import annotations

import logging
import os
import platform
import signal
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence
from uuid import uuid4

import polars as pl

from appdist.bundle.packager import package_container
from appdist.compile.invoker import CompileOptions, compile_targets, locate_compiled_binary
from appdist.config import AppSettings
from appdist.dist.archive import ArchiveOptions, produce_portable_archive
from appdist.dist.installer import INNO_REMEDIATION, InstallerOptions, produce_installer
from appdist.errors import DistError, InstallerToolMissing, OutputCollision, UnexpectedFailure
from appdist.icons.converter import IconOptions, convert_icon, generate_placeholder_icon
from appdist.icons.size_matrix import size_matrix_for
from appdist.layout import OutputLayout, output_layout, universal_binary_path
from appdist.models import (
    ARCHITECTURES,
    UNIVERSAL_MACOS_TRIPLE,
    Architecture,
    CompiledBinary,
    IconAsset,
    IconFormat,
    MetadataDescriptor,
    OperatingSystem,
    UniversalBinary,
    find_target,
)
from appdist.orchestrator.state import CancelToken, PlatformRunRecord, exit_code_for
from appdist.signing.signer import SigningOptions, sign_container
from appdist.universal.assembler import assemble_universal
from appdist.utils.paths import atomic_temp_path, write_json_atomically
from appdist.utils.time_utils import run_stamp

LOGGER = logging.getLogger(__name__)

RUN_SUMMARIES_SUBDIR = "run_summaries"
ICON_FORMATS: dict[OperatingSystem, IconFormat] = {"macos": "icns", "windows": "ico"}

STAGE_RESULTS_SCHEMA: dict[str, Any] = {
    "run_id": pl.String,
    "platform": pl.String,
    "triple": pl.String,
    "stage": pl.String,
    "duration_sec": pl.Float64,
    "status": pl.String,
    "error_code": pl.String,
    "error_message": pl.String,
}


@dataclass(frozen=True, slots=True)
class PlatformRequest:
    """One platform run: an OS with one architecture, or a universal macOS build."""

    operating_system: OperatingSystem
    architectures: tuple[Architecture, ...]
    universal: bool = False
    installer: bool = False

    @property
    def triple(self) -> str:
        if self.universal:
            return UNIVERSAL_MACOS_TRIPLE
        return find_target(self.operating_system, self.architectures[0]).toolchain_triple

    @property
    def label(self) -> str:
        suffix = "universal" if self.universal else self.architectures[0]
        return f"{self.operating_system}-{suffix}"


@dataclass(frozen=True, slots=True)
class BuildRunOptions:
    """Runtime options for one build invocation."""

    platforms: tuple[OperatingSystem, ...] = ("macos",)
    architectures: tuple[Architecture, ...] = ()
    universal: bool = False
    installer: bool = False
    skip_compile: bool = False


@dataclass(frozen=True, slots=True)
class BuildRunResult:
    """Outcome of a build run across all requested platforms."""

    run_id: str
    records: list[PlatformRunRecord] = field(default_factory=list)
    exit_code: int = 0
    summary: dict[str, Any] = field(default_factory=dict)
    summary_path: Path | None = None
    stage_results_path: Path | None = None


def host_architecture(machine: str | None = None) -> Architecture:
    """Map the host machine name onto a supported architecture."""

    value = (machine or platform.machine()).strip().lower()
    if value in {"arm64", "aarch64"}:
        return "aarch64"
    if value in {"x86_64", "amd64", "x64"}:
        return "x86_64"
    raise ValueError(f"unsupported host architecture {value!r}")


def resolve_requests(options: BuildRunOptions, *, host_arch: Architecture | None = None) -> list[PlatformRequest]:
    """Expand CLI-level options into platform requests and reject colliding outputs."""

    if not options.platforms:
        raise ValueError("at least one platform is required")
    if options.installer and "windows" not in options.platforms:
        LOGGER.warning(
            "build_run.installer_ignored platforms=%s reason=installer executables are only produced for windows",
            ",".join(options.platforms),
        )

    requests: list[PlatformRequest] = []
    for operating_system in options.platforms:
        if operating_system == "macos":
            if options.universal:
                arches = options.architectures or ARCHITECTURES
                if len(set(arches)) < 2:
                    raise ValueError("a universal build needs at least two distinct architectures")
                for arch in arches:
                    find_target("macos", arch)
                requests.append(PlatformRequest("macos", tuple(arches), universal=True))
                continue
            arches = options.architectures or (host_arch or host_architecture(),)
            for arch in arches:
                find_target("macos", arch)
                requests.append(PlatformRequest("macos", (arch,)))
        else:
            windows_arches = options.architectures or ("x86_64",)
            for arch in windows_arches:
                find_target("windows", arch)
                requests.append(PlatformRequest("windows", (arch,), installer=options.installer))

    seen: dict[str, str] = {}
    for request in requests:
        if request.triple in seen:
            raise OutputCollision(
                f"{request.label} and {seen[request.triple]} both write to output root {request.triple}",
                details={"triple": request.triple},
            )
        seen[request.triple] = request.label
    return requests


def _iso_utc_from_epoch(value: float) -> str:
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()


def _write_parquet_atomically(df: pl.DataFrame, output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = atomic_temp_path(output_path)
    try:
        df.write_parquet(temp_path)
        os.replace(temp_path, output_path)
    finally:
        if temp_path.exists():
            temp_path.unlink()
    return output_path


def _prebuilt_icon(settings: AppSettings, operating_system: OperatingSystem) -> IconAsset | None:
    target_format = ICON_FORMATS[operating_system]
    path = settings.paths.macos_icon if operating_system == "macos" else settings.paths.windows_icon
    if not path.is_file():
        return None
    return IconAsset(
        source_vector_path=None,
        target_format=target_format,
        size_matrix=size_matrix_for(target_format),
        file_path=path,
    )


def resolve_icon(
    settings: AppSettings,
    operating_system: OperatingSystem,
    layout: OutputLayout,
    record: PlatformRunRecord,
    *,
    logger: logging.Logger,
) -> IconAsset | None:
    """Pick the icon for a container: prebuilt, converted, placeholder, or none.

    Conversion problems become a non-degrading warning unless
    ``icons.required`` is set, in which case they are raised.
    """

    prebuilt = _prebuilt_icon(settings, operating_system)
    if prebuilt is not None:
        logger.info("icon.prebuilt path=%s", prebuilt.file_path)
        return prebuilt

    target_format = ICON_FORMATS[operating_system]
    icon_options = IconOptions.from_settings(settings)
    output_path = layout.icons_dir / f"AppIcon.{target_format}"
    try:
        return convert_icon(
            settings.paths.icon_source,
            target_format,
            output_path,
            options=icon_options,
            logger=logger,
        )
    except DistError as exc:
        if settings.icons.generate_placeholder:
            logger.warning("icon.placeholder_fallback reason=%s", exc.message)
            record.warn(exc, degrades=False)
            return generate_placeholder_icon(target_format, output_path, options=icon_options, logger=logger)
        if settings.icons.required:
            raise
        logger.warning("icon.missing platform=%s reason=%s", record.platform, exc.message)
        record.warn(exc, degrades=False)
        return None


def run_platform(
    request: PlatformRequest,
    settings: AppSettings,
    *,
    skip_compile: bool = False,
    cancel_token: CancelToken | None = None,
    logger: logging.Logger | None = None,
) -> PlatformRunRecord:
    """Drive one platform request through every stage.

    Fatal errors, and any unexpected exception, end this platform's run in
    ``failed``; signing and installer problems are recorded as warnings and
    the run continues.
    """

    effective_logger = logger or LOGGER
    token = cancel_token or CancelToken()
    record = PlatformRunRecord(
        platform=request.label,
        operating_system=request.operating_system,
        triple=request.triple,
    )
    layout = output_layout(settings.paths.output_root, request.triple)
    compile_options = CompileOptions.from_settings(settings)
    targets = [find_target(request.operating_system, arch) for arch in request.architectures]
    effective_logger.info(
        "platform_run.start platform=%s triple=%s skip_compile=%s",
        record.platform,
        record.triple,
        skip_compile,
    )

    try:
        token.raise_if_cancelled("compiling")
        record.advance("compiling")
        if skip_compile:
            binaries = [locate_compiled_binary(target, compile_options) for target in targets]
        else:
            binaries = compile_targets(targets, compile_options, logger=effective_logger)

        binary: CompiledBinary | UniversalBinary = binaries[0]
        record.architectures = [item.architecture_tag for item in binaries]
        if request.universal:
            token.raise_if_cancelled("merging")
            record.advance("merging")
            binary = assemble_universal(
                binaries,
                universal_binary_path(
                    settings.paths.output_root,
                    request.triple,
                    profile=compile_options.profile_dir,
                    binary_name=compile_options.binary_name,
                ),
                logger=effective_logger,
            )
            record.architectures = list(binary.architectures)

        token.raise_if_cancelled("packaging")
        record.advance("packaging")
        icon = resolve_icon(settings, request.operating_system, layout, record, logger=effective_logger)
        container = package_container(
            binary,
            MetadataDescriptor.build(settings.app),
            layout.bundle_dir,
            target_os=request.operating_system,
            icon=icon,
            logger=effective_logger,
        )
        record.container_path = container.root_path

        token.raise_if_cancelled("signing")
        record.advance("signing")
        outcome = sign_container(container, SigningOptions.from_settings(settings), logger=effective_logger)
        record.signing_status = outcome.status
        if outcome.warning is not None:
            if settings.signing.required:
                raise outcome.warning
            record.warn(outcome.warning)

        token.raise_if_cancelled("producing")
        record.advance("producing")
        record.artifacts.append(
            produce_portable_archive(
                container,
                layout.dist_dir,
                triple=request.triple,
                options=ArchiveOptions.from_settings(settings),
                logger=effective_logger,
            )
        )
        if request.installer:
            try:
                record.artifacts.append(
                    produce_installer(
                        container,
                        layout.dist_dir,
                        triple=request.triple,
                        options=InstallerOptions.from_settings(settings),
                        logger=effective_logger,
                    )
                )
            except DistError as exc:
                if exc.fatal:
                    raise
                if isinstance(exc, InstallerToolMissing):
                    record.install_hint = INNO_REMEDIATION
                effective_logger.warning("platform_run.installer_skipped platform=%s reason=%s", record.platform, exc)
                record.warn(exc)

        record.advance("done")
    except DistError as exc:
        effective_logger.error(
            "platform_run.failed platform=%s stage=%s code=%s message=%s",
            record.platform,
            record.stage,
            exc.code,
            exc.message,
        )
        record.fail(exc)
    except Exception as exc:
        effective_logger.exception(
            "platform_run.crashed platform=%s stage=%s error=%s",
            record.platform,
            record.stage,
            type(exc).__name__,
        )
        record.fail(UnexpectedFailure.wrap(exc))

    effective_logger.info(
        "platform_run.finish platform=%s status=%s stage=%s warnings=%s artifacts=%s",
        record.platform,
        record.status,
        record.stage,
        len(record.warnings),
        len(record.artifacts),
    )
    return record


def _stage_rows(run_id: str, record: PlatformRunRecord) -> list[dict[str, object]]:
    rows: list[dict[str, object]] = []
    for stage, duration in record.stage_durations.items():
        failed_here = record.failure is not None and record.failure["stage"] == stage
        rows.append(
            {
                "run_id": run_id,
                "platform": record.platform,
                "triple": record.triple,
                "stage": stage,
                "duration_sec": duration,
                "status": "failed" if failed_here else "ok",
                "error_code": record.failure["code"] if failed_here else None,
                "error_message": record.failure["message"] if failed_here else None,
            }
        )
    if record.failure is not None and record.failure["stage"] not in record.stage_durations:
        rows.append(
            {
                "run_id": run_id,
                "platform": record.platform,
                "triple": record.triple,
                "stage": record.failure["stage"],
                "duration_sec": 0.0,
                "status": "failed",
                "error_code": record.failure["code"],
                "error_message": record.failure["message"],
            }
        )
    return rows


def run_build(
    settings: AppSettings,
    *,
    options: BuildRunOptions | None = None,
    cancel_token: CancelToken | None = None,
    logger: logging.Logger | None = None,
) -> BuildRunResult:
    """Run every requested platform and persist the run summary and stage results."""

    effective_logger = logger or LOGGER
    run_options = options or BuildRunOptions()
    token = cancel_token or CancelToken()
    requests = resolve_requests(run_options)

    started_epoch = time.time()
    run_id = f"build-{run_stamp(datetime.fromtimestamp(started_epoch, tz=timezone.utc))}-{uuid4().hex[:8]}"
    effective_logger.info(
        "build_run.start run_id=%s platforms=%s skip_compile=%s installer=%s",
        run_id,
        ",".join(request.label for request in requests),
        run_options.skip_compile,
        run_options.installer,
    )

    records = [
        run_platform(
            request,
            settings,
            skip_compile=run_options.skip_compile,
            cancel_token=token,
            logger=effective_logger,
        )
        for request in requests
    ]
    exit_code = exit_code_for(records)
    finished_epoch = time.time()

    artifacts_root = settings.paths.artifacts_root / RUN_SUMMARIES_SUBDIR
    summary_path = artifacts_root / f"{run_id}_build_summary.json"
    stage_results_path = artifacts_root / f"{run_id}_stage_results.parquet"

    summary: dict[str, Any] = {
        "run_id": run_id,
        "started_ts": _iso_utc_from_epoch(started_epoch),
        "finished_ts": _iso_utc_from_epoch(finished_epoch),
        "duration_sec": round(finished_epoch - started_epoch, 3),
        "app": {"name": settings.app.name, "version": settings.app.version},
        "exit_code": exit_code,
        "cancelled": token.cancelled,
        "platforms_total": len(records),
        "platforms_success": sum(1 for record in records if record.status == "success"),
        "platforms_partial": sum(1 for record in records if record.status == "partial"),
        "platforms_failed": sum(1 for record in records if record.status == "failed"),
        "platforms": [record.as_dict() for record in records],
        "outputs": {
            "summary_path": str(summary_path),
            "stage_results_path": str(stage_results_path),
        },
    }
    write_json_atomically(summary, summary_path)

    stage_rows = [row for record in records for row in _stage_rows(run_id, record)]
    stage_df = (
        pl.DataFrame(stage_rows, schema_overrides=STAGE_RESULTS_SCHEMA)
        if stage_rows
        else pl.DataFrame(schema=STAGE_RESULTS_SCHEMA)
    )
    _write_parquet_atomically(stage_df, stage_results_path)

    effective_logger.info(
        "build_run.finish run_id=%s exit_code=%s success=%s partial=%s failed=%s",
        run_id,
        exit_code,
        summary["platforms_success"],
        summary["platforms_partial"],
        summary["platforms_failed"],
    )
    return BuildRunResult(
        run_id=run_id,
        records=records,
        exit_code=exit_code,
        summary=summary,
        summary_path=summary_path,
        stage_results_path=stage_results_path,
    )


def load_stage_history(artifacts_root: Path, *, limit: int | None = None) -> pl.DataFrame:
    """Concatenate stage results of the most recent runs, newest first."""

    base = artifacts_root / RUN_SUMMARIES_SUBDIR
    files = sorted(base.glob("*_stage_results.parquet"), reverse=True) if base.exists() else []
    if limit is not None:
        files = files[: max(0, limit)]
    if not files:
        return pl.DataFrame(schema=STAGE_RESULTS_SCHEMA)
    return pl.concat([pl.read_parquet(path) for path in files], how="vertical_relaxed")


def cancel_on_signal(token: CancelToken, signals: Sequence[int]) -> dict[int, Any]:
    """Install handlers that request cancellation instead of killing the process.

    Returns the previous handlers so callers can restore them.
    """

    def _handler(signum: int, _frame: object) -> None:
        LOGGER.warning("build_run.cancel_requested signal=%s", signum)
        token.cancel()

    previous: dict[int, Any] = {}
    for signum in signals:
        previous[signum] = signal.getsignal(signum)
        signal.signal(signum, _handler)
    return previous
