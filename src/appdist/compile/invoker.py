"""Invoke the Rust toolchain for one (OS, architecture) target at a time."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from appdist.config import AppSettings
from appdist.errors import CompileFailed, DistError, ToolchainMissing
from appdist.layout import compiled_binary_path
from appdist.models import ARCHITECTURE_TAGS, BuildTarget, CompiledBinary
from appdist.tools.probe import ToolAvailable, probe_tool
from appdist.tools.runner import run_tool

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CompileOptions:
    """Toolchain settings for a compile stage."""

    project_root: Path
    output_root: Path
    binary_name: str
    cargo: str = "cargo"
    rustup: str = "rustup"
    profile: str = "release"
    extra_args: tuple[str, ...] = ()
    auto_install_targets: bool = False
    parallel: bool = True
    timeout_sec: int = 3600

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "CompileOptions":
        toolchain = settings.toolchain
        return cls(
            project_root=settings.paths.project_root,
            output_root=settings.paths.output_root,
            binary_name=settings.app.binary_name,
            cargo=toolchain.cargo,
            rustup=toolchain.rustup,
            profile=toolchain.profile,
            extra_args=tuple(toolchain.extra_args),
            auto_install_targets=toolchain.auto_install_targets,
            parallel=toolchain.parallel_builds,
            timeout_sec=toolchain.timeout_sec,
        )

    @property
    def profile_dir(self) -> str:
        # cargo writes the dev profile into "debug"
        return "debug" if self.profile == "dev" else self.profile


def installed_targets(rustup: str, *, logger: logging.Logger | None = None) -> set[str] | None:
    """Return installed rustup targets, or None when rustup itself is absent."""

    probe = probe_tool(rustup)
    if not isinstance(probe, ToolAvailable):
        return None
    result = run_tool([probe.path, "target", "list", "--installed"], timeout=60, logger=logger)
    if not result.ok:
        return None
    return {line.strip() for line in result.stdout.splitlines() if line.strip()}


def _cargo_command(cargo: Path, target: BuildTarget, options: CompileOptions) -> list[str | Path]:
    command: list[str | Path] = [cargo, "build", "--target", target.toolchain_triple]
    if options.profile == "release":
        command.append("--release")
    else:
        command.extend(["--profile", options.profile])
    command.extend(["--target-dir", options.output_root])
    command.extend(options.extra_args)
    return command


def locate_compiled_binary(target: BuildTarget, options: CompileOptions) -> CompiledBinary:
    """Reference the executable a previous compile left for this target."""

    return CompiledBinary(
        target=target,
        file_path=compiled_binary_path(
            options.output_root,
            target,
            profile=options.profile_dir,
            binary_name=options.binary_name,
        ),
        architecture_tag=ARCHITECTURE_TAGS[target.architecture],
    )


def compile_target(
    target: BuildTarget,
    options: CompileOptions,
    *,
    logger: logging.Logger | None = None,
) -> CompiledBinary:
    """Compile the application for exactly one target."""

    effective_logger = logger or LOGGER
    cargo_probe = probe_tool(options.cargo)
    if not isinstance(cargo_probe, ToolAvailable):
        raise ToolchainMissing(
            f"{options.cargo} not found; install the Rust toolchain to build {target.toolchain_triple}",
            details={"triple": target.toolchain_triple, "tool": options.cargo},
        )

    if options.auto_install_targets:
        added = run_tool(
            [options.rustup, "target", "add", target.toolchain_triple],
            timeout=600,
            logger=effective_logger,
        )
        if not added.ok:
            effective_logger.warning("compile.target_add_failed triple=%s", target.toolchain_triple)

    installed = installed_targets(options.rustup, logger=effective_logger)
    if installed is not None and target.toolchain_triple not in installed:
        raise ToolchainMissing(
            f"rust target {target.toolchain_triple} is not installed; run: rustup target add {target.toolchain_triple}",
            details={"triple": target.toolchain_triple},
        )

    effective_logger.info("compile.start triple=%s profile=%s", target.toolchain_triple, options.profile)
    result = run_tool(
        _cargo_command(cargo_probe.path, target, options),
        cwd=options.project_root,
        timeout=options.timeout_sec,
        logger=effective_logger,
    )
    if not result.ok:
        raise CompileFailed(
            f"cargo build for {target.toolchain_triple} exited with status {result.returncode}",
            exit_status=result.returncode,
            output=result.output,
        )

    binary = locate_compiled_binary(target, options)
    if not binary.file_path.is_file():
        raise CompileFailed(
            f"cargo build for {target.toolchain_triple} succeeded but {binary.file_path} was not produced",
            exit_status=result.returncode,
            output=result.output,
        )
    effective_logger.info(
        "compile.complete triple=%s path=%s duration_sec=%.2f",
        target.toolchain_triple,
        binary.file_path,
        result.duration_sec,
    )
    return binary


def compile_targets(
    targets: Sequence[BuildTarget],
    options: CompileOptions,
    *,
    logger: logging.Logger | None = None,
) -> list[CompiledBinary]:
    """Compile several targets, concurrently when allowed, preserving input order.

    Every started build is allowed to finish before the first error (in target
    order) is raised, so no worker outlives the stage.
    """

    effective_logger = logger or LOGGER
    if not options.parallel or len(targets) < 2:
        return [compile_target(target, options, logger=effective_logger) for target in targets]

    with ThreadPoolExecutor(max_workers=len(targets), thread_name_prefix="compile") as pool:
        futures = [pool.submit(compile_target, target, options, logger=effective_logger) for target in targets]

    binaries: list[CompiledBinary] = []
    first_error: DistError | None = None
    for target, future in zip(targets, futures):
        error = future.exception()
        if error is None:
            binaries.append(future.result())
            continue
        if not isinstance(error, DistError):
            raise error
        effective_logger.error("compile.failed triple=%s error=%s", target.toolchain_triple, error)
        if first_error is None:
            first_error = error
    if first_error is not None:
        raise first_error
    return binaries
