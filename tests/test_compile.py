"""Compiler invocation per target triple."""

from __future__ import annotations

from pathlib import Path

import pytest

from conftest import FakeToolHost, write_thin_macho
from appdist.compile.invoker import CompileOptions, compile_target, compile_targets, installed_targets
from appdist.errors import CompileFailed, ToolchainMissing


@pytest.fixture
def options(tmp_path: Path) -> CompileOptions:
    return CompileOptions(
        project_root=tmp_path,
        output_root=tmp_path / "target",
        binary_name="multiinstance",
        parallel=False,
    )


def _cargo_writing_binary(argv: list[str]) -> tuple[int, str, str]:
    triple = argv[argv.index("--target") + 1]
    target_dir = Path(argv[argv.index("--target-dir") + 1])
    profile = "release" if "--release" in argv else argv[argv.index("--profile") + 1]
    profile_dir = "debug" if profile == "dev" else profile
    suffix = ".exe" if "windows" in triple else ""
    output = target_dir / triple / profile_dir / f"multiinstance{suffix}"
    write_thin_macho(output, "arm64" if triple.startswith("aarch64") else "x86_64")
    return 0, "", "    Finished `release` profile [optimized] target(s)"


def test_missing_cargo(options, macos_targets, tool_host: FakeToolHost) -> None:
    with pytest.raises(ToolchainMissing):
        compile_target(macos_targets[0], options)


def test_triple_not_installed(options, macos_targets, tool_host: FakeToolHost) -> None:
    """GIVEN rustup reporting only the x86_64 macOS target
    WHEN the aarch64 target is compiled
    THEN ToolchainMissing names the missing triple and cargo is never run.
    """
    tool_host.add("cargo", _cargo_writing_binary)
    tool_host.add("rustup", lambda argv: (0, "x86_64-apple-darwin\n", ""))

    with pytest.raises(ToolchainMissing) as excinfo:
        compile_target(macos_targets[0], options)

    assert excinfo.value.details["triple"] == "aarch64-apple-darwin"
    assert tool_host.calls_for("cargo") == []


def test_compile_success(options, macos_targets, tool_host: FakeToolHost) -> None:
    """GIVEN cargo on PATH
    WHEN compile_target runs
    THEN cargo is invoked with target, release profile and target dir and the binary is referenced.
    """
    tool_host.add("cargo", _cargo_writing_binary)

    binary = compile_target(macos_targets[0], options)

    command = tool_host.calls_for("cargo")[0]
    assert command[1:4] == ["build", "--target", "aarch64-apple-darwin"]
    assert "--release" in command
    assert command[command.index("--target-dir") + 1] == str(options.output_root)
    assert binary.file_path == options.output_root / "aarch64-apple-darwin" / "release" / "multiinstance"
    assert binary.architecture_tag == "arm64"


def test_dev_profile_uses_debug_dir(tmp_path, macos_targets, tool_host: FakeToolHost) -> None:
    tool_host.add("cargo", _cargo_writing_binary)
    options = CompileOptions(
        project_root=tmp_path,
        output_root=tmp_path / "target",
        binary_name="multiinstance",
        profile="dev",
        extra_args=("--locked",),
    )

    binary = compile_target(macos_targets[1], options)

    command = tool_host.calls_for("cargo")[0]
    assert command[command.index("--profile") + 1] == "dev"
    assert command[-1] == "--locked"
    assert binary.file_path.parent.name == "debug"


def test_compile_failure_carries_status_and_output(options, windows_target, tool_host: FakeToolHost) -> None:
    tool_host.add("cargo", lambda argv: (101, "", "error[E0425]: cannot find value `x` in this scope"))

    with pytest.raises(CompileFailed) as excinfo:
        compile_target(windows_target, options)

    assert excinfo.value.exit_status == 101
    assert "E0425" in (excinfo.value.output or "")


def test_compile_success_without_output_file(options, windows_target, tool_host: FakeToolHost) -> None:
    tool_host.add("cargo")

    with pytest.raises(CompileFailed):
        compile_target(windows_target, options)


def test_auto_install_targets_runs_rustup_add(tmp_path, macos_targets, tool_host: FakeToolHost) -> None:
    tool_host.add("cargo", _cargo_writing_binary)

    def rustup(argv: list[str]) -> tuple[int, str, str]:
        if argv[1:3] == ["target", "add"]:
            return 1, "", "error: could not download component"
        return 0, "x86_64-apple-darwin\n", ""

    tool_host.add("rustup", rustup)
    options = CompileOptions(
        project_root=tmp_path,
        output_root=tmp_path / "target",
        binary_name="multiinstance",
        auto_install_targets=True,
    )

    compile_target(macos_targets[1], options)

    rustup_calls = tool_host.calls_for("rustup")
    assert rustup_calls[0][1:] == ["target", "add", "x86_64-apple-darwin"]


def test_compile_targets_runs_every_target_before_raising(tmp_path, macos_targets, tool_host: FakeToolHost) -> None:
    """GIVEN two targets where the aarch64 build fails
    WHEN compile_targets runs them in parallel
    THEN both builds are attempted and the failure is raised afterwards.
    """

    def cargo(argv: list[str]) -> tuple[int, str, str]:
        if "aarch64-apple-darwin" in argv:
            return 101, "", "linker failed"
        return _cargo_writing_binary(argv)

    tool_host.add("cargo", cargo)
    options = CompileOptions(project_root=tmp_path, output_root=tmp_path / "target", binary_name="multiinstance")

    with pytest.raises(CompileFailed):
        compile_targets(list(macos_targets), options)

    assert len(tool_host.calls_for("cargo")) == 2
    assert (tmp_path / "target" / "x86_64-apple-darwin" / "release" / "multiinstance").is_file()


def test_compile_targets_preserves_order(options, macos_targets, tool_host: FakeToolHost) -> None:
    tool_host.add("cargo", _cargo_writing_binary)

    binaries = compile_targets(list(macos_targets), options)

    assert [binary.target for binary in binaries] == list(macos_targets)


def test_installed_targets_without_rustup(tool_host: FakeToolHost) -> None:
    assert installed_targets("rustup") is None
