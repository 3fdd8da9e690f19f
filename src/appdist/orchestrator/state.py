"""Per-platform run state: stage machine, warnings, artifacts and exit codes."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Sequence

from appdist.errors import BuildCancelled, DistError, InvalidTransition
from appdist.models import DistArtifact
from appdist.utils.time_utils import elapsed_seconds

Stage = Literal["pending", "compiling", "merging", "packaging", "signing", "producing", "done", "failed"]
RunStatus = Literal["success", "partial", "failed"]

TERMINAL_STAGES: frozenset[Stage] = frozenset({"done", "failed"})
ALLOWED_TRANSITIONS: dict[Stage, frozenset[Stage]] = {
    "pending": frozenset({"compiling", "failed"}),
    "compiling": frozenset({"merging", "packaging", "failed"}),
    "merging": frozenset({"packaging", "failed"}),
    "packaging": frozenset({"signing", "failed"}),
    "signing": frozenset({"producing", "failed"}),
    "producing": frozenset({"done", "failed"}),
    "done": frozenset(),
    "failed": frozenset(),
}

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_PARTIAL = 2


class CancelToken:
    """Cooperative cancellation flag checked by the orchestrator between stages."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, next_stage: Stage) -> None:
        if self._event.is_set():
            raise BuildCancelled(f"build cancelled before {next_stage}")


@dataclass(frozen=True, slots=True)
class RunWarning:
    """Non-fatal problem recorded on a platform run."""

    stage: Stage
    code: str
    message: str
    degrades: bool = True

    def as_dict(self) -> dict[str, Any]:
        return {"stage": self.stage, "code": self.code, "message": self.message, "degrades": self.degrades}


@dataclass(slots=True)
class PlatformRunRecord:
    """Mutable progress record owned by the orchestrator for one platform request."""

    platform: str
    operating_system: str
    triple: str
    stage: Stage = "pending"
    failure: dict[str, Any] | None = None
    warnings: list[RunWarning] = field(default_factory=list)
    artifacts: list[DistArtifact] = field(default_factory=list)
    diagnostics: dict[str, str] = field(default_factory=dict)
    stage_durations: dict[str, float] = field(default_factory=dict)
    architectures: list[str] = field(default_factory=list)
    container_path: Path | None = None
    signing_status: str | None = None
    install_hint: str | None = None
    _stage_started: float = field(default_factory=time.monotonic, repr=False)

    def advance(self, next_stage: Stage) -> None:
        """Move to ``next_stage``, timing the stage being left."""

        if next_stage not in ALLOWED_TRANSITIONS[self.stage]:
            raise InvalidTransition(f"{self.platform}: cannot move from {self.stage} to {next_stage}")
        if self.stage != "pending":
            self.stage_durations[self.stage] = elapsed_seconds(self._stage_started)
        self._stage_started = time.monotonic()
        self.stage = next_stage

    def fail(self, error: DistError) -> None:
        """Record a fatal error against the current stage and enter ``failed``."""

        failed_stage = self.stage
        error.stage = failed_stage
        self.failure = {"stage": failed_stage, "code": error.code, "message": error.message}
        if error.output:
            self.diagnostics[f"{failed_stage}.{error.code}"] = error.output
        if self.stage not in TERMINAL_STAGES:
            self.advance("failed")

    def warn(self, error: DistError, *, degrades: bool = True) -> None:
        error.stage = self.stage
        self.warnings.append(RunWarning(stage=self.stage, code=error.code, message=error.message, degrades=degrades))
        if error.output:
            self.diagnostics[f"{self.stage}.{error.code}"] = error.output

    @property
    def status(self) -> RunStatus:
        if self.stage == "failed":
            return "failed"
        if any(warning.degrades for warning in self.warnings):
            return "partial"
        return "success"

    def as_dict(self) -> dict[str, Any]:
        return {
            "platform": self.platform,
            "operating_system": self.operating_system,
            "triple": self.triple,
            "status": self.status,
            "stage": self.stage,
            "failure": self.failure,
            "warnings": [warning.as_dict() for warning in self.warnings],
            "artifacts": [
                {
                    "kind": artifact.kind,
                    "file_path": str(artifact.file_path),
                    "version": artifact.version,
                    "target_platform": artifact.target_platform,
                }
                for artifact in self.artifacts
            ],
            "architectures": list(self.architectures),
            "container_path": str(self.container_path) if self.container_path else None,
            "signing_status": self.signing_status,
            "install_hint": self.install_hint,
            "stage_durations": dict(self.stage_durations),
            "diagnostics": dict(self.diagnostics),
        }


def exit_code_for(records: Sequence[PlatformRunRecord]) -> int:
    """0 when every platform fully succeeded, 1 on any fatal failure, 2 on partial success."""

    if any(record.status == "failed" for record in records):
        return EXIT_FAILURE
    if any(record.status == "partial" for record in records):
        return EXIT_PARTIAL
    return EXIT_SUCCESS
