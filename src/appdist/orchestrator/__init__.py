"""Build orchestration and per-platform run state."""

from appdist.orchestrator.pipeline import (
    BuildRunOptions,
    BuildRunResult,
    PlatformRequest,
    host_architecture,
    load_stage_history,
    resolve_requests,
    run_build,
    run_platform,
)
from appdist.orchestrator.state import CancelToken, PlatformRunRecord, exit_code_for

__all__ = [
    "BuildRunOptions",
    "BuildRunResult",
    "PlatformRequest",
    "host_architecture",
    "load_stage_history",
    "resolve_requests",
    "run_build",
    "run_platform",
    "CancelToken",
    "PlatformRunRecord",
    "exit_code_for",
]
