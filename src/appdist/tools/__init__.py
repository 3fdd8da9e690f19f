"""External tool probing and invocation."""

from appdist.tools.probe import (
    ToolAvailable,
    ToolProbe,
    ToolUnavailable,
    choose_provider,
    probe_first,
    probe_tool,
)
from appdist.tools.runner import ToolRunResult, run_tool

__all__ = [
    "ToolAvailable",
    "ToolProbe",
    "ToolUnavailable",
    "choose_provider",
    "probe_first",
    "probe_tool",
    "ToolRunResult",
    "run_tool",
]
