"""Blocking subprocess invocation with captured output."""

from __future__ import annotations

import logging
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

LOGGER = logging.getLogger(__name__)

MAX_OUTPUT_CHARS = 20_000


@dataclass(frozen=True, slots=True)
class ToolRunResult:
    """Outcome of one external tool invocation."""

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    duration_sec: float

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Combined stdout/stderr, truncated from the front for diagnostics."""

        combined = "\n".join(part.strip() for part in (self.stdout, self.stderr) if part.strip())
        if len(combined) > MAX_OUTPUT_CHARS:
            return combined[-MAX_OUTPUT_CHARS:]
        return combined


def run_tool(
    command: Sequence[str | Path],
    *,
    cwd: Path | None = None,
    timeout: float | None = None,
    logger: logging.Logger | None = None,
) -> ToolRunResult:
    """Run an external command to completion and capture its output.

    Non-zero exits are returned, not raised; callers map them onto their own
    error types. A missing executable is reported as exit status 127 and a
    timeout as 124, mirroring shell conventions.
    """

    effective_logger = logger or LOGGER
    rendered = tuple(str(part) for part in command)
    effective_logger.info("tool.exec cmd=%s", " ".join(rendered))
    started = time.monotonic()
    try:
        completed = subprocess.run(
            rendered,
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            check=False,
        )
        returncode, stdout, stderr = completed.returncode, completed.stdout or "", completed.stderr or ""
    except FileNotFoundError as exc:
        returncode, stdout, stderr = 127, "", str(exc)
    except subprocess.TimeoutExpired as exc:
        partial = exc.stdout.decode(errors="replace") if isinstance(exc.stdout, bytes) else (exc.stdout or "")
        returncode, stdout, stderr = 124, partial, f"timed out after {timeout}s"

    result = ToolRunResult(
        command=rendered,
        returncode=returncode,
        stdout=stdout,
        stderr=stderr,
        duration_sec=round(time.monotonic() - started, 3),
    )
    if not result.ok:
        effective_logger.warning("tool.exit_nonzero cmd=%s returncode=%s", rendered[0], returncode)
    return result
