"""Best-effort ad-hoc signing with codesign."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from appdist.config import AppSettings
from appdist.errors import DistError, SigningFailed, SigningUnavailable
from appdist.models import AppContainer
from appdist.tools.probe import ToolAvailable, probe_tool
from appdist.tools.runner import run_tool

LOGGER = logging.getLogger(__name__)

SigningStatus = Literal["signed", "skipped", "unavailable", "failed"]


@dataclass(frozen=True, slots=True)
class SigningOptions:
    enabled: bool = True
    identity: str = "-"
    codesign: str = "codesign"
    timeout_sec: int = 600

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "SigningOptions":
        return cls(
            enabled=settings.signing.enabled,
            identity=settings.signing.identity,
            codesign=settings.signing.codesign,
        )


@dataclass(frozen=True, slots=True)
class SigningOutcome:
    """Result of the signing stage; ``warning`` is set whenever signing degraded."""

    status: SigningStatus
    verified: bool = False
    warning: DistError | None = None
    reason: str | None = None


def sign_container(
    container: AppContainer,
    options: SigningOptions | None = None,
    *,
    logger: logging.Logger | None = None,
) -> SigningOutcome:
    """Apply an ad-hoc signature over the whole container.

    Never raises for tool problems: an unsigned container is still usable for
    local testing, so failures come back as a warning on the outcome.
    """

    effective_logger = logger or LOGGER
    effective_options = options or SigningOptions()
    if not effective_options.enabled:
        return SigningOutcome(status="skipped", reason="signing disabled in configuration")
    if container.target_os != "macos":
        return SigningOutcome(status="skipped", reason=f"no ad-hoc signing for {container.target_os} containers")

    probe = probe_tool(effective_options.codesign)
    if not isinstance(probe, ToolAvailable):
        warning = SigningUnavailable(
            f"{effective_options.codesign} not found; {container.root_path.name} is unsigned "
            "(install the Xcode command line tools to sign)"
        )
        effective_logger.warning("sign.unavailable tool=%s", effective_options.codesign)
        return SigningOutcome(status="unavailable", warning=warning, reason=warning.message)

    signed = run_tool(
        [probe.path, "--force", "--deep", "--sign", effective_options.identity, container.root_path],
        timeout=effective_options.timeout_sec,
        logger=effective_logger,
    )
    if not signed.ok:
        warning = SigningFailed(
            f"codesign exited with status {signed.returncode}; {container.root_path.name} is unsigned",
            output=signed.output,
        )
        return SigningOutcome(status="failed", warning=warning, reason=warning.message)

    verify = run_tool(
        [probe.path, "--verify", "--verbose", container.root_path],
        timeout=effective_options.timeout_sec,
        logger=effective_logger,
    )
    if not verify.ok:
        warning = SigningFailed("codesign --verify rejected the signature", output=verify.output)
        return SigningOutcome(status="failed", warning=warning, reason=warning.message)

    effective_logger.info("sign.complete path=%s identity=%s", container.root_path, effective_options.identity)
    return SigningOutcome(status="signed", verified=True)
