"""Error taxonomy for the packaging pipeline.

Errors raised in the compile, merge and package stages abort the current
platform run. Warning-class errors (``fatal = False``) are caught by the
orchestrator and recorded on the run record instead.
"""

from __future__ import annotations

from typing import Any, ClassVar


class DistError(Exception):
    """Base class for all pipeline errors."""

    code: ClassVar[str] = "DistError"
    fatal: ClassVar[bool] = True

    def __init__(
        self,
        message: str,
        *,
        output: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.output = output
        self.details = dict(details or {})
        # set by the orchestrator once the failing stage is known
        self.stage: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serializable view used in run summaries."""

        return {
            "code": self.code,
            "message": self.message,
            "fatal": self.fatal,
            "stage": self.stage,
            "details": self.details,
        }


class ToolchainMissing(DistError):
    code = "ToolchainMissing"


class CompileFailed(DistError):
    code = "CompileFailed"

    def __init__(self, message: str, *, exit_status: int, output: str | None = None) -> None:
        super().__init__(message, output=output, details={"exit_status": exit_status})
        self.exit_status = exit_status


class MissingConstituent(DistError):
    code = "MissingConstituent"


class ArchitectureMismatch(DistError):
    code = "ArchitectureMismatch"


class MergeVerificationFailed(DistError):
    code = "MergeVerificationFailed"


class ConverterUnavailable(DistError):
    code = "ConverterUnavailable"


class RasterizationFailed(DistError):
    code = "RasterizationFailed"


class ExecutableMissing(DistError):
    code = "ExecutableMissing"


class MetadataWriteFailed(DistError):
    code = "MetadataWriteFailed"


class StagingFailed(DistError):
    code = "StagingFailed"


class CompressionFailed(DistError):
    code = "CompressionFailed"


class InstallerToolMissing(DistError):
    code = "InstallerToolMissing"
    fatal = False


class InstallerCompileFailed(DistError):
    code = "InstallerCompileFailed"
    fatal = False


class SigningUnavailable(DistError):
    code = "SigningUnavailable"
    fatal = False


class SigningFailed(DistError):
    code = "SigningFailed"
    fatal = False


class BuildCancelled(DistError):
    code = "BuildCancelled"


class OutputCollision(DistError):
    code = "OutputCollision"


class InvalidTransition(DistError):
    code = "InvalidTransition"


class ResourceCopyFailed(DistError):
    code = "ResourceCopyFailed"


class UnexpectedFailure(DistError):
    """Any non-pipeline exception escaping a stage, recorded against that stage."""

    code = "UnexpectedFailure"

    @classmethod
    def wrap(cls, exc: BaseException) -> "UnexpectedFailure":
        return cls(f"{type(exc).__name__}: {exc}", details={"exception_type": type(exc).__name__})
