"""Error taxonomy shared by the probe, planner, muxer and scheduler.

Every per-file error is contained at the job boundary: the scheduler catches
these, records them on the job and keeps going. Only :class:`ConfigError`
escapes to the caller, and only before any job has started.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


class MkvBulkError(Exception):
    """Base class for all mkvbulk errors.

    ``cancelled`` marks errors caused by batch cancellation killing the
    external tool, as opposed to a problem with the file itself.
    """

    def __init__(self, message: str = "", *, cancelled: bool = False) -> None:
        super().__init__(message)
        self.cancelled = cancelled


class ConfigError(MkvBulkError):
    """Raised when the configuration cannot be used to start a batch."""


class ProbeError(MkvBulkError):
    """Track metadata could not be read. Fatal to the job only."""


class PlanError(MkvBulkError):
    """No valid output can be produced for the file. Fatal to the job only."""


class InvocationError(MkvBulkError):
    """The multiplexer exited unsuccessfully, timed out or was cancelled."""

    def __init__(
        self,
        message: str,
        *,
        exit_code: int | None = None,
        output: str = "",
        retryable: bool = True,
        cancelled: bool = False,
    ) -> None:
        super().__init__(message, cancelled=cancelled)
        self.exit_code = exit_code
        self.output = output
        self.retryable = retryable


@dataclass(frozen=True, slots=True)
class DisposalWarning:
    """Non-fatal problem while disposing of an original after a successful job."""

    path: Path
    message: str

    def __str__(self) -> str:
        return f"Unable to trash {self.path}: {self.message}"


__all__ = [
    "ConfigError",
    "DisposalWarning",
    "InvocationError",
    "MkvBulkError",
    "PlanError",
    "ProbeError",
]
