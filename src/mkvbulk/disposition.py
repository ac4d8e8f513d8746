from __future__ import annotations

import logging
import subprocess
import sys
from pathlib import Path
from typing import Callable, Optional

from send2trash import send2trash

from .config import Settings
from .errors import DisposalWarning
from .logging_utils import render_fields_block
from .models import BatchResult, Job, JobState

LOGGER = logging.getLogger(__name__)


def shutdown_host() -> None:
    """Power the host down. Does not return when the OS accepts the request."""
    if sys.platform.startswith("win"):
        command = ["shutdown", "/s", "/t", "0"]
    else:
        command = ["shutdown", "-h", "now"]
    subprocess.run(command, check=True)


class DispositionManager:
    """Trashes originals after successful jobs and shuts down after the batch."""

    def __init__(
        self,
        *,
        trash_originals: bool = False,
        shutdown_when_done: bool = False,
        shutdown_force: bool = False,
        dry_run: bool = False,
        trash: Callable[[str], None] = send2trash,
        shutdown: Callable[[], None] = shutdown_host,
    ) -> None:
        self.trash_originals = trash_originals
        self.shutdown_when_done = shutdown_when_done
        self.shutdown_force = shutdown_force
        self.dry_run = dry_run
        self._trash = trash
        self._shutdown = shutdown

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> "DispositionManager":
        options = {
            "trash_originals": settings.trash_originals,
            "shutdown_when_done": settings.shutdown_when_done,
            "shutdown_force": settings.shutdown_force,
            "dry_run": settings.dry_run,
        }
        options.update(overrides)
        return cls(**options)

    def dispose(self, job: Job) -> Optional[DisposalWarning]:
        """Move the original of a succeeded job to the trash.

        Failures are returned as a warning and never change the job's state.
        """
        if job.state != JobState.SUCCEEDED or job.noop:
            return None
        if not self.trash_originals or self.dry_run:
            return None

        source: Path = job.source
        try:
            self._trash(str(source))
        except OSError as exc:
            warning = DisposalWarning(path=source, message=str(exc))
            LOGGER.warning(
                render_fields_block(
                    "Trash Failed",
                    {"Source": source, "Reason": exc},
                    pad_top=True,
                )
            )
            return warning

        LOGGER.debug(render_fields_block("Original Trashed", {"Source": source}, pad_top=True))
        return None

    def shutdown_reason(self, result: BatchResult) -> Optional[str]:
        """Why shutdown is skipped for ``result``; None when it should go ahead."""
        if not self.shutdown_when_done:
            return "shutdown disabled"
        if self.dry_run or result.dry_run:
            return "dry run"
        if result.cancelled:
            return "batch cancelled"
        if result.failed and not self.shutdown_force:
            return f"{result.failed} job(s) failed"
        return None

    def shutdown_if_configured(self, result: BatchResult) -> bool:
        reason = self.shutdown_reason(result)
        if reason is not None:
            if self.shutdown_when_done:
                LOGGER.warning(render_fields_block("Shutdown Skipped", {"Reason": reason}, pad_top=True))
            return False

        LOGGER.info(
            render_fields_block(
                "Shutting Down",
                {"Failed Jobs": result.failed, "Forced": self.shutdown_force},
                pad_top=True,
            )
        )
        try:
            self._shutdown()
        except (OSError, subprocess.CalledProcessError) as exc:
            LOGGER.error(render_fields_block("Shutdown Failed", {"Reason": exc}, pad_top=True))
            return False
        return True
