"""External process boundary.

Every call to ``mediainfo`` or ``mkvmerge`` goes through :class:`ToolRunner`,
which bounds each process by a timeout and keeps track of the processes that
are still running so a cancelled batch can terminate them.
"""

from __future__ import annotations

import logging
import subprocess
import threading
from dataclasses import dataclass
from typing import Optional, Sequence

from .logging_utils import render_fields_block

LOGGER = logging.getLogger(__name__)

# Grace period between terminate() and kill().
TERMINATE_GRACE_SECONDS = 5.0


@dataclass(frozen=True, slots=True)
class ToolResult:
    args: tuple[str, ...]
    returncode: Optional[int]
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    cancelled: bool = False

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)


class ToolNotFoundError(FileNotFoundError):
    def __init__(self, executable: str) -> None:
        super().__init__(f"Executable not found: {executable}")
        self.executable = executable


class ToolRunner:
    """Runs external tools and terminates in-flight processes on request."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._processes: set[subprocess.Popen] = set()
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def run(self, args: Sequence[str], *, timeout: Optional[float] = None) -> ToolResult:
        """Run ``args`` to completion and capture its output.

        Raises :class:`ToolNotFoundError` when the executable cannot be started.
        A timeout or a cancellation kills the process and is reported on the
        result rather than raised.
        """
        command = tuple(str(arg) for arg in args)
        if self.cancelled:
            return ToolResult(args=command, returncode=None, cancelled=True)

        LOGGER.debug(render_fields_block("Running Tool", {"Command": " ".join(command)}, pad_top=True))
        try:
            process = subprocess.Popen(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except FileNotFoundError as exc:
            raise ToolNotFoundError(command[0]) from exc

        with self._lock:
            self._processes.add(process)
        # Started after terminate_all() took its snapshot.
        if self.cancelled:
            process.terminate()
        try:
            try:
                stdout, stderr = process.communicate(timeout=timeout)
            except subprocess.TimeoutExpired:
                process.kill()
                stdout, stderr = process.communicate()
                return ToolResult(
                    args=command,
                    returncode=process.returncode,
                    stdout=stdout or "",
                    stderr=stderr or "",
                    timed_out=True,
                )
        finally:
            with self._lock:
                self._processes.discard(process)

        return ToolResult(
            args=command,
            returncode=process.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
            cancelled=self.cancelled,
        )

    def terminate_all(self) -> int:
        """Stop accepting work and terminate every running process."""
        self._cancelled.set()
        with self._lock:
            processes = list(self._processes)
        for process in processes:
            if process.poll() is not None:
                continue
            process.terminate()
            try:
                process.wait(timeout=TERMINATE_GRACE_SECONDS)
            except subprocess.TimeoutExpired:
                process.kill()
        if processes:
            LOGGER.warning(
                render_fields_block("Terminated Tools", {"Processes": len(processes)}, pad_top=True)
            )
        return len(processes)

    @property
    def running(self) -> int:
        with self._lock:
            return len(self._processes)
