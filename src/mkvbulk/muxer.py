from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Optional

from .errors import InvocationError
from .logging_utils import render_fields_block
from .planner import InvocationSpec
from .tools import ToolNotFoundError, ToolResult, ToolRunner

LOGGER = logging.getLogger(__name__)

# mkvmerge: 0 = success, 1 = success with warnings, 2 = error.
SUCCESS_EXIT_CODES = frozenset({0, 1})


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        LOGGER.debug("Unable to remove temporary file %s: %s", path, exc)


def invoke(spec: InvocationSpec, runner: ToolRunner, *, timeout: Optional[float] = None) -> ToolResult:
    """Run the multiplexer for ``spec`` and move the result into place.

    Raises :class:`InvocationError` on any failure. Timeouts and error exits
    are retryable; a missing executable or a cancelled batch is not. An
    existing output is only replaced when ``spec.replace_existing`` says it
    holds this source's own earlier result.
    """
    try:
        result = runner.run(spec.command, timeout=timeout)
    except ToolNotFoundError as exc:
        raise InvocationError(str(exc), retryable=False) from exc
    except OSError as exc:
        raise InvocationError(f"Unable to start {spec.executable}: {exc}", retryable=False) from exc

    if result.cancelled:
        _discard(spec.temp_path)
        raise InvocationError(
            "Cancelled",
            exit_code=result.returncode,
            output=result.output,
            retryable=False,
            cancelled=True,
        )
    if result.timed_out:
        _discard(spec.temp_path)
        raise InvocationError(
            f"{spec.executable} timed out after {timeout:g}s" if timeout else f"{spec.executable} timed out",
            output=result.output,
        )
    if result.returncode not in SUCCESS_EXIT_CODES:
        _discard(spec.temp_path)
        raise InvocationError(
            f"{spec.executable} exited with status {result.returncode}",
            exit_code=result.returncode,
            output=result.output,
        )
    if result.returncode == 1:
        LOGGER.warning(
            render_fields_block(
                "Multiplexer Warnings",
                {"Source": spec.source, "Output": result.output or "(none)"},
                pad_top=True,
            )
        )

    if not spec.temp_path.exists():
        raise InvocationError(f"{spec.executable} reported success but produced no file at {spec.temp_path}")
    if spec.output_path.exists():
        if not spec.replace_existing:
            _discard(spec.temp_path)
            raise InvocationError(f"Refusing to overwrite existing file {spec.output_path}", retryable=False)
        LOGGER.debug("Replacing previous output %s", spec.output_path)
    try:
        shutil.move(str(spec.temp_path), str(spec.output_path))
    except OSError as exc:
        raise InvocationError(f"Unable to move output into place: {exc}") from exc
    return result
