"""End-of-batch recap written to the log.

The recap always lists every failure with its reason, sorted by source path,
so two runs over the same tree produce the same report.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import List

from .logging_utils import LogBlockBuilder
from .models import BatchResult

LOGGER = logging.getLogger(__name__)


def summarize_messages(entries: List[str], *, limit: int = 5) -> List[str]:
    """Group duplicate messages and keep the ``limit`` most frequent."""
    if not entries:
        return []
    counter = Counter(entries)
    ordered = sorted(counter.items(), key=lambda item: (-item[1], item[0]))
    lines: List[str] = []
    for text, count in ordered[:limit]:
        prefix = f"{count}× " if count > 1 else ""
        lines.append(f"{prefix}{text}")
    remaining = len(ordered) - limit
    if remaining > 0:
        lines.append(f"... {remaining} more (use --verbose for full list)")
    return lines


def format_failures(result: BatchResult) -> List[str]:
    lines: List[str] = []
    for failure in result.failures:
        attempts = f" after {failure.attempts} attempt(s)" if failure.attempts > 1 else ""
        stage = f"[{failure.kind}] " if failure.kind else ""
        lines.append(f"{failure.source}: {stage}{failure.reason}{attempts}")
    return lines


def build_recap(result: BatchResult, duration: float) -> str:
    builder = LogBlockBuilder("Dry Run Recap" if result.dry_run else "Run Recap")
    builder.add_fields(
        {
            "Duration": f"{duration:.2f}s",
            "Files": result.total,
            "Succeeded": result.succeeded,
            "Skipped": result.skipped,
            "Failed": result.failed,
            "Cancelled": result.cancelled_count,
        }
    )
    if result.failed:
        builder.add_section("Failures", format_failures(result))
    if result.warnings:
        builder.add_section("Warnings", summarize_messages([message for _, message in result.warnings], limit=10))
    if result.cancelled:
        builder.add_section("Cancelled", [str(source) for source in sorted(result.cancelled_sources)])
    return builder.render()


def log_run_recap(result: BatchResult, duration: float) -> None:
    level = logging.ERROR if result.failed else logging.INFO
    LOGGER.log(level, build_recap(result, duration))
