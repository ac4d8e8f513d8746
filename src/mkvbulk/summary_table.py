from __future__ import annotations

from typing import Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from .models import BatchResult, JobOutcome

SUCCESS_COLOR = "green"
WARNING_COLOR = "yellow"
ERROR_COLOR = "red"
DIM_COLOR = "dim"

SUCCESS_SYMBOL = "✓"
WARNING_SYMBOL = "⚠"
ERROR_SYMBOL = "✗"
SKIP_SYMBOL = "⊘"
CANCEL_SYMBOL = "○"


class SummaryTableRenderer:
    """Renders batch results as Rich tables with color-coded status indicators."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()

    @staticmethod
    def _colorize(value: int, color: str, symbol: str) -> str:
        if value == 0:
            return f"[{DIM_COLOR}]{value}[/{DIM_COLOR}]"
        return f"[{color}]{symbol} {value}[/{color}]"

    @staticmethod
    def _status_cell(outcome: JobOutcome) -> str:
        if outcome.failed:
            return f"[{ERROR_COLOR}]{ERROR_SYMBOL} failed[/{ERROR_COLOR}]"
        if outcome.noop:
            return f"[{DIM_COLOR}]{SKIP_SYMBOL} skipped[/{DIM_COLOR}]"
        if outcome.warnings:
            return f"[{WARNING_COLOR}]{WARNING_SYMBOL} warning[/{WARNING_COLOR}]"
        return f"[{SUCCESS_COLOR}]{SUCCESS_SYMBOL} ok[/{SUCCESS_COLOR}]"

    def render_summary_table(self, result: BatchResult, duration: Optional[float] = None) -> Table:
        title = "Dry Run Summary" if result.dry_run else "Batch Summary"
        table = Table(title=title, show_header=True, header_style="bold")
        table.add_column("Metric", style="cyan", no_wrap=True)
        table.add_column("Count", justify="right")

        if duration is not None:
            table.add_row("Duration", f"{duration:.2f}s")
        table.add_row("Files", str(result.total))
        table.add_row("Succeeded", self._colorize(result.succeeded, SUCCESS_COLOR, SUCCESS_SYMBOL))
        table.add_row("Skipped", self._colorize(result.skipped, DIM_COLOR, SKIP_SYMBOL))
        table.add_row("Warnings", self._colorize(len(result.warnings), WARNING_COLOR, WARNING_SYMBOL))
        table.add_row("Failed", self._colorize(result.failed, ERROR_COLOR, ERROR_SYMBOL))
        if result.cancelled or result.cancelled_count:
            table.add_row("Cancelled", self._colorize(result.cancelled_count, WARNING_COLOR, CANCEL_SYMBOL))
        return table

    def render_file_table(self, result: BatchResult) -> Optional[Table]:
        """One row per file, sorted by source path; None for an empty batch."""
        outcomes = result.sorted_outcomes()
        if not outcomes:
            return None
        table = Table(title="Files", show_header=True, header_style="bold")
        table.add_column("Source", style="cyan", overflow="fold")
        table.add_column("Status", justify="center", no_wrap=True)
        table.add_column("Kept", justify="right")
        table.add_column("Dropped", justify="right")
        table.add_column("Detail", overflow="fold")

        for outcome in outcomes:
            kept = str(len(outcome.plan.selections)) if outcome.plan is not None else "-"
            dropped = str(len(outcome.plan.dropped)) if outcome.plan is not None else "-"
            if outcome.failed:
                detail = outcome.error or ""
            elif outcome.warnings:
                detail = "; ".join(outcome.warnings)
            elif outcome.noop:
                detail = "no tracks"
            else:
                detail = str(outcome.output_path)
            table.add_row(Text(str(outcome.source)), self._status_cell(outcome), kept, dropped, Text(detail))
        return table

    def print_summary(self, result: BatchResult, duration: Optional[float] = None, *, show_files: bool = False) -> None:
        self.console.print()
        self.console.print(self.render_summary_table(result, duration))
        if show_files:
            file_table = self.render_file_table(result)
            if file_table is not None:
                self.console.print()
                self.console.print(file_table)

    @staticmethod
    def render_summary_plain_text(result: BatchResult) -> str:
        lines = [
            "",
            "Batch Summary",
            "-------------",
            f"    Files            : {result.total}",
            f"    Succeeded        : {result.succeeded}",
            f"    Skipped          : {result.skipped}",
            f"    Warnings         : {len(result.warnings)}",
            f"    Failed           : {result.failed}",
        ]
        if result.cancelled or result.cancelled_count:
            lines.append(f"    Cancelled        : {result.cancelled_count}")
        return "\n".join(lines)
