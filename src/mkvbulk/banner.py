from __future__ import annotations

from dataclasses import dataclass

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import AppConfig
from .version import __version__


@dataclass
class BannerInfo:
    version: str
    dry_run: bool
    verbose: bool
    source_dir: str
    output_dir: str
    temp_dir: str
    concurrency: int
    max_retries: int
    rule_count: int
    trash_originals: bool
    shutdown_when_done: bool
    names_file: str | None


def build_banner_info(config: AppConfig, verbose: bool = False) -> BannerInfo:
    """Build a BannerInfo instance from AppConfig and runtime settings."""
    settings = config.settings
    return BannerInfo(
        version=__version__,
        dry_run=settings.dry_run,
        verbose=verbose,
        source_dir=str(settings.source_dir),
        output_dir=str(settings.output_dir),
        temp_dir=str(settings.resolved_temp_dir),
        concurrency=settings.concurrency,
        max_retries=settings.max_retries,
        rule_count=len(config.rules.rules),
        trash_originals=settings.trash_originals,
        shutdown_when_done=settings.shutdown_when_done,
        names_file=str(settings.naming.names_file) if settings.naming.names_file else None,
    )


def print_startup_banner(info: BannerInfo, console: Console) -> None:
    """Print a styled startup banner showing version and configuration."""
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Key", style="cyan bold", no_wrap=True)
    table.add_column("Value", style="white")

    table.add_row("Version", f"[bold]{info.version}[/bold]")

    mode_parts = []
    if info.dry_run:
        mode_parts.append("[yellow]DRY-RUN[/yellow]")
    if info.verbose:
        mode_parts.append("[cyan]VERBOSE[/cyan]")
    if mode_parts:
        table.add_row("Mode", " ".join(mode_parts))

    table.add_row("Source", info.source_dir)
    table.add_row("Output", info.output_dir)
    table.add_row("Temp", info.temp_dir)
    if info.names_file:
        table.add_row("Names File", info.names_file)

    table.add_row("Workers", f"[bold]{info.concurrency}[/bold]")
    table.add_row("Retries", str(info.max_retries))
    table.add_row("Rules", f"[bold]{info.rule_count}[/bold]")

    features = []
    if info.trash_originals:
        features.append("[green]Trash Originals[/green]")
    if info.shutdown_when_done:
        features.append("[green]Shutdown When Done[/green]")
    if features:
        table.add_row("Features", " · ".join(features))

    panel = Panel(
        table,
        title="[bold white]MKVBULK[/bold white]",
        border_style="blue",
        padding=(1, 2),
    )

    console.print()
    console.print(panel)
    console.print()
