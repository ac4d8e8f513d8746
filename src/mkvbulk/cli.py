from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import signal
import sys
import time
from pathlib import Path
from typing import List, Optional

import yaml
from rich.console import Console
from rich.table import Table
from rich.text import Text

from .banner import build_banner_info, print_startup_banner
from .config import AppConfig, build_config, load_config
from .errors import ConfigError, PlanError
from .logging_utils import configure_logging
from .models import TrackPlan
from .output_manifest import OutputManifestStore
from .planner import InvocationPlanner
from .probe import channel_layout, probe
from .rules import evaluate
from .run_summary import log_run_recap
from .scheduler import BatchRunner
from .summary_table import SummaryTableRenderer
from .tools import ToolRunner
from .utils import load_yaml_file, yes_no
from .validation import ValidationIssue, ValidationReport, get_fix_suggestion, validate_config_data
from .version import __version__

LOGGER = logging.getLogger(__name__)
CONSOLE = Console()

CONFIG_ENV_VAR = "MKVBULK_CONFIG"
DEFAULT_CONFIG_PATH = Path("mkvbulk.yaml")


def _default_config_path() -> Path:
    return Path(os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mkvbulk",
        description="Select, reorder and relabel tracks across a tree of Matroska files.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        type=Path,
        default=_default_config_path(),
        help=f"Path to the YAML configuration (default: ${CONFIG_ENV_VAR} or {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging and the per-file table")
    parser.add_argument("--log-file", type=Path, default=None, help="Also write the log to this file")

    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Process every file below the source directory (default)")
    run_parser.add_argument("--dry-run", action="store_true", help="Plan every file without running mkvmerge")
    run_parser.add_argument("--concurrency", type=int, default=None, help="Override settings.concurrency")
    run_parser.add_argument("--no-shutdown", action="store_true", help="Never power off, whatever the config says")

    validate_parser = subparsers.add_parser("validate-config", help="Validate the configuration file")
    validate_parser.add_argument("--no-suggestions", action="store_true", help="Hide fix suggestions")

    inspect_parser = subparsers.add_parser("inspect", help="Show the track table and plan for one file")
    inspect_parser.add_argument("file", type=Path, help="Matroska file to inspect")
    return parser


def _setup_logging(args: argparse.Namespace) -> None:
    level = logging.DEBUG if getattr(args, "verbose", False) else logging.INFO
    configure_logging(level, log_file=getattr(args, "log_file", None), console=CONSOLE)


def _load_app_config(path: Path) -> AppConfig:
    try:
        return load_config(path)
    except FileNotFoundError as exc:
        raise ConfigError(f"Configuration file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Unable to parse YAML in {path}: {exc}") from exc
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Invalid configuration {path}: {exc}") from exc


def _apply_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    changes = {}
    if getattr(args, "dry_run", False):
        changes["dry_run"] = True
    concurrency = getattr(args, "concurrency", None)
    if concurrency is not None:
        if concurrency < 1:
            raise ConfigError("--concurrency must be at least 1")
        changes["concurrency"] = concurrency
    if not changes:
        return config
    return AppConfig(settings=dataclasses.replace(config.settings, **changes), rules=config.rules)


def run_batch_command(args: argparse.Namespace) -> int:
    _setup_logging(args)
    try:
        config = _apply_overrides(_load_app_config(args.config), args)
    except ConfigError as exc:
        CONSOLE.print(f"[red]✗ {exc}[/red]")
        return 2

    print_startup_banner(build_banner_info(config, verbose=args.verbose), CONSOLE)
    batch = BatchRunner(config)
    previous_handler = signal.signal(signal.SIGTERM, lambda *_: batch.cancel())
    started = time.perf_counter()
    try:
        result = batch.run()
    except ConfigError as exc:
        CONSOLE.print(f"[red]✗ {exc}[/red]")
        return 2
    finally:
        signal.signal(signal.SIGTERM, previous_handler)
    duration = time.perf_counter() - started

    log_run_recap(result, duration)
    SummaryTableRenderer(CONSOLE).print_summary(result, duration, show_files=args.verbose)

    if not getattr(args, "no_shutdown", False):
        batch.disposition.shutdown_if_configured(result)
    return result.exit_code


def _print_issue(issue: ValidationIssue, *, show_suggestions: bool) -> None:
    color = "red" if issue.severity == "error" else "yellow"
    symbol = "✗" if issue.severity == "error" else "⚠"
    CONSOLE.print(Text.assemble((f"  {symbol} ", color), (issue.path, "bold"), f": {issue.message}"))
    suggestion = issue.fix_suggestion or get_fix_suggestion(issue)
    if show_suggestions and suggestion:
        CONSOLE.print(Text(f"    💡 {suggestion}", style="dim"))


def run_validate_config(args: argparse.Namespace) -> int:
    show_suggestions = not getattr(args, "no_suggestions", False)
    config_path: Path = args.config
    report = ValidationReport()
    try:
        data = load_yaml_file(config_path)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        report.errors.append(ValidationIssue(severity="error", path="<file>", message=str(exc), code="load-config"))
        data = None

    if data is not None:
        base_dir = config_path.resolve().parent
        report = validate_config_data(data, base_dir=base_dir)
        if report.is_valid:
            try:
                build_config(data, base_dir=base_dir)
            except ValueError as exc:
                report.errors.append(ValidationIssue(severity="error", path="<config>", message=str(exc), code="config"))

    CONSOLE.print(f"Validating {config_path}")
    if report.errors:
        CONSOLE.print(f"[red bold]Validation Errors ({len(report.errors)})[/red bold]")
        for issue in report.errors:
            _print_issue(issue, show_suggestions=show_suggestions)
    if report.warnings:
        CONSOLE.print(f"[yellow bold]Warnings ({len(report.warnings)})[/yellow bold]")
        for issue in report.warnings:
            _print_issue(issue, show_suggestions=show_suggestions)
    if report.is_valid:
        CONSOLE.print("[green]✓ Configuration passed validation[/green]")
        return 0
    return 1


def _render_track_table(tracks, plan: TrackPlan) -> Table:
    kept = {selection.source_index: (position, selection) for position, selection in enumerate(plan.selections, 1)}
    table = Table(title="Tracks", show_header=True, header_style="bold")
    for column in ("ID", "Kind", "Language", "Codec", "Title", "Default", "Forced", "Output"):
        table.add_column(column)
    for track in tracks:
        if track.index in kept:
            position, selection = kept[track.index]
            flags = ", ".join(name for name, value in (("default", selection.default), ("forced", selection.forced)) if value)
            output = f"[green]#{position} {selection.language}[/green] {selection.title or ''} {flags}".rstrip()
        else:
            output = "[dim]dropped[/dim]"
        codec = " ".join(part for part in (track.codec, channel_layout(track.channels)) if part)
        table.add_row(
            str(track.index),
            track.kind.value,
            track.language or "und",
            codec,
            Text(track.title or ""),
            yes_no(track.is_default),
            yes_no(track.is_forced),
            output,
        )
    return table


def run_inspect(args: argparse.Namespace) -> int:
    _setup_logging(args)
    try:
        config = _load_app_config(args.config)
    except ConfigError as exc:
        CONSOLE.print(f"[red]✗ {exc}[/red]")
        return 2

    source: Path = args.file
    result = probe(
        source,
        runner=ToolRunner(),
        executable=config.settings.tools.mediainfo,
        timeout=config.settings.probe_timeout,
    )
    if not result.ok:
        CONSOLE.print(f"[red]✗ {result.to_error(source)}[/red]")
        return 1

    plan = evaluate(result.tracks, config.rules)
    CONSOLE.print(_render_track_table(result.tracks, plan))
    for shortfall in plan.shortfalls:
        CONSOLE.print(f"[yellow]⚠ {shortfall}[/yellow]")
    if plan.is_empty:
        CONSOLE.print("[yellow]No tracks found; nothing to do.[/yellow]")
        return 0

    planner = InvocationPlanner.from_settings(config.settings)
    try:
        resolved = source.resolve()
        spec = planner.plan(
            resolved,
            plan,
            attachments=result.tracks.attachments,
            owned=OutputManifestStore(config.settings.output_dir).output_for(resolved),
            create_dirs=False,
        )
    except PlanError as exc:
        CONSOLE.print(f"[red]✗ {exc}[/red]")
        return 1
    CONSOLE.print(f"Output: {spec.output_path}")
    CONSOLE.print(Text(" ".join(spec.command)))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    command = args.command or "run"
    if command == "validate-config":
        return run_validate_config(args)
    if command == "inspect":
        return run_inspect(args)
    return run_batch_command(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
