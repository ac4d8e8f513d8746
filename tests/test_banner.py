from __future__ import annotations

from pathlib import Path

from rich.console import Console

from mkvbulk.banner import build_banner_info, print_startup_banner
from mkvbulk.config import AppConfig, NamingSettings, RuleSet, SelectionRule, Settings
from mkvbulk.models import TrackKind


def _config(**settings) -> AppConfig:
    return AppConfig(
        settings=Settings(source_dir=Path("/media/in"), output_dir=Path("/media/out"), **settings),
        rules=RuleSet(rules=(SelectionRule(kind=TrackKind.VIDEO, languages=("any",)),)),
    )


def test_build_banner_info():
    info = build_banner_info(_config(concurrency=4, dry_run=True), verbose=True)

    assert info.dry_run is True
    assert info.verbose is True
    assert info.concurrency == 4
    assert info.rule_count == 1
    assert info.temp_dir == str(Path("/media/out/.mkvbulk-tmp"))
    assert info.names_file is None


def test_banner_shows_modes_and_features():
    info = build_banner_info(
        _config(
            dry_run=True,
            trash_originals=True,
            shutdown_when_done=True,
            naming=NamingSettings(names_file=Path("/media/names.txt")),
        ),
        verbose=False,
    )
    console = Console(width=120, record=True, color_system=None)

    print_startup_banner(info, console)

    text = console.export_text()
    assert "MKVBULK" in text
    assert "DRY-RUN" in text
    assert "VERBOSE" not in text
    assert "/media/names.txt" in text
    assert "Trash Originals" in text
    assert "Shutdown When Done" in text


def test_banner_without_optional_rows():
    console = Console(width=120, record=True, color_system=None)

    print_startup_banner(build_banner_info(_config()), console)

    text = console.export_text()
    assert "Mode" not in text
    assert "Features" not in text
    assert "Names File" not in text
