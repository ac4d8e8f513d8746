from __future__ import annotations

import logging
from pathlib import Path

import pytest
from rich.console import Console
from rich.logging import RichHandler

from mkvbulk.logging_utils import (
    LogBlockBuilder,
    _as_pairs,
    _to_text,
    _wrap_lines,
    configure_logging,
    render_fields_block,
    render_section_block,
)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


class TestHelpers:
    """Tests for the private formatting helpers."""

    def test_as_pairs_keeps_mapping_order(self):
        assert _as_pairs({"b": 1, "a": 2}) == [("b", 1), ("a", 2)]

    def test_as_pairs_accepts_sequences(self):
        assert _as_pairs([("z", 1), ("a", 2)]) == [("z", 1), ("a", 2)]

    def test_to_text(self):
        assert _to_text(None) == ""
        assert _to_text("  padded  ") == "padded"
        assert _to_text([1, "two", None]) == "1, two, "
        assert _to_text(Path("/media/in")) == "/media/in"
        assert _to_text(3) == "3"

    def test_wrap_lines_splits_long_text(self):
        lines = _wrap_lines("word " * 30, 20)

        assert len(lines) > 1
        assert all(len(line) <= 20 for line in lines)

    def test_wrap_lines_keeps_explicit_newlines_and_empty_text(self):
        assert _wrap_lines("one\ntwo", 40) == ["one", "two"]
        assert _wrap_lines("", 40) == [""]


class TestBlocks:
    def test_fields_block_layout(self):
        rendered = render_fields_block("Job Failed", {"Source": "/in/a.mkv", "Attempts": 3})

        assert rendered.splitlines() == [
            "",
            "Job Failed",
            "----------",
            "    Source  : /in/a.mkv",
            "    Attempts: 3",
        ]

    def test_without_top_padding(self):
        assert render_fields_block("Title", {}, pad_top=False) == "Title\n-----"

    def test_long_values_continue_under_the_value_column(self):
        rendered = render_fields_block("Dry Run", {"Command": "mkvmerge " + "--flag value " * 20}, pad_top=False)
        lines = rendered.splitlines()

        assert lines[2].startswith("    Command : mkvmerge")
        assert len(lines) > 3
        assert lines[3].startswith("    " + " " * 8 + "  ")

    def test_section_block(self):
        rendered = render_section_block(
            "Run Recap",
            [("Failures", ["/in/a.mkv: boom"]), ("Warnings", [])],
            pad_top=False,
        )

        assert rendered.splitlines() == [
            "Run Recap",
            "---------",
            "",
            "Failures:",
            "    - /in/a.mkv: boom",
            "",
            "Warnings:",
            "    (none)",
        ]

    def test_builder_does_not_stack_blank_lines(self):
        builder = LogBlockBuilder("Title", pad_top=False)
        builder.add_blank_line()
        builder.add_blank_line()

        assert builder.lines == ["Title", "-----", ""]


class TestConfigureLogging:
    def test_installs_rich_console_handler(self, restore_root_logger):
        configure_logging(logging.WARNING, console=Console(file=None, force_terminal=False))

        handlers = restore_root_logger.handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0], RichHandler)
        assert handlers[0].level == logging.WARNING
        assert restore_root_logger.level == logging.WARNING

    def test_log_file_receives_debug_records(self, restore_root_logger, tmp_path: Path):
        log_file = tmp_path / "logs" / "mkvbulk.log"

        configure_logging(logging.INFO, log_file=log_file, console=Console(quiet=True))
        logging.getLogger("mkvbulk.test").debug("detail only in file")
        for handler in restore_root_logger.handlers:
            handler.flush()

        assert restore_root_logger.level == logging.DEBUG
        assert "detail only in file" in log_file.read_text(encoding="utf-8")
