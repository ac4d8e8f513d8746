"""Log block rendering and logging setup.

Log records are written as small titled blocks::

    Job Failed
    ----------
        Source    : /media/in/movie.mkv
        Reason    : mkvmerge exited with status 2

``configure_logging`` installs a Rich console handler and, optionally, a plain
file handler so the same blocks end up in a log file.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from textwrap import wrap
from typing import Union

from rich.console import Console
from rich.logging import RichHandler

WRAP_WIDTH = 110
LABEL_WIDTH = 22
INDENT = "    "

FILE_LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

FieldMapping = Union[Mapping[str, object], Sequence[tuple[str, object]]]


def _as_pairs(fields: FieldMapping) -> list[tuple[str, object]]:
    if isinstance(fields, Mapping):
        return list(fields.items())
    return list(fields)


def _to_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (list, tuple, set, frozenset)):
        return ", ".join(_to_text(item) for item in value)
    return str(value)


def _wrap_lines(text: str, width: int) -> list[str]:
    lines: list[str] = []
    for raw_line in text.splitlines() or [""]:
        lines.extend(wrap(raw_line, width=width) or [""])
    return lines


class LogBlockBuilder:
    def __init__(self, title: str, *, pad_top: bool = True, wrap_width: int = WRAP_WIDTH) -> None:
        self.wrap_width = wrap_width
        self.lines: list[str] = [""] if pad_top else []
        self.lines.extend([title, "-" * len(title)])

    def add_blank_line(self) -> None:
        if self.lines and self.lines[-1] != "":
            self.lines.append("")

    def add_fields(self, fields: FieldMapping | None) -> None:
        pairs = _as_pairs(fields or {})
        if not pairs:
            return
        label_width = max(min(max(len(str(key)) for key, _ in pairs), LABEL_WIDTH), 8)
        value_width = max(self.wrap_width - len(INDENT) - label_width - 4, 32)
        for key, value in pairs:
            first, *rest = _wrap_lines(_to_text(value), value_width)
            self.lines.append(f"{INDENT}{str(key):<{label_width}}: {first}")
            self.lines.extend(f"{INDENT}{'':<{label_width}}  {line}" for line in rest)

    def add_section(self, heading: str, items: Iterable[object], *, empty_label: str = "(none)") -> None:
        self.add_blank_line()
        self.lines.append(f"{heading}:")
        entries = [item for item in items if item is not None]
        if not entries:
            self.lines.append(f"{INDENT}{empty_label}")
            return
        width = max(self.wrap_width - len(INDENT) - 2, 24)
        for entry in entries:
            first, *rest = _wrap_lines(_to_text(entry), width)
            self.lines.append(f"{INDENT}- {first}")
            self.lines.extend(f"{INDENT}  {line}" for line in rest)

    def render(self) -> str:
        return "\n".join(self.lines).rstrip()


def render_fields_block(title: str, fields: FieldMapping, *, pad_top: bool = True) -> str:
    builder = LogBlockBuilder(title, pad_top=pad_top)
    builder.add_fields(fields)
    return builder.render()


def render_section_block(
    title: str,
    sections: Sequence[tuple[str, Sequence[object]]],
    *,
    pad_top: bool = True,
) -> str:
    builder = LogBlockBuilder(title, pad_top=pad_top)
    for heading, items in sections:
        builder.add_section(heading, items)
    return builder.render()


def configure_logging(
    level: int = logging.INFO,
    *,
    log_file: Path | None = None,
    file_level: int = logging.DEBUG,
    console: Console | None = None,
) -> None:
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console_handler = RichHandler(
        console=console,
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    console_handler.setLevel(level)
    root.addHandler(console_handler)
    effective = level

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(file_level)
        file_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT))
        root.addHandler(file_handler)
        effective = min(effective, file_level)

    root.setLevel(effective)
