"""Source file discovery and filtering.

The batch processes files in discovery order, so :func:`discover_sources`
always returns paths sorted the same way for the same tree.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence
from pathlib import Path

from .logging_utils import render_fields_block
from .utils import is_relative_to

LOGGER = logging.getLogger(__name__)


def skip_reason_for_source_file(path: Path, extensions: Sequence[str]) -> str | None:
    """Return why ``path`` should be skipped, or None if it should be processed."""
    name = path.name
    if name.startswith("._") and len(name) > 2:
        return "macOS resource fork (._ prefix)"
    if path.suffix.lower() not in extensions:
        return f"extension '{path.suffix or '(none)'}' not selected"
    return None


def _log_skip(path: Path, reason: str) -> None:
    LOGGER.debug(
        render_fields_block(
            "Skipping Source File",
            {
                "Source": path,
                "Reason": reason,
            },
            pad_top=True,
        )
    )


def gather_source_files(
    source_dir: Path,
    extensions: Sequence[str],
    *,
    exclude_dirs: Iterable[Path] = (),
) -> Iterator[Path]:
    """Yield candidate files below ``source_dir``.

    Skips directories, symlinks, macOS resource forks, files with other
    extensions and anything inside ``exclude_dirs`` (the batch's own output
    and temp directories when they live inside the source tree).
    """
    if not source_dir.exists():
        LOGGER.warning(
            render_fields_block(
                "Source Directory Missing",
                {"Path": source_dir},
                pad_top=True,
            )
        )
        return

    excluded = [directory for directory in exclude_dirs if directory != source_dir]
    for path in source_dir.rglob("*"):
        if any(is_relative_to(path, directory) for directory in excluded):
            continue
        if path.is_symlink():
            _log_skip(path, "symlink")
            continue
        if not path.is_file():
            continue

        skip_reason = skip_reason_for_source_file(path, extensions)
        if skip_reason:
            _log_skip(path, skip_reason)
            continue

        yield path


def discover_sources(
    source_dir: Path,
    extensions: Sequence[str],
    *,
    exclude_dirs: Iterable[Path] = (),
) -> list[Path]:
    return sorted(gather_source_files(source_dir, extensions, exclude_dirs=exclude_dirs))
