from __future__ import annotations

import os
from pathlib import Path

import pytest

from mkvbulk.file_discovery import discover_sources, gather_source_files, skip_reason_for_source_file


def _touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"")
    return path


class TestSkipReason:
    def test_accepts_selected_extension_case_insensitively(self) -> None:
        assert skip_reason_for_source_file(Path("Movie.MKV"), (".mkv",)) is None

    def test_rejects_other_extensions(self) -> None:
        assert "not selected" in skip_reason_for_source_file(Path("movie.mp4"), (".mkv",))

    def test_rejects_macos_resource_forks(self) -> None:
        assert skip_reason_for_source_file(Path("._movie.mkv"), (".mkv",)) == "macOS resource fork (._ prefix)"


class TestDiscovery:
    """Walking the source tree."""

    def test_returns_sorted_candidates_recursively(self, tmp_path: Path) -> None:
        for name in ("b.mkv", "a.mkv", "Show/S01/e02.mkv", "Show/S01/e01.mkv", "notes.txt", "._a.mkv"):
            _touch(tmp_path / name)

        found = discover_sources(tmp_path, (".mkv",))

        assert [path.relative_to(tmp_path).as_posix() for path in found] == [
            "Show/S01/e01.mkv",
            "Show/S01/e02.mkv",
            "a.mkv",
            "b.mkv",
        ]

    def test_order_is_stable_between_calls(self, tmp_path: Path) -> None:
        for name in ("z.mkv", "m/x.mkv", "a.mkv"):
            _touch(tmp_path / name)

        assert discover_sources(tmp_path, (".mkv",)) == discover_sources(tmp_path, (".mkv",))

    def test_excluded_directories_are_not_walked(self, tmp_path: Path) -> None:
        _touch(tmp_path / "a.mkv")
        _touch(tmp_path / "out" / "a.mkv")
        _touch(tmp_path / "out" / ".mkvbulk-tmp" / "0-a.mkv")

        found = discover_sources(tmp_path, (".mkv",), exclude_dirs=(tmp_path / "out",))

        assert found == [tmp_path / "a.mkv"]

    def test_source_dir_itself_is_never_excluded(self, tmp_path: Path) -> None:
        _touch(tmp_path / "a.mkv")

        assert discover_sources(tmp_path, (".mkv",), exclude_dirs=(tmp_path,)) == [tmp_path / "a.mkv"]

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
    def test_symlinks_are_skipped(self, tmp_path: Path) -> None:
        target = _touch(tmp_path / "real.mkv")
        (tmp_path / "link.mkv").symlink_to(target)

        assert discover_sources(tmp_path, (".mkv",)) == [target]

    def test_missing_directory_yields_nothing(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        assert list(gather_source_files(tmp_path / "missing", (".mkv",))) == []
        assert "Source Directory Missing" in caplog.text
