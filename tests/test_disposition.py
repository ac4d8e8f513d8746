from __future__ import annotations

import subprocess
from pathlib import Path
from typing import List

import pytest

from mkvbulk import disposition as disposition_module
from mkvbulk.config import Settings
from mkvbulk.disposition import DispositionManager, shutdown_host
from mkvbulk.errors import DisposalWarning
from mkvbulk.models import BatchResult, Job, JobOutcome, JobState


def _job(source: Path, state: JobState = JobState.SUCCEEDED, *, noop: bool = False) -> Job:
    return Job(id=0, source=source, output_path=source.with_suffix(".out.mkv"), state=state, noop=noop)


def _result(*states: JobState, cancelled: bool = False, dry_run: bool = False) -> BatchResult:
    result = BatchResult(cancelled=cancelled, dry_run=dry_run)
    for number, state in enumerate(states):
        result.record(JobOutcome(job_id=number, source=Path(f"/in/{number}.mkv"), output_path=Path("/out"), state=state))
    return result


class TestDispose:
    """Trashing originals after a successful job."""

    def test_trashes_succeeded_original(self, tmp_path: Path) -> None:
        trashed: List[str] = []
        manager = DispositionManager(trash_originals=True, trash=trashed.append)

        assert manager.dispose(_job(tmp_path / "a.mkv")) is None
        assert trashed == [str(tmp_path / "a.mkv")]

    @pytest.mark.parametrize(
        ("job_state", "noop", "options"),
        [
            (JobState.FAILED, False, {"trash_originals": True}),
            (JobState.SUCCEEDED, True, {"trash_originals": True}),
            (JobState.SUCCEEDED, False, {"trash_originals": False}),
            (JobState.SUCCEEDED, False, {"trash_originals": True, "dry_run": True}),
        ],
    )
    def test_leaves_original_alone(self, tmp_path: Path, job_state: JobState, noop: bool, options: dict) -> None:
        trashed: List[str] = []
        manager = DispositionManager(trash=trashed.append, **options)

        manager.dispose(_job(tmp_path / "a.mkv", job_state, noop=noop))

        assert trashed == []

    def test_trash_error_becomes_warning(self, tmp_path: Path) -> None:
        def refuse(path: str) -> None:
            raise PermissionError("read-only volume")

        job = _job(tmp_path / "a.mkv")
        warning = DispositionManager(trash_originals=True, trash=refuse).dispose(job)

        assert warning == DisposalWarning(path=tmp_path / "a.mkv", message="read-only volume")
        assert str(warning) == f"Unable to trash {tmp_path / 'a.mkv'}: read-only volume"
        assert job.state == JobState.SUCCEEDED

    def test_from_settings(self, tmp_path: Path) -> None:
        settings = Settings(source_dir=tmp_path, output_dir=tmp_path, trash_originals=True, dry_run=True)

        manager = DispositionManager.from_settings(settings, dry_run=False)

        assert manager.trash_originals is True
        assert manager.dry_run is False


class TestShutdown:
    """Host shutdown after the batch."""

    def _manager(self, calls: List[str], **options) -> DispositionManager:
        return DispositionManager(shutdown=lambda: calls.append("shutdown"), **options)

    def test_shuts_down_after_clean_batch(self) -> None:
        calls: List[str] = []

        assert self._manager(calls, shutdown_when_done=True).shutdown_if_configured(_result(JobState.SUCCEEDED))
        assert calls == ["shutdown"]

    @pytest.mark.parametrize(
        ("options", "result", "reason"),
        [
            ({}, _result(JobState.SUCCEEDED), "shutdown disabled"),
            ({"shutdown_when_done": True}, _result(JobState.FAILED), "1 job(s) failed"),
            ({"shutdown_when_done": True}, _result(JobState.SUCCEEDED, cancelled=True), "batch cancelled"),
            ({"shutdown_when_done": True}, _result(JobState.SUCCEEDED, dry_run=True), "dry run"),
            ({"shutdown_when_done": True, "dry_run": True}, _result(JobState.SUCCEEDED), "dry run"),
        ],
    )
    def test_skips_shutdown(self, options: dict, result: BatchResult, reason: str) -> None:
        calls: List[str] = []
        manager = self._manager(calls, **options)

        assert manager.shutdown_reason(result) == reason
        assert manager.shutdown_if_configured(result) is False
        assert calls == []

    def test_force_shuts_down_despite_failures(self) -> None:
        calls: List[str] = []
        manager = self._manager(calls, shutdown_when_done=True, shutdown_force=True)

        assert manager.shutdown_if_configured(_result(JobState.SUCCEEDED, JobState.FAILED))
        assert calls == ["shutdown"]

    def test_shutdown_failure_is_reported_not_raised(self) -> None:
        def broken() -> None:
            raise subprocess.CalledProcessError(1, ["shutdown"])

        manager = DispositionManager(shutdown_when_done=True, shutdown=broken)

        assert manager.shutdown_if_configured(_result(JobState.SUCCEEDED)) is False


def test_shutdown_host_command(monkeypatch: pytest.MonkeyPatch) -> None:
    commands: List[list] = []
    monkeypatch.setattr(disposition_module.sys, "platform", "linux")
    monkeypatch.setattr(disposition_module.subprocess, "run", lambda command, check: commands.append(command))

    shutdown_host()

    assert commands == [["shutdown", "-h", "now"]]
