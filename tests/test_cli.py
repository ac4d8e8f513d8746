from __future__ import annotations

from pathlib import Path

import pytest

from mkv_fakes import FakeRunner, audio, mediainfo_json
from mkvbulk import cli


def _write_config(tmp_path: Path, *, extra_settings: str = "", rules: str | None = None) -> Path:
    config_path = tmp_path / "mkvbulk.yaml"
    rules = rules or """
    - kind: video
    - kind: audio
      languages: [eng]
      title: "{language_name}"
      default: true
"""
    config_path.write_text(
        f"""
settings:
  source_dir: "./in"
  output_dir: "./out"
  retry_backoff: 0
{extra_settings}
tracks:
  rules:{rules}
""",
        encoding="utf-8",
    )
    return config_path


def _make_sources(tmp_path: Path, *names: str) -> None:
    for name in names:
        path = tmp_path / "in" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"mkv")


@pytest.fixture
def console_output(monkeypatch) -> list:
    lines: list = []
    monkeypatch.setattr("mkvbulk.cli.configure_logging", lambda *args, **kwargs: None)
    monkeypatch.setattr("mkvbulk.cli.CONSOLE.print", lambda *args, **kwargs: lines.extend(str(arg) for arg in args))
    return lines


@pytest.fixture
def fake_runner(monkeypatch) -> FakeRunner:
    runner = FakeRunner(probes={"broken.mkv": 1, "noaudio.mkv": mediainfo_json(audio(0, "en"))})
    monkeypatch.setattr("mkvbulk.scheduler.ToolRunner", lambda: runner)
    monkeypatch.setattr("mkvbulk.cli.ToolRunner", lambda: runner)
    return runner


class TestRunCommand:
    """The default ``run`` command."""

    def test_successful_batch_exits_zero(self, tmp_path, console_output, fake_runner) -> None:
        config_path = _write_config(tmp_path)
        _make_sources(tmp_path, "a.mkv", "Show/b.mkv")

        exit_code = cli.main(["--config", str(config_path), "run"])

        assert exit_code == 0
        assert (tmp_path / "out" / "a.mkv").exists()
        assert (tmp_path / "out" / "Show" / "b.mkv").exists()
        assert len(fake_runner.mux_calls()) == 2

    def test_run_is_the_default_command(self, tmp_path, console_output, fake_runner) -> None:
        config_path = _write_config(tmp_path)
        _make_sources(tmp_path, "a.mkv")

        assert cli.main(["--config", str(config_path)]) == 0
        assert (tmp_path / "out" / "a.mkv").exists()

    def test_failed_file_gives_exit_one(self, tmp_path, console_output, fake_runner) -> None:
        config_path = _write_config(tmp_path)
        _make_sources(tmp_path, "a.mkv", "broken.mkv", "noaudio.mkv")

        exit_code = cli.main(["--config", str(config_path), "run"])

        assert exit_code == 1
        assert (tmp_path / "out" / "a.mkv").exists()
        assert not (tmp_path / "out" / "broken.mkv").exists()
        assert not (tmp_path / "out" / "noaudio.mkv").exists()

    def test_dry_run_flag_writes_nothing(self, tmp_path, console_output, fake_runner) -> None:
        config_path = _write_config(tmp_path)
        _make_sources(tmp_path, "a.mkv")

        exit_code = cli.main(["--config", str(config_path), "run", "--dry-run"])

        assert exit_code == 0
        assert fake_runner.mux_calls() == []
        assert not (tmp_path / "out").exists()

    def test_missing_config_exits_two(self, tmp_path, console_output, fake_runner) -> None:
        exit_code = cli.main(["--config", str(tmp_path / "missing.yaml"), "run"])

        assert exit_code == 2
        assert any("Configuration file not found" in line for line in console_output)

    def test_invalid_concurrency_exits_two(self, tmp_path, console_output, fake_runner) -> None:
        config_path = _write_config(tmp_path)
        _make_sources(tmp_path, "a.mkv")

        assert cli.main(["--config", str(config_path), "run", "--concurrency", "0"]) == 2
        assert fake_runner.calls == []

    def test_missing_source_directory_exits_two(self, tmp_path, console_output, fake_runner) -> None:
        config_path = _write_config(tmp_path)

        assert cli.main(["--config", str(config_path), "run"]) == 2
        assert any("Source directory does not exist" in line for line in console_output)

    @pytest.mark.parametrize(("flags", "expected"), [([], 1), (["--no-shutdown"], 0)])
    def test_no_shutdown_flag(self, tmp_path, console_output, fake_runner, monkeypatch, flags, expected) -> None:
        calls: list = []
        monkeypatch.setattr(
            "mkvbulk.disposition.DispositionManager.shutdown_if_configured",
            lambda self, result: calls.append(result) or False,
        )
        config_path = _write_config(tmp_path, extra_settings="  shutdown_when_done: true")
        _make_sources(tmp_path, "a.mkv")

        assert cli.main(["--config", str(config_path), "run", *flags]) == 0
        assert len(calls) == expected


class TestValidateConfig:
    """The ``validate-config`` command."""

    def test_valid_config(self, tmp_path, console_output) -> None:
        config_path = _write_config(tmp_path)

        assert cli.main(["--config", str(config_path), "validate-config"]) == 0
        assert "[green]✓ Configuration passed validation[/green]" in console_output

    def test_invalid_config_lists_errors_with_suggestions(self, tmp_path, console_output) -> None:
        config_path = _write_config(tmp_path, rules="\n    - kind: audio\n")

        assert cli.main(["--config", str(config_path), "validate-config"]) == 1
        assert "[red bold]Validation Errors (1)[/red bold]" in console_output
        assert any("No rule selects video tracks" in line for line in console_output)
        assert any("💡" in line for line in console_output)

    def test_suggestions_can_be_hidden(self, tmp_path, console_output) -> None:
        config_path = _write_config(tmp_path, rules="\n    - kind: audio\n")

        assert cli.main(["--config", str(config_path), "validate-config", "--no-suggestions"]) == 1
        assert not any("💡" in line for line in console_output)

    def test_unreadable_yaml(self, tmp_path, console_output) -> None:
        config_path = tmp_path / "mkvbulk.yaml"
        config_path.write_text("settings: [unclosed\n", encoding="utf-8")

        assert cli.main(["--config", str(config_path), "validate-config"]) == 1
        assert any("<file>" in line for line in console_output)

    def test_missing_file(self, tmp_path, console_output) -> None:
        assert cli.main(["--config", str(tmp_path / "missing.yaml"), "validate-config"]) == 1


class TestInspect:
    """The ``inspect`` command."""

    def test_prints_plan_for_one_file(self, tmp_path, console_output, fake_runner) -> None:
        config_path = _write_config(tmp_path)
        _make_sources(tmp_path, "a.mkv")

        exit_code = cli.main(["--config", str(config_path), "inspect", str(tmp_path / "in" / "a.mkv")])

        assert exit_code == 0
        assert any(line.startswith("Output: ") and line.endswith("a.mkv") for line in console_output)
        assert any(line.startswith("mkvmerge -o ") for line in console_output)
        assert fake_runner.mux_calls() == []
        assert not (tmp_path / "out").exists()

    def test_reports_missed_track_target(self, tmp_path, console_output, fake_runner) -> None:
        rules = """
    - kind: video
    - kind: audio
      languages: [eng]
  max_tracks:
    audio: 2
"""
        config_path = _write_config(tmp_path, rules=rules)
        _make_sources(tmp_path, "a.mkv")

        exit_code = cli.main(["--config", str(config_path), "inspect", str(tmp_path / "in" / "a.mkv")])

        assert exit_code == 0
        assert any("Kept 1 of 2 audio track(s)" in line for line in console_output)

    def test_output_after_a_run_is_the_recorded_one(self, tmp_path, console_output, fake_runner) -> None:
        config_path = _write_config(tmp_path)
        _make_sources(tmp_path, "a.mkv")
        assert cli.main(["--config", str(config_path), "run"]) == 0
        console_output.clear()

        cli.main(["--config", str(config_path), "inspect", str(tmp_path / "in" / "a.mkv")])

        assert any(line.startswith("Output: ") and line.endswith("a.mkv") for line in console_output)

    def test_probe_failure_exits_one(self, tmp_path, console_output, fake_runner) -> None:
        config_path = _write_config(tmp_path)
        _make_sources(tmp_path, "broken.mkv")

        assert cli.main(["--config", str(config_path), "inspect", str(tmp_path / "in" / "broken.mkv")]) == 1

    def test_plan_failure_exits_one(self, tmp_path, console_output, fake_runner) -> None:
        config_path = _write_config(tmp_path)
        _make_sources(tmp_path, "noaudio.mkv")

        exit_code = cli.main(["--config", str(config_path), "inspect", str(tmp_path / "in" / "noaudio.mkv")])

        assert exit_code == 1
        assert any("No video track" in line for line in console_output)


def test_config_path_defaults_to_environment(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv(cli.CONFIG_ENV_VAR, str(tmp_path / "from-env.yaml"))

    args = cli.build_parser().parse_args(["run"])

    assert args.config == tmp_path / "from-env.yaml"
    assert args.dry_run is False


def test_version_flag(capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--version"])

    assert excinfo.value.code == 0
    assert capsys.readouterr().out.startswith("mkvbulk ")
