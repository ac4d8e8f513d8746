from __future__ import annotations

import copy
from pathlib import Path

import yaml

from mkvbulk.validation import ValidationIssue, get_fix_suggestion, validate_config_data

SAMPLE_CONFIG = Path(__file__).resolve().parents[1] / "config" / "mkvbulk.sample.yaml"

BASE = {
    "settings": {"source_dir": "/media/in", "output_dir": "/media/out"},
    "tracks": {"rules": [{"kind": "video", "languages": ["any"]}, {"kind": "audio", "languages": ["eng"]}]},
}


def _config(**changes) -> dict:
    data = copy.deepcopy(BASE)
    for section, values in changes.items():
        data.setdefault(section, {}).update(values)
    return data


def _codes(issues) -> list:
    return [issue.code for issue in issues]


class TestSchema:
    def test_sample_config_is_valid(self) -> None:
        data = yaml.safe_load(SAMPLE_CONFIG.read_text(encoding="utf-8"))

        report = validate_config_data(data)

        assert report.is_valid, report.errors
        assert report.warnings == []

    def test_missing_tracks_section(self) -> None:
        report = validate_config_data({"settings": BASE["settings"]})

        assert not report.is_valid
        assert report.errors[0].path == "<root>"
        assert "'tracks' is a required property" in report.errors[0].message
        assert report.errors[0].fix_suggestion == "Add the required field to your configuration"

    def test_unknown_setting_is_reported_with_path(self) -> None:
        report = validate_config_data(_config(settings={"concurency": 4}))

        assert _codes(report.errors) == ["schema"]
        assert report.errors[0].path == "settings"
        assert "concurency" in report.errors[0].message

    def test_wrong_type_suggests_the_expected_type(self) -> None:
        report = validate_config_data(_config(settings={"concurrency": "four"}))

        assert report.errors[0].path == "settings.concurrency"
        assert report.errors[0].fix_suggestion == "Change this field to a whole number value"

    def test_unknown_kind_path_includes_index(self) -> None:
        data = _config()
        data["tracks"]["rules"].append({"kind": "chapters"})

        report = validate_config_data(data)

        assert "tracks.rules[2].kind" in [issue.path for issue in report.errors]

    def test_empty_rule_list_is_an_error(self) -> None:
        report = validate_config_data(_config(tracks={"rules": []}))

        assert not report.is_valid
        assert report.errors[0].path == "tracks.rules"


class TestSemantics:
    """Checks that need more than the schema."""

    def test_missing_video_rule(self) -> None:
        report = validate_config_data(_config(tracks={"rules": [{"kind": "audio"}]}))

        assert _codes(report.errors) == ["video-rule"]
        assert "kind: video" in report.errors[0].fix_suggestion

    def test_bad_title_template(self) -> None:
        data = _config()
        data["tracks"]["rules"][1]["title"] = "{language} {bitrate}"

        report = validate_config_data(data)

        assert _codes(report.errors) == ["title-template"]
        assert report.errors[0].path == "tracks.rules[1].title"
        assert "{language_name}" in report.errors[0].fix_suggestion

    def test_bad_regular_expression(self) -> None:
        report = validate_config_data(_config(titles={"regular_expressions": [["(unclosed", ""]]}))

        assert _codes(report.errors) == ["regex"]
        assert report.errors[0].path == "titles.regular_expressions[0]"

    def test_missing_names_file_resolves_against_base_dir(self, tmp_path: Path) -> None:
        data = _config()
        data["settings"]["naming"] = {"names_file": "names.txt"}

        missing = validate_config_data(data, base_dir=tmp_path)
        (tmp_path / "names.txt").write_text("pilot\n", encoding="utf-8")
        present = validate_config_data(data, base_dir=tmp_path)

        assert _codes(missing.errors) == ["names-file"]
        assert str(tmp_path / "names.txt") in missing.errors[0].message
        assert present.is_valid

    def test_duplicate_default_is_a_warning(self) -> None:
        data = _config()
        data["tracks"]["rules"] = [
            {"kind": "video"},
            {"kind": "audio", "languages": ["eng"], "default": True},
            {"kind": "audio", "languages": ["jpn"], "default": True},
        ]

        report = validate_config_data(data)

        assert report.is_valid
        assert _codes(report.warnings) == ["duplicate-default"]
        assert report.warnings[0].path == "tracks.rules[2].default"

    def test_conflicting_flags_are_warnings(self) -> None:
        report = validate_config_data(
            _config(settings={"shutdown_force": True, "dry_run": True, "trash_originals": True})
        )

        assert report.is_valid
        assert sorted(_codes(report.warnings)) == ["dry-run", "shutdown"]


def test_unknown_code_has_no_suggestion() -> None:
    issue = ValidationIssue(severity="warning", path="x", message="y", code="nothing-registered")

    assert get_fix_suggestion(issue) is None


def test_load_config_suggestions() -> None:
    missing = ValidationIssue(severity="error", path="<file>", message="[Errno 2] No such file", code="load-config")
    broken = ValidationIssue(severity="error", path="<file>", message="Unable to parse YAML", code="load-config")

    assert "path is correct" in get_fix_suggestion(missing)
    assert "YAML syntax" in get_fix_suggestion(broken)
