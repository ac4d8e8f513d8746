from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from jsonschema import Draft7Validator

from .models import TrackKind
from .templating import TITLE_PLACEHOLDERS, check_template


@dataclass(slots=True)
class ValidationIssue:
    """Represents a single validation problem."""

    severity: str
    path: str
    message: str
    code: str
    fix_suggestion: Optional[str] = None


@dataclass(slots=True)
class ValidationReport:
    """Aggregates validation warnings and errors."""

    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


_KIND_NAMES = ["video", "audio", "subtitle", "subtitles", "text", "sub", "other", "button"]
_PAIR_LIST = {
    "type": "array",
    "items": {"type": "array", "minItems": 2, "maxItems": 2, "items": {"type": ["string", "null"]}},
}
_KIND_MAPPING = {
    "type": "object",
    "propertyNames": {"enum": _KIND_NAMES},
}

CONFIG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["settings", "tracks"],
    "properties": {
        "settings": {
            "type": "object",
            "required": ["source_dir", "output_dir"],
            "properties": {
                "source_dir": {"type": "string"},
                "output_dir": {"type": "string"},
                "temp_dir": {"type": ["string", "null"]},
                "extensions": {
                    "oneOf": [
                        {"type": "array", "items": {"type": "string"}},
                        {"type": "string"},
                    ]
                },
                "concurrency": {"type": "integer", "minimum": 1},
                "max_retries": {"type": "integer", "minimum": 0},
                "retry_backoff": {"type": "number", "minimum": 0},
                "probe_timeout": {"type": "number", "minimum": 1},
                "invocation_timeout": {"type": "number", "minimum": 1},
                "dry_run": {"type": "boolean"},
                "trash_originals": {"type": "boolean"},
                "shutdown_when_done": {"type": "boolean"},
                "shutdown_force": {"type": "boolean"},
                "keep_attachments": {"type": "boolean"},
                "attachment_extensions": {
                    "oneOf": [
                        {"type": "array", "items": {"type": "string"}},
                        {"type": "string"},
                    ]
                },
                "keep_chapters": {"type": "boolean"},
                "tools": {
                    "type": "object",
                    "properties": {
                        "mediainfo": {"type": "string"},
                        "mkvmerge": {"type": "string"},
                    },
                    "additionalProperties": False,
                },
                "naming": {
                    "type": "object",
                    "properties": {
                        "names_file": {"type": ["string", "null"]},
                        "start_from": {"type": "integer", "minimum": 0},
                        "index_padding": {"type": "integer", "minimum": 1},
                        "set_file_title": {"type": "boolean"},
                    },
                    "additionalProperties": False,
                },
            },
            "additionalProperties": False,
        },
        "titles": {
            "type": "object",
            "properties": {
                "title_case": {"type": "boolean"},
                "fix_case_after_dashes": {"type": "boolean"},
                "strip_invalid_chars": {"type": "boolean"},
                "regular_expressions": _PAIR_LIST,
                "strings": _PAIR_LIST,
            },
            "additionalProperties": False,
        },
        "tracks": {
            "type": "object",
            "required": ["rules"],
            "properties": {
                "undefined_language": {**_KIND_MAPPING, "additionalProperties": {"type": "string"}},
                "max_tracks": {**_KIND_MAPPING, "additionalProperties": {"type": "integer", "minimum": 1}},
                "rules": {
                    "type": "array",
                    "minItems": 1,
                    "items": {
                        "type": "object",
                        "required": ["kind"],
                        "properties": {
                            "kind": {"type": "string", "enum": _KIND_NAMES},
                            "languages": {
                                "oneOf": [
                                    {"type": "array", "items": {"type": "string"}, "minItems": 1},
                                    {"type": "string"},
                                ]
                            },
                            "title": {"type": ["string", "null"]},
                            "default": {"type": "boolean"},
                            "forced": {"type": "boolean"},
                        },
                        "additionalProperties": False,
                    },
                },
            },
            "additionalProperties": False,
        },
    },
    "additionalProperties": False,
}


FixSuggestionGenerator = Callable[[str, str], Optional[str]]


def _suggest_schema_fix(path: str, message: str) -> Optional[str]:
    if "is a required property" in message:
        return "Add the required field to your configuration"
    if "Additional properties are not allowed" in message:
        return "Remove the unexpected key or check it for typos"
    if "is not of type" in message:
        for token, label in (
            ("'string'", "string"),
            ("'object'", "object/mapping"),
            ("'array'", "array/list"),
            ("'boolean'", "boolean"),
            ("'integer'", "whole number"),
            ("'number'", "number"),
        ):
            if token in message:
                return f"Change this field to a {label} value"
    if "is not one of" in message or "does not match" in message:
        return "Use one of: video, audio, subtitle, other"
    return "Review the configuration schema requirements for this field"


def _suggest_template_fix(path: str, message: str) -> Optional[str]:
    names = ", ".join("{" + name + "}" for name in sorted(TITLE_PLACEHOLDERS))
    return f"Title templates may use: {names}"


def _suggest_regex_fix(path: str, message: str) -> Optional[str]:
    return "Fix the regular expression syntax; remember to escape backslashes inside YAML double quotes"


def _suggest_video_rule_fix(path: str, message: str) -> Optional[str]:
    return "Add a rule such as '{kind: video, languages: [any]}' so every output keeps its video track"


def _suggest_names_file_fix(path: str, message: str) -> Optional[str]:
    return "Point settings.naming.names_file at an existing text file with one name per line"


def _suggest_load_config_fix(path: str, message: str) -> Optional[str]:
    if "No such file" in message or "not found" in message.lower():
        return "Ensure the configuration file path is correct and the file exists"
    if "YAML" in message or "parse" in message.lower():
        return "Fix YAML syntax errors. Common issues: incorrect indentation, missing colons, unquoted special characters"
    return "Check the configuration file for syntax errors or file access issues"


FIX_SUGGESTION_REGISTRY: Dict[str, FixSuggestionGenerator] = {
    "schema": _suggest_schema_fix,
    "title-template": _suggest_template_fix,
    "regex": _suggest_regex_fix,
    "video-rule": _suggest_video_rule_fix,
    "names-file": _suggest_names_file_fix,
    "load-config": _suggest_load_config_fix,
}


def get_fix_suggestion(issue: ValidationIssue) -> Optional[str]:
    generator = FIX_SUGGESTION_REGISTRY.get(issue.code)
    if generator:
        return generator(issue.path, issue.message)
    return None


def _add_issue(report: ValidationReport, severity: str, path: str, message: str, code: str) -> None:
    issue = ValidationIssue(severity=severity, path=path, message=message, code=code)
    issue.fix_suggestion = get_fix_suggestion(issue)
    if severity == "error":
        report.errors.append(issue)
    else:
        report.warnings.append(issue)


def _format_jsonschema_path(path: Sequence[Any]) -> str:
    if not path:
        return "<root>"
    tokens: List[str] = []
    for part in path:
        if isinstance(part, int):
            if tokens:
                tokens[-1] = f"{tokens[-1]}[{part}]"
            else:
                tokens.append(f"[{part}]")
        else:
            tokens.append(str(part))
    return ".".join(tokens) if tokens else "<root>"


def validate_config_data(data: Dict[str, Any], *, base_dir: Optional[Path] = None) -> ValidationReport:
    """Validate configuration data against the schema and semantic rules.

    ``base_dir`` resolves relative paths (the names file) the same way the
    config loader does.
    """
    report = ValidationReport()
    validator = Draft7Validator(CONFIG_SCHEMA)

    for error in sorted(validator.iter_errors(data), key=lambda exc: list(map(str, exc.absolute_path))):
        _add_issue(report, "error", _format_jsonschema_path(error.absolute_path), error.message, "schema")

    _validate_semantics(data, report, base_dir)
    return report


def _validate_rules(rules: List[Any], report: ValidationReport) -> None:
    kinds: List[TrackKind] = []
    defaults: Dict[TrackKind, int] = {}
    for index, rule in enumerate(rules):
        if not isinstance(rule, dict):
            continue
        path = f"tracks.rules[{index}]"
        try:
            kind = TrackKind.parse(rule.get("kind", ""))
        except ValueError:
            continue
        kinds.append(kind)

        template = rule.get("title")
        if isinstance(template, str):
            try:
                check_template(template, TITLE_PLACEHOLDERS)
            except ValueError as exc:
                _add_issue(report, "error", f"{path}.title", str(exc), "title-template")

        if rule.get("default") is True:
            if kind in defaults:
                _add_issue(
                    report,
                    "warning",
                    f"{path}.default",
                    f"Rule {defaults[kind]} already sets the default {kind.value} track; "
                    "only the first matching track keeps the flag",
                    "duplicate-default",
                )
            else:
                defaults[kind] = index

    if rules and TrackKind.VIDEO not in kinds:
        _add_issue(
            report,
            "error",
            "tracks.rules",
            "No rule selects video tracks; every file would fail planning",
            "video-rule",
        )


def _validate_semantics(data: Dict[str, Any], report: ValidationReport, base_dir: Optional[Path]) -> None:
    tracks = data.get("tracks") or {}
    if isinstance(tracks, dict) and isinstance(tracks.get("rules"), list):
        _validate_rules(tracks["rules"], report)

    titles = data.get("titles") or {}
    if isinstance(titles, dict) and isinstance(titles.get("regular_expressions"), list):
        for index, entry in enumerate(titles["regular_expressions"]):
            if not isinstance(entry, list) or not entry or not isinstance(entry[0], str):
                continue
            try:
                re.compile(entry[0])
            except re.error as exc:
                _add_issue(
                    report,
                    "error",
                    f"titles.regular_expressions[{index}]",
                    f"Invalid regular expression '{entry[0]}': {exc}",
                    "regex",
                )

    settings = data.get("settings") or {}
    if not isinstance(settings, dict):
        return
    naming = settings.get("naming") or {}
    names_file = naming.get("names_file") if isinstance(naming, dict) else None
    if isinstance(names_file, str) and names_file.strip():
        path = Path(names_file).expanduser()
        if not path.is_absolute() and base_dir is not None:
            path = base_dir / path
        if not path.is_file():
            _add_issue(
                report,
                "error",
                "settings.naming.names_file",
                f"Names file not found: {path}",
                "names-file",
            )

    if settings.get("shutdown_force") and not settings.get("shutdown_when_done"):
        _add_issue(
            report,
            "warning",
            "settings.shutdown_force",
            "shutdown_force has no effect unless shutdown_when_done is enabled",
            "shutdown",
        )
    if settings.get("dry_run") and settings.get("trash_originals"):
        _add_issue(
            report,
            "warning",
            "settings.trash_originals",
            "Originals are never trashed during a dry run",
            "dry-run",
        )
