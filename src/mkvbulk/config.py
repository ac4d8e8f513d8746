from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .languages import WILDCARD
from .models import TrackKind
from .templating import TITLE_PLACEHOLDERS, check_template
from .utils import load_yaml_file, parse_bool

DEFAULT_EXTENSIONS = (".mkv",)
TEMP_DIR_NAME = ".mkvbulk-tmp"
# Output directory inside the source tree when none is configured.
DEFAULT_OUTPUT_DIR_NAME = ".mkvbulk-out"


@dataclass(frozen=True)
class TitleSettings:
    title_case: bool = True
    fix_case_after_dashes: bool = True
    strip_invalid_chars: bool = True
    regular_expressions: tuple[tuple[re.Pattern[str], str], ...] = ()
    strings: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True)
class SelectionRule:
    kind: TrackKind
    languages: tuple[str, ...]
    title_template: str | None = None
    set_default: bool = False
    set_forced: bool = False


@dataclass(frozen=True)
class RuleSet:
    """Selection rules for one batch. Shared read-only by every worker."""

    rules: tuple[SelectionRule, ...] = ()
    max_tracks: dict[TrackKind, int] = field(default_factory=dict)
    undefined_language: dict[TrackKind, str] = field(default_factory=dict)
    titles: TitleSettings = field(default_factory=TitleSettings)

    def rules_for(self, kind: TrackKind) -> list[tuple[int, SelectionRule]]:
        return [(position, rule) for position, rule in enumerate(self.rules) if rule.kind == kind]


@dataclass
class ToolPaths:
    mediainfo: str = "mediainfo"
    mkvmerge: str = "mkvmerge"


@dataclass
class NamingSettings:
    names_file: Path | None = None
    start_from: int = 1
    index_padding: int = 2
    set_file_title: bool = False


@dataclass
class Settings:
    source_dir: Path
    output_dir: Path
    temp_dir: Path | None = None
    extensions: tuple[str, ...] = DEFAULT_EXTENSIONS
    concurrency: int = 2
    max_retries: int = 2
    retry_backoff: float = 2.0
    probe_timeout: float = 60.0
    invocation_timeout: float = 3600.0
    dry_run: bool = False
    trash_originals: bool = False
    shutdown_when_done: bool = False
    shutdown_force: bool = False
    keep_attachments: bool = True
    # Attachment extensions to keep (".ttf", ...); empty keeps every attachment.
    attachment_extensions: tuple[str, ...] = ()
    keep_chapters: bool = True
    tools: ToolPaths = field(default_factory=ToolPaths)
    naming: NamingSettings = field(default_factory=NamingSettings)

    @property
    def resolved_temp_dir(self) -> Path:
        return self.temp_dir if self.temp_dir is not None else self.output_dir / TEMP_DIR_NAME


@dataclass
class AppConfig:
    settings: Settings
    rules: RuleSet


def _ensure_string_list(value: Any, *, field_name: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        raise ValueError(f"'{field_name}' must be provided as a list of strings")
    result: list[str] = []
    for index, entry in enumerate(value):
        if not isinstance(entry, str):
            raise ValueError(f"'{field_name}[{index}]' must be a string")
        cleaned = entry.strip()
        if cleaned:
            result.append(cleaned)
    return result


def _ensure_pairs(value: Any, *, field_name: str) -> list[tuple[str, str]]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"'{field_name}' must be a list of [find, replace] pairs")
    pairs: list[tuple[str, str]] = []
    for index, entry in enumerate(value):
        if not isinstance(entry, (list, tuple)) or len(entry) != 2:
            raise ValueError(f"'{field_name}[{index}]' must be a [find, replace] pair")
        pairs.append((str(entry[0]), "" if entry[1] is None else str(entry[1])))
    return pairs


def _bool(data: dict[str, Any], key: str, default: bool, *, field_name: str) -> bool:
    if key not in data or data[key] is None:
        return default
    parsed = parse_bool(data[key])
    if parsed is None:
        raise ValueError(f"'{field_name}' must be a boolean")
    return parsed


def _number(data: dict[str, Any], key: str, default: float, *, field_name: str, minimum: float = 0) -> float:
    try:
        value = float(data.get(key, default))
    except (TypeError, ValueError) as exc:  # noqa: PERF203
        raise ValueError(f"'{field_name}' must be a number") from exc
    if value < minimum:
        raise ValueError(f"'{field_name}' must be greater than or equal to {minimum:g}")
    return value


def _integer(data: dict[str, Any], key: str, default: int, *, field_name: str, minimum: int = 0) -> int:
    raw = data.get(key, default)
    if isinstance(raw, bool):
        raise ValueError(f"'{field_name}' must be an integer")
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:  # noqa: PERF203
        raise ValueError(f"'{field_name}' must be an integer") from exc
    if value < minimum:
        raise ValueError(f"'{field_name}' must be greater than or equal to {minimum}")
    return value


def _build_title_settings(data: dict[str, Any]) -> TitleSettings:
    if not data:
        return TitleSettings()
    if not isinstance(data, dict):
        raise ValueError("'titles' must be provided as a mapping when specified")

    compiled: list[tuple[re.Pattern[str], str]] = []
    for index, (pattern, replacement) in enumerate(
        _ensure_pairs(data.get("regular_expressions"), field_name="titles.regular_expressions")
    ):
        try:
            compiled.append((re.compile(pattern), replacement))
        except re.error as exc:
            raise ValueError(f"'titles.regular_expressions[{index}]' is not a valid expression: {exc}") from exc

    return TitleSettings(
        title_case=_bool(data, "title_case", True, field_name="titles.title_case"),
        fix_case_after_dashes=_bool(data, "fix_case_after_dashes", True, field_name="titles.fix_case_after_dashes"),
        strip_invalid_chars=_bool(data, "strip_invalid_chars", True, field_name="titles.strip_invalid_chars"),
        regular_expressions=tuple(compiled),
        strings=tuple(_ensure_pairs(data.get("strings"), field_name="titles.strings")),
    )


def _build_rule(data: dict[str, Any], index: int) -> SelectionRule:
    field_prefix = f"tracks.rules[{index}]"
    if not isinstance(data, dict):
        raise ValueError(f"'{field_prefix}' must be a mapping")
    if "kind" not in data:
        raise ValueError(f"'{field_prefix}.kind' is required")
    try:
        kind = TrackKind.parse(data["kind"])
    except ValueError as exc:
        raise ValueError(f"'{field_prefix}.kind': {exc}") from exc

    languages = _ensure_string_list(data.get("languages", [WILDCARD]), field_name=f"{field_prefix}.languages")
    if not languages:
        raise ValueError(f"'{field_prefix}.languages' must list at least one language (or 'any')")

    title_template = data.get("title")
    if title_template is not None:
        title_template = str(title_template)
        check_template(title_template, TITLE_PLACEHOLDERS)

    return SelectionRule(
        kind=kind,
        languages=tuple(language.lower() for language in languages),
        title_template=title_template,
        set_default=_bool(data, "default", False, field_name=f"{field_prefix}.default"),
        set_forced=_bool(data, "forced", False, field_name=f"{field_prefix}.forced"),
    )


def _build_kind_mapping(data: Any, *, field_name: str, convert) -> dict[TrackKind, Any]:
    if not data:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"'{field_name}' must be a mapping of track kind to value")
    result: dict[TrackKind, Any] = {}
    for key, value in data.items():
        try:
            kind = TrackKind.parse(key)
        except ValueError as exc:
            raise ValueError(f"'{field_name}': {exc}") from exc
        result[kind] = convert(value, f"{field_name}.{kind.value}")
    return result


def _positive_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"'{field_name}' must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"'{field_name}' must be an integer") from exc
    if number < 1:
        raise ValueError(f"'{field_name}' must be at least 1")
    return number


def _language_code(value: Any, field_name: str) -> str:
    text = str(value or "").strip().lower()
    if not text:
        raise ValueError(f"'{field_name}' must be a language code")
    return text


def build_rule_set(tracks: dict[str, Any], titles: dict[str, Any] | None = None) -> RuleSet:
    if not isinstance(tracks, dict):
        raise ValueError("'tracks' must be provided as a mapping")
    rules_raw = tracks.get("rules") or []
    if not isinstance(rules_raw, list):
        raise ValueError("'tracks.rules' must be provided as a list")
    if not rules_raw:
        raise ValueError("'tracks.rules' must define at least one selection rule")

    return RuleSet(
        rules=tuple(_build_rule(entry, index) for index, entry in enumerate(rules_raw)),
        max_tracks=_build_kind_mapping(tracks.get("max_tracks"), field_name="tracks.max_tracks", convert=_positive_int),
        undefined_language=_build_kind_mapping(
            tracks.get("undefined_language"), field_name="tracks.undefined_language", convert=_language_code
        ),
        titles=_build_title_settings(titles or {}),
    )


def _normalize_extensions(values: Iterable[str], default: tuple[str, ...] = DEFAULT_EXTENSIONS) -> tuple[str, ...]:
    normalized: list[str] = []
    for value in values:
        ext = value.lower()
        if not ext.startswith("."):
            ext = f".{ext}"
        if ext not in normalized:
            normalized.append(ext)
    return tuple(normalized) or default


def _build_tool_paths(data: dict[str, Any]) -> ToolPaths:
    if not data:
        return ToolPaths()
    if not isinstance(data, dict):
        raise ValueError("'settings.tools' must be provided as a mapping when specified")
    return ToolPaths(
        mediainfo=str(data.get("mediainfo") or "mediainfo").strip(),
        mkvmerge=str(data.get("mkvmerge") or "mkvmerge").strip(),
    )


def _build_naming_settings(data: dict[str, Any], base_dir: Path | None) -> NamingSettings:
    if not data:
        return NamingSettings()
    if not isinstance(data, dict):
        raise ValueError("'settings.naming' must be provided as a mapping when specified")

    names_file: Path | None = None
    if data.get("names_file"):
        names_file = Path(str(data["names_file"])).expanduser()
        if not names_file.is_absolute() and base_dir is not None:
            names_file = base_dir / names_file

    return NamingSettings(
        names_file=names_file,
        start_from=_integer(data, "start_from", 1, field_name="settings.naming.start_from"),
        index_padding=_integer(data, "index_padding", 2, field_name="settings.naming.index_padding", minimum=1),
        set_file_title=_bool(data, "set_file_title", False, field_name="settings.naming.set_file_title"),
    )


def _resolve_dir(value: Any, base_dir: Path | None) -> Path:
    path = Path(str(value)).expanduser()
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    return path


def _build_settings(data: dict[str, Any], base_dir: Path | None = None) -> Settings:
    if not isinstance(data, dict):
        raise ValueError("'settings' must be provided as a mapping")
    if not data.get("source_dir"):
        raise ValueError("'settings.source_dir' is required")
    if not data.get("output_dir"):
        raise ValueError("'settings.output_dir' is required")

    temp_dir = _resolve_dir(data["temp_dir"], base_dir) if data.get("temp_dir") else None
    extensions = _ensure_string_list(data.get("extensions"), field_name="settings.extensions")

    return Settings(
        source_dir=_resolve_dir(data["source_dir"], base_dir),
        output_dir=_resolve_dir(data["output_dir"], base_dir),
        temp_dir=temp_dir,
        extensions=_normalize_extensions(extensions),
        concurrency=_integer(data, "concurrency", 2, field_name="settings.concurrency", minimum=1),
        max_retries=_integer(data, "max_retries", 2, field_name="settings.max_retries"),
        retry_backoff=_number(data, "retry_backoff", 2.0, field_name="settings.retry_backoff"),
        probe_timeout=_number(data, "probe_timeout", 60.0, field_name="settings.probe_timeout", minimum=1),
        invocation_timeout=_number(
            data, "invocation_timeout", 3600.0, field_name="settings.invocation_timeout", minimum=1
        ),
        dry_run=_bool(data, "dry_run", False, field_name="settings.dry_run"),
        trash_originals=_bool(data, "trash_originals", False, field_name="settings.trash_originals"),
        shutdown_when_done=_bool(data, "shutdown_when_done", False, field_name="settings.shutdown_when_done"),
        shutdown_force=_bool(data, "shutdown_force", False, field_name="settings.shutdown_force"),
        keep_attachments=_bool(data, "keep_attachments", True, field_name="settings.keep_attachments"),
        attachment_extensions=_normalize_extensions(
            _ensure_string_list(data.get("attachment_extensions"), field_name="settings.attachment_extensions"),
            default=(),
        ),
        keep_chapters=_bool(data, "keep_chapters", True, field_name="settings.keep_chapters"),
        tools=_build_tool_paths(data.get("tools", {}) or {}),
        naming=_build_naming_settings(data.get("naming", {}) or {}, base_dir),
    )


def build_config(data: dict[str, Any], *, base_dir: Path | None = None) -> AppConfig:
    settings = _build_settings(data.get("settings", {}) or {}, base_dir)
    rules = build_rule_set(data.get("tracks", {}) or {}, data.get("titles", {}) or {})
    return AppConfig(settings=settings, rules=rules)


def load_config(path: Path) -> AppConfig:
    data = load_yaml_file(path)
    return build_config(data, base_dir=path.resolve().parent)
