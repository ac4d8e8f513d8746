from __future__ import annotations

import re
import string
from typing import TYPE_CHECKING, Any

from .utils import strip_invalid_filename_chars

if TYPE_CHECKING:  # pragma: no cover
    from .config import TitleSettings

SMALL_WORDS = frozenset(
    {"a", "an", "and", "as", "at", "but", "by", "en", "for", "if", "in", "nor", "of", "on", "or", "per", "the", "to", "v", "vs", "via"}
)

# Placeholders available to track title templates.
TITLE_PLACEHOLDERS = frozenset(
    {"language", "language_name", "title", "codec", "codec_id", "channels", "index", "kind", "position"}
)

_WORD_SPLIT = re.compile(r"(\s+)")
_LOWER_AFTER_DASH = re.compile(r"(\s[–-]\s)([^\W\d_])")


class TemplateDict(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def render_template(template: str, context: dict[str, Any]) -> str:
    enriched = TemplateDict(context)
    return template.format_map(enriched)


def _capitalize_part(part: str) -> str:
    for position, char in enumerate(part):
        if char.isalpha():
            return part[:position] + char.upper() + part[position + 1 :]
    return part


def _keeps_own_case(word: str) -> bool:
    # Acronyms, mixed case and codec names such as "DTS-HD", "iTunes" or "E-AC3".
    letters = [char for char in word if char.isalpha()]
    return any(char.isupper() for char in letters[1:]) or any(char.isdigit() for char in word)


def title_case(text: str) -> str:
    """Title-case ``text`` leaving small words lower-cased and acronyms untouched."""
    tokens = _WORD_SPLIT.split(text)
    word_positions = [position for position, token in enumerate(tokens) if token and not token.isspace()]
    if not word_positions:
        return text
    first, last = word_positions[0], word_positions[-1]
    previous = ""
    for position in word_positions:
        word = tokens[position]
        if _keeps_own_case(word):
            result = word
        elif word.lower() in SMALL_WORDS and position not in (first, last) and not previous.endswith(":"):
            result = word.lower()
        else:
            result = "-".join(_capitalize_part(part) for part in word.lower().split("-"))
        tokens[position] = result
        previous = word
    return "".join(tokens)


def fix_case_after_dashes(text: str) -> str:
    return _LOWER_AFTER_DASH.sub(lambda match: match.group(1) + match.group(2).upper(), text)


def normalize_title(text: str | None, settings: TitleSettings) -> str:
    """Apply the configured title normalization to a rendered title."""
    line = (text or "").strip()
    if not line:
        return ""
    if settings.title_case:
        line = title_case(line)
    for pattern, replacement in settings.regular_expressions:
        line = pattern.sub(replacement, line)
    for needle, replacement in settings.strings:
        line = line.replace(needle, replacement)
    if settings.fix_case_after_dashes:
        line = fix_case_after_dashes(line)
    return line.strip()


def normalize_filename(text: str, settings: TitleSettings) -> str:
    line = normalize_title(text.replace("? ", " - "), settings)
    if settings.strip_invalid_chars:
        line = strip_invalid_filename_chars(line)
    return line.strip()


def check_template(template: str, placeholders: frozenset[str]) -> None:
    """Raise ValueError when ``template`` cannot be rendered.

    Every known placeholder is filled with a sample value so format specs are
    exercised; unknown placeholders are reported.
    """
    sample: dict[str, Any] = {name: "" for name in placeholders}
    sample.update({"index": 0, "position": 1})
    try:
        names = {field for _, field, _, _ in string.Formatter().parse(template) if field}
        render_template(template, sample)
    except (ValueError, IndexError, KeyError, AttributeError) as exc:
        raise ValueError(f"Invalid title template '{template}': {exc}") from exc
    unknown = sorted(name for name in names if name not in placeholders)
    if unknown:
        raise ValueError(f"Unknown placeholder(s) in title template '{template}': {', '.join(unknown)}")
