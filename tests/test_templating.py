from __future__ import annotations

import re

import pytest

from mkvbulk.config import TitleSettings
from mkvbulk.templating import (
    TITLE_PLACEHOLDERS,
    check_template,
    fix_case_after_dashes,
    normalize_filename,
    normalize_title,
    render_template,
    title_case,
)


class TestRenderTemplate:
    def test_fills_known_placeholders(self) -> None:
        assert render_template("{language_name} {channels}", {"language_name": "English", "channels": "5.1"}) == "English 5.1"

    def test_unknown_placeholders_are_left_verbatim(self) -> None:
        assert render_template("{language} {missing}", {"language": "eng"}) == "eng {missing}"


class TestCheckTemplate:
    def test_accepts_known_placeholders(self) -> None:
        check_template("{language_name} ({codec}) #{position:02d}", TITLE_PLACEHOLDERS)

    def test_rejects_unknown_placeholder(self) -> None:
        with pytest.raises(ValueError, match="Unknown placeholder"):
            check_template("{language} {bitrate}", TITLE_PLACEHOLDERS)

    def test_rejects_unbalanced_braces(self) -> None:
        with pytest.raises(ValueError, match="Invalid title template"):
            check_template("{language", TITLE_PLACEHOLDERS)


class TestTitleCase:
    """Tests for the hand-rolled title casing."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("the lord of the rings", "The Lord of the Rings"),
            ("return of the king", "Return of the King"),
            ("what it is for", "What It Is For"),
            ("part one: the beginning", "Part One: The Beginning"),
            ("english DTS-HD audio", "English DTS-HD Audio"),
            ("x-men in 5.1 sound", "X-Men in 5.1 Sound"),
        ],
    )
    def test_title_case(self, text: str, expected: str) -> None:
        assert title_case(text) == expected

    def test_blank_text_is_unchanged(self) -> None:
        assert title_case("   ") == "   "

    def test_fix_case_after_dashes(self) -> None:
        assert fix_case_after_dashes("Pilot - the return – a story") == "Pilot - The return – A story"


class TestNormalize:
    def test_default_settings_title_case(self) -> None:
        assert normalize_title("  the end  ", TitleSettings()) == "The End"

    def test_empty_input_gives_empty_string(self) -> None:
        assert normalize_title(None, TitleSettings()) == ""

    def test_regex_then_string_replacements(self) -> None:
        settings = TitleSettings(
            title_case=False,
            regular_expressions=((re.compile(r"\s*\[.*?\]"), ""),),
            strings=(("Eng", "English"),),
        )

        assert normalize_title("Eng [commentary]", settings) == "English"

    def test_title_case_can_be_disabled(self) -> None:
        settings = TitleSettings(title_case=False, fix_case_after_dashes=False)

        assert normalize_title("the end - again", settings) == "the end - again"

    def test_filename_replaces_question_marks_and_strips_invalid(self) -> None:
        assert normalize_filename("who is it? the return", TitleSettings()) == "Who Is It - The Return"
        assert normalize_filename("end: part 2", TitleSettings()) == "End Part 2"

    def test_filename_keeps_invalid_chars_when_disabled(self) -> None:
        settings = TitleSettings(strip_invalid_chars=False)

        assert normalize_filename("end: part 2", settings) == "End: Part 2"
