"""Language code canonicalization backed by ``pycountry``.

MediaInfo reports ISO 639-1 codes (``en``) while rules are usually written
with ISO 639-2 codes (``eng``, or the bibliographic ``fre``/``ger``). All of
them are folded onto the ISO 639-2/T code before comparison.
"""

from __future__ import annotations

import functools
from typing import Optional

import pycountry

UNDEFINED = "und"
WILDCARD = "any"

# Codes that mean "no specific language".
UNKNOWN_CODES = frozenset({"", UNDEFINED, "zxx", "mis", "mul", "unknown"})


@functools.lru_cache(maxsize=1024)
def _lookup(code: str):
    for field_name in ("alpha_3", "alpha_2", "bibliographic"):
        try:
            language = pycountry.languages.get(**{field_name: code})
        except (KeyError, LookupError):
            language = None
        if language is not None:
            return language
    return None


def is_unknown(code: Optional[str]) -> bool:
    return code is None or code.strip().lower() in UNKNOWN_CODES


def canonical_code(code: Optional[str]) -> Optional[str]:
    """Return the ISO 639-2/T code for ``code``; None for unknown languages.

    Codes pycountry does not know (e.g. regional BCP 47 tags) are lowered and
    returned as-is so they can still be matched literally.
    """
    if is_unknown(code):
        return None
    cleaned = code.strip().lower()
    primary = cleaned.split("-", 1)[0].split("_", 1)[0]
    language = _lookup(primary)
    if language is None:
        return cleaned
    return language.alpha_3


def language_name(code: Optional[str]) -> str:
    """Human readable name for ``code`` ("English"); "Unknown" when undefined."""
    canonical = canonical_code(code)
    if canonical is None:
        return "Unknown"
    language = _lookup(canonical)
    if language is None:
        return canonical
    return language.name


def languages_match(track_language: Optional[str], preferred: str) -> bool:
    if preferred.strip().lower() == WILDCARD:
        return True
    # "und" in a preference list selects tracks without a known language.
    if is_unknown(preferred):
        return is_unknown(track_language)
    track_code = canonical_code(track_language)
    return track_code is not None and track_code == canonical_code(preferred)


def mux_language(code: Optional[str]) -> str:
    """Language value handed to the multiplexer (``und`` when unknown)."""
    return canonical_code(code) or UNDEFINED
