"""Rule evaluation: which tracks survive, in what order, with which flags.

``evaluate`` is a pure function of the track list and the rule set. Tracks
are ranked by ``(rule position, language position, original position)`` so
the first matching rule always wins and equally ranked tracks keep their
relative order from the source file.

Only one track per kind keeps the ``default`` flag and only one keeps the
``forced`` flag. When several matching rules ask for the same flag the first
track in plan order keeps it; every removed flag is recorded on the plan as a
:class:`FlagDemotion`.

``max_tracks`` is both a cap and a target: surplus tracks are dropped, and a
kind that keeps fewer tracks is reported as a :class:`TrackShortfall` without
failing the file.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .config import RuleSet, SelectionRule
from .languages import canonical_code, is_unknown, language_name, languages_match, mux_language
from .logging_utils import render_fields_block
from .models import (
    KIND_ORDER,
    FlagDemotion,
    Track,
    TrackKind,
    TrackList,
    TrackPlan,
    TrackSelection,
    TrackShortfall,
)
from .probe import channel_layout
from .templating import normalize_title, render_template

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _Match:
    track: Track
    rule_index: int
    rule: SelectionRule
    language: Optional[str]
    rank: Tuple[int, int, int]


def effective_language(track: Track, rules: RuleSet) -> Optional[str]:
    if not is_unknown(track.language):
        return track.language
    return rules.undefined_language.get(track.kind)


def match_track(
    track: Track,
    position: int,
    rules: RuleSet,
) -> Optional[_Match]:
    language = effective_language(track, rules)
    for rule_index, rule in rules.rules_for(track.kind):
        for language_index, preferred in enumerate(rule.languages):
            if languages_match(language, preferred):
                return _Match(
                    track=track,
                    rule_index=rule_index,
                    rule=rule,
                    language=language,
                    rank=(rule_index, language_index, position),
                )
    return None


def _title_context(match: _Match, position: int) -> Dict[str, object]:
    track = match.track
    return {
        "language": canonical_code(match.language) or "und",
        "language_name": language_name(match.language),
        "title": track.title or "",
        "codec": track.codec,
        "codec_id": track.codec_id or "",
        "channels": channel_layout(track.channels),
        "index": track.index,
        "kind": track.kind.value,
        "position": position,
    }


def _render_title(match: _Match, position: int, rules: RuleSet) -> Optional[str]:
    template = match.rule.title_template
    if template is None:
        return match.track.title
    rendered = normalize_title(render_template(template, _title_context(match, position)), rules.titles)
    return rendered or None


def _select_kind(
    kind: TrackKind,
    matches: List[_Match],
    rules: RuleSet,
) -> Tuple[List[TrackSelection], List[int], List[FlagDemotion], Optional[TrackShortfall]]:
    ordered = sorted(matches, key=lambda item: item.rank)
    cap = rules.max_tracks.get(kind)
    surplus: List[int] = []
    if cap is not None and len(ordered) > cap:
        surplus = [item.track.index for item in ordered[cap:]]
        ordered = ordered[:cap]
    shortfall: Optional[TrackShortfall] = None
    if cap is not None and len(ordered) < cap:
        shortfall = TrackShortfall(kind=kind, expected=cap, kept=len(ordered))

    selections: List[TrackSelection] = []
    demotions: List[FlagDemotion] = []
    holders: Dict[str, int] = {}
    for position, match in enumerate(ordered, start=1):
        flags = {"default": match.rule.set_default, "forced": match.rule.set_forced}
        for flag, requested in list(flags.items()):
            if not requested:
                continue
            if flag in holders:
                flags[flag] = False
                demotions.append(
                    FlagDemotion(
                        source_index=match.track.index,
                        kind=kind,
                        flag=flag,
                        kept_by=holders[flag],
                    )
                )
            else:
                holders[flag] = match.track.index
        selections.append(
            TrackSelection(
                source_index=match.track.index,
                kind=kind,
                language=mux_language(match.language),
                title=_render_title(match, position, rules),
                default=flags["default"],
                forced=flags["forced"],
                rule_index=match.rule_index,
            )
        )
    return selections, surplus, demotions, shortfall


def evaluate(tracks: TrackList, rules: RuleSet) -> TrackPlan:
    """Decide which tracks of ``tracks`` to keep and how to flag them."""
    if not tracks:
        return TrackPlan()

    matches: Dict[TrackKind, List[_Match]] = {kind: [] for kind in KIND_ORDER}
    dropped: List[int] = []
    for position, track in enumerate(tracks):
        match = match_track(track, position, rules)
        if match is None:
            dropped.append(track.index)
        else:
            matches[track.kind].append(match)

    selections: List[TrackSelection] = []
    demotions: List[FlagDemotion] = []
    shortfalls: List[TrackShortfall] = []
    for kind in KIND_ORDER:
        kept, surplus, demoted, shortfall = _select_kind(kind, matches[kind], rules)
        selections.extend(kept)
        dropped.extend(surplus)
        demotions.extend(demoted)
        if shortfall is not None:
            shortfalls.append(shortfall)

    plan = TrackPlan(
        selections=tuple(selections),
        dropped=tuple(sorted(dropped)),
        demotions=tuple(demotions),
        shortfalls=tuple(shortfalls),
    )
    if demotions:
        LOGGER.debug(
            render_fields_block(
                "Flags Demoted",
                {
                    "Source": tracks.source or "<memory>",
                    "Demotions": [
                        f"track {item.source_index} lost '{item.flag}' (kept by track {item.kept_by})"
                        for item in demotions
                    ],
                },
                pad_top=True,
            )
        )
    return plan
