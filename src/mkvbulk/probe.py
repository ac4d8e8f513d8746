"""Track metadata probe backed by ``mediainfo --Output=JSON``.

``probe`` never raises for a bad file: it returns one of the result variants
below and the scheduler turns the failures into a :class:`ProbeError` on the
job. Only a structurally broken response (no track table, or two tracks
claiming the same id) is a failure; individual fields that cannot be read
fall back to "unknown".
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

from .errors import ProbeError
from .languages import is_unknown
from .logging_utils import render_fields_block
from .models import Track, TrackKind, TrackList
from .tools import ToolNotFoundError, ToolRunner
from .utils import parse_bool

LOGGER = logging.getLogger(__name__)

# MediaInfo "@type" values.
_TRACK_TYPES = {
    "video": TrackKind.VIDEO,
    "audio": TrackKind.AUDIO,
    "text": TrackKind.SUBTITLE,
}
_PSEUDO_TRACK_TYPES = frozenset({"general", "menu"})

CODEC_NAMES = {
    "V_MS/VFW/FOURCC": "VFW",
    "V_UNCOMPRESSED": "Raw",
    "V_MPEG4/ISO/SP": "MPEG-4",
    "V_MPEG4/ISO/ASP": "MPEG-4",
    "V_MPEG4/ISO/AP": "MPEG-4",
    "V_MPEG4/MS/V3": "MPEG-4",
    "V_MPEG4/ISO/AVC": "H264",
    "V_MPEGH/ISO/HEVC": "HEVC",
    "V_MPEG1": "MPEG-1",
    "V_MPEG2": "MPEG-2",
    "V_AV1": "AV1",
    "V_AVS2": "AVS2",
    "V_QUICKTIME": "QuickTime",
    "V_THEORA": "Theora",
    "V_PRORES": "ProRes",
    "V_VP8": "VP8",
    "V_VP9": "VP9",
    "V_FFV1": "FFV1",
    "A_MPEG/L3": "MP3",
    "A_MPEG/L2": "MP2",
    "A_MPEG/L1": "MP1",
    "A_MPC": "Musepack",
    "A_AC3": "AC3",
    "A_EAC3": "E-AC3",
    "A_TRUEHD": "TrueHD",
    "A_ALAC": "ALAC",
    "A_DTS": "DTS",
    "A_DTS/EXPRESS": "DTS Express",
    "A_DTS/LOSSLESS": "DTS-HD",
    "A_VORBIS": "Vorbis",
    "A_OPUS": "Opus",
    "A_FLAC": "FLAC",
    "A_MS/ACM": "ACM",
    "A_TTA1": "TTA",
    "A_WAVPACK4": "WavPack",
    "S_TEXT/UTF8": "SRT",
    "S_TEXT/SSA": "SSA",
    "S_TEXT/ASS": "ASS",
    "S_TEXT/WEBVTT": "WebVTT",
    "S_IMAGE/BMP": "Bitmap",
    "S_DVBSUB": "DVB",
    "S_VOBSUB": "VobSub",
    "S_HDMV/PGS": "PGS",
    "S_HDMV/TEXTST": "TextST",
    "S_KATE": "Kate",
}

# Codec id families where only the prefix matters (A_AAC/MPEG4/LC/SBR, ...).
_CODEC_PREFIXES = (
    ("A_AAC", "AAC"),
    ("A_AC3", "AC3"),
    ("A_PCM", "PCM"),
    ("A_REAL", "RealAudio"),
    ("A_QUICKTIME", "QuickTime"),
    ("V_REAL", "RealVideo"),
)

_CHANNEL_LAYOUTS = {1: "1.0", 2: "2.0", 3: "2.1", 6: "5.1", 7: "6.1", 8: "7.1"}


def codec_name(codec_id: Optional[str]) -> str:
    if not codec_id:
        return "unknown"
    key = codec_id.strip().upper()
    if key in CODEC_NAMES:
        return CODEC_NAMES[key]
    for prefix, name in _CODEC_PREFIXES:
        if key.startswith(prefix):
            return name
    return "unknown"


def channel_layout(channels: Optional[int]) -> str:
    """Display label for a channel count ("5.1" for 6 channels)."""
    if not channels:
        return ""
    return _CHANNEL_LAYOUTS.get(channels, f"{channels}ch")


@dataclass(frozen=True, slots=True)
class ProbeOk:
    tracks: TrackList

    ok = True


@dataclass(frozen=True, slots=True)
class MalformedTable:
    reason: str

    ok = False

    def to_error(self, path: Path) -> ProbeError:
        return ProbeError(f"Malformed track table for {path}: {self.reason}")


@dataclass(frozen=True, slots=True)
class ToolNotFound:
    tool: str

    ok = False

    def to_error(self, path: Path) -> ProbeError:
        return ProbeError(f"Probe tool not found: {self.tool}")


@dataclass(frozen=True, slots=True)
class ToolFailed:
    reason: str
    cancelled: bool = False

    ok = False

    def to_error(self, path: Path) -> ProbeError:
        return ProbeError(f"Probe failed for {path}: {self.reason}", cancelled=self.cancelled)


ProbeResult = Union[ProbeOk, MalformedTable, ToolNotFound, ToolFailed]


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _int(value: Any) -> Optional[int]:
    text = _text(value)
    if text is None:
        return None
    # Some containers report "0-1" style stream orders; the last part is the
    # position inside the container.
    text = text.split("-")[-1].split(" ")[0]
    try:
        return int(text)
    except ValueError:
        return None


def _flag(value: Any) -> bool:
    return bool(parse_bool(value))


def _track_kind(track_type: str) -> TrackKind:
    return _TRACK_TYPES.get(track_type, TrackKind.OTHER)


def _container_index(entry: dict) -> Optional[int]:
    """mkvmerge track id of a MediaInfo entry, or None for derived streams.

    Embedded captions ("1-CC1") and similar streams carry no StreamOrder and
    no numeric ID; they are not container tracks and cannot be selected.
    """
    order = _int(entry.get("StreamOrder"))
    if order is not None:
        return order
    track_id = _text(entry.get("ID"))
    if track_id is not None and track_id.isdigit():
        return int(track_id) - 1
    return None


def _attachment_names(general: dict) -> tuple[str, ...]:
    # "font1.ttf / font2.otf" on the General entry, newer builds nest it in "extra".
    extra = general.get("extra")
    raw = general.get("Attachments")
    if raw is None and isinstance(extra, dict):
        raw = extra.get("Attachments")
    text = _text(raw)
    if text is None:
        return ()
    return tuple(name.strip() for name in text.split(" / ") if name.strip())


def parse_track_table(payload: str, source: Optional[Path] = None) -> Union[TrackList, MalformedTable]:
    try:
        document = json.loads(payload)
    except (TypeError, ValueError) as exc:
        return MalformedTable(f"invalid JSON ({exc})")

    media = document.get("media") if isinstance(document, dict) else None
    if not isinstance(media, dict):
        return MalformedTable("no 'media' object in probe output")
    entries = media.get("track")
    if not isinstance(entries, list):
        return MalformedTable("no 'track' table in probe output")

    tracks: list[Track] = []
    attachments: tuple[str, ...] = ()
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        track_type = str(entry.get("@type", "")).strip().lower()
        if track_type == "general":
            attachments = _attachment_names(entry)
        if track_type in _PSEUDO_TRACK_TYPES:
            continue

        index = _container_index(entry)
        if index is None:
            LOGGER.debug("Ignoring %s stream without a container track id: %s", track_type, entry.get("ID"))
            continue

        language = _text(entry.get("Language"))
        codec_id = _text(entry.get("CodecID"))
        tracks.append(
            Track(
                index=index,
                kind=_track_kind(track_type),
                language=None if is_unknown(language) else language,
                title=_text(entry.get("Title")),
                is_default=_flag(entry.get("Default")),
                is_forced=_flag(entry.get("Forced")),
                codec_id=codec_id,
                codec=codec_name(codec_id),
                channels=_int(entry.get("Channels")),
            )
        )

    track_list = TrackList(tracks=tuple(tracks), source=source, attachments=attachments)
    if len(track_list.indices()) != len(track_list):
        return MalformedTable("duplicate track ids in probe output")
    return track_list


def probe(
    path: Path,
    *,
    runner: ToolRunner,
    executable: str = "mediainfo",
    timeout: Optional[float] = None,
) -> ProbeResult:
    """Read the track table of ``path``; one external process per call."""
    try:
        result = runner.run([executable, "--Output=JSON", str(path)], timeout=timeout)
    except ToolNotFoundError:
        return ToolNotFound(executable)
    except OSError as exc:
        return ToolFailed(f"unable to start {executable}: {exc}")

    if result.cancelled:
        return ToolFailed("cancelled", cancelled=True)
    if result.timed_out:
        return ToolFailed(f"{executable} timed out after {timeout:g}s" if timeout else f"{executable} timed out")
    if result.returncode != 0:
        return ToolFailed(f"{executable} exited with status {result.returncode}: {result.output or 'no output'}")

    parsed = parse_track_table(result.stdout, path)
    if isinstance(parsed, MalformedTable):
        return parsed

    LOGGER.debug(
        render_fields_block(
            "Probed File",
            {
                "Source": path,
                "Tracks": len(parsed),
                "Attachments": len(parsed.attachments),
                "Kinds": ", ".join(f"{track.index}:{track.kind.value}" for track in parsed),
            },
            pad_top=True,
        )
    )
    return ProbeOk(parsed)
