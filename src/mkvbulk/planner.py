"""Turn a :class:`TrackPlan` into a concrete ``mkvmerge`` invocation.

The planner only computes; it never runs the multiplexer. Output paths are
derived with an explicit ``reserved`` set owned by the caller, so planning the
same tree twice against the same directory state yields the same paths. An
output that an earlier run recorded for the same source is reused rather than
suffixed again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Set, Tuple

from .config import NamingSettings, Settings, TitleSettings
from .errors import ConfigError, PlanError
from .models import TrackKind, TrackPlan
from .templating import normalize_filename
from .utils import ensure_directory, is_relative_to, yes_no

LOGGER = logging.getLogger(__name__)

OUTPUT_EXTENSION = ".mkv"

# (kind, option listing the kept ids, option used when nothing is kept)
_KIND_OPTIONS: Tuple[Tuple[TrackKind, str, str], ...] = (
    (TrackKind.VIDEO, "--video-tracks", "--no-video"),
    (TrackKind.AUDIO, "--audio-tracks", "--no-audio"),
    (TrackKind.SUBTITLE, "--subtitle-tracks", "--no-subtitles"),
    (TrackKind.OTHER, "--button-tracks", "--no-buttons"),
)


@dataclass(frozen=True, slots=True)
class InvocationSpec:
    source: Path
    output_path: Path
    temp_path: Path
    arguments: Tuple[str, ...]
    executable: str = "mkvmerge"
    title: Optional[str] = None
    # The output path holds this source's previous result and may be replaced.
    replace_existing: bool = False

    @property
    def command(self) -> Tuple[str, ...]:
        return (self.executable, *self.arguments)


def load_output_names(naming: NamingSettings, titles: TitleSettings) -> Optional[List[str]]:
    """Read the names file and return numbered file stems ("01 - Name").

    Returns None when no names file is configured. Blank lines are ignored.
    """
    if naming.names_file is None:
        return None
    try:
        lines = naming.names_file.read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        raise ConfigError(f"Unable to read names file {naming.names_file}: {exc}") from exc

    names: List[str] = []
    index = naming.start_from
    for line in lines:
        if not line.strip():
            continue
        cleaned = normalize_filename(line, titles)
        names.append(f"{index:0{naming.index_padding}d} - {cleaned}")
        index += 1
    return names


def check_name_count(names: Optional[Sequence[str]], sources: Sequence[Path]) -> None:
    if names is not None and len(names) != len(sources):
        raise ConfigError(
            f"The names file lists {len(names)} name(s) but {len(sources)} file(s) were discovered"
        )


def display_title(name: str) -> str:
    """Container title for a numbered output stem ("01 - Name" -> "Name")."""
    head, separator, tail = name.partition(" - ")
    if separator and head.isdigit():
        return tail
    return name


class InvocationPlanner:
    def __init__(
        self,
        *,
        source_root: Path,
        output_dir: Path,
        temp_dir: Path,
        executable: str = "mkvmerge",
        keep_attachments: bool = True,
        attachment_extensions: Sequence[str] = (),
        keep_chapters: bool = True,
    ) -> None:
        self.source_root = source_root
        self.output_dir = output_dir
        self.temp_dir = temp_dir
        self.executable = executable
        self.keep_attachments = keep_attachments
        self.attachment_extensions = tuple(
            extension.lower() if extension.startswith(".") else f".{extension.lower()}" for extension in attachment_extensions
        )
        self.keep_chapters = keep_chapters

    @classmethod
    def from_settings(cls, settings: Settings) -> "InvocationPlanner":
        return cls(
            source_root=settings.source_dir,
            output_dir=settings.output_dir,
            temp_dir=settings.resolved_temp_dir,
            executable=settings.tools.mkvmerge,
            keep_attachments=settings.keep_attachments,
            attachment_extensions=settings.attachment_extensions,
            keep_chapters=settings.keep_chapters,
        )

    def derive_output_path(
        self,
        source: Path,
        reserved: Optional[Set[Path]] = None,
        *,
        name: Optional[str] = None,
        owned: Optional[Path] = None,
    ) -> Path:
        """Pick the output path for ``source``.

        The output mirrors the source layout below ``output_dir`` (or sits
        directly in ``output_dir`` when ``name`` comes from a names file). A
        path that exists on disk or is already in ``reserved`` gets the first
        free ``" (n)"`` suffix, starting at 2. ``owned`` is the output an
        earlier run wrote for this same source; it counts as free even though
        it exists. The chosen path is added to ``reserved``.
        """
        if name is not None:
            directory, stem = self.output_dir, name
        else:
            relative = source.relative_to(self.source_root) if is_relative_to(source, self.source_root) else Path(source.name)
            directory, stem = self.output_dir / relative.parent, relative.stem

        taken = reserved if reserved is not None else set()
        candidate = directory / f"{stem}{OUTPUT_EXTENSION}"
        suffix = 2
        while candidate in taken or (candidate != owned and candidate.exists()):
            candidate = directory / f"{stem} ({suffix}){OUTPUT_EXTENSION}"
            suffix += 1
        taken.add(candidate)
        return candidate

    def temp_path_for(self, job_id: int, output_path: Path) -> Path:
        return self.temp_dir / f"{job_id}-{output_path.name}"

    def select_attachments(self, attachments: Sequence[str]) -> Optional[Tuple[int, ...]]:
        """mkvmerge ids (1-based) of the attachments to keep.

        None means keep everything: no extension filter is configured or the
        probe listed no attachments.
        """
        if not self.attachment_extensions or not attachments:
            return None
        return tuple(
            number
            for number, name in enumerate(attachments, start=1)
            if Path(name).suffix.lower() in self.attachment_extensions
        )

    def _attachment_arguments(self, attachments: Sequence[str]) -> List[str]:
        if not self.keep_attachments:
            return ["--no-attachments"]
        kept = self.select_attachments(attachments)
        if kept is None or len(kept) == len(attachments):
            return []
        if not kept:
            return ["--no-attachments"]
        return ["--attachments", ",".join(str(number) for number in kept)]

    def build_arguments(
        self,
        source: Path,
        track_plan: TrackPlan,
        temp_path: Path,
        title: Optional[str] = None,
        attachments: Sequence[str] = (),
    ) -> Tuple[str, ...]:
        args: List[str] = ["-o", str(temp_path)]
        if title:
            args.extend(["--title", title])

        for kind, keep_option, none_option in _KIND_OPTIONS:
            ids = [str(selection.source_index) for selection in track_plan.of_kind(kind)]
            if ids:
                args.extend([keep_option, ",".join(ids)])
            else:
                args.append(none_option)
        args.extend(self._attachment_arguments(attachments))
        if not self.keep_chapters:
            args.append("--no-chapters")

        for selection in track_plan.selections:
            track_id = selection.source_index
            args.extend(["--language", f"{track_id}:{selection.language or 'und'}"])
            if selection.title is not None:
                args.extend(["--track-name", f"{track_id}:{selection.title}"])
            args.extend(["--default-track-flag", f"{track_id}:{yes_no(selection.default)}"])
            args.extend(["--forced-display-flag", f"{track_id}:{yes_no(selection.forced)}"])

        args.append(str(source))
        args.extend(
            ["--track-order", ",".join(f"0:{selection.source_index}" for selection in track_plan.selections)]
        )
        return tuple(args)

    def plan(
        self,
        source: Path,
        track_plan: TrackPlan,
        *,
        job_id: int = 0,
        output_path: Optional[Path] = None,
        reserved: Optional[Set[Path]] = None,
        title: Optional[str] = None,
        attachments: Sequence[str] = (),
        owned: Optional[Path] = None,
        replace_existing: bool = False,
        create_dirs: bool = True,
    ) -> InvocationSpec:
        if not track_plan.of_kind(TrackKind.VIDEO):
            raise PlanError(f"No video track selected for {source}; a file without video is not a valid output")

        if output_path is None:
            output_path = self.derive_output_path(source, reserved, owned=owned)
            replace_existing = output_path == owned
        temp_path = self.temp_path_for(job_id, output_path)

        if create_dirs:
            for directory in (output_path.parent, temp_path.parent):
                try:
                    ensure_directory(directory)
                except OSError as exc:
                    raise PlanError(f"Unable to create directory {directory}: {exc}") from exc

        return InvocationSpec(
            source=source,
            output_path=output_path,
            temp_path=temp_path,
            arguments=self.build_arguments(source, track_plan, temp_path, title, attachments),
            executable=self.executable,
            title=title,
            replace_existing=replace_existing,
        )
