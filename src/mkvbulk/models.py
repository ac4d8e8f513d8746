from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

if TYPE_CHECKING:  # pragma: no cover
    from .errors import DisposalWarning
    from .planner import InvocationSpec


class TrackKind(str, Enum):
    VIDEO = "video"
    AUDIO = "audio"
    SUBTITLE = "subtitle"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str) -> "TrackKind":
        normalized = str(value).strip().lower()
        aliases = {"text": "subtitle", "subtitles": "subtitle", "sub": "subtitle", "button": "other"}
        normalized = aliases.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError as exc:
            choices = ", ".join(kind.value for kind in cls)
            raise ValueError(f"Unknown track kind '{value}' (expected one of: {choices})") from exc


# Output order of kinds inside a plan.
KIND_ORDER: Tuple[TrackKind, ...] = (TrackKind.VIDEO, TrackKind.AUDIO, TrackKind.SUBTITLE, TrackKind.OTHER)


@dataclass(frozen=True, slots=True)
class Track:
    index: int
    kind: TrackKind
    language: Optional[str] = None
    title: Optional[str] = None
    is_default: bool = False
    is_forced: bool = False
    codec_id: Optional[str] = None
    codec: str = "unknown"
    channels: Optional[int] = None


@dataclass(frozen=True, slots=True)
class TrackList:
    tracks: Tuple[Track, ...] = ()
    source: Optional[Path] = None
    # Attachment file names in container order; mkvmerge numbers them from 1.
    attachments: Tuple[str, ...] = ()

    def __iter__(self) -> Iterator[Track]:
        return iter(self.tracks)

    def __len__(self) -> int:
        return len(self.tracks)

    def __bool__(self) -> bool:
        return bool(self.tracks)

    def of_kind(self, kind: TrackKind) -> Tuple[Track, ...]:
        return tuple(track for track in self.tracks if track.kind == kind)

    def indices(self) -> set[int]:
        return {track.index for track in self.tracks}


@dataclass(frozen=True, slots=True)
class TrackSelection:
    source_index: int
    kind: TrackKind
    language: Optional[str]
    title: Optional[str]
    default: bool
    forced: bool
    rule_index: int


@dataclass(frozen=True, slots=True)
class FlagDemotion:
    """A default/forced flag a rule asked for but the one-per-kind policy removed."""

    source_index: int
    kind: TrackKind
    flag: str
    kept_by: int


@dataclass(frozen=True, slots=True)
class TrackShortfall:
    """A kind that kept fewer tracks than its ``max_tracks`` target."""

    kind: TrackKind
    expected: int
    kept: int

    def __str__(self) -> str:
        return f"Kept {self.kept} of {self.expected} {self.kind.value} track(s)"


@dataclass(frozen=True, slots=True)
class TrackPlan:
    selections: Tuple[TrackSelection, ...] = ()
    dropped: Tuple[int, ...] = ()
    demotions: Tuple[FlagDemotion, ...] = ()
    shortfalls: Tuple[TrackShortfall, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.selections and not self.dropped

    @property
    def retained_indices(self) -> Tuple[int, ...]:
        return tuple(selection.source_index for selection in self.selections)

    def of_kind(self, kind: TrackKind) -> Tuple[TrackSelection, ...]:
        return tuple(selection for selection in self.selections if selection.kind == kind)


class JobState(str, Enum):
    PENDING = "pending"
    PROBING = "probing"
    PLANNING = "planning"
    INVOKING = "invoking"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.SUCCEEDED, JobState.FAILED)


# Legal forward transitions of the job lifecycle.
JOB_TRANSITIONS: Dict[JobState, Tuple[JobState, ...]] = {
    JobState.PENDING: (JobState.PROBING, JobState.FAILED),
    JobState.PROBING: (JobState.PLANNING, JobState.FAILED),
    JobState.PLANNING: (JobState.INVOKING, JobState.SUCCEEDED, JobState.FAILED),
    JobState.INVOKING: (JobState.SUCCEEDED, JobState.FAILED),
    JobState.SUCCEEDED: (),
    JobState.FAILED: (),
}


@dataclass(slots=True)
class Job:
    id: int
    source: Path
    output_path: Path
    title: Optional[str] = None
    # The output path holds this source's result from an earlier run.
    replace_output: bool = False
    plan: Optional[TrackPlan] = None
    invocation: Optional["InvocationSpec"] = None
    state: JobState = JobState.PENDING
    attempts: int = 0
    error: Optional[str] = None
    error_kind: Optional[str] = None
    noop: bool = False
    warnings: List[str] = field(default_factory=list)
    history: List[JobState] = field(default_factory=lambda: [JobState.PENDING])

    def snapshot(self) -> "JobOutcome":
        return JobOutcome(
            job_id=self.id,
            source=self.source,
            output_path=self.output_path,
            state=self.state,
            attempts=self.attempts,
            error=self.error,
            error_kind=self.error_kind,
            noop=self.noop,
            warnings=tuple(self.warnings),
            history=tuple(self.history),
            plan=self.plan,
        )


@dataclass(frozen=True, slots=True)
class JobOutcome:
    job_id: int
    source: Path
    output_path: Path
    state: JobState
    attempts: int = 0
    error: Optional[str] = None
    error_kind: Optional[str] = None
    noop: bool = False
    warnings: Tuple[str, ...] = ()
    history: Tuple[JobState, ...] = ()
    plan: Optional[TrackPlan] = None

    @property
    def succeeded(self) -> bool:
        return self.state == JobState.SUCCEEDED

    @property
    def failed(self) -> bool:
        return self.state == JobState.FAILED


@dataclass(frozen=True, slots=True)
class FailureRecord:
    source: Path
    reason: str
    kind: Optional[str] = None
    attempts: int = 0


@dataclass(slots=True)
class BatchResult:
    outcomes: Dict[Path, JobOutcome] = field(default_factory=dict)
    cancelled_sources: List[Path] = field(default_factory=list)
    cancelled: bool = False
    dry_run: bool = False

    def record(self, outcome: JobOutcome) -> None:
        self.outcomes[outcome.source] = outcome

    def record_cancelled(self, source: Path) -> None:
        self.cancelled_sources.append(source)

    @property
    def succeeded(self) -> int:
        return sum(1 for outcome in self.outcomes.values() if outcome.succeeded and not outcome.noop)

    @property
    def skipped(self) -> int:
        return sum(1 for outcome in self.outcomes.values() if outcome.succeeded and outcome.noop)

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.outcomes.values() if outcome.failed)

    @property
    def cancelled_count(self) -> int:
        return len(self.cancelled_sources)

    @property
    def total(self) -> int:
        return len(self.outcomes) + len(self.cancelled_sources)

    @property
    def failures(self) -> List[FailureRecord]:
        return [
            FailureRecord(
                source=outcome.source,
                reason=outcome.error or "unknown error",
                kind=outcome.error_kind,
                attempts=outcome.attempts,
            )
            for outcome in self.sorted_outcomes()
            if outcome.failed
        ]

    @property
    def warnings(self) -> List[Tuple[Path, str]]:
        return [(outcome.source, message) for outcome in self.sorted_outcomes() for message in outcome.warnings]

    @property
    def exit_code(self) -> int:
        return 1 if self.failed or self.cancelled else 0

    def sorted_outcomes(self) -> List[JobOutcome]:
        return [self.outcomes[source] for source in sorted(self.outcomes)]
