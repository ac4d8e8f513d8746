"""Batch orchestration: discover files, run one job per file, collect results.

A fixed set of worker threads takes jobs from a queue and posts a
:class:`JobOutcome` for each one to a results queue. The coordinating thread
is the only writer of the :class:`BatchResult` and of the output manifest,
so results are keyed by source path and never depend on which worker
finished first.

Each job is owned by the worker that dequeued it. Probe and plan failures
fail the job at once; multiplexer failures are retried with exponential
backoff up to ``max_retries``. Failures caused by cancelling the batch are
reported as cancelled; any other failure stays a failure even when it happens
after cancellation.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from pathlib import Path
from queue import Empty, Queue
from typing import List, Mapping, Optional, Set, Union

from rich.progress import Progress

from .config import DEFAULT_OUTPUT_DIR_NAME, AppConfig, RuleSet, Settings
from .disposition import DispositionManager
from .errors import ConfigError, InvocationError, MkvBulkError, PlanError, ProbeError
from .file_discovery import discover_sources
from .logging_utils import render_fields_block, render_section_block
from .models import JOB_TRANSITIONS, BatchResult, Job, JobOutcome, JobState
from .muxer import invoke
from .output_manifest import OutputManifestStore
from .planner import InvocationPlanner, check_name_count, display_title, load_output_names
from .probe import probe
from .rules import evaluate
from .templating import normalize_title
from .tools import ToolRunner

LOGGER = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 30.0
CANCELLED_KIND = "cancelled"

# Posted by a worker when it stops taking jobs.
_WORKER_DONE = object()


def retry_delay(backoff: float, attempt: int) -> float:
    """Delay before retry number ``attempt`` (1-based)."""
    return min(backoff * (2 ** (attempt - 1)), MAX_BACKOFF_SECONDS)


class BatchRunner:
    def __init__(
        self,
        config: AppConfig,
        *,
        runner: Optional[ToolRunner] = None,
        planner: Optional[InvocationPlanner] = None,
        disposition: Optional[DispositionManager] = None,
        show_progress: bool = True,
    ) -> None:
        self.config = config
        self.settings: Settings = config.settings
        self.rules: RuleSet = config.rules
        self.runner = runner or ToolRunner()
        self.planner = planner or InvocationPlanner.from_settings(self.settings)
        self.disposition = disposition or DispositionManager.from_settings(self.settings)
        self.show_progress = show_progress
        self.manifest = OutputManifestStore(self.settings.output_dir)
        self._cancel_event = threading.Event()

    @staticmethod
    def _format_log(event: str, fields: Optional[Mapping[str, object]] = None) -> str:
        return render_fields_block(event, fields or {}, pad_top=True)

    @property
    def dry_run(self) -> bool:
        return self.settings.dry_run

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Stop dequeuing jobs and terminate running external processes."""
        if self._cancel_event.is_set():
            return
        self._cancel_event.set()
        LOGGER.warning(self._format_log("Batch Cancelled", {"Running Tools": self.runner.running}))
        self.runner.terminate_all()

    # Job construction

    def prepare_jobs(self) -> List[Job]:
        """Discover sources and derive every output path in discovery order."""
        settings = self.settings
        if not settings.source_dir.is_dir():
            raise ConfigError(f"Source directory does not exist: {settings.source_dir}")

        sources = discover_sources(
            settings.source_dir,
            settings.extensions,
            exclude_dirs=(settings.output_dir, settings.resolved_temp_dir),
        )
        names = load_output_names(settings.naming, self.rules.titles)
        check_name_count(names, sources)

        reserved: Set[Path] = set()
        jobs: List[Job] = []
        for job_id, source in enumerate(sources):
            name = names[job_id] if names is not None else None
            owned = self.manifest.output_for(source)
            output_path = self.planner.derive_output_path(source, reserved, name=name, owned=owned)
            title: Optional[str] = None
            if settings.naming.set_file_title:
                title = display_title(name) if name is not None else normalize_title(source.stem, self.rules.titles)
            jobs.append(
                Job(
                    id=job_id,
                    source=source,
                    output_path=output_path,
                    title=title or None,
                    replace_output=output_path == owned,
                )
            )
        return jobs

    # Per-job pipeline

    @staticmethod
    def _transition(job: Job, state: JobState) -> None:
        if state not in JOB_TRANSITIONS[job.state]:
            raise RuntimeError(f"Illegal job transition {job.state.value} -> {state.value} for {job.source}")
        job.state = state
        job.history.append(state)

    def _fail(self, job: Job, error: Exception, kind: str) -> None:
        job.error = str(error) or error.__class__.__name__
        cancelled = isinstance(error, MkvBulkError) and error.cancelled
        job.error_kind = CANCELLED_KIND if cancelled else kind
        self._transition(job, JobState.FAILED)
        if job.error_kind == CANCELLED_KIND:
            return
        LOGGER.error(
            self._format_log(
                "Job Failed",
                {
                    "Source": job.source,
                    "Stage": kind,
                    "Attempts": job.attempts,
                    "Reason": job.error,
                },
            )
        )

    def _invoke_with_retries(self, job: Job) -> None:
        if job.invocation is None:
            raise RuntimeError(f"No invocation planned for {job.source}")
        while True:
            job.attempts += 1
            try:
                invoke(job.invocation, self.runner, timeout=self.settings.invocation_timeout)
                return
            except InvocationError as exc:
                if not exc.retryable or job.attempts > self.settings.max_retries or self.cancelled:
                    raise
                delay = retry_delay(self.settings.retry_backoff, job.attempts)
                LOGGER.warning(
                    self._format_log(
                        "Retrying Invocation",
                        {
                            "Source": job.source,
                            "Attempt": f"{job.attempts}/{self.settings.max_retries + 1}",
                            "Reason": exc,
                            "Delay": f"{delay:g}s",
                        },
                    )
                )
                if self._cancel_event.wait(delay):
                    raise InvocationError("Cancelled", retryable=False, cancelled=True) from exc

    @staticmethod
    def _report_shortfalls(job: Job) -> None:
        if job.plan is None or not job.plan.shortfalls:
            return
        messages = [str(shortfall) for shortfall in job.plan.shortfalls]
        job.warnings.extend(messages)
        LOGGER.warning(
            render_section_block(
                "Track Target Missed",
                [("Source", [job.source]), ("Shortfalls", messages)],
            )
        )

    def process_job(self, job: Job) -> JobOutcome:
        """Run one job to a terminal state and return its outcome."""
        try:
            self._transition(job, JobState.PROBING)
            result = probe(
                job.source,
                runner=self.runner,
                executable=self.settings.tools.mediainfo,
                timeout=self.settings.probe_timeout,
            )
            if not result.ok:
                raise result.to_error(job.source)

            self._transition(job, JobState.PLANNING)
            job.plan = evaluate(result.tracks, self.rules)
            if job.plan.is_empty:
                job.noop = True
                self._transition(job, JobState.SUCCEEDED)
                LOGGER.info(self._format_log("Nothing To Do", {"Source": job.source, "Reason": "no tracks"}))
                return job.snapshot()
            self._report_shortfalls(job)

            job.invocation = self.planner.plan(
                job.source,
                job.plan,
                job_id=job.id,
                output_path=job.output_path,
                title=job.title,
                attachments=result.tracks.attachments,
                replace_existing=job.replace_output,
                create_dirs=not self.dry_run,
            )
            if self.dry_run:
                self._transition(job, JobState.SUCCEEDED)
                LOGGER.info(
                    self._format_log(
                        "Dry Run",
                        {
                            "Source": job.source,
                            "Output": job.output_path,
                            "Command": " ".join(job.invocation.command),
                        },
                    )
                )
                return job.snapshot()

            self._transition(job, JobState.INVOKING)
            self._invoke_with_retries(job)
            self._transition(job, JobState.SUCCEEDED)
            LOGGER.info(
                self._format_log(
                    "Remuxed File",
                    {
                        "Source": job.source,
                        "Output": job.output_path,
                        "Kept": len(job.plan.selections),
                        "Dropped": len(job.plan.dropped),
                        "Attempts": job.attempts,
                    },
                )
            )
            warning = self.disposition.dispose(job)
            if warning is not None:
                job.warnings.append(str(warning))
        except ProbeError as exc:
            self._fail(job, exc, "probe")
        except PlanError as exc:
            self._fail(job, exc, "plan")
        except InvocationError as exc:
            self._fail(job, exc, "invocation")
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Unexpected error while processing %s", job.source)
            if not job.state.is_terminal:
                self._fail(job, exc, "internal")
        return job.snapshot()

    # Batch

    def _worker(self, jobs: "Queue[Job]", results: "Queue[Union[JobOutcome, object]]") -> None:
        try:
            while not self._cancel_event.is_set():
                try:
                    job = jobs.get_nowait()
                except Empty:
                    break
                results.put(self.process_job(job))
        finally:
            results.put(_WORKER_DONE)

    def _record(self, result: BatchResult, outcome: JobOutcome) -> None:
        if outcome.failed and outcome.error_kind == CANCELLED_KIND:
            result.record_cancelled(outcome.source)
            return
        result.record(outcome)
        if outcome.succeeded and not outcome.noop and not self.dry_run:
            self.manifest.record(outcome.source, outcome.output_path)

    def run(self, jobs: Optional[List[Job]] = None) -> BatchResult:
        """Run every job and return the aggregated result.

        Raises :class:`ConfigError` before any job starts when the batch cannot
        be set up. Per-file failures never escape; they are in the result.
        """
        if jobs is None:
            jobs = self.prepare_jobs()
        result = BatchResult(dry_run=self.dry_run)
        LOGGER.info(
            self._format_log(
                "Batch Started",
                {
                    "Source": self.settings.source_dir,
                    "Output": self.settings.output_dir,
                    "Files": len(jobs),
                    "Workers": self.settings.concurrency,
                    "Dry Run": self.dry_run,
                },
            )
        )
        if not jobs:
            return result

        job_queue: "Queue[Job]" = Queue()
        for job in jobs:
            job_queue.put(job)
        results: "Queue[Union[JobOutcome, object]]" = Queue()

        workers = [
            threading.Thread(
                target=self._worker,
                args=(job_queue, results),
                name=f"mkvbulk-worker-{number}",
                daemon=True,
            )
            for number in range(min(self.settings.concurrency, len(jobs)))
        ]
        for worker in workers:
            worker.start()

        finished = 0
        progress_enabled = self.show_progress and LOGGER.isEnabledFor(logging.INFO)
        with Progress(disable=not progress_enabled) as progress:
            task_id = progress.add_task("Remuxing", total=len(jobs))
            while finished < len(workers):
                try:
                    item = results.get(timeout=0.2)
                except Empty:
                    continue
                except KeyboardInterrupt:
                    self.cancel()
                    continue
                if item is _WORKER_DONE:
                    finished += 1
                    continue
                self._record(result, item)
                progress.advance(task_id, 1)

        for worker in workers:
            worker.join()

        while True:
            try:
                job = job_queue.get_nowait()
            except Empty:
                break
            result.record_cancelled(job.source)
        result.cancelled = self.cancelled
        self.manifest.save()
        return result


def run_batch(
    root: Path,
    rules: RuleSet,
    concurrency: int,
    *,
    settings: Optional[Settings] = None,
    runner: Optional[ToolRunner] = None,
    disposition: Optional[DispositionManager] = None,
    show_progress: bool = False,
) -> BatchResult:
    """Process every candidate file below ``root`` with ``rules``.

    ``settings`` supplies the remaining options; without it outputs go to
    ``root/.mkvbulk-out``, which later runs do not rediscover as sources.
    """
    if settings is None:
        settings = Settings(source_dir=root, output_dir=root / DEFAULT_OUTPUT_DIR_NAME)
    settings = dataclasses.replace(settings, source_dir=root, concurrency=max(1, concurrency))
    batch = BatchRunner(
        AppConfig(settings=settings, rules=rules),
        runner=runner,
        disposition=disposition,
        show_progress=show_progress,
    )
    result = batch.run()
    batch.disposition.shutdown_if_configured(result)
    return result
