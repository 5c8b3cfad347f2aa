"""Runs a fetch job and turns its lifecycle into Server-Sent Events.

Event order for a job is always::

    start {jobId}
    log {line}              (zero or more, in arrival order)
    done {ok, code, downloadUrl} | done {ok: false, error}

Once the stream has started, every failure is reported through ``done``.
"""
import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator

from sse_starlette.sse import ServerSentEvent

from mediafetch.core.config import Settings
from mediafetch.core.logging import get_logger
from mediafetch.models.fetch import DoneEvent, FailedEvent, LogEvent, StartEvent
from mediafetch.services.errors import SpawnFailureError
from mediafetch.services.job_template import (
    CollisionPolicy,
    FetchJob,
    FetchMode,
    ToolProfile,
    create_job,
)
from mediafetch.services.log_parser import MatchPolicy, OutputPathTracker
from mediafetch.services.process_runner import OverflowPolicy, ToolProcess
from mediafetch.services.sanitizer import clean_filename_hint, normalize_url, redact_url
from mediafetch.services.url_resolver import build_download_url

logger = get_logger(__name__)

# Processes whose client went away; held here until reaped
_abandoned: set[asyncio.Task[int]] = set()


class JobOutcome(str, Enum):
    """Terminal classification of a job, used for logging."""

    SUCCESS = "success"
    TOOL_FAILURE = "tool_failure"
    SPAWN_FAILURE = "spawn_failure"
    UNRESOLVED_OUTPUT = "unresolved_output"
    ERROR = "error"


@dataclass(frozen=True)
class PipelineConfig:
    """Everything a job needs from configuration, passed in explicitly."""

    output_dir: str
    base_url: str = ""
    downloads_prefix: str = "/downloads"
    allowed_schemes: tuple[str, ...] = ("http", "https")
    block_private_networks: bool = True
    filename_max_length: int = 80
    collision_policy: CollisionPolicy = "always_suffix"
    max_buffered_lines: int = 1000
    overflow: OverflowPolicy = OverflowPolicy.BLOCK
    path_match: MatchPolicy = "last"
    cancel_on_disconnect: bool = False
    tool: ToolProfile = ToolProfile()

    @classmethod
    def from_settings(cls, app_settings: Settings, base_url: str = "") -> "PipelineConfig":
        """Build the job configuration from settings and a resolved base URL."""
        return cls(
            output_dir=app_settings.OUTPUT_DIR,
            base_url=base_url,
            downloads_prefix=app_settings.DOWNLOADS_PREFIX,
            allowed_schemes=tuple(app_settings.allowed_schemes_list),
            block_private_networks=app_settings.BLOCK_PRIVATE_NETWORKS,
            filename_max_length=app_settings.FILENAME_MAX_LENGTH,
            collision_policy=app_settings.FILENAME_COLLISION_POLICY,
            max_buffered_lines=app_settings.LOG_BUFFER_MAX_LINES,
            overflow=OverflowPolicy(app_settings.LOG_BUFFER_OVERFLOW),
            path_match=app_settings.OUTPUT_PATH_MATCH,
            cancel_on_disconnect=app_settings.CANCEL_ON_DISCONNECT,
            tool=ToolProfile(
                binary=app_settings.YTDLP_BINARY,
                audio_format=app_settings.YTDLP_AUDIO_FORMAT,
                audio_quality=app_settings.YTDLP_AUDIO_QUALITY,
                video_format=app_settings.YTDLP_VIDEO_FORMAT,
                merge_output_format=app_settings.YTDLP_MERGE_OUTPUT_FORMAT,
                socket_timeout=app_settings.YTDLP_SOCKET_TIMEOUT,
                user_agent=app_settings.YTDLP_USER_AGENT,
                cookies_from_browser=app_settings.YTDLP_COOKIES_FROM_BROWSER,
                proxy=app_settings.YTDLP_PROXY,
            ),
        )


class FetchPipeline:
    """Prepares fetch jobs and streams their events."""

    def __init__(self, config: PipelineConfig) -> None:
        self.config = config

    def prepare(self, url: object, mode: FetchMode = "video", filename: object = None) -> FetchJob:
        """Validate input and build the job; nothing is spawned yet.

        Raises:
            InvalidInputError: If the URL is rejected
        """
        clean_url = normalize_url(
            url,
            allowed_schemes=self.config.allowed_schemes,
            block_private_networks=self.config.block_private_networks,
        )
        hint = clean_filename_hint(filename, self.config.filename_max_length)
        return create_job(
            clean_url,
            mode,
            self.config.output_dir,
            filename_hint=hint,
            policy=self.config.collision_policy,
            profile=self.config.tool,
        )

    async def events(self, job: FetchJob) -> AsyncIterator[ServerSentEvent]:
        """Run ``job`` and yield its events until ``done``."""
        safe_url = redact_url(job.url)
        started = time.monotonic()
        tracker = OutputPathTracker(keep=self.config.path_match)
        process: ToolProcess | None = None
        finished = False

        logger.info(f"Job {job.id} starting ({job.mode}) for {safe_url}")
        try:
            yield _event("start", StartEvent(job_id=job.id))

            try:
                process = await ToolProcess.spawn(
                    job.command,
                    max_buffered_lines=self.config.max_buffered_lines,
                    overflow=self.config.overflow,
                    cwd=self.config.output_dir,
                )
            except SpawnFailureError as e:
                finished = True
                self._log_outcome(job, JobOutcome.SPAWN_FAILURE, started)
                yield _event("done", FailedEvent(error=e.message))
                return

            async for line in process.lines():
                if tracker.feed(line) is not None:
                    job.resolved_path = tracker.path
                yield _event("log", LogEvent(line=line))

            job.exit_code = await process.wait()
            finished = True

            done = self._build_done(job)
            self._log_outcome(job, self._classify(done), started)
            yield _event("done", done)

        except Exception as e:
            if finished:
                raise
            finished = True
            logger.error(f"Job {job.id} failed unexpectedly: {e}", exc_info=True)
            if process is not None:
                process.terminate()
                _reap(process)
            self._log_outcome(job, JobOutcome.ERROR, started)
            yield _event("done", FailedEvent(error=f"Job failed: {e}"))

        finally:
            if process is not None and not finished:
                self._abandon(job, process)

    def _build_done(self, job: FetchJob) -> DoneEvent:
        ok = job.exit_code == 0
        download_url = None
        if ok:
            download_url = build_download_url(
                job.resolved_path,
                self.config.output_dir,
                self.config.base_url,
                self.config.downloads_prefix,
            )
        return DoneEvent(ok=ok, code=job.exit_code, download_url=download_url)

    @staticmethod
    def _classify(done: DoneEvent) -> JobOutcome:
        if not done.ok:
            return JobOutcome.TOOL_FAILURE
        if done.download_url is None:
            return JobOutcome.UNRESOLVED_OUTPUT
        return JobOutcome.SUCCESS

    @staticmethod
    def _log_outcome(job: FetchJob, outcome: JobOutcome, started: float) -> None:
        elapsed = time.monotonic() - started
        message = (
            f"Job {job.id} finished: {outcome.value} "
            f"(code={job.exit_code}, path={job.resolved_path!r}, {elapsed:.1f}s)"
        )
        if outcome in (JobOutcome.SUCCESS, JobOutcome.UNRESOLVED_OUTPUT):
            logger.info(message)
        else:
            logger.warning(message)

    def _abandon(self, job: FetchJob, process: ToolProcess) -> None:
        """Client went away mid-job: keep reaping the process in the background."""
        if self.config.cancel_on_disconnect:
            logger.info(f"Client disconnected, terminating job {job.id} (pid {process.pid})")
            process.terminate()
        else:
            logger.info(f"Client disconnected, job {job.id} keeps running (pid {process.pid})")

        _reap(process)


def _reap(process: ToolProcess) -> None:
    """Drain and wait for ``process`` in a background task."""
    try:
        task = asyncio.get_running_loop().create_task(process.drain())
    except RuntimeError:
        # Event loop already gone (interpreter shutdown)
        process.terminate()
        return
    _abandoned.add(task)
    task.add_done_callback(_abandoned.discard)


def _event(name: str, payload: StartEvent | LogEvent | DoneEvent | FailedEvent) -> ServerSentEvent:
    return ServerSentEvent(data=payload.model_dump_json(by_alias=True), event=name)
