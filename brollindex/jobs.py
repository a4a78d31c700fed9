"""Background analysis jobs: one in-flight run per project, with a bounded log."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from brollindex.catalog import now_iso
from brollindex.exceptions import JobAlreadyRunningError

logger = logging.getLogger(__name__)

RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"
IDLE = "idle"


class LogBuffer:
    """Line buffer that drops its oldest lines once it overflows.

    When more than ``max_lines`` are held, only the newest ``keep_lines``
    are retained.
    """

    def __init__(self, max_lines: int = 500, keep_lines: int = 300):
        if keep_lines > max_lines:
            raise ValueError("keep_lines must not exceed max_lines")
        self.max_lines = max_lines
        self.keep_lines = keep_lines
        self._lines: list[str] = []

    def append(self, text: str) -> None:
        self._lines.extend(str(text).splitlines() or [""])
        if len(self._lines) > self.max_lines:
            self._lines = self._lines[-self.keep_lines:]

    def lines(self) -> list[str]:
        return list(self._lines)

    def text(self) -> str:
        return "\n".join(self._lines)

    def __len__(self) -> int:
        return len(self._lines)


class QueueLogHandler(logging.Handler):
    """Forward formatted log records into an ``asyncio.Queue``.

    Only records emitted from *task* are forwarded, so concurrent jobs for
    different projects keep separate logs. When the queue is full the
    oldest queued line is dropped.
    """

    def __init__(self, queue: asyncio.Queue, task: asyncio.Task | None = None, level: int = logging.INFO):
        super().__init__(level)
        self.queue = queue
        self.task = task
        self.setFormatter(logging.Formatter("[%(asctime)s] %(message)s", datefmt="%H:%M:%S"))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            if self.task is not None and asyncio.current_task() is not self.task:
                return
        except RuntimeError:
            return
        try:
            line = self.format(record)
        except Exception:
            self.handleError(record)
            return
        if self.queue.full():
            self.queue.get_nowait()
        self.queue.put_nowait(line)


@dataclass
class AnalysisJob:
    """State of one background run."""

    key: str
    log: LogBuffer = field(default_factory=LogBuffer)
    status: str = RUNNING
    started_at: str = field(default_factory=now_iso)
    finished_at: str | None = None
    error: str | None = None
    result: Any = None
    task: asyncio.Task | None = field(default=None, repr=False)

    def snapshot(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "log": self.log.lines(),
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
            "error": self.error,
        }


class JobRegistry:
    """Map of project key to its latest analysis job.

    Args:
        logger_name: Logger whose records are captured into job logs.
        max_lines: Log buffer overflow threshold.
        keep_lines: Lines kept after an overflow.
        channel_size: Capacity of each job's progress queue.
    """

    def __init__(
        self,
        logger_name: str = "brollindex",
        max_lines: int = 500,
        keep_lines: int = 300,
        channel_size: int = 1000,
    ):
        self.logger_name = logger_name
        self.max_lines = max_lines
        self.keep_lines = keep_lines
        self.channel_size = channel_size
        self._jobs: dict[str, AnalysisJob] = {}
        self._attached = 0
        self._saved_level: int | None = None

    def get(self, key: str) -> AnalysisJob | None:
        return self._jobs.get(key)

    def status(self, key: str) -> str:
        job = self._jobs.get(key)
        return job.status if job else IDLE

    def start(self, key: str, coro_factory: Callable[[], Awaitable[Any]]) -> AnalysisJob:
        """Launch ``coro_factory()`` as a background task for *key*.

        Must be called from a running event loop.

        Raises:
            JobAlreadyRunningError: If a job for *key* is still running.
        """
        if self.status(key) == RUNNING:
            raise JobAlreadyRunningError(key)
        job = AnalysisJob(key=key, log=LogBuffer(self.max_lines, self.keep_lines))
        self._jobs[key] = job
        job.task = asyncio.create_task(self._run(job, coro_factory), name=f"broll-index:{key}")
        return job

    def cancel(self, key: str) -> bool:
        job = self._jobs.get(key)
        if job is None or job.status != RUNNING or job.task is None:
            return False
        return job.task.cancel()

    async def wait(self, key: str) -> AnalysisJob | None:
        """Wait for the job for *key* to finish, without raising its outcome."""
        job = self._jobs.get(key)
        if job is not None and job.task is not None:
            await asyncio.wait({job.task})
        return job

    async def _run(self, job: AnalysisJob, coro_factory: Callable[[], Awaitable[Any]]) -> None:
        channel: asyncio.Queue[str] = asyncio.Queue(maxsize=self.channel_size)
        handler = QueueLogHandler(channel, task=asyncio.current_task())
        target = logging.getLogger(self.logger_name)
        self._attach(target, handler)
        drain = asyncio.create_task(self._drain(channel, job.log))
        job.log.append(f"[{time.strftime('%H:%M:%S')}] Analysis started for {job.key}")
        logger.info("Job %s started", job.key)
        try:
            job.result = await coro_factory()
            job.status = COMPLETED
        except asyncio.CancelledError:
            job.status = FAILED
            job.error = "Cancelled"
            raise
        except Exception as e:
            job.status = FAILED
            job.error = str(e)
            logger.error("Job %s failed: %s", job.key, e)
        finally:
            self._detach(target, handler)
            drain.cancel()
            while not channel.empty():
                job.log.append(channel.get_nowait())
            job.finished_at = now_iso()
            job.log.append(f"[{time.strftime('%H:%M:%S')}] Analysis {job.status}" + (f": {job.error}" if job.error else ""))

    def _attach(self, target: logging.Logger, handler: logging.Handler) -> None:
        # INFO progress must reach the handler even when logging is unconfigured.
        if self._attached == 0 and target.getEffectiveLevel() > logging.INFO:
            self._saved_level = target.level
            target.setLevel(logging.INFO)
        self._attached += 1
        target.addHandler(handler)

    def _detach(self, target: logging.Logger, handler: logging.Handler) -> None:
        target.removeHandler(handler)
        self._attached -= 1
        if self._attached == 0 and self._saved_level is not None:
            target.setLevel(self._saved_level)
            self._saved_level = None

    @staticmethod
    async def _drain(channel: asyncio.Queue, buffer: LogBuffer) -> None:
        while True:
            buffer.append(await channel.get())
