"""Background report jobs with status records polled from the key/value store.

A job is started with ``JobRunner.start``, which writes the first status
record and returns the job id immediately. The work function runs on a
worker thread and reports progress through a ``JobReporter``. Status records
look like::

    {"status": "generating", "progress": 50, "message": "..."}
    {"status": "completed", "progress": 100, "report": "..."}
    {"status": "failed", "progress": 50, "error": "..."}
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from dailybrief.storage.base import StorageAdapter

logger = logging.getLogger(__name__)

COMPLETED = "completed"
FAILED = "failed"
TERMINAL_STATES = frozenset({COMPLETED, FAILED})


def job_key(kind: str, job_id: str) -> str:
    return f"{kind}_job:{job_id}"


def new_job_id(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class JobReporter:
    """Writes one job's status transitions.

    Progress never goes backwards, and once the job has completed or failed
    every later write is ignored.
    """

    def __init__(self, storage: StorageAdapter, key: str, ttl_seconds: int):
        self.storage = storage
        self.key = key
        self.ttl_seconds = ttl_seconds
        self._lock = threading.Lock()
        self._progress = 0
        self._status: Optional[str] = None

    @property
    def finished(self) -> bool:
        return self._status in TERMINAL_STATES

    @property
    def progress(self) -> int:
        return self._progress

    def _write(self, status: str, progress: Optional[int], **fields) -> bool:
        with self._lock:
            if self.finished:
                logger.debug(f"  [Job {self.key}] ignoring '{status}' after terminal state")
                return False
            new_progress = self._progress
            if progress is not None:
                new_progress = max(self._progress, min(int(progress), 100))
            record = {"status": status, "progress": new_progress}
            record.update({k: v for k, v in fields.items() if v is not None})
            self.storage.kv_set(self.key, record, ttl_seconds=self.ttl_seconds)
            # only a stored transition counts
            self._progress = new_progress
            self._status = status
            return True

    def update(self, status: str, progress: int, message: Optional[str] = None, **extra) -> bool:
        if status in TERMINAL_STATES:
            raise ValueError("Use complete() or fail() for terminal states")
        return self._write(status, progress, message=message, **extra)

    def complete(self, report: Optional[str] = None, message: Optional[str] = None, **extra) -> bool:
        return self._write(COMPLETED, 100, report=report, message=message, **extra)

    def fail(self, error: str) -> bool:
        return self._write(FAILED, None, error=error)


class JobRunner:
    """Runs report jobs on a thread pool under a wall-clock limit.

    A job still running when ``timeout_seconds`` elapses is marked failed;
    its thread is left to finish but can no longer change the status.
    """

    def __init__(
        self,
        storage: StorageAdapter,
        max_workers: int = 4,
        timeout_seconds: float = 300,
        ttl_seconds: int = 3600,
    ):
        self.storage = storage
        self.timeout_seconds = timeout_seconds
        self.ttl_seconds = ttl_seconds
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="report-job")

    def start(
        self,
        kind: str,
        work: Callable[[JobReporter], Optional[dict]],
        prefix: Optional[str] = None,
        initial_status: str = "pending",
        initial_progress: int = 0,
        initial_message: Optional[str] = None,
    ) -> str:
        """Record the job as started and schedule ``work``; returns the job id.

        ``work`` may return a dict of fields (e.g. ``{"report": ...}``) to
        store with the completed status, unless it already finished the job
        itself through the reporter.
        """
        job_id = new_job_id(prefix or kind)
        reporter = JobReporter(self.storage, job_key(kind, job_id), self.ttl_seconds)
        reporter.update(initial_status, initial_progress, initial_message)
        logger.info(f"[Job {job_id}] started ({kind})")
        self._executor.submit(self._run, job_id, reporter, work)
        return job_id

    def _run(self, job_id: str, reporter: JobReporter, work):
        watchdog = threading.Timer(
            self.timeout_seconds,
            self._expire, args=(job_id, reporter),
        )
        watchdog.daemon = True
        watchdog.start()
        try:
            result = work(reporter)
            if not reporter.finished:
                reporter.complete(**(result or {}))
            logger.info(f"[Job {job_id}] finished")
        except Exception as e:
            logger.error(f"[Job {job_id}] failed: {e}", exc_info=True)
            self._fail(job_id, reporter, str(e) or e.__class__.__name__)
        finally:
            watchdog.cancel()

    @staticmethod
    def _fail(job_id: str, reporter: JobReporter, error: str) -> bool:
        try:
            return reporter.fail(error)
        except Exception:
            logger.exception(f"[Job {job_id}] could not record failure: {error}")
            return False

    def _expire(self, job_id: str, reporter: JobReporter):
        if self._fail(job_id, reporter, f"Job timed out after {self.timeout_seconds:g}s"):
            logger.error(f"[Job {job_id}] timed out")

    def get_status(self, kind: str, job_id: str) -> Optional[dict]:
        """Latest status record, or None when the job is unknown or expired."""
        return self.storage.kv_get(job_key(kind, job_id))

    def wait_for(
        self,
        kind: str,
        job_id: str,
        interval: float = 2.0,
        on_update: Optional[Callable[[dict], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> Optional[dict]:
        """Poll until the job reaches a terminal state (or its record vanishes)."""
        last = None
        while True:
            status = self.get_status(kind, job_id)
            if status is None:
                return None
            if on_update and status != last:
                on_update(status)
                last = status
            if status.get("status") in TERMINAL_STATES:
                return status
            sleep(interval)

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)
