"""
Clause2Case
Processing Job Tracker.

State machine for per-document background jobs:

    pending ──start──▶ processing ──complete──▶ completed
       │                   │
       └──────fail─────────┴──────fail────────▶ failed

Rules:
    - progress only moves forward while processing, clamped to 0..100
    - completed and failed are absorbing: later calls are no-ops
    - fail keeps the progress reached so far
    - every transition is one committed write, so pollers always see a
      whole snapshot

Jobs run on a shared executor (thread pool in production, inline in tests)
inside a Flask app context, mirroring how request handlers reach the DB.
"""

import json
import logging
from concurrent.futures import Future
from contextlib import nullcontext
from datetime import datetime, timezone

from flask import has_app_context

from clause2case.core.exceptions import GenerationError
from clause2case.models.ai import JOB_TYPES, TERMINAL_JOB_STATUSES

logger = logging.getLogger(__name__)


class InlineExecutor:
    """Executor that runs work synchronously on the caller's thread."""

    def submit(self, fn, *args, **kwargs) -> Future:
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future

    def shutdown(self, wait=True, cancel_futures=False):
        pass


class JobTracker:
    """Creates, transitions and runs ProcessingJobs."""

    def __init__(self, storage, executor=None, app=None):
        self.storage = storage
        self.executor = executor or InlineExecutor()
        self.app = app

    # ── Queries ──────────────────────────────────────────────────────────

    def get_status(self, job_id: str) -> dict | None:
        job = self.storage.get_job(job_id)
        return job.to_dict() if job else None

    def list_jobs(self, document_id: str | None = None) -> list[dict]:
        return [j.to_dict() for j in self.storage.list_jobs(document_id)]

    # ── Transitions ──────────────────────────────────────────────────────

    def create(self, document_id: str | None, job_type: str = "test_generation") -> dict:
        if job_type not in JOB_TYPES:
            raise ValueError(f"Unknown job type: {job_type!r}")
        job = self.storage.create_job(document_id, job_type)
        logger.info("Job created type=%s", job_type,
                    extra={"job_id": job.id, "document_id": document_id})
        return job.to_dict()

    def start(self, job_id: str) -> dict | None:
        """pending → processing. No-op when already processing or terminal."""
        job = self.storage.get_job(job_id)
        if job is None:
            return None
        if job.status != "pending":
            return job.to_dict()
        job = self.storage.update_job(job_id, {
            "status": "processing",
            "started_at": datetime.now(timezone.utc),
        })
        logger.info("Job started", extra={"job_id": job_id})
        return job.to_dict()

    def update_progress(self, job_id: str, pct: int) -> dict | None:
        job = self.storage.get_job(job_id)
        if job is None:
            return None
        pct = max(0, min(100, int(pct)))
        if job.status != "processing" or pct <= job.progress:
            return job.to_dict()
        job = self.storage.update_job(job_id, {"progress": pct})
        logger.debug("Job progress %d%%", pct, extra={"job_id": job_id})
        return job.to_dict()

    def complete(self, job_id: str, result: dict | None = None) -> dict | None:
        """processing → completed with progress 100."""
        job = self.storage.get_job(job_id)
        if job is None:
            return None
        if job.status != "processing":
            logger.warning("Ignoring complete on job in status %s", job.status,
                           extra={"job_id": job_id})
            return job.to_dict()
        job = self.storage.update_job(job_id, {
            "status": "completed",
            "progress": 100,
            "result_json": json.dumps(result, default=str) if result is not None else None,
            "completed_at": datetime.now(timezone.utc),
        })
        logger.info("Job completed", extra={"job_id": job_id})
        return job.to_dict()

    def fail(self, job_id: str, message: str) -> dict | None:
        """pending|processing → failed. Progress is preserved."""
        job = self.storage.get_job(job_id)
        if job is None:
            return None
        if job.status in TERMINAL_JOB_STATUSES:
            logger.warning("Ignoring fail on job in status %s", job.status,
                           extra={"job_id": job_id})
            return job.to_dict()
        job = self.storage.update_job(job_id, {
            "status": "failed",
            "error_message": message,
            "completed_at": datetime.now(timezone.utc),
        })
        logger.error("Job failed: %s", message, extra={"job_id": job_id})
        return job.to_dict()

    # ── Execution ────────────────────────────────────────────────────────

    def dispatch(self, job_id: str, fn) -> dict | None:
        """
        Start the job and run ``fn(progress_cb)`` in the background.

        ``fn`` returns the result summary on success. Returns the job
        snapshot taken right after the start transition.
        """
        snapshot = self.start(job_id)
        if snapshot is None or snapshot["status"] != "processing":
            return snapshot
        self.executor.submit(self._run, job_id, fn)
        return snapshot

    def _run(self, job_id: str, fn):
        ctx = nullcontext() if has_app_context() else self.app.app_context()
        with ctx:
            try:
                result = fn(lambda pct: self.update_progress(job_id, pct))
            except GenerationError as exc:
                self._fail_quietly(job_id, str(exc))
                return
            except Exception as exc:
                logger.exception("Job crashed", extra={"job_id": job_id})
                self._fail_quietly(job_id, str(exc) or exc.__class__.__name__)
                return
            try:
                self.complete(job_id, result)
            except Exception as exc:
                logger.exception("Could not record job completion", extra={"job_id": job_id})
                self._fail_quietly(job_id, str(exc) or exc.__class__.__name__)

    def _fail_quietly(self, job_id: str, message: str):
        # Background thread: nobody above us to propagate to
        try:
            self.fail(job_id, message)
        except Exception:
            logger.exception("Could not record job failure", extra={"job_id": job_id})
