"""
In-memory transcoding job table.

Created empty when the process starts; entries never expire and are lost on
restart. Callers that need durable history must mirror status transitions
into their own storage.
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from django.db import models

from .errors import NotFound

log = logging.getLogger(__name__)


class JobStatus(models.TextChoices):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TranscodingJob:
    job_id: str
    episode_id: str
    source_url: str
    qualities: list[str]
    status: JobStatus = JobStatus.PROCESSING
    error: str | None = None
    created_at: datetime = field(default_factory=_now)
    finished_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class JobTable:
    """Lock-guarded map of job_id -> TranscodingJob. Readers get copies."""

    def __init__(self):
        self._lock = threading.Lock()
        self._jobs: dict[str, TranscodingJob] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs

    def create(self, job: TranscodingJob) -> TranscodingJob:
        with self._lock:
            if job.job_id in self._jobs:
                raise ValueError(f"Duplicate job id: {job.job_id}")
            self._jobs[job.job_id] = job
            return replace(job, qualities=list(job.qualities))

    def get(self, job_id: str) -> TranscodingJob:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise NotFound(f"Job {job_id} not found")
            return replace(job, qualities=list(job.qualities))

    def active_for_episode(self, episode_id: str) -> list[TranscodingJob]:
        with self._lock:
            return [
                replace(job, qualities=list(job.qualities))
                for job in self._jobs.values()
                if job.episode_id == episode_id and not job.is_terminal
            ]

    def _finish(self, job_id: str, status: JobStatus, error: str | None) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise NotFound(f"Job {job_id} not found")
            if job.is_terminal:
                log.warning("Job %s already %s, ignoring transition to %s", job_id, job.status, status)
                return False
            job.status = status
            job.error = error
            job.finished_at = _now()
            return True

    def mark_completed(self, job_id: str) -> bool:
        return self._finish(job_id, JobStatus.COMPLETED, None)

    def mark_failed(self, job_id: str, error: str) -> bool:
        return self._finish(job_id, JobStatus.FAILED, error or "Unknown error")
