"""
Audit job bookkeeping.

Storage is injected through the JobStore interface; InMemoryJobStore is the
only implementation shipped here.
"""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Dict, Optional

from .errors import AuditCancelled, AuditError
from .models import AuditInputs, ProgressEvent, Report
from .pipeline import AuditPipeline
from .progress import CancelToken, ProgressStream

logger = logging.getLogger("seo_audit.jobs")

JOB_STATUSES = ("queued", "running", "done", "error", "cancelled")
PROGRESS_DRAIN_TIMEOUT = 5.0


@dataclass
class Job:
    id: str
    inputs: AuditInputs
    status: str = "queued"
    progress: Optional[ProgressEvent] = None
    report: Optional[Report] = None
    error: Optional[str] = None
    cancel_token: CancelToken = field(default_factory=CancelToken, repr=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "progress": self.progress.to_dict() if self.progress else None,
            "runId": self.report.run_id if self.report else None,
            "error": self.error,
        }


class JobStore(ABC):
    @abstractmethod
    def create(self, inputs: AuditInputs) -> str:
        ...

    @abstractmethod
    def get(self, job_id: str) -> Optional[Job]:
        ...

    @abstractmethod
    def update(self, job_id: str, **fields) -> Job:
        ...


class InMemoryJobStore(JobStore):
    def __init__(self):
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def create(self, inputs: AuditInputs) -> str:
        job_id = str(uuid.uuid4())[:8]
        with self._lock:
            while job_id in self._jobs:
                job_id = str(uuid.uuid4())[:8]
            self._jobs[job_id] = Job(id=job_id, inputs=inputs)
        return job_id

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def update(self, job_id: str, **fields) -> Job:
        status = fields.get("status")
        if status is not None and status not in JOB_STATUSES:
            raise ValueError(f"Unknown job status: {status}")
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise KeyError(job_id)
            job = replace(job, **fields)
            self._jobs[job_id] = job
            return job


def mirror_progress(store: JobStore, job_id: str, progress: ProgressStream) -> threading.Thread:
    """Copy events from ``progress`` onto the job record on a consumer thread.

    Emission stays non-blocking however slow the store is; the stream drops
    its oldest events while the store catches up.
    """
    def consume():
        for event in progress.events():
            store.update(job_id, progress=event)

    thread = threading.Thread(target=consume, name=f"audit-{job_id}-progress", daemon=True)
    thread.start()
    return thread


def run_audit_job(store: JobStore, job_id: str, inputs: Optional[AuditInputs] = None,
                  **pipeline_kwargs) -> Job:
    """Run one audit synchronously, recording status, progress and outcome on the job."""
    job = store.get(job_id)
    if job is None:
        raise KeyError(job_id)
    inputs = inputs or job.inputs

    store.update(job_id, status="running", error=None)
    pipeline_kwargs.setdefault("cancel_token", job.cancel_token)
    mirror = None
    if "progress" not in pipeline_kwargs:
        progress = pipeline_kwargs["progress"] = ProgressStream()
        mirror = mirror_progress(store, job_id, progress)

    try:
        report = AuditPipeline(inputs, **pipeline_kwargs).run()
    except AuditCancelled as e:
        logger.info(f"Audit job {job_id} cancelled")
        outcome = dict(status="cancelled", error=str(e))
    except AuditError as e:
        logger.error(f"Audit job {job_id} failed: {e}")
        outcome = dict(status="error", error=str(e)[:500])
    except Exception as e:
        logger.exception(f"Audit job {job_id} crashed")
        outcome = dict(status="error", error=str(e)[:500])
    else:
        outcome = dict(status="done", report=report)

    if mirror is not None:
        progress.close()
        mirror.join(timeout=PROGRESS_DRAIN_TIMEOUT)
    return store.update(job_id, **outcome)


def start_audit_job(store: JobStore, job_id: str, **pipeline_kwargs) -> threading.Thread:
    """Run ``run_audit_job`` on a daemon thread."""
    thread = threading.Thread(
        target=run_audit_job,
        args=(store, job_id),
        kwargs=pipeline_kwargs,
        name=f"audit-{job_id}",
        daemon=True,
    )
    thread.start()
    return thread


def cancel_job(store: JobStore, job_id: str) -> bool:
    job = store.get(job_id)
    if job is None or job.status not in ("queued", "running"):
        return False
    job.cancel_token.cancel()
    return True
