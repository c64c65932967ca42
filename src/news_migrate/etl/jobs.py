"""Job stores and background job control for migration runs."""

from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol
from uuid import uuid4

from news_migrate.etl.models import JobStatus, MigrationJob

if TYPE_CHECKING:
    from news_migrate.etl.pipeline import MigrationOptions, MigrationOrchestrator

logger = logging.getLogger(__name__)


class JobStore(Protocol):
    """Persistence for migration job snapshots."""

    def create(self, job: MigrationJob) -> None:
        raise NotImplementedError

    def get(self, job_id: str) -> MigrationJob | None:
        raise NotImplementedError

    def update(self, job: MigrationJob) -> None:
        raise NotImplementedError


class InMemoryJobStore:
    """Thread-safe process-local job store; readers always get copies."""

    def __init__(self) -> None:
        self._jobs: dict[str, MigrationJob] = {}
        self._lock = threading.Lock()

    def create(self, job: MigrationJob) -> None:
        with self._lock:
            if job.job_id in self._jobs:
                raise ValueError(f"Job already exists: {job.job_id}")
            self._jobs[job.job_id] = copy.deepcopy(job)

    def get(self, job_id: str) -> MigrationJob | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job is not None else None

    def update(self, job: MigrationJob) -> None:
        with self._lock:
            if job.job_id not in self._jobs:
                raise KeyError(job.job_id)
            self._jobs[job.job_id] = copy.deepcopy(job)

    def list_jobs(self) -> list[MigrationJob]:
        with self._lock:
            return [copy.deepcopy(job) for job in self._jobs.values()]


@dataclass(slots=True)
class JobHandle:
    """Running background job."""

    job_id: str
    thread: threading.Thread
    cancel_event: threading.Event = field(default_factory=threading.Event)

    def cancel(self) -> None:
        self.cancel_event.set()

    def join(self, timeout: float | None = None) -> bool:
        self.thread.join(timeout)
        return not self.thread.is_alive()


class JobRunner:
    """Starts orchestrator runs on daemon threads and answers status queries."""

    def __init__(self, orchestrator: MigrationOrchestrator, store: JobStore) -> None:
        self.orchestrator = orchestrator
        self.store = store
        self._handles: dict[str, JobHandle] = {}
        self._lock = threading.Lock()

    def start_job(self, options: MigrationOptions) -> str:
        job_id = options.job_id or str(uuid4())
        options.job_id = job_id
        self.store.create(MigrationJob(job_id=job_id, status=JobStatus.PENDING, dry_run=options.dry_run))

        cancel_event = threading.Event()
        thread = threading.Thread(
            target=self._run,
            args=(options, cancel_event),
            name=f"migration-{job_id[:8]}",
            daemon=True,
        )
        handle = JobHandle(job_id=job_id, thread=thread, cancel_event=cancel_event)
        with self._lock:
            self._handles[job_id] = handle
        thread.start()
        logger.info("Started migration job %s", job_id)
        return job_id

    def get_status(self, job_id: str) -> MigrationJob | None:
        return self.store.get(job_id)

    def cancel(self, job_id: str) -> bool:
        with self._lock:
            handle = self._handles.get(job_id)
        if handle is None:
            return False
        handle.cancel()
        return True

    def wait(self, job_id: str, timeout: float | None = None) -> bool:
        with self._lock:
            handle = self._handles.get(job_id)
        if handle is None:
            return True
        return handle.join(timeout)

    def _run(self, options: MigrationOptions, cancel_event: threading.Event) -> None:
        try:
            self.orchestrator.run(options, store=self.store, cancel_event=cancel_event)
        except Exception:
            logger.exception("Migration job %s crashed", options.job_id)
            job = self.store.get(options.job_id or "")
            if job is not None and job.status in {JobStatus.PENDING, JobStatus.RUNNING}:
                job.status = JobStatus.FAILED
                job.error_message = "Migration job crashed; see logs."
                self.store.update(job)
        finally:
            with self._lock:
                self._handles.pop(options.job_id or "", None)
