"""Persistence interface for sources, sync runs and jobs.

``SyncStore`` is what the orchestrator and discovery talk to. Two
implementations exist: ``InMemoryStore`` here (tests and dry runs) and
``PostgresStore`` in ``jobsync.postgres``.

Semantics every implementation must keep:

* ``sources.full_name`` is unique; ``insert_source_if_absent`` is atomic.
* ``(source_id, external_job_id)`` is unique among jobs.
* ``acquire_global_lock`` is a single atomic step: stale running lock rows
  are closed as failed (``LOCK_ABANDONED``) and the new lock row is inserted
  only when no fresh running lock exists.
* ``transaction()`` groups writes; on error nothing inside it persists.
"""

from __future__ import annotations

import abc
import copy
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Tuple

from jobsync.models import GLOBAL_LOCK_ID, PersistedJob, Source, SyncRun

LOCK_ABANDONED = "LOCK_ABANDONED"


class StoreError(RuntimeError):
    pass


class SourceConflictError(StoreError):
    def __init__(self, full_name: str) -> None:
        super().__init__(f"Source already exists: {full_name}")
        self.full_name = full_name


class JobConflictError(StoreError):
    def __init__(self, source_id: str, external_job_id: str) -> None:
        super().__init__(f"Job already exists for source {source_id}: {external_job_id}")
        self.source_id = source_id
        self.external_job_id = external_job_id


class SyncStore(abc.ABC):
    # -- sources -------------------------------------------------------------

    @abc.abstractmethod
    def list_sources(self, *, enabled_only: bool = False) -> List[Source]:
        raise NotImplementedError

    @abc.abstractmethod
    def get_source(self, source_id: str) -> Optional[Source]:
        raise NotImplementedError

    @abc.abstractmethod
    def get_source_by_full_name(self, full_name: str) -> Optional[Source]:
        raise NotImplementedError

    @abc.abstractmethod
    def insert_source_if_absent(self, source: Source) -> bool:
        """Insert unless ``full_name`` exists; returns whether a row was created."""
        raise NotImplementedError

    @abc.abstractmethod
    def update_source(self, source: Source) -> None:
        raise NotImplementedError

    def add_source(self, source: Source) -> Source:
        if not self.insert_source_if_absent(source):
            raise SourceConflictError(source.full_name)
        return source

    # -- sync runs -----------------------------------------------------------

    @abc.abstractmethod
    def insert_run(self, run: SyncRun) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def update_run(self, run: SyncRun) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def list_runs(self, source_id: Optional[str] = None) -> List[SyncRun]:
        raise NotImplementedError

    @abc.abstractmethod
    def acquire_global_lock(self, lock_run: SyncRun, *, stale_before: datetime) -> bool:
        raise NotImplementedError

    # -- jobs ----------------------------------------------------------------

    @abc.abstractmethod
    def find_jobs_by_url(self, url: str) -> List[PersistedJob]:
        raise NotImplementedError

    @abc.abstractmethod
    def find_job_by_external_id(self, source_id: str, external_job_id: str) -> Optional[PersistedJob]:
        raise NotImplementedError

    @abc.abstractmethod
    def insert_job(self, job: PersistedJob) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def update_job(self, job: PersistedJob) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def iter_jobs(self) -> Iterator[PersistedJob]:
        raise NotImplementedError

    # -- transactions --------------------------------------------------------

    @abc.abstractmethod
    @contextmanager
    def transaction(self) -> Iterator[None]:
        raise NotImplementedError

    def close(self) -> None:
        return None


class InMemoryStore(SyncStore):
    """Process-local store; transactions snapshot state and restore it on error."""

    def __init__(self) -> None:
        self._mutex = threading.RLock()
        self._sources: Dict[str, Source] = {}
        self._runs: Dict[str, SyncRun] = {}
        self._jobs: Dict[str, PersistedJob] = {}
        self._tx_depth = 0

    def _state(self) -> Tuple[Dict[str, Source], Dict[str, SyncRun], Dict[str, PersistedJob]]:
        return self._sources, self._runs, self._jobs

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._mutex:
            if self._tx_depth:
                self._tx_depth += 1
                try:
                    yield
                finally:
                    self._tx_depth -= 1
                return

            snapshot = copy.deepcopy(self._state())
            self._tx_depth = 1
            try:
                yield
            except BaseException:
                self._sources, self._runs, self._jobs = snapshot
                raise
            finally:
                self._tx_depth = 0

    # sources

    def list_sources(self, *, enabled_only: bool = False) -> List[Source]:
        with self._mutex:
            rows = [copy.deepcopy(s) for s in self._sources.values()]
        rows.sort(key=lambda s: s.full_name)
        return [s for s in rows if s.enabled] if enabled_only else rows

    def get_source(self, source_id: str) -> Optional[Source]:
        with self._mutex:
            source = self._sources.get(source_id)
            return copy.deepcopy(source) if source is not None else None

    def get_source_by_full_name(self, full_name: str) -> Optional[Source]:
        with self._mutex:
            for source in self._sources.values():
                if source.full_name == full_name:
                    return copy.deepcopy(source)
        return None

    def insert_source_if_absent(self, source: Source) -> bool:
        with self._mutex:
            if source.id in self._sources:
                return False
            if any(s.full_name == source.full_name for s in self._sources.values()):
                return False
            self._sources[source.id] = copy.deepcopy(source)
            return True

    def update_source(self, source: Source) -> None:
        with self._mutex:
            if source.id not in self._sources:
                raise StoreError(f"Unknown source: {source.id}")
            self._sources[source.id] = copy.deepcopy(source)

    # runs

    def insert_run(self, run: SyncRun) -> None:
        with self._mutex:
            if run.id in self._runs:
                raise StoreError(f"Duplicate sync run id: {run.id}")
            self._runs[run.id] = copy.deepcopy(run)

    def update_run(self, run: SyncRun) -> None:
        with self._mutex:
            if run.id not in self._runs:
                raise StoreError(f"Unknown sync run: {run.id}")
            self._runs[run.id] = copy.deepcopy(run)

    def list_runs(self, source_id: Optional[str] = None) -> List[SyncRun]:
        with self._mutex:
            runs = [copy.deepcopy(r) for r in self._runs.values() if source_id is None or r.source_id == source_id]
        runs.sort(key=lambda r: r.started_at)
        return runs

    def acquire_global_lock(self, lock_run: SyncRun, *, stale_before: datetime) -> bool:
        with self._mutex:
            running = [r for r in self._runs.values() if r.source_id == GLOBAL_LOCK_ID and r.status == "running"]
            if any(r.started_at >= stale_before for r in running):
                return False
            for stale in running:
                stale.status = "failed"
                stale.completed_at = lock_run.started_at
                stale.error_code = LOCK_ABANDONED
                stale.error_message = "Lock went stale and was taken over"
            self._runs[lock_run.id] = copy.deepcopy(lock_run)
            return True

    # jobs

    def find_jobs_by_url(self, url: str) -> List[PersistedJob]:
        with self._mutex:
            return [copy.deepcopy(j) for j in self._jobs.values() if j.url == url]

    def find_job_by_external_id(self, source_id: str, external_job_id: str) -> Optional[PersistedJob]:
        with self._mutex:
            for job in self._jobs.values():
                if job.source_id == source_id and job.external_job_id == external_job_id:
                    return copy.deepcopy(job)
        return None

    def insert_job(self, job: PersistedJob) -> None:
        with self._mutex:
            if job.id in self._jobs:
                raise StoreError(f"Duplicate job id: {job.id}")
            if job.external_job_id and self.find_job_by_external_id(job.source_id, job.external_job_id):
                raise JobConflictError(job.source_id, job.external_job_id)
            self._jobs[job.id] = copy.deepcopy(job)

    def update_job(self, job: PersistedJob) -> None:
        with self._mutex:
            if job.id not in self._jobs:
                raise StoreError(f"Unknown job: {job.id}")
            self._jobs[job.id] = copy.deepcopy(job)

    def iter_jobs(self) -> Iterator[PersistedJob]:
        with self._mutex:
            jobs = [copy.deepcopy(j) for j in self._jobs.values()]
        jobs.sort(key=lambda j: (j.fetched_at is None, j.fetched_at, j.id))
        return iter(jobs)
