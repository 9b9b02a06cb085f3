"""Sync orchestrator.

One invocation takes the global lock, optionally runs discovery, then walks
the selected sources one at a time::

    SyncRun(running) -> fetch -> transaction {parse, dedup, insert/merge,
    contact fan-out, run totals, health, schedule} -> SyncRun(completed)

A connector failure (``JobSyncHttpError``) fails only its own source. Any
other error escapes, closes the lock run as ``GLOBAL_SYNC_FAILED`` and is
re-raised so a later invocation can retry.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Literal, Optional, Sequence

from jobsync.config.settings import GitHubSettings, Settings
from jobsync.connectors.base import BaseConnector
from jobsync.contacts import ContactDirectory, ContactUpsert
from jobsync.discovery import DiscoveryEngine, DiscoverySummary
from jobsync.health import HealthInput, HealthResult, compute_source_health, minutes_since
from jobsync.http import HostNotAllowedError, JobSyncHttpError, PoliteHttpClient
from jobsync.logging_utils import log_event
from jobsync.models import (
    GLOBAL_LOCK_ID,
    PARSED_FIELD_NAMES,
    FetchResult,
    ParsedFields,
    PersistedJob,
    RawPosting,
    Source,
    SyncRun,
)
from jobsync.normalize import canonicalize_url
from jobsync.observability import SyncMetrics
from jobsync.parser import parse_job_posting
from jobsync.registry import UnknownSourceTypeError, get_connector
from jobsync.store import SyncStore

logger = logging.getLogger("jobsync.sync")

FETCH_FAILED = "FETCH_FAILED"
COMPLIANCE_BLOCKED = "COMPLIANCE_BLOCKED"
GLOBAL_SYNC_FAILED = "GLOBAL_SYNC_FAILED"

REPARSE_SOURCE_NAME = "reparse_existing"

# Latency fed to the health scorer when a fetch produced no timing.
FAILED_FETCH_LATENCY_MS = 10000

ConnectorFactory = Callable[[str, PoliteHttpClient, GitHubSettings], BaseConnector]


class SyncAlreadyRunningError(RuntimeError):
    def __init__(self, lock_started_at: Optional[datetime] = None) -> None:
        super().__init__("Sync already running")
        self.lock_started_at = lock_started_at


class SourceNotFoundError(LookupError):
    def __init__(self, source_id: Optional[str] = None, full_name: Optional[str] = None) -> None:
        target = source_id or full_name or "<any>"
        super().__init__(f"No enabled source matches: {target}")
        self.source_id = source_id
        self.full_name = full_name


@dataclass
class SyncOptions:
    source_id: Optional[str] = None
    source_full_name: Optional[str] = None
    reparse_existing: bool = False
    enforce_schedule: bool = False
    # None falls back to SyncSettings.run_discovery.
    run_discovery: Optional[bool] = None
    requesting_user_id: Optional[str] = None

    @property
    def has_source_filter(self) -> bool:
        return bool(self.source_id or self.source_full_name)


@dataclass
class SourceSyncResult:
    source: str
    status: Literal["completed", "failed"]
    new_jobs: int = 0
    total_fetched: int = 0
    duplicates: int = 0
    parse_success_ratio: float = 0.0
    contact_yield_ratio: float = 0.0
    error: Optional[str] = None


@dataclass
class SyncReport:
    success: bool
    results: List[SourceSyncResult] = field(default_factory=list)
    total_new_jobs: int = 0
    discovery: Optional[DiscoverySummary] = None


def _ratio(part: int, total: int) -> float:
    return part / total if total > 0 else 0.0


def _has_value(value: Any) -> bool:
    if value is None or value == "Unknown":
        return False
    if isinstance(value, (list, tuple, str)):
        return len(value) > 0
    return True


def merge_parsed_fields(job: PersistedJob, parsed: ParsedFields) -> bool:
    """Copy newly parsed values onto ``job`` without erasing stored ones.

    A parsed value replaces the stored one only when it carries information;
    ``Unknown`` enums and empty lists count as missing. ``is_remote`` is sticky.
    Returns whether anything changed.
    """
    changed = False
    for name in PARSED_FIELD_NAMES:
        new = getattr(parsed, name)
        old = getattr(job, name)
        if name == "is_remote":
            merged = bool(old) or bool(new)
        elif _has_value(new):
            merged = list(new) if isinstance(new, list) else new
        elif old is None and new is not None:
            merged = new
        else:
            merged = old
        if merged != old:
            setattr(job, name, merged)
            changed = True
    return changed


class SyncOrchestrator:
    def __init__(
        self,
        store: SyncStore,
        contacts: ContactDirectory,
        http: PoliteHttpClient,
        settings: Settings,
        *,
        metrics: Optional[SyncMetrics] = None,
        clock: Optional[Callable[[], datetime]] = None,
        connector_factory: ConnectorFactory = get_connector,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self._store = store
        self._contacts = contacts
        self._http = http
        self._settings = settings
        self._metrics = metrics
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._connector_factory = connector_factory
        self._new_id = id_factory

    # -- entry point ---------------------------------------------------------

    def run_sync(self, options: Optional[SyncOptions] = None) -> SyncReport:
        options = options or SyncOptions()
        lock_run = self._acquire_lock()

        try:
            if options.reparse_existing:
                report = self._reparse_existing(options)
            else:
                report = self._sync_sources(options)
        except SourceNotFoundError:
            self._release_lock(lock_run, [])
            raise
        except Exception as e:
            lock_run.status = "failed"
            lock_run.completed_at = self._clock()
            lock_run.error_code = GLOBAL_SYNC_FAILED
            lock_run.error_message = str(e) or type(e).__name__
            self._store.update_run(lock_run)
            log_event(
                logger,
                logging.ERROR,
                "sync_failed",
                lock_run_id=lock_run.id,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise

        self._release_lock(lock_run, report.results)
        return report

    # -- lock ----------------------------------------------------------------

    def _acquire_lock(self) -> SyncRun:
        now = self._clock()
        lock_run = SyncRun(id=self._new_id(), source_id=GLOBAL_LOCK_ID, started_at=now)
        stale_before = now - timedelta(minutes=self._settings.sync.lock_stale_minutes)
        if not self._store.acquire_global_lock(lock_run, stale_before=stale_before):
            held_since = self._lock_holder_started_at()
            log_event(
                logger,
                logging.WARNING,
                "sync_lock_contended",
                stale_before=stale_before.isoformat(),
                lock_started_at=held_since.isoformat() if held_since else None,
            )
            raise SyncAlreadyRunningError(held_since)
        log_event(logger, logging.INFO, "sync_lock_acquired", lock_run_id=lock_run.id)
        return lock_run

    def _lock_holder_started_at(self) -> Optional[datetime]:
        running = [r.started_at for r in self._store.list_runs(GLOBAL_LOCK_ID) if r.status == "running"]
        return max(running) if running else None

    def _release_lock(self, lock_run: SyncRun, results: Sequence[SourceSyncResult]) -> None:
        lock_run.status = "completed"
        lock_run.completed_at = self._clock()
        lock_run.total_fetched = sum(r.total_fetched for r in results)
        lock_run.new_jobs = sum(r.new_jobs for r in results)
        lock_run.duplicates = sum(r.duplicates for r in results)
        self._store.update_run(lock_run)

    # -- selection -----------------------------------------------------------

    def _select_sources(self, options: SyncOptions, now: datetime) -> List[Source]:
        sources = self._store.list_sources(enabled_only=True)
        if options.source_id:
            sources = [s for s in sources if s.id == options.source_id]
        if options.source_full_name:
            sources = [s for s in sources if s.full_name == options.source_full_name]
        if options.has_source_filter and not sources:
            raise SourceNotFoundError(options.source_id, options.source_full_name)
        if options.enforce_schedule:
            sources = [s for s in sources if s.is_due(now)]
        return sources

    def _target_user_ids(self, options: SyncOptions) -> List[str]:
        if options.requesting_user_id:
            return [options.requesting_user_id]
        return self._contacts.user_ids()

    def _run_discovery(self, options: SyncOptions) -> Optional[DiscoverySummary]:
        enabled = options.run_discovery
        if enabled is None:
            enabled = self._settings.sync.run_discovery
        if not enabled:
            return None
        engine = DiscoveryEngine(
            self._store,
            self._settings.discovery,
            default_interval_minutes=self._settings.sync.default_interval_minutes,
            clock=self._clock,
            id_factory=self._new_id,
        )
        return engine.run()

    def _sync_sources(self, options: SyncOptions) -> SyncReport:
        discovery = self._run_discovery(options)
        sources = self._select_sources(options, self._clock())
        user_ids = self._target_user_ids(options)

        results = [self._sync_source(source, user_ids) for source in sources]
        return SyncReport(
            success=True,
            results=results,
            total_new_jobs=sum(r.new_jobs for r in results),
            discovery=discovery,
        )

    # -- per source ----------------------------------------------------------

    def _sync_source(self, source: Source, user_ids: List[str]) -> SourceSyncResult:
        run = SyncRun(id=self._new_id(), source_id=source.id, started_at=self._clock())
        self._store.insert_run(run)
        log_event(
            logger,
            logging.INFO,
            "source_sync_start",
            source=source.full_name,
            source_type=source.source_type,
            since=source.last_scraped_at.isoformat() if source.last_scraped_at else None,
        )

        try:
            connector = self._connector_factory(source.source_type, self._http, self._settings.github)
            fetched = connector.fetch_jobs(source, since=source.last_scraped_at)
        except (JobSyncHttpError, UnknownSourceTypeError) as e:
            return self._record_failure(source, run, e)

        try:
            with self._store.transaction():
                return self._persist_fetch(source, run, fetched, user_ids)
        except Exception as e:
            run.status = "failed"
            run.completed_at = self._clock()
            run.error_code = GLOBAL_SYNC_FAILED
            run.error_message = str(e) or type(e).__name__
            self._store.update_run(run)
            raise

    def _find_existing(self, source: Source, posting: RawPosting, url: str) -> Optional[PersistedJob]:
        for job in self._store.find_jobs_by_url(url) if url else []:
            reused_url = (
                job.source_id == source.id
                and job.external_job_id
                and posting.external_job_id
                and job.external_job_id != posting.external_job_id
            )
            if not reused_url:
                return job
        if posting.external_job_id:
            return self._store.find_job_by_external_id(source.id, posting.external_job_id)
        return None

    def _new_job(self, source: Source, posting: RawPosting, url: str, parsed: ParsedFields, now: datetime) -> PersistedJob:
        job = PersistedJob(
            id=self._new_id(),
            url=url,
            title=posting.title,
            body=posting.body,
            source_id=source.id,
            source_type=source.source_type,
            source_full_name=source.full_name,
            external_job_id=posting.external_job_id or None,
            labels=list(posting.labels),
            created_at=posting.created_at,
            updated_at=posting.updated_at,
            poster_username=posting.poster_username or source.source_type,
            poster_avatar_url=posting.poster_avatar_url,
            comments_count=posting.comments_count,
            issue_number=posting.issue_number,
            fetched_at=now,
            parsed_at=now,
        )
        for name in PARSED_FIELD_NAMES:
            value = getattr(parsed, name)
            setattr(job, name, list(value) if isinstance(value, list) else value)
        return job

    def _refresh_job(self, job: PersistedJob, source: Source, posting: RawPosting, parsed: ParsedFields, now: datetime) -> None:
        if posting.title:
            job.title = posting.title
        if posting.body:
            job.body = posting.body
        if posting.labels:
            job.labels = list(posting.labels)
        job.updated_at = posting.updated_at or job.updated_at
        job.comments_count = posting.comments_count
        job.poster_username = job.poster_username or posting.poster_username
        job.poster_avatar_url = job.poster_avatar_url or posting.poster_avatar_url
        job.source_id = job.source_id or source.id
        job.source_type = source.source_type
        job.external_job_id = job.external_job_id or posting.external_job_id or None
        merge_parsed_fields(job, parsed)
        job.parsed_at = now

    def _persist_fetch(self, source: Source, run: SyncRun, fetched: FetchResult, user_ids: List[str]) -> SourceSyncResult:
        new_jobs = duplicates = parse_success = contacts_found = 0

        for posting in fetched.postings:
            now = self._clock()
            url = canonicalize_url(posting.url)
            parsed = parse_job_posting(posting.title, posting.body, posting.labels, source.source_type)
            parsed.apply_url = parsed.apply_url or posting.apply_url

            if parsed.has_signal():
                parse_success += 1
            if parsed.contact_email:
                contacts_found += 1

            existing = self._find_existing(source, posting, url)
            if existing is None:
                job = self._new_job(source, posting, url, parsed, now)
                self._store.insert_job(job)
                self._fan_out(parsed.contact_email, parsed, job, user_ids)
                new_jobs += 1
            else:
                previous_email = existing.contact_email
                self._refresh_job(existing, source, posting, parsed, now)
                self._store.update_job(existing)
                self._fan_out(parsed.contact_email or previous_email, parsed, existing, user_ids)
                duplicates += 1

        total = len(fetched.postings)
        parse_ratio = _ratio(parse_success, total)
        contact_ratio = _ratio(contacts_found, total)
        now = self._clock()

        health = compute_source_health(
            HealthInput(
                fetch_succeeded=True,
                had_compliance_issue=False,
                parse_success_ratio=parse_ratio,
                contact_yield_ratio=contact_ratio,
                latency_ms=fetched.latency_ms,
                minutes_since_success=minutes_since(source.last_success_at, now),
                consecutive_failures=0,
                rate_limited=fetched.rate_limited,
            )
        )

        run.status = "completed"
        run.completed_at = now
        run.http_status = fetched.http_status
        run.latency_ms = fetched.latency_ms
        run.total_fetched = total
        run.new_jobs = new_jobs
        run.duplicates = duplicates
        run.parse_success_ratio = parse_ratio
        run.contact_yield_ratio = contact_ratio
        self._store.update_run(run)

        # Fetch start, not completion.
        source.last_scraped_at = run.started_at
        source.total_jobs_fetched += new_jobs
        source.consecutive_failures = 0
        source.last_success_at = now
        source.last_error_at = None
        source.last_error_code = None
        source.last_error_message = None
        self._apply_health(source, health, now)
        self._store.update_source(source)

        if self._metrics is not None:
            self._metrics.record_source_sync(source.source_type, "completed", fetched.latency_ms)
            self._metrics.record_jobs(source.source_type, new_jobs, duplicates)
            self._metrics.record_health(source.full_name, health.score)

        log_event(
            logger,
            logging.INFO,
            "source_sync_done",
            source=source.full_name,
            source_type=source.source_type,
            http_status=fetched.http_status,
            latency_ms=fetched.latency_ms,
            total_fetched=total,
            new_jobs=new_jobs,
            duplicates=duplicates,
            parse_success_ratio=round(parse_ratio, 3),
            contact_yield_ratio=round(contact_ratio, 3),
            health_score=health.score,
            rate_limit_remaining=fetched.rate_limit_remaining,
        )

        return SourceSyncResult(
            source=source.full_name,
            status="completed",
            new_jobs=new_jobs,
            total_fetched=total,
            duplicates=duplicates,
            parse_success_ratio=parse_ratio,
            contact_yield_ratio=contact_ratio,
        )

    def _record_failure(self, source: Source, run: SyncRun, error: Exception) -> SourceSyncResult:
        now = self._clock()
        compliance = isinstance(error, HostNotAllowedError)
        error_code = COMPLIANCE_BLOCKED if compliance else FETCH_FAILED
        error_message = str(error) or type(error).__name__
        failures = source.consecutive_failures + 1

        health = compute_source_health(
            HealthInput(
                fetch_succeeded=False,
                had_compliance_issue=compliance,
                parse_success_ratio=0.0,
                contact_yield_ratio=0.0,
                latency_ms=FAILED_FETCH_LATENCY_MS,
                minutes_since_success=minutes_since(source.last_success_at, now),
                consecutive_failures=failures,
            )
        )

        with self._store.transaction():
            run.status = "failed"
            run.completed_at = now
            run.http_status = getattr(error, "status_code", None)
            run.error_code = error_code
            run.error_message = error_message
            self._store.update_run(run)

            source.consecutive_failures = failures
            source.last_error_at = now
            source.last_error_code = error_code
            source.last_error_message = error_message
            self._apply_health(source, health, now)
            self._store.update_source(source)

        if self._metrics is not None:
            self._metrics.record_source_sync(source.source_type, "failed", None)
            self._metrics.record_health(source.full_name, health.score)

        log_event(
            logger,
            logging.WARNING,
            "source_sync_failed",
            source=source.full_name,
            source_type=source.source_type,
            error_code=error_code,
            error_type=type(error).__name__,
            error=error_message,
            consecutive_failures=failures,
            throttle_minutes=health.throttle_minutes,
        )

        return SourceSyncResult(source=source.full_name, status="failed", error=error_message)

    def _apply_health(self, source: Source, health: HealthResult, now: datetime) -> None:
        source.health_score = health.score
        source.health_status = health.status
        source.health_breakdown = dict(health.breakdown)
        source.next_sync_at = now + timedelta(minutes=source.sync_interval_minutes + health.throttle_minutes)
        if health.throttle_minutes > 0:
            source.throttled_until = now + timedelta(minutes=health.throttle_minutes)
        else:
            source.throttled_until = None

    # -- fan-out -------------------------------------------------------------

    def _fan_out(self, email: Optional[str], parsed: ParsedFields, job: PersistedJob, user_ids: List[str]) -> None:
        if not email:
            return
        contact = ContactUpsert(
            email=email,
            company=parsed.company,
            position=parsed.role,
            source_ref=job.url,
            source_type=job.source_type,
            job_id=job.id,
            job_title=job.title,
        )
        for user_id in user_ids:
            self._contacts.upsert_contact(user_id, contact)

    # -- reparse -------------------------------------------------------------

    def _reparse_existing(self, options: SyncOptions) -> SyncReport:
        user_ids = self._target_user_ids(options)
        total = updated = parse_success = contacts_found = 0

        with self._store.transaction():
            for job in self._store.iter_jobs():
                total += 1
                parsed = parse_job_posting(job.title, job.body, job.labels, job.source_type)
                if parsed.has_signal():
                    parse_success += 1
                if parsed.contact_email:
                    contacts_found += 1

                if merge_parsed_fields(job, parsed):
                    job.parsed_at = self._clock()
                    self._store.update_job(job)
                    updated += 1

                self._fan_out(parsed.contact_email or job.contact_email, parsed, job, user_ids)

        log_event(logger, logging.INFO, "reparse_done", total=total, updated=updated)

        result = SourceSyncResult(
            source=REPARSE_SOURCE_NAME,
            status="completed",
            total_fetched=total,
            duplicates=total - updated,
            parse_success_ratio=_ratio(parse_success, total),
            contact_yield_ratio=_ratio(contacts_found, total),
        )
        return SyncReport(success=True, results=[result], total_new_jobs=0)
