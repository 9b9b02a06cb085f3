"""Postgres-backed store and contact directory.

DDL is created idempotently by ``ensure_schema``. Uniqueness rules:

* ``sources.full_name``
* ``jobs (source_id, external_job_id)``; ``jobs.url`` is indexed but not
  unique so a provider that reuses a URL for a new posting id is stored
* a partial unique index allows one running ``__global__`` lock row, which
  is what makes ``acquire_global_lock`` atomic across processes

Credentials come from ``DatabaseSettings`` (``JOBSYNC_DB_*``). An unset user
raises ``EnvironmentError`` rather than connecting with insecure defaults.
"""
from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from dataclasses import fields
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

import psycopg2
import psycopg2.extras

from jobsync.contacts import ContactDirectory, ContactUpsert, ContactUpsertResult
from jobsync.models import GLOBAL_LOCK_ID, PersistedJob, Source, SyncRun
from jobsync.store import LOCK_ABANDONED, JobConflictError, StoreError, SyncStore

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Connection helpers
# ---------------------------------------------------------------------------

@contextmanager
def get_connection(dsn: str):
    """Context manager yielding a psycopg2 connection; commits on exit."""
    pg = psycopg2.connect(dsn)
    try:
        yield pg
        pg.commit()
    except Exception:
        pg.rollback()
        raise
    finally:
        pg.close()


# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

SCHEMA_DDL = f"""
CREATE TABLE IF NOT EXISTS sources (
    id                      text        NOT NULL PRIMARY KEY,
    source_type             text        NOT NULL,
    full_name               text        NOT NULL UNIQUE,
    owner                   text        NOT NULL,
    repo                    text        NOT NULL,
    url                     text        NOT NULL,
    external_key            text,
    display_name            text,
    category                text        NOT NULL DEFAULT 'general',
    technology              text,
    enabled                 boolean     NOT NULL DEFAULT true,
    sync_interval_minutes   integer     NOT NULL DEFAULT 30,
    last_scraped_at         timestamptz,
    next_sync_at            timestamptz,
    throttled_until         timestamptz,
    health_score            integer     NOT NULL DEFAULT 100,
    health_status           text        NOT NULL DEFAULT 'healthy',
    health_breakdown        jsonb       NOT NULL DEFAULT '{{}}'::jsonb,
    consecutive_failures    integer     NOT NULL DEFAULT 0,
    last_success_at         timestamptz,
    last_error_at           timestamptz,
    last_error_code         text,
    last_error_message      text,
    auto_discovered         boolean     NOT NULL DEFAULT false,
    discovery_confidence    integer,
    region_tags             text[]      NOT NULL DEFAULT '{{}}',
    total_jobs_fetched      integer     NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS sync_runs (
    id                      text        NOT NULL PRIMARY KEY,
    source_id               text        NOT NULL,
    started_at              timestamptz NOT NULL,
    status                  text        NOT NULL,
    completed_at            timestamptz,
    http_status             integer,
    latency_ms              integer,
    total_fetched           integer     NOT NULL DEFAULT 0,
    new_jobs                integer     NOT NULL DEFAULT 0,
    duplicates              integer     NOT NULL DEFAULT 0,
    parse_success_ratio     double precision,
    contact_yield_ratio     double precision,
    error_code              text,
    error_message           text
);
CREATE INDEX IF NOT EXISTS sync_runs_source_id_idx ON sync_runs (source_id);
CREATE UNIQUE INDEX IF NOT EXISTS sync_runs_global_lock_uidx
    ON sync_runs (source_id)
    WHERE status = 'running' AND source_id = '{GLOBAL_LOCK_ID}';

CREATE TABLE IF NOT EXISTS jobs (
    id                      text        NOT NULL PRIMARY KEY,
    url                     text        NOT NULL,
    title                   text        NOT NULL,
    body                    text        NOT NULL,
    source_id               text        NOT NULL REFERENCES sources (id),
    source_type             text        NOT NULL,
    source_full_name        text        NOT NULL,
    external_job_id         text,
    labels                  text[]      NOT NULL DEFAULT '{{}}',
    created_at              timestamptz,
    updated_at              timestamptz,
    poster_username         text,
    poster_avatar_url       text,
    comments_count          integer     NOT NULL DEFAULT 0,
    issue_number            integer     NOT NULL DEFAULT 0,
    company                 text,
    role                    text,
    salary                  text,
    location                text,
    contract_type           text,
    experience_level        text,
    tech_stack              text[]      NOT NULL DEFAULT '{{}}',
    benefits                text,
    apply_url               text,
    contact_email           text,
    contact_linkedin        text,
    contact_whatsapp        text,
    is_remote               boolean     NOT NULL DEFAULT false,
    fetched_at              timestamptz,
    parsed_at               timestamptz
);
CREATE INDEX IF NOT EXISTS jobs_url_idx ON jobs (url);
CREATE UNIQUE INDEX IF NOT EXISTS jobs_source_external_uidx
    ON jobs (source_id, external_job_id);

CREATE TABLE IF NOT EXISTS users (
    id                      text        NOT NULL PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS contacts (
    id                      text        NOT NULL PRIMARY KEY,
    user_id                 text        NOT NULL REFERENCES users (id),
    email                   text        NOT NULL,
    company                 text,
    position                text,
    source_ref              text,
    source_type             text,
    job_id                  text,
    job_title               text,
    created_at              timestamptz NOT NULL DEFAULT now(),
    UNIQUE (user_id, email)
);
"""


def ensure_schema(dsn: str) -> None:
    """Idempotently create every table and index the store relies on."""
    with get_connection(dsn) as pg:
        cur = pg.cursor()
        cur.execute(SCHEMA_DDL)
    log.info("DDL ensured: sources, sync_runs, jobs, users, contacts")


_SOURCE_COLUMNS = [f.name for f in fields(Source)]
_RUN_COLUMNS = [f.name for f in fields(SyncRun)]
_JOB_COLUMNS = [f.name for f in fields(PersistedJob)]


def _adapt(name: str, value: Any) -> Any:
    if name == "health_breakdown":
        return psycopg2.extras.Json(value or {})
    return value


def _values(obj: Any, columns: List[str]) -> List[Any]:
    return [_adapt(col, getattr(obj, col)) for col in columns]


def _insert_sql(table: str, columns: List[str]) -> str:
    placeholders = ", ".join(["%s"] * len(columns))
    return f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"


def _update_sql(table: str, columns: List[str]) -> str:
    set_clause = ", ".join(f"{c} = %s" for c in columns if c != "id")
    return f"UPDATE {table} SET {set_clause} WHERE id = %s"


def _source_from_row(row: Dict[str, Any]) -> Source:
    data = {k: row[k] for k in _SOURCE_COLUMNS if k in row}
    data["region_tags"] = list(data.get("region_tags") or [])
    data["health_breakdown"] = dict(data.get("health_breakdown") or {})
    return Source(**data)


def _run_from_row(row: Dict[str, Any]) -> SyncRun:
    return SyncRun(**{k: row[k] for k in _RUN_COLUMNS if k in row})


def _job_from_row(row: Dict[str, Any]) -> PersistedJob:
    data = {k: row[k] for k in _JOB_COLUMNS if k in row}
    data["labels"] = list(data.get("labels") or [])
    data["tech_stack"] = list(data.get("tech_stack") or [])
    return PersistedJob(**data)


class PostgresStore(SyncStore):
    """``SyncStore`` over one psycopg2 connection.

    Outside ``transaction()`` every call commits on its own; inside it the
    writes share one database transaction that is rolled back on error.
    """

    def __init__(self, dsn: str, *, ensure: bool = True) -> None:
        if ensure:
            ensure_schema(dsn)
        self._conn = psycopg2.connect(dsn)
        self._tx_depth = 0

    @classmethod
    def from_settings(cls, settings) -> "PostgresStore":
        return cls(settings.database.dsn())

    @property
    def connection(self):
        return self._conn

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def _cursor(self):
        cur = self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
        try:
            yield cur
            if not self._tx_depth:
                self._conn.commit()
        except Exception:
            if not self._tx_depth:
                self._conn.rollback()
            raise
        finally:
            cur.close()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._tx_depth:
            self._tx_depth += 1
            try:
                yield
            finally:
                self._tx_depth -= 1
            return

        self._tx_depth = 1
        try:
            yield
            self._conn.commit()
        except BaseException:
            self._conn.rollback()
            raise
        finally:
            self._tx_depth = 0

    # -- sources -------------------------------------------------------------

    def list_sources(self, *, enabled_only: bool = False) -> List[Source]:
        sql = "SELECT * FROM sources"
        if enabled_only:
            sql += " WHERE enabled"
        sql += " ORDER BY full_name"
        with self._cursor() as cur:
            cur.execute(sql)
            return [_source_from_row(row) for row in cur.fetchall()]

    def get_source(self, source_id: str) -> Optional[Source]:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM sources WHERE id = %s", (source_id,))
            row = cur.fetchone()
        return _source_from_row(row) if row else None

    def get_source_by_full_name(self, full_name: str) -> Optional[Source]:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM sources WHERE full_name = %s", (full_name,))
            row = cur.fetchone()
        return _source_from_row(row) if row else None

    def insert_source_if_absent(self, source: Source) -> bool:
        sql = _insert_sql("sources", _SOURCE_COLUMNS) + " ON CONFLICT DO NOTHING RETURNING id"
        with self._cursor() as cur:
            cur.execute(sql, _values(source, _SOURCE_COLUMNS))
            return cur.fetchone() is not None

    def update_source(self, source: Source) -> None:
        columns = [c for c in _SOURCE_COLUMNS if c != "id"]
        with self._cursor() as cur:
            cur.execute(_update_sql("sources", _SOURCE_COLUMNS), _values(source, columns) + [source.id])
            if cur.rowcount != 1:
                raise StoreError(f"Unknown source: {source.id}")

    # -- sync runs -----------------------------------------------------------

    def insert_run(self, run: SyncRun) -> None:
        with self._cursor() as cur:
            cur.execute(_insert_sql("sync_runs", _RUN_COLUMNS), _values(run, _RUN_COLUMNS))

    def update_run(self, run: SyncRun) -> None:
        columns = [c for c in _RUN_COLUMNS if c != "id"]
        with self._cursor() as cur:
            cur.execute(_update_sql("sync_runs", _RUN_COLUMNS), _values(run, columns) + [run.id])
            if cur.rowcount != 1:
                raise StoreError(f"Unknown sync run: {run.id}")

    def list_runs(self, source_id: Optional[str] = None) -> List[SyncRun]:
        with self._cursor() as cur:
            if source_id is None:
                cur.execute("SELECT * FROM sync_runs ORDER BY started_at")
            else:
                cur.execute("SELECT * FROM sync_runs WHERE source_id = %s ORDER BY started_at", (source_id,))
            return [_run_from_row(row) for row in cur.fetchall()]

    def acquire_global_lock(self, lock_run: SyncRun, *, stale_before: datetime) -> bool:
        abandon_sql = """
        UPDATE sync_runs
           SET status = 'failed',
               completed_at = %s,
               error_code = %s,
               error_message = 'Lock went stale and was taken over'
         WHERE source_id = %s
           AND status = 'running'
           AND started_at < %s
        """
        insert_sql = (
            _insert_sql("sync_runs", _RUN_COLUMNS)
            + f" ON CONFLICT (source_id) WHERE status = 'running' AND source_id = '{GLOBAL_LOCK_ID}'"
            + " DO NOTHING RETURNING id"
        )
        with self.transaction():
            with self._cursor() as cur:
                cur.execute(abandon_sql, (lock_run.started_at, LOCK_ABANDONED, GLOBAL_LOCK_ID, stale_before))
                cur.execute(insert_sql, _values(lock_run, _RUN_COLUMNS))
                return cur.fetchone() is not None

    # -- jobs ----------------------------------------------------------------

    def find_jobs_by_url(self, url: str) -> List[PersistedJob]:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM jobs WHERE url = %s ORDER BY fetched_at, id", (url,))
            return [_job_from_row(row) for row in cur.fetchall()]

    def find_job_by_external_id(self, source_id: str, external_job_id: str) -> Optional[PersistedJob]:
        with self._cursor() as cur:
            cur.execute(
                "SELECT * FROM jobs WHERE source_id = %s AND external_job_id = %s",
                (source_id, external_job_id),
            )
            row = cur.fetchone()
        return _job_from_row(row) if row else None

    def insert_job(self, job: PersistedJob) -> None:
        sql = (
            _insert_sql("jobs", _JOB_COLUMNS)
            + " ON CONFLICT (source_id, external_job_id) DO NOTHING RETURNING id"
        )
        with self._cursor() as cur:
            cur.execute(sql, _values(job, _JOB_COLUMNS))
            inserted = cur.fetchone() is not None
        if not inserted:
            raise JobConflictError(job.source_id, job.external_job_id or "")

    def update_job(self, job: PersistedJob) -> None:
        columns = [c for c in _JOB_COLUMNS if c != "id"]
        with self._cursor() as cur:
            cur.execute(_update_sql("jobs", _JOB_COLUMNS), _values(job, columns) + [job.id])
            if cur.rowcount != 1:
                raise StoreError(f"Unknown job: {job.id}")

    def iter_jobs(self) -> Iterator[PersistedJob]:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM jobs ORDER BY fetched_at NULLS LAST, id")
            rows = cur.fetchall()
        return iter([_job_from_row(row) for row in rows])


class PostgresContactDirectory(ContactDirectory):
    """Contacts in the ``users``/``contacts`` tables, sharing the store's connection."""

    def __init__(self, store: PostgresStore) -> None:
        self._store = store

    def user_ids(self) -> List[str]:
        with self._store._cursor() as cur:
            cur.execute("SELECT id FROM users ORDER BY id")
            return [row["id"] for row in cur.fetchall()]

    def upsert_contact(self, user_id: str, contact: ContactUpsert) -> ContactUpsertResult:
        sql = """
        INSERT INTO contacts
            (id, user_id, email, company, position, source_ref, source_type, job_id, job_title)
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (user_id, email) DO UPDATE SET
            company     = COALESCE(contacts.company, EXCLUDED.company),
            position    = COALESCE(contacts.position, EXCLUDED.position),
            source_ref  = COALESCE(contacts.source_ref, EXCLUDED.source_ref),
            source_type = COALESCE(contacts.source_type, EXCLUDED.source_type),
            job_id      = COALESCE(contacts.job_id, EXCLUDED.job_id),
            job_title   = COALESCE(contacts.job_title, EXCLUDED.job_title)
        RETURNING id, (xmax = 0) AS created
        """
        with self._store._cursor() as cur:
            cur.execute(
                sql,
                (
                    str(uuid.uuid4()),
                    user_id,
                    contact.email.strip().lower(),
                    contact.company,
                    contact.position,
                    contact.source_ref,
                    contact.source_type,
                    contact.job_id,
                    contact.job_title,
                ),
            )
            row = cur.fetchone()
        return ContactUpsertResult(id=row["id"], created=bool(row["created"]))
