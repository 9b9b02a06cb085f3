#!/usr/bin/env python3
from __future__ import annotations

# ruff: noqa: E402
import argparse
import json
import logging
import os
import sys
from contextlib import nullcontext
from dataclasses import asdict

# Ensure project root is in path for local execution.
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, project_root)

from jobsync.config.settings import get_settings
from jobsync.contacts import InMemoryContactDirectory
from jobsync.http import PoliteHttpClient
from jobsync.observability import get_observability
from jobsync.store import InMemoryStore
from jobsync.sync import SourceNotFoundError, SyncAlreadyRunningError, SyncOptions, SyncOrchestrator

EXIT_NOT_FOUND = 2
EXIT_ALREADY_RUNNING = 3


def _build_store(args, settings):
    if args.memory:
        return InMemoryStore(), InMemoryContactDirectory(user_ids=[args.user_id] if args.user_id else [])

    from jobsync.postgres import PostgresContactDirectory, PostgresStore

    store = PostgresStore.from_settings(settings)
    return store, PostgresContactDirectory(store)


def main() -> int:
    parser = argparse.ArgumentParser(description="Sync job postings from GitHub issue boards and public ATS boards.")
    parser.add_argument("--source-id", help="Sync a single enabled source by id.")
    parser.add_argument("--source", dest="source_full_name", help="Sync a single enabled source by full name.")
    parser.add_argument("--reparse", action="store_true", help="Re-run the parser over stored jobs; no fetching.")
    parser.add_argument(
        "--enforce-schedule", action="store_true", help="Skip sources whose next sync time has not passed."
    )
    discovery = parser.add_mutually_exclusive_group()
    discovery.add_argument("--discovery", dest="run_discovery", action="store_true", default=None)
    discovery.add_argument("--no-discovery", dest="run_discovery", action="store_false")
    parser.add_argument("--user-id", help="Fan contacts out to this user only.")
    parser.add_argument("--memory", action="store_true", help="Use an in-memory store (dry run, nothing persisted).")
    parser.add_argument("--list-sources", action="store_true", help="List known sources and exit.")
    parser.add_argument("--json", action="store_true", help="Print the sync report as JSON.")
    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(level=settings.local.log_level, format="%(asctime)s %(levelname)s %(message)s")

    store, contacts = _build_store(args, settings)

    if args.list_sources:
        for source in store.list_sources():
            state = "enabled" if source.enabled else "disabled"
            print(f"{source.id}  {source.full_name}  [{source.source_type}, {state}, health={source.health_score}]")
        store.close()
        return 0

    obs = get_observability("jobsync-source-sync")
    options = SyncOptions(
        source_id=args.source_id,
        source_full_name=args.source_full_name,
        reparse_existing=args.reparse,
        enforce_schedule=args.enforce_schedule,
        run_discovery=args.run_discovery,
        requesting_user_id=args.user_id,
    )
    span_context = (
        obs.tracer.start_as_current_span("jobsync.sync", attributes={"sync.reparse": args.reparse})
        if obs.tracer
        else nullcontext()
    )

    try:
        with PoliteHttpClient.from_settings(settings.http) as http, span_context:
            orchestrator = SyncOrchestrator(store, contacts, http, settings, metrics=obs.sync_metrics)
            report = orchestrator.run_sync(options)
    except SourceNotFoundError as e:
        print(str(e))
        return EXIT_NOT_FOUND
    except SyncAlreadyRunningError as e:
        held = f" (started {e.lock_started_at.isoformat()})" if e.lock_started_at else ""
        print(f"{e}{held}; try again later.")
        return EXIT_ALREADY_RUNNING
    finally:
        store.close()

    if args.json:
        print(json.dumps(asdict(report), indent=2, default=str))
        return 0

    for result in report.results:
        line = (
            f"{result.source}: {result.status} fetched={result.total_fetched} new={result.new_jobs} "
            f"duplicates={result.duplicates} parse={result.parse_success_ratio:.2f} "
            f"contacts={result.contact_yield_ratio:.2f}"
        )
        if result.error:
            line += f" error={result.error}"
        print(line)

    if report.discovery is not None:
        print(
            f"Discovery created={report.discovery.created} auto_enabled={report.discovery.auto_enabled} "
            f"skipped_catalogs={len(report.discovery.skipped_catalogs)}"
        )
    print(f"Sync summary sources={len(report.results)} new_jobs={report.total_new_jobs}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
