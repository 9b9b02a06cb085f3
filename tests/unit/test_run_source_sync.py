from __future__ import annotations

import json
import sys
from datetime import datetime, timedelta, timezone

import pytest

import scripts.pipeline.run_source_sync as run_source_sync
from jobsync.contacts import InMemoryContactDirectory
from jobsync.models import GLOBAL_LOCK_ID, Source, SyncRun
from jobsync.observability import Observability
from jobsync.store import InMemoryStore


@pytest.fixture(autouse=True)
def _no_telemetry(monkeypatch):
    monkeypatch.setattr(run_source_sync, "get_observability", lambda _name: Observability())


def _run(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["run_source_sync.py", *argv])
    return run_source_sync.main()


def test_memory_run_without_sources_prints_empty_summary(monkeypatch, capsys):
    rc = _run(monkeypatch, "--memory", "--no-discovery")

    assert rc == 0
    assert "Sync summary sources=0 new_jobs=0" in capsys.readouterr().out


def test_json_report(monkeypatch, capsys):
    rc = _run(monkeypatch, "--memory", "--no-discovery", "--json")

    assert rc == 0
    report = json.loads(capsys.readouterr().out)
    assert report["success"] is True
    assert report["results"] == []


def test_unknown_source_exits_with_not_found(monkeypatch, capsys):
    rc = _run(monkeypatch, "--memory", "--no-discovery", "--source-id", "missing")

    assert rc == run_source_sync.EXIT_NOT_FOUND
    assert "missing" in capsys.readouterr().out


def test_list_sources(monkeypatch, capsys):
    store = InMemoryStore()
    store.add_source(
        Source(
            id="src-1",
            source_type="lever",
            full_name="lever/globex",
            owner="lever",
            repo="globex",
            url="https://jobs.lever.co/globex",
            enabled=False,
        )
    )
    monkeypatch.setattr(run_source_sync, "_build_store", lambda _args, _settings: (store, None))

    rc = _run(monkeypatch, "--list-sources")

    assert rc == 0
    assert "src-1  lever/globex  [lever, disabled, health=100]" in capsys.readouterr().out


def test_held_lock_exits_with_already_running(monkeypatch, capsys):
    store = InMemoryStore()
    started = datetime.now(timezone.utc) - timedelta(minutes=1)
    store.acquire_global_lock(
        SyncRun(id="other", source_id=GLOBAL_LOCK_ID, started_at=started),
        stale_before=started - timedelta(hours=1),
    )
    monkeypatch.setattr(run_source_sync, "_build_store", lambda _args, _settings: (store, InMemoryContactDirectory()))

    rc = _run(monkeypatch, "--no-discovery")

    assert rc == run_source_sync.EXIT_ALREADY_RUNNING
    assert f"Sync already running (started {started.isoformat()})" in capsys.readouterr().out
