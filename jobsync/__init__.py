"""Job source ingestion and normalization.

This package provides:
- Connectors for GitHub issue boards and public ATS boards (Greenhouse, Lever,
  Ashby, Workable, Recruitee) behind one ``BaseConnector`` interface
- A pure text parser that turns a posting into structured ``ParsedFields``
- Source health scoring, catalog discovery and the sync orchestrator
"""

from jobsync.models import FetchResult, ParsedFields, PersistedJob, RawPosting, Source, SyncRun

__all__ = ["FetchResult", "ParsedFields", "PersistedJob", "RawPosting", "Source", "SyncRun"]
