"""Turn static source catalogs into Source rows.

Two catalogs are read:

* a GitHub job-board ecosystem file::

      {"githubRepos": {"byCategory": [...], "byTechnology": [...],
                       "aggregatorsAndMeta": [...], "portugal": [...]}}

  where each entry carries ``fullName``, ``url`` and optional ``category``,
  ``technology``, ``type``, ``activityLevel`` and ``updatedAt``;

* an ATS board list, either ``{"sources": [...]}`` or a bare list, with
  ``sourceType``, ``externalKey`` and optional ``displayName``, ``category``,
  ``regionTags``, ``confidence``, ``enabledByDefault`` and ``url``.

Rows are only ever inserted (keyed on ``full_name``), so re-running against
unchanged catalogs creates nothing.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from jobsync.config.settings import DiscoverySettings
from jobsync.logging_utils import log_event
from jobsync.models import ATS_SOURCE_TYPES, Source, SourceType
from jobsync.normalize import clean_id, clean_str, parse_datetime
from jobsync.store import SyncStore

logger = logging.getLogger("jobsync.sync")

GITHUB_GROUPS = ("byCategory", "byTechnology", "aggregatorsAndMeta", "portugal")
AGGREGATOR_TYPES = ("general_jobs", "php_jobs")

# Catalog files written for the older connector names still load.
ATS_TYPE_ALIASES: Dict[str, SourceType] = {
    "greenhouse_board": "greenhouse",
    "lever_postings": "lever",
    "ashby_board": "ashby",
    "workable_widget": "workable",
    "recruitee_careers": "recruitee",
}

DEFAULT_ATS_REGION_TAGS = ["LATAM", "INTL_LATAM_FRIENDLY"]


class DiscoveryCatalogError(ValueError):
    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


@dataclass
class DiscoverySummary:
    created: int = 0
    auto_enabled: int = 0
    skipped_catalogs: List[str] = field(default_factory=list)


def _clamp_score(value: float) -> int:
    return int(max(0, min(100, round(value))))


def score_github_candidate(entry: Dict[str, Any], now: datetime) -> int:
    level = (clean_str(entry.get("activityLevel")) or "").lower()
    score = 70
    if level == "very_active":
        score += 20
    elif level == "active":
        score += 12
    elif level == "moderate":
        score += 4

    if entry.get("type") in AGGREGATOR_TYPES:
        score += 8

    updated = parse_datetime(entry.get("updatedAt"))
    if updated is not None:
        days = (now - updated).total_seconds() / 86400
        if days <= 14:
            score += 5
        elif days > 90:
            score -= 12

    return _clamp_score(score)


def github_region_tags(entry: Dict[str, Any], group: str) -> List[str]:
    category = (clean_str(entry.get("category")) or "").lower()
    if group == "portugal" or "portugal" in category:
        return ["PT", "LATAM", "INTL_LATAM_FRIENDLY"]
    return ["BR", "LATAM", "INTL_LATAM_FRIENDLY"]


def normalize_confidence(value: Any, default: int = 80) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value != value:
        return default
    if 0 < value <= 1:
        value = value * 100
    return _clamp_score(value)


def normalize_region_tags(tags: Any, default: List[str]) -> List[str]:
    if not isinstance(tags, list):
        return list(default)
    out: List[str] = []
    for tag in tags:
        if tag is None:
            continue
        cleaned = str(tag).strip().upper()
        if cleaned and cleaned not in out:
            out.append(cleaned)
    return out or list(default)


def ats_board_url(source_type: str, key: str) -> str:
    urls = {
        "greenhouse": f"https://boards.greenhouse.io/{key}",
        "lever": f"https://jobs.lever.co/{key}",
        "ashby": f"https://jobs.ashbyhq.com/{key}",
        "workable": f"https://apply.workable.com/{key}",
        "recruitee": f"https://{key}.recruitee.com",
    }
    return urls.get(source_type, f"https://{key}")


def should_enable(entry: Dict[str, Any], confidence: int, threshold: int) -> bool:
    flag = entry.get("enabledByDefault")
    if flag is True:
        return True
    if flag is False:
        return False
    return confidence >= threshold


def _read_json(path: str) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise DiscoveryCatalogError(path, f"invalid JSON: {e}") from e
    except UnicodeDecodeError as e:
        raise DiscoveryCatalogError(path, f"not UTF-8 text: {e}") from e
    except OSError as e:
        raise DiscoveryCatalogError(path, f"unreadable: {e}") from e


def load_github_candidates(path: str) -> List[Dict[str, Any]]:
    data = _read_json(path)
    if not isinstance(data, dict):
        raise DiscoveryCatalogError(path, "expected an object at the top level")
    groups = data.get("githubRepos") or {}
    if not isinstance(groups, dict):
        raise DiscoveryCatalogError(path, "githubRepos must be an object")

    out: List[Dict[str, Any]] = []
    for group in GITHUB_GROUPS:
        entries = groups.get(group) or []
        if not isinstance(entries, list):
            raise DiscoveryCatalogError(path, f"githubRepos.{group} must be a list")
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            if group == "aggregatorsAndMeta" and entry.get("type") not in AGGREGATOR_TYPES:
                continue
            out.append({**entry, "_group": group})
    return out


def load_ats_candidates(path: str) -> List[Dict[str, Any]]:
    data = _read_json(path)
    if isinstance(data, dict):
        data = data.get("sources") or []
    if not isinstance(data, list):
        raise DiscoveryCatalogError(path, "expected a list of sources")
    return [entry for entry in data if isinstance(entry, dict)]


class DiscoveryEngine:
    def __init__(
        self,
        store: SyncStore,
        settings: DiscoverySettings,
        *,
        default_interval_minutes: int = 30,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self._store = store
        self._settings = settings
        self._default_interval = int(default_interval_minutes)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._new_id = id_factory

    def _insert(self, source: Source, summary: DiscoverySummary) -> None:
        if self._store.insert_source_if_absent(source):
            summary.created += 1
            if source.enabled:
                summary.auto_enabled += 1

    def _github_source(self, entry: Dict[str, Any], now: datetime) -> Optional[Source]:
        full_name = clean_str(entry.get("fullName"))
        url = clean_str(entry.get("url"))
        if not full_name or not url or "/" not in full_name:
            return None
        owner, repo = full_name.split("/", 1)
        confidence = score_github_candidate(entry, now)
        return Source(
            id=self._new_id(),
            source_type="github_issues",
            full_name=full_name,
            owner=clean_str(entry.get("owner")) or owner,
            repo=clean_str(entry.get("repo")) or repo,
            external_key=full_name,
            display_name=full_name,
            url=url,
            category=clean_str(entry.get("category")) or clean_str(entry.get("type")) or "general",
            technology=clean_str(entry.get("technology")),
            enabled=should_enable(entry, confidence, self._settings.min_auto_enable_confidence),
            sync_interval_minutes=self._default_interval,
            next_sync_at=now,
            auto_discovered=True,
            discovery_confidence=confidence,
            region_tags=github_region_tags(entry, entry.get("_group", "")),
        )

    def _ats_source(self, entry: Dict[str, Any], now: datetime) -> Optional[Source]:
        raw_type = clean_str(entry.get("sourceType")) or ""
        source_type = ATS_TYPE_ALIASES.get(raw_type, raw_type)
        key = clean_id(entry.get("externalKey"))
        if source_type not in ATS_SOURCE_TYPES or not key:
            return None
        confidence = normalize_confidence(entry.get("confidence"))
        full_name = f"{source_type}/{key}"
        return Source(
            id=self._new_id(),
            source_type=source_type,  # type: ignore[arg-type]
            full_name=full_name,
            owner=source_type,
            repo=key,
            external_key=key,
            display_name=clean_str(entry.get("displayName")) or full_name,
            url=clean_str(entry.get("url")) or ats_board_url(source_type, key),
            category=clean_str(entry.get("category")) or "ats",
            enabled=should_enable(entry, confidence, self._settings.min_auto_enable_confidence),
            sync_interval_minutes=self._default_interval,
            next_sync_at=now,
            auto_discovered=True,
            discovery_confidence=confidence,
            region_tags=normalize_region_tags(entry.get("regionTags"), DEFAULT_ATS_REGION_TAGS),
        )

    def _load(self, path: str, loader: Callable[[str], List[Dict[str, Any]]], summary: DiscoverySummary):
        if not os.path.exists(path):
            summary.skipped_catalogs.append(path)
            log_event(logger, logging.INFO, "discovery_catalog_skipped", path=path, reason="missing")
            return []
        try:
            return loader(path)
        except DiscoveryCatalogError as e:
            summary.skipped_catalogs.append(path)
            log_event(logger, logging.WARNING, "discovery_catalog_skipped", path=path, reason=str(e))
            return []

    def run(self) -> DiscoverySummary:
        summary = DiscoverySummary()
        now = self._clock()

        for entry in self._load(self._settings.github_catalog_path, load_github_candidates, summary):
            source = self._github_source(entry, now)
            if source is not None:
                self._insert(source, summary)

        for entry in self._load(self._settings.ats_catalog_path, load_ats_candidates, summary):
            source = self._ats_source(entry, now)
            if source is not None:
                self._insert(source, summary)

        log_event(
            logger,
            logging.INFO,
            "discovery_done",
            created=summary.created,
            auto_enabled=summary.auto_enabled,
            skipped_catalogs=summary.skipped_catalogs,
        )
        return summary

