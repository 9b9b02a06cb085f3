from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Literal, Optional, Tuple

SourceType = Literal["github_issues", "greenhouse", "lever", "ashby", "workable", "recruitee"]
ContractType = Literal["CLT", "PJ", "Freela", "Internship", "Unknown"]
ExperienceLevel = Literal["Intern", "Junior", "Pleno", "Senior", "Lead", "Unknown"]
HealthStatus = Literal["healthy", "warning", "critical"]
RunStatus = Literal["running", "completed", "failed"]

SOURCE_TYPES: Tuple[SourceType, ...] = ("github_issues", "greenhouse", "lever", "ashby", "workable", "recruitee")
ATS_SOURCE_TYPES: Tuple[SourceType, ...] = ("greenhouse", "lever", "ashby", "workable", "recruitee")

GLOBAL_LOCK_ID = "__global__"

DEFAULT_HEALTH_BREAKDOWN: Dict[str, int] = {
    "fetch_reliability": 100,
    "freshness": 100,
    "parsing_quality": 100,
    "compliance": 100,
    "stability": 100,
}


@dataclass
class Source:
    """One external feed polled by the pipeline (a GitHub repo or an ATS board)."""

    id: str
    source_type: SourceType
    full_name: str
    owner: str
    repo: str
    url: str
    external_key: Optional[str] = None
    display_name: Optional[str] = None
    category: str = "general"
    technology: Optional[str] = None
    enabled: bool = True
    sync_interval_minutes: int = 30
    last_scraped_at: Optional[datetime] = None
    next_sync_at: Optional[datetime] = None
    throttled_until: Optional[datetime] = None
    health_score: int = 100
    health_status: HealthStatus = "healthy"
    health_breakdown: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_HEALTH_BREAKDOWN))
    consecutive_failures: int = 0
    last_success_at: Optional[datetime] = None
    last_error_at: Optional[datetime] = None
    last_error_code: Optional[str] = None
    last_error_message: Optional[str] = None
    auto_discovered: bool = False
    discovery_confidence: Optional[int] = None
    region_tags: List[str] = field(default_factory=list)
    total_jobs_fetched: int = 0

    @property
    def board_key(self) -> str:
        """Provider-specific key: the ATS board slug, or ``owner/repo`` for GitHub."""
        if self.external_key and self.external_key.strip():
            return self.external_key.strip()
        if self.repo and self.repo.strip():
            return self.repo.strip()
        return self.full_name.split("/", 1)[-1]

    def next_eligible_at(self) -> Optional[datetime]:
        """Latest of last scrape plus interval, ``throttled_until`` and ``next_sync_at``."""
        candidates: List[datetime] = []
        if self.last_scraped_at is not None and self.sync_interval_minutes > 0:
            candidates.append(self.last_scraped_at + timedelta(minutes=self.sync_interval_minutes))
        if self.throttled_until is not None:
            candidates.append(self.throttled_until)
        if self.next_sync_at is not None:
            candidates.append(self.next_sync_at)
        return max(candidates) if candidates else None

    def is_due(self, now: datetime) -> bool:
        eligible_at = self.next_eligible_at()
        return eligible_at is None or eligible_at <= now


@dataclass
class SyncRun:
    id: str
    source_id: str
    started_at: datetime
    status: RunStatus = "running"
    completed_at: Optional[datetime] = None
    http_status: Optional[int] = None
    latency_ms: Optional[int] = None
    total_fetched: int = 0
    new_jobs: int = 0
    duplicates: int = 0
    parse_success_ratio: Optional[float] = None
    contact_yield_ratio: Optional[float] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


@dataclass(frozen=True)
class RawPosting:
    """Connector output: one posting normalized from a provider payload."""

    external_job_id: str
    url: str
    title: str
    body: str
    labels: Tuple[str, ...] = ()
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    poster_username: Optional[str] = None
    poster_avatar_url: Optional[str] = None
    comments_count: int = 0
    issue_number: int = 0
    apply_url: Optional[str] = None


@dataclass(frozen=True)
class FetchResult:
    postings: List[RawPosting]
    http_status: Optional[int]
    latency_ms: int
    rate_limit_remaining: Optional[int] = None
    rate_limited: bool = False


@dataclass
class ParsedFields:
    company: Optional[str] = None
    role: Optional[str] = None
    salary: Optional[str] = None
    location: Optional[str] = None
    contract_type: Optional[ContractType] = None
    experience_level: Optional[ExperienceLevel] = None
    tech_stack: List[str] = field(default_factory=list)
    benefits: Optional[str] = None
    apply_url: Optional[str] = None
    contact_email: Optional[str] = None
    contact_linkedin: Optional[str] = None
    contact_whatsapp: Optional[str] = None
    is_remote: bool = False

    def has_signal(self) -> bool:
        return bool(self.company or self.contact_email or self.apply_url or self.location or self.tech_stack)


# Fields a reparse or re-sync may refresh on a stored job.
PARSED_FIELD_NAMES: Tuple[str, ...] = (
    "company",
    "role",
    "salary",
    "location",
    "contract_type",
    "experience_level",
    "tech_stack",
    "benefits",
    "apply_url",
    "contact_email",
    "contact_linkedin",
    "contact_whatsapp",
    "is_remote",
)


@dataclass
class PersistedJob:
    """Durable merge of a RawPosting, its ParsedFields and source linkage."""

    id: str
    url: str
    title: str
    body: str
    source_id: str
    source_type: SourceType
    source_full_name: str
    external_job_id: Optional[str] = None
    labels: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    poster_username: Optional[str] = None
    poster_avatar_url: Optional[str] = None
    comments_count: int = 0
    issue_number: int = 0
    company: Optional[str] = None
    role: Optional[str] = None
    salary: Optional[str] = None
    location: Optional[str] = None
    contract_type: Optional[ContractType] = None
    experience_level: Optional[ExperienceLevel] = None
    tech_stack: List[str] = field(default_factory=list)
    benefits: Optional[str] = None
    apply_url: Optional[str] = None
    contact_email: Optional[str] = None
    contact_linkedin: Optional[str] = None
    contact_whatsapp: Optional[str] = None
    is_remote: bool = False
    fetched_at: Optional[datetime] = None
    parsed_at: Optional[datetime] = None

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("created_at", "updated_at", "fetched_at", "parsed_at"):
            value = data.get(key)
            if isinstance(value, datetime):
                data[key] = value.isoformat()
        return data
