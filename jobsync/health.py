from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from jobsync.models import HealthStatus

WEIGHTS: Dict[str, float] = {
    "fetch_reliability": 0.25,
    "freshness": 0.20,
    "parsing_quality": 0.25,
    "compliance": 0.20,
    "stability": 0.10,
}

HEALTHY_THRESHOLD = 80
WARNING_THRESHOLD = 55

THROTTLE_BASE_MINUTES = 15
THROTTLE_MAX_MINUTES = 720

# Used as "minutes since success" for a source that never succeeded.
NEVER_SUCCEEDED_MINUTES = 9999.0


@dataclass(frozen=True)
class HealthInput:
    fetch_succeeded: bool
    had_compliance_issue: bool
    parse_success_ratio: float
    contact_yield_ratio: float
    latency_ms: float
    minutes_since_success: float
    # On failure: the counter including this attempt. On success: 0.
    consecutive_failures: int
    rate_limited: bool = False


@dataclass(frozen=True)
class HealthResult:
    score: int
    status: HealthStatus
    breakdown: Dict[str, int]
    throttle_minutes: int


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def minutes_since(ts: Optional[datetime], now: datetime) -> float:
    if ts is None:
        return NEVER_SUCCEEDED_MINUTES
    return max(0.0, (now - ts).total_seconds() / 60.0)


def status_for(score: int) -> HealthStatus:
    if score >= HEALTHY_THRESHOLD:
        return "healthy"
    if score >= WARNING_THRESHOLD:
        return "warning"
    return "critical"


def throttle_minutes_for(fetch_succeeded: bool, consecutive_failures: int) -> int:
    """Extra delay on top of the sync interval: doubles per consecutive failure, capped."""
    if fetch_succeeded or consecutive_failures <= 0:
        return 0
    return int(min(THROTTLE_BASE_MINUTES * (2 ** (consecutive_failures - 1)), THROTTLE_MAX_MINUTES))


def compute_source_health(inp: HealthInput) -> HealthResult:
    failures = max(0, int(inp.consecutive_failures))

    if inp.fetch_succeeded:
        fetch_reliability = _clamp(100 - failures * 8)
        stability = _clamp(100 - inp.latency_ms / 200 - (25 if inp.rate_limited else 0))
    else:
        fetch_reliability = _clamp(40 - failures * 8)
        stability = _clamp(30 - failures * 10)

    freshness = _clamp(100 - min(inp.minutes_since_success / 18, 100))
    parsing_quality = _clamp(
        _clamp(inp.parse_success_ratio, 0, 1) * 80 + _clamp(inp.contact_yield_ratio, 0, 1) * 20
    )
    compliance = 30.0 if inp.had_compliance_issue else 100.0

    parts = {
        "fetch_reliability": fetch_reliability,
        "freshness": freshness,
        "parsing_quality": parsing_quality,
        "compliance": compliance,
        "stability": stability,
    }
    weighted = sum(parts[name] * weight for name, weight in WEIGHTS.items())
    score = int(_clamp(round(weighted)))

    return HealthResult(
        score=score,
        status=status_for(score),
        breakdown={name: int(round(value)) for name, value in parts.items()},
        throttle_minutes=throttle_minutes_for(inp.fetch_succeeded, failures),
    )
