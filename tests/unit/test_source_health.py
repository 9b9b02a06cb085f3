from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jobsync.health import (
    NEVER_SUCCEEDED_MINUTES,
    HealthInput,
    compute_source_health,
    minutes_since,
    status_for,
    throttle_minutes_for,
)


def _success(**overrides) -> HealthInput:
    values = dict(
        fetch_succeeded=True,
        had_compliance_issue=False,
        parse_success_ratio=1.0,
        contact_yield_ratio=1.0,
        latency_ms=0,
        minutes_since_success=0,
        consecutive_failures=0,
    )
    values.update(overrides)
    return HealthInput(**values)


def test_perfect_success_scores_100():
    result = compute_source_health(_success())

    assert result.score == 100
    assert result.status == "healthy"
    assert result.throttle_minutes == 0
    assert result.breakdown == {
        "fetch_reliability": 100,
        "freshness": 100,
        "parsing_quality": 100,
        "compliance": 100,
        "stability": 100,
    }


def test_success_breakdown_follows_latency_and_parse_ratios():
    result = compute_source_health(
        _success(parse_success_ratio=0.5, contact_yield_ratio=0.0, latency_ms=4000, minutes_since_success=180)
    )

    assert result.breakdown["parsing_quality"] == 40
    assert result.breakdown["stability"] == 80
    assert result.breakdown["freshness"] == 90
    # 0.25*100 + 0.20*90 + 0.25*40 + 0.20*100 + 0.10*80
    assert result.score == 81


def test_rate_limited_success_loses_stability():
    plain = compute_source_health(_success())
    limited = compute_source_health(_success(rate_limited=True))

    assert limited.breakdown["stability"] == plain.breakdown["stability"] - 25


def test_compliance_issue_caps_compliance_component():
    result = compute_source_health(
        HealthInput(
            fetch_succeeded=False,
            had_compliance_issue=True,
            parse_success_ratio=0,
            contact_yield_ratio=0,
            latency_ms=10000,
            minutes_since_success=NEVER_SUCCEEDED_MINUTES,
            consecutive_failures=1,
        )
    )

    assert result.breakdown["compliance"] == 30
    assert result.breakdown["fetch_reliability"] == 32
    assert result.breakdown["stability"] == 20
    assert result.breakdown["freshness"] == 0
    assert result.status == "critical"


def test_throttle_grows_with_consecutive_failures_and_is_capped():
    assert throttle_minutes_for(True, 3) == 0
    assert throttle_minutes_for(False, 0) == 0
    assert [throttle_minutes_for(False, n) for n in (1, 2, 3)] == [15, 30, 60]
    assert throttle_minutes_for(False, 12) == 720


def test_status_thresholds():
    assert status_for(80) == "healthy"
    assert status_for(79) == "warning"
    assert status_for(55) == "warning"
    assert status_for(54) == "critical"


def test_minutes_since():
    now = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)

    assert minutes_since(None, now) == NEVER_SUCCEEDED_MINUTES
    assert minutes_since(now - timedelta(minutes=90), now) == 90
    assert minutes_since(now + timedelta(minutes=5), now) == 0
