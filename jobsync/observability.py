"""
OpenTelemetry setup and sync metrics.

Exporting is switched off with ``OTEL_ENABLED=false``; callers then get an
empty ``Observability`` and the orchestrator records nothing.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.metrics import Observation
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor


def _is_enabled() -> bool:
    return os.getenv("OTEL_ENABLED", "true").lower() in {"1", "true", "yes"}


def _otlp_endpoint(signal: str) -> str:
    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4318").rstrip("/")
    if endpoint.endswith(f"/v1/{signal}"):
        return endpoint
    return f"{endpoint}/v1/{signal}"


def _resource_attributes(service_name: str) -> dict[str, str]:
    return {
        "service.name": os.getenv("OTEL_SERVICE_NAME", service_name),
        "service.namespace": os.getenv("OTEL_SERVICE_NAMESPACE", "jobsync"),
        "deployment.environment": os.getenv("ENVIRONMENT", "local"),
        "service.instance.id": os.getenv("HOSTNAME", "local"),
    }


_OBS_CACHE: dict[str, "Observability"] = {}
_OBS_CONFIGURED = False


@dataclass
class SyncMetrics:
    source_syncs_total: object
    jobs_ingested_total: object
    fetch_latency_ms: object
    _health_scores: Dict[str, int] = field(default_factory=dict)

    def record_source_sync(self, source_type: str, status: str, latency_ms: Optional[int]) -> None:
        self.source_syncs_total.add(1, {"source_type": source_type, "status": status})
        if latency_ms is not None:
            self.fetch_latency_ms.record(latency_ms, {"source_type": source_type})

    def record_jobs(self, source_type: str, new_jobs: int, duplicates: int) -> None:
        if new_jobs:
            self.jobs_ingested_total.add(new_jobs, {"source_type": source_type, "kind": "new"})
        if duplicates:
            self.jobs_ingested_total.add(duplicates, {"source_type": source_type, "kind": "duplicate"})

    def record_health(self, source: str, score: int) -> None:
        self._health_scores[source] = score


@dataclass
class Observability:
    tracer: Optional[object] = None
    meter: Optional[object] = None
    sync_metrics: Optional[SyncMetrics] = None


def get_observability(service_name: str) -> Observability:
    if service_name in _OBS_CACHE:
        return _OBS_CACHE[service_name]

    obs = _configure_observability(service_name)
    _OBS_CACHE[service_name] = obs
    return obs


def _configure_observability(service_name: str) -> Observability:
    if not _is_enabled():
        return Observability()

    global _OBS_CONFIGURED
    if not _OBS_CONFIGURED:
        resource = Resource.create(_resource_attributes(service_name))

        tracer_provider = TracerProvider(resource=resource)
        tracer_provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=_otlp_endpoint("traces")))
        )
        trace.set_tracer_provider(tracer_provider)

        export_interval = int(os.getenv("OTEL_METRICS_EXPORT_INTERVAL", "60000"))
        metric_reader = PeriodicExportingMetricReader(
            OTLPMetricExporter(endpoint=_otlp_endpoint("metrics")),
            export_interval_millis=export_interval,
        )
        meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
        metrics.set_meter_provider(meter_provider)
        _OBS_CONFIGURED = True

    tracer = trace.get_tracer(service_name)
    meter = metrics.get_meter(service_name)

    return Observability(
        tracer=tracer,
        meter=meter,
        sync_metrics=build_sync_metrics(meter),
    )


def build_sync_metrics(meter: object) -> SyncMetrics:
    source_syncs_total = meter.create_counter(
        "jobsync_source_syncs_total",
        description="Per-source sync attempts by outcome",
    )
    jobs_ingested_total = meter.create_counter(
        "jobsync_jobs_ingested_total",
        unit="jobs",
        description="Fetched postings persisted as new jobs or matched as duplicates",
    )
    fetch_latency_ms = meter.create_histogram(
        "jobsync_fetch_latency_ms",
        unit="ms",
        description="Connector fetch latency per source sync",
    )
    metrics_obj = SyncMetrics(
        source_syncs_total=source_syncs_total,
        jobs_ingested_total=jobs_ingested_total,
        fetch_latency_ms=fetch_latency_ms,
    )

    def _health_cb(_options: object) -> Iterable[Observation]:
        return [
            Observation(value=value, attributes={"source": name})
            for name, value in metrics_obj._health_scores.items()
        ]

    meter.create_observable_gauge(
        "jobsync_source_health_score",
        callbacks=[_health_cb],
        description="Latest composite health score per source",
    )

    return metrics_obj
