"""OpenTelemetry + Prometheus fallback wiring for the TaskForge backend."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from fastapi import FastAPI

from taskforge import config

logger = logging.getLogger("taskforge.observability")


_initialized = False
_enabled = False
_tracer: Any | None = None
_trace_provider: Any | None = None
_meter_provider: Any | None = None
_fastapi_instrumentor: Any | None = None

_sync_counter: Any | None = None
_sync_latency_hist: Any | None = None
_reconcile_counter: Any | None = None
_drift_counter: Any | None = None

_prom_enabled = False
_prom_sync_counter: Any | None = None
_prom_sync_latency_hist: Any | None = None
_prom_reconcile_counter: Any | None = None
_prom_drift_counter: Any | None = None


def _normalize_otlp_endpoint(base_endpoint: str, signal_path: str) -> str:
    endpoint = (base_endpoint or "").strip()
    if not endpoint:
        return ""
    if endpoint.endswith(signal_path):
        return endpoint
    if endpoint.endswith("/"):
        endpoint = endpoint[:-1]
    if endpoint.endswith("/v1"):
        return f"{endpoint}{signal_path[3:]}"
    return f"{endpoint}{signal_path}"


def _prom_labels(*, project_id: str | None, **extra: str) -> dict[str, str]:
    labels = {"project": project_id or "unknown"}
    for key, value in extra.items():
        labels[key] = (value or "").strip() or "unknown"
    return labels


def initialize(app: FastAPI | None = None) -> None:
    global _initialized, _enabled, _tracer, _trace_provider, _meter_provider, _fastapi_instrumentor
    global _sync_counter, _sync_latency_hist, _reconcile_counter, _drift_counter
    global _prom_enabled
    global _prom_sync_counter, _prom_sync_latency_hist, _prom_reconcile_counter, _prom_drift_counter

    if _initialized:
        if _enabled and app and _fastapi_instrumentor:
            _fastapi_instrumentor.instrument_app(app)
        return

    _initialized = True

    if not config.OTEL_ENABLED:
        logger.info("OpenTelemetry disabled (TASKFORGE_OTEL_ENABLED=false)")
        return

    try:
        from opentelemetry import metrics, trace
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError as exc:
        logger.warning("OpenTelemetry dependencies unavailable: %s", exc)
        return

    traces_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/traces")
    metrics_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/metrics")
    service_name = config.OTEL_SERVICE_NAME or "taskforge-backend"

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.namespace": "taskforge",
        }
    )

    trace_provider = TracerProvider(resource=resource)
    trace_exporter = OTLPSpanExporter(endpoint=traces_endpoint or None)
    trace_provider.add_span_processor(BatchSpanProcessor(trace_exporter))
    trace.set_tracer_provider(trace_provider)
    tracer = trace.get_tracer("taskforge.backend")

    metric_reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=metrics_endpoint or None)
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
    metrics.set_meter_provider(meter_provider)
    meter = metrics.get_meter("taskforge.backend")

    _sync_counter = meter.create_counter(
        "taskforge_sync_events_total",
        unit="1",
        description="Analytics sync side effects by branch and outcome",
    )
    _sync_latency_hist = meter.create_histogram(
        "taskforge_sync_latency_ms",
        unit="ms",
        description="Latency of analytics sync side effects",
    )
    _reconcile_counter = meter.create_counter(
        "taskforge_reconcile_runs_total",
        unit="1",
        description="Reconciliation sweeps per project",
    )
    _drift_counter = meter.create_counter(
        "taskforge_reconcile_drift_total",
        unit="1",
        description="Analytics rows repaired by reconciliation",
    )

    _trace_provider = trace_provider
    _meter_provider = meter_provider
    _tracer = tracer
    _fastapi_instrumentor = FastAPIInstrumentor()
    _enabled = True

    if app:
        _fastapi_instrumentor.instrument_app(app)

    if config.PROM_PORT > 0:
        try:
            from prometheus_client import Counter, Histogram, start_http_server

            start_http_server(config.PROM_PORT)
            _prom_enabled = True
            _prom_sync_counter = Counter(
                "taskforge_sync_events_total",
                "Analytics sync side effects by branch and outcome",
                ["branch", "result", "project"],
            )
            _prom_sync_latency_hist = Histogram(
                "taskforge_sync_latency_ms",
                "Latency of analytics sync side effects",
                ["branch", "result", "project"],
            )
            _prom_reconcile_counter = Counter(
                "taskforge_reconcile_runs_total",
                "Reconciliation sweeps per project",
                ["result", "project"],
            )
            _prom_drift_counter = Counter(
                "taskforge_reconcile_drift_total",
                "Analytics rows repaired by reconciliation",
                ["project"],
            )
            logger.info("Prometheus fallback metrics server listening on port %s", config.PROM_PORT)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Prometheus fallback not started: %s", exc)
            _prom_enabled = False

    logger.info(
        "OpenTelemetry initialized (service=%s endpoint=%s)",
        service_name,
        config.OTEL_ENDPOINT,
    )


def shutdown(app: FastAPI | None = None) -> None:
    global _enabled
    if not _initialized:
        return
    try:
        if app and _fastapi_instrumentor:
            _fastapi_instrumentor.uninstrument_app(app)
    except Exception as exc:  # noqa: BLE001
        logger.debug("FastAPI uninstrument failed: %s", exc)
    for provider in (_meter_provider, _trace_provider):
        if provider is None:
            continue
        try:
            provider.shutdown()
        except Exception as exc:  # noqa: BLE001
            logger.debug("Telemetry provider shutdown failed: %s", exc)
    _enabled = False


@contextmanager
def start_span(name: str, attributes: dict[str, Any] | None = None):
    if not _enabled or _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(name) as span:
        if attributes:
            for key, value in attributes.items():
                if value is not None:
                    span.set_attribute(key, value)
        yield span


def record_sync(branch: str, result: str, duration_ms: float, *, project_id: str | None = None) -> None:
    labels = {
        "branch": branch or "unknown",
        "result": result or "unknown",
        "project_id": project_id or "unknown",
    }
    latency = max(0.0, float(duration_ms))
    if _enabled and _sync_counter is not None:
        _sync_counter.add(1, labels)
    if _enabled and _sync_latency_hist is not None:
        _sync_latency_hist.record(latency, labels)
    if _prom_enabled and _prom_sync_counter is not None:
        prom = _prom_labels(project_id=project_id, branch=branch, result=result)
        _prom_sync_counter.labels(**prom).inc()
    if _prom_enabled and _prom_sync_latency_hist is not None:
        prom = _prom_labels(project_id=project_id, branch=branch, result=result)
        _prom_sync_latency_hist.labels(**prom).observe(latency)


def record_reconcile(result: str, drift: int, *, project_id: str | None = None) -> None:
    labels = {
        "result": result or "unknown",
        "project_id": project_id or "unknown",
    }
    repaired = max(0, int(drift))
    if _enabled and _reconcile_counter is not None:
        _reconcile_counter.add(1, labels)
    if _enabled and _drift_counter is not None and repaired > 0:
        _drift_counter.add(repaired, {"project_id": labels["project_id"]})
    if _prom_enabled and _prom_reconcile_counter is not None:
        _prom_reconcile_counter.labels(**_prom_labels(project_id=project_id, result=result)).inc()
    if _prom_enabled and _prom_drift_counter is not None and repaired > 0:
        _prom_drift_counter.labels(**_prom_labels(project_id=project_id)).inc(repaired)
