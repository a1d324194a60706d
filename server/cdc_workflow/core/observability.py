"""Structured logging, OpenTelemetry wiring and the Prometheus registry for the workflow service."""

import logging

import structlog
from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

from .config import settings

SERVICE_NAME = "cdc-booking-workflow"
SERVICE_VERSION = "1.0.0"

# Served from /metrics; kept apart from the default registry so tests can build many apps
REGISTRY = CollectorRegistry()


def _counter(name: str, documentation: str, labels=()) -> Counter:
    return Counter(name, documentation, list(labels), registry=REGISTRY)


HTTP_REQUESTS = _counter(
    "http_requests_total", "HTTP requests served", ("method", "endpoint", "status_code")
)
HTTP_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    registry=REGISTRY,
)

WORKFLOW_TRANSITIONS = _counter(
    "booking_workflow_transitions_total", "Booking step changes applied", ("from_step", "to_step")
)
WORKFLOW_REJECTIONS = _counter(
    "booking_workflow_transitions_rejected_total", "Booking step changes refused", ("reason",)
)
COLLABORATIONS_CREATED = _counter(
    "collaboration_requests_created_total",
    "Collaboration requests opened",
    ("type", "requested_to_team"),
)
COLLABORATIONS_DELETED = _counter("collaboration_requests_deleted_total", "Collaboration requests deleted")
RATE_LIMITED = _counter("rate_limited_requests_total", "Mutations refused by the token bucket")


def _inject_trace_ids(logger, method_name, event_dict):
    span = trace.get_current_span()
    if span and span.is_recording():
        context = span.get_span_context()
        event_dict["trace_id"] = format(context.trace_id, "032x")
        event_dict["span_id"] = format(context.span_id, "016x")
    return event_dict


def setup_structured_logging():
    """Console rendering in development, one JSON object per line elsewhere."""
    renderer = (
        structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _inject_trace_ids,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, settings.log_level)),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _resource() -> Resource:
    return Resource.create({
        "service.name": SERVICE_NAME,
        "service.version": SERVICE_VERSION,
        "environment": settings.environment,
    })


def setup_tracing():
    """Install a tracer provider; spans leave the process only when OTLP_ENDPOINT is set."""
    provider = TracerProvider(resource=_resource())
    if settings.otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint)))
    trace.set_tracer_provider(provider)
    return trace.get_tracer(__name__)


def setup_metrics():
    if settings.otlp_endpoint:
        reader = PeriodicExportingMetricReader(
            exporter=OTLPMetricExporter(endpoint=settings.otlp_endpoint),
            export_interval_millis=60000,
        )
        metrics.set_meter_provider(MeterProvider(resource=_resource(), metric_readers=[reader]))
    return metrics.get_meter(__name__)


def instrument_fastapi(app):
    FastAPIInstrumentor.instrument_app(app, excluded_urls="health,ready,metrics")


def instrument_sqlalchemy(engine):
    # The instrumentor hooks the sync core underneath AsyncEngine
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


class MetricsCollector:
    """Business and HTTP counters behind one object the services import."""

    @staticmethod
    def record_request(method: str, endpoint: str, status_code: int, duration: float):
        HTTP_REQUESTS.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
        HTTP_LATENCY.labels(method=method, endpoint=endpoint).observe(duration)

    @staticmethod
    def record_transition(from_step: str, to_step: str):
        WORKFLOW_TRANSITIONS.labels(from_step=from_step, to_step=to_step).inc()

    @staticmethod
    def record_transition_rejected(reason: str):
        """``reason`` is one of invalid_step, no_op, illegal, conflict."""
        WORKFLOW_REJECTIONS.labels(reason=reason).inc()

    @staticmethod
    def record_collaboration_created(request_type: str, requested_to_team: str):
        COLLABORATIONS_CREATED.labels(type=request_type, requested_to_team=requested_to_team).inc()

    @staticmethod
    def record_collaboration_deleted():
        COLLABORATIONS_DELETED.inc()

    @staticmethod
    def record_rate_limited():
        RATE_LIMITED.inc()


def get_prometheus_metrics():
    """Text exposition of REGISTRY."""
    return generate_latest(REGISTRY)


metrics_collector = MetricsCollector()
