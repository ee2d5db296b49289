"""Observability helpers for tracing, metrics, and logging."""
from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from time import perf_counter

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import Counter, Histogram

from .config import settings

logger = logging.getLogger("studyloop")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s | %(message)s")

if settings.observability.enable_tracing:
    resource = Resource.create({"service.name": "studyloop"})
    provider = TracerProvider(resource=resource)
    processor = BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.observability.otlp_endpoint))
    provider.add_span_processor(processor)
    trace.set_tracer_provider(provider)
tracer = trace.get_tracer(__name__)

LLM_LATENCY = Histogram(
    "studyloop_llm_latency_ms",
    "Latency of structured-generation calls",
    labelnames=("operation",),
    buckets=(250, 500, 1000, 2000, 5000, 10000, 30000),
)
MALFORMED_RESPONSES = Counter(
    "studyloop_malformed_responses",
    "AI responses rejected by validation",
    labelnames=("operation",),
)
LINK_PROBES = Counter("studyloop_link_probes", "Video link probes by outcome", labelnames=("outcome",))


@contextmanager
def traced_span(name: str, operation: str | None = None) -> Iterator[None]:
    start = perf_counter()
    with tracer.start_as_current_span(name):
        yield
    duration_ms = (perf_counter() - start) * 1000
    if operation:
        LLM_LATENCY.labels(operation).observe(duration_ms)


def record_malformed(operation: str) -> None:
    MALFORMED_RESPONSES.labels(operation).inc()


def record_probe(valid: bool) -> None:
    LINK_PROBES.labels("valid" if valid else "invalid").inc()
