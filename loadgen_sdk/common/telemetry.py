"""
OpenTelemetry utilities for load-run tracing and metrics.

This module mirrors iteration samples into OpenTelemetry instruments and
exposes a tracer for lifecycle phase spans. Until setup_telemetry() is called
every helper here is a no-op, so the engine never depends on a collector.
"""

import os
from typing import Dict, Optional
from opentelemetry import trace, metrics
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.metrics.view import View, ExplicitBucketHistogramAggregation
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.resources import Resource

from loadgen_sdk.common.logger import get_logger

logger = get_logger(__name__)

# Global providers
_tracer_provider: Optional[TracerProvider] = None
_tracer: Optional[trace.Tracer] = None
_meter_provider: Optional[MeterProvider] = None
_meter: Optional[metrics.Meter] = None

# Global metrics instruments
_iterations_counter: Optional[metrics.Counter] = None
_req_duration_histogram: Optional[metrics.Histogram] = None
_req_failed_counter: Optional[metrics.Counter] = None
_vus_histogram: Optional[metrics.Histogram] = None

# Attribute keys exported to the collector; anything else is dropped to keep
# cardinality bounded.
_EXPORTED_TAGS = ("operation", "status", "scenario")


def _get_trace_sample_rate() -> float:
    """
    Get trace sampling rate from environment.

    Uses OTEL_SAMPLE_RATE, defaults to 1.0 since only lifecycle phases are traced.
    Ensures value is clamped between 0.0 and 1.0.
    """
    raw_value = os.getenv("OTEL_SAMPLE_RATE", "1.0")
    try:
        rate = float(raw_value)
    except ValueError:
        logger.warning(f"Invalid OTEL_SAMPLE_RATE='{raw_value}', defaulting to 1.0")
        return 1.0

    if rate < 0.0 or rate > 1.0:
        logger.warning(f"OTEL_SAMPLE_RATE out of range ({rate}), clamping to [0.0, 1.0]")
        rate = max(0.0, min(1.0, rate))

    return rate


def setup_telemetry(
    service_name: str,
    otlp_endpoint: str = "http://localhost:4317"
) -> trace.Tracer:
    """
    Setup OpenTelemetry tracing and metrics with OTLP exporters.

    Args:
        service_name: Name reported as service.name (e.g., "loadgen").
        otlp_endpoint: OTLP gRPC endpoint URL (default: "http://localhost:4317").

    Returns:
        Tracer instance for creating spans.
    """
    global _tracer_provider, _tracer, _meter_provider, _meter
    global _iterations_counter, _req_duration_histogram, _req_failed_counter, _vus_histogram

    try:
        resource = Resource.create({
            "service.name": service_name,
            "service.version": "0.1.0",
        })

        sample_rate = _get_trace_sample_rate()
        _tracer_provider = TracerProvider(
            resource=resource,
            sampler=TraceIdRatioBased(sample_rate)
        )
        otlp_trace_exporter = OTLPSpanExporter(
            endpoint=otlp_endpoint,
            insecure=True,
        )
        _tracer_provider.add_span_processor(BatchSpanProcessor(otlp_trace_exporter))
        trace.set_tracer_provider(_tracer_provider)
        _tracer = trace.get_tracer(__name__)

        otlp_metric_exporter = OTLPMetricExporter(
            endpoint=otlp_endpoint,
            insecure=True,
        )
        metric_reader = PeriodicExportingMetricReader(otlp_metric_exporter, export_interval_millis=5000)
        # Request latency buckets in milliseconds
        latency_buckets = [5, 10, 25, 50, 100, 250, 500, 1000, 2000, 5000, 10000]
        views = [
            View(
                instrument_name="loadgen_http_req_duration",
                aggregation=ExplicitBucketHistogramAggregation(boundaries=latency_buckets),
            )
        ]

        _meter_provider = MeterProvider(
            resource=resource,
            metric_readers=[metric_reader],
            views=views,
        )
        metrics.set_meter_provider(_meter_provider)
        _meter = metrics.get_meter(__name__)

        _iterations_counter = _meter.create_counter(
            name="loadgen_iterations_total",
            description="Total number of completed iterations",
            unit="1"
        )

        _req_duration_histogram = _meter.create_histogram(
            name="loadgen_http_req_duration",
            description="Request duration in milliseconds",
            unit="ms"
        )

        _req_failed_counter = _meter.create_counter(
            name="loadgen_http_req_failed_total",
            description="Total number of failed requests",
            unit="1"
        )

        _vus_histogram = _meter.create_histogram(
            name="loadgen_vus",
            description="Live virtual users sampled per control tick",
            unit="1"
        )

        logger.info(
            f"OpenTelemetry tracing and metrics initialized for service '{service_name}' "
            f"with OTLP endpoint: {otlp_endpoint} (sample_rate={sample_rate})"
        )

        return _tracer

    except Exception as e:
        logger.error(f"Failed to setup OpenTelemetry: {e}", exc_info=True)
        return trace.NoOpTracer()


def get_tracer() -> trace.Tracer:
    """
    Get the global tracer instance.

    Returns:
        Tracer instance, or the API default (no-op) tracer if not initialized.
    """
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer(__name__)
    return _tracer


def _attributes(tags: Optional[Dict[str, str]]) -> Dict[str, str]:
    if not tags:
        return {}
    return {k: v for k, v in tags.items() if k in _EXPORTED_TAGS}


def record_iteration(duration_ms: float, failed: bool, tags: Optional[Dict[str, str]] = None) -> None:
    """
    Mirror one iteration's request sample into the OpenTelemetry instruments.

    Args:
        duration_ms: Request duration in milliseconds.
        failed: Whether the request counted as failed.
        tags: Sample tags; only low-cardinality keys are exported.
    """
    if _iterations_counter is None:
        return
    attrs = _attributes(tags)
    _iterations_counter.add(1, attrs)
    _req_duration_histogram.record(duration_ms, attrs)
    if failed:
        _req_failed_counter.add(1, attrs)


def record_vus(live: int) -> None:
    """
    Record the live virtual user count for one control tick.

    Args:
        live: Number of live virtual users.
    """
    if _vus_histogram is None:
        return
    _vus_histogram.record(live)


def shutdown_telemetry() -> None:
    """Flush and shut down the providers created by setup_telemetry()."""
    global _iterations_counter, _req_duration_histogram, _req_failed_counter, _vus_histogram
    if _meter_provider is not None:
        _meter_provider.shutdown()
    if _tracer_provider is not None:
        _tracer_provider.shutdown()
    _iterations_counter = None
    _req_duration_histogram = None
    _req_failed_counter = None
    _vus_histogram = None
