"""Telemetry setup for OpenTelemetry traces and metrics.

Exports traces and metrics over OTLP when OTLP_ENABLED=true; otherwise
in-process providers are installed and nothing leaves the process.
"""

import logging
import os

from opentelemetry import metrics, trace
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.trace import TracerProvider

from autofinish.config import AutoFinishConfig

# Suppress gRPC warnings when collector is unavailable
logging.getLogger("opentelemetry.exporter.otlp.proto.grpc").setLevel(logging.ERROR)

# Module-level metric instruments (set by create_metrics)
sessions_counter: metrics.Counter
tasks_counter: metrics.Counter
confirmations_counter: metrics.Counter
pauses_counter: metrics.Counter
cycles_counter: metrics.Counter
task_duration: metrics.Histogram


def setup_telemetry(config: AutoFinishConfig) -> tuple[trace.Tracer, metrics.Meter]:
    """Initialize OpenTelemetry, with OTLP export when enabled.

    Args:
        config: Configuration with OTLP endpoint and service name

    Returns:
        Tuple of (tracer, meter) for creating spans and recording metrics
    """
    otlp_enabled = os.getenv("OTLP_ENABLED", "false").lower() == "true"

    if otlp_enabled and config.otlp_endpoint:
        # Import OTLP exporters only when needed
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
            OTLPMetricExporter,
        )
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.trace.export import BatchSpanProcessor

        trace_provider = TracerProvider()
        trace_provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=config.otlp_endpoint))
        )
        trace.set_tracer_provider(trace_provider)

        metric_reader = PeriodicExportingMetricReader(
            OTLPMetricExporter(endpoint=config.otlp_endpoint)
        )
        metrics.set_meter_provider(MeterProvider(metric_readers=[metric_reader]))
    else:
        trace.set_tracer_provider(TracerProvider())
        metrics.set_meter_provider(MeterProvider())

    tracer = trace.get_tracer(config.service_name)
    meter = metrics.get_meter(config.service_name)

    return tracer, meter


def create_metrics(meter: metrics.Meter) -> None:
    """Create metric instruments for session tracking.

    Counters: sessions (by status), tasks (by status and path), confirmation
    outcomes (by reason), pauses for user input, dependency cycles repaired.
    Histogram: task duration.

    Args:
        meter: OpenTelemetry meter for creating instruments
    """
    global sessions_counter, tasks_counter, confirmations_counter
    global pauses_counter, cycles_counter, task_duration

    sessions_counter = meter.create_counter(
        "autofinish_sessions_total",
        description="Total sessions finished",
    )

    tasks_counter = meter.create_counter(
        "autofinish_tasks_total",
        description="Total tasks processed",
    )

    confirmations_counter = meter.create_counter(
        "autofinish_confirmations_total",
        description="Confirmation protocol outcomes",
    )

    pauses_counter = meter.create_counter(
        "autofinish_pauses_total",
        description="Total tasks paused for user input",
    )

    cycles_counter = meter.create_counter(
        "autofinish_dependency_cycles_total",
        description="Dependency edges removed to break cycles",
    )

    task_duration = meter.create_histogram(
        "autofinish_task_duration_seconds",
        description="Task execution duration",
        unit="s",
    )


def record_task(status: str, path: str, duration_seconds: float) -> None:
    """Record task metrics if the instruments are initialized."""
    try:
        tasks_counter.add(1, {"status": status, "path": path})
        task_duration.record(duration_seconds, {"status": status})
        if status == "paused":
            pauses_counter.add(1)
    except (AttributeError, NameError):
        pass  # Metrics not initialized


def record_confirmation(reason: str | None) -> None:
    try:
        confirmations_counter.add(1, {"reason": reason or "unknown"})
    except (AttributeError, NameError):
        pass


def record_session(status: str) -> None:
    try:
        sessions_counter.add(1, {"status": status})
    except (AttributeError, NameError):
        pass


def record_cycles(removed_edges: int) -> None:
    if not removed_edges:
        return
    try:
        cycles_counter.add(removed_edges)
    except (AttributeError, NameError):
        pass
