"""Tests for telemetry module.

These tests verify OpenTelemetry setup for traces and metrics.
"""

import os
from unittest.mock import MagicMock, patch

from autofinish.config import AutoFinishConfig


class TestSetupTelemetry:
    """Test setup_telemetry function."""

    def test_setup_returns_tracer_and_meter(self):
        """setup_telemetry should return a tracer and meter."""
        from autofinish.telemetry import setup_telemetry

        tracer, meter = setup_telemetry(AutoFinishConfig())

        assert tracer is not None
        assert meter is not None

    def test_uses_otlp_endpoint_from_config(self):
        """Should use OTLP endpoint from config when enabled."""
        from autofinish.telemetry import setup_telemetry

        config = AutoFinishConfig(otlp_endpoint="http://custom:4317")

        with patch.dict(os.environ, {"OTLP_ENABLED": "true"}):
            with patch(
                "opentelemetry.exporter.otlp.proto.grpc.trace_exporter.OTLPSpanExporter"
            ) as mock_span_exporter:
                with patch(
                    "opentelemetry.exporter.otlp.proto.grpc.metric_exporter.OTLPMetricExporter"
                ) as mock_metric_exporter:
                    setup_telemetry(config)

        mock_span_exporter.assert_called_with(endpoint="http://custom:4317")
        mock_metric_exporter.assert_called_with(endpoint="http://custom:4317")


class TestCreateMetrics:
    """Test create_metrics function."""

    def test_creates_instruments(self):
        """Should create the counters and the duration histogram."""
        from autofinish import telemetry

        meter = MagicMock()
        telemetry.create_metrics(meter)

        counter_names = [c[0][0] for c in meter.create_counter.call_args_list]
        assert "autofinish_sessions_total" in counter_names
        assert "autofinish_tasks_total" in counter_names
        assert "autofinish_confirmations_total" in counter_names
        assert "autofinish_pauses_total" in counter_names
        assert "autofinish_dependency_cycles_total" in counter_names
        meter.create_histogram.assert_called_once()

    def test_record_task_uses_instruments(self):
        from autofinish import telemetry

        meter = MagicMock()
        meter.create_counter.side_effect = lambda *a, **kw: MagicMock()
        telemetry.create_metrics(meter)

        telemetry.record_task("paused", "baseline", 1.5)

        telemetry.tasks_counter.add.assert_called_with(
            1, {"status": "paused", "path": "baseline"}
        )
        telemetry.task_duration.record.assert_called_with(1.5, {"status": "paused"})
        telemetry.pauses_counter.add.assert_called_with(1)

    def test_record_cycles_skips_zero(self):
        from autofinish import telemetry

        meter = MagicMock()
        telemetry.create_metrics(meter)

        telemetry.record_cycles(0)
        telemetry.cycles_counter.add.assert_not_called()
