"""Tests for Prometheus metrics and the counters the client updates."""

from __future__ import annotations

from mta_client.metrics import (
    ACTIVE_RUNS,
    FRAMES_SENT,
    PROTOCOL_ERRORS,
    STATE_TRANSITIONS,
    UNEXPECTED_FRAMES,
    metrics_response,
)
from mta_client.protocol.client import ProtocolStateMachine
from mta_client.protocol.framing import encode_frame


class TestMetricsResponse:
    def test_returns_bytes(self) -> None:
        assert isinstance(metrics_response(), bytes)

    def test_contains_metric_names(self) -> None:
        text = metrics_response().decode()
        assert "mta_client_frames_sent_total" in text
        assert "mta_client_run_duration_seconds" in text

    def test_prometheus_format(self) -> None:
        text = metrics_response().decode()
        assert "# TYPE" in text
        assert "# HELP" in text


class TestCounterIncrements:
    def test_active_runs_gauge(self) -> None:
        ACTIVE_RUNS.set(2)
        assert ACTIVE_RUNS._value.get() == 2
        ACTIVE_RUNS.set(0)

    def test_protocol_errors_labeled(self) -> None:
        PROTOCOL_ERRORS.labels(reason="disconnect").inc()
        assert 'reason="disconnect"' in metrics_response().decode()

    def test_connection_made_counts_frame_and_transitions(self) -> None:
        sent = FRAMES_SENT.labels(kind="correlation_delta")
        waiting = STATE_TRANSITIONS.labels(state="waiting_for_bob_setup")
        sent_before = sent._value.get()
        waiting_before = waiting._value.get()

        ProtocolStateMachine(7, lambda data: None).connection_made()

        assert sent._value.get() == sent_before + 1
        assert waiting._value.get() == waiting_before + 1

    def test_unexpected_frame_counted(self) -> None:
        before = UNEXPECTED_FRAMES._value.get()
        ProtocolStateMachine(7, lambda data: None).data_received(encode_frame(b"early"))
        assert UNEXPECTED_FRAMES._value.get() == before + 1
