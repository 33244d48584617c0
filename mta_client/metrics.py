"""Prometheus metrics for the MTA client.

Exposed over HTTP only when MTA_METRICS_PORT is set.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, generate_latest, start_http_server

# --- Wire metrics ---
FRAMES_SENT = Counter(
    "mta_client_frames_sent_total",
    "Frames written to the peer",
    ["kind"],  # correlation_delta, alice_messages
)

FRAMES_RECEIVED = Counter(
    "mta_client_frames_received_total",
    "Complete frames received from the peer",
    ["state"],  # state the client was in when the frame arrived
)

BYTES_SENT = Counter(
    "mta_client_bytes_sent_total",
    "Bytes written to the peer, including length prefixes",
)

# --- Protocol metrics ---
STATE_TRANSITIONS = Counter(
    "mta_client_state_transitions_total",
    "Protocol state transitions",
    ["state"],
)

PROTOCOL_RUNS = Counter(
    "mta_client_protocol_runs_total",
    "Protocol runs by outcome",
    ["result"],  # complete, failed
)

PROTOCOL_ERRORS = Counter(
    "mta_client_protocol_errors_total",
    "Protocol errors by reason",
    ["reason"],  # malformed_frame, peer_failure, response_failed, disconnect
)

UNEXPECTED_FRAMES = Counter(
    "mta_client_unexpected_frames_total",
    "Frames discarded because the current state expects no input",
)

RUN_DURATION = Histogram(
    "mta_client_run_duration_seconds",
    "Wall-clock duration of a protocol run",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

ACTIVE_RUNS = Gauge(
    "mta_client_active_runs",
    "Protocol runs currently in flight",
)


def metrics_response() -> bytes:
    """Generate Prometheus-compatible metrics text."""
    return generate_latest()


def serve_metrics(port: int) -> None:
    """Expose /metrics on ``port`` from a background thread."""
    start_http_server(port)
