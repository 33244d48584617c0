"""Client configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _int_env(key: str, default: str) -> int:
    val = os.getenv(key, default)
    try:
        return int(val)
    except (ValueError, TypeError, OverflowError):
        raise ValueError(f"Invalid integer for {key}: {val!r}")


def _float_env(key: str, default: str) -> float:
    val = os.getenv(key, default)
    try:
        return float(val)
    except (ValueError, TypeError, OverflowError):
        raise ValueError(f"Invalid float for {key}: {val!r}")


@dataclass(frozen=True)
class Config:
    # Peer (Bob)
    host: str = os.getenv("MTA_HOST", "localhost")
    port: int = _int_env("MTA_PORT", "8080")

    # Alice's multiplicative share; 0 draws a random one in [1, 1_000_000]
    x_share: int = _int_env("MTA_X_SHARE", "0")

    # Retry policy for the whole run
    max_retries: int = _int_env("MTA_MAX_RETRIES", "3")
    retry_delay: float = _float_env("MTA_RETRY_DELAY", "2.0")

    # Timeouts (seconds)
    connect_timeout: float = _float_env("MTA_CONNECT_TIMEOUT", "5.0")

    # Framing
    max_frame_size: int = _int_env("MTA_MAX_FRAME_SIZE", str(1 << 20))

    # Prometheus exporter; 0 disables it
    metrics_port: int = _int_env("MTA_METRICS_PORT", "0")

    # Protocol constants
    bit_length: int = 32
    random_share_max: int = 1_000_000

    def validate(self) -> list[str]:
        """Validate config at startup. Raises ValueError on hard errors, returns warnings."""
        warnings: list[str] = []
        if not self.host:
            raise ValueError("MTA_HOST must not be empty")
        if self.port < 1 or self.port > 65535:
            raise ValueError(f"MTA_PORT must be 1-65535, got {self.port}")
        if self.x_share < 0 or self.x_share > 0xFFFFFFFF:
            raise ValueError(f"MTA_X_SHARE must be a 32-bit unsigned integer, got {self.x_share}")
        if self.max_retries < 1:
            raise ValueError(f"MTA_MAX_RETRIES must be >= 1, got {self.max_retries}")
        if self.retry_delay < 0:
            raise ValueError(f"MTA_RETRY_DELAY must be >= 0, got {self.retry_delay}")
        if self.connect_timeout <= 0 or self.connect_timeout > 120.0:
            raise ValueError(f"MTA_CONNECT_TIMEOUT must be in (0, 120], got {self.connect_timeout}")
        if self.max_frame_size < 4133:
            raise ValueError(
                f"MTA_MAX_FRAME_SIZE must fit a full AliceMessages payload (4133), got {self.max_frame_size}"
            )
        if self.metrics_port < 0 or self.metrics_port > 65535:
            raise ValueError(f"MTA_METRICS_PORT must be 0-65535, got {self.metrics_port}")
        if self.x_share == 0:
            warnings.append("MTA_X_SHARE not set, a random share will be drawn")
        if self.max_retries > 10:
            warnings.append(f"MTA_MAX_RETRIES={self.max_retries} is unusually high")
        if self.metrics_port and self.metrics_port == self.port and self.host in ("localhost", "127.0.0.1"):
            warnings.append("MTA_METRICS_PORT equals MTA_PORT on localhost")
        return warnings
