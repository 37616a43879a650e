from __future__ import annotations
import os

# API Configuration
API_BASE: str = os.getenv("CHATFLEET_API_BASE", "http://localhost:8000/api").rstrip("/")
HTTP_CONNECT_TIMEOUT: float = float(os.getenv("HTTP_CONNECT_TIMEOUT", "10"))
HTTP_TIMEOUT: float = float(os.getenv("HTTP_TIMEOUT", "30"))

# Chat Stream Configuration
SSE_HEARTBEAT_MS: int = int(os.getenv("SSE_HEARTBEAT_MS", "15000"))
# A stream silent for three heartbeats (pings included) is considered dead
STREAM_READ_TIMEOUT: float = SSE_HEARTBEAT_MS * 3 / 1000

# Answer Formatting Configuration
CHAT_SOURCES_LABEL: str = os.getenv("CHAT_SOURCES_LABEL", "Sources")
HIDE_UNAVAILABLE_SOURCES: bool = os.getenv("HIDE_UNAVAILABLE_SOURCES", "false").lower() == "true"
UNAVAILABLE_SOURCE_PLACEHOLDERS: tuple[str, ...] = tuple(
    name.strip().lower()
    for name in os.getenv(
        "UNAVAILABLE_SOURCE_PLACEHOLDERS",
        "sources unavailable,source unavailable,no sources available",
    ).split(",")
    if name.strip()
)

# Job Polling Configuration
JOB_POLL_INTERVAL: float = float(os.getenv("JOB_POLL_INTERVAL", "2.5"))

# Logging Configuration
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_STRUCTURED: bool = os.getenv("LOG_STRUCTURED", "true").lower() == "true"

# OpenTelemetry Configuration
OTEL_EXPORTER_OTLP_ENDPOINT: str | None = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
OTEL_SERVICE_NAME: str = os.getenv("OTEL_SERVICE_NAME", "chatfleet-client")
