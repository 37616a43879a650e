"""
ChatFleet client - streaming chat and indexing-job client for ChatFleet RAGs.

Provides:
- Incremental server-sent event decoding into typed chat events
- Turn accumulation with numbered source citations
- Background indexing job polling with phase and totals
- Structured logging, OpenTelemetry tracing and Prometheus metrics
"""

__version__ = "1.0.0"
__author__ = "ChatFleet Team"
__description__ = "Streaming chat and indexing-job client for the ChatFleet RAG service"

from .errors import ApiError, AuthError, MissingTargetError, ChatStreamError
from .services import ApiClient, ChatStreamAccumulator, JobPoller, stream_chat

__all__ = [
    "ApiError",
    "AuthError",
    "MissingTargetError",
    "ChatStreamError",
    "ApiClient",
    "ChatStreamAccumulator",
    "JobPoller",
    "stream_chat",
]
