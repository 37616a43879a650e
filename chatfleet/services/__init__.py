"""
Client services.

Provides:
- HTTP client for the ChatFleet API
- Typed chat stream events over server-sent events
- Chat turn accumulation and answer formatting
- Background job status polling
"""

from .api_client import ApiClient
from .chat_stream import parse_event, stream_chat
from .chat_accumulator import ChatStreamAccumulator, TurnState, format_with_citations
from .job_poller import JobPoller, PollHandle

__all__ = [
    "ApiClient",
    "parse_event",
    "stream_chat",
    "ChatStreamAccumulator",
    "TurnState",
    "format_with_citations",
    "JobPoller",
    "PollHandle",
]
