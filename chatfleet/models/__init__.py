"""
Data models and schemas.

Provides:
- Pydantic models for chat requests, citations and usage
- Typed chat stream events (tagged union on ``type``)
- Job status payloads and the client-side job progress view
"""

from .schemas import (
    ErrorEnvelope,
    ChatMessage,
    ChatOptions,
    ChatRequest,
    Citation,
    Usage,
    JobType,
    JobState,
    JobPhase,
    JobTotals,
    JobAccepted,
    JobStatusPayload,
    JobProgress,
    ReadyEvent,
    ChunkEvent,
    CitationsEvent,
    DoneEvent,
    PingEvent,
    ErrorEvent,
    ChatStreamEvent,
    AssistantReply,
)

__all__ = [
    "ErrorEnvelope",
    "ChatMessage",
    "ChatOptions",
    "ChatRequest",
    "Citation",
    "Usage",
    "JobType",
    "JobState",
    "JobPhase",
    "JobTotals",
    "JobAccepted",
    "JobStatusPayload",
    "JobProgress",
    "ReadyEvent",
    "ChunkEvent",
    "CitationsEvent",
    "DoneEvent",
    "PingEvent",
    "ErrorEvent",
    "ChatStreamEvent",
    "AssistantReply",
]
