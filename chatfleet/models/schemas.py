from __future__ import annotations
import math
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator

CorrId = Annotated[str, Field(min_length=1)]

# ---- errors ----

class ErrorBody(BaseModel):
    model_config = ConfigDict(extra="allow")

    code: str = "stream_error"
    message: str = "Chat stream error"

class ErrorEnvelope(BaseModel):
    model_config = ConfigDict(extra="allow")

    error: ErrorBody
    corr_id: CorrId

    @field_validator("error", mode="before")
    @classmethod
    def bare_message(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"message": value}
        return value

# ---- chat ----

class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str

    @field_validator("content", mode="before")
    @classmethod
    def flatten_parts(cls, value: Any) -> Any:
        """Keep only the text parts of a multi-part message."""
        if isinstance(value, list):
            texts = [
                part.get("text", "")
                for part in value
                if isinstance(part, dict) and part.get("type") == "text"
            ]
            return " ".join(texts).strip()
        return value

class ChatOptions(BaseModel):
    top_k: Optional[int] = Field(default=None, ge=1)
    temperature: Optional[float] = Field(default=None, ge=0, le=1)
    max_tokens: Optional[int] = Field(default=None, ge=1)

class ChatRequest(BaseModel):
    rag_slug: str = Field(..., min_length=1)
    messages: List[ChatMessage] = Field(..., min_length=1)
    opts: Optional[ChatOptions] = None

class Citation(BaseModel):
    doc_id: str
    filename: str
    pages: List[Annotated[int, Field(ge=1)]] = Field(..., min_length=1)
    snippet: str = Field(..., max_length=1000)

class Usage(BaseModel):
    tokens_in: int = Field(..., ge=0)
    tokens_out: int = Field(..., ge=0)

# ---- jobs ----

class JobType(str, Enum):
    RAG_INDEX = "RAG_INDEX"
    RAG_REBUILD = "RAG_REBUILD"
    RAG_RESET = "RAG_RESET"
    CHAT_COMPLETION = "CHAT_COMPLETION"

class JobState(str, Enum):
    IDLE = "idle"
    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.DONE, JobState.ERROR)

class JobPhase(str, Enum):
    QUEUED = "queued"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    INDEXING = "indexing"
    FINALIZING = "finalizing"

class JobTotals(BaseModel):
    docs_total: int = Field(default=0, ge=0)
    docs_done: int = Field(default=0, ge=0)
    chunks_total: int = Field(default=0, ge=0)
    chunks_done: int = Field(default=0, ge=0)

    @field_validator("docs_total", "docs_done", "chunks_total", "chunks_done", mode="before")
    @classmethod
    def as_count(cls, value: Any) -> int:
        """Numeric strings and floats are truncated; anything else counts as 0."""
        if value is None or isinstance(value, bool):
            return 0
        try:
            number = float(value)
        except (TypeError, ValueError):
            return 0
        if not math.isfinite(number):
            return 0
        return max(int(number), 0)

class JobAccepted(BaseModel):
    job_id: str
    corr_id: Optional[str] = None

class JobStatusPayload(BaseModel):
    """Job-status response, read leniently: unknown or absent fields default."""

    model_config = ConfigDict(extra="ignore")

    job_id: Optional[str] = None
    type: Optional[JobType] = None
    status: JobState = JobState.QUEUED
    progress: Optional[float] = None
    phase: Optional[JobPhase] = None
    totals: JobTotals = Field(default_factory=JobTotals)
    error: Optional[str] = None
    corr_id: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def known_type(cls, value: Any) -> Any:
        return value if isinstance(value, str) and value in JobType._value2member_map_ else None

    @field_validator("status", mode="before")
    @classmethod
    def known_status(cls, value: Any) -> Any:
        if not isinstance(value, str) or value == JobState.IDLE.value or value not in JobState._value2member_map_:
            return JobState.QUEUED
        return value

    @field_validator("progress", mode="before")
    @classmethod
    def clamp_progress(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            return None
        return min(max(float(value), 0.0), 1.0)

    @field_validator("phase", mode="before")
    @classmethod
    def known_phase(cls, value: Any) -> Any:
        return value if isinstance(value, str) and value in JobPhase._value2member_map_ else None

    @field_validator("totals", mode="before")
    @classmethod
    def default_totals(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}

    @field_validator("job_id", "corr_id", mode="before")
    @classmethod
    def text_or_none(cls, value: Any) -> Any:
        return value if isinstance(value, str) else None

    @field_validator("error", mode="before")
    @classmethod
    def error_message(cls, value: Any) -> Any:
        # Some workers store the whole error envelope body instead of its message
        if isinstance(value, dict):
            value = value.get("message")
        return value if isinstance(value, str) and value else None

class JobProgress(BaseModel):
    """What the UI shows for one job."""

    job_id: Optional[str] = None
    type: Optional[JobType] = None
    state: JobState = JobState.IDLE
    progress: Optional[float] = None
    phase: Optional[JobPhase] = None
    totals: JobTotals = Field(default_factory=JobTotals)
    error: Optional[str] = None

    @classmethod
    def from_payload(cls, job_id: str, payload: JobStatusPayload) -> "JobProgress":
        return cls(
            job_id=job_id,
            type=payload.type,
            state=payload.status,
            progress=payload.progress,
            phase=payload.phase,
            totals=payload.totals,
            error=payload.error if payload.status.is_terminal else None,
        )

# ---- chat stream events ----

class ReadyEvent(BaseModel):
    type: Literal["ready"] = "ready"
    corr_id: CorrId

class ChunkEvent(BaseModel):
    type: Literal["chunk"] = "chunk"
    delta: str

class CitationsEvent(BaseModel):
    type: Literal["citations"] = "citations"
    citations: List[Citation]

class DoneEvent(BaseModel):
    type: Literal["done"] = "done"
    usage: Usage

class PingEvent(BaseModel):
    type: Literal["ping"] = "ping"

class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    envelope: ErrorEnvelope

ChatStreamEvent = Annotated[
    Union[ReadyEvent, ChunkEvent, CitationsEvent, DoneEvent, PingEvent, ErrorEvent],
    Field(discriminator="type"),
]

class AssistantReply(BaseModel):
    """One formatted answer produced by a completed turn."""

    text: str
    citations: List[Citation] = Field(default_factory=list)
    usage: Optional[Usage] = None
    corr_id: Optional[str] = None

    def as_content(self) -> Dict[str, Any]:
        """Message shape expected by the chat runtime."""
        return {"content": [{"type": "text", "text": self.text}]}
