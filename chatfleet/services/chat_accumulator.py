from __future__ import annotations
import asyncio
import string
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Iterable, List, Optional, Sequence
from chatfleet.config import (
    CHAT_SOURCES_LABEL,
    HIDE_UNAVAILABLE_SOURCES,
    UNAVAILABLE_SOURCE_PLACEHOLDERS,
)
from chatfleet.deps.auth import TokenProvider, require_token
from chatfleet.errors import ChatStreamError, MissingTargetError
from chatfleet.models.schemas import (
    AssistantReply,
    ChatMessage,
    ChatOptions,
    ChatRequest,
    ChunkEvent,
    Citation,
    CitationsEvent,
    DoneEvent,
    ErrorEvent,
    ReadyEvent,
    Usage,
)
from chatfleet.obs.logging_setup import get_logger
from chatfleet.obs.prometheus_metrics import prometheus_metrics
from chatfleet.services.api_client import ApiClient
from chatfleet.services.chat_stream import stream_chat

logger = get_logger(__name__)

_TRAILING_PUNCTUATION = string.punctuation + " \t"


def _normalize_filename(filename: str) -> str:
    return filename.strip().lower().rstrip(_TRAILING_PUNCTUATION)


def format_with_citations(
    body: str,
    citations: Sequence[Citation],
    label: str = CHAT_SOURCES_LABEL,
    hidden: Optional[Iterable[str]] = None,
) -> str:
    """
    Render an answer followed by its numbered source list.

    Returns an empty string when there is neither text nor a citation.
    Citations whose filename matches one of ``hidden`` (compared
    case-insensitively, ignoring trailing punctuation) are left out and the
    remaining ones renumbered; if none remain the source list is omitted.
    """
    trimmed = body.strip()
    if not trimmed and not citations:
        return ""

    if hidden:
        placeholders = {_normalize_filename(name) for name in hidden}
        citations = [c for c in citations if _normalize_filename(c.filename) not in placeholders]

    if not citations:
        return trimmed

    sources = "\n".join(
        f"{position}. {citation.filename} · pages {', '.join(str(page) for page in citation.pages)}"
        for position, citation in enumerate(citations, 1)
    )
    return f"{trimmed}\n\n{label}:\n{sources}".strip()


@dataclass
class TurnState:
    """Text and citations accrued for the turn in flight."""

    parts: List[str] = field(default_factory=list)
    citations: List[Citation] = field(default_factory=list)
    corr_id: Optional[str] = None

    @property
    def text(self) -> str:
        return "".join(self.parts)

    @property
    def is_empty(self) -> bool:
        return not self.parts and not self.citations and self.corr_id is None

    def reset(self) -> None:
        self.parts.clear()
        self.citations = []
        self.corr_id = None


class ChatStreamAccumulator:
    """Drives chat turns and turns their event streams into replies."""

    def __init__(
        self,
        api: ApiClient,
        token_provider: Optional[TokenProvider],
        rag_slug: Optional[str] = None,
        opts: Optional[ChatOptions] = None,
        sources_label: str = CHAT_SOURCES_LABEL,
        hide_unavailable_sources: bool = HIDE_UNAVAILABLE_SOURCES,
        unavailable_placeholders: Sequence[str] = UNAVAILABLE_SOURCE_PLACEHOLDERS,
    ):
        self.api = api
        self.token_provider = token_provider
        self.rag_slug = rag_slug
        self.opts = opts
        self.sources_label = sources_label
        self.hidden_sources = tuple(unavailable_placeholders) if hide_unavailable_sources else ()

    def _format(self, state: TurnState, usage: Optional[Usage]) -> Optional[AssistantReply]:
        text = format_with_citations(
            state.text,
            state.citations,
            label=self.sources_label,
            hidden=self.hidden_sources,
        )
        if not text:
            return None
        return AssistantReply(
            text=text,
            citations=list(state.citations),
            usage=usage,
            corr_id=state.corr_id,
        )

    async def run(
        self,
        messages: Sequence[ChatMessage | dict[str, Any]],
        rag_slug: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[AssistantReply]:
        """
        Send the conversation and yield one reply per completed turn.

        Raises ``AuthError`` or ``MissingTargetError`` before any request
        when there is no credential or no target RAG, ``ApiError`` when the
        stream cannot be opened or breaks, and ``ChatStreamError`` when the
        producer reports an error. Nothing is yielded for a failed or
        cancelled turn.
        """
        token = require_token(self.token_provider)
        target = rag_slug or self.rag_slug
        if not target:
            raise MissingTargetError()

        payload = ChatRequest(
            rag_slug=target,
            messages=[ChatMessage.model_validate(message) for message in messages],
            opts=self.opts,
        )

        # Accrual state belongs to this invocation alone
        state = TurnState()
        logger.info("Chat turn started", rag_slug=target, message_count=len(payload.messages))

        try:
            async with aclosing(stream_chat(self.api, token, payload, cancel_event)) as events:
                async for event in events:
                    if isinstance(event, ChunkEvent):
                        if event.delta:
                            state.parts.append(event.delta)
                    elif isinstance(event, CitationsEvent):
                        state.citations = list(event.citations)
                    elif isinstance(event, ReadyEvent):
                        state.corr_id = event.corr_id
                        logger.debug("Chat stream ready", corr_id=event.corr_id)
                    elif isinstance(event, DoneEvent):
                        reply = self._format(state, event.usage)
                        state.reset()
                        prometheus_metrics.record_turn("message" if reply is not None else "empty")
                        if reply is not None:
                            yield reply
                    elif isinstance(event, ErrorEvent):
                        state.reset()
                        envelope = event.envelope
                        logger.warning(
                            "Chat stream reported an error",
                            error_code=envelope.error.code,
                            corr_id=envelope.corr_id,
                        )
                        raise ChatStreamError(
                            envelope.error.message or "Chat stream error",
                            envelope=envelope.model_dump(),
                        )
        except Exception:
            prometheus_metrics.record_turn("error")
            raise
        finally:
            state.reset()

        if cancel_event is not None and cancel_event.is_set():
            prometheus_metrics.record_turn("cancelled")
            logger.info("Chat turn cancelled", rag_slug=target)
