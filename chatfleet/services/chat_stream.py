from __future__ import annotations
import asyncio
import json
from contextlib import aclosing
from typing import AsyncIterator, Callable, Dict, Optional
from pydantic import BaseModel, ValidationError
from chatfleet.models.schemas import (
    ChatRequest,
    ChatStreamEvent,
    ChunkEvent,
    CitationsEvent,
    DoneEvent,
    ErrorEvent,
    PingEvent,
    ReadyEvent,
)
from chatfleet.obs.logging_setup import get_logger
from chatfleet.obs.prometheus_metrics import prometheus_metrics
from chatfleet.services.api_client import ApiClient
from chatfleet.utils.sse import decode_block, iter_frames

logger = get_logger(__name__)

# Each recognized event name maps the decoded JSON payload onto its event model
_PAYLOAD_BUILDERS: Dict[str, Callable[[object], BaseModel]] = {
    "ready": lambda data: ReadyEvent.model_validate({**data, "type": "ready"}),
    "chunk": lambda data: ChunkEvent.model_validate({**data, "type": "chunk"}),
    "citations": lambda data: CitationsEvent(citations=data),
    "done": lambda data: DoneEvent.model_validate({**data, "type": "done"}),
    "error": lambda data: ErrorEvent(envelope=data),
}


def parse_event(name: Optional[str], data: Optional[str]) -> Optional[ChatStreamEvent]:
    """
    Turn one decoded block into a typed event.

    Unknown names, missing payloads, invalid JSON and payloads of the wrong
    shape all return None: the block is dropped and the stream carries on.
    """
    if not name:
        prometheus_metrics.record_dropped_event("none", "no_event_name")
        return None

    if name == "ping":
        return PingEvent()

    builder = _PAYLOAD_BUILDERS.get(name)
    if builder is None:
        prometheus_metrics.record_dropped_event("unknown", "unknown_event")
        logger.debug("Ignoring unknown stream event", stream_event=name)
        return None

    if not data:
        prometheus_metrics.record_dropped_event(name, "missing_payload")
        logger.debug("Dropping stream event without payload", stream_event=name)
        return None

    try:
        return builder(json.loads(data))
    except (ValidationError, TypeError) as e:
        prometheus_metrics.record_dropped_event(name, "invalid_shape")
        logger.debug("Dropping malformed stream event", stream_event=name, error=str(e))
    except ValueError as e:
        prometheus_metrics.record_dropped_event(name, "invalid_json")
        logger.debug("Dropping undecodable stream event", stream_event=name, error=str(e))
    return None


async def _read_until_cancelled(
    chunks: AsyncIterator[bytes],
    cancel_event: Optional[asyncio.Event],
) -> AsyncIterator[bytes]:
    """Relay network chunks until the stream ends or ``cancel_event`` is set."""
    if cancel_event is None:
        async for chunk in chunks:
            yield chunk
        return

    cancel_wait = asyncio.ensure_future(cancel_event.wait())
    read: Optional[asyncio.Future] = None
    try:
        while not cancel_event.is_set():
            read = asyncio.ensure_future(chunks.__anext__())
            await asyncio.wait({read, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)

            if not read.done():
                read.cancel()
                try:
                    await read
                except (asyncio.CancelledError, StopAsyncIteration):
                    pass
                return

            try:
                chunk = read.result()
            except StopAsyncIteration:
                return
            yield chunk
    finally:
        cancel_wait.cancel()
        if read is not None and not read.done():
            read.cancel()


async def stream_chat(
    api: ApiClient,
    token: str,
    payload: ChatRequest,
    cancel_event: Optional[asyncio.Event] = None,
) -> AsyncIterator[ChatStreamEvent]:
    """
    Stream the typed events of one chat request in wire order.

    Setting ``cancel_event`` aborts the pending read, closes the connection
    and ends the sequence without yielding anything further.
    """
    async with api.open_chat_stream(token, payload) as response:
        chunks = _read_until_cancelled(response.aiter_bytes(), cancel_event)
        async with aclosing(chunks), aclosing(iter_frames(chunks)) as frames:
            async for raw in frames:
                # A block completed by the last read is still dropped once cancelled
                if cancel_event is not None and cancel_event.is_set():
                    break

                name, data = decode_block(raw)
                event = parse_event(name, data)
                if event is None:
                    continue

                prometheus_metrics.record_stream_event(event.type)
                yield event

    if cancel_event is not None and cancel_event.is_set():
        logger.info("Chat stream cancelled", rag_slug=payload.rag_slug)
