from __future__ import annotations
import asyncio
import json
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional
import httpx
from chatfleet.services.api_client import ApiClient
from chatfleet.utils.sse import encode_frame

BASE_URL = "http://chatfleet.test/api"
CORR_ID = "6f1c2d3e-4a5b-4c6d-8e7f-90a1b2c3d4e5"


def make_api(handler: Callable[[httpx.Request], Any]) -> ApiClient:
    """ApiClient whose requests are answered by ``handler``."""
    transport = httpx.MockTransport(handler)
    return ApiClient(base_url=BASE_URL, client=httpx.AsyncClient(transport=transport))


def sse_body(frames: Iterable[str]) -> bytes:
    return "".join(frames).encode("utf-8")


async def byte_chunks(
    data: bytes,
    size: Optional[int] = None,
    hang_after: Optional[asyncio.Event] = None,
) -> AsyncIterator[bytes]:
    """Yield ``data`` in chunks of ``size`` bytes, then optionally block forever."""
    step = size or len(data) or 1
    for start in range(0, len(data), step):
        yield data[start:start + step]
        await asyncio.sleep(0)
    if hang_after is not None:
        await hang_after.wait()


def sse_response(
    frames: Iterable[str],
    chunk_size: Optional[int] = None,
    hang_after: Optional[asyncio.Event] = None,
) -> httpx.Response:
    return httpx.Response(
        200,
        headers={"Content-Type": "text/event-stream"},
        content=byte_chunks(sse_body(frames), chunk_size, hang_after),
    )


def json_response(data: Dict[str, Any], status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=data)


def citation(filename: str, pages: List[int], doc_id: str = "c0a8012e-0000-4000-8000-000000000001") -> Dict[str, Any]:
    return {"doc_id": doc_id, "filename": filename, "pages": pages, "snippet": f"excerpt from {filename}"}


def turn_frames(text_parts: Iterable[str], citations: Optional[List[Dict[str, Any]]] = None) -> List[str]:
    """Frames of one well-formed turn."""
    frames = [encode_frame("ready", {"corr_id": CORR_ID})]
    frames += [encode_frame("chunk", {"delta": part}) for part in text_parts]
    if citations is not None:
        frames.append(encode_frame("citations", citations))
    frames.append(encode_frame("done", {"usage": {"tokens_in": 12, "tokens_out": 7}}))
    return frames



def body_of(request: httpx.Request) -> Dict[str, Any]:
    return json.loads(request.content.decode("utf-8"))
