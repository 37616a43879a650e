from __future__ import annotations
import codecs
import json
import re
from typing import Any, AsyncIterable, AsyncIterator, Dict, List, Optional, Tuple

BLOCK_SEPARATOR = "\n\n"
_LINE_BREAK = re.compile(r"\r?\n")


async def iter_frames(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """
    Split a chunked byte stream into raw server-sent event blocks.

    Bytes are decoded incrementally so multi-byte characters and block
    separators may be split anywhere between chunks. Each complete block is
    yielded stripped of surrounding whitespace; a non-empty remainder left at
    end of stream is yielded once as a final block.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""

    async for chunk in chunks:
        buffer += decoder.decode(chunk)
        buffer = buffer.replace("\r\n", "\n")

        while True:
            boundary = buffer.find(BLOCK_SEPARATOR)
            if boundary == -1:
                break
            block = buffer[:boundary].strip()
            buffer = buffer[boundary + len(BLOCK_SEPARATOR):]
            if block:
                yield block

    buffer = (buffer + decoder.decode(b"", final=True)).replace("\r\n", "\n")
    if buffer.strip():
        yield buffer.strip()


def decode_block(raw: str) -> Tuple[Optional[str], Optional[str]]:
    """Extract the event name and the joined ``data:`` payload of one block."""
    event_name: Optional[str] = None
    data_lines: List[str] = []

    for line in _LINE_BREAK.split(raw):
        if not line:
            continue

        if line.startswith("data:"):
            data_lines.append(line[5:].strip())
        elif line.startswith("event:") and "data:" not in line:
            event_name = line[6:].strip()
        else:
            # Some producer builds emit "event: x data: {...}" on one line
            split = _split_inline_fields(line)
            if split is not None:
                event_name, inline_data = split
                data_lines.append(inline_data)

    return event_name, ("\n".join(data_lines) if data_lines else None)


def _split_inline_fields(line: str) -> Optional[Tuple[str, str]]:
    # TODO: drop once the producer's single-line framing fix has shipped everywhere
    event_index = line.find("event:")
    if event_index == -1:
        return None
    data_index = line.find("data:", event_index + 6)
    if data_index == -1:
        return None
    return line[event_index + 6:data_index].strip(), line[data_index + 5:].strip()


def encode_frame(event: str, data: Optional[Dict[str, Any] | List[Any]] = None) -> str:
    """Create one server-sent event block."""
    lines = [f"event: {event}"]

    if data is not None:
        json_data = json.dumps(data, ensure_ascii=False, default=str)
        for line in json_data.split('\n'):
            lines.append(f"data: {line}")

    lines.append("")
    return "\n".join(lines) + "\n"
