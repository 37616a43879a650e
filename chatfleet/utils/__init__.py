"""
Utility functions and helpers.

Provides:
- Incremental server-sent event frame decoding
- Event block field extraction
- Event block encoding for fakes and fixtures
"""

from .sse import iter_frames, decode_block, encode_frame

__all__ = [
    "iter_frames",
    "decode_block",
    "encode_frame",
]
