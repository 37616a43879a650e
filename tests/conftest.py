from __future__ import annotations
from typing import List
import httpx
import pytest
from chatfleet.deps.auth import StaticTokenProvider


@pytest.fixture
def token_provider() -> StaticTokenProvider:
    return StaticTokenProvider("test-token-456")


@pytest.fixture
def request_log() -> List[httpx.Request]:
    return []
