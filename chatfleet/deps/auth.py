from __future__ import annotations
from typing import Optional, Protocol, runtime_checkable
from chatfleet.errors import AuthError


@runtime_checkable
class TokenProvider(Protocol):
    """Source of the bearer credential for the current user."""

    def get_token(self) -> Optional[str]:
        ...


class StaticTokenProvider:
    """Token provider holding a single token set at login."""

    def __init__(self, token: Optional[str] = None):
        self.token = token

    def get_token(self) -> Optional[str]:
        return self.token


def require_token(provider: Optional[TokenProvider]) -> str:
    """Return the current token or fail before any request is made."""
    token = provider.get_token() if provider is not None else None
    if not token:
        raise AuthError("Not authenticated")
    return token
