"""
External collaborators.

Provides:
- Bearer credential provider protocol and a static implementation
"""

from .auth import TokenProvider, StaticTokenProvider, require_token

__all__ = ["TokenProvider", "StaticTokenProvider", "require_token"]
