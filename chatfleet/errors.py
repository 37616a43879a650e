from __future__ import annotations
from typing import Any, Dict, Optional


class ApiError(Exception):
    """Failure talking to the ChatFleet API.

    ``status`` is the HTTP status when one was received, ``None`` for
    connection-level failures and client-side setup errors. When the server
    answered with an error envelope, its code and correlation id are exposed
    as attributes and the envelope itself is kept untouched.
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = 500,
        envelope: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.envelope = envelope
        self.code: Optional[str] = None
        self.corr_id: Optional[str] = None

        if envelope:
            error = envelope.get("error") or {}
            if isinstance(error, dict):
                self.code = error.get("code")
            self.corr_id = envelope.get("corr_id")


class AuthError(ApiError):
    def __init__(self, message: str = "Authentication required", status: Optional[int] = 401):
        super().__init__(message, status=status)


class MissingTargetError(ApiError):
    """No RAG was selected for a chat turn."""

    def __init__(self, message: str = "No RAG selected"):
        super().__init__(message, status=None)


class ChatStreamError(ApiError):
    """The producer ended a turn with an ``error`` event."""

    def __init__(self, message: str, envelope: Optional[Dict[str, Any]] = None):
        super().__init__(message, status=None, envelope=envelope)
