"""Error types for Hambur.

Every failure of a single turn is a TurnError. The interactive loop
catches TurnError, reports it and keeps going. ConfigError is the only
startup-fatal error and never reaches the session engine.
"""

from __future__ import annotations

from enum import StrEnum


class TurnErrorKind(StrEnum):
    EMPTY_INPUT = "empty_input"
    TRANSPORT_FAILURE = "transport_failure"
    PROTOCOL_VIOLATION = "protocol_violation"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"


class HamburError(Exception):
    """Base class for all Hambur errors."""


class ConfigError(HamburError):
    """Raised when the endpoint cannot be resolved (unknown model, missing key)."""


class TurnError(HamburError):
    """A turn failed. Conversation state is untouched."""

    kind: TurnErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


class EmptyInputError(TurnError):
    kind = TurnErrorKind.EMPTY_INPUT


class TransportFailureError(TurnError):
    kind = TurnErrorKind.TRANSPORT_FAILURE

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProtocolViolationError(TurnError):
    kind = TurnErrorKind.PROTOCOL_VIOLATION


class TurnCancelledError(TurnError):
    kind = TurnErrorKind.CANCELLED


class TurnTimeoutError(TurnError):
    kind = TurnErrorKind.TIMEOUT
