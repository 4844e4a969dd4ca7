"""Data types shared by the decoder, conversation and engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class Role(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    """A single message in a conversation."""

    role: Role
    content: str

    def to_payload(self) -> dict[str, str]:
        return {"role": str(self.role), "content": self.content}


@dataclass(frozen=True)
class StreamEvent:
    """A single event decoded from the streaming response."""

    type: str  # delta, reasoning, done, error
    text: str = ""
    upstream: bool = False  # error reported by the API itself, not a wire defect

    @classmethod
    def delta(cls, text: str) -> StreamEvent:
        return cls(type="delta", text=text)

    @classmethod
    def reasoning(cls, text: str) -> StreamEvent:
        return cls(type="reasoning", text=text)

    @classmethod
    def done(cls) -> StreamEvent:
        return cls(type="done")

    @classmethod
    def error(cls, cause: str, upstream: bool = False) -> StreamEvent:
        return cls(type="error", text=cause, upstream=upstream)
