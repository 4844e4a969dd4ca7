"""Conversation state -- the ordered message history sent with every request."""

from __future__ import annotations

from hambur.session.schemas import Message, Role


class Conversation:
    """Append-only list of messages.

    The only writes are the optional system message before the first
    turn, and one user/assistant pair per successful turn. Callers get
    snapshots, never the underlying list.
    """

    def __init__(self, system_prompt: str = "") -> None:
        self._messages: list[Message] = []
        if system_prompt:
            self.append_system(system_prompt)

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def turns(self) -> int:
        return sum(1 for m in self._messages if m.role == Role.ASSISTANT)

    def append_system(self, text: str) -> None:
        """Add the system message. Only allowed before any turn has been committed."""
        if self._messages:
            raise RuntimeError("system message must be added before any other message")
        self._messages.append(Message(role=Role.SYSTEM, content=text))

    def append_pair(self, user_text: str, assistant_text: str) -> None:
        """Commit one completed turn: user message, then assistant reply."""
        self._messages.append(Message(role=Role.USER, content=user_text))
        self._messages.append(Message(role=Role.ASSISTANT, content=assistant_text))

    def as_request_payload(self) -> list[dict[str, str]]:
        """Fresh list of {"role", "content"} dicts, in chronological order."""
        return [m.to_payload() for m in self._messages]
