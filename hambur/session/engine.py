"""Session engine -- runs conversational turns against a streaming endpoint.

One turn:
1. Validate the input (empty input never reaches the network)
2. Snapshot the conversation and append the candidate user message
3. Stream the response through the ChatClient and StreamDecoder
4. Forward every delta to the display sink as it is decoded
5. On a clean end of stream, commit user + assistant to the conversation

Any failure (decoder error, transport error, cancellation, deadline)
discards the pending reply and leaves the conversation exactly as it was,
so the same input can simply be sent again.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import aclosing
from typing import Protocol

from hambur.api.client import ChatClient, TransportError
from hambur.errors import (
    EmptyInputError,
    ProtocolViolationError,
    TransportFailureError,
    TurnCancelledError,
    TurnError,
    TurnTimeoutError,
)
from hambur.session.conversation import Conversation
from hambur.session.decoder import DATA_MARKER, DONE_TOKEN, StreamDecoder
from hambur.session.schemas import Message, Role, StreamEvent

logger = logging.getLogger(__name__)


class DisplaySink(Protocol):
    """Receives text fragments as they stream in."""

    def write(self, text: str) -> None: ...

    def write_reasoning(self, text: str) -> None: ...

    def end(self) -> None:
        """Called once when a turn finishes, successfully or not."""
        ...


class _PendingReply:
    """Accumulates reply deltas for a single turn."""

    def __init__(self) -> None:
        self.parts: list[str] = []
        self.first_delta_at: float | None = None

    def append(self, text: str) -> None:
        if self.first_delta_at is None:
            self.first_delta_at = time.monotonic()
        self.parts.append(text)

    @property
    def text(self) -> str:
        return "".join(self.parts)


class SessionEngine:
    """Owns one Conversation and runs turns against it, one at a time."""

    def __init__(
        self,
        client: ChatClient,
        sink: DisplaySink,
        conversation: Conversation | None = None,
        *,
        system_prompt: str = "",
        default_timeout: float | None = None,
        marker: str = DATA_MARKER,
        terminator: str = DONE_TOKEN,
    ) -> None:
        self._client = client
        self._sink = sink
        self._system_prompt = system_prompt
        self._conversation = conversation if conversation is not None else Conversation(system_prompt)
        self._default_timeout = default_timeout
        self._marker = marker
        self._terminator = terminator
        self._inflight: asyncio.Task[None] | None = None

    @property
    def conversation(self) -> Conversation:
        return self._conversation

    @property
    def client(self) -> ChatClient:
        return self._client

    @property
    def in_flight(self) -> bool:
        return self._inflight is not None

    def reset(self) -> None:
        """Start over with a fresh conversation (re-seeded with the system prompt)."""
        if self._inflight is not None:
            raise RuntimeError("cannot reset while a turn is in flight")
        self._conversation = Conversation(self._system_prompt)
        logger.info("Conversation cleared")

    def cancel(self) -> bool:
        """Cancel the in-flight turn. Returns False if nothing was running."""
        task = self._inflight
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def run_turn(self, user_text: str, timeout: float | None = None) -> str:
        """Execute one turn and return the assembled reply.

        Raises a TurnError subclass on failure; the conversation is only
        modified when this returns normally.
        """
        if not user_text or not user_text.strip():
            raise EmptyInputError("input is empty")
        if self._inflight is not None:
            raise RuntimeError("a turn is already in flight")

        if timeout is None:
            timeout = self._default_timeout

        start = time.monotonic()
        messages = self._conversation.as_request_payload()
        messages.append(Message(role=Role.USER, content=user_text).to_payload())
        logger.debug("Request prepared in %.3fs (%d messages)", time.monotonic() - start, len(messages))

        pending = _PendingReply()
        task = asyncio.create_task(self._stream_reply(messages, pending), name="hambur-turn")
        self._inflight = task
        try:
            await self._await_turn(task, timeout)
        except TurnError as e:
            logger.warning(
                "Turn failed after %.3fs (%s): %s", time.monotonic() - start, e.kind, e.message
            )
            raise
        finally:
            self._inflight = None
            self._sink.end()

        reply = pending.text
        self._conversation.append_pair(user_text, reply)

        if pending.first_delta_at is not None:
            logger.debug("First delta after %.3fs", pending.first_delta_at - start)
        logger.debug(
            "Turn completed in %.3fs: %d deltas, %d chars",
            time.monotonic() - start,
            len(pending.parts),
            len(reply),
        )
        return reply

    async def close(self) -> None:
        await self._client.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _await_turn(self, task: asyncio.Task[None], timeout: float | None) -> None:
        """Wait for the streaming task and translate its failures into TurnErrors."""
        try:
            await asyncio.wait_for(task, timeout)
        except TimeoutError as e:
            raise TurnTimeoutError(f"no complete reply within {timeout:g}s") from e
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                # Our caller is being cancelled, not just the turn
                raise
            raise TurnCancelledError("turn cancelled before the reply completed") from None
        except TransportError as e:
            raise TransportFailureError(str(e), status_code=e.status_code) from e

    async def _stream_reply(self, messages: list[dict[str, str]], pending: _PendingReply) -> None:
        decoder = StreamDecoder(self._marker, self._terminator)
        async with aclosing(self._client.stream_chunks(messages)) as chunks:
            async for chunk in chunks:
                for event in decoder.feed(chunk):
                    self._dispatch(event, pending)
        for event in decoder.finish():
            self._dispatch(event, pending)
        logger.debug("Decoded %d records", decoder.records)

    def _dispatch(self, event: StreamEvent, pending: _PendingReply) -> None:
        if event.type == "delta":
            pending.append(event.text)
            self._sink.write(event.text)
        elif event.type == "reasoning":
            self._sink.write_reasoning(event.text)
        elif event.type == "error":
            if event.upstream:
                raise TransportFailureError(event.text)
            raise ProtocolViolationError(event.text)
        # "done": keep reading; the body must end cleanly before we commit
