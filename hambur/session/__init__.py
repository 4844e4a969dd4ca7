"""Session module -- the streaming core of Hambur.

Public API:
    SessionEngine   - Runs one turn at a time against a ChatClient
    Conversation    - Append-only message history owned by the engine
    StreamDecoder   - Incremental SSE record decoder
    DisplaySink     - Protocol for whatever renders streamed text

Schemas:
    Message, Role, StreamEvent
"""

from hambur.session.conversation import Conversation
from hambur.session.decoder import DATA_MARKER, DONE_TOKEN, StreamDecoder, parse_chunk
from hambur.session.engine import DisplaySink, SessionEngine
from hambur.session.schemas import Message, Role, StreamEvent

__all__ = [
    "Conversation",
    "DATA_MARKER",
    "DONE_TOKEN",
    "DisplaySink",
    "Message",
    "Role",
    "SessionEngine",
    "StreamDecoder",
    "StreamEvent",
    "parse_chunk",
]
