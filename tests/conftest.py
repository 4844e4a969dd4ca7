"""Shared fakes: scripted transport, recording sink, SSE body builders."""

import asyncio
import copy
import json

import pytest

from hambur.config import Settings
from hambur.providers import Endpoint

# ---------------------------------------------------------------------------
# SSE body builders
# ---------------------------------------------------------------------------


def sse_record(payload: dict | str) -> bytes:
    """One blank-line-terminated data record."""
    data = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
    return f"data: {data}\n\n".encode()


def delta_chunk(text: str, reasoning: str | None = None) -> dict:
    delta: dict = {"content": text}
    if reasoning is not None:
        delta["reasoning_content"] = reasoning
    return {
        "id": "gen-1",
        "object": "chat.completion.chunk",
        "model": "test-model",
        "choices": [{"index": 0, "delta": delta, "finish_reason": None}],
    }


def sse_body(*deltas: str, done: bool = True) -> bytes:
    """A complete response body: one record per delta, then the terminator."""
    body = b"".join(sse_record(delta_chunk(d)) for d in deltas)
    if done:
        body += b"data: [DONE]\n\n"
    return body


# ---------------------------------------------------------------------------
# Scripted transport
# ---------------------------------------------------------------------------

# Script step: block until the turn is cancelled
HANG = object()

TEST_ENDPOINT = Endpoint(
    api_base="https://llm.test/v1/chat/completions",
    api_key="sk-test",
    model="test-model",
    api_key_env="TEST_API_KEY",
)


class ScriptedClient:
    """Stands in for ChatClient. Each call to stream_chunks() plays the next script.

    A script is a list of steps: bytes are yielded as chunks, an exception
    instance is raised, HANG blocks forever.
    """

    def __init__(self, *scripts: list, endpoint: Endpoint = TEST_ENDPOINT) -> None:
        self._scripts = list(scripts)
        self.endpoint = endpoint
        self.requests: list[list[dict[str, str]]] = []
        self.closed = False

    async def stream_chunks(self, messages):
        self.requests.append(copy.deepcopy(messages))
        script = self._scripts.pop(0)
        for step in script:
            if step is HANG:
                await asyncio.Event().wait()
            elif isinstance(step, BaseException):
                raise step
            else:
                yield step

    async def close(self) -> None:
        self.closed = True


class RecordingSink:
    """DisplaySink that records everything it is given."""

    def __init__(self) -> None:
        self.fragments: list[str] = []
        self.reasoning: list[str] = []
        self.ends = 0

    def write(self, text: str) -> None:
        self.fragments.append(text)

    def write_reasoning(self, text: str) -> None:
        self.reasoning.append(text)

    def end(self) -> None:
        self.ends += 1


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

_ENV_VARS = (
    "OPENAI_API_KEY",
    "OPENROUTER_API_KEY",
    "HAMBUR_MODEL",
    "HAMBUR_API_BASE",
    "HAMBUR_API_KEY",
    "HAMBUR_SYSTEM_PROMPT",
    "HAMBUR_TURN_TIMEOUT",
    "HAMBUR_DEBUG",
    "HAMBUR_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep the developer's real keys and overrides out of the tests."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def make_settings(**overrides) -> Settings:
    """Settings that ignore any .env file in the working directory."""
    return Settings(_env_file=None, **overrides)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
