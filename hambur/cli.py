"""Hambur interactive terminal client.

Reads a line, streams the model's reply to the terminal, repeats.

Usage:
    OPENROUTER_API_KEY=... python -m hambur.cli [--model gemini-flash]

Commands at the prompt:
    exit             - quit (Ctrl-D and Ctrl-C at the prompt also quit)
    clear            - forget the conversation so far
    /models          - list known models
    /model <query>   - switch model, keeping the conversation
    Ctrl-C while a reply is streaming interrupts that reply only.

Environment: see hambur.config.Settings (HAMBUR_* plus provider keys).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Callable
from typing import TextIO

from hambur.api.client import ChatClient
from hambur.config import Settings
from hambur.errors import ConfigError, TurnError
from hambur.providers import Endpoint, Model, all_models, find_models, resolve_endpoint
from hambur.session import Conversation, SessionEngine

logger = logging.getLogger(__name__)

EXIT_COMMAND = "exit"
CLEAR_COMMAND = "clear"
PROMPT = "You: "
REPLY_PREFIX = "AI: "

EngineFactory = Callable[[Endpoint, Conversation | None], SessionEngine]


class TerminalSink:
    """Writes streamed fragments straight to a text stream."""

    def __init__(self, stream: TextIO | None = None, show_reasoning: bool = True) -> None:
        self._stream = stream or sys.stdout
        self._show_reasoning = show_reasoning
        self._in_reasoning = False
        self._wrote = False

    def write(self, text: str) -> None:
        if self._in_reasoning:
            self._emit("\n\n")
            self._in_reasoning = False
        self._emit(text)

    def write_reasoning(self, text: str) -> None:
        if not self._show_reasoning:
            return
        self._in_reasoning = True
        self._emit(text)

    def end(self) -> None:
        if self._wrote:
            self._stream.write("\n")
            self._stream.flush()
        self._in_reasoning = False
        self._wrote = False

    def _emit(self, text: str) -> None:
        self._stream.write(text)
        self._stream.flush()
        self._wrote = True


class ChatLoop:
    """The read-stream-repeat loop around a SessionEngine.

    Input is read synchronously between turns; each turn runs on a
    persistent asyncio.Runner so the httpx connection pool survives
    from one turn to the next.
    """

    def __init__(
        self,
        settings: Settings,
        endpoint: Endpoint,
        *,
        sink: TerminalSink | None = None,
        engine_factory: EngineFactory | None = None,
        input_fn: Callable[[str], str] = input,
        out: TextIO | None = None,
    ) -> None:
        self._settings = settings
        self._out = out or sys.stdout
        self._sink = sink or TerminalSink(self._out, show_reasoning=settings.show_reasoning)
        self._engine_factory = engine_factory or self._default_engine
        self._input = input_fn
        self.engine = self._engine_factory(endpoint, None)

    def run(self) -> int:
        """Run until exit. Returns the process exit status."""
        self._print(
            f"Welcome to Hambur ({self.engine.client.endpoint.model}). "
            f"Type '{EXIT_COMMAND}' to quit, '{CLEAR_COMMAND}' to clear the history, "
            "'/model <name>' to switch models."
        )
        with asyncio.Runner() as runner:
            try:
                while True:
                    try:
                        line = self._input(PROMPT)
                    except (EOFError, KeyboardInterrupt):
                        self._print("")
                        break
                    if not self.handle_line(line, runner):
                        break
            finally:
                runner.run(self.engine.close())
        return 0

    def handle_line(self, line: str, runner: asyncio.Runner) -> bool:
        """Process one input line. Returns False when the loop should stop."""
        text = line.strip()
        if not text:
            return True
        if text.lower() == EXIT_COMMAND:
            return False
        if text.lower() == CLEAR_COMMAND:
            self.engine.reset()
            self._print("[conversation cleared]")
            return True
        if text == "/models":
            self._list_models(all_models())
            return True
        if text == "/model" or text.startswith("/model "):
            self._switch_model(text[len("/model"):].strip(), runner)
            return True

        self._out.write(REPLY_PREFIX)
        self._out.flush()
        try:
            runner.run(self._run_turn(text))
        except TurnError as e:
            self._print(f"[{e.kind}] {e.message}")
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _run_turn(self, text: str) -> str:
        """Run one turn with Ctrl-C mapped to cancelling just that turn."""
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, self.engine.cancel)
            installed = True
        except (NotImplementedError, RuntimeError):
            # Windows event loops and non-main threads
            installed = False
        try:
            return await self.engine.run_turn(text, timeout=self._settings.turn_timeout)
        finally:
            if installed:
                loop.remove_signal_handler(signal.SIGINT)

    def _switch_model(self, query: str, runner: asyncio.Runner) -> None:
        if not query:
            self._print(f"Current model: {self.engine.client.endpoint.model}")
            return

        matches = find_models(query)
        if not matches:
            self._print(f"No model matches {query!r}")
            return

        model = matches[0] if len(matches) == 1 else self._choose_model(matches)
        if model is None:
            self._print("Model switch cancelled")
            return

        try:
            endpoint = resolve_endpoint(self._settings, model.id)
        except ConfigError as e:
            self._print(f"Cannot switch to {model.name}: {e}")
            return

        old = self.engine
        self.engine = self._engine_factory(endpoint, old.conversation)
        runner.run(old.close())
        logger.info("Switched model to %s", model.id)
        self._print(f"Switched to model: {model.name}")

    def _choose_model(self, matches: list[Model]) -> Model | None:
        self._print("Several models match:")
        self._list_models(matches)
        try:
            answer = self._input(f"Select [1-{len(matches)}]: ").strip()
        except (EOFError, KeyboardInterrupt):
            return None
        if not answer.isdigit() or not 1 <= int(answer) <= len(matches):
            return None
        return matches[int(answer) - 1]

    def _list_models(self, models: list[Model]) -> None:
        current = self.engine.client.endpoint.model
        for i, m in enumerate(models, 1):
            marker = "*" if m.id == current else " "
            self._print(f"{marker} {i}. {m.name} ({m.provider}: {m.id})")

    def _default_engine(self, endpoint: Endpoint, conversation: Conversation | None) -> SessionEngine:
        client = ChatClient(
            endpoint,
            timeout_connect=self._settings.api_timeout_connect,
            timeout_read=self._settings.api_timeout_read,
        )
        return SessionEngine(
            client,
            self._sink,
            conversation,
            system_prompt=self._settings.system_prompt,
            default_timeout=self._settings.turn_timeout,
        )

    def _print(self, text: str) -> None:
        self._out.write(text + "\n")
        self._out.flush()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="hambur", description="Streaming terminal chat client")
    parser.add_argument("--model", help="Model id or short name (see /models)")
    parser.add_argument("--system", help="System prompt for the conversation")
    parser.add_argument("--timeout", type=float, help="Deadline in seconds for each reply")
    parser.add_argument("--debug", action="store_true", help="Log request timings to stderr")
    return parser.parse_args(argv)


def load_settings(args: argparse.Namespace) -> Settings:
    """Settings from env/.env with command-line overrides applied."""
    overrides: dict[str, object] = {}
    if args.model:
        matches = find_models(args.model)
        exact = [m for m in matches if args.model in (m.id, m.name)]
        picked = exact or (matches if len(matches) == 1 else [])
        overrides["model"] = picked[0].id if picked else args.model
    if args.system is not None:
        overrides["system_prompt"] = args.system
    if args.timeout is not None:
        overrides["turn_timeout"] = args.timeout
    if args.debug:
        overrides["debug"] = True
    return Settings(**overrides)


def main(argv: list[str] | None = None) -> int:
    """Entry point -- parse settings, resolve the endpoint, run the loop."""
    args = parse_args(argv)
    settings = load_settings(args)

    logging.basicConfig(
        level=getattr(logging, settings.effective_log_level.upper(), logging.WARNING),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    try:
        endpoint = resolve_endpoint(settings)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    logger.info("Starting Hambur: model=%s endpoint=%s", endpoint.model, endpoint.api_base)
    return ChatLoop(settings, endpoint).run()


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
