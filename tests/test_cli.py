"""Tests for the interactive loop, the terminal sink and argument handling."""

import io

import pytest

from hambur.api.client import TransportError
from hambur.cli import ChatLoop, TerminalSink, load_settings, main, parse_args
from hambur.session.engine import SessionEngine
from tests.conftest import TEST_ENDPOINT, RecordingSink, ScriptedClient, make_settings, sse_body


class _EngineFactory:
    """Builds engines on ScriptedClients that share one script queue."""

    def __init__(self, *scripts) -> None:
        self.scripts = list(scripts)
        self.sink = RecordingSink()
        self.clients: list[ScriptedClient] = []

    def __call__(self, endpoint, conversation):
        client = ScriptedClient(endpoint=endpoint)
        client._scripts = self.scripts
        self.clients.append(client)
        return SessionEngine(client, self.sink, conversation)


def _loop(lines, *scripts, settings=None):
    feed = iter(lines)

    def fake_input(prompt: str) -> str:
        try:
            return next(feed)
        except StopIteration:
            raise EOFError from None

    factory = _EngineFactory(*scripts)
    out = io.StringIO()
    loop = ChatLoop(
        settings or make_settings(),
        TEST_ENDPOINT,
        engine_factory=factory,
        input_fn=fake_input,
        out=out,
    )
    return loop, factory, out


# ---------------------------------------------------------------------------
# ChatLoop
# ---------------------------------------------------------------------------


class TestChatLoop:
    def test_exit_command_stops_loop(self):
        loop, factory, out = _loop(["exit", "never read"])
        assert loop.run() == 0
        assert factory.clients[0].requests == []
        assert factory.clients[0].closed
        assert "Welcome to Hambur (test-model)" in out.getvalue()

    def test_eof_stops_loop(self):
        loop, factory, _ = _loop([])
        assert loop.run() == 0
        assert factory.clients[0].closed

    def test_turns_accumulate_history(self):
        loop, factory, out = _loop(["hi", "", "  ", "more"], [sse_body("Hello!")], [sse_body("Sure.")])
        loop.run()

        assert factory.sink.fragments == ["Hello!", "Sure."]
        assert [m["content"] for m in factory.clients[0].requests[1]] == ["hi", "Hello!", "more"]
        assert out.getvalue().count("AI: ") == 2

    def test_turn_error_reported_and_loop_continues(self):
        loop, factory, out = _loop(
            ["hi", "again"],
            [TransportError("API request failed (503): Service Unavailable", status_code=503)],
            [sse_body("ok")],
        )
        loop.run()

        assert "[transport_failure] API request failed (503)" in out.getvalue()
        assert len(loop.engine.conversation) == 2
        assert factory.sink.fragments == ["ok"]

    def test_clear_forgets_history(self):
        loop, factory, out = _loop(["hi", "CLEAR", "fresh"], [sse_body("a")], [sse_body("b")])
        loop.run()

        assert "[conversation cleared]" in out.getvalue()
        assert factory.clients[0].requests[1] == [{"role": "user", "content": "fresh"}]

    def test_models_lists_registry_and_marks_current(self):
        settings = make_settings(OPENROUTER_API_KEY="sk-or")
        loop, _, out = _loop(["/model gemini-pro", "/models"], settings=settings)
        loop.run()

        listing = out.getvalue()
        assert "deepseek-r1" in listing
        assert "* 5. gemini-pro (openrouter: google/gemini-2.0-pro-exp-02-05)" in listing

    def test_model_switch_keeps_conversation(self):
        settings = make_settings(OPENROUTER_API_KEY="sk-or")
        loop, factory, out = _loop(
            ["hi", "/model gemini-pro", "still there?"],
            [sse_body("Hello!")],
            [sse_body("Yes.")],
            settings=settings,
        )
        loop.run()

        old, new = factory.clients
        assert old.closed
        assert new.endpoint.model == "google/gemini-2.0-pro-exp-02-05"
        assert new.endpoint.api_key == "sk-or"
        assert [m["content"] for m in new.requests[0]] == ["hi", "Hello!", "still there?"]
        assert "Switched to model: gemini-pro" in out.getvalue()

    def test_ambiguous_model_prompts_for_choice(self):
        settings = make_settings(OPENROUTER_API_KEY="sk-or")
        loop, factory, out = _loop(["/model gemini-flash", "2"], settings=settings)
        loop.run()

        assert "Several models match:" in out.getvalue()
        assert factory.clients[-1].endpoint.model == "google/gemini-2.0-flash-lite-001"

    def test_invalid_choice_cancels_switch(self):
        settings = make_settings(OPENROUTER_API_KEY="sk-or")
        loop, factory, out = _loop(["/model gemini-flash", "9"], settings=settings)
        loop.run()

        assert "Model switch cancelled" in out.getvalue()
        assert len(factory.clients) == 1

    def test_switch_without_key_keeps_current_engine(self):
        loop, factory, out = _loop(["/model deepseek-r1"])
        loop.run()

        assert "Cannot switch to deepseek-r1: OPENAI_API_KEY is not set" in out.getvalue()
        assert len(factory.clients) == 1

    def test_unknown_model_and_bare_command(self):
        loop, _, out = _loop(["/model nonesuch", "/model"])
        loop.run()

        assert "No model matches 'nonesuch'" in out.getvalue()
        assert "Current model: test-model" in out.getvalue()


# ---------------------------------------------------------------------------
# TerminalSink
# ---------------------------------------------------------------------------


class TestTerminalSink:
    def test_fragments_written_verbatim(self):
        stream = io.StringIO()
        sink = TerminalSink(stream)
        sink.write("Hel")
        sink.write("lo!")
        sink.end()
        assert stream.getvalue() == "Hello!\n"

    def test_reasoning_separated_from_reply(self):
        stream = io.StringIO()
        sink = TerminalSink(stream)
        sink.write_reasoning("hmm")
        sink.write("42")
        sink.end()
        assert stream.getvalue() == "hmm\n\n42\n"

    def test_reasoning_hidden(self):
        stream = io.StringIO()
        sink = TerminalSink(stream, show_reasoning=False)
        sink.write_reasoning("hmm")
        sink.write("42")
        sink.end()
        assert stream.getvalue() == "42\n"

    def test_end_without_output_writes_nothing(self):
        stream = io.StringIO()
        TerminalSink(stream).end()
        assert stream.getvalue() == ""


# ---------------------------------------------------------------------------
# Arguments and settings
# ---------------------------------------------------------------------------


class TestArguments:
    def test_defaults(self):
        args = parse_args([])
        assert args.model is None
        assert args.system is None
        assert args.timeout is None
        assert args.debug is False

    def test_short_model_name_resolved(self):
        settings = load_settings(parse_args(["--model", "deepseek-r1"]))
        assert settings.model == "deepseek-r1-250120"

    def test_exact_short_name_beats_substring(self):
        settings = load_settings(parse_args(["--model", "gemini-flash"]))
        assert settings.model == "google/gemini-2.0-flash-001"

    def test_unknown_model_passed_through(self):
        settings = load_settings(parse_args(["--model", "my-local-model"]))
        assert settings.model == "my-local-model"

    def test_overrides_applied(self):
        args = parse_args(["--system", "Be brief.", "--timeout", "30", "--debug"])
        settings = load_settings(args)
        assert settings.system_prompt == "Be brief."
        assert settings.turn_timeout == 30.0
        assert settings.effective_log_level == "debug"

    def test_main_missing_key_exits_nonzero(self, monkeypatch, capsys, tmp_path):
        monkeypatch.chdir(tmp_path)
        assert main(["--model", "gemini-flash"]) == 1
        assert "OPENROUTER_API_KEY is not set" in capsys.readouterr().err

    def test_negative_timeout_rejected(self):
        with pytest.raises(ValueError):
            load_settings(parse_args(["--timeout", "-1"]))
