"""Tests for the streaming reply relay."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai

from muzgpt.client.demo_responses import DEMO_RESPONSES, SIMULATION_SUFFIX
from muzgpt.client.relay import (
    INVALID_KEY_MESSAGE,
    StreamingRelay,
    history_for_tier,
    is_invalid_credential,
    pick_demo_response,
)
from muzgpt.models.chat import Message, Role
from muzgpt.models.mode import MODE_CONFIG, Mode, Tier

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _chunk(text):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])


def _fake_client(*items):
    """OpenAI stand-in whose stream yields ``items`` (exceptions are raised)."""

    async def stream():
        for item in items:
            if isinstance(item, Exception):
                raise item
            yield item

    client = MagicMock()
    client.chat.completions.create = AsyncMock(side_effect=lambda **kw: stream())
    return client


class Collector:
    def __init__(self):
        self.fragments = []

    async def __call__(self, fragment):
        self.fragments.append(fragment)

    @property
    def text(self):
        return "".join(self.fragments)


def _history(n):
    return [
        Message(role=Role.USER if i % 2 == 0 else Role.MODEL, text=f"m{i}") for i in range(n)
    ]


class TestHistory:
    def test_free_tier_keeps_last_four(self):
        trimmed = history_for_tier(_history(7), Tier.FREE)
        assert [m.text for m in trimmed] == ["m3", "m4", "m5", "m6"]

    def test_premium_keeps_everything(self):
        assert len(history_for_tier(_history(7), Tier.PREMIUM)) == 7

    def test_short_history(self):
        assert len(history_for_tier(_history(2), Tier.FREE)) == 2


class TestSimulated:
    def test_placeholder_key_simulates(self):
        assert StreamingRelay(api_key="").simulated
        assert StreamingRelay(api_key="PLACEHOLDER_API_KEY").simulated
        assert StreamingRelay(api_key="short").simulated

    def test_demo_choice_is_stable(self):
        assert pick_demo_response(Mode.GENERAL, "hello") == pick_demo_response(
            Mode.GENERAL, "hello"
        )
        assert pick_demo_response(Mode.GAME, "x") in DEMO_RESPONSES[Mode.GAME]

    async def test_streams_words_then_suffix(self):
        relay = StreamingRelay(warmup_delay=0, word_delay=0)
        out = Collector()
        await relay.stream(Mode.STUDENT, "teach me", [], out)

        expected = pick_demo_response(Mode.STUDENT, "teach me")
        assert out.fragments[-1] == SIMULATION_SUFFIX
        assert len(out.fragments) == len(expected.split(" ")) + 1
        assert out.text.startswith(expected.split(" ")[0])
        assert out.text.endswith(SIMULATION_SUFFIX)

    async def test_accumulated_text_only_grows(self):
        relay = StreamingRelay(warmup_delay=0, word_delay=0)
        seen = []
        text = ""

        async def on_chunk(fragment):
            nonlocal text
            new = text + fragment
            assert new.startswith(text)
            text = new
            seen.append(text)

        await relay.stream(Mode.GENERAL, "hi", [], on_chunk)
        assert len(seen) > 1
        assert all(len(a) < len(b) for a, b in zip(seen, seen[1:]))


class TestLive:
    async def test_streams_fragments_in_order(self):
        client = _fake_client(_chunk("Hel"), _chunk(None), _chunk("lo"), _chunk("!"))
        relay = StreamingRelay(client=client)
        assert not relay.simulated

        out = Collector()
        await relay.stream(Mode.GENERAL, "hi", [], out)
        assert out.fragments == ["Hel", "lo", "!"]

    async def test_request_shape(self):
        client = _fake_client(_chunk("ok"))
        relay = StreamingRelay(client=client, model="gpt-test", temperature=0.3)
        history = [Message(role=Role.USER, text="q1"), Message(role=Role.MODEL, text="a1")]

        await relay.stream(Mode.STARTUP, "q2", history, Collector())

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-test"
        assert kwargs["temperature"] == 0.3
        assert kwargs["stream"] is True
        assert kwargs["messages"] == [
            {"role": "system", "content": MODE_CONFIG[Mode.STARTUP].system_instruction},
            {"role": "user", "content": "q1"},
            {"role": "assistant", "content": "a1"},
            {"role": "user", "content": "q2"},
        ]

    async def test_empty_choices_skipped(self):
        client = _fake_client(SimpleNamespace(choices=[]), _chunk("x"))
        out = Collector()
        await StreamingRelay(client=client).stream(Mode.GENERAL, "hi", [], out)
        assert out.fragments == ["x"]

    async def test_invalid_key_message(self):
        error = openai.AuthenticationError(
            "Incorrect API key provided",
            response=httpx.Response(401, request=_REQUEST),
            body=None,
        )
        out = Collector()
        await StreamingRelay(client=_fake_client(error)).stream(Mode.GENERAL, "hi", [], out)
        assert out.fragments == [INVALID_KEY_MESSAGE]

    async def test_other_failure_becomes_fragment(self):
        error = openai.APIConnectionError(request=_REQUEST)
        out = Collector()
        await StreamingRelay(client=_fake_client(error)).stream(Mode.GENERAL, "hi", [], out)
        assert len(out.fragments) == 1
        assert out.fragments[0].startswith("\n\n[Neural Link Error:")

    async def test_failure_mid_stream_keeps_earlier_text(self):
        error = openai.APIConnectionError(request=_REQUEST)
        out = Collector()
        await StreamingRelay(client=_fake_client(_chunk("partial"), error)).stream(
            Mode.GENERAL, "hi", [], out
        )
        assert out.fragments[0] == "partial"
        assert "Neural Link Error" in out.fragments[1]

    async def test_dropped_connection_mid_stream(self):
        error = httpx.RemoteProtocolError("peer closed connection")
        out = Collector()
        await StreamingRelay(client=_fake_client(_chunk("partial"), error)).stream(
            Mode.GENERAL, "hi", [], out
        )
        assert out.fragments[0] == "partial"
        assert len(out.fragments) == 2
        assert "peer closed connection" in out.fragments[1]

    async def test_read_timeout_mid_stream(self):
        error = httpx.ReadTimeout("timed out")
        out = Collector()
        await StreamingRelay(client=_fake_client(_chunk("a"), error)).stream(
            Mode.GENERAL, "hi", [], out
        )
        assert out.fragments[-1].startswith("\n\n[Neural Link Error:")


class TestInvalidCredential:
    def test_marker_in_message(self):
        assert is_invalid_credential(ValueError("API_KEY_INVALID: key not valid"))

    def test_unrelated_error(self):
        assert not is_invalid_credential(ValueError("rate limited"))
