"""Streaming chat replies from OpenAI, with a scripted simulation fallback."""

import asyncio
import zlib
from collections.abc import Awaitable, Callable

import httpx
import openai
import structlog
from openai import AsyncOpenAI

from muzgpt.client.demo_responses import DEMO_RESPONSES, SIMULATION_SUFFIX
from muzgpt.config import has_credential
from muzgpt.models.chat import Message, Role
from muzgpt.models.mode import Mode, Tier, mode_config

logger = structlog.get_logger()

FREE_HISTORY_MESSAGES = 4
INVALID_KEY_MESSAGE = (
    "\n\n[System ERROR: The API key provided is INVALID. "
    "Please update .env with a fresh key.]"
)
_INVALID_KEY_MARKERS = ("api_key_invalid", "not valid", "invalid api key", "incorrect api key")

# Type alias for fragment consumers
ChunkHandler = Callable[[str], Awaitable[None]]


def history_for_tier(history: list[Message], tier: Tier) -> list[Message]:
    """Context window sent with a prompt: last 4 messages on free, all on premium."""
    if tier == Tier.PREMIUM:
        return list(history)
    return list(history[-FREE_HISTORY_MESSAGES:])


def is_invalid_credential(error: Exception) -> bool:
    if isinstance(error, openai.AuthenticationError):
        return True
    description = str(error).lower()
    return any(marker in description for marker in _INVALID_KEY_MARKERS)


def pick_demo_response(mode: Mode, prompt: str) -> str:
    """Stable choice of canned reply for a mode and prompt."""
    responses = DEMO_RESPONSES[Mode(mode)]
    return responses[zlib.crc32(prompt.encode("utf-8")) % len(responses)]


class StreamingRelay:
    """Delivers a reply as an ordered sequence of text fragments.

    Generation failures never raise: a single diagnostic fragment is
    delivered instead and the call returns normally.

    Args:
        api_key: OpenAI API key. Empty or placeholder keys select simulation.
        model: Chat completion model.
        temperature: Sampling temperature.
        timeout: Request timeout in seconds (None waits indefinitely).
        warmup_delay: Pause before a simulated reply starts.
        word_delay: Pause between simulated words.
        client: Preconfigured OpenAI client (tests inject a fake).
    """

    def __init__(
        self,
        api_key: str = "",
        model: str = "gpt-4o-mini",
        temperature: float = 0.7,
        timeout: float | None = 60.0,
        warmup_delay: float = 0.8,
        word_delay: float = 0.04,
        client: AsyncOpenAI | None = None,
    ):
        self.model = model
        self.temperature = temperature
        self.warmup_delay = warmup_delay
        self.word_delay = word_delay
        self.simulated = client is None and not has_credential(api_key, min_length=10)
        self._client = client
        if self._client is None and not self.simulated:
            self._client = AsyncOpenAI(api_key=api_key.strip(), timeout=timeout)

    async def stream(
        self,
        mode: Mode,
        prompt: str,
        history: list[Message],
        on_chunk: ChunkHandler,
    ) -> None:
        """Generate a reply to ``prompt`` and feed each fragment to ``on_chunk``.

        Args:
            mode: Persona whose system instruction frames the reply.
            prompt: The user's new message.
            history: Prior messages, already trimmed for the user's tier.
            on_chunk: Async consumer called once per fragment, in order.
        """
        if self.simulated:
            await self._stream_simulated(mode, prompt, on_chunk)
        else:
            await self._stream_live(mode, prompt, history, on_chunk)

    async def _stream_simulated(self, mode: Mode, prompt: str, on_chunk: ChunkHandler) -> None:
        await asyncio.sleep(self.warmup_delay)
        for word in pick_demo_response(mode, prompt).split(" "):
            await on_chunk(word + " ")
            await asyncio.sleep(self.word_delay)
        await on_chunk(SIMULATION_SUFFIX)

    async def _stream_live(
        self,
        mode: Mode,
        prompt: str,
        history: list[Message],
        on_chunk: ChunkHandler,
    ) -> None:
        messages = [{"role": "system", "content": mode_config(mode).system_instruction}]
        messages.extend(
            {"role": "user" if m.role == Role.USER else "assistant", "content": m.text}
            for m in history
        )
        messages.append({"role": "user", "content": prompt})

        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                stream=True,
            )
            async for chunk in response:
                if not chunk.choices:
                    continue
                text = chunk.choices[0].delta.content
                if text:
                    await on_chunk(text)
        except (openai.OpenAIError, httpx.HTTPError) as e:
            logger.exception("generation_failed", mode=Mode(mode).value, model=self.model)
            if is_invalid_credential(e):
                await on_chunk(INVALID_KEY_MESSAGE)
            else:
                await on_chunk(f"\n\n[Neural Link Error: {e}]")
