"""Anthropic provider wrapper.

Uses the official ``anthropic`` async client.  Unlike the OpenAI wrapper it
folds persona, user info, recent conversation and the current message into a
single user turn.  SDK failures surface as :class:`ProviderError`.
"""

import json
import logging
from datetime import datetime

import httpx
from anthropic import APIError, APIStatusError, AsyncAnthropic

from providers.base import BaseProvider, ChatContext, Generation, GenerationOptions, ProviderError
from providers.tone import PERSONA, detect_mood, is_complex, select_personality
from timeutil import Clock

logger = logging.getLogger(__name__)

_DEFAULT_MAX_TOKENS = 1000


class AnthropicProvider(BaseProvider):
    """Async wrapper around the Anthropic Messages API."""

    def __init__(
        self,
        api_key: str,
        model: str,
        clock: Clock | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialise with credentials and model selection.

        Args:
            api_key: Anthropic API key.
            model:   Model identifier (e.g. ``"claude-3-5-haiku-latest"``).
            clock:   Source of the current time for time-of-day tone.
            http_client: Optional transport override.
        """
        self._client = AsyncAnthropic(api_key=api_key, max_retries=0, http_client=http_client)
        self._model = model
        self._clock = clock or datetime.now

    @property
    def name(self) -> str:
        """Return ``"anthropic"``."""
        return "anthropic"

    @property
    def model(self) -> str:
        """Return the configured model identifier."""
        return self._model

    async def generate(
        self,
        prompt: str,
        context: ChatContext,
        options: GenerationOptions,
    ) -> Generation:
        """Call the Anthropic Messages API once.

        Raises:
            ProviderError: On API errors or a reply without a text block.
        """
        mood = detect_mood([t.user for t in context.recent_turns])
        temperature = options.temperature
        if temperature is None:
            temperature = _temperature(prompt, mood)

        request = {
            "model": self._model,
            "max_tokens": options.max_tokens or _DEFAULT_MAX_TOKENS,
            "temperature": temperature,
        }
        if options.system is not None:
            request["system"] = options.system
            request["messages"] = [{"role": "user", "content": prompt}]
        else:
            request["messages"] = [
                {"role": "user", "content": self._build_prompt(prompt, context, mood)}
            ]

        try:
            response = await self._client.messages.create(**request)
        except APIStatusError as exc:
            if exc.status_code == 403:
                logger.error("Anthropic 403 permission denied: %s", exc)
            raise ProviderError(self.name, str(exc), exc.status_code) from exc
        except APIError as exc:
            raise ProviderError(self.name, str(exc)) from exc

        if not response.content:
            raise ProviderError(self.name, "response contained no content blocks")
        text = getattr(response.content[0], "text", None)
        if not isinstance(text, str):
            raise ProviderError(self.name, "first content block is not text")

        usage = response.usage
        return Generation(
            content=text,
            model=self._model,
            usage={
                "input_tokens": getattr(usage, "input_tokens", None),
                "output_tokens": getattr(usage, "output_tokens", None),
            },
        )

    def _build_prompt(self, prompt: str, context: ChatContext, mood: str) -> str:
        recent = [{"user": t.user, "assistant": t.assistant} for t in context.recent_turns]
        return (
            f"{PERSONA}\n\n"
            f"Tone: {select_personality(mood, self._clock().hour)}\n"
            f"Context about the user: {json.dumps(context.user_info, ensure_ascii=False)}\n"
            f"Recent conversation: {json.dumps(recent, ensure_ascii=False)}\n"
            f"Current user message: {prompt}\n\n"
            "Reply now in the style above."
        )


def _temperature(prompt: str, mood: str) -> float:
    if mood in ("down", "anxious"):
        value = 0.5
    elif mood in ("excited", "happy"):
        value = 0.85
    else:
        value = 0.7
    if is_complex(prompt):
        value -= 0.1
    return round(value, 2)
