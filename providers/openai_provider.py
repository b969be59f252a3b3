"""OpenAI provider wrapper.

Uses the official ``openai`` async client and sends a role-tagged message
list (system persona + user prompt).  Passing ``base_url`` points the client
at any OpenAI-compatible endpoint such as Groq.  Every SDK failure is wrapped
in :class:`ProviderError`; retrying is the adapter's job, not this class's.
"""

import json
import logging
from datetime import datetime

import httpx
from openai import APIError, APIStatusError, AsyncOpenAI

from providers.base import BaseProvider, ChatContext, Generation, GenerationOptions, ProviderError
from providers.tone import PERSONA, detect_mood, is_complex, select_personality
from timeutil import Clock

logger = logging.getLogger(__name__)

_TEMPERATURE_BY_MOOD = {"excited": 0.9, "anxious": 0.5, "down": 0.5, "frustrated": 0.6}
_DEFAULT_TEMPERATURE = 0.7


class OpenAIProvider(BaseProvider):
    """Async wrapper around the OpenAI Chat Completions API."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        clock: Clock | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialise with credentials and model selection.

        Args:
            api_key:  OpenAI (or compatible) API key.
            model:    Chat model identifier (e.g. ``"gpt-4o-mini"``).
            base_url: Optional OpenAI-compatible endpoint.
            clock:    Source of the current time for time-of-day tone.
            http_client: Optional transport override.
        """
        self._client = AsyncOpenAI(
            api_key=api_key, base_url=base_url, max_retries=0, http_client=http_client
        )
        self._model = model
        self._clock = clock or datetime.now

    @property
    def name(self) -> str:
        """Return ``"openai"``."""
        return "openai"

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
        """Call the Chat Completions API once.

        Raises:
            ProviderError: On API errors or a reply without content.
        """
        mood = detect_mood([t.user for t in context.recent_turns])
        if options.system is not None:
            system = options.system
        else:
            system = self._build_system(context, mood)

        temperature = options.temperature
        if temperature is None:
            temperature = _TEMPERATURE_BY_MOOD.get(mood, _DEFAULT_TEMPERATURE)
        max_tokens = options.max_tokens or _token_budget(prompt, mood)

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except APIStatusError as exc:
            if exc.status_code == 403:
                logger.error("OpenAI 403 permission denied: %s", exc)
            raise ProviderError(self.name, str(exc), exc.status_code) from exc
        except APIError as exc:
            raise ProviderError(self.name, str(exc)) from exc

        if not response.choices:
            raise ProviderError(self.name, "response contained no choices")
        content = response.choices[0].message.content
        if content is None:
            raise ProviderError(self.name, "response contained no content")

        usage = response.usage
        return Generation(
            content=content,
            model=getattr(response, "model", None) or self._model,
            usage={
                "prompt_tokens": getattr(usage, "prompt_tokens", None),
                "completion_tokens": getattr(usage, "completion_tokens", None),
                "total_tokens": getattr(usage, "total_tokens", None),
            },
        )

    def _build_system(self, context: ChatContext, mood: str) -> str:
        recent = [{"user": t.user, "assistant": t.assistant} for t in context.recent_turns]
        return (
            f"{PERSONA}\n\n"
            f"Context about the user: {json.dumps(context.user_info, ensure_ascii=False)}\n"
            f"Recent conversation: {json.dumps(recent, ensure_ascii=False)}\n"
            f"Recent vibe: {mood}\n"
            f"Personality mix: {select_personality(mood, self._clock().hour)}"
        )


def _token_budget(prompt: str, mood: str) -> int:
    """Pick a reply length from message complexity and mood; later rules win."""
    budget = 100
    if is_complex(prompt):
        budget = 200
    if mood in ("down", "anxious"):
        budget = 180
    if mood in ("excited", "happy"):
        budget = 120
    if mood == "tired":
        budget = 80
    return budget
