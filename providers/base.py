"""Abstract base class and shared types for LLM provider wrappers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from models import Analysis, Turn


class ProviderError(RuntimeError):
    """A single provider call failed (network, non-2xx or malformed payload)."""

    def __init__(self, provider: str, message: str, status_code: int | None = None) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


@dataclass(frozen=True)
class Generation:
    """Normalised reply from any provider."""

    content: str
    model: str
    usage: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GenerationOptions:
    """Per-request overrides.

    ``system`` replaces the provider's persona prompt with a verbatim
    instruction; used for JSON-only extraction calls.
    """

    provider: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    system: str | None = None


@dataclass(frozen=True)
class ChatContext:
    """What a provider may know about the conversation when shaping a reply."""

    user_info: dict[str, Any] = field(default_factory=dict)
    recent_turns: list[Turn] = field(default_factory=list)
    analysis: Analysis | None = None


class BaseProvider(ABC):
    """Common interface that all LLM provider wrappers must implement."""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        context: ChatContext,
        options: GenerationOptions,
    ) -> Generation:
        """Generate a reply for *prompt*.

        Args:
            prompt:  The current user message (or extraction input).
            context: Conversation context used to build the persona prompt.
            options: Temperature / budget / system-prompt overrides.

        Returns:
            The normalised :class:`Generation`.

        Raises:
            ProviderError: On any failure; providers never retry internally.
        """
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider identifier, e.g. ``"openai"``."""
        ...

    @property
    @abstractmethod
    def model(self) -> str:
        """Model identifier in use, e.g. ``"gpt-4o-mini"``."""
        ...
