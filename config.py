"""Configuration loading and validation for the assistant bot.

All settings are read from environment variables.  Call :func:`load_config`
once at startup; it raises ``ValueError`` with a descriptive message on any
misconfiguration so the process exits immediately rather than failing later.
The resulting :class:`Config` is passed explicitly to every component.
"""

import logging
import os
from dataclasses import dataclass
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

LLMProvider = Literal["openai", "anthropic"]

_PROVIDERS = ("openai", "anthropic")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Config:
    """Immutable application configuration."""

    telegram_bot_token: str
    llm_provider: LLMProvider
    fallback_provider: LLMProvider | None   # None → no fallback hop
    openai_api_key: str | None
    openai_model: str
    openai_base_url: str | None             # OpenAI-compatible endpoint override
    anthropic_api_key: str | None
    anthropic_model: str
    database_path: str
    context_messages: int                   # turns fed to the LLM as context
    conversation_retention: int             # turns kept per user
    confidence_threshold: int               # 0-100 gate for AI-extracted actions
    timezone: str                           # IANA name of the reference zone
    webhook_secret: str | None
    cron_secret: str | None
    host: str
    port: int

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def api_key_for(self, provider: str) -> str | None:
        """Return the configured API key for *provider*."""
        return getattr(self, f"{provider}_api_key")


def load_config() -> Config:
    """Load and validate configuration from environment variables.

    Raises:
        ValueError: If any required variable is missing or invalid.
    """
    token = _require("TELEGRAM_BOT_TOKEN")

    raw_provider = os.getenv("LLM_PROVIDER", "openai").strip().lower()
    if raw_provider not in _PROVIDERS:
        raise ValueError(
            f"LLM_PROVIDER must be 'openai' or 'anthropic', got: {raw_provider!r}. "
            "Set LLM_PROVIDER=openai or LLM_PROVIDER=anthropic."
        )
    provider: LLMProvider = raw_provider  # type: ignore[assignment]

    other = "anthropic" if provider == "openai" else "openai"
    raw_fallback = os.getenv("LLM_FALLBACK_PROVIDER", other).strip().lower()
    if raw_fallback not in (*_PROVIDERS, "none"):
        raise ValueError(
            "LLM_FALLBACK_PROVIDER must be 'openai', 'anthropic' or 'none', "
            f"got: {raw_fallback!r}."
        )

    openai_key = os.getenv("OPENAI_API_KEY") or None
    anthropic_key = os.getenv("ANTHROPIC_API_KEY") or None
    keys = {"openai": openai_key, "anthropic": anthropic_key}

    if not keys[provider]:
        raise ValueError(
            f"{provider.upper()}_API_KEY must be set when LLM_PROVIDER={provider}."
        )

    fallback: LLMProvider | None = None
    if raw_fallback != "none" and raw_fallback != provider:
        if keys[raw_fallback]:
            fallback = raw_fallback  # type: ignore[assignment]
        else:
            logger.warning(
                "%s_API_KEY is not set; running without a fallback provider.",
                raw_fallback.upper(),
            )

    timezone = os.getenv("TIMEZONE", "UTC").strip() or "UTC"
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"TIMEZONE must be a valid IANA zone name, got: {timezone!r}.")

    return Config(
        telegram_bot_token=token,
        llm_provider=provider,
        fallback_provider=fallback,
        openai_api_key=openai_key,
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        openai_base_url=os.getenv("OPENAI_BASE_URL", "").strip() or None,
        anthropic_api_key=anthropic_key,
        anthropic_model=os.getenv("ANTHROPIC_MODEL", "claude-3-5-haiku-latest"),
        database_path=os.getenv("DATABASE_PATH", "assistant.db"),
        context_messages=_require_int("CONTEXT_MESSAGES", default="20", minimum=1),
        conversation_retention=_require_int("CONVERSATION_RETENTION", default="50", minimum=1),
        confidence_threshold=_require_int(
            "CONFIDENCE_THRESHOLD", default="60", minimum=0, maximum=100
        ),
        timezone=timezone,
        webhook_secret=os.getenv("WEBHOOK_SECRET", "").strip() or None,
        cron_secret=os.getenv("CRON_SECRET", "").strip() or None,
        host=os.getenv("HOST", "0.0.0.0"),
        port=_require_int("PORT", default="8080", minimum=1, maximum=65535),
    )


def _require_int(
    name: str, *, default: str, minimum: int = 1, maximum: int | None = None
) -> int:
    """Return env var *name* as an ``int``, or raise ``ValueError``.

    Args:
        name:    Environment variable name.
        default: Default string value if the variable is unset.
        minimum: Minimum acceptable value (inclusive).
        maximum: Optional maximum acceptable value (inclusive).
    """
    raw = os.getenv(name, default)
    try:
        val = int(raw)
        if val < minimum or (maximum is not None and val > maximum):
            raise ValueError
    except ValueError:
        bounds = f">= {minimum}" if maximum is None else f"between {minimum} and {maximum}"
        raise ValueError(f"{name} must be {bounds}, got: {raw!r}.")
    return val


def _require(name: str) -> str:
    """Return the value of *name* or raise ``ValueError`` if unset/empty."""
    val = os.getenv(name, "").strip()
    if not val:
        raise ValueError(f"Required environment variable {name!r} is not set.")
    return val
