"""Provider selection with a single fallback hop, plus message classification.

:meth:`AIAdapter.generate` tries the selected provider once and, when that
fails and the selected provider is not itself the fallback, tries the
fallback once.  :meth:`AIAdapter.classify` asks the LLM for a strict JSON
classification and returns a tagged result; :meth:`AIAdapter.analyze_message`
turns anything other than a valid parse into a heuristic classification.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import heuristics
from context_manager import recent_summary
from models import Action, Analysis, Entities, Intent, Sentiment, Turn
from providers.base import (
    BaseProvider,
    ChatContext,
    Generation,
    GenerationOptions,
    ProviderError,
)
from timeutil import Clock

logger = logging.getLogger(__name__)

_CLASSIFY_TEMPERATURE = 0.1
_CLASSIFY_MAX_TOKENS = 300
_JSON_MAX_TOKENS = 500

_CLASSIFY_SYSTEM = (
    "You classify chat messages for a personal assistant. "
    "Respond with ONLY a JSON object, no markdown and no extra text."
)


class AllProvidersFailedError(ProviderError):
    """Both the selected provider and the fallback failed for one request."""

    def __init__(self, primary_error: ProviderError, fallback_error: ProviderError) -> None:
        super().__init__(
            "all",
            f"primary failed ({primary_error}); fallback failed ({fallback_error})",
        )
        self.primary_error = primary_error
        self.fallback_error = fallback_error


# ── classification results ───────────────────────────────────────────────────


@dataclass(frozen=True)
class Parsed:
    analysis: Analysis


@dataclass(frozen=True)
class Malformed:
    """The provider answered but the reply was not a valid classification."""

    raw: str
    reason: str


@dataclass(frozen=True)
class ProviderFailure:
    error: ProviderError


ClassifyResult = Parsed | Malformed | ProviderFailure


class AIAdapter:
    """Routes generation requests to a provider and falls back once on failure."""

    def __init__(
        self,
        providers: dict[str, BaseProvider],
        default: str,
        fallback: str | None,
        clock: Clock,
    ) -> None:
        """
        Args:
            providers: Provider instances keyed by name.
            default:   Provider used when a request does not name one.
            fallback:  Provider tried once after a failure, or ``None``.
            clock:     Source of the current time for classification prompts.
        """
        if default not in providers:
            raise ValueError(f"Default provider {default!r} is not configured.")
        if fallback is not None and fallback not in providers:
            raise ValueError(f"Fallback provider {fallback!r} is not configured.")
        self._providers = providers
        self._default = default
        self._fallback = fallback
        self._clock = clock

    @property
    def default_provider(self) -> str:
        return self._default

    @property
    def fallback_provider(self) -> str | None:
        return self._fallback

    async def generate(
        self,
        prompt: str,
        context: ChatContext | None = None,
        options: GenerationOptions | None = None,
    ) -> Generation:
        """Generate a reply, retrying once against the fallback provider.

        Raises:
            ValueError:               If ``options.provider`` names an unknown provider.
            ProviderError:            If the selected provider fails and no fallback applies.
            AllProvidersFailedError:  If the selected provider and the fallback both fail.
        """
        context = context or ChatContext()
        options = options or GenerationOptions()
        name = options.provider or self._default
        provider = self._providers.get(name)
        if provider is None:
            raise ValueError(f"Unknown provider: {name!r}")

        logger.info("Generating with %s (prompt length: %d chars)", name, len(prompt))
        try:
            result = await provider.generate(prompt, context, options)
        except ProviderError as exc:
            logger.error("%s failed: %s", name, exc)
            if self._fallback is None or name == self._fallback:
                raise
            logger.info("Falling back to %s", self._fallback)
            try:
                result = await self._providers[self._fallback].generate(prompt, context, options)
            except ProviderError as fallback_exc:
                logger.error("%s also failed: %s", self._fallback, fallback_exc)
                raise AllProvidersFailedError(exc, fallback_exc) from fallback_exc
        logger.debug("Generated %d chars with %s", len(result.content), result.model)
        return result

    # ── classification ───────────────────────────────────────────────────────

    async def classify(self, text: str, turns: list[Turn] | None = None) -> ClassifyResult:
        """Ask the LLM for a structured classification of *text*.

        Never raises for provider or parse failures; those come back as
        :class:`ProviderFailure` and :class:`Malformed` respectively.
        """
        prompt = self._classification_prompt(text, turns or [])
        options = GenerationOptions(
            temperature=_CLASSIFY_TEMPERATURE,
            max_tokens=_CLASSIFY_MAX_TOKENS,
            system=_CLASSIFY_SYSTEM,
        )
        try:
            reply = await self.generate(prompt, ChatContext(), options)
        except ProviderError as exc:
            return ProviderFailure(exc)

        data = extract_json_object(reply.content)
        if data is None:
            return Malformed(reply.content, "no JSON object found")
        try:
            return Parsed(_analysis_from_json(data))
        except ValueError as exc:
            return Malformed(reply.content, str(exc))

    async def analyze_message(self, text: str, turns: list[Turn] | None = None) -> Analysis:
        """Classify *text*, falling back to the keyword classifier on any failure."""
        result = await self.classify(text, turns)
        match result:
            case Parsed(analysis=analysis):
                logger.info("AI analysis: intent=%s action=%s", analysis.intent.value, analysis.action.value)
                return analysis
            case Malformed(reason=reason):
                logger.warning("Unusable AI analysis (%s); using heuristic classifier", reason)
            case ProviderFailure(error=error):
                logger.warning("AI analysis unavailable (%s); using heuristic classifier", error)
        return heuristics.fallback_analysis(text)

    async def generate_json(
        self,
        instruction: str,
        text: str,
        options: GenerationOptions | None = None,
    ) -> dict[str, Any] | None:
        """Run an extraction prompt and return the first JSON object in the reply.

        *instruction* is sent as the system text and *text* as the user
        message.  Returns ``None`` when every provider fails or the reply holds
        no parseable object.
        """
        base = options or GenerationOptions()
        options = GenerationOptions(
            provider=base.provider,
            temperature=base.temperature if base.temperature is not None else _CLASSIFY_TEMPERATURE,
            max_tokens=base.max_tokens or _JSON_MAX_TOKENS,
            system=instruction,
        )
        try:
            reply = await self.generate(text, ChatContext(), options)
        except ProviderError as exc:
            logger.warning("JSON extraction failed: %s", exc)
            return None
        data = extract_json_object(reply.content)
        if data is None:
            logger.warning("JSON extraction returned no object: %.200s", reply.content)
        return data

    def _classification_prompt(self, text: str, turns: list[Turn]) -> str:
        now = self._clock()
        summary = recent_summary(turns) or "(no previous messages)"
        return f"""Current time: {now.strftime("%Y-%m-%d %H:%M")} ({now.strftime("%A")})

Recent conversation:
{summary}

Analyze this user message:
Message: {json.dumps(text, ensure_ascii=False)}

Return JSON with this exact structure:
{{
  "intent": "reminder|habit_report|question|task|greeting|report_request|general_chat",
  "entities": {{"times": [], "dates": [], "habits": [], "tasks": []}},
  "sentiment": "positive|neutral|negative",
  "action": "create_reminder|update_reminder|track_habit|create_task|none"
}}

Rules:
- "remind me" or a new reminder request -> action "create_reminder"
- changing, moving, cancelling or finishing an existing reminder -> action "update_reminder"
- reports of exercise, gym, meditation or reading -> action "track_habit"
- "need to" / "have to" -> action "create_task"
- put time mentions in entities.times and date mentions in entities.dates"""


# ── JSON helpers ─────────────────────────────────────────────────────────────


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Return the first balanced ``{...}`` object in *text*, or ``None``.

    Markdown code fences are stripped first.  Braces inside JSON strings do
    not count towards the balance.
    """
    if not text:
        return None
    cleaned = text.replace("```json", "").replace("```JSON", "").replace("```", "")
    start = cleaned.find("{")
    while start != -1:
        end = _matching_brace(cleaned, start)
        if end is None:
            return None
        try:
            value = json.loads(cleaned[start : end + 1])
        except ValueError:
            value = None
        if isinstance(value, dict):
            return value
        start = cleaned.find("{", start + 1)
    return None


def _matching_brace(text: str, start: int) -> int | None:
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return None


def _analysis_from_json(data: dict[str, Any]) -> Analysis:
    """Validate a classification payload; raises ``ValueError`` on bad shape."""
    try:
        intent = Intent(data.get("intent"))
    except ValueError:
        raise ValueError(f"invalid intent: {data.get('intent')!r}")
    try:
        action = Action(data.get("action"))
    except ValueError:
        raise ValueError(f"invalid action: {data.get('action')!r}")
    try:
        sentiment = Sentiment(data.get("sentiment"))
    except ValueError:
        sentiment = Sentiment.NEUTRAL

    raw_entities = data.get("entities") or {}
    if not isinstance(raw_entities, dict):
        raise ValueError("entities must be an object")
    lists = {}
    for key in ("times", "dates", "habits", "tasks"):
        value = raw_entities.get(key) or []
        if not isinstance(value, list):
            raise ValueError(f"entities.{key} must be a list")
        lists[key] = [str(v) for v in value if isinstance(v, (str, int, float))]

    return Analysis(
        intent=intent,
        entities=Entities(**lists),
        sentiment=sentiment,
        action=action,
        source="ai",
    )
