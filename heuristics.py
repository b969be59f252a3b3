"""Keyword classifier used when the LLM classification is unavailable.

Everything here is a pure function of the message text.
"""

import re

from models import Action, Analysis, Entities, Intent, Sentiment

_MODIFY_REMINDER = re.compile(
    r"\b(reschedule|postpone|move|change|update|rename|cancel|delete|remove)\b.*\breminder\b"
    r"|\breminder\b.*\b(to|for)\b.*\b(instead|later)\b",
    re.IGNORECASE,
)
_REMINDER = re.compile(r"\bremind\s+me\b|\breminder\b", re.IGNORECASE)
_HABIT = re.compile(r"\b(gym|workout|exercise[ds]?|meditat\w*|read|reading)\b", re.IGNORECASE)
_TASK = re.compile(r"\b(need\s+to|have\s+to|must)\b", re.IGNORECASE)
_GREETING = re.compile(r"^\s*(hi|hello|hey|good\s+morning|good\s+afternoon|good\s+evening)\b", re.IGNORECASE)
_REPORT = re.compile(r"\b(report|summary|progress)\b", re.IGNORECASE)

_TIME_PATTERNS = (
    re.compile(r"\b\d{1,2}:\d{2}\s*(?:am|pm)?\b", re.IGNORECASE),
    re.compile(r"\b\d{1,2}\s*(?:am|pm)\b", re.IGNORECASE),
    re.compile(r"\b(?:morning|afternoon|evening|night)\b", re.IGNORECASE),
)
_DATE_PATTERNS = (
    re.compile(r"\b(?:tomorrow|today|yesterday)\b", re.IGNORECASE),
    re.compile(r"\b(?:monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b", re.IGNORECASE),
    re.compile(r"\bnext\s+(?:week|month|year)\b", re.IGNORECASE),
)

HABIT_KEYWORDS = {
    "exercise": ("gym", "workout", "exercise", "fitness", "run", "jog"),
    "meditation": ("meditate", "meditation", "mindfulness"),
    "reading": ("read", "reading", "book"),
    "water": ("water", "hydrate"),
    "sleep": ("sleep", "slept"),
    "coding": ("code", "coding", "programming"),
    "writing": ("write", "writing", "journal"),
}

_TASK_PHRASE = re.compile(r"\b(?:need\s+to|have\s+to|must|todo:?|to-do:?)\s+(.+?)(?:[.!?]|$)", re.IGNORECASE)

_POSITIVE = ("good", "great", "awesome", "happy", "excited", "love", "perfect")
_NEGATIVE = ("bad", "terrible", "sad", "angry", "hate", "awful", "stressed")


def classify_intent(text: str) -> tuple[Intent, Action]:
    """Map *text* to an intent and action; the first matching rule wins."""
    if _MODIFY_REMINDER.search(text):
        return Intent.REMINDER, Action.UPDATE_REMINDER
    if _REMINDER.search(text):
        return Intent.REMINDER, Action.CREATE_REMINDER
    if _HABIT.search(text):
        return Intent.HABIT_REPORT, Action.TRACK_HABIT
    if _TASK.search(text):
        return Intent.TASK, Action.CREATE_TASK
    if "?" in text:
        return Intent.QUESTION, Action.NONE
    if _GREETING.search(text):
        return Intent.GREETING, Action.NONE
    if _REPORT.search(text):
        return Intent.REPORT_REQUEST, Action.NONE
    return Intent.GENERAL_CHAT, Action.NONE


def extract_times(text: str) -> list[str]:
    return [m.group(0) for p in _TIME_PATTERNS for m in p.finditer(text)]


def extract_dates(text: str) -> list[str]:
    return [m.group(0) for p in _DATE_PATTERNS for m in p.finditer(text)]


def extract_habits(text: str) -> list[str]:
    """Return habit names whose keywords appear as whole words in *text*."""
    words = set(re.findall(r"[a-z]+", text.lower()))
    return [name for name, keywords in HABIT_KEYWORDS.items() if words.intersection(keywords)]


def extract_tasks(text: str) -> list[str]:
    return [m.group(1).strip() for m in _TASK_PHRASE.finditer(text) if m.group(1).strip()]


def detect_sentiment(text: str) -> Sentiment:
    """Positive keyword hits minus negative ones; a tie is neutral."""
    words = set(re.findall(r"[a-z]+", text.lower()))
    score = len(words.intersection(_POSITIVE)) - len(words.intersection(_NEGATIVE))
    if score > 0:
        return Sentiment.POSITIVE
    if score < 0:
        return Sentiment.NEGATIVE
    return Sentiment.NEUTRAL


def fallback_analysis(text: str) -> Analysis:
    intent, action = classify_intent(text)
    return Analysis(
        intent=intent,
        entities=Entities(
            times=extract_times(text),
            dates=extract_dates(text),
            habits=extract_habits(text),
            tasks=extract_tasks(text),
        ),
        sentiment=detect_sentiment(text),
        action=action,
        source="heuristic",
    )
