"""Mood detection and personality selection used to shape generated replies.

Only the user's side of the last few turns is inspected.  Emoji matches
weigh 3, keyword patterns 1-2; the highest-scoring mood wins and ties go to
the mood listed first in :data:`MOODS`.
"""

import re

MOODS = ("happy", "down", "excited", "tired", "frustrated", "anxious")

_EMOJI = {
    "happy": re.compile("😊|😄|😁|🎉|❤️|👍|✨|🔥|😍|🥳|🙌|💪"),
    "down": re.compile("😢|😭|😔|😞|💔|😩|😟|🥺|😓"),
    "excited": re.compile("🤩|😎|🚀|⚡|🎯|💯|🔥|🙌|✊"),
    "tired": re.compile("😴|🥱|😫|💤|😵|🫠|😮‍💨"),
    "frustrated": re.compile("😤|😠|😡|🤬|😒|🙄|😑"),
    "anxious": re.compile("😰|😨|😱|😬|🫨|😖"),
}

_PATTERNS: dict[str, list[tuple[re.Pattern, int]]] = {
    "happy": [
        (re.compile(r"\b(crushed|nailed|killed)\s+(it|that|my)\b"), 2),
        (re.compile(r"\b(finally|yes|yay|woohoo|awesome)\b"), 2),
        (re.compile(r"\b(feeling\s+good|doing\s+great|went\s+well)\b"), 2),
        (re.compile(r"\b(proud|accomplished|achieved|completed)\b"), 1),
    ],
    "excited": [
        (re.compile(r"\b(let's\s+go|let's\s+do\s+this|pumped|hyped|ready)\b"), 2),
        (re.compile(r"\b(can't\s+wait|so\s+excited|omg|wow)\b"), 2),
        (re.compile(r"!{2,}"), 1),
    ],
    "down": [
        (re.compile(r"\bfeel(ing)?\s+(bad|down|low|awful|terrible|miserable)\b"), 2),
        (re.compile(r"\b(failed|messed\s+up|screwed\s+up|disaster)\b"), 2),
        (re.compile(r"\b(depressed|hopeless|worthless|useless)\b"), 2),
        (re.compile(r"\b(why\s+bother|what's\s+the\s+point|give\s+up)\b"), 1),
    ],
    "tired": [
        (re.compile(r"\b(exhausted|drained|burnt\s+out|wiped\s+out)\b"), 2),
        (re.compile(r"\bcan'?t\s+(do\s+this|anymore|even)\b"), 2),
        (re.compile(r"\b(so\s+tired|dead\s+tired|need\s+sleep|need\s+(a\s+)?break)\b"), 2),
    ],
    "frustrated": [
        (re.compile(r"\b(annoying|irritating|frustrating|pissed\s+off)\b"), 2),
        (re.compile(r"\b(ugh|argh|ffs|wtf|seriously)\b"), 2),
        (re.compile(r"\b(stuck|blocked|not\s+working|broken)\b"), 1),
    ],
    "anxious": [
        (re.compile(r"\b(worried|anxious|nervous|scared|freaking\s+out)\b"), 2),
        (re.compile(r"\b(stressed|overwhelmed|panicking)\b"), 2),
        (re.compile(r"\b(what\s+if|don't\s+know\s+what|uncertain)\b"), 1),
    ],
}

_PERSONALITIES = {
    "happy": "Be playful and energetic.",
    "down": "Be supportive but keep it real - no toxic positivity.",
    "excited": "Match their hype! Use exclamation marks and energy.",
    "tired": "Be chill and understanding. Short responses.",
    "frustrated": "Be patient and helpful. Don't dismiss their frustration.",
    "anxious": "Be calm and reassuring. Keep it grounded.",
    "neutral": "Be balanced - friendly but not over the top.",
}

_COMPLEX = re.compile(r"\b(how|why|what|explain|tell me about|details)\b", re.IGNORECASE)


def detect_mood(messages: list[str]) -> str:
    """Return the dominant mood across the last three *messages*, or ``"neutral"``."""
    if not messages:
        return "neutral"
    text = " ".join(messages[-3:]).lower()
    scores = dict.fromkeys(MOODS, 0)
    for mood in MOODS:
        if _EMOJI[mood].search(text):
            scores[mood] += 3
        for pattern, weight in _PATTERNS[mood]:
            if pattern.search(text):
                scores[mood] += weight
    best = max(scores.values())
    if best == 0:
        return "neutral"
    return next(mood for mood in MOODS if scores[mood] == best)


def is_complex(prompt: str) -> bool:
    """True for questions and long messages that deserve a longer answer."""
    return bool(_COMPLEX.search(prompt)) or len(prompt) > 100


def time_of_day(hour: int) -> str:
    if 5 <= hour < 12:
        return "Morning energy ☀️"
    if 12 <= hour < 17:
        return "Midday flow 🌤️"
    if 17 <= hour < 21:
        return "Evening chill 🌆"
    if 21 <= hour < 24:
        return "Night vibes 🌙"
    return "Late night hustle 🌃"


def select_personality(mood: str, hour: int) -> str:
    return f"{_PERSONALITIES.get(mood, _PERSONALITIES['neutral'])} {time_of_day(hour)}"


PERSONA = (
    "You are a helpful AI personal assistant in Telegram with these traits:\n"
    "- Friendly, witty, and motivating\n"
    "- Remember the user's goals and habits\n"
    "- Provide practical advice and encouragement\n"
    "- Keep responses concise but warm\n"
    "- Adapt your tone to the user's mood\n"
    "- Help with productivity, habits, and personal growth\n"
    "- Ask questions only when the conversation is opening up"
)
