"""Text helpers for outgoing Telegram messages."""

import re
from datetime import datetime

from telegram.helpers import escape_markdown

from timeutil import from_db

TELEGRAM_LIMIT = 4096

_EMOJI_AFTER = {
    "workout": "💪",
    "exercise": "🏃",
    "gym": "🏋️",
    "meditation": "🧘",
    "reading": "📚",
    "water": "💧",
    "sleep": "😴",
    "coding": "💻",
    "reminder": "⏰",
    "tomorrow": "📅",
    "goal": "🎯",
    "progress": "📈",
    "streak": "🔥",
    "completed": "✅",
}

_STREAK_BADGES = ((100, "👑"), (30, "💎"), (14, "🔥"), (7, "🌳"), (3, "🌿"), (1, "🌱"))


def escape(text: str) -> str:
    """Escape user-supplied *text* for legacy Markdown."""
    return escape_markdown(text, version=1)


def format_datetime(value: str | datetime) -> str:
    """``2025-10-06 18:00:00`` → ``Mon, Oct 06 at 06:00 PM``."""
    moment = from_db(value) if isinstance(value, str) else value
    return moment.strftime("%a, %b %d at %I:%M %p")


def truncate(text: str, limit: int = TELEGRAM_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def decorate(text: str) -> str:
    """Append a contextual emoji after the first mention of each keyword."""
    for keyword, emoji in _EMOJI_AFTER.items():
        if emoji in text:
            continue
        text = re.sub(rf"\b({keyword})\b", rf"\1 {emoji}", text, count=1, flags=re.IGNORECASE)
    return text


def progress_bar(current: int, total: int, width: int = 10) -> str:
    ratio = min(current / total, 1.0) if total > 0 else 0.0
    filled = int(ratio * width)
    return f"{'█' * filled}{'░' * (width - filled)} {round(ratio * 100)}%"


def streak_badge(name: str, days: int) -> str:
    emoji = next((e for threshold, e in _STREAK_BADGES if days >= threshold), "⭐")
    return f"{emoji} {name}: {days} day streak!"
