"""Passive health logging: meals, mood, fitness, water and sleep.

Detection is keyword based and runs on every text message.  Each detected
item becomes a row in ``meals``, ``mood_entries`` or ``health_logs``; these
rows only feed the reports.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from storage import Database
from timeutil import Clock, to_db

logger = logging.getLogger(__name__)


def _words(*words: str) -> re.Pattern:
    return re.compile(r"\b(" + "|".join(words) + r")\b", re.IGNORECASE)


MEAL_PATTERNS = {
    "breakfast": _words("breakfast", r"morning\s+meal"),
    "lunch": _words("lunch", r"noon\s+meal"),
    "dinner": _words("dinner", r"evening\s+meal", "supper"),
    "snacks": _words("snacks?", "treat", "munch(ed)?", "nibbled?"),
}

MOOD_PATTERNS = {
    "positive": _words("happy", "great", "excellent", "wonderful", "fantastic", "amazing", "awesome"),
    "negative": _words("sad", "upset", "angry", "frustrated", "disappointed", "terrible"),
    "neutral": _words("okay", "fine", "alright", "meh", "normal"),
    "anxious": _words("anxious", "worried", "stressed", "nervous", "overwhelmed"),
    "content": _words("calm", "peaceful", "relaxed", "content", "satisfied"),
}

MOOD_LEVELS = {"positive": 8, "content": 7, "neutral": 5, "anxious": 3, "negative": 2}

_STRONG_MOOD = _words("excellent", "amazing", "awesome", "wonderful", "fantastic", "terrible", "disappointed")

_FITNESS = _words(
    "workout", "exercise", "jogging", "running", "gym", "cardio",
    r"strength\s+training", "yoga", "skipping",
)
_ACTIVITIES = ("running", "jogging", "cycling", "swimming", "yoga", "pilates", "weights", "cardio", "skipping")

_WATER = re.compile(
    r"\bdrank\s+(some\s+)?water\b|\b(glass|bottle)\s+of\s+water\b|\b(stayed\s+)?hydrated\b",
    re.IGNORECASE,
)
_WATER_AMOUNT = re.compile(r"(\d+)\s*(glass(?:es)?|bottles?|cups?|liters?|ml|oz)\b", re.IGNORECASE)

_SLEEP = _words("slept", "bedtime", r"woke\s+up", r"hours\s+of\s+sleep", r"well\s+rested", "nap(ped)?")
_SLEEP_HOURS = re.compile(r"(\d+(?:\.\d+)?)\s*hours?\s*(?:of\s*)?sleep|slept\s+(?:for\s+)?(\d+(?:\.\d+)?)\s*hours?", re.IGNORECASE)
_SLEEP_QUALITY = {"well rested": "good", "refreshed": "good", "tired": "poor", "exhausted": "poor"}

_FOOD = re.compile(
    r"\b(pizza|pasta|salad|soup|sandwich|chicken|fish|beef|rice|bread|fruit|vegetable|cake|cookie|ice cream|eggs?|oatmeal|toast)\w*",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class Meal:
    type: str
    description: str


@dataclass(frozen=True)
class Mood:
    type: str
    level: int
    notes: str


@dataclass
class HealthDetections:
    meals: list[Meal] = field(default_factory=list)
    mood: Mood | None = None
    fitness: dict[str, Any] | None = None
    water: dict[str, Any] | None = None
    sleep: dict[str, Any] | None = None

    def __bool__(self) -> bool:
        return bool(self.meals or self.mood or self.fitness or self.water or self.sleep)


# ── detection ────────────────────────────────────────────────────────────────


def detect_meals(text: str) -> list[Meal]:
    return [
        Meal(meal_type, _meal_description(text, meal_type))
        for meal_type, pattern in MEAL_PATTERNS.items()
        if pattern.search(text)
    ]


def _meal_description(text: str, meal_type: str) -> str:
    keyword = "snack" if meal_type == "snacks" else meal_type
    match = re.search(rf"{keyword}s?[\s:,]+(?:was\s+|of\s+)?(.{{3,}}?)(?:[.!]|$)", text, re.IGNORECASE)
    if match:
        return match.group(1).strip()
    foods = _FOOD.findall(text)
    if foods:
        return ", ".join(foods[:3])
    return text[:100]


def detect_mood(text: str) -> Mood | None:
    """Best-scoring mood type; earlier table entries win ties."""
    best: Mood | None = None
    best_score = 0.0
    for mood_type, pattern in MOOD_PATTERNS.items():
        match = pattern.search(text)
        if not match:
            continue
        score = 0.5
        if match.start() < 50:
            score += 0.2
        if _STRONG_MOOD.fullmatch(match.group(0)):
            score += 0.3
        if score > best_score:
            best_score = score
            best = Mood(mood_type, MOOD_LEVELS[mood_type], text[:200])
    return best


def detect_fitness(text: str) -> dict[str, Any] | None:
    if not _FITNESS.search(text):
        return None
    lowered = text.lower()
    activity = next((a for a in _ACTIVITIES if a in lowered), None)
    if activity is None:
        activity = "workout" if re.search(r"workout|exercise|gym", lowered) else "exercise"
    return {"activity": activity, "notes": text[:150]}


def detect_water(text: str) -> dict[str, Any] | None:
    if not _WATER.search(text):
        return None
    match = _WATER_AMOUNT.search(text)
    if match:
        return {"amount": int(match.group(1)), "unit": match.group(2).lower(), "notes": text[:150]}
    return {"amount": 1, "unit": "glass", "notes": text[:150]}


def detect_sleep(text: str) -> dict[str, Any] | None:
    if not _SLEEP.search(text) and not _SLEEP_HOURS.search(text):
        return None
    match = _SLEEP_HOURS.search(text)
    if match:
        hours = float(match.group(1) or match.group(2))
        quality = "good" if hours >= 7 else "fair" if hours >= 5 else "poor"
        return {"hours": hours, "quality": quality, "notes": text[:150]}
    lowered = text.lower()
    quality = next((q for phrase, q in _SLEEP_QUALITY.items() if phrase in lowered), "unknown")
    return {"hours": None, "quality": quality, "notes": text[:150]}


def detect(text: str) -> HealthDetections:
    return HealthDetections(
        meals=detect_meals(text),
        mood=detect_mood(text),
        fitness=detect_fitness(text),
        water=detect_water(text),
        sleep=detect_sleep(text),
    )


# ── persistence ──────────────────────────────────────────────────────────────


class HealthTracker:
    def __init__(self, db: Database, clock: Clock) -> None:
        self._db = db
        self._clock = clock

    def analyze_message(self, user_id: int, text: str) -> HealthDetections:
        """Detect and log every health item mentioned in *text*."""
        found = detect(text)
        if not found:
            return found
        now = to_db(self._clock())
        with self._db.transaction() as conn:
            for meal in found.meals:
                conn.execute(
                    "INSERT INTO meals (user_id, meal_type, description, logged_at) VALUES (?, ?, ?, ?)",
                    (user_id, meal.type, meal.description, now),
                )
            if found.mood:
                conn.execute(
                    """
                    INSERT INTO mood_entries (user_id, mood_level, mood_type, notes, logged_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (user_id, found.mood.level, found.mood.type, found.mood.notes, now),
                )
            for log_type in ("fitness", "water", "sleep"):
                data = getattr(found, log_type)
                if data:
                    conn.execute(
                        """
                        INSERT INTO health_logs (user_id, log_type, value, notes, logged_at)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        (user_id, log_type, json.dumps(data), data.get("notes"), now),
                    )
        logger.debug("Health detections for user %d: %s", user_id, found)
        return found

    def daily_summary(self, user_id: int, day: str | None = None) -> dict[str, Any]:
        """Meals, mood entries (newest first) and activities logged on *day*."""
        day = day or self._clock().strftime("%Y-%m-%d")
        meals = self._db.fetchall(
            """
            SELECT meal_type, description, logged_at FROM meals
            WHERE user_id = ? AND date(logged_at) = ? ORDER BY logged_at ASC, id ASC
            """,
            (user_id, day),
        )
        moods = self._db.fetchall(
            """
            SELECT mood_level, mood_type, notes, logged_at FROM mood_entries
            WHERE user_id = ? AND date(logged_at) = ? ORDER BY logged_at DESC, id DESC
            """,
            (user_id, day),
        )
        activities = self._db.fetchall(
            """
            SELECT log_type, value, notes, logged_at FROM health_logs
            WHERE user_id = ? AND date(logged_at) = ? ORDER BY logged_at ASC, id ASC
            """,
            (user_id, day),
        )
        return {
            "date": day,
            "meals": [dict(r) for r in meals],
            "mood": [dict(r) for r in moods],
            "activities": [
                {**dict(r), "value": json.loads(r["value"])} for r in activities
            ],
        }
