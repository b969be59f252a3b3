"""Tests for formatting.py: Telegram text helpers."""

from datetime import datetime

from formatting import (
    TELEGRAM_LIMIT,
    decorate,
    escape,
    format_datetime,
    progress_bar,
    streak_badge,
    truncate,
)


class TestFormatting:
    def test_format_datetime_from_storage(self):
        assert format_datetime("2025-10-06 18:00:00") == "Mon, Oct 06 at 06:00 PM"

    def test_format_datetime_from_datetime(self):
        assert format_datetime(datetime(2025, 10, 7, 9, 5)) == "Tue, Oct 07 at 09:05 AM"

    def test_escape_markdown(self):
        assert escape("snake_case *bold*") == "snake\\_case \\*bold\\*"

    def test_truncate(self):
        assert truncate("short") == "short"
        long = truncate("a" * 5000)
        assert len(long) == TELEGRAM_LIMIT
        assert long.endswith("...")

    def test_decorate_adds_one_emoji_per_keyword(self):
        assert decorate("Nice workout! Another workout tomorrow?") == (
            "Nice workout 💪! Another workout tomorrow 📅?"
        )

    def test_decorate_skips_existing_emoji(self):
        assert decorate("workout 💪 done") == "workout 💪 done"

    def test_progress_bar(self):
        assert progress_bar(3, 4) == "███████░░░ 75%"
        assert progress_bar(0, 0) == "░░░░░░░░░░ 0%"
        assert progress_bar(9, 3).endswith("100%")

    def test_streak_badge(self):
        assert streak_badge("reading", 7) == "🌳 reading: 7 day streak!"
        assert streak_badge("reading", 120).startswith("👑")
        assert streak_badge("reading", 0).startswith("⭐")
