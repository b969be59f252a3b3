"""Outbound Telegram calls used outside of an update context (cron, prompts)."""

import logging

from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.constants import ParseMode

from formatting import truncate

logger = logging.getLogger(__name__)


def keyboard(rows: list[list[tuple[str, str]]]) -> InlineKeyboardMarkup:
    """Build an inline keyboard from ``(label, callback_data)`` rows."""
    return InlineKeyboardMarkup(
        [[InlineKeyboardButton(label, callback_data=data) for label, data in row] for row in rows]
    )


class Messenger:
    """Sends Markdown messages through a :class:`telegram.Bot`."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send(
        self,
        chat_id: int | str,
        text: str,
        markup: InlineKeyboardMarkup | None = None,
        markdown: bool = True,
    ) -> None:
        await self._bot.send_message(
            chat_id=chat_id,
            text=truncate(text),
            parse_mode=ParseMode.MARKDOWN if markdown else None,
            reply_markup=markup,
        )
