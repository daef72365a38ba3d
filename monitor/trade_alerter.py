"""Telegram delivery for executed rebalances and drawdown stops."""

from __future__ import annotations

import logging
from html import escape

from telegram import Bot

logger = logging.getLogger(__name__)


class TelegramTradeAlerter:
    def __init__(self, token: str, chat_id: str | int, bot: Bot | None = None) -> None:
        self.chat_id = chat_id
        self._bot = bot or Bot(token=token)
        self._initialized = bot is not None

    async def notify(self, text: str) -> None:
        if not self._initialized:
            await self._bot.initialize()
            self._initialized = True
        await self._bot.send_message(
            chat_id=self.chat_id,
            text=f"<b>Rebalancer</b>\n{escape(text)}",
            parse_mode="HTML",
            disable_web_page_preview=True,
        )
        logger.info("TRADE_ALERT_SENT chat_id=%s", self.chat_id)

    async def close(self) -> None:
        if self._initialized:
            await self._bot.shutdown()
            self._initialized = False


def build_trade_alerter(token: str, chat_id: str) -> TelegramTradeAlerter | None:
    """Alerts are optional; both the bot token and the chat id must be set."""
    if not str(token or "").strip() or not str(chat_id or "").strip():
        return None
    return TelegramTradeAlerter(token.strip(), chat_id.strip())
