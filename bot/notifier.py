"""
Alert dispatcher: renders classified transfers and sends them to the alert chat.
Delivery is best effort; failures are logged and never re-raised.
"""
import asyncio
import logging
from typing import Optional, Tuple

from aiogram import Bot
from aiogram.exceptions import TelegramForbiddenError, TelegramRetryAfter

from core.models import TransferAlert
from utils.formatting import format_alert

logger = logging.getLogger(__name__)


class Notifier:
    """
    Handles sending alert messages to the configured Telegram chat.
    Manages rate limiting and error handling.
    """

    def __init__(
        self,
        bot: Bot,
        alert_chat_id: Optional[str] = None,
        token_symbol: str = "TICS",
        explorer_tx_url: str = "https://ticsscan.com/tx/"
    ):
        """Initialize notifier with bot instance and alert destination."""
        self.bot = bot
        self.token_symbol = token_symbol
        self.explorer_tx_url = explorer_tx_url
        self.chat_id, self.thread_id = self._parse_chat_destination(alert_chat_id)
        self._rate_limit_delay = 0.05  # 50ms between messages
        self._blocked = False

        self.sent_count = 0
        self.failed_count = 0

    @staticmethod
    def _parse_chat_destination(chat_config: Optional[str]) -> Tuple[Optional[int], Optional[int]]:
        """
        Parse chat destination from config string.

        Args:
            chat_config: Either "chat_id" or "chat_id:thread_id"

        Returns:
            Tuple of (chat_id, message_thread_id)
        """
        if not chat_config:
            return None, None

        try:
            if ':' in chat_config:
                chat_id_str, thread_id_str = chat_config.split(':', 1)
                return int(chat_id_str), int(thread_id_str)
            else:
                return int(chat_config), None
        except ValueError:
            logger.error(f"Invalid chat destination format: {chat_config}")
            return None, None

    async def dispatch(self, alert: TransferAlert) -> bool:
        """Send one alert; returns False when it was not delivered."""
        if self.chat_id is None or self._blocked:
            logger.debug(f"No alert destination, dropping {alert.kind.value} alert for {alert.tx_hash}")
            return False

        try:
            message = format_alert(alert, self.token_symbol, self.explorer_tx_url)
            await self._send_message(self.chat_id, message, self.thread_id)
            self.sent_count += 1
            return True
        except Exception as e:
            self.failed_count += 1
            logger.error(f"Failed to send {alert.kind.value} alert: {e}")
            return False

    async def _send_message(self, chat_id: int, text: str, message_thread_id: Optional[int] = None):
        """
        Send message with rate limiting and error handling.

        Args:
            chat_id: Telegram chat ID (user, group, or supergroup)
            text: Message text to send
            message_thread_id: Optional topic/thread ID for supergroups
        """
        # Rate limiting
        await asyncio.sleep(self._rate_limit_delay)

        try:
            await self.bot.send_message(
                chat_id=chat_id,
                text=text,
                message_thread_id=message_thread_id,
                parse_mode=None,  # Plain text for better emoji support
                disable_web_page_preview=True
            )

        except TelegramRetryAfter as e:
            logger.warning(f"Rate limit hit for chat {chat_id}, waiting {e.retry_after}s")
            await asyncio.sleep(e.retry_after)
            # Retry once
            await self.bot.send_message(
                chat_id=chat_id,
                text=text,
                message_thread_id=message_thread_id,
                parse_mode=None,
                disable_web_page_preview=True
            )

        except TelegramForbiddenError:
            # Bot removed from the alert group
            logger.warning(f"Bot blocked or removed from chat {chat_id}")
            self._blocked = True
            raise
