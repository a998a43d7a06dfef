"""
Command handlers for TicsTracker Bot.
Handles /start, /help, /price and /check.
"""
import asyncio
import logging
from typing import Dict, Optional

from aiogram import Bot, Router
from aiogram.enums import ChatAction
from aiogram.exceptions import TelegramAPIError, TelegramRetryAfter
from aiogram.filters import Command, CommandStart
from aiogram.types import BotCommand, ErrorEvent, Message, ReactionTypeEmoji

from core.aggregator import Aggregator
from core.exceptions import NoDataAvailableError, WalletFetchError, WalletNotFoundError
from core.wallet_client import PresaleWalletClient
from utils.filters import is_valid_wallet_address, parse_command_argument
from utils.formatting import format_portfolio_message, format_price_message
from utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

router = Router()

# Global references (will be set by main.py)
aggregator: Aggregator = None
wallet_client: PresaleWalletClient = None
rate_limiter: RateLimiter = None
display_names: Dict[str, str] = {}
token_symbol: str = "TICS"

TOO_MANY_REQUESTS = "⏱️ Too many requests\n\nPlease wait a moment before requesting again."
UNKNOWN_USER = "❌ Unable to identify user. Please try again."

BOT_COMMANDS = [
    BotCommand(command="price", description="Get TICS price from all exchanges"),
    BotCommand(command="check", description="Check TICS portfolio (usage: /check wallet_address)"),
]


def _exchange_list() -> str:
    names = list(display_names.values()) or ["MEXC", "LBank", "CoinStore"]
    if len(names) == 1:
        return names[0]
    return f"{', '.join(names[:-1])} & {names[-1]}"


async def safe_reply(message: Message, text: str, reply: bool = False) -> Optional[Message]:
    """
    Send a reply, reacting with 😢 instead when Telegram flood control kicks in.
    """
    try:
        if reply:
            return await message.reply(text)
        return await message.answer(text)
    except TelegramRetryAfter as e:
        logger.warning(f"Flood control in chat {message.chat.id}, retry after {e.retry_after}s")
        try:
            await message.react([ReactionTypeEmoji(emoji="😢")])
        except TelegramAPIError as react_error:
            logger.debug(f"Reaction failed: {react_error}")
        return None


async def _typing(bot: Bot, message: Message):
    try:
        await bot.send_chat_action(chat_id=message.chat.id, action=ChatAction.TYPING)
    except TelegramAPIError as e:
        logger.debug(f"Chat action failed: {e}")


@router.message(CommandStart())
async def cmd_start(message: Message):
    """Handle /start command."""
    welcome_text = (
        f"🎉 {token_symbol} Price Bot Ready!\n\n"
        f"📊 Commands:\n"
        f"/price - Combined data from {_exchange_list()}\n"
        f"/check - Portfolio tracker (usage: /check wallet_address)"
    )
    await safe_reply(message, welcome_text, reply=True)


@router.message(Command("help"))
async def cmd_help(message: Message):
    """Handle /help command."""
    help_text = (
        f"🤖 {token_symbol} Price Bot\n\n"
        f"📊 /price - Combined price from {_exchange_list()}\n"
        f"💼 /check - Portfolio tracker\n"
        f"   Usage: /check 0x..."
    )
    await safe_reply(message, help_text, reply=True)


@router.message(Command("price"))
async def cmd_price(message: Message, bot: Bot):
    """Handle /price command."""
    if not message.from_user or not message.from_user.id:
        await safe_reply(message, UNKNOWN_USER)
        return

    if rate_limiter.is_rate_limited(message.from_user.id):
        await safe_reply(message, TOO_MANY_REQUESTS, reply=True)
        return

    await _typing(bot, message)

    try:
        quote = await aggregator.get_composite_quote()
    except NoDataAvailableError:
        logger.warning("Price requested but no exchange data is available")
        await safe_reply(message, "❌ Price unavailable\n\n🔧 Exchanges temporarily unavailable", reply=True)
        return

    await safe_reply(message, format_price_message(quote, token_symbol, display_names), reply=True)


@router.message(Command("check"))
async def cmd_check(message: Message, bot: Bot):
    """Handle /check command: presale portfolio lookup."""
    # The address is removed from the chat right away
    try:
        await message.delete()
    except TelegramAPIError as e:
        logger.debug(f"Could not delete /check message: {e}")

    if not message.from_user or not message.from_user.id:
        await safe_reply(message, UNKNOWN_USER)
        return

    if rate_limiter.is_rate_limited(message.from_user.id):
        await safe_reply(message, TOO_MANY_REQUESTS)
        return

    address = parse_command_argument(message.text)
    if address is None:
        await safe_reply(message, "❌ Invalid usage\n\nPlease provide a wallet address:\n/check 0x...")
        return

    if not is_valid_wallet_address(address):
        await safe_reply(
            message,
            "❌ Invalid wallet address\n\nPlease provide a valid Ethereum wallet address (0x...)"
        )
        return

    await _typing(bot, message)

    try:
        wallet, quote = await asyncio.gather(
            wallet_client.fetch_wallet(address),
            aggregator.get_price_quote(),
        )
    except WalletNotFoundError:
        await safe_reply(
            message,
            f"❌ Wallet not found\n\nThis wallet address has no {token_symbol} holdings "
            f"or doesn't exist in the system."
        )
        return
    except WalletFetchError:
        await safe_reply(
            message,
            "❌ Portfolio check failed\n\nUnable to fetch wallet data. Please try again later."
        )
        return

    if quote is None or not quote.price:
        await safe_reply(
            message,
            "❌ Price data unavailable\n\nCannot calculate portfolio value - price feeds are down"
        )
        return

    await safe_reply(message, format_portfolio_message(address, wallet, quote.price, quote.source, token_symbol))


@router.errors()
async def on_error(event: ErrorEvent):
    """Log handler failures and tell the user to retry."""
    message = event.update.message
    user = message.from_user if message else None
    logger.error(
        f"Bot error caught: {event.exception} "
        f"(user_id={user.id if user else None}, username={user.username if user else None}, "
        f"chat_id={message.chat.id if message else None})",
        exc_info=event.exception
    )

    if message is not None and "rate" not in str(event.exception).lower():
        try:
            await safe_reply(message, "⚠️ Temporary issue - please retry")
        except Exception as e:
            logger.error(f"Failed to send error message: {e}")
    return True
