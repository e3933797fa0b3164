# qurbani/telegram/service.py

import logging

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from aiogram.utils.token import TokenValidationError

from qurbani.config.settings import Settings
from qurbani.domain.errors import DeliveryError, DeliveryNotConfigured
from qurbani.domain.models import MediaType

logger = logging.getLogger(__name__)


async def send_media_to_chat(settings: Settings, media_url: str, media_type: str, caption: str) -> None:
    """Post a proof photo or video to the configured Telegram chat."""
    if not settings.bot_token or not settings.telegram_chat_id:
        raise DeliveryNotConfigured("Telegram delivery is not configured")

    try:
        bot = Bot(token=settings.bot_token)
    except TokenValidationError as e:
        raise DeliveryNotConfigured("Telegram bot token is invalid") from e

    try:
        if media_type == MediaType.VIDEO.value:
            await bot.send_video(chat_id=settings.telegram_chat_id, video=media_url, caption=caption)
        else:
            await bot.send_photo(chat_id=settings.telegram_chat_id, photo=media_url, caption=caption)
        logger.info("Sent %s to telegram chat %s", media_type, settings.telegram_chat_id)
    except TelegramAPIError as e:
        logger.warning("Failed to send to %s: %s", settings.telegram_chat_id, e)
        raise DeliveryError(f"Failed to send via Telegram: {e}") from e
    finally:
        await bot.session.close()
