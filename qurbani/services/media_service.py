# qurbani/services/media_service.py
"""
Media proof references and donor notifications.

Files themselves live elsewhere; a media row only stores where to find one.
"""
import logging
from typing import Awaitable, Callable, List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from qurbani.config.settings import Settings
from qurbani.domain.errors import NotFoundError, ValidationError
from qurbani.domain.models import MediaDTO, MediaType, NotificationDTO
from qurbani.repositories.donation_repos import transaction
from qurbani.telegram.service import send_media_to_chat

logger = logging.getLogger(__name__)

MEDIA_TYPES = [m.value for m in MediaType]

MediaSender = Callable[[Settings, str, str, str], Awaitable[None]]


def _validate_media_type(type: Optional[str]) -> str:
    if type not in MEDIA_TYPES:
        raise ValidationError('Type must be either "image" or "video"')
    return type


async def create_media(session_factory: async_sessionmaker, donation_id, type, file_path) -> MediaDTO:
    if not donation_id or not type:
        raise ValidationError("Donation ID and type are required")
    _validate_media_type(type)
    if not file_path:
        raise ValidationError("No media file provided")

    async with transaction(session_factory) as store:
        if await store.get_donation(donation_id) is None:
            raise NotFoundError("Donation not found")
        media = await store.create_media(donation_id, type, file_path)
        logger.info("Media record saved for donation %s", donation_id)
        return MediaDTO.model_validate(media)


async def list_media(session_factory: async_sessionmaker, donation_id: int) -> List[MediaDTO]:
    async with transaction(session_factory) as store:
        return [MediaDTO.model_validate(m) for m in await store.list_media_for_donation(donation_id)]


async def delete_media(session_factory: async_sessionmaker, media_id: int) -> None:
    async with transaction(session_factory) as store:
        if await store.get_media(media_id) is None:
            raise NotFoundError("Media not found")
        await store.delete_media(media_id)


async def list_notifications(session_factory: async_sessionmaker) -> List[NotificationDTO]:
    async with transaction(session_factory) as store:
        return [NotificationDTO.model_validate(n) for n in await store.list_notifications()]


async def create_notification(session_factory: async_sessionmaker, donation_id, message) -> NotificationDTO:
    if not donation_id or not message:
        raise ValidationError("Donation ID and message are required")
    async with transaction(session_factory) as store:
        if await store.get_donation(donation_id) is None:
            raise NotFoundError("Donation not found")
        notification = await store.create_notification(donation_id, message, sent=False)
        return NotificationDTO.model_validate(notification)


async def send_donation_media(
    session_factory: async_sessionmaker,
    settings: Settings,
    donation_id,
    media_url,
    type,
    sender: MediaSender = send_media_to_chat,
) -> NotificationDTO:
    """
    Deliver proof media for a donation over Telegram and log it as a notification.

    The send happens outside any database transaction. A failed delivery is
    still recorded (sent=False) before the error is raised.
    """
    if not donation_id or not media_url:
        raise ValidationError("Donation ID and media URL are required")
    _validate_media_type(type)

    async with transaction(session_factory) as store:
        donation = await store.get_donation_detail(donation_id)
    if donation is None:
        raise NotFoundError("Donation not found")

    caption = (
        f"Donation #{donation['id']} ({donation['type']}) for "
        f"{donation['first_name']} {donation['last_name']}"
    )

    sent = False
    try:
        await sender(settings, media_url, type, caption)
        sent = True
    finally:
        async with transaction(session_factory) as store:
            notification = await store.create_notification(donation_id, caption, sent=sent)
            result = NotificationDTO.model_validate(notification)
    return result
