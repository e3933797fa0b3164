# qurbani/api/routers/notifications.py
"""
Notification log and Telegram delivery of media proof.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import async_sessionmaker

from qurbani.infrastructure.db.session import get_session_factory
from qurbani.services import media_service

router = APIRouter()
telegram_router = APIRouter()


class NotificationReq(BaseModel):
    donation_id: Optional[int] = None
    message: Optional[str] = None


class SendMediaReq(BaseModel):
    donation_id: Optional[int] = None
    media_url: Optional[str] = None
    type: Optional[str] = "image"


@router.get("/", summary="List notifications")
async def list_notifications(session_factory: async_sessionmaker = Depends(get_session_factory)):
    return await media_service.list_notifications(session_factory)


@router.post("/", status_code=201, summary="Queue a notification")
async def create_notification(req: NotificationReq, session_factory: async_sessionmaker = Depends(get_session_factory)):
    return await media_service.create_notification(session_factory, req.donation_id, req.message)


@telegram_router.post("/send-media", summary="Send donation media to the Telegram chat")
async def send_media(req: SendMediaReq, request: Request, session_factory: async_sessionmaker = Depends(get_session_factory)):
    notification = await media_service.send_donation_media(
        session_factory,
        request.app.state.settings,
        req.donation_id,
        req.media_url,
        req.type,
        sender=request.app.state.media_sender,
    )
    return {"success": True, "notification": notification}
