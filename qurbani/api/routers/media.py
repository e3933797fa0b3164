# qurbani/api/routers/media.py
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import async_sessionmaker

from qurbani.infrastructure.db.session import get_session_factory
from qurbani.services import media_service

router = APIRouter()


class MediaReq(BaseModel):
    donation_id: Optional[int] = None
    type: Optional[str] = None
    file_path: Optional[str] = None


@router.post("/", status_code=201, summary="Attach a media reference to a donation")
async def create_media(req: MediaReq, session_factory: async_sessionmaker = Depends(get_session_factory)):
    media = await media_service.create_media(session_factory, req.donation_id, req.type, req.file_path)
    return {**media.model_dump(), "url": media.file_path}


@router.get("/donation/{donation_id}", summary="Media for a donation")
async def donation_media(donation_id: int, session_factory: async_sessionmaker = Depends(get_session_factory)):
    return await media_service.list_media(session_factory, donation_id)


@router.delete("/{media_id}", summary="Delete a media record")
async def delete_media(media_id: int, session_factory: async_sessionmaker = Depends(get_session_factory)):
    await media_service.delete_media(session_factory, media_id)
    return {"message": "Media deleted successfully"}
