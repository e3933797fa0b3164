# qurbani/api/routers/cow_groups.py
"""
Cow group endpoints: list, detail and manual share management.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import async_sessionmaker

from qurbani.infrastructure.db.session import get_session_factory
from qurbani.services import grouping_service

router = APIRouter()


class AddShareReq(BaseModel):
    donation_id: Optional[int] = None


@router.get("/", summary="List cow groups with share counts")
async def list_cow_groups(session_factory: async_sessionmaker = Depends(get_session_factory)):
    return await grouping_service.list_cow_groups(session_factory)


@router.get("/{group_id}", summary="Cow group with its shares")
async def get_cow_group(group_id: int, session_factory: async_sessionmaker = Depends(get_session_factory)):
    return await grouping_service.get_cow_group(session_factory, group_id)


@router.post("/", status_code=201, summary="Open an empty cow group")
async def create_cow_group(session_factory: async_sessionmaker = Depends(get_session_factory)):
    return await grouping_service.create_cow_group(session_factory)


@router.post("/{group_id}/shares", status_code=201, summary="Add a cow donation to a group")
async def add_share(group_id: int, req: AddShareReq, session_factory: async_sessionmaker = Depends(get_session_factory)):
    return await grouping_service.add_share_to_group(session_factory, group_id, req.donation_id)
