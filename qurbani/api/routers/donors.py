# qurbani/api/routers/donors.py
"""
Donor endpoints: CRUD and a donor's donations.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import async_sessionmaker

from qurbani.infrastructure.db.session import get_session_factory
from qurbani.services import donor_service

router = APIRouter()


class DonorReq(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    whatsapp_number: Optional[str] = None


@router.get("/", summary="List donors with donation counts")
async def list_donors(session_factory: async_sessionmaker = Depends(get_session_factory)):
    return await donor_service.list_donors(session_factory)


@router.get("/{donor_id}", summary="Get a donor")
async def get_donor(donor_id: int, session_factory: async_sessionmaker = Depends(get_session_factory)):
    return await donor_service.get_donor(session_factory, donor_id)


@router.post("/", status_code=201, summary="Create a donor")
async def create_donor(req: DonorReq, session_factory: async_sessionmaker = Depends(get_session_factory)):
    return await donor_service.create_donor(session_factory, req.first_name, req.last_name, req.whatsapp_number)


@router.put("/{donor_id}", summary="Update a donor")
async def update_donor(donor_id: int, req: DonorReq, session_factory: async_sessionmaker = Depends(get_session_factory)):
    return await donor_service.update_donor(
        session_factory, donor_id, req.first_name, req.last_name, req.whatsapp_number
    )


@router.delete("/{donor_id}", summary="Delete a donor and their donations")
async def delete_donor(donor_id: int, session_factory: async_sessionmaker = Depends(get_session_factory)):
    await donor_service.delete_donor(session_factory, donor_id)
    return {"message": "Donor deleted successfully"}


@router.get("/{donor_id}/donations", summary="Donations made by a donor")
async def donor_donations(donor_id: int, session_factory: async_sessionmaker = Depends(get_session_factory)):
    return await donor_service.list_donor_donations(session_factory, donor_id)
