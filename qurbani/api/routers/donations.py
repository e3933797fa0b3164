# qurbani/api/routers/donations.py
"""
Donation endpoints. Creating a cow donation places it in a cow group.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import async_sessionmaker

from qurbani.infrastructure.db.session import get_session_factory
from qurbani.services import donation_service

router = APIRouter()


class CreateDonationReq(BaseModel):
    donor_id: Optional[int] = None
    price: Optional[float] = None
    type: Optional[str] = None


class UpdateStatusReq(BaseModel):
    status: Optional[str] = None


@router.get("/", summary="List donations with donor and cow group")
async def list_donations(session_factory: async_sessionmaker = Depends(get_session_factory)):
    return await donation_service.list_donations(session_factory)


# declared before /{donation_id} so the path is not parsed as an id
@router.get("/dashboard-counts", summary="Pending sheep / cow share counts")
async def dashboard_counts(session_factory: async_sessionmaker = Depends(get_session_factory)):
    return await donation_service.dashboard_counts(session_factory)


@router.get("/status/{status}", summary="Donations with a given status")
async def donations_by_status(status: str, session_factory: async_sessionmaker = Depends(get_session_factory)):
    return await donation_service.list_donations(session_factory, status=status)


@router.get("/{donation_id}", summary="Get a donation")
async def get_donation(donation_id: int, session_factory: async_sessionmaker = Depends(get_session_factory)):
    return await donation_service.get_donation(session_factory, donation_id)


@router.post("/", status_code=201, summary="Create a donation")
async def create_donation(
    req: CreateDonationReq,
    request: Request,
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    return await donation_service.create_donation(
        session_factory,
        req.donor_id,
        req.price,
        req.type,
        max_retries=request.app.state.settings.GROUPING_MAX_RETRIES,
    )


@router.put("/{donation_id}/status", summary="Advance a donation's status")
async def update_status(
    donation_id: int,
    req: UpdateStatusReq,
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    return await donation_service.update_donation_status(session_factory, donation_id, req.status)


@router.delete("/{donation_id}", summary="Delete a donation")
async def delete_donation(donation_id: int, session_factory: async_sessionmaker = Depends(get_session_factory)):
    await donation_service.delete_donation(session_factory, donation_id)
    return {"message": "Donation deleted successfully"}
