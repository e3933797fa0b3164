# qurbani/services/donor_service.py
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from qurbani.domain.errors import NotFoundError, ValidationError
from qurbani.repositories.donation_repos import transaction


def _validate_donor_fields(first_name: Optional[str], last_name: Optional[str], whatsapp_number: Optional[str]):
    if not first_name or not last_name or not whatsapp_number:
        raise ValidationError("First name, last name, and WhatsApp number are required")


async def list_donors(session_factory: async_sessionmaker) -> List[Dict[str, Any]]:
    async with transaction(session_factory) as store:
        return await store.list_donors()


async def get_donor(session_factory: async_sessionmaker, donor_id: int) -> Dict[str, Any]:
    async with transaction(session_factory) as store:
        donor = await store.get_donor_detail(donor_id)
    if donor is None:
        raise NotFoundError("Donor not found")
    return donor


async def create_donor(session_factory: async_sessionmaker, first_name, last_name, whatsapp_number) -> Dict[str, Any]:
    _validate_donor_fields(first_name, last_name, whatsapp_number)
    async with transaction(session_factory) as store:
        donor = await store.create_donor(first_name, last_name, whatsapp_number)
        return await store.get_donor_detail(donor.id)


async def update_donor(session_factory: async_sessionmaker, donor_id: int, first_name, last_name, whatsapp_number) -> Dict[str, Any]:
    _validate_donor_fields(first_name, last_name, whatsapp_number)
    async with transaction(session_factory) as store:
        donor = await store.get_donor(donor_id)
        if donor is None:
            raise NotFoundError("Donor not found")
        await store.update_donor(
            donor, first_name=first_name, last_name=last_name, whatsapp_number=whatsapp_number
        )
        return await store.get_donor_detail(donor_id)


async def delete_donor(session_factory: async_sessionmaker, donor_id: int) -> None:
    """Removes the donor together with their donations."""
    async with transaction(session_factory) as store:
        if await store.get_donor(donor_id) is None:
            raise NotFoundError("Donor not found")
        await store.delete_donor(donor_id)


async def list_donor_donations(session_factory: async_sessionmaker, donor_id: int) -> List[Dict[str, Any]]:
    async with transaction(session_factory) as store:
        if await store.get_donor(donor_id) is None:
            raise NotFoundError("Donor not found")
        return await store.list_donations_for_donor(donor_id)
