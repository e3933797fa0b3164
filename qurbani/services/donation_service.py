# qurbani/services/donation_service.py
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from qurbani.domain.errors import ConstraintViolation, NotFoundError, ValidationError
from qurbani.domain.models import DonationStatus, DonationType, is_forward_transition
from qurbani.domain.packing import summarize_cow_shares
from qurbani.repositories.donation_repos import DonationStore, donation_to_dict, run_in_transaction, transaction
from qurbani.services.grouping_service import place_cow_donation

logger = logging.getLogger(__name__)

STATUS_VALUES = [s.value for s in DonationStatus]
TYPE_VALUES = [t.value for t in DonationType]


def validate_status(status: Optional[str]) -> str:
    if not status:
        raise ValidationError("Status is required")
    if status not in STATUS_VALUES:
        raise ValidationError('Status must be either "pending", "sending", or "done"')
    return status


async def create_donation(
    session_factory: async_sessionmaker,
    donor_id: Optional[int],
    price: Optional[float],
    type: Optional[str],
    max_retries: int = 3,
) -> Dict[str, Any]:
    """
    Record a donation. Cow donations are placed in a cow group in the same
    transaction; if the placement loses a race the whole creation is retried
    from scratch, so a cow donation is never stored without its share.
    """
    if not donor_id or price is None or not type:
        raise ValidationError("Donor ID, price, and type are required")
    if type not in TYPE_VALUES:
        raise ValidationError('Type must be either "sheep" or "cow"')
    if price <= 0:
        raise ValidationError("Price must be positive")

    async def work(store: DonationStore) -> Dict[str, Any]:
        if await store.get_donor(donor_id) is None:
            raise NotFoundError("Donor not found")
        donation = await store.create_donation(donor_id, price, type)
        group_id = None
        if type == DonationType.COW.value:
            group_id = await place_cow_donation(store, donation.id)
        return donation_to_dict(donation, cow_group_id=group_id)

    donation = await run_in_transaction(
        session_factory, work, retries=max_retries, retry_on=(ConstraintViolation,)
    )
    logger.info("Created %s donation %s for donor %s", type, donation["id"], donor_id)
    return donation


async def list_donations(session_factory: async_sessionmaker, status: Optional[str] = None) -> List[Dict[str, Any]]:
    if status is not None:
        validate_status(status)
    async with transaction(session_factory) as store:
        return await store.list_donations(status=status)


async def get_donation(session_factory: async_sessionmaker, donation_id: int) -> Dict[str, Any]:
    async with transaction(session_factory) as store:
        donation = await store.get_donation_detail(donation_id)
    if donation is None:
        raise NotFoundError("Donation not found")
    return donation


async def update_donation_status(session_factory: async_sessionmaker, donation_id: int, status: Optional[str]) -> Dict[str, Any]:
    """Advance a donation's status; `done` stamps completed_at. Going backwards is rejected."""
    status = validate_status(status)

    async with transaction(session_factory) as store:
        donation = await store.get_donation(donation_id, lock=True)
        if donation is None:
            raise NotFoundError("Donation not found")
        if not is_forward_transition(donation.status, status):
            raise ValidationError(f"Cannot move donation from {donation.status} back to {status}")
        await store.update_donation_status(donation, status)
        logger.info("Donation %s status updated to %s", donation_id, status)
        return donation_to_dict(donation)


async def delete_donation(session_factory: async_sessionmaker, donation_id: int) -> None:
    async with transaction(session_factory) as store:
        if await store.get_donation(donation_id) is None:
            raise NotFoundError("Donation not found")
        await store.delete_donation(donation_id)


async def dashboard_counts(session_factory: async_sessionmaker) -> Dict[str, Any]:
    async with transaction(session_factory) as store:
        counts = await store.dashboard_counts()
    cow_groups, remaining = summarize_cow_shares(counts["cow"])
    return {
        "pendingSheepCount": counts["sheep"],
        "pendingCowSharesCount": counts["cow"],
        "pendingCowGroups": cow_groups,
        "remainingCowShares": remaining,
        "totalValue": counts["total_value"],
    }
