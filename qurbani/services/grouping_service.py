# qurbani/services/grouping_service.py
"""
Cow-group packing.

Every cow donation gets exactly one share in a group of at most
COW_GROUP_SIZE members. New shares go to the fullest open group (below
capacity, every member still pending); a new group is opened only when no
group is open.
"""
import logging
from typing import Any, Dict, List

from sqlalchemy.ext.asyncio import async_sessionmaker

from qurbani.domain.errors import NotFoundError, ValidationError
from qurbani.domain.models import DonationType
from qurbani.domain.packing import COW_GROUP_SIZE, order_fullest_first
from qurbani.repositories.donation_repos import DonationStore, transaction

logger = logging.getLogger(__name__)


async def place_cow_donation(store: DonationStore, donation_id: int) -> int:
    """
    Put a cow donation into a group and return the group id.

    Must run inside the transaction that created the donation. Each
    candidate group is row-locked and re-counted before the insert, so two
    concurrent placements can never push the same group past capacity; the
    loser of a race moves on to the next candidate.
    """
    candidates = order_fullest_first(await store.list_open_groups())

    for group_id, seen_count in candidates:
        if not await store.lock_group(group_id):
            continue
        member_count = await store.count_group_members(group_id)
        if member_count >= COW_GROUP_SIZE:
            logger.debug("Group %s filled up (%s seen) before lock, skipping", group_id, seen_count)
            continue
        if await store.count_dispatched_members(group_id):
            logger.debug("Group %s was dispatched before lock, skipping", group_id)
            continue
        await store.create_cow_share(donation_id, group_id)
        logger.debug("Donation %s placed in group %s (%s/%s)", donation_id, group_id, member_count + 1, COW_GROUP_SIZE)
        return group_id

    group_id = await store.create_group()
    await store.create_cow_share(donation_id, group_id)
    logger.debug("Donation %s placed in new group %s", donation_id, group_id)
    return group_id


async def create_cow_group(session_factory: async_sessionmaker) -> Dict[str, Any]:
    async with transaction(session_factory) as store:
        group_id = await store.create_group()
        group = await store.get_group(group_id)
        return {"id": group.id, "created_at": group.created_at, "share_count": 0}


async def add_share_to_group(session_factory: async_sessionmaker, group_id: int, donation_id) -> Dict[str, Any]:
    """Manually attach a cow donation that has no group yet."""
    if not donation_id:
        raise ValidationError("Donation ID is required")

    async with transaction(session_factory) as store:
        if not await store.lock_group(group_id):
            raise NotFoundError("Cow group not found")

        donation = await store.get_donation(donation_id)
        if donation is None or donation.type != DonationType.COW.value:
            raise ValidationError("Donation not found or not a cow donation")
        if await store.get_share(donation_id) is not None:
            raise ValidationError("Donation already belongs to a cow group")
        if await store.count_group_members(group_id) >= COW_GROUP_SIZE:
            raise ValidationError(f"Cow group already has maximum shares ({COW_GROUP_SIZE})")
        if await store.count_dispatched_members(group_id):
            raise ValidationError("Cow group has already been handed to an agent")

        share = await store.create_cow_share(donation_id, group_id)
        return {"donation_id": share.donation_id, "cow_group_id": share.cow_group_id, "created_at": share.created_at}


async def list_cow_groups(session_factory: async_sessionmaker) -> List[Dict[str, Any]]:
    async with transaction(session_factory) as store:
        return await store.list_groups_with_counts()


async def get_cow_group(session_factory: async_sessionmaker, group_id: int) -> Dict[str, Any]:
    async with transaction(session_factory) as store:
        group = await store.get_group(group_id)
        if group is None:
            raise NotFoundError("Cow group not found")
        shares = await store.list_group_shares(group_id)
        return {"id": group.id, "created_at": group.created_at, "shares": shares}
