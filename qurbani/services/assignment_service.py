# qurbani/services/assignment_service.py
"""
Distribution of pending donations across field agents.

The pool is every pending sheep donation plus every complete cow group
whose seven members are all still pending. A cow group is never split
between agents.
"""
import logging
from typing import Dict, List, Sequence

from sqlalchemy.ext.asyncio import async_sessionmaker

from qurbani.domain.errors import NotFoundError, ValidationError
from qurbani.domain.models import AgentDTO, AssignmentDTO, DonationStatus, DonationType, SplitResult
from qurbani.domain.packing import split_contiguous
from qurbani.repositories.donation_repos import DonationStore, transaction

logger = logging.getLogger(__name__)


def validate_agent_names(agent_names) -> List[str]:
    if not agent_names or not isinstance(agent_names, list):
        raise ValidationError("Please provide agent names array")
    names = []
    for name in agent_names:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Agent names must be non-empty strings")
        names.append(name.strip())
    return names


def validate_donation_ids(donation_ids) -> List[int]:
    if not donation_ids or not isinstance(donation_ids, list):
        raise ValidationError("Please provide donation IDs array")
    ids = []
    for donation_id in donation_ids:
        if isinstance(donation_id, bool) or not isinstance(donation_id, int):
            raise ValidationError("Donation IDs must be integers")
        if donation_id not in ids:
            ids.append(donation_id)
    return ids


async def split_pending_with_store(store: DonationStore, agent_names: Sequence[str]) -> SplitResult:
    """
    Create one new agent per name and hand out the pending pool.

    Agent order is input order. Each pool (sheep, cow groups) is ordered by
    creation time and cut into contiguous slices of ceil(size/agents)
    items, so the last agents may get fewer or none. Prior assignments of
    every pooled donation are replaced and the donations move from pending to sending.
    """
    agents = [await store.create_agent(name) for name in agent_names]

    sheep_ids = await store.list_pending_by_kind(DonationType.SHEEP.value, lock=True)
    cow_groups = await store.list_complete_pending_groups(lock=True)
    pool = sheep_ids + [donation_id for _, members in cow_groups for donation_id in members]

    cleared = await store.clear_assignments(pool)
    if cleared:
        logger.info("Replacing %s existing assignments", cleared)

    allocation: Dict[int, List[int]] = {}
    sheep_slices = split_contiguous(sheep_ids, len(agents))
    group_slices = split_contiguous(cow_groups, len(agents))
    for agent, sheep_slice, group_slice in zip(agents, sheep_slices, group_slices):
        donation_ids = list(sheep_slice)
        for _, members in group_slice:
            donation_ids.extend(members)
        allocation[agent.id] = donation_ids
        logger.info(
            "Agent %s (%s): %s sheep, %s cow groups",
            agent.id, agent.agent_name, len(sheep_slice), len(group_slice),
        )

    await store.create_assignments(
        [(agent_id, donation_id) for agent_id, ids in allocation.items() for donation_id in ids]
    )
    await store.set_status(pool, DonationStatus.SENDING.value, only_if=DonationStatus.PENDING.value)

    stats = {s["id"]: s for s in await store.agent_stats([agent.id for agent in agents])}
    return SplitResult(
        agents=[AgentDTO(**stats[agent.id]) for agent in agents],
        sheep_count=len(sheep_ids),
        cow_groups_count=len(cow_groups),
        allocation=allocation,
    )


async def split_pending(session_factory: async_sessionmaker, agent_names) -> SplitResult:
    names = validate_agent_names(agent_names)
    async with transaction(session_factory) as store:
        result = await split_pending_with_store(store, names)
    logger.info(
        "Split %s sheep and %s cow groups between %s agents",
        result.sheep_count, result.cow_groups_count, len(result.agents),
    )
    return result


async def assign_donations_to_agent(session_factory: async_sessionmaker, agent_id: int, donation_ids) -> List[AssignmentDTO]:
    """
    Give an explicit set of donations to one existing agent.

    No group completeness check is made here; callers pass coherent sets.
    Prior assignments are replaced and pending donations move to sending.
    """
    ids = validate_donation_ids(donation_ids)

    async with transaction(session_factory) as store:
        if await store.get_agent(agent_id) is None:
            raise NotFoundError("Agent not found")
        existing = set(await store.existing_donation_ids(ids))
        missing = [donation_id for donation_id in ids if donation_id not in existing]
        if missing:
            raise NotFoundError(f"Donations not found: {missing}")

        await store.clear_assignments(ids)
        await store.create_assignments([(agent_id, donation_id) for donation_id in ids])
        await store.set_status(ids, DonationStatus.SENDING.value, only_if=DonationStatus.PENDING.value)
        rows = await store.list_assignments(agent_id, ids)
        return [AssignmentDTO.model_validate(row) for row in rows]
