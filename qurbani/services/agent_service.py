# qurbani/services/agent_service.py
from typing import Any, Dict, List

from sqlalchemy.ext.asyncio import async_sessionmaker

from qurbani.domain.errors import NotFoundError, ValidationError
from qurbani.domain.models import AgentDTO
from qurbani.repositories.donation_repos import transaction


def _validate_agent_name(agent_name) -> str:
    if not agent_name or not isinstance(agent_name, str) or not agent_name.strip():
        raise ValidationError("Agent name is required")
    return agent_name.strip()


async def list_agents(session_factory: async_sessionmaker) -> List[AgentDTO]:
    """Agents with open work first, newest first within the same load."""
    async with transaction(session_factory) as store:
        stats = await store.agent_stats()
    stats.sort(key=lambda s: (s["pending_donations"], s["created_at"], s["id"]), reverse=True)
    return [AgentDTO(**s) for s in stats]


async def get_agent(session_factory: async_sessionmaker, agent_id: int) -> AgentDTO:
    async with transaction(session_factory) as store:
        stats = await store.agent_stats([agent_id])
    if not stats:
        raise NotFoundError("Agent not found")
    return AgentDTO(**stats[0])


async def create_agent(session_factory: async_sessionmaker, agent_name) -> AgentDTO:
    name = _validate_agent_name(agent_name)
    async with transaction(session_factory) as store:
        agent = await store.create_agent(name)
        return AgentDTO.model_validate(agent)


async def update_agent(session_factory: async_sessionmaker, agent_id: int, agent_name) -> AgentDTO:
    name = _validate_agent_name(agent_name)
    async with transaction(session_factory) as store:
        agent = await store.get_agent(agent_id)
        if agent is None:
            raise NotFoundError("Agent not found")
        await store.update_agent(agent, name)
        stats = await store.agent_stats([agent_id])
        return AgentDTO(**stats[0])


async def delete_agent(session_factory: async_sessionmaker, agent_id: int) -> None:
    async with transaction(session_factory) as store:
        if await store.get_agent(agent_id) is None:
            raise NotFoundError("Agent not found")
        await store.delete_agent(agent_id)


async def get_agent_donations(session_factory: async_sessionmaker, agent_id: int) -> Dict[str, Any]:
    """Sheep assigned to the agent plus every cow group the agent holds, member by member."""
    async with transaction(session_factory) as store:
        if await store.get_agent(agent_id) is None:
            raise NotFoundError("Agent not found")
        return {
            "sheepDonations": await store.list_agent_sheep(agent_id),
            "cowGroups": await store.list_agent_cow_groups(agent_id),
        }
