# qurbani/api/routers/agents.py
"""
Agent endpoints: CRUD, explicit assignment and the batch split of pending donations.
"""
from typing import Any, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import async_sessionmaker

from qurbani.infrastructure.db.session import get_session_factory
from qurbani.services import agent_service, assignment_service

router = APIRouter()


class AgentReq(BaseModel):
    agent_name: Optional[str] = None


class SplitReq(BaseModel):
    agent_names: Optional[List[Any]] = None


class AssignReq(BaseModel):
    donation_ids: Optional[List[Any]] = None


@router.get("/", summary="List agents with assignment statistics")
async def list_agents(session_factory: async_sessionmaker = Depends(get_session_factory)):
    return await agent_service.list_agents(session_factory)


@router.post("/", status_code=201, summary="Create an agent")
async def create_agent(req: AgentReq, session_factory: async_sessionmaker = Depends(get_session_factory)):
    return await agent_service.create_agent(session_factory, req.agent_name)


@router.post("/split", summary="Split pending donations between new agents")
async def split_donations(req: SplitReq, session_factory: async_sessionmaker = Depends(get_session_factory)):
    result = await assignment_service.split_pending(session_factory, req.agent_names)
    return {
        "message": "Donations split successfully",
        "agents": result.agents,
        "sheepCount": result.sheep_count,
        "cowGroupsCount": result.cow_groups_count,
    }


@router.get("/{agent_id}", summary="Get an agent")
async def get_agent(agent_id: int, session_factory: async_sessionmaker = Depends(get_session_factory)):
    return await agent_service.get_agent(session_factory, agent_id)


@router.put("/{agent_id}", summary="Rename an agent")
async def update_agent(agent_id: int, req: AgentReq, session_factory: async_sessionmaker = Depends(get_session_factory)):
    return await agent_service.update_agent(session_factory, agent_id, req.agent_name)


@router.delete("/{agent_id}", summary="Delete an agent")
async def delete_agent(agent_id: int, session_factory: async_sessionmaker = Depends(get_session_factory)):
    await agent_service.delete_agent(session_factory, agent_id)
    return {"message": "Agent deleted successfully"}


@router.post("/{agent_id}/assign", summary="Assign donations to an agent")
async def assign_donations(agent_id: int, req: AssignReq, session_factory: async_sessionmaker = Depends(get_session_factory)):
    return await assignment_service.assign_donations_to_agent(session_factory, agent_id, req.donation_ids)


@router.get("/{agent_id}/donations", summary="Donations held by an agent")
async def agent_donations(agent_id: int, session_factory: async_sessionmaker = Depends(get_session_factory)):
    return await agent_service.get_agent_donations(session_factory, agent_id)
