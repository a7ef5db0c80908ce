"""Print agent status endpoints."""

from fastapi import APIRouter

from src.theaterpos.agent.registration import AgentRegistration
from src.theaterpos.api.dependencies import (
    AgentSupervisorDep,
    PathTheater,
    SuperAdmin,
    TheaterAdmin,
)
from src.theaterpos.schemas.agent import AgentStatusList, AgentStatusRead

router = APIRouter(prefix="/agents", tags=["agents"])


@router.get("", response_model=AgentStatusList)
async def list_agents(_: SuperAdmin, supervisor: AgentSupervisorDep) -> AgentStatusList:
    """Every registered agent, whatever its state."""
    agents = [registration.to_read() for registration in supervisor.statuses()]
    return AgentStatusList(agents=agents, total_agents=len(agents))


@router.get("/{tenant_id}", response_model=AgentStatusRead)
async def get_agent(theater: PathTheater, supervisor: AgentSupervisorDep) -> AgentStatusRead:
    """The theater's agent. A theater that never had one reports `stopped`."""
    registration = supervisor.registration(str(theater.id))
    if registration is None:
        registration = AgentRegistration(tenant_id=str(theater.id), tenant_name=theater.name)
    return registration.to_read()


@router.post("/{tenant_id}/stop", response_model=AgentStatusRead)
async def stop_agent(
    theater: PathTheater, _: TheaterAdmin, supervisor: AgentSupervisorDep
) -> AgentStatusRead:
    """Stop the theater's agent and drop its session."""
    await supervisor.stop_agent(str(theater.id))
    registration = supervisor.registration(str(theater.id))
    if registration is None:
        registration = AgentRegistration(tenant_id=str(theater.id), tenant_name=theater.name)
    return registration.to_read()
