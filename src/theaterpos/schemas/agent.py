from datetime import datetime

from src.theaterpos.schemas.base import CamelModel


class AgentStatusRead(CamelModel):
    tenant_id: str
    tenant_name: str
    state: str
    running: bool
    started_at: datetime | None = None
    last_heartbeat: datetime | None = None
    seconds_since_heartbeat: float | None = None
    last_error: str | None = None
    restart_count: int = 0
    printed_count: int = 0


class AgentStatusList(CamelModel):
    agents: list[AgentStatusRead]
    total_agents: int
