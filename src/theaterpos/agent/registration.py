"""Supervisor-side record of one theater's print agent."""

from dataclasses import dataclass
from datetime import datetime

from src.theaterpos.models.base import utc_now
from src.theaterpos.models.enums import AgentState
from src.theaterpos.schemas.agent import AgentStatusRead


@dataclass
class AgentRegistration:
    tenant_id: str
    tenant_name: str
    state: AgentState = AgentState.STOPPED
    started_at: datetime | None = None
    last_heartbeat: datetime | None = None
    last_error: str | None = None
    restart_count: int = 0
    printed_count: int = 0

    @property
    def is_active(self) -> bool:
        return self.state in (AgentState.STARTING, AgentState.RUNNING)

    def heartbeat(self) -> None:
        self.last_heartbeat = utc_now()

    def transition(self, state: AgentState, error: str | None = None) -> None:
        self.state = state
        if state is AgentState.RUNNING:
            self.last_error = None
            self.heartbeat()
        elif error is not None:
            self.last_error = error

    def seconds_since_heartbeat(self, now: datetime | None = None) -> float | None:
        if self.last_heartbeat is None:
            return None
        return ((now or utc_now()) - self.last_heartbeat).total_seconds()

    def to_read(self) -> AgentStatusRead:
        return AgentStatusRead(
            tenant_id=self.tenant_id,
            tenant_name=self.tenant_name,
            state=self.state.value,
            running=self.state is AgentState.RUNNING,
            started_at=self.started_at,
            last_heartbeat=self.last_heartbeat,
            seconds_since_heartbeat=self.seconds_since_heartbeat(),
            last_error=self.last_error,
            restart_count=self.restart_count,
            printed_count=self.printed_count,
        )
