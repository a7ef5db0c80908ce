"""Agent supervisor - at most one print agent per theater, kept alive.

The supervisor owns the registration table and one asyncio task per
theater. A monitor loop restarts agents whose heartbeat went stale. Agents
run inside the API process; the same PrintAgent can also run standalone
(see `python -m src.theaterpos.agent`).
"""

import asyncio
import contextlib
from collections.abc import Callable

from src.theaterpos.agent.client import BackendClient
from src.theaterpos.agent.printer import build_printer
from src.theaterpos.agent.registration import AgentRegistration
from src.theaterpos.agent.runner import AgentCredentials, PrintAgent
from src.theaterpos.core.config import Settings, get_settings
from src.theaterpos.core.logging import get_logger
from src.theaterpos.core.security import canonical_id
from src.theaterpos.core.shutdown import request_tracker
from src.theaterpos.models.base import utc_now
from src.theaterpos.models.enums import AgentState

logger = get_logger(__name__)

AgentFactory = Callable[[AgentRegistration, AgentCredentials], PrintAgent]


def default_agent_factory(settings: Settings) -> AgentFactory:
    def build(registration: AgentRegistration, credentials: AgentCredentials) -> PrintAgent:
        return PrintAgent(
            registration=registration,
            client=BackendClient(
                settings.agent_backend_url,
                probe_timeout=settings.agent_probe_timeout_seconds,
            ),
            printer=build_printer(settings.printer_spool_dir),
            credentials=credentials,
            backoff_initial=settings.agent_backoff_initial_seconds,
            backoff_max=settings.agent_backoff_max_seconds,
            keepalive=settings.sse_keepalive_seconds,
        )

    return build


class AgentSupervisor:
    def __init__(
        self,
        agent_factory: AgentFactory | None = None,
        monitor_interval: float | None = None,
        stale_after: float | None = None,
        restart_delay: float | None = None,
    ):
        settings = get_settings()
        self._agent_factory = agent_factory or default_agent_factory(settings)
        self.monitor_interval = monitor_interval or settings.agent_monitor_interval_seconds
        self.stale_after = stale_after or settings.agent_stale_timeout_seconds
        self.restart_delay = (
            restart_delay if restart_delay is not None else settings.agent_restart_delay_seconds
        )
        self._registrations: dict[str, AgentRegistration] = {}
        self._agents: dict[str, PrintAgent] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._monitor_task: asyncio.Task[None] | None = None
        self._start_lock = asyncio.Lock()

    # --- Queries ---

    def registration(self, tenant_id: str) -> AgentRegistration | None:
        key = canonical_id(tenant_id)
        return self._registrations.get(key) if key else None

    def is_agent_running(self, tenant_id: str) -> bool:
        registration = self.registration(tenant_id)
        return registration is not None and registration.state is AgentState.RUNNING

    def statuses(self) -> list[AgentRegistration]:
        return list(self._registrations.values())

    # --- Lifecycle ---

    async def start_agent(
        self,
        username: str,
        password: str,
        tenant_id: str,
        tenant_name: str,
        pin: str | None = None,
    ) -> bool:
        """Start the theater's agent with staff credentials. Idempotent."""
        credentials = AgentCredentials(username=username, password=password, pin=pin)
        return await self._start(tenant_id, tenant_name, credentials)

    async def start_agent_with_grant(self, grant: str, tenant_id: str, tenant_name: str) -> bool:
        """Start the theater's agent with a one-time grant. Idempotent."""
        return await self._start(tenant_id, tenant_name, AgentCredentials(grant=grant))

    async def _start(
        self, tenant_id: str, tenant_name: str, credentials: AgentCredentials
    ) -> bool:
        key = canonical_id(tenant_id)
        if key is None:
            return False

        async with self._start_lock:
            registration = self._registrations.get(key)
            task = self._tasks.get(key)
            if registration is not None and registration.is_active and task and not task.done():
                logger.info("Agent already active", tenant_id=key, state=registration.state.value)
                return True

            # A crashed agent waiting out its restart delay, or one that ended in error,
            # is replaced by an agent holding the fresh credentials
            await self._retire(key)
            self._launch(key, tenant_name, credentials)
            return True

    async def _retire(self, key: str) -> None:
        await self._cancel(key)
        agent = self._agents.pop(key, None)
        if agent is not None:
            await agent.shutdown()
            logger.info("Replaced previous agent", tenant_id=key)

    def _launch(self, key: str, tenant_name: str, credentials: AgentCredentials) -> None:
        registration = self._registrations.get(key)
        if registration is None:
            registration = AgentRegistration(tenant_id=key, tenant_name=tenant_name)
            self._registrations[key] = registration
        registration.tenant_name = tenant_name or registration.tenant_name
        registration.started_at = utc_now()
        registration.last_error = None
        registration.transition(AgentState.STARTING)

        agent = self._agent_factory(registration, credentials)
        self._agents[key] = agent
        self._tasks[key] = asyncio.create_task(self._run(key, agent), name=f"print-agent:{key}")
        logger.info("Agent starting", tenant_id=key, tenant_name=registration.tenant_name)

    async def _run(self, key: str, agent: PrintAgent) -> None:
        """Keep one agent running; a crash restarts it after restart_delay."""
        registration = agent.registration
        while True:
            try:
                await agent.run()
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception("Agent crashed", tenant_id=key)
                registration.transition(AgentState.ERROR, str(e) or type(e).__name__)
                registration.restart_count += 1
                await asyncio.sleep(self.restart_delay)

    async def _cancel(self, key: str) -> None:
        task = self._tasks.pop(key, None)
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def stop_agent(self, tenant_id: str) -> bool:
        """Close the agent's stream, discard its token and mark it stopped."""
        key = canonical_id(tenant_id)
        if key is None or key not in self._registrations:
            return False
        await self._cancel(key)
        agent = self._agents.pop(key, None)
        if agent is not None:
            await agent.shutdown()
        self._registrations[key].transition(AgentState.STOPPED)
        logger.info("Agent stopped", tenant_id=key)
        return True

    async def restart_agent(self, key: str) -> None:
        """Restart the task of an existing agent, keeping its tokens."""
        agent = self._agents.get(key)
        if agent is None:
            return
        await self._cancel(key)
        agent.registration.restart_count += 1
        agent.registration.transition(AgentState.STARTING)
        self._tasks[key] = asyncio.create_task(self._run(key, agent), name=f"print-agent:{key}")

    async def stop_all(self) -> None:
        for key in list(self._registrations):
            await self.stop_agent(key)

    # --- Monitoring ---

    async def check_agents(self) -> list[str]:
        """Restart running agents whose heartbeat is older than stale_after.

        Returns the restarted theater ids.
        """
        restarted = []
        for key, registration in list(self._registrations.items()):
            if registration.state is not AgentState.RUNNING:
                continue
            age = registration.seconds_since_heartbeat()
            if age is not None and age > self.stale_after:
                logger.warning("Agent heartbeat stale, restarting", tenant_id=key, seconds=age)
                await self.restart_agent(key)
                restarted.append(key)
        return restarted

    async def _monitor(self) -> None:
        while True:
            await asyncio.sleep(self.monitor_interval)
            try:
                await self.check_agents()
            except Exception:
                logger.exception("Agent monitor pass failed")

    def start_monitoring(self) -> None:
        if self._monitor_task is None or self._monitor_task.done():
            self._monitor_task = asyncio.create_task(self._monitor(), name="agent-monitor")

    async def stop_monitoring(self) -> None:
        task, self._monitor_task = self._monitor_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task


async def autostart_agent(
    supervisor: AgentSupervisor, grant: str, tenant_id: str, tenant_name: str
) -> None:
    """Background job scheduled after a successful PIN response.

    Errors are logged and dropped; they must never reach the request.
    """
    async with request_tracker.track_background():
        try:
            if supervisor.is_agent_running(tenant_id):
                return
            await supervisor.start_agent_with_grant(grant, tenant_id, tenant_name)
        except Exception as e:
            logger.warning("Agent auto-start failed", tenant_id=tenant_id, error=str(e))


# Process-wide supervisor
agent_supervisor = AgentSupervisor()
