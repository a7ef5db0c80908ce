"""Print agents and their supervisor."""

from src.theaterpos.agent.client import AuthRejected, BackendClient, BackendError, TokenPair
from src.theaterpos.agent.printer import LogReceiptPrinter, ReceiptPrinter, SpoolReceiptPrinter
from src.theaterpos.agent.registration import AgentRegistration
from src.theaterpos.agent.runner import AgentCredentials, PrintAgent, should_print
from src.theaterpos.agent.supervisor import AgentSupervisor, agent_supervisor, autostart_agent

__all__ = [
    "AgentCredentials",
    "AgentRegistration",
    "AgentSupervisor",
    "AuthRejected",
    "BackendClient",
    "BackendError",
    "LogReceiptPrinter",
    "PrintAgent",
    "ReceiptPrinter",
    "SpoolReceiptPrinter",
    "TokenPair",
    "agent_supervisor",
    "autostart_agent",
    "should_print",
]
