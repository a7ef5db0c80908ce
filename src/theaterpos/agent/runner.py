"""Print agent - holds a theater's session and prints its order tickets.

Lifecycle of one agent:

    starting -> authenticate -> subscribe -> running
       ^                                       |
       +---- backoff <---- disconnect <--------+

Authentication prefers, in order: refreshing the tokens it already holds,
exchanging its one-time grant, then password and PIN. When none of these
is left the agent stops in the error state.
"""

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from src.theaterpos.agent.client import AuthRejected, BackendClient, BackendError, TokenPair
from src.theaterpos.agent.printer import ReceiptPrinter
from src.theaterpos.agent.registration import AgentRegistration
from src.theaterpos.core.logging import bind_agent_context, get_logger
from src.theaterpos.models.enums import AgentState

logger = get_logger(__name__)

PAY_ON_COLLECTION = frozenset({"cash", "cod"})


class AgentAuthError(Exception):
    """No credential left that the backend will accept."""


@dataclass
class AgentCredentials:
    grant: str | None = None
    username: str | None = None
    password: str | None = None
    pin: str | None = None

    @property
    def has_password(self) -> bool:
        return bool(self.username and self.password)


def backoff_delay(attempt: int, initial: float = 1.0, maximum: float = 60.0) -> float:
    """Exponential backoff: initial, 2*initial, 4*initial ... capped at maximum."""
    return min(maximum, initial * 2 ** max(attempt - 1, 0))


def should_print(event: dict[str, Any]) -> bool:
    """Paid orders print; cash and COD orders print as soon as they are created."""
    if event.get("type") != "pos_order":
        return False
    if event.get("event") == "paid":
        return True
    return event.get("event") == "created" and event.get("paymentMethod") in PAY_ON_COLLECTION


class PrintAgent:
    def __init__(
        self,
        registration: AgentRegistration,
        client: BackendClient,
        printer: ReceiptPrinter,
        credentials: AgentCredentials,
        backoff_initial: float = 1.0,
        backoff_max: float = 60.0,
        keepalive: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.registration = registration
        self.client = client
        self.printer = printer
        self.credentials = credentials
        self.backoff_initial = backoff_initial
        self.backoff_max = backoff_max
        self.keepalive = keepalive
        self._sleep = sleep
        self._tokens: TokenPair | None = None
        self._grant_spent = False
        self._recent: deque[str] = deque(maxlen=500)

    @property
    def tenant_id(self) -> str:
        return self.registration.tenant_id

    @property
    def has_tokens(self) -> bool:
        return self._tokens is not None

    async def run(self) -> None:
        """Run until cancelled, or until authentication is impossible."""
        bind_agent_context(self.tenant_id)
        failures = 0
        while True:
            self.registration.transition(AgentState.STARTING)
            connected = False
            try:
                await self._authenticate()
                connected = await self._listen()
                logger.info("Event stream ended, reconnecting")
            except AgentAuthError as e:
                self.registration.transition(AgentState.ERROR, str(e))
                logger.error("Agent cannot authenticate, giving up", error=str(e))
                return
            except AuthRejected as e:
                # Next round refreshes; if that is refused too, credentials fall through
                self.registration.last_error = str(e)
                logger.warning("Backend rejected agent token", code=e.code)
            except (httpx.HTTPError, BackendError) as e:
                self.registration.last_error = str(e) or type(e).__name__
                logger.warning("Agent connection failed", error=self.registration.last_error)

            failures = 1 if connected else failures + 1
            delay = backoff_delay(failures, self.backoff_initial, self.backoff_max)
            logger.info("Agent retrying", delay_seconds=delay, attempt=failures)
            await self._sleep(delay)

    async def _authenticate(self) -> None:
        if self._tokens is not None:
            try:
                self._tokens = await self.client.refresh(self._tokens.refresh_token)
                return
            except AuthRejected as e:
                logger.warning("Refresh refused, falling back", code=e.code)
                self._tokens = None

        creds = self.credentials
        if creds.grant and not self._grant_spent:
            self._grant_spent = True
            self._tokens = await self.client.exchange_grant(creds.grant)
            logger.info("Agent authenticated with grant")
            return
        if creds.has_password:
            self._tokens = await self.client.login_with_password(
                creds.username or "", creds.password or "", creds.pin
            )
            logger.info("Agent authenticated with password")
            return
        raise AgentAuthError("No usable credential")

    async def _listen(self) -> bool:
        """Consume the event stream. Returns True if it got as far as `connected`."""
        assert self._tokens is not None
        connected = False
        stream = self.client.events(self._tokens.token, read_timeout=self.keepalive * 3)
        async for message in stream:
            self.registration.heartbeat()
            if message.event is None:
                continue
            event = message.event
            if event.get("type") == "connected":
                connected = True
                self.registration.transition(AgentState.RUNNING)
                logger.info("Agent subscribed")
                # Subscribed first, so nothing can slip between backlog and live events
                await self._catch_up()
            elif should_print(event):
                await self._print(event.get("order") or {"id": event.get("orderId")})
        return connected

    async def _catch_up(self) -> None:
        assert self._tokens is not None
        backlog = await self.client.fetch_unprinted(self._tokens.token, self.tenant_id)
        if backlog:
            logger.info("Printing missed orders", count=len(backlog))
        for order in backlog:
            await self._print(order)

    async def _print(self, order: dict[str, Any]) -> None:
        order_id = str(order.get("id") or "")
        if not order_id or order_id in self._recent:
            return
        try:
            await self.printer.print_order(order, self.registration.tenant_name)
        except Exception as e:
            # Left unmarked, so the next catch-up retries it
            logger.error("Printing failed", order_id=order_id, error=str(e))
            return
        self._recent.append(order_id)
        self.registration.printed_count += 1

        assert self._tokens is not None
        try:
            await self.client.mark_printed(self._tokens.token, self.tenant_id, order_id)
        except (httpx.HTTPError, BackendError) as e:
            logger.warning("Could not mark order printed", order_id=order_id, error=str(e))

    async def shutdown(self) -> None:
        """Drop the session and close the HTTP client."""
        tokens, self._tokens = self._tokens, None
        if tokens is not None:
            await self.client.logout(tokens.token)
        await self.client.aclose()
