"""Submits queued orders to the backend and classifies the outcome."""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from src.theaterpos.client.order_queue import QueuedOrder


class Outcome(str, Enum):
    SYNCED = "synced"
    RETRY = "retry"
    FAILED = "failed"


@dataclass
class SendResult:
    outcome: Outcome
    status_code: int | None = None
    error: str | None = None
    body: dict[str, Any] = field(default_factory=dict)

    @property
    def unreachable(self) -> bool:
        """The request never got an HTTP answer."""
        return self.status_code is None


def classify(status_code: int) -> Outcome:
    """2xx and 409 count as delivered; 5xx is retried; any other 4xx needs the user."""
    if 200 <= status_code < 300 or status_code == 409:
        return Outcome.SYNCED
    if status_code >= 500:
        return Outcome.RETRY
    return Outcome.FAILED


class OrderSender:
    def __init__(
        self,
        client: httpx.AsyncClient,
        path: str = "/api/v1/orders",
        token_provider: Callable[[], str | None] | None = None,
        timeout: float = 15.0,
    ):
        self.client = client
        self.path = path
        self.token_provider = token_provider
        self.timeout = timeout

    async def send(self, order: "QueuedOrder") -> SendResult:
        headers = {"Idempotency-Key": order.idempotency_key}
        token = self.token_provider() if self.token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        payload = {**order.payload, "idempotencyKey": order.idempotency_key}

        try:
            response = await self.client.post(
                self.path, json=payload, headers=headers, timeout=self.timeout
            )
        except httpx.HTTPError as e:
            return SendResult(Outcome.RETRY, error=str(e) or type(e).__name__)

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        outcome = classify(response.status_code)
        error = None
        if outcome is not Outcome.SYNCED:
            error = body.get("message") or body.get("error") or f"HTTP {response.status_code}"
        return SendResult(outcome, status_code=response.status_code, error=error, body=body)
