"""HTTP client a print agent uses to talk to the POS backend."""

import json
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import httpx

from src.theaterpos.core.logging import get_logger

logger = get_logger(__name__)


class BackendError(Exception):
    """Backend answered with an error envelope."""

    def __init__(self, status_code: int, code: str | None, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class AuthRejected(BackendError):
    """Credentials, token or session refused (401/403)."""


@dataclass
class TokenPair:
    token: str
    refresh_token: str


@dataclass
class StreamMessage:
    """One frame from the event stream. `event` is None for keep-alives."""

    event: dict[str, Any] | None

    @property
    def is_keepalive(self) -> bool:
        return self.event is None


def _health_url(base_url: str) -> str:
    root = base_url.rstrip("/")
    if root.endswith("/api/v1"):
        root = root[: -len("/api/v1")]
    return f"{root}/health"


def _raise_for_error(response: httpx.Response) -> None:
    if response.status_code < 400:
        return
    try:
        body = response.json()
    except ValueError:
        body = {}
    code = body.get("code") if isinstance(body, dict) else None
    message = (
        (body.get("message") or body.get("error")) if isinstance(body, dict) else None
    ) or f"HTTP {response.status_code}"
    if response.status_code in (401, 403):
        raise AuthRejected(response.status_code, code, message)
    raise BackendError(response.status_code, code, message)


class BackendClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        probe_timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.probe_timeout = probe_timeout
        self._health_url = _health_url(self.base_url)
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _auth(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    async def probe(self) -> bool:
        """True if the backend answers its health check within the probe timeout."""
        try:
            response = await self._client.get(self._health_url, timeout=self.probe_timeout)
        except httpx.HTTPError:
            return False
        return response.status_code < 500

    async def _post(self, path: str, payload: dict[str, Any], token: str | None = None) -> Any:
        response = await self._client.post(
            path, json=payload, headers=self._auth(token) if token else None
        )
        _raise_for_error(response)
        return response.json()

    @staticmethod
    def _tokens(body: dict[str, Any]) -> TokenPair:
        return TokenPair(token=body["token"], refresh_token=body["refreshToken"])

    # --- Authentication ---

    async def login_with_password(
        self, username: str, password: str, pin: str | None = None
    ) -> TokenPair:
        """Password step, then the PIN step when the account asks for one."""
        body = await self._post("/auth/login", {"username": username, "password": password})
        if not body.get("isPinRequired"):
            return self._tokens(body)
        if not pin:
            raise AuthRejected(401, "INVALID_PIN", "Account requires a PIN")
        pending = body["pendingAuth"]
        body = await self._post(
            "/auth/validate-pin",
            {
                "userId": pending["userId"],
                "tenantId": pending["tenantId"],
                "loginUsername": pending.get("loginUsername"),
                "ephemeralSecret": pending.get("ephemeralSecret"),
                "pin": pin,
            },
        )
        return self._tokens(body)

    async def exchange_grant(self, grant: str) -> TokenPair:
        return self._tokens(await self._post("/auth/agent-token", {"grant": grant}))

    async def refresh(self, refresh_token: str) -> TokenPair:
        return self._tokens(await self._post("/auth/refresh", {"refreshToken": refresh_token}))

    async def logout(self, token: str) -> None:
        try:
            await self._client.post("/auth/logout", headers=self._auth(token))
        except httpx.HTTPError as e:
            logger.info("Agent logout not delivered", error=str(e))

    # --- Orders ---

    async def fetch_unprinted(self, token: str, tenant_id: str) -> list[dict[str, Any]]:
        response = await self._client.get(
            "/orders/unprinted", params={"tenantId": tenant_id}, headers=self._auth(token)
        )
        _raise_for_error(response)
        return list(response.json().get("orders", []))

    async def mark_printed(self, token: str, tenant_id: str, order_id: str) -> None:
        response = await self._client.post(
            f"/orders/{order_id}/printed",
            params={"tenantId": tenant_id},
            headers=self._auth(token),
        )
        _raise_for_error(response)

    # --- Event stream ---

    async def events(self, token: str, read_timeout: float = 90.0) -> AsyncIterator[StreamMessage]:
        """Yield stream frames until the server closes the stream.

        A read timeout longer than the keep-alive interval turns a silently
        dead connection into an httpx.ReadTimeout.
        """
        timeout = httpx.Timeout(self.probe_timeout, read=read_timeout)
        async with self._client.stream(
            "GET", "/stream", headers=self._auth(token), timeout=timeout
        ) as response:
            if response.status_code >= 400:
                await response.aread()
                _raise_for_error(response)

            data_lines: list[str] = []
            async for line in response.aiter_lines():
                if line.startswith(":"):
                    yield StreamMessage(event=None)
                elif line.startswith("data:"):
                    data_lines.append(line[5:].lstrip())
                elif line == "" and data_lines:
                    raw = "\n".join(data_lines)
                    data_lines = []
                    try:
                        yield StreamMessage(event=json.loads(raw))
                    except json.JSONDecodeError:
                        logger.warning("Discarded unparseable stream frame", frame=raw[:200])
