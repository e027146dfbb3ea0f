"""
Tindo Agent - HTTP client for the order API

Thin httpx wrapper used by the location publisher. A 401 on any call raises
AuthError so the caller can stop; other failures raise httpx errors.
"""
from typing import Any

import httpx

from tindo.agent.config import AgentSettings, get_agent_settings
from tindo.core.errors import AuthError
from tindo.schemas.tracking import LocationSample


class TindoApiClient:
    def __init__(
        self,
        token: str,
        settings: AgentSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = settings or get_agent_settings()
        self._client = httpx.AsyncClient(
            base_url=settings.API_BASE_URL,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            headers={"Authorization": f"Bearer {token}"},
            transport=transport,
        )

    async def _post(self, path: str, payload: dict[str, Any]) -> httpx.Response:
        response = await self._client.post(path, json=payload)
        if response.status_code == 401:
            raise AuthError("Authentication failed - token expired")
        response.raise_for_status()
        return response

    async def submit_location(self, sample: LocationSample) -> None:
        """Durable path: last-known-location write."""
        await self._post("/tracking/agent-location", sample.model_dump(mode="json"))

    async def broadcast_location(self, sample: LocationSample) -> None:
        """Live path: fan-out to subscribers tracking the order."""
        await self._post("/realtime/location", sample.model_dump(mode="json"))

    async def set_presence(self, agent_id: int, order_id: str | None, online: bool) -> None:
        await self._post(
            "/realtime/presence",
            {"agent_id": agent_id, "order_id": order_id, "online": online},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "TindoApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
