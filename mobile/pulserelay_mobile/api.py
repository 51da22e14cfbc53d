"""
HTTP client for the PulseRelay location API.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from pulserelay_mobile.config import MobileConfig
from pulserelay_mobile.models import LocationFix, LocationSettings

logger = logging.getLogger("pulserelay.api")


class ApiError(Exception):
    """The server answered with an error status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message

    @property
    def sharing_disabled(self) -> bool:
        return self.status_code == 403


class NetworkError(Exception):
    """The request never got an answer (unreachable, timeout)."""


class LocationApiClient:
    """
    Thin async wrapper over the location endpoints.

    No retries: failures surface to the caller, which reverts whatever it
    applied optimistically.
    """

    def __init__(self, config: MobileConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def initialize(self):
        """Initialize the HTTP client."""
        self._client = httpx.AsyncClient(
            base_url=self.config.api_url.rstrip("/"),
            timeout=httpx.Timeout(self.config.timeout_s),
            limits=httpx.Limits(max_connections=5),
            headers={"Authorization": f"Bearer {self.config.token}"},
            transport=self._transport,
        )

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "LocationApiClient":
        await self.initialize()
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if self._client is None:
            await self.initialize()

        try:
            response = await self._client.request(method, path, json=json)
        except httpx.TimeoutException as e:
            logger.warning(f"{method} {path} timed out")
            raise NetworkError("Request timed out") from e
        except httpx.TransportError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise NetworkError("Network unreachable") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400 or body.get("success") is False:
            message = body.get("error") or f"HTTP {response.status_code}"
            if response.status_code == 401:
                logger.error("Authentication failed - check PULSERELAY_TOKEN")
            raise ApiError(response.status_code, message)

        return body

    async def get_settings(self) -> LocationSettings:
        """GET /api/location/settings"""
        body = await self._request("GET", "/api/location/settings")
        return LocationSettings.from_json(body.get("settings") or {})

    async def update_settings(self, settings: LocationSettings) -> LocationSettings:
        """
        PUT the full record. Returns the server echo, which is what the
        caller must adopt (it can differ from what was sent).
        """
        body = await self._request("PUT", "/api/location/settings", json=settings.to_json())
        echoed = body.get("settings")
        if echoed is None:
            # Older servers answer {success, message} only
            return await self.get_settings()
        return LocationSettings.from_json(echoed)

    async def send_location(self, fix: LocationFix) -> None:
        """POST /api/location/update"""
        await self._request("POST", "/api/location/update", json=fix.to_payload())

    async def get_current(self) -> Dict[str, Any]:
        """GET /api/location/current"""
        return await self._request("GET", "/api/location/current")
