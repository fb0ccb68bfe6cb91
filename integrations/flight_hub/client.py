"""
Keyhost Flights - Flight Search Hub Client
HTTP access to the search hub: session initiation and per-provider results
"""

from typing import Any, Dict, Optional

import httpx
from loguru import logger

from app.core.config import settings
from app.core.exceptions import (
    ProviderMalformedResponse,
    ProviderRejected,
    ProviderTimeout,
)


class FlightHubClient:
    """
    Flight Search Hub Client

    The hub fronts every flight inventory source:
    - POST /search            opens a search session ("folder")
    - POST /search/amadeus    Amadeus offers for a folder
    - POST /search/sabre      Sabre offers for a folder and trip type

    Every failure is raised as a ProviderError subclass labelled with the
    caller-supplied service name so adapters can report it unchanged.
    """

    SESSION_ENDPOINT = "/search"
    AMADEUS_ENDPOINT = "/search/amadeus"
    SABRE_ENDPOINT = "/search/sabre"

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.FLIGHT_HUB_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.FLIGHT_HUB_API_KEY
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=settings.PROVIDER_TIMEOUT_SECONDS,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def is_configured(self) -> bool:
        """Check if a hub base URL is configured"""
        return bool(self.base_url)

    def _get_headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def post(
        self,
        endpoint: str,
        payload: Dict[str, Any],
        service: str,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        POST a JSON payload and return the decoded JSON body.

        Raises:
            ProviderTimeout: the hub did not answer in time
            ProviderRejected: transport failure or non-2xx status
            ProviderMalformedResponse: body is not JSON
        """
        request_timeout = timeout if timeout is not None else settings.PROVIDER_TIMEOUT_SECONDS
        try:
            response = await self.client.post(
                endpoint,
                json=payload,
                headers=self._get_headers(),
                timeout=request_timeout,
            )
        except httpx.TimeoutException:
            logger.warning(f"Flight hub {endpoint} timed out for {service}")
            raise ProviderTimeout(service, f"no response within {request_timeout:g}s")
        except httpx.HTTPError as e:
            logger.warning(f"Flight hub {endpoint} transport error for {service}: {e}")
            raise ProviderRejected(service, f"transport error: {e}")

        if response.status_code >= 400:
            logger.error(
                f"Flight hub error: {endpoint} {response.status_code} - {response.text[:200]}"
            )
            raise ProviderRejected(
                service,
                f"HTTP {response.status_code}",
                upstream_status=response.status_code,
            )

        try:
            return response.json()
        except ValueError:
            raise ProviderMalformedResponse(service, "response body is not JSON")

    # ================================================================
    # SESSION
    # ================================================================

    async def create_session(self, query: Dict[str, Any]) -> Any:
        """Open a search session; returns the raw hub response"""
        return await self.post(
            self.SESSION_ENDPOINT,
            query,
            service="Flight search",
            timeout=settings.SESSION_TIMEOUT_SECONDS,
        )

    # ================================================================
    # PROVIDER RESULTS
    # ================================================================

    async def fetch_amadeus(self, folder: str, page: int = 1) -> Any:
        """One page of Amadeus offers for a session"""
        return await self.post(
            self.AMADEUS_ENDPOINT,
            {"folder": folder, "page": page},
            service="amadeus",
        )

    async def fetch_sabre(self, folder: str, flight_type: str) -> Any:
        """Sabre offers for a session; the hub needs the trip type string"""
        return await self.post(
            self.SABRE_ENDPOINT,
            {"folder": folder, "flight_type": flight_type},
            service="sabre",
        )


# Singleton instance
flight_hub = FlightHubClient()
