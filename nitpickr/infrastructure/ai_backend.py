"""AI/search backend client.

Wraps the HTTP API of the listing search service and the AI analysis
service. One httpx.AsyncClient is created lazily and shared.
"""

import logging
from typing import Any, Optional

import httpx

from nitpickr.config.settings import get_settings

logger = logging.getLogger(__name__)


class AIBackendError(Exception):
    """Raised when the AI/search backend fails or is unreachable."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AIBackendClient:
    """Client for the search, geosearch, listings and nitpick stream endpoints."""

    def __init__(
        self,
        ai_url: Optional[str] = None,
        listings_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.ai_url = (ai_url or settings.ai_server_url).rstrip("/")
        self.listings_url = (listings_url or settings.listings_server_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.ai_request_timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request_json(self, method: str, url: str, **kwargs) -> Any:
        try:
            response = await self.client.request(method, url, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"AI backend returned {e.response.status_code} for {url}")
            raise AIBackendError(
                f"Upstream request failed with status {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"AI backend request to {url} failed: {e}")
            raise AIBackendError(str(e) or type(e).__name__) from e
        except ValueError as e:
            raise AIBackendError(f"Invalid JSON from upstream: {e}") from e

    async def search(self, user_id: str, payload: Any) -> Any:
        """Full-text listing search. ``payload`` is forwarded as the JSON body."""
        return await self._request_json(
            "POST", f"{self.ai_url}/api/search", params={"userId": user_id}, json=payload
        )

    async def geosearch(self, user_id: str, lat: Any, lng: Any, radius: Any) -> Any:
        return await self._request_json(
            "POST",
            f"{self.ai_url}/api/geosearch",
            params={"userId": user_id},
            json={"lat": lat, "lng": lng, "radius": radius},
        )

    async def listings(self, town: str) -> Any:
        """Listings of a town from the listings service."""
        return await self._request_json(
            "GET", f"{self.listings_url}/api/listings", params={"town": town}
        )

    async def open_nitpick_stream(self, user_id: str, address: str) -> httpx.Response:
        """
        Start the AI analysis of ``address`` and return the open streamed response.

        The caller iterates the body and must call ``aclose()`` on the response.

        Raises:
            AIBackendError: If the connection cannot be established
        """
        request = self.client.build_request(
            "GET",
            f"{self.ai_url}/api/streaming/nitpick",
            params={"user": user_id, "address": address},
        )
        try:
            return await self.client.send(request, stream=True)
        except httpx.HTTPError as e:
            logger.error(f"Nitpick stream for {address!r} failed to open: {e}")
            raise AIBackendError(str(e) or type(e).__name__) from e


# Global client instance
_ai_client: Optional[AIBackendClient] = None


def get_ai_client() -> AIBackendClient:
    """Get or create the shared AI backend client (FastAPI dependency)."""
    global _ai_client
    if _ai_client is None:
        _ai_client = AIBackendClient()
    return _ai_client


async def close_ai_client() -> None:
    global _ai_client
    if _ai_client is not None:
        await _ai_client.close()
        _ai_client = None
