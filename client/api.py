import logging
from typing import Any, List, Optional

import httpx

from backend.config import settings
from backend.identity import is_guest_id
from backend.schemas import CardWithProgress, ProgressResponse, SetResponse, StatsResponse

logger = logging.getLogger(__name__)

# Gateway and availability failures; every other error status is final
RETRYABLE_STATUS_CODES = frozenset({502, 503, 504})


class ConnectivityError(Exception):
    """The server could not be reached or is temporarily unavailable; the request may be retried later."""


class RequestRejectedError(Exception):
    """
    The server refused or failed the request for good (4xx, or a 5xx other
    than 502/503/504 such as a data-integrity failure). Retrying will not help.
    """

    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


class FlashcardsApi:
    """Async HTTP client for the flashcards server."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        user_id: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url or settings.api_base_url
        self.user_id = user_id
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else settings.request_timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "FlashcardsApi":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _identity_headers(self) -> dict:
        if not self.user_id:
            return {}
        if is_guest_id(self.user_id):
            return {settings.guest_header: self.user_id}
        return {settings.auth_user_header: self.user_id}

    async def _request(self, method: str, url: str, json: Any = None) -> Any:
        try:
            response = await self._client.request(method, url, json=json, headers=self._identity_headers())
        except httpx.TransportError as e:
            raise ConnectivityError(f"{method} {url} failed: {e}") from e

        if response.status_code in RETRYABLE_STATUS_CODES:
            raise ConnectivityError(f"{method} {url} returned {response.status_code}")
        if response.status_code >= 400:
            try:
                message = response.json().get("detail", response.reason_phrase)
            except ValueError:
                message = response.text or response.reason_phrase
            raise RequestRejectedError(response.status_code, str(message))
        return response.json()

    async def health(self) -> bool:
        """True when the server answers its health probe"""
        data = await self._request("GET", "/health")
        return data.get("status") == "ok"

    async def get_sets(self) -> List[SetResponse]:
        data = await self._request("GET", "/api/sets")
        return [SetResponse.model_validate(item) for item in data]

    async def get_cards(self, set_id: str, user_id: Optional[str] = None) -> List[CardWithProgress]:
        data = await self._request("GET", f"/api/sets/{set_id}/cards/{user_id or self.user_id}")
        return [CardWithProgress.model_validate(item) for item in data]

    async def rate(self, card_id: str, quality: int) -> ProgressResponse:
        data = await self._request("POST", "/api/progress/rate", json={"card_id": card_id, "quality": quality})
        return ProgressResponse.model_validate(data)

    async def get_stats(self, user_id: Optional[str] = None) -> StatsResponse:
        data = await self._request("GET", f"/api/stats/{user_id or self.user_id}")
        return StatsResponse.model_validate(data)
