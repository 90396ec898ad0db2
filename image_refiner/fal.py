"""Minimal async client for the fal.ai queue REST API."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx

import config

from .exceptions import GenerationFailure, TransportFailure

logger = logging.getLogger(__name__)

COMPLETED = "COMPLETED"
PENDING_STATUSES = ("IN_QUEUE", "IN_PROGRESS")


@dataclass(frozen=True)
class QueueHandle:
    """A submitted queue request."""

    app: str
    request_id: str
    status_url: str
    response_url: str
    cancel_url: str


class FalQueueClient:
    """Submits requests to the fal queue and waits for their results."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = config.FAL_QUEUE_URL,
        http_client: Optional[httpx.AsyncClient] = None,
        poll_interval: float = config.QUEUE_POLL_INTERVAL,
        timeout: float = config.GENERATION_TIMEOUT,
    ):
        """Initialize the client.

        Args:
            api_key: Fal API key. Uses config.FAL_KEY if None.
            base_url: Queue endpoint root.
            http_client: Shared async HTTP client. A private one is created if None.
            poll_interval: Seconds between status polls.
            timeout: Maximum seconds to wait for a request to complete.
        """
        self.api_key = api_key or config.FAL_KEY
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()

    @property
    def headers(self) -> dict[str, str]:
        if not self.api_key:
            raise GenerationFailure("FAL_KEY not configured")
        return {
            "Authorization": f"Key {self.api_key}",
            "Content-Type": "application/json",
        }

    async def submit(self, app: str, arguments: dict[str, Any]) -> QueueHandle:
        """Queue a request for ``app`` and return its handle."""
        data = await self._request("POST", f"{self.base_url}/{app}", json=arguments)
        try:
            handle = QueueHandle(
                app=app,
                request_id=data["request_id"],
                status_url=data["status_url"],
                response_url=data["response_url"],
                cancel_url=data["cancel_url"],
            )
        except (KeyError, TypeError) as e:
            raise GenerationFailure(
                f"Unexpected queue response from {app}", details={"response": data}
            ) from e
        logger.debug("Queued %s request %s", app, handle.request_id)
        return handle

    async def result(self, handle: QueueHandle) -> dict[str, Any]:
        """Poll until ``handle`` completes, then return its output payload."""
        deadline = time.monotonic() + self.timeout
        while True:
            status = await self._request("GET", handle.status_url)
            state = status.get("status")
            if state == COMPLETED:
                break
            if state not in PENDING_STATUSES:
                raise GenerationFailure(
                    f"{handle.app} request {handle.request_id} ended with status {state}",
                    details={"status": status},
                )
            if time.monotonic() >= deadline:
                raise GenerationFailure(
                    f"{handle.app} request {handle.request_id} did not complete "
                    f"within {self.timeout:g}s"
                )
            await asyncio.sleep(self.poll_interval)

        return await self._request("GET", handle.response_url)

    async def cancel(self, handle: QueueHandle) -> None:
        """Ask the queue to drop ``handle``."""
        response = await self._client.put(handle.cancel_url, headers=self.headers)
        response.raise_for_status()
        logger.debug("Cancelled %s request %s", handle.app, handle.request_id)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> dict[str, Any]:
        try:
            response = await self._client.request(
                method, url, headers=self.headers, **kwargs
            )
        except httpx.TransportError as e:
            raise TransportFailure(
                f"Could not reach {url}: {e}", stage="generation"
            ) from e

        if response.is_error:
            raise GenerationFailure(
                f"{method} {url} returned {response.status_code}",
                details={"body": response.text[:500]},
            )
        try:
            return response.json()
        except ValueError as e:
            raise GenerationFailure(f"{method} {url} returned invalid JSON") from e
