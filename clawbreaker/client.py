"""HTTP client for the Clawbreaker API."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, AsyncIterator

import httpx

from . import __version__
from .config import DEFAULT_HTTP_TIMEOUT, Credentials
from .errors import APIError

if TYPE_CHECKING:
    from .agent import Agents

logger = logging.getLogger(__name__)

USER_AGENT = f"clawbreaker-python/{__version__}"


def _decode_body(response: httpx.Response) -> Any:
    """Decode a response body as JSON, falling back to text."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class Client:
    """Authenticated client for the Clawbreaker REST API.

    Usage:
        async with Client(credentials) as client:
            agents = await client.agents.list()
    """

    def __init__(
        self,
        credentials: Credentials,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ):
        """Initialize the client.

        Args:
            credentials: Base URL and API key to use
            http_client: Optional HTTP client (owned by the caller)
            timeout: Request timeout when no client is given
        """
        self.credentials = credentials
        self._http = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_http = http_client is None

    @property
    def agents(self) -> Agents:
        """Agent operations bound to this client."""
        from .agent import Agents

        return Agents(self)

    def _url(self, path: str) -> str:
        return f"{self.credentials.base_url}{path}"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.credentials.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request and return the decoded body.

        Raises:
            APIError: On non-2xx responses or transport failures
        """
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        logger.debug(f"{method} {path}")
        try:
            response = await self._http.request(
                method,
                self._url(path),
                json=body,
                params=params or None,
                headers=self._headers(),
            )
        except httpx.RequestError as e:
            raise APIError(f"Request to {path} failed: {e}") from e

        data = _decode_body(response)
        if 200 <= response.status_code < 300:
            return data

        raise APIError.from_response(response.status_code, data)

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, body: Any = None) -> Any:
        return await self.request("POST", path, body)

    async def put(self, path: str, body: Any = None) -> Any:
        return await self.request("PUT", path, body)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)

    async def stream(self, path: str, body: Any) -> AsyncIterator[dict[str, Any]]:
        """POST a request and yield newline-delimited JSON events.

        Lines that are blank or not valid JSON objects are skipped.

        Raises:
            APIError: On non-2xx responses or transport failures
        """
        try:
            async with self._http.stream(
                "POST",
                self._url(path),
                json=body,
                headers={**self._headers(), "Accept": "application/x-ndjson"},
            ) as response:
                if not 200 <= response.status_code < 300:
                    await response.aread()
                    raise APIError.from_response(response.status_code, _decode_body(response))

                async for line in response.aiter_lines():
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        event = json.loads(line)
                    except json.JSONDecodeError:
                        logger.debug(f"Skipping invalid stream line: {line[:80]}")
                        continue
                    if isinstance(event, dict):
                        yield event
        except httpx.RequestError as e:
            raise APIError(f"Stream from {path} failed: {e}") from e

    async def aclose(self) -> None:
        """Close the underlying HTTP client if we created it."""
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()
