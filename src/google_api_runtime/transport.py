"""HTTP transport for API calls.

``Connection`` performs one authorized HTTP request per call with httpx and
returns the raw result; it knows nothing about envelopes or result types.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

import httpx

from google_api_runtime.auth.base import TokenProvider
from google_api_runtime.config import DEFAULT_TIMEOUT, USER_AGENT
from google_api_runtime.exceptions import TransportError

logger = logging.getLogger(__name__)


@dataclass
class RawResponse:
    """Undecoded result of one HTTP call."""

    content: bytes | None
    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    reason_phrase: str = ""

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400


class Connection:
    """Authorized async HTTP connection.

    Example:
        >>> async with Connection(StaticTokenProvider("ya29...")) as conn:
        ...     raw = await conn.perform_request("GET", "https://www.googleapis.com/books/v1/volumes", {"q": "python"})
    """

    def __init__(
        self,
        provider: TokenProvider | None,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
        user_agent: str = USER_AGENT,
    ):
        """Initialize the connection.

        Args:
            provider: Token provider; None sends unauthenticated requests
                (e.g. API-key-only calls).
            client: httpx client to use. The connection only closes clients it created.
            timeout: Request timeout in seconds. Defaults to config.DEFAULT_TIMEOUT.
            user_agent: User-Agent header value.
        """
        self.provider = provider
        self.user_agent = user_agent
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else DEFAULT_TIMEOUT
        )

    async def _get_headers(self, has_body: bool) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "User-Agent": self.user_agent,
        }
        if has_body:
            headers["Content-Type"] = "application/json"
        if self.provider is not None:
            token = await self.provider.get_token()
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def perform_request(
        self,
        method: str,
        url: str,
        parameters: Mapping[str, str | list[str]] | None = None,
        body: bytes | None = None,
    ) -> RawResponse:
        """Send one request.

        Args:
            method: HTTP method.
            url: Absolute URL.
            parameters: Query parameters.
            body: Encoded JSON body.

        Returns:
            The raw response, whatever its status code.

        Raises:
            TransportError: If the request could not be completed.
            TokenError: If the provider cannot supply a token.
        """
        headers = await self._get_headers(body is not None)

        # Parameter values are not logged; "key" carries an API key
        logger.debug(f"{method} {url} params={sorted(parameters or {})}")
        try:
            response = await self._client.request(
                method,
                url,
                params=parameters or None,
                content=body,
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise TransportError(f"Request failed: {e}", original=e) from e

        logger.debug(f"{method} {url} -> {response.status_code}")
        return RawResponse(
            content=response.content or None,
            status_code=response.status_code,
            headers=response.headers,
            reason_phrase=response.reason_phrase,
        )

    async def close(self):
        """Close the HTTP client if this connection created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()
