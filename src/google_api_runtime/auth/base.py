"""Token provider interface and the simple providers.

A token provider hands the transport a bearer token for each request. How the
token is obtained or refreshed is up to the provider; providers backed by
``google-auth`` or ``authlib`` do blocking I/O and are run in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any

import google.auth
import google.auth.exceptions
from google.auth.transport.requests import Request

from google_api_runtime.exceptions import AuthError, TokenError

logger = logging.getLogger(__name__)


# Common Google OAuth scopes
SCOPES = {
    "cloud-platform": "https://www.googleapis.com/auth/cloud-platform",
    "cloud-platform.read-only": "https://www.googleapis.com/auth/cloud-platform.read-only",
    "drive": "https://www.googleapis.com/auth/drive",
    "drive.readonly": "https://www.googleapis.com/auth/drive.readonly",
    "drive.file": "https://www.googleapis.com/auth/drive.file",
    "sheets": "https://www.googleapis.com/auth/spreadsheets",
    "sheets.readonly": "https://www.googleapis.com/auth/spreadsheets.readonly",
    "calendar": "https://www.googleapis.com/auth/calendar",
    "calendar.readonly": "https://www.googleapis.com/auth/calendar.readonly",
    "gmail.readonly": "https://www.googleapis.com/auth/gmail.readonly",
    "books": "https://www.googleapis.com/auth/books",
    "translate": "https://www.googleapis.com/auth/cloud-translation",
    "userinfo.email": "https://www.googleapis.com/auth/userinfo.email",
}


def resolve_scopes(scopes: list[str]) -> list[str]:
    """Resolve scope short names to full URLs.

    Raises:
        ValueError: For a name that is neither a known short name nor a URL.
    """
    resolved = []
    for scope in scopes:
        if scope.startswith("https://"):
            resolved.append(scope)
        elif scope in SCOPES:
            resolved.append(SCOPES[scope])
        else:
            raise ValueError(
                f"Unknown scope: {scope}. Use full URL or one of: {list(SCOPES.keys())}"
            )
    return resolved


class TokenProvider(ABC):
    """Supplies OAuth2 bearer tokens to the transport."""

    @abstractmethod
    def get_access_token(self) -> str:
        """Return a currently valid access token, refreshing if needed.

        Raises:
            TokenError: If no token can be obtained.
        """

    async def get_token(self) -> str:
        """Async variant of :meth:`get_access_token`, run off the event loop."""
        return await asyncio.to_thread(self.get_access_token)


class StaticTokenProvider(TokenProvider):
    """A fixed access token, e.g. from ``gcloud auth print-access-token``."""

    def __init__(self, token: str):
        if not token:
            raise TokenError("Access token must not be empty")
        self._token = token

    def get_access_token(self) -> str:
        return self._token

    async def get_token(self) -> str:
        return self._token


class CredentialsTokenProvider(TokenProvider):
    """Token provider backed by any ``google.auth`` credentials object.

    Example:
        >>> provider = CredentialsTokenProvider.from_default(scopes=["cloud-platform"])
        >>> token = await provider.get_token()
    """

    def __init__(self, credentials: Any, request: Any = None):
        """Wrap credentials.

        Args:
            credentials: A ``google.auth.credentials.Credentials`` instance.
            request: Transport used for refreshes. Defaults to
                ``google.auth.transport.requests.Request()``.
        """
        self._credentials = credentials
        self._request = request
        self._lock = threading.Lock()

    @classmethod
    def from_default(cls, scopes: list[str] | None = None) -> CredentialsTokenProvider:
        """Use Application Default Credentials.

        Raises:
            AuthError: If no default credentials are configured.
        """
        try:
            credentials, project_id = google.auth.default(
                scopes=resolve_scopes(scopes or ["cloud-platform"])
            )
        except google.auth.exceptions.DefaultCredentialsError as e:
            raise AuthError(f"No application default credentials: {e}") from e

        logger.info(f"Using application default credentials (project: {project_id})")
        return cls(credentials)

    @property
    def credentials(self) -> Any:
        """The wrapped credentials."""
        return self._credentials

    def get_access_token(self) -> str:
        # Concurrent calls share one refresh
        with self._lock:
            if not self._credentials.valid:
                logger.info("Credentials expired or missing token, refreshing...")
                try:
                    self._credentials.refresh(self._request or Request())
                except google.auth.exceptions.GoogleAuthError as e:
                    raise TokenError(f"Failed to refresh credentials: {e}") from e
            return self._credentials.token
