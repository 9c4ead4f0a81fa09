"""Service account token provider.

Service accounts authenticate server-to-server without user interaction. The
account can reach resources shared with its email, public APIs, and (with
domain-wide delegation) Google Workspace users it impersonates.

Example:
    >>> auth = GoogleServiceAccount("service_account_key.json", scopes=["cloud-platform"])
    >>> service = TranslateService(auth)
"""

import json
import logging
from pathlib import Path

from google.oauth2 import service_account

from google_api_runtime.auth.base import CredentialsTokenProvider, resolve_scopes
from google_api_runtime.config import GOOGLE_SERVICE_ACCOUNT
from google_api_runtime.exceptions import AuthError, CredentialsNotFoundError

logger = logging.getLogger(__name__)


class GoogleServiceAccount(CredentialsTokenProvider):
    """Token provider for a service account key file."""

    def __init__(
        self,
        key_path: str | Path | None = None,
        scopes: list[str] | None = None,
    ):
        """Load a service account key.

        Args:
            key_path: Path to the JSON key. Defaults to config.GOOGLE_SERVICE_ACCOUNT.
            scopes: Scope short names or full URLs. Defaults to ["cloud-platform"].

        Raises:
            CredentialsNotFoundError: If the key file is not found.
            AuthError: If the key file is invalid.
        """
        key_path = Path(key_path) if key_path else GOOGLE_SERVICE_ACCOUNT

        if not key_path.exists():
            raise CredentialsNotFoundError(str(key_path))

        scopes = resolve_scopes(scopes or ["cloud-platform"])

        try:
            with open(key_path) as f:
                key_data = json.load(f)
        except json.JSONDecodeError as e:
            raise AuthError(f"Invalid JSON in key file: {e}") from e

        if key_data.get("type") != "service_account":
            raise AuthError(
                f"Invalid key file: expected type 'service_account', got '{key_data.get('type')}'"
            )

        try:
            credentials = service_account.Credentials.from_service_account_info(
                key_data, scopes=scopes
            )
        except ValueError as e:
            raise AuthError(f"Invalid service account key: {e}") from e

        self._setup(
            key_path,
            scopes,
            key_data.get("client_email", ""),
            key_data.get("project_id", ""),
            credentials,
        )
        logger.info(f"Service account initialized: {self.client_email}")

    def _setup(
        self,
        key_path: Path,
        scopes: list[str],
        client_email: str,
        project_id: str,
        credentials,
        request=None,
    ):
        """Assign every instance field; shared by __init__ and with_subject."""
        self.key_path = key_path
        self.scopes = scopes
        self.client_email = client_email
        self.project_id = project_id
        CredentialsTokenProvider.__init__(self, credentials, request)

    @property
    def email(self) -> str:
        """Service account email. Share resources with this address to grant access."""
        return self.client_email

    def with_subject(self, subject_email: str) -> "GoogleServiceAccount":
        """Impersonate a Workspace user (requires domain-wide delegation).

        Args:
            subject_email: Email of the user to impersonate.

        Returns:
            A new provider with delegated credentials.
        """
        delegated = object.__new__(type(self))
        delegated._setup(
            self.key_path,
            self.scopes,
            self.client_email,
            self.project_id,
            self.credentials.with_subject(subject_email),
            self._request,
        )

        logger.info(f"Created delegated credentials for: {subject_email}")
        return delegated

    def get_info(self) -> dict:
        """Get information about the service account."""
        return {
            "type": "service_account",
            "email": self.client_email,
            "project_id": self.project_id,
            "scopes": self.scopes,
            "key_path": str(self.key_path),
        }
