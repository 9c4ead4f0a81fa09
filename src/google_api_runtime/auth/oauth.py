"""User OAuth token provider using Authlib.

Runs the installed-app authorization flow once, stores the resulting token in
google-auth's ``authorized_user`` JSON layout and refreshes it on demand when
the runtime asks for a bearer token.

Default storage:
    <runtime home>/credentials.json - OAuth client secrets
    <runtime home>/token.json       - OAuth tokens
"""

import json
import logging
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from authlib.integrations.requests_client import OAuth2Session
from authlib.oauth2 import OAuth2Error
from google.oauth2.credentials import Credentials as GoogleCredentials
from requests.exceptions import RequestException

from google_api_runtime.auth.base import TokenProvider, resolve_scopes
from google_api_runtime.config import GOOGLE_CREDENTIALS, GOOGLE_TOKEN
from google_api_runtime.exceptions import (
    CredentialsNotFoundError,
    ScopeMismatchError,
    TokenError,
)

logger = logging.getLogger(__name__)

# Refresh this many seconds before the recorded expiry
EXPIRY_LEEWAY = 60


def _stored_to_session(token_data: dict[str, Any]) -> dict[str, Any]:
    """Convert a stored google-auth token to Authlib's token dict."""
    expiry = token_data.get("expiry")
    if expiry and isinstance(expiry, str):
        expires_at = datetime.fromisoformat(expiry.replace("Z", "+00:00")).timestamp()
    else:
        expires_at = expiry

    return {
        "access_token": token_data.get("token"),
        "refresh_token": token_data.get("refresh_token"),
        "token_type": token_data.get("type", "Bearer"),
        "expires_at": expires_at,
        "scope": " ".join(token_data.get("scopes", [])),
    }


class GoogleOAuth(TokenProvider):
    """Installed-app OAuth 2.0 token provider.

    Example:
        >>> auth = GoogleOAuth(scopes=["books"])
        >>> if not auth.is_authorized():
        ...     print(f"Visit: {auth.get_authorization_url()}")
        ...     auth.fetch_token(input("Paste redirect URL: "))
        >>> service = BooksService(auth)
    """

    AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    REVOKE_URL = "https://oauth2.googleapis.com/revoke"

    def __init__(
        self,
        scopes: list[str] | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        token_path: str | Path | None = None,
        credentials_path: str | Path | None = None,
        redirect_uri: str = "http://localhost:0",
    ):
        """Initialize the provider.

        Args:
            scopes: Scope short names (e.g. ["cloud-platform"]) or full URLs.
                Defaults to ["cloud-platform"].
            client_id: OAuth client ID (read from the client secrets file if not given).
            client_secret: OAuth client secret (read from the client secrets file if not given).
            token_path: Where tokens are stored. Defaults to config.GOOGLE_TOKEN.
            credentials_path: Client secrets file. Defaults to config.GOOGLE_CREDENTIALS.
            redirect_uri: Redirect URI registered for the OAuth client.

        Raises:
            ValueError: For unknown scope names or a malformed secrets file.
            CredentialsNotFoundError: If the secrets file is needed and missing.
        """
        self.token_path = Path(token_path) if token_path else GOOGLE_TOKEN
        self.credentials_path = Path(credentials_path) if credentials_path else GOOGLE_CREDENTIALS
        self.required_scopes = resolve_scopes(scopes or ["cloud-platform"])

        if not client_id or not client_secret:
            client_id, client_secret = self._load_client_secrets()

        self.client_id = client_id
        self.client_secret = client_secret

        self.session = OAuth2Session(
            client_id=self.client_id,
            client_secret=self.client_secret,
            scope=" ".join(self.required_scopes),
            redirect_uri=redirect_uri,
            token=self._load_token(),
            update_token=self._save_token,
            token_endpoint=self.TOKEN_URL,
            token_endpoint_auth_method="client_secret_post",
        )

        self.last_refresh: datetime | None = None
        self.refresh_count = 0
        self._lock = threading.Lock()

    def _load_client_secrets(self) -> tuple[str, str]:
        if not self.credentials_path.exists():
            raise CredentialsNotFoundError(str(self.credentials_path))

        with open(self.credentials_path) as f:
            secrets = json.load(f)

        app = secrets.get("installed") or secrets.get("web")
        if app is None:
            raise ValueError("Invalid client secrets format. Expected 'installed' or 'web' key.")

        return app["client_id"], app["client_secret"]

    def _load_token(self) -> dict[str, Any] | None:
        """Load the stored token, or None if absent, unreadable or under-scoped."""
        if not self.token_path.exists():
            logger.info("No existing token found")
            return None

        try:
            with open(self.token_path) as f:
                token_data = json.load(f)
            token = _stored_to_session(token_data)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load token from {self.token_path}: {e}")
            return None

        current_scopes = set(token_data.get("scopes", []))
        missing = set(self.required_scopes) - current_scopes
        if missing:
            logger.warning(f"Stored token missing required scopes: {missing}")
            return None

        logger.info(f"Loaded token with scopes: {current_scopes}")
        return token

    def _save_token(
        self,
        token: dict[str, Any],
        refresh_token: str | None = None,
        access_token: str | None = None,
    ):
        """Persist a token (also Authlib's ``update_token`` hook)."""
        if access_token:
            token["access_token"] = access_token
        if refresh_token and not token.get("refresh_token"):
            token["refresh_token"] = refresh_token

        # Refresh responses may omit scope; keep the ones we asked for
        token_scopes = set(token.get("scope", "").split()) or set(self.required_scopes)
        missing = set(self.required_scopes) - token_scopes
        if missing:
            raise ScopeMismatchError(missing)

        stored = {
            "token": token["access_token"],
            "refresh_token": token.get("refresh_token"),
            "token_uri": self.TOKEN_URL,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "scopes": sorted(token_scopes),
            "type": token.get("token_type", "Bearer"),
            "expiry": token.get("expires_at"),
        }

        self.token_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.token_path, "w") as f:
            json.dump(stored, f, indent=2)

        self.last_refresh = datetime.now()
        self.refresh_count += 1

        logger.info(f"Token saved with scopes: {token_scopes}")

    def is_authorized(self) -> bool:
        """Check if a token with all required scopes is loaded."""
        if not self.session.token:
            return False

        token_scopes = set(self.session.token.get("scope", "").split())
        return set(self.required_scopes).issubset(token_scopes)

    def is_expired(self) -> bool:
        """Check if the access token is expired or about to expire."""
        expires_at = self.session.token.get("expires_at") if self.session.token else None
        if not expires_at:
            return False
        return expires_at - EXPIRY_LEEWAY < datetime.now().timestamp()

    def get_authorization_url(self) -> str:
        """Start the authorization flow.

        Returns:
            URL for the user to visit.
        """
        url, _state = self.session.create_authorization_url(
            self.AUTHORIZE_URL,
            access_type="offline",
            prompt="consent",
            include_granted_scopes="true",
        )
        return url

    def fetch_token(self, authorization_response: str) -> dict[str, Any]:
        """Complete the authorization flow.

        Args:
            authorization_response: The full redirect URL from the OAuth callback.

        Returns:
            The fetched token dict.
        """
        try:
            token = self.session.fetch_token(
                self.TOKEN_URL,
                authorization_response=authorization_response,
                client_secret=self.client_secret,
            )
        except (OAuth2Error, RequestException) as e:
            raise TokenError(f"Failed to fetch token: {e}") from e

        with self._lock:
            self._save_token(token)
        return token

    def get_access_token(self) -> str:
        """Return a valid access token, refreshing it first if expired.

        Raises:
            TokenError: If not authorized or the refresh fails.
        """
        if not self.is_authorized():
            raise TokenError("Not authorized or missing required scopes")

        # Serializes refreshes and the token.json write done by update_token
        with self._lock:
            if self.is_expired():
                logger.info("Token expired, refreshing...")
                try:
                    self.session.refresh_token(
                        self.TOKEN_URL,
                        refresh_token=self.session.token.get("refresh_token"),
                    )
                except (OAuth2Error, RequestException) as e:
                    raise TokenError(f"Failed to refresh token: {e}") from e

            return self.session.token["access_token"]

    def get_credentials(self) -> GoogleCredentials:
        """Get a google-auth Credentials object for the current token."""
        return GoogleCredentials(
            token=self.get_access_token(),
            refresh_token=self.session.token.get("refresh_token"),
            token_uri=self.TOKEN_URL,
            client_id=self.client_id,
            client_secret=self.client_secret,
            scopes=self.required_scopes,
        )

    def revoke_token(self):
        """Revoke the current token and remove the stored copy."""
        if not self.session.token:
            logger.warning("No token to revoke")
            return

        try:
            self.session.post(
                self.REVOKE_URL,
                params={"token": self.session.token["access_token"]},
            )
        except OSError as e:
            logger.warning(f"Failed to revoke token remotely: {e}")

        if self.token_path.exists():
            self.token_path.unlink()

        self.session.token = None
        logger.info("Token revoked")

    def get_token_info(self) -> dict[str, Any]:
        """Describe the current token: status, scopes, expiry, refreshes."""
        if not self.session.token:
            return {"status": "no_token"}

        token = self.session.token
        expires_at = token.get("expires_at")

        if expires_at:
            expires_in = expires_at - datetime.now().timestamp()
            expires_str = str(timedelta(seconds=int(max(0, expires_in))))
        else:
            expires_str = "unknown"

        return {
            "status": "expired" if self.is_expired() else "valid",
            "scopes": token.get("scope", "").split(),
            "expires_in": expires_str,
            "has_refresh_token": bool(token.get("refresh_token")),
            "refresh_count": self.refresh_count,
            "last_refresh": self.last_refresh.isoformat() if self.last_refresh else None,
        }
