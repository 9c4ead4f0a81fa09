"""Token providers for attaching OAuth2 credentials to API calls."""

from google_api_runtime.auth.base import (
    SCOPES,
    CredentialsTokenProvider,
    StaticTokenProvider,
    TokenProvider,
    resolve_scopes,
)
from google_api_runtime.auth.oauth import GoogleOAuth
from google_api_runtime.auth.service_account import GoogleServiceAccount

__all__ = [
    "TokenProvider",
    "StaticTokenProvider",
    "CredentialsTokenProvider",
    "GoogleOAuth",
    "GoogleServiceAccount",
    "SCOPES",
    "resolve_scopes",
]
